"""
Pydantic schemas for the alerts API.

Separated from the route handlers so the client sync engine can validate
the same snapshot contract it consumes.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from migun.app.alerts.models import AlertRecord, EarlyWarningNotice, Snapshot


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

class AlertOut(BaseModel):
    """One active alert as seen by remote callers."""
    model_config = ConfigDict(extra="ignore")

    area: str = Field(..., examples=["תל אביב - מרכז העיר"])
    migun_time: int = Field(..., ge=0, description="Seconds to reach shelter", examples=[90])
    started_at: int = Field(..., description="Epoch ms of first detection")
    type: str = Field("missiles", examples=["missiles"])
    instructions: Optional[str] = None

    @classmethod
    def from_record(cls, record: AlertRecord) -> "AlertOut":
        return cls(**record.to_dict())

    def to_record(self) -> AlertRecord:
        return AlertRecord.from_dict(self.model_dump())


class NewsFlashOut(BaseModel):
    """The singleton early-warning notice."""
    model_config = ConfigDict(extra="ignore")

    type: Literal["newsFlash"] = "newsFlash"
    instructions: str = ""
    timestamp: int = Field(..., description="Epoch ms of issuance")
    areas: List[str] = Field(default_factory=list)

    @classmethod
    def from_notice(cls, notice: EarlyWarningNotice) -> "NewsFlashOut":
        return cls(**notice.to_dict())

    def to_notice(self) -> EarlyWarningNotice:
        return EarlyWarningNotice(
            instructions=self.instructions,
            timestamp=self.timestamp,
            areas=list(self.areas),
        )


class AlertsSnapshotResponse(BaseModel):
    """Response body for GET /api/alerts."""
    model_config = ConfigDict(extra="ignore")

    alerts: List[AlertOut] = Field(default_factory=list)
    newsFlash: Optional[NewsFlashOut] = None
    server_time: int = Field(..., description="Server epoch ms at snapshot time")

    @classmethod
    def from_snapshot(cls, snap: Snapshot) -> "AlertsSnapshotResponse":
        return cls(
            alerts=[AlertOut.from_record(r) for r in snap.alerts],
            newsFlash=NewsFlashOut.from_notice(snap.notice) if snap.notice else None,
            server_time=snap.server_time,
        )


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

class AreaOut(BaseModel):
    name: str
    migun_time: int


# ---------------------------------------------------------------------------
# Synthetic injection
# ---------------------------------------------------------------------------

class InjectedAlertResponse(BaseModel):
    success: bool = True
    alert: AlertOut
    alerts: List[AlertOut]


class ClearInjectedResponse(BaseModel):
    success: bool = True
    message: str = "Test alerts cleared"
    cleared: int = 0
