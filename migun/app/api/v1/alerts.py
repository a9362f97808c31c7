"""
FastAPI routes: alert snapshot, reference data and dev-only injection.

Provides endpoints to:
    GET /api/alerts              — current snapshot {alerts, newsFlash, server_time}
    GET /api/areas               — area catalog [{name, migun_time}]
    GET /api/cities-geo          — geolocation reference data (passthrough)
    GET /api/test-alert          — inject synthetic alerts (non-production only)
    GET /api/clear-test-alerts   — drop synthetic alerts (non-production only)
"""

from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from migun.app.alerts.store import AlertStore
from migun.app.api.schemas import (
    AlertOut,
    AlertsSnapshotResponse,
    AreaOut,
    ClearInjectedResponse,
    InjectedAlertResponse,
)
from migun.app.areas.catalog import AreaCatalog
from migun.app.core.config import Settings, get_settings
from migun.app.core.errors import ForbiddenError, ValidationError

router = APIRouter(prefix="/api", tags=["alerts"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_store(request: Request) -> AlertStore:
    return request.app.state.store


def get_catalog(request: Request) -> AreaCatalog:
    return request.app.state.catalog


def get_cities_geo(request: Request) -> List[Any]:
    return getattr(request.app.state, "cities_geo", [])


def require_test_alerts(config: Settings = Depends(get_settings)) -> None:
    if not config.test_alerts_enabled:
        raise ForbiddenError(
            "Test alerts only available in development mode",
            environment=config.ENVIRONMENT,
        )


def _split_areas(area: Optional[str], areas: Optional[str]) -> List[str]:
    """Merge ``area`` and comma-separated ``areas``; order kept, duplicates dropped."""
    names: List[str] = []
    for raw in [area or ""] + (areas or "").split(","):
        name = raw.strip()
        if name and name not in names:
            names.append(name)
    return names


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/alerts",
    response_model=AlertsSnapshotResponse,
    summary="Current alert snapshot",
    description=(
        "Active alerts (elapsed ≤ migun_time + 30 s), the early-warning "
        "notice if younger than 10 minutes, and the server clock."
    ),
)
async def get_alerts(response: Response, store: AlertStore = Depends(get_store)):
    response.headers["Cache-Control"] = "no-store"
    return AlertsSnapshotResponse.from_snapshot(store.snapshot())


@router.get("/areas", response_model=List[AreaOut], summary="Area catalog")
async def list_areas(catalog: AreaCatalog = Depends(get_catalog)):
    return catalog.to_list()


@router.get("/cities-geo", summary="City geolocation reference data")
async def cities_geo(data: List[Any] = Depends(get_cities_geo)):
    return data


@router.get(
    "/test-alert",
    response_model=InjectedAlertResponse,
    summary="Inject synthetic alerts",
    dependencies=[Depends(require_test_alerts)],
)
async def inject_test_alert(
    area: Optional[str] = Query(None, description="Single area name"),
    areas: Optional[str] = Query(None, description="Comma-separated area names"),
    migun_time: Optional[int] = Query(None, ge=1, le=3600, description="Seconds; catalog value wins"),
    store: AlertStore = Depends(get_store),
):
    names = _split_areas(area, areas)
    if not names:
        raise ValidationError("Area name required. Use ?area=<name>", field="area")

    out = [AlertOut.from_record(r) for r in store.upsert_many(names, migun_time)]
    return InjectedAlertResponse(alert=out[0], alerts=out)


@router.get(
    "/clear-test-alerts",
    response_model=ClearInjectedResponse,
    summary="Remove synthetic alerts and the notice",
    dependencies=[Depends(require_test_alerts)],
)
async def clear_test_alerts(store: AlertStore = Depends(get_store)):
    return ClearInjectedResponse(cleared=store.clear())
