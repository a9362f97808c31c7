"""
Area catalog — static area name → migun_time lookup.

Loaded once at startup from a JSON array of ``{"name", "migun_time"}``
objects. Authoring the file is outside this service; a missing or broken
file leaves an empty catalog (every area then gets the default budget).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_MIGUN_TIME = 90


@dataclass(frozen=True)
class Area:
    name: str
    migun_time: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "migun_time": self.migun_time}


class AreaCatalog:
    """Read-only lookup of per-area shelter-ingress budgets."""

    def __init__(self, areas: Iterable[Area] = (), *, default_migun_time: int = DEFAULT_MIGUN_TIME):
        self._areas: List[Area] = list(areas)
        self._times: Dict[str, int] = {a.name: a.migun_time for a in self._areas}
        self.default_migun_time = default_migun_time

    def __len__(self) -> int:
        return len(self._areas)

    def __contains__(self, name: object) -> bool:
        return name in self._times

    def migun_time_for(self, name: str) -> int:
        return self._times.get(name, self.default_migun_time)

    def get(self, name: str) -> Optional[Area]:
        if name not in self._times:
            return None
        return Area(name, self._times[name])

    def to_list(self) -> List[Dict[str, Any]]:
        return [a.to_dict() for a in self._areas]

    @classmethod
    def from_records(
        cls,
        records: Iterable[Dict[str, Any]],
        *,
        default_migun_time: int = DEFAULT_MIGUN_TIME,
    ) -> "AreaCatalog":
        areas: List[Area] = []
        for rec in records:
            try:
                areas.append(Area(str(rec["name"]), int(rec["migun_time"])))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed area record: %r", rec)
        return cls(areas, default_migun_time=default_migun_time)

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        *,
        default_migun_time: int = DEFAULT_MIGUN_TIME,
    ) -> "AreaCatalog":
        path = Path(path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8-sig"))
        except FileNotFoundError:
            logger.warning("Area catalog %s not found, using defaults only", path)
            return cls(default_migun_time=default_migun_time)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load area catalog %s: %s", path, e)
            return cls(default_migun_time=default_migun_time)

        if not isinstance(raw, list):
            logger.error("Area catalog %s is not a JSON array", path)
            return cls(default_migun_time=default_migun_time)

        catalog = cls.from_records(raw, default_migun_time=default_migun_time)
        logger.info("Loaded %d areas from %s", len(catalog), path)
        return catalog


def load_geo_reference(path: Union[str, Path]) -> List[Any]:
    """Read the city geolocation file verbatim; empty when unavailable."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except FileNotFoundError:
        logger.warning("Geo reference %s not found", path)
        return []
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Failed to load geo reference %s: %s", path, e)
        return []
    return data if isinstance(data, list) else []
