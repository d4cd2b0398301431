from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

_DASHES_RE = re.compile(r"[\u2010-\u2015\u2212]")
_SPACE_RE = re.compile(r"\s+")

STATION_ID_FIELDS: tuple[str, ...] = ("station_id", "Station Number", "id")
REPAIR_NAME_FIELDS: tuple[str, ...] = ("repair_name", "name", "Operation")
COST_FIELDS: tuple[str, ...] = ("cost", "Repair Cost")
DAYS_FIELDS: tuple[str, ...] = ("days", "Repair Days", "Duration (days)")
SITE_NAME_FIELDS: tuple[str, ...] = ("site_name",)
LOCATION_FIELDS: tuple[str, ...] = ("location", "Province")
ASSET_TYPE_FIELDS: tuple[str, ...] = ("asset_type", "Asset Type")
TRIP_LOCATION_FIELDS: tuple[str, ...] = ("Trip Location",)
ACCESS_TYPE_FIELDS: tuple[str, ...] = ("Access Type",)
CITY_OF_TRAVEL_FIELDS: tuple[str, ...] = ("City of Travel",)
TIME_TO_SITE_FIELDS: tuple[str, ...] = ("Time to Site (hr)", "Time to Site")


def norm(value: Any) -> str:
    return "" if value is None else str(value).strip()


def canon_value(value: Any) -> str:
    """Canonical form for option labels and categorical cell values."""
    text = _DASHES_RE.sub("-", norm(value))
    return _SPACE_RE.sub(" ", text).lower()


def canon_key(name: Any) -> str:
    """Canonical form for field names: case, whitespace and underscores are ignored."""
    text = canon_value(name).replace("_", " ")
    return _SPACE_RE.sub(" ", text).strip()


def try_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        out = float(value)
        return out if math.isfinite(out) else None
    text = norm(value).replace(",", "")
    if text.startswith("$"):
        text = text[1:].strip()
    if not text:
        return None
    try:
        out = float(text)
    except ValueError:
        return None
    return out if math.isfinite(out) else None


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


@dataclass(frozen=True)
class FieldHit:
    name: str
    value: Any


class FieldIndex:
    """Ordered (canonical name, original name, value) pairs for one record.

    Lookups return the first entry whose canonical name matches, so dict insertion
    order decides between keys that collapse to the same canonical form.
    """

    __slots__ = ("_entries",)

    def __init__(self, record: Mapping[str, Any] | None) -> None:
        entries: list[tuple[str, str, Any]] = []
        for key, value in (record or {}).items():
            entries.append((canon_key(key), str(key), value))
        self._entries = tuple(entries)

    def find(self, name: str) -> FieldHit | None:
        target = canon_key(name)
        if not target:
            return None
        for key, original, value in self._entries:
            if key == target:
                return FieldHit(name=original, value=value)
        return None

    def __len__(self) -> int:
        return len(self._entries)


class RecordLookup:
    """Field lookup over a repair and its owning station (repair fields win)."""

    __slots__ = ("repair", "station")

    def __init__(
        self,
        repair: Mapping[str, Any] | FieldIndex | None,
        station: Mapping[str, Any] | FieldIndex | None = None,
    ) -> None:
        self.repair = repair if isinstance(repair, FieldIndex) else FieldIndex(repair)
        self.station = station if isinstance(station, FieldIndex) else FieldIndex(station)

    def find(self, name: str, *, source: str | None = None) -> FieldHit | None:
        """Return the first non-blank hit; ``source`` restricts to "repair" or "station"."""
        scopes: Iterable[FieldIndex]
        if source == "repair":
            scopes = (self.repair,)
        elif source == "station":
            scopes = (self.station,)
        else:
            scopes = (self.repair, self.station)
        for scope in scopes:
            hit = scope.find(name)
            if hit is not None and not is_blank(hit.value):
                return hit
        return None

    def find_any(self, names: Iterable[str], *, source: str | None = None) -> FieldHit | None:
        for name in names:
            hit = self.find(name, source=source)
            if hit is not None:
                return hit
        return None

    def value(self, names: Iterable[str] | str, default: Any = None, *, source: str | None = None) -> Any:
        hit = self.find(names, source=source) if isinstance(names, str) else self.find_any(names, source=source)
        return default if hit is None else hit.value


def station_id_of(record: Mapping[str, Any] | None) -> str:
    return norm(RecordLookup(record).value(STATION_ID_FIELDS, ""))


def repair_name_of(record: Mapping[str, Any] | None) -> str:
    return norm(RecordLookup(record).value(REPAIR_NAME_FIELDS, ""))


def station_index(stations_by_id: Mapping[Any, Mapping[str, Any]] | None) -> dict[str, Mapping[str, Any]]:
    """Re-key a station mapping by normalised string id."""
    out: dict[str, Mapping[str, Any]] = {}
    for key, station in (stations_by_id or {}).items():
        sid = norm(key)
        if sid and sid not in out and isinstance(station, Mapping):
            out[sid] = station
    return out
