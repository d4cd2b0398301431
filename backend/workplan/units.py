from __future__ import annotations

import math
from dataclasses import dataclass

from .fields import canon_key
from .settings import COMPARISON_OPERATORS, settings

HOURS_PER_UNIT: dict[str, float] = {
    "hours": 1.0,
    "days": 24.0,
    "weeks": 24.0 * 7.0,
    # 30-day month and 365-day year approximations.
    "months": 24.0 * 30.0,
    "years": 24.0 * 365.0,
}

_UNIT_ALIASES: dict[str, str] = {
    "h": "hours",
    "hr": "hours",
    "hrs": "hours",
    "hour": "hours",
    "hours": "hours",
    "d": "days",
    "day": "days",
    "days": "days",
    "w": "weeks",
    "wk": "weeks",
    "wks": "weeks",
    "week": "weeks",
    "weeks": "weeks",
    "mo": "months",
    "month": "months",
    "months": "months",
    "y": "years",
    "yr": "years",
    "yrs": "years",
    "year": "years",
    "years": "years",
}

# Longest stems first so "hours" is not shadowed by a shorter match.
_NAME_STEMS: tuple[tuple[str, str], ...] = (
    ("hour", "hours"),
    ("hrs", "hours"),
    ("day", "days"),
    ("week", "weeks"),
    ("month", "months"),
    ("year", "years"),
)


@dataclass(frozen=True)
class ConstraintDefaults:
    temporal_unit: str = "hours"
    comparison_operator: str = "<="

    @classmethod
    def from_settings(cls) -> "ConstraintDefaults":
        return cls(
            temporal_unit=settings.default_temporal_unit,
            comparison_operator=settings.default_comparison_operator,
        )


def normalise_unit(unit: str | None) -> str | None:
    key = canon_key(unit)
    if not key:
        return None
    return _UNIT_ALIASES.get(key)


def infer_unit_from_name(field_name: str | None) -> str | None:
    """Infer a temporal unit from a field label such as "Repair Days" or "Duration (hr)"."""
    key = canon_key(field_name)
    if not key:
        return None
    for stem, unit in _NAME_STEMS:
        if stem in key:
            return unit
    tokens = key.replace("(", " ").replace(")", " ").split()
    for token in tokens:
        unit = _UNIT_ALIASES.get(token)
        if unit is not None:
            return unit
    return None


def to_hours(value: float, unit: str | None, *, default_unit: str = "hours") -> float:
    resolved = normalise_unit(unit) or normalise_unit(default_unit) or "hours"
    return float(value) * HOURS_PER_UNIT[resolved]


def resolve_operator(op: str | None, *, default: str = "<=") -> str:
    text = str(op or "").strip()
    if not text:
        return default
    return text if text in COMPARISON_OPERATORS else ""


def compare(left: float, op: str, right: float) -> bool:
    """Evaluate ``left op right``; unrecognised operators impose no restriction."""
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right or math.isclose(left, right, rel_tol=1e-12, abs_tol=1e-9)
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right or math.isclose(left, right, rel_tol=1e-12, abs_tol=1e-9)
    if op in ("=", "=="):
        return math.isclose(left, right, rel_tol=1e-12, abs_tol=1e-9)
    if op == "!=":
        return not math.isclose(left, right, rel_tol=1e-12, abs_tol=1e-9)
    return True
