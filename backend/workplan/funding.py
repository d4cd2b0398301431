from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from .fields import RecordLookup, canon_key, canon_value, norm

_SEGMENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%\s*([A-Za-z0-9_&.]+)\s*$")

FUNDING_CATEGORIES: tuple[str, ...] = ("O&M", "Capital", "Decommission")

_CATEGORY_FIELDS: dict[str, tuple[str, ...]] = {
    "O&M": ("O&M", "om", "Funding Type Override Settings - O&M"),
    "Capital": ("Capital", "Funding Type Override Settings - Capital"),
    "Decommission": ("Decommission", "Funding Type Override Settings - Decommission"),
}


def canon_token(token: Any) -> str:
    return canon_value(token)


def parse_split_map(text: Any) -> dict[str, float] | None:
    """Parse a funding split such as ``"50%F-50%P"`` into ``{"f": 0.5, "p": 0.5}``.

    Segments are separated by ``-`` (en/em dashes included); each must end in
    ``<number>%<token>``. Malformed segments are skipped, repeated tokens add up,
    and ``None`` is returned when nothing valid remains.
    """
    raw = canon_value(text)
    if not raw:
        return None
    out: dict[str, float] = {}
    for segment in raw.split("-"):
        match = _SEGMENT_RE.search(segment.strip())
        if match is None:
            continue
        token = canon_token(match.group(2))
        if not token:
            continue
        out[token] = out.get(token, 0.0) + float(match.group(1)) / 100.0
    return out or None


def _category_order(lookup: RecordLookup) -> list[str]:
    preferred = canon_key(lookup.value("category", ""))
    order = list(FUNDING_CATEGORIES)
    for category in FUNDING_CATEGORIES:
        if preferred and canon_key(category) == preferred:
            order.remove(category)
            order.insert(0, category)
            break
    return order


def resolve_split_map(lookup: RecordLookup) -> dict[str, float] | None:
    """Split map from the first populated O&M/Capital/Decommission field (repair, then station)."""
    for category in _category_order(lookup):
        hit = lookup.find_any(_CATEGORY_FIELDS[category])
        if hit is None:
            continue
        parsed = parse_split_map(hit.value)
        if parsed:
            return parsed
    return None


def split_amounts(cost: float, split_map: Mapping[str, float] | None) -> dict[str, float]:
    if not split_map:
        return {}
    return {token: round(float(cost) * float(frac), 2) for token, frac in split_map.items()}


def split_multiplier(split_map: Mapping[str, float] | None, source: str | None) -> float:
    """Fraction of a cost attributable to ``source``.

    No configured source, or a repair without any split, counts the whole cost;
    a repair whose split omits the source contributes nothing to it.
    """
    token = canon_token(norm(source))
    if not token or not split_map:
        return 1.0
    return float(split_map.get(token, 0.0))


def add_split_costs(totals: dict[str, float], cost: float, split_map: Mapping[str, float] | None) -> None:
    for token, frac in (split_map or {}).items():
        totals[token] = round(totals.get(token, 0.0) + float(cost) * float(frac), 2)
