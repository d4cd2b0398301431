from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .fields import canon_value, norm, try_float
from .models import ParameterRow, SoftParameter


def build_parameter_catalog(rows: Iterable[ParameterRow | Mapping[str, Any]] | None) -> dict[str, SoftParameter]:
    """Collapse raw parameter rows into one entry per parameter name.

    The latest non-blank ``max_weight`` wins; otherwise the largest option weight
    (never below 1) is used so every catalog entry has a positive maximum.
    """
    groups: dict[str, dict[str, Any]] = {}
    for raw in rows or []:
        row = raw if isinstance(raw, ParameterRow) else ParameterRow.model_validate(dict(raw))
        name = norm(row.parameter)
        if not name:
            continue
        grp = groups.setdefault(name, {"max_weight": None, "options": {}, "condition": row.condition})
        if row.max_weight is not None:
            grp["max_weight"] = float(row.max_weight)
        label = norm(row.option)
        if label:
            grp["options"][label] = float(row.weight) if row.weight is not None else 0.0

    catalog: dict[str, SoftParameter] = {}
    for name, grp in groups.items():
        max_weight = grp["max_weight"]
        if max_weight is None or max_weight <= 0:
            max_weight = max([1.0, *grp["options"].values()])
        catalog[name] = SoftParameter(
            name=name,
            condition=grp["condition"],
            max_weight=float(max_weight),
            options=grp["options"],
        )
    return catalog


def normalise_overall_weights(raw: Mapping[str, Any] | None, names: Iterable[str]) -> dict[str, float]:
    """Fractions over ``names`` summing to 1; equal weighting when nothing positive is given."""
    known = list(names)
    lookup = {canon_value(k): v for k, v in (raw or {}).items()}
    cleaned: dict[str, float] = {}
    for name in known:
        value = try_float(lookup.get(canon_value(name)))
        cleaned[name] = max(0.0, value) if value is not None else 0.0

    total = sum(cleaned.values())
    if total > 0:
        return {k: v / total for k, v in cleaned.items()}
    if not known:
        return {}
    return {k: 1.0 / len(known) for k in known}


@dataclass(frozen=True)
class OptionMatch:
    matched: bool
    weight: float


NO_MATCH = OptionMatch(matched=False, weight=0.0)


def match_option(parameter: SoftParameter, value: Any) -> OptionMatch:
    """Exact canonical label match first, then numeric equality ("10" vs "10.0")."""
    wanted = canon_value(value)
    if not wanted:
        return NO_MATCH
    for label, weight in parameter.options.items():
        if canon_value(label) == wanted:
            return OptionMatch(matched=True, weight=float(weight))

    number = try_float(value)
    if number is None:
        return NO_MATCH
    for label, weight in parameter.options.items():
        option_number = try_float(label)
        if option_number is not None and option_number == number:
            return OptionMatch(matched=True, weight=float(weight))
    return NO_MATCH
