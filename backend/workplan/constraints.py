from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from .fields import FieldHit, RecordLookup, canon_value, is_blank, norm, try_float
from .funding import canon_token, resolve_split_map, split_multiplier
from .models import FixedParameter, IfCondition
from .units import ConstraintDefaults, compare, infer_unit_from_name, normalise_unit, resolve_operator, to_hours

_GEO_SPLIT_RE = re.compile(r"[/,;]")


@dataclass(frozen=True)
class ConstraintCheck:
    passes: bool
    reason: str = ""


PASS = ConstraintCheck(passes=True)


def parse_fixed_parameters(
    raw: Iterable[FixedParameter | Mapping[str, Any]] | None,
    *,
    supported: frozenset[str],
) -> tuple[list[FixedParameter], int]:
    """Validated parameters of a supported type, plus how many entries were dropped."""
    kept: list[FixedParameter] = []
    ignored = 0
    for entry in raw or []:
        if isinstance(entry, FixedParameter):
            param = entry
        elif isinstance(entry, Mapping):
            try:
                param = FixedParameter.model_validate(dict(entry))
            except ValidationError:
                ignored += 1
                continue
        else:
            ignored += 1
            continue
        if param.type not in supported:
            ignored += 1
            continue
        kept.append(param)
    return kept, ignored


def _find(lookup: RecordLookup, param: FixedParameter, name: str | None = None) -> FieldHit | None:
    return lookup.find(name or param.lookup_name, source=param.data_source)


def if_condition_holds(lookup: RecordLookup, condition: IfCondition | None) -> bool:
    """Whether a fixed parameter applies to this repair at all."""
    if condition is None or not norm(condition.field):
        return True
    hit = lookup.find(condition.field)
    op = norm(condition.operator).lower() or "="
    if hit is None:
        return op in ("!=", "<>", "not contains")

    actual_text = canon_value(hit.value)
    wanted_text = canon_value(condition.value)
    if op == "contains":
        return wanted_text in actual_text
    if op == "not contains":
        return wanted_text not in actual_text

    actual_num = try_float(hit.value)
    wanted_num = try_float(condition.value)
    if op in ("=", "==", "!=", "<>"):
        equal = actual_text == wanted_text or (
            actual_num is not None and wanted_num is not None and actual_num == wanted_num
        )
        return equal if op in ("=", "==") else not equal
    if actual_num is None or wanted_num is None:
        return False
    return compare(actual_num, op, wanted_num)


def year_limit(param: FixedParameter, year: int | None) -> float | None:
    """Year's value, else the base value; with no year, base then earliest year."""
    if year is not None:
        entry = param.years.get(str(year))
        if entry is not None and entry.value is not None:
            return float(entry.value)
        return param.value
    if param.value is not None:
        return param.value
    for key in sorted(param.years):
        if param.years[key].value is not None:
            return float(param.years[key].value)
    return None


def allowed_values(param: FixedParameter, year: int | None) -> list[str]:
    if year is not None:
        entry = param.years.get(str(year))
        if entry is not None and entry.values:
            return list(entry.values)
        return list(param.values)
    if param.values:
        return list(param.values)
    for key in sorted(param.years):
        if param.years[key].values:
            return list(param.years[key].values)
    return []


def _constraint_unit(param: FixedParameter, defaults: ConstraintDefaults) -> str:
    return (
        normalise_unit(param.unit)
        or infer_unit_from_name(param.lookup_name)
        or normalise_unit(defaults.temporal_unit)
        or "hours"
    )


def temporal_hours(lookup: RecordLookup, param: FixedParameter, defaults: ConstraintDefaults) -> float | None:
    """Repair's temporal value in hours, unit inferred from the matched field's name."""
    hit = _find(lookup, param)
    if hit is None:
        return None
    number = try_float(hit.value)
    if number is None:
        return None
    unit = infer_unit_from_name(hit.name) or normalise_unit(param.unit) or defaults.temporal_unit
    return to_hours(number, unit, default_unit=defaults.temporal_unit)


def _split_source(param: FixedParameter, split_map: dict[str, float] | None) -> str | None:
    if param.split_source:
        return param.split_source
    # A monetary unit naming a funding token (e.g. "F") selects that share of the cost.
    unit = canon_token(param.unit)
    if unit and split_map and unit in split_map:
        return unit
    return None


def monetary_amount(lookup: RecordLookup, param: FixedParameter) -> float | None:
    hit = _find(lookup, param)
    if hit is None:
        return None
    number = try_float(hit.value)
    if number is None:
        return None
    split_map = resolve_split_map(lookup)
    return number * split_multiplier(split_map, _split_source(param, split_map))


def check_geographical(
    lookup: RecordLookup,
    param: FixedParameter,
    year: int | None,
    *,
    require_value: bool = False,
) -> ConstraintCheck:
    allowed = {canon_value(v) for v in allowed_values(param, year) if canon_value(v)}
    if not allowed:
        return PASS
    hit = _find(lookup, param)
    if hit is None:
        if require_value:
            return ConstraintCheck(False, f"Missing geographical parameter: {param.label}")
        return PASS
    tokens = [canon_value(t) for t in _GEO_SPLIT_RE.split(norm(hit.value)) if canon_value(t)]
    outside = [t for t in tokens if t not in allowed]
    if outside:
        return ConstraintCheck(
            False,
            f'{param.label} value "{norm(hit.value)}" not in allowed list: {", ".join(sorted(allowed))}',
        )
    return PASS


def check_temporal(
    lookup: RecordLookup,
    param: FixedParameter,
    year: int | None,
    defaults: ConstraintDefaults,
    *,
    require_value: bool = False,
) -> ConstraintCheck:
    limit = year_limit(param, year)
    if limit is None:
        return PASS
    hours = temporal_hours(lookup, param, defaults)
    if hours is None:
        if require_value:
            return ConstraintCheck(False, f"Missing temporal parameter: {param.label}")
        return PASS
    limit_hours = to_hours(limit, _constraint_unit(param, defaults), default_unit=defaults.temporal_unit)
    op = resolve_operator(param.conditional, default=defaults.comparison_operator)
    if not compare(hours, op, limit_hours):
        return ConstraintCheck(False, f"{param.label} ({hours:g}h) does not meet condition: {op} {limit_hours:g}h")
    return PASS


def check_monetary(
    lookup: RecordLookup,
    param: FixedParameter,
    year: int | None,
    defaults: ConstraintDefaults,
    *,
    require_value: bool = False,
) -> ConstraintCheck:
    limit = year_limit(param, year)
    if limit is None:
        return PASS
    amount = monetary_amount(lookup, param)
    if amount is None:
        if require_value:
            return ConstraintCheck(False, f"Missing monetary field: {param.lookup_name}")
        return PASS
    op = resolve_operator(param.conditional, default=defaults.comparison_operator)
    if not compare(amount, op, limit):
        return ConstraintCheck(
            False,
            f"{param.lookup_name} ({amount:g}) does not meet condition: {op} {limit:g} {norm(param.unit)}".rstrip(),
        )
    return PASS


def check_designation(lookup: RecordLookup, param: FixedParameter) -> ConstraintCheck:
    hit = _find(lookup, param)
    has_value = hit is not None and not is_blank(hit.value)
    condition = norm(param.condition).lower()
    if condition == "none" and has_value:
        return ConstraintCheck(False, f"{param.lookup_name} should not be present (condition: None)")
    if condition == "only" and not has_value:
        return ConstraintCheck(False, f"{param.lookup_name} must be present (condition: Only)")
    return PASS


def check_item(
    lookup: RecordLookup,
    param: FixedParameter,
    year: int | None,
    defaults: ConstraintDefaults,
    *,
    require_value: bool = False,
) -> ConstraintCheck:
    """Per-repair admissibility of one fixed parameter in one year (or base values when ``year`` is None)."""
    if not if_condition_holds(lookup, param.if_condition):
        return PASS
    if param.type == "geographical":
        return check_geographical(lookup, param, year, require_value=require_value)
    if param.type == "temporal":
        return check_temporal(lookup, param, year, defaults, require_value=require_value)
    if param.type == "monetary":
        return check_monetary(lookup, param, year, defaults, require_value=require_value)
    if param.type == "designation":
        return check_designation(lookup, param)
    return PASS


def budget_total(param: FixedParameter, year: int, defaults: ConstraintDefaults) -> float | None:
    """Year's allotment in canonical units: hours for temporal, currency for monetary."""
    limit = year_limit(param, year)
    if limit is None:
        return None
    if param.type == "temporal":
        return to_hours(limit, _constraint_unit(param, defaults), default_unit=defaults.temporal_unit)
    return float(limit)


def cumulative_amount(
    lookups: Sequence[RecordLookup],
    param: FixedParameter,
    defaults: ConstraintDefaults,
) -> float:
    """Total consumption of a cumulative parameter across a trip's repairs (hours or currency)."""
    total = 0.0
    for lookup in lookups:
        if not if_condition_holds(lookup, param.if_condition):
            continue
        if param.type == "temporal":
            amount = temporal_hours(lookup, param, defaults)
        elif param.type == "monetary":
            amount = monetary_amount(lookup, param)
        else:
            amount = None
        if amount is not None:
            total += amount
    return total
