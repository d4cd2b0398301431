from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .constraints import check_item, parse_fixed_parameters
from .fields import RecordLookup, station_id_of, station_index
from .logging_utils import log_event
from .models import SUPPORTED_FIXED_TYPES, FilteredRepair, FilterResult, FixedParameter
from .units import ConstraintDefaults

FILTER_TYPES: frozenset[str] = SUPPORTED_FIXED_TYPES | {"designation"}


def filter_repairs(
    repairs: Sequence[Mapping[str, Any]],
    fixed_parameters: Iterable[FixedParameter | Mapping[str, Any]] | None,
    stations_by_id: Mapping[Any, Mapping[str, Any]] | None = None,
    *,
    defaults: ConstraintDefaults | None = None,
) -> FilterResult:
    """Split repairs into kept/filtered_out against the base (non-year) fixed-parameter values.

    Unlike year assignment, a repair missing a constrained field is filtered out.
    """
    if not repairs:
        return FilterResult(
            success=False,
            message="No repairs provided for filtering",
            total_repairs=0,
            reason_code="input_empty",
        )

    params, _ = parse_fixed_parameters(fixed_parameters, supported=FILTER_TYPES)
    if not params:
        return FilterResult(success=True, kept=[dict(r) for r in repairs], total_repairs=len(repairs))

    defaults = defaults or ConstraintDefaults.from_settings()
    stations = station_index(stations_by_id)

    kept: list[dict[str, Any]] = []
    filtered_out: list[FilteredRepair] = []
    for raw in repairs:
        repair = dict(raw)
        station_id = station_id_of(repair)
        lookup = RecordLookup(repair, stations.get(station_id))
        reason = ""
        for param in params:
            check = check_item(lookup, param, None, defaults, require_value=True)
            if not check.passes:
                reason = check.reason
                break
        if reason:
            filtered_out.append(FilteredRepair(repair=repair, filter_reason=reason))
        else:
            kept.append(repair)

    log_event(
        "repairs_filtered",
        repair_count=len(repairs),
        kept_count=len(kept),
        filtered_count=len(filtered_out),
    )
    return FilterResult(success=True, kept=kept, filtered_out=filtered_out, total_repairs=len(repairs))
