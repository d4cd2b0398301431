from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any

from .constraints import budget_total, check_item, cumulative_amount, parse_fixed_parameters
from .fields import RecordLookup
from .logging_utils import log_event
from .models import (
    SUPPORTED_FIXED_TYPES,
    AssignResult,
    BudgetState,
    CoverageWarning,
    FixedParameter,
    ScoredRepair,
    Trip,
    TripContext,
    YearBudgets,
    YearSummary,
)
from .settings import settings
from .trips import repair_key
from .units import ConstraintDefaults

_BUDGET_TOL = 1e-9


def collect_years(params: Iterable[FixedParameter]) -> list[int]:
    years: set[int] = set()
    for param in params:
        for key in param.years:
            try:
                years.add(int(str(key).strip()))
            except ValueError:
                continue
    return sorted(years)


def _budget_keys(params: Sequence[FixedParameter]) -> list[tuple[str, FixedParameter]]:
    """Unique tracking-table key per cumulative parameter (duplicate labels get a suffix)."""
    seen: dict[str, int] = {}
    out: list[tuple[str, FixedParameter]] = []
    for param in params:
        base = param.label
        seen[base] = seen.get(base, 0) + 1
        key = base if seen[base] == 1 else f"{base} #{seen[base]}"
        out.append((key, param))
    return out


class YearLedger:
    """Per-year monetary and temporal tracking tables; ``used`` only grows on commit."""

    def __init__(
        self,
        years: Sequence[int],
        params: Sequence[FixedParameter],
        defaults: ConstraintDefaults,
    ) -> None:
        self.budgets: dict[int, YearBudgets] = {}
        keyed = _budget_keys([p for p in params if p.type in ("monetary", "temporal")])
        self.cumulative: list[tuple[str, FixedParameter]] = [(k, p) for k, p in keyed if p.cumulative]
        for year in years:
            tables = YearBudgets()
            for key, param in keyed:
                total = budget_total(param, year, defaults)
                if total is None:
                    continue
                table = tables.monetary if param.type == "monetary" else tables.temporal
                table[key] = BudgetState(total=total, used=0.0, cumulative=param.cumulative)
            self.budgets[year] = tables

    def _state(self, year: int, key: str, param: FixedParameter) -> BudgetState | None:
        tables = self.budgets.get(year)
        if tables is None:
            return None
        table = tables.monetary if param.type == "monetary" else tables.temporal
        return table.get(key)

    def fits(self, year: int, amounts: Mapping[str, float]) -> bool:
        for key, param in self.cumulative:
            state = self._state(year, key, param)
            if state is None:
                continue
            if state.used + amounts.get(key, 0.0) > state.total + _BUDGET_TOL:
                return False
        return True

    def commit(self, year: int, amounts: Mapping[str, float]) -> None:
        for key, param in self.cumulative:
            state = self._state(year, key, param)
            if state is not None:
                state.used += max(0.0, amounts.get(key, 0.0))


def _station_lookup(trips: Sequence[Trip]) -> dict[str, dict[str, Any]]:
    out: dict[str, dict[str, Any]] = {}
    for trip in trips:
        for station in trip.stations:
            if station.station_id not in out:
                out[station.station_id] = station.fields
    return out


def top_priority_keys(trips: Sequence[Trip], top_percent: float) -> list[tuple[str, ScoredRepair]]:
    """The ceil(X%) highest-scoring repairs across all trips, stable on ties."""
    flat = [repair for trip in trips for repair in trip.repairs]
    flat.sort(key=lambda r: -r.score)
    count = math.ceil(len(flat) * max(0.0, min(100.0, top_percent)) / 100.0)
    return [(repair_key(r), r) for r in flat[:count]]


def summarise_year(trips: Sequence[Trip]) -> YearSummary:
    summary = YearSummary()
    for trip in trips:
        summary.trip_count += 1
        summary.repair_count += len(trip.repairs)
        summary.total_cost = round(summary.total_cost + trip.total_cost, 2)
        summary.total_days += trip.total_days
        for token, amount in trip.total_split_costs.items():
            summary.split_totals[token] = round(summary.split_totals.get(token, 0.0) + amount, 2)
    return summary


def _coverage_warnings(
    trips: Sequence[Trip],
    covered: set[str],
    top_percent: float,
) -> list[CoverageWarning]:
    context: dict[str, TripContext] = {}
    for trip in trips:
        for repair in trip.repairs:
            context.setdefault(
                repair_key(repair),
                TripContext(trip_location=trip.trip_location, access_type=trip.access_type),
            )

    warnings: list[CoverageWarning] = []
    for key, repair in top_priority_keys(trips, top_percent):
        if key in covered:
            continue
        ctx = context[key]
        warnings.append(
            CoverageWarning(
                station_id=repair.station_id,
                repair_name=repair.repair_name,
                score=repair.score,
                trip_location=ctx.trip_location,
                access_type=ctx.access_type,
            )
        )
    return warnings


def assign_to_years(
    trips: Sequence[Trip | Mapping[str, Any]],
    fixed_parameters: Iterable[FixedParameter | Mapping[str, Any]] | None,
    top_percent: float | None = None,
    *,
    defaults: ConstraintDefaults | None = None,
) -> AssignResult:
    """Greedy, order-preserving placement of trips into the earliest admissible year."""
    if not trips:
        return AssignResult(
            success=False,
            message="No trips provided for year assignment",
            reason_code="input_empty",
        )

    ordered = [t if isinstance(t, Trip) else Trip.model_validate(dict(t)) for t in trips]
    defaults = defaults or ConstraintDefaults.from_settings()
    pct = settings.default_top_percent if top_percent is None else float(top_percent)

    params, ignored = parse_fixed_parameters(fixed_parameters, supported=SUPPORTED_FIXED_TYPES)
    if ignored:
        log_event("fixed_parameters_ignored", ignored_count=ignored)

    years = collect_years(params)
    if not years:
        year = datetime.now().year
        assignments = {year: list(ordered)}
        covered = {repair_key(r) for t in ordered for r in t.repairs}
        log_event("years_assigned", trip_count=len(ordered), year_count=1, overflow_count=0, constrained=False)
        return AssignResult(
            success=True,
            assignments=assignments,
            year_summaries={year: summarise_year(ordered)},
            warnings=_coverage_warnings(ordered, covered, pct),
            budgets={},
            years=[year],
        )

    stations = _station_lookup(ordered)
    ledger = YearLedger(years, params, defaults)
    item_params = [p for p in params if not p.cumulative]

    assignments: dict[int, list[Trip]] = {year: [] for year in years}
    covered: set[str] = set()
    unplaced: list[Trip] = []

    for trip in ordered:
        lookups = [RecordLookup(r.original_repair, stations.get(r.station_id)) for r in trip.repairs]
        placed = False
        for year in years:
            admissible = all(
                check_item(lookup, param, year, defaults).passes
                for param in item_params
                for lookup in lookups
            )
            if not admissible:
                continue
            amounts = {key: cumulative_amount(lookups, param, defaults) for key, param in ledger.cumulative}
            if not ledger.fits(year, amounts):
                continue
            ledger.commit(year, amounts)
            assignments[year].append(trip)
            if year == years[0]:
                covered.update(repair_key(r) for r in trip.repairs)
            placed = True
            break
        if not placed:
            unplaced.append(trip)

    overflow_year: int | None = None
    if unplaced:
        overflow_year = years[-1] + 1
        assignments[overflow_year] = unplaced

    log_event(
        "years_assigned",
        trip_count=len(ordered),
        year_count=len(years),
        overflow_count=len(unplaced),
        constrained=True,
    )
    return AssignResult(
        success=True,
        assignments=assignments,
        year_summaries={year: summarise_year(bucket) for year, bucket in assignments.items()},
        warnings=_coverage_warnings(ordered, covered, pct),
        budgets=ledger.budgets,
        years=years,
        overflow_year=overflow_year,
    )
