from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from functools import cmp_to_key
from typing import Any

from pydantic import ValidationError

from .fields import (
    ACCESS_TYPE_FIELDS,
    CITY_OF_TRAVEL_FIELDS,
    COST_FIELDS,
    DAYS_FIELDS,
    SITE_NAME_FIELDS,
    TIME_TO_SITE_FIELDS,
    TRIP_LOCATION_FIELDS,
    RecordLookup,
    norm,
    repair_name_of,
    station_id_of,
    station_index,
    try_float,
)
from .funding import add_split_costs, resolve_split_map, split_amounts
from .logging_utils import log_event
from .models import (
    GroupResult,
    PriorityMetrics,
    ScoredRepair,
    StationAggregate,
    Trip,
    TripContext,
)
from .settings import PRIORITY_MODES, settings


def repair_key(item: ScoredRepair) -> str:
    """Stable identity for a pipeline item: row index when known, else station|name."""
    if item.row_index is not None:
        return f"row:{item.row_index}"
    return f"{item.station_id}|{item.repair_name}"


def _coerce_item(raw: ScoredRepair | Mapping[str, Any]) -> ScoredRepair:
    if isinstance(raw, ScoredRepair):
        return raw
    data = dict(raw or {})
    if isinstance(data.get("original_repair"), Mapping):
        try:
            return ScoredRepair.model_validate(data)
        except ValidationError:
            # Out-of-range or malformed score fields: fall back to the raw repair.
            data = dict(data["original_repair"])
    return _wrap_raw(data)


def _wrap_raw(repair: dict[str, Any]) -> ScoredRepair:
    own = RecordLookup(repair, None)
    cost = try_float(own.value(COST_FIELDS)) or 0.0
    return ScoredRepair(
        row_index=None,
        station_id=station_id_of(repair),
        repair_name=repair_name_of(repair),
        cost=cost,
        score=0.0,
        original_repair=repair,
    )


def median(values: Sequence[float]) -> float:
    ordered = sorted(float(v) for v in values)
    if not ordered:
        return 0.0
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2.0


def priority_metrics(scores: Sequence[float]) -> PriorityMetrics:
    if not scores:
        return PriorityMetrics()
    return PriorityMetrics(
        mean=sum(scores) / len(scores),
        max=max(scores),
        median=median(scores),
    )


def _resolve_mode(priority_mode: str | None) -> str:
    mode = str(priority_mode or settings.default_priority_mode).strip().lower()
    return mode if mode in PRIORITY_MODES else "tripmean"


def _compare_trips(a: Trip, b: Trip) -> int:
    if not math.isclose(a.priority_score, b.priority_score):
        return -1 if a.priority_score > b.priority_score else 1
    if not math.isclose(a.priority_metrics.max, b.priority_metrics.max):
        return -1 if a.priority_metrics.max > b.priority_metrics.max else 1
    a_scores = sorted((r.score for r in a.repairs), reverse=True)
    b_scores = sorted((r.score for r in b.repairs), reverse=True)
    for sa, sb in zip(a_scores, b_scores):
        if sa != sb:
            return -1 if sa > sb else 1
    if a.total_days != b.total_days:
        return -1 if a.total_days > b.total_days else 1
    return 0


def group_into_trips(
    items: Sequence[ScoredRepair | Mapping[str, Any]],
    stations_by_id: Mapping[Any, Mapping[str, Any]] | None,
    priority_mode: str | None = None,
) -> GroupResult:
    """Cluster repairs into trips keyed by (trip location, access type) and rank the trips."""
    if not items:
        return GroupResult(
            success=False,
            trips=[],
            total_trips=0,
            message="No repairs provided for trip grouping",
            reason_code="input_empty",
        )

    mode = _resolve_mode(priority_mode)
    unknown = settings.unknown_label
    stations = station_index(stations_by_id)

    trips: dict[tuple[str, str], Trip] = {}
    station_slots: dict[tuple[str, str], dict[str, StationAggregate]] = {}
    trip_context: dict[str, TripContext] = {}

    for raw in items:
        item = _coerce_item(raw)
        repair = item.original_repair
        station_id = item.station_id or station_id_of(repair)
        station_record = stations.get(station_id)
        lookup = RecordLookup(repair, station_record)
        location = norm(lookup.value(TRIP_LOCATION_FIELDS, "")) or unknown
        access = norm(lookup.value(ACCESS_TYPE_FIELDS, "")) or unknown
        slots_key = (location, access)

        trip = trips.get(slots_key)
        if trip is None:
            trip = Trip(trip_location=location, access_type=access, priority_mode=mode)
            trips[slots_key] = trip
            station_slots[slots_key] = {}

        split_map = resolve_split_map(lookup)
        if not item.split_amounts and split_map:
            item = item.model_copy(update={"split_amounts": split_amounts(item.cost, split_map)})
        days = try_float(lookup.value(DAYS_FIELDS, source="repair")) or 0.0

        slots = station_slots[slots_key]
        aggregate = slots.get(station_id)
        if aggregate is None:
            base = dict(station_record or {})
            base_lookup = RecordLookup(base, None)
            aggregate = StationAggregate(
                station_id=station_id,
                site_name=norm(base_lookup.value(SITE_NAME_FIELDS, "")) or item.site_name,
                city_of_travel=norm(base_lookup.value(CITY_OF_TRAVEL_FIELDS, "")),
                time_to_site=norm(base_lookup.value(TIME_TO_SITE_FIELDS, "")),
                fields=base,
            )
            slots[station_id] = aggregate
            trip.stations.append(aggregate)

        aggregate.repairs.append(repair)
        aggregate.total_days += days
        aggregate.total_cost += item.cost
        aggregate.repair_count += 1

        trip.repairs.append(item)
        trip.total_days += days
        trip.total_cost += item.cost
        add_split_costs(trip.total_split_costs, item.cost, split_map)
        trip_context[repair_key(item)] = TripContext(trip_location=location, access_type=access)

    ordered = list(trips.values())
    for trip in ordered:
        metrics = priority_metrics([r.score for r in trip.repairs])
        trip.priority_metrics = metrics
        trip.priority_score = metrics.max if mode == "tripmax" else metrics.mean

    ordered.sort(key=cmp_to_key(_compare_trips))

    log_event(
        "trips_grouped",
        repair_count=len(items),
        trip_count=len(ordered),
        priority_mode=mode,
    )
    return GroupResult(
        success=True,
        trips=ordered,
        total_trips=len(ordered),
        trip_context=trip_context,
    )
