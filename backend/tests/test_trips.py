from __future__ import annotations

import copy

from workplan.models import ScoredRepair
from workplan.settings import settings
from workplan.trips import group_into_trips, median, priority_metrics, repair_key


def _scored(
    idx: int,
    score: float,
    *,
    station_id: str = "S1",
    location: str | None = "Site A",
    access: str | None = "Boat",
    days: float = 1.0,
    cost: float = 100.0,
    **extra: object,
) -> dict[str, object]:
    repair: dict[str, object] = {
        "station_id": station_id,
        "repair_name": f"r{idx}",
        "days": days,
        "cost": cost,
        **extra,
    }
    if location is not None:
        repair["Trip Location"] = location
    if access is not None:
        repair["Access Type"] = access
    return ScoredRepair(
        row_index=idx,
        station_id=station_id,
        repair_name=f"r{idx}",
        cost=cost,
        score=score,
        original_repair=repair,
    ).model_dump()


def test_two_repairs_same_location_and_access_form_one_trip() -> None:
    items = [_scored(0, 80), _scored(1, 60)]
    result = group_into_trips(items, {}, "tripmean")

    assert result.success is True
    assert result.total_trips == 1
    trip = result.trips[0]
    assert trip.trip_location == "Site A"
    assert trip.access_type == "Boat"
    assert trip.priority_metrics.mean == 70.0
    assert trip.priority_metrics.max == 80.0
    assert trip.priority_metrics.median == 70.0
    assert trip.priority_score == 70.0
    assert trip.total_days == 2.0
    assert trip.total_cost == 200.0


def test_tripmax_uses_highest_score() -> None:
    items = [_scored(0, 80), _scored(1, 60)]
    result = group_into_trips(items, {}, "tripmax")
    assert result.trips[0].priority_score == 80.0
    assert result.trips[0].priority_mode == "tripmax"


def test_unknown_mode_falls_back_to_mean() -> None:
    result = group_into_trips([_scored(0, 80), _scored(1, 60)], {}, "weird")
    assert result.trips[0].priority_mode == "tripmean"
    assert result.trips[0].priority_score == 70.0


def test_missing_location_and_access_default_to_unknown(monkeypatch) -> None:
    monkeypatch.setattr(settings, "unknown_label", "Unknown")
    result = group_into_trips([_scored(0, 50, location=None, access=None)], {}, None)
    assert result.trips[0].trip_location == "Unknown"
    assert result.trips[0].access_type == "Unknown"


def test_location_resolved_from_station_record() -> None:
    items = [_scored(0, 50, location=None, access=None, station_id="S7")]
    stations = {"S7": {"Trip Location": "Harbour", "Access Type": "Road", "City of Travel": "Port Town"}}
    result = group_into_trips(items, stations, None)
    trip = result.trips[0]
    assert (trip.trip_location, trip.access_type) == ("Harbour", "Road")
    assert trip.stations[0].city_of_travel == "Port Town"


def test_trips_sorted_by_priority_and_tie_breaks() -> None:
    items = [
        # A: mean 50, max 60
        _scored(0, 60, location="A"),
        _scored(1, 40, location="A"),
        # B: mean 50, max 70 -> beats A on max
        _scored(2, 70, location="B"),
        _scored(3, 30, location="B"),
        # C: mean 90
        _scored(4, 90, location="C"),
    ]
    result = group_into_trips(items, {}, "tripmean")
    assert [t.trip_location for t in result.trips] == ["C", "B", "A"]


def test_position_wise_scores_then_days_break_ties() -> None:
    items = [
        # X: scores [50, 50, 20], mean 40, max 50
        _scored(0, 50, location="X"),
        _scored(1, 50, location="X"),
        _scored(2, 20, location="X"),
        # Y: scores [50, 35, 35], mean 40, max 50 -> X wins at position 2
        _scored(3, 50, location="Y"),
        _scored(4, 35, location="Y"),
        _scored(5, 35, location="Y"),
        # Z and W identical scores; W has more days
        _scored(6, 10, location="Z", days=1),
        _scored(7, 10, location="W", days=5),
    ]
    result = group_into_trips(items, {}, "tripmean")
    assert [t.trip_location for t in result.trips] == ["X", "Y", "W", "Z"]


def test_stations_are_unique_per_trip_and_aggregate_totals() -> None:
    items = [
        _scored(0, 50, station_id="S1", days=2, cost=100),
        _scored(1, 40, station_id="S1", days=3, cost=50),
        _scored(2, 30, station_id="S2", days=1, cost=25),
    ]
    stations = {"S1": {"site_name": "Alpha"}, "S2": {"site_name": "Beta"}}
    trip = group_into_trips(items, stations, None).trips[0]
    assert [s.station_id for s in trip.stations] == ["S1", "S2"]
    first = trip.stations[0]
    assert first.site_name == "Alpha"
    assert first.repair_count == 2
    assert first.total_days == 5.0
    assert first.total_cost == 150.0
    assert len(first.repairs) == 2


def test_split_totals_accumulate_across_trip() -> None:
    items = [
        _scored(0, 50, cost=1000, **{"O&M": "50%F-50%P"}),
        _scored(1, 40, cost=200, **{"O&M": "100%F"}),
        _scored(2, 30, cost=999),
    ]
    trip = group_into_trips(items, {}, None).trips[0]
    assert trip.total_split_costs == {"f": 700.0, "p": 500.0}
    assert trip.repairs[0].split_amounts == {"f": 500.0, "p": 500.0}


def test_trip_context_side_table_and_no_caller_mutation() -> None:
    items = [_scored(0, 80), _scored(1, 60, location="B", access="Heli")]
    before = copy.deepcopy(items)
    result = group_into_trips(items, {}, None)
    assert items == before
    assert result.trip_context["row:0"].trip_location == "Site A"
    assert result.trip_context["row:1"].access_type == "Heli"
    assert "trip_location" not in items[0]
    assert "trip_location" not in items[0]["original_repair"]


def test_raw_repairs_are_wrapped_transparently() -> None:
    raw = [
        {"station_id": "S1", "repair_name": "Paint", "Trip Location": "Lake", "Access Type": "Boat", "days": 2},
        {"station_id": "S2", "repair_name": "Weld", "Trip Location": "Lake", "Access Type": "Boat", "cost": "300"},
    ]
    result = group_into_trips(raw, {}, None)
    assert result.success is True
    trip = result.trips[0]
    assert len(trip.repairs) == 2
    assert all(r.score == 0.0 for r in trip.repairs)
    assert trip.total_days == 2.0
    assert trip.total_cost == 300.0
    assert set(result.trip_context) == {"S1|Paint", "S2|Weld"}
    assert trip.repairs[0].original_repair == raw[0]


def test_empty_input_is_soft_failure() -> None:
    result = group_into_trips([], {}, None)
    assert result.success is False
    assert result.trips == []
    assert result.total_trips == 0
    assert result.reason_code == "input_empty"


def test_median_and_metrics_helpers() -> None:
    assert median([]) == 0.0
    assert median([3, 1, 2]) == 2.0
    assert median([4, 1, 3, 2]) == 2.5
    metrics = priority_metrics([10.0, 20.0, 60.0])
    assert metrics.mean == 30.0
    assert metrics.max == 60.0
    assert metrics.median == 20.0


def test_repair_key_prefers_row_index() -> None:
    assert repair_key(ScoredRepair(row_index=4, station_id="S1", repair_name="x")) == "row:4"
    assert repair_key(ScoredRepair(station_id="S1", repair_name="x")) == "S1|x"
