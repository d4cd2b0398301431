from __future__ import annotations

import itertools
import random
from datetime import datetime
from typing import Any

from workplan.assignment import YearLedger, assign_to_years, collect_years, summarise_year, top_priority_keys
from workplan.models import FixedParameter, ScoredRepair, StationAggregate, Trip
from workplan.trips import group_into_trips
from workplan.units import ConstraintDefaults

_ROW = itertools.count()


def _trip(
    location: str,
    repairs: list[dict[str, Any]],
    *,
    scores: list[float] | None = None,
    stations: dict[str, dict[str, Any]] | None = None,
) -> Trip:
    items = []
    for i, repair in enumerate(repairs):
        repair = {"station_id": "S1", "repair_name": f"{location}-{i}", **repair}
        items.append(
            ScoredRepair(
                row_index=next(_ROW),
                station_id=repair["station_id"],
                repair_name=repair["repair_name"],
                cost=float(repair.get("cost", 0) or 0),
                score=(scores or [50.0] * len(repairs))[i],
                original_repair=repair,
            )
        )
    station_rows = [
        StationAggregate(station_id=sid, fields=fields) for sid, fields in (stations or {}).items()
    ]
    return Trip(
        trip_location=location,
        access_type="Road",
        repairs=items,
        stations=station_rows,
        total_cost=sum(r.cost for r in items),
        total_days=sum(float(r.original_repair.get("days", 0) or 0) for r in items),
    )


def _locations(trips: list[Trip]) -> list[str]:
    return [t.trip_location for t in trips]


def test_per_item_budget_rejects_first_year() -> None:
    param = {
        "type": "monetary",
        "name": "Repair Cost",
        "conditional": "<=",
        "years": {"2025": {"value": 500}, "2026": {"value": 1000}},
    }
    trip = _trip("A", [{"Repair Cost": 600}])
    result = assign_to_years([trip], [param], 20)

    assert result.success is True
    assert result.years == [2025, 2026]
    assert _locations(result.assignments[2025]) == []
    assert _locations(result.assignments[2026]) == ["A"]
    assert result.overflow_year is None


def test_trip_failing_every_year_goes_to_overflow() -> None:
    param = {"type": "monetary", "name": "Repair Cost", "years": {"2025": {"value": 500}}}
    result = assign_to_years([_trip("A", [{"Repair Cost": 600}])], [param], 20)
    assert result.overflow_year == 2026
    assert _locations(result.assignments[2026]) == ["A"]
    assert result.year_summaries[2026].trip_count == 1


def test_cumulative_budget_pushes_second_trip_to_next_year() -> None:
    param = {
        "type": "monetary",
        "name": "cost",
        "cumulative": True,
        "years": {"2025": {"value": 1000}, "2026": {"value": 1000}},
    }
    trips = [_trip("A", [{"cost": 700}]), _trip("B", [{"cost": 400}])]
    result = assign_to_years(trips, [param], 20)

    assert _locations(result.assignments[2025]) == ["A"]
    assert _locations(result.assignments[2026]) == ["B"]
    assert result.budgets[2025].monetary["cost"].used == 700.0
    assert result.budgets[2025].monetary["cost"].total == 1000.0
    assert result.budgets[2026].monetary["cost"].used == 400.0


def test_cumulative_fill_allows_exact_total() -> None:
    param = {"type": "monetary", "name": "cost", "cumulative": True, "years": {"2025": {"value": 1000}}}
    trips = [_trip("A", [{"cost": 600}]), _trip("B", [{"cost": 400}])]
    result = assign_to_years(trips, [param], 20)
    assert _locations(result.assignments[2025]) == ["A", "B"]
    assert result.overflow_year is None


def test_temporal_days_compare_against_hours() -> None:
    trip = _trip("A", [{"Repair Days": 2}])

    tight = {"type": "temporal", "name": "Repair Days", "unit": "hours", "years": {"2025": {"value": 47}}}
    result = assign_to_years([trip], [tight], 20)
    assert result.overflow_year == 2026

    exact = {"type": "temporal", "name": "Repair Days", "unit": "hours", "years": {"2025": {"value": 48}}}
    result = assign_to_years([trip], [exact], 20)
    assert _locations(result.assignments[2025]) == ["A"]


def test_temporal_allotment_tracked_in_hours() -> None:
    param = {
        "type": "temporal",
        "name": "Repair Days",
        "unit": "weeks",
        "cumulative": True,
        "years": {"2025": {"value": 1}, "2026": {"value": 1}},
    }
    trips = [_trip("A", [{"Repair Days": 4}]), _trip("B", [{"Repair Days": 4}])]
    result = assign_to_years(trips, [param], 20)
    assert result.budgets[2025].temporal["Repair Days"].total == 168.0
    assert result.budgets[2025].temporal["Repair Days"].used == 96.0
    assert _locations(result.assignments[2026]) == ["B"]


def test_geographical_tokens_must_all_be_allowed() -> None:
    param = {
        "type": "geographical",
        "name": "Province",
        "cumulative": True,
        "years": {"2025": {"values": ["BC"]}, "2026": {"values": "BC, AB"}},
    }
    trips = [
        _trip("A", [{"Province": "bc"}]),
        _trip("B", [{"Province": "BC/AB"}]),
        _trip("C", [{"Province": "ON"}]),
    ]
    result = assign_to_years(trips, [param], 20)
    assert _locations(result.assignments[2025]) == ["A"]
    assert _locations(result.assignments[2026]) == ["B"]
    assert _locations(result.assignments[2027]) == ["C"]
    assert FixedParameter.model_validate(param).cumulative is False


def test_station_fields_are_consulted() -> None:
    param = {"type": "geographical", "name": "Province", "years": {"2025": {"values": ["AB"]}}}
    trip = _trip("A", [{"station_id": "S5"}], stations={"S5": {"Province": "AB"}})
    result = assign_to_years([trip], [param], 20)
    assert _locations(result.assignments[2025]) == ["A"]


def test_single_failing_repair_disqualifies_whole_trip() -> None:
    param = {"type": "monetary", "name": "cost", "years": {"2025": {"value": 500}, "2026": {"value": 5000}}}
    trip = _trip("A", [{"cost": 100}, {"cost": 900}, {"cost": 50}])
    result = assign_to_years([trip], [param], 20)
    assert _locations(result.assignments[2026]) == ["A"]


def test_if_condition_limits_which_repairs_are_checked() -> None:
    param = {
        "type": "monetary",
        "name": "cost",
        "if_condition": {"field": "Asset Type", "operator": "=", "value": "Bridge"},
        "years": {"2025": {"value": 100}},
    }
    trips = [_trip("Dam", [{"cost": 500, "Asset Type": "Dam"}]), _trip("Bridge", [{"cost": 500, "Asset Type": "bridge"}])]
    result = assign_to_years(trips, [param], 20)
    assert _locations(result.assignments[2025]) == ["Dam"]
    assert _locations(result.assignments[2026]) == ["Bridge"]


def test_split_source_applies_funding_fraction() -> None:
    param = {
        "type": "monetary",
        "name": "cost",
        "funding_source": "F",
        "cumulative": True,
        "years": {"2025": {"value": 500}},
    }
    trips = [
        _trip("A", [{"cost": 1000, "O&M": "50%F-50%P"}]),
        _trip("B", [{"cost": 800, "O&M": "100%P"}]),
        _trip("C", [{"cost": 10, "O&M": "100%F"}]),
    ]
    result = assign_to_years(trips, [param], 20)
    assert _locations(result.assignments[2025]) == ["A", "B"]
    assert result.budgets[2025].monetary["cost"].used == 500.0
    assert _locations(result.assignments[2026]) == ["C"]


def test_missing_field_does_not_block_placement() -> None:
    param = {"type": "monetary", "name": "Budget Line", "years": {"2025": {"value": 1}}}
    result = assign_to_years([_trip("A", [{"cost": 999}])], [param], 20)
    assert _locations(result.assignments[2025]) == ["A"]


def test_unknown_operator_imposes_no_restriction() -> None:
    param = {"type": "monetary", "name": "cost", "conditional": "~~", "years": {"2025": {"value": 1}}}
    result = assign_to_years([_trip("A", [{"cost": 999}])], [param], 20)
    assert _locations(result.assignments[2025]) == ["A"]


def test_greater_equal_operator() -> None:
    param = {"type": "temporal", "name": "days", "operator": ">=", "unit": "days", "years": {"2025": {"value": 3}}}
    trips = [_trip("Short", [{"days": 1}]), _trip("Long", [{"days": 5}])]
    result = assign_to_years(trips, [param], 20)
    assert _locations(result.assignments[2025]) == ["Long"]
    assert _locations(result.assignments[2026]) == ["Short"]


def test_no_years_places_everything_in_current_year() -> None:
    trips = [_trip("A", [{"cost": 1}]), _trip("B", [{"cost": 2}])]
    result = assign_to_years(trips, [], 20)
    year = datetime.now().year
    assert result.success is True
    assert list(result.assignments) == [year]
    assert _locations(result.assignments[year]) == ["A", "B"]
    assert result.warnings == []
    assert result.year_summaries[year].total_cost == 3.0


def test_unsupported_types_are_ignored() -> None:
    params = [
        {"type": "designation", "name": "Heritage", "condition": "None", "years": {"2030": {"value": 1}}},
        {"type": "legacy-thing", "years": {"2031": {"value": 1}}},
        "not a parameter",
    ]
    result = assign_to_years([_trip("A", [{"cost": 1}])], params, 20)
    assert list(result.assignments) == [datetime.now().year]


def test_empty_trips_is_soft_failure() -> None:
    result = assign_to_years([], [{"type": "monetary", "years": {"2025": {"value": 1}}}], 20)
    assert result.success is False
    assert result.assignments == {}
    assert result.reason_code == "input_empty"


def test_top_priority_repairs_deferred_past_first_year_are_reported() -> None:
    param = {"type": "monetary", "name": "cost", "years": {"2025": {"value": 500}, "2026": {"value": 5000}}}
    trips = [
        _trip("Cheap", [{"cost": 10}, {"cost": 20}], scores=[40.0, 30.0]),
        _trip("Pricey", [{"cost": 900, "repair_name": "big"}, {"cost": 10}], scores=[95.0, 10.0]),
    ]
    result = assign_to_years(trips, [param], 50)
    assert _locations(result.assignments[2026]) == ["Pricey"]
    # top 50% of 4 repairs = the two highest: 95 (deferred) and 40 (covered)
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert warning.repair_name == "big"
    assert warning.score == 95.0
    assert warning.trip_location == "Pricey"
    assert warning.access_type == "Road"


def test_top_percent_uses_ceiling() -> None:
    trip = _trip("A", [{}, {}, {}], scores=[10.0, 30.0, 20.0])
    keys = top_priority_keys([trip], 10)
    assert len(keys) == 1
    assert keys[0][1].score == 30.0
    assert top_priority_keys([trip], 0) == []


def test_year_summaries_include_split_totals() -> None:
    trips = group_into_trips(
        [
            {"station_id": "S1", "repair_name": "a", "Trip Location": "L", "cost": 100, "days": 2, "O&M": "50%F-50%P"},
            {"station_id": "S2", "repair_name": "b", "Trip Location": "L", "cost": 50, "days": 1, "O&M": "100%F"},
        ],
        {},
        None,
    ).trips
    summary = summarise_year(trips)
    assert summary.trip_count == 1
    assert summary.repair_count == 2
    assert summary.total_cost == 150.0
    assert summary.total_days == 3.0
    assert summary.split_totals == {"f": 100.0, "p": 50.0}


def test_year_specific_values_fall_back_to_base_value() -> None:
    param = {"type": "monetary", "name": "cost", "value": 100, "years": {"2025": {}, "2026": {"value": 1000}}}
    trips = [_trip("A", [{"cost": 50}]), _trip("B", [{"cost": 500}])]
    result = assign_to_years(trips, [param], 20)
    assert _locations(result.assignments[2025]) == ["A"]
    assert _locations(result.assignments[2026]) == ["B"]


def test_duplicate_labels_get_separate_budgets() -> None:
    params = [
        FixedParameter.model_validate({"type": "monetary", "name": "cost", "cumulative": True, "years": {"2025": {"value": 10}}}),
        FixedParameter.model_validate({"type": "monetary", "name": "cost", "cumulative": True, "years": {"2025": {"value": 20}}}),
    ]
    ledger = YearLedger([2025], params, ConstraintDefaults())
    assert set(ledger.budgets[2025].monetary) == {"cost", "cost #2"}
    assert ledger.fits(2025, {"cost": 10.0, "cost #2": 10.0}) is True
    assert ledger.fits(2025, {"cost": 11.0}) is False


def test_collect_years_sorted_and_ignores_junk_keys() -> None:
    params = [
        FixedParameter.model_validate({"type": "monetary", "years": {"2027": 5, "2025": 1}}),
        FixedParameter.model_validate({"type": "temporal", "years": {"later": 5, " 2026 ": 1}}),
    ]
    assert collect_years(params) == [2025, 2026, 2027]


def test_cumulative_never_exceeded_and_order_preserved_randomized() -> None:
    rng = random.Random(20260214)
    for _ in range(20):
        trips = [
            _trip(f"T{i}", [{"cost": rng.randint(1, 400), "days": rng.randint(1, 6)} for _ in range(rng.randint(1, 3))])
            for i in range(15)
        ]
        params = [
            {
                "type": "monetary",
                "name": "cost",
                "cumulative": True,
                "years": {str(y): {"value": rng.randint(300, 1500)} for y in (2025, 2026, 2027)},
            },
            {
                "type": "temporal",
                "name": "days",
                "unit": "days",
                "cumulative": True,
                "years": {str(y): {"value": rng.randint(5, 20)} for y in (2025, 2026, 2027)},
            },
        ]
        result = assign_to_years(trips, params, 20)

        for tables in result.budgets.values():
            for state in [*tables.monetary.values(), *tables.temporal.values()]:
                assert state.used <= state.total + 1e-9

        position = {t.trip_location: i for i, t in enumerate(trips)}
        placed = 0
        for bucket in result.assignments.values():
            indices = [position[t.trip_location] for t in bucket]
            assert indices == sorted(indices)
            placed += len(bucket)
        assert placed == len(trips)


def test_non_finite_cumulative_budget_is_treated_as_absent() -> None:
    param = {
        "type": "monetary",
        "name": "cost",
        "cumulative": True,
        "value": "inf",
        "years": {"2025": {"value": "nan"}, "2026": {"value": 1000}},
    }
    assert FixedParameter.model_validate(param).value is None
    trips = [_trip("A", [{"cost": 700}]), _trip("B", [{"cost": 700}])]
    result = assign_to_years(trips, [param], 20)

    assert "cost" not in result.budgets[2025].monetary
    assert _locations(result.assignments[2025]) == ["A", "B"]
    for tables in result.budgets.values():
        for state in tables.monetary.values():
            assert state.used <= state.total
