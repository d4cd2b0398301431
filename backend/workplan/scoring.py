from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .catalog import build_parameter_catalog, match_option, normalise_overall_weights
from .fields import (
    ASSET_TYPE_FIELDS,
    COST_FIELDS,
    LOCATION_FIELDS,
    SITE_NAME_FIELDS,
    RecordLookup,
    norm,
    repair_name_of,
    station_id_of,
    station_index,
    try_float,
)
from .funding import resolve_split_map, split_amounts
from .logging_utils import log_event
from .models import ParameterDetail, ParameterRow, ScoredRepair, ScoreResult, SoftParameter
from .providers import ParameterCatalogProvider

SCORING_NOTES = (
    "Scores use per-row re-normalization over present parameters so blanks are neutral. "
    "Option weights are divided by each parameter max; overall weights are normalized to sum to 1."
)
EMPTY_CATALOG_NOTES = "No algorithm parameters loaded. Ensure Soft Parameters are saved and passed in."


def _score_one(
    lookup: RecordLookup,
    catalog: Mapping[str, SoftParameter],
    fractions: Mapping[str, float],
) -> tuple[float, dict[str, ParameterDetail]]:
    """Weighted 0..1 score for one repair, renormalised over its present parameters."""
    per_param: dict[str, ParameterDetail] = {}
    present_sum = 0.0
    for name, param in catalog.items():
        hit = lookup.find(name)
        row_value = hit.value if hit is not None else None
        match = match_option(param, row_value)
        frac = float(fractions.get(name, 0.0))
        per_param[name] = ParameterDetail(
            row_value=row_value,
            option_weight=match.weight,
            max_weight=param.max_weight,
            overall_fraction=frac,
            matched=match.matched,
        )
        if match.matched and param.max_weight > 0 and frac > 0:
            present_sum += frac

    score = 0.0
    for detail in per_param.values():
        present = detail.matched and detail.max_weight > 0 and detail.overall_fraction > 0
        if not present or present_sum <= 0:
            continue
        detail.effective_fraction = detail.overall_fraction / present_sum
        detail.contribution = (detail.option_weight / detail.max_weight) * detail.effective_fraction
        score += detail.contribution
    return score, per_param


def _as_percent(score: float) -> float:
    # Halves round up, not to even.
    return min(100.0, max(0.0, math.floor(score * 10000 + 0.5) / 100))


def score_repairs(
    repairs: Sequence[Mapping[str, Any]],
    stations_by_id: Mapping[Any, Mapping[str, Any]] | None,
    overall_weights: Mapping[str, Any] | None,
    parameters: Iterable[ParameterRow | Mapping[str, Any]] | None = None,
    *,
    provider: ParameterCatalogProvider | None = None,
) -> ScoreResult:
    """Score and rank repairs against the weighted soft-parameter catalog."""
    rows = parameters
    if rows is None and provider is not None:
        rows = provider.load_rows()
    catalog = build_parameter_catalog(rows)
    if not catalog:
        log_event("scoring_skipped", reason_code="configuration_empty", repair_count=len(repairs))
        return ScoreResult(
            success=False,
            optimized_count=0,
            ranking=[],
            notes=EMPTY_CATALOG_NOTES,
            reason_code="configuration_empty",
        )

    fractions = normalise_overall_weights(overall_weights, catalog.keys())
    stations = station_index(stations_by_id)

    results: list[ScoredRepair] = []
    for i, raw in enumerate(repairs):
        repair = dict(raw or {})
        own = RecordLookup(repair, None)
        station_id = station_id_of(repair)
        lookup = RecordLookup(repair, stations.get(station_id))

        score, details = _score_one(lookup, catalog, fractions)
        cost = try_float(own.value(COST_FIELDS)) or 0.0
        results.append(
            ScoredRepair(
                row_index=i,
                station_id=station_id,
                repair_name=repair_name_of(repair),
                site_name=norm(lookup.value(SITE_NAME_FIELDS, "")),
                location=norm(lookup.value(LOCATION_FIELDS, "")),
                asset_type=norm(lookup.value(ASSET_TYPE_FIELDS, "")),
                cost=cost,
                split_amounts=split_amounts(cost, resolve_split_map(lookup)),
                score=_as_percent(score),
                details=details,
                original_repair=repair,
            )
        )

    # Python's sort is stable, so equal keys keep input order.
    results.sort(key=lambda r: (-r.score, r.station_id, r.repair_name))
    for idx, item in enumerate(results):
        item.rank = idx + 1

    log_event(
        "scoring_complete",
        repair_count=len(results),
        parameter_count=len(catalog),
        top_score=results[0].score if results else None,
    )
    return ScoreResult(
        success=True,
        optimized_count=len(results),
        ranking=results,
        notes=SCORING_NOTES,
    )
