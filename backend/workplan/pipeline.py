from __future__ import annotations

from .assignment import assign_to_years
from .logging_utils import timed_stage
from .models import WorkplanRequest, WorkplanResult
from .providers import ParameterCatalogProvider
from .scoring import score_repairs
from .trips import group_into_trips
from .units import ConstraintDefaults


def run_workplan(
    request: WorkplanRequest,
    *,
    provider: ParameterCatalogProvider | None = None,
    defaults: ConstraintDefaults | None = None,
) -> WorkplanResult:
    """Score -> group -> assign, stopping at the first stage that soft-fails."""
    with timed_stage("scoring", repair_count=len(request.repairs)) as log:
        scoring = score_repairs(
            request.repairs,
            request.station_data,
            request.param_overall,
            request.parameters,
            provider=provider,
        )
        log["success"] = scoring.success
    if not scoring.success:
        return WorkplanResult(success=False, stage="scoring", scoring=scoring, message=scoring.notes)

    with timed_stage("grouping", item_count=len(scoring.ranking)) as log:
        grouping = group_into_trips(scoring.ranking, request.station_data, request.priority_mode)
        log["success"] = grouping.success
    if not grouping.success:
        return WorkplanResult(
            success=False,
            stage="grouping",
            scoring=scoring,
            grouping=grouping,
            message=grouping.message,
        )

    with timed_stage("assignment", trip_count=grouping.total_trips) as log:
        assignment = assign_to_years(
            grouping.trips,
            request.fixed_parameters,
            request.top_percent,
            defaults=defaults or ConstraintDefaults.from_settings(),
        )
        log["success"] = assignment.success
    if not assignment.success:
        return WorkplanResult(
            success=False,
            stage="assignment",
            scoring=scoring,
            grouping=grouping,
            assignment=assignment,
            message=assignment.message,
        )

    return WorkplanResult(
        success=True,
        stage="complete",
        scoring=scoring,
        grouping=grouping,
        assignment=assignment,
    )
