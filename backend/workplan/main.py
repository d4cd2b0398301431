from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .assignment import assign_to_years
from .errors import WorkplanDataError
from .filtering import filter_repairs
from .logging_utils import log_event
from .models import (
    AssignRequest,
    AssignResult,
    FilterRequest,
    FilterResult,
    GroupResult,
    ScoreRequest,
    ScoreResult,
    TripsRequest,
    WorkplanRequest,
    WorkplanResult,
)
from .pipeline import run_workplan
from .providers import ParameterCatalogProvider, default_provider
from .scoring import score_repairs
from .trips import group_into_trips
from .units import ConstraintDefaults

app = FastAPI(title="Repair Work-Plan Optimizer", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _provider_for(parameters: object) -> ParameterCatalogProvider | None:
    # Only fall back to the configured catalog file when the request carries no rows.
    if parameters is not None:
        return None
    return default_provider()


def _unavailable(e: WorkplanDataError, *, request_id: str) -> HTTPException:
    log_event(
        "provider_error",
        level=logging.WARNING,
        request_id=request_id,
        reason_code=e.reason_code,
        detail=e.message,
    )
    return HTTPException(status_code=503, detail=e.to_detail())


@app.get("/")
def root() -> dict[str, str]:
    return {"message": "Backend is running. Visit /docs for the API UI.", "docs": "/docs"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/score", response_model=ScoreResult)
def score(req: ScoreRequest) -> ScoreResult:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    try:
        result = score_repairs(
            req.repairs,
            req.station_data,
            req.param_overall,
            req.parameters,
            provider=_provider_for(req.parameters),
        )
    except WorkplanDataError as e:
        raise _unavailable(e, request_id=request_id) from e

    log_event(
        "score_request",
        request_id=request_id,
        repair_count=len(req.repairs),
        success=result.success,
        reason_code=result.reason_code,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return result


@app.post("/trips", response_model=GroupResult)
def trips(req: TripsRequest) -> GroupResult:
    t0 = time.perf_counter()
    result = group_into_trips(req.scored_repairs, req.station_data, req.priority_mode)
    log_event(
        "trips_request",
        item_count=len(req.scored_repairs),
        trip_count=result.total_trips,
        success=result.success,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return result


@app.post("/assign", response_model=AssignResult)
def assign(req: AssignRequest) -> AssignResult:
    t0 = time.perf_counter()
    result = assign_to_years(
        req.trips,
        req.fixed_parameters,
        req.top_percent,
        defaults=ConstraintDefaults.from_settings(),
    )
    log_event(
        "assign_request",
        trip_count=len(req.trips),
        year_count=len(result.years),
        overflow_year=result.overflow_year,
        warning_count=len(result.warnings),
        success=result.success,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return result


@app.post("/filter", response_model=FilterResult)
def filter_(req: FilterRequest) -> FilterResult:
    return filter_repairs(
        req.repairs,
        req.fixed_parameters,
        req.station_data,
        defaults=ConstraintDefaults.from_settings(),
    )


@app.post("/workplan", response_model=WorkplanResult)
def workplan(req: WorkplanRequest) -> WorkplanResult:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    try:
        result = run_workplan(req, provider=_provider_for(req.parameters))
    except WorkplanDataError as e:
        raise _unavailable(e, request_id=request_id) from e

    log_event(
        "workplan_request",
        request_id=request_id,
        repair_count=len(req.repairs),
        stage=result.stage,
        success=result.success,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return result
