from __future__ import annotations

import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PriorityMode = Literal["tripmean", "tripmax"]
SUPPORTED_FIXED_TYPES: frozenset[str] = frozenset({"geographical", "temporal", "monetary"})

Repair = dict[str, Any]
Station = dict[str, Any]


def _lenient_float(v: object) -> object:
    # Spreadsheet cells arrive as "", "n/a", "1,000", "NaN": unparseable or non-finite means absent.
    if v is None or isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        out = float(v)
    else:
        try:
            out = float(str(v).replace(",", "").strip())
        except ValueError:
            return None
    return out if math.isfinite(out) else None


def _legacy_request_aliases(value: object) -> object:
    if not isinstance(value, dict):
        return value
    data = dict(value)
    if "repairs" not in data and "workplan_rows" in data:
        data["repairs"] = data["workplan_rows"]
    if "param_overall" not in data and "overall_weights" in data:
        data["param_overall"] = data["overall_weights"]
    return data


class ParameterRow(BaseModel):
    """One raw row of the soft-parameter catalog."""

    model_config = ConfigDict(extra="ignore")

    parameter: str = ""
    condition: str | None = None
    max_weight: float | None = None
    option: str | None = None
    weight: float | None = None

    @field_validator("max_weight", "weight", mode="before")
    @classmethod
    def lenient_number(cls, v: object) -> object:
        return _lenient_float(v)

    @field_validator("parameter", mode="before")
    @classmethod
    def text(cls, v: object) -> object:
        return "" if v is None else str(v).strip()

    @field_validator("option", "condition", mode="before")
    @classmethod
    def optional_text(cls, v: object) -> object:
        return None if v is None else str(v)


class SoftParameter(BaseModel):
    name: str
    condition: str | None = None
    max_weight: float = Field(..., gt=0)
    options: dict[str, float] = Field(default_factory=dict)


class ParameterDetail(BaseModel):
    row_value: Any = None
    option_weight: float = 0.0
    max_weight: float = 1.0
    overall_fraction: float = 0.0
    matched: bool = False
    effective_fraction: float = 0.0
    contribution: float = 0.0


class ScoredRepair(BaseModel):
    row_index: int | None = None
    station_id: str = ""
    repair_name: str = ""
    site_name: str = ""
    location: str = ""
    asset_type: str = ""
    cost: float = 0.0
    split_amounts: dict[str, float] = Field(default_factory=dict)
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    rank: int | None = None
    details: dict[str, ParameterDetail] = Field(default_factory=dict)
    original_repair: Repair = Field(default_factory=dict)


class ScoreResult(BaseModel):
    success: bool
    optimized_count: int = 0
    ranking: list[ScoredRepair] = Field(default_factory=list)
    notes: str = ""
    reason_code: str | None = None


class StationAggregate(BaseModel):
    station_id: str
    site_name: str = ""
    city_of_travel: str = ""
    time_to_site: str = ""
    fields: Station = Field(default_factory=dict)
    repairs: list[Repair] = Field(default_factory=list)
    total_days: float = 0.0
    total_cost: float = 0.0
    repair_count: int = 0


class PriorityMetrics(BaseModel):
    mean: float = 0.0
    max: float = 0.0
    median: float = 0.0


class Trip(BaseModel):
    trip_location: str
    access_type: str
    repairs: list[ScoredRepair] = Field(default_factory=list)
    stations: list[StationAggregate] = Field(default_factory=list)
    total_days: float = 0.0
    total_cost: float = 0.0
    total_split_costs: dict[str, float] = Field(default_factory=dict)
    priority_score: float = 0.0
    priority_mode: PriorityMode = "tripmean"
    priority_metrics: PriorityMetrics = Field(default_factory=PriorityMetrics)


class TripContext(BaseModel):
    trip_location: str
    access_type: str


class GroupResult(BaseModel):
    success: bool
    trips: list[Trip] = Field(default_factory=list)
    total_trips: int = 0
    trip_context: dict[str, TripContext] = Field(default_factory=dict)
    message: str | None = None
    reason_code: str | None = None


class IfCondition(BaseModel):
    field: str
    operator: str = "="
    value: Any = None


class YearSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    value: float | None = None
    values: list[str] | None = None

    @field_validator("value", mode="before")
    @classmethod
    def lenient_value(cls, v: object) -> object:
        return _lenient_float(v)

    @field_validator("values", mode="before")
    @classmethod
    def split_values(cls, v: object) -> object:
        if isinstance(v, str):
            return [part.strip() for part in v.replace("\n", ",").split(",") if part.strip()]
        return v


class FixedParameter(BaseModel):
    """Hard admissibility rule tied to specific years.

    ``type`` is kept as free text so unsupported (legacy) types can be filtered
    out instead of failing validation.
    """

    model_config = ConfigDict(extra="ignore")

    type: str
    name: str = ""
    field_name: str | None = None
    match_using: Literal["parameter_name", "field_name"] = "parameter_name"
    data_source: Literal["repair", "station"] | None = None
    if_condition: IfCondition | None = None
    values: list[str] = Field(default_factory=list)
    value: float | None = None
    conditional: str | None = None
    unit: str | None = None
    split_source: str | None = None
    scope: str | None = None
    condition: str | None = None
    years: dict[str, YearSpec] = Field(default_factory=dict)
    cumulative: bool = False

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_aliases(cls, value: object) -> object:
        if not isinstance(value, dict):
            return value
        data = dict(value)
        data["type"] = str(data.get("type") or "").strip().lower()
        if "split_source" not in data and "funding_source" in data:
            data["split_source"] = data["funding_source"]
        if "conditional" not in data and "operator" in data:
            data["conditional"] = data["operator"]
        if isinstance(data.get("values"), str):
            data["values"] = [v.strip() for v in data["values"].split(",") if v.strip()]
        years = data.get("years")
        if isinstance(years, dict):
            data["years"] = {
                str(k).strip(): (v if isinstance(v, dict) else {} if v is None else {"value": v})
                for k, v in years.items()
            }
        if data.get("match_using") not in ("parameter_name", "field_name"):
            data["match_using"] = "parameter_name"
        if data.get("data_source") not in ("repair", "station"):
            data["data_source"] = None
        return data

    @field_validator("value", mode="before")
    @classmethod
    def lenient_value(cls, v: object) -> object:
        return _lenient_float(v)

    @model_validator(mode="after")
    def _geographical_is_per_item(self) -> "FixedParameter":
        if self.type == "geographical":
            self.cumulative = False
        return self

    @property
    def lookup_name(self) -> str:
        if self.match_using == "field_name" and self.field_name:
            return self.field_name
        return self.name or self.field_name or ""

    @property
    def label(self) -> str:
        return self.name or self.field_name or self.type


class BudgetState(BaseModel):
    total: float
    used: float = 0.0
    cumulative: bool = False


class YearBudgets(BaseModel):
    monetary: dict[str, BudgetState] = Field(default_factory=dict)
    temporal: dict[str, BudgetState] = Field(default_factory=dict)


class YearSummary(BaseModel):
    trip_count: int = 0
    repair_count: int = 0
    total_cost: float = 0.0
    total_days: float = 0.0
    split_totals: dict[str, float] = Field(default_factory=dict)


class CoverageWarning(BaseModel):
    station_id: str
    repair_name: str
    score: float
    trip_location: str
    access_type: str


class AssignResult(BaseModel):
    success: bool
    assignments: dict[int, list[Trip]] = Field(default_factory=dict)
    year_summaries: dict[int, YearSummary] = Field(default_factory=dict)
    warnings: list[CoverageWarning] = Field(default_factory=list)
    budgets: dict[int, YearBudgets] = Field(default_factory=dict)
    years: list[int] = Field(default_factory=list)
    overflow_year: int | None = None
    message: str | None = None
    reason_code: str | None = None


class FilteredRepair(BaseModel):
    repair: Repair
    filter_reason: str


class FilterResult(BaseModel):
    success: bool
    kept: list[Repair] = Field(default_factory=list)
    filtered_out: list[FilteredRepair] = Field(default_factory=list)
    total_repairs: int = 0
    message: str | None = None
    reason_code: str | None = None


class ScoreRequest(BaseModel):
    repairs: list[Repair] = Field(default_factory=list)
    station_data: dict[str, Station] = Field(default_factory=dict)
    param_overall: dict[str, Any] = Field(default_factory=dict)
    parameters: list[ParameterRow] | None = None

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_aliases(cls, value: object) -> object:
        return _legacy_request_aliases(value)


class TripsRequest(BaseModel):
    scored_repairs: list[dict[str, Any]] = Field(default_factory=list)
    station_data: dict[str, Station] = Field(default_factory=dict)
    priority_mode: str | None = None


class AssignRequest(BaseModel):
    trips: list[Trip] = Field(default_factory=list)
    fixed_parameters: list[dict[str, Any]] = Field(default_factory=list)
    top_percent: float | None = Field(default=None, ge=0.0, le=100.0)


class FilterRequest(BaseModel):
    repairs: list[Repair] = Field(default_factory=list)
    fixed_parameters: list[dict[str, Any]] = Field(default_factory=list)
    station_data: dict[str, Station] = Field(default_factory=dict)


class WorkplanRequest(BaseModel):
    repairs: list[Repair] = Field(default_factory=list)
    station_data: dict[str, Station] = Field(default_factory=dict)
    param_overall: dict[str, Any] = Field(default_factory=dict)
    parameters: list[ParameterRow] | None = None
    fixed_parameters: list[dict[str, Any]] = Field(default_factory=list)
    priority_mode: str | None = None
    top_percent: float | None = Field(default=None, ge=0.0, le=100.0)

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_aliases(cls, value: object) -> object:
        return _legacy_request_aliases(value)


class WorkplanResult(BaseModel):
    success: bool
    stage: Literal["scoring", "grouping", "assignment", "complete"]
    scoring: ScoreResult | None = None
    grouping: GroupResult | None = None
    assignment: AssignResult | None = None
    message: str | None = None
