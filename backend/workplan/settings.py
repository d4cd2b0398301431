from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PRIORITY_MODES: frozenset[str] = frozenset({"tripmean", "tripmax"})
TEMPORAL_UNITS: frozenset[str] = frozenset({"hours", "days", "weeks", "months", "years"})
COMPARISON_OPERATORS: frozenset[str] = frozenset({"<", "<=", ">", ">=", "=", "==", "!="})


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping optimizer defaults out of code."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default="out", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_to_file: bool = Field(default=False, alias="LOG_TO_FILE")

    default_top_percent: float = Field(default=20.0, ge=0.0, le=100.0, alias="DEFAULT_TOP_PERCENT")
    default_priority_mode: str = Field(default="tripmean", alias="DEFAULT_PRIORITY_MODE")
    default_temporal_unit: str = Field(default="hours", alias="DEFAULT_TEMPORAL_UNIT")
    default_comparison_operator: str = Field(default="<=", alias="DEFAULT_COMPARISON_OPERATOR")
    unknown_label: str = Field(default="Unknown", alias="UNKNOWN_LABEL")

    # Optional soft-parameter catalog (JSON or CSV) used when a request omits parameters.
    parameter_catalog_path: str = Field(default="", alias="PARAMETER_CATALOG_PATH")

    @model_validator(mode="after")
    def _normalise_defaults(self) -> "Settings":
        mode = str(self.default_priority_mode or "").strip().lower()
        self.default_priority_mode = mode if mode in PRIORITY_MODES else "tripmean"
        unit = str(self.default_temporal_unit or "").strip().lower()
        self.default_temporal_unit = unit if unit in TEMPORAL_UNITS else "hours"
        op = str(self.default_comparison_operator or "").strip()
        self.default_comparison_operator = op if op in COMPARISON_OPERATORS else "<="
        self.unknown_label = str(self.unknown_label or "").strip() or "Unknown"
        return self


settings = Settings()
