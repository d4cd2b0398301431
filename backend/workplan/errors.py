from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Soft failures carried on stage results.
SOFT_REASON_CODES: frozenset[str] = frozenset({"configuration_empty", "input_empty"})

# Raised as WorkplanDataError when collaborators or payloads are unusable.
DATA_REASON_CODES: frozenset[str] = frozenset(
    {
        "parameter_catalog_unavailable",
        "parameter_catalog_invalid",
        "workplan_input_invalid",
    }
)

FROZEN_REASON_CODES: frozenset[str] = SOFT_REASON_CODES | DATA_REASON_CODES


def normalize_reason_code(reason_code: str, *, default: str = "workplan_input_invalid") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default


@dataclass
class WorkplanDataError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        self.reason_code = normalize_reason_code(self.reason_code)

    def __str__(self) -> str:
        return self.message

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"reason_code": self.reason_code, "message": self.message}
        if self.details:
            detail["details"] = dict(self.details)
        return detail
