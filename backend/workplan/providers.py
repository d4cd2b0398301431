from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from .errors import WorkplanDataError
from .models import ParameterRow
from .settings import settings


class ParameterCatalogProvider(Protocol):
    def load_rows(self) -> list[ParameterRow]: ...


class StaticParameterCatalogProvider:
    def __init__(self, rows: list[ParameterRow]) -> None:
        self._rows = list(rows)

    def load_rows(self) -> list[ParameterRow]:
        return list(self._rows)


class FileParameterCatalogProvider:
    """Soft-parameter rows from a JSON list or a CSV export of the parameter sheet."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load_rows(self) -> list[ParameterRow]:
        if not self.path.is_file():
            raise WorkplanDataError(
                reason_code="parameter_catalog_unavailable",
                message=f"parameter catalog not found: {self.path}",
                details={"path": str(self.path)},
            )
        try:
            if self.path.suffix.lower() == ".csv":
                with self.path.open("r", encoding="utf-8-sig", newline="") as f:
                    raw_rows = list(csv.DictReader(f))
            else:
                payload = json.loads(self.path.read_text(encoding="utf-8"))
                raw_rows = payload.get("parameters", []) if isinstance(payload, dict) else payload
            if not isinstance(raw_rows, list):
                raise ValueError("parameter catalog must be a list of rows")
            return [ParameterRow.model_validate(row) for row in raw_rows]
        except (OSError, ValueError, ValidationError) as e:
            raise WorkplanDataError(
                reason_code="parameter_catalog_invalid",
                message=f"parameter catalog unreadable: {e}",
                details={"path": str(self.path)},
            ) from e


def default_provider() -> ParameterCatalogProvider | None:
    path = str(settings.parameter_catalog_path or "").strip()
    if not path:
        return None
    return FileParameterCatalogProvider(path)
