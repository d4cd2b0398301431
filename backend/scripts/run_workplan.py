from __future__ import annotations

import argparse
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from workplan.errors import WorkplanDataError
from workplan.models import WorkplanRequest, WorkplanResult
from workplan.pipeline import run_workplan
from workplan.providers import default_provider
from workplan.reporting import write_report_text


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Score, group and schedule repairs from a JSON input file."
    )
    parser.add_argument("--input-json", required=True)
    parser.add_argument(
        "--backend-url",
        default=None,
        help="POST to a running service instead of running the pipeline in-process.",
    )
    parser.add_argument("--output", default=None)
    parser.add_argument("--report", default=None)
    return parser


def load_payload_from_json(path: str) -> dict[str, Any]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise WorkplanDataError(
            reason_code="workplan_input_invalid",
            message="JSON payload must be an object",
            details={"path": path},
        )
    if "repairs" not in payload and "workplan_rows" not in payload:
        raise WorkplanDataError(
            reason_code="workplan_input_invalid",
            message="JSON payload must contain 'repairs'",
            details={"path": path},
        )
    return payload


def _request_from_payload(payload: dict[str, Any]) -> WorkplanRequest:
    try:
        return WorkplanRequest.model_validate(payload)
    except ValidationError as e:
        raise WorkplanDataError(
            reason_code="workplan_input_invalid",
            message=f"work-plan payload failed validation: {e.error_count()} error(s)",
            details={"errors": e.errors(include_url=False)},
        ) from e


def execute_remote(
    payload: dict[str, Any],
    *,
    backend_url: str,
    client: httpx.Client | None = None,
) -> WorkplanResult:
    base = backend_url.rstrip("/")
    own_client = client is None
    if client is None:
        client = httpx.Client(timeout=90.0)
    try:
        resp = client.post(f"{base}/workplan", json=payload)
        resp.raise_for_status()
        return WorkplanResult.model_validate(resp.json())
    finally:
        if own_client and client is not None:
            client.close()


def run_from_args(
    args: argparse.Namespace,
    *,
    client: httpx.Client | None = None,
) -> dict[str, Any]:
    payload = load_payload_from_json(args.input_json)
    if args.backend_url:
        result = execute_remote(payload, backend_url=args.backend_url, client=client)
    else:
        request = _request_from_payload(payload)
        provider = default_provider() if request.parameters is None else None
        result = run_workplan(request, provider=provider)

    summary: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "mode": "remote" if args.backend_url else "inprocess",
        "success": result.success,
        "stage": result.stage,
        "message": result.message,
        "scored_count": result.scoring.optimized_count if result.scoring else 0,
        "trip_count": result.grouping.total_trips if result.grouping else 0,
        "years": result.assignment.years if result.assignment else [],
        "overflow_year": result.assignment.overflow_year if result.assignment else None,
        "warning_count": len(result.assignment.warnings) if result.assignment else 0,
    }

    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        summary["output_file"] = str(out)
    if args.report:
        summary["report_file"] = str(write_report_text(result, args.report))
    return summary


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    summary = run_from_args(args)
    print(json.dumps(summary, indent=2))
    return 0 if summary["success"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
