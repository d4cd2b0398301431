from __future__ import annotations

from pathlib import Path

from .models import WorkplanResult


def _money(value: float) -> str:
    return f"{value:,.2f}"


def _splits(splits: dict[str, float]) -> str:
    if not splits:
        return "-"
    return ", ".join(f"{token.upper()}={_money(amount)}" for token, amount in sorted(splits.items()))


def report_lines(result: WorkplanResult, *, max_trips_per_year: int = 25) -> list[str]:
    lines: list[str] = ["Repair Work Plan Report", f"status: {result.stage}"]
    if not result.success:
        lines.append(f"message: {result.message or 'n/a'}")
        return lines

    scoring = result.scoring
    grouping = result.grouping
    assignment = result.assignment
    if scoring is None or grouping is None or assignment is None:
        return lines

    lines.extend(
        [
            f"scored_repairs: {scoring.optimized_count}",
            f"trips: {grouping.total_trips}",
            f"years: {', '.join(str(y) for y in assignment.years) or 'n/a'}",
            f"overflow_year: {assignment.overflow_year if assignment.overflow_year is not None else 'none'}",
            "",
        ]
    )

    for year in sorted(assignment.assignments):
        trips = assignment.assignments[year]
        summary = assignment.year_summaries.get(year)
        header = f"Year {year}"
        if year == assignment.overflow_year:
            header += " (overflow)"
        lines.append(header)
        if summary is not None:
            lines.append(
                f"  trips={summary.trip_count} repairs={summary.repair_count} "
                f"days={summary.total_days:g} cost={_money(summary.total_cost)} "
                f"splits={_splits(summary.split_totals)}"
            )
        budgets = assignment.budgets.get(year)
        if budgets is not None:
            for kind, table in (("monetary", budgets.monetary), ("temporal", budgets.temporal)):
                for key, state in table.items():
                    if state.cumulative:
                        lines.append(f"  {kind} budget {key}: used {state.used:g} of {state.total:g}")
        for idx, trip in enumerate(trips[:max_trips_per_year]):
            lines.append(
                f"  {idx + 1}. {trip.trip_location} ({trip.access_type}) | "
                f"priority={trip.priority_score:.2f} | stations={len(trip.stations)} | "
                f"repairs={len(trip.repairs)} | days={trip.total_days:g} | cost={_money(trip.total_cost)}"
            )
        if len(trips) > max_trips_per_year:
            lines.append(f"  ... ({len(trips) - max_trips_per_year} additional trips omitted)")
        lines.append("")

    lines.append("Top-priority repairs deferred past the first year")
    if not assignment.warnings:
        lines.append("  none")
    for warning in assignment.warnings:
        lines.append(
            f"  {warning.station_id} | {warning.repair_name} | score={warning.score:.2f} | "
            f"{warning.trip_location} ({warning.access_type})"
        )
    return lines


def write_report_text(result: WorkplanResult, path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text("\n".join(report_lines(result)) + "\n", encoding="utf-8")
    return out
