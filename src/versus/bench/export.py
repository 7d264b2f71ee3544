"""Export benchmark results to CSV and JSON.

CSV long format: one row per measured sample, ready for pandas or R.
Warmup runs are never recorded, so they never appear.

CSV summary format: one row per combination, failed ones included
with empty statistics.

JSON: the run metadata, every combination result and the
per-group comparisons in one document.
"""

from __future__ import annotations

import csv
import io
import json
import math

from versus.bench.compare import ComparisonResult, compare_results
from versus.bench.results import BenchMeta, CombinationResult

EXPORT_FORMATS = ("csv", "csv-summary", "json")


def _csv_float(value: float, digits: int = 6) -> str:
    """Fixed-point cell, empty for NaN or infinity."""
    return f"{value:.{digits}f}" if math.isfinite(value) else ""


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------


def export_csv(
    meta: BenchMeta,
    results: list[CombinationResult],
) -> str:
    """Export measured samples as CSV (long format).

    Columns:
        run_id, task, context, environment, iteration, wall_time_s,
        cpu_time_s, outlier
    """
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(
        [
            "run_id",
            "task",
            "context",
            "environment",
            "iteration",
            "wall_time_s",
            "cpu_time_s",
            "outlier",
        ]
    )

    for r in results:
        if r.samples is None or r.failure is not None:
            continue
        outliers = r.outliers or [False] * r.samples.n
        for i, wall in enumerate(r.samples.wall_times):
            cpu = r.samples.cpu_times[i] if i < len(r.samples.cpu_times) else float("nan")
            writer.writerow(
                [
                    meta.run_id,
                    r.task,
                    r.context_index,
                    r.environment,
                    i + 1,
                    f"{wall:.6f}",
                    f"{cpu:.6f}",
                    outliers[i],
                ]
            )

    return output.getvalue()


def export_csv_summary(
    meta: BenchMeta,
    results: list[CombinationResult],
    comparisons: list[ComparisonResult] | None = None,
) -> str:
    """Export one summary row per combination as CSV.

    Ratios come from *comparisons*; if omitted they are recomputed
    against the baseline recorded in the run's configuration.
    """
    if comparisons is None:
        comparisons = compare_results(results, meta.config.get("baseline"))
    ratios: dict[tuple[str, int, str], float | None] = {}
    for c in comparisons:
        for e in c.entries:
            ratios[(c.task, c.context_index, e.environment)] = e.ratio

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(
        [
            "task",
            "context",
            "environment",
            "status",
            "n",
            "mean_s",
            "median_s",
            "stddev_s",
            "min_s",
            "max_s",
            "cv",
            "ips",
            "ratio",
            "outliers",
            "failure_cause",
            "failure_message",
        ]
    )

    for r in results:
        row: list[object] = [r.task, r.context_index, r.environment, r.state.value]
        s = r.summary
        if s is not None:
            row += [
                s.n,
                _csv_float(s.mean),
                _csv_float(s.median),
                _csv_float(s.stddev),
                _csv_float(s.min),
                _csv_float(s.max),
                _csv_float(s.cv),
                _csv_float(s.ips, 3),
            ]
        else:
            row += [0, "", "", "", "", "", "", ""]
        ratio = ratios.get((r.task, r.context_index, r.environment))
        row.append(f"{ratio:.6f}" if ratio is not None else "")
        row.append(r.n_outliers)
        if r.failure is not None:
            row += [r.failure.cause, r.failure.message]
        else:
            row += ["", ""]
        writer.writerow(row)

    return output.getvalue()


# ---------------------------------------------------------------------------
# JSON export
# ---------------------------------------------------------------------------


def export_json(
    meta: BenchMeta,
    results: list[CombinationResult],
    comparisons: list[ComparisonResult] | None = None,
) -> str:
    """Export the whole run as a single JSON document."""
    if comparisons is None:
        comparisons = compare_results(results, meta.config.get("baseline"))
    document = {
        "meta": meta.to_dict(),
        "results": [r.to_dict() for r in results],
        "comparisons": [c.to_dict() for c in comparisons],
    }
    return json.dumps(document, indent=2) + "\n"


def export_run(
    fmt: str,
    meta: BenchMeta,
    results: list[CombinationResult],
    comparisons: list[ComparisonResult] | None = None,
) -> str:
    """Dispatch to the exporter named by *fmt* (see ``EXPORT_FORMATS``).

    Raises:
        ValueError: If *fmt* is not a known format.
    """
    if fmt == "csv":
        return export_csv(meta, results)
    if fmt == "csv-summary":
        return export_csv_summary(meta, results, comparisons)
    if fmt == "json":
        return export_json(meta, results, comparisons)
    raise ValueError(f"Unknown export format: {fmt!r}")
