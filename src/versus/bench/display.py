"""Terminal display formatting for benchmark results.

Produces one aligned table per (task, context) group plus a run
summary, a measurement quality section and a list of failures.
"""

from __future__ import annotations

import statistics as _stats

from versus.bench.compare import ComparisonResult, EnvironmentComparison
from versus.bench.results import BenchMeta, CombinationResult
from versus.formatting import (
    format_duration,
    format_rate,
    format_ratio,
    format_section_header,
    format_status_icon,
    format_table,
    format_time,
)

INSUFFICIENT = "insufficient data"

_HEADERS = ["Environment", "N", "Mean", "± Stddev", "Min", "Rate", "Ratio", "Sig."]
_ALIGN = ["l", "r", "r", "r", "r", "r", "r", "r"]


# ---------------------------------------------------------------------------
# Comparison tables
# ---------------------------------------------------------------------------


def format_comparison(comparison: ComparisonResult) -> str:
    """Format one (task, context) comparison as a table.

    The baseline is marked with ``*``.  Failed environments show
    ``FAILED (<cause>)``; environments without usable samples show
    ``insufficient data``.
    """
    title = f"{comparison.task} (context {comparison.context_index})"
    rows = [_comparison_row(e, e.environment == comparison.baseline) for e in comparison.entries]
    lines = [
        format_section_header(title),
        format_table(_HEADERS, rows, alignments=_ALIGN, max_col_width={0: 30}),
    ]

    fastest = comparison.fastest
    if fastest is not None and len(comparison.entries) > 1:
        lines.append(f"  Fastest: {fastest.environment}")
    return "\n".join(lines)


def _comparison_row(entry: EnvironmentComparison, is_baseline: bool) -> list[str]:
    name = entry.environment + (" *" if is_baseline else "")

    if entry.failure is not None:
        return [name, "", f"FAILED ({entry.failure.cause})", "", "", "", "-", ""]
    if entry.summary is None:
        return [name, "", INSUFFICIENT, "", "", "", "-", ""]

    s = entry.summary
    sig = ""
    if entry.ttest is not None:
        sig = entry.ttest.significance_stars
    return [
        name,
        str(s.n),
        format_time(s.mean),
        format_time(s.stddev),
        format_time(s.min),
        format_rate(s.ips),
        format_ratio(entry.ratio),
        sig,
    ]


# ---------------------------------------------------------------------------
# Full run
# ---------------------------------------------------------------------------


def format_run(
    meta: BenchMeta,
    results: list[CombinationResult],
    comparisons: list[ComparisonResult],
) -> str:
    """Format a complete run for terminal output.

    Args:
        meta: Run metadata.
        results: Per-combination results, in execution order.
        comparisons: Per-group comparisons (see
            :func:`versus.bench.compare.compare_results`).

    Returns:
        The report as a single string.
    """
    lines: list[str] = []

    title = meta.name
    lines.append(title)
    lines.append("─" * len(title))
    lines.append(f"Run:     {meta.run_id}  {format_status_icon(meta.state.value)}")
    cfg = meta.config
    lines.append(
        f"Samples: at least {cfg.get('min_iterations', '?')} measured"
        f" + {meta.scenario.warmup} warmup per combination"
    )
    if cfg.get("min_duration"):
        lines.append(f"         at least {cfg['min_duration']}s of measured time")
    if cfg.get("max_iterations"):
        lines.append(f"         at most {cfg['max_iterations']} iterations")
    lines.append(
        f"Combinations: {meta.combinations_measured} measured, "
        f"{meta.combinations_failed} failed, {meta.combinations_total} total"
    )
    if meta.start_time and meta.end_time:
        lines.append(f"Time:    {meta.start_time} → {meta.end_time}")
    elapsed = sum(r.duration_s for r in results)
    if elapsed:
        lines.append(f"Elapsed: {format_duration(elapsed)}")
    lines.append("")

    if comparisons:
        lines.append("Ratio = baseline mean / environment mean (higher is faster); * = baseline")
        lines.append("")
        for comparison in comparisons:
            lines.append(format_comparison(comparison))
            lines.append("")
    else:
        lines.append("No combinations finished.")
        lines.append("")

    quality = format_quality_summary(results)
    if quality:
        lines.append(quality)
        lines.append("")

    failures = format_failures(results)
    if failures:
        lines.append(failures)

    return "\n".join(lines).rstrip() + "\n"


# ---------------------------------------------------------------------------
# Quality and failures
# ---------------------------------------------------------------------------


def format_quality_summary(results: list[CombinationResult]) -> str:
    """Summarize measurement noise per environment.

    Returns an empty string if nothing was measured.
    """
    by_env: dict[str, list[CombinationResult]] = {}
    for r in results:
        if r.summary is not None:
            by_env.setdefault(r.environment, []).append(r)
    if not by_env:
        return ""

    lines = [format_section_header("Measurement quality")]
    all_cvs: list[float] = []
    for env, members in by_env.items():
        cvs = [m.summary.cv for m in members if m.summary is not None]
        all_cvs.extend(cvs)
        outliers = sum(m.n_outliers for m in members)
        samples = sum(m.summary.n for m in members if m.summary is not None)
        lines.append(
            f"  {env}: median CV {_stats.median(cvs):.3f}, "
            f"{outliers} / {samples} samples flagged as outliers"
        )

    overall = _stats.median(all_cvs)
    if overall < 0.03:
        verdict = "Excellent (CV < 3%)"
    elif overall < 0.05:
        verdict = "Good (CV < 5%)"
    elif overall < 0.10:
        verdict = "Acceptable (CV < 10%)"
    else:
        verdict = "Poor (CV ≥ 10%), results may be unreliable"
    lines.append(f"  Overall: {verdict}")
    return "\n".join(lines)


def format_failures(results: list[CombinationResult], stderr_lines: int = 5) -> str:
    """List failed combinations with the tail of their stderr.

    Returns an empty string if nothing failed.
    """
    failed = [r for r in results if r.failure is not None]
    if not failed:
        return ""

    lines = [format_section_header(f"Failures ({len(failed)})")]
    for r in failed:
        assert r.failure is not None
        attempts = f" after {r.attempts} attempts" if r.attempts > 1 else ""
        lines.append(f"  {format_status_icon(r.failure.cause)}  {r.label}{attempts}")
        lines.append(f"    {r.failure.message}")
        tail = r.failure.stderr.strip().splitlines()[-stderr_lines:]
        for line in tail:
            lines.append(f"    | {line}")
    return "\n".join(lines)
