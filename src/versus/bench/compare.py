"""Comparison of environments for a fixed (task, context) pair.

The ratio reported for each environment is ``baseline.mean /
environment.mean``: values above 1 mean the environment is faster
than the baseline.  The baseline's own ratio is exactly 1.0.

Failed environments stay in the comparison, marked and without a
ratio, so one bad interpreter never blanks the whole table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from versus.bench.errors import AggregationError, ConfigurationError
from versus.bench.iteration import SampleSet
from versus.bench.results import CombinationResult
from versus.bench.stats import Summary, TTestResult, detect_outliers, summarize, welch_ttest
from versus.bench.timing import ProcessFailure

log = logging.getLogger("versus")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class EnvironmentComparison:
    """One environment's line in a comparison."""

    environment: str
    summary: Summary | None = None
    failure: ProcessFailure | None = None
    ratio: float | None = None  # baseline.mean / mean; > 1 is faster
    ttest: TTestResult | None = None  # against the baseline
    outliers: int = 0
    insufficient_data: bool = False

    @property
    def failed(self) -> bool:
        """True if the combination failed to run."""
        return self.failure is not None

    @property
    def status(self) -> str:
        """``"measured"``, ``"failed"`` or ``"insufficient_data"``."""
        if self.failure is not None:
            return "failed"
        if self.insufficient_data or self.summary is None:
            return "insufficient_data"
        return "measured"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        d: dict[str, Any] = {
            "environment": self.environment,
            "status": self.status,
            "ratio": round(self.ratio, 6) if self.ratio is not None else None,
            "outliers": self.outliers,
        }
        if self.summary is not None:
            d["summary"] = self.summary.to_dict()
        if self.failure is not None:
            d["failure"] = self.failure.to_dict()
        if self.ttest is not None:
            d["ttest"] = self.ttest.to_dict()
        return d


@dataclass
class ComparisonResult:
    """All environments measured for one (task, context) pair."""

    task: str
    context_index: int
    baseline: str
    entries: list[EnvironmentComparison] = field(default_factory=list)

    @property
    def baseline_entry(self) -> EnvironmentComparison:
        """The entry of the baseline environment."""
        return self.entry(self.baseline)

    def entry(self, environment: str) -> EnvironmentComparison:
        """Look up an entry by environment name.

        Raises:
            KeyError: If the environment is not part of the comparison.
        """
        for e in self.entries:
            if e.environment == environment:
                return e
        raise KeyError(environment)

    @property
    def failed_environments(self) -> list[str]:
        """Names of environments whose combination failed."""
        return [e.environment for e in self.entries if e.failed]

    @property
    def fastest(self) -> EnvironmentComparison | None:
        """The measured environment with the lowest mean, if any."""
        measured = [e for e in self.entries if e.summary is not None]
        if not measured:
            return None
        return min(measured, key=lambda e: e.summary.mean)  # type: ignore[union-attr]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "task": self.task,
            "context_index": self.context_index,
            "baseline": self.baseline,
            "entries": [e.to_dict() for e in self.entries],
        }


# ---------------------------------------------------------------------------
# Comparison logic
# ---------------------------------------------------------------------------


def compare(
    entries: Sequence[tuple[str, SampleSet | ProcessFailure]],
    baseline: str | None = None,
    *,
    task: str = "",
    context_index: int = 0,
) -> ComparisonResult:
    """Compare environments measured for the same task and context.

    Args:
        entries: ``(environment name, SampleSet or ProcessFailure)``
            in declaration order.
        baseline: Baseline environment name (default: first entry).
        task: Task name, for labelling.
        context_index: Context index, for labelling.

    Returns:
        ComparisonResult with statistics for every environment that
        produced samples and ratios against the baseline where both
        sides have data.

    Raises:
        AggregationError: If *entries* is empty.
        ConfigurationError: If *baseline* names no entry.
    """
    if not entries:
        raise AggregationError("Nothing to compare: no environments given.")

    names = [name for name, _ in entries]
    baseline_name = baseline if baseline is not None else names[0]
    if baseline_name not in names:
        raise ConfigurationError(
            f"Baseline '{baseline_name}' is not among the compared environments: "
            f"{', '.join(names)}"
        )

    result = ComparisonResult(task=task, context_index=context_index, baseline=baseline_name)
    samples_by_name: dict[str, SampleSet] = {}

    for name, outcome in entries:
        entry = EnvironmentComparison(environment=name)
        if isinstance(outcome, ProcessFailure):
            entry.failure = outcome
        else:
            try:
                entry.summary = summarize(outcome)
            except AggregationError as exc:
                log.debug("%s / %s: %s", task, name, exc)
                entry.insufficient_data = True
            else:
                entry.outliers = sum(detect_outliers(outcome.wall_times))
                samples_by_name[name] = outcome
        result.entries.append(entry)

    base = result.baseline_entry
    if base.summary is None:
        # No reference point: report statistics without ratios.
        return result

    base_samples = samples_by_name[baseline_name]
    for entry in result.entries:
        if entry.summary is None:
            continue
        if entry.environment == baseline_name:
            entry.ratio = 1.0
            continue
        if entry.summary.mean > 0:
            entry.ratio = base.summary.mean / entry.summary.mean
        entry.ttest = welch_ttest(
            base_samples.wall_times,
            samples_by_name[entry.environment].wall_times,
        )

    return result


def compare_results(
    results: Sequence[CombinationResult],
    baseline: str | None = None,
) -> list[ComparisonResult]:
    """Compare stored combination results, one comparison per group.

    Groups are (task, context index) pairs in first-seen order;
    within a group environments keep their result order.
    """
    groups: dict[tuple[str, int], list[CombinationResult]] = {}
    for r in results:
        groups.setdefault((r.task, r.context_index), []).append(r)

    comparisons: list[ComparisonResult] = []
    for (task, context_index), members in groups.items():
        names = [m.environment for m in members]
        group_baseline = baseline if baseline in names else None
        if baseline is not None and group_baseline is None:
            log.warning(
                "Baseline '%s' missing from %s / context %d; using '%s'",
                baseline,
                task,
                context_index,
                names[0],
            )
        comparisons.append(
            compare(
                [(m.environment, m.outcome) for m in members],
                group_baseline,
                task=task,
                context_index=context_index,
            )
        )
    return comparisons
