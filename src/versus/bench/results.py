"""Benchmark result data structures and serialization.

Hierarchy::

    BenchMeta (top level: one run of one scenario)
      → scenario: Scenario
      → config: BenchConfig options
      → state: RunState

    CombinationResult (per environment × context × task)
      → samples: SampleSet | None
      → failure: ProcessFailure | None
      → summary: Summary (computed from measured samples)

Files produced::

    run_meta.json   BenchMeta
    results.jsonl   one CombinationResult per line, appended as
                    combinations complete
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from versus.bench.errors import AggregationError
from versus.bench.iteration import SampleSet
from versus.bench.scenario import Combination, Scenario
from versus.bench.stats import Summary, detect_outliers, summarize
from versus.bench.timing import ProcessFailure

log = logging.getLogger("versus")


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------


class CombinationState(enum.Enum):
    """Lifecycle of one combination."""

    PENDING = "pending"
    WARMING = "warming"
    MEASURING = "measuring"
    MEASURED = "measured"
    FAILED = "failed"


class RunState(enum.Enum):
    """Lifecycle of a complete run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    CANCELLED = "cancelled"

    @property
    def exit_code(self) -> int:
        """Process exit status for a run that ended in this state."""
        if self is RunState.COMPLETED:
            return 0
        if self is RunState.CANCELLED:
            return 130
        return 1


# ---------------------------------------------------------------------------
# Combination-level result
# ---------------------------------------------------------------------------


@dataclass
class CombinationResult:
    """Outcome of one (environment, context, task) combination."""

    task: str
    environment: str
    context_index: int
    state: CombinationState = CombinationState.PENDING
    samples: SampleSet | None = None
    failure: ProcessFailure | None = None
    attempts: int = 0
    duration_s: float = 0.0  # Wall time spent on the combination, warmup included
    # Computed from measured samples:
    summary: Summary | None = None
    outliers: list[bool] = field(default_factory=list)

    @classmethod
    def for_combination(cls, combination: Combination) -> CombinationResult:
        """Create a pending result for *combination*."""
        return cls(
            task=combination.task.name,
            environment=combination.environment.name,
            context_index=combination.context.index,
        )

    @property
    def label(self) -> str:
        """Same label as :attr:`Combination.label`."""
        return f"{self.task} / {self.environment} / context {self.context_index}"

    @property
    def measured(self) -> bool:
        """True if the combination produced samples."""
        return self.state is CombinationState.MEASURED

    @property
    def outcome(self) -> SampleSet | ProcessFailure:
        """What the iteration controller returned."""
        if self.failure is not None:
            return self.failure
        return self.samples if self.samples is not None else SampleSet()

    @property
    def n_outliers(self) -> int:
        """Number of measured samples flagged as outliers."""
        return sum(self.outliers)

    def compute_stats(self) -> None:
        """Compute summary statistics from the measured samples.

        Leaves ``summary`` as None when no samples survived.
        """
        if self.samples is None or self.failure is not None:
            return
        try:
            self.summary = summarize(self.samples)
        except AggregationError:
            self.summary = None
            return
        self.outliers = detect_outliers(self.samples.wall_times)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        d: dict[str, Any] = {
            "task": self.task,
            "environment": self.environment,
            "context_index": self.context_index,
            "state": self.state.value,
            "attempts": self.attempts,
            "duration_s": round(self.duration_s, 6),
        }
        if self.samples is not None:
            d["samples"] = self.samples.to_dict()
        if self.failure is not None:
            d["failure"] = self.failure.to_dict()
        if self.summary is not None:
            d["summary"] = self.summary.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CombinationResult:
        """Deserialize from a dict.  Recomputes stats for consistency."""
        result = cls(
            task=data["task"],
            environment=data["environment"],
            context_index=data.get("context_index", 0),
            state=CombinationState(data.get("state", "pending")),
            attempts=data.get("attempts", 0),
            duration_s=data.get("duration_s", 0.0),
        )
        if "samples" in data:
            result.samples = SampleSet.from_dict(data["samples"])
        if "failure" in data:
            result.failure = ProcessFailure.from_dict(data["failure"])
        result.compute_stats()
        return result

    def to_jsonl_line(self) -> str:
        """Serialize to a single JSONL line."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_jsonl_line(cls, line: str) -> CombinationResult:
        """Deserialize from a single JSONL line."""
        return cls.from_dict(json.loads(line))


# ---------------------------------------------------------------------------
# Run-level metadata
# ---------------------------------------------------------------------------


@dataclass
class BenchMeta:
    """Metadata for a complete benchmark run."""

    run_id: str
    scenario: Scenario = field(default_factory=Scenario)
    config: dict[str, Any] = field(default_factory=dict)
    cli_args: list[str] = field(default_factory=list)
    state: RunState = RunState.PENDING
    start_time: str = ""
    end_time: str = ""
    combinations_total: int = 0
    combinations_measured: int = 0
    combinations_failed: int = 0

    @property
    def name(self) -> str:
        """Display name: the scenario name, or the run id."""
        return self.scenario.name or self.run_id

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "run_id": self.run_id,
            "scenario": self.scenario.to_dict(),
            "config": self.config,
            "cli_args": self.cli_args,
            "state": self.state.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "combinations_total": self.combinations_total,
            "combinations_measured": self.combinations_measured,
            "combinations_failed": self.combinations_failed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BenchMeta:
        """Deserialize from a dict."""
        meta = cls(run_id=data["run_id"])
        meta.scenario = Scenario.from_dict(data.get("scenario", {}))
        meta.config = data.get("config", {})
        meta.cli_args = data.get("cli_args", [])
        meta.state = RunState(data.get("state", "pending"))
        meta.start_time = data.get("start_time", "")
        meta.end_time = data.get("end_time", "")
        meta.combinations_total = data.get("combinations_total", 0)
        meta.combinations_measured = data.get("combinations_measured", 0)
        meta.combinations_failed = data.get("combinations_failed", 0)
        return meta


# ---------------------------------------------------------------------------
# I/O functions
# ---------------------------------------------------------------------------


META_FILENAME = "run_meta.json"
RESULTS_FILENAME = "results.jsonl"


def save_meta(output_dir: Path, meta: BenchMeta) -> Path:
    """Write ``run_meta.json`` into *output_dir*."""
    output_dir.mkdir(parents=True, exist_ok=True)
    meta_path = output_dir / META_FILENAME
    meta_path.write_text(json.dumps(meta.to_dict(), indent=2) + "\n")
    return meta_path


def load_bench_run(run_dir: Path) -> tuple[BenchMeta, list[CombinationResult]]:
    """Load a benchmark run from disk.

    Raises:
        FileNotFoundError: If ``run_meta.json`` is missing.
    """
    meta_path = run_dir / META_FILENAME
    if not meta_path.exists():
        raise FileNotFoundError(f"No {META_FILENAME} in {run_dir}")

    meta = BenchMeta.from_dict(json.loads(meta_path.read_text()))

    results: list[CombinationResult] = []
    results_path = run_dir / RESULTS_FILENAME
    if results_path.exists():
        for line in results_path.read_text().splitlines():
            line = line.strip()
            if line:
                results.append(CombinationResult.from_jsonl_line(line))

    log.debug("Loaded %d combination results from %s", len(results), run_dir)
    return meta, results


def append_result(results_path: Path, result: CombinationResult) -> None:
    """Append a single combination result to the JSONL file.

    Used for incremental writing so that results survive an
    interrupted run.
    """
    with open(results_path, "a") as f:
        f.write(result.to_jsonl_line() + "\n")
