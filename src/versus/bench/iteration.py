"""Warmup-then-measure protocol for a single combination.

Warmup runs prime OS caches and JITs; their timings are thrown away.
Measured runs continue until both sampling thresholds are met: at
least ``min_iterations`` samples *and* at least ``min_duration``
seconds of measured wall time, optionally capped by
``max_iterations``.  The first failed process ends the combination.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from versus.bench.config import BenchConfig
from versus.bench.errors import RunCancelled
from versus.bench.scenario import Combination
from versus.bench.timing import ProcessFailure, run_timed

log = logging.getLogger("versus")

PhaseCallback = Callable[[str], None]


# ---------------------------------------------------------------------------
# SampleSet
# ---------------------------------------------------------------------------


@dataclass
class SampleSet:
    """Measured durations for one combination.

    Only measured runs are stored; ``warmup_count`` records how many
    leading runs were executed and discarded.
    """

    wall_times: list[float] = field(default_factory=list)
    cpu_times: list[float] = field(default_factory=list)
    warmup_count: int = 0

    @property
    def n(self) -> int:
        """Number of measured samples."""
        return len(self.wall_times)

    @property
    def total_duration(self) -> float:
        """Sum of measured wall times in seconds."""
        return sum(self.wall_times)

    def add(self, wall_time_s: float, cpu_time_s: float) -> None:
        """Record one measured run."""
        self.wall_times.append(wall_time_s)
        self.cpu_times.append(cpu_time_s)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "wall_times": [round(t, 6) for t in self.wall_times],
            "cpu_times": [round(t, 6) for t in self.cpu_times],
            "warmup_count": self.warmup_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SampleSet:
        """Deserialize from a dict."""
        return cls(
            wall_times=list(data.get("wall_times", [])),
            cpu_times=list(data.get("cpu_times", [])),
            warmup_count=data.get("warmup_count", 0),
        )


# ---------------------------------------------------------------------------
# Measurement
# ---------------------------------------------------------------------------


def sampling_complete(samples: SampleSet, config: BenchConfig) -> bool:
    """True once both sampling thresholds hold (or the cap is reached)."""
    if config.max_iterations is not None and samples.n >= config.max_iterations:
        return True
    return (
        samples.n >= max(1, config.min_iterations)
        and samples.total_duration >= config.min_duration
    )


def measure(
    combination: Combination,
    warmup_count: int,
    config: BenchConfig,
    *,
    workdir: str | Path | None = None,
    cancel_event: threading.Event | None = None,
    on_phase: PhaseCallback | None = None,
) -> SampleSet | ProcessFailure:
    """Run warmup and measured iterations for one combination.

    Args:
        combination: What to run.
        warmup_count: Untimed runs before measurement.
        config: Sampling thresholds and per-process timeout.
        workdir: Scoped directory for script files.
        cancel_event: Checked before every process invocation.
        on_phase: Called with ``"warmup"`` and ``"measure"`` as the
            combination moves through its phases.

    Returns:
        The SampleSet, or the ProcessFailure of the first failed run.

    Raises:
        RunCancelled: If *cancel_event* is set between invocations.
    """
    if on_phase is not None:
        on_phase("warmup")

    for i in range(warmup_count):
        _check_cancelled(cancel_event, combination)
        result = run_timed(
            combination.environment.command,
            combination.script,
            workdir=workdir,
            timeout=config.timeout,
        )
        if result.failure is not None:
            log.debug(
                "%s: warmup %d/%d failed: %s",
                combination.label,
                i + 1,
                warmup_count,
                result.failure.message,
            )
            return result.failure
        log.debug(
            "%s: warmup %d/%d %.6fs (discarded)",
            combination.label,
            i + 1,
            warmup_count,
            result.wall_time_s,
        )

    if on_phase is not None:
        on_phase("measure")

    samples = SampleSet(warmup_count=warmup_count)
    while not sampling_complete(samples, config):
        _check_cancelled(cancel_event, combination)
        result = run_timed(
            combination.environment.command,
            combination.script,
            workdir=workdir,
            timeout=config.timeout,
        )
        if result.failure is not None:
            log.debug(
                "%s: measured run %d failed: %s",
                combination.label,
                samples.n + 1,
                result.failure.message,
            )
            return result.failure
        samples.add(result.wall_time_s, result.cpu_time_s)
        log.debug("%s: sample %d %.6fs", combination.label, samples.n, result.wall_time_s)

    return samples


def _check_cancelled(cancel_event: threading.Event | None, combination: Combination) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RunCancelled(f"Cancelled before running {combination.label}")
