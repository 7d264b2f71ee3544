"""Benchmark execution engine.

Orchestrates:
1. Configuration validation (before any process is spawned)
2. Matrix expansion into ordered combinations
3. Sequential warmup/measurement of each combination on one worker
4. Per-group comparison once every environment of a (task, context)
   pair has finished
5. Incremental result writing and progress reporting

Combinations never run in parallel: timing validity depends on the
measured process having the machine to itself.  The only overlap is
between the consumer reporting one result and the worker starting the
next combination, through a single-slot queue.
"""

from __future__ import annotations

import logging
import queue
import tempfile
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, Union

from versus.bench.compare import ComparisonResult, compare
from versus.bench.config import BenchConfig, check_errors, validate_config, validate_scenario
from versus.bench.errors import RunCancelled
from versus.bench.iteration import SampleSet, measure
from versus.bench.results import (
    BenchMeta,
    CombinationResult,
    CombinationState,
    RunState,
    RESULTS_FILENAME,
    append_result,
    save_meta,
)
from versus.bench.scenario import Combination, Scenario, expand, group_combinations
from versus.formatting import format_rate, format_time

log = logging.getLogger("versus")

RunEvent = Union[CombinationResult, ComparisonResult]


# ---------------------------------------------------------------------------
# Progress callback
# ---------------------------------------------------------------------------


@dataclass
class BenchProgress:
    """Progress info passed to the callback after each combination."""

    label: str
    state: CombinationState
    index: int  # 1-based
    total: int
    attempts: int = 1
    mean_s: float | None = None
    ips: float | None = None
    detail: str = ""


ProgressCallback = Callable[[BenchProgress], None]


# ---------------------------------------------------------------------------
# BenchRun
# ---------------------------------------------------------------------------


@dataclass
class BenchRun:
    """Everything a finished (or cancelled) run produced."""

    meta: BenchMeta
    results: list[CombinationResult] = field(default_factory=list)
    comparisons: list[ComparisonResult] = field(default_factory=list)

    @property
    def state(self) -> RunState:
        return self.meta.state

    @property
    def failed(self) -> list[CombinationResult]:
        """Combinations that ended in the failed state."""
        return [r for r in self.results if r.state is CombinationState.FAILED]


# Sentinel marking the end of the worker's stream.
_DONE = object()


# ---------------------------------------------------------------------------
# BenchRunner
# ---------------------------------------------------------------------------


class BenchRunner:
    """Executes every combination of a scenario.

    Usage::

        scenario, config = load_run(Path("scenario.yaml"))
        runner = BenchRunner(scenario, config)
        run = runner.run()

    or, to consume results as they arrive::

        for event in runner.stream():
            ...
    """

    def __init__(
        self,
        scenario: Scenario,
        config: BenchConfig,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.scenario = scenario
        self.config = config
        self.progress: ProgressCallback = progress_callback or self._default_progress
        self.cancel_event = cancel_event or threading.Event()
        self.state = RunState.PENDING
        self.meta = BenchMeta(
            run_id=config.run_id,
            scenario=scenario,
            config=config.to_dict(),
            cli_args=list(config.cli_args),
        )
        self.results: list[CombinationResult] = []
        self.comparisons: list[ComparisonResult] = []
        self._total = 0
        self._worker_error: BaseException | None = None
        self._results_path: Path | None = None

    def cancel(self) -> None:
        """Request cancellation; honoured before the next process starts."""
        self.cancel_event.set()

    # -- public entry points ------------------------------------------------

    def run(self) -> BenchRun:
        """Execute the full benchmark, reporting progress as it goes.

        A user interrupt cancels the run: the in-flight process is
        allowed to finish, and the partial results are returned with
        state ``cancelled``.

        Raises:
            ConfigurationError: If the scenario or options are invalid.
        """
        index = 0
        events = self.stream()
        try:
            for event in events:
                if isinstance(event, CombinationResult):
                    index += 1
                    self.progress(self._progress_for(event, index))
        except KeyboardInterrupt:
            log.warning("Interrupted: stopping after the current process.")
        finally:
            # Stops and joins the worker if the loop ended early.
            events.close()
        return BenchRun(
            meta=self.meta,
            results=list(self.results),
            comparisons=list(self.comparisons),
        )

    def stream(self) -> Iterator[RunEvent]:
        """Run the scenario, yielding results as they complete.

        Yields each :class:`CombinationResult` when its combination
        finishes and a :class:`ComparisonResult` after the last
        combination of every (task, context) group.

        Raises:
            ConfigurationError: If the scenario or options are invalid
                (before any process is spawned).
        """
        errors = validate_config(self.config) + validate_scenario(self.scenario, self.config)
        check_errors([e for e in errors if e.severity == "error"])

        combinations = expand(self.scenario)
        self._total = len(combinations)
        self._start(combinations)

        channel: queue.Queue[object] = queue.Queue(maxsize=1)
        worker = threading.Thread(
            target=self._work,
            args=(combinations, channel),
            name="versus-worker",
            daemon=True,
        )
        worker.start()

        try:
            while True:
                item = channel.get()
                if item is _DONE:
                    break
                if isinstance(item, BaseException):
                    raise item
                yield item  # type: ignore[misc]
        except BaseException:
            # Consumer interrupted or closed early: stop the worker
            # before its next process invocation.
            self.cancel_event.set()
            raise
        finally:
            _drain_and_join(worker, channel)
            self._finish()

    # -- worker side ----------------------------------------------------------

    def _work(self, combinations: list[Combination], channel: queue.Queue[object]) -> None:
        """Worker thread body: run combinations one at a time."""
        try:
            # Script files live in a per-run directory removed on exit.
            with tempfile.TemporaryDirectory(prefix="versus-") as workdir:
                for (task, context_index), members in group_combinations(combinations):
                    group: list[CombinationResult] = []
                    for combo in members:
                        if self.cancel_event.is_set():
                            raise RunCancelled("Cancelled between combinations")
                        result = self._run_combination(combo, workdir)
                        group.append(result)
                        self._record(result)
                        channel.put(result)

                    comparison = compare(
                        [(r.environment, r.outcome) for r in group],
                        self.config.baseline,
                        task=task,
                        context_index=context_index,
                    )
                    self.comparisons.append(comparison)
                    channel.put(comparison)
        except RunCancelled as exc:
            log.info("%s", exc)
        except BaseException as exc:  # noqa: BLE001
            self._worker_error = exc
            channel.put(exc)
            return
        channel.put(_DONE)

    def _run_combination(self, combo: Combination, workdir: str) -> CombinationResult:
        """Measure one combination, retrying failures if configured."""
        result = CombinationResult.for_combination(combo)

        def on_phase(phase: str) -> None:
            if phase == "warmup":
                result.state = CombinationState.WARMING
            else:
                result.state = CombinationState.MEASURING
            log.debug("%s: %s", combo.label, result.state.value)

        start = time.monotonic()
        max_attempts = self.config.retries + 1
        for attempt in range(1, max_attempts + 1):
            result.attempts = attempt
            outcome = measure(
                combo,
                self.scenario.warmup,
                self.config,
                workdir=workdir,
                cancel_event=self.cancel_event,
                on_phase=on_phase,
            )
            if isinstance(outcome, SampleSet):
                result.samples = outcome
                result.failure = None
                result.state = CombinationState.MEASURED
                break

            result.failure = outcome
            result.state = CombinationState.FAILED
            if attempt < max_attempts:
                log.warning(
                    "%s failed (%s), retrying (%d/%d)",
                    combo.label,
                    outcome.message,
                    attempt,
                    self.config.retries,
                )

        result.duration_s = time.monotonic() - start
        result.compute_stats()

        if result.failure is not None:
            log.warning(
                "%s FAILED [%s]: %s",
                combo.label,
                result.failure.cause,
                result.failure.message,
            )
            if result.failure.stderr:
                log.debug("%s stderr:\n%s", combo.label, result.failure.stderr)
        return result

    def _record(self, result: CombinationResult) -> None:
        """Keep a finished result and persist it if an output dir is set."""
        self.results.append(result)
        if self._results_path is not None:
            append_result(self._results_path, result)

    # -- bookkeeping ----------------------------------------------------------

    def _start(self, combinations: list[Combination]) -> None:
        self.state = RunState.RUNNING
        self.meta.state = self.state
        self.meta.start_time = time.strftime("%Y-%m-%dT%H:%M:%S%z")
        self.meta.combinations_total = len(combinations)
        log.info(
            "Benchmarking %s: %d combinations (%d tasks x %d contexts x %d environments)",
            self.meta.name,
            len(combinations),
            len(self.scenario.tasks),
            len(self.scenario.effective_contexts),
            len(self.scenario.environments),
        )

        output_dir = self.config.output_dir
        if output_dir is not None:
            save_meta(output_dir, self.meta)
            self._results_path = output_dir / RESULTS_FILENAME
            self._results_path.write_text("")

    def _finish(self) -> None:
        measured = sum(1 for r in self.results if r.state is CombinationState.MEASURED)
        failed = sum(1 for r in self.results if r.state is CombinationState.FAILED)

        if self._worker_error is not None:
            self.state = RunState.PARTIALLY_FAILED
        elif len(self.results) < self._total:
            self.state = RunState.CANCELLED
        elif failed:
            self.state = RunState.PARTIALLY_FAILED
        else:
            self.state = RunState.COMPLETED

        self.meta.state = self.state
        self.meta.end_time = time.strftime("%Y-%m-%dT%H:%M:%S%z")
        self.meta.combinations_measured = measured
        self.meta.combinations_failed = failed

        output_dir = self.config.output_dir
        if output_dir is not None:
            save_meta(output_dir, self.meta)
            log.info("Results written to %s", output_dir)

        log.info(
            "Run %s: %d measured, %d failed, %d not run",
            self.state.value,
            measured,
            failed,
            self._total - len(self.results),
        )

    def _progress_for(self, result: CombinationResult, index: int) -> BenchProgress:
        progress = BenchProgress(
            label=result.label,
            state=result.state,
            index=index,
            total=self._total,
            attempts=result.attempts,
        )
        if result.summary is not None:
            progress.mean_s = result.summary.mean
            progress.ips = result.summary.ips
        if result.failure is not None:
            progress.detail = result.failure.message
        return progress

    @staticmethod
    def _default_progress(progress: BenchProgress) -> None:
        """Default progress callback: one log line per combination."""
        line = f"  [{progress.index}/{progress.total}] {progress.label:40s} "
        if progress.state is CombinationState.MEASURED and progress.mean_s is not None:
            line += f"{format_time(progress.mean_s):>10s} "
            if progress.ips is not None:
                line += f"{format_rate(progress.ips):>12s} "
        else:
            line += f"[{progress.state.value}] {progress.detail}"
        log.info(line.rstrip())


def _drain_and_join(worker: threading.Thread, channel: queue.Queue[object]) -> None:
    """Wait for the worker, unblocking it if the queue is full."""
    while worker.is_alive():
        try:
            channel.get(timeout=0.1)
        except queue.Empty:
            pass
    worker.join()
