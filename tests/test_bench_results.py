"""Tests for versus.bench.results — result structures and persistence."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from bench_test_helpers import make_combination_result, make_meta, make_scenario

from versus.bench.results import (
    META_FILENAME,
    RESULTS_FILENAME,
    BenchMeta,
    CombinationResult,
    CombinationState,
    RunState,
    append_result,
    load_bench_run,
    save_meta,
)
from versus.bench.scenario import expand
from versus.bench.timing import CAUSE_EXIT, ProcessFailure


class TestStates(unittest.TestCase):
    def test_run_exit_codes(self) -> None:
        self.assertEqual(RunState.COMPLETED.exit_code, 0)
        self.assertEqual(RunState.PARTIALLY_FAILED.exit_code, 1)
        self.assertEqual(RunState.CANCELLED.exit_code, 130)


class TestCombinationResult(unittest.TestCase):
    def test_for_combination(self) -> None:
        combo = expand(make_scenario(environments=["py"], tasks={"loop": "pass"}))[0]
        result = CombinationResult.for_combination(combo)
        self.assertEqual(result.state, CombinationState.PENDING)
        self.assertEqual(result.label, combo.label)

    def test_compute_stats(self) -> None:
        result = make_combination_result("py", [0.1, 0.1, 0.1, 0.1, 1.0])
        assert result.summary is not None
        self.assertEqual(result.summary.n, 5)
        self.assertEqual(result.n_outliers, 1)
        self.assertTrue(result.measured)

    def test_failed_has_no_summary(self) -> None:
        failure = ProcessFailure(cause=CAUSE_EXIT, message="Exited with code 1", exit_code=1)
        result = make_combination_result("py", failure=failure)
        self.assertIsNone(result.summary)
        self.assertIs(result.outcome, failure)
        self.assertFalse(result.measured)

    def test_jsonl_roundtrip(self) -> None:
        result = make_combination_result("py", [0.1, 0.2, 0.3], task="t", context_index=2)
        restored = CombinationResult.from_jsonl_line(result.to_jsonl_line())
        self.assertEqual(restored.task, "t")
        self.assertEqual(restored.context_index, 2)
        self.assertEqual(restored.state, CombinationState.MEASURED)
        assert restored.samples is not None and result.samples is not None
        self.assertEqual(restored.samples.wall_times, result.samples.wall_times)
        self.assertEqual(restored.summary, result.summary)

    def test_jsonl_line_is_single_line(self) -> None:
        line = make_combination_result("py", [0.1]).to_jsonl_line()
        self.assertNotIn("\n", line)
        json.loads(line)


class TestBenchMeta(unittest.TestCase):
    def test_name_falls_back_to_run_id(self) -> None:
        meta = BenchMeta(run_id="run_x")
        self.assertEqual(meta.name, "run_x")

    def test_dict_roundtrip(self) -> None:
        meta = make_meta(state=RunState.PARTIALLY_FAILED, baseline="base")
        restored = BenchMeta.from_dict(json.loads(json.dumps(meta.to_dict())))
        self.assertEqual(restored.state, RunState.PARTIALLY_FAILED)
        self.assertEqual(restored.scenario, meta.scenario)
        self.assertEqual(restored.config["baseline"], "base")


class TestPersistence(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.run_dir = Path(self._tmp.name) / "run_test"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_save_and_load(self) -> None:
        meta_path = save_meta(self.run_dir, make_meta())
        self.assertEqual(meta_path, self.run_dir / META_FILENAME)
        path = self.run_dir / RESULTS_FILENAME
        append_result(path, make_combination_result("base", [0.2, 0.2]))
        append_result(path, make_combination_result("fast", [0.1, 0.1]))
        meta, loaded = load_bench_run(self.run_dir)
        self.assertEqual(meta.run_id, "run_test")
        self.assertEqual([r.environment for r in loaded], ["base", "fast"])

    def test_blank_lines_skipped(self) -> None:
        save_meta(self.run_dir, make_meta())
        path = self.run_dir / RESULTS_FILENAME
        append_result(path, make_combination_result("base", [0.2]))
        with open(path, "a") as f:
            f.write("\n")
        append_result(path, make_combination_result("fast", [0.1]))
        _, loaded = load_bench_run(self.run_dir)
        self.assertEqual(len(loaded), 2)

    def test_missing_meta(self) -> None:
        self.run_dir.mkdir(parents=True)
        with self.assertRaises(FileNotFoundError):
            load_bench_run(self.run_dir)

    def test_missing_results_file_is_empty_run(self) -> None:
        save_meta(self.run_dir, make_meta())
        _, loaded = load_bench_run(self.run_dir)
        self.assertEqual(loaded, [])


if __name__ == "__main__":
    unittest.main()
