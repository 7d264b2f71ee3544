"""Tests for versus.bench.config — descriptor loading and validation."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from bench_test_helpers import make_config, make_scenario

from versus.bench.config import (
    BenchConfig,
    build_run,
    config_from_descriptor,
    load_descriptor,
    load_run,
    scenario_from_descriptor,
    validate_config,
    validate_scenario,
)
from versus.bench.errors import ConfigurationError, ValidationError

DESCRIPTOR = """\
environments:
  - name: "Shiny new Ruby"
    command: "/opt/ruby-3.2.0/bin/ruby"
  - name: "Old trusted Ruby"
    command: ["/opt/ruby-2.7.6/bin/ruby", "--disable-gems"]
contexts:
  - begin: |
      require "digest/md5"
      max = 1e5.to_i
tasks:
  - name: "array splat"
    script: |
      ary = [*1..max]
warmup: 3
"""


def _minimal(**extra: object) -> dict[str, object]:
    data: dict[str, object] = {
        "environments": [{"name": "py", "command": "python3"}],
        "tasks": [{"name": "noop", "script": "pass"}],
    }
    data.update(extra)
    return data


# ---------------------------------------------------------------------------
# BenchConfig
# ---------------------------------------------------------------------------


class TestBenchConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        config = BenchConfig()
        self.assertEqual(config.min_iterations, 5)
        self.assertEqual(config.min_duration, 0.0)
        self.assertIsNone(config.max_iterations)
        self.assertEqual(config.timeout, 600)
        self.assertIsNone(config.baseline)
        self.assertEqual(config.retries, 0)
        self.assertTrue(config.run_id.startswith("run_"))

    def test_explicit_run_id_kept(self) -> None:
        self.assertEqual(BenchConfig(run_id="mine").run_id, "mine")

    def test_output_dir(self) -> None:
        self.assertIsNone(BenchConfig(run_id="r1").output_dir)
        config = BenchConfig(run_id="r1", results_dir=Path("/tmp/results"))
        self.assertEqual(config.output_dir, Path("/tmp/results/r1"))


# ---------------------------------------------------------------------------
# load_descriptor
# ---------------------------------------------------------------------------


class TestLoadDescriptor(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, text: str, name: str = "bench.yaml") -> Path:
        path = self.tmpdir / name
        path.write_text(text)
        return path

    def test_loads_mapping(self) -> None:
        data = load_descriptor(self._write(DESCRIPTOR))
        self.assertEqual(len(data["environments"]), 2)
        self.assertEqual(data["warmup"], 3)

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_descriptor(self.tmpdir / "nope.yaml")

    def test_invalid_yaml(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_descriptor(self._write("tasks: [unclosed"))

    def test_not_a_mapping(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_descriptor(self._write("- just\n- a list\n"))

    def test_load_run_names_scenario_after_file(self) -> None:
        scenario, config = load_run(self._write(DESCRIPTOR, "ruby.yaml"))
        self.assertEqual(scenario.name, "ruby")
        self.assertEqual(config.min_iterations, 5)

    def test_load_run_descriptor_name_wins(self) -> None:
        scenario, _ = load_run(self._write("name: Splat\n" + DESCRIPTOR))
        self.assertEqual(scenario.name, "Splat")


# ---------------------------------------------------------------------------
# scenario_from_descriptor
# ---------------------------------------------------------------------------


class TestScenarioFromDescriptor(unittest.TestCase):
    def test_full_descriptor(self) -> None:
        import yaml

        scenario = scenario_from_descriptor(yaml.safe_load(DESCRIPTOR))
        self.assertEqual(
            [e.name for e in scenario.environments],
            ["Shiny new Ruby", "Old trusted Ruby"],
        )
        self.assertEqual(
            scenario.environments[1].command,
            ("/opt/ruby-2.7.6/bin/ruby", "--disable-gems"),
        )
        self.assertEqual(len(scenario.contexts), 1)
        self.assertIn("digest/md5", scenario.contexts[0].begin)
        self.assertEqual(scenario.tasks[0].name, "array splat")
        self.assertEqual(scenario.warmup, 3)

    def test_default_command_without_environments(self) -> None:
        data = {"tasks": [{"name": "t", "script": "pass"}]}
        scenario = scenario_from_descriptor(data, default_command="python3 -S")
        self.assertEqual(len(scenario.environments), 1)
        self.assertEqual(scenario.environments[0].name, "default")
        self.assertEqual(scenario.environments[0].command, ("python3", "-S"))

    def test_no_environments_no_default(self) -> None:
        scenario = scenario_from_descriptor({"tasks": [{"name": "t", "script": "pass"}]})
        self.assertEqual(scenario.environments, [])

    def test_null_context_is_empty(self) -> None:
        scenario = scenario_from_descriptor(_minimal(contexts=[None, {"begin": None}]))
        self.assertEqual([c.begin for c in scenario.contexts], ["", ""])
        self.assertEqual([c.index for c in scenario.contexts], [0, 1])

    def test_errors_raised_without_collector(self) -> None:
        with self.assertRaises(ConfigurationError) as cm:
            scenario_from_descriptor({"tasks": [{"name": "t"}]})
        self.assertIn("tasks[0].script", str(cm.exception))

    def test_errors_collected(self) -> None:
        errors: list[ValidationError] = []
        scenario_from_descriptor(
            {
                "environments": [{"name": "x"}, "bogus"],
                "tasks": "not a list",
                "warmup": "3",
            },
            errors=errors,
        )
        fields = {e.field for e in errors}
        self.assertIn("environments[0].command", fields)
        self.assertIn("environments[1]", fields)
        self.assertIn("tasks", fields)
        self.assertIn("warmup", fields)

    def test_unknown_nested_keys(self) -> None:
        errors: list[ValidationError] = []
        scenario_from_descriptor(
            _minimal(
                environments=[{"name": "py", "command": "python3", "cmd": "x"}],
                contexts=[{"begin": "", "end": ""}],
                tasks=[{"name": "t", "script": "pass", "repeat": 2}],
            ),
            errors=errors,
        )
        self.assertEqual(
            sorted(e.field for e in errors),
            ["contexts[0]", "environments[0]", "tasks[0]"],
        )


# ---------------------------------------------------------------------------
# config_from_descriptor
# ---------------------------------------------------------------------------


class TestConfigFromDescriptor(unittest.TestCase):
    def test_descriptor_options(self) -> None:
        config = config_from_descriptor(
            _minimal(iterations=7, min_duration=1.5, max_iterations=20, timeout=30, retries=2)
        )
        self.assertEqual(config.min_iterations, 7)
        self.assertEqual(config.min_duration, 1.5)
        self.assertEqual(config.max_iterations, 20)
        self.assertEqual(config.timeout, 30)
        self.assertEqual(config.retries, 2)

    def test_cli_overrides_descriptor(self) -> None:
        config = config_from_descriptor(
            _minimal(iterations=7, baseline="py"),
            cli_overrides={"min_iterations": 3, "baseline": None, "run_id": "r"},
        )
        self.assertEqual(config.min_iterations, 3)
        self.assertEqual(config.baseline, "py")
        self.assertEqual(config.run_id, "r")

    def test_results_dir_override(self) -> None:
        config = config_from_descriptor(_minimal(), cli_overrides={"results_dir": "out"})
        self.assertEqual(config.results_dir, Path("out"))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidateConfig(unittest.TestCase):
    def test_valid(self) -> None:
        self.assertEqual(validate_config(make_config()), [])

    def test_zero_iterations(self) -> None:
        errors = validate_config(make_config(min_iterations=0))
        self.assertEqual([e.field for e in errors], ["iterations"])
        self.assertEqual(errors[0].severity, "error")

    def test_few_iterations_warns(self) -> None:
        errors = validate_config(make_config(min_iterations=2))
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].severity, "warning")

    def test_negative_duration(self) -> None:
        errors = validate_config(make_config(min_duration=-1.0))
        self.assertEqual([e.field for e in errors], ["min_duration"])

    def test_max_below_min(self) -> None:
        errors = validate_config(make_config(min_iterations=5, max_iterations=3))
        self.assertEqual([e.field for e in errors], ["max_iterations"])

    def test_bad_timeout_and_retries(self) -> None:
        errors = validate_config(make_config(timeout=0, retries=-1))
        self.assertEqual(sorted(e.field for e in errors), ["retries", "timeout"])


class TestValidateScenario(unittest.TestCase):
    def test_valid(self) -> None:
        self.assertEqual(validate_scenario(make_scenario(), make_config()), [])

    def test_no_environments(self) -> None:
        errors = validate_scenario(make_scenario(environments=[]), make_config())
        self.assertEqual([e.field for e in errors], ["environments"])
        self.assertIn("--executable", errors[0].message)

    def test_no_tasks(self) -> None:
        errors = validate_scenario(make_scenario(tasks={}), make_config())
        self.assertEqual([e.field for e in errors], ["tasks"])

    def test_duplicate_environment_names(self) -> None:
        errors = validate_scenario(make_scenario(environments=["a", "a"]), make_config())
        self.assertEqual([e.field for e in errors], ["environments"])

    def test_unknown_baseline(self) -> None:
        errors = validate_scenario(
            make_scenario(environments=["a", "b"]),
            make_config(baseline="c"),
        )
        self.assertEqual([e.field for e in errors], ["baseline"])
        self.assertIn("a, b", errors[0].message)


# ---------------------------------------------------------------------------
# build_run
# ---------------------------------------------------------------------------


class TestBuildRun(unittest.TestCase):
    def test_minimal(self) -> None:
        scenario, config = build_run(_minimal(), name="m")
        self.assertEqual(scenario.name, "m")
        self.assertEqual(len(scenario.tasks), 1)
        self.assertEqual(config.min_iterations, 5)

    def test_unknown_top_level_key(self) -> None:
        with self.assertRaises(ConfigurationError) as cm:
            build_run(_minimal(iteratons=3))
        self.assertIn("iteratons", str(cm.exception))

    def test_all_errors_reported_together(self) -> None:
        with self.assertRaises(ConfigurationError) as cm:
            build_run({"tasks": [], "timeout": -1})
        fields = {e.field for e in cm.exception.errors}
        self.assertEqual(fields, {"environments", "tasks", "timeout"})

    def test_executable_supplies_environment(self) -> None:
        data = {"tasks": [{"name": "t", "script": "pass"}]}
        scenario, _ = build_run(data, cli_overrides={"default_command": "python3"})
        self.assertEqual([e.name for e in scenario.environments], ["default"])

    def test_unbalanced_quote_in_command(self) -> None:
        data = _minimal(environments=[{"name": "a", "command": 'python3 "-c'}])
        with self.assertRaises(ConfigurationError) as cm:
            build_run(data)
        (error,) = [e for e in cm.exception.errors if e.field == "environments[0].command"]
        self.assertIn("Cannot parse command", error.message)

    def test_unbalanced_quote_in_executable(self) -> None:
        data = {"tasks": [{"name": "t", "script": "pass"}]}
        with self.assertRaises(ConfigurationError) as cm:
            build_run(data, cli_overrides={"default_command": "'python3"})
        self.assertIn("--executable", {e.field for e in cm.exception.errors})

    def test_warmup_override(self) -> None:
        scenario, _ = build_run(_minimal(warmup=1), cli_overrides={"warmup": 4})
        self.assertEqual(scenario.warmup, 4)

    def test_negative_warmup_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            build_run(_minimal(warmup=-1))


if __name__ == "__main__":
    unittest.main()
