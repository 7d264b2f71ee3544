"""Benchmark configuration and descriptor loading.

Handles:
- Loading scenario descriptors from YAML files.
- Mapping descriptor keys onto :class:`Scenario` and :class:`BenchConfig`,
  rejecting unknown keys at every level to catch typos.
- Merging CLI options over descriptor values.
- Validating the final configuration before any process is spawned.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from versus.bench.errors import ConfigurationError, ValidationError
from versus.bench.scenario import Context, Environment, Scenario, Task

log = logging.getLogger("versus")


# ---------------------------------------------------------------------------
# BenchConfig
# ---------------------------------------------------------------------------


@dataclass
class BenchConfig:
    """Resolved execution options for a benchmark run."""

    # Identity
    run_id: str = ""  # Auto-generated if empty

    # Iteration control: sample until both thresholds are met.
    min_iterations: int = 5
    min_duration: float = 0.0  # seconds of measured wall time
    max_iterations: int | None = None
    timeout: float = 600  # Per-process timeout in seconds

    # Comparison
    baseline: str | None = None  # None = first declared environment

    # Orchestration
    retries: int = 0  # Extra attempts for a failed combination

    # Used when a descriptor declares no environments.
    default_command: str = ""

    # Paths
    results_dir: Path | None = None

    # CLI provenance
    cli_args: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.run_id:
            self.run_id = f"run_{time.strftime('%Y%m%d_%H%M%S')}"

    @property
    def output_dir(self) -> Path | None:
        """Directory receiving this run's results, if persistence is on."""
        if self.results_dir is None:
            return None
        return self.results_dir / self.run_id

    def to_dict(self) -> dict[str, Any]:
        """Serialize the options that affect measurements."""
        return {
            "min_iterations": self.min_iterations,
            "min_duration": self.min_duration,
            "max_iterations": self.max_iterations,
            "timeout": self.timeout,
            "baseline": self.baseline,
            "retries": self.retries,
        }


# ---------------------------------------------------------------------------
# Recognized descriptor keys
# ---------------------------------------------------------------------------

_SCENARIO_KEYS = {"name", "environments", "contexts", "tasks", "warmup"}
_OPTION_KEYS = {"iterations", "min_duration", "max_iterations", "timeout", "baseline", "retries"}
_TOP_LEVEL_KEYS = _SCENARIO_KEYS | _OPTION_KEYS
_ENVIRONMENT_KEYS = {"name", "command"}
_CONTEXT_KEYS = {"begin"}
_TASK_KEYS = {"name", "script"}


def _check_keys(
    data: dict[str, Any],
    allowed: set[str],
    where: str,
    errors: list[ValidationError],
) -> None:
    unknown = sorted(str(k) for k in data if k not in allowed)
    if unknown:
        errors.append(
            ValidationError(
                field=where,
                message=(
                    f"Unknown key(s) {', '.join(repr(k) for k in unknown)}. "
                    f"Valid keys: {', '.join(sorted(allowed))}"
                ),
            )
        )


def _add_environment(
    scenario: Scenario,
    name: str,
    command: str | list[Any],
    where: str,
    errors: list[ValidationError],
) -> None:
    try:
        scenario.environments.append(Environment.from_command(name, command))
    except ValueError as exc:
        errors.append(ValidationError(where, f"Cannot parse command: {exc}"))


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


def load_descriptor(path: Path) -> dict[str, Any]:
    """Load a scenario descriptor from a YAML file.

    Descriptor format::

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

    Returns:
        The parsed YAML as a dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not valid YAML or not a mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Descriptor not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Descriptor {path} is not valid YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Descriptor must be a YAML mapping, got {type(data).__name__}: {path}"
        )
    return data


# ---------------------------------------------------------------------------
# Descriptor → Scenario
# ---------------------------------------------------------------------------


def scenario_from_descriptor(
    data: dict[str, Any],
    *,
    default_command: str = "",
    name: str = "",
    errors: list[ValidationError] | None = None,
) -> Scenario:
    """Build a Scenario from a parsed descriptor.

    Structural problems are appended to *errors* when it is given;
    otherwise they are raised at once as a :class:`ConfigurationError`.
    Scripts are passed through untouched: they are code for the
    target interpreter, not for us.

    Args:
        data: Parsed descriptor mapping.
        default_command: Executable used when the descriptor declares
            no environments.
        name: Scenario name used when the descriptor has none.
        errors: Optional list collecting validation errors.
    """
    collect = errors if errors is not None else []

    scenario = Scenario(name=str(data.get("name") or name))

    # Environments.
    envs_data = data.get("environments")
    if envs_data is None:
        if default_command:
            _add_environment(scenario, "default", default_command, "--executable", collect)
    elif not isinstance(envs_data, list):
        collect.append(ValidationError("environments", "Must be a list of {name, command}."))
    else:
        for i, env_data in enumerate(envs_data):
            where = f"environments[{i}]"
            if not isinstance(env_data, dict):
                collect.append(ValidationError(where, "Must be a mapping."))
                continue
            _check_keys(env_data, _ENVIRONMENT_KEYS, where, collect)
            env_name = env_data.get("name")
            command = env_data.get("command")
            if not isinstance(env_name, str) or not env_name.strip():
                collect.append(ValidationError(f"{where}.name", "Must be a non-empty string."))
                continue
            if (isinstance(command, str) and command.strip()) or (
                isinstance(command, list)
                and command
                and all(isinstance(c, (str, int, float)) for c in command)
            ):
                _add_environment(scenario, env_name, command, f"{where}.command", collect)
            else:
                collect.append(
                    ValidationError(
                        f"{where}.command",
                        f"Environment '{env_name}' needs a command string or argument list.",
                    )
                )

    # Contexts.
    contexts_data = data.get("contexts") or []
    if not isinstance(contexts_data, list):
        collect.append(ValidationError("contexts", "Must be a list of {begin}."))
    else:
        for i, ctx_data in enumerate(contexts_data):
            where = f"contexts[{i}]"
            if ctx_data is None:
                ctx_data = {}
            if not isinstance(ctx_data, dict):
                collect.append(ValidationError(where, "Must be a mapping."))
                continue
            _check_keys(ctx_data, _CONTEXT_KEYS, where, collect)
            begin = ctx_data.get("begin", "")
            if begin is None:
                begin = ""
            if not isinstance(begin, str):
                collect.append(ValidationError(f"{where}.begin", "Must be a string."))
                continue
            scenario.contexts.append(Context(index=i, begin=begin))

    # Tasks.
    tasks_data = data.get("tasks")
    if not isinstance(tasks_data, list):
        collect.append(ValidationError("tasks", "Must be a list of {name, script}."))
    else:
        for i, task_data in enumerate(tasks_data):
            where = f"tasks[{i}]"
            if not isinstance(task_data, dict):
                collect.append(ValidationError(where, "Must be a mapping."))
                continue
            _check_keys(task_data, _TASK_KEYS, where, collect)
            task_name = task_data.get("name")
            script = task_data.get("script")
            if not isinstance(task_name, str) or not task_name.strip():
                collect.append(ValidationError(f"{where}.name", "Must be a non-empty string."))
                continue
            if not isinstance(script, str) or not script.strip():
                collect.append(
                    ValidationError(
                        f"{where}.script",
                        f"Task '{task_name}' needs a non-empty script.",
                    )
                )
                continue
            scenario.tasks.append(Task(name=task_name, script=script))

    # Warmup.
    warmup = data.get("warmup", 0)
    if _is_int(warmup):
        scenario.warmup = warmup
    else:
        collect.append(ValidationError("warmup", f"Must be an integer (got {warmup!r})."))

    if errors is None and collect:
        raise ConfigurationError.from_errors(collect)
    return scenario


# ---------------------------------------------------------------------------
# Descriptor → BenchConfig
# ---------------------------------------------------------------------------


def config_from_descriptor(
    data: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> BenchConfig:
    """Build a BenchConfig from descriptor options and CLI overrides.

    CLI overrides take precedence over descriptor values.  Keys
    match BenchConfig field names; ``None`` means "not given".
    """
    cli = {k: v for k, v in (cli_overrides or {}).items() if v is not None}

    def pick(cli_key: str, descriptor_key: str, default: Any) -> Any:
        if cli_key in cli:
            return cli[cli_key]
        return data.get(descriptor_key, default)

    config = BenchConfig(
        min_iterations=pick("min_iterations", "iterations", 5),
        min_duration=pick("min_duration", "min_duration", 0.0),
        max_iterations=pick("max_iterations", "max_iterations", None),
        timeout=pick("timeout", "timeout", 600),
        baseline=pick("baseline", "baseline", None),
        retries=pick("retries", "retries", 0),
        default_command=cli.get("default_command", ""),
    )
    if cli.get("run_id"):
        config.run_id = cli["run_id"]
    if cli.get("results_dir"):
        config.results_dir = Path(cli["results_dir"])
    if cli.get("cli_args"):
        config.cli_args = list(cli["cli_args"])
    return config


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_config(config: BenchConfig) -> list[ValidationError]:
    """Validate execution options.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if not _is_int(config.min_iterations) or config.min_iterations < 1:
        errors.append(
            ValidationError(
                field="iterations",
                message=f"Need at least 1 measured iteration (got {config.min_iterations!r}).",
            )
        )
    elif config.min_iterations < 3:
        errors.append(
            ValidationError(
                field="iterations",
                message=(
                    f"Fewer than 3 measured iterations ({config.min_iterations}) "
                    f"gives little statistical power."
                ),
                severity="warning",
            )
        )

    if not _is_number(config.min_duration) or config.min_duration < 0:
        errors.append(
            ValidationError(
                field="min_duration",
                message=f"Minimum duration cannot be negative (got {config.min_duration!r}).",
            )
        )

    if config.max_iterations is not None:
        if not _is_int(config.max_iterations) or config.max_iterations < 1:
            errors.append(
                ValidationError(
                    field="max_iterations",
                    message=f"Must be a positive integer (got {config.max_iterations!r}).",
                )
            )
        elif _is_int(config.min_iterations) and config.max_iterations < config.min_iterations:
            errors.append(
                ValidationError(
                    field="max_iterations",
                    message=(
                        f"max_iterations ({config.max_iterations}) is below "
                        f"iterations ({config.min_iterations})."
                    ),
                )
            )

    if not _is_number(config.timeout) or config.timeout <= 0:
        errors.append(
            ValidationError(
                field="timeout",
                message=f"Timeout must be positive (got {config.timeout!r}).",
            )
        )

    if not _is_int(config.retries) or config.retries < 0:
        errors.append(
            ValidationError(
                field="retries",
                message=f"Retries cannot be negative (got {config.retries!r}).",
            )
        )

    return errors


def validate_scenario(scenario: Scenario, config: BenchConfig) -> list[ValidationError]:
    """Validate a scenario against the invariants of a run.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if not scenario.environments:
        errors.append(
            ValidationError(
                field="environments",
                message=(
                    "No environments defined. Declare 'environments' in the "
                    "descriptor or pass --executable."
                ),
            )
        )
    if not scenario.tasks:
        errors.append(ValidationError(field="tasks", message="No tasks defined."))

    if scenario.warmup < 0:
        errors.append(
            ValidationError(
                field="warmup",
                message=f"Warmup iterations cannot be negative (got {scenario.warmup}).",
            )
        )

    errors.extend(_duplicate_errors("environments", [e.name for e in scenario.environments]))
    errors.extend(_duplicate_errors("tasks", [t.name for t in scenario.tasks]))

    env_names = [e.name for e in scenario.environments]
    if config.baseline is not None and env_names and config.baseline not in env_names:
        errors.append(
            ValidationError(
                field="baseline",
                message=(
                    f"Baseline '{config.baseline}' is not a declared environment. "
                    f"Available: {', '.join(env_names)}"
                ),
            )
        )

    return errors


def _duplicate_errors(where: str, names: list[str]) -> list[ValidationError]:
    seen: set[str] = set()
    errors: list[ValidationError] = []
    for name in names:
        if name in seen:
            errors.append(ValidationError(field=where, message=f"Duplicate name '{name}'."))
        seen.add(name)
    return errors


def check_errors(errors: list[ValidationError]) -> None:
    """Log warnings and raise for fatal validation errors.

    Raises:
        ConfigurationError: If any error has severity ``"error"``.
    """
    fatal = [e for e in errors if e.severity == "error"]
    for w in errors:
        if w.severity == "warning":
            log.warning("Config warning: %s: %s", w.field, w.message)
    if fatal:
        raise ConfigurationError.from_errors(fatal)


# ---------------------------------------------------------------------------
# One-stop loading
# ---------------------------------------------------------------------------


def build_run(
    data: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
    name: str = "",
) -> tuple[Scenario, BenchConfig]:
    """Turn a parsed descriptor into a validated (Scenario, BenchConfig).

    Every problem found is reported in a single
    :class:`ConfigurationError`.
    """
    errors: list[ValidationError] = []
    _check_keys(data, _TOP_LEVEL_KEYS, "descriptor", errors)

    config = config_from_descriptor(data, cli_overrides=cli_overrides)
    scenario = scenario_from_descriptor(
        data,
        default_command=config.default_command,
        name=name,
        errors=errors,
    )
    warmup_override = (cli_overrides or {}).get("warmup")
    if warmup_override is not None:
        scenario.warmup = warmup_override

    errors.extend(validate_config(config))
    errors.extend(validate_scenario(scenario, config))
    check_errors(errors)
    return scenario, config


def load_run(
    path: Path,
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> tuple[Scenario, BenchConfig]:
    """Load and validate a descriptor file.

    The scenario is named after the file stem unless the descriptor
    sets ``name``.
    """
    data = load_descriptor(path)
    return build_run(data, cli_overrides=cli_overrides, name=path.stem)
