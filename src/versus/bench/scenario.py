"""Scenario data model and matrix expansion.

A scenario declares environments, setup contexts and timed tasks.
:func:`expand` turns it into the ordered list of combinations the
orchestrator executes: tasks outermost, then contexts, then
environments, so every (task, context) group holds one combination
per environment in declaration order.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Any, Iterator


# ---------------------------------------------------------------------------
# Declared parts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Environment:
    """One executable under comparison (usually an interpreter)."""

    name: str
    command: tuple[str, ...]

    @classmethod
    def from_command(cls, name: str, command: str | list[str] | tuple[str, ...]) -> Environment:
        """Build an Environment from a command string or argument list.

        Strings are split with shell quoting rules, so
        ``"/opt/ruby/bin/ruby --jit"`` becomes two arguments.
        """
        if isinstance(command, str):
            args = tuple(shlex.split(command))
        else:
            args = tuple(str(c) for c in command)
        return cls(name=name, command=args)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {"name": self.name, "command": list(self.command)}


@dataclass(frozen=True)
class Context:
    """Setup code executed before the task in every process."""

    index: int
    begin: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {"index": self.index, "begin": self.begin}


@dataclass(frozen=True)
class Task:
    """The code fragment whose execution time is measured."""

    name: str
    script: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {"name": self.name, "script": self.script}


# The context used when a scenario declares none.
EMPTY_CONTEXT = Context(index=0, begin="")


@dataclass
class Scenario:
    """Everything declared by one benchmark descriptor."""

    name: str = ""
    environments: list[Environment] = field(default_factory=list)
    contexts: list[Context] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    warmup: int = 0

    @property
    def effective_contexts(self) -> list[Context]:
        """Declared contexts, or the implicit empty one."""
        return list(self.contexts) or [EMPTY_CONTEXT]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "name": self.name,
            "environments": [e.to_dict() for e in self.environments],
            "contexts": [c.to_dict() for c in self.contexts],
            "tasks": [t.to_dict() for t in self.tasks],
            "warmup": self.warmup,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Scenario:
        """Deserialize from a dict produced by :meth:`to_dict`."""
        return cls(
            name=data.get("name", ""),
            environments=[
                Environment.from_command(e["name"], e["command"])
                for e in data.get("environments", [])
            ],
            contexts=[
                Context(index=c.get("index", i), begin=c.get("begin", ""))
                for i, c in enumerate(data.get("contexts", []))
            ],
            tasks=[Task(name=t["name"], script=t["script"]) for t in data.get("tasks", [])],
            warmup=data.get("warmup", 0),
        )


# ---------------------------------------------------------------------------
# Combination
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Combination:
    """One concrete (environment, context, task) execution unit."""

    environment: Environment
    context: Context
    task: Task

    @property
    def label(self) -> str:
        """Stable human-readable identity used in logs and reports."""
        return f"{self.task.name} / {self.environment.name} / context {self.context.index}"

    @property
    def group_key(self) -> tuple[str, int]:
        """Key shared by all environments measured for one task and context."""
        return (self.task.name, self.context.index)

    @property
    def script(self) -> str:
        """The program handed to the environment: setup, then task."""
        if not self.context.begin:
            return self.task.script
        begin = self.context.begin.rstrip("\n")
        return f"{begin}\n{self.task.script}"


def expand(scenario: Scenario) -> list[Combination]:
    """Expand a scenario into its ordered combinations.

    Order is tasks (outer), contexts (middle), environments (inner).
    An empty contexts list counts as one implicit empty context.
    """
    return [
        Combination(environment=env, context=ctx, task=task)
        for task in scenario.tasks
        for ctx in scenario.effective_contexts
        for env in scenario.environments
    ]


def group_combinations(
    combinations: list[Combination],
) -> Iterator[tuple[tuple[str, int], list[Combination]]]:
    """Group consecutive combinations sharing a (task, context) key."""
    current_key: tuple[str, int] | None = None
    current: list[Combination] = []
    for combo in combinations:
        if combo.group_key != current_key and current:
            yield current_key, current  # type: ignore[misc]
            current = []
        current_key = combo.group_key
        current.append(combo)
    if current:
        yield current_key, current  # type: ignore[misc]
