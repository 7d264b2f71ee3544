"""Timing capture for single benchmark processes.

Every measured iteration is one external process: the environment's
command is invoked with the path of a freshly written script file as
its last argument.  Wall-clock time brackets the process lifetime as
seen by the parent; CPU time comes from ``resource.getrusage`` on
reaped children.

Failures (nonzero exit, spawn errors, timeouts) are returned as
:class:`ProcessFailure` values, never raised.
"""

from __future__ import annotations

import logging
import os
import resource
import signal
import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

from versus.formatting import format_signal_name

log = logging.getLogger("versus")

# How much stderr a failure keeps.
STDERR_TAIL_CHARS = 4096

# Failure causes.
CAUSE_EXIT = "exit"
CAUSE_SPAWN = "spawn"
CAUSE_TIMEOUT = "timeout"


# ---------------------------------------------------------------------------
# ProcessFailure
# ---------------------------------------------------------------------------


@dataclass
class ProcessFailure:
    """Why a process did not produce a usable timing."""

    cause: str  # "exit", "spawn" or "timeout"
    message: str
    exit_code: int | None = None
    stderr: str = ""

    @property
    def is_timeout(self) -> bool:
        """Timeouts are failures tagged distinctly for reporting."""
        return self.cause == CAUSE_TIMEOUT

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "cause": self.cause,
            "message": self.message,
            "exit_code": self.exit_code,
            "stderr": self.stderr,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProcessFailure:
        """Deserialize from a dict."""
        return cls(
            cause=data["cause"],
            message=data.get("message", ""),
            exit_code=data.get("exit_code"),
            stderr=data.get("stderr", ""),
        )


# ---------------------------------------------------------------------------
# TimedResult
# ---------------------------------------------------------------------------


@dataclass
class TimedResult:
    """Result of a timed subprocess execution."""

    wall_time_s: float
    user_time_s: float
    sys_time_s: float
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False
    failure: ProcessFailure | None = None

    @property
    def cpu_time_s(self) -> float:
        """Total CPU time (user + system)."""
        return self.user_time_s + self.sys_time_s

    @property
    def ok(self) -> bool:
        """True if the process ran to completion and exited 0."""
        return self.failure is None


# ---------------------------------------------------------------------------
# Core timing implementation
# ---------------------------------------------------------------------------


def run_timed(
    command: Sequence[str],
    script: str,
    *,
    workdir: str | Path | None = None,
    timeout: float = 600,
    env: dict[str, str] | None = None,
) -> TimedResult:
    """Run *script* under *command* and capture its timing.

    The script is written to a unique file in *workdir* (the system
    temp directory if None), passed as the last argument, and removed
    once the process has been reaped.

    Args:
        command: Executable plus leading arguments.
        script: Program text for the executable.
        workdir: Directory for the script file; also the process cwd.
        timeout: Maximum execution time in seconds.
        env: Extra environment variables for the subprocess.

    Returns:
        TimedResult with timing data, output and, on failure, a
        ProcessFailure.
    """
    fd, script_path = tempfile.mkstemp(
        prefix="versus-",
        suffix=".script",
        dir=str(workdir) if workdir else None,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(script)
        return _run_process(
            [*command, script_path],
            cwd=workdir,
            env=env,
            timeout=timeout,
        )
    finally:
        try:
            os.unlink(script_path)
        except OSError:
            pass


def _run_process(
    args: list[str],
    *,
    cwd: str | Path | None,
    env: dict[str, str] | None,
    timeout: float,
) -> TimedResult:
    """Spawn, wait for and reap a single process."""
    run_env = dict(os.environ)
    if env:
        run_env.update(env)

    log.debug("Running: %s", " ".join(args))

    # Snapshot children's resource usage before.
    pre_rusage = resource.getrusage(resource.RUSAGE_CHILDREN)
    wall_start = time.monotonic()

    try:
        proc = subprocess.Popen(
            args,
            cwd=str(cwd) if cwd else None,
            env=run_env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            start_new_session=True,
        )
    except OSError as exc:
        wall_time = time.monotonic() - wall_start
        reason = exc.strerror or str(exc)
        log.debug("Spawn failed for %s: %s", args[0], reason)
        return TimedResult(
            wall_time_s=round(wall_time, 6),
            user_time_s=0.0,
            sys_time_s=0.0,
            exit_code=-1,
            stdout="",
            stderr=str(exc),
            failure=ProcessFailure(
                cause=CAUSE_SPAWN,
                message=f"Could not start {args[0]}: {reason}",
                stderr=str(exc),
            ),
        )

    timed_out = False
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
        exit_code = proc.returncode
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_process_group(proc.pid)
        try:
            stdout, stderr = proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            stdout, stderr = proc.communicate()
        exit_code = -1
    except BaseException:
        # Interrupted while waiting: never leave the child behind.
        _kill_process_group(proc.pid)
        proc.kill()
        proc.wait()
        raise

    wall_time = time.monotonic() - wall_start

    # Snapshot children's resource usage after.
    post_rusage = resource.getrusage(resource.RUSAGE_CHILDREN)
    user_time = post_rusage.ru_utime - pre_rusage.ru_utime
    sys_time = post_rusage.ru_stime - pre_rusage.ru_stime

    failure = _classify(exit_code, stderr, timed_out=timed_out, timeout=timeout)
    log.debug(
        "Process %d exited %d after %.6fs (cpu %.6fs)",
        proc.pid,
        exit_code,
        wall_time,
        max(user_time, 0.0) + max(sys_time, 0.0),
    )

    return TimedResult(
        wall_time_s=round(wall_time, 6),
        user_time_s=round(max(user_time, 0.0), 6),
        sys_time_s=round(max(sys_time, 0.0), 6),
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
        failure=failure,
    )


def _classify(
    exit_code: int,
    stderr: str,
    *,
    timed_out: bool,
    timeout: float,
) -> ProcessFailure | None:
    """Turn an exit status into a ProcessFailure, or None for success."""
    tail = stderr[-STDERR_TAIL_CHARS:] if stderr else ""
    if timed_out:
        return ProcessFailure(
            cause=CAUSE_TIMEOUT,
            message=f"Timed out after {timeout:g}s",
            stderr=tail,
        )
    if exit_code == 0:
        return None
    if exit_code < 0:
        message = f"Terminated by {format_signal_name(-exit_code)}"
    else:
        message = f"Exited with code {exit_code}"
    return ProcessFailure(cause=CAUSE_EXIT, message=message, exit_code=exit_code, stderr=tail)


def _kill_process_group(pid: int) -> None:
    """Attempt to kill the entire process group."""
    try:
        os.killpg(os.getpgid(pid), signal.SIGKILL)
    except (ProcessLookupError, PermissionError, OSError):
        pass
