"""Shared text formatting helpers for versus.

Provides functions for formatting durations, ratios, status markers and
aligned tables used by the report display and the CLI.
"""

from __future__ import annotations

import math
import signal


def format_duration(seconds: float) -> str:
    """Format elapsed wall time as ``'8s'``, ``'1m 23s'`` or ``'1h 12m 34s'``.

    Fractions of a second are dropped.
    """
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:2d}m {secs:2d}s"
    if minutes:
        return f"{minutes}m {secs:2d}s"
    return f"{secs}s"


def format_time(seconds: float, precision: int = 2) -> str:
    """Format a measured time with adaptive units (µs, ms, s)."""
    if math.isnan(seconds):
        return "N/A"
    if seconds < 0.001:
        return f"{seconds * 1_000_000:.0f}µs"
    if seconds < 1:
        return f"{seconds * 1000:.{precision}f}ms"
    if seconds < 60:
        return f"{seconds:.{precision}f}s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    return f"{minutes}m{secs:.0f}s"


def format_rate(ips: float) -> str:
    """Format iterations per second: ``'98.3 i/s'``, ``'1.25k i/s'``."""
    if math.isnan(ips) or math.isinf(ips):
        return "N/A"
    if ips >= 1_000_000:
        return f"{ips / 1_000_000:.2f}M i/s"
    if ips >= 1000:
        return f"{ips / 1000:.2f}k i/s"
    return f"{ips:.1f} i/s"


def format_ratio(ratio: float | None) -> str:
    """Format a speed ratio against the baseline: ``'1.00x'``, ``'2.31x'``."""
    if ratio is None or math.isnan(ratio):
        return "-"
    return f"{ratio:.2f}x"


def format_status_icon(status: str) -> str:
    """Return a visual status indicator for the given status string."""
    icons: dict[str, str] = {
        "measured": "✓ OK",
        "failed": "✗ FAILED",
        "timeout": "⏱ TIMEOUT",
        "spawn": "⚠ SPAWN ERROR",
        "exit": "✗ EXIT",
        "completed": "✓ COMPLETED",
        "partially_failed": "✗ PARTIALLY FAILED",
        "cancelled": "⊘ CANCELLED",
    }
    return icons.get(status, status.upper())


def format_table(
    headers: list[str],
    rows: list[list[str]],
    *,
    alignments: list[str] | None = None,
    max_col_width: dict[int, int] | None = None,
) -> str:
    """Lay out *rows* under *headers* with a rule line between them.

    Every row must have one cell per header.

    Args:
        headers: Column header strings.
        rows: Cell strings, one list per row.
        alignments: ``'r'`` right-aligns a column; anything else, or a
            missing entry, left-aligns it.
        max_col_width: Column index to maximum width; longer cells are
            cut with ``'...'``.
    """
    if not headers:
        return ""

    table = [list(headers)] + [list(row) for row in rows]
    for ci, limit in (max_col_width or {}).items():
        for line in table:
            line[ci] = truncate(line[ci], limit)

    widths = [max(len(line[ci]) for line in table) for ci in range(len(headers))]
    right = {ci for ci, align in enumerate(alignments or []) if align == "r"}

    def _render(cells: list[str]) -> str:
        padded = (
            cell.rjust(width) if ci in right else cell.ljust(width)
            for ci, (cell, width) in enumerate(zip(cells, widths))
        )
        return ("  " + "  ".join(padded)).rstrip()

    lines = [_render(table[0]), "  " + "  ".join("─" * w for w in widths)]
    lines.extend(_render(line) for line in table[1:])
    return "\n".join(lines)


def format_section_header(title: str, width: int = 80) -> str:
    """Format a section header: ``'─── Title ──...'``."""
    head = f"─── {title} "
    return head + "─" * max(0, width - len(head))


def truncate(text: str, max_len: int) -> str:
    """Cut *text* to *max_len* characters, ending in ``'...'`` when cut."""
    if len(text) <= max_len:
        return text
    return (text[: max(0, max_len - 3)] + "...")[:max_len]


def format_signal_name(sig: int | None) -> str:
    """Convert a signal number to its name, e.g. 11 → 'SIGSEGV'.

    Returns ``""`` if *sig* is ``None``.
    """
    if sig is None:
        return ""
    try:
        return signal.Signals(sig).name
    except ValueError:
        return f"SIG{sig}"
