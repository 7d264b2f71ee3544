"""Command-line interface for versus.

Subcommands:
    versus run       Benchmark one or more scenario descriptors
    versus show      Display a saved run
    versus export    Export a saved run to CSV or JSON
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from versus import __version__
from versus.bench.errors import ConfigurationError
from versus.logging import get_logger, setup_logging

log = get_logger("cli")

EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """versus: compare how fast scripts run under different interpreters."""


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@main.command()
@click.argument(
    "descriptors",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--iterations",
    type=int,
    default=None,
    help="Minimum measured iterations per combination (default: 5).",
)
@click.option(
    "--min-duration",
    type=float,
    default=None,
    help="Minimum total measured seconds per combination (default: 0).",
)
@click.option(
    "--max-iterations",
    type=int,
    default=None,
    help="Hard cap on measured iterations per combination.",
)
@click.option(
    "--warmup",
    type=int,
    default=None,
    help="Discarded runs before measuring (overrides the descriptor).",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Per-process timeout in seconds (default: 600).",
)
@click.option("--baseline", type=str, default=None, help="Baseline environment name.")
@click.option(
    "--retries",
    type=int,
    default=None,
    help="Re-run a failed combination up to N times (default: 0).",
)
@click.option(
    "--executable",
    "default_command",
    type=str,
    default=None,
    help="Command for an implicit 'default' environment when a descriptor declares none.",
)
@click.option(
    "--results-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Save run_meta.json and results.jsonl under DIR/<run id>.",
)
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
    help="Report format on stdout.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log every process invocation.")
@click.option("-q", "--quiet", is_flag=True, help="Only log warnings and errors.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write a DEBUG log to this file.",
)
def run(  # noqa: PLR0913
    descriptors: tuple[Path, ...],
    iterations: int | None,
    min_duration: float | None,
    max_iterations: int | None,
    warmup: int | None,
    timeout: float | None,
    baseline: str | None,
    retries: int | None,
    default_command: str | None,
    results_dir: Path | None,
    fmt: str,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Benchmark every task of each DESCRIPTOR under every environment.

    Each descriptor is run independently, in the order given.

    \b
    Exit status:
        0    every run completed
        1    at least one combination failed
        2    invalid descriptor or options
        130  interrupted

    \b
    Examples:
        # Compare two interpreters on the tasks in bench.yaml
        versus run bench.yaml

        # Single interpreter, no environments in the descriptor
        versus run tasks.yaml --executable "python3 -X importtime"

        # Keep sampling for at least 2 seconds, save the results
        versus run bench.yaml --min-duration 2 --results-dir results
    """
    from versus.bench.compare import compare_results
    from versus.bench.config import BenchConfig, load_run
    from versus.bench.display import format_run
    from versus.bench.export import export_json
    from versus.bench.results import RunState
    from versus.bench.runner import BenchRunner

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    cli_overrides: dict[str, object] = {
        "min_iterations": iterations,
        "min_duration": min_duration,
        "max_iterations": max_iterations,
        "warmup": warmup,
        "timeout": timeout,
        "baseline": baseline,
        "retries": retries,
        "default_command": default_command,
        "results_dir": results_dir,
        "cli_args": sys.argv[1:],
    }

    # Validate every descriptor before running any of them.
    runs = []
    base_run_id = BenchConfig().run_id
    for path in descriptors:
        if len(descriptors) > 1:
            cli_overrides["run_id"] = f"{base_run_id}_{path.stem}"
        try:
            runs.append(load_run(path, cli_overrides=cli_overrides))
        except ConfigurationError as exc:
            click.echo(f"Error in {path}: {exc}", err=True)
            raise SystemExit(EXIT_CONFIG_ERROR) from exc

    states: list[RunState] = []
    try:
        for scenario, config in runs:
            bench_run = BenchRunner(scenario, config).run()
            states.append(bench_run.state)

            if fmt == "json":
                text = export_json(bench_run.meta, bench_run.results, bench_run.comparisons)
                click.echo(text, nl=False)
            else:
                comparisons = compare_results(bench_run.results, config.baseline)
                click.echo(format_run(bench_run.meta, bench_run.results, comparisons))
            if config.output_dir is not None:
                click.echo(f"Results saved to: {config.output_dir}", err=True)

            if bench_run.state is RunState.CANCELLED:
                break
    except KeyboardInterrupt:
        click.echo("\nBenchmark interrupted.", err=True)
        raise SystemExit(EXIT_INTERRUPTED)  # noqa: B904
    except ConfigurationError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_CONFIG_ERROR) from exc

    raise SystemExit(max(state.exit_code for state in states))


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@main.command("show")
@click.argument("result_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
def show(result_dir: Path) -> None:
    """Display a saved run.

    RESULT_DIR is a run directory containing run_meta.json and
    results.jsonl.
    """
    from versus.bench.compare import compare_results
    from versus.bench.display import format_run
    from versus.bench.results import load_bench_run

    try:
        meta, results = load_bench_run(result_dir)
    except FileNotFoundError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    comparisons = compare_results(results, meta.config.get("baseline"))
    click.echo(format_run(meta, results, comparisons))


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


@main.command("export")
@click.argument("result_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["csv", "csv-summary", "json"]),
    default="csv",
    show_default=True,
    help="Export format.",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Output file (default: stdout).",
)
def export(result_dir: Path, fmt: str, output: Path | None) -> None:
    """Export a saved run.

    \b
    Examples:
        versus export results/run_20240101_120000 > samples.csv
        versus export results/run_20240101_120000 --format csv-summary
        versus export results/run_20240101_120000 --format json -o run.json
    """
    from versus.bench.export import export_run
    from versus.bench.results import load_bench_run

    try:
        meta, results = load_bench_run(result_dir)
    except FileNotFoundError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    text = export_run(fmt, meta, results)
    if output:
        output.write_text(text)
        log.info("Exported %d combinations to %s", len(results), output)
        click.echo(f"Exported to {output}")
    else:
        click.echo(text, nl=False)
