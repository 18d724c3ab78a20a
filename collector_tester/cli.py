#!/usr/bin/env python3
"""
Command-Line Interface for the collector testing framework.

Usage:
    # Run a coordinated load test from a suite file
    python3 -m collector_tester run --config suites/basic.yaml

    # Override the load for a quick run and keep a JSON report
    python3 -m collector_tester run -c suites/basic.yaml --duration 10s \\
        --spans-per-second 500 --output results/basic.json

    # Check a suite file without running anything
    python3 -m collector_tester validate suites/basic.yaml
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__

logger = logging.getLogger(__name__)
console = Console()

EXIT_VERDICT_FAILED = 1
EXIT_INFRASTRUCTURE_ERROR = 2


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False)],
        force=True,
    )


class CLIContext:
    """Context object for CLI commands."""

    def __init__(self):
        self.verbose = False


pass_context = click.make_pass_decorator(CLIContext, ensure=True)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.version_option(version=__version__, prog_name="collector-tester")
@pass_context
def cli(ctx: CLIContext, verbose: bool):
    """
    Collector pipeline load and resource testing.

    Start a collector container, drive synthetic telemetry through it, and
    watch its memory while it works.
    """
    ctx.verbose = verbose
    _configure_logging(verbose)
    if verbose:
        logger.debug("Verbose mode enabled")


async def _run_suite(config):
    from .harness.harness import harness_session
    from .monitor.coordinator import LoadTestCoordinator

    async with harness_session(config.to_harness_config()) as harness:
        coordinator = LoadTestCoordinator(protocol=config.load.protocol)
        return await coordinator.run_load_test(
            harness,
            config.to_load_profile(),
            monitor_interval_seconds=config.monitor.interval_seconds,
        )


@cli.command()
@click.option(
    "-c", "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="Path to the suite configuration file",
)
@click.option("--image-tag", type=str, default=None, help="Collector image tag (overrides config)")
@click.option("--duration", type=str, default=None, help="Load duration, e.g. 30s or 5m")
@click.option("--spans-per-second", type=float, default=None, help="Span rate")
@click.option("--metrics-per-second", type=float, default=None, help="Metric measurement rate")
@click.option("--logs-per-second", type=float, default=None, help="Log record rate")
@click.option("--monitor-interval", type=str, default=None, help="Memory sampling interval, e.g. 500ms")
@click.option(
    "--output", "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the result as JSON to this file",
)
@pass_context
def run(
    ctx: CLIContext,
    config_path: Path,
    image_tag: Optional[str],
    duration: Optional[str],
    spans_per_second: Optional[float],
    metrics_per_second: Optional[float],
    logs_per_second: Optional[float],
    monitor_interval: Optional[str],
    output: Optional[Path],
):
    """
    Run a coordinated load test.

    Exits 1 when the collector's memory grows faster than the configured
    threshold or is projected to pass its limit, and 2 when the test could
    not be run.
    """
    from .framework.config import load_config
    from .framework.errors import CollectorTesterError, ConfigValidationError

    try:
        config = load_config(
            config_path,
            image_tag=image_tag,
            duration=duration,
            spans_per_second=spans_per_second,
            metrics_per_second=metrics_per_second,
            logs_per_second=logs_per_second,
            monitor_interval=monitor_interval,
        )
    except ConfigValidationError as e:
        _print_validation_errors(e)
        sys.exit(EXIT_INFRASTRUCTURE_ERROR)
    except ValueError as e:
        console.print(f"[bold red]Invalid configuration:[/bold red] {e}")
        sys.exit(EXIT_INFRASTRUCTURE_ERROR)

    console.print(f"\n[bold blue]Collector Load Test[/bold blue] {config.name}")
    console.print(f"Image: [cyan]{config.harness.image}:{config.harness.image_tag}[/cyan]")
    console.print(f"Duration: [cyan]{config.load.duration_seconds:g}s[/cyan]")

    try:
        result = asyncio.run(_run_suite(config))
    except CollectorTesterError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        logs = getattr(e, "logs", "")
        if logs:
            console.print("[bold]Collector logs:[/bold]")
            console.print(logs, markup=False, highlight=False)
        if ctx.verbose:
            console.print_exception()
        sys.exit(EXIT_INFRASTRUCTURE_ERROR)

    leak = result.has_memory_leak(config.monitor.leak_threshold_bytes_per_second)
    oom = False
    limit = config.monitor.memory_limit_bytes or result.memory_analysis.limit_bytes
    if limit:
        oom = result.would_oom_in(limit, config.monitor.projection_seconds)

    _display_result(result, leak, oom)

    if output:
        report = result.to_dict()
        report["suite"] = config.name
        report["verdict"] = {"memory_leak": leak, "projected_oom": oom, "memory_limit_bytes": limit}
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(report, indent=2), encoding="utf-8")
        console.print(f"\n[bold]Report saved to:[/bold] {output}")

    sys.exit(EXIT_VERDICT_FAILED if leak or oom else 0)


def _display_result(result, leak: bool, oom: bool) -> None:
    """Display a load test result in a formatted table."""
    stats = result.load_stats
    memory = result.memory_analysis

    table = Table(title="Load Test Results", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    passed = not (leak or oom)
    status_style = "green" if passed else "red"
    table.add_row("Status", f"[{status_style}]{'PASSED' if passed else 'FAILED'}[/{status_style}]")
    table.add_row("Duration", f"{stats.elapsed_seconds:.2f}s")
    table.add_row("Spans sent", f"{stats.spans_sent} ({stats.spans_per_second():.1f}/s)")
    table.add_row("Metrics sent", f"{stats.metrics_sent} ({stats.metrics_per_second():.1f}/s)")
    table.add_row("Logs sent", f"{stats.logs_sent} ({stats.logs_per_second():.1f}/s)")
    table.add_row("Emit errors", f"[red]{stats.errors}[/red]" if stats.errors else "0")
    table.add_row("Memory min / max", f"{memory.min_mb:.2f} / {memory.max_mb:.2f} MB")
    table.add_row("Memory avg", f"{memory.avg_mb:.2f} MB")
    table.add_row("Growth", f"{memory.growth_rate_mb_per_sec:.4f} MB/s")
    table.add_row("Samples", str(memory.sample_count))
    table.add_row("Memory leak", "[red]yes[/red]" if leak else "no")
    table.add_row("Projected OOM", "[red]yes[/red]" if oom else "no")

    console.print(table)


def _print_validation_errors(error) -> None:
    console.print(f"[bold red]{error}[/bold red]")
    for message in error.errors:
        console.print(f"  • {message}")


@cli.command()
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(config_path: Path):
    """Validate a suite configuration file."""
    from .framework.config import SuiteConfig
    from .framework.errors import ConfigValidationError

    try:
        config = SuiteConfig.from_yaml(config_path)
        config.to_harness_config()
        config.to_load_profile()
    except ConfigValidationError as e:
        _print_validation_errors(e)
        sys.exit(EXIT_INFRASTRUCTURE_ERROR)
    except ValueError as e:
        console.print(f"[bold red]Invalid configuration:[/bold red] {e}")
        sys.exit(EXIT_INFRASTRUCTURE_ERROR)

    console.print(f"[green]Configuration '{config.name}' is valid[/green]")


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
