"""
Command line interface for buildmetrics.

Commands:
- metrics: list the metrics a configuration resolves to
- flatten: print the flattened build metrics of a saved report
- publish: collect metrics into a saved report and publish it
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from buildmetrics import __version__
from buildmetrics.config import DEFAULT_CONFIG_FILE, BuildMetricsConfig, load_config
from buildmetrics.errors import BuildMetricsError
from buildmetrics.metrics import BuildContext, MetricContext, MetricsCollector, MetricsProvider
from buildmetrics.models import ExecutionReport
from buildmetrics.publishers import PublisherOrchestrator

app = typer.Typer(
    help="Collect build metrics and publish them to storage backends.",
    no_args_is_help=True,
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"buildmetrics {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    log_level: Annotated[
        str,
        typer.Option("--log-level", envvar="LOG_LEVEL", help="Logging level (default: INFO)"),
    ] = "INFO",
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=_version_callback, is_eager=True),
    ] = None,
) -> None:
    """Collect build metrics and publish them to storage backends."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _config(path: Path | None) -> BuildMetricsConfig:
    """Load the given config, or the default file when present, or defaults."""
    if path is None:
        default = Path(DEFAULT_CONFIG_FILE)
        if not default.exists():
            return BuildMetricsConfig()
        path = default
    try:
        return load_config(path)
    except BuildMetricsError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


def _report(path: Path) -> ExecutionReport:
    try:
        return ExecutionReport.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        typer.echo(f"Error: cannot read report {path}: {e}", err=True)
        raise typer.Exit(code=1)


def _build_context(path: Path | None) -> BuildContext:
    if path is None:
        return BuildContext()
    try:
        return BuildContext.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        typer.echo(f"Error: cannot read build context {path}: {e}", err=True)
        raise typer.Exit(code=1)


ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help=f"Configuration file (default: {DEFAULT_CONFIG_FILE})"),
]


# =============================================================================
# Commands
# =============================================================================


@app.command("metrics")
def list_metrics(config: ConfigOption = None) -> None:
    """List the metrics the configuration resolves to."""
    cfg = _config(config)
    metrics = cfg.metrics.registry().resolve()

    table = Table(title=f"{len(metrics)} metrics")
    table.add_column("#", justify="right")
    table.add_column("Metric")
    table.add_column("Source")
    for i, metric in enumerate(metrics, start=1):
        table.add_row(str(i), metric.name, metric.category)
    console.print(table)


@app.command("flatten")
def flatten(
    report: Annotated[Path, typer.Argument(help="Execution report JSON file")],
    format_: Annotated[str, typer.Option("--format", "-f", help="table or json")] = "table",
) -> None:
    """Print the flattened build metrics of a report."""
    provider = MetricsProvider(_report(report))
    metrics = provider.get()

    if format_ == "json":
        typer.echo(json.dumps(dict(metrics), indent=2))
    else:
        table = Table()
        table.add_column("Key")
        table.add_column("Value")
        table.add_column("Type")
        for key, value in metrics:
            table.add_row(key, str(value), type(value).__name__)
        console.print(table)

    for error in provider.data_quality_errors:
        typer.secho(f"  skipped: {error}", fg=typer.colors.YELLOW, err=True)


@app.command("publish")
def publish(
    report: Annotated[Path, typer.Argument(help="Execution report JSON file")],
    config: ConfigOption = None,
    context: Annotated[
        Path | None,
        typer.Option("--context", help="Build context JSON supplied by the build tool"),
    ] = None,
    collect: Annotated[
        bool, typer.Option("--collect/--no-collect", help="Apply configured metrics first")
    ] = True,
    timeout: Annotated[
        float | None, typer.Option("--timeout", help="Seconds to wait for publishers")
    ] = None,
) -> None:
    """Collect metrics into a report and publish it to every configured backend."""
    cfg = _config(config)
    execution_report = _report(report)

    if collect:
        metrics = cfg.metrics.registry().resolve()
        result = MetricsCollector(metrics).collect(
            MetricContext(build=_build_context(context)), execution_report
        )
        for name, error in result.failed.items():
            typer.secho(f"  metric {name} failed: {error}", fg=typer.colors.YELLOW, err=True)

    with PublisherOrchestrator.from_config(
        cfg.publishers, max_workers=cfg.max_workers
    ) as orchestrator:
        if not orchestrator.publishers:
            typer.echo("No publishers configured", err=True)
            raise typer.Exit(code=1)
        orchestrator.publish(execution_report)
        outcomes = orchestrator.wait(timeout=timeout)
        running = orchestrator.running()
        names = [p.name for p in orchestrator.publishers]

    table = Table(title="Publishers")
    table.add_column("Publisher")
    table.add_column("State")
    table.add_column("Rows", justify="right")
    table.add_column("Error")
    for outcome in outcomes:
        style = "green" if outcome.succeeded else "red"
        table.add_row(
            outcome.publisher,
            f"[{style}]{outcome.state.value}[/{style}]",
            str(outcome.rows_written),
            outcome.error or "",
        )
    console.print(table)

    for name in running:
        typer.secho(f"  {name}: still running after timeout", fg=typer.colors.RED, err=True)

    reported = {o.publisher for o in outcomes} | set(running)
    lost = [name for name in names if name not in reported]
    for name in lost:
        typer.secho(f"  {name}: not executed", fg=typer.colors.RED, err=True)

    if running or lost or any(not o.succeeded for o in outcomes):
        raise typer.Exit(code=1)


def main(argv: list[str] | None = None) -> Any:
    return app(args=argv)


if __name__ == "__main__":
    main()
