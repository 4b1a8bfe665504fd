"""SpellTree CLI - typer application entry point."""

from __future__ import annotations

import atexit
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from spelltree.observability import close_file_logging, configure_logging

# Load environment variables from .env file
load_dotenv()

if TYPE_CHECKING:
    from spelltree.graph.validation_types import ValidationReport
    from spelltree.pipeline import ParseResult, TreeConfig

app = typer.Typer(
    name="spelltree",
    help="SpellTree: validate, repair and densify generated spell prerequisite trees.",
    no_args_is_help=True,
)
console = Console()

DEFAULT_OUTPUT_DIR = Path("out")

SEVERITY_ICONS = {"pass": "[green]✓[/green]", "fail": "[red]✗[/red]"}


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_dir: Annotated[
        Path | None,
        typer.Option(
            "--log-dir",
            help="Also write structured logs to {log_dir}/debug.jsonl.",
            envvar="SPELLTREE_LOG_DIR",
        ),
    ] = None,
) -> None:
    """SpellTree: validate, repair and densify generated spell prerequisite trees."""
    configure_logging(verbosity=verbose, log_dir=log_dir)
    if log_dir is not None:
        atexit.register(close_file_logging)


def _read_source(path: Path) -> bytes:
    if not path.is_file():
        console.print(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(1)
    return path.read_bytes()


def _load_config(config_path: Path | None) -> TreeConfig:
    """Load config from --config, else ./spelltree.yaml if present, else defaults."""
    from spelltree.pipeline.config import (
        CONFIG_FILENAME,
        ConfigError,
        create_default_config,
        load_tree_config,
    )

    if config_path is None and Path(CONFIG_FILENAME).is_file():
        config_path = Path(CONFIG_FILENAME)
    if config_path is None:
        return create_default_config()
    try:
        return load_tree_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def _parse_or_exit(source: bytes, config: TreeConfig) -> ParseResult:
    from spelltree.pipeline import LoggingObserver, SpellTreeParser

    parser = SpellTreeParser(config, observers=[LoggingObserver()])
    result = parser.parse(source)
    if not result.success:
        console.print(f"[red]✗[/red] Could not parse tree: {result.error}")
        raise typer.Exit(1)
    return result


def _print_skipped(result: ParseResult) -> None:
    for skip in result.skipped_schools:
        console.print(f"[yellow]![/yellow] Skipped school [bold]{skip.school}[/bold]: {skip.reason}")


def _print_validation(report: ValidationReport) -> None:
    console.print()
    for check in report.checks:
        console.print(f"  {SEVERITY_ICONS[check.severity]} {check.name}: {check.message}")
    console.print(f"  [dim]{report.summary}[/dim]")


def _write_exports(result: ParseResult, output_dir: Path) -> None:
    from spelltree.export import JsonExporter

    exporter = JsonExporter()
    tree_file = exporter.export(result, output_dir)
    raw_file = exporter.export_raw(result, output_dir)
    console.print()
    console.print(f"  Layout input: [cyan]{tree_file}[/cyan]")
    console.print(f"  Repaired source: [cyan]{raw_file}[/cyan]")


@app.command()
def version() -> None:
    """Show version information."""
    from spelltree import __version__

    console.print(f"SpellTree v{__version__}")


@app.command()
def check(
    file: Annotated[Path, typer.Argument(help="Generated spell tree JSON file.")],
) -> None:
    """Report unreachable spells without repairing anything.

    Exits with status 1 when any school has spells that can never be learned.
    """
    from spelltree.graph import SpellGraph, TreeParseError, unreachable_report
    from spelltree.pipeline import decode_source

    try:
        raw = decode_source(_read_source(file))
    except TreeParseError as e:
        console.print(f"[red]✗[/red] Could not parse tree: {e.reason}")
        raise typer.Exit(1) from e

    schools = raw.get("schools")
    if not isinstance(schools, dict) or not schools:
        console.print("[red]✗[/red] Could not parse tree: Missing schools")
        raise typer.Exit(1)

    graph = SpellGraph()
    ingest = graph.ingest(schools)
    graph.reconcile_edges()

    table = Table(title=f"Reachability: {file.name}")
    table.add_column("School", style="bold")
    table.add_column("Spells", justify="right")
    table.add_column("Reachable", justify="right")
    table.add_column("Unreachable")

    reports = [unreachable_report(graph, name) for name in graph.schools]
    for report in reports:
        unreachable = ", ".join(u.node_id for u in report.unreachable[:5])
        if len(report.unreachable) > 5:
            unreachable += f" (+{len(report.unreachable) - 5})"
        table.add_row(
            report.school,
            str(report.total),
            str(report.reachable),
            f"[red]{unreachable}[/red]" if unreachable else "[green]-[/green]",
        )
    console.print(table)
    for skip in ingest.skipped:
        console.print(f"[yellow]![/yellow] Skipped school [bold]{skip.school}[/bold]: {skip.reason}")

    if any(not r.valid for r in reports):
        raise typer.Exit(1)
    console.print("[green]✓[/green] All spells are obtainable")


@app.command()
def repair(
    file: Annotated[Path, typer.Argument(help="Generated spell tree JSON file.")],
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Directory for tree.json and tree.raw.json."),
    ] = DEFAULT_OUTPUT_DIR,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="YAML config file (default: ./spelltree.yaml)."),
    ] = None,
    preserve_multi_prereqs: Annotated[
        bool,
        typer.Option(
            "--preserve-multi-prereqs",
            help="Keep partially blocked multi-prerequisite spells intact while repairing.",
        ),
    ] = False,
) -> None:
    """Parse and repair a tree, then write the layout input."""
    from spelltree.graph import run_tree_checks

    config = _load_config(config_path)
    if preserve_multi_prereqs:
        config.repair.preserve_multi_prereqs = True

    result = _parse_or_exit(_read_source(file), config)
    assert result.graph is not None

    table = Table(title=f"Repair: {file.name}")
    table.add_column("School", style="bold")
    table.add_column("Spells", justify="right")
    table.add_column("Orphans", justify="right")
    table.add_column("Fixes", justify="right")
    table.add_column("Passes", justify="right")
    table.add_column("Max depth", justify="right")
    for name, school in result.graph.schools.items():
        summary = result.repairs[name]
        table.add_row(
            name,
            str(len(school.node_ids)),
            str(result.orphans_fixed.get(name, 0)),
            str(summary.fixes),
            str(summary.passes),
            str(school.max_depth),
        )
    console.print(table)
    _print_skipped(result)

    report = run_tree_checks(result.graph)
    _print_validation(report)
    _write_exports(result, output)
    if report.has_failures:
        raise typer.Exit(1)


@app.command()
def inject(
    file: Annotated[Path, typer.Argument(help="Generated spell tree JSON file.")],
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Directory for tree.json and tree.raw.json."),
    ] = DEFAULT_OUTPUT_DIR,
    seed: Annotated[
        int | None, typer.Option("--seed", help="Random seed for reproducible injection.")
    ] = None,
    chance: Annotated[
        float | None, typer.Option("--chance", help="Percent chance per eligible spell (0-100).")
    ] = None,
    max_prereqs: Annotated[
        int | None, typer.Option("--max-prereqs", help="Skip spells with this many prerequisites.")
    ] = None,
    min_depth: Annotated[
        int | None, typer.Option("--min-depth", help="Skip spells shallower than this depth.")
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="YAML config file (default: ./spelltree.yaml)."),
    ] = None,
) -> None:
    """Parse and repair a tree, add procedural prerequisites, then write the layout input."""
    from spelltree.pipeline import InjectionConfig

    config = _load_config(config_path)
    base = config.injection
    config.injection = InjectionConfig(
        enabled=True,
        chance=base.chance if chance is None else chance,
        max_prereqs=base.max_prereqs if max_prereqs is None else max_prereqs,
        min_depth=base.min_depth if min_depth is None else min_depth,
        same_tier_preference=base.same_tier_preference,
        seed=base.seed if seed is None else seed,
    )

    result = _parse_or_exit(_read_source(file), config)
    _print_skipped(result)
    injection = result.injection
    if injection is None:
        console.print("[red]✗[/red] Injection did not run")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] Injected [bold]{injection.count}[/bold] prerequisite(s) "
        f"across {injection.considered} eligible spell(s)"
    )
    for edge in injection.injected[:10]:
        console.print(f"  [dim]{edge.school}:[/dim] {edge.node_id} ← {edge.prerequisite}")
    if injection.count > 10:
        console.print(f"  ... and {injection.count - 10} more")
    _write_exports(result, output)


if __name__ == "__main__":
    app()
