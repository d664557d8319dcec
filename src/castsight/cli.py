"""
CastSight CLI - Command Line Interface for combat telemetry analysis

Provides commands for:
- Analyzing an extracted match dump (kick telemetry and ranked spell metrics)
- Listing resolved and collapsed attempts
- Generating a default configuration file
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from castsight import __version__
from castsight.core.config import (
    CastSightConfig,
    generate_default_config,
    get_config,
    load_config,
    set_config,
)
from castsight.core.utils import format_percentage
from castsight.domains.spell_meta import SpellMetaCache
from castsight.export import (
    attempts_to_dataframe,
    export_rows_to_csv,
    export_to_json,
)
from castsight.pipeline.orchestrator import MatchOrchestrator

app = typer.Typer(
    name="castsight",
    help="Combat telemetry correlation - attempts, kick telemetry and ranked spell metrics",
    add_completion=False,
)
console = Console()

logger = logging.getLogger(__name__)


def configure_logging(config: CastSightConfig, verbose: bool = False) -> None:
    """Configure root logging from the logging config section."""
    level = (
        logging.DEBUG
        if verbose
        else getattr(logging, config.logging.level.upper(), logging.INFO)
    )
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.logging.file:
        handlers.append(logging.FileHandler(config.logging.file))
    logging.basicConfig(level=level, format=config.logging.format, handlers=handlers, force=True)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]CastSight[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable verbose output"),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (.yaml, .toml or .json)",
        exists=True,
        dir_okay=False,
    ),
) -> None:
    """CastSight - Combat Telemetry Correlation Engine"""
    config = load_config(config_file) if config_file else get_config()
    set_config(config)
    configure_logging(config, verbose)


def _load_match(match_path: Path, index: int) -> dict[str, Any]:
    """Read one match from a JSON dump (a match object or a list of matches)."""
    try:
        data = json.loads(match_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error loading match:[/red] {e}")
        raise typer.Exit(1)

    if isinstance(data, list):
        if not 0 <= index < len(data) or not isinstance(data[index], dict):
            console.print(f"[red]Error loading match:[/red] no match at index {index}")
            raise typer.Exit(1)
        return data[index]
    if not isinstance(data, dict):
        console.print("[red]Error loading match:[/red] expected a JSON object or list")
        raise typer.Exit(1)
    return data


def _fmt(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:,.1f}"
    return str(value)


@app.command()
def analyze(
    match_path: Path = typer.Argument(
        ...,
        help="Path to an extracted match JSON dump",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    metric: Optional[str] = typer.Option(
        None, "--metric", "-m", help="Metric to rank: damage, healing or interrupts"
    ),
    diagnostics: bool = typer.Option(
        False, "--diagnostics", "-d", help="Include the kick diagnostics breakdown"
    ),
    spell_meta_path: Optional[Path] = typer.Option(
        None, "--spell-meta", help="Spell metadata cache file (JSON)", dir_okay=False
    ),
    game_version: Optional[str] = typer.Option(
        None, "--game-version", help="Game version key in the spell metadata cache"
    ),
    index: int = typer.Option(0, "--index", "-i", help="Match index when the dump is a list"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Output file (.json for the full result, .csv for spell rows)"
    ),
    output_format: Optional[str] = typer.Option(
        None,
        "--format",
        "-f",
        help="Output format (json or csv); defaults to the file suffix, then the config",
    ),
) -> None:
    """
    Analyze a match and display kick telemetry and ranked spell metrics.
    """
    config = get_config()
    match = _load_match(match_path, index)

    spell_meta = None
    if spell_meta_path:
        spell_meta = SpellMetaCache.load(spell_meta_path).table_for(game_version)

    try:
        result = MatchOrchestrator(config).analyze(
            match,
            metric=metric,
            include_diagnostics=diagnostics or config.telemetry.include_diagnostics,
            spell_meta=spell_meta,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    _display_match_info(result["match_info"])
    _display_kick_telemetry(result["kick_telemetry"], result["reconciliation"])
    _display_spell_rows(result["spells"])

    if output:
        fmt = _resolve_output_format(output, output_format, config.export.default_format)
        if fmt == "csv":
            export_rows_to_csv(
                result["spells"]["rows"], output, delimiter=config.export.csv_delimiter
            )
        elif fmt == "json":
            export_to_json(result, output, indent=config.export.json_indent)
        else:
            console.print(f"[red]Unsupported output format:[/red] {fmt}")
            raise typer.Exit(1)
        console.print(f"\n[green]Results exported to:[/green] {output}")


def _resolve_output_format(output: Path, requested: str | None, default: str) -> str:
    """Explicit --format, else a .json/.csv suffix, else the configured default."""
    if requested:
        return requested.strip().lower()
    suffix = output.suffix.lower().lstrip(".")
    if suffix in ("json", "csv"):
        return suffix
    return default.strip().lower()


def _display_match_info(info: dict) -> None:
    table = Table(title="Match Information", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Match", info["match_id"])
    table.add_row("Owner", _fmt(info["owner_name"]))
    table.add_row("Players", str(info["player_count"]))
    table.add_row("Telemetry Version", _fmt(info["telemetry_version"]))
    table.add_row("Events", f"{info['event_count']} ({info['dropped_records']} dropped)")
    console.print(table)
    if info["is_legacy_match"]:
        console.print("[yellow]Legacy recording: kick tracking may be incomplete[/yellow]")
    console.print()


def _display_kick_telemetry(kicks: dict, reconciliation: dict | None) -> None:
    table = Table(title="Kick Telemetry", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Intent Attempts", _fmt(kicks["intent_attempts"]))
    table.add_row("Succeeded (scoreboard)", _fmt(kicks["reconciled_succeeded"]))
    table.add_row("Failed (derived)", _fmt(kicks["derived_failed"]))
    table.add_row("Success Rate", format_percentage(kicks["success_rate_pct"]))

    if kicks["includes_diagnostics"]:
        table.add_row("Cast Events", _fmt(kicks["cast_events"]))
        table.add_row("Outcome-only Attempts", _fmt(kicks["outcome_only_attempts"]))
        table.add_row("Interrupted", _fmt(kicks["interrupted_attempts"]))
        table.add_row("Unresolved", _fmt(kicks["unresolved_attempts"]))
        table.add_row("Immune", _fmt(kicks["immune_attempts"]))
        table.add_row("Air", _fmt(kicks["air_attempts"]))
    if reconciliation:
        for key, value in reconciliation.items():
            table.add_row(key.replace("_", " ").capitalize(), _fmt(value))

    console.print(table)
    console.print()


def _display_spell_rows(spells: dict) -> None:
    rows = spells["rows"]
    if not rows:
        console.print(f"[yellow]No {spells['metric']} rows available[/yellow]")
        return

    title = f"{spells['metric_label']} by Spell"
    if spells["is_fallback_to_match_totals"]:
        title += " (match totals)"
    table = Table(title=title)
    table.add_column("Spell", style="cyan")
    table.add_column(spells["impact_label"], justify="right")
    table.add_column("Share", justify="right")
    table.add_column("Casts", justify="right")
    table.add_column("Avg/Cast", justify="right")

    for row in rows:
        table.add_row(
            row["display_name"],
            _fmt(float(row["value"])),
            format_percentage(row["share_pct"]),
            str(row["total_attempts"]),
            _fmt(row["avg_per_cast"]),
        )
    console.print(table)
    console.print()


@app.command()
def attempts(
    match_path: Path = typer.Argument(
        ...,
        help="Path to an extracted match JSON dump",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    ability: Optional[list[int]] = typer.Option(
        None, "--ability", "-a", help="Only show these ability ids (repeatable)"
    ),
    collapsed: bool = typer.Option(
        True, "--collapsed/--raw", help="Show collapsed attempts or raw resolver attempts"
    ),
    index: int = typer.Option(0, "--index", "-i", help="Match index when the dump is a list"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write attempts to CSV"),
) -> None:
    """
    List the attempts resolved from a match timeline.
    """
    config = get_config()
    match = _load_match(match_path, index)

    resolution, collapse = MatchOrchestrator(config).resolve_attempts(match, ability or None)
    if collapsed:
        shown = collapse.attempts
    elif ability:
        shown = resolution.attempts_for(ability)
    else:
        shown = resolution.attempts

    df = attempts_to_dataframe(shown)
    if df.empty:
        console.print("[yellow]No attempts found[/yellow]")
        return

    table = Table(title=f"{'Collapsed' if collapsed else 'Resolved'} Attempts ({len(df)})")
    table.add_column("Ability", style="cyan", justify="right")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Grouping")
    table.add_column("Events", justify="right")
    table.add_column("Intent")
    table.add_column("Outcome")

    for row in df.itertuples(index=False):
        table.add_row(
            str(row.ability_id),
            f"{row.start_time:.3f}",
            f"{row.observed_end_time:.3f}",
            row.grouping,
            str(row.event_count),
            "yes" if row.has_intent else "no",
            row.resolved_outcome or "[yellow]unresolved[/yellow]",
        )
    console.print(table)

    if output:
        export_rows_to_csv(df, output, delimiter=config.export.csv_delimiter)
        console.print(f"\n[green]Attempts exported to:[/green] {output}")


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(Path("castsight.yaml"), help="Where to write the config file"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """
    Write a default configuration file.
    """
    if path.exists() and not force:
        console.print(f"[red]Error:[/red] {path} already exists (use --force to overwrite)")
        raise typer.Exit(1)
    try:
        generate_default_config(path)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Wrote default config to:[/green] {path}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
