"""Command-line interface for the note suggestion engine."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from note_suggestions.config.settings import get_settings
from note_suggestions.models import DebugVerbosity, EngineConfig, NoteInput, RunResult, SuggestionType
from note_suggestions.pipeline import PipelineError, compute_suggestion_key, run_pipeline
from note_suggestions import storage

load_dotenv()

# Configure structlog for CLI
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

app = typer.Typer(
    name="notesug",
    help="Note Suggestions - Turn meeting notes into grounded, scored suggestions",
    add_completion=False,
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr, force=True)


@app.command()
def analyze(
    note_path: Path = typer.Argument(
        ...,
        help="Path to the meeting note (plain text or markdown)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    note_id: Optional[str] = typer.Option(
        None,
        "--note-id",
        help="Note identifier (default: the file stem)",
    ),
    max_suggestions: Optional[int] = typer.Option(
        None,
        "--max",
        min=0,
        help="Maximum suggestions per note, 0 = uncapped (default: from settings)",
    ),
    debug: Optional[bool] = typer.Option(
        None,
        "--debug/--no-debug",
        help="Record a debug run alongside the result",
    ),
    verbosity: Optional[DebugVerbosity] = typer.Option(
        None,
        "--verbosity",
        case_sensitive=False,
        help="Debug verbosity: off, redacted or full_text",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the JSON result (and debug run) to this path",
    ),
    store_debug: bool = typer.Option(
        False,
        "--store-debug",
        help="Persist the debug run in the debug store",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Run the suggestion pipeline on a note file."""
    _configure_logging(verbose)

    settings = get_settings()
    config = EngineConfig.from_settings(settings)
    updates = {}
    if max_suggestions is not None:
        updates["max_suggestions_per_note"] = max_suggestions
    if debug is not None:
        updates["enable_debug"] = debug
    if verbosity is not None:
        updates["debug_verbosity"] = verbosity
        if verbosity != DebugVerbosity.OFF and debug is None:
            updates["enable_debug"] = True
    if store_debug and debug is None:
        updates["enable_debug"] = True
    config = config.model_copy(update=updates)

    note = NoteInput(
        note_id=note_id or note_path.stem,
        raw_text=note_path.read_text(encoding="utf-8"),
    )

    try:
        result, debug_run = run_pipeline(note, config)
    except PipelineError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    _display_result(result)

    if output is not None:
        payload = {"result": result.model_dump(mode="json")}
        if debug_run is not None:
            payload["debug_run"] = debug_run.model_dump(mode="json")
        output.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"\n[green]Result saved to:[/green] {output}")

    if debug_run is not None:
        console.print(
            f"[dim]Debug run:[/dim] {debug_run.meta.verbosity.value}, "
            f"{debug_run.payload_bytes} bytes"
        )
        if result.debug_storage_skipped_reason:
            console.print(f"[yellow]Debug run not persistable:[/yellow] {result.debug_storage_skipped_reason}")

    if store_debug:
        if debug_run is None:
            console.print("[yellow]Nothing to store:[/yellow] debug is off")
        else:
            outcome = asyncio.run(storage.save_debug_run(note.note_id, debug_run))
            if outcome.stored:
                console.print(f"[green]Debug run stored:[/green] {outcome.path}")
            else:
                console.print(f"[yellow]Debug run not stored ({outcome.reason}):[/yellow] {outcome.message}")


@app.command()
def key(
    note_id: str = typer.Option(..., "--note-id", help="Note identifier"),
    section_id: str = typer.Option(..., "--section-id", help="Section identifier, e.g. section_001"),
    suggestion_type: SuggestionType = typer.Option(..., "--type", case_sensitive=False, help="Suggestion type"),
    title: str = typer.Option(..., "--title", help="Suggestion title"),
) -> None:
    """Print the stable suggestion key for a (note, section, type, title) tuple."""
    console.print(compute_suggestion_key(note_id, section_id, suggestion_type, title))


@app.command()
def info() -> None:
    """Display version and effective configuration."""
    from note_suggestions import __version__

    settings = get_settings()
    config = EngineConfig.from_settings(settings)

    console.print(
        Panel.fit(
            "[bold blue]Note Suggestions[/bold blue]",
            border_style="blue",
        )
    )

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("Max Suggestions", str(config.max_suggestions_per_note))
    for name, value in config.thresholds.model_dump().items():
        table.add_row(name, str(value))
    table.add_row("Max Section Chars", str(config.max_section_chars))
    table.add_row("Debug", f"{config.enable_debug} ({config.debug_verbosity.value})")
    table.add_row("Debug Max Bytes", str(config.debug_max_bytes))
    table.add_row("Debug Store", settings.debug_store_dir)
    table.add_row("Rate Limit", f"{settings.debug_rate_limit_seconds}s per note")
    table.add_row("Retention", f"{settings.debug_retention_hours}h")

    console.print(table)


@app.command()
def runs(
    note_id: Optional[str] = typer.Option(None, "--note-id", help="Only runs for this note"),
) -> None:
    """List stored debug runs, newest first."""
    stored = asyncio.run(storage.list_debug_runs(note_id=note_id))
    if not stored:
        console.print("[dim]No stored debug runs.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Run ID")
    table.add_column("Note")
    table.add_column("Stored", style="dim")
    table.add_column("Bytes", justify="right")
    for entry in stored:
        table.add_row(entry["run_id"], entry["note_id"], entry["stored_at"], str(entry.get("payload_bytes", "")))
    console.print(table)


@app.command()
def cleanup() -> None:
    """Delete debug runs past the retention window."""
    removed = asyncio.run(storage.cleanup_expired())
    console.print(f"[green]Removed {removed} expired debug run(s).[/green]")


def _display_result(result: RunResult) -> None:
    """Display the suggestions of one run.

    Args:
        result: The run result.
    """
    console.print(
        Panel.fit(
            f"[bold blue]Note Suggestions[/bold blue]\n"
            f"note {result.note_id} · hash {result.note_hash} · {result.line_count} lines",
            border_style="blue",
        )
    )

    if not result.final_suggestions:
        console.print("[dim]No suggestions.[/dim]")
    else:
        table = Table(show_header=True, header_style="bold")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Type")
        table.add_column("Title")
        table.add_column("Section", style="dim")
        table.add_column("Score", justify="right")

        for i, suggestion in enumerate(result.final_suggestions, 1):
            table.add_row(
                str(i),
                suggestion.type.value,
                suggestion.title,
                suggestion.section_id,
                f"{suggestion.scores.overall:.2f}",
            )
        console.print(table)

    invariants = result.invariants
    if invariants.trimmed_to_max:
        console.print(f"[yellow]Trimmed to cap of {result.config_snapshot.max_suggestions_per_note}[/yellow]")
    if not invariants.aggregation_valid:
        console.print("[red]Aggregation invariant violated[/red]")
    if result.warnings:
        console.print(f"[yellow]Warnings:[/yellow] {len(result.warnings)}")


if __name__ == "__main__":
    app()
