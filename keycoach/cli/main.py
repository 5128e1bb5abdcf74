"""
Typer CLI for the keycoach weakness engine.

Commands:
    keycoach replay EVENTS.jsonl [--save]   - Feed recorded keystrokes into the engine
    keycoach analyze KEY                     - Full weakness analysis of one key
    keycoach dashboard                       - Overview of all tracked keys
    keycoach risk CHAR --prev X              - Error risk of the next keystroke
    keycoach reset --yes                     - Forget everything

Usage:
    keycoach --help
    keycoach replay session.jsonl --save
    keycoach analyze e
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import typer
from loguru import logger
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from keycoach import __version__
from keycoach.engine.detector import WeaknessEngine
from keycoach.engine.models import KeystrokeEvent
from keycoach.engine.provider import EngineProvider, create_engine
from keycoach.persistence.snapshot_store import SnapshotStore
from keycoach.risk.fatigue import fatigue_color

app = typer.Typer(
    name="keycoach",
    help="Adaptive weakness detection for touch-typing practice",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()

RISK_COLORS = {"low": "green", "medium": "yellow", "high": "red"}


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
) -> None:
    _configure_logging("DEBUG" if verbose else get_settings().log_level)


def _store() -> SnapshotStore:
    return SnapshotStore(get_settings().snapshot_path)


def _load_engine(store: SnapshotStore) -> WeaknessEngine:
    """Build the engine and restore the persisted snapshot."""
    provider = EngineProvider(factory=lambda: create_engine(store=store), store=store)
    return asyncio.run(provider.get())


def _percent(value: float) -> str:
    return f"{value * 100:.1f}%"


# ========================================
# REPLAY
# ========================================


@app.command("replay")
def replay(
    events: Path = typer.Argument(..., help="JSON Lines file of keystroke events"),
    save: bool = typer.Option(False, "--save", help="Persist the updated engine state"),
) -> None:
    """
    Replay recorded keystrokes through the engine.

    Each line is one event, e.g.
    {"key": "t", "expected": "t", "timestamp": 1700000000000, "isCorrect": true}

    Examples:
        keycoach replay session.jsonl          # Analyze without saving
        keycoach replay session.jsonl --save   # Merge into the stored profile
    """
    if not events.exists():
        rprint(f"[red]✗[/red] File not found: {events}")
        raise typer.Exit(code=1)

    store = _store()
    engine = _load_engine(store)
    engine.start_session()

    accepted = skipped = 0
    with open(events, encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                event = KeystrokeEvent.model_validate(json.loads(line))
            except (json.JSONDecodeError, ValidationError) as e:
                logger.debug(f"Line {line_no}: skipped ({e.__class__.__name__})")
                skipped += 1
                continue
            engine.record_keystroke(event)
            accepted += 1

    summary = engine.end_session()

    table = Table(title="Replay Results", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    table.add_row("Events replayed", str(accepted))
    table.add_row("Lines skipped", str(skipped) if skipped else "-")
    table.add_row("Accuracy", f"{summary['accuracy']:.1f}%")
    table.add_row("WPM", f"{summary['wpm']:.1f}")
    table.add_row("Keys tracked", str(len(engine.tracked_keys())))
    console.print(table)

    if save:
        path = store.save(engine.to_snapshot())
        rprint(f"\n[bold green]✓ Saved to {path}[/bold green]")


# ========================================
# ANALYZE
# ========================================


@app.command("analyze")
def analyze(key: str = typer.Argument(..., help="Key to analyze")) -> None:
    """Show the full weakness analysis for one key."""
    engine = _load_engine(_store())
    result = engine.analyze(key)

    status = "[red]WEAK[/red]" if result.is_weak else "[green]OK[/green]"
    lo, hi = result.accuracy_ci
    speed_lo, speed_hi = result.speed_ci
    sessions = result.estimated_sessions_to_mastery

    lines = [
        f"Status: {status}  (weakness {result.weakness_score:.1f}/100)",
        f"Attempts: {result.attempts}",
        f"Accuracy: {_percent(result.accuracy_estimate)}  (CI {_percent(lo)} - {_percent(hi)})",
        f"Speed: {result.speed_estimate:.0f} ms  (CI {speed_lo:.0f} - {speed_hi:.0f})",
        f"State: [{result.current_state.color}]{result.current_state.value}[/]",
        f"Priority: {result.practice_priority:.1f}",
        f"Next practice: {result.optimal_next_practice:%Y-%m-%d %H:%M}",
        f"Sessions to mastery: {'never at current rate' if sessions == float('inf') else sessions}",
        f"Best time: {result.best_practice_time}:00, {result.optimal_session_position} in session",
    ]
    console.print(Panel("\n".join(lines), title=f"Key '{key}'", border_style="cyan"))

    ensemble = Table(title="Ensemble", show_header=True)
    ensemble.add_column("Model", style="cyan")
    ensemble.add_column("Accuracy", justify="right")
    for name, value in result.ensemble.to_dict().items():
        ensemble.add_row(name, _percent(value))
    console.print(ensemble)

    if result.recommended_interventions:
        table = Table(title="Recommended Interventions", show_header=True)
        table.add_column("Intervention", style="cyan")
        table.add_column("Improvement", justify="right", style="green")
        table.add_column("Confidence", justify="right")
        for item in result.recommended_interventions:
            table.add_row(
                item.intervention,
                f"+{item.expected_improvement:.0f}%",
                _percent(item.confidence),
            )
        console.print(table)

    if result.correlated_keys:
        linked = ", ".join(f"{c.key} ({_percent(c.correlation)})" for c in result.correlated_keys)
        rprint(f"[yellow]⚠[/yellow] Errors follow: {linked}")


# ========================================
# DASHBOARD
# ========================================


@app.command("dashboard")
def dashboard(
    top: int = typer.Option(5, "--top", "-n", help="Number of weak keys to list"),
) -> None:
    """Show an overview of every tracked key."""
    engine = _load_engine(_store())
    data = engine.get_dashboard_data(top_n=top)

    if data.tracked_keys == 0:
        rprint("[yellow]⚠[/yellow] No keystrokes recorded yet. Run [bold]keycoach replay[/bold] first.")
        return

    rprint(
        f"\n[bold cyan]{data.tracked_keys}[/bold cyan] keys, "
        f"[bold]{data.total_attempts}[/bold] attempts, "
        f"overall accuracy [bold]{_percent(data.overall_accuracy)}[/bold]"
    )
    states = ", ".join(f"{name}: {count}" for name, count in data.state_distribution.items())
    rprint(f"  States: {states}\n")

    table = Table(title="Weakest Keys", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Weakness", justify="right", style="red")
    table.add_column("Accuracy", justify="right")
    table.add_column("Speed", justify="right")
    table.add_column("State")
    table.add_column("Priority", justify="right", style="yellow")
    for result in data.weakest_keys:
        table.add_row(
            result.key,
            f"{result.weakness_score:.1f}",
            _percent(result.accuracy_estimate),
            f"{result.speed_estimate:.0f} ms",
            f"[{result.current_state.color}]{result.current_state.value}[/]",
            f"{result.practice_priority:.1f}",
        )
    console.print(table)

    if data.due_keys:
        rprint(f"Due for practice: [bold]{' '.join(data.due_keys)}[/bold]")

    report = data.ngram_report
    if report.error_prone_bigrams:
        bigrams = ", ".join(
            f"{s.ngram} ({_percent(s.error_rate)})" for s in report.error_prone_bigrams[:5]
        )
        rprint(f"Error-prone bigrams: {bigrams}")

    color = fatigue_color(data.fatigue.overall_fatigue)
    rprint(f"Fatigue: [{color}]{data.fatigue.overall_fatigue:.0f}[/] - {data.fatigue.recommendation}")


# ========================================
# RISK
# ========================================


@app.command("risk")
def risk(
    char: str = typer.Argument(..., help="Upcoming character"),
    prev: str | None = typer.Option(None, "--prev", help="Previously typed character"),
    wpm: float = typer.Option(40.0, "--wpm", help="Current typing speed"),
    accuracy: float = typer.Option(95.0, "--accuracy", help="Current accuracy (0-100)"),
) -> None:
    """Predict the error risk of the next keystroke."""
    engine = _load_engine(_store())
    prediction = engine.predict_risk(char, previous_key=prev, wpm=wpm, accuracy=accuracy)

    color = RISK_COLORS[prediction.risk_level]
    rprint(
        f"Risk for '{char}': [{color}]{prediction.risk_level.upper()}[/] "
        f"({_percent(prediction.probability)}, confidence {_percent(prediction.confidence)})"
    )
    for factor in prediction.contributing_factors:
        rprint(f"  • {factor.factor}: {factor.importance:.2f}")


# ========================================
# RESET
# ========================================


@app.command("reset")
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Confirm deleting all history"),
) -> None:
    """Forget all recorded keystrokes and delete the stored snapshot."""
    if not yes:
        rprint("[yellow]⚠[/yellow] This deletes all history. Re-run with [bold]--yes[/bold] to confirm.")
        raise typer.Exit(code=1)

    store = _store()
    engine = create_engine(store=store)
    engine.reset()
    rprint("[bold green]✓ Reset complete[/bold green]")


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint(f"[bold]keycoach[/bold] v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
