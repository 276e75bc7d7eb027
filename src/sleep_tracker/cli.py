"""Command-line interface for the sleep tracker."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import typer

from .analyzer import SleepAnalyzer
from .config import AnalysisSettings, ConfigurationError, DebtSettings, InferenceSettings, NightWindow
from .db import (
    StorageError,
    database_connection,
    load_debt_settings,
    load_night_window,
    save_debt_settings,
    save_night_window,
)
from .paths import get_db_path, get_log_path
from .server_runner import run_dashboard

app = typer.Typer(help="Infer sleep from screen on/off events and track sleep debt.")

_DB_OPTION_HELP = "Location of the sleep SQLite database."


@app.callback(no_args_is_help=True)
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
    log_file: bool = typer.Option(
        False, "--log-file", help="Also write logs to the application data directory."
    ),
) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(get_log_path(), encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=handlers,
    )


@app.command()
def analyze(
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=_DB_OPTION_HELP),
    min_sleep_minutes: float = typer.Option(
        90.0, "--min-sleep", min=1.0, help="Minimum off-period length counted as sleep."
    ),
    prune_gap_minutes: float = typer.Option(
        15.0, "--prune-gap", min=0.0, help="Gap above which short fragments are pruned."
    ),
    extension_gap_minutes: float = typer.Option(
        30.0, "--extension-gap", min=0.0, help="Gap bridged when extending sleep clusters."
    ),
) -> None:
    """Infer new sleep episodes from the stored screen events."""
    inference = InferenceSettings.from_minutes(
        min_sleep_minutes=min_sleep_minutes,
        prune_gap_minutes=prune_gap_minutes,
        extension_gap_minutes=extension_gap_minutes,
    )
    analyzer = SleepAnalyzer(db_path or get_db_path(), AnalysisSettings(inference=inference))
    try:
        report = analyzer.analyze()
    except (StorageError, ConfigurationError) as exc:
        typer.echo(f"Analysis failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(
        f"Found {report.detected} sleep episodes in {report.off_period_count} "
        f"screen-off periods; {report.inserted} new."
    )


@app.command()
def debt(
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=_DB_OPTION_HELP),
) -> None:
    """Print the current sleep debt and its per-night contributions."""
    from .reporting import SummaryPrinter

    with _reported_failures("Could not compute sleep debt"):
        SummaryPrinter(db_path=db_path or get_db_path()).print_sleep_debt()


@app.command()
def nights(
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=_DB_OPTION_HELP),
    limit: int = typer.Option(14, "--limit", min=1, help="Number of nights to show."),
) -> None:
    """List stored sleep episodes grouped by night."""
    from .reporting import SummaryPrinter

    with _reported_failures("Could not list nights"):
        SummaryPrinter(db_path=db_path or get_db_path()).print_nights(limit=limit)


@app.command()
def energy(
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=_DB_OPTION_HELP),
) -> None:
    """Show today's wake-up time and energy timeline."""
    from .reporting import SummaryPrinter

    with _reported_failures("Could not build the energy timeline"):
        SummaryPrinter(db_path=db_path or get_db_path()).print_energy()


@app.command()
def add(
    start: str = typer.Argument(..., help="Start as 'YYYY-MM-DD HH:MM'."),
    end: str = typer.Argument(..., help="End as 'YYYY-MM-DD HH:MM'."),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=_DB_OPTION_HELP),
) -> None:
    """Manually record a sleep episode."""
    analyzer = SleepAnalyzer(db_path or get_db_path())
    with _reported_failures("Could not add sleep episode"):
        result = analyzer.add_episode(_parse_datetime(start), _parse_datetime(end))
    if result.error is not None:
        typer.echo(result.error.message, err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Added sleep episode #{result.episode.id} for night {result.episode.sleep_date}.")


@app.command()
def delete(
    episode_id: int = typer.Argument(..., help="Identifier of the episode to delete."),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=_DB_OPTION_HELP),
) -> None:
    """Delete a sleep episode (it will not be re-inferred)."""
    try:
        SleepAnalyzer(db_path or get_db_path()).delete_episode(episode_id)
    except StorageError as exc:
        typer.echo(f"Could not delete sleep episode: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Deleted sleep episode #{episode_id}.")


@app.command("import-events")
def import_events(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV or JSON-lines file."),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=_DB_OPTION_HELP),
) -> None:
    """Import screen on/off events exported from a device."""
    from .normalization import load_events_file

    events, skipped = load_events_file(source)
    with _reported_failures("Import failed"):
        inserted = SleepAnalyzer(db_path or get_db_path()).import_events(events)
    typer.echo(f"Imported {inserted} events ({skipped} rows skipped).")


@app.command()
def settings(
    night_start: Optional[int] = typer.Option(
        None, "--night-start", min=0, max=23, help="Hour the night window opens."
    ),
    night_end: Optional[int] = typer.Option(
        None, "--night-end", min=0, max=23, help="Hour the night window closes."
    ),
    needed_hours: Optional[float] = typer.Option(
        None, "--needed-hours", help="Target sleep per night in hours."
    ),
    tau_days: Optional[float] = typer.Option(
        None, "--tau", help="Days over which older nights fade from the debt."
    ),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=_DB_OPTION_HELP),
) -> None:
    """Show or update the night window and sleep-debt preferences."""
    with database_connection(db_path or get_db_path()) as conn:
        window = load_night_window(conn)
        debt_settings = load_debt_settings(conn)
        try:
            if night_start is not None or night_end is not None:
                window = NightWindow(
                    start_hour=night_start if night_start is not None else window.start_hour,
                    end_hour=night_end if night_end is not None else window.end_hour,
                )
                save_night_window(conn, window)
            if needed_hours is not None or tau_days is not None:
                debt_settings = DebtSettings(
                    needed_sleep_hours=(
                        needed_hours if needed_hours is not None else debt_settings.needed_sleep_hours
                    ),
                    tau_days=tau_days if tau_days is not None else debt_settings.tau_days,
                )
                save_debt_settings(conn, debt_settings)
        except ConfigurationError as exc:
            raise typer.BadParameter(str(exc)) from exc

    typer.echo(f"Night window: {window.start_hour:02d}:00 - {window.end_hour:02d}:00")
    typer.echo(f"Needed sleep: {debt_settings.needed_sleep_hours:g} h")
    typer.echo(f"Tau: {debt_settings.tau_days:g} days")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the dashboard."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the dashboard."
    ),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=_DB_OPTION_HELP),
    interval_minutes: float = typer.Option(
        15.0,
        "--interval",
        min=1.0,
        help="Minutes between background analysis runs.",
    ),
) -> None:
    """Start the local API with periodic background analysis."""
    run_dashboard(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        settings=AnalysisSettings.from_intervals(interval_minutes),
    )


@contextmanager
def _reported_failures(message: str) -> Iterator[None]:
    try:
        yield
    except (StorageError, ConfigurationError) as exc:
        typer.echo(f"{message}: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _parse_datetime(value: str) -> datetime:
    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise typer.BadParameter(f"Invalid date/time {value!r}; expected 'YYYY-MM-DD HH:MM'.")
