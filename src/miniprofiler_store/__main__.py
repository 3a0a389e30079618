"""Command-line interface for the profiler store.

Provides a small Typer app for operating on a profiler database:

1.  `create-schema`: create the three profiler tables and their indexes.
2.  `list`: list run ids in a time window, newest or oldest first.
3.  `unviewed`: list ids of a user's runs that have not been viewed yet.
4.  `show`: load one run and print its reconstructed timing tree.
5.  `mark-viewed`: set (or with `--unviewed`, clear) a run's viewed flag.

Connection parameters come from `miniprofiler_store.config.Settings`
(environment variables or a `.env` file).
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

import typer
from dotenv import find_dotenv, load_dotenv

# Load .env file if present (before any config access)
env_file = find_dotenv(usecwd=True)
if env_file:
    load_dotenv(env_file)
    logging.debug("Loaded environment from %s", env_file)

from .config import get_settings
from .db import ConfigurationError, ListResultsOrder, ProfilerStorage
from .models.profiler import MiniProfiler

app = typer.Typer(help="MiniProfiler relational store CLI")


def _storage() -> ProfilerStorage:
    settings = get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL)
    try:
        return ProfilerStorage.from_settings(settings)
    except ConfigurationError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)


def _render(profiler: MiniProfiler) -> str:
    """Render a run header plus one indented line per timing."""
    lines = [
        f"{profiler.id}  {profiler.name or '-'}  user={profiler.user or '-'}  "
        f"started={profiler.started.isoformat()}  {profiler.duration_milliseconds:.1f} ms  "
        f"viewed={'yes' if profiler.has_user_viewed else 'no'}"
    ]
    if profiler.root is None:
        lines.append("  (no timings)")
    else:
        base_depth = profiler.root.depth
        for timing in profiler.root.walk():
            indent = "  " * (timing.depth - base_depth + 1)
            duration = (
                f"{timing.duration_milliseconds:.3f} ms"
                if timing.duration_milliseconds is not None
                else "running"
            )
            lines.append(f"{indent}{timing.name}  +{timing.start_milliseconds:.3f} ms  {duration}")
    if profiler.client_timings is not None:
        lines.append(f"  client timings (redirects={profiler.client_timings.redirect_count}):")
        for ct in profiler.client_timings.timings:
            lines.append(f"    {ct.name}  start={ct.start:.3f}  duration={ct.duration:.3f}")
    return "\n".join(lines)


@app.callback()
def main() -> None:  # pragma: no cover - simple callback
    """Inspect and maintain stored profiler runs."""


@app.command("create-schema", help="Create the profiler tables if missing.")
def create_schema() -> None:
    storage = _storage()
    storage.create_schema()
    typer.echo(
        f"Schema ready: {storage.tables.profilers}, {storage.tables.timings}, "
        f"{storage.tables.client_timings}"
    )


@app.command("list", help="List run ids started within an optional time window.")
def list_runs(
    max_results: Optional[int] = typer.Option(
        None, "--max-results", "-n", help="Maximum ids to return (default: LIST_MAX_RESULTS)"
    ),
    start: Optional[datetime] = typer.Option(
        None, "--start", help="Only runs started after this UTC time (exclusive)"
    ),
    finish: Optional[datetime] = typer.Option(
        None, "--finish", help="Only runs started before this UTC time (exclusive)"
    ),
    order: ListResultsOrder = typer.Option(
        ListResultsOrder.DESCENDING, "--order", help="Sort by start time"
    ),
) -> None:
    storage = _storage()
    limit = max_results if max_results is not None else get_settings().LIST_MAX_RESULTS
    for run_id in storage.list(limit, start=start, finish=finish, order=order):
        typer.echo(str(run_id))


@app.command(help="List ids of runs the user has not viewed, oldest first.")
def unviewed(user: str = typer.Argument(..., help="Run owner")) -> None:
    storage = _storage()
    for run_id in storage.get_unviewed_ids(user):
        typer.echo(str(run_id))


@app.command(help="Load a run and print its timing tree.")
def show(run_id: UUID = typer.Argument(..., help="Run id")) -> None:
    storage = _storage()
    profiler = storage.load(run_id)
    if profiler is None:
        typer.echo(f"Run {run_id} not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(_render(profiler))


@app.command("mark-viewed", help="Mark a run as viewed (or unviewed) for its owner.")
def mark_viewed(
    user: str = typer.Argument(..., help="Run owner; other users affect nothing"),
    run_id: UUID = typer.Argument(..., help="Run id"),
    unviewed: bool = typer.Option(False, "--unviewed", help="Clear the flag instead"),
) -> None:
    storage = _storage()
    if unviewed:
        storage.set_unviewed(user, run_id)
    else:
        storage.set_viewed(user, run_id)
    typer.echo(f"Run {run_id}: viewed={'no' if unviewed else 'yes'}")


if __name__ == "__main__":  # pragma: no cover
    app()
