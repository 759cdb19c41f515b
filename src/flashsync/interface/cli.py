"""flashsync CLI: review recording, queue diagnostics, sync and serving."""

import asyncio
import dataclasses
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Annotated, Any

import typer

from flashsync.application.config import AppConfig, resolve_config
from flashsync.application.factory import open_runtime
from flashsync.consts import VERSION
from flashsync.domain.errors import FlashsyncError
from flashsync.domain.models import ReviewOutcome

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="flashsync: spaced-repetition scheduling with offline-first sync.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

queue_app = typer.Typer(help="Inspect the pending sync queue.", no_args_is_help=True)
app.add_typer(queue_app, name="queue")

deck_app = typer.Typer(help="Deck mutations.", no_args_is_help=True)
app.add_typer(deck_app, name="deck")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

_LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def _apply_verbosity(verbose: int) -> None:
    logging.getLogger().setLevel(_LOG_LEVELS.get(verbose, logging.DEBUG))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

DbOption = Annotated[Path | None, typer.Option("--db", help="Path to the local database.")]


def _resolve(ctx: typer.Context, **overrides: Any) -> AppConfig:
    overrides["verbose"] = ctx.obj.get("verbose", 1) if ctx.obj else 1
    return resolve_config(overrides)


def _to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value):
        return dataclasses.asdict(value)
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


def _echo_json(value: Any) -> None:
    if isinstance(value, list):
        value = [_to_jsonable(v) for v in value]
    typer.echo(json.dumps(_to_jsonable(value), indent=2, default=str))


def _run(coro) -> Any:
    try:
        return asyncio.run(coro)
    except FlashsyncError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from e


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
):
    """Global settings for flashsync."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _apply_verbosity(verbose)


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def version():
    """Print the flashsync version."""
    typer.echo(VERSION)


@app.command()
def review(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    card: Annotated[str, typer.Argument(help="Card ID.")],
    correct: Annotated[
        bool, typer.Option("--correct/--incorrect", help="Whether the card was recalled.")
    ] = True,
    elapsed_ms: Annotated[int, typer.Option(help="Answer time in milliseconds.", min=0)] = 0,
    db: DbOption = None,
):
    """[bold green]Record[/bold green] a review and queue it for sync."""
    config = _resolve(ctx, db_path=db)
    outcome = ReviewOutcome(card_id=card, correct=correct, elapsed_ms=elapsed_ms)

    async def _record():
        async with open_runtime(config) as rt:
            return await rt.reviews.record_review(learner, outcome)

    _echo_json(_run(_record()))


@app.command()
def stats(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    db: DbOption = None,
):
    """Show learning statistics and the next session estimate."""
    config = _resolve(ctx, db_path=db)

    async def _stats():
        async with open_runtime(config) as rt:
            return {
                "stats": await rt.stats.get_learning_stats(learner),
                "session": await rt.stats.get_session_estimate(learner),
            }

    result = _run(_stats())
    _echo_json({k: _to_jsonable(v) for k, v in result.items()})


@app.command()
def sync(
    ctx: typer.Context,
    remote_url: Annotated[str | None, typer.Option(help="Remote REST endpoint.")] = None,
    backend: Annotated[str | None, typer.Option(help="Remote backend: http, memory.")] = None,
    db: DbOption = None,
):
    """[bold green]Drain[/bold green] the queue once against the remote store."""
    config = _resolve(ctx, db_path=db, remote_url=remote_url, remote_backend=backend)

    async def _sync():
        async with open_runtime(config) as rt:
            return await rt.coordinator.sync_now()

    report = _run(_sync())
    if report is None:
        typer.secho("Remote unreachable; nothing synced.", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=2)

    _echo_json(report)
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def run(
    ctx: typer.Context,
    interval: Annotated[float | None, typer.Option(help="Seconds between sync attempts.")] = None,
    remote_url: Annotated[str | None, typer.Option(help="Remote REST endpoint.")] = None,
    db: DbOption = None,
):
    """Keep syncing on a timer until interrupted."""
    config = _resolve(
        ctx, db_path=db, remote_url=remote_url, sync_interval_seconds=interval
    )

    async def _forever():
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                pass

        async with open_runtime(config) as rt:
            rt.coordinator.start()
            await rt.coordinator.sync_now()
            await stop.wait()

    _run(_forever())


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str | None, typer.Option(help="Bind address.")] = None,
    port: Annotated[int | None, typer.Option(help="Bind port.")] = None,
    db: DbOption = None,
):
    """Run the HTTP server (connectivity signal, sync trigger, reviews)."""
    import os

    import uvicorn

    config = _resolve(ctx, db_path=db, server_host=host, server_port=port)
    # The server resolves its own config; hand the database path over via env.
    os.environ["FLASHSYNC_DB_PATH"] = str(config.db_path)
    uvicorn.run("flashsync.server:app", host=config.server_host, port=config.server_port)


# ---------------------------------------------------------------------------
# Queue commands
# ---------------------------------------------------------------------------


@queue_app.command("list")
def queue_list(ctx: typer.Context, db: DbOption = None):
    """List pending actions in replay order."""
    config = _resolve(ctx, db_path=db)

    async def _list():
        async with open_runtime(config) as rt:
            return await rt.queue.list_all()

    _echo_json(_run(_list()))


@queue_app.command("dead-letters")
def queue_dead_letters(ctx: typer.Context, db: DbOption = None):
    """List actions set aside after repeated decode failures."""
    config = _resolve(ctx, db_path=db)

    async def _list():
        async with open_runtime(config) as rt:
            return await rt.queue.list_dead_letters()

    _echo_json(_run(_list()))


@queue_app.command("retry")
def queue_retry(
    ctx: typer.Context,
    action_id: Annotated[int, typer.Argument(help="Dead letter id to requeue.")],
    db: DbOption = None,
):
    """Move a dead letter back to the tail of the queue."""
    config = _resolve(ctx, db_path=db)

    async def _retry():
        async with open_runtime(config) as rt:
            return await rt.queue.requeue_dead_letter(action_id)

    try:
        new_id = _run(_retry())
    except KeyError as e:
        typer.secho(f"Error: {e.args[0]}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from e
    typer.echo(f"Requeued as {new_id}")


# ---------------------------------------------------------------------------
# Deck commands
# ---------------------------------------------------------------------------


@deck_app.command("create")
def deck_create(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Owning learner ID.")],
    name: Annotated[str, typer.Argument(help="Deck name.")],
    description: Annotated[str | None, typer.Option(help="Optional description.")] = None,
    db: DbOption = None,
):
    """Queue creation of a deck."""
    config = _resolve(ctx, db_path=db)

    async def _create():
        async with open_runtime(config) as rt:
            return await rt.reviews.create_deck(learner, name, description)

    _echo_json(_run(_create()))


def main() -> None:
    app()
