"""Cadence CLI: deck management, due listing, interactive review and the API server."""

import asyncio
import json
import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Annotated, Any

import typer

from cadence.application.config import AppConfig, resolve_config
from cadence.application.deck_service import DeckService
from cadence.application.due_selector import DueCardSelector
from cadence.application.factory import create_session, get_card_repository
from cadence.application.session import ReviewSessionController
from cadence.application.session_state import SessionStatus, SessionSummary
from cadence.domain.errors import CadenceError, NotFoundError, PersistenceError
from cadence.domain.models import Difficulty, NewCard

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="cadence: spaced-repetition review for decks of cards.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Register subgroups
# ---------------------------------------------------------------------------

deck_app = typer.Typer(help="Create, inspect and delete decks.", no_args_is_help=True)
app.add_typer(deck_app, name="deck")

card_app = typer.Typer(help="Add, edit and delete cards.", no_args_is_help=True)
app.add_typer(card_app, name="card")

config_app = typer.Typer(help="Manage cadence configuration.")
app.add_typer(config_app, name="config")

LOG_FILE_NAME = "cadence.log"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

ANSWER_KEYS = {
    "a": Difficulty.AGAIN,
    "h": Difficulty.HARD,
    "g": Difficulty.GOOD,
    "e": Difficulty.EASY,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _log_level(verbose: int) -> int:
    if verbose <= 0:
        return logging.WARNING
    if verbose == 1:
        return logging.INFO
    return logging.DEBUG


def _resolve_with_overrides(ctx: typer.Context | None = None, **overrides: Any) -> AppConfig:
    if ctx is not None and ctx.obj:
        overrides.setdefault("verbose", ctx.obj.get("verbose") or None)
    config = resolve_config(overrides)
    logging.getLogger().setLevel(_log_level(config.verbose))
    _attach_log_file(config.log_dir / LOG_FILE_NAME)
    return config


def _attach_log_file(log_file: Path) -> None:
    """Mirror cadence log records into a rotating file under the configured log dir."""
    pkg_logger = logging.getLogger("cadence")
    for handler in list(pkg_logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            if handler.baseFilename == str(log_file.resolve()):
                return
            pkg_logger.removeHandler(handler)
            handler.close()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
    )
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S")
    )
    pkg_logger.addHandler(handler)


@contextmanager
def _repository(config: AppConfig):
    try:
        repo = get_card_repository(config)
    except CadenceError as e:
        _fail(e)
    try:
        yield repo
    finally:
        repo.close()


def _fail(error: Exception) -> None:
    typer.secho(f"Error: {error}", fg="red", err=True)
    raise typer.Exit(1)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _run(coro):
    try:
        return asyncio.run(coro)
    except CadenceError as e:
        _fail(e)


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
    ] = 0,
    database: Annotated[
        Path | None, typer.Option("--database", "--db", help="SQLite database path.")
    ] = None,
):
    """Global settings for cadence."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["database_path"] = database


def _config(ctx: typer.Context, **overrides: Any) -> AppConfig:
    overrides.setdefault("database_path", (ctx.obj or {}).get("database_path"))
    return _resolve_with_overrides(ctx, **overrides)


# ---------------------------------------------------------------------------
# Deck subgroup
# ---------------------------------------------------------------------------


@deck_app.command("create")
def deck_create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Deck name.")],
    description: Annotated[str | None, typer.Option(help="Optional description.")] = None,
):
    """Create a new, empty deck."""
    config = _config(ctx)
    with _repository(config) as repo:
        deck = _run(DeckService(repo).create_deck(name, description, _now()))
    typer.secho(f"Created deck '{deck.name}' ({deck.id})", fg="green")


@deck_app.command("list")
def deck_list(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List decks, most recently updated first."""
    config = _config(ctx)
    with _repository(config) as repo:
        decks = _run(DeckService(repo).list_decks())

    if json_output:
        typer.echo(
            json.dumps(
                [{"id": d.id, "name": d.name, "cards": d.card_count} for d in decks], indent=2
            )
        )
        return
    if not decks:
        typer.secho("No decks yet. Create one with 'cadence deck create NAME'.", fg="yellow")
        return
    for d in decks:
        typer.echo(f"{d.id}  {d.name}  ({d.card_count} cards)")


@deck_app.command("show")
def deck_show(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
):
    """Show a deck and its cards."""
    config = _config(ctx)
    with _repository(config) as repo:
        deck, cards = _run(DeckService(repo).get_deck_with_cards(deck_id))

    typer.echo(f"{deck.name} ({deck.id})")
    if deck.description:
        typer.echo(deck.description)
    typer.echo(f"Cards: {len(cards)}")
    for card in cards:
        status = "new" if card.is_new else f"reviewed {card.review_count}x"
        typer.echo(f"  {card.id}  {card.front}  [{status}]")


@deck_app.command("delete")
def deck_delete(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Bypass confirmation for destructive actions.")
    ] = False,
):
    """Delete a deck with all its cards and review history."""
    if not force:
        typer.confirm(f"Delete deck {deck_id} and all its cards?", abort=True)
    config = _config(ctx)
    with _repository(config) as repo:
        _run(DeckService(repo).delete_deck(deck_id))
    typer.secho(f"Deleted deck {deck_id}", fg="green")


# ---------------------------------------------------------------------------
# Card subgroup
# ---------------------------------------------------------------------------


@card_app.command("add")
def card_add(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
    front: Annotated[str, typer.Argument(help="Question side.")],
    back: Annotated[str, typer.Argument(help="Answer side.")],
    tag: Annotated[list[str] | None, typer.Option("--tag", "-t", help="Tag (repeatable).")] = None,
):
    """Add a card to a deck. New cards are due immediately."""
    config = _config(ctx)
    with _repository(config) as repo:
        created = _run(
            DeckService(repo).add_cards(deck_id, [NewCard(front, back, tag or [])], _now())
        )
    typer.secho(f"Added card {created[0].id}", fg="green")


@card_app.command("edit")
def card_edit(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card id.")],
    front: Annotated[str, typer.Argument(help="Question side.")],
    back: Annotated[str, typer.Argument(help="Answer side.")],
    tag: Annotated[list[str] | None, typer.Option("--tag", "-t", help="Tag (repeatable).")] = None,
):
    """Replace a card's content. Scheduling is left untouched; tags are kept unless given."""
    config = _config(ctx)
    with _repository(config) as repo:
        service = DeckService(repo)
        if tag is None:
            tag = _run(service.get_card(card_id)).tags
        card = _run(service.update_card(card_id, front, back, tag))
    typer.secho(f"Updated card {card.id}", fg="green")


@card_app.command("delete")
def card_delete(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card id.")],
):
    """Delete a card and its review history."""
    config = _config(ctx)
    with _repository(config) as repo:
        _run(DeckService(repo).delete_card(card_id))
    typer.secho(f"Deleted card {card_id}", fg="green")


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def due(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
    include_new: Annotated[
        bool | None,
        typer.Option("--include-new/--no-include-new", help="Include never-reviewed cards."),
    ] = None,
    limit: Annotated[int | None, typer.Option(help="Maximum number of cards.", min=1)] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List the cards of a deck that are due now, most overdue first."""
    config = _config(ctx, include_new=include_new)
    with _repository(config) as repo:
        selection = _run(
            DueCardSelector(repo).select(
                deck_id, _now(), include_new=config.include_new, limit=limit
            )
        )

    stats = selection.stats
    if json_output:
        typer.echo(
            json.dumps(
                {
                    "deck": {"id": selection.deck.id, "name": selection.deck.name},
                    "stats": {
                        "totalCards": stats.total_cards,
                        "dueCards": stats.due_cards,
                        "newCards": stats.new_cards,
                        "reviewCards": stats.review_cards,
                    },
                    "cards": [
                        {
                            "id": c.card.id,
                            "front": c.card.front,
                            "isNew": c.is_new,
                            "isOverdue": c.is_overdue,
                            "timeDisplay": c.time_display,
                        }
                        for c in selection.cards
                    ],
                },
                indent=2,
            )
        )
        return

    typer.echo(
        f"{selection.deck.name}: {stats.due_cards} due of {stats.total_cards} "
        f"({stats.new_cards} new, {stats.review_cards} review)"
    )
    for c in selection.cards:
        marker = "NEW" if c.is_new else c.time_display
        typer.echo(f"  {c.card.id}  {c.card.front}  [{marker}]")


@app.command()
def review(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
    include_new: Annotated[
        bool | None,
        typer.Option("--include-new/--no-include-new", help="Include never-reviewed cards."),
    ] = None,
    limit: Annotated[int | None, typer.Option(help="Maximum number of cards.", min=1)] = None,
):
    """[bold green]Review[/bold green] the due cards of a deck interactively."""
    config = _config(ctx, include_new=include_new)
    with _repository(config) as repo:
        session = create_session(deck_id, repo, config, limit=limit)
        summary = _run(_review_loop(session))

    if summary is not None:
        _print_summary(summary)


async def _review_loop(session: ReviewSessionController) -> SessionSummary | None:
    await session.start(_now())
    if session.status is SessionStatus.COMPLETE:
        return session.summary(_now())

    while session.status is SessionStatus.ACTIVE:
        state = session.state
        card = session.current_card
        typer.echo("")
        typer.secho(
            f"[{state.cursor + 1}/{len(state.queue)}]  "
            f"reviewed {state.reviewed_cards}/{state.total_cards}",
            fg="cyan",
        )
        typer.echo(f"Q: {card.front}")

        if not state.show_answer:
            choice = typer.prompt(
                "[Enter] show answer, (n)ext, (b)ack, (q)uit",
                default="",
                show_default=False,
            ).strip().lower()
            if choice == "q":
                break
            if choice == "n":
                session.advance(_now())
            elif choice == "b":
                session.go_back(_now())
            else:
                session.reveal()
            continue

        typer.echo(f"A: {card.back}")
        previews = session.preview()
        typer.echo(
            "  ".join(f"({d.value[0]}){d.value[1:]} {previews[d]}" for d in Difficulty)
        )
        choice = typer.prompt("Rate, (b)ack or (q)uit", default="", show_default=False)
        choice = choice.strip().lower()
        if choice == "q":
            break
        if choice == "b":
            session.go_back(_now())
            continue
        if choice not in ANSWER_KEYS:
            typer.secho("Answer with a, h, g or e.", fg="yellow")
            continue

        try:
            outcome = await session.submit(ANSWER_KEYS[choice], _now())
        except NotFoundError as e:
            typer.secho(f"{e}. Ending session.", fg="red")
            break
        except PersistenceError as e:
            hint = "Try again." if e.retryable else "Restart the session to reload the card."
            typer.secho(f"Could not record review: {e}. {hint}", fg="red")
            if not e.retryable:
                break
            continue
        typer.secho(f"Next review in {outcome.next_review.display}", fg="green")

    summary = session.summary(_now())
    session.close()
    return summary


def _print_summary(summary: SessionSummary) -> None:
    if summary.nothing_due:
        typer.secho("Nothing due. You're all caught up.", fg="green")
        return
    typer.echo("")
    typer.secho("Review complete" if summary.reviewed_cards else "Session ended", bold=True)
    typer.echo(f"Reviewed: {summary.reviewed_cards}/{summary.total_cards}")
    typer.echo(f"Correct:  {summary.correct_cards} ({summary.accuracy:.0%})")
    typer.echo(f"Time:     {summary.elapsed_display}")


@app.command()
def serve(
    ctx: typer.Context,
    port: Annotated[int | None, typer.Option(help="Port to bind the server to.")] = None,
    host: Annotated[str | None, typer.Option(help="Host to bind the server to.")] = None,
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Run the HTTP API server."""
    import uvicorn

    config = _config(ctx, port=port, host=host)
    # The server process resolves its own config from the environment
    os.environ["CADENCE_DATABASE_PATH"] = str(config.database_path)
    os.environ["CADENCE_VERBOSE"] = str(config.verbose)
    logger.info(f"Starting cadence server on {config.host}:{config.port}")
    uvicorn.run("cadence.server:app", host=config.host, port=config.port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


@app.command()
def logs(ctx: typer.Context):
    """Print the path of the log file."""
    config = _config(ctx)
    typer.echo(str(config.log_dir / LOG_FILE_NAME))
