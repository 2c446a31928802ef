"""Nomos CLI: study-queue, grading and card-state commands."""

import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Annotated, Any

import typer

from nomos.application.config import AppConfig, resolve_config
from nomos.domain.errors import NomosError
from nomos.domain.scheduling.models import CardRecord

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="nomos: spaced-repetition scheduler for Nomos flashcards.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage nomos configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

DataFileOption = Annotated[
    Path | None, typer.Option("--data-file", help="Collection JSON file. Defaults to config.")
]
DecksFileOption = Annotated[
    Path | None, typer.Option("--decks-file", help="Deck options YAML file.")
]


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
):
    """Global settings for nomos."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose >= 2:
        logging.getLogger().setLevel(logging.DEBUG)
    elif verbose == 1:
        logging.getLogger().setLevel(logging.INFO)


def _resolve(data_file: Path | None = None, decks_file: Path | None = None) -> AppConfig:
    return resolve_config({"data_file": data_file, "decks_file": decks_file})


def _run(coro) -> Any:
    """Run a service coroutine, turning domain errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except NomosError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from None


def _review_service(config: AppConfig):
    from nomos.application.factory import get_review_service

    try:
        return get_review_service(config)
    except NomosError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from None


def _card_dict(card: CardRecord) -> dict[str, Any]:
    return {
        "id": card.id,
        "deck_id": card.deck_id,
        "card_state": card.card_state.value,
        "next_review": card.next_review.isoformat() if card.next_review else None,
        "interval": card.interval,
        "ease_factor": card.ease_factor,
        "repetitions": card.repetitions,
        "learning_step": card.learning_step,
        "lapses": card.lapses,
    }


def _echo_card(card: CardRecord) -> None:
    due = card.next_review.strftime("%Y-%m-%d %H:%M") if card.next_review else "-"
    ease = f"{card.ease_factor:.2f}" if card.ease_factor is not None else "-"
    typer.echo(
        f"{card.id}  {card.card_state.value:<10}  due {due}  "
        f"ivl {card.interval}d  ease {ease}  reps {card.repetitions}"
    )


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def add(
    deck: Annotated[str, typer.Argument(help="Deck id for the new card(s).")],
    count: Annotated[int, typer.Option("--count", "-n", min=1, help="How many cards.")] = 1,
    data_file: DataFileOption = None,
):
    """Create new cards in a deck and print their ids."""
    service = _review_service(_resolve(data_file))

    async def run():
        return [await service.add_card(deck) for _ in range(count)]

    for card in _run(run()):
        typer.echo(card.id)


@app.command()
def due(
    deck: Annotated[str | None, typer.Option(help="Restrict to one deck.")] = None,
    new_limit: Annotated[
        int | None, typer.Option("--new-limit", help="Maximum new cards to list.")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
    data_file: DataFileOption = None,
):
    """List cards due now: learning, then review, then new."""
    from datetime import datetime, timezone

    from nomos.application.factory import get_store
    from nomos.application.queue_builder import due_cards

    store = get_store(_resolve(data_file))
    cards = _run(store.list_cards(deck))
    result = due_cards(cards, datetime.now(timezone.utc), new_limit=new_limit)

    if json_output:
        typer.echo(json.dumps([_card_dict(c) for c in result], indent=2))
        return
    if not result:
        typer.secho("No cards due.", fg="green")
        return
    for card in result:
        _echo_card(card)


@app.command()
def queue(
    deck: Annotated[str, typer.Argument(help="Deck id.")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
    data_file: DataFileOption = None,
    decks_file: DecksFileOption = None,
):
    """Show today's study queue for a deck (daily limits applied)."""
    service = _review_service(_resolve(data_file, decks_file))
    result = _run(service.study_queue(deck))

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "learning": [_card_dict(c) for c in result.learning],
                    "review": [_card_dict(c) for c in result.review],
                    "new": [_card_dict(c) for c in result.new],
                    "total_due": result.total_due,
                    "new_remaining": result.new_remaining,
                    "reviews_remaining": result.reviews_remaining,
                },
                indent=2,
            )
        )
        return

    typer.echo(
        f"Learning: {len(result.learning)}  Review: {len(result.review)}  New: {len(result.new)}"
    )
    typer.echo(
        f"Remaining today: {result.new_remaining} new, {result.reviews_remaining} reviews"
    )
    for card in result.ordered():
        _echo_card(card)


@app.command()
def grade(
    card_id: Annotated[str, typer.Argument(help="Card id.")],
    rating: Annotated[str, typer.Argument(help="again, hard, good, easy (or 1-4).")],
    response_ms: Annotated[
        int, typer.Option("--response-ms", help="Answer time in milliseconds.")
    ] = 0,
    data_file: DataFileOption = None,
    decks_file: DecksFileOption = None,
):
    """[bold green]Grade[/bold green] a card and store its next review."""
    service = _review_service(_resolve(data_file, decks_file))
    card = _run(service.grade(card_id, rating, response_time_ms=response_ms))
    _echo_card(card)


@app.command()
def preview(
    card_id: Annotated[str, typer.Argument(help="Card id.")],
    data_file: DataFileOption = None,
    decks_file: DecksFileOption = None,
):
    """Show the wait each answer button would produce."""
    service = _review_service(_resolve(data_file, decks_file))
    labels = _run(service.preview(card_id))
    typer.echo("  ".join(f"{rating.value}: {label}" for rating, label in labels.items()))


@app.command()
def suspend(card_id: str, data_file: DataFileOption = None):
    """Hide a card from all queues."""
    _toggle("suspend", card_id, data_file)


@app.command()
def unsuspend(card_id: str, data_file: DataFileOption = None):
    """Return a suspended card to its previous state."""
    _toggle("unsuspend", card_id, data_file)


@app.command()
def bury(card_id: str, data_file: DataFileOption = None):
    """Hide a card until tomorrow."""
    _toggle("bury", card_id, data_file)


@app.command()
def unbury(card_id: str, data_file: DataFileOption = None):
    """Return a buried card to its previous state."""
    _toggle("unbury", card_id, data_file)


def _toggle(action: str, card_id: str, data_file: Path | None) -> None:
    service = _review_service(_resolve(data_file))
    card = _run(getattr(service, action)(card_id))
    _echo_card(card)


@app.command()
def stats(
    deck: Annotated[str | None, typer.Option(help="Restrict to one deck.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
    data_file: DataFileOption = None,
):
    """Summarize card states, maturity and review history."""
    from nomos.application.factory import get_stats_service

    service = get_stats_service(_resolve(data_file))
    summary = _run(service.get_summary(deck))

    if json_output:
        typer.echo(json.dumps(asdict(summary), indent=2))
        return

    states = summary.cards_by_state
    typer.echo(
        f"Cards: {states['total']}  (new {states['new']}, learning {states['learning']}, "
        f"review {states['review']}, relearning {states['relearning']}, "
        f"suspended {states['suspended']}, buried {states['buried']})"
    )
    typer.echo(f"Young: {summary.young}  Mature: {summary.mature}")
    typer.echo(f"Reviews: {summary.total_reviews}  {summary.reviews_by_rating}")
    if summary.retention_rate is not None:
        typer.echo(f"Retention: {summary.retention_rate:.0%}")
    if summary.average_response_time_ms is not None:
        typer.echo(f"Avg answer time: {summary.average_response_time_ms / 1000:.1f}s")


@app.command()
def logs():
    """Open the log directory."""
    import subprocess

    config = resolve_config()
    if not config.log_dir.exists():
        config.log_dir.mkdir(parents=True, exist_ok=True)

    typer.echo(str(config.log_dir))
    if sys.platform == "darwin":
        subprocess.run(["open", str(config.log_dir)])
    elif sys.platform == "win32":
        os.startfile(str(config.log_dir))  # type: ignore[attr-defined]
    else:
        subprocess.run(["xdg-open", str(config.log_dir)])


@app.command()
def serve(
    host: Annotated[str | None, typer.Option(help="Host to bind the server to.")] = None,
    port: Annotated[int | None, typer.Option(help="Port to bind the server to.")] = None,
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Run the HTTP scheduling server."""
    import uvicorn

    config = resolve_config({"host": host, "port": port})
    uvicorn.run("nomos.server:app", host=config.host, port=config.port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


@config_app.command("decks")
def config_decks(decks_file: DecksFileOption = None):
    """Display resolved scheduling options per deck."""
    from nomos.application.config import load_deck_configs

    config = _resolve(decks_file=decks_file)
    try:
        registry = load_deck_configs(config.decks_file)
    except NomosError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from None

    out = {"default": asdict(registry.default)}
    out.update({deck_id: asdict(registry.get(deck_id)) for deck_id in registry.deck_ids()})
    typer.echo(json.dumps(out, indent=2))
