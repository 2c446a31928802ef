"""Answer-button previews: what each rating would do to a card."""

from dataclasses import replace
from datetime import datetime, timezone

from nomos.application.scheduler import schedule_card
from nomos.application.utils.intervals import as_utc, format_interval_for_preview
from nomos.domain.scheduling.models import CardRecord, DeckConfig, Rating


def preview_outcomes(
    card: CardRecord,
    config: DeckConfig,
    now: datetime | None = None,
) -> dict[Rating, CardRecord]:
    """Schedule the card once per rating without persisting anything."""
    now = datetime.now(timezone.utc) if now is None else as_utc(now)
    # Previews are deterministic.
    stable = replace(config, fuzz=False)
    return {rating: schedule_card(card, rating, stable, now) for rating in Rating}


def preview_intervals(
    card: CardRecord,
    config: DeckConfig,
    now: datetime | None = None,
) -> dict[Rating, str]:
    """
    Label the wait each rating would produce, e.g. {again: '1m', good: '10m', ...}.

    Raises:
        InvalidStateTransitionError: For suspended or buried cards.
    """
    now = datetime.now(timezone.utc) if now is None else as_utc(now)
    outcomes = preview_outcomes(card, config, now)
    return {
        rating: format_interval_for_preview(result.next_review - now)
        for rating, result in outcomes.items()
    }
