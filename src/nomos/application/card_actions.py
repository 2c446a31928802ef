"""Suspend, bury and their inverses: state toggles outside the grading flow."""

import logging
from collections.abc import Iterable
from dataclasses import replace
from datetime import date, datetime

from nomos.application.utils.intervals import next_calendar_day
from nomos.domain.errors import InvalidStateTransitionError
from nomos.domain.scheduling.models import BuriedState, CardRecord, SuspendedState

logger = logging.getLogger(__name__)


def suspend_card(card: CardRecord) -> CardRecord:
    """Hide a card from every queue until it is unsuspended."""
    if isinstance(card.state, SuspendedState):
        raise InvalidStateTransitionError(f"Card {card.id} is already suspended")
    return replace(card, state=SuspendedState(previous=card.active_state))


def unsuspend_card(card: CardRecord) -> CardRecord:
    """Restore the state the card was suspended from."""
    if not isinstance(card.state, SuspendedState):
        raise InvalidStateTransitionError(f"Card {card.id} is not suspended")
    return replace(card, state=card.state.previous)


def bury_card(card: CardRecord, now: datetime) -> CardRecord:
    """Hide a card until the next calendar day."""
    if isinstance(card.state, (SuspendedState, BuriedState)):
        raise InvalidStateTransitionError(
            f"Card {card.id} is {card.card_state.value} and cannot be buried"
        )
    return replace(
        card, state=BuriedState(previous=card.state, until=next_calendar_day(now))
    )


def unbury_card(card: CardRecord) -> CardRecord:
    if not isinstance(card.state, BuriedState):
        raise InvalidStateTransitionError(f"Card {card.id} is not buried")
    return replace(card, state=card.state.previous)


def release_buried(cards: Iterable[CardRecord], today: date) -> list[CardRecord]:
    """
    Unbury every card whose burial ended on or before `today`.

    Returns only the cards that changed; call it when a collection is loaded
    so a new day brings buried cards back.
    """
    released = []
    for card in cards:
        if isinstance(card.state, BuriedState) and card.state.until <= today:
            released.append(unbury_card(card))
    if released:
        logger.info(f"Unburied {len(released)} card(s)")
    return released
