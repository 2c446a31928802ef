"""
Queue builder for study sessions.

Partitions a collection of card records into the queues a study session
consumes:
1. Learning/relearning cards whose step has expired (most overdue first)
2. Review cards whose due date has arrived (most overdue first)
3. New cards (creation order), subject to a caller-supplied limit

Suspended and buried cards never enter any queue.
"""

import logging
import random
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from nomos.application.utils.intervals import as_utc
from nomos.domain.scheduling.models import CardRecord, CardState, DeckConfig

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class DailyCounts:
    """Cards already studied today, used to apply the deck's daily limits."""

    new_studied: int = 0
    reviews_done: int = 0


@dataclass
class StudyQueue:
    """Result of queue building."""

    learning: list[CardRecord] = field(default_factory=list)  # learning + relearning
    review: list[CardRecord] = field(default_factory=list)
    new: list[CardRecord] = field(default_factory=list)
    new_remaining: int = 0  # new cards still allowed today
    reviews_remaining: int = 0  # reviews still allowed today

    @property
    def total_due(self) -> int:
        return len(self.learning) + len(self.review) + len(self.new)

    def ordered(self) -> list[CardRecord]:
        """Flat session order: learning, then review, then new."""
        return [*self.learning, *self.review, *self.new]


def is_due(card: CardRecord, now: datetime) -> bool:
    """
    Whether a card is eligible for study at `now`.

    New cards are always eligible; learning, relearning and review cards once
    their due time has passed; suspended and buried cards never.
    """
    now = as_utc(now)
    state = card.card_state
    if state is CardState.NEW:
        return True
    if state in (CardState.LEARNING, CardState.RELEARNING, CardState.REVIEW):
        return _due_key(card) <= now
    return False


def due_cards(
    cards: Iterable[CardRecord],
    now: datetime,
    new_limit: int | None = None,
) -> list[CardRecord]:
    """
    Return the cards due at `now` in study order.

    Args:
        cards: Collection to scan.
        now: Reference moment (naive values are read as UTC).
        new_limit: Maximum number of new cards to include (None = all).

    Returns:
        Learning/relearning cards, then review cards (both most overdue
        first), then new cards in creation order.
    """
    queue = _partition(cards, as_utc(now))
    if new_limit is not None:
        queue.new = queue.new[: max(0, new_limit)]
    return queue.ordered()


def build_study_queue(
    cards: Iterable[CardRecord],
    config: DeckConfig,
    daily: DailyCounts | None = None,
    now: datetime | None = None,
) -> StudyQueue:
    """
    Build the study queue for one deck, respecting its daily limits.

    Learning cards are time-sensitive and never limited. New and review
    cards are capped by what is left of new_cards_per_day / reviews_per_day.
    """
    now = datetime.now(timezone.utc) if now is None else as_utc(now)
    daily = daily or DailyCounts()

    queue = _partition(cards, now)
    queue.new_remaining = max(0, config.new_cards_per_day - daily.new_studied)
    queue.reviews_remaining = max(0, config.reviews_per_day - daily.reviews_done)

    queue.new = queue.new[: queue.new_remaining]
    queue.review = queue.review[: queue.reviews_remaining]

    logger.debug(
        f"Study queue: {len(queue.learning)} learning, {len(queue.review)} review, "
        f"{len(queue.new)} new"
    )
    return queue


def next_card(queue: StudyQueue, rng: random.Random | None = None) -> CardRecord | None:
    """
    Pick the next card to show.

    Learning cards go first. Otherwise new and review cards are interleaved,
    choosing new with probability proportional to its share of the rest.
    """
    if queue.learning:
        return queue.learning[0]

    if not queue.new and not queue.review:
        return None
    if not queue.new:
        return queue.review[0]
    if not queue.review:
        return queue.new[0]

    source = rng or random
    new_ratio = len(queue.new) / (len(queue.new) + len(queue.review))
    if source.random() < new_ratio:
        return queue.new[0]
    return queue.review[0]


def count_due(cards: Iterable[CardRecord], now: datetime) -> dict[str, int]:
    """Due counts per queue, for collection-level badges."""
    now = as_utc(now)
    counts = Counter()
    for card in cards:
        if not is_due(card, now):
            continue
        state = card.card_state
        if state in (CardState.LEARNING, CardState.RELEARNING):
            counts["learning"] += 1
        else:
            counts[state.value] += 1
    return {
        "learning": counts["learning"],
        "review": counts["review"],
        "new": counts["new"],
        "total": sum(counts.values()),
    }


def _partition(cards: Iterable[CardRecord], now: datetime) -> StudyQueue:
    queue = StudyQueue()
    for card in cards:
        if not is_due(card, now):
            continue
        state = card.card_state
        if state is CardState.NEW:
            queue.new.append(card)
        elif state is CardState.REVIEW:
            queue.review.append(card)
        else:
            queue.learning.append(card)

    queue.learning.sort(key=_due_key)
    queue.review.sort(key=_due_key)
    queue.new.sort(key=_creation_key)
    return queue


def _due_key(card: CardRecord) -> datetime:
    return card.next_review or _EPOCH


def _creation_key(card: CardRecord) -> tuple[datetime, int]:
    return (card.created_at or _EPOCH, card.position)
