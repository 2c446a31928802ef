"""
Review Service: Application layer orchestrator for study sessions.

Reads card records from the repository, runs the pure scheduler, writes the
result back and logs a ReviewEntry for statistics. Grading calls on the same
card are serialized so that each transition sees the previous one's output.
"""

import asyncio
import logging
import random
from collections import Counter
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from nomos.application.card_actions import (
    bury_card,
    release_buried,
    suspend_card,
    unbury_card,
    unsuspend_card,
)
from nomos.application.config import DeckConfigRegistry
from nomos.application.id_service import generate_card_id
from nomos.application.preview import preview_intervals
from nomos.application.queue_builder import StudyQueue, build_study_queue
from nomos.application.scheduler import schedule_card
from nomos.application.stats.metrics_calculator import StudyMetricsCalculator
from nomos.application.utils.intervals import as_utc
from nomos.domain.errors import CardNotFoundError
from nomos.domain.scheduling.models import CardRecord, Rating, ReviewEntry
from nomos.domain.scheduling.ports import (
    CardRepository,
    CollectionRepository,
    ReviewLogRepository,
)

logger = logging.getLogger(__name__)


class ReviewService:
    """
    Application service driving grading and queue building for a collection.
    """

    def __init__(
        self,
        card_repo: CardRepository,
        review_repo: ReviewLogRepository,
        decks: DeckConfigRegistry | None = None,
        rng: random.Random | None = None,
    ):
        self._cards = card_repo
        self._reviews = review_repo
        self._decks = decks or DeckConfigRegistry()
        self._rng = rng
        self._calc = StudyMetricsCalculator()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    async def add_card(self, deck_id: str, now: datetime | None = None) -> CardRecord:
        """Create a new card in `deck_id` and persist it."""
        now = _resolve_now(now)
        existing = await self._cards.list_cards(deck_id)
        card = CardRecord(
            id=generate_card_id(),
            deck_id=deck_id,
            created_at=now,
            position=len(existing),
        )
        await self._cards.save_card(card)
        logger.info(f"Added card {card.id} to deck {deck_id}")
        return card

    async def get_card(self, card_id: str) -> CardRecord:
        card = await self._cards.get_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)
        return card

    async def grade(
        self,
        card_id: str,
        rating: Rating | str | int,
        now: datetime | None = None,
        response_time_ms: int = 0,
    ) -> CardRecord:
        """
        Grade a card, persist the new record and log the review.

        Raises:
            CardNotFoundError: Unknown card id.
            SchedulingError: Propagated from the scheduler; nothing is written.
        """
        rating = Rating.parse(rating)
        now = _resolve_now(now)

        async with self._card_lock(card_id):
            card = await self.get_card(card_id)
            config = self._decks.get(card.deck_id)
            updated = schedule_card(card, rating, config, now, rng=self._rng)

            entry = ReviewEntry(
                card_id=card.id,
                deck_id=card.deck_id,
                rating=rating,
                reviewed_at=now,
                response_time_ms=response_time_ms,
                previous_state=card.card_state,
                new_state=updated.card_state,
                previous_interval=card.interval,
                new_interval=updated.interval,
                previous_ease=card.ease_factor,
                new_ease=updated.ease_factor,
                step=card.learning_step,
            )
            await self._save_graded(updated, entry)

        logger.info(
            f"Card {card_id} graded {rating.value}: {updated.card_state.value}, "
            f"next review {updated.next_review.isoformat()}"
        )
        return updated

    async def preview(self, card_id: str, now: datetime | None = None) -> dict[Rating, str]:
        card = await self.get_card(card_id)
        return preview_intervals(card, self._decks.get(card.deck_id), _resolve_now(now))

    async def study_queue(self, deck_id: str, now: datetime | None = None) -> StudyQueue:
        """
        Build today's queue for a deck.

        Buried cards whose day has come are released (and persisted) first;
        daily limits are computed from today's review log.
        """
        now = _resolve_now(now)
        cards = await self._cards.list_cards(deck_id)

        released = release_buried(cards, now.date())
        if released:
            await self._cards.save_cards(released)
            by_id = {card.id: card for card in released}
            cards = [by_id.get(card.id, card) for card in cards]

        entries = await self._reviews.get_reviews(deck_id=deck_id)
        daily = self._calc.daily_counts(entries, now.date())
        return build_study_queue(cards, self._decks.get(deck_id), daily, now)

    async def suspend(self, card_id: str) -> CardRecord:
        return await self._update(card_id, suspend_card)

    async def unsuspend(self, card_id: str) -> CardRecord:
        return await self._update(card_id, unsuspend_card)

    async def bury(self, card_id: str, now: datetime | None = None) -> CardRecord:
        moment = _resolve_now(now)
        return await self._update(card_id, lambda card: bury_card(card, moment))

    async def unbury(self, card_id: str) -> CardRecord:
        return await self._update(card_id, unbury_card)

    async def _update(
        self, card_id: str, action: Callable[[CardRecord], CardRecord]
    ) -> CardRecord:
        async with self._card_lock(card_id):
            card = await self.get_card(card_id)
            updated = action(card)
            await self._cards.save_card(updated)
        logger.info(f"Card {card_id}: {card.card_state.value} -> {updated.card_state.value}")
        return updated

    async def _save_graded(self, card: CardRecord, entry: ReviewEntry) -> None:
        if self._cards is self._reviews and isinstance(self._cards, CollectionRepository):
            await self._cards.save_graded(card, entry)
            return
        # Separate stores: the log entry is written before the card.
        await self._reviews.append_review(entry)
        await self._cards.save_card(card)

    @asynccontextmanager
    async def _card_lock(self, card_id: str) -> AsyncIterator[None]:
        """Serialize work on one card; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(card_id)
        if lock is None:
            lock = self._locks[card_id] = asyncio.Lock()
        self._lock_users[card_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[card_id] -= 1
            if not self._lock_users[card_id]:
                del self._lock_users[card_id]
                del self._locks[card_id]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _resolve_now(now: datetime | None) -> datetime:
    if now is None:
        return _utcnow()
    return as_utc(now)
