"""
Study Stats Service: Application layer orchestrator.

Coordinates fetching cards and review history from the repositories and
summarizing them with the metrics calculator.
"""

import logging

from nomos.domain.scheduling.ports import CardRepository, ReviewLogRepository

from .metrics_calculator import StudyMetricsCalculator, StudySummary

logger = logging.getLogger(__name__)


class StudyStatsService:
    """
    Application service for study statistics.

    Depends on the repository abstractions, not concrete adapters.
    """

    def __init__(
        self,
        card_repo: CardRepository,
        review_repo: ReviewLogRepository,
        calculator: StudyMetricsCalculator | None = None,
    ):
        """
        Args:
            card_repo: The repository (port) for card records.
            review_repo: The repository (port) for review history.
            calculator: Optional custom calculator; uses default if not provided.
        """
        self._cards = card_repo
        self._reviews = review_repo
        self._calc = calculator or StudyMetricsCalculator()

    async def get_summary(self, deck_id: str | None = None) -> StudySummary:
        """
        Summarize one deck (or the whole collection when deck_id is None).
        """
        cards = await self._cards.list_cards(deck_id)
        entries = await self._reviews.get_reviews(deck_id=deck_id)
        return self._calc.summarize(cards, entries)
