"""
Metrics calculator for deriving study insights from cards and review history.

This is a pure computation module with no I/O.
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from nomos.application.queue_builder import DailyCounts
from nomos.domain.constants import MATURE_THRESHOLD_DAYS
from nomos.domain.scheduling.models import CardRecord, CardState, Rating, ReviewEntry

INTERVAL_BUCKETS: list[tuple[str, int, int | None]] = [
    ("1d", 1, 1),
    ("2-7d", 2, 7),
    ("8-30d", 8, 30),
    ("1-3mo", 31, 90),
    ("3-6mo", 91, 180),
    ("6mo+", 181, None),
]


@dataclass
class StudySummary:
    """
    Aggregate statistics for a set of cards and their review history.
    """

    cards_by_state: dict[str, int]
    young: int  # graduated, interval < 21 days
    mature: int  # interval >= 21 days
    reviews_by_rating: dict[str, int]
    total_reviews: int
    average_response_time_ms: float | None
    retention_rate: float | None  # non-"again" share of review-phase grades
    interval_distribution: dict[str, int] = field(default_factory=dict)


class StudyMetricsCalculator:
    """
    Computes derived metrics from card records and review entries.

    Stateless and side-effect free.
    """

    def summarize(
        self, cards: Iterable[CardRecord], entries: Iterable[ReviewEntry]
    ) -> StudySummary:
        cards = list(cards)
        entries = list(entries)
        young, mature = self.maturity(cards)
        return StudySummary(
            cards_by_state=self.cards_by_state(cards),
            young=young,
            mature=mature,
            reviews_by_rating=self.reviews_by_rating(entries),
            total_reviews=len(entries),
            average_response_time_ms=self.average_response_time(entries),
            retention_rate=self.retention_rate(entries),
            interval_distribution=self.interval_distribution(cards),
        )

    def cards_by_state(self, cards: Iterable[CardRecord]) -> dict[str, int]:
        counts = Counter(card.card_state.value for card in cards)
        result = {state.value: counts[state.value] for state in CardState}
        result["total"] = sum(counts.values())
        return result

    def maturity(self, cards: Iterable[CardRecord]) -> tuple[int, int]:
        """
        Split graduated cards into (young, mature).

        Only review and relearning cards count; suspended and buried cards are
        judged by the state they were hidden from.
        """
        young = mature = 0
        for card in cards:
            if card.active_state.kind not in (CardState.REVIEW, CardState.RELEARNING):
                continue
            if card.interval >= MATURE_THRESHOLD_DAYS:
                mature += 1
            else:
                young += 1
        return young, mature

    def reviews_by_rating(self, entries: Iterable[ReviewEntry]) -> dict[str, int]:
        counts = Counter(entry.rating.value for entry in entries)
        return {rating.value: counts[rating.value] for rating in Rating}

    def average_response_time(self, entries: Iterable[ReviewEntry]) -> float | None:
        times = [entry.response_time_ms for entry in entries if entry.response_time_ms > 0]
        if not times:
            return None
        return sum(times) / len(times)

    def retention_rate(self, entries: Iterable[ReviewEntry]) -> float | None:
        """
        Share of review-phase grades that were not "again".

        Learning-phase grades are excluded: failing a fresh card says nothing
        about long-term retention.
        """
        reviews = [e for e in entries if e.previous_state is CardState.REVIEW]
        if not reviews:
            return None
        passed = sum(1 for e in reviews if e.rating is not Rating.AGAIN)
        return passed / len(reviews)

    def interval_distribution(self, cards: Iterable[CardRecord]) -> dict[str, int]:
        result = {label: 0 for label, _, _ in INTERVAL_BUCKETS}
        for card in cards:
            interval = card.interval
            if interval < 1:
                continue
            for label, low, high in INTERVAL_BUCKETS:
                if interval >= low and (high is None or interval <= high):
                    result[label] += 1
                    break
        return result

    def daily_counts(self, entries: Iterable[ReviewEntry], day: date) -> DailyCounts:
        """
        Count what was studied on `day`, for daily limits.

        A new card counts once (its first grade); a review counts per grade of
        a card that was in the review state.
        """
        counts = DailyCounts()
        for entry in entries:
            if entry.reviewed_at.date() != day:
                continue
            if entry.previous_state is CardState.NEW:
                counts.new_studied += 1
            elif entry.previous_state is CardState.REVIEW:
                counts.reviews_done += 1
        return counts
