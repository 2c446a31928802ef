"""
Ports (interfaces) for card and review-log persistence.

The scheduler never touches storage; application services depend on these
abstractions and adapters implement them.
"""

from abc import ABC, abstractmethod

from .models import CardRecord, ReviewEntry


class CardRepository(ABC):
    """
    Port for reading and writing card scheduling records.

    Implementations:
        - JsonCollectionStore: Single JSON file on disk.
    """

    @abstractmethod
    async def get_card(self, card_id: str) -> CardRecord | None:
        """Return the card with this id, or None."""
        pass

    @abstractmethod
    async def list_cards(self, deck_id: str | None = None) -> list[CardRecord]:
        """
        Return all cards, optionally restricted to one deck.

        Cards are returned in creation order.
        """
        pass

    @abstractmethod
    async def save_card(self, card: CardRecord) -> None:
        """Insert or replace a card record."""
        pass

    @abstractmethod
    async def save_cards(self, cards: list[CardRecord]) -> None:
        """Insert or replace several records in one write."""
        pass


class ReviewLogRepository(ABC):
    """Port for the append-only review history read by statistics."""

    @abstractmethod
    async def append_review(self, entry: ReviewEntry) -> None:
        pass

    @abstractmethod
    async def get_reviews(
        self, card_ids: list[str] | None = None, deck_id: str | None = None
    ) -> list[ReviewEntry]:
        """
        Fetch review history.

        Returns:
            ReviewEntry objects sorted by reviewed_at ascending.
        """
        pass


class CollectionRepository(CardRepository, ReviewLogRepository):
    """
    Cards and review history kept in one storage unit.

    Implementations:
        - JsonCollectionStore: Single JSON file on disk.
    """

    @abstractmethod
    async def save_graded(self, card: CardRecord, entry: ReviewEntry) -> None:
        """Store a graded card and its review entry in a single write."""
        pass
