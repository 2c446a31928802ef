# Domain Scheduling Package
from .models import (
    DEFAULT_DECK_CONFIG,
    ActiveState,
    BuriedState,
    CardRecord,
    CardSchedule,
    CardState,
    DeckConfig,
    LearningState,
    NewState,
    Rating,
    RelearningState,
    ReviewEntry,
    ReviewState,
    SuspendedState,
)
from .ports import CardRepository, CollectionRepository, ReviewLogRepository

__all__ = [
    "ActiveState",
    "BuriedState",
    "CardRecord",
    "CardRepository",
    "CardSchedule",
    "CardState",
    "CollectionRepository",
    "DEFAULT_DECK_CONFIG",
    "DeckConfig",
    "LearningState",
    "NewState",
    "Rating",
    "RelearningState",
    "ReviewEntry",
    "ReviewLogRepository",
    "ReviewState",
    "SuspendedState",
]
