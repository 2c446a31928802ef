"""
Domain models for card scheduling.

These are pure data structures with no I/O. A card's lifecycle state is a
tagged variant: every state class carries only the fields that mean something
in that state, so a learning card cannot hold an ease factor and a new card
cannot hold a due date.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import ClassVar, Literal

from nomos.domain import constants as c
from nomos.domain.errors import InvalidConfigurationError, InvalidRatingError


class Rating(str, Enum):
    """Answer button pressed by the learner."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @classmethod
    def parse(cls, value: object) -> "Rating":
        """
        Coerce user input into a Rating.

        Accepts Rating members, their string values (case-insensitive) and
        Anki's button numbers 1-4.

        Raises:
            InvalidRatingError: For anything else.
        """
        if isinstance(value, Rating):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            if 1 <= value <= 4:
                return _BUTTONS[value - 1]
            raise InvalidRatingError(value)
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized.isdigit():
                return cls.parse(int(normalized))
            for member in cls:
                if member.value == normalized:
                    return member
        raise InvalidRatingError(value)


_BUTTONS = (Rating.AGAIN, Rating.HARD, Rating.GOOD, Rating.EASY)


class CardState(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"
    SUSPENDED = "suspended"
    BURIED = "buried"


# ---------------------------------------------------------------------------
# State variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NewState:
    """Never graded. Effective ease is the deck's starting ease."""

    kind: ClassVar[CardState] = CardState.NEW


@dataclass(frozen=True)
class LearningState:
    """
    Walking the deck's learning steps.

    Attributes:
        step: Index into learning_steps_minutes.
        due: Moment the current step expires.
    """

    step: int
    due: datetime

    kind: ClassVar[CardState] = CardState.LEARNING


@dataclass(frozen=True)
class ReviewState:
    """
    Graduated card on day-granularity intervals.

    Attributes:
        interval: Days between the last review and `due` (>= 1).
        ease_factor: Growth multiplier (>= 1.3).
        repetitions: Successful reviews since the last lapse.
        due: Next review moment.
    """

    interval: int
    ease_factor: float
    repetitions: int
    due: datetime

    kind: ClassVar[CardState] = CardState.REVIEW


@dataclass(frozen=True)
class RelearningState:
    """
    Lapsed review card walking the relearning steps.

    Attributes:
        step: Index into relearning_steps_minutes.
        due: Moment the current step expires.
        interval: Interval restored on re-graduation, fixed at lapse time.
        ease_factor: Ease after the lapse penalty.
        repetitions: Reset to 0 by the lapse.
    """

    step: int
    due: datetime
    interval: int
    ease_factor: float
    repetitions: int = 0

    kind: ClassVar[CardState] = CardState.RELEARNING


ActiveState = NewState | LearningState | ReviewState | RelearningState


@dataclass(frozen=True)
class SuspendedState:
    """Hidden from every queue until unsuspended; `previous` is restored then."""

    previous: ActiveState

    kind: ClassVar[CardState] = CardState.SUSPENDED


@dataclass(frozen=True)
class BuriedState:
    """Hidden until the calendar day `until`."""

    previous: ActiveState
    until: date

    kind: ClassVar[CardState] = CardState.BURIED


CardSchedule = ActiveState | SuspendedState | BuriedState


# ---------------------------------------------------------------------------
# Card record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CardRecord:
    """
    Scheduling record of one flashcard.

    The flat properties (`card_state`, `next_review`, `interval`, ...) mirror
    the persisted field layout. For suspended and buried cards they report
    the wrapped active state, which the scheduler never advances.
    """

    id: str
    deck_id: str
    state: CardSchedule = field(default_factory=NewState)
    lapses: int = 0
    created_at: datetime | None = None
    position: int = 0  # tie-breaker among new cards created together

    @property
    def card_state(self) -> CardState:
        return self.state.kind

    @property
    def active_state(self) -> ActiveState:
        if isinstance(self.state, (SuspendedState, BuriedState)):
            return self.state.previous
        return self.state

    @property
    def next_review(self) -> datetime | None:
        active = self.active_state
        if isinstance(active, NewState):
            return None
        return active.due

    @property
    def interval(self) -> int:
        active = self.active_state
        if isinstance(active, (ReviewState, RelearningState)):
            return active.interval
        return 0

    @property
    def ease_factor(self) -> float | None:
        active = self.active_state
        if isinstance(active, (ReviewState, RelearningState)):
            return active.ease_factor
        return None

    @property
    def repetitions(self) -> int:
        active = self.active_state
        if isinstance(active, (ReviewState, RelearningState)):
            return active.repetitions
        return 0

    @property
    def learning_step(self) -> int | None:
        active = self.active_state
        if isinstance(active, (LearningState, RelearningState)):
            return active.step
        return None


# ---------------------------------------------------------------------------
# Deck configuration
# ---------------------------------------------------------------------------

HardStepPolicy = Literal["repeat", "average"]


@dataclass(frozen=True)
class DeckConfig:
    """
    Fully resolved scheduling options of a deck.

    Every field has a concrete value; optional inputs are defaulted once when
    the deck options are loaded (see nomos.application.config).
    """

    learning_steps_minutes: tuple[float, ...] = c.DEFAULT_LEARNING_STEPS_MINUTES
    relearning_steps_minutes: tuple[float, ...] = c.DEFAULT_RELEARNING_STEPS_MINUTES
    graduating_interval_days: int = c.DEFAULT_GRADUATING_INTERVAL_DAYS
    easy_interval_days: int = c.DEFAULT_EASY_INTERVAL_DAYS
    starting_ease: float = c.SM2_INITIAL_EASE_FACTOR
    easy_bonus: float = c.DEFAULT_EASY_BONUS
    hard_interval_factor: float = c.DEFAULT_HARD_INTERVAL_FACTOR
    interval_modifier: float = c.DEFAULT_INTERVAL_MODIFIER
    lapse_new_interval_percent: float = c.DEFAULT_LAPSE_NEW_INTERVAL_PERCENT
    lapse_min_interval_days: int = c.DEFAULT_LAPSE_MIN_INTERVAL_DAYS
    maximum_interval_days: int = c.DEFAULT_MAXIMUM_INTERVAL_DAYS
    new_cards_per_day: int = c.DEFAULT_NEW_CARDS_PER_DAY
    reviews_per_day: int = c.DEFAULT_REVIEWS_PER_DAY
    hard_step_policy: HardStepPolicy = "repeat"
    fuzz: bool = False

    def __post_init__(self):
        """
        Raises:
            InvalidConfigurationError: If any option is out of range.
        """
        problems = []
        for name in ("learning_steps_minutes", "relearning_steps_minutes"):
            steps = getattr(self, name)
            if not all(_positive(step) for step in steps):
                problems.append(f"{name} must hold positive, finite minutes (got {steps!r})")
        for name in (
            "graduating_interval_days",
            "easy_interval_days",
            "lapse_min_interval_days",
            "maximum_interval_days",
        ):
            if getattr(self, name) < 1:
                problems.append(f"{name} must be at least 1")
        for name in ("easy_bonus", "hard_interval_factor", "interval_modifier"):
            if not _positive(getattr(self, name)):
                problems.append(f"{name} must be positive")
        ease = self.starting_ease
        if not (math.isfinite(ease) and ease >= c.SM2_MIN_EASE_FACTOR):
            problems.append(f"starting_ease must be at least {c.SM2_MIN_EASE_FACTOR}")
        if not 0 <= self.lapse_new_interval_percent <= 1:
            problems.append("lapse_new_interval_percent must be between 0 and 1")
        if self.new_cards_per_day < 0 or self.reviews_per_day < 0:
            problems.append("daily limits cannot be negative")
        if self.hard_step_policy not in ("repeat", "average"):
            problems.append(f"unknown hard_step_policy {self.hard_step_policy!r}")
        if problems:
            raise InvalidConfigurationError("Invalid deck configuration: " + "; ".join(problems))


def _positive(value: float) -> bool:
    return math.isfinite(value) and value > 0


DEFAULT_DECK_CONFIG = DeckConfig()


# ---------------------------------------------------------------------------
# Review log
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReviewEntry:
    """
    A single grading event, written by the caller next to each transition.

    Attributes:
        card_id: The card that was graded.
        deck_id: Deck of the card at grading time.
        rating: Button pressed.
        reviewed_at: Moment of grading.
        response_time_ms: Time the learner took to answer.
        previous_state / new_state: Lifecycle states around the transition.
        previous_interval / new_interval: Interval in days around the transition.
        previous_ease / new_ease: Ease factor around the transition (None while learning).
        step: Learning step the card was on before grading.
    """

    card_id: str
    deck_id: str
    rating: Rating
    reviewed_at: datetime
    response_time_ms: int
    previous_state: CardState
    new_state: CardState
    previous_interval: int
    new_interval: int
    previous_ease: float | None = None
    new_ease: float | None = None
    step: int | None = None
