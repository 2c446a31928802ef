"""
Grading state machine.

Computes the next scheduling record of a card from its current record, the
deck configuration, a rating and the current time. Pure and stateless:
persisting the result is the caller's job.

Lifecycle:
    new -> learning -> review <-> relearning

A new card counts as sitting on learning step 0, so "good" moves it to step
1 (or graduates it when the deck has a single step) and "easy" graduates it
immediately. Suspended and buried cards cannot be graded.
"""

import logging
import random
from dataclasses import replace
from datetime import datetime, timezone

from nomos.application.utils.intervals import add_days, as_utc, round_half_up, step_delay
from nomos.domain import constants as c
from nomos.domain.errors import InvalidConfigurationError, InvalidStateTransitionError
from nomos.domain.scheduling.models import (
    DEFAULT_DECK_CONFIG,
    BuriedState,
    CardRecord,
    DeckConfig,
    LearningState,
    NewState,
    Rating,
    RelearningState,
    ReviewState,
    SuspendedState,
)

logger = logging.getLogger(__name__)


def schedule_card(
    card: CardRecord,
    rating: Rating | str | int,
    config: DeckConfig = DEFAULT_DECK_CONFIG,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> CardRecord:
    """
    Grade a card and return its next scheduling record.

    Args:
        card: Current record. Never modified.
        rating: again/hard/good/easy (or Anki button number 1-4).
        config: Resolved deck configuration.
        now: Grading moment; defaults to the current UTC time. Naive values are
            read as UTC.
        rng: Random source for interval fuzz (only used when config.fuzz).

    Returns:
        A new CardRecord with the updated state (and lapse count).

    Raises:
        InvalidRatingError: The rating is not one of the four values.
        InvalidStateTransitionError: The card is suspended or buried.
        InvalidConfigurationError: The deck has no steps for a card that needs one.
    """
    rating = Rating.parse(rating)
    now = datetime.now(timezone.utc) if now is None else as_utc(now)

    state = card.state
    if not is_gradable(card):
        raise InvalidStateTransitionError(
            f"Card {card.id} is {state.kind.value} and cannot be graded"
        )

    lapses = card.lapses
    if isinstance(state, NewState):
        new_state = _schedule_learning(0, rating, config, now, rng)
    elif isinstance(state, LearningState):
        new_state = _schedule_learning(state.step, rating, config, now, rng)
    elif isinstance(state, ReviewState):
        new_state = _schedule_review(state, rating, config, now, rng)
        if rating is Rating.AGAIN:
            lapses += 1
    else:
        new_state = _schedule_relearning(state, rating, config, now, rng)

    result = replace(card, state=new_state, lapses=lapses)
    logger.debug(
        f"Graded {card.id} {rating.value}: {card.card_state.value} -> {result.card_state.value} "
        f"(interval {card.interval} -> {result.interval}, "
        f"ease {card.ease_factor} -> {result.ease_factor})"
    )
    return result


def is_gradable(card: CardRecord) -> bool:
    return not isinstance(card.state, (SuspendedState, BuriedState))


# ---------------------------------------------------------------------------
# Per-state transitions
# ---------------------------------------------------------------------------


def _schedule_learning(
    step: int,
    rating: Rating,
    config: DeckConfig,
    now: datetime,
    rng: random.Random | None,
) -> LearningState | ReviewState:
    steps = config.learning_steps_minutes
    if not steps:
        raise InvalidConfigurationError("Deck has no learning steps; cannot schedule a new card")

    if rating is Rating.EASY:
        interval = _cap(config.easy_interval_days, config)
        return ReviewState(
            interval=interval,
            ease_factor=config.starting_ease,
            repetitions=1,
            due=add_days(now, interval),
        )

    outcome = _step_outcome(steps, step, rating, config)
    if outcome is None:
        interval = _fuzz(_cap(config.graduating_interval_days, config), 1, config, rng)
        return ReviewState(
            interval=interval,
            ease_factor=config.starting_ease,
            repetitions=1,
            due=add_days(now, interval),
        )

    next_step, minutes = outcome
    return LearningState(step=next_step, due=now + step_delay(minutes))


def _schedule_review(
    state: ReviewState,
    rating: Rating,
    config: DeckConfig,
    now: datetime,
    rng: random.Random | None,
) -> ReviewState | RelearningState:
    interval = max(1, state.interval)
    ease = max(c.SM2_MIN_EASE_FACTOR, state.ease_factor)

    if rating is Rating.AGAIN:
        return _lapse(interval, ease, config, now, rng)

    if rating is Rating.HARD:
        new_ease = max(c.SM2_MIN_EASE_FACTOR, ease - c.SM2_HARD_PENALTY)
        floor = 1
        new_interval = max(floor, round_half_up(interval * config.hard_interval_factor))
    elif rating is Rating.GOOD:
        new_ease = ease
        floor = interval + 1
        new_interval = max(
            floor, round_half_up(interval * ease * config.interval_modifier)
        )
    else:
        new_ease = ease + c.SM2_EASE_BONUS
        floor = interval + 1
        new_interval = max(
            floor,
            round_half_up(interval * ease * config.easy_bonus * config.interval_modifier),
        )

    new_interval = _fuzz(_cap(new_interval, config), floor, config, rng)
    return ReviewState(
        interval=new_interval,
        ease_factor=new_ease,
        repetitions=state.repetitions + 1,
        due=add_days(now, new_interval),
    )


def _lapse(
    interval: int,
    ease: float,
    config: DeckConfig,
    now: datetime,
    rng: random.Random | None,
) -> ReviewState | RelearningState:
    new_ease = max(c.SM2_MIN_EASE_FACTOR, ease - c.SM2_EASE_PENALTY)
    lapse_interval = _cap(lapse_interval_for(interval, config), config)

    steps = config.relearning_steps_minutes
    if not steps:
        lapse_interval = _fuzz(lapse_interval, 1, config, rng)
        return ReviewState(
            interval=lapse_interval,
            ease_factor=new_ease,
            repetitions=0,
            due=add_days(now, lapse_interval),
        )

    return RelearningState(
        step=0,
        due=now + step_delay(steps[0]),
        interval=lapse_interval,
        ease_factor=new_ease,
        repetitions=0,
    )


def _schedule_relearning(
    state: RelearningState,
    rating: Rating,
    config: DeckConfig,
    now: datetime,
    rng: random.Random | None,
) -> RelearningState | ReviewState:
    ease = max(c.SM2_MIN_EASE_FACTOR, state.ease_factor)

    if rating is Rating.EASY:
        interval = _fuzz(_cap(state.interval + 1, config), 1, config, rng)
        return ReviewState(
            interval=interval,
            ease_factor=ease,
            repetitions=state.repetitions,
            due=add_days(now, interval),
        )

    steps = config.relearning_steps_minutes
    if not steps and rating is not Rating.GOOD:
        raise InvalidConfigurationError(
            "Deck has no relearning steps; cannot repeat a relearning step"
        )

    outcome = _step_outcome(steps, state.step, rating, config)
    if outcome is None:
        interval = _cap(max(state.interval, config.lapse_min_interval_days), config)
        interval = _fuzz(interval, 1, config, rng)
        return ReviewState(
            interval=interval,
            ease_factor=ease,
            repetitions=state.repetitions,
            due=add_days(now, interval),
        )

    next_step, minutes = outcome
    return replace(state, step=next_step, due=now + step_delay(minutes), ease_factor=ease)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _step_outcome(
    steps: tuple[float, ...],
    step: int,
    rating: Rating,
    config: DeckConfig,
) -> tuple[int, float] | None:
    """
    Resolve again/hard/good on a step sequence.

    Returns (next step index, delay in minutes), or None when the card
    graduates. A step index beyond the sequence (the deck lost steps since
    the card was scheduled) repeats the last step.
    """
    if rating is Rating.AGAIN:
        return 0, steps[0]

    if rating is Rating.HARD:
        current = min(step, len(steps) - 1)
        minutes = steps[current]
        if config.hard_step_policy == "average" and current + 1 < len(steps):
            minutes = (steps[current] + steps[current + 1]) / 2
        return current, minutes

    next_step = step + 1
    if next_step >= len(steps):
        return None
    return next_step, steps[next_step]


def lapse_interval_for(interval: int, config: DeckConfig) -> int:
    """Interval kept after a lapse, before the maximum-interval cap."""
    return max(
        config.lapse_min_interval_days,
        round_half_up(interval * config.lapse_new_interval_percent),
    )


def _cap(interval: int, config: DeckConfig) -> int:
    return max(1, min(config.maximum_interval_days, interval))


def _fuzz(
    interval: int,
    floor: int,
    config: DeckConfig,
    rng: random.Random | None,
) -> int:
    if not config.fuzz:
        return interval
    return fuzz_interval(
        interval,
        rng=rng,
        floor=min(floor, config.maximum_interval_days),
        ceiling=config.maximum_interval_days,
    )


def fuzz_interval(
    interval: int,
    rng: random.Random | None = None,
    floor: int = 1,
    ceiling: int = c.DEFAULT_MAXIMUM_INTERVAL_DAYS,
) -> int:
    """
    Spread an interval randomly so cards graded together do not clump.

    Intervals under 3 days are left alone, 3-7 days move by up to one day,
    longer ones by up to 5% (rounded). The result stays within [floor, ceiling].
    """
    if interval < c.FUZZ_MIN_INTERVAL:
        return interval

    source = rng or random
    if interval <= c.FUZZ_SHORT_INTERVAL_MAX:
        spread = 1
    else:
        spread = round_half_up(interval * c.FUZZ_RATIO)
    fuzzed = interval + source.randint(-spread, spread)
    return min(ceiling, max(floor, fuzzed))
