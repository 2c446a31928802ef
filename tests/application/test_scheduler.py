"""Tests for the grading state machine."""

import random
from datetime import date, timedelta

import pytest

from nomos.application.scheduler import fuzz_interval, is_gradable, schedule_card
from nomos.domain.errors import (
    InvalidConfigurationError,
    InvalidRatingError,
    InvalidStateTransitionError,
)
from nomos.domain.scheduling.models import (
    BuriedState,
    CardRecord,
    CardState,
    DeckConfig,
    LearningState,
    NewState,
    Rating,
    RelearningState,
    ReviewState,
    SuspendedState,
)


def review_card(now, interval=10, ease=2.5, reps=3, lapses=0):
    return CardRecord(
        id="r1",
        deck_id="bio",
        state=ReviewState(interval=interval, ease_factor=ease, repetitions=reps, due=now),
        lapses=lapses,
    )


def relearning_card(now, step=0, interval=5, ease=2.3):
    return CardRecord(
        id="rl1",
        deck_id="bio",
        state=RelearningState(step=step, due=now, interval=interval, ease_factor=ease),
        lapses=1,
    )


class TestNewAndLearning:
    """new -> learning -> review."""

    def test_good_twice_graduates(self, new_card, now):
        config = DeckConfig(
            learning_steps_minutes=(1, 10), starting_ease=2.5, graduating_interval_days=1
        )

        first = schedule_card(new_card, "good", config, now)
        assert first.card_state is CardState.LEARNING
        assert first.learning_step == 1
        assert first.next_review == now + timedelta(minutes=10)

        second = schedule_card(first, "good", config, now)
        assert second.card_state is CardState.REVIEW
        assert second.interval == 1
        assert second.ease_factor == 2.5
        assert second.repetitions == 1
        assert second.learning_step is None
        assert second.next_review == now + timedelta(days=1)

    def test_again_starts_first_step(self, new_card, now, config):
        result = schedule_card(new_card, Rating.AGAIN, config, now)
        assert result.state == LearningState(step=0, due=now + timedelta(minutes=1))

    def test_hard_repeats_current_step(self, new_card, now, config):
        result = schedule_card(new_card, Rating.HARD, config, now)
        assert result.state == LearningState(step=0, due=now + timedelta(minutes=1))

    def test_hard_average_policy(self, new_card, now):
        config = DeckConfig(learning_steps_minutes=(1, 10), hard_step_policy="average")
        result = schedule_card(new_card, Rating.HARD, config, now)
        assert result.learning_step == 0
        assert result.next_review == now + timedelta(minutes=5.5)

    def test_hard_average_on_last_step_repeats(self, now):
        config = DeckConfig(learning_steps_minutes=(1, 10), hard_step_policy="average")
        card = CardRecord(id="l", deck_id="bio", state=LearningState(step=1, due=now))
        result = schedule_card(card, Rating.HARD, config, now)
        assert result.next_review == now + timedelta(minutes=10)

    def test_again_in_learning_resets_to_step_zero(self, now, config):
        card = CardRecord(id="l", deck_id="bio", state=LearningState(step=1, due=now))
        result = schedule_card(card, Rating.AGAIN, config, now)
        assert result.learning_step == 0
        assert result.next_review == now + timedelta(minutes=1)

    def test_single_step_good_graduates_new_card(self, new_card, now):
        config = DeckConfig(learning_steps_minutes=(15,), graduating_interval_days=2)
        result = schedule_card(new_card, Rating.GOOD, config, now)
        assert result.card_state is CardState.REVIEW
        assert result.interval == 2

    @pytest.mark.parametrize("steps", [(1,), (1, 10), (1, 10, 60, 1440)])
    def test_easy_graduates_immediately(self, new_card, now, steps):
        config = DeckConfig(learning_steps_minutes=steps, easy_interval_days=4, starting_ease=2.7)
        result = schedule_card(new_card, Rating.EASY, config, now)
        assert result.card_state is CardState.REVIEW
        assert result.interval == 4
        assert result.ease_factor == 2.7
        assert result.repetitions == 1

    def test_easy_from_learning(self, now, config):
        card = CardRecord(id="l", deck_id="bio", state=LearningState(step=1, due=now))
        result = schedule_card(card, Rating.EASY, config, now)
        assert result.card_state is CardState.REVIEW
        assert result.interval == config.easy_interval_days

    def test_step_beyond_shortened_steps(self, now):
        config = DeckConfig(learning_steps_minutes=(1, 10))
        card = CardRecord(id="l", deck_id="bio", state=LearningState(step=4, due=now))

        assert schedule_card(card, Rating.GOOD, config, now).card_state is CardState.REVIEW
        hard = schedule_card(card, Rating.HARD, config, now)
        assert hard.learning_step == 1
        assert hard.next_review == now + timedelta(minutes=10)

    def test_graduating_interval_is_capped(self, new_card, now):
        config = DeckConfig(learning_steps_minutes=(1,), easy_interval_days=10, maximum_interval_days=7)
        assert schedule_card(new_card, Rating.EASY, config, now).interval == 7


class TestReview:
    """review -> review / relearning."""

    def test_good_multiplies_by_ease(self, now, config):
        result = schedule_card(review_card(now), Rating.GOOD, config, now)
        assert result.interval == 25
        assert result.ease_factor == 2.5
        assert result.repetitions == 4
        assert result.next_review == now + timedelta(days=25)

    def test_good_applies_interval_modifier(self, now):
        config = DeckConfig(interval_modifier=1.2)
        result = schedule_card(review_card(now), Rating.GOOD, config, now)
        assert result.interval == 30

    def test_hard_uses_hard_factor_and_penalty(self, now, config):
        result = schedule_card(review_card(now), Rating.HARD, config, now)
        assert result.interval == 12
        assert result.ease_factor == pytest.approx(2.35)
        assert result.repetitions == 4

    def test_hard_never_below_one_day(self, now):
        config = DeckConfig(hard_interval_factor=0.1)
        result = schedule_card(review_card(now, interval=1), Rating.HARD, config, now)
        assert result.interval == 1

    def test_easy_uses_bonus_and_rounds_half_up(self, now, config):
        # 10 * 2.5 * 1.3 = 32.5
        result = schedule_card(review_card(now), Rating.EASY, config, now)
        assert result.interval == 33
        assert result.ease_factor == pytest.approx(2.65)
        assert result.repetitions == 4

    def test_good_guarantees_forward_progress(self, now):
        config = DeckConfig(interval_modifier=0.1)
        result = schedule_card(review_card(now, interval=3), Rating.GOOD, config, now)
        assert result.interval == 4

    def test_cap(self, now):
        config = DeckConfig(maximum_interval_days=30)
        assert schedule_card(review_card(now, interval=20), Rating.GOOD, config, now).interval == 30
        assert schedule_card(review_card(now, interval=30), Rating.EASY, config, now).interval == 30

    def test_lapse_enters_relearning(self, now):
        config = DeckConfig(lapse_new_interval_percent=0.5, relearning_steps_minutes=(10,))
        card = review_card(now, interval=10, ease=2.5, reps=7)

        result = schedule_card(card, Rating.AGAIN, config, now)

        assert result.card_state is CardState.RELEARNING
        assert result.ease_factor == pytest.approx(2.3)
        assert result.repetitions == 0
        assert result.interval == 5
        assert result.learning_step == 0
        assert result.next_review == now + timedelta(minutes=10)
        assert result.lapses == 1

    def test_lapse_ease_floor(self, now, config):
        result = schedule_card(review_card(now, interval=5, ease=1.3), Rating.AGAIN, config, now)
        assert result.ease_factor == 1.3

    def test_lapse_default_percent_uses_minimum(self, now, config):
        result = schedule_card(review_card(now, interval=40), Rating.AGAIN, config, now)
        assert result.interval == 1

    def test_lapse_without_relearning_steps(self, now):
        config = DeckConfig(relearning_steps_minutes=(), lapse_new_interval_percent=0.5)
        result = schedule_card(review_card(now, interval=10), Rating.AGAIN, config, now)

        assert result.card_state is CardState.REVIEW
        assert result.interval == 5
        assert result.repetitions == 0
        assert result.next_review == now + timedelta(days=5)


class TestRelearning:
    """relearning -> relearning / review."""

    def test_good_on_last_step_restores_lapse_interval(self, now, config):
        result = schedule_card(relearning_card(now), Rating.GOOD, config, now)
        assert result.card_state is CardState.REVIEW
        assert result.interval == 5
        assert result.ease_factor == 2.3
        assert result.repetitions == 0
        assert result.lapses == 1

    def test_good_advances_step(self, now):
        config = DeckConfig(relearning_steps_minutes=(10, 60))
        result = schedule_card(relearning_card(now), Rating.GOOD, config, now)
        assert result.card_state is CardState.RELEARNING
        assert result.learning_step == 1
        assert result.interval == 5
        assert result.next_review == now + timedelta(minutes=60)

    def test_again_restarts_steps(self, now):
        config = DeckConfig(relearning_steps_minutes=(10, 60))
        result = schedule_card(relearning_card(now, step=1), Rating.AGAIN, config, now)
        assert result.learning_step == 0
        assert result.interval == 5
        assert result.lapses == 1  # not a new lapse

    def test_hard_repeats_step(self, now, config):
        result = schedule_card(relearning_card(now), Rating.HARD, config, now)
        assert result.card_state is CardState.RELEARNING
        assert result.next_review == now + timedelta(minutes=10)

    def test_easy_graduates_with_bonus_day(self, now, config):
        result = schedule_card(relearning_card(now), Rating.EASY, config, now)
        assert result.card_state is CardState.REVIEW
        assert result.interval == 6

    def test_missing_steps(self, now):
        config = DeckConfig(relearning_steps_minutes=())
        assert schedule_card(relearning_card(now), Rating.GOOD, config, now).interval == 5
        with pytest.raises(InvalidConfigurationError):
            schedule_card(relearning_card(now), Rating.AGAIN, config, now)


class TestErrors:
    def test_invalid_rating(self, new_card, now, config):
        with pytest.raises(InvalidRatingError):
            schedule_card(new_card, "meh", config, now)

    @pytest.mark.parametrize("rating", [0, 5, None, True, 2.0])
    def test_invalid_rating_values(self, new_card, now, config, rating):
        with pytest.raises(InvalidRatingError):
            schedule_card(new_card, rating, config, now)

    def test_numeric_rating(self, new_card, now, config):
        assert schedule_card(new_card, 3, config, now).learning_step == 1

    def test_new_card_without_learning_steps(self, new_card, now):
        config = DeckConfig(learning_steps_minutes=())
        with pytest.raises(InvalidConfigurationError):
            schedule_card(new_card, Rating.EASY, config, now)

    @pytest.mark.parametrize(
        "state",
        [
            SuspendedState(previous=NewState()),
            BuriedState(previous=NewState(), until=date(2026, 3, 15)),
        ],
    )
    def test_hidden_cards_cannot_be_graded(self, now, config, state):
        card = CardRecord(id="h", deck_id="bio", state=state)
        assert not is_gradable(card)
        with pytest.raises(InvalidStateTransitionError):
            schedule_card(card, Rating.GOOD, config, now)

    def test_input_record_untouched(self, now, config):
        card = review_card(now)
        schedule_card(card, Rating.AGAIN, config, now)
        assert card.card_state is CardState.REVIEW
        assert card.interval == 10

    def test_low_starting_ease_is_rejected_before_grading(self, new_card, now):
        with pytest.raises(InvalidConfigurationError):
            schedule_card(new_card, Rating.EASY, DeckConfig(starting_ease=1.0), now)

        graduated = schedule_card(new_card, Rating.EASY, DeckConfig(starting_ease=1.3), now)
        assert graduated.ease_factor >= 1.3

    def test_naive_now_is_read_as_utc(self, new_card, now, config):
        result = schedule_card(new_card, Rating.AGAIN, config, now.replace(tzinfo=None))
        assert result.next_review == now + timedelta(minutes=1)
        assert result.next_review.tzinfo is not None


class TestProperties:
    """Invariants over many random rating sequences."""

    @pytest.mark.parametrize("seed", range(5))
    def test_ease_floor_and_cap(self, new_card, now, seed):
        rng = random.Random(seed)
        config = DeckConfig(maximum_interval_days=120, fuzz=True, lapse_new_interval_percent=0.7)
        card = new_card
        moment = now

        for _ in range(300):
            rating = rng.choice(list(Rating))
            card = schedule_card(card, rating, config, moment, rng=rng)
            if card.ease_factor is not None:
                assert card.ease_factor >= 1.3
            assert 0 <= card.interval <= 120
            if card.card_state is CardState.REVIEW:
                assert card.interval >= 1
            if card.card_state not in (CardState.LEARNING, CardState.RELEARNING):
                assert card.learning_step is None
            moment = card.next_review

    @pytest.mark.parametrize("ease", [1.3, 2.5, 3.1])
    @pytest.mark.parametrize("rating", [Rating.GOOD, Rating.EASY])
    def test_forward_progress(self, now, ease, rating):
        config = DeckConfig()
        for interval in range(1, 200, 7):
            result = schedule_card(review_card(now, interval=interval, ease=ease), rating, config, now)
            assert result.interval > interval

    @pytest.mark.parametrize("interval", [1, 4, 30, 365])
    def test_lapse_resets_repetitions(self, now, config, interval):
        card = review_card(now, interval=interval, reps=12)
        assert schedule_card(card, Rating.AGAIN, config, now).repetitions == 0


class TestFuzz:
    def test_short_intervals_untouched(self):
        rng = random.Random(1)
        assert all(fuzz_interval(2, rng) == 2 for _ in range(20))

    def test_ranges(self):
        rng = random.Random(1)
        assert all(4 <= fuzz_interval(5, rng) <= 6 for _ in range(50))
        assert all(95 <= fuzz_interval(100, rng) <= 105 for _ in range(50))

    def test_bounds(self):
        rng = random.Random(1)
        assert all(101 <= fuzz_interval(100, rng, floor=101, ceiling=103) <= 103 for _ in range(50))

    def test_fuzzed_review_keeps_forward_progress(self, now):
        rng = random.Random(7)
        config = DeckConfig(fuzz=True)
        for _ in range(50):
            result = schedule_card(review_card(now, interval=3, ease=1.3), Rating.GOOD, config, now, rng)
            assert result.interval >= 4
