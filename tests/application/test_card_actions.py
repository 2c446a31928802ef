from datetime import date, datetime, timedelta, timezone

import pytest

from nomos.application.card_actions import (
    bury_card,
    release_buried,
    suspend_card,
    unbury_card,
    unsuspend_card,
)
from nomos.domain.errors import InvalidStateTransitionError
from nomos.domain.scheduling.models import (
    BuriedState,
    CardRecord,
    CardState,
    ReviewState,
    SuspendedState,
)


@pytest.fixture
def reviewed(now):
    state = ReviewState(interval=6, ease_factor=2.5, repetitions=2, due=now + timedelta(days=6))
    return CardRecord(id="r", deck_id="bio", state=state, lapses=1)


def test_suspend_round_trip_keeps_schedule(reviewed):
    suspended = suspend_card(reviewed)
    assert suspended.card_state is CardState.SUSPENDED
    assert suspended.lapses == 1

    restored = unsuspend_card(suspended)
    assert restored == reviewed


def test_suspend_twice_fails(reviewed):
    with pytest.raises(InvalidStateTransitionError):
        suspend_card(suspend_card(reviewed))


def test_suspend_buried_card_keeps_underlying_state(reviewed, now):
    suspended = suspend_card(bury_card(reviewed, now))
    assert isinstance(suspended.state, SuspendedState)
    assert suspended.state.previous == reviewed.state


def test_unsuspend_requires_suspended(reviewed):
    with pytest.raises(InvalidStateTransitionError):
        unsuspend_card(reviewed)


def test_bury_until_next_day(new_card):
    late = datetime(2026, 3, 14, 23, 50, tzinfo=timezone.utc)
    buried = bury_card(new_card, late)
    assert isinstance(buried.state, BuriedState)
    assert buried.state.until == date(2026, 3, 15)
    assert unbury_card(buried) == new_card


def test_bury_hidden_card_fails(reviewed, now):
    with pytest.raises(InvalidStateTransitionError):
        bury_card(suspend_card(reviewed), now)
    with pytest.raises(InvalidStateTransitionError):
        bury_card(bury_card(reviewed, now), now)
    with pytest.raises(InvalidStateTransitionError):
        unbury_card(reviewed)


def test_release_buried(reviewed, new_card, now):
    buried = bury_card(reviewed, now)

    assert release_buried([buried, new_card], now.date()) == []

    released = release_buried([buried, new_card], now.date() + timedelta(days=1))
    assert released == [reviewed]
