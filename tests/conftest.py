from datetime import datetime, timezone

import pytest

from nomos.domain.scheduling.models import CardRecord, DeckConfig


@pytest.fixture
def now():
    """A fixed, timezone-aware grading moment."""
    return datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def config():
    """Deck configuration with fuzz off (the default) for exact assertions."""
    return DeckConfig()


@pytest.fixture
def new_card(now):
    return CardRecord(id="c1", deck_id="bio", created_at=now)


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "collection.json"


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    return home
