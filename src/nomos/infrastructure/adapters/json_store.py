"""
JSON Collection Store: Infrastructure adapter for a single-file collection.

Implements CollectionRepository (cards and review log) on top of one JSON
document. Card records are stored in the flat field layout used by the web
client (cardState, nextReview, interval, easeFactor, repetitions,
learningStep, ...) and mapped to the tagged state variants on load.
"""

import json
import logging
import os
import tempfile
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from nomos.domain.errors import StorageError
from nomos.domain.scheduling.models import (
    ActiveState,
    BuriedState,
    CardRecord,
    CardState,
    LearningState,
    NewState,
    Rating,
    RelearningState,
    ReviewEntry,
    ReviewState,
    SuspendedState,
)
from nomos.domain.scheduling.ports import CollectionRepository

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class JsonCollectionStore(CollectionRepository):
    """
    Stores cards and review history in one JSON file.

    Every write replaces the file atomically (temp file + rename), so a crash
    never leaves a half-written collection behind.
    """

    def __init__(self, path: Path):
        self.path = path

    # ----- CardRepository -----

    async def get_card(self, card_id: str) -> CardRecord | None:
        for raw in self._load()["cards"]:
            if raw.get("id") == card_id:
                return card_from_dict(raw)
        return None

    async def list_cards(self, deck_id: str | None = None) -> list[CardRecord]:
        cards = [card_from_dict(raw) for raw in self._load()["cards"]]
        if deck_id is not None:
            cards = [card for card in cards if card.deck_id == deck_id]
        return cards

    async def save_card(self, card: CardRecord) -> None:
        await self.save_cards([card])

    async def save_cards(self, cards: list[CardRecord]) -> None:
        if not cards:
            return
        data = self._load()
        _upsert_cards(data, cards)
        self._write(data)

    # ----- ReviewLogRepository -----

    async def append_review(self, entry: ReviewEntry) -> None:
        data = self._load()
        data["reviews"].append(review_to_dict(entry))
        self._write(data)

    # ----- CollectionRepository -----

    async def save_graded(self, card: CardRecord, entry: ReviewEntry) -> None:
        data = self._load()
        _upsert_cards(data, [card])
        data["reviews"].append(review_to_dict(entry))
        self._write(data)

    async def get_reviews(
        self, card_ids: list[str] | None = None, deck_id: str | None = None
    ) -> list[ReviewEntry]:
        entries = [review_from_dict(raw) for raw in self._load()["reviews"]]
        if card_ids is not None:
            wanted = set(card_ids)
            entries = [e for e in entries if e.card_id in wanted]
        if deck_id is not None:
            entries = [e for e in entries if e.deck_id == deck_id]
        entries.sort(key=lambda e: e.reviewed_at)
        return entries

    # ----- File I/O -----

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"version": FORMAT_VERSION, "cards": [], "reviews": []}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read collection {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Collection {self.path} is not a JSON object")
        data.setdefault("cards", [])
        data.setdefault("reviews", [])
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data["version"] = FORMAT_VERSION
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".collection-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote {len(data['cards'])} cards to {self.path}")


# ---------------------------------------------------------------------------
# Record mapping
# ---------------------------------------------------------------------------


def _upsert_cards(data: dict[str, Any], cards: list[CardRecord]) -> None:
    index = {raw.get("id"): i for i, raw in enumerate(data["cards"])}
    for card in cards:
        raw = card_to_dict(card)
        if card.id in index:
            data["cards"][index[card.id]] = raw
        else:
            index[card.id] = len(data["cards"])
            data["cards"].append(raw)


def card_to_dict(card: CardRecord) -> dict[str, Any]:
    """Flatten a card record into the persisted field layout."""
    raw: dict[str, Any] = {
        "id": card.id,
        "deckId": card.deck_id,
        "cardState": card.card_state.value,
        "nextReview": _dt_out(card.next_review),
        "interval": card.interval,
        "easeFactor": card.ease_factor,
        "repetitions": card.repetitions,
        "learningStep": card.learning_step,
        "lapses": card.lapses,
        "createdAt": _dt_out(card.created_at),
        "position": card.position,
    }
    if isinstance(card.state, (SuspendedState, BuriedState)):
        raw["previousState"] = card.state.previous.kind.value
    if isinstance(card.state, BuriedState):
        raw["buriedUntil"] = card.state.until.isoformat()
    return raw


def card_from_dict(raw: dict[str, Any]) -> CardRecord:
    """
    Rebuild a card record from its persisted fields.

    Raises:
        StorageError: If required fields are missing or inconsistent.
    """
    try:
        state_name = CardState(raw["cardState"])
        if state_name in (CardState.SUSPENDED, CardState.BURIED):
            previous = _active_from_dict(CardState(raw["previousState"]), raw)
            if state_name is CardState.SUSPENDED:
                state = SuspendedState(previous=previous)
            else:
                state = BuriedState(
                    previous=previous, until=date.fromisoformat(raw["buriedUntil"])
                )
        else:
            state = _active_from_dict(state_name, raw)

        return CardRecord(
            id=str(raw["id"]),
            deck_id=str(raw["deckId"]),
            state=state,
            lapses=int(raw.get("lapses") or 0),
            created_at=_dt_in(raw.get("createdAt")),
            position=int(raw.get("position") or 0),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise StorageError(f"Malformed card record {raw.get('id')!r}: {e}") from e


def _active_from_dict(kind: CardState, raw: dict[str, Any]) -> ActiveState:
    if kind is CardState.NEW:
        return NewState()
    due = _dt_in(raw["nextReview"])
    if due is None:
        raise ValueError(f"{kind.value} card without nextReview")
    if kind is CardState.LEARNING:
        return LearningState(step=int(raw.get("learningStep") or 0), due=due)
    if kind is CardState.REVIEW:
        return ReviewState(
            interval=max(1, int(raw["interval"])),
            ease_factor=float(raw["easeFactor"]),
            repetitions=int(raw.get("repetitions") or 0),
            due=due,
        )
    if kind is CardState.RELEARNING:
        return RelearningState(
            step=int(raw.get("learningStep") or 0),
            due=due,
            interval=max(1, int(raw["interval"])),
            ease_factor=float(raw["easeFactor"]),
            repetitions=int(raw.get("repetitions") or 0),
        )
    raise ValueError(f"{kind.value} is not an active state")


def review_to_dict(entry: ReviewEntry) -> dict[str, Any]:
    return {
        "cardId": entry.card_id,
        "deckId": entry.deck_id,
        "rating": entry.rating.value,
        "reviewedAt": _dt_out(entry.reviewed_at),
        "responseTimeMs": entry.response_time_ms,
        "previousState": entry.previous_state.value,
        "newState": entry.new_state.value,
        "previousInterval": entry.previous_interval,
        "newInterval": entry.new_interval,
        "previousEase": entry.previous_ease,
        "newEase": entry.new_ease,
        "step": entry.step,
    }


def review_from_dict(raw: dict[str, Any]) -> ReviewEntry:
    try:
        return ReviewEntry(
            card_id=str(raw["cardId"]),
            deck_id=str(raw["deckId"]),
            rating=Rating(raw["rating"]),
            reviewed_at=_dt_in(raw["reviewedAt"]),
            response_time_ms=int(raw.get("responseTimeMs") or 0),
            previous_state=CardState(raw["previousState"]),
            new_state=CardState(raw["newState"]),
            previous_interval=int(raw.get("previousInterval") or 0),
            new_interval=int(raw.get("newInterval") or 0),
            previous_ease=raw.get("previousEase"),
            new_ease=raw.get("newEase"),
            step=raw.get("step"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise StorageError(f"Malformed review entry: {e}") from e


def _dt_out(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt_in(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
