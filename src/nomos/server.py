import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from functools import lru_cache

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from nomos.application.config import resolve_config
from nomos.application.factory import get_review_service, get_stats_service
from nomos.application.review_service import ReviewService
from nomos.application.stats.service import StudyStatsService
from nomos.consts import VERSION
from nomos.domain.errors import (
    CardNotFoundError,
    InvalidConfigurationError,
    InvalidRatingError,
    InvalidStateTransitionError,
    NomosError,
)
from nomos.domain.scheduling.models import CardRecord

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("nomos.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log_dir = resolve_config().log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / "server.log", encoding="utf-8")
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    logging.getLogger("nomos").addHandler(file_handler)
    logger.info(f"Nomos Server v{VERSION} starting up (logs in {log_dir})...")
    yield
    # Shutdown
    logger.info("Nomos Server shutting down...")
    logging.getLogger("nomos").removeHandler(file_handler)
    file_handler.close()


app = FastAPI(
    title="Nomos Server",
    description="Flashcard scheduling service for the Nomos study app.",
    version=VERSION,
    lifespan=lifespan,
)

start_time = time.time()

_ERROR_STATUS: list[tuple[type[NomosError], int]] = [
    (CardNotFoundError, 404),
    (InvalidRatingError, 422),
    (InvalidConfigurationError, 422),
    (InvalidStateTransitionError, 409),
]


@app.exception_handler(NomosError)
async def nomos_error_handler(request: Request, exc: NomosError):
    status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    if status == 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@lru_cache
def review_service() -> ReviewService:
    return get_review_service(resolve_config())


@lru_cache
def stats_service() -> StudyStatsService:
    return get_stats_service(resolve_config())


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class CardResponse(BaseModel):
    id: str
    deck_id: str
    card_state: str
    next_review: datetime | None
    interval: int
    ease_factor: float | None
    repetitions: int
    learning_step: int | None
    lapses: int

    @classmethod
    def from_record(cls, card: CardRecord) -> "CardResponse":
        return cls(
            id=card.id,
            deck_id=card.deck_id,
            card_state=card.card_state.value,
            next_review=card.next_review,
            interval=card.interval,
            ease_factor=card.ease_factor,
            repetitions=card.repetitions,
            learning_step=card.learning_step,
            lapses=card.lapses,
        )


class QueueResponse(BaseModel):
    deck_id: str
    learning: list[CardResponse]
    review: list[CardResponse]
    new: list[CardResponse]
    total_due: int
    new_remaining: int
    reviews_remaining: int


class GradeRequest(BaseModel):
    rating: str | int
    response_time_ms: int = 0
    now: datetime | None = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/decks/{deck_id}/queue", response_model=QueueResponse)
async def get_queue(deck_id: str, service: ReviewService = Depends(review_service)):
    """Today's study queue for a deck, with daily limits applied."""
    queue = await service.study_queue(deck_id)
    return QueueResponse(
        deck_id=deck_id,
        learning=[CardResponse.from_record(c) for c in queue.learning],
        review=[CardResponse.from_record(c) for c in queue.review],
        new=[CardResponse.from_record(c) for c in queue.new],
        total_due=queue.total_due,
        new_remaining=queue.new_remaining,
        reviews_remaining=queue.reviews_remaining,
    )


@app.post("/cards/{card_id}/grade", response_model=CardResponse)
async def grade_card(
    card_id: str, req: GradeRequest, service: ReviewService = Depends(review_service)
):
    """Grade a card and return its new scheduling record."""
    card = await service.grade(
        card_id, req.rating, now=req.now, response_time_ms=req.response_time_ms
    )
    return CardResponse.from_record(card)


@app.get("/cards/{card_id}/preview")
async def preview_card(card_id: str, service: ReviewService = Depends(review_service)):
    """Wait each answer button would produce, e.g. {"again": "1m", ...}."""
    labels = await service.preview(card_id)
    return {rating.value: label for rating, label in labels.items()}


@app.get("/stats")
async def get_stats(
    deck_id: str | None = None, service: StudyStatsService = Depends(stats_service)
):
    summary = await service.get_summary(deck_id)
    return asdict(summary)
