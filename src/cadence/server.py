import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from cadence.application.config import AppConfig, resolve_config
from cadence.application.deck_service import DeckService
from cadence.application.due_selector import DueCardSelector
from cadence.application.factory import get_card_repository, get_review_service
from cadence.consts import VERSION
from cadence.domain.errors import (
    NotFoundError,
    PersistenceError,
    StaleCardError,
    ValidationError,
)
from cadence.domain.models import Card, Deck, Difficulty, DueCard, NewCard
from cadence.domain.ports import CardRepository

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cadence.server")

_repository: CardRepository | None = None


@lru_cache
def get_config() -> AppConfig:
    return resolve_config()


def get_repository() -> CardRepository:
    global _repository
    if _repository is None:
        _repository = get_card_repository(get_config())
    return _repository


def get_clock() -> datetime:
    return datetime.now(timezone.utc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Cadence Server v{VERSION} starting up...")
    yield
    # Shutdown
    global _repository
    if _repository is not None:
        _repository.close()
        _repository = None
    logger.info("Cadence Server shutting down...")


app = FastAPI(
    title="Cadence Server",
    description="Spaced-repetition scheduling for decks of learning cards.",
    version=VERSION,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def handle_not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def handle_persistence_error(request: Request, exc: PersistenceError):
    status_code = 409 if isinstance(exc, StaleCardError) else 503
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "retryable": exc.retryable},
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class CardSchema(ApiModel):
    id: str
    deck_id: str
    front: str
    back: str
    tags: list[str]
    interval: int
    repetitions: int
    ease_factor: float
    next_review_date: datetime | None
    last_reviewed: datetime | None
    review_count: int
    created_at: datetime | None
    version: int


class ReviewRecordSchema(ApiModel):
    id: str
    card_id: str
    deck_id: str
    difficulty: Difficulty
    response_time: int
    interval_before: int
    interval_after: int
    reviewed_at: datetime


class DueCardSchema(CardSchema):
    is_new: bool
    is_overdue: bool
    time_display: str
    last_review: ReviewRecordSchema | None = None


class DeckSummary(ApiModel):
    id: str
    name: str


class DueStatsSchema(ApiModel):
    total_cards: int
    due_cards: int
    new_cards: int
    review_cards: int


class DueCardsResponse(ApiModel):
    deck: DeckSummary
    cards: list[DueCardSchema]
    stats: DueStatsSchema


class DeckSchema(ApiModel):
    id: str
    name: str
    description: str | None
    created_at: datetime | None
    updated_at: datetime | None
    card_count: int


class DeckDetail(DeckSchema):
    cards: list[CardSchema]


class DeckRequest(ApiModel):
    name: str | None = None
    description: str | None = None


class CardInput(ApiModel):
    front: str | None = None
    back: str | None = None
    tags: list[str] | None = None


class CardsRequest(ApiModel):
    cards: list[CardInput] | None = None


class CardsResponse(ApiModel):
    success: bool
    count: int
    deck: DeckDetail


class ReviewRequest(ApiModel):
    # Validated by ReviewService so bad values are reported as 400, not 422
    difficulty: str | None = None
    response_time: int | None = None
    total_cards: int | None = None
    expected_version: int | None = None


class NextReviewSchema(ApiModel):
    date: datetime
    interval: int
    display: str


class ReviewResponse(ApiModel):
    success: bool
    card: CardSchema
    next_review: NextReviewSchema


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


def _deck_detail(deck: Deck, cards: list[Card]) -> DeckDetail:
    return DeckDetail(
        **DeckSchema.model_validate(deck).model_dump(),
        cards=[CardSchema.model_validate(c) for c in cards],
    )


def _due_card(due: DueCard) -> DueCardSchema:
    return DueCardSchema(
        **CardSchema.model_validate(due.card).model_dump(),
        is_new=due.is_new,
        is_overdue=due.is_overdue,
        time_display=due.time_display,
        last_review=(
            ReviewRecordSchema.model_validate(due.last_review) if due.last_review else None
        ),
    )


def _new_cards(payload: CardsRequest) -> list[NewCard] | None:
    if payload.cards is None:
        return None
    return [NewCard(front=c.front or "", back=c.back or "", tags=c.tags or []) for c in payload.cards]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/decks", response_model=list[DeckSchema])
async def list_decks(repo: CardRepository = Depends(get_repository)):
    decks = await DeckService(repo).list_decks()
    return [DeckSchema.model_validate(d) for d in decks]


@app.post("/decks", response_model=DeckSchema, status_code=201)
async def create_deck(
    req: DeckRequest,
    repo: CardRepository = Depends(get_repository),
    now: datetime = Depends(get_clock),
):
    deck = await DeckService(repo).create_deck(req.name, req.description, now)
    return DeckSchema.model_validate(deck)


@app.get("/decks/{deck_id}", response_model=DeckDetail)
async def get_deck(deck_id: str, repo: CardRepository = Depends(get_repository)):
    deck, cards = await DeckService(repo).get_deck_with_cards(deck_id)
    return _deck_detail(deck, cards)


@app.put("/decks/{deck_id}", response_model=DeckSchema)
async def update_deck(
    deck_id: str,
    req: DeckRequest,
    repo: CardRepository = Depends(get_repository),
    now: datetime = Depends(get_clock),
):
    deck = await DeckService(repo).update_deck(deck_id, req.name, req.description, now)
    return DeckSchema.model_validate(deck)


@app.delete("/decks/{deck_id}")
async def delete_deck(deck_id: str, repo: CardRepository = Depends(get_repository)):
    await DeckService(repo).delete_deck(deck_id)
    return {"success": True}


@app.post("/decks/{deck_id}/cards", response_model=CardsResponse, status_code=201)
async def add_cards(
    deck_id: str,
    req: CardsRequest,
    repo: CardRepository = Depends(get_repository),
    now: datetime = Depends(get_clock),
):
    """Add cards to a deck."""
    service = DeckService(repo)
    created = await service.add_cards(deck_id, _new_cards(req), now)
    deck, cards = await service.get_deck_with_cards(deck_id)
    return CardsResponse(success=True, count=len(created), deck=_deck_detail(deck, cards))


@app.put("/decks/{deck_id}/cards", response_model=CardsResponse)
async def replace_cards(
    deck_id: str,
    req: CardsRequest,
    repo: CardRepository = Depends(get_repository),
    now: datetime = Depends(get_clock),
):
    """Replace all cards in a deck."""
    service = DeckService(repo)
    created = await service.replace_cards(deck_id, _new_cards(req), now)
    deck, cards = await service.get_deck_with_cards(deck_id)
    return CardsResponse(success=True, count=len(created), deck=_deck_detail(deck, cards))


@app.get("/decks/{deck_id}/due-cards", response_model=DueCardsResponse)
async def get_due_cards(
    deck_id: str,
    include_new: bool = Query(False, alias="includeNew"),
    limit: int | None = Query(None, ge=0),
    repo: CardRepository = Depends(get_repository),
    now: datetime = Depends(get_clock),
):
    """
    Cards due for review, most overdue first, with deck summary and stats.
    """
    selection = await DueCardSelector(repo).select(
        deck_id, now, include_new=include_new, limit=limit or None
    )
    return DueCardsResponse(
        deck=DeckSummary(id=selection.deck.id, name=selection.deck.name),
        cards=[_due_card(c) for c in selection.cards],
        stats=DueStatsSchema.model_validate(selection.stats),
    )


@app.put("/cards/{card_id}", response_model=CardSchema)
async def update_card(
    card_id: str, req: CardInput, repo: CardRepository = Depends(get_repository)
):
    card = await DeckService(repo).update_card(card_id, req.front, req.back, req.tags)
    return CardSchema.model_validate(card)


@app.delete("/cards/{card_id}")
async def delete_card(card_id: str, repo: CardRepository = Depends(get_repository)):
    await DeckService(repo).delete_card(card_id)
    return {"success": True}


@app.get("/cards/{card_id}/reviews", response_model=list[ReviewRecordSchema])
async def get_card_reviews(card_id: str, repo: CardRepository = Depends(get_repository)):
    records = await DeckService(repo).card_history(card_id)
    return [ReviewRecordSchema.model_validate(r) for r in records]


@app.post("/cards/{card_id}/review", response_model=ReviewResponse)
async def review_card(
    card_id: str,
    req: ReviewRequest,
    repo: CardRepository = Depends(get_repository),
    config: AppConfig = Depends(get_config),
    now: datetime = Depends(get_clock),
):
    """
    Record a review response and reschedule the card.
    """
    logger.debug(f"Review requested via API: {card_id} {req}")
    outcome = await get_review_service(repo, config).submit_review(
        card_id,
        req.difficulty,
        req.response_time,
        req.total_cards,
        now,
        expected_version=req.expected_version,
    )
    return ReviewResponse(
        success=True,
        card=CardSchema.model_validate(outcome.card),
        next_review=NextReviewSchema.model_validate(outcome.next_review),
    )
