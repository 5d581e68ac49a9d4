# Domain Package
from .errors import (
    CadenceError,
    CardNotFoundError,
    DeckNotFoundError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    StaleCardError,
    ValidationError,
)
from .models import (
    Card,
    CardUpdate,
    Deck,
    Difficulty,
    DueCard,
    DueSelection,
    DueStats,
    NewCard,
    ReviewRecord,
    ScheduleResult,
    SchedulingState,
)
from .ports import CardRepository

__all__ = [
    "CadenceError",
    "ValidationError",
    "NotFoundError",
    "DeckNotFoundError",
    "CardNotFoundError",
    "PersistenceError",
    "StaleCardError",
    "InvalidTransitionError",
    "Card",
    "CardUpdate",
    "Deck",
    "Difficulty",
    "DueCard",
    "DueSelection",
    "DueStats",
    "NewCard",
    "ReviewRecord",
    "ScheduleResult",
    "SchedulingState",
    "CardRepository",
]
