"""
Domain models for decks, cards and their review history.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .constants import DEFAULT_EASE_FACTOR
from .errors import ValidationError


class Difficulty(str, Enum):
    """Self-reported recall difficulty for an answered card."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @classmethod
    def parse(cls, value: "Difficulty | str | None") -> "Difficulty":
        """
        Convert a raw value into a Difficulty.

        Raises:
            ValidationError: if the value is not one of the four literals.
        """
        if isinstance(value, Difficulty):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError("Invalid difficulty level") from None

    @property
    def is_correct(self) -> bool:
        return self in (Difficulty.GOOD, Difficulty.EASY)


@dataclass(frozen=True)
class SchedulingState:
    """The subset of a card that drives scheduling."""

    interval: int
    repetitions: int
    ease_factor: float


@dataclass(frozen=True)
class ScheduleResult:
    """Output of one scheduler computation."""

    new_interval: int  # minutes
    new_ease_factor: float
    new_repetitions: int


@dataclass
class Deck:
    id: str
    name: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    card_count: int = 0


@dataclass
class NewCard:
    """Content for a card that has not been stored yet."""

    front: str
    back: str
    tags: list[str] = field(default_factory=list)


@dataclass
class Card:
    """
    A learning card together with its scheduling state.

    Attributes:
        interval: Minutes until the next review (0 until first scheduled).
        repetitions: Consecutive non-"again" outcomes since the last reset.
        ease_factor: Growth multiplier, kept within [1.3, 2.5].
        next_review_date: The card is due once now >= this timestamp.
        last_reviewed: Timestamp of the last recorded outcome, None if new.
        review_count: Total number of recorded outcomes.
        version: Bumped on every applied review; used to reject stale writes.
    """

    id: str
    deck_id: str
    front: str
    back: str
    tags: list[str] = field(default_factory=list)
    interval: int = 0
    repetitions: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    next_review_date: datetime | None = None
    last_reviewed: datetime | None = None
    review_count: int = 0
    created_at: datetime | None = None
    version: int = 0

    @property
    def is_new(self) -> bool:
        return self.review_count == 0

    @property
    def scheduling_state(self) -> SchedulingState:
        return SchedulingState(
            interval=self.interval,
            repetitions=self.repetitions,
            ease_factor=self.ease_factor,
        )


@dataclass(frozen=True)
class CardUpdate:
    """Scheduling fields written to a card after a review."""

    interval: int
    repetitions: int
    ease_factor: float
    next_review_date: datetime
    last_reviewed: datetime
    review_count: int


@dataclass(frozen=True)
class ReviewRecord:
    """
    Append-only log entry for one answered card.

    Attributes:
        response_time: Seconds between showing the card and the answer.
        interval_before: Card interval (minutes) before this review.
        interval_after: Interval (minutes) assigned by this review.
    """

    id: str
    card_id: str
    deck_id: str
    difficulty: Difficulty
    response_time: int
    interval_before: int
    interval_after: int
    reviewed_at: datetime


@dataclass
class DueCard:
    """A selected card annotated for presentation."""

    card: Card
    is_new: bool
    is_overdue: bool
    time_display: str
    last_review: ReviewRecord | None = None


@dataclass(frozen=True)
class DueStats:
    total_cards: int
    due_cards: int
    new_cards: int
    review_cards: int


@dataclass
class DueSelection:
    """Result of a due-card query: deck summary, ordered cards, stats."""

    deck: Deck
    cards: list[DueCard]
    stats: DueStats
