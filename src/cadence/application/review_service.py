"""
Review submission: Application layer orchestrator.

Validates a learner's answer, runs the interval scheduler on the card's stored
state and hands the outcome plus a review record to the repository as one
atomic write.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from ulid import ULID

from cadence.application.scheduler import IntervalScheduler, base_intervals
from cadence.application.utils.text import format_interval, format_preview
from cadence.domain.constants import DEFAULT_TOTAL_CARDS, REVIEW_ID_PREFIX
from cadence.domain.errors import (
    CardNotFoundError,
    PersistenceError,
    StaleCardError,
    ValidationError,
)
from cadence.domain.models import Card, CardUpdate, Difficulty, ReviewRecord
from cadence.domain.ports import CardRepository

logger = logging.getLogger(__name__)


def generate_review_id() -> str:
    return f"{REVIEW_ID_PREFIX}{ULID()}"


@dataclass(frozen=True)
class NextReview:
    date: datetime
    interval: int  # minutes
    display: str


@dataclass(frozen=True)
class ReviewOutcome:
    card: Card
    record: ReviewRecord
    next_review: NextReview


def preview_intervals(total_cards: int) -> dict[Difficulty, str]:
    """Estimated first-step interval per answer, as shown next to the answer buttons."""
    return {d: format_preview(m) for d, m in base_intervals(total_cards).items()}


def validate_response_time(response_time: int | None) -> int:
    if response_time is None:
        return 0
    if isinstance(response_time, bool) or not isinstance(response_time, int):
        raise ValidationError("Response time must be an integer number of seconds")
    if response_time < 0:
        raise ValidationError("Response time must be non-negative")
    return response_time


class ReviewService:
    """
    Records one answered card.

    Follows Dependency Inversion: depends on the CardRepository abstraction,
    not on a concrete storage adapter.
    """

    def __init__(
        self,
        repo: CardRepository,
        scheduler: IntervalScheduler | None = None,
        default_total_cards: int = DEFAULT_TOTAL_CARDS,
    ):
        self._repo = repo
        self._scheduler = scheduler or IntervalScheduler()
        self._default_total_cards = default_total_cards

    async def submit_review(
        self,
        card_id: str,
        difficulty: Difficulty | str,
        response_time: int | None,
        total_cards: int | None,
        now: datetime,
        expected_version: int | None = None,
    ) -> ReviewOutcome:
        """
        Schedule a card from the learner's answer and persist the result.

        Args:
            card_id: The answered card.
            difficulty: One of again, hard, good, easy.
            response_time: Seconds taken to answer (None counts as 0).
            total_cards: Deck size used for interval scaling; falls back to
                the configured default when missing or zero.
            now: Time of the answer.
            expected_version: Reject the write if the card changed since this version.

        Raises:
            ValidationError: malformed input; nothing was read or written.
            CardNotFoundError: unknown card.
            StaleCardError: the card was modified concurrently.
            PersistenceError: the atomic write failed and may be retried.
        """
        if not card_id:
            raise ValidationError("Card id is required")
        level = Difficulty.parse(difficulty)
        seconds = validate_response_time(response_time)
        if total_cards is not None and total_cards < 0:
            raise ValidationError("Total cards must be non-negative")

        card = await self._repo.get_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)

        result = self._scheduler.schedule(
            card.scheduling_state, level, total_cards or self._default_total_cards
        )
        next_review_date = now + timedelta(minutes=result.new_interval)

        update = CardUpdate(
            interval=result.new_interval,
            repetitions=result.new_repetitions,
            ease_factor=result.new_ease_factor,
            next_review_date=next_review_date,
            last_reviewed=now,
            review_count=card.review_count + 1,
        )
        record = ReviewRecord(
            id=generate_review_id(),
            card_id=card.id,
            deck_id=card.deck_id,
            difficulty=level,
            response_time=seconds,
            interval_before=card.interval,
            interval_after=result.new_interval,
            reviewed_at=now,
        )

        try:
            updated = await self._repo.apply_review(
                card.id, update, record, expected_version=expected_version
            )
        except StaleCardError as e:
            logger.warning(str(e))
            raise
        except PersistenceError as e:
            logger.error(f"Failed to record review for {card.id}: {e}", exc_info=True)
            raise

        logger.info(
            f"Reviewed {card.id} as {level.value}: interval {card.interval} -> "
            f"{result.new_interval} min, ease {card.ease_factor:.2f} -> "
            f"{result.new_ease_factor:.2f}, reps {result.new_repetitions}"
        )
        return ReviewOutcome(
            card=updated,
            record=record,
            next_review=NextReview(
                date=next_review_date,
                interval=result.new_interval,
                display=format_interval(result.new_interval),
            ),
        )
