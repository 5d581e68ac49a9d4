"""
Due-card selection for review sessions.

Picks the cards of a deck that are eligible for review at a given time,
orders them most-overdue first and annotates each one for presentation.
"""

import logging
from datetime import datetime, timezone

from cadence.application.utils.text import describe_due_delta
from cadence.domain.errors import DeckNotFoundError, ValidationError
from cadence.domain.models import Card, DueCard, DueSelection, DueStats
from cadence.domain.ports import CardRepository

logger = logging.getLogger(__name__)

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def is_eligible(card: Card, now: datetime, include_new: bool) -> bool:
    """A card is due once its review date has passed, or when it is new and new cards are wanted."""
    if card.next_review_date is not None and card.next_review_date <= now:
        return True
    return include_new and card.review_count == 0


def due_sort_key(card: Card) -> tuple:
    """
    Ascending next_review_date, then creation order.

    Cards without a review date sort after every dated card.
    """
    return (
        card.next_review_date is None,
        card.next_review_date or _EARLIEST,
        card.created_at or _EARLIEST,
    )


def annotate(card: Card, now: datetime) -> DueCard:
    return DueCard(
        card=card,
        is_new=card.review_count == 0,
        is_overdue=card.next_review_date is not None and now > card.next_review_date,
        time_display=describe_due_delta(now, card.next_review_date),
    )


def select_due_cards(
    cards: list[Card],
    now: datetime,
    include_new: bool,
    limit: int | None = None,
) -> list[DueCard]:
    """
    Filter, order and annotate cards.

    `limit` only truncates the ordered result; it never changes eligibility.
    `sorted` is stable, so cards that tie on both keys keep their input order.
    """
    eligible = [c for c in cards if is_eligible(c, now, include_new)]
    ordered = sorted(eligible, key=due_sort_key)
    if limit is not None:
        ordered = ordered[:limit]
    return [annotate(c, now) for c in ordered]


def compute_stats(total_cards: int, selected: list[DueCard]) -> DueStats:
    new_cards = sum(1 for c in selected if c.is_new)
    return DueStats(
        total_cards=total_cards,
        due_cards=len(selected),
        new_cards=new_cards,
        review_cards=len(selected) - new_cards,
    )


class DueCardSelector:
    """
    Application service answering "what should be reviewed now?".

    Depends on the CardRepository port; never mutates stored state.
    """

    def __init__(self, repo: CardRepository):
        self._repo = repo

    async def select(
        self,
        deck_id: str,
        now: datetime,
        include_new: bool = True,
        limit: int | None = None,
    ) -> DueSelection:
        """
        Select the due cards of a deck.

        Args:
            deck_id: The deck to query.
            now: Reference time for due checks.
            include_new: Also select never-reviewed cards regardless of due date.
            limit: Optional cap on the number of returned cards.

        Returns:
            DueSelection with deck summary, ordered annotated cards and stats.

        Raises:
            DeckNotFoundError: if the deck does not exist.
        """
        if not deck_id:
            raise ValidationError("Deck id is required")
        if limit is not None and limit < 0:
            raise ValidationError("Limit must be non-negative")

        deck = await self._repo.get_deck(deck_id)
        if deck is None:
            raise DeckNotFoundError(deck_id)

        cards = await self._repo.list_cards(deck_id)
        selected = select_due_cards(cards, now, include_new, limit)

        latest = await self._repo.latest_reviews([c.card.id for c in selected])
        for due in selected:
            due.last_review = latest.get(due.card.id)

        stats = compute_stats(len(cards), selected)
        logger.debug(
            f"Selected {stats.due_cards}/{stats.total_cards} cards from {deck_id} "
            f"({stats.new_cards} new, {stats.review_cards} review)"
        )
        return DueSelection(deck=deck, cards=selected, stats=stats)
