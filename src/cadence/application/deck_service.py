"""
Deck and card management: Application layer orchestrator.

Thin validation layer over the CardRepository port used by the HTTP API and
the CLI. Scheduling fields are never touched here; only ReviewService writes them.
"""

import logging
from datetime import datetime

from cadence.domain.errors import CardNotFoundError, DeckNotFoundError, ValidationError
from cadence.domain.models import Card, Deck, NewCard, ReviewRecord
from cadence.domain.ports import CardRepository

logger = logging.getLogger(__name__)


def normalize_deck_name(name: str | None) -> str:
    if not name or not name.strip():
        raise ValidationError("Deck name is required")
    return name.strip()


def normalize_description(description: str | None) -> str | None:
    if description is None:
        return None
    return description.strip() or None


def normalize_card(front: str | None, back: str | None, tags: list[str] | None = None) -> NewCard:
    if not front or not front.strip() or not back or not back.strip():
        raise ValidationError("Front and back content are required")
    return NewCard(front=front.strip(), back=back.strip(), tags=list(tags or []))


class DeckService:
    """Create, read, update and delete decks and their cards."""

    def __init__(self, repo: CardRepository):
        self._repo = repo

    async def create_deck(self, name: str | None, description: str | None, now: datetime) -> Deck:
        deck = await self._repo.create_deck(
            normalize_deck_name(name), normalize_description(description), now
        )
        logger.info(f"Created deck {deck.id} ({deck.name})")
        return deck

    async def list_decks(self) -> list[Deck]:
        return await self._repo.list_decks()

    async def get_deck(self, deck_id: str) -> Deck:
        deck = await self._repo.get_deck(deck_id)
        if deck is None:
            raise DeckNotFoundError(deck_id)
        return deck

    async def get_deck_with_cards(self, deck_id: str) -> tuple[Deck, list[Card]]:
        deck = await self.get_deck(deck_id)
        return deck, await self._repo.list_cards(deck_id)

    async def update_deck(
        self, deck_id: str, name: str | None, description: str | None, now: datetime
    ) -> Deck:
        deck = await self._repo.update_deck(
            deck_id, normalize_deck_name(name), normalize_description(description), now
        )
        if deck is None:
            raise DeckNotFoundError(deck_id)
        return deck

    async def delete_deck(self, deck_id: str) -> None:
        if not await self._repo.delete_deck(deck_id):
            raise DeckNotFoundError(deck_id)
        logger.info(f"Deleted deck {deck_id}")

    async def add_cards(self, deck_id: str, cards: list[NewCard] | None, now: datetime) -> list[Card]:
        """
        Add cards to an existing deck.

        Raises:
            ValidationError: no cards given, or a card lacks front/back text.
            DeckNotFoundError: the deck does not exist.
        """
        if not cards:
            raise ValidationError("Cards array is required")
        normalized = [normalize_card(c.front, c.back, c.tags) for c in cards]
        await self.get_deck(deck_id)
        created = await self._repo.add_cards(deck_id, normalized, now)
        logger.info(f"Added {len(created)} cards to {deck_id}")
        return created

    async def replace_cards(
        self, deck_id: str, cards: list[NewCard] | None, now: datetime
    ) -> list[Card]:
        """Replace every card of a deck. An empty list clears the deck."""
        if cards is None:
            raise ValidationError("Cards array is required")
        normalized = [normalize_card(c.front, c.back, c.tags) for c in cards]
        await self.get_deck(deck_id)
        return await self._repo.replace_cards(deck_id, normalized, now)

    async def get_card(self, card_id: str) -> Card:
        card = await self._repo.get_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)
        return card

    async def update_card(
        self, card_id: str, front: str | None, back: str | None, tags: list[str] | None
    ) -> Card:
        content = normalize_card(front, back, tags)
        card = await self._repo.update_card_content(card_id, content.front, content.back, content.tags)
        if card is None:
            raise CardNotFoundError(card_id)
        return card

    async def delete_card(self, card_id: str) -> None:
        if not await self._repo.delete_card(card_id):
            raise CardNotFoundError(card_id)

    async def card_history(self, card_id: str) -> list[ReviewRecord]:
        await self.get_card(card_id)
        return await self._repo.list_reviews(card_id)
