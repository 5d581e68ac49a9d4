"""
Ports (interfaces) for card and deck storage.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import Card, CardUpdate, Deck, NewCard, ReviewRecord


class CardRepository(ABC):
    """
    Port for storing decks, cards and review records.

    Implementations:
        - SqliteCardRepository: Local SQLite database.
    """

    def close(self) -> None:
        """Release resources held by the repository."""

    # ---------- Decks ----------

    @abstractmethod
    async def create_deck(self, name: str, description: str | None, now: datetime) -> Deck:
        pass

    @abstractmethod
    async def list_decks(self) -> list[Deck]:
        """Return all decks, most recently updated first."""
        pass

    @abstractmethod
    async def get_deck(self, deck_id: str) -> Deck | None:
        pass

    @abstractmethod
    async def update_deck(
        self, deck_id: str, name: str, description: str | None, now: datetime
    ) -> Deck | None:
        pass

    @abstractmethod
    async def delete_deck(self, deck_id: str) -> bool:
        """Delete a deck together with its cards and review records."""
        pass

    # ---------- Cards ----------

    @abstractmethod
    async def add_cards(self, deck_id: str, cards: list[NewCard], now: datetime) -> list[Card]:
        """
        Insert new cards into a deck.

        New cards are due immediately: next_review_date is set to `now`.
        """
        pass

    @abstractmethod
    async def replace_cards(
        self, deck_id: str, cards: list[NewCard], now: datetime
    ) -> list[Card]:
        """Delete every card of the deck and insert `cards`, in one transaction."""
        pass

    @abstractmethod
    async def get_card(self, card_id: str) -> Card | None:
        pass

    @abstractmethod
    async def list_cards(self, deck_id: str) -> list[Card]:
        """Return the deck's cards in creation order."""
        pass

    @abstractmethod
    async def update_card_content(
        self, card_id: str, front: str, back: str, tags: list[str]
    ) -> Card | None:
        pass

    @abstractmethod
    async def delete_card(self, card_id: str) -> bool:
        pass

    # ---------- Reviews ----------

    @abstractmethod
    async def latest_reviews(self, card_ids: list[str]) -> dict[str, ReviewRecord]:
        """Return the most recent review record for each card that has one."""
        pass

    @abstractmethod
    async def list_reviews(self, card_id: str) -> list[ReviewRecord]:
        """Return a card's review records, oldest first."""
        pass

    @abstractmethod
    async def apply_review(
        self,
        card_id: str,
        update: CardUpdate,
        record: ReviewRecord,
        expected_version: int | None = None,
    ) -> Card:
        """
        Apply a scheduler outcome and append its review record atomically.

        Args:
            card_id: The reviewed card.
            update: New scheduling fields for the card.
            record: The review record to append.
            expected_version: If given, the write is rejected unless the stored
                card still carries this version.

        Returns:
            The updated card (version incremented).

        Raises:
            CardNotFoundError: the card does not exist.
            StaleCardError: the stored version differs from expected_version.
            PersistenceError: the storage write failed; nothing was written.
        """
        pass
