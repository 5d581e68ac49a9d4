"""
Error taxonomy shared by every layer.

Interfaces map these onto transport responses (HTTP status codes, CLI exit codes).
"""


class CadenceError(Exception):
    """Base class for all cadence errors."""

    retryable = False


class ValidationError(CadenceError):
    """Malformed input, rejected before any state mutation."""


class NotFoundError(CadenceError):
    """An identifier did not resolve to a stored entity."""

    entity = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class DeckNotFoundError(NotFoundError):
    entity = "Deck"


class CardNotFoundError(NotFoundError):
    entity = "Card"


class PersistenceError(CadenceError):
    """The storage write failed; nothing was applied and the call may be retried."""

    retryable = True


class StaleCardError(PersistenceError):
    """The card changed since it was read; the caller must reload before retrying."""

    retryable = False

    def __init__(self, card_id: str, expected_version: int, actual_version: int):
        self.card_id = card_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Card {card_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


class InvalidTransitionError(CadenceError):
    """A session event is not allowed in the current session state."""
