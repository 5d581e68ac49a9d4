"""cadence: spaced-repetition scheduling for decks of learning cards."""

from cadence.consts import VERSION

__version__ = VERSION
