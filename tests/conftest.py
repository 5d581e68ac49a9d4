from datetime import datetime, timezone

import pytest

from cadence.domain.models import NewCard
from cadence.infrastructure.adapters.sqlite_repository import SqliteCardRepository


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config and database files
    monkeypatch.setenv("HOME", str(home))
    for var in ("CADENCE_DATABASE_PATH", "CADENCE_INCLUDE_NEW", "CADENCE_SESSION_LIMIT"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def now():
    return datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def repo(tmp_path):
    """A SQLite repository backed by a fresh database file."""
    repository = SqliteCardRepository(tmp_path / "cadence.db")
    yield repository
    repository.close()


@pytest.fixture
def make_deck(repo, now):
    """Creates a deck with `n` cards and returns (deck, cards)."""

    async def _make(n: int = 3, name: str = "Spanish"):
        deck = await repo.create_deck(name, None, now)
        cards = await repo.add_cards(
            deck.id, [NewCard(front=f"front {i}", back=f"back {i}") for i in range(n)], now
        )
        return deck, cards

    return _make
