"""
SQLite Card Repository: Infrastructure adapter for a local database file.

Implements CardRepository on top of the standard sqlite3 module. Review
outcomes (card update + review record) are written in a single transaction.
"""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from ulid import ULID

from cadence.domain.constants import CARD_ID_PREFIX, DECK_ID_PREFIX
from cadence.domain.errors import CardNotFoundError, PersistenceError, StaleCardError
from cadence.domain.models import Card, CardUpdate, Deck, Difficulty, NewCard, ReviewRecord
from cadence.domain.ports import CardRepository

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS decks (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS cards (
    id TEXT PRIMARY KEY,
    deck_id TEXT NOT NULL,
    seq INTEGER NOT NULL,
    front TEXT NOT NULL,
    back TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    interval INTEGER NOT NULL DEFAULT 0,
    repetitions INTEGER NOT NULL DEFAULT 0,
    ease_factor REAL NOT NULL DEFAULT 2.5,
    next_review_date TEXT,
    last_reviewed TEXT,
    review_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY(deck_id) REFERENCES decks(id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS reviews (
    id TEXT PRIMARY KEY,
    card_id TEXT NOT NULL,
    deck_id TEXT NOT NULL,
    difficulty TEXT NOT NULL,
    response_time INTEGER NOT NULL DEFAULT 0,
    interval_before INTEGER NOT NULL,
    interval_after INTEGER NOT NULL,
    reviewed_at TEXT NOT NULL,
    FOREIGN KEY(card_id) REFERENCES cards(id) ON DELETE CASCADE,
    FOREIGN KEY(deck_id) REFERENCES decks(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_cards_deck_due ON cards(deck_id, next_review_date);
CREATE INDEX IF NOT EXISTS idx_reviews_card ON reviews(card_id, reviewed_at);
"""

DECK_SELECT = """
SELECT d.*, (SELECT COUNT(*) FROM cards c WHERE c.deck_id = d.id) AS card_count
FROM decks d
"""


def generate_deck_id() -> str:
    return f"{DECK_ID_PREFIX}{ULID()}"


def generate_card_id() -> str:
    return f"{CARD_ID_PREFIX}{ULID()}"


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_deck(row: sqlite3.Row) -> Deck:
    return Deck(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
        card_count=row["card_count"],
    )


def _row_to_card(row: sqlite3.Row) -> Card:
    return Card(
        id=row["id"],
        deck_id=row["deck_id"],
        front=row["front"],
        back=row["back"],
        tags=json.loads(row["tags"] or "[]"),
        interval=row["interval"],
        repetitions=row["repetitions"],
        ease_factor=row["ease_factor"],
        next_review_date=_parse_ts(row["next_review_date"]),
        last_reviewed=_parse_ts(row["last_reviewed"]),
        review_count=row["review_count"],
        created_at=_parse_ts(row["created_at"]),
        version=row["version"],
    )


def _row_to_review(row: sqlite3.Row) -> ReviewRecord:
    return ReviewRecord(
        id=row["id"],
        card_id=row["card_id"],
        deck_id=row["deck_id"],
        difficulty=Difficulty(row["difficulty"]),
        response_time=row["response_time"],
        interval_before=row["interval_before"],
        interval_after=row["interval_after"],
        reviewed_at=_parse_ts(row["reviewed_at"]),
    )


def connect(db_path: Path | str) -> sqlite3.Connection:
    """Connect to the SQLite database and create the schema."""
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return conn


class SqliteCardRepository(CardRepository):
    """
    Stores decks, cards and review records in SQLite.

    Usable as a context manager; the connection is closed on exit.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = db_path
        try:
            self.conn = connect(db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not open database {db_path}: {e}") from e

    def __enter__(self) -> "SqliteCardRepository":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.conn.close()

    # ---------- Decks ----------

    async def create_deck(self, name: str, description: str | None, now: datetime) -> Deck:
        deck_id = generate_deck_id()
        with self._write("create deck"):
            self.conn.execute(
                "INSERT INTO decks (id, name, description, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (deck_id, name, description, _ts(now), _ts(now)),
            )
        logger.debug(f"Created deck {deck_id} ({name!r})")
        return Deck(
            id=deck_id,
            name=name,
            description=description,
            created_at=now,
            updated_at=now,
            card_count=0,
        )

    async def list_decks(self) -> list[Deck]:
        rows = self._read(DECK_SELECT + " ORDER BY d.updated_at DESC, d.id DESC")
        return [_row_to_deck(r) for r in rows]

    async def get_deck(self, deck_id: str) -> Deck | None:
        rows = self._read(DECK_SELECT + " WHERE d.id = ?", (deck_id,))
        return _row_to_deck(rows[0]) if rows else None

    async def update_deck(
        self, deck_id: str, name: str, description: str | None, now: datetime
    ) -> Deck | None:
        with self._write("update deck"):
            cursor = self.conn.execute(
                "UPDATE decks SET name = ?, description = ?, updated_at = ? WHERE id = ?",
                (name, description, _ts(now), deck_id),
            )
        if cursor.rowcount == 0:
            return None
        return await self.get_deck(deck_id)

    async def delete_deck(self, deck_id: str) -> bool:
        with self._write("delete deck"):
            cursor = self.conn.execute("DELETE FROM decks WHERE id = ?", (deck_id,))
        return cursor.rowcount > 0

    # ---------- Cards ----------

    async def add_cards(self, deck_id: str, cards: list[NewCard], now: datetime) -> list[Card]:
        with self._write("add cards"):
            created = self._insert_cards(deck_id, cards, now)
        logger.debug(f"Added {len(created)} cards to {deck_id}")
        return created

    async def replace_cards(
        self, deck_id: str, cards: list[NewCard], now: datetime
    ) -> list[Card]:
        with self._write("replace cards"):
            self.conn.execute("DELETE FROM cards WHERE deck_id = ?", (deck_id,))
            created = self._insert_cards(deck_id, cards, now)
        logger.debug(f"Replaced cards of {deck_id} with {len(created)} cards")
        return created

    def _insert_cards(self, deck_id: str, cards: list[NewCard], now: datetime) -> list[Card]:
        row = self.conn.execute(
            "SELECT COALESCE(MAX(seq), 0) AS seq FROM cards WHERE deck_id = ?", (deck_id,)
        ).fetchone()
        seq = row["seq"]

        created: list[Card] = []
        for new in cards:
            seq += 1
            card = Card(
                id=generate_card_id(),
                deck_id=deck_id,
                front=new.front,
                back=new.back,
                tags=list(new.tags),
                next_review_date=now,
                created_at=now,
            )
            self.conn.execute(
                """
                INSERT INTO cards (id, deck_id, seq, front, back, tags, interval, repetitions,
                                   ease_factor, next_review_date, review_count, created_at, version)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    card.id,
                    deck_id,
                    seq,
                    card.front,
                    card.back,
                    json.dumps(card.tags),
                    card.interval,
                    card.repetitions,
                    card.ease_factor,
                    _ts(card.next_review_date),
                    card.review_count,
                    _ts(card.created_at),
                    card.version,
                ),
            )
            created.append(card)
        return created

    async def get_card(self, card_id: str) -> Card | None:
        rows = self._read("SELECT * FROM cards WHERE id = ?", (card_id,))
        return _row_to_card(rows[0]) if rows else None

    async def list_cards(self, deck_id: str) -> list[Card]:
        rows = self._read(
            "SELECT * FROM cards WHERE deck_id = ? ORDER BY created_at ASC, seq ASC", (deck_id,)
        )
        return [_row_to_card(r) for r in rows]

    async def update_card_content(
        self, card_id: str, front: str, back: str, tags: list[str]
    ) -> Card | None:
        with self._write("update card"):
            cursor = self.conn.execute(
                "UPDATE cards SET front = ?, back = ?, tags = ? WHERE id = ?",
                (front, back, json.dumps(tags), card_id),
            )
        if cursor.rowcount == 0:
            return None
        return await self.get_card(card_id)

    async def delete_card(self, card_id: str) -> bool:
        with self._write("delete card"):
            cursor = self.conn.execute("DELETE FROM cards WHERE id = ?", (card_id,))
        return cursor.rowcount > 0

    # ---------- Reviews ----------

    async def latest_reviews(self, card_ids: list[str]) -> dict[str, ReviewRecord]:
        if not card_ids:
            return {}
        placeholders = ",".join("?" for _ in card_ids)
        rows = self._read(
            f"""
            SELECT r.* FROM reviews r
            WHERE r.card_id IN ({placeholders})
              AND r.rowid = (
                  SELECT r2.rowid FROM reviews r2
                  WHERE r2.card_id = r.card_id
                  ORDER BY r2.reviewed_at DESC, r2.rowid DESC
                  LIMIT 1
              )
            """,
            tuple(card_ids),
        )
        return {row["card_id"]: _row_to_review(row) for row in rows}

    async def list_reviews(self, card_id: str) -> list[ReviewRecord]:
        rows = self._read(
            "SELECT * FROM reviews WHERE card_id = ? ORDER BY reviewed_at ASC, rowid ASC",
            (card_id,),
        )
        return [_row_to_review(r) for r in rows]

    async def apply_review(
        self,
        card_id: str,
        update: CardUpdate,
        record: ReviewRecord,
        expected_version: int | None = None,
    ) -> Card:
        try:
            with self.conn:
                cursor = self.conn.execute(
                    """
                    UPDATE cards
                    SET interval = ?, repetitions = ?, ease_factor = ?,
                        next_review_date = ?, last_reviewed = ?, review_count = ?,
                        version = version + 1
                    WHERE id = ? AND (? IS NULL OR version = ?)
                    """,
                    (
                        update.interval,
                        update.repetitions,
                        update.ease_factor,
                        _ts(update.next_review_date),
                        _ts(update.last_reviewed),
                        update.review_count,
                        card_id,
                        expected_version,
                        expected_version,
                    ),
                )
                if cursor.rowcount == 0:
                    self._raise_rejected(card_id, expected_version)
                self.conn.execute(
                    """
                    INSERT INTO reviews (id, card_id, deck_id, difficulty, response_time,
                                         interval_before, interval_after, reviewed_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.card_id,
                        record.deck_id,
                        record.difficulty.value,
                        record.response_time,
                        record.interval_before,
                        record.interval_after,
                        _ts(record.reviewed_at),
                    ),
                )
                updated = self.conn.execute(
                    "SELECT * FROM cards WHERE id = ?", (card_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to record review for {card_id}: {e}") from e

        return _row_to_card(updated)

    # ---------- Helpers ----------

    def _raise_rejected(self, card_id: str, expected_version: int | None) -> None:
        row = self.conn.execute("SELECT version FROM cards WHERE id = ?", (card_id,)).fetchone()
        if row is None:
            raise CardNotFoundError(card_id)
        raise StaleCardError(card_id, expected_version, row["version"])

    def _read(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            return self.conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Query failed: {e}") from e

    def _write(self, action: str) -> "_WriteTransaction":
        return _WriteTransaction(self.conn, action)


class _WriteTransaction:
    """Commit on success, roll back on error; sqlite3 errors become PersistenceError."""

    def __init__(self, conn: sqlite3.Connection, action: str):
        self.conn = conn
        self.action = action

    def __enter__(self) -> sqlite3.Connection:
        return self.conn.__enter__()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.conn.__exit__(exc_type, exc_val, exc_tb)
        if exc_type is not None and issubclass(exc_type, sqlite3.Error):
            raise PersistenceError(f"Failed to {self.action}: {exc_val}") from exc_val
        return False
