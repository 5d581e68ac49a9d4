import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from cadence.application.due_selector import DueCardSelector
from cadence.application.review_service import ReviewService
from cadence.application.session import ReviewSessionController
from cadence.application.session_state import SessionStatus
from cadence.domain.errors import (
    CardNotFoundError,
    DeckNotFoundError,
    InvalidTransitionError,
    PersistenceError,
    StaleCardError,
    ValidationError,
)
from cadence.domain.models import Difficulty


def _controller(repo, deck_id, **kwargs):
    return ReviewSessionController(
        deck_id, selector=DueCardSelector(repo), reviews=ReviewService(repo), **kwargs
    )


@pytest.mark.asyncio
async def test_again_card_is_seen_twice(repo, make_deck, now):
    deck, (card,) = await make_deck(1)
    session = _controller(repo, deck.id)

    await session.start(now)
    assert session.state.total_cards == 1

    session.reveal()
    await session.submit(Difficulty.AGAIN, now)
    assert session.status is SessionStatus.ACTIVE
    assert len(session.state.queue) == 2
    assert session.current_card.id == card.id

    session.reveal()
    await session.submit(Difficulty.GOOD, now + timedelta(minutes=1))
    assert session.status is SessionStatus.COMPLETE

    summary = session.summary(now + timedelta(minutes=2))
    assert summary.reviewed_cards == 2
    assert summary.correct_cards == 1
    assert len(await repo.list_reviews(card.id)) == 2


@pytest.mark.asyncio
async def test_empty_deck_completes_immediately(repo, make_deck, now):
    deck, _ = await make_deck(0)
    session = _controller(repo, deck.id)

    await session.start(now)

    assert session.status is SessionStatus.COMPLETE
    assert session.summary(now).nothing_due
    assert session.current_card is None


@pytest.mark.asyncio
async def test_unknown_deck_puts_session_in_error(repo, now):
    session = _controller(repo, "deck_missing")
    with pytest.raises(DeckNotFoundError):
        await session.start(now)
    assert session.status is SessionStatus.ERROR


@pytest.mark.asyncio
async def test_start_twice_rejected(repo, make_deck, now):
    deck, _ = await make_deck(1)
    session = _controller(repo, deck.id)
    await session.start(now)
    with pytest.raises(InvalidTransitionError):
        await session.start(now)


@pytest.mark.asyncio
async def test_submit_persists_schedule_and_response_time(repo, make_deck, now):
    deck, cards = await make_deck(2)
    session = _controller(repo, deck.id)
    await session.start(now)

    session.reveal()
    outcome = await session.submit("good", now + timedelta(seconds=7))

    stored = await repo.get_card(cards[0].id)
    assert stored.interval == 10
    assert stored.repetitions == 1
    assert stored.review_count == 1
    assert stored.version == 1
    assert outcome.next_review.display == "10 minutes"
    (record,) = await repo.list_reviews(cards[0].id)
    assert record.response_time == 7
    assert session.current_card.id == cards[1].id


@pytest.mark.asyncio
async def test_scheduler_uses_whole_deck_size(repo, make_deck, now):
    deck, cards = await make_deck(60)
    session = _controller(repo, deck.id, limit=1)
    await session.start(now)
    assert session.state.total_cards == 1
    assert session.preview()[Difficulty.GOOD] == "~20 min"

    session.reveal()
    await session.submit(Difficulty.GOOD, now)

    # scale factor for 60 cards is capped at 2, so good -> 20 minutes
    assert (await repo.get_card(cards[0].id)).interval == 20


@pytest.mark.asyncio
async def test_invalid_difficulty_leaves_state_untouched(repo, make_deck, now):
    deck, _ = await make_deck(1)
    session = _controller(repo, deck.id)
    await session.start(now)
    session.reveal()
    before = session.state

    with pytest.raises(ValidationError):
        await session.submit("perfect", now)

    assert session.state is before


@pytest.mark.asyncio
async def test_submit_before_reveal_rejected(repo, make_deck, now):
    deck, cards = await make_deck(1)
    session = _controller(repo, deck.id)
    await session.start(now)

    with pytest.raises(InvalidTransitionError):
        await session.submit(Difficulty.GOOD, now)
    assert await repo.list_reviews(cards[0].id) == []


@pytest.mark.asyncio
async def test_persistence_failure_allows_retry(repo, make_deck, now):
    deck, (card,) = await make_deck(1)
    session = _controller(repo, deck.id)
    await session.start(now)
    session.reveal()

    with patch.object(
        repo, "apply_review", new=AsyncMock(side_effect=PersistenceError("disk I/O error"))
    ):
        with pytest.raises(PersistenceError):
            await session.submit(Difficulty.GOOD, now)

    state = session.state
    assert state.status is SessionStatus.ACTIVE
    assert session.current_card.id == card.id
    assert state.reviewed_cards == 0
    assert state.retryable
    assert "disk I/O error" in state.last_error
    assert await repo.list_reviews(card.id) == []

    await session.submit(Difficulty.GOOD, now)
    assert session.status is SessionStatus.COMPLETE
    assert len(await repo.list_reviews(card.id)) == 1
    assert session.state.last_error is None


@pytest.mark.asyncio
async def test_concurrent_update_is_rejected(repo, make_deck, now):
    deck, (card,) = await make_deck(1)
    session = _controller(repo, deck.id)
    await session.start(now)
    session.reveal()

    # Another client reviews the same card first
    await ReviewService(repo).submit_review(card.id, "easy", 3, 1, now)

    with pytest.raises(StaleCardError):
        await session.submit(Difficulty.GOOD, now)

    assert session.status is SessionStatus.ACTIVE
    assert not session.state.retryable
    assert len(await repo.list_reviews(card.id)) == 1


@pytest.mark.asyncio
async def test_deleted_card_ends_session_in_error(repo, make_deck, now):
    deck, (card, _) = await make_deck(2)
    session = _controller(repo, deck.id)
    await session.start(now)
    session.reveal()

    await repo.delete_card(card.id)

    with pytest.raises(CardNotFoundError):
        await session.submit(Difficulty.GOOD, now)
    assert session.status is SessionStatus.ERROR


@pytest.mark.asyncio
async def test_navigation_does_not_record_reviews(repo, make_deck, now):
    deck, cards = await make_deck(3)
    session = _controller(repo, deck.id)
    await session.start(now)

    session.advance(now)
    session.advance(now)
    session.go_back(now)

    assert session.current_card.id == cards[1].id
    assert session.state.reviewed_cards == 0
    for card in cards:
        assert await repo.list_reviews(card.id) == []


@pytest.mark.asyncio
async def test_restart_reloads_due_cards(repo, make_deck, now):
    deck, (card,) = await make_deck(1)
    session = _controller(repo, deck.id)
    await session.start(now)
    session.reveal()
    await session.submit(Difficulty.EASY, now)
    assert session.status is SessionStatus.COMPLETE

    # The card is scheduled 15 minutes out; an hour later it is due again
    await session.restart(now + timedelta(hours=1))
    assert session.status is SessionStatus.ACTIVE
    assert session.current_card.id == card.id
    assert session.state.card_versions[card.id] == 1


@pytest.mark.asyncio
async def test_closed_session_rejects_use(repo, make_deck, now):
    deck, _ = await make_deck(1)
    session = _controller(repo, deck.id)
    await session.start(now)
    session.close()
    with pytest.raises(InvalidTransitionError):
        session.reveal()


@pytest.mark.asyncio
async def test_cancelled_submit_releases_pending_answer(repo, make_deck, now):
    deck, (first, second) = await make_deck(2)
    session = _controller(repo, deck.id)
    await session.start(now)
    session.reveal()

    with patch.object(
        repo, "apply_review", new=AsyncMock(side_effect=asyncio.CancelledError())
    ):
        with pytest.raises(asyncio.CancelledError):
            await session.submit(Difficulty.GOOD, now)

    assert not session.state.pending
    assert session.current_card.id == first.id
    assert session.state.reviewed_cards == 0

    session.advance(now)
    assert session.current_card.id == second.id
