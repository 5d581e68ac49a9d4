"""
Review session state machine.

A session moves Loading -> Active -> Complete, with Error reachable from
Loading and from a failed answer. Every transition is a pure function of
(state, event): `transition` never mutates its inputs and returns a new
SessionState.

The queue holds ReviewTask envelopes rather than cards. A card answered
"again" is appended once more as a new task with its own position, so two
queue entries for the same card never share a key.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from cadence.application.utils.text import format_elapsed
from cadence.domain.errors import InvalidTransitionError
from cadence.domain.models import Card, Difficulty, DueSelection


class SessionStatus(str, Enum):
    LOADING = "loading"
    ACTIVE = "active"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class ReviewTask:
    """One presentation of a card within a session."""

    position: int  # unique within the session
    card: Card
    requeued: bool = False


@dataclass(frozen=True)
class SessionState:
    deck_id: str
    status: SessionStatus = SessionStatus.LOADING
    deck_name: str = ""
    queue: tuple[ReviewTask, ...] = ()
    cursor: int = 0
    show_answer: bool = False
    pending: bool = False

    total_cards: int = 0  # size of the initial queue, for display
    deck_total_cards: int = 0  # size of the whole deck, for interval scaling
    reviewed_cards: int = 0
    correct_cards: int = 0

    started_at: datetime | None = None
    card_started_at: datetime | None = None
    nothing_due: bool = False

    # Latest persisted version per card id
    card_versions: dict[str, int] = field(default_factory=dict)

    last_error: str | None = None
    retryable: bool = False


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Loaded:
    selection: DueSelection
    now: datetime


@dataclass(frozen=True)
class LoadFailed:
    message: str


@dataclass(frozen=True)
class Reveal:
    pass


@dataclass(frozen=True)
class SubmitStarted:
    pass


@dataclass(frozen=True)
class SubmitSucceeded:
    difficulty: Difficulty
    card: Card  # the card as persisted after scheduling
    now: datetime


@dataclass(frozen=True)
class SubmitFailed:
    message: str
    retryable: bool = False
    fatal: bool = False


@dataclass(frozen=True)
class Advance:
    now: datetime


@dataclass(frozen=True)
class GoBack:
    now: datetime


@dataclass(frozen=True)
class Restart:
    pass


SessionEvent = (
    Loaded
    | LoadFailed
    | Reveal
    | SubmitStarted
    | SubmitSucceeded
    | SubmitFailed
    | Advance
    | GoBack
    | Restart
)


@dataclass(frozen=True)
class SessionSummary:
    nothing_due: bool
    total_cards: int
    reviewed_cards: int
    correct_cards: int
    accuracy: float
    elapsed_seconds: float
    elapsed_display: str


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def initial_state(deck_id: str) -> SessionState:
    return SessionState(deck_id=deck_id)


def current_task(state: SessionState) -> ReviewTask | None:
    if state.status is not SessionStatus.ACTIVE:
        return None
    if 0 <= state.cursor < len(state.queue):
        return state.queue[state.cursor]
    return None


def accuracy(state: SessionState) -> float:
    if state.reviewed_cards == 0:
        return 0.0
    return state.correct_cards / state.reviewed_cards


def summarize(state: SessionState, now: datetime) -> SessionSummary:
    elapsed = (now - state.started_at).total_seconds() if state.started_at else 0.0
    return SessionSummary(
        nothing_due=state.nothing_due,
        total_cards=state.total_cards,
        reviewed_cards=state.reviewed_cards,
        correct_cards=state.correct_cards,
        accuracy=accuracy(state),
        elapsed_seconds=elapsed,
        elapsed_display=format_elapsed(elapsed),
    )


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def _require(state: SessionState, *statuses: SessionStatus) -> None:
    if state.status not in statuses:
        expected = ", ".join(s.value for s in statuses)
        raise InvalidTransitionError(
            f"Session is {state.status.value}; expected {expected}"
        )


def _require_idle(state: SessionState) -> None:
    _require(state, SessionStatus.ACTIVE)
    if state.pending:
        raise InvalidTransitionError("A review for this card is still being recorded")


def _move_to(state: SessionState, cursor: int, now: datetime) -> SessionState:
    if cursor >= len(state.queue):
        return replace(
            state,
            status=SessionStatus.COMPLETE,
            cursor=len(state.queue),
            show_answer=False,
        )
    return replace(state, cursor=cursor, show_answer=False, card_started_at=now)


def _on_loaded(state: SessionState, event: Loaded) -> SessionState:
    _require(state, SessionStatus.LOADING)
    selection = event.selection
    queue = tuple(
        ReviewTask(position=i, card=due.card) for i, due in enumerate(selection.cards)
    )
    base = replace(
        initial_state(state.deck_id),
        deck_name=selection.deck.name,
        deck_total_cards=selection.stats.total_cards,
        started_at=event.now,
    )
    if not queue:
        return replace(base, status=SessionStatus.COMPLETE, nothing_due=True)
    return replace(
        base,
        status=SessionStatus.ACTIVE,
        queue=queue,
        total_cards=len(queue),
        card_started_at=event.now,
        card_versions={task.card.id: task.card.version for task in queue},
    )


def _on_submitted(state: SessionState, event: SubmitSucceeded) -> SessionState:
    _require(state, SessionStatus.ACTIVE)
    if not state.pending:
        raise InvalidTransitionError("No review is being recorded")
    task = state.queue[state.cursor]

    queue = state.queue
    if event.difficulty is Difficulty.AGAIN:
        # The pre-update snapshot is shown again at the end of this session
        queue = queue + (ReviewTask(position=len(queue), card=task.card, requeued=True),)

    answered = replace(
        state,
        queue=queue,
        pending=False,
        reviewed_cards=state.reviewed_cards + 1,
        correct_cards=state.correct_cards + (1 if event.difficulty.is_correct else 0),
        card_versions={**state.card_versions, event.card.id: event.card.version},
        last_error=None,
        retryable=False,
    )
    return _move_to(answered, state.cursor + 1, event.now)


def transition(state: SessionState, event: SessionEvent) -> SessionState:
    """
    Apply one event to a session state.

    Raises:
        InvalidTransitionError: the event is not allowed in the current state.
    """
    if isinstance(event, Loaded):
        return _on_loaded(state, event)

    if isinstance(event, LoadFailed):
        _require(state, SessionStatus.LOADING)
        return replace(state, status=SessionStatus.ERROR, last_error=event.message)

    if isinstance(event, Reveal):
        _require(state, SessionStatus.ACTIVE)
        if state.show_answer:
            return state
        return replace(state, show_answer=True)

    if isinstance(event, SubmitStarted):
        _require_idle(state)
        if not state.show_answer:
            raise InvalidTransitionError("Reveal the answer before rating the card")
        return replace(state, pending=True, last_error=None, retryable=False)

    if isinstance(event, SubmitSucceeded):
        return _on_submitted(state, event)

    if isinstance(event, SubmitFailed):
        _require(state, SessionStatus.ACTIVE)
        if event.fatal:
            return replace(
                state,
                status=SessionStatus.ERROR,
                pending=False,
                last_error=event.message,
                retryable=False,
            )
        # The current card stays current so the answer can be resubmitted
        return replace(
            state, pending=False, last_error=event.message, retryable=event.retryable
        )

    if isinstance(event, Advance):
        _require_idle(state)
        return _move_to(state, state.cursor + 1, event.now)

    if isinstance(event, GoBack):
        _require_idle(state)
        if state.cursor == 0:
            return state
        return _move_to(state, state.cursor - 1, event.now)

    if isinstance(event, Restart):
        _require(state, SessionStatus.COMPLETE, SessionStatus.ERROR)
        return initial_state(state.deck_id)

    raise InvalidTransitionError(f"Unknown session event: {event!r}")
