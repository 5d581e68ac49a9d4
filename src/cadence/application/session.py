"""
Review session controller.

Drives one learner's pass through the due cards of a deck: loads the queue
through DueCardSelector, records each answer through ReviewService and keeps
the session state machine (see session_state) in step with what was persisted.
"""

import logging
from datetime import datetime

from cadence.application.due_selector import DueCardSelector
from cadence.application.review_service import ReviewOutcome, ReviewService, preview_intervals
from cadence.application.session_state import (
    Advance,
    GoBack,
    Loaded,
    LoadFailed,
    Restart,
    Reveal,
    SessionEvent,
    SessionState,
    SessionStatus,
    SessionSummary,
    SubmitFailed,
    SubmitStarted,
    SubmitSucceeded,
    current_task,
    initial_state,
    summarize,
    transition,
)
from cadence.domain.errors import (
    CadenceError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
)
from cadence.domain.models import Card, Difficulty

logger = logging.getLogger(__name__)


class ReviewSessionController:
    """
    One learner's review session over a single deck.

    The controller is single-threaded: at most one answer is being recorded
    at a time, and only the current queue entry can be answered.
    """

    def __init__(
        self,
        deck_id: str,
        selector: DueCardSelector,
        reviews: ReviewService,
        include_new: bool = True,
        limit: int | None = None,
    ):
        self.deck_id = deck_id
        self._selector = selector
        self._reviews = reviews
        self._include_new = include_new
        self._limit = limit
        self._state: SessionState | None = initial_state(deck_id)

    # ---------- Queries ----------

    @property
    def state(self) -> SessionState:
        if self._state is None:
            raise InvalidTransitionError("Session is closed")
        return self._state

    @property
    def status(self) -> SessionStatus:
        return self.state.status

    @property
    def current_card(self) -> Card | None:
        task = current_task(self.state)
        return task.card if task else None

    def summary(self, now: datetime) -> SessionSummary:
        return summarize(self.state, now)

    def preview(self) -> dict[Difficulty, str]:
        """Estimated interval for each answer on the current deck."""
        return preview_intervals(self.state.deck_total_cards)

    # ---------- Lifecycle ----------

    async def start(self, now: datetime) -> SessionState:
        """Load the due queue. An empty queue completes the session immediately."""
        state = self.state
        if state.status is not SessionStatus.LOADING:
            raise InvalidTransitionError(f"Session already {state.status.value}")

        try:
            selection = await self._selector.select(
                self.deck_id, now, include_new=self._include_new, limit=self._limit
            )
        except CadenceError as e:
            logger.error(f"Failed to load review session for {self.deck_id}: {e}")
            self._dispatch(LoadFailed(str(e)))
            raise

        self._dispatch(Loaded(selection, now))
        if self.state.nothing_due:
            logger.info(f"Nothing due in {self.deck_id}")
        else:
            logger.info(
                f"Started review of {self.deck_id} with {self.state.total_cards} cards"
            )
        return self.state

    async def restart(self, now: datetime) -> SessionState:
        """Review again after completion or an error; reloads the due queue."""
        self._dispatch(Restart())
        return await self.start(now)

    def close(self) -> None:
        """Discard the session. Answers already recorded stay persisted."""
        if self._state is not None and self._state.status is SessionStatus.ACTIVE:
            logger.info(
                f"Closed review of {self.deck_id} after "
                f"{self._state.reviewed_cards}/{self._state.total_cards} cards"
            )
        self._state = None

    # ---------- Card actions ----------

    def reveal(self) -> SessionState:
        return self._dispatch(Reveal())

    def advance(self, now: datetime) -> SessionState:
        return self._dispatch(Advance(now))

    def go_back(self, now: datetime) -> SessionState:
        return self._dispatch(GoBack(now))

    async def submit(self, difficulty: Difficulty | str, now: datetime) -> ReviewOutcome:
        """
        Record the learner's answer for the current card and move on.

        Raises:
            ValidationError: unknown difficulty; the session is unchanged.
            InvalidTransitionError: no card is current, the answer is hidden,
                or another answer is still being recorded.
            NotFoundError: the card vanished; the session moves to Error.
            PersistenceError: the write failed; the card stays current and the
                answer may be resubmitted.
        """
        level = Difficulty.parse(difficulty)
        self._dispatch(SubmitStarted())

        state = self.state
        task = state.queue[state.cursor]
        response_time = max(0, int((now - state.card_started_at).total_seconds()))
        expected_version = state.card_versions.get(task.card.id, task.card.version)

        try:
            outcome = await self._reviews.submit_review(
                task.card.id,
                level,
                response_time,
                state.deck_total_cards,
                now,
                expected_version=expected_version,
            )
        except NotFoundError as e:
            logger.error(f"Review session for {self.deck_id} failed: {e}")
            self._dispatch(SubmitFailed(str(e), fatal=True))
            raise
        except PersistenceError as e:
            self._dispatch(SubmitFailed(str(e), retryable=e.retryable))
            raise
        except BaseException as e:
            # Cancellation included; a closed session has nothing to release
            if self._state is not None:
                self._dispatch(SubmitFailed(str(e) or type(e).__name__))
            raise

        self._dispatch(SubmitSucceeded(level, outcome.card, now))
        if self.state.status is SessionStatus.COMPLETE:
            logger.info(
                f"Completed review of {self.deck_id}: "
                f"{self.state.correct_cards}/{self.state.reviewed_cards} correct"
            )
        return outcome

    def _dispatch(self, event: SessionEvent) -> SessionState:
        self._state = transition(self.state, event)
        return self._state
