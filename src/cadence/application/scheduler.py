"""
Interval scheduler: recomputes a card's interval, ease factor and repetitions.

This is a pure computation module with no I/O.

Intervals are minutes. Early steps use short base intervals scaled by deck
size; from the third consecutive success onwards the interval snaps to whole
days, capped at ``repetitions * ease_factor`` days.
"""

import math

from cadence.domain.constants import (
    AGAIN_EASE_PENALTY,
    BASE_INTERVALS,
    DAY_GRANULARITY_REPETITIONS,
    DECK_SCALE_DIVISOR,
    EASY_EASE_BONUS,
    EASY_INTERVAL_BONUS,
    EASY_SECOND_STEP_MULTIPLIER,
    GOOD_SECOND_STEP_MULTIPLIER,
    HARD_EASE_PENALTY,
    HARD_INTERVAL_MULTIPLIER,
    MAX_EASE_FACTOR,
    MAX_SCALE_FACTOR,
    MIN_EASE_FACTOR,
    MINUTES_PER_DAY,
)
from cadence.domain.models import Difficulty, ScheduleResult, SchedulingState


def scale_factor(total_cards_in_deck: int) -> float:
    """Larger decks get proportionally longer base intervals, capped at 2x."""
    return min(MAX_SCALE_FACTOR, 1 + total_cards_in_deck / DECK_SCALE_DIVISOR)


def base_intervals(total_cards_in_deck: int) -> dict[Difficulty, int]:
    """Scaled base interval (minutes) for each difficulty."""
    factor = scale_factor(total_cards_in_deck)
    return {
        Difficulty(name): max(floor_minutes, math.floor(minutes * factor))
        for name, (minutes, floor_minutes) in BASE_INTERVALS.items()
    }


class IntervalScheduler:
    """
    Computes the next scheduling state of a card from a difficulty signal.

    Stateless and side-effect free.
    """

    def compute(
        self,
        difficulty: Difficulty,
        current_interval: int,
        repetitions: int,
        ease_factor: float,
        total_cards_in_deck: int,
    ) -> ScheduleResult:
        """
        Compute the next interval, ease factor and repetition count.

        Args:
            difficulty: The learner's answer. Callers validate it beforehand.
            current_interval: The card's current interval in minutes.
            repetitions: Consecutive non-"again" outcomes so far.
            ease_factor: The card's current ease factor.
            total_cards_in_deck: Size of the deck the card belongs to.

        Returns:
            ScheduleResult with the new interval (minutes), ease and repetitions.
        """
        base = base_intervals(total_cards_in_deck)
        new_ease = ease_factor
        new_repetitions = repetitions

        if difficulty is Difficulty.AGAIN:
            new_repetitions = 0
            new_ease = max(MIN_EASE_FACTOR, ease_factor - AGAIN_EASE_PENALTY)
            new_interval = base[Difficulty.AGAIN]

        elif difficulty is Difficulty.HARD:
            new_repetitions = max(0, repetitions)
            new_ease = max(MIN_EASE_FACTOR, ease_factor - HARD_EASE_PENALTY)
            if repetitions == 0:
                new_interval = base[Difficulty.HARD]
            else:
                new_interval = math.floor(current_interval * HARD_INTERVAL_MULTIPLIER)

        elif difficulty is Difficulty.GOOD:
            new_repetitions = repetitions + 1
            if new_repetitions == 1:
                new_interval = base[Difficulty.GOOD]
            elif new_repetitions == 2:
                new_interval = math.floor(base[Difficulty.GOOD] * GOOD_SECOND_STEP_MULTIPLIER)
            else:
                # current_interval is already minutes here, so this overshoots;
                # the day cap below bounds the result.
                new_interval = math.floor(current_interval * ease_factor * MINUTES_PER_DAY)

        elif difficulty is Difficulty.EASY:
            new_repetitions = repetitions + 1
            new_ease = min(MAX_EASE_FACTOR, ease_factor + EASY_EASE_BONUS)
            if new_repetitions == 1:
                new_interval = base[Difficulty.EASY]
            elif new_repetitions == 2:
                new_interval = math.floor(base[Difficulty.EASY] * EASY_SECOND_STEP_MULTIPLIER)
            else:
                new_interval = math.floor(
                    current_interval * ease_factor * MINUTES_PER_DAY * EASY_INTERVAL_BONUS
                )

        else:
            raise ValueError(f"Unsupported difficulty: {difficulty!r}")

        if new_repetitions >= DAY_GRANULARITY_REPETITIONS:
            days = min(
                new_interval // MINUTES_PER_DAY,
                math.floor(new_repetitions * new_ease),
            )
            new_interval = max(1, days) * MINUTES_PER_DAY
        else:
            new_interval = max(1, new_interval)

        return ScheduleResult(
            new_interval=new_interval,
            new_ease_factor=new_ease,
            new_repetitions=new_repetitions,
        )

    def schedule(
        self, state: SchedulingState, difficulty: Difficulty, total_cards_in_deck: int
    ) -> ScheduleResult:
        """Convenience wrapper taking a SchedulingState."""
        return self.compute(
            difficulty,
            state.interval,
            state.repetitions,
            state.ease_factor,
            total_cards_in_deck,
        )
