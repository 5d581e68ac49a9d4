"""Centralized constants for the cadence scheduler.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Ease factor ----------
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 2.5
DEFAULT_EASE_FACTOR = 2.5
AGAIN_EASE_PENALTY = 0.2
HARD_EASE_PENALTY = 0.15
EASY_EASE_BONUS = 0.15

# ---------- Intervals (minutes) ----------
MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 24 * 60
HARD_INTERVAL_MULTIPLIER = 1.2
EASY_INTERVAL_BONUS = 1.3
GOOD_SECOND_STEP_MULTIPLIER = 2
EASY_SECOND_STEP_MULTIPLIER = 3
DAY_GRANULARITY_REPETITIONS = 3

# Base interval per difficulty: (unscaled minutes, floor in minutes)
BASE_INTERVALS = {
    "again": (3, 1),
    "hard": (6, 2),
    "good": (10, 4),
    "easy": (15, 6),
}

# ---------- Deck size scaling ----------
DECK_SCALE_DIVISOR = 50
MAX_SCALE_FACTOR = 2.0
DEFAULT_TOTAL_CARDS = 10

# ---------- Identifiers ----------
DECK_ID_PREFIX = "deck_"
CARD_ID_PREFIX = "card_"
REVIEW_ID_PREFIX = "rev_"

# ---------- Server ----------
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8777
