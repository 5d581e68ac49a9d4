# Application Package
from .due_selector import DueCardSelector
from .review_service import NextReview, ReviewOutcome, ReviewService
from .scheduler import IntervalScheduler
from .session import ReviewSessionController

__all__ = [
    "DueCardSelector",
    "IntervalScheduler",
    "NextReview",
    "ReviewOutcome",
    "ReviewService",
    "ReviewSessionController",
]
