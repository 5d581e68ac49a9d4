"""
Repository Factory
Centralizes the logic for building the storage adapter and services from config.
"""

from cadence.application.config import AppConfig
from cadence.application.due_selector import DueCardSelector
from cadence.application.review_service import ReviewService
from cadence.application.session import ReviewSessionController
from cadence.domain.ports import CardRepository
from cadence.infrastructure.adapters.sqlite_repository import SqliteCardRepository


def get_card_repository(config: AppConfig) -> CardRepository:
    """
    Returns the CardRepository implementation for the configured database.
    """
    return SqliteCardRepository(config.database_path)


def get_review_service(repo: CardRepository, config: AppConfig) -> ReviewService:
    return ReviewService(repo, default_total_cards=config.default_total_cards)


def create_session(
    deck_id: str,
    repo: CardRepository,
    config: AppConfig,
    limit: int | None = None,
    include_new: bool | None = None,
) -> ReviewSessionController:
    """
    Builds a review session wired to the given repository.
    Explicit arguments take precedence over the configured defaults.
    """
    return ReviewSessionController(
        deck_id,
        selector=DueCardSelector(repo),
        reviews=get_review_service(repo, config),
        include_new=config.include_new if include_new is None else include_new,
        limit=limit if limit is not None else config.session_limit,
    )
