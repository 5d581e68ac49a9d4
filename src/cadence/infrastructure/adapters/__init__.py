# Infrastructure Adapters Package
from .sqlite_repository import SqliteCardRepository

__all__ = ["SqliteCardRepository"]
