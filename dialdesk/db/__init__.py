"""
DialDesk Database - asyncpg-based persistence for issues, transcripts and settings.

- Database: shared connection pool manager (one per app)
- Repository subclasses: one per table
- PostgresIssueStore / MemoryIssueStore: IssueStore implementations
"""

from .database import Database
from .repository import (
    IssueMessageRepository,
    IssueRepository,
    Repository,
    UserSettingsRepository,
)
from .store import MemoryIssueStore, PostgresIssueStore

__all__ = [
    "Database",
    "Repository",
    "IssueRepository",
    "IssueMessageRepository",
    "UserSettingsRepository",
    "PostgresIssueStore",
    "MemoryIssueStore",
]
