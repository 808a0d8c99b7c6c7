"""
Issue stores - IssueStore implementations.

- PostgresIssueStore: the production store over the repositories
- MemoryIssueStore: process-local store for development and tests
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from ..context import UserSettings
from ..errors import PersistenceError
from ..protocols import IssueStatus, TranscriptEntry
from .database import Database
from .repository import IssueMessageRepository, IssueRepository, UserSettingsRepository

logger = logging.getLogger(__name__)


class PostgresIssueStore:
    """
    IssueStore backed by Postgres.

    Database errors surface as PersistenceError; the orchestration core
    logs and swallows them.
    """

    def __init__(self, db: Database):
        self.db = db
        self.issues = IssueRepository(db)
        self.messages = IssueMessageRepository(db)
        self.settings = UserSettingsRepository(db)

    async def ensure_tables(self) -> None:
        for repo in (self.issues, self.messages, self.settings):
            await repo.ensure_table()

    async def get_current_agent(self, issue_id: str) -> Optional[str]:
        try:
            return await self.issues.get_current_agent(issue_id)
        except Exception as e:
            raise PersistenceError(f"read current agent for {issue_id}: {e}") from e

    async def set_current_agent(self, issue_id: str, agent: str) -> None:
        try:
            await self.issues.set_current_agent(issue_id, agent)
        except Exception as e:
            raise PersistenceError(f"write current agent for {issue_id}: {e}") from e

    async def append_transcript(self, issue_id: str, entries: Sequence[TranscriptEntry]) -> None:
        try:
            await self.messages.append(issue_id, entries)
        except Exception as e:
            raise PersistenceError(f"append transcript for {issue_id}: {e}") from e

    async def update_issue_status(self, issue_id: str, status: IssueStatus) -> None:
        try:
            await self.issues.set_status(issue_id, status)
        except Exception as e:
            raise PersistenceError(f"update status for {issue_id}: {e}") from e

    async def get_settings(self, user_id: str) -> Optional[UserSettings]:
        try:
            data = await self.settings.get(user_id)
        except Exception as e:
            raise PersistenceError(f"read settings for {user_id}: {e}") from e
        return UserSettings.from_dict(data) if data is not None else None

    async def save_settings(self, user_id: str, settings: UserSettings) -> None:
        try:
            await self.settings.save(user_id, settings.to_dict())
        except Exception as e:
            raise PersistenceError(f"save settings for {user_id}: {e}") from e


class MemoryIssueStore:
    """IssueStore held in process memory. Lost on restart."""

    def __init__(self):
        self.agents: Dict[str, str] = {}
        self.statuses: Dict[str, IssueStatus] = {}
        self.transcripts: Dict[str, List[TranscriptEntry]] = defaultdict(list)
        self.settings: Dict[str, UserSettings] = {}
        self._lock = asyncio.Lock()

    async def get_current_agent(self, issue_id: str) -> Optional[str]:
        return self.agents.get(issue_id)

    async def set_current_agent(self, issue_id: str, agent: str) -> None:
        self.agents[issue_id] = agent

    async def append_transcript(self, issue_id: str, entries: Sequence[TranscriptEntry]) -> None:
        async with self._lock:
            self.transcripts[issue_id].extend(entries)

    async def update_issue_status(self, issue_id: str, status: IssueStatus) -> None:
        self.statuses[issue_id] = status

    async def get_settings(self, user_id: str) -> Optional[UserSettings]:
        return self.settings.get(user_id)

    async def save_settings(self, user_id: str, settings: UserSettings) -> None:
        self.settings[user_id] = settings
