"""
DialDesk Repository - base class and the three tables the core persists to.

Each repository owns one table:
- IssueRepository: issues (status and the active agent)
- IssueMessageRepository: issue_messages (the chat transcript)
- UserSettingsRepository: user_settings (profile fields as JSONB)

CREATE_TABLE_SQL mirrors the alembic revision so a development database can
be bootstrapped with ensure_table() without running migrations.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from ..protocols import IssueStatus, TranscriptEntry
from .database import Database

logger = logging.getLogger(__name__)


class Repository:
    """
    Base class for table data access.

    Subclasses define TABLE_NAME, CREATE_TABLE_SQL, and domain methods.
    """

    TABLE_NAME: str = ""
    CREATE_TABLE_SQL: str = ""

    def __init__(self, db: Database):
        self._db = db

    @property
    def db(self) -> Database:
        return self._db

    async def ensure_table(self) -> None:
        """Create the table if it does not exist. Call once at startup."""
        if self.CREATE_TABLE_SQL:
            await self._db.execute(self.CREATE_TABLE_SQL)
            logger.debug(f"[DB] ensured table: {self.TABLE_NAME}")

    async def _fetch_many(
        self,
        where: str = "",
        args: tuple = (),
        order_by: str = "",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch multiple rows with optional WHERE, ORDER BY, LIMIT."""
        query = f"SELECT * FROM {self.TABLE_NAME}"
        if where:
            query += f" WHERE {where}"
        if order_by:
            query += f" ORDER BY {order_by}"
        if limit:
            query += f" LIMIT {int(limit)}"

        rows = await self._db.fetch(query, *args)
        return [dict(r) for r in rows]


class IssueRepository(Repository):
    TABLE_NAME = "issues"
    CREATE_TABLE_SQL = """
        CREATE TABLE IF NOT EXISTS issues (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            status TEXT NOT NULL DEFAULT 'open',
            current_agent TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """

    async def get_current_agent(self, issue_id: str) -> Optional[str]:
        return await self._db.fetchval(
            "SELECT current_agent FROM issues WHERE id = $1", issue_id
        )

    async def set_current_agent(self, issue_id: str, agent: str) -> None:
        """Upsert; writing the same agent twice is a no-op in effect."""
        await self._db.execute(
            """
            INSERT INTO issues (id, current_agent) VALUES ($1, $2)
            ON CONFLICT (id) DO UPDATE
            SET current_agent = EXCLUDED.current_agent, updated_at = NOW()
            """,
            issue_id,
            agent,
        )

    async def set_status(self, issue_id: str, status: IssueStatus) -> None:
        await self._db.execute(
            """
            INSERT INTO issues (id, status) VALUES ($1, $2)
            ON CONFLICT (id) DO UPDATE
            SET status = EXCLUDED.status, updated_at = NOW()
            """,
            issue_id,
            status.value,
        )


class IssueMessageRepository(Repository):
    TABLE_NAME = "issue_messages"
    CREATE_TABLE_SQL = """
        CREATE TABLE IF NOT EXISTS issue_messages (
            id BIGSERIAL PRIMARY KEY,
            issue_id TEXT NOT NULL,
            role TEXT NOT NULL,
            content TEXT NOT NULL,
            agent TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """

    async def append(self, issue_id: str, entries: Sequence[TranscriptEntry]) -> None:
        """Insert entries and touch the issue row in one transaction."""
        if not entries:
            return
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO issues (id) VALUES ($1)
                ON CONFLICT (id) DO UPDATE SET updated_at = NOW()
                """,
                issue_id,
            )
            await conn.executemany(
                "INSERT INTO issue_messages (issue_id, role, content, agent, created_at) "
                "VALUES ($1, $2, $3, $4, $5)",
                [(issue_id, e.role, e.content, e.agent, e.created_at) for e in entries],
            )

    async def list_for_issue(self, issue_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self._fetch_many(
            where="issue_id = $1", args=(issue_id,), order_by="id", limit=limit
        )


class UserSettingsRepository(Repository):
    TABLE_NAME = "user_settings"
    CREATE_TABLE_SQL = """
        CREATE TABLE IF NOT EXISTS user_settings (
            user_id TEXT PRIMARY KEY,
            settings JSONB NOT NULL DEFAULT '{}'::jsonb,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """

    async def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        raw = await self._db.fetchval(
            "SELECT settings FROM user_settings WHERE user_id = $1", user_id
        )
        if raw is None:
            return None
        return json.loads(raw) if isinstance(raw, str) else dict(raw)

    async def save(self, user_id: str, settings: Dict[str, Any]) -> None:
        await self._db.execute(
            """
            INSERT INTO user_settings (user_id, settings) VALUES ($1, $2::jsonb)
            ON CONFLICT (user_id) DO UPDATE
            SET settings = EXCLUDED.settings, updated_at = NOW()
            """,
            user_id,
            json.dumps(settings),
        )
