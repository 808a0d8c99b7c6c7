"""
Tests for the IssueStore implementations.

PostgresIssueStore runs against a FakeDatabase that records the SQL it is
given, so no server is needed.
"""

import json
from contextlib import asynccontextmanager

import pytest

from dialdesk.context import UserSettings
from dialdesk.db import MemoryIssueStore, PostgresIssueStore
from dialdesk.db.database import Database, asyncpg_dsn
from dialdesk.errors import PersistenceError
from dialdesk.protocols import IssueStatus, TranscriptEntry


class FakeDatabase:
    """Records queries; returns canned values or raises when told to."""

    def __init__(self, fetchval_result=None, error=None):
        self.fetchval_result = fetchval_result
        self.error = error
        self.executed = []
        self.executed_many = []

    async def execute(self, query, *args):
        if self.error:
            raise self.error
        self.executed.append((query, args))
        return "INSERT 0 1"

    async def executemany(self, query, args):
        if self.error:
            raise self.error
        self.executed_many.append((query, list(args)))

    async def fetchval(self, query, *args):
        if self.error:
            raise self.error
        return self.fetchval_result

    async def fetch(self, query, *args):
        if self.error:
            raise self.error
        return []

    @asynccontextmanager
    async def transaction(self):
        if self.error:
            raise self.error
        yield self


class TestMemoryIssueStore:

    @pytest.mark.asyncio
    async def test_unknown_issue_has_no_agent(self):
        store = MemoryIssueStore()
        assert await store.get_current_agent("missing") is None

    @pytest.mark.asyncio
    async def test_agent_write_is_idempotent(self):
        store = MemoryIssueStore()
        await store.set_current_agent("issue-1", "insurance")
        await store.set_current_agent("issue-1", "insurance")
        assert await store.get_current_agent("issue-1") == "insurance"

    @pytest.mark.asyncio
    async def test_transcript_appends_in_order(self):
        store = MemoryIssueStore()
        await store.append_transcript("issue-1", [TranscriptEntry(role="user", content="a")])
        await store.append_transcript("issue-1", [
            TranscriptEntry(role="assistant", content="b", agent="router"),
            TranscriptEntry(role="tool", content="c", agent="router"),
        ])
        assert [e.content for e in store.transcripts["issue-1"]] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_settings_round_trip(self):
        store = MemoryIssueStore()
        settings = UserSettings(first_name="Ada", phone="+15550100")
        await store.save_settings("user-1", settings)
        assert await store.get_settings("user-1") == settings
        assert await store.get_settings("user-2") is None

    @pytest.mark.asyncio
    async def test_status(self):
        store = MemoryIssueStore()
        await store.update_issue_status("issue-1", IssueStatus.IN_PROGRESS)
        assert store.statuses["issue-1"] == IssueStatus.IN_PROGRESS


class TestPostgresIssueStore:

    @pytest.mark.asyncio
    async def test_set_current_agent_upserts(self):
        db = FakeDatabase()
        store = PostgresIssueStore(db)
        await store.set_current_agent("issue-1", "booking")
        query, args = db.executed[0]
        assert "ON CONFLICT (id) DO UPDATE" in query
        assert args == ("issue-1", "booking")

    @pytest.mark.asyncio
    async def test_status_written_as_wire_value(self):
        db = FakeDatabase()
        await PostgresIssueStore(db).update_issue_status("issue-1", IssueStatus.IN_PROGRESS)
        assert db.executed[0][1] == ("issue-1", "in-progress")

    @pytest.mark.asyncio
    async def test_transcript_batch_insert(self):
        db = FakeDatabase()
        entries = [
            TranscriptEntry(role="user", content="hi"),
            TranscriptEntry(role="assistant", content="hello", agent="router"),
        ]
        await PostgresIssueStore(db).append_transcript("issue-1", entries)
        query, rows = db.executed_many[0]
        assert "INSERT INTO issue_messages" in query
        assert [(r[0], r[1], r[2], r[3]) for r in rows] == [
            ("issue-1", "user", "hi", None),
            ("issue-1", "assistant", "hello", "router"),
        ]

    @pytest.mark.asyncio
    async def test_empty_transcript_skips_query(self):
        db = FakeDatabase()
        await PostgresIssueStore(db).append_transcript("issue-1", [])
        assert db.executed_many == []

    @pytest.mark.asyncio
    async def test_settings_decoded_from_json_text(self):
        db = FakeDatabase(fetchval_result=json.dumps({"firstName": "Ada", "timezone": "UTC"}))
        settings = await PostgresIssueStore(db).get_settings("user-1")
        assert settings.first_name == "Ada"
        assert settings.timezone == "UTC"

    @pytest.mark.asyncio
    async def test_missing_settings(self):
        assert await PostgresIssueStore(FakeDatabase()).get_settings("user-1") is None

    @pytest.mark.asyncio
    async def test_save_settings_serializes(self):
        db = FakeDatabase()
        await PostgresIssueStore(db).save_settings("user-1", UserSettings(email="ada@example.com"))
        _, args = db.executed[0]
        assert args[0] == "user-1"
        assert json.loads(args[1])["email"] == "ada@example.com"

    @pytest.mark.asyncio
    async def test_database_errors_become_persistence_errors(self):
        store = PostgresIssueStore(FakeDatabase(error=ConnectionError("connection refused")))
        with pytest.raises(PersistenceError, match="connection refused"):
            await store.set_current_agent("issue-1", "router")
        with pytest.raises(PersistenceError):
            await store.get_current_agent("issue-1")
        with pytest.raises(PersistenceError):
            await store.append_transcript("issue-1", [TranscriptEntry(role="user", content="x")])

    @pytest.mark.asyncio
    async def test_ensure_tables_creates_all_three(self):
        db = FakeDatabase()
        await PostgresIssueStore(db).ensure_tables()
        created = " ".join(q for q, _ in db.executed)
        for table in ("issues", "issue_messages", "user_settings"):
            assert f"CREATE TABLE IF NOT EXISTS {table}" in created

    @pytest.mark.asyncio
    async def test_transcript_touches_issue_row_first(self):
        db = FakeDatabase()
        await PostgresIssueStore(db).append_transcript(
            "issue-1", [TranscriptEntry(role="user", content="hi")]
        )
        query, args = db.executed[0]
        assert "INSERT INTO issues" in query
        assert args == ("issue-1",)


class TestDatabase:

    def test_driver_suffix_stripped(self):
        assert asyncpg_dsn("postgresql+psycopg2://u:p@h/db") == "postgresql://u:p@h/db"
        assert asyncpg_dsn("postgres+asyncpg://h/db") == "postgres://h/db"

    def test_plain_dsn_unchanged(self):
        assert asyncpg_dsn(" postgresql://h:5432/db ") == "postgresql://h:5432/db"

    def test_pool_required_before_queries(self):
        db = Database("postgresql://h/db")
        assert not db.initialized
        with pytest.raises(RuntimeError, match="not initialized"):
            db.pool
