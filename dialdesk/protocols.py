"""
DialDesk Protocols - interfaces for injected collaborators.

The orchestration core talks to persistence and to the model through these
protocols only, so the Postgres store, the in-memory store and test doubles
are interchangeable.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence,
    TYPE_CHECKING, runtime_checkable,
)

if TYPE_CHECKING:
    from .context import UserSettings
    from .llm.base import StreamChunk


class IssueStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"


@dataclass
class TranscriptEntry:
    """One persisted transcript row. Never carries SharedSecrets."""
    role: str
    content: str
    agent: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "agent": self.agent,
            "created_at": self.created_at.isoformat(),
        }


@runtime_checkable
class IssueStore(Protocol):
    """
    Persistence collaborator for issues, transcripts and user settings.

    Implementations raise on failure; callers in the orchestration core
    log and swallow those errors.
    """

    async def get_current_agent(self, issue_id: str) -> Optional[str]:
        """Return the persisted active agent identity for an issue, if any."""
        ...

    async def set_current_agent(self, issue_id: str, agent: str) -> None:
        """Persist the active agent for an issue. Called on every handoff."""
        ...

    async def append_transcript(self, issue_id: str, entries: Sequence[TranscriptEntry]) -> None:
        ...

    async def update_issue_status(self, issue_id: str, status: IssueStatus) -> None:
        ...

    async def get_settings(self, user_id: str) -> Optional["UserSettings"]:
        ...

    async def save_settings(self, user_id: str, settings: "UserSettings") -> None:
        ...


@runtime_checkable
class LLMClientProtocol(Protocol):
    """Streaming chat-completion client used by agents."""

    def stream_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Any]] = None,
        config: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> AsyncIterator["StreamChunk"]:
        ...
