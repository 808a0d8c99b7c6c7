"""Pydantic request models for the DialDesk API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..protocols import IssueStatus


class SharedSecretsPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    auth_token: Optional[str] = Field(default=None, alias="authToken")
    settings: Optional[Dict[str, Any]] = None


class ChatRequest(BaseModel):
    """
    Streaming chat request.

    `messages` is kept loosely typed; the normalizer decides what survives.
    """
    model_config = ConfigDict(populate_by_name=True)

    messages: Any = None
    issue_id: Optional[str] = Field(default=None, alias="issueId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    request_context: Optional[Dict[str, Any]] = Field(default=None, alias="requestContext")
    shared_secrets: Optional[SharedSecretsPayload] = Field(default=None, alias="sharedSecrets")


class TranscriptEntryPayload(BaseModel):
    role: str
    content: str
    agent: Optional[str] = None


class IssueStateUpdate(BaseModel):
    agent: Optional[str] = None
    transcript: List[TranscriptEntryPayload] = Field(default_factory=list)
    status: Optional[IssueStatus] = None
