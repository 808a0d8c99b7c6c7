"""
DialDesk Message - canonical chat message and the history normalizer.

Clients send loosely-shaped message objects. normalize_messages() turns them
into an ordered list of immutable Message values, or raises NoValidMessages
when nothing usable remains.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .errors import NoValidMessages

logger = logging.getLogger(__name__)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


_VALID_ROLES = {role.value for role in MessageRole}


@dataclass(frozen=True)
class Message:
    """A single chat message. Tool messages carry a serialized result payload."""
    id: str
    role: MessageRole
    content: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "role": self.role.value, "content": self.content}
        if self.name:
            data["name"] = self.name
        return data

    def to_llm_dict(self) -> Dict[str, Any]:
        """
        Chat-completion format (no id).

        Tool messages from a client have no tool_call_id or matching assistant
        tool_calls, which providers reject, so they are replayed as assistant
        text that carries the result.
        """
        if self.role == MessageRole.TOOL:
            label = f"Tool result ({self.name})" if self.name else "Tool result"
            return {"role": MessageRole.ASSISTANT.value, "content": f"[{label}] {self.content}"}
        data = {"role": self.role.value, "content": self.content}
        if self.name:
            data["name"] = self.name
        return data

    @classmethod
    def create(cls, role: MessageRole, content: str, name: Optional[str] = None) -> "Message":
        return cls(id=_new_id(), role=role, content=content, name=name)


def _new_id() -> str:
    return uuid.uuid4().hex


def _coerce(entry: Any) -> Optional[Message]:
    if isinstance(entry, Message):
        return entry
    if not isinstance(entry, dict):
        return None

    content = entry.get("content")
    if not isinstance(content, str):
        return None

    role = entry.get("role")
    role = role.lower() if isinstance(role, str) else ""
    if role not in _VALID_ROLES:
        role = MessageRole.USER.value

    msg_id = entry.get("id")
    if not isinstance(msg_id, str) or not msg_id:
        msg_id = _new_id()

    name = entry.get("name")
    if not isinstance(name, str) or not name:
        name = None

    return Message(id=msg_id, role=MessageRole(role), content=content, name=name)


def normalize_messages(raw: Iterable[Any]) -> List[Message]:
    """
    Validate client-supplied chat history.

    Entries that are not objects or whose content is not a string are dropped.
    Roles are lowercased and unknown roles become "user". Missing ids are
    generated. Surviving entries keep their relative order, and running the
    function on its own output returns the same list.

    Raises:
        NoValidMessages: nothing survived, or no user message has
            non-whitespace content.
    """
    if raw is None or isinstance(raw, (str, bytes, dict)):
        raise NoValidMessages("messages must be a list")

    messages: List[Message] = []
    dropped = 0
    for entry in raw:
        msg = _coerce(entry)
        if msg is None:
            dropped += 1
            continue
        messages.append(msg)

    if dropped:
        logger.debug(f"[Normalizer] dropped {dropped} malformed message(s)")

    if not messages:
        raise NoValidMessages("no valid messages in request")
    if not any(m.role == MessageRole.USER and m.content.strip() for m in messages):
        raise NoValidMessages("no user message with content in request")

    return messages


def latest_user_message(messages: List[Message]) -> Optional[Message]:
    """Return the most recent user message with content, if any."""
    for msg in reversed(messages):
        if msg.role == MessageRole.USER and msg.content.strip():
            return msg
    return None
