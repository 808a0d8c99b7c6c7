"""
DialDesk Tool Models - Data structures for tool calling
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..context import AssembledContext, RequestContext, UserSettings


class ToolCategory(str, Enum):
    SEARCH = "search"
    CALL = "call"       # places an external phone call; rate limited per issue


@dataclass
class ToolCall:
    """
    Represents a tool call from a model response

    Attributes:
        id: Unique call ID from the model
        name: Tool name
        arguments: Parsed arguments dict
    """
    id: str
    name: str
    arguments: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class ToolResult:
    """
    Result of a tool execution

    Attributes:
        tool_call_id: ID of the tool call this result is for
        tool_name: Name of the tool that ran
        content: String result content fed back to the agent
        is_error: Whether execution failed
        data: Structured result for the client event
        error: Short error description when is_error is set
    """
    tool_call_id: str
    tool_name: str
    content: str
    is_error: bool = False
    data: Optional[Any] = None
    error: Optional[str] = None


@dataclass
class ToolExecutionContext:
    """Per-run values a tool may need. Carries secrets; never serialized."""
    issue_id: Optional[str] = None
    auth_token: Optional[str] = field(default=None, repr=False)
    user_id: Optional[str] = None
    settings: Optional["UserSettings"] = None
    request_context: Optional["RequestContext"] = None

    @classmethod
    def from_assembled(cls, assembled: "AssembledContext") -> "ToolExecutionContext":
        return cls(
            issue_id=assembled.secrets.issue_id,
            auth_token=assembled.secrets.auth_token,
            user_id=assembled.user_id,
            settings=assembled.secrets.settings,
            request_context=assembled.request_context,
        )


ToolExecutorFn = Callable[[Dict[str, Any], ToolExecutionContext], Awaitable[Any]]


@dataclass
class ToolDefinition:
    """
    A tool the agents may invoke.

    The executor receives (args, context) and returns a JSON-serializable
    result. It raises ToolExecutionError on failure so the circuit breaker
    can count it.
    """
    name: str
    description: str
    parameters: Dict[str, Any]
    executor: ToolExecutorFn
    category: ToolCategory = ToolCategory.SEARCH

    @property
    def places_call(self) -> bool:
        return self.category == ToolCategory.CALL
