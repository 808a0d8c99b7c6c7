"""
DialDesk - streaming multi-agent customer-service orchestration.

    from dialdesk import DialDesk

    app = DialDesk("config.yaml")
    events = await app.stream([{"role": "user", "content": "Lower my phone bill"}])
"""

from .app import DialDesk
from .agents.registry import AgentIdentity
from .errors import (
    DialDeskError,
    NoValidMessages,
    OrchestrationError,
    RoutingLoopExceeded,
)
from .message import Message, MessageRole, normalize_messages
from .orchestrator import Orchestrator, OrchestratorConfig
from .streaming.models import EventType, OrchestrationEvent

__version__ = "0.1.0"

__all__ = [
    "DialDesk",
    "AgentIdentity",
    "DialDeskError",
    "NoValidMessages",
    "OrchestrationError",
    "RoutingLoopExceeded",
    "Message",
    "MessageRole",
    "normalize_messages",
    "Orchestrator",
    "OrchestratorConfig",
    "EventType",
    "OrchestrationEvent",
]
