"""
DialDesk Agent Registry - the fixed set of agents and their handoff edges.

AGENT_REGISTRY maps every AgentIdentity to its AgentSpec: display metadata,
system directive, allowed tools and allowed handoff targets. The table is
checked for completeness at import time, so adding an identity without a
spec fails fast.

Handoff whitelist:
    router     -> any specialist
    specialist -> router, plus the specialists listed in its spec
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from ..tools.search import TOOL_NAME as WEB_SEARCH
from ..tools.start_call import TOOL_NAME as START_CALL
from . import prompts

HANDOFF_TOOL_NAME = "transfer_to_agent"


class AgentIdentity(str, Enum):
    ROUTER = "router"
    FINANCIAL = "financial"
    INSURANCE = "insurance"
    BOOKING = "booking"
    ACCOUNT = "account"
    SUPPORT = "support"

    @classmethod
    def parse(cls, value: Any) -> Optional["AgentIdentity"]:
        """Return the identity for a stored/raw value, or None if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


SPECIALISTS: Tuple[AgentIdentity, ...] = (
    AgentIdentity.FINANCIAL,
    AgentIdentity.INSURANCE,
    AgentIdentity.BOOKING,
    AgentIdentity.ACCOUNT,
    AgentIdentity.SUPPORT,
)

_SPECIALIST_TOOLS = (WEB_SEARCH, START_CALL)


@dataclass(frozen=True)
class AgentSpec:
    identity: AgentIdentity
    display_name: str
    emoji: str
    description: str
    directive: str
    tools: Tuple[str, ...]
    handoffs: FrozenSet[AgentIdentity]

    def can_hand_off_to(self, target: AgentIdentity) -> bool:
        return target in self.handoffs

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.identity.value,
            "name": self.display_name,
            "emoji": self.emoji,
            "description": self.description,
            "tools": list(self.tools),
            "handoffs": sorted(a.value for a in self.handoffs),
        }


AGENT_REGISTRY: Dict[AgentIdentity, AgentSpec] = {
    AgentIdentity.ROUTER: AgentSpec(
        identity=AgentIdentity.ROUTER,
        display_name="Dial0 Assistant",
        emoji="👋",
        description="Greeting and routing your request",
        directive=prompts.ROUTER_DIRECTIVE,
        tools=(),
        handoffs=frozenset(SPECIALISTS),
    ),
    AgentIdentity.FINANCIAL: AgentSpec(
        identity=AgentIdentity.FINANCIAL,
        display_name="Financial Negotiator",
        emoji="💰",
        description="Building your case to lower bills and get refunds",
        directive=prompts.FINANCIAL_DIRECTIVE,
        tools=_SPECIALIST_TOOLS,
        handoffs=frozenset({AgentIdentity.ROUTER, AgentIdentity.ACCOUNT}),
    ),
    AgentIdentity.INSURANCE: AgentSpec(
        identity=AgentIdentity.INSURANCE,
        display_name="Insurance Claims Specialist",
        emoji="🛡️",
        description="Handling claims and compensation",
        directive=prompts.INSURANCE_DIRECTIVE,
        tools=_SPECIALIST_TOOLS,
        handoffs=frozenset({AgentIdentity.ROUTER, AgentIdentity.FINANCIAL}),
    ),
    AgentIdentity.BOOKING: AgentSpec(
        identity=AgentIdentity.BOOKING,
        display_name="Booking Coordinator",
        emoji="📅",
        description="Scheduling appointments and reservations",
        directive=prompts.BOOKING_DIRECTIVE,
        tools=_SPECIALIST_TOOLS,
        handoffs=frozenset({AgentIdentity.ROUTER}),
    ),
    AgentIdentity.ACCOUNT: AgentSpec(
        identity=AgentIdentity.ACCOUNT,
        display_name="Account Manager",
        emoji="👤",
        description="Managing account changes and services",
        directive=prompts.ACCOUNT_DIRECTIVE,
        tools=_SPECIALIST_TOOLS,
        handoffs=frozenset({AgentIdentity.ROUTER, AgentIdentity.FINANCIAL, AgentIdentity.SUPPORT}),
    ),
    AgentIdentity.SUPPORT: AgentSpec(
        identity=AgentIdentity.SUPPORT,
        display_name="Technical Support Agent",
        emoji="🔧",
        description="Troubleshooting technical issues",
        directive=prompts.SUPPORT_DIRECTIVE,
        tools=_SPECIALIST_TOOLS,
        handoffs=frozenset({AgentIdentity.ROUTER, AgentIdentity.ACCOUNT}),
    ),
}


def _check_registry() -> None:
    missing = set(AgentIdentity) - set(AGENT_REGISTRY)
    if missing:
        raise RuntimeError(f"Agent registry incomplete: {sorted(m.value for m in missing)}")
    for identity, spec in AGENT_REGISTRY.items():
        if spec.identity != identity:
            raise RuntimeError(f"Agent registry key {identity.value} holds spec for {spec.identity.value}")
        if identity in spec.handoffs:
            raise RuntimeError(f"Agent {identity.value} may not hand off to itself")
        if identity != AgentIdentity.ROUTER and AgentIdentity.ROUTER not in spec.handoffs:
            raise RuntimeError(f"Specialist {identity.value} must be able to return to router")


_check_registry()


def get_spec(identity: AgentIdentity) -> AgentSpec:
    return AGENT_REGISTRY[identity]


def get_directive(identity: AgentIdentity) -> str:
    return AGENT_REGISTRY[identity].directive


def is_handoff_allowed(source: AgentIdentity, target: AgentIdentity) -> bool:
    return AGENT_REGISTRY[source].can_hand_off_to(target)


def handoff_tool_schema(identity: AgentIdentity) -> Dict[str, Any]:
    """The transfer_to_agent function schema, restricted to the agent's targets."""
    targets = sorted(a.value for a in AGENT_REGISTRY[identity].handoffs)
    return {
        "type": "function",
        "function": {
            "name": HANDOFF_TOOL_NAME,
            "description": (
                "Hand the conversation to another agent. Use it when the user's "
                "request is outside your specialty."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "agent": {
                        "type": "string",
                        "enum": targets,
                        "description": "The agent to transfer to",
                    },
                    "reason": {
                        "type": "string",
                        "description": "One line explaining why",
                    },
                },
                "required": ["agent"],
            },
        },
    }
