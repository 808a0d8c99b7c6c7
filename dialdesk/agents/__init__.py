"""
DialDesk Agents - registry, prompts, keyword routing and the LLM agent runner
"""

from .agent import AgentFragment, HandoffDirective, LLMAgent, TextFragment, ToolRequest
from .prompts import PromptBuilder, format_user_context
from .registry import (
    AGENT_REGISTRY,
    HANDOFF_TOOL_NAME,
    SPECIALISTS,
    AgentIdentity,
    AgentSpec,
    get_directive,
    get_spec,
    handoff_tool_schema,
    is_handoff_allowed,
)
from .routing import KeywordRouter, RoutingDecision, RoutingReason

__all__ = [
    "AgentFragment",
    "HandoffDirective",
    "LLMAgent",
    "TextFragment",
    "ToolRequest",
    "PromptBuilder",
    "format_user_context",
    "AGENT_REGISTRY",
    "HANDOFF_TOOL_NAME",
    "SPECIALISTS",
    "AgentIdentity",
    "AgentSpec",
    "get_directive",
    "get_spec",
    "handoff_tool_schema",
    "is_handoff_allowed",
    "KeywordRouter",
    "RoutingDecision",
    "RoutingReason",
]
