"""
Start Call Tool - place an outbound phone call on the user's behalf

The agent supplies a structured call context (who to call, why, what the
user wants). Before sending, the context is enriched from the user's saved
settings: the agent's values win, settings fill the gaps. The call service
is reached over a JSON-RPC 2.0 `tools/call` request and answers with a call
identifier and status.

Requires SharedSecrets.issue_id and SharedSecrets.auth_token; the token is
sent to the call service only and never echoed back to the agent. Missing
secrets and invalid contexts raise ToolInputError so they do not count
against the breaker or use up the issue's call slot.
"""

import json
import logging
import uuid
from typing import Any, Dict, List, Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from ..context import UserSettings
from ..errors import ToolExecutionError, ToolInputError
from .models import ToolCategory, ToolDefinition, ToolExecutionContext

logger = logging.getLogger(__name__)

TOOL_NAME = "start_call"


# ── Call context schema ──


class _CallModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class CallGoal(_CallModel):
    summary: Optional[str] = None


class CallContact(_CallModel):
    type: str
    name: str
    phone_number: Optional[str] = None
    alt_channels: Optional[List[str]] = None


class CallIssue(_CallModel):
    category: Optional[str] = None
    summary: Optional[str] = None
    details: Optional[str] = None
    urgency: Optional[str] = None
    desired_outcome: Optional[str] = None


class CallAvailability(_CallModel):
    timezone: Optional[str] = None
    preferred_windows: Optional[List[str]] = None


class CallCaller(_CallModel):
    name: str
    callback: Optional[str] = None
    identifiers: Optional[List[str]] = None
    org: Optional[str] = None
    employer: Optional[str] = None


class CallFollowUp(_CallModel):
    next_steps: Optional[List[str]] = None
    notify: Optional[List[str]] = None


class StartCallContext(_CallModel):
    """What the voice agent needs to know to make the call."""
    call_purpose: Optional[str] = None
    call_type: Optional[Literal["customer_service", "personal", "work", "general"]] = None
    goal: Optional[CallGoal] = None
    objective: Optional[str] = None
    contact: CallContact
    issue: Optional[CallIssue] = None
    constraints: Optional[List[str]] = None
    verification: Optional[List[str]] = None
    availability: Optional[CallAvailability] = None
    caller: CallCaller
    follow_up: Optional[CallFollowUp] = None
    notes_for_agent: Optional[str] = None


_TEXT_ARRAY = {"type": "array", "items": {"type": "string"}}

CALL_CONTEXT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["contact", "caller"],
    "properties": {
        "callPurpose": {"type": "string"},
        "callType": {"type": "string", "enum": ["customer_service", "personal", "work", "general"]},
        "goal": {"type": "object", "properties": {"summary": {"type": "string"}}},
        "objective": {"type": "string"},
        "contact": {
            "type": "object",
            "required": ["type", "name"],
            "properties": {
                "type": {"type": "string", "description": "e.g. business, person, government"},
                "name": {"type": "string"},
                "phoneNumber": {"type": "string", "description": "E.164 phone number to dial"},
                "altChannels": _TEXT_ARRAY,
            },
        },
        "issue": {
            "type": "object",
            "properties": {
                "category": {"type": "string"},
                "summary": {"type": "string"},
                "details": {"type": "string"},
                "urgency": {"type": "string"},
                "desiredOutcome": {"type": "string"},
            },
        },
        "constraints": _TEXT_ARRAY,
        "verification": _TEXT_ARRAY,
        "availability": {
            "type": "object",
            "properties": {"timezone": {"type": "string"}, "preferredWindows": _TEXT_ARRAY},
        },
        "caller": {
            "type": "object",
            "required": ["name"],
            "properties": {
                "name": {"type": "string"},
                "callback": {"type": "string"},
                "identifiers": _TEXT_ARRAY,
                "org": {"type": "string"},
                "employer": {"type": "string"},
            },
        },
        "followUp": {
            "type": "object",
            "properties": {"nextSteps": _TEXT_ARRAY, "notify": _TEXT_ARRAY},
        },
        "notesForAgent": {"type": "string"},
    },
}


# ── Enrichment ──


def _append_missing(items: List[str], label: str, value: Optional[str]) -> None:
    if value and not any(value in item for item in items):
        items.append(f"{label}: {value}")


def enrich_call_context(raw: Dict[str, Any], settings: Optional[UserSettings]) -> Dict[str, Any]:
    """Fill gaps in an agent-built call context from the user's settings."""
    context = dict(raw or {})
    if settings is None:
        return context

    caller = dict(context.get("caller") or {})
    identifiers = list(caller.get("identifiers") or [])
    _append_missing(identifiers, "Phone", settings.phone)
    _append_missing(identifiers, "Email", settings.email)
    _append_missing(identifiers, "Address", settings.address)
    caller["name"] = caller.get("name") or settings.full_name or "User"
    if not caller.get("callback") and settings.phone:
        caller["callback"] = settings.phone
    caller["identifiers"] = identifiers
    context["caller"] = caller

    availability = dict(context.get("availability") or {})
    availability["timezone"] = availability.get("timezone") or settings.timezone or "UTC"
    context["availability"] = availability

    verification = list(context.get("verification") or [])
    _append_missing(verification, "Phone", settings.phone)
    _append_missing(verification, "Email", settings.email)
    _append_missing(verification, "Service address", settings.address)
    _append_missing(verification, "Date of birth", settings.birthdate)
    context["verification"] = verification

    return context


def _unwrap_result(payload: Any) -> Dict[str, Any]:
    """Pull {callId, status} out of a JSON-RPC tools/call response."""
    if not isinstance(payload, dict):
        return {"result": payload}
    if payload.get("error"):
        error = payload["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise ToolExecutionError(TOOL_NAME, f"Call service error: {message}")

    result = payload.get("result", payload)
    # MCP-style results wrap JSON in text content blocks
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        for block in result["content"]:
            if isinstance(block, dict) and block.get("type") == "text":
                try:
                    parsed = json.loads(block.get("text", ""))
                except json.JSONDecodeError:
                    continue
                if isinstance(parsed, dict):
                    result = parsed
                    break

    if not isinstance(result, dict):
        return {"result": result}
    return {
        "callId": result.get("callId") or result.get("call_id") or result.get("id"),
        "status": result.get("status", "queued"),
    }


def build_start_call_tool(
    endpoint: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ToolDefinition:
    """Create the start_call tool bound to a call-service endpoint."""

    async def start_call_executor(args: dict, context: ToolExecutionContext = None) -> Dict[str, Any]:
        context = context or ToolExecutionContext()
        if not context.issue_id:
            raise ToolInputError(TOOL_NAME, "Missing issueId for start_call")
        if not context.auth_token:
            raise ToolInputError(TOOL_NAME, "Missing authToken for start_call")
        if not endpoint:
            raise ToolInputError(TOOL_NAME, "Call service endpoint is not configured")

        enriched = enrich_call_context(args.get("context") or {}, context.settings)
        try:
            call_context = StartCallContext.model_validate(enriched)
        except ValidationError as e:
            raise ToolInputError(TOOL_NAME, f"Invalid call context: {e.errors()[0]['msg']}")

        arguments: Dict[str, Any] = {
            "issueId": context.issue_id,
            "authToken": context.auth_token,
            "context": call_context.model_dump(by_alias=True, exclude_none=True),
        }
        settings = context.settings
        if settings and settings.voice_id:
            arguments["voiceId"] = settings.voice_id
        if settings and settings.test_mode_enabled and settings.test_mode_number:
            arguments["testNumber"] = settings.test_mode_number

        body = {
            "jsonrpc": "2.0",
            "id": uuid.uuid4().hex,
            "method": "tools/call",
            "params": {"name": TOOL_NAME, "arguments": arguments},
        }

        logger.info(
            f"[Tools] placing call for issue {context.issue_id} "
            f"to {call_context.contact.name}"
        )
        try:
            async with httpx.AsyncClient(transport=transport) as client:
                response = await client.post(
                    endpoint,
                    json=body,
                    headers={"Authorization": f"Bearer {context.auth_token}"},
                    timeout=30.0,
                )
        except httpx.HTTPError as e:
            raise ToolExecutionError(TOOL_NAME, f"Call service unreachable: {e}")

        if response.status_code >= 400:
            raise ToolExecutionError(
                TOOL_NAME,
                f"Call service returned {response.status_code}: {response.text[:200]}",
            )
        return _unwrap_result(response.json())

    return ToolDefinition(
        name=TOOL_NAME,
        description=(
            "Place an outbound phone call on the user's behalf. Only call this once "
            "you have the contact's name and number, a clear objective and the "
            "details the representative will ask for. Returns a call id and status."
        ),
        parameters={
            "type": "object",
            "properties": {"context": CALL_CONTEXT_SCHEMA},
            "required": ["context"],
        },
        executor=start_call_executor,
        category=ToolCategory.CALL,
    )
