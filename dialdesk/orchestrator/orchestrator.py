"""
DialDesk Orchestrator - the per-run agent state machine

One run handles one streaming chat request. States are the agent identities
plus the terminal Done / Failed states:

    1. The run starts at the issue's persisted agent, or router.
    2. The keyword router may pre-route before the first model call.
    3. The active agent runs a turn. Text is forwarded as text-delta events;
       tool requests go through the ToolExecutor and are fed back as tool
       messages (bounded by max_tool_rounds); a handoff directive ends the turn.
    4. A valid handoff emits agent-switch, persists the new agent, and the
       new agent runs next. Handoffs per run are bounded by max_hops.
    5. A turn that ends without a handoff finishes the run in Done. Model
       failures and routing loops finish it in Failed.

Every run ends with exactly one `done` or `error` event.

Example:
    orchestrator = Orchestrator(llm_client=llm, executor=executor, store=store)
    async for event in orchestrator.run(messages, assembled):
        ...
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Set

from ..agents.agent import HandoffDirective, LLMAgent, TextFragment, ToolRequest
from ..agents.prompts import PromptBuilder
from ..agents.registry import (
    HANDOFF_TOOL_NAME,
    AgentIdentity,
    AgentSpec,
    get_directive,
    get_spec,
    handoff_tool_schema,
    is_handoff_allowed,
)
from ..agents.routing import KeywordRouter
from ..context import AssembledContext
from ..errors import OrchestrationError, RoutingLoopExceeded
from ..message import Message, latest_user_message
from ..protocols import IssueStatus, IssueStore, LLMClientProtocol, TranscriptEntry
from ..streaming.models import (
    OrchestrationEvent,
    create_agent_switch,
    create_done,
    create_error,
    create_text_delta,
    create_tool_call,
    create_tool_result,
)
from ..tools.executor import ToolExecutor, redact_arguments
from ..tools.models import ToolCall, ToolExecutionContext, ToolResult
from .models import (
    HandoffRecord,
    OrchestratorConfig,
    RunState,
    RunStatus,
    ToolCallRecord,
)

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Something went wrong while handling your request."


@dataclass
class _TurnOutcome:
    handoff_to: Optional[AgentIdentity] = None
    reason: Optional[str] = None


class Orchestrator:
    """
    Runs the agent state machine for one request at a time.

    The Orchestrator itself is stateless between runs; everything a run
    mutates lives in its RunState. The executor (and its circuit breaker and
    rate limiter) is shared across runs.
    """

    def __init__(
        self,
        llm_client: LLMClientProtocol,
        executor: ToolExecutor,
        store: Optional[IssueStore] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        config: Optional[OrchestratorConfig] = None,
        keyword_router: Optional[KeywordRouter] = None,
    ):
        self.llm_client = llm_client
        self.executor = executor
        self.store = store
        self.config = config or OrchestratorConfig()
        self.prompt_builder = prompt_builder or PromptBuilder(
            get_directive, degraded_tools=executor.breaker.degraded_tools
        )
        self.keyword_router = keyword_router or KeywordRouter()

    # ==========================================================================
    # RUN
    # ==========================================================================

    async def run(
        self,
        messages: Sequence[Message],
        assembled: AssembledContext,
    ):
        """
        Execute one run and yield OrchestrationEvents in production order.

        `messages` must already be normalized. The last event is always a
        single `done` or `error`.
        """
        state = RunState(
            active_agent=self._initial_agent(assembled),
            history=[m.to_llm_dict() for m in messages],
            issue_id=assembled.issue_id,
        )
        pending: Set["asyncio.Task[None]"] = set()
        sequence = 0

        def stamp(event: OrchestrationEvent) -> OrchestrationEvent:
            nonlocal sequence
            sequence += 1
            event.sequence = sequence
            return event

        logger.info(
            f"[Orchestrator] run start issue={state.issue_id} agent={state.active_agent.value} "
            f"messages={len(messages)}"
        )

        latest = latest_user_message(list(messages))
        if latest is not None:
            self._write(pending, state, [TranscriptEntry(role="user", content=latest.content)])

        try:
            if self.config.keyword_routing and latest is not None:
                target, reason = self._keyword_target(state, latest.content)
                if target is not None:
                    yield stamp(self._switch_agent(state, target, reason, source="keyword"))
                    await self._persist_agent(state)

            while True:
                outcome = _TurnOutcome()
                async for event in self._agent_turn(state, assembled, outcome, pending):
                    yield stamp(event)
                if outcome.handoff_to is None:
                    break
                yield stamp(self._switch_agent(state, outcome.handoff_to, outcome.reason))
                await self._persist_agent(state)

            state.status = RunStatus.DONE
            final = create_done(agent=state.active_agent.value)

        except OrchestrationError as e:
            logger.warning(f"[Orchestrator] run failed ({e.reason}): {e}")
            state.status = RunStatus.FAILED
            state.failure_reason = e.reason
            final = create_error(str(e), reason=e.reason, agent=state.active_agent.value)

        except Exception as e:
            logger.error(f"[Orchestrator] run failed unexpectedly: {e}", exc_info=True)
            state.status = RunStatus.FAILED
            state.failure_reason = OrchestrationError.reason
            final = create_error(
                INTERNAL_ERROR_MESSAGE,
                reason=OrchestrationError.reason,
                agent=state.active_agent.value,
            )

        await self._drain(pending)
        logger.info(
            f"[Orchestrator] run end issue={state.issue_id} status={state.status.value} "
            f"agent={state.active_agent.value} hops={state.hops} tools={len(state.tool_calls)}"
        )
        yield stamp(final)

    # ==========================================================================
    # AGENT TURN
    # ==========================================================================

    async def _agent_turn(
        self,
        state: RunState,
        assembled: AssembledContext,
        outcome: _TurnOutcome,
        pending: Set["asyncio.Task[None]"],
    ):
        """
        Run the active agent until it answers or asks for a handoff.

        Tool requests are executed one at a time so that each tool-call event
        is directly followed by its tool-result event.
        """
        spec = get_spec(state.active_agent)
        agent = LLMAgent(
            spec,
            self.llm_client,
            max_retries=self.config.llm_max_retries,
            retry_base_delay=self.config.llm_retry_base_delay,
        )
        tool_context = ToolExecutionContext.from_assembled(assembled)
        name = spec.identity.value
        rounds = 0

        while True:
            tools_enabled = rounds < self.config.max_tool_rounds
            system_prompt = self.prompt_builder.build(
                spec.identity, assembled.request_context, spec.tools
            )
            schemas = self._tool_schemas(spec) if tools_enabled else None
            if not tools_enabled:
                logger.info(f"[Orchestrator] {name} reached {rounds} tool rounds, final call without tools")

            text_parts: List[str] = []
            requests: List[ToolCall] = []
            handoff: Optional[HandoffDirective] = None

            async for fragment in agent.run(system_prompt, state.history, schemas):
                if isinstance(fragment, TextFragment):
                    text_parts.append(fragment.text)
                    yield create_text_delta(fragment.text, agent=name)
                elif isinstance(fragment, HandoffDirective):
                    if handoff is None:
                        handoff = fragment
                    else:
                        logger.warning(
                            f"[Orchestrator] {name} requested a second handoff "
                            f"({fragment.target}) in one turn; ignored"
                        )
                elif isinstance(fragment, ToolRequest):
                    requests.append(fragment.call)

            text = "".join(text_parts)
            if text:
                self._write(pending, state, [TranscriptEntry(role="assistant", content=text, agent=name)])

            if not tools_enabled and (handoff is not None or requests):
                logger.warning(
                    f"[Orchestrator] {name} requested tools after the round limit; ignored"
                )
                handoff, requests = None, []

            if handoff is not None:
                if requests:
                    logger.warning(
                        f"[Orchestrator] {name} handoff wins over "
                        f"{len(requests)} tool call(s) in the same turn: "
                        f"{', '.join(c.name for c in requests)}"
                    )
                target = AgentIdentity.parse(handoff.target)
                if target is None or not is_handoff_allowed(spec.identity, target):
                    logger.warning(
                        f"[Orchestrator] {name} attempted handoff to "
                        f"'{handoff.target}', not permitted; staying with {name}"
                    )
                    state.history.append(self._assistant_message(
                        text, [ToolCall(id=handoff.call_id, name=HANDOFF_TOOL_NAME,
                                        arguments={"agent": handoff.target})]
                    ))
                    state.history.append(self._tool_message(
                        handoff.call_id,
                        f"Error: handoff to '{handoff.target}' is not permitted. "
                        f"Continue helping the user yourself.",
                    ))
                    rounds += 1
                    continue

                if text:
                    state.history.append({"role": "assistant", "content": text})
                outcome.handoff_to = target
                outcome.reason = handoff.reason
                return

            if requests:
                rounds += 1
                logger.info(
                    f"[Orchestrator] {name} round={rounds} calling: "
                    f"{', '.join(c.name for c in requests)}"
                )
                state.history.append(self._assistant_message(text, requests))
                for call in requests:
                    yield create_tool_call(
                        call.id, call.name, redact_arguments(call.arguments), agent=name
                    )
                    result = await self.executor.execute(call, tool_context, allowed=spec.tools)
                    self._record_tool(state, pending, call, result)
                    yield create_tool_result(
                        call.id,
                        call.name,
                        ok=not result.is_error,
                        data=result.data,
                        error=result.error,
                        agent=name,
                    )
                    state.history.append(self._tool_message(call.id, result.content))
                continue

            if text:
                state.history.append({"role": "assistant", "content": text})
            return

    def _record_tool(
        self,
        state: RunState,
        pending: Set["asyncio.Task[None]"],
        call: ToolCall,
        result: ToolResult,
    ) -> None:
        state.tool_calls.append(ToolCallRecord(
            call_id=call.id,
            name=call.name,
            agent=state.active_agent,
            success=not result.is_error,
            error=result.error,
        ))
        self._write(pending, state, [TranscriptEntry(
            role="tool",
            content=result.content,
            agent=state.active_agent.value,
        )])
        tool = self.executor.registry.get_tool(call.name)
        if tool is not None and tool.places_call and not result.is_error and state.issue_id:
            self._spawn(
                pending,
                self._update_status(state.issue_id, IssueStatus.IN_PROGRESS),
            )

    # ==========================================================================
    # ROUTING
    # ==========================================================================

    @staticmethod
    def _initial_agent(assembled: AssembledContext) -> AgentIdentity:
        if assembled.prior_agent:
            identity = AgentIdentity.parse(assembled.prior_agent)
            if identity is not None:
                return identity
            logger.warning(
                f"[Orchestrator] stored agent '{assembled.prior_agent}' for issue "
                f"{assembled.issue_id} is unknown; starting at router"
            )
        return AgentIdentity.ROUTER

    def _keyword_target(self, state: RunState, text: str):
        decision = self.keyword_router.route(text, state.active_agent)
        logger.debug(f"[Orchestrator] keyword routing: {decision.to_dict()}")
        if decision.agent == state.active_agent:
            return None, None
        if not is_handoff_allowed(state.active_agent, decision.agent):
            logger.info(
                f"[Orchestrator] keyword route {state.active_agent.value} -> "
                f"{decision.agent.value} not permitted; leaving it to the agent"
            )
            return None, None
        return decision.agent, decision.reason.value

    def _switch_agent(
        self,
        state: RunState,
        target: AgentIdentity,
        reason: Optional[str],
        source: str = "agent",
    ) -> OrchestrationEvent:
        if state.hops >= self.config.max_hops:
            raise RoutingLoopExceeded(self.config.max_hops)
        state.hops += 1
        previous = state.active_agent
        state.active_agent = target
        state.handoffs.append(HandoffRecord(previous, target, reason=reason, source=source))
        logger.info(
            f"[Orchestrator] handoff {previous.value} -> {target.value} "
            f"(hop {state.hops}/{self.config.max_hops}, {source}"
            f"{': ' + reason if reason else ''})"
        )
        return create_agent_switch(previous.value, target.value, get_spec(target).display_name)

    def _tool_schemas(self, spec: AgentSpec) -> List[Dict[str, Any]]:
        schemas = self.executor.registry.get_tools_schema(spec.tools)
        if spec.handoffs:
            schemas.append(handoff_tool_schema(spec.identity))
        return schemas

    # ==========================================================================
    # PERSISTENCE
    # ==========================================================================

    async def _persist_agent(self, state: RunState) -> None:
        """Persist the active agent before the next agent starts. Never raises."""
        if self.store is None or not state.issue_id:
            return
        try:
            await asyncio.shield(
                self.store.set_current_agent(state.issue_id, state.active_agent.value)
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                f"[Orchestrator] failed to persist agent {state.active_agent.value} "
                f"for issue {state.issue_id}: {e}"
            )

    def _write(
        self,
        pending: Set["asyncio.Task[None]"],
        state: RunState,
        entries: List[TranscriptEntry],
    ) -> None:
        if self.store is None or not state.issue_id:
            return
        state.transcript_tail = self._spawn(
            pending, self._append_transcript(state.issue_id, entries, state.transcript_tail)
        )

    async def _append_transcript(
        self,
        issue_id: str,
        entries: List[TranscriptEntry],
        previous: Optional["asyncio.Task[None]"],
    ) -> None:
        """Append after the previous append of this run has settled, keeping commit order."""
        if previous is not None:
            await asyncio.wait([previous])
        try:
            await self.store.append_transcript(issue_id, entries)
        except Exception as e:
            logger.warning(f"[Orchestrator] transcript append failed for issue {issue_id}: {e}")

    async def _update_status(self, issue_id: str, status: IssueStatus) -> None:
        if self.store is None:
            return
        try:
            await self.store.update_issue_status(issue_id, status)
        except Exception as e:
            logger.warning(f"[Orchestrator] status update failed for issue {issue_id}: {e}")

    @staticmethod
    def _spawn(pending: Set["asyncio.Task[None]"], coro: Awaitable[None]) -> "asyncio.Task[None]":
        task = asyncio.ensure_future(coro)
        pending.add(task)
        task.add_done_callback(pending.discard)
        return task

    @staticmethod
    async def _drain(pending: Set["asyncio.Task[None]"]) -> None:
        if pending:
            await asyncio.gather(*list(pending), return_exceptions=True)

    # ==========================================================================
    # MESSAGE BUILDING
    # ==========================================================================

    @staticmethod
    def _assistant_message(text: str, tool_calls: List[ToolCall]) -> Dict[str, Any]:
        return {
            "role": "assistant",
            "content": text or None,
            "tool_calls": [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.name,
                        "arguments": json.dumps(tc.arguments, ensure_ascii=False),
                    },
                }
                for tc in tool_calls
            ],
        }

    @staticmethod
    def _tool_message(tool_call_id: str, content: str) -> Dict[str, Any]:
        return {"role": "tool", "tool_call_id": tool_call_id, "content": content}
