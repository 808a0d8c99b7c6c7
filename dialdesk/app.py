"""
DialDesk Application - single entry point for the orchestration core.

Usage:
    from dialdesk import DialDesk

    app = DialDesk("config.yaml")

    frames = await app.stream_sse(
        [{"role": "user", "content": "My claim was denied"}],
        issue_id="issue-1",
    )
    async for frame in frames:
        ...
"""

import logging
import os
import re
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Union

from .agents.prompts import PromptBuilder
from .agents.registry import AGENT_REGISTRY, AgentIdentity, get_directive
from .agents.routing import KeywordRouter
from .context import ContextAssembler
from .message import normalize_messages
from .orchestrator import Orchestrator, OrchestratorConfig
from .protocols import IssueStatus, IssueStore, LLMClientProtocol, TranscriptEntry
from .streaming.engine import StreamingConfig, StreamPipeline
from .streaming.models import OrchestrationEvent
from .tools.circuit_breaker import CircuitBreaker
from .tools.executor import ToolExecutor
from .tools.rate_limit import CallRateLimiter
from .tools.registry import ToolRegistry
from .constants import (
    DEFAULT_BREAKER_COOLDOWN_SECONDS,
    DEFAULT_CALL_COOLDOWN_SECONDS,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_TOOL_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


def _load_config(path: str) -> dict:
    """Read YAML config file with ${VAR} environment variable substitution."""
    import yaml

    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()

    def _replace_env(match):
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ValueError(
                f"Environment variable '{var_name}' not set "
                f"(referenced in config file '{path}')"
            )
        return value

    resolved = re.sub(r"\$\{(\w+)\}", _replace_env, raw)
    return yaml.safe_load(resolved) or {}


def build_tool_registry(tools_cfg: Dict[str, Any]) -> ToolRegistry:
    """Register the tools that have configuration."""
    from .tools.search import build_search_tool
    from .tools.start_call import build_start_call_tool

    registry = ToolRegistry()
    search_cfg = tools_cfg.get("search")
    if search_cfg:
        kwargs = {"api_key": search_cfg.get("api_key"), "limit": search_cfg.get("limit", 5)}
        if search_cfg.get("base_url"):
            kwargs["base_url"] = search_cfg["base_url"]
        registry.register(build_search_tool(**kwargs))
    call_cfg = tools_cfg.get("start_call")
    if call_cfg and call_cfg.get("endpoint"):
        registry.register(build_start_call_tool(call_cfg["endpoint"]))
    return registry


class DialDesk:
    """
    DialDesk application entry point.

    Sync constructor reads and validates config; async initialization is
    deferred to the first stream. Collaborators (model client, store) can be
    injected, which is how tests and embedding applications swap them.

    Args:
        config: Path to a YAML configuration file, or an already-loaded dict.
        llm_client: Optional client overriding the configured LiteLLM client.
        store: Optional IssueStore overriding the configured database.
        tools: Optional ToolRegistry overriding the configured tools.
    """

    def __init__(
        self,
        config: Union[str, Dict[str, Any]],
        llm_client: Optional[LLMClientProtocol] = None,
        store: Optional[IssueStore] = None,
        tools: Optional[ToolRegistry] = None,
    ):
        self._config = _load_config(config) if isinstance(config, str) else dict(config)
        self._initialized = False

        llm_cfg = self._config.get("llm") or {}
        if llm_client is None and (not llm_cfg.get("provider") or not llm_cfg.get("model")):
            raise ValueError("Missing required config fields: 'llm.provider' and 'llm.model'")

        self._llm_client = llm_client
        self._store = store
        self._tools = tools
        self._database = None
        self._orchestrator: Optional[Orchestrator] = None
        self._assembler: Optional[ContextAssembler] = None
        self._pipeline: Optional[StreamPipeline] = None
        self._breaker: Optional[CircuitBreaker] = None

    @property
    def config(self) -> dict:
        return self._config

    @property
    def store(self) -> Optional[IssueStore]:
        return self._store

    @property
    def breaker(self) -> Optional[CircuitBreaker]:
        return self._breaker

    async def _ensure_initialized(self) -> None:
        """Lazy initialization - runs once on the first stream."""
        if self._initialized:
            return

        cfg = self._config

        # 1. LLM client
        if self._llm_client is None:
            from .llm.base import LLMConfig
            from .llm.litellm_client import LiteLLMClient

            llm_cfg = cfg["llm"]
            provider = llm_cfg["provider"]
            self._llm_client = LiteLLMClient(
                config=LLMConfig.from_dict(llm_cfg), provider_name=provider
            )
            logger.info(f"LLM client: provider={provider}, model={llm_cfg['model']}")

        # 2. Store
        if self._store is None:
            if cfg.get("database"):
                from .db import Database, PostgresIssueStore

                self._database = Database(dsn=cfg["database"])
                await self._database.initialize()
                store = PostgresIssueStore(self._database)
                if cfg.get("ensure_tables"):
                    await store.ensure_tables()
                self._store = store
                logger.info("Issue store: postgres")
            else:
                from .db import MemoryIssueStore

                self._store = MemoryIssueStore()
                logger.warning("No 'database' configured; using in-memory issue store")

        # 3. Tool gateway
        tools_cfg = cfg.get("tools") or {}
        breaker_cfg = cfg.get("circuit_breaker") or {}
        rate_cfg = cfg.get("call_rate_limit") or {}
        if self._tools is None:
            self._tools = build_tool_registry(tools_cfg)
        self._breaker = CircuitBreaker(
            failure_threshold=breaker_cfg.get("failure_threshold", DEFAULT_FAILURE_THRESHOLD),
            cooldown_seconds=breaker_cfg.get("cooldown_seconds", DEFAULT_BREAKER_COOLDOWN_SECONDS),
        )
        executor = ToolExecutor(
            self._tools,
            breaker=self._breaker,
            rate_limiter=CallRateLimiter(
                cooldown_seconds=rate_cfg.get("cooldown_seconds", DEFAULT_CALL_COOLDOWN_SECONDS)
            ),
            timeout=tools_cfg.get("timeout_seconds", DEFAULT_TOOL_TIMEOUT_SECONDS),
        )
        logger.info(f"Tools: {', '.join(self._tools.names) or 'none'}")

        # 4. Orchestrator + streaming
        self._orchestrator = Orchestrator(
            llm_client=self._llm_client,
            executor=executor,
            store=self._store,
            prompt_builder=PromptBuilder(get_directive, degraded_tools=self._breaker.degraded_tools),
            config=OrchestratorConfig.from_dict(cfg.get("orchestrator") or {}),
            keyword_router=KeywordRouter(),
        )
        self._assembler = ContextAssembler(self._store)
        self._pipeline = StreamPipeline(StreamingConfig.from_dict(cfg.get("streaming") or {}))

        self._initialized = True
        logger.info("DialDesk initialized")

    async def shutdown(self) -> None:
        """Shut down the application, closing all connections."""
        if not self._initialized:
            return
        try:
            close = getattr(self._llm_client, "close", None)
            if close is not None:
                await close()
            if self._database:
                await self._database.close()
        except Exception as e:
            logger.warning(f"Error during shutdown: {e}")
        finally:
            self._initialized = False
            self._database = None
            self._orchestrator = None
            self._assembler = None
            self._pipeline = None
            logger.info("DialDesk shut down")

    # ── Streaming ──

    async def stream(
        self,
        messages: Iterable[Any],
        issue_id: Optional[str] = None,
        user_id: Optional[str] = None,
        request_context: Optional[Dict[str, Any]] = None,
        shared_secrets: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[OrchestrationEvent]:
        """
        Validate a chat request and return the run's event iterator.

        Raises NoValidMessages before any run starts, so callers can reject
        the request before opening a stream.
        """
        normalized = normalize_messages(messages)
        await self._ensure_initialized()
        assembled = await self._assembler.assemble(
            issue_id=issue_id,
            user_id=user_id,
            request_context=request_context,
            secret_overrides=shared_secrets,
        )
        return self._orchestrator.run(normalized, assembled)

    async def stream_sse(self, messages: Iterable[Any], **kwargs) -> AsyncIterator[str]:
        """Like stream(), but returns paced server-sent-event frames."""
        events = await self.stream(messages, **kwargs)
        return self._pipeline.relay(events)

    # ── External state ──

    async def apply_external_update(
        self,
        issue_id: str,
        agent: Optional[str] = None,
        transcript: Iterable[TranscriptEntry] = (),
        status: Optional[IssueStatus] = None,
    ) -> None:
        """
        Force an issue's agent / transcript / status from outside a run.

        Raises ValueError for an unknown agent. Store errors propagate.
        """
        identity = None
        if agent is not None:
            identity = AgentIdentity.parse(agent)
            if identity is None:
                raise ValueError(f"Unknown agent '{agent}'")

        await self._ensure_initialized()
        entries = list(transcript)
        if identity is not None:
            await self._store.set_current_agent(issue_id, identity.value)
        if entries:
            await self._store.append_transcript(issue_id, entries)
        if status is not None:
            await self._store.update_issue_status(issue_id, status)
        logger.info(
            f"[Store] external update issue={issue_id} agent={identity.value if identity else None} "
            f"entries={len(entries)} status={status.value if status else None}"
        )

    def list_agents(self) -> List[Dict[str, Any]]:
        return [spec.to_dict() for spec in AGENT_REGISTRY.values()]
