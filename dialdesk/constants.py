"""
DialDesk default policy constants.

Every value here is only a default: the matching config section
(orchestrator / circuit_breaker / call_rate_limit / streaming / tools)
overrides it at startup.
"""

# Orchestrator
DEFAULT_MAX_HOPS = 4
DEFAULT_MAX_TOOL_ROUNDS = 5
DEFAULT_LLM_MAX_RETRIES = 2
DEFAULT_LLM_RETRY_BASE_DELAY = 0.5

# Tools
DEFAULT_TOOL_TIMEOUT_SECONDS = 30.0
DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_BREAKER_COOLDOWN_SECONDS = 60.0
DEFAULT_CALL_COOLDOWN_SECONDS = 60.0

# Streaming (~60 Hz flush)
DEFAULT_FLUSH_INTERVAL_SECONDS = 0.016
DEFAULT_CHANNEL_SIZE = 256

# Context assembly
MAX_CONTEXT_VALUE_LENGTH = 100
PROMPT_CACHE_SIZE = 100

# Wire protocol
STREAM_SENTINEL = "[DONE]"

# Argument keys that must never reach the client or the logs
SECRET_ARG_KEYS = frozenset({"authToken", "auth_token", "api_key", "apiKey", "token"})
