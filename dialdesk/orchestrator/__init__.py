"""DialDesk Orchestrator - multi-agent run state machine"""

from .models import (
    HandoffRecord,
    OrchestratorConfig,
    RunState,
    RunStatus,
    ToolCallRecord,
)
from .orchestrator import Orchestrator

__all__ = [
    "Orchestrator",
    "OrchestratorConfig",
    "RunState",
    "RunStatus",
    "HandoffRecord",
    "ToolCallRecord",
]
