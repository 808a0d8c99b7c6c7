"""
DialDesk Tool Registry - name -> ToolDefinition lookup

One registry is built at startup and injected into the ToolExecutor.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .models import ToolDefinition

logger = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(self, tools: Iterable[ToolDefinition] = ()):
        self._tools: Dict[str, ToolDefinition] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            logger.warning(f"[Tools] replacing registered tool '{tool.name}'")
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def get_tools(self, names: Iterable[str]) -> List[ToolDefinition]:
        """Resolve names to definitions, skipping unregistered ones."""
        return [self._tools[n] for n in names if n in self._tools]

    def get_tools_schema(self, names: Iterable[str]) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in self.get_tools(names)
        ]

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
