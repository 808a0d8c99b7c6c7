"""
Web Search Tool - knowledge search via the Firecrawl search API

Returns ranked snippets (title, URL, text) for the agent to cite, e.g.
competitor pricing, a company's support phone number or claim-appeal rules.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ToolExecutionError
from .models import ToolCategory, ToolDefinition, ToolExecutionContext

logger = logging.getLogger(__name__)

TOOL_NAME = "web_search"
DEFAULT_BASE_URL = "https://api.firecrawl.dev/v1"
MAX_RESULTS = 10
SNIPPET_LENGTH = 500


def _snippet(item: Dict[str, Any]) -> str:
    text = item.get("description") or item.get("markdown") or ""
    return " ".join(text.split())[:SNIPPET_LENGTH]


def build_search_tool(
    api_key: Optional[str],
    base_url: str = DEFAULT_BASE_URL,
    limit: int = 5,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ToolDefinition:
    """Create the web_search tool bound to a Firecrawl account."""

    async def web_search_executor(args: dict, context: ToolExecutionContext = None) -> Dict[str, Any]:
        query = (args.get("query") or "").strip()
        if not query:
            raise ToolExecutionError(TOOL_NAME, "No search query provided")
        if not api_key:
            raise ToolExecutionError(TOOL_NAME, "Search is not configured (missing API key)")

        try:
            count = int(args.get("limit") or limit)
        except (TypeError, ValueError):
            count = limit
        count = max(1, min(count, MAX_RESULTS))

        try:
            async with httpx.AsyncClient(transport=transport) as client:
                response = await client.post(
                    f"{base_url.rstrip('/')}/search",
                    json={"query": query, "limit": count},
                    headers={"Authorization": f"Bearer {api_key}"},
                    timeout=30.0,
                )
        except httpx.HTTPError as e:
            raise ToolExecutionError(TOOL_NAME, f"Search request failed: {e}")

        if response.status_code != 200:
            logger.error(f"Firecrawl search error: {response.status_code} - {response.text[:200]}")
            raise ToolExecutionError(TOOL_NAME, f"Search failed with status {response.status_code}")

        payload = response.json()
        if payload.get("success") is False:
            raise ToolExecutionError(TOOL_NAME, payload.get("error") or "Search failed")

        items = payload.get("data") or []
        results = [
            {
                "rank": rank,
                "title": item.get("title") or "No title",
                "url": item.get("url", ""),
                "snippet": _snippet(item),
            }
            for rank, item in enumerate(items[:count], 1)
        ]
        return {"query": query, "results": results}

    return ToolDefinition(
        name=TOOL_NAME,
        description=(
            "Search the web for relevant pages. Returns ranked titles, URLs and "
            "snippets. Use it to find company phone numbers, pricing, policies "
            "and consumer-rights information."
        ),
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query string",
                },
                "limit": {
                    "type": "integer",
                    "description": f"Number of results to return (max {MAX_RESULTS})",
                    "default": limit,
                },
            },
            "required": ["query"],
        },
        executor=web_search_executor,
        category=ToolCategory.SEARCH,
    )
