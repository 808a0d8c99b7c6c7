"""
DialDesk LLM Client - streaming model access via litellm

Usage:
    from dialdesk.llm import LiteLLMClient, LLMConfig

    client = LiteLLMClient(LLMConfig(model="gpt-4o-mini"), provider_name="openai")
    async for chunk in client.stream_completion(messages=[...]):
        print(chunk.content)
"""

from .base import BaseLLMClient, LLMConfig, StreamChunk
from .litellm_client import LiteLLMClient, ToolCallAccumulator, litellm_model_name

__all__ = [
    "BaseLLMClient",
    "LLMConfig",
    "StreamChunk",
    "LiteLLMClient",
    "ToolCallAccumulator",
    "litellm_model_name",
]
