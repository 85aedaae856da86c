"""Text generation adapter layer."""

from cadence.llm.anthropic_provider import AnthropicProvider
from cadence.llm.base import LLMProvider

__all__ = ["AnthropicProvider", "LLMProvider"]
