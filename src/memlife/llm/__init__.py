"""LLM provider module."""

from memlife.llm.provider import LLMProvider, LLMConfig, LLMResponse

__all__ = ["LLMProvider", "LLMConfig", "LLMResponse"]
