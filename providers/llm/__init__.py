"""
LLM Module
Chat-completion clients for analysis, generation and topic expansion.
"""
from .base import BaseLLM, Message, MessageRole, LLMResponse
from .openai_llm import OpenAILLM
from .anthropic_llm import AnthropicLLM
from .perplexity_llm import PerplexityLLM
from .factory import get_llm, DEFAULT_MODELS

__all__ = [
    "BaseLLM",
    "Message",
    "MessageRole",
    "LLMResponse",
    "OpenAILLM",
    "AnthropicLLM",
    "PerplexityLLM",
    "get_llm",
    "DEFAULT_MODELS",
]
