"""
LLM Factory
Create LLM clients from settings.
"""
from typing import Any, Optional
import logging

from utils.exceptions import ProviderError

from .base import BaseLLM
from .openai_llm import OpenAILLM
from .anthropic_llm import AnthropicLLM
from .perplexity_llm import PerplexityLLM


logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-20241022",
    "perplexity": "sonar",
}


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    settings=None,
    http_client: Any = None,
    **kwargs,
) -> BaseLLM:
    """
    Build an LLM client.

    Args:
        provider: openai, anthropic or perplexity (defaults to the analysis provider)
        model: model name (provider default when empty)
        settings: root ``Settings``; defaults to the process settings
        http_client: optional ``httpx.AsyncClient`` handed to the SDK
        **kwargs: extra parameters (temperature, max_tokens, api_key, ...)

    Example:
        llm = get_llm(provider="anthropic", temperature=0.5)
    """
    if settings is None:
        from config import get_settings
        settings = get_settings()

    llm_settings = settings.llm
    provider = str(provider or llm_settings.analysis_provider).strip().lower()
    model = model or DEFAULT_MODELS.get(provider)

    api_keys = {
        "openai": llm_settings.openai_api_key,
        "anthropic": llm_settings.anthropic_api_key,
        "perplexity": settings.providers.perplexity_api_key,
    }
    api_key = kwargs.pop("api_key", None) or api_keys.get(provider)

    defaults = {
        "temperature": llm_settings.temperature,
        "max_tokens": llm_settings.max_tokens,
    }
    for key, value in defaults.items():
        kwargs.setdefault(key, value)

    if provider == "openai":
        return OpenAILLM(model=model, api_key=api_key, http_client=http_client, **kwargs)
    elif provider == "anthropic":
        return AnthropicLLM(model=model, api_key=api_key, http_client=http_client, **kwargs)
    elif provider == "perplexity":
        kwargs.pop("temperature", None)
        kwargs.pop("max_tokens", None)
        return PerplexityLLM(model=model, api_key=api_key, http_client=http_client, **kwargs)
    else:
        raise ProviderError(f"Unsupported LLM provider: {provider}", {"provider": provider})
