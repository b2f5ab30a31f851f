"""
Perplexity LLM
Search-grounded completions over Perplexity's OpenAI-compatible endpoint.
"""
from typing import List, Optional, Any
import logging

from .base import Message
from .openai_llm import OpenAILLM


logger = logging.getLogger(__name__)


class PerplexityLLM(OpenAILLM):
    """
    Perplexity LLM

    Uses the OpenAI SDK against ``https://api.perplexity.ai``.
    Supported models: sonar (default), sonar-pro.
    """

    DEFAULT_BASE_URL = "https://api.perplexity.ai"

    def __init__(
        self,
        model: str = "sonar",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        timeout: float = 60.0,
        http_client: Any = None,
        **kwargs,
    ):
        super().__init__(
            model=model,
            api_key=api_key,
            base_url=base_url or self.DEFAULT_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            http_client=http_client,
            **kwargs,
        )

    @property
    def provider(self) -> str:
        return "perplexity"

    def _request_params(self, messages: List[Message], **kwargs) -> dict:
        params = super()._request_params(messages, **{k: v for k, v in kwargs.items() if k != "json_mode"})
        params["top_p"] = 0.9
        params["frequency_penalty"] = 1
        return params