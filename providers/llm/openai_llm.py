"""
OpenAI LLM
Chat completions through the official async SDK.
"""
from typing import List, Optional, Any
import logging

from .base import BaseLLM, Message, LLMResponse


logger = logging.getLogger(__name__)


class OpenAILLM(BaseLLM):
    """
    OpenAI LLM

    Supported models include gpt-4o (default for analysis) and gpt-4o-mini.
    ``base_url`` allows OpenAI-compatible endpoints.
    """

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout: float = 60.0,
        http_client: Any = None,
        **kwargs,
    ):
        super().__init__(model, api_key, temperature, max_tokens, timeout, http_client, **kwargs)
        self.base_url = base_url

    @property
    def provider(self) -> str:
        return "openai"

    def _get_async_client(self):
        if self._async_client is None:
            from openai import AsyncOpenAI
            self._async_client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
                http_client=self.http_client,
            )
        return self._async_client

    def _request_params(self, messages: List[Message], **kwargs) -> dict:
        params = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": kwargs.get("temperature", self.temperature),
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
        }
        if kwargs.get("timeout") is not None:
            params["timeout"] = kwargs["timeout"]
        if kwargs.get("json_mode"):
            params["response_format"] = {"type": "json_object"}
        return params

    async def acomplete(self, messages: List[Message], **kwargs) -> LLMResponse:
        client = self._get_async_client()
        response = await client.chat.completions.create(**self._request_params(messages, **kwargs))

        choice = response.choices[0]
        usage = response.usage
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage={
                "prompt_tokens": usage.prompt_tokens if usage else 0,
                "completion_tokens": usage.completion_tokens if usage else 0,
                "total_tokens": usage.total_tokens if usage else 0,
            },
            finish_reason=choice.finish_reason,
            raw_response=response,
        )
