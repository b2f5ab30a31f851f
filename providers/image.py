"""Featured-image generation endpoint."""

from __future__ import annotations

import logging
from typing import Optional

from core import ErrorKind, ProviderResult

from .base import BaseAdapter, Endpoint
from .requests import ImageRequest


logger = logging.getLogger(__name__)


class ImageAdapter(BaseAdapter):
    """POSTs a prompt to the configured image service; expects ``{"url", "alt"?}``."""

    provider = "image-service"

    def __init__(self, url: Optional[str] = None, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.url = url
        self.api_key = api_key

    async def generate_image(
        self,
        request: ImageRequest,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        if not self.url:
            return self._missing_credential(Endpoint.GENERATE_IMAGE, "IMAGE_SERVICE_URL")
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        result = await self._request(
            Endpoint.GENERATE_IMAGE,
            "POST",
            self.url,
            deadline=deadline,
            idempotency_token=idempotency_token,
            headers=headers,
            json_body={"prompt": request.prompt, "keyword": request.keyword, "slug": request.slug},
        )
        if not result.ok:
            return result
        data = result.payload if isinstance(result.payload, dict) else {}
        url = str(data.get("url") or data.get("imageUrl") or data.get("image_url") or "").strip()
        if not url:
            return self._failure(Endpoint.GENERATE_IMAGE, ErrorKind.SCHEMA, "image response has no url")
        payload = {"url": url, "alt": str(data.get("alt") or request.keyword), "source": self.provider}
        return ProviderResult(ok=True, payload=payload, metadata=result.metadata)
