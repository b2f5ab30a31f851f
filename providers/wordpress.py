"""WordPress REST publishing (``cms_publish``)."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from core import ErrorKind, ProviderResult

from .base import BaseAdapter, Endpoint
from .requests import PublishRequest


logger = logging.getLogger(__name__)


class WordPressAdapter(BaseAdapter):
    """Creates posts through ``/wp/v2/posts`` with an application password."""

    provider = "wordpress"

    def __init__(
        self,
        api_url: Optional[str] = None,
        username: Optional[str] = None,
        app_password: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.api_url = (api_url or "").rstrip("/")
        self.username = username
        self.app_password = app_password

    async def cms_publish(
        self,
        request: PublishRequest,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        if not (self.api_url and self.username and self.app_password):
            return self._missing_credential(
                Endpoint.CMS_PUBLISH, "WORDPRESS_API_URL / WORDPRESS_USERNAME / WORDPRESS_APP_PASSWORD"
            )
        result = await self._request(
            Endpoint.CMS_PUBLISH,
            "POST",
            f"{self.api_url}/wp/v2/posts",
            deadline=deadline,
            idempotency_token=idempotency_token,
            auth=httpx.BasicAuth(self.username, self.app_password),
            json_body={
                "title": request.title,
                "slug": request.slug,
                "content": request.content,
                "excerpt": request.excerpt,
                "status": request.status,
            },
        )
        if not result.ok:
            return result
        data = result.payload if isinstance(result.payload, dict) else {}
        if "id" not in data:
            return self._failure(Endpoint.CMS_PUBLISH, ErrorKind.SCHEMA, "publish response has no post id")
        payload = {"id": data["id"], "link": str(data.get("link") or ""), "status": str(data.get("status") or request.status)}
        return ProviderResult(ok=True, payload=payload, metadata=result.metadata)
