"""Shared runtime (settings, store, gateway, engine) for web and CLI entrypoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from config import Settings, get_settings
from core import SystemClock
from orchestrator import WorkflowEngine
from pipeline import article_path, optimized_path
from providers import Endpoint, ProviderGateway, PublishRequest, build_gateway
from storage import ArtifactStore, get_artifact_store
from utils.exceptions import ArtifactNotFoundError, FailureKind, StageError


logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    store: ArtifactStore
    gateway: ProviderGateway
    engine: WorkflowEngine

    async def publish(self, slug: str, *, status: str = "draft") -> Dict[str, Any]:
        """Post a rendered article to the CMS; never mocked."""
        article = await self.store.try_get(article_path(slug))
        if article is None:
            raise ArtifactNotFoundError(article_path(slug))
        optimized = await self.store.try_get(optimized_path(slug))
        meta = optimized.payload if optimized is not None else {}
        request = PublishRequest(
            title=str(meta.get("title") or slug),
            slug=slug,
            content=str(article.payload),
            excerpt=str(meta.get("meta_description") or ""),
            status=status,
        )
        result = await self.gateway.call(Endpoint.CMS_PUBLISH, request, idempotency_token=slug)
        if not result.ok:
            raise StageError(
                FailureKind.CONFIG if result.kind and result.kind.value.startswith("auth_") else FailureKind.UPSTREAM_UNAVAILABLE,
                f"publish failed: {result.kind.value if result.kind else 'error'}: {result.detail}",
                code=result.kind.value if result.kind else None,
            )
        logger.info("article_published slug=%s post=%s", slug, result.payload.get("id"))
        return dict(result.payload)

    async def aclose(self) -> None:
        await self.gateway.aclose()


def build_runtime(
    settings: Optional[Settings] = None,
    *,
    store: Optional[ArtifactStore] = None,
    gateway: Optional[ProviderGateway] = None,
    clock: Optional[SystemClock] = None,
) -> Runtime:
    settings = settings or get_settings()
    clock = clock or SystemClock()
    store = store or get_artifact_store(settings.storage, clock=clock)
    gateway = gateway or build_gateway(settings, clock=clock)
    engine = WorkflowEngine(store, gateway, settings, clock=clock)
    return Runtime(settings=settings, store=store, gateway=gateway, engine=engine)


_RUNTIME: Optional[Runtime] = None


def get_runtime() -> Runtime:
    global _RUNTIME
    if _RUNTIME is None:
        _RUNTIME = build_runtime()
    return _RUNTIME


def set_runtime(runtime: Optional[Runtime]) -> None:
    global _RUNTIME
    _RUNTIME = runtime
