"""HTTP surface for the article workflow: process, status, health and artifacts."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, field_validator

from core import make_slug
from utils.exceptions import ArtifactNotFoundError, PathEscapeError

from .runtime import Runtime, get_runtime


logger = logging.getLogger(__name__)

SERVICE_NAME = "article-pipeline"


class ProcessRequest(BaseModel):
    keyword: Optional[str] = Field(default=None, description="Search term to process")
    force: bool = Field(default=False)

    @field_validator("keyword")
    @classmethod
    def _strip_keyword(cls, value: Optional[str]) -> Optional[str]:
        return str(value or "").strip() or None


class ContentRequest(BaseModel):
    content: Any
    metadata: Dict[str, Any] = Field(default_factory=dict)


def create_app(runtime_factory: Callable[[], Runtime] = get_runtime) -> FastAPI:
    app = FastAPI(title="Article Pipeline", version="1.0.0")

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }

    @app.post("/process")
    async def process(req: ProcessRequest) -> Dict[str, Any]:
        if not req.keyword or not make_slug(req.keyword):
            raise HTTPException(status_code=400, detail="keyword is required")
        runtime = runtime_factory()
        run = await runtime.engine.run_term(req.keyword, force=req.force)
        return {"success": run.state == "completed", "data": run.to_document()}

    @app.get("/status/{slug}")
    async def status(slug: str) -> Dict[str, Any]:
        runtime = runtime_factory()
        run = await runtime.engine.status(make_slug(slug))
        if run is None:
            raise HTTPException(status_code=404, detail="unknown slug")
        return run.to_document()

    @app.get("/content/{path:path}")
    async def get_content(path: str) -> Dict[str, Any]:
        runtime = runtime_factory()
        try:
            artifact = await runtime.store.get(path)
        except PathEscapeError as exc:
            raise HTTPException(status_code=400, detail=exc.message) from exc
        except ArtifactNotFoundError as exc:
            raise HTTPException(status_code=404, detail="artifact not found") from exc
        return artifact.to_dict()

    @app.post("/content/{path:path}")
    async def put_content(path: str, req: ContentRequest) -> Dict[str, Any]:
        runtime = runtime_factory()
        try:
            sidecar = await runtime.store.put(path, req.content, req.metadata)
        except PathEscapeError as exc:
            raise HTTPException(status_code=400, detail=exc.message) from exc
        logger.info("content_stored path=%s", sidecar.get("path"))
        return {"success": True, "data": sidecar}

    return app


app = create_app()
