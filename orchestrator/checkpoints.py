"""Run checkpoints persisted as ``<slug>/run.json``."""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import ValidationError

from core import WorkflowRun
from pipeline.base import run_path
from storage import ArtifactStore


logger = logging.getLogger(__name__)

RUN_FILE = "run.json"


async def load_run(store: ArtifactStore, slug: str) -> Optional[WorkflowRun]:
    artifact = await store.try_get(run_path(slug))
    if artifact is None:
        return None
    try:
        return WorkflowRun.model_validate(artifact.payload)
    except ValidationError as exc:
        logger.warning("checkpoint_unreadable slug=%s error=%s", slug, exc.error_count())
        return None


async def save_run(store: ArtifactStore, run: WorkflowRun) -> None:
    await store.put(
        run_path(run.slug),
        run.to_document(),
        {
            "term": run.term.raw,
            "slug": run.slug,
            "type": "workflow_run",
            "workflow_id": run.workflow_id,
            "time_fields": ["created_at", "updated_at", "stages.*.started_at", "stages.*.completed_at"],
        },
    )


async def checkpointed_slugs(store: ArtifactStore) -> List[str]:
    slugs = []
    for path in await store.list(""):
        parts = path.split("/")
        if len(parts) == 2 and parts[1] == RUN_FILE:
            slugs.append(parts[0])
    return sorted(slugs)
