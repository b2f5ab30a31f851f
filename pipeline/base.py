"""Stage contract shared by every workflow component."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from core import ErrorKind, ProviderResult, Stage, SystemClock, WorkflowRun
from storage import ArtifactStore, StoredArtifact
from utils.exceptions import FailureKind, StageError


logger = logging.getLogger(__name__)


def artifact_path(slug: str, *parts: str) -> str:
    return "/".join([slug, *parts])


RESEARCH_NAMES = ("keyword", "related", "serp", "paa", "expansion")


def research_path(slug: str, name: str) -> str:
    return artifact_path(slug, "research", f"{name}.json")


def plan_path(slug: str) -> str:
    return artifact_path(slug, "analysis", "plan.json")


def blurb_path(slug: str) -> str:
    return artifact_path(slug, "analysis", "valuation-blurb.txt")


def valuation_path(slug: str) -> str:
    return artifact_path(slug, "analysis", "valuation.json")


def enhanced_path(slug: str) -> str:
    return artifact_path(slug, "enhanced.json")


def optimized_path(slug: str) -> str:
    return artifact_path(slug, "optimized.json")


def article_path(slug: str) -> str:
    return artifact_path(slug, "article.md")


def run_path(slug: str) -> str:
    return artifact_path(slug, "run.json")


_KIND_MAP = {
    ErrorKind.AUTH_MISSING: FailureKind.CONFIG,
    ErrorKind.AUTH_REJECTED: FailureKind.CONFIG,
    ErrorKind.SCHEMA: FailureKind.VALIDATION,
    ErrorKind.UPSTREAM_4XX: FailureKind.VALIDATION,
}


def stage_error_from_result(stage: Stage, endpoint: str, result: ProviderResult) -> StageError:
    """Translate a terminal provider ``Err`` into the stage-visible taxonomy."""
    kind = _KIND_MAP.get(result.kind, FailureKind.UPSTREAM_UNAVAILABLE)
    return StageError(
        kind,
        f"{endpoint} failed: {result.kind.value if result.kind else 'error'}: {result.detail}",
        stage=stage.value,
        code=result.kind.value if result.kind else None,
        endpoint=endpoint,
        attempts=result.metadata.get("attempts"),
    )


@dataclass
class StageContext:
    """Capabilities and inputs handed to a stage for one execution."""

    run: WorkflowRun
    store: ArtifactStore
    gateway: Any
    settings: Any
    clock: SystemClock
    deadline: Optional[float] = None
    force: bool = False

    @property
    def slug(self) -> str:
        return self.run.term.slug

    @property
    def term(self) -> str:
        return self.run.term.raw

    @property
    def development(self) -> bool:
        return self.settings.workflow.development

    def now(self) -> datetime:
        return self.clock.now()


def provenance_of(result: ProviderResult) -> str:
    if result.is_mock:
        return "mock"
    return str(result.metadata.get("provider") or "unknown")


class BaseStage(ABC):
    """
    One node of the workflow DAG.

    ``execute`` writes the stage's artifacts and returns attachments (artifact
    paths plus derived metadata) for the run's status map. Failures are
    raised as ``StageError``.
    """

    stage: Stage

    @abstractmethod
    async def execute(self, ctx: StageContext) -> Dict[str, Any]:
        pass

    def _metadata(self, ctx: StageContext, artifact_type: str, **extra: Any) -> Dict[str, Any]:
        metadata = {
            "term": ctx.term,
            "slug": ctx.slug,
            "stage": self.stage.value,
            "type": artifact_type,
        }
        metadata.update({key: value for key, value in extra.items() if value is not None})
        return metadata

    async def _put(self, ctx: StageContext, path: str, payload: Any, artifact_type: str, **extra: Any) -> str:
        await ctx.store.put(path, payload, self._metadata(ctx, artifact_type, **extra))
        return path

    async def _require(self, ctx: StageContext, path: str) -> StoredArtifact:
        artifact = await ctx.store.try_get(path)
        if artifact is None:
            raise StageError(
                FailureKind.INTERNAL,
                f"required artifact is missing: {path}",
                stage=self.stage.value,
                code="missing_input",
            )
        return artifact

    def _check(self, result: ProviderResult, endpoint: str) -> ProviderResult:
        if not result.ok:
            raise stage_error_from_result(self.stage, endpoint, result)
        return result
