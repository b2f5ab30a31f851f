"""
Workflow Engine
Drives each term's WorkflowRun through the stage DAG, with checkpoints,
resumption, per-slug locking and bounded batch concurrency.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional

from core import STAGE_ORDER, Stage, StageFailure, StageState, StageStatus, SystemClock, Term, WorkflowRun, make_slug
from pipeline import BaseStage, StageContext, default_stages
from storage import ArtifactStore
from utils.exceptions import ArticleEngineError, FailureKind, StageError, StorageError
from utils.locks import KeyedLocks

from .checkpoints import checkpointed_slugs, load_run, save_run
from .dag import SOFT_STAGES, dependents, next_runnable, reset_interrupted
from .summary import BatchReport, TermResult


logger = logging.getLogger(__name__)

_BATCH_GUARD = threading.Lock()


def summary_path(date: str) -> str:
    return f"logs/{date}/workflow-summary.json"


def stage_for_artifact(path: str) -> Optional[Stage]:
    """Which stage owns an artifact path (``<slug>/...``)."""
    parts = path.split("/")
    if len(parts) < 2:
        return None
    rest = "/".join(parts[1:])
    if rest.startswith("research/"):
        return Stage.RESEARCH
    if rest == "analysis/valuation.json":
        return Stage.VALUATION
    if rest.startswith("analysis/"):
        return Stage.ANALYSIS
    return {
        "enhanced.json": Stage.ENHANCEMENT,
        "optimized.json": Stage.OPTIMIZATION,
        "article.md": Stage.RENDER,
    }.get(rest)


class WorkflowEngine:
    """
    The per-term state machine.

    Every collaborator is injected: the artifact store, the provider gateway,
    settings and a clock. Stage components default to ``default_stages()``.
    """

    def __init__(
        self,
        store: ArtifactStore,
        gateway: Any,
        settings: Any,
        clock: Optional[SystemClock] = None,
        stages: Optional[Mapping[Stage, BaseStage]] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.settings = settings
        self.clock = clock or SystemClock()
        self.stages: Dict[Stage, BaseStage] = dict(stages or default_stages())
        self._slug_locks = KeyedLocks()

    # ---- single-run transitions ----

    def _timeout(self, stage: Stage) -> float:
        workflow = self.settings.workflow
        timeout = workflow.stage_timeout(stage.value)
        if stage == Stage.VALUATION:
            timeout = min(timeout, workflow.valuation_wait_timeout)
        return timeout

    async def _persist(self, run: WorkflowRun) -> None:
        run.updated_at = self.clock.now()
        await save_run(self.store, run)

    def _skip(self, run: WorkflowRun, stages: Iterable[Stage], reason: str) -> None:
        for stage in stages:
            state = run.stages[stage]
            if state.status == StageStatus.PENDING:
                state.status = StageStatus.SKIPPED
                state.skip_reason = reason
                logger.info("stage_skipped slug=%s stage=%s reason=%s", run.slug, stage.value, reason)

    def _fail(self, run: WorkflowRun, stage: Stage, error: StageError) -> None:
        state = run.stages[stage]
        state.status = StageStatus.FAILED
        state.completed_at = self.clock.now()
        state.error = StageFailure(kind=error.kind.value, message=error.message, code=error.code)
        logger.warning(
            "stage_failed slug=%s stage=%s kind=%s code=%s",
            run.slug,
            stage.value,
            error.kind.value,
            error.code or "-",
        )
        self._skip(run, dependents(stage), f"{stage.value}_failed")
        if (error.fatal and stage not in SOFT_STAGES) or self.settings.workflow.stop_on_failure:
            self._skip(run, STAGE_ORDER, "run_stopped")

    async def advance(self, run: WorkflowRun, *, force: bool = False) -> WorkflowRun:
        """Execute the next runnable stage and persist the outcome."""
        if run.is_terminal:
            return run
        stage = next_runnable(run)
        if stage is None:
            self._skip(run, STAGE_ORDER, "blocked")
            await self._persist(run)
            return run

        state = run.stages[stage]
        state.status = StageStatus.IN_PROGRESS
        state.started_at = self.clock.now()
        state.completed_at = None
        state.error = None
        state.skip_reason = None
        state.attempts += 1
        await self._persist(run)
        logger.info("stage_start slug=%s stage=%s attempt=%s", run.slug, stage.value, state.attempts)

        timeout = self._timeout(stage)
        ctx = StageContext(
            run=run,
            store=self.store,
            gateway=self.gateway,
            settings=self.settings,
            clock=self.clock,
            deadline=self.clock.monotonic() + timeout,
            force=force,
        )
        try:
            attachments = await asyncio.wait_for(self.stages[stage].execute(ctx), timeout)
        except asyncio.TimeoutError:
            if stage == Stage.VALUATION:
                state.status = StageStatus.SKIPPED
                state.skip_reason = "timeout"
                state.completed_at = self.clock.now()
                logger.warning("stage_skipped slug=%s stage=%s reason=timeout", run.slug, stage.value)
            else:
                self._fail(
                    run,
                    stage,
                    StageError(FailureKind.CANCELLED, f"stage exceeded {timeout:g}s", stage=stage.value, code="deadline"),
                )
        except StageError as exc:
            self._fail(run, stage, exc)
        except StorageError as exc:
            self._fail(run, stage, StageError(FailureKind.INTERNAL, str(exc), stage=stage.value, code="storage"))
        except Exception as exc:
            logger.exception("stage_crashed slug=%s stage=%s", run.slug, stage.value)
            self._fail(
                run,
                stage,
                StageError(FailureKind.INTERNAL, f"{type(exc).__name__}: {exc}", stage=stage.value, code="unexpected"),
            )
        else:
            state.status = StageStatus.COMPLETED
            state.completed_at = self.clock.now()
            state.attachments = dict(attachments or {})
            logger.info("stage_completed slug=%s stage=%s", run.slug, stage.value)

        await self._persist(run)
        return run

    async def drive(self, run: WorkflowRun, *, force: bool = False) -> WorkflowRun:
        while not run.is_terminal:
            await self.advance(run, force=force)
        logger.info("run_finished slug=%s state=%s workflow_id=%s", run.slug, run.state, run.workflow_id)
        return run

    async def run_term(self, text: str, *, force: bool = False) -> WorkflowRun:
        """
        Process one term to a terminal state.

        A non-terminal checkpoint is resumed; a completed run is returned as
        is unless ``force``; a failed run starts over (cached research is
        still reused by the stages).
        """
        term = Term.from_text(text)
        async with self._slug_locks.hold(term.slug):
            existing = await load_run(self.store, term.slug)
            run: Optional[WorkflowRun] = None
            if existing is not None and not force:
                if not existing.is_terminal:
                    reset = reset_interrupted(existing)
                    logger.info(
                        "run_resumed slug=%s workflow_id=%s reset=%s",
                        term.slug,
                        existing.workflow_id,
                        ",".join(stage.value for stage in reset) or "-",
                    )
                    run = existing
                elif existing.state == "completed":
                    logger.info("run_already_completed slug=%s", term.slug)
                    return existing
            if run is None:
                run = WorkflowRun.start(term, now=self.clock.now())
                await self._persist(run)
                logger.info("run_started slug=%s workflow_id=%s", term.slug, run.workflow_id)
            return await self.drive(run, force=force)

    # ---- batches ----

    async def _run_one(self, text: str, semaphore: asyncio.Semaphore, force: bool) -> TermResult:
        try:
            term = Term.from_text(text)
        except ValueError as exc:
            return TermResult(term=text, slug="", status="failed", error_kind=FailureKind.VALIDATION.value, error=str(exc))
        async with semaphore:
            try:
                run = await self.run_term(text, force=force)
            except Exception as exc:
                # contained to this term
                logger.exception("run_crashed slug=%s", term.slug)
                return TermResult(
                    term=text,
                    slug=term.slug,
                    status="failed",
                    error_kind=FailureKind.INTERNAL.value,
                    error=str(exc) if isinstance(exc, ArticleEngineError) else f"{type(exc).__name__}: {exc}",
                )
        return TermResult.from_run(run)

    async def process_batch(self, terms: List[str], *, force: bool = False) -> BatchReport:
        """
        Run up to ``BATCH_SIZE`` terms concurrently.

        Returns ``status="already_running"`` without doing anything when another
        batch is active in this process.
        """
        batch_size = self.settings.workflow.batch_size
        if len(terms) > batch_size:
            raise ValueError(f"batch holds {len(terms)} terms; the limit is {batch_size}")
        if not _BATCH_GUARD.acquire(blocking=False):
            logger.warning("batch_rejected reason=already_running")
            return BatchReport(status="already_running", timestamp=self.clock.now())
        try:
            unique: Dict[str, str] = {}
            for text in terms:
                unique.setdefault(make_slug(text), text)
            semaphore = asyncio.Semaphore(batch_size)
            logger.info("batch_start terms=%s", len(unique))
            results = await asyncio.gather(*(self._run_one(text, semaphore, force) for text in unique.values()))
            report = BatchReport(status="completed", timestamp=self.clock.now(), results=list(results))
            await self.write_summary(report)
            logger.info(
                "batch_finished total=%s successful=%s failed=%s soft_skipped=%s",
                report.total,
                report.successful,
                report.failed,
                report.soft_skipped,
            )
            return report
        finally:
            _BATCH_GUARD.release()

    async def write_summary(self, report: BatchReport) -> str:
        path = summary_path(report.timestamp.strftime("%Y-%m-%d"))
        await self.store.put(path, report.to_dict(), {"type": "workflow_summary", "time_fields": ["summary.timestamp"]})
        return path

    # ---- maintenance ----

    async def status(self, slug: str) -> Optional[WorkflowRun]:
        return await load_run(self.store, slug)

    async def resume_pending(self) -> List[WorkflowRun]:
        """Drive every checkpointed run that is not terminal yet."""
        resumed = []
        for slug in await checkpointed_slugs(self.store):
            run = await load_run(self.store, slug)
            if run is not None and not run.is_terminal:
                resumed.append(await self.run_term(run.term.raw))
        return resumed

    async def restore_defaults(self) -> Dict[str, Any]:
        """
        Purge every artifact tagged ``mock`` and reset the stages that produced it.

        Dependent stages are reset too so the next run rebuilds them from real data.
        """
        purged: List[str] = []
        affected: Dict[str, set] = {}
        for path in await self.store.list(""):
            if path.startswith("logs/"):
                continue
            metadata = await self.store.get_metadata(path)
            if not metadata or not metadata.get("mock"):
                continue
            await self.store.purge(path)
            purged.append(path)
            stage = stage_for_artifact(path)
            if stage is not None:
                affected.setdefault(path.split("/")[0], set()).add(stage)

        reset_runs = []
        for slug, stages in sorted(affected.items()):
            run = await load_run(self.store, slug)
            if run is None:
                continue
            to_reset = set(stages)
            for stage in stages:
                to_reset.update(dependents(stage))
            for stage in STAGE_ORDER:
                if stage in to_reset:
                    run.stages[stage] = StageState()
            await self._persist(run)
            reset_runs.append(slug)

        logger.info("restore_defaults purged=%s runs_reset=%s", len(purged), len(reset_runs))
        return {"purged": purged, "runs_reset": reset_runs}
