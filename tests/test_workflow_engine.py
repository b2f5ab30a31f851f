from __future__ import annotations

import asyncio

import pytest

from conftest import StubProviders, build_settings
from core import ErrorKind, ProviderResult, Stage, StageStatus, Term, WorkflowRun
from orchestrator import WorkflowEngine, dependents, load_run, next_runnable, save_run, stage_for_artifact, summary_path
from pipeline import BaseStage, article_path, enhanced_path, optimized_path, research_path, run_path
from providers import Endpoint
from providers.mocks import mock_keyword_metrics, mock_write_sections
from storage import LocalArtifactStore
from utils.text import DENSITY_BAND


SEED = "Art Appraisal of Antique Lamps"
SLUG = "art-appraisal-of-antique-lamps"


def failing(kind: ErrorKind):
    async def _fail(request) -> ProviderResult:
        return ProviderResult.failure(kind, "scripted failure")

    return _fail


async def hang(request) -> ProviderResult:
    await asyncio.sleep(3600)
    raise AssertionError("unreachable")


@pytest.mark.asyncio
async def test_happy_path_produces_complete_article(make_engine, store) -> None:
    engine = make_engine()
    run = await engine.run_term(SEED)

    assert run.state == "completed"
    assert all(run.status_of(stage) == StageStatus.COMPLETED for stage in Stage)

    article = (await store.get(article_path(SLUG))).payload
    front_matter, body = article.split("\n---\n\n", 1)
    assert front_matter.startswith("---\ntitle: ")
    assert f'slug: "{SLUG}"' in front_matter
    assert "date: 2026-03-01T12:00:00Z" in front_matter
    headings = [line for line in body.splitlines() if line.startswith("## ")]
    content_headings = [h for h in headings if h not in ("## Frequently Asked Questions", "## Related Terms")]
    assert len(content_headings) >= 5
    assert "## Frequently Asked Questions" in headings

    optimized = (await store.get(optimized_path(SLUG))).payload
    low, high = DENSITY_BAND
    assert low <= optimized["seo"]["density"] <= high
    assert optimized["valuation"] is not None

    checkpoint = (await store.get(run_path(SLUG))).payload
    assert checkpoint["state"] == "completed"
    assert checkpoint["workflow_id"] == run.workflow_id


@pytest.mark.asyncio
async def test_valuation_timeout_is_a_soft_skip(make_engine, store) -> None:
    providers = StubProviders({Endpoint.VALUE_RANGE: hang})
    engine = make_engine(providers=providers, valuation_wait_timeout=0.2)

    report = await engine.process_batch(["antique lamps"])

    run = await engine.status("antique-lamps")
    assert run.status_of(Stage.VALUATION) == StageStatus.SKIPPED
    assert run.stages[Stage.VALUATION].skip_reason == "timeout"
    assert run.state == "completed"

    enhanced = (await store.get(enhanced_path("antique-lamps"))).payload
    assert "valuation" not in enhanced
    assert "valuation_description" not in enhanced
    assert "Estimated value" not in (await store.get(article_path("antique-lamps"))).payload

    assert report.successful == 1
    assert report.soft_skipped == 1
    assert report.results[0].skipped == ["valuation"]


@pytest.mark.asyncio
async def test_valuation_failure_does_not_block_enhancement(make_engine, store) -> None:
    providers = StubProviders({Endpoint.VALUE_RANGE: failing(ErrorKind.AUTH_MISSING)})
    run = await make_engine(providers=providers).run_term("antique lamps")

    assert run.status_of(Stage.VALUATION) == StageStatus.FAILED
    assert run.status_of(Stage.ENHANCEMENT) == StageStatus.COMPLETED
    assert run.state == "completed"
    assert await store.exists(article_path("antique-lamps"))


@pytest.mark.asyncio
async def test_fatal_research_failure_skips_every_other_stage(make_engine, store) -> None:
    providers = StubProviders({Endpoint.KEYWORD_METRICS: failing(ErrorKind.AUTH_REJECTED)})
    run = await make_engine(providers=providers).run_term("antique lamps")

    assert run.state == "failed"
    assert run.failed_stage == Stage.RESEARCH
    assert run.stages[Stage.RESEARCH].error.kind == "config"
    assert run.skipped_stages == [stage for stage in Stage if stage != Stage.RESEARCH]
    assert providers.calls[Endpoint.PLAN_ARTICLE] == 0
    assert not await store.exists(article_path("antique-lamps"))


@pytest.mark.asyncio
async def test_stage_deadline_fails_with_cancelled(make_engine) -> None:
    providers = StubProviders({Endpoint.GENERATE_IMAGE: hang})
    run = await make_engine(providers=providers, stage_timeout_enhancement=0.2).run_term("antique lamps")

    state = run.stages[Stage.ENHANCEMENT]
    assert state.status == StageStatus.FAILED
    assert state.error.kind == "cancelled"
    assert state.error.code == "deadline"
    assert run.status_of(Stage.RENDER) == StageStatus.SKIPPED


@pytest.mark.asyncio
async def test_restart_resumes_from_checkpoint_without_refetching(make_engine, tmp_path, clock, store) -> None:
    first = make_engine()
    run = WorkflowRun.start(Term.from_text(SEED), now=clock.now())
    await first.advance(run)
    await first.advance(run)
    assert run.status_of(Stage.ANALYSIS) == StageStatus.COMPLETED
    # Simulate a crash while valuation was running.
    run.stages[Stage.VALUATION].status = StageStatus.IN_PROGRESS
    await save_run(store, run)

    fresh = StubProviders()
    resumed = await make_engine(providers=fresh).run_term(SEED)

    assert resumed.workflow_id == run.workflow_id
    assert resumed.state == "completed"
    assert fresh.calls[Endpoint.KEYWORD_METRICS] == 0
    assert fresh.calls[Endpoint.TOPIC_EXPANSION] == 0
    assert fresh.calls[Endpoint.PLAN_ARTICLE] == 0
    assert fresh.calls[Endpoint.VALUE_RANGE] == 1

    other_store = LocalArtifactStore(str(tmp_path / "uninterrupted"), clock=clock)
    reference = WorkflowEngine(
        other_store,
        StubProviders().gateway(),
        build_settings(str(tmp_path / "uninterrupted")),
        clock=clock,
    )
    await reference.run_term(SEED)
    assert (await store.get(article_path(SLUG))).payload == (await other_store.get(article_path(SLUG))).payload


@pytest.mark.asyncio
async def test_completed_run_is_not_reprocessed(make_engine, stubs) -> None:
    engine = make_engine()
    first = await engine.run_term("antique lamps")
    calls = sum(stubs.calls.values())

    again = await engine.run_term("antique lamps")

    assert again.workflow_id == first.workflow_id
    assert sum(stubs.calls.values()) == calls


@pytest.mark.asyncio
async def test_rerun_reuses_cached_research_and_plan(make_engine, stubs, store) -> None:
    engine = make_engine()
    await engine.run_term("antique lamps")
    article = (await store.get(article_path("antique-lamps"))).payload
    await store.purge(run_path("antique-lamps"))

    await engine.run_term("antique lamps")

    assert stubs.calls[Endpoint.KEYWORD_METRICS] == 1
    assert stubs.calls[Endpoint.PLAN_ARTICLE] == 1
    assert (await store.get(article_path("antique-lamps"))).payload == article


@pytest.mark.asyncio
async def test_batch_isolates_failures_and_writes_summary(make_engine, store) -> None:
    async def _write(request) -> ProviderResult:
        if request.keyword == "victorian brooches":
            return ProviderResult.failure(ErrorKind.SCHEMA, "malformed section")
        return ProviderResult.success(mock_write_sections(request), provider="stub")

    providers = StubProviders({Endpoint.WRITE_SECTIONS: _write})
    engine = make_engine(providers=providers)

    report = await engine.process_batch(["antique lamps", "victorian brooches", "tiffany vases"])

    assert (report.total, report.successful, report.failed) == (3, 2, 1)
    assert report.exit_code == 3
    failed = next(result for result in report.results if not result.successful)
    assert failed.slug == "victorian-brooches"
    assert failed.failed_stage == "enhancement"
    assert failed.error_kind == "validation"

    summary = (await store.get("logs/2026-03-01/workflow-summary.json")).payload
    assert summary["summary"]["total"] == 3
    assert summary["summary"]["successful"] == 2
    assert summary["summary"]["failed"] == 1
    assert await store.exists(article_path("antique-lamps"))
    assert await store.exists(article_path("tiffany-vases"))
    assert not await store.exists(article_path("victorian-brooches"))


class CrashingFor(BaseStage):
    """Wraps a stage and raises a bare exception for one slug."""

    def __init__(self, inner: BaseStage, slug: str):
        self.inner = inner
        self.stage = inner.stage
        self.slug = slug

    async def execute(self, ctx):
        if ctx.slug == self.slug:
            raise KeyError("sections")
        return await self.inner.execute(ctx)


@pytest.mark.asyncio
async def test_unexpected_stage_error_fails_only_that_run(make_engine, store) -> None:
    engine = make_engine()
    engine.stages[Stage.ANALYSIS] = CrashingFor(engine.stages[Stage.ANALYSIS], "vintage-clocks")

    report = await engine.process_batch(["antique lamps", "vintage clocks"])

    assert (report.total, report.successful, report.failed) == (2, 1, 1)
    crashed = next(result for result in report.results if not result.successful)
    assert crashed.slug == "vintage-clocks"
    assert crashed.failed_stage == "analysis"
    assert crashed.error_kind == "internal"
    assert "KeyError" in crashed.error

    run = await load_run(store, "vintage-clocks")
    assert run.state == "failed"
    assert run.stages[Stage.ANALYSIS].error.code == "unexpected"
    assert all(state.status != StageStatus.IN_PROGRESS for state in run.stages.values())

    summary = (await store.get(summary_path("2026-03-01"))).payload
    assert summary["summary"]["total"] == 2
    assert await store.exists(article_path("antique-lamps"))


@pytest.mark.asyncio
async def test_crash_outside_stages_is_reported_with_its_slug(make_engine, store, monkeypatch) -> None:
    engine = make_engine()
    run_term = engine.run_term

    async def _run_term(text, *, force=False):
        if text == "vintage clocks":
            raise RuntimeError("checkpoint backend exploded")
        return await run_term(text, force=force)

    monkeypatch.setattr(engine, "run_term", _run_term)
    report = await engine.process_batch(["antique lamps", "vintage clocks", "!!!"])

    by_term = {result.term: result for result in report.results}
    assert by_term["antique lamps"].successful
    assert by_term["vintage clocks"].slug == "vintage-clocks"
    assert by_term["vintage clocks"].error_kind == "internal"
    assert by_term["!!!"].error_kind == "validation"
    assert await store.exists(summary_path("2026-03-01"))


@pytest.mark.asyncio
async def test_same_slug_runs_are_serialized(make_engine) -> None:
    async def _slow_keyword(request) -> ProviderResult:
        await asyncio.sleep(0.05)
        return ProviderResult.success(mock_keyword_metrics(request), provider="stub")

    providers = StubProviders({Endpoint.KEYWORD_METRICS: _slow_keyword})
    engine = make_engine(providers=providers)

    first, second = await asyncio.gather(engine.run_term("antique lamps"), engine.run_term("Antique  Lamps"))

    assert first.workflow_id == second.workflow_id
    assert first.state == second.state == "completed"
    assert providers.calls[Endpoint.KEYWORD_METRICS] == 1
    assert len(engine._slug_locks) == 0


@pytest.mark.asyncio
async def test_batch_dedupes_by_slug_and_enforces_size(make_engine) -> None:
    engine = make_engine(batch_size=2)
    report = await engine.process_batch(["Antique Lamps", "antique   lamps"])
    assert report.total == 1

    with pytest.raises(ValueError):
        await engine.process_batch(["a", "b", "c"])


@pytest.mark.asyncio
async def test_invalid_term_is_reported_not_raised(make_engine) -> None:
    report = await make_engine().process_batch(["!!!", "antique lamps"])
    assert report.failed == 1
    assert report.results[0].error_kind == "validation"


@pytest.mark.asyncio
async def test_second_batch_is_rejected_while_one_is_running(make_engine) -> None:
    release = asyncio.Event()

    async def _slow(request) -> ProviderResult:
        await release.wait()
        return ProviderResult.success({"keyword": request.keyword, "volume": 10.0}, provider="stub")

    providers = StubProviders({Endpoint.KEYWORD_METRICS: _slow})
    engine = make_engine(providers=providers)

    running = asyncio.create_task(engine.process_batch(["antique lamps"]))
    while providers.calls[Endpoint.KEYWORD_METRICS] == 0:
        await asyncio.sleep(0.01)

    rejected = await engine.process_batch(["tiffany vases"])
    assert rejected.status == "already_running"
    assert rejected.total == 0

    release.set()
    report = await running
    assert report.status == "completed"


@pytest.mark.asyncio
async def test_resume_pending_drives_interrupted_runs(make_engine, store, clock) -> None:
    engine = make_engine()
    run = WorkflowRun.start(Term.from_text("antique lamps"), now=clock.now())
    run.stages[Stage.RESEARCH].status = StageStatus.IN_PROGRESS
    await save_run(store, run)

    resumed = await engine.resume_pending()

    assert [r.slug for r in resumed] == ["antique-lamps"]
    assert resumed[0].state == "completed"


@pytest.mark.asyncio
async def test_restore_defaults_purges_mock_artifacts_and_resets_stages(make_engine, store) -> None:
    providers = StubProviders({Endpoint.SERP_RESULTS: failing(ErrorKind.UPSTREAM_5XX)})
    engine = make_engine(providers=providers, development=True)
    run = await engine.run_term("antique lamps")
    assert run.state == "completed"
    assert (await store.get_metadata(research_path("antique-lamps", "serp")))["mock"] is True

    result = await engine.restore_defaults()

    assert result["purged"] == [research_path("antique-lamps", "serp")]
    assert result["runs_reset"] == ["antique-lamps"]
    reset = await load_run(store, "antique-lamps")
    assert reset.state == "pending"
    assert await store.exists(research_path("antique-lamps", "keyword"))


def test_dag_scheduling_rules() -> None:
    run = WorkflowRun.start(Term.from_text("antique lamps"))
    assert next_runnable(run) == Stage.RESEARCH
    run.stages[Stage.RESEARCH].status = StageStatus.COMPLETED
    run.stages[Stage.ANALYSIS].status = StageStatus.COMPLETED
    assert next_runnable(run) == Stage.VALUATION

    run.stages[Stage.VALUATION].status = StageStatus.IN_PROGRESS
    assert next_runnable(run) is None
    run.stages[Stage.VALUATION].status = StageStatus.FAILED
    assert next_runnable(run) == Stage.ENHANCEMENT

    assert dependents(Stage.VALUATION) == []
    assert dependents(Stage.ANALYSIS) == [Stage.VALUATION, Stage.ENHANCEMENT, Stage.OPTIMIZATION, Stage.RENDER, Stage.EXPORT]


@pytest.mark.parametrize(
    "path, stage",
    [
        ("lamps/research/serp.json", Stage.RESEARCH),
        ("lamps/analysis/plan.json", Stage.ANALYSIS),
        ("lamps/analysis/valuation.json", Stage.VALUATION),
        ("lamps/enhanced.json", Stage.ENHANCEMENT),
        ("lamps/optimized.json", Stage.OPTIMIZATION),
        ("lamps/article.md", Stage.RENDER),
        ("lamps/run.json", None),
    ],
)
def test_stage_for_artifact(path: str, stage) -> None:
    assert stage_for_artifact(path) == stage
