from __future__ import annotations

import re

import pytest

from core import (
    ErrorKind,
    ProviderResult,
    RetryBudget,
    Stage,
    StageStatus,
    Term,
    WorkflowRun,
    make_slug,
)


SLUG_SAMPLES = [
    "Art Appraisal of Antique Lamps",
    "  art   appraisal of ANTIQUE lamps ",
    "--already-a-slug--",
    "Tiffany & Co. (1890s) lamp!!",
    "café crème",
    "a__b..c//d",
    "",
    "---",
    "123 Main St.",
]


@pytest.mark.parametrize("text", SLUG_SAMPLES)
def test_slug_is_idempotent_and_clean(text: str) -> None:
    slug = make_slug(text)
    assert make_slug(slug) == slug
    assert re.fullmatch(r"([a-z0-9]+(-[a-z0-9]+)*)?", slug)


def test_slug_ignores_case_and_whitespace() -> None:
    assert make_slug("Art  Appraisal of antique LAMPS") == make_slug(" art appraisal of Antique lamps ")
    assert make_slug("art appraisal of antique lamps") == "art-appraisal-of-antique-lamps"


def test_term_from_text_normalizes_and_rejects_empty() -> None:
    term = Term.from_text("  Antique   Lamps ")
    assert term.raw == "Antique Lamps"
    assert term.slug == "antique-lamps"
    assert term.display_title == "Antique Lamps"

    with pytest.raises(ValueError):
        Term.from_text("  !!! ")


def test_provider_result_retriable_kinds() -> None:
    retriable = {ErrorKind.RATE_LIMITED, ErrorKind.TIMEOUT, ErrorKind.TRANSPORT, ErrorKind.UPSTREAM_5XX}
    for kind in ErrorKind:
        assert ProviderResult.failure(kind, "x").retriable is (kind in retriable)
    assert ProviderResult.success({"a": 1}).retriable is False


def test_provider_result_metadata_is_merged() -> None:
    result = ProviderResult.success({"a": 1}, provider="kwrds").with_metadata(attempts=2)
    assert result.metadata == {"provider": "kwrds", "attempts": 2}
    assert result.is_mock is False
    assert result.with_metadata(mock=True).is_mock is True


def test_retry_budget_capped_delay() -> None:
    budget = RetryBudget(max_attempts=6, base_delay=1.0, multiplier=2.0, max_delay=5.0)
    assert [budget.capped_delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_workflow_run_state_derivation() -> None:
    run = WorkflowRun.start(Term.from_text("antique lamps"))
    assert run.state == "pending"
    assert set(run.stages) == set(Stage)

    run.stages[Stage.RESEARCH].status = StageStatus.COMPLETED
    assert run.state == "in_progress"

    for stage in Stage:
        run.stages[stage].status = StageStatus.COMPLETED
    run.stages[Stage.VALUATION].status = StageStatus.SKIPPED
    assert run.is_terminal
    assert run.state == "completed"
    assert run.skipped_stages == [Stage.VALUATION]

    run.stages[Stage.EXPORT].status = StageStatus.SKIPPED
    run.stages[Stage.RENDER].status = StageStatus.FAILED
    assert run.state == "failed"
    assert run.failed_stage == Stage.RENDER


def test_workflow_run_document_round_trip() -> None:
    run = WorkflowRun.start(Term.from_text("antique lamps"))
    run.stages[Stage.RESEARCH].status = StageStatus.COMPLETED
    doc = run.to_document()
    assert doc["state"] == "in_progress"
    restored = WorkflowRun.model_validate(doc)
    assert restored.workflow_id == run.workflow_id
    assert restored.status_of(Stage.RESEARCH) == StageStatus.COMPLETED
    assert restored.status_of(Stage.EXPORT) == StageStatus.PENDING
