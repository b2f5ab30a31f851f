"""Per-term results and the batch summary written to ``logs/<date>/``."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from core import WorkflowRun


@dataclass
class TermResult:
    term: str
    slug: str
    status: str
    workflow_id: Optional[str] = None
    failed_stage: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    skipped: List[str] = field(default_factory=list)

    @property
    def successful(self) -> bool:
        return self.status == "completed"

    @property
    def soft_skipped(self) -> bool:
        return self.successful and bool(self.skipped)

    @classmethod
    def from_run(cls, run: WorkflowRun) -> "TermResult":
        failed = run.failed_stage
        failure = run.stages[failed].error if failed is not None else None
        return cls(
            term=run.term.raw,
            slug=run.slug,
            status=run.state,
            workflow_id=run.workflow_id,
            failed_stage=failed.value if failed is not None else None,
            error_kind=failure.kind if failure else None,
            error=failure.message if failure else None,
            skipped=[stage.value for stage in run.skipped_stages],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "term": self.term,
            "slug": self.slug,
            "status": self.status,
            "workflow_id": self.workflow_id,
            "failed_stage": self.failed_stage,
            "error_kind": self.error_kind,
            "error": self.error,
            "skipped": list(self.skipped),
        }


@dataclass
class BatchReport:
    status: str
    timestamp: datetime
    results: List[TermResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for result in self.results if result.successful)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    @property
    def soft_skipped(self) -> int:
        return sum(1 for result in self.results if result.soft_skipped)

    @property
    def exit_code(self) -> int:
        """0 all succeeded, 3 partial success, 4 every term failed."""
        if self.failed == 0:
            return 0
        return 4 if self.successful == 0 else 3

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "summary": {
                "total": self.total,
                "successful": self.successful,
                "failed": self.failed,
                "soft_skipped": self.soft_skipped,
                "timestamp": self.timestamp.isoformat(),
            },
            "results": [result.to_dict() for result in self.results],
        }
