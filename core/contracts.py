"""Canonical data contracts for the per-term article workflow."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_slug(text: Any) -> str:
    """Lowercase, collapse non-alphanumerics to single hyphens, strip edge hyphens."""
    return _SLUG_RE.sub("-", str(text or "").lower()).strip("-")


class Stage(str, Enum):
    """Workflow stages in DAG order."""

    RESEARCH = "research"
    ANALYSIS = "analysis"
    VALUATION = "valuation"
    ENHANCEMENT = "enhancement"
    OPTIMIZATION = "optimization"
    RENDER = "render"
    EXPORT = "export"


STAGE_ORDER = tuple(Stage)


class StageStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


SETTLED_STATUSES = frozenset({StageStatus.COMPLETED, StageStatus.SKIPPED})
TERMINAL_STATUSES = frozenset({StageStatus.COMPLETED, StageStatus.FAILED, StageStatus.SKIPPED})


class ErrorKind(str, Enum):
    """Adapter-level error classification."""

    AUTH_MISSING = "auth_missing"
    AUTH_REJECTED = "auth_rejected"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    UPSTREAM_5XX = "upstream_5xx"
    UPSTREAM_4XX = "upstream_4xx"
    SCHEMA = "schema"


RETRIABLE_KINDS = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.TIMEOUT, ErrorKind.TRANSPORT, ErrorKind.UPSTREAM_5XX}
)


@dataclass(frozen=True)
class ProviderResult:
    """Typed return of an adapter call: either Ok(payload, metadata) or Err(kind, detail)."""

    ok: bool
    payload: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    kind: Optional[ErrorKind] = None
    detail: str = ""

    @property
    def retriable(self) -> bool:
        return (not self.ok) and self.kind in RETRIABLE_KINDS

    @property
    def is_mock(self) -> bool:
        return bool(self.metadata.get("mock"))

    @classmethod
    def success(cls, payload: Any, **metadata: Any) -> "ProviderResult":
        return cls(ok=True, payload=payload, metadata=dict(metadata))

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str = "", **metadata: Any) -> "ProviderResult":
        return cls(ok=False, kind=ErrorKind(kind), detail=str(detail), metadata=dict(metadata))

    def with_metadata(self, **extra: Any) -> "ProviderResult":
        return ProviderResult(
            ok=self.ok,
            payload=self.payload,
            metadata={**self.metadata, **extra},
            kind=self.kind,
            detail=self.detail,
        )


@dataclass(frozen=True)
class RetryBudget:
    """Per-call retry policy; ``deadline`` is an absolute monotonic timestamp."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    deadline: Optional[float] = None

    def capped_delay(self, attempt: int) -> float:
        """Un-jittered delay after ``attempt`` (1-based)."""
        return min(self.base_delay * (self.multiplier ** max(0, attempt - 1)), self.max_delay)


class Term(BaseModel):
    """The unit of work: a human-entered search phrase and its slug."""

    raw: str
    slug: str
    title: Optional[str] = None

    @field_validator("raw", mode="before")
    @classmethod
    def _non_empty_text(cls, value: Any) -> str:
        text = " ".join(str(value or "").split())
        if not text:
            raise ValueError("term text is required")
        return text

    @classmethod
    def from_text(cls, text: str, title: Optional[str] = None) -> "Term":
        normalized = " ".join(str(text or "").split())
        slug = make_slug(normalized)
        if not slug:
            raise ValueError(f"term has no alphanumeric characters: {text!r}")
        return cls(raw=normalized, slug=slug, title=title)

    @property
    def display_title(self) -> str:
        return self.title or self.raw.title()


class StageFailure(BaseModel):
    kind: str
    message: str = ""
    code: Optional[str] = None


class StageState(BaseModel):
    """Status entry for one stage of a run."""

    status: StageStatus = StageStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    attempts: int = 0
    error: Optional[StageFailure] = None
    skip_reason: Optional[str] = None
    attachments: Dict[str, Any] = Field(default_factory=dict)


def _new_workflow_id() -> str:
    return f"wf_{_utcnow().strftime('%Y%m%d_%H%M%S')}_{uuid4().hex[:8]}"


class WorkflowRun(BaseModel):
    """One processing attempt over a term, persisted as ``<slug>/run.json``."""

    workflow_id: str = Field(default_factory=_new_workflow_id)
    term: Term
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    stages: Dict[Stage, StageState] = Field(
        default_factory=lambda: {stage: StageState() for stage in STAGE_ORDER}
    )

    @field_validator("stages")
    @classmethod
    def _all_stages(cls, value: Dict[Stage, StageState]) -> Dict[Stage, StageState]:
        for stage in STAGE_ORDER:
            value.setdefault(stage, StageState())
        return {stage: value[stage] for stage in STAGE_ORDER}

    @classmethod
    def start(cls, term: Term, now: Optional[datetime] = None) -> "WorkflowRun":
        created = now or _utcnow()
        return cls(term=term, created_at=created, updated_at=created)

    @property
    def slug(self) -> str:
        return self.term.slug

    def status_of(self, stage: Stage) -> StageStatus:
        return self.stages[Stage(stage)].status

    @property
    def is_terminal(self) -> bool:
        return all(state.status in TERMINAL_STATUSES for state in self.stages.values())

    @property
    def state(self) -> str:
        """Aggregate run state derived from the stage status map."""
        statuses = [self.stages[stage].status for stage in STAGE_ORDER]
        if not self.is_terminal:
            if all(status == StageStatus.PENDING for status in statuses):
                return "pending"
            return "in_progress"
        for status in reversed(statuses):
            if status == StageStatus.SKIPPED:
                continue
            return "completed" if status == StageStatus.COMPLETED else "failed"
        return "failed"

    @property
    def skipped_stages(self) -> List[Stage]:
        return [stage for stage in STAGE_ORDER if self.stages[stage].status == StageStatus.SKIPPED]

    @property
    def failed_stage(self) -> Optional[Stage]:
        for stage in STAGE_ORDER:
            if self.stages[stage].status == StageStatus.FAILED:
                return stage
        return None

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(mode="json")
        doc["state"] = self.state
        return doc


# --- analysis plan ---

Intent = Literal["informational", "commercial", "transactional", "navigational"]
INTENTS = ("informational", "commercial", "transactional", "navigational")


class PlanSection(BaseModel):
    title: str
    key_points: List[str] = Field(default_factory=list)
    subsections: List[str] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _title_required(cls, value: Any) -> str:
        text = " ".join(str(value or "").split())
        if not text:
            raise ValueError("section title is required")
        return text


class FAQSeed(BaseModel):
    question: str
    answer_hint: str = ""


class SEOPlan(BaseModel):
    primary_keyword: str
    secondary_keywords: List[str] = Field(default_factory=list)
    featured_snippet: Literal["paragraph", "list", "table"] = "paragraph"

    @field_validator("featured_snippet", mode="before")
    @classmethod
    def _snippet_form(cls, value: Any) -> str:
        return str(value or "paragraph").strip().lower()


class AnalysisPlan(BaseModel):
    """Structured outline produced by the analysis stage."""

    primary_intent: Intent
    secondary_intents: List[Intent] = Field(default_factory=list)
    audience: List[str] = Field(default_factory=list)
    sections: List[PlanSection]
    faqs: List[FAQSeed] = Field(default_factory=list)
    seo: SEOPlan

    @field_validator("primary_intent", mode="before")
    @classmethod
    def _primary_intent(cls, value: Any) -> str:
        return str(value or "").strip().lower()

    @field_validator("secondary_intents", mode="before")
    @classmethod
    def _secondary_intents(cls, value: Any) -> List[str]:
        items = value if isinstance(value, list) else [value] if value else []
        cleaned: List[str] = []
        for item in items:
            text = str(item or "").strip().lower()
            if text in INTENTS and text not in cleaned:
                cleaned.append(text)
        return cleaned

    @field_validator("audience", mode="before")
    @classmethod
    def _audience(cls, value: Any) -> List[str]:
        if isinstance(value, str):
            value = [value]
        return [str(item).strip() for item in list(value or []) if str(item or "").strip()]

    @field_validator("sections")
    @classmethod
    def _non_empty_sections(cls, value: List[PlanSection]) -> List[PlanSection]:
        if not value:
            raise ValueError("plan must contain at least one section")
        return value


# --- composed article ---

class FAQEntry(BaseModel):
    question: str
    answer: str


class ArticleSection(BaseModel):
    heading: str
    body: str = ""
    subsections: List["ArticleSection"] = Field(default_factory=list)


class ImageRef(BaseModel):
    url: str
    alt: str = ""
    source: str = ""


class RelatedTerm(BaseModel):
    anchor: str
    slug: str


class ValuationRange(BaseModel):
    min: float
    max: float
    most_likely: Optional[float] = None
    currency: str = "USD"


class ArticleRecord(BaseModel):
    """Final composed article handed to the renderer."""

    title: str
    meta_description: str
    primary_keyword: str
    introduction: str = ""
    sections: List[ArticleSection] = Field(default_factory=list)
    faqs: List[FAQEntry] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    images: List[ImageRef] = Field(default_factory=list)
    featured_image: Optional[str] = None
    valuation: Optional[ValuationRange] = None
    valuation_blurb: Optional[str] = None
    internal_links: List[RelatedTerm] = Field(default_factory=list)
    related_terms: List[RelatedTerm] = Field(default_factory=list)
    cta: str = ""
    provenance: Dict[str, str] = Field(default_factory=dict)


@dataclass
class ResearchBundle:
    """Merged research results; absent sources are listed in ``missing``."""

    keyword: Dict[str, Any]
    related: Optional[Dict[str, Any]] = None
    serp: Optional[Dict[str, Any]] = None
    paa: Optional[Dict[str, Any]] = None
    expansion: Optional[Dict[str, Any]] = None
    missing: List[str] = field(default_factory=list)
    providers: Dict[str, str] = field(default_factory=dict)
    mock: bool = False

    def get(self, name: str) -> Optional[Dict[str, Any]]:
        return getattr(self, name, None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "related": self.related,
            "serp": self.serp,
            "paa": self.paa,
            "expansion": self.expansion,
            "missing": list(self.missing),
        }
