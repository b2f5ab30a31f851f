"""Typed request structs, one per logical endpoint."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple


ExpansionKind = Literal["variations", "intent", "context", "topics", "complement"]
EXPANSION_KINDS: Tuple[str, ...] = ("variations", "intent", "context", "topics", "complement")


@dataclass(frozen=True)
class KeywordRequest:
    keyword: str
    country: str = "en-US"


@dataclass(frozen=True)
class SerpRequest:
    keyword: str
    country: str = "en-US"


@dataclass(frozen=True)
class PAARequest:
    keyword: str
    country: str = "US"
    language: str = "en"


@dataclass(frozen=True)
class ExpansionRequest:
    keyword: str
    kind: ExpansionKind
    serp: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class PlanRequest:
    term: str
    research: Dict[str, Any]
    tighten_blurb: bool = False
    previous_blurb: Optional[str] = None


@dataclass(frozen=True)
class WriteRequest:
    """``mode="section"`` expands one plan section; ``mode="frame"`` writes intro, FAQ answers and CTA."""

    keyword: str
    plan: Dict[str, Any]
    mode: Literal["section", "frame"] = "section"
    section: Optional[Dict[str, Any]] = None
    index: int = 0
    min_words: int = 120
    max_words: int = 400
    valuation: Optional[Dict[str, Any]] = None
    retry_hint: Optional[str] = None


@dataclass(frozen=True)
class SEORequest:
    keyword: str
    article: Dict[str, Any]
    secondary_keywords: List[str] = field(default_factory=list)
    related_terms: List[Dict[str, str]] = field(default_factory=list)
    density_band: Tuple[float, float] = (0.01, 0.03)


@dataclass(frozen=True)
class ImageRequest:
    keyword: str
    prompt: str
    slug: str = ""


@dataclass(frozen=True)
class ValuationRequest:
    description: str


@dataclass(frozen=True)
class PublishRequest:
    title: str
    slug: str
    content: str
    excerpt: str = ""
    status: str = "draft"
