"""
Deterministic mock generators, one per mockable endpoint.

Used only in development mode when a real call fails. Output depends on the
request alone, so repeated runs produce identical artifacts.
"""
from __future__ import annotations

import hashlib
from typing import Any, Callable, Dict, List

from core import make_slug
from utils.text import truncate_words, tune_keyword_density, word_count

from .base import Endpoint
from .requests import (
    ExpansionRequest,
    ImageRequest,
    KeywordRequest,
    PAARequest,
    PlanRequest,
    SEORequest,
    SerpRequest,
    ValuationRequest,
    WriteRequest,
)


FILLER_SENTENCES = (
    "Condition, rarity and provenance all influence what collectors are willing to pay.",
    "Auction records from the last decade give a useful baseline for comparison.",
    "Small details such as maker marks, materials and construction methods often reveal the period of manufacture.",
    "Restoration can help or hurt value depending on how carefully it was carried out.",
    "Regional demand shifts over time, so recent sales are more reliable than older price guides.",
    "Documentation such as receipts, letters or exhibition labels strengthens any claim of origin.",
    "Experienced appraisers compare several similar pieces before settling on a realistic range.",
    "Photographs taken in natural light make remote evaluations far more accurate.",
    "Insurance, estate planning and resale each call for a slightly different type of valuation.",
    "Reproductions are common, which is why careful inspection matters before any purchase.",
)

BLURB_FILLER = ("item", "with", "authentic", "period", "details", "and", "documented", "provenance", "history", "records")


def _seed(text: str) -> int:
    return int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:8], 16)


def _display(keyword: str) -> str:
    return " ".join(word.capitalize() for word in keyword.split())


def _prose(keyword: str, target_words: int, salt: str, mention: bool = True) -> str:
    """Filler prose of roughly ``target_words`` words, optionally opening with ``keyword``."""
    offset = _seed(salt) % len(FILLER_SENTENCES)
    sentences: List[str] = []
    if mention:
        sentences.append(f"Understanding {keyword} starts with a close look at the piece itself.")
    idx = 0
    while word_count(" ".join(sentences)) < target_words:
        sentences.append(FILLER_SENTENCES[(offset + idx) % len(FILLER_SENTENCES)])
        idx += 1
    return " ".join(sentences)


def ten_word_blurb(term: str) -> str:
    words = term.split()[:10]
    filler = list(BLURB_FILLER)
    while len(words) < 10:
        words.append(filler.pop(0))
    return " ".join(words)


def mock_keyword_metrics(request: KeywordRequest) -> Dict[str, Any]:
    seed = _seed(request.keyword)
    return {
        "keyword": request.keyword,
        "volume": float(100 + seed % 9900),
        "cpc": round(0.2 + (seed % 400) / 100, 2),
        "competition": ("LOW", "MEDIUM", "HIGH")[seed % 3],
        "intent": "informational",
        "matched_keyword": request.keyword,
        "row_count": 1,
    }


def mock_related_keywords(request: KeywordRequest) -> Dict[str, Any]:
    keyword = request.keyword
    variants = [
        f"{keyword} value",
        f"{keyword} price guide",
        f"how to identify {keyword}",
        f"antique {keyword}",
        f"{keyword} appraisal near me",
        f"vintage {keyword} history",
    ]
    rows = []
    for index, variant in enumerate(variants):
        seed = _seed(variant)
        rows.append(
            {
                "keyword": variant,
                "volume": float(1000 - index * 120 + seed % 50),
                "cpc": round(0.1 + (seed % 300) / 100, 2),
                "competition": ("LOW", "MEDIUM", "HIGH")[seed % 3],
                "intent": "commercial" if "price" in variant or "value" in variant else "informational",
            }
        )
    return {"keyword": keyword, "related_keywords": rows}


def mock_serp_results(request: SerpRequest) -> Dict[str, Any]:
    slug = make_slug(request.keyword)
    display = _display(request.keyword)
    serp = [
        {
            "position": position,
            "title": title,
            "url": f"https://example.com/{slug}/{position}",
            "snippet": f"{title}. A practical overview for owners and collectors.",
        }
        for position, title in enumerate(
            [
                f"{display}: Complete Value Guide",
                f"How Much Is {display} Worth?",
                f"Identifying Genuine {display}",
                f"{display} Auction Prices",
                f"Caring for {display}",
            ],
            start=1,
        )
    ]
    return {
        "keyword": request.keyword,
        "serp": serp,
        "pasf": [f"{request.keyword} marks", f"{request.keyword} restoration"],
        "pasf_trending": [],
    }


def mock_paa_questions(request: PAARequest) -> Dict[str, Any]:
    keyword = request.keyword
    questions = [
        f"How much is {keyword} worth?",
        f"How can I tell if {keyword} is genuine?",
        f"Where can I sell {keyword}?",
        f"Does restoration affect the value of {keyword}?",
        f"Who can appraise {keyword}?",
    ]
    return {"keyword": keyword, "questions": [{"question": question, "answer": ""} for question in questions]}


def mock_topic_expansion(request: ExpansionRequest) -> Dict[str, Any]:
    keyword = request.keyword
    contents = {
        "variations": "\n".join(
            f"- {variant}"
            for variant in (
                f"{keyword} value",
                f"{keyword} identification",
                f"{keyword} price guide",
                f"rare {keyword}",
                f"{keyword} appraisal",
            )
        ),
        "intent": (
            f"Valuation: people want to know what {keyword} is worth.\n"
            f"Historical: people research the origin and makers of {keyword}.\n"
            f"Identification: people try to confirm authenticity of {keyword}."
        ),
        "context": f"Common associations with {keyword}: maker marks, condition grading, auction results, insurance.",
        "topics": f"1. Valuing {keyword}\n2. Spotting reproductions\n3. Caring for {keyword}",
        "complement": f"Top results for {keyword} focus on price guides; few cover identification in depth.",
    }
    return {"kind": request.kind, "content": contents.get(request.kind, "")}


def mock_plan_article(request: PlanRequest) -> Dict[str, Any]:
    term = request.term
    display = _display(term)
    sections = [
        {"title": f"What Is {display}?", "key_points": ["definition", "why it matters"], "subsections": []},
        {
            "title": "A Brief History",
            "key_points": ["origins", "notable makers"],
            "subsections": ["Early Period", "Modern Era"],
        },
        {"title": "How to Identify Genuine Pieces", "key_points": ["marks", "materials"], "subsections": []},
        {"title": "What Affects Value", "key_points": ["condition", "rarity"], "subsections": []},
        {"title": "Recent Auction Results", "key_points": ["price ranges"], "subsections": []},
        {"title": "Getting a Professional Appraisal", "key_points": ["when to appraise", "what to prepare"], "subsections": []},
    ]
    faqs = [
        {"question": f"How much is {term} worth?", "answer_hint": "depends on condition and rarity"},
        {"question": f"How do I know if {term} is authentic?", "answer_hint": "marks and materials"},
        {"question": "Should I restore a piece before selling it?", "answer_hint": "usually not"},
        {"question": "Where can I get an item appraised?", "answer_hint": "certified appraisers"},
    ]
    plan = {
        "primary_intent": "informational",
        "secondary_intents": ["commercial"],
        "audience": ["collectors", "estate executors", "antique sellers"],
        "sections": sections,
        "faqs": faqs,
        "seo": {
            "primary_keyword": term,
            "secondary_keywords": [f"{term} value", f"{term} appraisal"],
            "featured_snippet": "paragraph",
        },
    }
    return {"plan": plan, "valuation_description": ten_word_blurb(term)}


def mock_write_sections(request: WriteRequest) -> Dict[str, Any]:
    keyword = request.keyword
    if request.mode == "frame":
        display = _display(keyword)
        faqs = []
        for faq in request.plan.get("faqs") or []:
            question = str(faq.get("question") or "").strip()
            if question:
                faqs.append({"question": question, "answer": _prose(keyword, 45, question, mention=False)})
        return {
            "title": f"{display}: Value, History and Identification Guide",
            "meta_description": f"Learn what {keyword} is worth, how to identify genuine pieces and when to get an appraisal.",
            "introduction": _prose(keyword, 90, f"intro:{keyword}"),
            "faqs": faqs,
            "cta": "Request a professional appraisal today to learn what your piece is really worth.",
        }

    section = request.section or {}
    title = str(section.get("title") or f"Section {request.index + 1}")
    target = (request.min_words + request.max_words) // 2
    body = truncate_words(_prose(keyword, target, f"{keyword}:{title}"), request.max_words)
    subsections = [
        {"heading": sub, "body": _prose(keyword, 60, f"{keyword}:{title}:{sub}", mention=False), "subsections": []}
        for sub in section.get("subsections") or []
    ]
    return {"heading": title, "body": body, "subsections": subsections}


def mock_seo_pass(request: SEORequest) -> Dict[str, Any]:
    keyword = request.keyword
    article = {
        "title": str(request.article.get("title") or _display(keyword)),
        "meta_description": str(request.article.get("meta_description") or ""),
        "introduction": str(request.article.get("introduction") or ""),
        "sections": [dict(section) for section in request.article.get("sections") or []],
        "faqs": list(request.article.get("faqs") or []),
        "cta": str(request.article.get("cta") or ""),
    }
    if keyword.lower() not in article["title"].lower():
        article["title"] = f"{_display(keyword)}: {article['title']}"
    if keyword.lower() not in article["meta_description"].lower():
        article["meta_description"] = f"{keyword}: {article['meta_description']}".strip()
    low, high = request.density_band
    tuned = tune_keyword_density(article, keyword, target=(low + high) / 2, tolerance=(high - low) * 0.35)
    tuned["internal_links"] = [
        {"anchor": term.get("anchor", ""), "slug": term.get("slug", "")} for term in request.related_terms[:5]
    ]
    return tuned


def mock_generate_image(request: ImageRequest) -> Dict[str, Any]:
    slug = request.slug or make_slug(request.keyword)
    return {"url": f"https://picsum.photos/seed/{slug}/1200/630", "alt": request.keyword, "source": "placeholder"}


def mock_value_range(request: ValuationRequest) -> Dict[str, Any]:
    base = 50 + _seed(request.description) % 950
    return {
        "min": float(base),
        "max": float(base * 3),
        "most_likely": float(base * 2),
        "explanation": "Estimated from comparable listings (placeholder data).",
        "auction_results": [],
    }


MOCK_GENERATORS: Dict[Endpoint, Callable[[Any], Dict[str, Any]]] = {
    Endpoint.KEYWORD_METRICS: mock_keyword_metrics,
    Endpoint.RELATED_KEYWORDS: mock_related_keywords,
    Endpoint.SERP_RESULTS: mock_serp_results,
    Endpoint.PAA_QUESTIONS: mock_paa_questions,
    Endpoint.TOPIC_EXPANSION: mock_topic_expansion,
    Endpoint.PLAN_ARTICLE: mock_plan_article,
    Endpoint.WRITE_SECTIONS: mock_write_sections,
    Endpoint.SEO_PASS: mock_seo_pass,
    Endpoint.GENERATE_IMAGE: mock_generate_image,
    Endpoint.VALUE_RANGE: mock_value_range,
}
