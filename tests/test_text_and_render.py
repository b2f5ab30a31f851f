from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core import ArticleRecord
from pipeline import compose_markdown, render_article
from pipeline.renderer import FRONT_MATTER_FIELDS, format_timestamp, render_valuation
from providers import PlanRequest, WriteRequest
from providers.mocks import mock_plan_article, mock_write_sections
from utils.text import (
    DENSITY_BAND,
    article_density,
    count_phrase,
    in_density_band,
    keyword_density,
    tokenize,
    truncate_words,
    tune_keyword_density,
    word_count,
)


def test_tokenize_splits_on_punctuation_and_underscores() -> None:
    assert tokenize("Antique-Lamps, 1890s_brass! café") == ["antique", "lamps", "1890s", "brass", "café"]


def test_keyword_density_counts_phrase_tokens() -> None:
    assert keyword_density("antique lamps are antique lamps", "antique lamps") == pytest.approx(4 / 5)
    assert keyword_density("", "antique lamps") == 0.0
    assert keyword_density("some text", "") == 0.0


def test_phrase_occurrences_do_not_overlap() -> None:
    assert count_phrase(["a", "a", "a"], ["a", "a"]) == 1
    assert count_phrase(["a", "b"], ["a", "b", "c"]) == 0


def test_density_band_is_inclusive() -> None:
    low, high = DENSITY_BAND
    assert in_density_band(low) and in_density_band(high)
    assert not in_density_band(high + 0.0001)


def test_word_count_normalizes_whitespace() -> None:
    assert word_count("  one\ttwo \n three ") == 3
    assert word_count(None) == 0


def test_truncate_words_prefers_sentence_boundary() -> None:
    text = "First sentence has five words. Second sentence adds four more. Third."
    assert truncate_words(text, 7) == "First sentence has five words."
    assert truncate_words("one two three four", 2) == "one two"
    assert truncate_words("short", 10) == "short"


def _mock_article(keyword: str) -> dict:
    plan = mock_plan_article(PlanRequest(term=keyword, research={}))["plan"]
    frame = mock_write_sections(WriteRequest(keyword=keyword, plan=plan, mode="frame"))
    sections = [
        mock_write_sections(WriteRequest(keyword=keyword, plan=plan, section=section, index=index))
        for index, section in enumerate(plan["sections"])
    ]
    return {**frame, "sections": sections}


@pytest.mark.parametrize("keyword", ["antique lamps", "art appraisal of antique lamps", "vase"])
def test_density_tuning_lands_in_band(keyword: str) -> None:
    article = _mock_article(keyword)
    tuned = tune_keyword_density(article, keyword)
    assert in_density_band(article_density(tuned, keyword))
    assert [s["heading"] for s in tuned["sections"]] == [s["heading"] for s in article["sections"]]
    assert article["sections"] is not tuned["sections"]


def test_density_tuning_reduces_stuffed_text() -> None:
    article = {"title": "Lamps", "sections": [{"heading": "A", "body": "antique lamps " * 40 + "and other words here"}]}
    tuned = tune_keyword_density(article, "antique lamps")
    assert article_density(tuned, "antique lamps") < article_density(article, "antique lamps")


def _record(**overrides) -> ArticleRecord:
    data = {
        "title": "Antique Lamps: Value Guide",
        "meta_description": "What antique lamps are worth.",
        "primary_keyword": "antique lamps",
        "introduction": "Antique lamps come in many styles.",
        "sections": [
            {"heading": "History", "body": "Oil lamps came first.", "subsections": [{"heading": "Early Period", "body": "Whale oil."}]},
            {"heading": "Value", "body": "Condition matters."},
        ],
        "faqs": [{"question": "Are antique lamps valuable?", "answer": "Many are."}],
        "tags": ["tiffany lamps", "oil lamps"],
        "keywords": ["antique lamps", "antique lamp value"],
        "categories": ["Guides"],
        "featured_image": "https://cdn.test/lamps.png",
        "valuation": {"min": 120, "max": 480, "most_likely": 250},
        "valuation_blurb": "brass oil lamp with etched glass shade circa eighteen ninety",
        "related_terms": [{"anchor": "Tiffany lamps", "slug": "tiffany-lamps"}],
        "cta": "Request an appraisal today.",
    }
    data.update(overrides)
    return ArticleRecord.model_validate(data)


DATE = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_front_matter_fields_are_in_fixed_order() -> None:
    front_matter, _ = render_article(_record(), slug="antique-lamps", date=DATE, lastmod=DATE + timedelta(hours=1))
    lines = front_matter.splitlines()
    assert lines[0] == "---" and lines[-1] == "---"
    assert [line.split(":", 1)[0] for line in lines[1:-1]] == list(FRONT_MATTER_FIELDS)
    assert 'title: "Antique Lamps: Value Guide"' in lines
    assert "date: 2026-03-01T12:00:00Z" in lines
    assert "lastmod: 2026-03-01T13:00:00Z" in lines
    assert "draft: false" in lines
    assert 'tags: ["tiffany lamps", "oil lamps"]' in lines


def test_body_structure() -> None:
    _, body = render_article(_record(), slug="antique-lamps", date=DATE, lastmod=DATE)
    lines = body.splitlines()
    assert lines[0] == "# Antique Lamps: Value Guide"
    assert "## History" in lines
    assert "### Early Period" in lines
    assert "**Request an appraisal today.**" in lines
    assert "## Frequently Asked Questions" in lines
    assert "### Are antique lamps valuable?" in lines
    assert "- [Tiffany lamps](/tiffany-lamps/)" in lines
    assert body.index("> **Estimated value:** $120 to $480") < body.index("## History")
    assert body.index("**Request an appraisal today.**") < body.index("## Frequently Asked Questions")


def test_related_terms_and_internal_links_are_merged_by_slug() -> None:
    record = _record(
        internal_links=[
            {"anchor": "Tiffany Lamps", "slug": "tiffany-lamps"},
            {"anchor": "Oil lamp restoration", "slug": "oil-lamp-restoration"},
        ]
    )
    _, body = render_article(record, slug="antique-lamps", date=DATE, lastmod=DATE)
    links = [line for line in body.splitlines() if line.startswith("- [")]
    assert links == [
        "- [Tiffany lamps](/tiffany-lamps/)",
        "- [Oil lamp restoration](/oil-lamp-restoration/)",
    ]


def test_valuation_block_is_omitted_without_valuation() -> None:
    _, body = render_article(_record(valuation=None, valuation_blurb=None), slug="antique-lamps", date=DATE, lastmod=DATE)
    assert "Estimated value" not in body


def test_render_valuation_formats_amounts() -> None:
    record = _record(valuation={"min": 1200, "max": 4800})
    assert render_valuation(record.valuation) == "> **Estimated value:** $1,200 to $4,800"


def test_rendering_is_deterministic() -> None:
    first = compose_markdown(*render_article(_record(), slug="antique-lamps", date=DATE, lastmod=DATE))
    second = compose_markdown(*render_article(_record(), slug="antique-lamps", date=DATE, lastmod=DATE))
    assert first == second
    assert first.startswith("---\n")
    assert "---\n\n# Antique Lamps" in first


def test_format_timestamp_converts_to_utc() -> None:
    eastern = timezone(timedelta(hours=-5))
    assert format_timestamp(datetime(2026, 3, 1, 7, 0, tzinfo=eastern)) == "2026-03-01T12:00:00Z"
