"""Deterministic text metrics shared by the analyzer, the SEO pass and mock providers."""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

_TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)
_WS_RE = re.compile(r"\s+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")

DENSITY_BAND: Tuple[float, float] = (0.01, 0.03)


def normalize_whitespace(text: Any) -> str:
    return _WS_RE.sub(" ", str(text or "")).strip()


def word_count(text: Any) -> int:
    """Whitespace-delimited word count after normalization."""
    normalized = normalize_whitespace(text)
    return len(normalized.split(" ")) if normalized else 0


def tokenize(text: Any) -> List[str]:
    """Lowercased tokens; a token is a maximal run of alphanumeric characters."""
    return [match.group(0).lower() for match in _TOKEN_RE.finditer(str(text or ""))]


def count_phrase(tokens: Sequence[str], phrase_tokens: Sequence[str]) -> int:
    """Count non-overlapping occurrences of ``phrase_tokens`` inside ``tokens``."""
    size = len(phrase_tokens)
    if size == 0 or size > len(tokens):
        return 0
    target = list(phrase_tokens)
    count = 0
    idx = 0
    while idx <= len(tokens) - size:
        if list(tokens[idx : idx + size]) == target:
            count += 1
            idx += size
        else:
            idx += 1
    return count


def keyword_density(text: Any, keyword: str) -> float:
    """
    Fraction of tokens in ``text`` that belong to occurrences of ``keyword``.

    A keyword of k tokens occurring n times in a text of T tokens has density n*k/T.
    """
    tokens = tokenize(text)
    phrase = tokenize(keyword)
    if not tokens or not phrase:
        return 0.0
    return count_phrase(tokens, phrase) * len(phrase) / len(tokens)


def in_density_band(density: float, band: Tuple[float, float] = DENSITY_BAND) -> bool:
    low, high = band
    return low <= density <= high


def contains_phrase(text: Any, keyword: str) -> bool:
    return count_phrase(tokenize(text), tokenize(keyword)) > 0


def phrase_pattern(keyword: str) -> "re.Pattern[str]":
    """Case-insensitive regex matching ``keyword`` on token boundaries."""
    parts = [re.escape(token) for token in tokenize(keyword)]
    if not parts:
        raise ValueError("keyword has no tokens")
    return re.compile(r"(?<![^\W_])" + r"[\W_]+".join(parts) + r"(?![^\W_])", re.IGNORECASE | re.UNICODE)


def split_sentences(text: Any) -> List[str]:
    normalized = str(text or "").strip()
    if not normalized:
        return []
    return [part.strip() for part in _SENTENCE_RE.split(normalized) if part.strip()]


def truncate_words(text: Any, max_words: int) -> str:
    """Trim ``text`` to at most ``max_words`` words, preferring a sentence boundary."""
    if word_count(text) <= max_words:
        return str(text or "").strip()
    kept: List[str] = []
    used = 0
    for sentence in split_sentences(text):
        size = word_count(sentence)
        if used + size > max_words:
            break
        kept.append(sentence)
        used += size
    if kept:
        return " ".join(kept)
    words = normalize_whitespace(text).split(" ")
    return " ".join(words[:max_words])


def _section_text(section: Mapping[str, Any]) -> Iterable[str]:
    yield str(section.get("heading") or "")
    yield str(section.get("body") or "")
    for sub in list(section.get("subsections") or []):
        yield from _section_text(sub)


def article_plain_text(article: Mapping[str, Any]) -> str:
    """Flatten the reader-visible text of an article document for density checks."""
    parts: List[str] = [str(article.get("title") or ""), str(article.get("introduction") or "")]
    for section in list(article.get("sections") or []):
        parts.extend(_section_text(section))
    for faq in list(article.get("faqs") or []):
        parts.append(str(faq.get("question") or ""))
        parts.append(str(faq.get("answer") or ""))
    parts.append(str(article.get("cta") or ""))
    return "\n".join(part for part in parts if part)


def article_density(article: Mapping[str, Any], keyword: str) -> float:
    return keyword_density(article_plain_text(article), keyword)


def tune_keyword_density(
    article: Dict[str, Any],
    keyword: str,
    *,
    target: float = 0.02,
    tolerance: float = 0.007,
    max_steps: int = 400,
) -> Dict[str, Any]:
    """
    Nudge keyword usage in section bodies until density lands near ``target``.

    Adds short keyword sentences to sections when density is low and swaps
    body occurrences for a neutral phrase when it is high. Returns a new dict.
    """
    doc: Dict[str, Any] = {
        **article,
        "sections": [dict(section) for section in list(article.get("sections") or [])],
    }
    sections = doc["sections"]
    if not sections or not tokenize(keyword):
        return doc

    pattern = phrase_pattern(keyword)
    display = normalize_whitespace(keyword)
    lead = display[:1].upper() + display[1:]
    low, high = target - tolerance, target + tolerance

    for step in range(max_steps):
        density = article_density(doc, keyword)
        if low <= density <= high:
            break
        idx = step % len(sections)
        body = str(sections[idx].get("body") or "")
        if density < low:
            sections[idx]["body"] = f"{body} {lead} shapes every decision covered here.".strip()
            continue
        replaced = False
        for offset in range(len(sections)):
            probe = (idx + offset) % len(sections)
            text = str(sections[probe].get("body") or "")
            if pattern.search(text):
                sections[probe]["body"] = pattern.sub("this subject", text, count=1)
                replaced = True
                break
        if not replaced:
            break
    return doc
