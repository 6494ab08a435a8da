"""Deterministic text reduction: boilerplate filtering, truncation, extraction."""

import logging
import math
import re

logger = logging.getLogger(__name__)

WHITESPACE = re.compile(r"\s+")

# Sentence boundary: terminator followed by whitespace
SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

# A sentence including its terminator(s)
SENTENCE = re.compile(r"[^.!?]+[.!?]+")

PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")

BOILERPLATE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"cookie\s+policy",
        r"privacy\s+policy",
        r"terms\s+of\s+service",
        r"click\s+here",
        r"read\s+more",
        r"continue\s+reading",
        r"subscribe\s+to\s+our\s+newsletter",
        r"follow\s+us\s+on",
        r"share\s+this",
        r"\b(copyright|©|®|™)\s+\d{4}",
        r"all\s+rights\s+reserved",
    )
]

# Units shorter than this are not considered representative
MIN_UNIT_CHARS = 50


def collapse_whitespace(text: str) -> str:
    """Replace every whitespace run with a single space and trim."""
    return WHITESPACE.sub(" ", text).strip()


def split_sentences(text: str) -> list[str]:
    """Split whitespace-collapsed text after each sentence terminator."""
    return [s.strip() for s in SENTENCE_SPLIT.split(text) if s.strip()]


def is_boilerplate(sentence: str) -> bool:
    return any(pattern.search(sentence) for pattern in BOILERPLATE_PATTERNS)


def filter_boilerplate(
    text: str,
    min_sentence_length: int = 20,
    max_chars: int = 50000,
) -> str:
    """Drop navigation and legal boilerplate from page text.

    Args:
        text: Raw page text.
        min_sentence_length: Sentences shorter than this are dropped.
        max_chars: Hard cap on the returned length.

    Returns:
        Filtered text, or "" if nothing substantive remains.
    """
    if not text:
        return ""

    cleaned = collapse_whitespace(text)
    kept = [
        s for s in split_sentences(cleaned)
        if len(s) >= min_sentence_length and not is_boilerplate(s)
    ]
    filtered = " ".join(kept)[:max_chars]
    logger.debug(f"Boilerplate filter: {len(text)} -> {len(filtered)} chars")
    return filtered


def _representative_units(text: str) -> list[str]:
    paragraphs = [collapse_whitespace(p) for p in PARAGRAPH_SPLIT.split(text)]
    paragraphs = [p for p in paragraphs if p]
    if len(paragraphs) >= 3:
        units = paragraphs
    else:
        units = split_sentences(collapse_whitespace(text))
    return [u for u in units if len(u) > MIN_UNIT_CHARS]


def _cut_at_sentence(text: str, max_chars: int) -> str:
    cut = text[:max_chars]
    last_end = max(cut.rfind("."), cut.rfind("!"), cut.rfind("?"))
    if last_end > 0:
        return cut[: last_end + 1]
    return cut


def intelligently_truncate(text: str, max_chars: int = 8000) -> str:
    """Reduce `text` to its introduction, middle and conclusion.

    Takes the first 30%, the centered middle 40% and the last 30% of the
    paragraphs (or sentences, for text without paragraph breaks),
    de-duplicated in order and capped to `max_chars`, ending at the last
    complete sentence under the cap.
    """
    if not text or len(text) <= max_chars:
        return text

    units = _representative_units(text)
    if not units:
        return collapse_whitespace(text)[:max_chars]

    n = len(units)
    intro_count = max(1, math.floor(n * 0.3))
    middle_count = max(1, math.floor(n * 0.4))
    outro_count = max(1, math.floor(n * 0.3))

    middle = n // 2
    selected = (
        units[:intro_count]
        + units[max(0, middle - middle_count // 2): middle + math.ceil(middle_count / 2)]
        + units[-outro_count:]
    )
    unique = list(dict.fromkeys(selected))
    result = " ".join(unique)

    if len(result) > max_chars:
        result = _cut_at_sentence(result, max_chars)

    logger.debug(
        f"Truncated {len(text)} chars to {len(result)} chars "
        f"({len(unique)} of {n} units)"
    )
    return result


def extractive_summary(text: str, max_length: int = 500, max_sentences: int = 5) -> str:
    """Build a summary from the leading sentences of `text`.

    Selects up to `max_sentences` leading sentences that fit within
    `max_length`; falls back to a hard truncation. Non-empty for any text
    that is not blank.
    """
    cleaned = collapse_whitespace(text or "")
    if not cleaned:
        return ""

    sentences = [s.strip() for s in SENTENCE.findall(cleaned)]
    summary = ""
    for sentence in sentences[:max_sentences]:
        candidate = f"{summary} {sentence}" if summary else sentence
        if len(candidate) > max_length:
            break
        summary = candidate

    if not summary:
        summary = cleaned[:max_length].strip()

    if len(cleaned) > len(summary):
        summary += "..."
    return summary
