"""Tests for chunking and deterministic text reduction."""

import pytest

from tabsense.text import (
    TextChunker,
    collapse_whitespace,
    extractive_summary,
    filter_boilerplate,
    intelligently_truncate,
    split_text,
)


def covered(text: str, chunks) -> bool:
    """Every non-whitespace character falls inside some chunk."""
    positions = set()
    for chunk in chunks:
        positions.update(range(chunk.start, chunk.end))
    return all(i in positions for i, ch in enumerate(text) if not ch.isspace())


class TestTextChunker:
    """Tests for TextChunker."""

    def test_empty_text(self):
        assert split_text("") == []
        assert split_text("   \n\n  ") == []

    def test_short_text_single_chunk(self):
        chunks = split_text("  A short page.  ", chunk_size=100)
        assert len(chunks) == 1
        assert chunks[0].text == "A short page."
        assert (chunks[0].start, chunks[0].end) == (2, 15)

    def test_invalid_sizes(self):
        with pytest.raises(ValueError):
            TextChunker(chunk_size=0)
        with pytest.raises(ValueError):
            TextChunker(chunk_size=100, overlap=-1)

    def test_chunks_respect_size(self, article_text):
        chunks = split_text(article_text, chunk_size=500, overlap=50)
        assert len(chunks) > 1
        assert all(len(c.text) <= 500 for c in chunks)

    def test_offsets_match_source(self, article_text):
        chunks = split_text(article_text, chunk_size=400, overlap=80)
        for chunk in chunks:
            assert article_text[chunk.start:chunk.end] == chunk.text
        assert [c.index for c in chunks] == list(range(len(chunks)))

    def test_chunks_cover_text(self, article_text):
        chunks = split_text(article_text, chunk_size=300, overlap=40)
        assert covered(article_text, chunks)

    def test_prefers_paragraph_breaks(self):
        text = ("First paragraph sentence. " * 3).strip() + "\n\n" + "Second paragraph " * 10
        chunks = split_text(text, chunk_size=120, overlap=0)
        assert chunks[0].text.endswith("sentence.")

    def test_falls_back_to_sentences(self):
        text = "One sentence here. Another sentence follows. " * 5
        chunks = split_text(text, chunk_size=60, overlap=0)
        assert chunks[0].text.endswith(".")

    def test_hard_cut_without_whitespace(self):
        text = "x" * 1000
        chunks = split_text(text, chunk_size=100, overlap=10)

        assert all(len(c.text) == 100 for c in chunks[:-1])
        assert chunks[1].start == 90
        assert chunks[-1].end == 1000
        assert covered(text, chunks)

    def test_overlap_larger_than_chunk_terminates(self):
        chunks = split_text("y" * 50, chunk_size=10, overlap=20)
        assert chunks[-1].end == 50
        assert len(chunks) <= 50

    def test_iter_chunks_is_restartable(self, article_text):
        chunker = TextChunker(chunk_size=500, overlap=50)
        assert list(chunker.iter_chunks(article_text)) == list(chunker.iter_chunks(article_text))

    def test_leading_whitespace_before_heading(self):
        text = "\n" * 50 + "Heading\n\n" + "word " * 2000
        chunks = split_text(text, chunk_size=3000, overlap=200)

        assert chunks[0].text == "Heading"
        assert chunks[0].start == 50
        assert [c.text for c in chunks].count("Heading") == 1
        assert chunks[1].text.startswith("word")
        assert len(chunks) < 10

    def test_chunk_never_inside_previous(self):
        text = "Intro paragraph.\n\n" + "body text " * 300
        chunks = split_text(text, chunk_size=500, overlap=100)

        for previous, chunk in zip(chunks, chunks[1:]):
            assert chunk.end > previous.end


def generated_pages() -> list[str]:
    return [
        "\n" * 50 + "Heading\n\n" + "word " * 400,
        "   \t\n" + "Title\n\n" + "\n\n".join(f"Point {i} is short." for i in range(60)),
        " " * 300 + "x" * 1000 + " trailing words after the token",
        "short\n\n" * 100,
        ("Some intro words. " + "z" * 700 + " and more words follow here. ") * 5,
        "\n\n\n".join("Line one.\nLine two!\tLine three? " * 3 for _ in range(20)),
    ]


@pytest.mark.parametrize("text", generated_pages())
@pytest.mark.parametrize("chunk_size,overlap", [(50, 0), (100, 20), (300, 250)])
def test_chunk_invariants(text, chunk_size, overlap):
    chunks = split_text(text, chunk_size=chunk_size, overlap=overlap)

    assert chunks
    starts = [c.start for c in chunks]
    assert all(a < b for a, b in zip(starts, starts[1:]))
    for chunk in chunks:
        assert chunk.text
        assert chunk.text == chunk.text.strip()
        assert len(chunk.text) <= chunk_size
        assert text[chunk.start:chunk.end] == chunk.text
    assert covered(text, chunks)


class TestFilterBoilerplate:
    """Tests for boilerplate removal."""

    def test_removes_boilerplate_sentences(self):
        text = (
            "The committee approved the new budget after a long debate. "
            "Click here to read the full report. "
            "Subscribe to our newsletter for weekly updates. "
            "Funding for public libraries will increase next year. "
            "Copyright 2024 The Daily Paper."
        )
        result = filter_boilerplate(text)

        assert "committee approved" in result
        assert "public libraries" in result
        assert "Click here" not in result
        assert "newsletter" not in result
        assert "Copyright" not in result

    def test_drops_short_fragments(self):
        result = filter_boilerplate("Home. Menu. This is the substantive sentence of the page.")
        assert result == "This is the substantive sentence of the page."

    def test_caps_length(self):
        text = "This sentence has enough words to be kept. " * 100
        assert len(filter_boilerplate(text, max_chars=100)) == 100

    def test_empty(self):
        assert filter_boilerplate("") == ""

    def test_collapse_whitespace(self):
        assert collapse_whitespace("  a\n\n b\t c  ") == "a b c"


class TestIntelligentlyTruncate:
    """Tests for intro/middle/conclusion truncation."""

    def test_short_text_unchanged(self):
        assert intelligently_truncate("Short text.", 100) == "Short text."

    def test_respects_budget(self, article_text):
        result = intelligently_truncate(article_text, 1000)
        assert 0 < len(result) <= 1000
        assert result.endswith(".")

    def test_keeps_introduction_and_conclusion(self):
        paragraphs = [
            f"Section {i} of the report covers one specific finding in some depth here."
            for i in range(10)
        ]
        text = "\n\n".join(paragraphs)

        result = intelligently_truncate(text, len(text) - 1)

        assert result.startswith("Section 0 ")
        assert "Section 9 " in result
        assert result.count("Section 5 ") == 1

    def test_no_representative_units(self):
        text = "tiny. " * 50
        assert intelligently_truncate(text, 40) == collapse_whitespace(text)[:40]


class TestExtractiveSummary:
    """Tests for the extractive fallback."""

    def test_blank_input(self):
        assert extractive_summary("") == ""
        assert extractive_summary("   ") == ""

    def test_leading_sentences(self):
        text = "First point. Second point. Third point. Fourth point."
        assert extractive_summary(text, max_sentences=2) == "First point. Second point...."

    def test_fits_whole_text(self):
        assert extractive_summary("Only one sentence.") == "Only one sentence."

    def test_respects_max_length(self):
        text = "A fairly long opening sentence that goes on. " * 20
        result = extractive_summary(text, max_length=100)
        assert len(result) <= 103
        assert result.endswith("...")

    def test_non_empty_without_terminators(self):
        text = "word " * 300
        result = extractive_summary(text, max_length=50)
        assert result.startswith("word word")
        assert result.endswith("...")
