"""Text chunking and deterministic reduction helpers."""

from .chunker import TextChunk, TextChunker, split_text
from .cleaning import (
    collapse_whitespace,
    extractive_summary,
    filter_boilerplate,
    intelligently_truncate,
    split_sentences,
)

__all__ = [
    "TextChunk",
    "TextChunker",
    "collapse_whitespace",
    "extractive_summary",
    "filter_boilerplate",
    "intelligently_truncate",
    "split_sentences",
    "split_text",
]
