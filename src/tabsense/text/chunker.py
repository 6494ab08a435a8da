"""Recursive character splitting into bounded, overlapping chunks."""

from dataclasses import dataclass
from typing import Iterator

PARAGRAPH_BREAK = "\n\n"
SENTENCE_TERMINATORS = (". ", ".\n", "! ", "!\n", "? ", "?\n")
WORD_BREAKS = (" ", "\n", "\t")


@dataclass(frozen=True)
class TextChunk:
    """A slice of the source text.

    `start`/`end` are offsets of `text` in the source (after trimming).
    """

    index: int
    start: int
    end: int
    text: str


class TextChunker:
    """Splits text at natural boundaries.

    Boundary preference inside each window: paragraph break, sentence
    terminator, whitespace, hard cut.
    """

    def __init__(self, chunk_size: int = 3000, overlap: int = 200) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ValueError(f"overlap must not be negative, got {overlap}")
        self.chunk_size = chunk_size
        self.overlap = overlap

    def split(self, text: str) -> list[TextChunk]:
        """Split `text` eagerly."""
        return list(self.iter_chunks(text))

    def iter_chunks(self, text: str) -> Iterator[TextChunk]:
        """Yield chunks lazily; call again to restart."""
        index = 0
        start = _skip_whitespace(text, 0)
        previous_end = 0
        while start < len(text):
            end = min(start + self.chunk_size, len(text))
            last_window = end >= len(text)
            if not last_window:
                end = self._boundary(text, start, end, max(start, previous_end))

            body = text[start:end].rstrip()
            yield TextChunk(index=index, start=start, end=start + len(body), text=body)
            index += 1

            if last_window:
                break
            # Overlap only when it still moves the window forward
            next_start = end - self.overlap
            if next_start <= start:
                next_start = end
            previous_end = end
            start = _skip_whitespace(text, next_start)

    @staticmethod
    def _boundary(text: str, start: int, end: int, floor: int) -> int:
        """Pick the chunk end for the window [start, end), past `floor`."""
        paragraph = text.rfind(PARAGRAPH_BREAK, start, end)
        if paragraph >= 0 and paragraph + len(PARAGRAPH_BREAK) > floor:
            return paragraph + len(PARAGRAPH_BREAK)

        sentence = max(text.rfind(t, start, end) for t in SENTENCE_TERMINATORS)
        if sentence >= 0 and sentence + 2 > floor:
            return sentence + 2

        word = max(text.rfind(w, start, end) for w in WORD_BREAKS)
        if word >= 0 and word + 1 > floor:
            return word + 1

        return end


def _skip_whitespace(text: str, position: int) -> int:
    while position < len(text) and text[position].isspace():
        position += 1
    return position


def split_text(text: str, chunk_size: int = 3000, overlap: int = 200) -> list[TextChunk]:
    """Split `text` into chunks of at most `chunk_size` characters."""
    return TextChunker(chunk_size=chunk_size, overlap=overlap).split(text)
