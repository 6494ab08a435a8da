"""Multi-stage summarization with graceful degradation.

Stages are tried in order until one yields non-empty output:

1. direct      - filtered text submitted whole
2. truncation  - intro/middle/conclusion excerpt submitted
3. chunking    - map-reduce over capacity-sized chunks (exhaustive only)
4. fallback    - deterministic extractive summary (never fails)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..config import ChunkingConfig, SummaryConfig
from ..errors import StageFailed, SummarizationExhausted, SummarizationTimeout
from ..progress import ProgressCallback, emit
from ..providers.base import SummarizerHandle
from ..text.chunker import TextChunker
from ..text.cleaning import (
    collapse_whitespace,
    extractive_summary,
    filter_boilerplate,
    intelligently_truncate,
)
from ..timing import race
from .capacity import CapacityProbe

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT = "Remove boilerplate and navigation text. Focus on substantive content."

REDUCE_CONTEXT = (
    "This is a collection of summaries. Create a cohesive, comprehensive "
    "summary that combines all the key points."
)

# Smallest chunk the map stage will request, whatever the probe reports
MIN_CHUNK_CHARS = 200


@dataclass
class SummarizeOptions:
    """Per-call summarization options."""

    context: str = DEFAULT_CONTEXT
    exhaustive: bool = False  # Allow the map-reduce stage
    on_progress: Optional[ProgressCallback] = None


@dataclass
class SummarizationJob:
    """State of one `summarize()` call."""

    source_text: str
    filtered_text: str = ""
    recursion_depth: int = 0
    chunk_summaries: list[str] = field(default_factory=list)
    result: str = ""
    stage: Optional[str] = None  # Stage that produced `result`


class Strategy:
    """One stage of the fallback chain."""

    name = "strategy"
    message = ""

    def __init__(self, pipeline: "SummarizationPipeline") -> None:
        self._pipeline = pipeline

    async def run(
        self, job: SummarizationJob, summarizer: SummarizerHandle, options: SummarizeOptions
    ) -> str:
        raise NotImplementedError


class DirectStrategy(Strategy):
    name = "direct"
    message = "Generating summary..."

    async def run(self, job, summarizer, options):
        return await self._pipeline.call_summarizer(summarizer, job.filtered_text, options.context)


class TruncationStrategy(Strategy):
    name = "truncation"
    message = "Processing large content..."

    async def run(self, job, summarizer, options):
        budget = self._pipeline.config.truncation_budget
        excerpt = intelligently_truncate(job.filtered_text, budget)
        return await self._pipeline.call_summarizer(summarizer, excerpt, options.context)


class ChunkedStrategy(Strategy):
    name = "chunking"
    message = "Summarizing content in sections..."

    async def run(self, job, summarizer, options):
        return await self._map_reduce(job.source_text, job, summarizer, options, depth=0)

    async def _map_reduce(
        self,
        text: str,
        job: SummarizationJob,
        summarizer: SummarizerHandle,
        options: SummarizeOptions,
        depth: int,
    ) -> str:
        pipeline = self._pipeline
        config = pipeline.config
        probe = pipeline.probe
        job.recursion_depth = depth

        capacity = await probe.capacity(summarizer)
        chunk_chars = max(MIN_CHUNK_CHARS, min(pipeline.chunking.chunk_size, probe.chars_for(capacity)))
        overlap = pipeline.chunking.overlap
        if overlap >= chunk_chars:
            overlap = chunk_chars // 4

        chunks = TextChunker(chunk_size=chunk_chars, overlap=overlap).split(text)
        logger.info(
            f"Split {len(text)} chars into {len(chunks)} chunks "
            f"(chunk size {chunk_chars}, capacity {capacity} tokens, depth {depth})"
        )
        if len(chunks) > config.max_chunks:
            logger.warning(
                f"Limiting to first {config.max_chunks} chunks out of {len(chunks)}"
            )
            chunks = chunks[: config.max_chunks]

        summaries: list[str] = []
        for i, chunk in enumerate(chunks, start=1):
            emit(
                options.on_progress,
                self.name,
                f"Processing chunk {i}/{len(chunks)}...",
                (i - 1) / len(chunks),
            )
            try:
                summaries.append(
                    await pipeline.call_summarizer(summarizer, chunk.text, options.context)
                )
            except Exception as e:
                logger.warning(f"Failed to summarize chunk {i}/{len(chunks)}: {e}")

        if not summaries:
            raise StageFailed("Failed to generate any chunk summaries")

        job.chunk_summaries = summaries
        combined = "\n\n".join(summaries)

        oversized = probe.estimate_tokens(combined) > capacity * config.capacity_ratio
        if oversized and depth + 1 < config.max_recursion_depth and len(combined) < len(text):
            logger.info(f"Recursively summarizing {len(summaries)} summaries (depth {depth + 1})")
            return await self._map_reduce(combined, job, summarizer, options, depth + 1)

        emit(options.on_progress, "combining", "Combining summaries...")
        try:
            return await pipeline.call_summarizer(summarizer, combined, REDUCE_CONTEXT)
        except Exception as e:
            logger.warning(f"Failed to combine chunk summaries, returning them as-is: {e}")
            return combined


class SummarizationPipeline:
    """Summarizes arbitrarily long text under a capacity-limited summarizer.

    `summarize` always returns non-empty output for non-empty input: when
    every generative stage fails the extractive fallback is used.
    """

    def __init__(
        self,
        config: Optional[SummaryConfig] = None,
        chunking: Optional[ChunkingConfig] = None,
        probe: Optional[CapacityProbe] = None,
    ) -> None:
        self.config = config or SummaryConfig()
        self.chunking = chunking or ChunkingConfig()
        self.probe = probe or CapacityProbe(
            fallback_chunk_size=self.chunking.chunk_size,
            chars_per_token=self.config.chars_per_token,
        )

    def strategies(self, options: SummarizeOptions) -> Sequence[Strategy]:
        """Generative stages in the order they are tried."""
        stages: list[Strategy] = [DirectStrategy(self), TruncationStrategy(self)]
        if options.exhaustive:
            stages.append(ChunkedStrategy(self))
        return stages

    async def call_summarizer(
        self, summarizer: SummarizerHandle, text: str, context: Optional[str]
    ) -> str:
        """One time-boxed summarizer call.

        Raises:
            SummarizationTimeout: If the stage timeout elapses first.
            StageFailed: If the summarizer returns nothing.
        """
        timeout = self.config.stage_timeout
        try:
            result = await race(summarizer.summarize(text, context=context), timeout)
        except asyncio.TimeoutError as e:
            raise SummarizationTimeout(f"Summarizer did not respond within {timeout}s") from e

        result = (result or "").strip()
        if not result:
            raise StageFailed("Summarizer returned an empty result")
        return result

    async def run(
        self,
        text: str,
        summarizer: Optional[SummarizerHandle],
        options: Optional[SummarizeOptions] = None,
    ) -> SummarizationJob:
        """Run the fallback chain and return the finished job."""
        options = options or SummarizeOptions()
        job = SummarizationJob(source_text=text or "")
        if not text or not text.strip():
            return job

        job.filtered_text = (
            filter_boilerplate(
                text,
                min_sentence_length=self.config.min_sentence_length,
                max_chars=self.config.max_filtered_chars,
            )
            or collapse_whitespace(text)[: self.config.max_filtered_chars]
        )

        if summarizer is not None:
            try:
                job.result, job.stage = await self._run_generative(job, summarizer, options)
                return job
            except SummarizationExhausted as e:
                logger.warning(f"{e}, using extractive fallback")
        else:
            logger.info("No summarizer available, using extractive fallback")

        emit(options.on_progress, "fallback", "Generating fallback summary...")
        job.result = extractive_summary(
            job.filtered_text,
            max_length=self.config.fallback_length,
            max_sentences=self.config.fallback_max_sentences,
        )
        job.stage = "fallback"
        return job

    async def _run_generative(
        self, job: SummarizationJob, summarizer: SummarizerHandle, options: SummarizeOptions
    ) -> tuple[str, str]:
        for strategy in self.strategies(options):
            emit(options.on_progress, strategy.name, strategy.message)
            try:
                result = await strategy.run(job, summarizer, options)
            except Exception as e:
                logger.info(f"Stage '{strategy.name}' failed: {e}")
                continue
            if result and result.strip():
                logger.info(f"Summary produced by stage '{strategy.name}' ({len(result)} chars)")
                return result.strip(), strategy.name
        raise SummarizationExhausted("All summarization stages failed")

    async def summarize(
        self,
        text: str,
        summarizer: Optional[SummarizerHandle],
        options: Optional[SummarizeOptions] = None,
    ) -> str:
        """Summarize `text`; returns "" only for empty input."""
        job = await self.run(text, summarizer, options)
        return job.result


def resolve_output_language(tag: Optional[str], supported: Sequence[str] = ("en", "es", "ja")) -> str:
    """Map a page language tag to a supported summarizer output language."""
    if not tag:
        return "en"
    base = tag.lower().split("-")[0].split("_")[0]
    return base if base in supported else "en"
