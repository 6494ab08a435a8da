"""Tests for the summarization pipeline and capacity probe."""

import asyncio

import pytest

from conftest import FakeSummarizer
from tabsense.config import SummaryConfig
from tabsense.summarize import (
    CapacityProbe,
    SummarizationPipeline,
    SummarizeOptions,
    resolve_output_language,
)
from tabsense.summarize.pipeline import REDUCE_CONTEXT


def fail_long(limit: int):
    """Summarizer response that rejects inputs longer than `limit`."""

    def respond(text, context):
        if context == REDUCE_CONTEXT:
            return "Combined summary of every section."
        if len(text) > limit:
            return RuntimeError("The input is too large")
        return "Summary of one section."

    return respond


class TestCapacityProbe:
    """Tests for CapacityProbe."""

    @pytest.mark.asyncio
    async def test_measured_capacity(self):
        probe = CapacityProbe()
        summarizer = FakeSummarizer(input_quota=1000, usage=120)

        assert await probe.measure(summarizer) == 880
        assert await probe.capacity(summarizer) == 880

    @pytest.mark.asyncio
    async def test_unmeasurable_falls_back_to_estimate(self):
        probe = CapacityProbe(fallback_chunk_size=3000)
        summarizer = FakeSummarizer(input_quota=None)

        assert await probe.measure(summarizer) is None
        assert await probe.capacity(summarizer) == 750

    @pytest.mark.asyncio
    async def test_measure_error_falls_back(self):
        class Broken(FakeSummarizer):
            async def measure_input_usage(self, text):
                raise RuntimeError("not supported")

        probe = CapacityProbe(fallback_chunk_size=2000)
        assert await probe.capacity(Broken(input_quota=500)) == 500

    def test_estimates(self):
        probe = CapacityProbe()
        assert probe.estimate_tokens("abcde") == 2
        assert probe.chars_for(10) == 40


class TestSummarizationPipeline:
    """Tests for the staged fallback chain."""

    @pytest.mark.asyncio
    async def test_empty_input(self, summary_config):
        summarizer = FakeSummarizer()
        pipeline = SummarizationPipeline(summary_config)

        assert await pipeline.summarize("", summarizer) == ""
        assert await pipeline.summarize("   \n ", summarizer) == ""
        assert summarizer.calls == []

    @pytest.mark.asyncio
    async def test_direct_stage(self, summary_config, article_text):
        summarizer = FakeSummarizer()
        pipeline = SummarizationPipeline(summary_config)

        job = await pipeline.run(article_text, summarizer)

        assert job.stage == "direct"
        assert job.result == "A short summary."
        assert len(summarizer.calls) == 1

    @pytest.mark.asyncio
    async def test_direct_input_is_filtered(self, summary_config, article_text):
        summarizer = FakeSummarizer()
        pipeline = SummarizationPipeline(summary_config)

        await pipeline.summarize(article_text, summarizer)

        sent, context = summarizer.calls[0]
        assert "newsletter" not in sent
        assert "All rights reserved" not in sent
        assert "Paragraph 1 explains" in sent
        assert context == SummarizeOptions().context

    @pytest.mark.asyncio
    async def test_falls_through_to_truncation(self, article_text):
        config = SummaryConfig(truncation_budget=2000)
        summarizer = FakeSummarizer(fail_long(2500))
        pipeline = SummarizationPipeline(config)
        stages = []

        job = await pipeline.run(
            article_text,
            summarizer,
            SummarizeOptions(on_progress=lambda u: stages.append(u.stage)),
        )

        assert job.stage == "truncation"
        assert stages == ["direct", "truncation"]
        assert len(summarizer.calls[1][0]) <= 2000

    @pytest.mark.asyncio
    async def test_direct_timeout_falls_through_to_truncation(self):
        class SlowOnFullText(FakeSummarizer):
            async def summarize(self, text, context=None):
                if len(text) > 8000:
                    await asyncio.sleep(0.3)
                return await super().summarize(text, context)

        text = "\n\n".join(
            f"Paragraph {i} describes one more finding from the field survey in detail."
            for i in range(160)
        )
        assert len(text) >= 10000
        summarizer = SlowOnFullText()
        pipeline = SummarizationPipeline(SummaryConfig(stage_timeout=0.05))

        job = await pipeline.run(text, summarizer)

        assert job.stage == "truncation"
        assert job.result == "A short summary."
        assert len(summarizer.calls) == 2
        assert len(summarizer.calls[1][0]) <= 8000

    @pytest.mark.asyncio
    async def test_map_reduce_reaches_body_after_heading(self):
        def respond(text, context):
            if context == REDUCE_CONTEXT:
                return "Combined summary of every section."
            if len(text) > 1000:
                return RuntimeError("The input is too large")
            return f"S({text.split()[0]})"

        text = "\n" * 50 + "Heading\n\n" + "word " * 2000
        summarizer = FakeSummarizer(respond, input_quota=300, usage=50)
        pipeline = SummarizationPipeline(SummaryConfig())

        job = await pipeline.run(text, summarizer, SummarizeOptions(exhaustive=True))

        assert job.stage == "chunking"
        assert job.chunk_summaries.count("S(Heading)") == 1
        assert "S(word)" in job.chunk_summaries

    @pytest.mark.asyncio
    async def test_chunking_only_when_exhaustive(self, article_text):
        summarizer = FakeSummarizer(fail_long(1000), input_quota=300, usage=50)
        pipeline = SummarizationPipeline(SummaryConfig())
        stages = []

        job = await pipeline.run(
            article_text,
            summarizer,
            SummarizeOptions(on_progress=lambda u: stages.append(u.stage)),
        )

        assert job.stage == "fallback"
        assert "chunking" not in stages
        assert stages[-1] == "fallback"
        assert job.result

    @pytest.mark.asyncio
    async def test_exhaustive_map_reduce(self, article_text):
        summarizer = FakeSummarizer(fail_long(1000), input_quota=300, usage=50)
        pipeline = SummarizationPipeline(SummaryConfig())
        stages = []

        job = await pipeline.run(
            article_text,
            summarizer,
            SummarizeOptions(exhaustive=True, on_progress=lambda u: stages.append(u.stage)),
        )

        assert job.stage == "chunking"
        assert job.result == "Combined summary of every section."
        assert len(job.chunk_summaries) > 1
        assert stages[:3] == ["direct", "truncation", "chunking"]
        assert "combining" in stages
        # Every map call stayed within the probed capacity
        map_calls = [text for text, context in summarizer.calls if context != REDUCE_CONTEXT]
        assert all(len(text) <= 1000 for text in map_calls[2:])

    @pytest.mark.asyncio
    async def test_chunk_limit(self, article_text):
        summarizer = FakeSummarizer(fail_long(1000), input_quota=100, usage=0)
        pipeline = SummarizationPipeline(SummaryConfig(max_chunks=3))

        job = await pipeline.run(article_text, summarizer, SummarizeOptions(exhaustive=True))

        assert len(job.chunk_summaries) == 3

    @pytest.mark.asyncio
    async def test_reduce_failure_returns_combined(self, article_text):
        def respond(text, context):
            if context == REDUCE_CONTEXT or len(text) > 1000:
                return RuntimeError("failed")
            return "Section summary."

        summarizer = FakeSummarizer(respond, input_quota=300, usage=50)
        pipeline = SummarizationPipeline(SummaryConfig())

        job = await pipeline.run(article_text, summarizer, SummarizeOptions(exhaustive=True))

        assert job.stage == "chunking"
        assert job.result.startswith("Section summary.")

    @pytest.mark.asyncio
    async def test_stage_timeout_uses_fallback(self, article_text):
        summarizer = FakeSummarizer(delay=0.2)
        pipeline = SummarizationPipeline(SummaryConfig(stage_timeout=0.05))

        job = await pipeline.run(article_text, summarizer)

        assert job.stage == "fallback"
        assert job.result.startswith("Paragraph 1 explains")

    @pytest.mark.asyncio
    async def test_empty_result_is_a_failure(self, article_text, summary_config):
        summarizer = FakeSummarizer(lambda text, context: "   ")
        pipeline = SummarizationPipeline(summary_config)

        job = await pipeline.run(article_text, summarizer)

        assert job.stage == "fallback"

    @pytest.mark.asyncio
    async def test_without_summarizer(self, summary_config):
        pipeline = SummarizationPipeline(summary_config)
        text = "Short text without terminators but with content"

        result = await pipeline.summarize(text, None)

        assert result == text

    @pytest.mark.asyncio
    async def test_boilerplate_only_page_still_summarized(self, summary_config):
        pipeline = SummarizationPipeline(summary_config)

        result = await pipeline.summarize("Privacy policy. Click here.", None)

        assert result


@pytest.mark.parametrize(
    "tag,expected",
    [
        ("es-MX", "es"),
        ("ja", "ja"),
        ("EN_us", "en"),
        ("de", "en"),
        (None, "en"),
        ("", "en"),
    ],
)
def test_resolve_output_language(tag, expected):
    assert resolve_output_language(tag) == expected
