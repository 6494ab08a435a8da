"""Pytest configuration and fixtures for tabsense tests."""

import asyncio
from pathlib import Path
from typing import Any, Callable, Optional, Union

import pytest

from tabsense.config import ChunkingConfig, SessionConfig, SummaryConfig
from tabsense.providers.base import Availability, DownloadMonitor
from tabsense.store import MemoryStore


class FakeSession:
    """Session handle that streams canned chunks."""

    def __init__(self, chunks: Optional[list[str]] = None, error: Optional[Exception] = None):
        self.chunks = chunks if chunks is not None else ["Hello", ", ", "world"]
        self.error = error
        self.prompts: list[str] = []
        self.destroyed = False

    async def prompt_streaming(self, prompt: str):
        self.prompts.append(prompt)
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    async def destroy(self) -> None:
        self.destroyed = True


class FakeSessionProvider:
    """Session provider whose download is driven by the test.

    Modes:
        "download": attach the monitor and return; the test signals
            progress/completion through `self.monitor`.
        "silent": return without touching the monitor.
    """

    def __init__(
        self,
        availability: Union[Availability, Exception, list] = Availability.AVAILABLE,
        mode: str = "download",
        create_error: Optional[Exception] = None,
        availability_delay: float = 0.0,
        session: Optional[FakeSession] = None,
    ):
        self._availability = availability
        self.mode = mode
        self.create_error = create_error
        self.availability_delay = availability_delay
        self.session = session or FakeSession()
        self.monitor: Optional[DownloadMonitor] = None
        self.availability_calls = 0
        self.create_calls = 0
        self.options_seen: list[Any] = []

    async def availability(self, options):
        self.availability_calls += 1
        self.options_seen.append(options)
        if self.availability_delay:
            await asyncio.sleep(self.availability_delay)

        result = self._availability
        if isinstance(result, list):
            result = result.pop(0) if len(result) > 1 else result[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def create(self, options, monitor=None):
        self.create_calls += 1
        self.options_seen.append(options)
        self.monitor = monitor
        if self.create_error is not None:
            raise self.create_error
        if monitor is not None and self.mode == "download":
            monitor.attach()
        return self.session


class FakeSummarizer:
    """Summarizer driven by a function of (text, context)."""

    def __init__(
        self,
        respond: Optional[Callable[[str, Optional[str]], Any]] = None,
        input_quota: Optional[int] = None,
        usage: int = 0,
        delay: float = 0.0,
    ):
        self.respond = respond or (lambda text, context: "A short summary.")
        self.input_quota = input_quota
        self.usage = usage
        self.delay = delay
        self.calls: list[tuple[str, Optional[str]]] = []

    async def summarize(self, text: str, context: Optional[str] = None) -> str:
        self.calls.append((text, context))
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.respond(text, context)
        if isinstance(result, Exception):
            raise result
        return result

    async def measure_input_usage(self, text: str) -> int:
        return self.usage + len(text) // 4


class FakeSummarizerProvider:
    def __init__(self, summarizer: Optional[FakeSummarizer] = None, availability=Availability.AVAILABLE):
        self.summarizer = summarizer or FakeSummarizer()
        self._availability = availability
        self.options_seen: list[Any] = []

    async def availability(self):
        return self._availability

    async def create(self, options):
        self.options_seen.append(options)
        return self.summarizer


class FakeTranslator:
    def __init__(self, source: str, target: str, error: Optional[Exception] = None):
        self.source = source
        self.target = target
        self.error = error
        self.calls: list[str] = []

    async def translate(self, text: str) -> str:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return f"[{self.target}] {text}"


class FakeTranslatorProvider:
    def __init__(
        self,
        supported: tuple[str, ...] = ("en", "es", "ja", "fr"),
        create_delay: float = 0.0,
        translate_error: Optional[Exception] = None,
    ):
        self.supported = supported
        self.create_delay = create_delay
        self.translate_error = translate_error
        self.created: list[tuple[str, str]] = []
        self.availability_calls = 0

    async def availability(self, source: str, target: str):
        self.availability_calls += 1
        if source in self.supported and target in self.supported:
            return Availability.AVAILABLE
        return Availability.UNAVAILABLE

    async def create(self, source: str, target: str, monitor=None):
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        self.created.append((source, target))
        return FakeTranslator(source, target, self.translate_error)


class FakeDetector:
    def __init__(self, language: Union[str, Exception] = "en"):
        self.language = language

    async def detect(self, text: str) -> str:
        if isinstance(self.language, Exception):
            raise self.language
        return self.language


@pytest.fixture
def session_config() -> SessionConfig:
    """Session config with timers short enough for tests."""
    return SessionConfig(
        stall_timeout=0.2,
        download_timeout=2.0,
        max_retries=3,
        availability_timeout=0.05,
        download_start_warning=0.5,
        attach_grace=0.01,
        preparing_delay=0.01,
    )


@pytest.fixture
def summary_config() -> SummaryConfig:
    return SummaryConfig(stage_timeout=0.5)


@pytest.fixture
def chunking_config() -> ChunkingConfig:
    return ChunkingConfig(chunk_size=3000, overlap=200)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def statuses() -> list:
    """Collects ProgressUpdates; pass `statuses.append` as the callback."""
    return []


@pytest.fixture
def article_text() -> str:
    """Multi-paragraph page text with some boilerplate mixed in."""
    paragraphs = [
        f"Paragraph {i} explains an important part of the topic in plain words. "
        f"It adds supporting detail number {i} so the reader can follow along easily."
        for i in range(1, 31)
    ]
    paragraphs.insert(3, "Click here to subscribe to our newsletter for more updates.")
    paragraphs.append("Copyright 2024 Example Media. All rights reserved.")
    return "\n\n".join(paragraphs)


@pytest.fixture
def temp_config(tmp_path: Path) -> Path:
    """Create temporary config file.

    Returns:
        Path to config file.
    """
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
session:
  stall_timeout: 60
  max_retries: 5
chunking:
  chunk_size: 1500
summary:
  output_languages: [en, fr]
ollama:
  model: qwen2.5:1.5b
logging:
  level: DEBUG
"""
    )
    return config_path
