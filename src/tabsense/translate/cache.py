"""Cached translators keyed by language pair."""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Optional

from ..errors import TranslationUnavailable
from ..progress import ProgressCallback, emit
from ..providers.base import Availability, LanguageDetector, TranslatorHandle, TranslatorProvider

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"


def normalize_tag(tag: Optional[str]) -> str:
    """Lowercase base subtag of a BCP 47 language tag ("pt-BR" -> "pt")."""
    if not tag:
        return ""
    return tag.strip().replace("_", "-").split("-")[0].lower()


async def detect_language(text: str, detector: Optional[LanguageDetector] = None) -> str:
    """Detect the base language of `text`, defaulting to English."""
    if detector is None or not text.strip():
        return DEFAULT_LANGUAGE
    try:
        detected = normalize_tag(await detector.detect(text))
    except Exception as e:
        logger.warning(f"Language detection failed: {e}")
        return DEFAULT_LANGUAGE
    return detected or DEFAULT_LANGUAGE


@dataclass
class TranslatorCacheEntry:
    source: str
    target: str
    translator: TranslatorHandle
    created_at: float = field(default_factory=time.time)

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.target)


class _TranslatorDownloadMonitor:
    """Relays language pack download signals to the status callback."""

    def __init__(self, source: str, target: str, on_progress: Optional[ProgressCallback]) -> None:
        self._pair = f"{source}-{target}"
        self._on_progress = on_progress

    def attach(self) -> None:
        emit(self._on_progress, "translation", f"Downloading {self._pair} language pack...")

    def progress(self, ratio: Optional[float]) -> None:
        if ratio is None:
            return
        logger.debug(f"Downloaded {ratio * 100:.0f}% for {self._pair}")
        emit(
            self._on_progress,
            "translation",
            f"Downloading {self._pair} language pack... {round(ratio * 100)}%",
            ratio,
        )

    def complete(self) -> None:
        emit(self._on_progress, "translation", f"{self._pair} translation ready.", 1.0)

    def fail(self, error: BaseException) -> None:
        logger.warning(f"Language pack download failed for {self._pair}: {error}")


class TranslationCache:
    """Creates translators on demand and keeps them per language pair.

    Entries live in an LRU bounded by `max_entries` (None keeps them all).
    Concurrent requests for a pair that is still being created share the
    same creation, so one key never maps to two translators.
    """

    def __init__(
        self,
        provider: Optional[TranslatorProvider],
        max_entries: Optional[int] = 16,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive or None")
        self._provider = provider
        self._max_entries = max_entries
        self._on_progress = on_progress
        self._entries: OrderedDict[tuple[str, str], TranslatorCacheEntry] = OrderedDict()
        self._pending: dict[tuple[str, str], asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, pair: tuple[str, str]) -> bool:
        source, target = pair
        return (normalize_tag(source), normalize_tag(target)) in self._entries

    def entry(self, source: str, target: str) -> Optional[TranslatorCacheEntry]:
        """Look up a cached entry without touching its recency."""
        return self._entries.get((normalize_tag(source), normalize_tag(target)))

    async def translate(self, text: str, source: str, target: str) -> str:
        """Translate `text`, returning it unchanged on any failure."""
        source, target = normalize_tag(source), normalize_tag(target)
        if source == target or not text:
            return text

        try:
            translator = await self.get_translator(source, target)
            result = await translator.translate(text)
        except Exception as e:
            logger.warning(f"Translation {source}->{target} failed: {e}")
            return text

        if not isinstance(result, str) or not result:
            logger.warning(f"Translation {source}->{target} returned no text")
            return text
        return result

    async def get_translator(self, source: str, target: str) -> TranslatorHandle:
        """Return the cached translator for a pair, creating it if needed.

        Raises:
            TranslationUnavailable: If the pair is unsupported or no
                translation capability exists.
        """
        key = (normalize_tag(source), normalize_tag(target))

        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
            return entry.translator

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._create(*key))
            self._pending[key] = pending
            pending.add_done_callback(lambda _f, key=key: self._pending.pop(key, None))
        return await asyncio.shield(pending)

    async def _create(self, source: str, target: str) -> TranslatorHandle:
        if self._provider is None:
            raise TranslationUnavailable(source, target)

        availability = Availability(await self._provider.availability(source, target))
        if availability is Availability.UNAVAILABLE:
            raise TranslationUnavailable(source, target)

        monitor = _TranslatorDownloadMonitor(source, target, self._on_progress)
        translator = await self._provider.create(source, target, monitor)
        logger.info(f"Created translator {source}->{target} ({availability.value})")

        entry = TranslatorCacheEntry(source, target, translator, created_at=time.time())
        self._entries[entry.key] = entry
        self._evict()
        return translator

    def _evict(self) -> None:
        if self._max_entries is None:
            return
        while len(self._entries) > self._max_entries:
            key, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted translator {key[0]}->{key[1]}")

    def clear(self) -> None:
        self._entries.clear()
