"""Interfaces of the external capabilities tabsense consumes."""

from enum import Enum
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Protocol, runtime_checkable


class Availability(str, Enum):
    """Availability reported by an on-device capability."""

    UNAVAILABLE = "unavailable"
    DOWNLOADABLE = "downloadable"
    DOWNLOADING = "downloading"
    AVAILABLE = "available"


@runtime_checkable
class DownloadMonitor(Protocol):
    """Receives download signals from a provider.

    Signals may arrive in any order and more than once; receivers must
    tolerate late or repeated calls.
    """

    def attach(self) -> None: ...

    def progress(self, ratio: Optional[float]) -> None: ...

    def complete(self) -> None: ...

    def fail(self, error: BaseException) -> None: ...


class SessionHandle(Protocol):
    """A live generative-model session."""

    def prompt_streaming(self, prompt: str) -> AsyncIterator[str]: ...

    async def destroy(self) -> None: ...


class SessionProvider(Protocol):
    """Factory for generative-model sessions.

    The same options object is passed to every `availability` and `create`
    call of one manager.
    """

    async def availability(self, options: Mapping[str, Any]) -> Availability: ...

    async def create(
        self, options: Mapping[str, Any], monitor: Optional[DownloadMonitor] = None
    ) -> SessionHandle: ...


class SummarizerHandle(Protocol):
    """A summarizer with a bounded input capacity."""

    input_quota: Optional[int]

    async def summarize(self, text: str, context: Optional[str] = None) -> str: ...

    async def measure_input_usage(self, text: str) -> int: ...


class SummarizerProvider(Protocol):
    async def availability(self) -> Availability: ...

    async def create(self, options: Mapping[str, Any]) -> SummarizerHandle: ...


class TranslatorHandle(Protocol):
    async def translate(self, text: str) -> str: ...


class TranslatorProvider(Protocol):
    async def availability(self, source: str, target: str) -> Availability: ...

    async def create(
        self, source: str, target: str, monitor: Optional[DownloadMonitor] = None
    ) -> TranslatorHandle: ...


class LanguageDetector(Protocol):
    async def detect(self, text: str) -> str: ...


class KeyValueStore(Protocol):
    """Opaque persistent key-value storage owned by the host."""

    async def get(self, keys: Iterable[str]) -> dict[str, Any]: ...

    async def set(self, items: Mapping[str, Any]) -> None: ...

    async def remove(self, keys: Iterable[str]) -> None: ...


class PageSource(Protocol):
    """Text and language of the page the panel is attached to."""

    async def get_page_text(self) -> str: ...

    async def get_page_language(self) -> Optional[str]: ...
