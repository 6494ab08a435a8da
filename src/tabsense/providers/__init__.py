"""Capability interfaces and concrete providers."""

from .base import (
    Availability,
    DownloadMonitor,
    KeyValueStore,
    LanguageDetector,
    PageSource,
    SessionHandle,
    SessionProvider,
    SummarizerHandle,
    SummarizerProvider,
    TranslatorHandle,
    TranslatorProvider,
)

__all__ = [
    "Availability",
    "DownloadMonitor",
    "KeyValueStore",
    "LanguageDetector",
    "PageSource",
    "SessionHandle",
    "SessionProvider",
    "SummarizerHandle",
    "SummarizerProvider",
    "TranslatorHandle",
    "TranslatorProvider",
]
