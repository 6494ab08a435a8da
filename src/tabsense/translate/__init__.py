"""Language-pair translation with cached translators."""

from .cache import TranslationCache, TranslatorCacheEntry, detect_language, normalize_tag
from .structured import translate_fields

__all__ = [
    "TranslationCache",
    "TranslatorCacheEntry",
    "detect_language",
    "normalize_tag",
    "translate_fields",
]
