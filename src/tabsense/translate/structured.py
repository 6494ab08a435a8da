"""Translation of structured summary responses."""

import copy
import logging
from typing import Any

from .cache import TranslationCache

logger = logging.getLogger(__name__)


async def translate_fields(
    cache: TranslationCache, data: dict[str, Any], source: str, target: str
) -> dict[str, Any]:
    """Translate the text fields of a structured response.

    Handles `title`, `summary`, `sections[].heading|content|points[]` and
    `key_takeaways[]`. Returns a translated copy; the input is returned
    as-is if anything goes wrong.
    """
    try:
        result = copy.deepcopy(data)

        for name in ("title", "summary"):
            if isinstance(result.get(name), str) and result[name]:
                result[name] = await cache.translate(result[name], source, target)

        sections = result.get("sections")
        if isinstance(sections, list):
            for section in sections:
                if not isinstance(section, dict):
                    continue
                for name in ("heading", "content"):
                    if isinstance(section.get(name), str) and section[name]:
                        section[name] = await cache.translate(section[name], source, target)
                points = section.get("points")
                if isinstance(points, list):
                    section["points"] = [await _translate_item(cache, p, source, target) for p in points]

        takeaways = result.get("key_takeaways")
        if isinstance(takeaways, list):
            result["key_takeaways"] = [
                await _translate_item(cache, t, source, target) for t in takeaways
            ]

        return result
    except Exception as e:
        logger.warning(f"Failed to translate structured response: {e}")
        return data


async def _translate_item(cache: TranslationCache, item: Any, source: str, target: str) -> Any:
    if isinstance(item, str) and item:
        return await cache.translate(item, source, target)
    return item
