"""Runtime query of a summarizer's remaining input capacity."""

import logging
import math
from typing import Optional

from ..providers.base import SummarizerHandle

logger = logging.getLogger(__name__)


class CapacityProbe:
    """Computes how many tokens a summarizer can still accept.

    Capacity is `input_quota - measure_input_usage("")`, the quota left
    after the summarizer's own prompt scaffolding. When the summarizer
    cannot be measured the probe falls back to `fallback_chunk_size / 4`.
    """

    # Rough estimate: ~4 characters per token
    CHARS_PER_TOKEN = 4

    def __init__(self, fallback_chunk_size: int = 3000, chars_per_token: int = CHARS_PER_TOKEN) -> None:
        self._fallback_chunk_size = fallback_chunk_size
        self._chars_per_token = chars_per_token

    async def measure(self, summarizer: SummarizerHandle) -> Optional[int]:
        """Measured remaining capacity in tokens, or None if unmeasurable."""
        quota = getattr(summarizer, "input_quota", None)
        measure = getattr(summarizer, "measure_input_usage", None)
        if quota is None or measure is None:
            return None

        try:
            baseline = await measure("")
        except Exception as e:
            logger.warning(f"Could not measure token capacity: {e}")
            return None

        if baseline is None:
            return None
        available = int(quota) - int(baseline)
        logger.debug(f"Token capacity: {available} available out of {quota} total")
        return max(available, 0)

    async def capacity(self, summarizer: SummarizerHandle) -> int:
        """Remaining capacity in tokens, estimated when unmeasurable."""
        available = await self.measure(summarizer)
        if available is None:
            return self._fallback_chunk_size // self._chars_per_token
        return available

    def estimate_tokens(self, text: str) -> int:
        """Token estimate for `text`."""
        return math.ceil(len(text) / self._chars_per_token)

    def chars_for(self, tokens: int) -> int:
        """Character budget matching a token count."""
        return tokens * self._chars_per_token
