"""Progress/status updates delivered to the UI layer."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressUpdate:
    """A status line for display."""

    stage: str
    message: str
    ratio: Optional[float] = None  # 0..1, or None when indeterminate

    @property
    def percent(self) -> Optional[int]:
        """Ratio as a rounded percentage."""
        if self.ratio is None:
            return None
        return round(self.ratio * 100)


ProgressCallback = Callable[[ProgressUpdate], None]


def emit(callback: Optional[ProgressCallback], stage: str, message: str, ratio: Optional[float] = None) -> None:
    """Deliver an update, isolating the caller from callback errors."""
    if callback is None:
        return
    try:
        callback(ProgressUpdate(stage=stage, message=message, ratio=ratio))
    except Exception as e:
        logger.error(f"Error in progress callback: {e}")
