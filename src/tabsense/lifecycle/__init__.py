"""Model session lifecycle: availability, download and readiness."""

from .attempt import DownloadAttempt
from .manager import Readiness, SessionLifecycleManager, build_model_options

__all__ = [
    "DownloadAttempt",
    "Readiness",
    "SessionLifecycleManager",
    "build_model_options",
]
