"""Error taxonomy and failure classification for tabsense."""

from enum import Enum
from typing import Optional, Union


class ErrorKind(str, Enum):
    """Top-level error classes surfaced to callers."""

    UNAVAILABLE = "unavailable"
    DOWNLOAD_TIMEOUT = "download_timeout"
    DOWNLOAD_STALLED = "download_stalled"
    DOWNLOAD_FAILED = "download_failed"
    ACTIVATION_REQUIRED = "activation_required"
    SESSION_LOST = "session_lost"
    SESSION_NOT_READY = "session_not_ready"
    SUMMARIZATION_TIMEOUT = "summarization_timeout"
    SUMMARIZATION_EXHAUSTED = "summarization_exhausted"
    TRANSLATION_UNAVAILABLE = "translation_unavailable"


class FailureReason(str, Enum):
    """Cause inferred from the failure text."""

    NETWORK = "network"
    DISK = "disk"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    ACTIVATION = "activation"
    UNKNOWN = "unknown"


# Checked in order; first match wins
_REASON_MARKERS: list[tuple[FailureReason, tuple[str, ...]]] = [
    (FailureReason.NETWORK, ("network", "fetch", "connection")),
    (FailureReason.DISK, ("disk", "space", "storage")),
    (FailureReason.PERMISSION, ("permission", "denied")),
    (FailureReason.TIMEOUT, ("timeout", "timed out")),
    (FailureReason.ACTIVATION, ("user gesture", "gesture", "activation")),
]

GUIDANCE: dict[FailureReason, str] = {
    FailureReason.NETWORK: "Network error: check your internet connection and try again.",
    FailureReason.DISK: "Not enough disk space: free up storage and try again.",
    FailureReason.PERMISSION: (
        "Permission denied: make sure on-device AI features are enabled."
    ),
    FailureReason.TIMEOUT: (
        "The download took too long. Check your connection and try again."
    ),
    FailureReason.ACTIVATION: (
        "A fresh user action is required: trigger the request again to start the download."
    ),
}


class TabsenseError(Exception):
    """Base class for all tabsense errors."""


class SessionError(TabsenseError):
    """Classified failure of the on-device model session.

    Attributes:
        kind: Top-level error class.
        reason: Cause inferred from the failure text.
        raw_message: Original failure text, kept for display.
    """

    kind: ErrorKind = ErrorKind.DOWNLOAD_FAILED

    def __init__(
        self,
        raw_message: str,
        reason: FailureReason = FailureReason.UNKNOWN,
        kind: Optional[ErrorKind] = None,
    ) -> None:
        super().__init__(raw_message)
        self.raw_message = raw_message
        self.reason = reason
        if kind is not None:
            self.kind = kind

    @property
    def guidance(self) -> str:
        """User-actionable message for this failure."""
        if self.reason in GUIDANCE:
            return GUIDANCE[self.reason]
        return f"Download failed: {self.raw_message}. Please try again."


class Unavailable(SessionError):
    """The on-device capability does not exist on this host."""

    kind = ErrorKind.UNAVAILABLE

    @property
    def guidance(self) -> str:
        return "On-device AI is not available on this device."


class DownloadFailed(SessionError):
    """The provider reported a download failure."""

    kind = ErrorKind.DOWNLOAD_FAILED


class DownloadTimeout(SessionError):
    """The download exceeded its master deadline."""

    kind = ErrorKind.DOWNLOAD_TIMEOUT

    def __init__(self, raw_message: str = "Download timeout") -> None:
        super().__init__(raw_message, FailureReason.TIMEOUT)


class DownloadStalled(SessionError):
    """No progress signal arrived within the stall window."""

    kind = ErrorKind.DOWNLOAD_STALLED

    def __init__(self, raw_message: str = "Download stalled: no progress detected") -> None:
        super().__init__(raw_message, FailureReason.TIMEOUT)

    @property
    def guidance(self) -> str:
        return "The download stopped making progress. Check your connection and try again."


class ActivationRequired(SessionError):
    """The host refused to start the download without a live activation."""

    kind = ErrorKind.ACTIVATION_REQUIRED

    def __init__(self, raw_message: str = "User activation required") -> None:
        super().__init__(raw_message, FailureReason.ACTIVATION)


class SessionLost(SessionError):
    """A ready session failed while being used."""

    kind = ErrorKind.SESSION_LOST

    @property
    def guidance(self) -> str:
        return "The AI session was lost. Trigger the request again to reconnect."


class SessionNotReady(SessionError):
    """The session was used before `ensure_ready` succeeded."""

    kind = ErrorKind.SESSION_NOT_READY

    @property
    def guidance(self) -> str:
        return "The AI session is not ready yet."


class SummarizationTimeout(TabsenseError):
    """A summarization stage did not finish in time."""


class StageFailed(TabsenseError):
    """A summarization stage produced no usable output."""


class SummarizationExhausted(TabsenseError):
    """Every generative summarization stage failed."""


class TranslationUnavailable(TabsenseError):
    """The language pair is not supported on this device."""

    def __init__(self, source: str, target: str) -> None:
        super().__init__(f"Translation not available for {source} to {target}")
        self.source = source
        self.target = target


def _message_of(error: Union[BaseException, str, None]) -> str:
    if error is None:
        return "Unknown error"
    if isinstance(error, str):
        return error or "Unknown error"
    return str(error) or type(error).__name__


def classify_reason(error: Union[BaseException, str, None]) -> FailureReason:
    """Infer a failure reason from the error text."""
    lowered = _message_of(error).lower()
    for reason, markers in _REASON_MARKERS:
        if any(marker in lowered for marker in markers):
            return reason
    return FailureReason.UNKNOWN


def classify_failure(error: Union[BaseException, str, None]) -> SessionError:
    """Map an arbitrary failure to a classified `SessionError`.

    Already-classified errors are returned unchanged.
    """
    if isinstance(error, SessionError):
        return error

    message = _message_of(error)
    reason = classify_reason(message)
    if reason is FailureReason.ACTIVATION:
        return ActivationRequired(message)
    if reason is FailureReason.TIMEOUT:
        return DownloadTimeout(message)
    return DownloadFailed(message, reason)
