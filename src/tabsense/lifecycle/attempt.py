"""A single model download attempt with stall and deadline detection."""

import asyncio
import logging
from typing import Callable, Optional

from ..errors import DownloadStalled, DownloadTimeout, SessionError, classify_failure

logger = logging.getLogger(__name__)


def _mark_retrieved(future: "asyncio.Future") -> None:
    if not future.cancelled():
        future.exception()


class DownloadAttempt:
    """Tracks one download and settles its outcome exactly once.

    The attempt doubles as the download monitor handed to the provider.
    Progress, completion and failure signals, plus the stall timer and
    the master deadline, all race to settle one shared outcome; the first
    writer wins and every later signal is ignored. Timers are cancelled
    exactly once, on settlement.
    """

    def __init__(
        self,
        attempt_number: int,
        stall_timeout: float = 120.0,
        download_timeout: float = 900.0,
        start_warning: Optional[float] = None,
        on_progress: Optional[Callable[["DownloadAttempt"], None]] = None,
    ) -> None:
        self._loop = asyncio.get_running_loop()
        now = self._loop.time()

        self.attempt_number = attempt_number
        self.started_at = now
        self.last_progress_at = now
        self.deadline = now + download_timeout
        self.progress_ratio: Optional[float] = None
        self.attached = False

        self._stall_timeout = stall_timeout
        self._download_timeout = download_timeout
        self._start_warning = start_warning
        self._on_progress = on_progress

        self._outcome: asyncio.Future = self._loop.create_future()
        self._outcome.add_done_callback(_mark_retrieved)
        self._stall_handle: Optional[asyncio.TimerHandle] = None
        self._deadline_handle: Optional[asyncio.TimerHandle] = None
        self._start_warning_handle: Optional[asyncio.TimerHandle] = None
        self._timers_cancelled = False

    @property
    def settled(self) -> bool:
        """Whether the outcome has been decided."""
        return self._outcome.done()

    @property
    def succeeded(self) -> bool:
        return self.settled and self._outcome.exception() is None

    @property
    def error(self) -> Optional[SessionError]:
        """Failure that settled the attempt, if any."""
        if not self.settled:
            return None
        return self._outcome.exception()

    def start(self) -> None:
        """Arm the stall timer, the master deadline and the start warning."""
        self._stall_handle = self._loop.call_later(self._stall_timeout, self._on_stall)
        self._deadline_handle = self._loop.call_later(self._download_timeout, self._on_deadline)
        if self._start_warning is not None:
            self._start_warning_handle = self._loop.call_later(
                self._start_warning, self._warn_not_started
            )

    # Monitor signals

    def attach(self) -> None:
        if self.settled:
            return
        self.attached = True
        if self._start_warning_handle is not None:
            self._start_warning_handle.cancel()
            self._start_warning_handle = None
        logger.info(f"Download monitor attached (attempt {self.attempt_number})")

    def progress(self, ratio: Optional[float]) -> None:
        if self.settled:
            logger.debug(f"Ignoring progress after settlement (attempt {self.attempt_number})")
            return

        self.attached = True
        self.last_progress_at = self._loop.time()
        if ratio is not None:
            self.progress_ratio = min(max(float(ratio), 0.0), 1.0)

        if self._stall_handle is not None:
            self._stall_handle.cancel()
        self._stall_handle = self._loop.call_later(self._stall_timeout, self._on_stall)

        if self._on_progress is not None:
            try:
                self._on_progress(self)
            except Exception as e:
                logger.error(f"Error in progress handler: {e}")

    def complete(self) -> None:
        if self._settle(None):
            logger.info(
                f"Download completed (attempt {self.attempt_number})",
                extra={"ctx": self._log_context()},
            )

    def fail(self, error: BaseException) -> None:
        if self._settle(classify_failure(error)):
            logger.error(
                f"Download failed (attempt {self.attempt_number}): {error}",
                extra={"ctx": self._log_context()},
            )

    def cancel(self, reason: str = "Download attempt superseded") -> None:
        """Settle as failed without waiting for the provider."""
        self._settle(classify_failure(reason))

    async def wait(self) -> None:
        """Wait for the outcome.

        Raises:
            SessionError: The classified failure that settled the attempt.
        """
        await asyncio.shield(self._outcome)

    # Timers

    def _on_stall(self) -> None:
        self._stall_handle = None
        if self._settle(DownloadStalled(f"Download stalled: no progress for {self._stall_timeout:g}s")):
            logger.warning(
                f"No download progress for {self._stall_timeout:g}s "
                f"(attempt {self.attempt_number}), declaring stall",
                extra={"ctx": self._log_context()},
            )

    def _on_deadline(self) -> None:
        self._deadline_handle = None
        if self._settle(DownloadTimeout(f"Download timeout after {self._download_timeout:g}s")):
            logger.warning(
                f"Download exceeded {self._download_timeout:g}s (attempt {self.attempt_number})",
                extra={"ctx": self._log_context()},
            )

    def _warn_not_started(self) -> None:
        self._start_warning_handle = None
        if not self.attached and not self.settled:
            logger.warning(
                f"Download did not start within {self._start_warning:g}s; "
                "the activation may have been lost"
            )

    def _log_context(self) -> dict:
        return {
            "attempt": self.attempt_number,
            "attached": self.attached,
            "progress": self.progress_ratio,
        }

    def _settle(self, error: Optional[SessionError]) -> bool:
        if self._outcome.done():
            logger.debug(f"Ignoring late terminal signal (attempt {self.attempt_number})")
            return False

        self._cancel_timers()
        if error is None:
            self._outcome.set_result(None)
        else:
            self._outcome.set_exception(error)
        return True

    def _cancel_timers(self) -> None:
        if self._timers_cancelled:
            return
        self._timers_cancelled = True
        for handle in (self._stall_handle, self._deadline_handle, self._start_warning_handle):
            if handle is not None:
                handle.cancel()
        self._stall_handle = None
        self._deadline_handle = None
        self._start_warning_handle = None
