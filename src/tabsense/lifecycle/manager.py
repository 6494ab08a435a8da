"""Lifecycle of the on-device model session."""

import asyncio
import logging
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, AsyncIterator, Awaitable, Mapping, Optional, Sequence

from ..config import SessionConfig
from ..errors import (
    FailureReason,
    SessionError,
    SessionLost,
    SessionNotReady,
    Unavailable,
    classify_failure,
    classify_reason,
)
from ..logging import set_current_attempt, set_current_state
from ..progress import ProgressCallback, emit
from ..providers.base import Availability, KeyValueStore, SessionHandle, SessionProvider
from ..state import SessionState, StateMachine
from ..timing import race
from .attempt import DownloadAttempt

logger = logging.getLogger(__name__)


def build_model_options(languages: Sequence[str] = ("en",)) -> Mapping[str, Any]:
    """Options shared by every availability check and create call."""
    return MappingProxyType({
        "expected_inputs": ({"type": "text", "languages": tuple(languages)},),
        "expected_outputs": ({"type": "text", "languages": tuple(languages)},),
    })


@dataclass
class Readiness:
    """Outcome of `ensure_ready`."""

    state: SessionState
    error: Optional[SessionError] = None
    retry_cap_exceeded: bool = False
    attempt_number: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.state is SessionState.READY


class SessionLifecycleManager:
    """Tracks availability, download and readiness of one model session.

    One manager exists per panel/tab context. It owns the session handle,
    the live download attempt and the retry bookkeeping; all state changes
    go through its `StateMachine`.

    Activation contract: `ensure_ready()` must be the first suspending call
    of the code path triggered by the user action. The host may only allow
    the model download while the activation is live, and it expires at the
    first suspension point. On the download path the provider's `create`
    is the first await, except for one bounded availability query when
    the state has never been observed.
    """

    def __init__(
        self,
        provider: Optional[SessionProvider],
        config: Optional[SessionConfig] = None,
        store: Optional[KeyValueStore] = None,
        on_status: Optional[ProgressCallback] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Initialize the manager.

        Args:
            provider: Session provider, or None if the capability is absent.
            config: Lifecycle timeouts and retry policy.
            store: Persistent store for retry bookkeeping.
            on_status: Callback receiving `ProgressUpdate`s for display.
            options: Model options; defaults to `build_model_options()`.
        """
        self._provider = provider
        self._config = config or SessionConfig()
        self._store = store
        self._on_status = on_status
        self._options: Mapping[str, Any] = (
            MappingProxyType(dict(options)) if options is not None
            else build_model_options(self._config.expected_languages)
        )

        self._state_machine = StateMachine()
        self._state_machine.on_transition(self._on_state_change)

        self._availability: Optional[Availability] = None
        self._session: Optional[SessionHandle] = None
        self._attempt: Optional[DownloadAttempt] = None
        self._finished: Optional[asyncio.Future] = None
        self._retry_count = 0
        self._last_error: Optional[SessionError] = None
        self._background: set[asyncio.Task] = set()

    @property
    def state(self) -> SessionState:
        return self._state_machine.state

    @property
    def options(self) -> Mapping[str, Any]:
        """The options object used for every provider call."""
        return self._options

    @property
    def session(self) -> Optional[SessionHandle]:
        return self._session

    @property
    def attempt(self) -> Optional[DownloadAttempt]:
        return self._attempt

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def last_error(self) -> Optional[SessionError]:
        return self._last_error

    @property
    def _store_keys(self) -> tuple[str, str]:
        prefix = self._config.store_prefix
        return (f"{prefix}lastDownloadRetry", f"{prefix}downloadAttempts")

    # Availability

    async def check_availability(self) -> SessionState:
        """Query the provider and record the resulting state.

        Fails closed to UNAVAILABLE when the capability is missing or the
        query raises. While a download is live the state is left untouched.
        """
        if self._provider is None:
            self._availability = Availability.UNAVAILABLE
            self._apply(SessionState.UNAVAILABLE)
            return self.state

        if self._state_machine.is_busy:
            return self.state

        try:
            availability = Availability(await self._provider.availability(self._options))
        except Exception as e:
            logger.warning(f"Availability check failed: {e}")
            availability = Availability.UNAVAILABLE

        logger.info(f"Model availability: {availability.value}")
        self._availability = availability

        if self.state is SessionState.READY and self._session is not None:
            return self.state

        self._apply(self._state_for(availability))
        return self.state

    @staticmethod
    def _state_for(availability: Availability) -> SessionState:
        if availability is Availability.AVAILABLE:
            return SessionState.READY
        if availability is Availability.UNAVAILABLE:
            return SessionState.UNAVAILABLE
        return SessionState.DOWNLOADABLE

    async def _quick_availability(self) -> Availability:
        """Availability raced against a short timeout.

        A timeout or error is treated as DOWNLOADABLE so the download can
        still start inside the activation window.
        """
        try:
            result = await race(
                self._provider.availability(self._options),
                self._config.availability_timeout,
            )
            availability = Availability(result)
        except asyncio.TimeoutError:
            logger.warning("Availability check timed out, assuming downloadable")
            availability = Availability.DOWNLOADABLE
        except Exception as e:
            logger.warning(f"Availability check failed, assuming downloadable: {e}")
            availability = Availability.DOWNLOADABLE

        self._availability = availability
        return availability

    # Readiness

    async def ensure_ready(self) -> Readiness:
        """Make the session usable, downloading the model if needed.

        Must be the first suspending call of the triggering call path (see
        the class docstring). Returns immediately when a session is ready;
        attaches to a live download instead of starting a second one.
        """
        if self.state is SessionState.READY and self._session is not None:
            return Readiness(SessionState.READY)

        if self._finished is not None and not self._finished.done():
            logger.info("Attaching to in-flight readiness check")
            return await asyncio.shield(self._finished)

        finished = asyncio.get_running_loop().create_future()
        self._finished = finished
        try:
            readiness = await self._become_ready()
        except BaseException:
            if not finished.done():
                finished.cancel()
            raise

        if not finished.done():
            finished.set_result(readiness)
        return readiness

    async def _become_ready(self) -> Readiness:
        if self._provider is None:
            self._availability = Availability.UNAVAILABLE
            self._apply(SessionState.UNAVAILABLE)
            return Readiness(self.state, Unavailable("On-device model API is not present"))

        availability = self._availability
        if availability in (None, Availability.AVAILABLE, Availability.UNAVAILABLE):
            availability = await self._quick_availability()

        if availability is Availability.UNAVAILABLE:
            self._apply(SessionState.UNAVAILABLE)
            error = Unavailable("On-device model is not available on this device")
            emit(self._on_status, "unavailable", error.guidance)
            return Readiness(self.state, error)

        if availability is Availability.AVAILABLE:
            return await self._create_available()

        logger.info("Model needs download, starting immediately")
        return await self._download()

    async def _create_available(self) -> Readiness:
        """Create a session for a model that is already present."""
        try:
            session = await self._provider.create(self._options)
        except Exception as e:
            error = classify_failure(e)
            if "download" in str(e).lower() or error.reason is FailureReason.ACTIVATION:
                logger.info(f"Session creation suggests a download is needed: {e}")
                return await self._download()
            logger.error(f"Could not create model session: {e}")
            return self._fail(error)

        self._session = session
        self._retry_count = 0
        self._last_error = None
        self._spawn(self._clear_bookkeeping())
        if self.state is not SessionState.READY:
            self._state_machine.transition(SessionState.READY)
        emit(self._on_status, "ready", "AI ready.")
        return Readiness(SessionState.READY)

    async def _download(self) -> Readiness:
        # Counted before the create call; the cap is advisory only
        attempt_number = self._retry_count + 1
        self._retry_count = attempt_number
        max_retries = self._config.max_retries
        cap_exceeded = attempt_number > max_retries
        if cap_exceeded:
            logger.warning(
                f"Retry count {attempt_number} exceeds max {max_retries}, "
                "starting download anyway for the fresh activation"
            )

        attempt = DownloadAttempt(
            attempt_number,
            stall_timeout=self._config.stall_timeout,
            download_timeout=self._config.download_timeout,
            start_warning=self._config.download_start_warning,
            on_progress=self._on_progress,
        )
        self._attempt = attempt
        set_current_attempt(attempt_number)

        if not self._state_machine.transition(SessionState.DOWNLOADING):
            self._state_machine.force_transition(SessionState.DOWNLOADING)
        suffix = f" (Attempt {attempt_number}/{max_retries})" if attempt_number > 1 else ""
        emit(self._on_status, "downloading", f"Downloading AI model...{suffix}", 0.0)
        if cap_exceeded:
            emit(
                self._on_status,
                "warning",
                f"Download retried {attempt_number} times (limit {max_retries}).",
            )

        attempt.start()
        # Runs only once create() has suspended
        self._spawn(self._persist_bookkeeping(attempt_number))

        try:
            session = await self._provider.create(self._options, attempt)
        except Exception as e:
            attempt.fail(e)
        else:
            if attempt.settled and not attempt.succeeded:
                logger.info("Discarding session created after the attempt failed")
                self._spawn(self._destroy(session))
            else:
                self._session = session
                if not attempt.attached and not attempt.settled:
                    await self._confirm_without_monitor(attempt)

        try:
            await attempt.wait()
        except SessionError as error:
            readiness = self._finish_failed(attempt, error, cap_exceeded)
        else:
            readiness = await self._finish_ready(attempt, cap_exceeded)
        return readiness

    async def _confirm_without_monitor(self, attempt: DownloadAttempt) -> None:
        """Settle an attempt whose model turned out to be present already."""
        await asyncio.sleep(self._config.attach_grace)
        if attempt.attached or attempt.settled:
            return

        try:
            availability = Availability(await self._provider.availability(self._options))
        except Exception as e:
            logger.warning(f"Availability re-check failed: {e}")
            return

        if availability is Availability.AVAILABLE:
            logger.info("Model already available, no download needed")
            attempt.complete()
        else:
            logger.warning(
                "Model needs download but no monitor attached; "
                "the activation may have been lost"
            )

    async def _finish_ready(self, attempt: DownloadAttempt, cap_exceeded: bool) -> Readiness:
        if self._attempt is not attempt:
            return Readiness(self.state, attempt_number=attempt.attempt_number)

        self._state_machine.transition(SessionState.PREPARING)
        emit(self._on_status, "preparing", "Download complete. Preparing model...")
        await asyncio.sleep(self._config.preparing_delay)

        if self._attempt is not attempt:
            return Readiness(self.state, attempt_number=attempt.attempt_number)

        if self._session is None:
            return self._finish_failed(
                attempt,
                SessionLost("Download completed but no session was created"),
                cap_exceeded,
            )

        self._availability = Availability.AVAILABLE
        self._retry_count = 0
        self._last_error = None
        self._spawn(self._clear_bookkeeping())
        self._state_machine.transition(SessionState.READY)
        emit(self._on_status, "ready", "AI ready.", 1.0)
        return Readiness(
            SessionState.READY,
            retry_cap_exceeded=cap_exceeded,
            attempt_number=attempt.attempt_number,
        )

    def _finish_failed(
        self, attempt: DownloadAttempt, error: SessionError, cap_exceeded: bool
    ) -> Readiness:
        if self._attempt is not attempt:
            # Superseded by reset(); leave the state to the new owner
            return Readiness(self.state, error, cap_exceeded, attempt.attempt_number)

        if self._session is not None:
            self._spawn(self._destroy(self._session))
            self._session = None

        readiness = self._fail(error)
        readiness.retry_cap_exceeded = cap_exceeded
        readiness.attempt_number = attempt.attempt_number
        return readiness

    def _fail(self, error: SessionError) -> Readiness:
        self._last_error = error
        self._state_machine.transition(SessionState.FAILED)
        logger.error(f"Model session failed ({error.kind.value}/{error.reason.value}): {error}")
        emit(self._on_status, "failed", error.guidance)
        return Readiness(SessionState.FAILED, error)

    def _on_progress(self, attempt: DownloadAttempt) -> None:
        if self._attempt is not attempt:
            return
        self._state_machine.transition(SessionState.DOWNLOADING)

        ratio = attempt.progress_ratio
        if ratio is None:
            emit(self._on_status, "downloading", "Downloading AI model...")
        elif ratio >= 1.0:
            emit(self._on_status, "preparing", "Download complete. Preparing model...", ratio)
        else:
            emit(self._on_status, "downloading", f"Downloading AI model... {round(ratio * 100)}%", ratio)

    # Session use

    async def prompt_streaming(self, prompt: str) -> AsyncIterator[str]:
        """Stream a response from the ready session.

        Raises:
            SessionNotReady: If `ensure_ready` has not succeeded.
            SessionLost: If the session fails while streaming.
        """
        session = self._session
        if self.state is not SessionState.READY or session is None:
            raise SessionNotReady(f"Session is {self.state.name.lower()}")

        try:
            async for chunk in session.prompt_streaming(prompt):
                yield chunk
        except Exception as e:
            error = SessionLost(str(e) or "Session failed during use", classify_reason(e))
            self.mark_session_lost(error)
            raise error from e

    async def prompt(self, prompt: str) -> str:
        """Collect a complete response from the ready session."""
        chunks = []
        async for chunk in self.prompt_streaming(prompt):
            chunks.append(chunk)
        return "".join(chunks)

    def mark_session_lost(self, error: Optional[SessionError] = None) -> None:
        """Record that the ready session stopped working."""
        if self.state is not SessionState.READY:
            return
        error = error or SessionLost("Session lost")
        if self._session is not None:
            self._spawn(self._destroy(self._session))
            self._session = None
        self._availability = None
        self._fail(error)

    async def reset(self) -> None:
        """Drop the session and any live attempt; back to UNKNOWN.

        The retry counter is preserved.
        """
        attempt, self._attempt = self._attempt, None
        set_current_attempt(None)
        if attempt is not None and not attempt.settled:
            attempt.cancel("Download attempt was reset")

        if self._finished is not None and not self._finished.done():
            self._finished.set_result(
                Readiness(SessionState.UNKNOWN, classify_failure("Download attempt was reset"))
            )
        self._finished = None

        session, self._session = self._session, None
        if session is not None:
            await self._destroy(session)

        self._availability = None
        self._state_machine.force_transition(SessionState.UNKNOWN)

    # Retry bookkeeping

    async def restore_bookkeeping(self) -> int:
        """Load the persisted attempt counter; returns the restored value."""
        if self._store is None:
            return self._retry_count
        try:
            data = await self._store.get(list(self._store_keys))
        except Exception as e:
            logger.warning(f"Could not load retry bookkeeping: {e}")
            return self._retry_count

        attempts = data.get(self._store_keys[1])
        if isinstance(attempts, int) and attempts > self._retry_count:
            self._retry_count = attempts
            logger.info(f"Restored download attempt counter: {attempts}")
        return self._retry_count

    async def _persist_bookkeeping(self, attempt_number: int) -> None:
        if self._store is None:
            return
        last_retry_key, attempts_key = self._store_keys
        try:
            await self._store.set({last_retry_key: time.time(), attempts_key: attempt_number})
        except Exception as e:
            logger.warning(f"Could not save retry bookkeeping: {e}")

    async def _clear_bookkeeping(self) -> None:
        if self._store is None:
            return
        try:
            await self._store.remove(list(self._store_keys))
        except Exception as e:
            logger.warning(f"Could not clear retry bookkeeping: {e}")

    # Helpers

    def _apply(self, new_state: SessionState) -> None:
        if self.state is not new_state and self._state_machine.can_transition(new_state):
            self._state_machine.transition(new_state)

    async def _destroy(self, session: SessionHandle) -> None:
        destroy = getattr(session, "destroy", None)
        if destroy is None:
            return
        try:
            await destroy()
        except Exception as e:
            logger.warning(f"Error destroying session: {e}")

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for background bookkeeping tasks to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _on_state_change(self, old_state: SessionState, new_state: SessionState) -> None:
        set_current_state(new_state)

    def status(self) -> dict:
        """Snapshot for CLI/debugging."""
        attempt = self._attempt
        error = self._last_error
        return {
            "state": self.state.name,
            "availability": self._availability.value if self._availability else None,
            "has_session": self._session is not None,
            "retry_count": self._retry_count,
            "max_retries": self._config.max_retries,
            "attempt": attempt.attempt_number if attempt else None,
            "progress_ratio": attempt.progress_ratio if attempt else None,
            "last_error": error.kind.value if error else None,
            "guidance": error.guidance if error else None,
        }
