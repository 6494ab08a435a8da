"""State machine for the on-device model session."""

import logging
from enum import Enum, auto
from typing import Callable

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle states of the on-device model session."""

    UNKNOWN = auto()  # Not yet queried
    UNAVAILABLE = auto()  # Capability absent on this host
    DOWNLOADABLE = auto()  # Model needs a one-time download
    DOWNLOADING = auto()  # Download attempt is live
    PREPARING = auto()  # Download finished, model loading
    READY = auto()  # Session usable
    FAILED = auto()  # Last attempt failed; a fresh activation may retry


# Type alias for state transition callbacks
StateCallback = Callable[[SessionState, SessionState], None]


class StateMachine:
    """Enforces the session transition table.

    Transitions are synchronous so that event handlers running inside
    provider callbacks can move the state without suspending.
    """

    VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
        SessionState.UNKNOWN: {
            SessionState.UNAVAILABLE,
            SessionState.DOWNLOADABLE,
            SessionState.DOWNLOADING,
            SessionState.READY,
            SessionState.FAILED,
        },
        SessionState.UNAVAILABLE: {
            SessionState.DOWNLOADABLE,
            SessionState.DOWNLOADING,
            SessionState.READY,
            SessionState.FAILED,
        },
        SessionState.DOWNLOADABLE: {
            SessionState.DOWNLOADING,
            SessionState.READY,
            SessionState.UNAVAILABLE,
            SessionState.FAILED,
        },
        SessionState.DOWNLOADING: {
            SessionState.DOWNLOADING,
            SessionState.PREPARING,
            SessionState.FAILED,
        },
        SessionState.PREPARING: {SessionState.READY, SessionState.FAILED},
        SessionState.READY: {SessionState.FAILED},
        SessionState.FAILED: {
            SessionState.DOWNLOADABLE,
            SessionState.DOWNLOADING,
            SessionState.READY,
            SessionState.UNAVAILABLE,
        },
    }

    def __init__(self) -> None:
        self._state = SessionState.UNKNOWN
        self._listeners: list[StateCallback] = []

    @property
    def state(self) -> SessionState:
        """Current state (read-only)."""
        return self._state

    @property
    def is_busy(self) -> bool:
        """True while a download attempt owns the session."""
        return self._state in {SessionState.DOWNLOADING, SessionState.PREPARING}

    def can_transition(self, new_state: SessionState) -> bool:
        """Whether `new_state` is reachable from the current state."""
        return new_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, new_state: SessionState) -> bool:
        """Transition to a new state.

        Args:
            new_state: Target state to transition to.

        Returns:
            True if transition succeeded, False if invalid transition.
        """
        old_state = self._state

        if not self.can_transition(new_state):
            logger.warning(
                f"Invalid state transition: {old_state.name} -> {new_state.name}"
            )
            return False

        self._state = new_state
        if old_state is not new_state:
            logger.info(f"State transition: {old_state.name} -> {new_state.name}")
            self._notify(old_state, new_state)
        return True

    def force_transition(self, new_state: SessionState) -> None:
        """Force a transition to any state (reset only)."""
        old_state = self._state
        self._state = new_state
        logger.warning(f"Forced state transition: {old_state.name} -> {new_state.name}")
        self._notify(old_state, new_state)

    def on_transition(self, callback: StateCallback) -> None:
        """Register a callback for state transitions.

        Args:
            callback: Function called with (old_state, new_state).
        """
        self._listeners.append(callback)

    def _notify(self, old_state: SessionState, new_state: SessionState) -> None:
        for listener in self._listeners:
            try:
                listener(old_state, new_state)
            except Exception as e:
                logger.error(f"Error in state listener: {e}")
