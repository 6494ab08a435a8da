"""Tests for the session state machine."""

from tabsense.state import SessionState, StateMachine


class TestStateMachine:
    """Tests for StateMachine."""

    def test_initial_state(self):
        assert StateMachine().state == SessionState.UNKNOWN

    def test_valid_path_to_ready(self):
        machine = StateMachine()
        for state in (SessionState.DOWNLOADABLE, SessionState.DOWNLOADING, SessionState.PREPARING, SessionState.READY):
            assert machine.transition(state)
        assert machine.state == SessionState.READY

    def test_invalid_transition_rejected(self):
        machine = StateMachine()
        assert not machine.transition(SessionState.PREPARING)
        assert machine.state == SessionState.UNKNOWN

    def test_ready_only_fails(self):
        machine = StateMachine()
        machine.transition(SessionState.READY)
        assert not machine.can_transition(SessionState.DOWNLOADING)
        assert machine.can_transition(SessionState.FAILED)

    def test_is_busy(self):
        machine = StateMachine()
        assert not machine.is_busy
        machine.transition(SessionState.DOWNLOADING)
        assert machine.is_busy
        machine.transition(SessionState.PREPARING)
        assert machine.is_busy

    def test_listeners_notified(self):
        machine = StateMachine()
        seen = []
        machine.on_transition(lambda old, new: seen.append((old, new)))

        machine.transition(SessionState.DOWNLOADING)
        machine.transition(SessionState.DOWNLOADING)  # progress self-loop
        machine.transition(SessionState.FAILED)

        assert seen == [
            (SessionState.UNKNOWN, SessionState.DOWNLOADING),
            (SessionState.DOWNLOADING, SessionState.FAILED),
        ]

    def test_listener_errors_are_isolated(self):
        machine = StateMachine()
        seen = []

        def broken(old, new):
            raise RuntimeError("listener bug")

        machine.on_transition(broken)
        machine.on_transition(lambda old, new: seen.append(new))

        assert machine.transition(SessionState.READY)
        assert seen == [SessionState.READY]

    def test_force_transition(self):
        machine = StateMachine()
        machine.transition(SessionState.READY)
        machine.force_transition(SessionState.UNKNOWN)
        assert machine.state == SessionState.UNKNOWN
