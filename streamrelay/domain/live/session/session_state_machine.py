"""Session state machine for managing state transitions."""

from streamrelay.schemas import SessionState


class SessionStateMachine:
    """State machine for managing session state transitions.

    State flow with triggers:
    - SCHEDULED (session created) -> STARTING (start issued) | STOPPED (stopped before start) | FAILED
    - STARTING -> LIVE (backing process or stream verified) | FAILED (launch or verification failed)
      | STOPPING (shutdown sweep while starting)
    - LIVE -> STOPPING (stop requested) | FAILED (backing process gone, found by the sweeper)
    - STOPPING -> STOPPED (termination confirmed) | FAILED
    - STOPPED/FAILED are terminal states

    A stop that fails at the transport level leaves the session in STOPPING;
    it never goes back to LIVE.
    """

    TRANSITIONS: dict[SessionState, set[SessionState]] = {
        SessionState.SCHEDULED: {
            SessionState.STARTING,
            SessionState.STOPPED,
            SessionState.FAILED,
        },
        SessionState.STARTING: {
            SessionState.LIVE,
            SessionState.FAILED,
            SessionState.STOPPING,
        },
        SessionState.LIVE: {
            SessionState.STOPPING,
            SessionState.FAILED,
        },
        SessionState.STOPPING: {SessionState.STOPPED, SessionState.FAILED},
        SessionState.STOPPED: set(),
        SessionState.FAILED: set(),
    }

    TERMINAL_STATES: set[SessionState] = {SessionState.STOPPED, SessionState.FAILED}

    @classmethod
    def can_transition(cls, current: SessionState, new: SessionState) -> bool:
        """Check if state transition is valid.

        Args:
            current: Current session state
            new: Target state to transition to

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def is_terminal(cls, state: SessionState) -> bool:
        return state in cls.TERMINAL_STATES

    @classmethod
    def get_valid_transitions(cls, state: SessionState) -> set[SessionState]:
        return cls.TRANSITIONS.get(state, set())

    @classmethod
    def get_valid_sources(cls, target: SessionState) -> set[SessionState]:
        """Get all states that can transition to the target state."""
        return {state for state, targets in cls.TRANSITIONS.items() if target in targets}
