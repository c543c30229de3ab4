"""Escrow Record State Machine Guard.

Uses python-statemachine to enforce legal state transitions at the domain level.
Whatever the API or MCP layer does, a record that has already been released or
cancelled cannot be closed a second time, so its vault cell is drained once.

Transition table:
    ACTIVE -> RELEASED    (threshold_reached)
    ACTIVE -> CANCELLED   (creator_cancels)
"""

from __future__ import annotations

from statemachine import State, StateMachine


class EscrowStateMachine(StateMachine):
    """State machine that guards escrow record lifecycle transitions.

    Usage:
        sm = EscrowStateMachine(current_status="ACTIVE")
        sm.threshold_reached()  # transitions to RELEASED
        sm.status               # "RELEASED"
    """

    # --- States ---
    ACTIVE = State("ACTIVE", initial=True)
    RELEASED = State("RELEASED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    # --- Events / Transitions ---
    threshold_reached = ACTIVE.to(RELEASED)
    creator_cancels = ACTIVE.to(CANCELLED)

    def __init__(self, current_status: str = "ACTIVE") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current EscrowStatus value (e.g., "ACTIVE").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches EscrowStatus enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.name for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Fire ``event_name`` on a throwaway machine and return the new status.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = EscrowStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
