"""Payment state machine transitions.

Terminal states accept a re-application of themselves so a duplicated webhook
is a harmless overwrite; any other move out of a terminal state is refused.
"""

PENDING = "PENDING"
SUCCESSFUL = "SUCCESSFUL"
FAILED = "FAILED"

TERMINAL_STATES = frozenset({SUCCESSFUL, FAILED})

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {SUCCESSFUL, FAILED},
    SUCCESSFUL: {SUCCESSFUL},
    FAILED: {FAILED},
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")


def terminal_status_for(upstream_status: str) -> str:
    """Map a Paypack transaction status onto a local terminal state."""

    return SUCCESSFUL if upstream_status == "successful" else FAILED
