from enum import Enum, auto


class SessionState(Enum):
    IDLE = auto()
    STARTED = auto()
    RECOGNIZING = auto()
    RECOGNIZED = auto()
    STOPPED = auto()
    CANCELED = auto()


VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.STARTED, SessionState.CANCELED},
    SessionState.STARTED: {
        SessionState.RECOGNIZING,
        SessionState.RECOGNIZED,
        SessionState.STOPPED,
        SessionState.CANCELED,
    },
    SessionState.RECOGNIZING: {
        SessionState.RECOGNIZING,
        SessionState.RECOGNIZED,
        SessionState.STOPPED,
        SessionState.CANCELED,
    },
    SessionState.RECOGNIZED: {
        SessionState.RECOGNIZING,
        SessionState.RECOGNIZED,
        SessionState.STOPPED,
        SessionState.CANCELED,
    },
    SessionState.STOPPED: {SessionState.IDLE},
    SessionState.CANCELED: {SessionState.IDLE},
}

TERMINAL_STATES = frozenset({SessionState.STOPPED, SessionState.CANCELED})


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: SessionState, target: SessionState) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")
