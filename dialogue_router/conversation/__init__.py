from dialogue_router.conversation.handlers import HandlerDeps, handle_state
from dialogue_router.conversation.state_machine import (
    InvalidTransitionError,
    Session,
    SessionState,
    StateChange,
    TransitionTrigger,
)
from dialogue_router.conversation.validators import validate_field

__all__ = [
    "Session",
    "SessionState",
    "StateChange",
    "TransitionTrigger",
    "InvalidTransitionError",
    "HandlerDeps",
    "handle_state",
    "validate_field",
]
