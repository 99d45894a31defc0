"""Error taxonomy for the routing core.

None of these reach the customer unhandled. Validation errors become
re-prompts, AI errors push the router to the next pipeline step, lookup
misses become specific messages, and transport failures are logged.
"""

from typing import Optional


class RoutingError(Exception):
    """Base class for every recoverable failure inside a turn."""


class ValidationError(RoutingError):
    """Malformed customer input. Carries the re-prompt shown to the customer."""

    def __init__(self, field: str, prompt: str):
        super().__init__(f"Invalid {field}")
        self.field = field
        self.prompt = prompt


class AIUnavailable(RoutingError):
    """The AI collaborator is not reachable or is disabled."""


class AITimeout(RoutingError):
    """A bounded AI call exceeded its time limit."""

    def __init__(self, operation: str, timeout_sec: float):
        super().__init__(f"{operation} timed out after {timeout_sec:.1f}s")
        self.operation = operation
        self.timeout_sec = timeout_sec


class LookupNotFound(RoutingError):
    """A client or product lookup came back empty."""

    def __init__(self, what: str, term: str, message: Optional[str] = None):
        super().__init__(f"{what} not found: {term!r}")
        self.what = what
        self.term = term
        self.message = message


class StateTransitionInvalid(RoutingError):
    """An intent or state change that is not legal from the current state."""


class TransportFailure(RoutingError):
    """The reply could not be delivered to the customer."""


class StepSkipped(RoutingError):
    """A routing step does not apply to this turn."""
