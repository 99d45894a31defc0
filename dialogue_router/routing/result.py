"""
Step results for the routing pipeline.

Each routing step returns ``Ok(decision)`` when it owns the turn or
``Err(error)`` when it does not apply or failed recoverably. The router
walks its ordered steps until the first ``Ok``.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Union

from dialogue_router.errors import RoutingError, StepSkipped
from dialogue_router.schemas.decision_schema import DialogueDecision


@dataclass(frozen=True)
class Ok:
    decision: DialogueDecision

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: RoutingError

    @property
    def is_ok(self) -> bool:
        return False


StepResult = Union[Ok, Err]


@dataclass(frozen=True)
class TurnInput:
    """Everything a step may read about the current turn."""
    raw_text: str
    text: str
    normalized: str
    is_voice: bool
    history: list
    # AI operations that already timed out during this turn
    ai_timeouts: list = field(default_factory=list)


@dataclass(frozen=True)
class RoutingStep:
    """A named pipeline stage. The name shows up in logs and as the decision source."""
    name: str
    run: Callable[..., Awaitable[StepResult]]


def skip(reason: str) -> Err:
    return Err(StepSkipped(reason))
