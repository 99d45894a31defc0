"""Router output: one decision per turn."""

from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from dialogue_router.conversation.state_machine import StateChange


class DialogueDecision(BaseModel):
    """Either a reply ``message`` or an ``action`` for the dispatcher, never both.

    ``state_change`` is applied only after the turn completes: directly
    for message decisions, by the dispatcher for action decisions.
    """

    message: Optional[str] = None
    action: Optional[str] = None
    action_data: dict[str, Any] = Field(default_factory=dict)
    state_change: Optional[StateChange] = None
    source: str = "unknown"

    @model_validator(mode="after")
    def _exactly_one_form(self) -> "DialogueDecision":
        has_message = bool(self.message and self.message.strip())
        has_action = bool(self.action)
        if has_message == has_action:
            raise ValueError("DialogueDecision needs exactly one of message or action")
        return self

    @classmethod
    def reply(
        cls,
        message: str,
        state_change: Optional[StateChange] = None,
        source: str = "unknown",
    ) -> "DialogueDecision":
        return cls(message=message, state_change=state_change, source=source)

    @classmethod
    def delegate(
        cls,
        action: str,
        action_data: Optional[dict[str, Any]] = None,
        source: str = "unknown",
    ) -> "DialogueDecision":
        return cls(action=action, action_data=action_data or {}, source=source)

    @property
    def is_action(self) -> bool:
        return self.action is not None
