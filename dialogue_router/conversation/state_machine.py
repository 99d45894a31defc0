"""
Per-customer session and the finite state machine that governs it.

Every conversation is a ``Session``: its current ``SessionState``, a
context bag of underscore-prefixed keys accumulated across turns, and a
bounded history. States only move through the explicit ``TRANSITIONS``
table; a trigger that has no entry for the current state is rejected.

Usage:
    session = Session(key="51987654321")
    session.apply(StateChange(trigger=TransitionTrigger.CLIENT_CHECK))
    assert session.state == SessionState.AWAITING_CLIENT_CONFIRMATION
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from dialogue_router.errors import StateTransitionInvalid
from dialogue_router.logging_context import get_turn_logger
from dialogue_router.schemas.conversation_schema import Turn

logger = get_turn_logger(__name__)


class SessionState(str, Enum):
    """Positions in the dialogue. IDLE is both initial and re-entrant."""
    IDLE = "idle"
    AWAITING_CLIENT_CONFIRMATION = "awaiting_client_confirmation"
    AWAITING_PHONE = "awaiting_phone"
    AWAITING_PASSWORD = "awaiting_password"
    AWAITING_SMS_CODE = "awaiting_sms_code"
    AWAITING_REG_NAME = "awaiting_reg_name"
    AWAITING_REG_DNI = "awaiting_reg_dni"
    AWAITING_REG_EMAIL = "awaiting_reg_email"
    AWAITING_REG_PASSWORD = "awaiting_reg_password"
    AWAITING_TEMP_NAME = "awaiting_temp_name"
    AWAITING_TEMP_DNI = "awaiting_temp_dni"
    AWAITING_PAYMENT_METHOD = "awaiting_payment_method"
    AWAITING_CANCEL_CONFIRMATION = "awaiting_cancel_confirmation"
    AWAITING_UPDATE_TELEFONO = "awaiting_update_telefono"
    AWAITING_UPDATE_DIRECCION = "awaiting_update_direccion"
    AWAITING_UPDATE_EMAIL = "awaiting_update_email"


class TransitionTrigger(str, Enum):
    """Events that move a session between states."""
    CLIENT_CHECK = "client_check"
    PHONE_REQUESTED = "phone_requested"
    CLIENT_FOUND = "client_found"
    CLIENT_NOT_FOUND = "client_not_found"
    NOT_A_CLIENT = "not_a_client"
    AUTHENTICATED = "authenticated"
    AUTHENTICATED_WITH_ORDER = "authenticated_with_order"
    SMS_SENT = "sms_sent"
    SMS_FAILED = "sms_failed"
    REGISTRATION_STARTED = "registration_started"
    GUEST_ORDER_STARTED = "guest_order_started"
    FIELD_ACCEPTED = "field_accepted"
    REGISTRATION_FINISHED = "registration_finished"
    GUEST_DATA_COMPLETE = "guest_data_complete"
    PAYMENT_REQUESTED = "payment_requested"
    PAYMENT_SELECTED = "payment_selected"
    NO_ACTIVE_ORDER = "no_active_order"
    CANCEL_REQUESTED = "cancel_requested"
    CANCEL_RESOLVED = "cancel_resolved"
    UPDATE_PHONE_REQUESTED = "update_phone_requested"
    UPDATE_ADDRESS_REQUESTED = "update_address_requested"
    UPDATE_EMAIL_REQUESTED = "update_email_requested"
    PROFILE_UPDATED = "profile_updated"
    USER_CANCELLED = "user_cancelled"


@dataclass(frozen=True)
class Transition:
    """A single valid state transition."""
    from_state: SessionState
    to_state: SessionState
    trigger: TransitionTrigger


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: SessionState
    entered_at: datetime
    trigger: Optional[TransitionTrigger] = None


@dataclass
class StateChange:
    """What a completed turn does to the session.

    ``trigger`` selects the next state from the transition table; None keeps
    the current state and only patches context. ``reset`` clears transient
    context the way a return to IDLE does.
    """
    trigger: Optional[TransitionTrigger] = None
    context: dict[str, Any] = field(default_factory=dict)
    clear: tuple[str, ...] = ()
    reset: bool = False


# Flow data that must not survive a return to IDLE.
TRANSIENT_KEYS: tuple[str, ...] = (
    "_input_phone",
    "_reg_nombre", "_reg_dni", "_reg_email",
    "_temp_nombre", "_temp_dni",
    "_sms_code", "_sms_code_expires", "_sms_attempts",
    "_updating_field", "_pedido_a_cancelar",
)
CLIENT_KEYS: tuple[str, ...] = ("_client_id", "_client_phone", "_client_name")
AUTH_KEYS: tuple[str, ...] = ("_authenticated", "_user_token", "_sms_verified")

S = SessionState
T = TransitionTrigger

TRANSITIONS: list[Transition] = [
    # --- Identification ---
    Transition(S.IDLE, S.AWAITING_CLIENT_CONFIRMATION, T.CLIENT_CHECK),
    Transition(S.IDLE, S.AWAITING_PHONE, T.PHONE_REQUESTED),
    Transition(S.IDLE, S.AWAITING_PASSWORD, T.CLIENT_FOUND),
    Transition(S.IDLE, S.IDLE, T.CLIENT_NOT_FOUND),
    Transition(S.AWAITING_CLIENT_CONFIRMATION, S.AWAITING_PASSWORD, T.CLIENT_FOUND),
    Transition(S.AWAITING_CLIENT_CONFIRMATION, S.AWAITING_PHONE, T.CLIENT_NOT_FOUND),
    Transition(S.AWAITING_CLIENT_CONFIRMATION, S.IDLE, T.NOT_A_CLIENT),
    Transition(S.AWAITING_PHONE, S.AWAITING_PASSWORD, T.CLIENT_FOUND),
    Transition(S.AWAITING_PHONE, S.IDLE, T.CLIENT_NOT_FOUND),

    # --- Authentication ---
    Transition(S.AWAITING_PASSWORD, S.IDLE, T.AUTHENTICATED),
    Transition(S.AWAITING_PASSWORD, S.AWAITING_PAYMENT_METHOD, T.AUTHENTICATED_WITH_ORDER),
    Transition(S.AWAITING_PASSWORD, S.AWAITING_SMS_CODE, T.SMS_SENT),
    Transition(S.AWAITING_SMS_CODE, S.IDLE, T.AUTHENTICATED),
    Transition(S.AWAITING_SMS_CODE, S.IDLE, T.SMS_FAILED),

    # --- Registration chain ---
    Transition(S.IDLE, S.AWAITING_REG_NAME, T.REGISTRATION_STARTED),
    Transition(S.AWAITING_REG_NAME, S.AWAITING_REG_DNI, T.FIELD_ACCEPTED),
    Transition(S.AWAITING_REG_DNI, S.AWAITING_REG_EMAIL, T.FIELD_ACCEPTED),
    Transition(S.AWAITING_REG_EMAIL, S.AWAITING_REG_PASSWORD, T.FIELD_ACCEPTED),
    Transition(S.AWAITING_REG_PASSWORD, S.IDLE, T.REGISTRATION_FINISHED),

    # --- Guest order chain ---
    Transition(S.IDLE, S.AWAITING_TEMP_NAME, T.GUEST_ORDER_STARTED),
    Transition(S.AWAITING_TEMP_NAME, S.AWAITING_TEMP_DNI, T.FIELD_ACCEPTED),
    Transition(S.AWAITING_TEMP_DNI, S.IDLE, T.GUEST_DATA_COMPLETE),

    # --- Payment ---
    Transition(S.IDLE, S.AWAITING_PAYMENT_METHOD, T.PAYMENT_REQUESTED),
    Transition(S.IDLE, S.IDLE, T.PAYMENT_SELECTED),
    Transition(S.AWAITING_PAYMENT_METHOD, S.IDLE, T.PAYMENT_SELECTED),
    Transition(S.AWAITING_PAYMENT_METHOD, S.IDLE, T.NO_ACTIVE_ORDER),

    # --- Order cancellation ---
    Transition(S.IDLE, S.AWAITING_CANCEL_CONFIRMATION, T.CANCEL_REQUESTED),
    Transition(S.AWAITING_CANCEL_CONFIRMATION, S.IDLE, T.CANCEL_RESOLVED),

    # --- Profile updates ---
    Transition(S.IDLE, S.AWAITING_UPDATE_TELEFONO, T.UPDATE_PHONE_REQUESTED),
    Transition(S.IDLE, S.AWAITING_UPDATE_DIRECCION, T.UPDATE_ADDRESS_REQUESTED),
    Transition(S.IDLE, S.AWAITING_UPDATE_EMAIL, T.UPDATE_EMAIL_REQUESTED),
    Transition(S.AWAITING_UPDATE_TELEFONO, S.IDLE, T.PROFILE_UPDATED),
    Transition(S.AWAITING_UPDATE_DIRECCION, S.IDLE, T.PROFILE_UPDATED),
    Transition(S.AWAITING_UPDATE_EMAIL, S.IDLE, T.PROFILE_UPDATED),
] + [
    # --- Escape hatch: any flow can be abandoned ---
    Transition(state, S.IDLE, T.USER_CANCELLED)
    for state in SessionState
]

del S, T

_TRANSITION_INDEX: dict[tuple[SessionState, TransitionTrigger], SessionState] = {
    (t.from_state, t.trigger): t.to_state for t in TRANSITIONS
}


class InvalidTransitionError(StateTransitionInvalid):
    """Raised when a trigger is not valid from the current state."""


def next_state(current: SessionState, trigger: TransitionTrigger) -> SessionState:
    """Resolve the target of ``trigger`` from ``current``.

    Raises:
        InvalidTransitionError: If the pair is not in the transition table.
    """
    target = _TRANSITION_INDEX.get((current, trigger))
    if target is None:
        valid = get_valid_triggers(current)
        raise InvalidTransitionError(
            f"Invalid trigger '{trigger.value}' from state '{current.value}'. "
            f"Valid triggers: {[t.value for t in valid]}"
        )
    return target


def get_valid_triggers(state: SessionState) -> list[TransitionTrigger]:
    """Return all triggers valid from ``state``."""
    return [t.trigger for t in TRANSITIONS if t.from_state == state]


@dataclass
class Session:
    """One conversation, keyed by the customer's identifier."""

    key: str
    state: SessionState = SessionState.IDLE
    context: dict[str, Any] = field(default_factory=dict)
    history: list[Turn] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    trace: list[StateEntry] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.trace:
            self.trace.append(StateEntry(state=self.state, entered_at=self.created_at))

    # ------------------------------------------------------------------ #
    # Context accessors
    # ------------------------------------------------------------------ #

    @property
    def authenticated(self) -> bool:
        return bool(self.context.get("_authenticated"))

    @property
    def pending_order_id(self) -> Optional[Any]:
        return self.context.get("pedido_id")

    @property
    def has_guest_data(self) -> bool:
        return bool(self.context.get("_temp_nombre") and self.context.get("_temp_dni"))

    @property
    def client_name(self) -> Optional[str]:
        return self.context.get("_client_name") or self.context.get("_temp_nombre")

    # ------------------------------------------------------------------ #
    # Mutation
    # ------------------------------------------------------------------ #

    def apply(self, change: StateChange) -> SessionState:
        """Apply a completed turn's state change.

        The target state is resolved before anything is mutated, so an
        invalid trigger leaves the session untouched.

        Raises:
            InvalidTransitionError: If the trigger is not valid from the current state.
        """
        target = self.state
        if change.trigger is not None:
            target = next_state(self.state, change.trigger)

        if change.reset:
            self.clear_transient()
        for key in change.clear:
            self.context.pop(key, None)
        for key, value in change.context.items():
            if value is None:
                self.context.pop(key, None)
            else:
                self.context[key] = value

        now = datetime.now(timezone.utc)
        if change.trigger is not None:
            if target != self.state:
                logger.info(
                    "Session %s: %s -> %s (trigger: %s)",
                    self.key, self.state.value, target.value, change.trigger.value,
                )
            self.state = target
            self.trace.append(StateEntry(state=target, entered_at=now, trigger=change.trigger))
        self.updated_at = now
        return self.state

    def clear_transient(self) -> None:
        """Drop flow data. Client identity survives only for authenticated sessions."""
        keys = TRANSIENT_KEYS if self.authenticated else TRANSIENT_KEYS + CLIENT_KEYS
        for key in keys:
            self.context.pop(key, None)

    def get_state_trace(self) -> list[str]:
        """Return the sequence of state values visited."""
        return [entry.state.value for entry in self.trace]
