"""
State handlers: one coroutine per dialogue state.

``HANDLERS`` maps each state to the handler that owns its turns. A
handler returns a ``DialogueDecision`` or None when the utterance is
not meant for it (only the IDLE handler declines). Handlers never mutate
the session. They describe the next state through a ``StateChange`` and
the engine applies it once the turn completes.

The universal cancellation rule wraps the table lookup itself, so no
handler needs its own "cancel" branch unless its state is exempt.

Usage:
    deps = HandlerDeps(commerce=InMemoryCommerce())
    decision = await handle_state("cancelar", session, deps)
"""

import functools
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from dialogue_router.config import AppConfig, settings
from dialogue_router.conversation.state_machine import (
    CLIENT_KEYS,
    Session,
    SessionState,
    StateChange,
    TransitionTrigger,
)
from dialogue_router.conversation.validators import clean_field, require_field, validate_field
from dialogue_router.errors import ValidationError
from dialogue_router.logging_context import get_turn_logger
from dialogue_router.nlu.normalizer import correct_transcription, normalize
from dialogue_router.nlu.rules import (
    AFFIRM_WORDS,
    CANCEL_WORDS,
    CONFIRM_WORDS,
    FORGOT_PASSWORD_WORDS,
    GUEST_ORDER_WORDS,
    KEEP_WORDS,
    NEGATE_WORDS,
    PASSWORD_CANCEL_WORDS,
    REGISTER_WORDS,
    contains_phrase,
    match_payment_method,
)
from dialogue_router.prompts import reply_templates as replies
from dialogue_router.schemas.decision_schema import DialogueDecision
from dialogue_router.services.commerce import ORDER_PENDING, CommerceClient
from dialogue_router.utils import extract_local_phone, format_phone, normalize_phone

logger = get_turn_logger(__name__)

T = TransitionTrigger

# States that reuse yes/no vocabulary for their own purpose.
CANCEL_EXEMPT_STATES = frozenset({
    SessionState.IDLE,
    SessionState.AWAITING_CLIENT_CONFIRMATION,
    SessionState.AWAITING_PASSWORD,
})

SMS_KEYS = ("_sms_code", "_sms_code_expires", "_sms_attempts")
SMS_CODE_LENGTH = 6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _sms_code() -> str:
    return f"{secrets.randbelow(10 ** SMS_CODE_LENGTH):0{SMS_CODE_LENGTH}d}"


@dataclass
class HandlerDeps:
    """Collaborators and knobs a handler may use."""
    commerce: CommerceClient
    config: AppConfig = field(default_factory=lambda: settings)
    clock: Callable[[], datetime] = _utcnow
    code_generator: Callable[[], str] = _sms_code


Handler = Callable[[str, Session, HandlerDeps], Awaitable[Optional[DialogueDecision]]]


def _reply(message: str, change: Optional[StateChange] = None) -> DialogueDecision:
    return DialogueDecision.reply(message, state_change=change, source="state_handler")


def _client_context(client: dict) -> dict:
    return {
        "_client_id": client["id"],
        "_client_phone": client["phone"],
        "_client_name": client["name"],
    }


def is_cancellation(text: str) -> bool:
    return contains_phrase(normalize(text), CANCEL_WORDS)


# ------------------------------------------------------------------ #
# Identification
# ------------------------------------------------------------------ #

async def handle_idle(text: str, session: Session, deps: HandlerDeps) -> Optional[DialogueDecision]:
    """Phone entry, order confirmation and the REGISTRAR / PEDIDO keywords. Everything else is declined."""
    normalized = normalize(text)

    if not session.authenticated:
        phone = extract_local_phone(text, deps.config.validation.phone_digits)
        if phone:
            client = await deps.commerce.find_client_by_phone(phone)
            if client:
                return _reply(
                    replies.ask_password(client["name"]),
                    StateChange(T.CLIENT_FOUND, context={**_client_context(client), "_input_phone": phone}),
                )
            return _reply(
                replies.client_not_found_offer(phone),
                StateChange(T.CLIENT_NOT_FOUND, context={"_input_phone": phone}),
            )

    if session.pending_order_id is not None and normalized in CONFIRM_WORDS:
        return DialogueDecision.delegate(
            "confirm_order", {"order_id": session.pending_order_id}, source="state_handler"
        )

    if contains_phrase(normalized, REGISTER_WORDS):
        return await start_registration(session, deps)

    if normalized in GUEST_ORDER_WORDS:
        return await start_guest_order(session, deps)

    return None


async def start_registration(session: Session, deps: HandlerDeps) -> DialogueDecision:
    """Known numbers go to login, unknown ones need a phone before the REG chain."""
    if session.authenticated:
        return _reply(replies.welcome_back(session.client_name))
    input_phone = session.context.get("_input_phone")
    client = await deps.commerce.find_client_by_phone(input_phone or session.key)
    if client:
        return _reply(
            replies.ask_password(client["name"]),
            StateChange(T.CLIENT_FOUND, context=_client_context(client)),
        )
    if not input_phone:
        return _reply(replies.ASK_PHONE_FOR_FLOW, StateChange(T.PHONE_REQUESTED))
    return _reply(replies.ASK_REG_NAME, StateChange(T.REGISTRATION_STARTED))


async def start_guest_order(session: Session, deps: HandlerDeps) -> DialogueDecision:
    if session.authenticated or session.has_guest_data:
        return _reply(replies.guest_ready(session.client_name or ""))
    if not session.context.get("_input_phone"):
        return _reply(replies.ASK_PHONE_FOR_FLOW, StateChange(T.PHONE_REQUESTED))
    return _reply(replies.ASK_TEMP_NAME, StateChange(T.GUEST_ORDER_STARTED))


async def handle_client_confirmation(
    text: str, session: Session, deps: HandlerDeps
) -> DialogueDecision:
    normalized = normalize(text)

    # "no soy cliente" also contains an affirmative word
    if contains_phrase(normalized, NEGATE_WORDS):
        return _reply(replies.NOT_CLIENT_MENU, StateChange(T.NOT_A_CLIENT))

    if contains_phrase(normalized, AFFIRM_WORDS):
        client = await deps.commerce.find_client_by_phone(session.key)
        if client:
            logger.info("Sender number matches client %s", client["id"])
            return _reply(
                replies.ask_password(client["name"]),
                StateChange(T.CLIENT_FOUND, context=_client_context(client)),
            )
        return _reply(replies.ASK_PHONE, StateChange(T.CLIENT_NOT_FOUND))

    return _reply(replies.CLIENT_CONFIRMATION_REPROMPT)


async def handle_phone(text: str, session: Session, deps: HandlerDeps) -> DialogueDecision:
    phone = extract_local_phone(text, deps.config.validation.phone_digits)
    if not phone:
        return _reply(replies.PHONE_INVALID)

    client = await deps.commerce.find_client_by_phone(phone)
    if client:
        return _reply(
            replies.ask_password(client["name"]),
            StateChange(T.CLIENT_FOUND, context={**_client_context(client), "_input_phone": phone}),
        )
    return _reply(
        replies.client_not_found_offer(phone),
        StateChange(T.CLIENT_NOT_FOUND, context={"_input_phone": phone}),
    )


# ------------------------------------------------------------------ #
# Authentication
# ------------------------------------------------------------------ #

async def handle_password(text: str, session: Session, deps: HandlerDeps) -> DialogueDecision:
    normalized = normalize(text)

    if contains_phrase(normalized, PASSWORD_CANCEL_WORDS):
        return _reply(
            replies.PASSWORD_CANCELLED,
            StateChange(T.USER_CANCELLED, clear=("_input_phone",) + CLIENT_KEYS, reset=True),
        )

    if contains_phrase(normalized, FORGOT_PASSWORD_WORDS) or "olvid" in normalized:
        return await _start_sms_recovery(session, deps)

    if normalized in AFFIRM_WORDS:
        return _reply(replies.PASSWORD_REPROMPT)

    client_id = session.context.get("_client_id")
    if client_id is None:
        logger.warning("Password entered without an identified client")
        return _reply(replies.ASK_CLIENT, StateChange(T.USER_CANCELLED, reset=True))

    password = clean_field("password", text)
    token = await deps.commerce.verify_password(client_id, password)
    if not token:
        logger.info("Wrong password for client %s", client_id)
        return _reply(replies.WRONG_PASSWORD)

    auth_context = {"_authenticated": True, "_user_token": token}
    name = session.context.get("_client_name")
    order_id = session.pending_order_id
    if order_id is not None:
        order = await deps.commerce.get_order(order_id)
        if order and order["status"] == ORDER_PENDING:
            return _reply(
                f"{replies.welcome_back(name)}\n\n{replies.format_order(order)}\n\n"
                f"{replies.PAYMENT_METHODS_LIST}",
                StateChange(T.AUTHENTICATED_WITH_ORDER, context=auth_context, clear=("_input_phone",)),
            )
    return _reply(
        replies.welcome_back(name),
        StateChange(T.AUTHENTICATED, context=auth_context, clear=("_input_phone",)),
    )


async def _start_sms_recovery(session: Session, deps: HandlerDeps) -> DialogueDecision:
    phone = session.context.get("_client_phone") or normalize_phone(session.key)
    code = deps.code_generator()
    ttl = deps.config.session.sms_code_ttl_minutes
    expires = deps.clock() + timedelta(minutes=ttl)
    try:
        sent = await deps.commerce.send_verification_code(phone, code)
    except Exception:
        logger.exception("Sending verification code failed")
        sent = False
    if not sent:
        logger.warning("Verification code for %s may not have been delivered", phone)
    return _reply(
        replies.sms_code_sent(format_phone(phone), ttl),
        StateChange(T.SMS_SENT, context={
            "_sms_code": code,
            "_sms_code_expires": expires.isoformat(),
            "_sms_attempts": 0,
        }),
    )


async def handle_sms_code(text: str, session: Session, deps: HandlerDeps) -> DialogueDecision:
    max_attempts = deps.config.session.sms_max_attempts
    attempts = int(session.context.get("_sms_attempts") or 0)
    expires_raw = session.context.get("_sms_code_expires")

    if expires_raw and deps.clock() > datetime.fromisoformat(expires_raw):
        return _reply(replies.SMS_EXPIRED, StateChange(T.SMS_FAILED, reset=True))

    code = re.sub(r"\D", "", text or "")
    if code and code == session.context.get("_sms_code"):
        return _reply(
            replies.welcome_back(session.context.get("_client_name")),
            StateChange(
                T.AUTHENTICATED,
                context={"_authenticated": True, "_sms_verified": True},
                clear=SMS_KEYS + ("_input_phone",),
            ),
        )

    attempts += 1
    if attempts >= max_attempts:
        return _reply(replies.SMS_EXCEEDED, StateChange(T.SMS_FAILED, reset=True))
    remaining = max_attempts - attempts
    message = (
        replies.sms_bad_format(remaining) if len(code) != SMS_CODE_LENGTH
        else replies.sms_attempts_left(remaining)
    )
    return _reply(message, StateChange(context={"_sms_attempts": attempts}))


# ------------------------------------------------------------------ #
# Registration and guest data chains
# ------------------------------------------------------------------ #

def _chain_step(field_name: str, context_key: str, next_prompt: str) -> Handler:
    """Build a handler that validates one field and advances to the next step."""

    async def handler(text: str, session: Session, deps: HandlerDeps) -> DialogueDecision:
        ok, result = validate_field(field_name, text)
        if not ok:
            return _reply(result)
        return _reply(next_prompt, StateChange(T.FIELD_ACCEPTED, context={context_key: result}))

    handler.__name__ = f"handle_{context_key.strip('_')}"
    return handler


handle_reg_name = _chain_step("name", "_reg_nombre", replies.ASK_REG_DNI)
handle_reg_dni = _chain_step("dni", "_reg_dni", replies.ASK_REG_EMAIL)
handle_reg_email = _chain_step("email", "_reg_email", replies.ASK_REG_PASSWORD)
handle_temp_name = _chain_step("name", "_temp_nombre", replies.ASK_TEMP_DNI)


async def handle_reg_password(text: str, session: Session, deps: HandlerDeps) -> DialogueDecision:
    ok, password = validate_field("password", text)
    if not ok:
        return _reply(password)

    ctx = session.context
    phone = ctx.get("_input_phone") or session.key
    result = await deps.commerce.register_client(
        name=ctx.get("_reg_nombre", ""),
        dni=ctx.get("_reg_dni", ""),
        email=ctx.get("_reg_email", ""),
        password=password,
        phone=phone,
    )
    if not result.success:
        logger.info("Registration rejected: %s", result.message)
        return _reply(
            replies.registration_failed(result.message),
            StateChange(T.REGISTRATION_FINISHED, reset=True),
        )

    client = result.data["client"]
    return _reply(
        replies.registration_done(client["name"]),
        StateChange(
            T.REGISTRATION_FINISHED,
            reset=True,
            context={
                **_client_context(client),
                "_authenticated": True,
                "_user_token": result.data.get("token"),
            },
        ),
    )


async def handle_temp_dni(text: str, session: Session, deps: HandlerDeps) -> DialogueDecision:
    ok, dni = validate_field("dni", text)
    if not ok:
        return _reply(dni)
    name = session.context.get("_temp_nombre", "")
    phone = session.context.get("_input_phone") or session.key
    return _reply(
        replies.guest_ready(name),
        StateChange(T.GUEST_DATA_COMPLETE, context={
            "_temp_dni": dni,
            "_temp_phone": normalize_phone(phone),
        }),
    )


# ------------------------------------------------------------------ #
# Orders and profile
# ------------------------------------------------------------------ #

async def handle_payment_method(text: str, session: Session, deps: HandlerDeps) -> DialogueDecision:
    method = match_payment_method(normalize(text)) or match_payment_method(correct_transcription(text))
    if method is None:
        return _reply(f"🤔 No reconocí el método de pago.\n\n{replies.PAYMENT_METHODS_LIST}")

    order_id = session.pending_order_id
    if order_id is None:
        return _reply(replies.NO_ACTIVE_ORDER, StateChange(T.NO_ACTIVE_ORDER))

    return DialogueDecision.delegate(
        "confirm_order",
        {"order_id": order_id, "payment_method": method},
        source="state_handler",
    )


async def handle_cancel_confirmation(
    text: str, session: Session, deps: HandlerDeps
) -> DialogueDecision:
    normalized = normalize(text)
    order_id = session.context.get("_pedido_a_cancelar")

    if contains_phrase(normalized, CONFIRM_WORDS):
        if order_id is None:
            return _reply(replies.NOTHING_TO_CANCEL, StateChange(T.CANCEL_RESOLVED))
        return DialogueDecision.delegate(
            "cancel_confirmed_order", {"order_id": order_id}, source="state_handler"
        )

    if contains_phrase(normalized, KEEP_WORDS):
        return _reply(
            replies.ORDER_KEPT,
            StateChange(T.CANCEL_RESOLVED, clear=("_pedido_a_cancelar",)),
        )

    return _reply(replies.CANCEL_CONFIRM_REPROMPT)


_UPDATE_FIELDS = {
    SessionState.AWAITING_UPDATE_TELEFONO: "telefono",
    SessionState.AWAITING_UPDATE_DIRECCION: "direccion",
    SessionState.AWAITING_UPDATE_EMAIL: "email",
}


async def handle_profile_update(text: str, session: Session, deps: HandlerDeps) -> DialogueDecision:
    field_name = session.context.get("_updating_field") or _UPDATE_FIELDS[session.state]
    try:
        value = require_field(field_name, text)
    except ValidationError as e:
        return _reply(f"{e.prompt}\n\nO escribe *CANCELAR* para volver.")
    return DialogueDecision.delegate(
        "update_profile_field",
        {"field": field_name, "value": value},
        source="state_handler",
    )


# ------------------------------------------------------------------ #
# Dispatch table
# ------------------------------------------------------------------ #

HANDLERS: dict[SessionState, Handler] = {
    SessionState.IDLE: handle_idle,
    SessionState.AWAITING_CLIENT_CONFIRMATION: handle_client_confirmation,
    SessionState.AWAITING_PHONE: handle_phone,
    SessionState.AWAITING_PASSWORD: handle_password,
    SessionState.AWAITING_SMS_CODE: handle_sms_code,
    SessionState.AWAITING_REG_NAME: handle_reg_name,
    SessionState.AWAITING_REG_DNI: handle_reg_dni,
    SessionState.AWAITING_REG_EMAIL: handle_reg_email,
    SessionState.AWAITING_REG_PASSWORD: handle_reg_password,
    SessionState.AWAITING_TEMP_NAME: handle_temp_name,
    SessionState.AWAITING_TEMP_DNI: handle_temp_dni,
    SessionState.AWAITING_PAYMENT_METHOD: handle_payment_method,
    SessionState.AWAITING_CANCEL_CONFIRMATION: handle_cancel_confirmation,
    SessionState.AWAITING_UPDATE_TELEFONO: handle_profile_update,
    SessionState.AWAITING_UPDATE_DIRECCION: handle_profile_update,
    SessionState.AWAITING_UPDATE_EMAIL: handle_profile_update,
}


def with_universal_cancel(handler: Handler) -> Handler:
    """Let a cancellation utterance abandon any non-exempt state before ``handler`` runs."""

    @functools.wraps(handler)
    async def wrapper(text: str, session: Session, deps: HandlerDeps) -> Optional[DialogueDecision]:
        if session.state not in CANCEL_EXEMPT_STATES and is_cancellation(text):
            logger.info("Universal cancel from %s", session.state.value)
            return DialogueDecision.reply(
                replies.UNIVERSAL_CANCELLED,
                state_change=StateChange(T.USER_CANCELLED, reset=True),
                source="universal_cancel",
            )
        return await handler(text, session, deps)

    return wrapper


@with_universal_cancel
async def handle_state(text: str, session: Session, deps: HandlerDeps) -> Optional[DialogueDecision]:
    """Run the handler that owns the session's current state."""
    handler = HANDLERS.get(session.state)
    if handler is None:
        logger.warning("No handler for state %s", session.state.value)
        return None
    return await handler(text, session, deps)
