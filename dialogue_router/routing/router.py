"""
Dialogue router: one ordered pipeline, one decision per turn.

The precedence order is the ``steps`` list itself:

1. quick_command            single-word commands, no AI or context
2. state_handler            the current state's handler owns the turn
3. product_fast_path        price/stock questions, or adding to a pending order
4. intent_detection         detector cascade mapped to deterministic handlers
5. ai_order_parsing         structured order extraction, bounded by a timeout
6. conversational_fallback  AI reply, or a canned reply when AI is unavailable

Every step returns ``Ok`` or ``Err``. Anything a step raises is logged and
treated as ``Err``, so the only fallback mechanism is moving down the list.
If every step fails the router still answers with the last-resort reply.

Usage:
    router = DialogueRouter(commerce=InMemoryCommerce(), ai_client=None)
    decision = await router.route("hola", session)
"""

import asyncio
from typing import Optional

from pydantic import ValidationError as SchemaError

from dialogue_router.config import AppConfig, settings
from dialogue_router.conversation.handlers import (
    HandlerDeps,
    handle_state,
    start_guest_order,
    start_registration,
)
from dialogue_router.conversation.state_machine import Session, SessionState, StateChange, TransitionTrigger
from dialogue_router.errors import (
    AITimeout,
    AIUnavailable,
    LookupNotFound,
    RoutingError,
    StateTransitionInvalid,
)
from dialogue_router.logging_context import get_turn_logger
from dialogue_router.nlu.intent_detector import IntentDetector, is_valid_transition
from dialogue_router.nlu.keyword_classifier import KeywordFallbackClassifier
from dialogue_router.nlu.normalizer import clean_for_echo, correct_transcription, normalize
from dialogue_router.nlu.rules import (
    ORDER_VOCABULARY,
    PRODUCT_CATEGORIES,
    contains_phrase,
    match_payment_method,
)
from dialogue_router.prompts import reply_templates as replies
from dialogue_router.prompts.system_prompts import (
    CONVERSATION_PROMPT,
    ORDER_EXTRACTION_PROMPT,
    build_conversation_prompt,
)
from dialogue_router.routing.product_query import (
    ProductQueryResolver,
    extract_quantity,
    is_price_query,
    is_product_query,
)
from dialogue_router.routing.result import Err, Ok, RoutingStep, StepResult, TurnInput, skip
from dialogue_router.schemas.conversation_schema import Turn
from dialogue_router.schemas.decision_schema import DialogueDecision
from dialogue_router.schemas.product_schema import OrderExtraction
from dialogue_router.services.ai_client import EXTRACTION_OPTIONS, AIClient, GenerationOptions
from dialogue_router.services.commerce import CommerceClient

logger = get_turn_logger(__name__)

# States whose input is a secret and must never be read as a command.
SECRET_STATES = frozenset({
    SessionState.AWAITING_PASSWORD,
    SessionState.AWAITING_REG_PASSWORD,
    SessionState.AWAITING_SMS_CODE,
})

# States that collect customer data. Their input is kept verbatim and never read as a question.
DATA_ENTRY_STATES = frozenset({
    SessionState.AWAITING_REG_NAME,
    SessionState.AWAITING_REG_DNI,
    SessionState.AWAITING_REG_EMAIL,
    SessionState.AWAITING_TEMP_NAME,
    SessionState.AWAITING_TEMP_DNI,
    SessionState.AWAITING_UPDATE_TELEFONO,
    SessionState.AWAITING_UPDATE_DIRECCION,
    SessionState.AWAITING_UPDATE_EMAIL,
})

VERBATIM_STATES = SECRET_STATES | DATA_ENTRY_STATES

PAYMENT_SHORTCUT_STATES = frozenset({SessionState.IDLE, SessionState.AWAITING_PAYMENT_METHOD})

# Detector intent -> dispatcher action, for intents that need no routing logic.
INTENT_ACTIONS: dict[str, str] = {
    "catalog": "show_catalog",
    "product_category": "show_catalog",
    "help": "show_help",
    "status": "check_status",
    "order_status": "check_status",
    "cancel": "cancel_order",
    "order_history": "view_order_history",
    "account_status": "view_account_status",
    "modify_profile": "modify_profile",
}

PROFILE_FIELD_INTENTS: dict[str, str] = {
    "update_phone": "telefono",
    "update_address": "direccion",
    "update_email": "email",
}

_GREETING_WORDS = ("hola", "buenas", "buenos dias", "buenas tardes", "buenas noches", "hey", "saludos")
_HOW_ARE_YOU_WORDS = ("como estas", "que tal", "como te va", "como vas")
_THANKS_WORDS = ("gracias", "muchas gracias", "te agradezco")
_HELP_WORDS = ("ayuda", "help", "opciones", "que puedes hacer")


def canned_reply(normalized: str) -> str:
    """Small keyword decision tree used when the AI collaborator is unavailable."""
    if contains_phrase(normalized, _HOW_ARE_YOU_WORDS):
        return replies.CANNED_HOW_ARE_YOU
    if contains_phrase(normalized, _GREETING_WORDS):
        return replies.CANNED_GREETING
    if contains_phrase(normalized, _THANKS_WORDS):
        return replies.CANNED_THANKS
    if contains_phrase(normalized, _HELP_WORDS):
        return replies.HELP_TEXT
    return replies.CANNED_GENERIC


class DialogueRouter:
    """Decides, for one utterance, which handler answers and where the session goes next."""

    def __init__(
        self,
        commerce: CommerceClient,
        ai_client: Optional[AIClient] = None,
        detector: Optional[IntentDetector] = None,
        classifier: Optional[KeywordFallbackClassifier] = None,
        config: Optional[AppConfig] = None,
        handler_deps: Optional[HandlerDeps] = None,
    ):
        self.config = config or settings
        self.commerce = commerce
        self.ai_client = ai_client
        self.classifier = classifier or KeywordFallbackClassifier()
        self.detector = detector or IntentDetector(self.classifier, self.config.intent)
        self.deps = handler_deps or HandlerDeps(commerce=commerce, config=self.config)
        self.products = ProductQueryResolver(commerce, ai_client, self.config)
        self.steps: list[RoutingStep] = [
            RoutingStep("quick_command", self._quick_command),
            RoutingStep("state_handler", self._state_handler),
            RoutingStep("product_fast_path", self._product_fast_path),
            RoutingStep("intent_detection", self._intent_detection),
            RoutingStep("ai_order_parsing", self._ai_order_parsing),
            RoutingStep("conversational_fallback", self._conversational_fallback),
        ]

    async def route(
        self,
        raw_text: str,
        session: Session,
        history: Optional[list[Turn]] = None,
        is_voice: bool = False,
    ) -> DialogueDecision:
        """Run the pipeline and return exactly one decision. Never raises."""
        raw_text = raw_text or ""
        corrects = is_voice and session.state not in VERBATIM_STATES
        text = correct_transcription(raw_text) if corrects else raw_text
        turn = TurnInput(
            raw_text=raw_text,
            text=text,
            normalized=normalize(text),
            is_voice=is_voice,
            history=list(history or []),
        )

        for step in self.steps:
            try:
                result = await step.run(turn, session)
            except RoutingError as e:
                result = Err(e)
            except Exception as e:
                logger.exception("Routing step '%s' failed", step.name)
                result = Err(RoutingError(f"{step.name}: {e}"))

            if isinstance(result, Ok):
                logger.info("Turn routed by %s (state=%s)", step.name, session.state.value)
                return result.decision
            logger.debug("Step '%s' passed: %s", step.name, result.error)

        logger.warning("Every routing step failed, using last-resort reply")
        return DialogueDecision.reply(replies.LAST_RESORT_REPLY, source="last_resort")

    # ------------------------------------------------------------------ #
    # 1. Quick commands
    # ------------------------------------------------------------------ #

    async def _quick_command(self, turn: TurnInput, session: Session) -> StepResult:
        if session.state in SECRET_STATES:
            return skip("secret input state")

        action = self.classifier.quick_command(turn.normalized)
        if action:
            return Ok(DialogueDecision.delegate(action, source="quick_command"))

        if session.state in PAYMENT_SHORTCUT_STATES and len(turn.normalized.split()) == 1:
            method = match_payment_method(turn.normalized)
            if method:
                return Ok(self._payment_shortcut(method, session))

        return skip("no quick command")

    def _payment_shortcut(self, method: str, session: Session) -> DialogueDecision:
        order_id = session.pending_order_id
        if order_id is not None:
            return DialogueDecision.delegate(
                "confirm_order",
                {"order_id": order_id, "payment_method": method},
                source="quick_command",
            )
        change = None
        if session.state == SessionState.AWAITING_PAYMENT_METHOD:
            change = StateChange(TransitionTrigger.NO_ACTIVE_ORDER)
        return DialogueDecision.reply(replies.NO_ACTIVE_ORDER, state_change=change, source="quick_command")

    # ------------------------------------------------------------------ #
    # 2. State handlers
    # ------------------------------------------------------------------ #

    async def _state_handler(self, turn: TurnInput, session: Session) -> StepResult:
        # price questions are answered from a menu-style flow without leaving it
        interruptible = session.state not in VERBATIM_STATES and session.state != SessionState.IDLE
        if interruptible and is_price_query(turn.normalized):
            return skip(f"price question while in {session.state.value}")
        decision = await handle_state(turn.text, session, self.deps)
        if decision is None:
            return skip(f"no handler decision in {session.state.value}")
        return Ok(decision)

    # ------------------------------------------------------------------ #
    # 3. Product fast path
    # ------------------------------------------------------------------ #

    async def _product_fast_path(self, turn: TurnInput, session: Session) -> StepResult:
        if is_product_query(turn.normalized):
            query = await self.products.extract(turn.text)
            if not query.product:
                return skip("price/stock question without a product")
            try:
                product = await self.products.find(query)
            except LookupNotFound:
                term = query.product or clean_for_echo(turn.raw_text)
                return Ok(DialogueDecision.reply(
                    replies.product_not_found(term), source="product_fast_path"
                ))
            return Ok(DialogueDecision.reply(replies.product_reply(product), source="product_fast_path"))

        if session.pending_order_id is not None:
            return await self._add_to_pending_order(turn, session)

        return skip("not a product query")

    async def _add_to_pending_order(self, turn: TurnInput, session: Session) -> StepResult:
        query = await self.products.extract(turn.text)
        if not query.product:
            return skip("no product named")
        try:
            product = await self.products.find(query)
        except LookupNotFound as e:
            return Err(e)
        quantity = extract_quantity(turn.normalized)
        return Ok(DialogueDecision.delegate(
            "add_products_to_order",
            {"products": [{"name": product.name, "quantity": quantity}]},
            source="product_fast_path",
        ))

    # ------------------------------------------------------------------ #
    # 4. Intent detection
    # ------------------------------------------------------------------ #

    async def _intent_detection(self, turn: TurnInput, session: Session) -> StepResult:
        result = self.detector.detect(turn.text, session)
        if result.is_unknown or result.confidence < self.config.intent.threshold:
            return skip(f"inconclusive intent ({result.confidence:.2f})")
        if not is_valid_transition(session.state, result.intent):
            return Err(StateTransitionInvalid(
                f"intent '{result.intent}' not accepted in {session.state.value}"
            ))

        intent = result.intent
        source = f"intent:{result.strategy.value}"
        logger.info("Intent %s via %s (%.2f)", intent, result.strategy.value, result.confidence)

        if intent == "greeting":
            if session.authenticated or session.has_guest_data:
                return Ok(DialogueDecision.reply(replies.welcome_back(session.client_name), source=source))
            return Ok(DialogueDecision.reply(
                replies.ASK_CLIENT,
                state_change=StateChange(TransitionTrigger.CLIENT_CHECK),
                source=source,
            ))
        if intent == "order":
            return skip("order intent goes to order parsing")
        if intent in ("price", "stock"):
            return Ok(DialogueDecision.reply(replies.ASK_WHICH_PRODUCT, source=source))
        if intent == "register":
            return Ok(await start_registration(session, self.deps))
        if intent == "temp_order":
            return Ok(await start_guest_order(session, self.deps))
        if intent in PROFILE_FIELD_INTENTS:
            return Ok(DialogueDecision.delegate(
                "modify_profile", {"field": PROFILE_FIELD_INTENTS[intent]}, source=source
            ))
        if intent in INTENT_ACTIONS:
            data = {}
            if intent == "product_category":
                data["category"] = next(
                    (c for c in PRODUCT_CATEGORIES if contains_phrase(result.normalized_text, (c,))),
                    None,
                )
            return Ok(DialogueDecision.delegate(INTENT_ACTIONS[intent], data, source=source))

        return Err(StateTransitionInvalid(f"intent '{intent}' has no handler"))

    # ------------------------------------------------------------------ #
    # 5. AI order parsing
    # ------------------------------------------------------------------ #

    async def _ai_order_parsing(self, turn: TurnInput, session: Session) -> StepResult:
        if not ORDER_VOCABULARY.search(turn.normalized):
            return skip("no order vocabulary")
        if not await self._ai_ready():
            return Err(AIUnavailable("order parsing needs the AI collaborator"))

        timeout = self.config.ai.order_parse_timeout_sec
        try:
            data = await asyncio.wait_for(
                self.ai_client.generate_structured(
                    f'Mensaje del cliente: "{turn.text}"',
                    ORDER_EXTRACTION_PROMPT,
                    EXTRACTION_OPTIONS,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Order parsing timed out after %.1fs", timeout)
            turn.ai_timeouts.append("order_parsing")
            return Err(AITimeout("order parsing", timeout))
        except ValueError as e:
            return Err(AIUnavailable(f"unreadable order extraction: {e}"))

        try:
            extraction = OrderExtraction.model_validate(data)
        except SchemaError as e:
            logger.warning("Order extraction rejected: %s", e.error_count())
            return Err(AIUnavailable("order extraction did not match the schema"))

        if extraction.is_order:
            products = [line.model_dump() for line in extraction.products]
            action = (
                "add_products_to_order" if session.pending_order_id is not None
                else "create_pending_order"
            )
            return Ok(DialogueDecision.delegate(action, {"products": products}, source="ai_order_parsing"))
        if extraction.reply and extraction.reply.strip():
            return Ok(DialogueDecision.reply(extraction.reply.strip(), source="ai_order_parsing"))
        return skip("no order in AI extraction")

    # ------------------------------------------------------------------ #
    # 6. Conversational fallback
    # ------------------------------------------------------------------ #

    async def _conversational_fallback(self, turn: TurnInput, session: Session) -> StepResult:
        if turn.ai_timeouts:
            logger.info("AI already timed out this turn (%s), using canned reply", ", ".join(turn.ai_timeouts))
        elif await self._ai_ready():
            reply = await self._ai_reply(turn, session)
            if reply:
                return Ok(DialogueDecision.reply(reply, source="ai_conversation"))
        return Ok(DialogueDecision.reply(canned_reply(turn.normalized), source="canned"))

    async def _ai_reply(self, turn: TurnInput, session: Session) -> Optional[str]:
        recent = turn.history[-self.config.session.ai_history_turns:]
        prompt = build_conversation_prompt(
            turn.text,
            [(t.role.value, t.text) for t in recent],
            client_name=session.client_name or "",
        )
        timeout = self.config.ai.reply_timeout_sec
        try:
            reply = await asyncio.wait_for(
                self.ai_client.generate_text(prompt, CONVERSATION_PROMPT, GenerationOptions()),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Conversational reply timed out after %.1fs", timeout)
            return None
        except AIUnavailable as e:
            logger.warning("Conversational reply unavailable: %s", e)
            return None
        except Exception:
            logger.exception("Conversational reply failed")
            return None
        return (reply or "").strip() or None

    async def _ai_ready(self) -> bool:
        if self.ai_client is None:
            return False
        try:
            return await asyncio.wait_for(
                self.ai_client.is_available(), timeout=self.config.ai.light_timeout_sec
            )
        except asyncio.TimeoutError:
            logger.warning("AI availability check timed out")
            return False
        except Exception:
            logger.exception("AI availability check failed")
            return False
