"""
Turn engine: the single entry point a transport calls per inbound message.

One turn runs under the customer's lock, so two messages from the same
customer are handled strictly one after the other while different
customers proceed in parallel. The session is only mutated after the
router has decided, never speculatively.

Usage:
    engine = DialogueEngine(
        store=InMemorySessionStore(),
        commerce=InMemoryCommerce(),
        transport=ConsoleTransport(),
    )
    reply = await engine.handle_turn("51987654321", "hola")
"""

from typing import Optional

from dialogue_router.config import AppConfig, settings
from dialogue_router.conversation.state_machine import InvalidTransitionError, Session, StateChange
from dialogue_router.logging_context import get_turn_logger, set_customer_key
from dialogue_router.prompts.reply_templates import LAST_RESORT_REPLY
from dialogue_router.routing.dispatcher import ActionDispatcher
from dialogue_router.routing.router import DialogueRouter
from dialogue_router.schemas.conversation_schema import Role, Turn
from dialogue_router.services.ai_client import AIClient
from dialogue_router.services.commerce import ORDER_PENDING, CommerceClient
from dialogue_router.services.session_store import SessionStore
from dialogue_router.services.transport import Transport, deliver

logger = get_turn_logger(__name__)


class DialogueEngine:
    """Serializes turns per customer and wires router, dispatcher, store and transport."""

    def __init__(
        self,
        store: SessionStore,
        commerce: CommerceClient,
        transport: Optional[Transport] = None,
        ai_client: Optional[AIClient] = None,
        router: Optional[DialogueRouter] = None,
        dispatcher: Optional[ActionDispatcher] = None,
        config: Optional[AppConfig] = None,
    ):
        self.config = config or settings
        self.store = store
        self.commerce = commerce
        self.transport = transport
        self.router = router or DialogueRouter(commerce, ai_client, config=self.config)
        self.dispatcher = dispatcher or ActionDispatcher(commerce, self.config)

    async def handle_turn(self, key: str, text: str, is_voice: bool = False) -> str:
        """Process one inbound message and return the reply that was sent."""
        set_customer_key(key)
        async with self.store.lock(key):
            try:
                reply = await self._run_turn(key, text, is_voice)
            except Exception:
                logger.exception("Turn failed, sending last-resort reply")
                reply = LAST_RESORT_REPLY

        if self.transport is not None:
            await deliver(self.transport, key, reply)
        return reply

    async def _run_turn(self, key: str, text: str, is_voice: bool) -> str:
        session = await self.store.get(key)
        if session is None:
            session = await self.store.create(key)
        await self._refresh_pending_order(session)

        history = await self.store.get_recent_history(key, self.config.session.ai_history_turns)
        decision = await self.router.route(text, session, history, is_voice)

        if decision.is_action:
            result = await self.dispatcher.dispatch(decision.action, decision.action_data, session)
            reply, change = result.reply, result.state_change
        else:
            reply, change = decision.message, decision.state_change

        if change is not None:
            self._apply(session, change)
        await self.store.save(session)

        await self.store.append_history(key, Turn(role=Role.CUSTOMER, text=text or "", is_voice=is_voice))
        await self.store.append_history(key, Turn(role=Role.ASSISTANT, text=reply))
        logger.debug("Turn via %s ended in %s", decision.source, session.state.value)
        return reply

    def _apply(self, session: Session, change: StateChange) -> None:
        try:
            session.apply(change)
        except InvalidTransitionError as e:
            # the reply still goes out, only the state stays put
            logger.warning("Rejected state change: %s", e)

    async def _refresh_pending_order(self, session: Session) -> None:
        """Drop the pending order reference if the backend no longer has it pending."""
        order_id = session.pending_order_id
        if order_id is None:
            return
        order = await self.commerce.get_order(order_id)
        if order is None or order["status"] != ORDER_PENDING:
            logger.info("Pending order %s is no longer open", order_id)
            session.context.pop("pedido_id", None)
