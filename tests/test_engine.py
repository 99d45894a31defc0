"""Tests for the turn engine: locking, persistence, delivery and failure handling."""

import asyncio

import pytest

from dialogue_router.conversation.state_machine import SessionState, StateChange, TransitionTrigger
from dialogue_router.prompts.reply_templates import ASK_CLIENT, LAST_RESORT_REPLY
from dialogue_router.routing.engine import DialogueEngine
from dialogue_router.schemas.conversation_schema import Role
from dialogue_router.schemas.decision_schema import DialogueDecision
from dialogue_router.schemas.product_schema import OrderLine
from dialogue_router.services.commerce import ORDER_CONFIRMED

from tests.conftest import (
    ANA_KEY,
    UNKNOWN_KEY,
    FakeAIClient,
    RecordingTransport,
    authenticated_context,
)

S = SessionState


class ScriptedRouter:
    """Router stand-in that returns a fixed decision and tracks overlapping turns."""

    def __init__(self, decision=None, delay: float = 0.0, fail: bool = False):
        self.decision = decision or DialogueDecision.reply("ok", source="scripted")
        self.delay = delay
        self.fail = fail
        self.active = 0
        self.max_active = 0

    async def route(self, raw_text, session, history=None, is_voice=False):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail:
                raise RuntimeError("router exploded")
            return self.decision
        finally:
            self.active -= 1


class TestTurnBasics:
    @pytest.mark.asyncio
    async def test_first_turn_creates_session(self, engine, store, transport):
        reply = await engine.handle_turn(ANA_KEY, "hola")
        session = await store.get(ANA_KEY)
        assert reply == ASK_CLIENT
        assert session.state == S.AWAITING_CLIENT_CONFIRMATION
        assert transport.sent == [(ANA_KEY, ASK_CLIENT)]

    @pytest.mark.asyncio
    async def test_history_records_both_sides(self, engine, store):
        await engine.handle_turn(ANA_KEY, "hola", is_voice=True)
        history = await store.get_recent_history(ANA_KEY, 10)
        assert [t.role for t in history] == [Role.CUSTOMER, Role.ASSISTANT]
        assert history[0].text == "hola"
        assert history[0].is_voice is True
        assert history[1].text == ASK_CLIENT

    @pytest.mark.asyncio
    async def test_works_without_transport(self, store, commerce):
        engine = DialogueEngine(store=store, commerce=commerce)
        assert await engine.handle_turn(ANA_KEY, "hola") == ASK_CLIENT

    @pytest.mark.asyncio
    async def test_transport_failure_is_not_fatal(self, store, commerce):
        engine = DialogueEngine(store=store, commerce=commerce, transport=RecordingTransport(fail=True))
        reply = await engine.handle_turn(ANA_KEY, "hola")
        session = await store.get(ANA_KEY)
        assert reply == ASK_CLIENT
        assert session.state == S.AWAITING_CLIENT_CONFIRMATION


class TestFailureHandling:
    @pytest.mark.asyncio
    async def test_router_crash_sends_last_resort(self, store, commerce, transport):
        engine = DialogueEngine(store=store, commerce=commerce, transport=transport,
                                router=ScriptedRouter(fail=True))
        reply = await engine.handle_turn(ANA_KEY, "hola")
        assert reply == LAST_RESORT_REPLY
        assert transport.sent == [(ANA_KEY, LAST_RESORT_REPLY)]

    @pytest.mark.asyncio
    async def test_invalid_transition_keeps_state(self, store, commerce):
        decision = DialogueDecision.reply(
            "listo", state_change=StateChange(TransitionTrigger.AUTHENTICATED), source="scripted"
        )
        engine = DialogueEngine(store=store, commerce=commerce, router=ScriptedRouter(decision))
        reply = await engine.handle_turn(ANA_KEY, "hola")
        session = await store.get(ANA_KEY)
        assert reply == "listo"
        assert session.state == S.IDLE

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self, store, commerce):
        engine = DialogueEngine(store=store, commerce=commerce, router=ScriptedRouter(fail=True))
        await engine.handle_turn(ANA_KEY, "hola")
        assert not store.lock(ANA_KEY).locked()


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_same_customer_turns_are_serialized(self, store, commerce):
        router = ScriptedRouter(delay=0.02)
        engine = DialogueEngine(store=store, commerce=commerce, router=router)
        await asyncio.gather(*(engine.handle_turn(ANA_KEY, f"msg {i}") for i in range(3)))
        assert router.max_active == 1
        assert len(await store.get_recent_history(ANA_KEY, 10)) == 6

    @pytest.mark.asyncio
    async def test_different_customers_run_in_parallel(self, store, commerce):
        router = ScriptedRouter(delay=0.02)
        engine = DialogueEngine(store=store, commerce=commerce, router=router)
        await asyncio.gather(
            engine.handle_turn(ANA_KEY, "hola"),
            engine.handle_turn(UNKNOWN_KEY, "hola"),
        )
        assert router.max_active == 2


class TestPendingOrderRefresh:
    @pytest.mark.asyncio
    async def test_stale_order_reference_dropped(self, engine, store):
        await store.update(ANA_KEY, S.IDLE, {"pedido_id": 999})
        await engine.handle_turn(ANA_KEY, "catalogo")
        session = await store.get(ANA_KEY)
        assert "pedido_id" not in session.context

    @pytest.mark.asyncio
    async def test_open_order_reference_kept(self, engine, store, commerce):
        result = await commerce.create_order(ANA_KEY, [OrderLine(name="mouse", quantity=1)])
        order_id = result.data["order"]["id"]
        await store.update(ANA_KEY, S.IDLE, {"pedido_id": order_id})
        await engine.handle_turn(ANA_KEY, "catalogo")
        session = await store.get(ANA_KEY)
        assert session.pending_order_id == order_id


class TestConversations:
    @pytest.mark.asyncio
    async def test_login_with_password(self, engine, store):
        await engine.handle_turn(ANA_KEY, "hola")
        reply = await engine.handle_turn(ANA_KEY, "sí")
        assert "Ana Torres" in reply
        session = await store.get(ANA_KEY)
        assert session.state == S.AWAITING_PASSWORD

        reply = await engine.handle_turn(ANA_KEY, "clave123")
        session = await store.get(ANA_KEY)
        assert "Bienvenido" in reply
        assert session.authenticated
        assert session.state == S.IDLE

    @pytest.mark.asyncio
    async def test_ai_parsed_order_is_created(self, store, commerce):
        ai = FakeAIClient(structured={
            "intent": "HACER_PEDIDO",
            "products": [{"name": "mouse logitech", "quantity": 2}],
        })
        engine = DialogueEngine(store=store, commerce=commerce, ai_client=ai)
        reply = await engine.handle_turn(UNKNOWN_KEY, "quiero 2 mouse logitech")
        session = await store.get(UNKNOWN_KEY)
        assert "Mouse Logitech M185" in reply
        assert session.pending_order_id == 1001
        assert commerce.orders[1001]["items"][0]["quantity"] == 2

    @pytest.mark.asyncio
    async def test_payment_word_confirms_pending_order(self, engine, store, commerce):
        result = await commerce.create_order(ANA_KEY, [OrderLine(name="teclado", quantity=1)])
        order_id = result.data["order"]["id"]
        await store.update(ANA_KEY, S.IDLE, {"pedido_id": order_id, **authenticated_context()})

        reply = await engine.handle_turn(ANA_KEY, "yape")
        session = await store.get(ANA_KEY)
        assert "Pago con Yape" in reply
        assert commerce.orders[order_id]["status"] == ORDER_CONFIRMED
        assert session.pending_order_id is None
        assert session.state == S.IDLE
