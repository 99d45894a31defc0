"""Tests for the in-memory session store."""

import pytest

from dialogue_router.conversation.state_machine import SessionState
from dialogue_router.schemas.conversation_schema import Role, Turn
from dialogue_router.services.session_store import InMemorySessionStore

from tests.conftest import ANA_KEY, UNKNOWN_KEY


def _turn(i: int) -> Turn:
    return Turn(role=Role.CUSTOMER, text=f"mensaje {i}")


class TestSessions:
    def setup_method(self):
        self.store = InMemorySessionStore(history_limit=4)

    @pytest.mark.asyncio
    async def test_missing_session_is_none(self):
        assert await self.store.get(ANA_KEY) is None

    @pytest.mark.asyncio
    async def test_create_starts_idle(self):
        session = await self.store.create(ANA_KEY)
        assert session.state == SessionState.IDLE
        assert session.context == {}
        assert await self.store.get(ANA_KEY) is session

    @pytest.mark.asyncio
    async def test_get_or_create_reuses(self):
        first = await self.store.get_or_create(ANA_KEY)
        second = await self.store.get_or_create(ANA_KEY)
        assert first is second

    @pytest.mark.asyncio
    async def test_update_merges_and_removes(self):
        await self.store.update(ANA_KEY, SessionState.AWAITING_REG_DNI, {"_reg_nombre": "Rosa", "x": 1})
        session = await self.store.update(ANA_KEY, SessionState.AWAITING_REG_DNI, {"x": None})
        assert session.state == SessionState.AWAITING_REG_DNI
        assert session.context == {"_reg_nombre": "Rosa"}

    @pytest.mark.asyncio
    async def test_stores_are_independent(self):
        other = InMemorySessionStore()
        await self.store.create(ANA_KEY)
        assert await other.get(ANA_KEY) is None

    @pytest.mark.asyncio
    async def test_reset(self):
        await self.store.create(ANA_KEY)
        self.store.reset()
        assert await self.store.get(ANA_KEY) is None


class TestHistory:
    def setup_method(self):
        self.store = InMemorySessionStore(history_limit=4)

    @pytest.mark.asyncio
    async def test_history_is_trimmed_to_limit(self):
        for i in range(6):
            await self.store.append_history(ANA_KEY, _turn(i))
        session = await self.store.get(ANA_KEY)
        assert [t.text for t in session.history] == [f"mensaje {i}" for i in range(2, 6)]

    @pytest.mark.asyncio
    async def test_recent_history_returns_last_n(self):
        for i in range(3):
            await self.store.append_history(ANA_KEY, _turn(i))
        recent = await self.store.get_recent_history(ANA_KEY, 2)
        assert [t.text for t in recent] == ["mensaje 1", "mensaje 2"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("n", [0, -1])
    async def test_non_positive_n_is_empty(self, n):
        await self.store.append_history(ANA_KEY, _turn(0))
        assert await self.store.get_recent_history(ANA_KEY, n) == []

    @pytest.mark.asyncio
    async def test_unknown_key_has_no_history(self):
        assert await self.store.get_recent_history(UNKNOWN_KEY, 5) == []


class TestLocks:
    def test_same_key_same_lock(self):
        store = InMemorySessionStore()
        assert store.lock(ANA_KEY) is store.lock(ANA_KEY)

    def test_different_keys_different_locks(self):
        store = InMemorySessionStore()
        assert store.lock(ANA_KEY) is not store.lock(UNKNOWN_KEY)
