"""Shared test fixtures and helpers."""

import asyncio
from typing import Any, Optional

import pytest

from dialogue_router.conversation.handlers import HandlerDeps
from dialogue_router.conversation.state_machine import Session, SessionState
from dialogue_router.errors import AIUnavailable, TransportFailure
from dialogue_router.routing.dispatcher import ActionDispatcher
from dialogue_router.routing.engine import DialogueEngine
from dialogue_router.routing.router import DialogueRouter
from dialogue_router.services.commerce import InMemoryCommerce
from dialogue_router.services.session_store import InMemorySessionStore

ANA_KEY = "51987654321"
UNKNOWN_KEY = "51900000001"


class FakeAIClient:
    """Scriptable AI collaborator. Records every prompt it receives."""

    def __init__(
        self,
        available: bool = True,
        structured: Optional[dict[str, Any]] = None,
        text: str = "",
        delay: float = 0.0,
        fail: bool = False,
    ):
        self.available = available
        self.structured = structured or {}
        self.text = text
        self.delay = delay
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    async def is_available(self) -> bool:
        return self.available

    async def generate_text(self, prompt, system_prompt="", options=None) -> str:
        self.calls.append(("text", prompt))
        await self._maybe_wait()
        return self.text

    async def generate_structured(self, prompt, system_prompt="", options=None) -> dict:
        self.calls.append(("structured", prompt))
        await self._maybe_wait()
        return self.structured

    async def _maybe_wait(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise AIUnavailable("scripted failure")


class RecordingTransport:
    """Collects delivered replies; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    async def send_message(self, key: str, text: str) -> None:
        if self.fail:
            raise TransportFailure("channel closed")
        self.sent.append((key, text))


def make_session(
    key: str = ANA_KEY,
    state: SessionState = SessionState.IDLE,
    **context: Any,
) -> Session:
    """Helper to create a Session with a given state and context."""
    return Session(key=key, state=state, context=dict(context))


def authenticated_context(client_id: int = 1, name: str = "Ana Torres", phone: str = ANA_KEY) -> dict:
    return {
        "_authenticated": True,
        "_user_token": "token",
        "_client_id": client_id,
        "_client_name": name,
        "_client_phone": phone,
    }


@pytest.fixture
def commerce():
    return InMemoryCommerce()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def deps(commerce):
    return HandlerDeps(commerce=commerce, code_generator=lambda: "123456")


@pytest.fixture
def router(commerce):
    return DialogueRouter(commerce=commerce, ai_client=None)


@pytest.fixture
def dispatcher(commerce):
    return ActionDispatcher(commerce)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def engine(store, commerce, transport):
    return DialogueEngine(store=store, commerce=commerce, transport=transport)
