"""
Offline console demo: chat with the sales assistant from a terminal.

Runs the real routing engine against the in-memory catalog and session
store. The AI collaborator is optional: by default no model is used and
every AI step degrades to its deterministic fallback.

Usage:
    python console_demo.py
    python console_demo.py --scenario login
    python console_demo.py --ollama http://localhost:11434
"""

import argparse
import asyncio
from typing import Optional

from dialogue_router.config import settings
from dialogue_router.routing.engine import DialogueEngine
from dialogue_router.services.ai_client import OllamaClient
from dialogue_router.services.commerce import InMemoryCommerce
from dialogue_router.services.session_store import InMemorySessionStore
from dialogue_router.services.transport import ConsoleTransport

BLUE = "\033[94m"
GREEN = "\033[92m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

# The first seeded client's number, so "sí" finds an account.
DEFAULT_KEY = "51987654321"


class ConsoleChat:
    """Feeds terminal input to a DialogueEngine and prints the state after each turn."""

    # Pre-scripted scenarios for --scenario flag
    SCENARIOS: dict[str, list[str]] = {
        "price": [
            "hola",
            "no",
            "¿cuánto cuesta una laptop?",
            "tienen mouse logitech?",
            "catalogo",
        ],
        "login": [
            "hola",
            "sí",
            "clave123",
            "mis pedidos",
            "estado",
        ],
        "register": [
            "registrar",
            "999888777",
            "registrar",
            "María Quispe",
            "12345",
            "71234567",
            "maria.quispe@correo.pe",
            "secreta1",
        ],
        "cancel": [
            "hola",
            "sí",
            "salir",
            "ayuda",
        ],
    }

    # Scenarios that need a sender number with no account.
    SCENARIO_KEYS: dict[str, str] = {"register": "51955443322"}

    MAX_INPUT_LENGTH = 500

    def __init__(self, key: str = DEFAULT_KEY, ollama_url: Optional[str] = None) -> None:
        self.key = key
        self.store = InMemorySessionStore()
        self.commerce = InMemoryCommerce()
        self.ai_client = OllamaClient(base_url=ollama_url) if ollama_url else None
        self.engine = DialogueEngine(
            store=self.store,
            commerce=self.commerce,
            transport=ConsoleTransport(prefix=f"{GREEN}{BOLD}[Bot]{RESET}"),
            ai_client=self.ai_client,
        )

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    async def _turn(self, text: str) -> None:
        await self.engine.handle_turn(self.key, text)
        session = await self.store.get(self.key)
        if session is not None:
            self.system_log(f"State: {session.state.value}")

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {title}{RESET}")
        print(f"{BOLD}  Tienda: {settings.business.name} | Cliente: {self.key}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    async def _summary(self) -> None:
        session = await self.store.get(self.key)
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        if session is not None:
            print(f"{DIM}  State trace: {' -> '.join(session.get_state_trace())}{RESET}")
        if self.commerce.sent_codes:
            print(f"{DIM}  SMS codes sent: {self.commerce.sent_codes}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return
        self.key = self.SCENARIO_KEYS.get(scenario, self.key)
        self._banner(f"SALES ASSISTANT - Scenario: {scenario}")
        for step in steps:
            print(f"\n{BLUE}[Cliente] {RESET}{step}")
            await self._turn(step)
        await self._summary()

    async def run(self) -> None:
        self._banner("SALES ASSISTANT - Console Demo (escribe 'quit' para salir)")
        loop = asyncio.get_running_loop()
        while True:
            user_input = (await loop.run_in_executor(None, input, f"\n{BLUE}[Cliente] {RESET}")).strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                break
            if len(user_input) > self.MAX_INPUT_LENGTH:
                self.system_log("Mensaje demasiado largo, ignorado.")
                continue
            if user_input.startswith("/voz "):
                await self.engine.handle_turn(self.key, user_input[5:], is_voice=True)
                continue
            await self._turn(user_input)
        await self._summary()

    async def close(self) -> None:
        if self.ai_client is not None:
            await self.ai_client.close()


async def _main(args: argparse.Namespace) -> None:
    chat = ConsoleChat(key=args.key, ollama_url=args.ollama)
    try:
        if args.scenario:
            await chat.run_scenario(args.scenario)
        else:
            await chat.run()
    finally:
        await chat.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleChat.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    parser.add_argument("--key", default=DEFAULT_KEY, help="Customer key (sender phone number)")
    parser.add_argument("--ollama", default=None, help="Ollama base URL; omit to run without AI")
    args = parser.parse_args()
    asyncio.run(_main(args))


if __name__ == "__main__":
    main()
