"""Reply delivery. The routing core only needs ``send_message``."""

from typing import Protocol

from dialogue_router.errors import TransportFailure
from dialogue_router.logging_context import get_turn_logger

logger = get_turn_logger(__name__)


class Transport(Protocol):
    async def send_message(self, key: str, text: str) -> None: ...


class ConsoleTransport:
    """Prints replies to stdout, used by the console demo."""

    def __init__(self, prefix: str = "Bot"):
        self.prefix = prefix

    async def send_message(self, key: str, text: str) -> None:
        print(f"\n  {self.prefix}: {text}\n")


async def deliver(transport: Transport, key: str, text: str) -> bool:
    """Send a reply, logging instead of raising when delivery fails.

    A failed delivery does not undo the turn: the session has already
    moved on and the customer can simply write again.
    """
    try:
        await transport.send_message(key, text)
        return True
    except TransportFailure as e:
        logger.warning("Reply to %s not delivered: %s", key, e)
    except Exception:
        logger.exception("Transport raised while delivering to %s", key)
    return False
