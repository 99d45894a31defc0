"""Customer-key logging context for tracing one turn across modules.

Every inbound message belongs to exactly one customer key (the sender's
phone-like identifier). The engine stores it in a ContextVar at the start
of a turn so records from the detector, router, dispatcher and stores can
be filtered per customer, even when many turns run concurrently.

Usage:
    from dialogue_router.logging_context import get_turn_logger, set_customer_key

    set_customer_key("51987654321")
    logger = get_turn_logger(__name__)
    logger.info("Routing message")  # record.customer_key == "51987654321"
"""

import logging
from contextvars import ContextVar

_customer_key: ContextVar[str] = ContextVar("customer_key", default="NO_CUSTOMER")


def set_customer_key(key: str) -> None:
    """Set the customer key for the current async context."""
    _customer_key.set(key)


def get_customer_key() -> str:
    """Retrieve the current customer key."""
    return _customer_key.get()


class CustomerKeyFilter(logging.Filter):
    """Injects customer_key into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.customer_key = _customer_key.get()  # type: ignore[attr-defined]
        return True


def get_turn_logger(name: str) -> logging.Logger:
    """Return a logger with the CustomerKeyFilter attached.

    Formatters can then include ``%(customer_key)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CustomerKeyFilter) for f in logger.filters):
        logger.addFilter(CustomerKeyFilter())
    return logger


def attach_to_handlers(handlers) -> None:
    """Attach the CustomerKeyFilter to output handlers.

    Records from libraries that do not use ``get_turn_logger`` (httpx,
    asyncio) still reach these handlers, and a format string with
    ``%(customer_key)s`` needs the attribute on every record.
    """
    for handler in handlers:
        if not any(isinstance(f, CustomerKeyFilter) for f in handler.filters):
            handler.addFilter(CustomerKeyFilter())
