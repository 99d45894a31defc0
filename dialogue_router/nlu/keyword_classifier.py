"""Keyword-only classifier used for quick commands and as the last detection step."""

from typing import Optional

from dialogue_router.logging_context import get_turn_logger
from dialogue_router.nlu.normalizer import normalize
from dialogue_router.nlu.rules import (
    FALLBACK_COMMANDS,
    FALLBACK_PATTERNS,
    PRODUCT_CATEGORIES,
    QUICK_COMMANDS,
    contains_phrase,
)

logger = get_turn_logger(__name__)

UNKNOWN = "unknown"


class KeywordFallbackClassifier:
    """Deterministic bot vocabulary: commands, account regexes, product categories.

    Commands are checked first, then account-related patterns, then a bare
    product category mention. The first hit wins.
    """

    def classify(self, text: str) -> str:
        normalized = normalize(text)
        if not normalized:
            return UNKNOWN

        for intent, pattern in FALLBACK_PATTERNS:
            if pattern.search(normalized):
                return intent

        for intent, phrases in FALLBACK_COMMANDS.items():
            if contains_phrase(normalized, phrases):
                return intent

        if contains_phrase(normalized, PRODUCT_CATEGORIES):
            return "product_category"

        return UNKNOWN

    def quick_command(self, text: str) -> Optional[str]:
        """Return the action for a single-word command, or None."""
        normalized = normalize(text)
        action = QUICK_COMMANDS.get(normalized)
        if action:
            logger.debug("Quick command matched: %s -> %s", normalized, action)
        return action
