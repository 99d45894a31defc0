"""
Product query resolution for the price/stock fast path.

A product question is answered in two stages: figure out which product
the customer means (AI extraction when available, deterministic
stripping otherwise), then search the catalog with progressively looser
terms until something matches.

Usage:
    resolver = ProductQueryResolver(commerce, ai_client)
    query = await resolver.extract("¿cuánto cuesta una laptop?")
    product = await resolver.find(query)   # raises LookupNotFound on a miss
"""

import asyncio
import re
from typing import Optional

from pydantic import ValidationError as SchemaError

from dialogue_router.config import AppConfig, settings
from dialogue_router.errors import AIUnavailable, LookupNotFound
from dialogue_router.logging_context import get_turn_logger
from dialogue_router.nlu.normalizer import normalize, normalize_for_search
from dialogue_router.nlu.rules import (
    PRICE_QUERY,
    PRODUCT_CATEGORIES,
    QUERY_NOISE,
    STOCK_QUERY,
    STOPWORDS,
)
from dialogue_router.prompts.system_prompts import PRODUCT_EXTRACTION_PROMPT
from dialogue_router.schemas.product_schema import ProductCandidate, ProductQuery, QueryIntent
from dialogue_router.services.ai_client import EXTRACTION_OPTIONS, AIClient
from dialogue_router.services.commerce import CommerceClient

logger = get_turn_logger(__name__)

_NUMBER_WORDS = {
    "un": 1, "uno": 1, "una": 1, "dos": 2, "tres": 3, "cuatro": 4, "cinco": 5,
    "seis": 6, "siete": 7, "ocho": 8, "nueve": 9, "diez": 10,
}
_LEADING_QTY = re.compile(r"\b(\d{1,3})\b")


def is_price_query(normalized: str) -> bool:
    return bool(PRICE_QUERY.search(normalized))


def is_stock_query(normalized: str) -> bool:
    return bool(STOCK_QUERY.search(normalized))


def is_product_query(normalized: str) -> bool:
    """True when the text uses price or stock vocabulary."""
    return is_price_query(normalized) or is_stock_query(normalized)


def extract_quantity(normalized: str) -> int:
    """First explicit quantity in the text, digits or number words. Defaults to 1."""
    match = _LEADING_QTY.search(normalized)
    if match and 0 < int(match.group(1)) <= 100:
        return int(match.group(1))
    for token in normalized.split():
        if token in _NUMBER_WORDS:
            return _NUMBER_WORDS[token]
    return 1


def strip_query_words(text: str) -> str:
    """Drop question vocabulary, quantities and stop words, leaving the product description."""
    tokens = [
        token for token in normalize(text).split()
        if token not in QUERY_NOISE
        and token not in STOPWORDS
        and token not in _NUMBER_WORDS
        and not token.isdigit()
    ]
    return normalize_for_search(" ".join(tokens))


def deterministic_query(text: str) -> ProductQuery:
    normalized = normalize(text)
    product = strip_query_words(text)
    category = next((c for c in PRODUCT_CATEGORIES if f" {c} " in f" {product} "), None)
    if is_price_query(normalized):
        intent = QueryIntent.CONSULTAR_PRECIO
    elif is_stock_query(normalized):
        intent = QueryIntent.CONSULTAR_STOCK
    else:
        intent = QueryIntent.OTRO
    return ProductQuery(product=product, category=category, intent=intent)


class ProductQueryResolver:
    """Turns a free-text product question into a catalog hit."""

    def __init__(
        self,
        commerce: CommerceClient,
        ai_client: Optional[AIClient] = None,
        config: Optional[AppConfig] = None,
    ):
        self.commerce = commerce
        self.ai_client = ai_client
        self.config = config or settings

    async def extract(self, text: str) -> ProductQuery:
        """AI extraction bounded by the light timeout, deterministic on any failure."""
        fallback = deterministic_query(text)
        if self.ai_client is None:
            return fallback
        timeout = self.config.ai.light_timeout_sec
        try:
            data = await asyncio.wait_for(
                self.ai_client.generate_structured(
                    f'Mensaje del cliente: "{text}"',
                    PRODUCT_EXTRACTION_PROMPT,
                    EXTRACTION_OPTIONS,
                ),
                timeout=timeout,
            )
            query = ProductQuery.model_validate(data)
        except asyncio.TimeoutError:
            logger.warning("Product extraction timed out after %.1fs", timeout)
            return fallback
        except (AIUnavailable, SchemaError, ValueError) as e:
            logger.warning("Product extraction failed: %s", e)
            return fallback

        product = normalize_for_search(query.product)
        if not product:
            return fallback
        logger.debug("AI product extraction: %s", query)
        return query.model_copy(update={
            "product": product,
            "intent": fallback.intent if query.intent == QueryIntent.OTRO else query.intent,
        })

    def search_terms(self, query: ProductQuery) -> list[str]:
        """Terms to try, most specific first: phrase, brand, category, last two words."""
        words = query.product.split()
        brand = normalize_for_search(query.brand) if query.brand else ""
        category = normalize_for_search(query.category) if query.category else ""
        terms = [query.product, brand, category, " ".join(words[-2:])]
        unique = []
        for term in terms:
            if term and term not in unique:
                unique.append(term)
        return unique

    async def find(self, query: ProductQuery) -> ProductCandidate:
        """Return the best catalog match.

        Raises:
            LookupNotFound: If no search term yields a product.
        """
        for term in self.search_terms(query):
            hits = await self.commerce.search_products(term, limit=5)
            if hits:
                logger.debug("Product search hit on %r: %s", term, hits[0].name)
                return hits[0]
        raise LookupNotFound("product", query.product or "")
