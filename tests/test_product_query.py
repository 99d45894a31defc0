"""Tests for product question parsing and catalog resolution."""

from dataclasses import replace

import pytest

from dialogue_router.config import settings
from dialogue_router.errors import LookupNotFound
from dialogue_router.routing.product_query import (
    ProductQueryResolver,
    deterministic_query,
    extract_quantity,
    is_price_query,
    is_product_query,
    is_stock_query,
    strip_query_words,
)
from dialogue_router.schemas.product_schema import ProductQuery, QueryIntent

from tests.conftest import FakeAIClient

FAST_CONFIG = replace(settings, ai=replace(settings.ai, light_timeout_sec=0.05))


class TestVocabulary:
    def test_price(self):
        assert is_price_query("cuanto cuesta una laptop")
        assert not is_price_query("hola")

    def test_stock(self):
        assert is_stock_query("tienen mouse")
        assert is_product_query("hay audifonos")

    @pytest.mark.parametrize("text,expected", [
        ("quiero 2 mouse", 2),
        ("dame tres laptop", 3),
        ("un teclado", 1),
        ("mouse", 1),
        ("quiero 500 mouse", 1),
    ])
    def test_extract_quantity(self, text, expected):
        assert extract_quantity(text) == expected


class TestDeterministicQuery:
    def test_strips_question_words(self):
        assert strip_query_words("¿Cuánto cuesta una laptop lenovo?") == "laptop lenovo"

    def test_stock_question(self):
        query = deterministic_query("¿tienen mouse logitech?")
        assert query.product == "mouse logitech"
        assert query.category == "mouse"
        assert query.intent == QueryIntent.CONSULTAR_STOCK

    def test_price_question_with_synonym(self):
        query = deterministic_query("precio del portátil")
        assert query.product == "laptop"
        assert query.intent == QueryIntent.CONSULTAR_PRECIO


class TestResolverExtract:
    @pytest.mark.asyncio
    async def test_without_ai_uses_deterministic(self, commerce):
        resolver = ProductQueryResolver(commerce)
        query = await resolver.extract("cuánto cuesta una laptop")
        assert query.product == "laptop"

    @pytest.mark.asyncio
    async def test_ai_extraction_is_normalized(self, commerce):
        ai = FakeAIClient(structured={
            "product": "Laptop Lenobo", "brand": "lenovo", "category": "null",
            "intent": "consultar_precio",
        })
        query = await ProductQueryResolver(commerce, ai).extract("cuanto la lenobo")
        assert query.product == "laptop lenovo"
        assert query.brand == "lenovo"
        assert query.category is None
        assert query.intent == QueryIntent.CONSULTAR_PRECIO
        assert ai.calls and ai.calls[0][0] == "structured"

    @pytest.mark.asyncio
    async def test_slow_ai_falls_back(self, commerce):
        ai = FakeAIClient(structured={"product": "monitor"}, delay=0.5)
        resolver = ProductQueryResolver(commerce, ai, FAST_CONFIG)
        query = await resolver.extract("cuánto cuesta una laptop")
        assert query.product == "laptop"

    @pytest.mark.asyncio
    async def test_failing_ai_falls_back(self, commerce):
        resolver = ProductQueryResolver(commerce, FakeAIClient(fail=True))
        query = await resolver.extract("tienen mouse")
        assert query.product == "mouse"

    @pytest.mark.asyncio
    async def test_malformed_ai_output_falls_back(self, commerce):
        resolver = ProductQueryResolver(commerce, FakeAIClient(structured={"product": ["x"]}))
        query = await resolver.extract("tienen mouse")
        assert query.product == "mouse"

    @pytest.mark.asyncio
    async def test_empty_ai_product_falls_back(self, commerce):
        resolver = ProductQueryResolver(commerce, FakeAIClient(structured={"product": "de la"}))
        query = await resolver.extract("precio del teclado")
        assert query.product == "teclado"


class TestResolverFind:
    def test_search_terms_order(self, commerce):
        resolver = ProductQueryResolver(commerce)
        query = ProductQuery(product="laptop gamer asus", brand="Asus", category="laptop")
        assert resolver.search_terms(query) == ["laptop gamer asus", "asus", "laptop", "gamer asus"]

    @pytest.mark.asyncio
    async def test_exact_phrase(self, commerce):
        product = await ProductQueryResolver(commerce).find(ProductQuery(product="mouse logitech"))
        assert product.name == "Mouse Logitech M185"

    @pytest.mark.asyncio
    async def test_in_stock_item_preferred(self, commerce):
        product = await ProductQueryResolver(commerce).find(ProductQuery(product="laptop"))
        assert product.name.startswith("Laptop Lenovo")

    @pytest.mark.asyncio
    async def test_falls_back_to_category(self, commerce):
        query = ProductQuery(product="laptop gamer rosada", category="laptop")
        product = await ProductQueryResolver(commerce).find(query)
        assert product.category == "laptop"

    @pytest.mark.asyncio
    async def test_miss_raises_lookup_not_found(self, commerce):
        with pytest.raises(LookupNotFound) as excinfo:
            await ProductQueryResolver(commerce).find(ProductQuery(product="bicicleta"))
        assert excinfo.value.term == "bicicleta"
