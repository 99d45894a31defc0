"""Tests for the Ollama adapter and JSON reply parsing."""

import json

import httpx
import pytest

from dialogue_router.errors import AIUnavailable
from dialogue_router.services.ai_client import (
    EXTRACTION_OPTIONS,
    GenerationOptions,
    OllamaClient,
    parse_json_reply,
)


def _client(handler) -> OllamaClient:
    return OllamaClient(
        base_url="http://ollama.test/", model="qwen2.5:3b", transport=httpx.MockTransport(handler)
    )


class TestParseJsonReply:
    def test_plain_object(self):
        assert parse_json_reply('{"intent": "OTRO"}') == {"intent": "OTRO"}

    def test_object_wrapped_in_prose(self):
        text = 'Claro, aquí está:\n```json\n{"product": "mouse", "brand": null}\n```'
        assert parse_json_reply(text) == {"product": "mouse", "brand": None}

    @pytest.mark.parametrize("text", ["", "sin json", "[1, 2]"])
    def test_no_object_raises(self, text):
        with pytest.raises(ValueError):
            parse_json_reply(text)

    def test_broken_json_raises(self):
        with pytest.raises(ValueError):
            parse_json_reply('{"product": mouse}')


class TestOllamaClient:
    @pytest.mark.asyncio
    async def test_available_when_tags_answer(self):
        client = _client(lambda request: httpx.Response(200, json={"models": []}))
        assert await client.is_available()
        await client.close()

    @pytest.mark.asyncio
    async def test_unavailable_on_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)
        assert await client.is_available() is False
        await client.close()

    @pytest.mark.asyncio
    async def test_generate_text_payload(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "  ¡Hola!  "})

        client = _client(handler)
        reply = await client.generate_text("hola", "eres un asistente", GenerationOptions(temperature=0.5))
        await client.close()

        assert reply == "¡Hola!"
        assert seen["path"] == "/api/generate"
        body = seen["body"]
        assert body["model"] == "qwen2.5:3b"
        assert body["system"] == "eres un asistente"
        assert body["stream"] is False
        assert body["options"]["temperature"] == 0.5
        assert "format" not in body

    @pytest.mark.asyncio
    async def test_generate_structured_requests_json(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": '{"intent": "HACER_PEDIDO", "products": []}'})

        client = _client(handler)
        data = await client.generate_structured("quiero 2 mouse")
        await client.close()

        assert data == {"intent": "HACER_PEDIDO", "products": []}
        assert seen["body"]["format"] == "json"
        assert seen["body"]["options"]["temperature"] == EXTRACTION_OPTIONS.temperature

    @pytest.mark.asyncio
    async def test_server_error_raises_unavailable(self):
        client = _client(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(AIUnavailable):
            await client.generate_text("hola")
        await client.close()

    @pytest.mark.asyncio
    async def test_structured_garbage_raises_value_error(self):
        client = _client(lambda request: httpx.Response(200, json={"response": "no sé"}))
        with pytest.raises(ValueError):
            await client.generate_structured("hola")
        await client.close()

    @pytest.mark.asyncio
    async def test_non_json_body_raises_unavailable(self):
        client = _client(lambda request: httpx.Response(200, text="<html>proxy error</html>"))
        with pytest.raises(AIUnavailable):
            await client.generate_text("hola")
        await client.close()
