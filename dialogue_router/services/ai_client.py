"""
AI/LLM collaborator interface and an Ollama HTTP adapter.

The routing core only needs three capabilities: an availability check,
free-text generation, and JSON generation. Every call site treats the
collaborator as optional and bounds it with a timeout, so the adapter
does not retry.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from dialogue_router.config import settings
from dialogue_router.errors import AIUnavailable
from dialogue_router.logging_context import get_turn_logger

logger = get_turn_logger(__name__)

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True)
class GenerationOptions:
    temperature: float = settings.ai.temperature
    top_p: float = settings.ai.top_p
    top_k: int = settings.ai.top_k
    max_tokens: int = settings.ai.max_tokens


EXTRACTION_OPTIONS = GenerationOptions(temperature=settings.ai.extraction_temperature)


class AIClient(Protocol):
    async def is_available(self) -> bool: ...

    async def generate_text(
        self, prompt: str, system_prompt: str = "", options: Optional[GenerationOptions] = None
    ) -> str: ...

    async def generate_structured(
        self, prompt: str, system_prompt: str = "", options: Optional[GenerationOptions] = None
    ) -> dict[str, Any]: ...


def parse_json_reply(text: str) -> dict[str, Any]:
    """Pull the first JSON object out of a model reply.

    Models often wrap JSON in prose or code fences.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    match = _JSON_BLOCK.search(text or "")
    if not match:
        raise ValueError("No JSON object in model reply")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Model reply JSON is not an object")
    return data


class OllamaClient:
    """Adapter for a local Ollama server's ``/api/generate`` endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model or settings.ai.model
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(settings.ai.order_parse_timeout_sec),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def is_available(self) -> bool:
        try:
            response = await self._get_client().get("/api/tags", timeout=2.0)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug("Ollama availability check failed: %s", e)
            return False

    async def generate_text(
        self, prompt: str, system_prompt: str = "", options: Optional[GenerationOptions] = None
    ) -> str:
        return await self._generate(prompt, system_prompt, options or GenerationOptions())

    async def generate_structured(
        self, prompt: str, system_prompt: str = "", options: Optional[GenerationOptions] = None
    ) -> dict[str, Any]:
        text = await self._generate(
            prompt, system_prompt, options or EXTRACTION_OPTIONS, json_format=True
        )
        return parse_json_reply(text)

    async def _generate(
        self,
        prompt: str,
        system_prompt: str,
        options: GenerationOptions,
        json_format: bool = False,
    ) -> str:
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "system": system_prompt,
            "stream": False,
            "options": {
                "temperature": options.temperature,
                "top_p": options.top_p,
                "top_k": options.top_k,
                "num_predict": options.max_tokens,
            },
        }
        if json_format:
            payload["format"] = "json"
        try:
            response = await self._get_client().post("/api/generate", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AIUnavailable(f"Ollama request failed: {e}") from e
        try:
            body = response.json()
        except ValueError as e:
            raise AIUnavailable(f"Ollama returned a non-JSON body: {e}") from e
        return (body.get("response") or "").strip()
