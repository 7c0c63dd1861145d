"""LLM client for the shared-report summary job.

Prompts go to a local Ollama. An OpenAI-compatible endpoint can be
configured as a second backend, but it is only used when the caller passes
``local_only=False``: redacted report text stays on the host by default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when no permitted backend produced a response."""


@dataclass(frozen=True, slots=True)
class LLMResponse:
    """Result from an LLM generation call."""

    text: str
    model: str
    total_duration_ms: int | None
    backend: str  # "ollama" or "fallback"


class LLMService:
    """Non-streaming text generation against Ollama, with an opt-in fallback."""

    __slots__ = (
        "ollama_url",
        "model",
        "_timeout",
        "_fallback_url",
        "_fallback_api_key",
        "_fallback_model",
    )

    def __init__(
        self,
        ollama_url: str,
        model: str = "llama3.2",
        timeout: float = 120.0,
        fallback_url: str = "",
        fallback_api_key: str = "",
        fallback_model: str = "",
    ) -> None:
        self.ollama_url = ollama_url.rstrip("/")
        self.model = model
        self._timeout = timeout
        self._fallback_url = fallback_url.rstrip("/") if fallback_url else ""
        self._fallback_api_key = fallback_api_key
        self._fallback_model = fallback_model or model

    @property
    def has_fallback(self) -> bool:
        return bool(self._fallback_url)

    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        temperature: float = 0.3,
        local_only: bool = True,
    ) -> LLMResponse:
        """Generate a complete response.

        Ollama is always tried first. With ``local_only=False`` and a
        configured fallback, an Ollama failure is retried on the fallback.

        Raises:
            LLMError: Every permitted backend failed.
        """
        try:
            return await self._generate_ollama(prompt, system, temperature)
        except LLMError as exc:
            if local_only or not self.has_fallback:
                raise
            logger.warning("Ollama failed (%s), using fallback LLM", exc)
        return await self._generate_openai(prompt, system, temperature)

    async def _post_json(
        self, label: str, url: str, payload: dict, headers: dict | None = None
    ) -> dict:
        """POST *payload* and return the decoded body, mapping httpx errors to LLMError."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, headers=headers, json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.ConnectError as exc:
            raise LLMError(f"Cannot connect to {label} at {url}: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise LLMError(f"{label} returned HTTP {exc.response.status_code}: {exc}") from exc
        except httpx.TimeoutException as exc:
            raise LLMError(f"{label} request timed out after {self._timeout}s: {exc}") from exc

    async def _generate_ollama(
        self, prompt: str, system: str | None, temperature: float
    ) -> LLMResponse:
        payload: dict = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature},
        }
        if system is not None:
            payload["system"] = system

        data = await self._post_json("Ollama", f"{self.ollama_url}/api/generate", payload)
        try:
            return LLMResponse(
                text=data["response"],
                model=data.get("model", self.model),
                total_duration_ms=data.get("total_duration", 0) // 1_000_000,
                backend="ollama",
            )
        except KeyError as exc:
            raise LLMError(f"Unexpected response from Ollama: missing {exc}") from exc

    async def _generate_openai(
        self, prompt: str, system: str | None, temperature: float
    ) -> LLMResponse:
        messages: list[dict] = []
        if system is not None:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        data = await self._post_json(
            "fallback LLM",
            f"{self._fallback_url}/chat/completions",
            {
                "model": self._fallback_model,
                "messages": messages,
                "temperature": temperature,
                "stream": False,
            },
            headers={"Authorization": f"Bearer {self._fallback_api_key}"},
        )
        try:
            return LLMResponse(
                text=data["choices"][0]["message"]["content"],
                model=data.get("model", self._fallback_model),
                total_duration_ms=None,
                backend="fallback",
            )
        except (KeyError, IndexError) as exc:
            raise LLMError(f"Unexpected response from fallback LLM: {exc}") from exc

    async def check_health(self) -> bool:
        """True if Ollama answers on /api/tags."""
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(f"{self.ollama_url}/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False
