"""HTTP client talking to the Gemini generateContent endpoint."""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx

from ..core.config import Settings
from ..core.errors import MalformedResponse, RemoteError, TransportError
from ..core.logger import client as log


class CompletionClient:
    """Async client issuing one generateContent request per prompt."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        # No timeout: a request waits for the transport to answer or fail.
        self._client = httpx.AsyncClient(
            base_url=settings.api_base_url.rstrip("/") + "/",
            timeout=httpx.Timeout(None),
            transport=transport,
        )

    @property
    def endpoint(self) -> str:
        """Path of the generateContent call relative to the base URL."""
        return f"models/{self.settings.model}:generateContent"

    def build_payload(self, prompt_text: str) -> dict[str, Any]:
        """Return the JSON body sent for ``prompt_text``."""
        payload: dict[str, Any] = {
            "contents": [
                {"parts": [{"text": prompt_text}]},
            ],
        }
        if self.settings.sampling_enabled:
            payload["generationConfig"] = {
                "temperature": self.settings.temperature,
                "maxOutputTokens": self.settings.max_output_tokens,
                "topP": self.settings.top_p,
                "topK": self.settings.top_k,
            }
        return payload

    async def generate(self, prompt_text: str, credential: str) -> str:
        """Send ``prompt_text`` and return the first candidate's text.

        Raises ``TransportError`` when no HTTP answer arrives, ``RemoteError``
        for any non-200 status and ``MalformedResponse`` when a 200 answer
        lacks ``candidates[0].content.parts[0].text``.
        """
        started = time.perf_counter()
        try:
            response = await self._client.post(
                self.endpoint,
                params={"key": credential},
                json=self.build_payload(prompt_text),
                headers={"Content-Type": "application/json"},
            )
        except httpx.RequestError as exc:
            log.warning("transport failure: %s", exc.__class__.__name__, extra={"model": self.settings.model})
            raise TransportError(exc) from exc

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        log.info(
            "generateContent answered",
            extra={"status_code": response.status_code, "model": self.settings.model, "elapsed_ms": elapsed_ms},
        )
        if response.status_code != 200:
            raise RemoteError(response.status_code, self._error_message(response))

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponse(response.text[:200]) from exc
        text = self._extract_text(data)
        log.info("candidate extracted", extra={"chars": len(text)})
        return text

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    @staticmethod
    def _extract_text(data: Any) -> str:
        if not isinstance(data, dict):
            raise MalformedResponse("body is not an object")
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise MalformedResponse("no candidates")
        first = candidates[0]
        content = first.get("content") if isinstance(first, dict) else None
        if not isinstance(content, dict):
            raise MalformedResponse("candidate without content")
        parts = content.get("parts")
        if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
            raise MalformedResponse("content without parts")
        text = parts[0].get("text")
        if not isinstance(text, str):
            raise MalformedResponse("part without text")
        return text

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Return ``error.message`` from the body, or the raw body when absent."""
        raw = response.text
        try:
            data = response.json()
        except ValueError:
            return raw
        error = data.get("error") if isinstance(data, dict) else None
        message = error.get("message") if isinstance(error, dict) else None
        if isinstance(message, str) and message:
            return message
        return raw
