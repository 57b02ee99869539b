"""
Clients for external move-suggestion services.

A suggester receives a textual state description (and a serialized snapshot of
the state) and returns free text. It never judges legality; that is the
negotiator's job. Transport problems surface as ``SuggesterError``.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
import websockets

from gridlords.config import ServerConfig, SuggesterConfig

logger = logging.getLogger(__name__)


class SuggesterError(Exception):
    """The suggestion request itself failed (network, HTTP status, bad envelope)."""


class SuggesterTimeout(SuggesterError):
    """The suggestion request did not complete within its time bound."""


class Suggester(ABC):
    """Base class for move-suggestion services."""

    name = "suggester"

    @abstractmethod
    async def suggest(self, prompt: str, state: Dict[str, Any]) -> str:
        """
        Request a move suggestion.

        Args:
            prompt: Natural-language description of the position and reply format
            state: JSON-ready snapshot from ``GameState.to_dict``

        Returns:
            The raw reply text

        Raises:
            SuggesterError: If the request fails
        """

    async def close(self) -> None:
        """Release any held connection."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class GeminiSuggester(Suggester):
    """Suggester backed by the Gemini ``generateContent`` HTTP API."""

    name = "gemini"

    def __init__(self, api_key: str, model: str = SuggesterConfig.GEMINI_MODEL,
                 timeout: float = SuggesterConfig.REQUEST_TIMEOUT,
                 temperature: float = SuggesterConfig.TEMPERATURE,
                 client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name substituted into the endpoint
            timeout: Per-request timeout in seconds
            temperature: Sampling temperature
            client: Optional preconfigured ``httpx.AsyncClient``

        Raises:
            ValueError: If no API key is given
        """
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.api_key = api_key
        self.url = SuggesterConfig.GEMINI_ENDPOINT.format(model=model)
        self.timeout = timeout
        self.temperature = temperature
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def suggest(self, prompt: str, state: Dict[str, Any]) -> str:
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": self.temperature},
        }
        try:
            response = await self._get_client().post(
                self.url, params={"key": self.api_key}, json=body, timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            raise SuggesterTimeout("Gemini request timed out") from e
        except httpx.HTTPError as e:
            raise SuggesterError(f"Gemini request failed: {e}") from e

        if response.status_code != 200:
            raise SuggesterError(f"Gemini API error {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise SuggesterError("Gemini response is not JSON") from e

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = None
        if not isinstance(text, str):
            raise SuggesterError("Gemini response does not contain text")
        return text

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class WebSocketSuggester(Suggester):
    """
    Suggester that asks a suggestion bot served over WebSockets.

    Protocol: send ``{"type": "suggest", "prompt": ..., "state": ...}``, receive
    ``{"type": "suggestion", "text": ...}`` or ``{"type": "error", "message": ...}``.
    """

    name = "websocket"

    def __init__(self, server_url: Optional[str] = None, timeout: float = SuggesterConfig.REQUEST_TIMEOUT):
        self.server_url = server_url or ServerConfig.url()
        self.timeout = timeout
        self.websocket = None

    async def connect(self) -> None:
        """Connect to the suggestion server if not already connected."""
        if self.websocket is not None:
            return
        logger.info(f"Connecting to suggestion server {self.server_url}")
        try:
            self.websocket = await websockets.connect(self.server_url, open_timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise SuggesterTimeout(f"Timed out connecting to {self.server_url}") from e
        except (OSError, websockets.exceptions.WebSocketException) as e:
            raise SuggesterError(f"Cannot connect to {self.server_url}: {e}") from e

    async def suggest(self, prompt: str, state: Dict[str, Any]) -> str:
        await self.connect()
        message = {"type": "suggest", "prompt": prompt, "state": state}
        try:
            await self.websocket.send(json.dumps(message))
            raw = await asyncio.wait_for(self.websocket.recv(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            await self.close()
            raise SuggesterTimeout("Timed out waiting for suggestion") from e
        except websockets.exceptions.WebSocketException as e:
            self.websocket = None
            raise SuggesterError(f"Suggestion server connection lost: {e}") from e
        except asyncio.CancelledError:
            # A reply may still arrive for this request; never let the next one read it
            logger.debug("Suggestion request cancelled, dropping connection")
            await self.close()
            raise

        try:
            reply = json.loads(raw)
        except ValueError as e:
            raise SuggesterError("Suggestion server sent invalid JSON") from e

        message_type = reply.get("type") if isinstance(reply, dict) else None
        if message_type == "suggestion" and isinstance(reply.get("text"), str):
            return reply["text"]
        if message_type == "error":
            raise SuggesterError(f"Suggestion server error: {reply.get('message', 'unknown')}")
        raise SuggesterError(f"Unexpected message from suggestion server: {message_type}")

    async def close(self) -> None:
        if self.websocket is not None:
            websocket, self.websocket = self.websocket, None
            try:
                await websocket.close()
            except websockets.exceptions.WebSocketException as e:
                logger.debug(f"Error closing suggestion connection: {e}")
