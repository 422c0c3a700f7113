"""
Minimal Google Gemini client (generateContent, text in, text out).
"""

from __future__ import annotations

import logging

import httpx

from ..exceptions import ProviderError

logger = logging.getLogger(__name__)


class GeminiClient:
    """
    Text generation over the Gemini REST API.

    The API key is sent as a header rather than a query parameter so it never
    appears in logged URLs.
    """

    name = "gemini"

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
    ):
        """
        Args:
            http: Shared HTTP client
            api_key: Gemini API key
            model: Model name
            base_url: API base URL
        """
        self._http = http
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")

    async def generate(self, prompt: str) -> str:
        """
        Generate text for a prompt.

        Raises:
            ProviderError: On HTTP errors or when the reply carries no text
        """
        try:
            response = await self._http.post(
                f"{self._base_url}/models/{self._model}:generateContent",
                json={"contents": [{"parts": [{"text": prompt}]}]},
                headers={"x-goog-api-key": self._api_key},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}") from e
        except ValueError as e:
            raise ProviderError(self.name, f"invalid JSON reply: {e}") from e

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = None

        if not text or not text.strip():
            raise ProviderError(self.name, "no response text")
        return text
