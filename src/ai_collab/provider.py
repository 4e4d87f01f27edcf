"""Abstract base class for upstream AI provider callers."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from .config import ProviderConfig
from .errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0
MAX_OUTPUT_TOKENS = 4000


class ProviderCaller(ABC):
    """Base class for provider backends.

    Each backend (Claude, OpenAI, Gemini, Ollama) takes a fully assembled
    prompt and returns the response text, or raises UpstreamError. The
    core depends on nothing else.
    """

    def __init__(self, config: ProviderConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    @property
    def key(self) -> str:
        return self.config.key

    @property
    def name(self) -> str:
        return self.config.name

    def is_configured(self) -> bool:
        """Return True if the provider has the credentials it needs."""
        return self.config.is_configured

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Send the prompt and return the response text."""
        ...

    # ── Shared HTTP plumbing ─────────────────────────────────────────

    async def _post_json(self, url: str, payload: dict, headers: Optional[dict] = None) -> dict:
        """POST a JSON body and return the decoded JSON response.

        Non-2xx responses raise UpstreamError with the status embedded in the
        message, e.g. "Claude API error (401): ...".
        """
        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)

        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, headers=request_headers)
            else:
                async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
                    response = await client.post(url, json=payload, headers=request_headers)
        except httpx.HTTPError as e:
            raise UpstreamError(self.name, f"{self.name} request failed: {e}") from e

        if response.status_code >= 400:
            raise UpstreamError(
                self.name,
                f"{self.name} API error ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(self.name, f"{self.name} returned invalid JSON: {e}") from e

    def _malformed(self, data: dict) -> UpstreamError:
        logger.warning("Unexpected response shape from %s: %s", self.name, list(data)[:5])
        return UpstreamError(self.name, f"No usable response from {self.name} API")
