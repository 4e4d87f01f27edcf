"""Anthropic Messages API backend."""

from ..provider import MAX_OUTPUT_TOKENS, ProviderCaller

ANTHROPIC_VERSION = "2023-06-01"


class ClaudeCaller(ProviderCaller):
    """Caller for Claude through the Messages API."""

    async def complete(self, prompt: str) -> str:
        data = await self._post_json(
            self.config.base_url,
            {
                "model": self.config.model,
                "max_tokens": MAX_OUTPUT_TOKENS,
                "messages": [{"role": "user", "content": prompt}],
            },
            headers={
                "x-api-key": self.config.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
        )
        try:
            return "".join(
                block.get("text", "") for block in data["content"] if block.get("type") == "text"
            )
        except (KeyError, TypeError, AttributeError):
            raise self._malformed(data)
