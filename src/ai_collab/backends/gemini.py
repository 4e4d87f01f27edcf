"""Google Gemini generateContent backend."""

from ..provider import MAX_OUTPUT_TOKENS, ProviderCaller


class GeminiCaller(ProviderCaller):
    """Caller for Gemini. The key travels as a query parameter."""

    async def complete(self, prompt: str) -> str:
        data = await self._post_json(
            f"{self.config.base_url}?key={self.config.api_key}",
            {
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {"maxOutputTokens": MAX_OUTPUT_TOKENS, "temperature": 0.7},
            },
        )
        candidates = data.get("candidates") or []
        if not candidates:
            raise self._malformed(data)
        try:
            return candidates[0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed(data)
