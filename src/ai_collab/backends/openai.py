"""OpenAI chat completions backend."""

from ..provider import MAX_OUTPUT_TOKENS, ProviderCaller


class OpenAICaller(ProviderCaller):
    """Caller for GPT models through the chat completions API."""

    async def complete(self, prompt: str) -> str:
        data = await self._post_json(
            self.config.base_url,
            {
                "model": self.config.model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": MAX_OUTPUT_TOKENS,
                "temperature": 0.7,
            },
            headers={"Authorization": f"Bearer {self.config.api_key}"},
        )
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed(data)
