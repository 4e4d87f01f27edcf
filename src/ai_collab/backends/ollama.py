"""Local Ollama backend. Needs no credential."""

from ..provider import ProviderCaller


class OllamaCaller(ProviderCaller):
    """Caller for a local Ollama server through /api/generate."""

    async def complete(self, prompt: str) -> str:
        base = self.config.base_url.rstrip("/")
        data = await self._post_json(
            f"{base}/api/generate",
            {"model": self.config.model, "prompt": prompt, "stream": False},
        )
        if "response" not in data:
            raise self._malformed(data)
        return data["response"]
