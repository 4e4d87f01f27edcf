"""Provider backends and a registry keyed by provider id."""

import logging
from typing import Optional

import httpx

from ..config import ProviderConfig
from ..provider import ProviderCaller
from .claude import ClaudeCaller
from .gemini import GeminiCaller
from .ollama import OllamaCaller
from .openai import OpenAICaller

logger = logging.getLogger(__name__)

CALLER_CLASSES: dict[str, type[ProviderCaller]] = {
    "claude": ClaudeCaller,
    "gpt4": OpenAICaller,
    "gemini": GeminiCaller,
    "ollama": OllamaCaller,
}


def build_callers(
    configs: dict[str, ProviderConfig],
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, ProviderCaller]:
    """Create a caller for every known provider, configured or not.

    Unconfigured providers stay in the registry so that requests for them
    can be answered with a configuration error.
    """
    callers = {}
    for key, config in configs.items():
        caller_class = CALLER_CLASSES.get(key)
        if caller_class is None:
            logger.warning("No backend for provider %s, skipping", key)
            continue
        callers[key] = caller_class(config, client=client)
    logger.info(
        "Configured providers: %s",
        [key for key, caller in callers.items() if caller.is_configured()],
    )
    return callers
