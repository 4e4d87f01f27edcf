"""Environment-driven configuration for providers and workspace hints."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Checked in order; the first one that names a usable directory wins.
WORKSPACE_ENV_VARS = (
    "AICOLLAB_WORKSPACE",
    "WORKSPACE_FOLDER",
    "VSCODE_WORKSPACE_FOLDER",
    "PROJECT_ROOT",
)

CREDENTIAL_ENV_VARS = ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY")


@dataclass
class ProviderConfig:
    """Static description of one upstream provider."""

    key: str
    name: str
    model: str
    api_key: str
    base_url: str
    specialty: str
    requires_api_key: bool = True

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) or not self.requires_api_key

    def public_dict(self) -> dict:
        """Describe the provider without its credential."""
        return {
            "name": self.name,
            "model": self.model,
            "baseUrl": self.base_url,
            "specialty": self.specialty,
            "configured": self.is_configured,
        }


def load_environment(env_file: Optional[Path] = None) -> None:
    """Load .env files into os.environ without overriding real variables.

    The host tool does not always forward its environment to the broker, so
    when no credential is visible after the working-directory .env, fall back
    to a .env next to the installed package.
    """
    if env_file is not None:
        load_dotenv(env_file)
        return

    load_dotenv()
    if any(os.environ.get(var) for var in CREDENTIAL_ENV_VARS):
        return

    fallback = Path(__file__).resolve().parent.parent.parent / ".env"
    if fallback.is_file():
        logger.info("No credentials in environment, loading %s", fallback)
        load_dotenv(fallback)
    else:
        logger.debug("No fallback .env found at %s", fallback)


def get_provider_configs(environ: Optional[Mapping[str, str]] = None) -> dict[str, ProviderConfig]:
    """Return the provider table keyed by provider id."""
    env = os.environ if environ is None else environ

    return {
        "claude": ProviderConfig(
            key="claude",
            name="Claude",
            model=env.get("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
            api_key=env.get("ANTHROPIC_API_KEY", ""),
            base_url=env.get("ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1/messages"),
            specialty="Analysis, reasoning, and comprehensive responses",
        ),
        "gpt4": ProviderConfig(
            key="gpt4",
            name="GPT-4 (OpenAI)",
            model=env.get("OPENAI_MODEL", "gpt-4-turbo-preview"),
            api_key=env.get("OPENAI_API_KEY", ""),
            base_url=env.get("OPENAI_BASE_URL", "https://api.openai.com/v1/chat/completions"),
            specialty="General purpose, coding, and creative tasks",
        ),
        "gemini": ProviderConfig(
            key="gemini",
            name="Gemini Pro (Google)",
            model=env.get("GEMINI_MODEL", "gemini-1.5-pro"),
            api_key=env.get("GEMINI_API_KEY", ""),
            base_url=env.get(
                "GEMINI_BASE_URL",
                "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-pro:generateContent",
            ),
            specialty="Multimodal understanding and research",
        ),
        "ollama": ProviderConfig(
            key="ollama",
            name="Ollama (Local)",
            model=env.get("OLLAMA_MODEL", "llama3.2:latest"),
            api_key="",
            base_url=env.get("OLLAMA_BASE_URL", "http://localhost:11434"),
            specialty="Local AI, privacy-focused, and custom models",
            requires_api_key=False,
        ),
    }


def get_workspace_env_hints(environ: Optional[Mapping[str, str]] = None) -> list[str]:
    """Return the non-empty workspace variables in priority order, unvalidated."""
    env = os.environ if environ is None else environ
    return [env[var] for var in WORKSPACE_ENV_VARS if env.get(var)]
