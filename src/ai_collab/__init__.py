"""ai-collab-broker: context-enriched, rate-limited access to AI providers."""

__version__ = "0.1.0"
