"""
Exceptions raised by the broker.

Exception Hierarchy:
    CollabError (base)
    ├── ConfigurationError - provider credential missing
    ├── UnknownProviderError - provider key not recognised
    ├── UnknownToolError - tool name not recognised
    ├── WorkspaceError - invalid explicit workspace
    └── UpstreamError - provider call failed (carries status_code)

The service layer turns these into ToolResult values; nothing here is
allowed to terminate the process.
"""

from __future__ import annotations


class CollabError(Exception):
    """Base exception for all broker errors."""

    pass


class ConfigurationError(CollabError):
    """
    Raised when a provider is requested but has no credential.

    Never retried.
    """

    def __init__(self, provider: str, message: str | None = None):
        self.provider = provider
        super().__init__(message or f"API key not configured for {provider}")


class UnknownProviderError(CollabError):
    """Raised for a provider key that is not in the provider table."""

    def __init__(self, provider: str, available: list[str] | None = None):
        self.provider = provider
        self.available = available or []
        if self.available:
            super().__init__(
                f"Unknown AI provider: {provider}. Available: {', '.join(self.available)}"
            )
        else:
            super().__init__(f"Unknown AI provider: {provider}")


class UnknownToolError(CollabError):
    """Raised when a tool name has no handler."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class WorkspaceError(CollabError):
    """Raised when an explicitly requested workspace is not a directory."""

    def __init__(self, path: str, reason: str = "not a directory"):
        self.path = path
        super().__init__(f"Invalid workspace {path}: {reason}")


class UpstreamError(CollabError):
    """
    Raised when a provider HTTP call fails.

    Attributes:
        provider: Display name of the provider.
        status_code: HTTP status, or None for transport failures.

    The message embeds the status so that substring checks such as
    "401" keep working on the rendered error.
    """

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)
