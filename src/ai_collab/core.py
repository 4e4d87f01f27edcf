"""Core data models for ai-collab-broker."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class ConversationEntry:
    """A single completed tool interaction, as stored in the history file."""

    timestamp: datetime
    tool: str  # "consult_ai" | "multi_ai_research"
    provider: str  # provider key, or "multiple" for research fan-out
    query: str
    response: str
    context_files: tuple[str, ...] = ()
    token_count: int = 0


@dataclass
class ProviderCallTracker:
    """Call counter for one provider inside a fixed window."""

    provider: str
    calls: int
    window_start: datetime
    limit: int = 3


@dataclass(frozen=True)
class ProjectContext:
    """Snapshot of the identity files of a workspace."""

    readme: str
    manifest: str
    structure: str
    captured_at: datetime
    workspace: Optional[Path] = None


@dataclass
class WorkspaceState:
    """The explicitly selected workspace, if any."""

    current_path: Optional[Path] = None


@dataclass
class ToolResult:
    """Outcome of a tool invocation, rendered as text for the host."""

    text: str
    status: str = "ok"  # "ok" | "quota_exceeded" | "configuration_error" | "upstream_error" | "invalid_request"
    remaining_calls: Optional[int] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return self.status not in ("ok", "quota_exceeded")

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "is_error": self.is_error,
            "remaining_calls": self.remaining_calls,
            "warnings": list(self.warnings),
            "content": [{"type": "text", "text": self.text}],
        }
