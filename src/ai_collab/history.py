"""Per-workspace conversation history, persisted as a JSON array.

The file lives at <workspace>/.mcp-conversation-history.json and holds the
newest entries first. Durability is best-effort: a failed write is logged and
reported to the caller, but the entry stays in memory for the rest of the
process.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from .core import ConversationEntry
from .workspace import WorkspaceResolver

logger = logging.getLogger(__name__)

HISTORY_FILENAME = ".mcp-conversation-history.json"
MAX_HISTORY_ENTRIES = 20
RETENTION_HOURS = 24
FRESHNESS_HOURS = 6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def entry_to_dict(entry: ConversationEntry) -> dict:
    """Convert an entry to the on-disk record."""
    return {
        "timestamp": entry.timestamp.isoformat(),
        "tool": entry.tool,
        "provider": entry.provider,
        "query": entry.query,
        "response": entry.response,
        "contextFiles": list(entry.context_files),
        "tokenCount": entry.token_count,
    }


def entry_from_dict(data: dict) -> Optional[ConversationEntry]:
    """Parse an on-disk record; return None if it is malformed."""
    if not isinstance(data, dict):
        return None
    timestamp = _parse_iso(data.get("timestamp"))
    if timestamp is None:
        return None

    context_files = data.get("contextFiles") or []
    if not isinstance(context_files, list):
        context_files = []

    try:
        token_count = int(data.get("tokenCount") or 0)
    except (TypeError, ValueError):
        token_count = 0

    return ConversationEntry(
        timestamp=timestamp,
        tool=str(data.get("tool", "")),
        provider=str(data.get("provider", "")),
        query=str(data.get("query", "")),
        response=str(data.get("response", "")),
        context_files=tuple(str(f) for f in context_files),
        token_count=token_count,
    )


class ConversationHistoryStore:
    """Bounded, newest-first log of tool interactions for the active workspace."""

    def __init__(
        self,
        resolver: WorkspaceResolver,
        capacity: int = MAX_HISTORY_ENTRIES,
        retention: timedelta = timedelta(hours=RETENTION_HOURS),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.resolver = resolver
        self.capacity = capacity
        self.retention = retention
        self._clock = clock
        self._entries: list[ConversationEntry] = []
        self._path: Optional[Path] = None
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        """The backing file for the currently resolved workspace."""
        return self.resolver.resolve() / HISTORY_FILENAME

    async def append(self, entry: ConversationEntry) -> bool:
        """Insert an entry at the front and rewrite the file.

        Returns False if the entry could not be written to disk. Appends are
        serialized so the file always ends up matching memory.
        """
        async with self._write_lock:
            self._ensure_loaded()
            self._entries.insert(0, entry)
            del self._entries[self.capacity:]
            return await asyncio.to_thread(self._persist)

    def recent(self, limit: int = 5, max_age_hours: float = FRESHNESS_HOURS) -> list[ConversationEntry]:
        """Return up to limit entries newer than max_age_hours, newest first."""
        self._ensure_loaded()
        cutoff = self._clock() - timedelta(hours=max_age_hours)
        fresh = [e for e in self._entries if e.timestamp >= cutoff]
        return fresh[:limit]

    def all(self) -> list[ConversationEntry]:
        self._ensure_loaded()
        return list(self._entries)

    def reload(self) -> None:
        """Drop the in-memory log and read the file of the resolved workspace."""
        self._path = None
        self._ensure_loaded()

    # ── Private helpers ──────────────────────────────────────────────

    def _ensure_loaded(self) -> None:
        path = self.path
        if path != self._path:
            self._path = path
            self._entries = self._load(path)

    def _load(self, path: Path) -> list[ConversationEntry]:
        if not path.exists():
            return []

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to load conversation history from %s: %s", path, e)
            return []

        if not isinstance(data, list):
            logger.warning("Ignoring conversation history in %s: not a list", path)
            return []

        entries = []
        for record in data:
            entry = entry_from_dict(record)
            if entry is None:
                logger.warning("Skipping malformed history record in %s", path)
                continue
            entries.append(entry)

        cutoff = self._clock() - self.retention
        kept = [e for e in entries if e.timestamp >= cutoff][: self.capacity]
        logger.info("Loaded %d conversation entries from %s", len(kept), path)

        if len(kept) != len(data):
            self._entries = kept
            self._persist()
        return kept

    def _persist(self) -> bool:
        path = self._path
        if path is None:
            return False
        payload = json.dumps([entry_to_dict(e) for e in self._entries], indent=2, ensure_ascii=False)
        try:
            path.write_text(payload, encoding="utf-8")
        except OSError as e:
            logger.error("Failed to persist conversation history to %s: %s", path, e)
            return False
        return True


def _parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string, treating naive values as UTC."""
    if not value or not isinstance(value, str):
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
