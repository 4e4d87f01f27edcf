"""Cached snapshot of a workspace's readme, manifest and top-level layout."""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from .core import ProjectContext
from .workspace import WorkspaceResolver

logger = logging.getLogger(__name__)

PROJECT_CONTEXT_TTL = timedelta(minutes=5)

README_NAMES = ("README.md", "readme.md", "README.rst", "README.txt", "README")
MANIFEST_NAMES = ("package.json", "pyproject.toml", "Cargo.toml", "go.mod", "setup.py")

# Hidden entries that are still worth showing in the structure listing.
VISIBLE_DOTFILES = {".github", ".vscode"}

NO_README = "No README found"
NO_MANIFEST = "No package manifest found"
STRUCTURE_ERROR = "Error reading project structure"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectContextCache:
    """Holds one ProjectContext and refreshes it when stale.

    A snapshot is stale once it is older than the TTL or when the resolved
    workspace is no longer the one it was captured from.
    """

    def __init__(
        self,
        resolver: WorkspaceResolver,
        ttl: timedelta = PROJECT_CONTEXT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.resolver = resolver
        self.ttl = ttl
        self._clock = clock
        self._snapshot: Optional[ProjectContext] = None

    def get(self) -> ProjectContext:
        workspace = self.resolver.resolve()
        now = self._clock()
        snapshot = self._snapshot
        if (
            snapshot is not None
            and snapshot.workspace == workspace
            and now - snapshot.captured_at < self.ttl
        ):
            return snapshot

        self._snapshot = self._capture(workspace, now)
        logger.info("Refreshed project context for %s", workspace)
        return self._snapshot

    def invalidate(self) -> None:
        """Force the next get() to re-read the workspace."""
        self._snapshot = None

    # ── Private helpers ──────────────────────────────────────────────

    def _capture(self, workspace: Path, now: datetime) -> ProjectContext:
        return ProjectContext(
            readme=_read_first(workspace, README_NAMES, NO_README),
            manifest=_read_first(workspace, MANIFEST_NAMES, NO_MANIFEST),
            structure=_list_structure(workspace),
            captured_at=now,
            workspace=workspace,
        )


def _read_first(workspace: Path, names: tuple[str, ...], missing: str) -> str:
    """Read the first existing file out of names, degrading to a placeholder."""
    for name in names:
        path = workspace / name
        if not path.is_file():
            continue
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Failed to read %s: %s", path, e)
            return f"Error reading {name}: {e}"
    return missing


def _list_structure(workspace: Path) -> str:
    """Return a sorted, shallow listing with directories suffixed by '/'."""
    try:
        entries = []
        for item in workspace.iterdir():
            if item.name.startswith(".") and item.name not in VISIBLE_DOTFILES:
                continue
            entries.append(f"{item.name}/" if item.is_dir() else item.name)
    except OSError as e:
        logger.warning("Failed to list %s: %s", workspace, e)
        return STRUCTURE_ERROR

    return "\n".join(sorted(entries))
