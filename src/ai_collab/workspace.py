"""Active workspace resolution.

The host tool launches the broker as a detached process and does not reliably
tell it which project is open, so the workspace is found through an ordered
chain of strategies. Each strategy returns a directory or None; the first
directory wins and the current working directory is the last resort.
"""

import logging
import os
import re
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional

from .config import get_workspace_env_hints
from .core import WorkspaceState

logger = logging.getLogger(__name__)

PROJECT_INDICATORS = (
    ".git",
    ".hg",
    ".svn",
    "package.json",
    "pyproject.toml",
    "setup.py",
    "setup.cfg",
    "Cargo.toml",
    "go.mod",
    "pom.xml",
    "build.gradle",
    "tsconfig.json",
    ".vscode",
    ".idea",
)

# Directory names that mean "this is where the broker itself is installed".
SELF_INSTALL_NAMES = {
    "ai_collab",
    "site-packages",
    "dist-packages",
    "node_modules",
    ".venv",
    "venv",
    "env",
    ".tox",
    "src",
    "lib",
    "lib64",
}
SELF_INSTALL_MARKERS = ("ai-collab", "ai_collab")
# Interpreter folders such as lib/python3.12.
_INTERPRETER_DIR_RE = re.compile(r"python\d+(\.\d+)*")

MAX_WALK_DEPTH = 10

# Absolute POSIX or Windows paths embedded in free text.
_PATH_RE = re.compile(r"(?:[A-Za-z]:[\\/]|/)[^\s'\"`<>|:*?]+")

Strategy = Callable[[], Optional[Path]]


def has_project_indicator(directory: Path) -> bool:
    """Return True if the directory looks like a project root."""
    return any((directory / name).exists() for name in PROJECT_INDICATORS)


def looks_like_self_install(directory: Path) -> bool:
    """Return True if the directory name suggests the broker's own install dir."""
    name = directory.name.lower()
    if name in SELF_INSTALL_NAMES or _INTERPRETER_DIR_RE.fullmatch(name):
        return True
    return any(marker in name for marker in SELF_INSTALL_MARKERS)


class WorkspaceResolver:
    """Resolve the project root a request pertains to."""

    def __init__(
        self,
        state: Optional[WorkspaceState] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
        cwd: Optional[Callable[[], Path]] = None,
        home: Optional[Path] = None,
        install_dir: Optional[Path] = None,
    ):
        self.state = state if state is not None else WorkspaceState()
        self._environ = environ
        self._cwd = cwd or Path.cwd
        self._home = home
        self._install_dir = install_dir
        self.strategies: list[tuple[str, Strategy]] = [
            ("explicit", self._from_state),
            ("environment", self._from_environment),
            ("cwd", self._from_cwd),
            ("install_location", self._from_install_location),
            ("cwd_walk", self._from_cwd_walk),
        ]

    def resolve(self) -> Path:
        """Return the active workspace directory. Never raises."""
        return self.resolve_with_source()[0]

    def resolve_with_source(self) -> tuple[Path, str]:
        """Return the workspace together with the name of the strategy that found it."""
        for name, strategy in self.strategies:
            try:
                path = strategy()
            except Exception as e:
                logger.debug("Workspace strategy %s failed: %s", name, e)
                continue
            if path is not None:
                return path, name
        return self._fallback(), "fallback"

    def set_workspace(self, path: Path) -> None:
        """Pin the workspace; overrides all heuristics until changed."""
        self.state.current_path = path
        logger.info("Workspace set to %s", path)

    def clear(self) -> None:
        self.state.current_path = None

    def infer_from_hints(self, hints: Iterable[str]) -> Optional[Path]:
        """Pin the workspace from file paths mentioned in a request.

        Every absolute path found in the hints is walked upwards to its
        project root; the first root found becomes the explicit workspace.
        Hints that point nowhere are ignored.
        """
        for hint in hints:
            if not isinstance(hint, str):
                continue
            for raw in _PATH_RE.findall(hint):
                root = self._project_root_for(Path(raw.rstrip(".,;)")))
                if root is not None:
                    if root != self.state.current_path:
                        self.set_workspace(root)
                    return root
        return None

    # ── Strategies ───────────────────────────────────────────────────

    def _from_state(self) -> Optional[Path]:
        path = self.state.current_path
        if path is not None and path.is_dir():
            return path
        return None

    def _from_environment(self) -> Optional[Path]:
        for value in get_workspace_env_hints(self._environ):
            path = Path(value).expanduser()
            if path.is_dir() and self._is_meaningful(path):
                return path.resolve()
        return None

    def _from_cwd(self) -> Optional[Path]:
        cwd = self._cwd()
        if self._is_meaningful(cwd):
            return cwd
        return None

    def _from_install_location(self) -> Optional[Path]:
        start = self._install_dir or Path(__file__).resolve().parent
        for directory in self._walk_up(start):
            if looks_like_self_install(directory):
                continue
            if has_project_indicator(directory) and self._is_meaningful(directory):
                return directory
        return None

    def _from_cwd_walk(self) -> Optional[Path]:
        for directory in self._walk_up(self._cwd()):
            if has_project_indicator(directory) and self._is_meaningful(directory):
                return directory
        return None

    def _fallback(self) -> Path:
        try:
            return self._cwd()
        except OSError:
            # cwd was deleted underneath us
            return Path(os.sep)

    # ── Helpers ──────────────────────────────────────────────────────

    def _home_dir(self) -> Path:
        return self._home if self._home is not None else Path.home()

    def _is_meaningful(self, path: Path) -> bool:
        """Reject the home directory and the filesystem root."""
        resolved = path.resolve()
        if resolved == Path(resolved.anchor):
            return False
        return resolved != self._home_dir().resolve()

    def _walk_up(self, start: Path):
        current = start
        for _ in range(MAX_WALK_DEPTH):
            yield current
            if current.parent == current:
                return
            current = current.parent

    def _project_root_for(self, path: Path) -> Optional[Path]:
        if not path.exists():
            return None
        start = path if path.is_dir() else path.parent
        for directory in self._walk_up(start):
            if has_project_indicator(directory) and self._is_meaningful(directory):
                return directory
        return None
