"""Assembly of the bounded context block injected ahead of a query.

The block has four fixed sections: project overview, relevant files,
conversation history and the current query. If the estimated size is over
budget the history section collapses first; the overview and the query are
kept verbatim. Only if that is still not enough is the whole block cut.
"""

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from .core import ConversationEntry, ProjectContext
from .history import FRESHNESS_HOURS, ConversationHistoryStore
from .project_context import ProjectContextCache
from .relevance import RelevanceFilter

logger = logging.getLogger(__name__)

MAX_CONTEXT_TOKENS = 8000
CHARS_PER_TOKEN = 4

MANIFEST_CHARS = 500
README_CHARS = 800
HISTORY_QUERY_CHARS = 200
HISTORY_RESPONSE_CHARS = 300
FILE_CHARS = 1000

MAX_HISTORY_IN_CONTEXT = 5
MAX_RELEVANT_FILES = 3
FILES_PER_EXTENSION = 3
MAX_FILES_SCANNED = 5

NO_HISTORY = "No previous conversation history"
NO_FILES = "No relevant files found"
HISTORY_TRUNCATED = "(Conversation history truncated due to length)"
CONTEXT_TRUNCATED = "\n... (context truncated due to length)"

SOURCE_EXTENSIONS = (".ts", ".js", ".json", ".md", ".py", ".java", ".go", ".rs")
CONFIG_FILES = ("tsconfig.json", ".env.example", "package-lock.json", "pyproject.toml", "setup.cfg")
SKIP_DIRS = {"node_modules", "__pycache__", "dist", "build", "venv", "target"}


def estimate_tokens(text: str) -> int:
    """Rough estimate: about four characters per token."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _clip(text: str, limit: int, marker: str = "... (truncated)") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + marker


@dataclass
class AssembledContext:
    """A context block and the workspace files that went into it."""

    text: str
    files: list[str] = field(default_factory=list)
    history_collapsed: bool = False
    truncated: bool = False

    @property
    def token_count(self) -> int:
        return estimate_tokens(self.text)


class ContextAssembler:
    """Compose project context and relevant history into one prompt prefix."""

    def __init__(
        self,
        cache: ProjectContextCache,
        history: ConversationHistoryStore,
        relevance: Optional[RelevanceFilter] = None,
        max_tokens: int = MAX_CONTEXT_TOKENS,
    ):
        self.cache = cache
        self.history = history
        self.relevance = relevance or RelevanceFilter()
        self.max_tokens = max_tokens

    def build(
        self,
        query: str,
        tool: str,
        history: Optional[Sequence[ConversationEntry]] = None,
    ) -> str:
        return self.assemble(query, tool, history).text

    def assemble(
        self,
        query: str,
        tool: str,
        history: Optional[Sequence[ConversationEntry]] = None,
    ) -> AssembledContext:
        """Build the block; history defaults to the relevant recent entries."""
        project = self.cache.get()
        if history is None:
            history = self.relevant_history(query, tool)

        files = self.discover_relevant_files(query, project.workspace)
        overview = summarize_project(project)
        files_text = self._read_files(files, project.workspace)
        history_text = format_history(history)

        text = _render(overview, files_text, history_text, query, tool)
        result = AssembledContext(text=text, files=files)
        if estimate_tokens(text) <= self.max_tokens:
            return result

        logger.info("Context over budget (%d tokens), collapsing history", estimate_tokens(text))
        result.text = _render(overview, files_text, HISTORY_TRUNCATED, query, tool)
        result.history_collapsed = True
        if estimate_tokens(result.text) <= self.max_tokens:
            return result

        result.text = result.text[: self.max_tokens * CHARS_PER_TOKEN] + CONTEXT_TRUNCATED
        result.truncated = True
        return result

    def relevant_history(self, query: str, tool: str) -> list[ConversationEntry]:
        recent = self.history.recent(limit=self.history.capacity, max_age_hours=FRESHNESS_HOURS)
        return self.relevance.select(recent, query, tool, limit=MAX_HISTORY_IN_CONTEXT)

    def discover_relevant_files(self, query: str, workspace: Optional[Path] = None) -> list[str]:
        """Find files hinted at by the query, as workspace-relative paths.

        A mentioned extension (".py", ".ts", ...) pulls in the first few files
        with that extension; a keyword that names a known config file pulls in
        that file.
        """
        root = workspace or self.cache.resolver.resolve()
        found: list[str] = []
        try:
            for ext in SOURCE_EXTENSIONS:
                if ext in query:
                    found.extend(_find_by_extension(root, ext)[:FILES_PER_EXTENSION])

            keywords = query.lower().split()
            for name in CONFIG_FILES:
                if any(k in name.lower() for k in keywords) and (root / name).is_file():
                    found.append(name)
        except OSError as e:
            logger.warning("Error discovering relevant files in %s: %s", root, e)

        return list(dict.fromkeys(found))

    def _read_files(self, files: Sequence[str], workspace: Optional[Path]) -> str:
        root = workspace or self.cache.resolver.resolve()
        blocks = []
        for rel in files[:MAX_RELEVANT_FILES]:
            try:
                content = (root / rel).read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                blocks.append(f"### {rel}\nError reading file: {e}")
                continue
            body = _clip(content, FILE_CHARS, "\n... (truncated)")
            blocks.append(f"### {rel}\n```\n{body}\n```")
        return "\n\n".join(blocks) if blocks else NO_FILES


def summarize_project(project: ProjectContext) -> str:
    return (
        f"**Package Info:**\n{_clip(project.manifest, MANIFEST_CHARS)}\n\n"
        f"**README:**\n{_clip(project.readme, README_CHARS)}\n\n"
        f"**Project Structure:**\n{project.structure}"
    )


def format_history(history: Sequence[ConversationEntry]) -> str:
    if not history:
        return NO_HISTORY
    blocks = []
    for entry in history:
        blocks.append(
            f"**{entry.tool}** ({entry.provider}) - {entry.timestamp.isoformat()}:\n"
            f"Q: {_clip(entry.query, HISTORY_QUERY_CHARS, '...')}\n"
            f"A: {_clip(entry.response, HISTORY_RESPONSE_CHARS, '...')}\n"
        )
    return "\n".join(blocks)


def _render(overview: str, files_text: str, history_text: str, query: str, tool: str) -> str:
    return (
        "# PROJECT CONTEXT\n\n"
        f"## Project Overview\n{overview}\n\n"
        f"## Relevant Files\n{files_text}\n\n"
        f"## Recent Conversation History\n{history_text}\n\n"
        f"## Current Query\nTool: {tool}\nQuery: {query}\n\n---\n\n"
    )


def _find_by_extension(root: Path, ext: str) -> list[str]:
    matches: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d not in SKIP_DIRS)
        for name in sorted(filenames):
            if name.endswith(ext):
                matches.append(str((Path(dirpath) / name).relative_to(root)))
                if len(matches) >= MAX_FILES_SCANNED:
                    return matches
    return matches
