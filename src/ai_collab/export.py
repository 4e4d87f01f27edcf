"""Export conversation history to Markdown and JSON formats."""

import json
from pathlib import Path
from typing import Optional

from .core import ConversationEntry
from .history import entry_to_dict


def history_to_markdown(entries: list[ConversationEntry], workspace: Optional[Path] = None) -> str:
    """Export history entries as readable Markdown, newest first."""
    lines = ["# Conversation History", ""]

    if workspace:
        lines.append(f"**Workspace:** {workspace}")
    lines.append(f"**Entries:** {len(entries)}")
    lines.extend(["", "---", ""])

    for entry in entries:
        lines.append(f"## {entry.tool} ({entry.provider}) - {entry.timestamp.strftime('%Y-%m-%d %H:%M')}")
        lines.append("")
        if entry.context_files:
            lines.append(f"**Files:** {', '.join(entry.context_files)}")
        lines.append(f"**Tokens:** ~{entry.token_count}")
        lines.append("")
        lines.append("### Query")
        lines.append("")
        lines.append(entry.query)
        lines.append("")
        lines.append("### Response")
        lines.append("")
        lines.append(entry.response)
        lines.extend(["", "---", ""])

    return "\n".join(lines)


def history_to_json(entries: list[ConversationEntry], workspace: Optional[Path] = None) -> str:
    """Export history entries as structured JSON using the on-disk record shape."""
    data = {
        "workspace": str(workspace) if workspace else None,
        "count": len(entries),
        "entries": [entry_to_dict(e) for e in entries],
    }
    return json.dumps(data, indent=2, ensure_ascii=False)
