"""FastAPI tool/resource server for ai-collab-broker."""

import logging
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.responses import Response

from .config import load_environment
from .errors import UnknownToolError
from .export import history_to_json, history_to_markdown
from .service import (
    CAPABILITIES_URI,
    CONSULT_TOOL,
    MANDATORY_TOOL,
    RESEARCH_TOOL,
    SET_WORKSPACE_TOOL,
    STATUS_URI,
    CollaborationService,
    create_service,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="ai-collab-broker", version="0.1.0")

# Service cache (populated on first request)
_service: CollaborationService | None = None


def _get_service() -> CollaborationService:
    """Lazily initialize and cache the service."""
    global _service
    if _service is None:
        load_environment()
        _service = create_service()
        logger.info("Providers: %s", list(_service.callers))
    return _service


def _tool_definitions(provider_keys: list[str]) -> list[dict[str, Any]]:
    """Describe the tools and their input schemas."""
    return [
        {
            "name": CONSULT_TOOL,
            "description": (
                "Consult with a specific AI provider for expertise in their specialty area. "
                "Enhanced with automatic project context and conversation history."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "provider": {
                        "type": "string",
                        "enum": provider_keys,
                        "description": f"Which AI provider to consult ({', '.join(provider_keys)})",
                    },
                    "prompt": {
                        "type": "string",
                        "description": "The question or task to ask the AI provider",
                    },
                    "context": {
                        "type": "string",
                        "description": "Additional context for the consultation (optional)",
                    },
                },
                "required": ["provider", "prompt"],
            },
        },
        {
            "name": RESEARCH_TOOL,
            "description": (
                "Get perspectives from multiple AI providers on a research question, "
                "sharing the same project context and conversation history."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "research_question": {
                        "type": "string",
                        "description": "The research question to investigate",
                    },
                    "providers": {
                        "type": "array",
                        "items": {"type": "string", "enum": provider_keys},
                        "description": "Which AI providers to consult (default: all available)",
                    },
                },
                "required": ["research_question"],
            },
        },
        {
            "name": MANDATORY_TOOL,
            "description": (
                "Enforces mandatory execution of tools when explicitly requested. "
                "Use syntax: !toolname or 'use toolname'"
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "command": {
                        "type": "string",
                        "description": "The user's exact command that triggered mandatory execution",
                    },
                    "tool_name": {
                        "type": "string",
                        "description": "The name of the tool to execute mandatorily",
                    },
                    "tool_args": {
                        "type": "object",
                        "description": "Arguments to pass to the tool",
                    },
                },
                "required": ["command", "tool_name"],
            },
        },
        {
            "name": SET_WORKSPACE_TOOL,
            "description": "Set the project directory used for context and conversation history.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Absolute path to the project root"},
                },
                "required": ["path"],
            },
        },
    ]


RESOURCES = [
    {
        "uri": STATUS_URI,
        "name": "AI Providers Status",
        "description": "Status and configuration of all AI providers",
        "mimeType": "text/plain",
    },
    {
        "uri": CAPABILITIES_URI,
        "name": "AI Provider Capabilities",
        "description": "Detailed capabilities and specialties of each AI provider",
        "mimeType": "application/json",
    },
]


# ── Routes ───────────────────────────────────────────────────────


@app.get("/")
async def index():
    """Describe the server and the active workspace."""
    service = _get_service()
    workspace, source = service.resolver.resolve_with_source()
    return {
        "name": "ai-collab-broker",
        "version": app.version,
        "workspace": str(workspace),
        "workspace_source": source,
        "providers": list(service.callers),
    }


@app.get("/tools")
async def list_tools():
    """Return the tool listing with input schemas."""
    service = _get_service()
    return {"tools": _tool_definitions(list(service.callers))}


@app.post("/tools/{name}")
async def call_tool(name: str, arguments: dict[str, Any] | None = Body(default=None)):
    """Invoke a tool. Tool-level failures come back as results, not HTTP errors."""
    service = _get_service()
    try:
        result = await service.call_tool(name, arguments or {})
    except UnknownToolError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Tool execution error in %s: %s", name, e)
        raise HTTPException(status_code=500, detail="Tool execution failed")
    return result.to_dict()


@app.get("/resources")
async def list_resources():
    """Return the resource listing."""
    return {"resources": RESOURCES}


@app.get("/resources/read")
async def read_resource(uri: str = Query(..., description="Resource URI")):
    """Return the contents of one resource."""
    service = _get_service()
    try:
        mime_type, text = service.read_resource(uri)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown resource: {uri}")
    return {"contents": [{"uri": uri, "mimeType": mime_type, "text": text}]}


@app.get("/history")
async def export_history(
    format: str = Query("json", description="Export format: json or md"),
    limit: int = Query(20, ge=1, le=100),
):
    """Export the stored conversation history of the active workspace."""
    service = _get_service()
    entries = service.history.all()[:limit]
    workspace = service.resolver.resolve()

    if format == "md":
        return Response(content=history_to_markdown(entries, workspace), media_type="text/markdown")
    return Response(content=history_to_json(entries, workspace), media_type="application/json")
