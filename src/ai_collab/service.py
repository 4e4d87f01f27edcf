"""Tool operations: consult, multi-provider research, mandatory execute, set workspace.

Every operation returns a ToolResult. Errors from configuration, quota and
upstream calls are turned into results here so that one failed invocation
never takes the server down.
"""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from .backends import build_callers
from .config import ProviderConfig, get_provider_configs
from .context import ContextAssembler, estimate_tokens
from .core import ConversationEntry, ToolResult, WorkspaceState
from .errors import (
    ConfigurationError,
    UnknownProviderError,
    UnknownToolError,
    WorkspaceError,
)
from .history import ConversationHistoryStore
from .project_context import ProjectContextCache
from .provider import ProviderCaller
from .rate_limit import ProviderRateLimiter
from .relevance import RelevanceFilter
from .retry import RetryExecutor
from .workspace import WorkspaceResolver

logger = logging.getLogger(__name__)

CONSULT_TOOL = "consult_ai"
RESEARCH_TOOL = "multi_ai_research"
MANDATORY_TOOL = "mandatory_execute"
SET_WORKSPACE_TOOL = "set_workspace"

STATUS_URI = "ai-providers://status"
CAPABILITIES_URI = "ai-providers://capabilities"

# Command phrasings that force a tool to run: "use x", "execute x", "run x", "call x", "!x".
MANDATORY_PATTERNS = (
    re.compile(r"^use\s+(\w+)", re.IGNORECASE),
    re.compile(r"^execute\s+(\w+)", re.IGNORECASE),
    re.compile(r"^run\s+(\w+)", re.IGNORECASE),
    re.compile(r"^call\s+(\w+)", re.IGNORECASE),
    re.compile(r"!(\w+)"),
)

# Argument keys that may carry file paths pointing into the active project.
HINT_KEYS = ("workspace", "path", "file", "file_path", "files", "context")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_mandatory_command(command: str, tool_name: str) -> bool:
    """Return True if the command explicitly asks for tool_name."""
    for pattern in MANDATORY_PATTERNS:
        match = pattern.search(command.strip())
        if match and match.group(1) == tool_name:
            return True
    return False


class CollaborationService:
    """Wires the context subsystem to the provider callers."""

    def __init__(
        self,
        callers: dict[str, ProviderCaller],
        assembler: ContextAssembler,
        limiter: ProviderRateLimiter,
        retry: Optional[RetryExecutor] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.callers = callers
        self.assembler = assembler
        self.limiter = limiter
        self.retry = retry or RetryExecutor()
        self._clock = clock

    @property
    def history(self) -> ConversationHistoryStore:
        return self.assembler.history

    @property
    def cache(self) -> ProjectContextCache:
        return self.assembler.cache

    @property
    def resolver(self) -> WorkspaceResolver:
        return self.cache.resolver

    # ── Dispatch ─────────────────────────────────────────────────────

    async def call_tool(self, name: str, arguments: Optional[dict] = None) -> ToolResult:
        """Route a tool invocation by name. Raises UnknownToolError."""
        args = dict(arguments or {})
        if name != SET_WORKSPACE_TOOL:
            self._apply_workspace_hints(args)

        if name == CONSULT_TOOL:
            return await self.consult(args.get("provider", ""), args.get("prompt", ""), args.get("context"))
        if name == RESEARCH_TOOL:
            return await self.research(args.get("research_question", ""), args.get("providers"))
        if name == MANDATORY_TOOL:
            return await self.mandatory_execute(
                args.get("command", ""), args.get("tool_name", ""), args.get("tool_args")
            )
        if name == SET_WORKSPACE_TOOL:
            return self.set_workspace(args.get("path", ""))
        raise UnknownToolError(name)

    # ── Operations ───────────────────────────────────────────────────

    async def consult(self, provider: str, prompt: str, context: Optional[str] = None) -> ToolResult:
        """Ask one provider, with project context and relevant history prepended."""
        if not prompt:
            return _invalid("Missing required argument: prompt")
        try:
            caller = self._get_caller(provider)
        except UnknownProviderError as e:
            return _invalid(str(e), "Choose one of the listed providers.")
        except ConfigurationError as e:
            return ToolResult(
                text=(
                    f"## ❌ Configuration Error\n\n**Error:** {e}\n\n"
                    f"**Suggestion:** Set the API key for {caller_name(self.callers, provider)} "
                    "in the environment or .env file."
                ),
                status="configuration_error",
            )

        if not self.limiter.can_call(provider):
            return self._quota_result(caller)

        assembled = self.assembler.assemble(prompt, CONSULT_TOOL)
        if context:
            full_prompt = (
                f"{assembled.text}\n\n## Additional User Context\n{context}\n\n## Final Query\n{prompt}"
            )
        else:
            full_prompt = f"{assembled.text}\n\n## Final Query\n{prompt}"

        logger.info(
            "[CONSULT_AI] Calling %s with enhanced context (%d estimated tokens)",
            caller.name,
            estimate_tokens(full_prompt),
        )
        self.limiter.record_call(provider)
        try:
            response = await self.retry.run(lambda: caller.complete(full_prompt))
        except Exception as e:
            logger.error("[CONSULT_AI] Error consulting %s: %s", caller.name, e)
            return ToolResult(
                text=(
                    f"## ❌ Error consulting {caller.name}\n\n**Error:** {e}\n\n"
                    "**Suggestion:** Check API key configuration and try again."
                ),
                status="upstream_error",
                remaining_calls=self.limiter.remaining(provider),
            )

        warnings = await self._remember(
            CONSULT_TOOL, provider, prompt, response, assembled.files, full_prompt + response
        )
        remaining = self.limiter.remaining(provider)
        return ToolResult(
            text=(
                f"## Consultation with {caller.name}\n\n"
                f"**Specialty:** {caller.config.specialty}\n"
                f"**Remaining API calls:** {remaining}/{self.limiter.limit}\n\n"
                f"**Response:**\n\n{response}"
            ),
            remaining_calls=remaining,
            warnings=warnings,
        )

    async def research(self, question: str, providers: Optional[Iterable[str]] = None) -> ToolResult:
        """Ask several providers the same question, sharing one context block."""
        if not question:
            return _invalid("Missing required argument: research_question")
        if isinstance(providers, str):
            providers = [providers]
        keys = list(providers) if providers else list(self.callers)

        assembled = self.assembler.assemble(question, RESEARCH_TOOL)
        full_prompt = f"{assembled.text}\n\n## Final Research Question\n{question}"
        logger.info(
            "[MULTI_AI_RESEARCH] Starting research with enhanced context (%d estimated tokens)",
            assembled.token_count,
        )

        sections: list[str] = []
        answers: list[tuple[str, str]] = []
        for key in keys:
            caller = self.callers.get(key)
            if caller is None:
                continue
            if not caller.is_configured():
                sections.append(f"**{caller.name}:** ❌ API key not configured")
                continue
            if not self.limiter.can_call(key):
                sections.append(
                    f"**{caller.name}:** ❌ API call limit reached ({self.limiter.remaining(key)} remaining)"
                )
                continue

            logger.info("[MULTI_AI_RESEARCH] Querying %s...", caller.name)
            self.limiter.record_call(key)
            try:
                response = await self.retry.run(lambda c=caller: c.complete(full_prompt))
            except Exception as e:
                logger.error("[MULTI_AI_RESEARCH] Error with %s: %s", caller.name, e)
                sections.append(f"**{caller.name}:** ❌ Error: {e}\n\n---\n")
                continue

            answers.append((key, response))
            sections.append(
                f"**{caller.name}** ({caller.config.specialty}) - "
                f"{self.limiter.remaining(key)}/{self.limiter.limit} calls remaining:\n\n{response}\n\n---\n"
            )

        warnings: list[str] = []
        if answers:
            combined = "\n\n".join(f"{self.callers[k].name}: {r}" for k, r in answers)
            warnings = await self._remember(
                RESEARCH_TOOL, "multiple", question, combined, assembled.files, assembled.text + combined
            )

        body = "\n".join(sections) if sections else "No providers were available."
        return ToolResult(
            text=f"# Multi-AI Research Results\n\n**Research Question:** {question}\n\n{body}",
            warnings=warnings,
        )

    async def mandatory_execute(
        self, command: str, tool_name: str, tool_args: Optional[dict] = None
    ) -> ToolResult:
        """Run a tool only when the user's command explicitly demands it."""
        logger.info('[MANDATORY EXECUTE] Command: "%s" Tool: "%s"', command, tool_name)
        if not is_mandatory_command(command, tool_name):
            return ToolResult(
                text=(
                    "❌ **Mandatory Execution Failed**\n\n"
                    f'Command "{command}" does not match mandatory execution patterns.\n\n'
                    "**Valid patterns:**\n"
                    f"- `use {tool_name}`\n- `execute {tool_name}`\n"
                    f"- `run {tool_name}`\n- `call {tool_name}`\n- `!{tool_name}`\n\n"
                    "Please use proper syntax for mandatory tool execution."
                ),
                status="invalid_request",
            )

        args = tool_args or {}
        if tool_name == CONSULT_TOOL:
            return await self.consult(args.get("provider", ""), args.get("prompt", ""), args.get("context"))
        if tool_name == RESEARCH_TOOL:
            return await self.research(args.get("research_question", ""), args.get("providers"))
        return ToolResult(
            text=(
                "❌ **Mandatory Execution Error**\n\n"
                f"Tool: {tool_name}\nCommand: {command}\n"
                f"Error: Mandatory execution not supported for tool: {tool_name}\n\n"
                f"**Suggestion:** Use {CONSULT_TOOL} or {RESEARCH_TOOL}."
            ),
            status="invalid_request",
        )

    def set_workspace(self, path: str) -> ToolResult:
        """Pin the active workspace and drop state cached for the previous one."""
        try:
            workspace = _validate_workspace(path)
        except WorkspaceError as e:
            return _invalid(str(e), "Pass an existing project directory.")

        self.resolver.set_workspace(workspace)
        self.cache.invalidate()
        self.history.reload()
        return ToolResult(
            text=(
                f"## Workspace set\n\n**Path:** {workspace}\n"
                f"**History entries:** {len(self.history.all())}"
            )
        )

    # ── Resources ────────────────────────────────────────────────────

    def provider_status(self) -> str:
        lines = []
        for key, caller in self.callers.items():
            remaining = self.limiter.remaining(key)
            state = "✅ Configured" if caller.is_configured() else "❌ Missing API Key"
            lines.append(f"{caller.name}: {state} ({remaining}/{self.limiter.limit} calls remaining)")
        return "\n".join(lines)

    def capabilities(self) -> str:
        return json.dumps(
            {key: caller.config.public_dict() for key, caller in self.callers.items()},
            indent=2,
            ensure_ascii=False,
        )

    def read_resource(self, uri: str) -> tuple[str, str]:
        """Return (mime_type, text) for a resource URI. Raises KeyError."""
        if uri == STATUS_URI:
            return "text/plain", self.provider_status()
        if uri == CAPABILITIES_URI:
            return "application/json", self.capabilities()
        raise KeyError(uri)

    # ── Private helpers ──────────────────────────────────────────────

    def _get_caller(self, provider: str) -> ProviderCaller:
        caller = self.callers.get(provider)
        if caller is None:
            raise UnknownProviderError(provider, list(self.callers))
        if not caller.is_configured():
            raise ConfigurationError(caller.name)
        return caller

    def _quota_result(self, caller: ProviderCaller) -> ToolResult:
        remaining = self.limiter.remaining(caller.key)
        return ToolResult(
            text=(
                f"## ❌ API Call Limit Reached for {caller.name}\n\n"
                f"**Limit:** {self.limiter.limit} calls per hour\n"
                f"**Remaining:** {remaining}\n\n"
                "**Suggestion:** Wait for limit reset or use a different provider."
            ),
            status="quota_exceeded",
            remaining_calls=remaining,
        )

    async def _remember(
        self,
        tool: str,
        provider: str,
        query: str,
        response: str,
        files: list[str],
        counted_text: str,
    ) -> list[str]:
        entry = ConversationEntry(
            timestamp=self._clock(),
            tool=tool,
            provider=provider,
            query=query,
            response=response,
            context_files=tuple(files),
            token_count=estimate_tokens(counted_text),
        )
        if await self.history.append(entry):
            return []
        return [f"Conversation history could not be saved to {self.history.path}"]

    def _apply_workspace_hints(self, args: dict[str, Any]) -> None:
        hints: list[str] = []
        for key in HINT_KEYS:
            value = args.get(key)
            if isinstance(value, str):
                hints.append(value)
            elif isinstance(value, list):
                hints.extend(v for v in value if isinstance(v, str))
        if not hints:
            return
        before = self.resolver.state.current_path
        if self.resolver.infer_from_hints(hints) not in (None, before):
            self.cache.invalidate()


def caller_name(callers: dict[str, ProviderCaller], provider: str) -> str:
    caller = callers.get(provider)
    return caller.name if caller else provider


def _invalid(message: str, suggestion: str = "Check the tool arguments and try again.") -> ToolResult:
    return ToolResult(
        text=f"## ❌ Invalid Request\n\n**Error:** {message}\n\n**Suggestion:** {suggestion}",
        status="invalid_request",
    )


def _validate_workspace(path: str) -> Path:
    if not path:
        raise WorkspaceError(path, "no path given")
    workspace = Path(path).expanduser()
    if not workspace.is_dir():
        raise WorkspaceError(path)
    return workspace.resolve()


def create_service(
    configs: Optional[dict[str, ProviderConfig]] = None,
    state: Optional[WorkspaceState] = None,
) -> CollaborationService:
    """Build a service from the environment."""
    configs = configs if configs is not None else get_provider_configs()
    resolver = WorkspaceResolver(state or WorkspaceState())
    cache = ProjectContextCache(resolver)
    history = ConversationHistoryStore(resolver)
    assembler = ContextAssembler(cache, history, RelevanceFilter())
    callers = build_callers(configs)
    limiter = ProviderRateLimiter(callers.keys())
    return CollaborationService(callers, assembler, limiter)
