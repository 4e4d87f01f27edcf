"""Shared test fixtures for ai-collab-broker."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from ai_collab.config import ProviderConfig
from ai_collab.context import ContextAssembler
from ai_collab.core import ConversationEntry, WorkspaceState
from ai_collab.errors import UpstreamError
from ai_collab.history import ConversationHistoryStore
from ai_collab.project_context import ProjectContextCache
from ai_collab.provider import ProviderCaller
from ai_collab.rate_limit import ProviderRateLimiter
from ai_collab.relevance import RelevanceFilter
from ai_collab.retry import RetryExecutor
from ai_collab.service import CollaborationService
from ai_collab.workspace import WorkspaceResolver

T0 = datetime(2025, 1, 20, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeCaller(ProviderCaller):
    """Provider caller that replays scripted outcomes.

    Each outcome is either a response string or an exception instance.
    The last outcome repeats once the script runs out.
    """

    def __init__(self, config: ProviderConfig, outcomes=None):
        super().__init__(config)
        self.outcomes = list(outcomes or ["ok"])
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        index = min(len(self.prompts) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_config(key: str, api_key: str = "test-key", name: str | None = None) -> ProviderConfig:
    return ProviderConfig(
        key=key,
        name=name or key.capitalize(),
        model=f"{key}-model",
        api_key=api_key,
        base_url=f"https://{key}.example.test/v1",
        specialty=f"{key} things",
    )


@pytest.fixture
def make_entry():
    """Factory for conversation entries with sensible defaults."""

    def build(
        query: str = "How do I refactor the auth module?",
        response: str = "Split it into token validation and refresh.",
        tool: str = "consult_ai",
        provider: str = "claude",
        timestamp: datetime = T0,
        context_files: tuple[str, ...] = (),
    ) -> ConversationEntry:
        return ConversationEntry(
            timestamp=timestamp,
            tool=tool,
            provider=provider,
            query=query,
            response=response,
            context_files=context_files,
            token_count=42,
        )

    return build


@pytest.fixture
def write_history():
    """Write raw records in the on-disk history format."""

    def write(path, entries) -> None:
        path.write_text(json.dumps(entries, indent=2), encoding="utf-8")

    return write


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def project_dir(tmp_path):
    """Create a small project with a readme, manifest and some sources."""
    project = tmp_path / "dev" / "myapp"
    (project / ".git").mkdir(parents=True)
    (project / "src").mkdir()
    (project / "README.md").write_text("# My App\n\nA demo application for testing.", encoding="utf-8")
    (project / "package.json").write_text(
        json.dumps({"name": "myapp", "version": "1.0.0"}, indent=2), encoding="utf-8"
    )
    (project / "src" / "auth.py").write_text("def authenticate(token):\n    return True\n", encoding="utf-8")
    (project / "tsconfig.json").write_text("{}", encoding="utf-8")
    (project / ".env").write_text("SECRET=1", encoding="utf-8")
    return project


@pytest.fixture
def home_dir(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def resolver(project_dir, home_dir):
    return WorkspaceResolver(
        WorkspaceState(current_path=project_dir),
        environ={},
        cwd=lambda: project_dir,
        home=home_dir,
    )


@pytest.fixture
def history_store(resolver, clock):
    return ConversationHistoryStore(resolver, clock=clock)


@pytest.fixture
def assembler(resolver, history_store, clock):
    cache = ProjectContextCache(resolver, clock=clock)
    return ContextAssembler(cache, history_store, RelevanceFilter())


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def callers():
    return {
        "claude": FakeCaller(make_config("claude", name="Claude"), ["Claude says hello"]),
        "gpt4": FakeCaller(make_config("gpt4", name="GPT-4 (OpenAI)"), ["GPT says hello"]),
        "gemini": FakeCaller(make_config("gemini", api_key="", name="Gemini Pro (Google)")),
    }


@pytest.fixture
def service(callers, assembler, clock, sleep):
    limiter = ProviderRateLimiter(callers.keys(), clock=clock)
    return CollaborationService(callers, assembler, limiter, RetryExecutor(sleep=sleep), clock=clock)


@pytest.fixture
def auth_error():
    return UpstreamError("Claude", "Claude API error (401): invalid x-api-key", status_code=401)
