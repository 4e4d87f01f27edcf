"""Tests for the command line interface."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from ai_collab.cli import main


@pytest.fixture
def run(service):
    """Invoke the CLI against the test service."""
    runner = CliRunner()

    def invoke(*args):
        with (
            patch("ai_collab.cli.load_environment"),
            patch("ai_collab.cli.create_service", return_value=service),
        ):
            return runner.invoke(main, list(args))

    return invoke


def test_status(run, project_dir):
    result = run("status")
    assert result.exit_code == 0
    assert f"Workspace: {project_dir} (explicit)" in result.output
    assert "Claude: ✅ Configured (3/3 calls remaining)" in result.output


def test_consult(run, callers):
    result = run("consult", "claude", "How is auth.py structured?")
    assert result.exit_code == 0
    assert "Claude says hello" in result.output
    assert len(callers["claude"].prompts) == 1


def test_consult_error_exits_nonzero(run):
    result = run("consult", "gemini", "anything")
    assert result.exit_code == 1
    assert "API key not configured" in result.output


def test_research_subset(run, callers):
    result = run("research", "Which ORM?", "--provider", "gpt4")
    assert result.exit_code == 0
    assert "GPT says hello" in result.output
    assert callers["claude"].prompts == []


def test_history_json(run, service):
    run("consult", "claude", "first question")
    result = run("history", "--format", "json")
    assert result.exit_code == 0
    # log records may share the captured stream
    output = result.output
    data = json.loads(output[output.index("{\n") : output.rindex("}") + 1])
    assert data["count"] == 1
    assert data["entries"][0]["query"] == "first question"
