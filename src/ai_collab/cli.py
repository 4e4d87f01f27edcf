"""CLI entry point for ai-collab-broker."""

import asyncio
import logging
from pathlib import Path

import click
import uvicorn

from .config import load_environment
from .export import history_to_json, history_to_markdown
from .service import create_service


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """Broker requests to AI providers with project context and conversation history."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_environment()


@main.command()
@click.option("--port", default=8765, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the tool server."""
    click.echo(f"Starting ai-collab-broker on http://{host}:{port}", err=True)
    uvicorn.run("ai_collab.server:app", host=host, port=port, reload=False)


@main.command()
def status():
    """Show provider configuration, remaining calls and the active workspace."""
    service = create_service()
    workspace, source = service.resolver.resolve_with_source()
    click.echo(f"Workspace: {workspace} ({source})")
    click.echo(service.provider_status())


@main.command()
@click.argument("provider")
@click.argument("prompt")
@click.option("--context", default=None, help="Additional context for the provider.")
@click.option("--workspace", type=click.Path(exists=True, file_okay=False, path_type=Path), default=None)
def consult(provider: str, prompt: str, context: str | None, workspace: Path | None):
    """Ask one provider a question."""
    service = create_service()
    if workspace:
        service.set_workspace(str(workspace))
    result = asyncio.run(service.consult(provider, prompt, context))
    _echo_result(result)


@main.command()
@click.argument("question")
@click.option("--provider", "providers", multiple=True, help="Provider to include (repeatable).")
@click.option("--workspace", type=click.Path(exists=True, file_okay=False, path_type=Path), default=None)
def research(question: str, providers: tuple[str, ...], workspace: Path | None):
    """Ask several providers the same question."""
    service = create_service()
    if workspace:
        service.set_workspace(str(workspace))
    result = asyncio.run(service.research(question, list(providers) or None))
    _echo_result(result)


@main.command()
@click.option("--format", "fmt", type=click.Choice(["md", "json"]), default="md", help="Output format.")
@click.option("--workspace", type=click.Path(exists=True, file_okay=False, path_type=Path), default=None)
def history(fmt: str, workspace: Path | None):
    """Print the stored conversation history of a workspace."""
    service = create_service()
    if workspace:
        service.set_workspace(str(workspace))
    entries = service.history.all()
    root = service.resolver.resolve()
    if fmt == "json":
        click.echo(history_to_json(entries, root))
    else:
        click.echo(history_to_markdown(entries, root))


def _echo_result(result) -> None:
    click.echo(result.text)
    for warning in result.warnings:
        click.echo(f"warning: {warning}", err=True)
    if result.is_error:
        raise SystemExit(1)
