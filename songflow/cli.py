"""Command line interface for running and inspecting songflow."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer

from songflow.clients import TelegramNotifier
from songflow.config import load_config
from songflow.contracts import ConfigError, NotifierError
from songflow.persistence import get_repository

app = typer.Typer(help="CLI for songflow workflows")

workflow_app = typer.Typer(help="Commands for inspecting workflows")
telegram_app = typer.Typer(help="Commands for the Telegram integration")

app.add_typer(workflow_app, name="workflow")
app.add_typer(telegram_app, name="telegram")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.callback()
def main() -> None:
    """Songflow CLI entry point."""
    pass


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default: SERVER_HOST)"),
    port: Optional[int] = typer.Option(None, help="Port (default: SERVER_PORT)"),
) -> None:
    """
    Run the web server.

    Serves the starter form, review pages and the Telegram webhook. Exits with
    code 1 when OPENAI_API_KEY is missing or the server cannot start.

    Example:
        songflow serve
        songflow serve --port 9000
    """
    import uvicorn

    from songflow.web import create_app

    config = load_config()
    configure_logging(config.log_level)
    try:
        config.require_llm_key()
    except ConfigError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    typer.echo(f"Songflow server starting on http://{bind_host}:{bind_port}")
    typer.echo(f"LLM model: {config.llm.model}")
    if config.telegram.bot_token:
        typer.echo(f"Telegram webhook path: {config.webhook_path}")
    if config.workflow.premium_by_default:
        typer.echo("Premium features enabled by default")

    server = uvicorn.Server(
        uvicorn.Config(create_app(config), host=bind_host, port=bind_port)
    )
    try:
        server.run()
    except (OSError, SystemExit) as exc:
        typer.secho(f"Failed to start server: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not server.started:
        raise typer.Exit(code=1)


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List all workflows with their current status, newest first.

    Example:
        songflow workflow list
        # Output: 3f2c...    awaiting_review    a rainy-evening lofi track
    """
    repo = get_repository()
    workflows = asyncio.run(repo.list())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.status.value}\t{wf.task_description[:60]}")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """
    Show detailed information for a specific workflow.

    Args:
        workflow_id: Workflow ID to inspect (get from 'workflow list')
    """
    repo = get_repository()
    wf = asyncio.run(repo.get(workflow_id))
    if wf is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)

    typer.echo(f"Workflow: {wf.id}")
    typer.echo(f"Status: {wf.status.value}")
    typer.echo(f"Created: {wf.created_at.isoformat()}")
    typer.echo(f"Updated: {wf.updated_at.isoformat()}")
    typer.echo(f"Premium: {'yes' if wf.is_premium else 'no'}")
    typer.echo(f"Task: {wf.task_description}")
    if wf.edited_properties:
        typer.echo(f"Tags: {wf.edited_properties.tags()}")
    if wf.mgs_job_id:
        typer.echo(f"Job ID: {wf.mgs_job_id}")
    if wf.audio_url:
        typer.echo(f"Audio: {wf.audio_url}")
    if wf.error_msg:
        typer.echo(f"Error: {wf.error_msg}")
    if wf.edited_lyrics:
        typer.echo("Lyrics:")
        typer.echo(wf.edited_lyrics)


@telegram_app.command("set-webhook")
def telegram_set_webhook(url: Optional[str] = None) -> None:
    """Register the webhook URL with Telegram (default: TELEGRAM_WEBHOOK_URL)."""
    config = load_config()
    webhook_url = url or config.telegram.webhook_url
    if not config.telegram.bot_token:
        typer.secho("TELEGRAM_BOT_TOKEN is not configured", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    async def _register() -> None:
        notifier = TelegramNotifier(config.telegram.bot_token, config.telegram.chat_id)
        try:
            await notifier.set_webhook(webhook_url, config.telegram.webhook_secret)
        finally:
            await notifier.aclose()

    try:
        asyncio.run(_register())
    except (ConfigError, NotifierError) as exc:
        typer.secho(f"Failed to set webhook: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Telegram webhook registered: {webhook_url}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
