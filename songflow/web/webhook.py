"""Telegram webhook: remote commands that start and inspect workflows."""

from __future__ import annotations

import html
import logging
from typing import Tuple

from fastapi import BackgroundTasks, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..clients.telegram import TelegramNotifier, verify_webhook_secret
from ..clients.telegram_models import TelegramUpdate
from ..config import SongflowConfig
from ..constants import WEBHOOK_SECRET_HEADER
from ..contracts import NotifierError, WorkflowStatus
from ..engine import WorkflowEngine

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Send a task description to start a workflow.\n"
    "Default mode: {mode}.\n\n"
    "Commands:\n"
    "/premium your task description\n"
    "/basic your task description\n"
    "/status WORKFLOW_ID"
)


def parse_command(text: str) -> Tuple[str, str]:
    """Split ``text`` into a lower-cased command and its argument string.

    Text that does not start with ``/`` is returned as arguments with an empty
    command. A ``@botname`` suffix on the command is dropped.
    """
    trimmed = text.strip()
    if not trimmed:
        return "", ""
    if not trimmed.startswith("/"):
        return "", trimmed

    head = trimmed.split(None, 1)[0]
    command = head.split("@", 1)[0]
    return command.lower(), trimmed[len(head):].strip()


class TelegramCommandHandler:
    """Turns inbound chat messages into engine calls and replies."""

    def __init__(
        self,
        engine: WorkflowEngine,
        notifier: TelegramNotifier,
        config: SongflowConfig,
    ) -> None:
        self.engine = engine
        self.notifier = notifier
        self.config = config

    async def handle_update(self, update: TelegramUpdate) -> None:
        message = update.extract_message()
        if message is None:
            return
        if message.from_user is not None and message.from_user.is_bot:
            return

        text = message.body
        if not text:
            return

        chat_id = str(message.chat.id)
        expected = self.config.telegram.chat_id
        if expected and chat_id != expected:
            logger.info(
                f"Telegram webhook ignored chat chat_id={chat_id} expected={expected}"
            )
            return

        command, args = parse_command(text)
        if command in ("/start", "/help"):
            await self.reply(chat_id, self.help_text())
        elif command == "/status":
            if not args:
                await self.reply(chat_id, "Usage: /status WORKFLOW_ID")
            else:
                await self.reply_status(chat_id, args)
        elif command in ("/premium", "/basic"):
            if not args:
                await self.reply(chat_id, f"Usage: {command} your task description")
            else:
                await self.start_workflow(chat_id, args, command == "/premium")
        elif command:
            await self.reply(chat_id, "Unknown command. Send /help for options.")
        else:
            await self.start_workflow(
                chat_id, args, self.config.workflow.premium_by_default
            )

    def help_text(self) -> str:
        mode = "premium" if self.config.workflow.premium_by_default else "basic"
        return HELP_TEXT.format(mode=mode)

    async def start_workflow(self, chat_id: str, task: str, is_premium: bool) -> None:
        task = task.strip()
        if not task:
            await self.reply(chat_id, "Task description is required.")
            return

        record = await self.engine.start(task, is_premium)
        status_url = f"{self.config.public_base_url}/workflow/{record.id}"
        await self.reply(
            chat_id,
            f"Workflow started.\n\nID: {record.id}\n"
            f"Status: {record.status.value}\nLink: {status_url}",
        )

    async def reply_status(self, chat_id: str, workflow_id: str) -> None:
        record = await self.engine.repository.get(workflow_id.strip())
        if record is None:
            await self.reply(chat_id, "Workflow not found.")
            return

        base_url = self.config.public_base_url
        reply = f"Status: {record.status.value}\nLink: {base_url}/workflow/{record.id}"
        if record.status is WorkflowStatus.AWAITING_REVIEW:
            reply += f"\nReview: {base_url}/review/{record.id}"
        if record.error_msg:
            reply += f"\nError: {html.escape(record.error_msg)}"
        await self.reply(chat_id, reply)

    async def reply(self, chat_id: str, text: str) -> None:
        try:
            await self.notifier.send(chat_id, text)
        except NotifierError as exc:
            logger.warning(f"Failed to send Telegram reply chat_id={chat_id}: {exc}")


async def telegram_webhook(request: Request, background_tasks: BackgroundTasks):
    """Accept a Telegram update and process it after responding."""
    state = request.app.state
    config: SongflowConfig = state.config
    if not config.telegram.bot_token:
        return JSONResponse({"status": "telegram_disabled"}, status_code=503)

    provided = request.headers.get(WEBHOOK_SECRET_HEADER)
    if not verify_webhook_secret(provided, config.telegram.webhook_secret):
        return JSONResponse({"status": "unauthorized"}, status_code=401)

    try:
        update = TelegramUpdate.model_validate(await request.json())
    except (ValueError, ValidationError):
        return JSONResponse({"status": "invalid_payload"}, status_code=400)

    background_tasks.add_task(state.command_handler.handle_update, update)
    return {"status": "ok"}
