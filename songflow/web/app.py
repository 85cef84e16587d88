"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from ..clients import build_clients
from ..config import SongflowConfig, load_config
from ..contracts import (
    ConfigError,
    InvalidTransitionError,
    NotifierError,
    WorkflowNotFoundError,
)
from ..engine import WorkflowEngine
from ..persistence import get_repository
from ..utils.files import UPLOADS_URL_PREFIX
from .views import router
from .webhook import TelegramCommandHandler, telegram_webhook

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[SongflowConfig] = None,
    engine: Optional[WorkflowEngine] = None,
) -> FastAPI:
    """Build the web application.

    When ``engine`` is omitted the adapters and repository are built from
    ``config`` and closed again on shutdown.
    """

    config = config or load_config()
    owns_engine = engine is None
    if engine is None:
        llm, suno, notifier = build_clients(config)
        engine = WorkflowEngine(
            get_repository(config=config), llm, suno, notifier, config=config
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        resumed = await engine.resume_interrupted()
        if resumed:
            logger.info(f"Recovered {resumed} interrupted workflows")
        await _register_webhook(engine, config)
        yield
        # Shutdown
        await engine.shutdown()
        if owns_engine:
            await engine.llm.aclose()
            await engine.suno.aclose()
            await engine.notifier.aclose()

    app = FastAPI(lifespan=lifespan, title="songflow", docs_url=None, redoc_url=None)
    app.state.config = config
    app.state.engine = engine
    app.state.command_handler = TelegramCommandHandler(engine, engine.notifier, config)

    @app.middleware("http")
    async def recover_errors(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception(f"Unhandled error on {request.method} {request.url.path}")
            return PlainTextResponse(f"Internal server error: {exc}", status_code=500)

    @app.exception_handler(WorkflowNotFoundError)
    async def not_found(request: Request, exc: WorkflowNotFoundError):
        return PlainTextResponse("Workflow not found", status_code=404)

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError):
        return PlainTextResponse(str(exc), status_code=400)

    app.include_router(router)
    app.add_api_route(config.webhook_path, telegram_webhook, methods=["POST"])
    app.mount(
        UPLOADS_URL_PREFIX,
        StaticFiles(directory=config.server.uploads_dir, check_dir=False),
        name="uploads",
    )
    return app


async def _register_webhook(engine: WorkflowEngine, config: SongflowConfig) -> None:
    if not (config.telegram.bot_token and config.telegram.webhook_url):
        return
    try:
        await engine.notifier.set_webhook(
            config.telegram.webhook_url, config.telegram.webhook_secret
        )
    except (NotifierError, ConfigError) as exc:
        logger.warning(f"Failed to set Telegram webhook: {exc}")
    else:
        logger.info(f"Telegram webhook registered: {config.telegram.webhook_url}")
