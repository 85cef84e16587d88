"""HTML pages and form handlers."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Request, status
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.datastructures import FormData, UploadFile
from starlette.formparsers import MultiPartException

from .. import __version__
from ..config import SongflowConfig
from ..contracts import (
    PersonaInspo,
    ReviewEdits,
    SongProperties,
    WorkflowRecord,
    WorkflowStatus,
)
from ..engine import WorkflowEngine
from ..utils.files import store_upload, upload_destination

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

router = APIRouter()

HEADLINES = {
    WorkflowStatus.PROCESSING: "Drafting your song...",
    WorkflowStatus.APPROVED: "Submitting to the generator...",
    WorkflowStatus.GENERATING: "Generating audio...",
    WorkflowStatus.COMPLETED: "Song created!",
    WorkflowStatus.FAILED: "Generation failed",
    WorkflowStatus.REJECTED: "Workflow rejected",
}

REFRESHING = {
    WorkflowStatus.PROCESSING,
    WorkflowStatus.APPROVED,
    WorkflowStatus.GENERATING,
}


class FormError(ValueError):
    """Raised for a malformed or invalid form submission."""


def _engine(request: Request) -> WorkflowEngine:
    return request.app.state.engine


def _config(request: Request) -> SongflowConfig:
    return request.app.state.config


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/")
async def start_page(request: Request):
    config = _config(request)
    return templates.TemplateResponse(
        request,
        "start.html",
        {
            "title": "Create Song",
            "premium_by_default": config.workflow.premium_by_default,
            "max_audio_size_mb": config.workflow.max_audio_size_mb,
        },
    )


@router.get("/workflows")
async def workflows_list(request: Request):
    workflows = await _engine(request).repository.list()
    return templates.TemplateResponse(
        request, "list.html", {"title": "Workflows", "workflows": workflows}
    )


@router.get("/workflow/{workflow_id}")
async def workflow_status(request: Request, workflow_id: str):
    record = await _engine(request).get(workflow_id)
    if record.status is WorkflowStatus.AWAITING_REVIEW:
        return _redirect(f"/review/{workflow_id}")
    return templates.TemplateResponse(
        request,
        "status.html",
        {
            "title": "Workflow Status",
            "workflow": record,
            "headline": HEADLINES.get(record.status, record.status.value),
            "refresh": record.status in REFRESHING,
        },
    )


@router.get("/review/{workflow_id}")
async def review_page(request: Request, workflow_id: str):
    record = await _engine(request).get(workflow_id)
    if record.status is not WorkflowStatus.AWAITING_REVIEW:
        return _redirect(f"/workflow/{workflow_id}")
    return templates.TemplateResponse(
        request, "review.html", {"title": "Review", "workflow": record}
    )


@router.post("/workflow/start")
async def start_workflow(request: Request):
    config = _config(request)
    form = await _read_form(request)
    if form is None:
        return PlainTextResponse("Failed to parse form", status_code=400)

    task_description = str(form.get("task_description") or "").strip()
    if not task_description:
        return PlainTextResponse("Task description is required", status_code=400)
    is_premium = form.get("is_premium") == "true"

    audio_path, audio_name = "", ""
    upload = form.get("audio_file")
    if isinstance(upload, UploadFile) and upload.filename:
        limit = config.workflow.max_audio_size_mb * 1024 * 1024
        if _upload_size(upload) > limit:
            return PlainTextResponse(
                f"Audio file exceeds the {config.workflow.max_audio_size_mb} MiB limit",
                status_code=400,
            )
        destination = upload_destination(config.server.uploads_dir, upload.filename)
        await asyncio.to_thread(store_upload, upload.file, destination)
        audio_path, audio_name = destination.as_posix(), upload.filename
        logger.info(f"Stored upload {audio_name} at {audio_path}")

    record = await _engine(request).start(
        task_description, is_premium, audio_path, audio_name
    )
    return _redirect(f"/workflow/{record.id}")


@router.post("/workflow/{workflow_id}/submit")
async def submit_review(request: Request, workflow_id: str):
    engine = _engine(request)
    record = await engine.get(workflow_id)
    if record.status is not WorkflowStatus.AWAITING_REVIEW:
        return PlainTextResponse("Workflow is not awaiting review", status_code=400)

    form = await _read_form(request)
    if form is None:
        return PlainTextResponse("Failed to parse form", status_code=400)
    action = form.get("action") or "approve"
    if action == "reject":
        await engine.reject(record)
    elif action == "approve":
        try:
            edits = review_edits_from_form(form, record)
        except FormError as exc:
            return PlainTextResponse(str(exc), status_code=400)
        await engine.approve(record, edits)
    else:
        return PlainTextResponse(f"Unknown action: {action}", status_code=400)
    return _redirect(f"/workflow/{workflow_id}")


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }


def review_edits_from_form(form: FormData, record: WorkflowRecord) -> ReviewEdits:
    """Build reviewer edits; absent fields keep the record's current values."""
    current = record.edited_properties or record.properties or SongProperties()

    def field(name: str, default: str) -> str:
        value = form.get(name)
        return default if value is None else str(value)

    raw_weirdness = field("weirdness", "").strip()
    if raw_weirdness:
        try:
            weirdness = float(raw_weirdness)
        except ValueError:
            raise FormError(f"Invalid weirdness value: {raw_weirdness}") from None
    else:
        weirdness = current.weirdness

    properties = SongProperties(
        style=field("style", current.style),
        vocal_type=field("vocal_type", current.vocal_type),
        lyrics_mode=field("lyrics_mode", current.lyrics_mode),
        weirdness=weirdness,
        style_influence=field("style_influence", current.style_influence),
    )

    persona_inspo: Optional[PersonaInspo] = None
    if record.is_premium:
        existing = record.edited_persona_inspo or PersonaInspo()
        persona_inspo = PersonaInspo(
            persona=field("persona", existing.persona),
            inspo=field("inspo", existing.inspo),
        )

    return ReviewEdits(
        edited_lyrics=field("edited_lyrics", record.edited_lyrics),
        edited_properties=properties,
        edited_persona_inspo=persona_inspo,
    )


async def _read_form(request: Request) -> Optional[FormData]:
    try:
        return await request.form()
    except MultiPartException as exc:
        logger.warning(f"Rejected malformed form on {request.url.path}: {exc}")
        return None


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    upload.file.seek(0, 2)
    size = upload.file.tell()
    upload.file.seek(0)
    return size
