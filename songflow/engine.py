"""Workflow engine: turns a brief into an approved music generation request."""

from __future__ import annotations

import asyncio
import html
import logging
from typing import Any, Coroutine, Optional, Set

from .clients.llm import LLMClient
from .clients.suno import AudioInfo, CustomGenerateRequest, SunoClient
from .clients.telegram import TelegramNotifier
from .config import SongflowConfig
from .constants import NOTIFY_TASK_PREVIEW_LENGTH, TITLE_MAX_LENGTH
from .contracts import (
    InvalidTransitionError,
    NotifierError,
    PersonaInspo,
    ReviewEdits,
    SongflowError,
    SongProperties,
    WorkflowNotFoundError,
    WorkflowRecord,
    WorkflowStatus,
)
from .persistence import WorkflowRepository
from .prompts import (
    PromptSet,
    brackets_user_prompt,
    persona_user_prompt,
    properties_user_prompt,
)
from .utils.files import upload_url
from .utils.text import parse_json_model, truncate

logger = logging.getLogger(__name__)

STEP_LYRICS = "lyrics generation"
STEP_PROPERTIES = "suno properties"
STEP_BRACKETS = "bracket instructions"
STEP_PERSONA = "persona/inspo"
STEP_PRE_REVIEW = "pre-review"
STEP_SUBMISSION = "suno submission"
STEP_COMPLETION = "suno completion"

RESTART_MESSAGE = "interrupted by server restart"


class WorkflowEngine:
    """Runs the staged song workflow.

    ``start`` launches the pre-review stage in the background and returns the
    new record at once. The record then waits in ``awaiting_review`` until
    ``approve`` (which launches submission and polling) or ``reject``.
    Background work is fire-and-forget; its outcome is only observable through
    the record's status.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        llm: LLMClient,
        suno: SunoClient,
        notifier: TelegramNotifier,
        config: Optional[SongflowConfig] = None,
        prompts: Optional[PromptSet] = None,
    ) -> None:
        self.repository = repository
        self.llm = llm
        self.suno = suno
        self.notifier = notifier
        self.config = config or SongflowConfig()
        self.prompts = prompts or PromptSet()
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Entry points
    async def start(
        self,
        task_description: str,
        is_premium: bool = False,
        audio_file_path: str = "",
        audio_file_name: str = "",
    ) -> WorkflowRecord:
        """Create a record in ``processing`` and launch the pre-review stage."""
        record = WorkflowRecord(
            task_description=task_description,
            is_premium=is_premium,
            audio_file_path=audio_file_path,
            audio_file_name=audio_file_name,
        )
        await self.repository.save(record)
        logger.info(
            f"Started workflow_id={record.id} premium={is_premium} "
            f"audio={'yes' if audio_file_path else 'no'}"
        )
        self._spawn(self._run_pre_review(record), f"pre-review:{record.id}")
        return record

    async def approve(
        self, record: WorkflowRecord, edits: Optional[ReviewEdits] = None
    ) -> None:
        """Apply reviewer edits, move to ``approved`` and launch submission.

        Raises:
            InvalidTransitionError: If the record is not awaiting review. The
                record is left untouched in that case.
        """
        await self._claim_review(record, WorkflowStatus.APPROVED)
        if edits is not None:
            self._apply_edits(record, edits)
        await self.repository.save(record)
        logger.info(f"Approved workflow_id={record.id}")
        self._spawn(self._run_post_approval(record), f"post-approval:{record.id}")

    async def reject(self, record: WorkflowRecord) -> None:
        """Move an ``awaiting_review`` record to the terminal ``rejected``."""
        await self._claim_review(record, WorkflowStatus.REJECTED)
        await self.repository.save(record)
        logger.info(f"Rejected workflow_id={record.id}")

    async def get(self, workflow_id: str) -> WorkflowRecord:
        record = await self.repository.get(workflow_id)
        if record is None:
            raise WorkflowNotFoundError(workflow_id)
        return record

    # ------------------------------------------------------------------
    # Pre-review stage
    async def _run_pre_review(self, record: WorkflowRecord) -> None:
        step = STEP_LYRICS
        try:
            record.lyrics = await self.llm.chat(
                self.prompts.lyrics_generation, record.task_description
            )
            await self.repository.save(record)

            step = STEP_PROPERTIES
            record.properties = await self._determine_properties(record)
            await self.repository.save(record)

            step = STEP_BRACKETS
            record.lyrics_with_brackets = await self.llm.chat(
                self.prompts.bracket_instructions,
                brackets_user_prompt(record.lyrics, record.properties),
            )
            await self.repository.save(record)

            if record.is_premium:
                step = STEP_PERSONA
                record.persona_inspo = await self._generate_persona_inspo(record)
                await self.repository.save(record)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._fail(record, step, exc)
            return

        record.seed_review_fields()
        record.transition(WorkflowStatus.AWAITING_REVIEW)
        await self.repository.save(record)
        logger.info(f"Workflow awaiting review workflow_id={record.id}")
        await self._notify_review_ready(record)

    async def _determine_properties(self, record: WorkflowRecord) -> SongProperties:
        response = await self.llm.chat(
            self.prompts.song_properties,
            properties_user_prompt(record.task_description, record.lyrics),
        )
        return parse_json_model(response, SongProperties)

    async def _generate_persona_inspo(self, record: WorkflowRecord) -> PersonaInspo:
        response = await self.llm.chat(
            self.prompts.persona_inspo,
            persona_user_prompt(record.task_description, record.properties),
        )
        return parse_json_model(response, PersonaInspo)

    # ------------------------------------------------------------------
    # Post-approval stage
    def build_request(self, record: WorkflowRecord) -> CustomGenerateRequest:
        """Derive the generation request from the reviewed fields."""
        props = record.edited_properties or record.properties or SongProperties()
        lyrics = record.edited_lyrics or record.lyrics_with_brackets

        request = CustomGenerateRequest(
            prompt=lyrics,
            tags=props.tags(),
            title=truncate(record.task_description, TITLE_MAX_LENGTH),
            make_instrumental=False,
            wait_audio=False,
        )

        if record.is_premium:
            persona_inspo = record.edited_persona_inspo or record.persona_inspo
            if persona_inspo is not None:
                request.persona = persona_inspo.persona or None
                request.inspo = persona_inspo.inspo or None

        if record.audio_file_path:
            request.audio_reference = upload_url(
                self.config.public_base_url,
                self.config.server.uploads_dir,
                record.audio_file_path,
            )
        return request

    async def _run_post_approval(self, record: WorkflowRecord) -> None:
        try:
            jobs = await self.suno.submit(self.build_request(record))
            if not jobs:
                raise SongflowError("no results returned from Suno")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._fail(record, STEP_SUBMISSION, exc)
            return

        record.mgs_job_id = jobs[0].id
        record.transition(WorkflowStatus.GENERATING)
        await self.repository.save(record)
        logger.info(
            f"Submitted workflow_id={record.id} job_id={record.mgs_job_id} "
            f"variations={len(jobs)}"
        )
        await self._poll_completion(record)

    async def _poll_completion(self, record: WorkflowRecord) -> None:
        try:
            clip = await self.suno.wait_for_completion(
                record.mgs_job_id,
                self.config.suno.poll_interval,
                self.config.suno.max_polls,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._fail(record, STEP_COMPLETION, exc)
            return

        self._record_result(record, clip)
        record.transition(WorkflowStatus.COMPLETED)
        await self.repository.save(record)
        logger.info(f"Completed workflow_id={record.id} job_id={record.mgs_job_id}")
        await self._notify(
            "✅ Song generation completed!\n\n"
            f"🎵 Title: {html.escape(record.mgs_title)}\n"
            f"🔗 Audio: {html.escape(record.audio_url)}\n"
            f"📹 Video: {html.escape(record.video_url)}",
            link=record.audio_url or self._status_url(record),
            link_text="Listen",
        )

    @staticmethod
    def _record_result(record: WorkflowRecord, clip: AudioInfo) -> None:
        record.mgs_result = clip.status
        record.mgs_title = clip.title or ""
        record.audio_url = clip.audio_url or ""
        record.video_url = clip.video_url or ""

    # ------------------------------------------------------------------
    # Restart handling
    async def resume_interrupted(self) -> int:
        """Resume or fail records left mid-flight by a previous process.

        Records in ``generating`` with a job id resume polling. Records caught
        in ``processing`` or ``approved`` cannot be resumed and are failed.
        Returns the number of records touched.
        """
        touched = 0
        for record in await self.repository.list_by_status(WorkflowStatus.GENERATING):
            touched += 1
            if record.mgs_job_id:
                logger.info(f"Resuming polling for workflow_id={record.id}")
                self._spawn(self._poll_completion(record), f"poll:{record.id}")
            else:
                await self._fail(record, STEP_COMPLETION, RESTART_MESSAGE)

        for status, step in (
            (WorkflowStatus.PROCESSING, STEP_PRE_REVIEW),
            (WorkflowStatus.APPROVED, STEP_SUBMISSION),
        ):
            for record in await self.repository.list_by_status(status):
                touched += 1
                await self._fail(record, step, RESTART_MESSAGE)
        return touched

    # ------------------------------------------------------------------
    # Task management
    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every background stage, including ones they spawn, ends."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding background stages."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Helpers
    async def _claim_review(self, record: WorkflowRecord, target: WorkflowStatus) -> None:
        """Move ``record`` out of ``awaiting_review`` under the store's lock.

        Only one of several concurrent approve or reject calls for the same
        workflow wins; the others raise and leave their copy untouched.
        """
        if record.status is not WorkflowStatus.AWAITING_REVIEW:
            raise InvalidTransitionError(record.id, record.status, target)
        claimed = await self.repository.transition(
            record.id, WorkflowStatus.AWAITING_REVIEW, target
        )
        if not claimed:
            stored = await self.repository.get(record.id)
            current = stored.status if stored is not None else record.status
            raise InvalidTransitionError(record.id, current, target)
        # the stored copy has already moved; mirror it on this instance
        record.status = target

    @staticmethod
    def _apply_edits(record: WorkflowRecord, edits: ReviewEdits) -> None:
        record.edited_lyrics = edits.edited_lyrics
        record.edited_properties = edits.edited_properties
        if record.is_premium and edits.edited_persona_inspo is not None:
            record.edited_persona_inspo = edits.edited_persona_inspo

    async def _fail(
        self, record: WorkflowRecord, step: str, error: BaseException | str
    ) -> None:
        if record.status.is_terminal:
            logger.warning(
                f"Ignoring {step} error for terminal workflow_id={record.id}: {error}"
            )
            return
        record.fail(step, error)
        await self.repository.save(record)
        logger.error(f"Workflow error workflow_id={record.id} step={step} error={error}")
        await self._notify(
            "❌ Song workflow failed\n\n"
            f"ID: {record.id}\n"
            f"Error: {html.escape(record.error_msg)}",
            link=self._status_url(record),
            link_text="Details",
        )

    async def _notify_review_ready(self, record: WorkflowRecord) -> None:
        props = record.edited_properties or SongProperties()
        lines = [
            "🎵 Song workflow ready for review!",
            "",
            f"Task: {html.escape(truncate(record.task_description, NOTIFY_TASK_PREVIEW_LENGTH))}",
            f"Style: {html.escape(props.style)}",
        ]
        if props.vocal_type:
            lines.append(f"Vocals: {html.escape(props.vocal_type)}")
        if record.is_premium:
            lines.append("⭐ Premium")
        review_url = self._review_url(record)
        lines += ["", f"🔗 Review: {review_url}"]
        await self._notify("\n".join(lines), link=review_url, link_text="Review")

    async def _notify(
        self, text: str, link: Optional[str] = None, link_text: str = "Open"
    ) -> None:
        try:
            await self.notifier.notify(text, link=link, link_text=link_text)
        except NotifierError as exc:
            logger.warning(f"Failed to send Telegram notification: {exc}")

    def _review_url(self, record: WorkflowRecord) -> str:
        return f"{self.config.public_base_url}/review/{record.id}"

    def _status_url(self, record: WorkflowRecord) -> str:
        return f"{self.config.public_base_url}/workflow/{record.id}"
