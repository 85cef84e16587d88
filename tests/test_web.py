"""HTTP tests for the pages, form handlers and Telegram webhook."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from songflow.constants import WEBHOOK_SECRET_HEADER
from songflow.contracts import SongProperties, WorkflowRecord, WorkflowStatus
from songflow.web import create_app


@pytest.fixture
def client(config, engine):
    with TestClient(create_app(config, engine)) as test_client:
        yield test_client


def _seed(client, engine, record: WorkflowRecord) -> WorkflowRecord:
    client.portal.call(engine.repository.save, record)
    return record


def _awaiting_review(client, engine, is_premium=False) -> WorkflowRecord:
    record = WorkflowRecord(task_description="a rainy-evening lofi track", is_premium=is_premium)
    record.lyrics_with_brackets = "[Verse]\nRain on the window"
    record.properties = SongProperties(style="lofi", vocal_type="soft female", weirdness=0.3)
    record.seed_review_fields()
    record.status = WorkflowStatus.AWAITING_REVIEW
    return _seed(client, engine, record)


def _drain(client, engine):
    client.portal.call(engine.drain)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["version"]
    assert body["timestamp"]


def test_start_page(client):
    response = client.get("/")
    assert response.status_code == 200
    assert 'name="task_description"' in response.text
    assert 'action="/workflow/start"' in response.text


def test_start_requires_task(client):
    response = client.post("/workflow/start", data={"task_description": "   "})
    assert response.status_code == 400
    assert response.text == "Task description is required"


def test_start_runs_to_review(client, engine, repository):
    response = client.post(
        "/workflow/start",
        data={"task_description": "a rainy-evening lofi track"},
        follow_redirects=False,
    )
    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith("/workflow/")
    workflow_id = location.rsplit("/", 1)[1]

    _drain(client, engine)
    record = client.portal.call(repository.get, workflow_id)
    assert record.status is WorkflowStatus.AWAITING_REVIEW
    assert record.is_premium is False

    status_page = client.get(location, follow_redirects=False)
    assert status_page.status_code == 302
    assert status_page.headers["location"] == f"/review/{workflow_id}"

    review_page = client.get(f"/review/{workflow_id}")
    assert review_page.status_code == 200
    assert "[Verse]" in review_page.text
    assert 'name="persona"' not in review_page.text


def test_start_with_upload(client, engine, repository, config):
    response = client.post(
        "/workflow/start",
        data={"task_description": "cover this riff", "is_premium": "true"},
        files={"audio_file": ("ref.mp3", b"ID3 fake audio", "audio/mpeg")},
        follow_redirects=False,
    )
    assert response.status_code == 302
    workflow_id = response.headers["location"].rsplit("/", 1)[1]
    _drain(client, engine)

    record = client.portal.call(repository.get, workflow_id)
    assert record.is_premium is True
    assert record.audio_file_name == "ref.mp3"
    stored = Path(record.audio_file_path)
    assert stored.read_bytes() == b"ID3 fake audio"
    assert Path(config.server.uploads_dir) in stored.parents

    relative = stored.relative_to(config.server.uploads_dir).as_posix()
    served = client.get(f"/uploads/{relative}")
    assert served.status_code == 200
    assert served.content == b"ID3 fake audio"


def test_start_rejects_oversized_upload(client, config, repository):
    config.workflow.max_audio_size_mb = 0
    response = client.post(
        "/workflow/start",
        data={"task_description": "cover this riff"},
        files={"audio_file": ("ref.mp3", b"too big", "audio/mpeg")},
    )
    assert response.status_code == 400
    assert client.portal.call(repository.list) == []


def test_submit_reject(client, engine, suno):
    record = _awaiting_review(client, engine)
    response = client.post(
        f"/workflow/{record.id}/submit", data={"action": "reject"}, follow_redirects=False
    )
    assert response.status_code == 302
    assert response.headers["location"] == f"/workflow/{record.id}"
    _drain(client, engine)
    assert record.status is WorkflowStatus.REJECTED
    assert suno.requests == []

    review = client.get(f"/review/{record.id}", follow_redirects=False)
    assert review.status_code == 302
    assert review.headers["location"] == f"/workflow/{record.id}"


def test_submit_approve_with_edits(client, engine, suno):
    record = _awaiting_review(client, engine, is_premium=True)
    response = client.post(
        f"/workflow/{record.id}/submit",
        data={
            "action": "approve",
            "edited_lyrics": "[Chorus]\nedited",
            "style": "jazz",
            "vocal_type": "male",
            "weirdness": "0.9",
            "lyrics_mode": "custom",
            "style_influence": "",
            "persona": "Lena",
            "inspo": "Chet Baker",
        },
        follow_redirects=False,
    )
    assert response.status_code == 302
    _drain(client, engine)

    assert record.status is WorkflowStatus.COMPLETED
    assert record.edited_properties.weirdness == 0.9
    request = suno.requests[0]
    assert request.prompt == "[Chorus]\nedited"
    assert request.tags == "jazz, male"
    assert request.persona == "Lena"

    status_page = client.get(f"/workflow/{record.id}")
    assert status_page.status_code == 200
    assert "https://cdn.example/job-1.mp3" in status_page.text


def test_submit_defaults_to_approve_and_keeps_fields(client, engine, suno):
    record = _awaiting_review(client, engine)
    response = client.post(f"/workflow/{record.id}/submit", data={}, follow_redirects=False)
    assert response.status_code == 302
    _drain(client, engine)
    assert suno.requests[0].prompt == "[Verse]\nRain on the window"
    assert suno.requests[0].tags == "lofi, soft female"


def test_submit_rejects_bad_weirdness(client, engine):
    record = _awaiting_review(client, engine)
    response = client.post(f"/workflow/{record.id}/submit", data={"weirdness": "very"})
    assert response.status_code == 400
    assert record.status is WorkflowStatus.AWAITING_REVIEW


def test_submit_unknown_action(client, engine):
    record = _awaiting_review(client, engine)
    response = client.post(f"/workflow/{record.id}/submit", data={"action": "remix"})
    assert response.status_code == 400


def test_submit_rejects_malformed_multipart(client, engine, suno):
    record = _awaiting_review(client, engine)
    response = client.post(
        f"/workflow/{record.id}/submit",
        content=b"action=approve",
        headers={"Content-Type": "multipart/form-data"},
    )
    assert response.status_code == 400
    assert record.status is WorkflowStatus.AWAITING_REVIEW
    assert suno.requests == []


def test_approve_on_wrong_state(client, engine, suno):
    record = WorkflowRecord(task_description="already going", mgs_job_id="job-9")
    record.status = WorkflowStatus.GENERATING
    _seed(client, engine, record)

    response = client.post(f"/workflow/{record.id}/submit", data={"action": "approve"})
    assert response.status_code == 400
    assert response.text == "Workflow is not awaiting review"
    assert record.status is WorkflowStatus.GENERATING
    assert suno.requests == []


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/workflow/missing-id"),
        ("get", "/review/missing-id"),
        ("post", "/workflow/missing-id/submit"),
    ],
)
def test_unknown_workflow(client, method, path):
    response = getattr(client, method)(path)
    assert response.status_code == 404
    assert response.text == "Workflow not found"


def test_failed_status_page_shows_error(client, engine):
    record = WorkflowRecord(task_description="x")
    record.fail("suno submission", "API error (status 503): busy")
    _seed(client, engine, record)
    response = client.get(f"/workflow/{record.id}")
    assert response.status_code == 200
    assert "suno submission failed" in response.text


def test_workflow_list(client, engine):
    first = _seed(client, engine, WorkflowRecord(task_description="first brief"))
    second = _seed(client, engine, WorkflowRecord(task_description="second brief"))
    response = client.get("/workflows")
    assert response.status_code == 200
    assert first.id in response.text
    assert second.id in response.text


def test_unhandled_error_returns_500(client, repository, monkeypatch):
    async def broken():
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(repository, "list", broken)
    response = client.get("/workflows")
    assert response.status_code == 500
    assert "disk on fire" in response.text


# ----------------------------------------------------------------------
# Telegram webhook

UPDATE = {
    "update_id": 1,
    "message": {
        "message_id": 7,
        "from": {"id": 1, "is_bot": False, "first_name": "Sam"},
        "chat": {"id": 42, "type": "private"},
        "text": "/help",
    },
}


def test_webhook_disabled_without_token(client):
    response = client.post("/telegram/webhook", json=UPDATE)
    assert response.status_code == 503
    assert response.json() == {"status": "telegram_disabled"}


@pytest.fixture
def bot_client(config, engine):
    config.telegram.bot_token = "token"
    config.telegram.webhook_secret = "s3cret"
    config.telegram.webhook_path = "hooks/tg"
    with TestClient(create_app(config, engine)) as test_client:
        yield test_client


def test_webhook_rejects_bad_secret(bot_client, notifier):
    response = bot_client.post("/hooks/tg", json=UPDATE, headers={WEBHOOK_SECRET_HEADER: "nope"})
    assert response.status_code == 401
    assert notifier.messages == []


def test_webhook_rejects_bad_payload(bot_client):
    response = bot_client.post(
        "/hooks/tg", content=b"not json", headers={WEBHOOK_SECRET_HEADER: "s3cret"}
    )
    assert response.status_code == 400
    assert response.json() == {"status": "invalid_payload"}


def test_webhook_handles_command(bot_client, notifier):
    response = bot_client.post("/hooks/tg", json=UPDATE, headers={WEBHOOK_SECRET_HEADER: "s3cret"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert len(notifier.messages) == 1
    assert notifier.messages[0]["chat_id"] == "42"
    assert "/status WORKFLOW_ID" in notifier.messages[0]["text"]


def test_webhook_starts_workflow(bot_client, engine, notifier, repository):
    update = {**UPDATE, "message": {**UPDATE["message"], "text": "/basic a rainy-evening lofi track"}}
    response = bot_client.post("/hooks/tg", json=update, headers={WEBHOOK_SECRET_HEADER: "s3cret"})
    assert response.status_code == 200
    _drain(bot_client, engine)

    (record,) = bot_client.portal.call(repository.list)
    assert record.status is WorkflowStatus.AWAITING_REVIEW
    assert "Workflow started." in notifier.messages[0]["text"]
