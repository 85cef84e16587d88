import asyncio

from typer.testing import CliRunner

import songflow.persistence as persistence
from songflow.cli import app
from songflow.contracts import SongProperties, WorkflowRecord, WorkflowStatus
from songflow.persistence import InMemoryWorkflowRepository


def _setup_repo() -> InMemoryWorkflowRepository:
    repo = InMemoryWorkflowRepository()
    persistence._repository_instance = repo
    return repo


def test_workflow_list_command():
    repo = _setup_repo()
    done = WorkflowRecord(task_description="a rainy-evening lofi track")
    done.status = WorkflowStatus.COMPLETED
    waiting = WorkflowRecord(task_description="epic orchestral piece")
    waiting.status = WorkflowStatus.AWAITING_REVIEW
    asyncio.run(repo.save(done))
    asyncio.run(repo.save(waiting))

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, result.output
    assert f"{done.id}\tcompleted\ta rainy-evening lofi track" in result.output
    assert f"{waiting.id}\tawaiting_review\tepic orchestral piece" in result.output


def test_workflow_list_empty():
    _setup_repo()
    result = CliRunner().invoke(app, ["workflow", "list"])
    assert result.exit_code == 0
    assert "No workflows found" in result.output


def test_workflow_show_details_and_missing():
    repo = _setup_repo()
    record = WorkflowRecord(task_description="a rainy-evening lofi track", is_premium=True)
    record.edited_lyrics = "[Verse]\nRain on the window"
    record.edited_properties = SongProperties(style="lofi", vocal_type="soft female")
    record.fail("suno submission", "API error (status 503): busy")
    asyncio.run(repo.save(record))

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "show", record.id])
    assert result.exit_code == 0, result.output
    assert f"Workflow: {record.id}" in result.output
    assert "Status: failed" in result.output
    assert "Premium: yes" in result.output
    assert "Tags: lofi, soft female" in result.output
    assert "Error: suno submission failed: API error (status 503): busy" in result.output
    assert "[Verse]" in result.output

    missing = runner.invoke(app, ["workflow", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Workflow not found" in missing.output


def test_serve_requires_llm_key(tmp_path, monkeypatch):
    monkeypatch.setenv("SONGFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("OPENAI_API_KEY", "")
    result = CliRunner().invoke(app, ["serve"])
    assert result.exit_code == 1
    assert "OPENAI_API_KEY is required" in result.output


def test_set_webhook_requires_token(tmp_path, monkeypatch):
    monkeypatch.setenv("SONGFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "")
    result = CliRunner().invoke(app, ["telegram", "set-webhook", "--url", "https://x"])
    assert result.exit_code == 1
    assert "TELEGRAM_BOT_TOKEN is not configured" in result.output
