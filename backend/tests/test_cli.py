from __future__ import annotations

import json
from unittest import mock

import pytest
from conftest import FakeResponse
from typer.testing import CliRunner

from lorekeeper.cli import main as cli

runner = CliRunner()


@pytest.fixture(autouse=True)
def default_target(monkeypatch) -> None:
    monkeypatch.delenv("LORE_HOST", raising=False)
    monkeypatch.delenv("LORE_INSTANCE", raising=False)


class _Response(FakeResponse):
    @property
    def ok(self) -> bool:
        return self.status_code < 400


def test_sources_add_posts_config(monkeypatch) -> None:
    monkeypatch.setenv("LORE_HOST", "http://lore.test/")
    monkeypatch.setenv("LORE_INSTANCE", "team")
    created = {"id": "s1", "name": "Chat"}
    with mock.patch.object(cli.requests, "request", return_value=_Response(201, created)) as request:
        result = runner.invoke(
            cli.app, ["sources", "add", "Chat", "chat_channels", "--config", '{"token": "x", "channels": ["C1"]}']
        )
    assert result.exit_code == 0
    assert json.loads(result.stdout) == created
    args, kwargs = request.call_args
    assert args == ("POST", "http://lore.test/sources")
    assert kwargs["json"] == {
        "instance_id": "team",
        "name": "Chat",
        "type": "chat_channels",
        "config": {"token": "x", "channels": ["C1"]},
    }


def test_sources_add_rejects_invalid_json() -> None:
    with mock.patch.object(cli.requests, "request") as request:
        result = runner.invoke(cli.app, ["sources", "add", "Chat", "chat_channels", "--config", "{nope"])
    assert result.exit_code != 0
    request.assert_not_called()


def test_sync_wait_polls_until_finished() -> None:
    responses = [
        _Response(202, {"id": "j1", "status": "running"}),
        _Response(200, {"id": "j1", "status": "running"}),
        _Response(200, {"id": "j1", "status": "completed", "stats": {"documents_ingested": 4}}),
    ]
    with mock.patch.object(cli.requests, "request", side_effect=responses) as request:
        result = runner.invoke(cli.app, ["sync", "s1", "--wait", "--interval", "0"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["status"] == "completed"
    assert [call.args for call in request.call_args_list] == [
        ("POST", "http://127.0.0.1:5173/sources/s1/sync"),
        ("GET", "http://127.0.0.1:5173/jobs/j1"),
        ("GET", "http://127.0.0.1:5173/jobs/j1"),
    ]


def test_failed_job_exits_non_zero() -> None:
    with mock.patch.object(cli.requests, "request", return_value=_Response(202, {"id": "j1", "status": "failed"})):
        result = runner.invoke(cli.app, ["sync", "s1"])
    assert result.exit_code == 1


def test_ask_prints_answer_and_citations() -> None:
    answer = {
        "content": "Deployments happen on Tuesdays.",
        "citations": [
            {"title": "Runbook", "relevance": 0.91, "url": "https://wiki/runbook", "document_id": "d1"},
            {"title": "Notes", "relevance": 0.8, "url": None, "document_id": "d2"},
        ],
    }
    with mock.patch.object(cli.requests, "request", return_value=_Response(200, answer)) as request:
        result = runner.invoke(cli.app, ["ask", "When do we deploy?"])
    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    assert lines == [
        "Deployments happen on Tuesdays.",
        "[1] Runbook (0.91) https://wiki/runbook",
        "[2] Notes (0.80) d2",
    ]
    assert request.call_args.kwargs["json"]["source"] == "cli"
    assert request.call_args.kwargs["json"]["instance_id"] == "default"


def test_http_error_is_reported() -> None:
    failure = _Response(404, {"detail": "data source s9 not found"})
    with mock.patch.object(cli.requests, "request", return_value=failure):
        result = runner.invoke(cli.app, ["job", "s9"])
    assert result.exit_code == 1
