"""
Smoke tests for the CLI commands, run against an in-memory database.
"""

import json

import pytest
from typer.testing import CliRunner

import cli

runner = CliRunner()

T0 = "2026-03-02T09:00:00"


@pytest.fixture(autouse=True)
def patched_service(monkeypatch, service):
    monkeypatch.setattr(cli, "get_service", lambda: service)
    return service


def invoke(*args):
    return runner.invoke(cli.app, list(args))


def test_help():
    result = invoke("--help")
    assert result.exit_code == 0
    assert "answer" in result.output


def test_add_item_and_due():
    result = invoke("add-item", "--learner", "l1", "--item", "apple", "--subject", "English", "--at", T0)
    assert result.exit_code == 0, result.output
    assert "Tracking apple" in result.output

    result = invoke("due", "--learner", "l1", "--at", T0)
    assert result.exit_code == 0, result.output
    assert "1. apple" in result.output


def test_caught_up():
    result = invoke("due", "--learner", "nobody", "--at", T0)
    assert result.exit_code == 0
    assert "caught up" in result.output


def test_answer_with_quality(patched_service):
    result = invoke("answer", "--learner", "l1", "--item", "apple", "--quality", "5", "--at", T0)
    assert result.exit_code == 0, result.output
    assert "Answer recorded" in result.output
    assert "learning" in result.output
    assert patched_service.store.get("l1", "apple").repetition_count == 1


def test_answer_with_retry(patched_service):
    result = invoke("answer", "--learner", "l1", "--item", "apple", "--quality", "4", "--retry", "--at", T0)
    assert result.exit_code == 0, result.output
    assert patched_service.store.get("l1", "apple").revision == 1


def test_answer_from_signal(patched_service):
    result = invoke("answer", "--learner", "l1", "--item", "apple", "--wrong", "--hints", "1", "--at", T0)
    assert result.exit_code == 0, result.output
    record = patched_service.store.get("l1", "apple")
    assert record.last_quality == 1
    assert record.lapse_count == 1


def test_answer_rejects_out_of_range_quality(patched_service):
    result = invoke("answer", "--learner", "l1", "--item", "apple", "--quality", "6", "--at", T0)
    assert result.exit_code == 1
    assert "between 0 and 5" in result.output
    assert patched_service.store.list_records("l1") == []


def test_answer_needs_quality_or_signal():
    result = invoke("answer", "--learner", "l1", "--item", "apple", "--at", T0)
    assert result.exit_code == 1


def test_answer_with_stale_revision():
    assert invoke("answer", "--learner", "l1", "--item", "apple", "--quality", "4", "--at", T0).exit_code == 0
    result = invoke(
        "answer", "--learner", "l1", "--item", "apple", "--quality", "4", "--revision", "0", "--at", T0
    )
    assert result.exit_code == 1
    assert "stale" in result.output


def test_bad_timestamp():
    result = invoke("due", "--learner", "l1", "--at", "yesterday")
    assert result.exit_code == 1


def test_progress_forecast_and_item():
    invoke("answer", "--learner", "l1", "--item", "apple", "--quality", "5", "--subject", "English", "--at", T0)

    result = invoke("progress", "--learner", "l1", "--at", "2026-03-04T09:00:00")
    assert result.exit_code == 0, result.output
    assert "Total items tracked: 1" in result.output

    result = invoke("forecast", "--learner", "l1", "--days", "3", "--at", T0)
    assert result.exit_code == 0, result.output
    assert "2026-03-03" in result.output

    result = invoke("item", "--learner", "l1", "--item", "apple")
    assert result.exit_code == 0, result.output
    assert "Accuracy: 100%" in result.output

    result = invoke("item", "--learner", "l1", "--item", "pear")
    assert result.exit_code == 1


def test_export_json_lines(tmp_path):
    invoke("answer", "--learner", "l1", "--item", "apple", "--quality", "5", "--at", T0)
    invoke("answer", "--learner", "l1", "--item", "pear", "--quality", "2", "--at", T0)

    target = tmp_path / "history.jsonl"
    result = invoke("export", "--learner", "l1", "--output", str(target))
    assert result.exit_code == 0, result.output

    lines = [json.loads(line) for line in target.read_text(encoding="utf-8").splitlines()]
    assert [entry["record"]["item_id"] for entry in lines] == ["apple", "pear"]
    assert lines[1]["events"][0]["quality"] == 2
