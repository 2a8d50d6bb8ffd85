"""Tests for the proposal preview tooling."""

from __future__ import annotations

import json

from conclave_tick.tools import preview_content


def test_preview_builds_content_for_known_topic() -> None:
    result = preview_content.preview("Cross-chain bridge security", seed="d1")
    assert result["category"] == "interoperability"
    assert result["skipped"] is False
    assert "Mechanism:" in result["content"]
    assert result["ticker"] == "BRIDGE"


def test_preview_marks_unknown_topics_skipped() -> None:
    result = preview_content.preview("Favourite colours", seed="d1")
    assert result["category"] == "unknown"
    assert result["content"] is None
    assert "debate would be skipped" in preview_content.render(result)


def test_cli_emits_json(capsys) -> None:
    exit_code = preview_content.main(["DAO treasury voting", "--json", "--max-length", "200"])
    captured = capsys.readouterr()
    assert exit_code == 0
    payload = json.loads(captured.out)
    assert payload["category"] == "governance"
    assert len(payload["content"]) <= 200
