"""Tests for debate eligibility, ranking and the join loop."""

from __future__ import annotations

import pytest

from conclave_tick.models import ApiResponse, Debate
from conclave_tick.selector import (
    RankingPolicy,
    attempt_join,
    is_eligible,
    is_soft_rejection,
    select_order,
)


def debates(*payloads):
    return [Debate.from_payload(payload) for payload in payloads]


def test_terminal_phase_and_open_debate():
    candidates = debates(
        {"id": 1, "phase": "ended"},
        {"id": 2, "phase": "debate", "occupancy": 0, "capacity": 5},
    )
    ordered = select_order(candidates)
    assert [debate.id for debate in ordered] == ["2"]


def test_full_debates_and_missing_ids_are_dropped():
    candidates = debates(
        {"id": "a", "phase": "propose", "currentPlayers": 4, "playerCount": 4},
        {"phase": "propose"},
        {"id": "b", "phase": "propose", "currentPlayers": 3, "playerCount": 4},
        {"id": "c", "phase": "results"},
        {"id": "d", "phase": "CLOSED"},
    )
    assert [debate.id for debate in select_order(candidates)] == ["b"]


def test_unknown_capacity_is_assumed_open():
    (debate,) = debates({"id": "x", "phase": "debate", "currentPlayers": 99})
    assert is_eligible(debate) is True


def test_ranks_early_phases_first():
    candidates = debates(
        {"id": "alloc", "phase": "allocation"},
        {"id": "other", "phase": "lobby"},
        {"id": "debate", "phase": "debate"},
        {"id": "propose", "phase": "propose"},
    )
    ordered = select_order(candidates)
    assert [debate.id for debate in ordered] == ["propose", "debate", "alloc", "other"]


def test_less_occupied_debates_break_ties_by_default():
    candidates = debates(
        {"id": "busy", "phase": "debate", "currentPlayers": 5, "playerCount": 8},
        {"id": "quiet", "phase": "debate", "currentPlayers": 1, "playerCount": 8},
        {"id": "mid", "phase": "debate", "currentPlayers": 3, "playerCount": 8},
    )
    assert [d.id for d in select_order(candidates)] == ["quiet", "mid", "busy"]


def test_occupancy_desc_policy_prefers_busier_debates():
    policy = RankingPolicy(keys=("phase", "occupancy_desc"))
    candidates = debates(
        {"id": "quiet", "phase": "debate", "currentPlayers": 1},
        {"id": "busy", "phase": "debate", "currentPlayers": 5},
    )
    assert [d.id for d in select_order(candidates, policy)] == ["busy", "quiet"]


def test_equal_keys_keep_input_order():
    candidates = debates(
        {"id": "first", "phase": "debate"},
        {"id": "second", "phase": "debate"},
        {"id": "third", "phase": "debate"},
    )
    assert [d.id for d in select_order(candidates)] == ["first", "second", "third"]


def test_unknown_ranking_key_rejected():
    with pytest.raises(ValueError):
        RankingPolicy(keys=("phase", "vibes"))


def test_players_list_counts_as_occupancy():
    (debate,) = debates({"debateId": "z", "players": ["a", "b"], "maxPlayers": 2})
    assert debate.id == "z"
    assert debate.occupancy == 2
    assert is_eligible(debate) is False


def test_soft_rejection_detection():
    assert is_soft_rejection(ApiResponse(409, '{"error": "Debate is full"}', {"error": "Debate is full"}))
    assert is_soft_rejection(ApiResponse(400, "Not accepting new players"))
    assert not is_soft_rejection(ApiResponse(401, '{"error": "bad token"}', {"error": "bad token"}))


class RecordingJoin:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def __call__(self, debate, payload):
        self.calls.append(debate.id)
        return self.responses.get(debate.id, ApiResponse(200, "{}", {}))


def test_join_stops_at_first_open_debate():
    ordered = debates({"id": "1"}, {"id": "2"}, {"id": "3"}, {"id": "4"})
    join = RecordingJoin(
        {
            "1": ApiResponse(409, "", {"error": "debate full"}),
            "2": ApiResponse(409, "", {"message": "Debate is full"}),
        }
    )
    outcome = attempt_join(ordered, join, lambda debate: {"name": "Neo"})
    assert outcome.status == "joined"
    assert outcome.debate.id == "3"
    assert join.calls == ["1", "2", "3"]
    assert outcome.skipped == ["1", "2"]


def test_hard_error_stops_attempts():
    ordered = debates({"id": "1"}, {"id": "2"})
    join = RecordingJoin({"1": ApiResponse(403, "", {"error": "banned"})})
    outcome = attempt_join(ordered, join, lambda debate: {})
    assert outcome.status == "failed"
    assert outcome.response.status == 403
    assert join.calls == ["1"]


def test_exhausting_candidates_is_not_an_error():
    ordered = debates({"id": "1"}, {"id": "2"})
    join = RecordingJoin(
        {
            "1": ApiResponse(409, "", {"error": "full"}),
            "2": ApiResponse(409, "", {"error": "full"}),
        }
    )
    outcome = attempt_join(ordered, join, lambda debate: {})
    assert outcome.status == "exhausted"
    assert outcome.attempts == 2


def test_attempts_are_bounded():
    ordered = debates(*({"id": str(index)} for index in range(25)))
    join = RecordingJoin({str(index): ApiResponse(409, "full") for index in range(25)})
    outcome = attempt_join(ordered, join, lambda debate: {}, max_attempts=50)
    assert len(join.calls) == 10
    assert outcome.status == "exhausted"


def test_payload_builder_can_skip_debates():
    ordered = debates({"id": "1"}, {"id": "2"})
    join = RecordingJoin({})
    outcome = attempt_join(
        ordered, join, lambda debate: None if debate.id == "1" else {"name": "Neo"}
    )
    assert join.calls == ["2"]
    assert outcome.status == "joined"
    assert outcome.skipped == ["1"]


def test_skipped_debates_do_not_use_up_attempts():
    ordered = debates(*({"id": str(index)} for index in range(12)))
    join = RecordingJoin({})
    outcome = attempt_join(
        ordered,
        join,
        lambda debate: {"name": "Neo"} if debate.id == "11" else None,
        max_attempts=10,
    )
    assert join.calls == ["11"]
    assert outcome.status == "joined"
    assert outcome.attempts == 1
    assert len(outcome.skipped) == 11
