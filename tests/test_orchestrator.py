"""
Orchestrator Tests
==================
Tests the bounded healing loop with a scripted policy and mocked
collaborators: termination rules, success short-circuit, ordering of tool
results, and the session-fatal paths.
"""
import asyncio
import json
import os
from typing import List
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from healer.agents.orchestrator import HealingOrchestrator
from healer.agents.tool_dispatcher import ToolDispatcher
from healer.core.constants import MAX_ITERATIONS_MESSAGE, SUCCESS_MESSAGE
from healer.core.errors import PolicyUnavailableError, UpstreamError
from healer.executor.request_executor import ExecutionResult
from healer.llm.client import Policy
from healer.models.healing_result import SessionGoal, SessionOutcome
from healer.models.turn import PolicyTurn, ToolCall, ToolResultTurn, UserTurn
from healer.services.fix_cache import FixCache
from healer.vector.embeddings import HashingEmbedding
from healer.vector.index import NumpyVectorIndex

GOAL = SessionGoal(collection_id="col-1", request_id="req-1")
ITEM = {"id": "req-1", "name": "Create user",
        "request": {"method": "POST", "url": {"raw": "https://api.test/users"}}}


class ScriptedPolicy(Policy):
    """Replays a fixed list of turns; repeats the last one when exhausted."""

    def __init__(self, turns: List[PolicyTurn]):
        self.turns = list(turns)
        self.calls = 0
        self.seen_lengths = []

    async def get_next_turn(self, transcript, tools, system_prompt):
        self.seen_lengths.append(len(transcript))
        turn = self.turns[min(self.calls, len(self.turns) - 1)]
        self.calls += 1
        return turn


def _call(call_id, name, **arguments):
    return ToolCall(id=call_id, name=name, arguments=arguments)


def _update_call(call_id="u1"):
    return _call(call_id, "update_request", collection_id="col-1", request_id="req-1",
                 updated_request_json=json.dumps(ITEM))


@pytest.fixture
def dispatcher():
    collections = MagicMock()
    collections.get_request = AsyncMock(return_value=ITEM)
    collections.update_request = AsyncMock(return_value=None)
    executor = MagicMock()
    executor.execute = AsyncMock(return_value=ExecutionResult(success=True, status_code=200, status_text="OK"))
    docs = MagicMock()
    docs.search = AsyncMock(return_value="docs")
    cache = FixCache(HashingEmbedding(32), NumpyVectorIndex())
    return ToolDispatcher(collections, executor, docs, cache)


def _run(policy, dispatcher, max_iterations=20, results_dir=""):
    orchestrator = HealingOrchestrator(policy, dispatcher, max_iterations=max_iterations, results_dir=results_dir)
    return asyncio.run(orchestrator.run(GOAL))


# ===========================================================================
# 1. Termination
# ===========================================================================
def test_policy_stop_without_tool_calls(dispatcher):
    policy = ScriptedPolicy([PolicyTurn(text="This is a 401; I cannot fix authentication errors.")])
    result = _run(policy, dispatcher)

    assert result.outcome == SessionOutcome.POLICY_STOP
    assert result.message == "This is a 401; I cannot fix authentication errors."
    assert result.iterations == 1
    assert result.tool_call_count == 0
    assert isinstance(result.transcript[0], UserTurn)
    assert "col-1" in result.transcript[0].text and "req-1" in result.transcript[0].text


def test_success_short_circuit(dispatcher):
    policy = ScriptedPolicy([
        PolicyTurn(tool_calls=[_call("f1", "fetch_request", collection_id="col-1", request_id="req-1")]),
        PolicyTurn(text="Saving.", tool_calls=[_update_call()]),
        PolicyTurn(text="should never be requested"),
    ])
    result = _run(policy, dispatcher)

    assert result.outcome == SessionOutcome.SUCCESS
    assert result.message == SUCCESS_MESSAGE
    assert result.iterations == 2
    assert policy.calls == 2
    assert isinstance(result.transcript[-1], ToolResultTurn)


def test_update_not_last_in_batch_does_not_short_circuit(dispatcher):
    policy = ScriptedPolicy([
        PolicyTurn(tool_calls=[_update_call(), _call("m1", "check_memory", endpoint="https://api.test/users")]),
        PolicyTurn(text="All done."),
    ])
    result = _run(policy, dispatcher)

    assert result.outcome == SessionOutcome.POLICY_STOP
    assert policy.calls == 2


def test_failed_update_does_not_short_circuit(dispatcher):
    dispatcher.collection_service.update_request.side_effect = UpstreamError("backend 500")
    policy = ScriptedPolicy([
        PolicyTurn(tool_calls=[_update_call()]),
        PolicyTurn(text="The collection backend is failing."),
    ])
    result = _run(policy, dispatcher)

    assert result.outcome == SessionOutcome.POLICY_STOP
    assert policy.calls == 2
    payload = result.transcript[2].results[0].payload
    assert payload["success"] is False


def test_max_iterations(dispatcher):
    policy = ScriptedPolicy([
        PolicyTurn(tool_calls=[_call("e1", "execute_request", request_json=json.dumps(ITEM))]),
    ])
    result = _run(policy, dispatcher, max_iterations=3)

    assert result.outcome == SessionOutcome.MAX_ITERATIONS
    assert result.message == MAX_ITERATIONS_MESSAGE
    assert result.iterations == 3
    assert policy.calls == 3
    assert result.tool_call_count == 3


def test_zero_iterations_never_calls_policy(dispatcher):
    policy = ScriptedPolicy([PolicyTurn(text="unused")])
    result = _run(policy, dispatcher, max_iterations=0)

    assert result.outcome == SessionOutcome.MAX_ITERATIONS
    assert policy.calls == 0


def test_run_override_of_max_iterations(dispatcher):
    policy = ScriptedPolicy([PolicyTurn(tool_calls=[_call("s1", "search_docs", query="users")])])
    orchestrator = HealingOrchestrator(policy, dispatcher, max_iterations=10, results_dir="")
    result = asyncio.run(orchestrator.run(GOAL, max_iterations=2))
    assert result.iterations == 2


def test_negative_iterations_rejected(dispatcher):
    orchestrator = HealingOrchestrator(ScriptedPolicy([PolicyTurn()]), dispatcher, results_dir="")
    with pytest.raises(ValueError):
        asyncio.run(orchestrator.run(GOAL, max_iterations=-1))


# ===========================================================================
# 2. Transcript invariants
# ===========================================================================
def test_results_match_call_order(dispatcher):
    policy = ScriptedPolicy([
        PolicyTurn(tool_calls=[
            _call("a", "fetch_request", collection_id="col-1", request_id="req-1"),
            _call("b", "check_memory", endpoint="https://api.test/users"),
            _call("c", "fetch_request", collection_id="col-1"),   # invalid: missing request_id
        ]),
        PolicyTurn(text="stop"),
    ])
    result = _run(policy, dispatcher)

    results = result.transcript[2].results
    assert [r.tool_call_id for r in results] == ["a", "b", "c"]
    assert [r.tool_name for r in results] == ["fetch_request", "check_memory", "fetch_request"]
    assert results[2].is_error is True
    # Tool-level failure is reported, the session carries on
    assert result.outcome == SessionOutcome.POLICY_STOP


def test_policy_sees_complete_transcript(dispatcher):
    policy = ScriptedPolicy([
        PolicyTurn(tool_calls=[_call("a", "search_docs", query="users")]),
        PolicyTurn(tool_calls=[_call("b", "search_docs", query="email")]),
        PolicyTurn(text="stop"),
    ])
    _run(policy, dispatcher)
    # user turn, then +2 per round (policy turn + result turn)
    assert policy.seen_lengths == [1, 3, 5]


# ===========================================================================
# 3. Session-fatal errors
# ===========================================================================
def test_protocol_violation_aborts(dispatcher):
    policy = ScriptedPolicy([
        PolicyTurn(tool_calls=[
            _call("a", "search_docs", query="users"),
            _call("b", "drop_database"),
            _call("c", "search_docs", query="never"),
        ]),
    ])
    result = _run(policy, dispatcher)

    assert result.outcome == SessionOutcome.ERROR
    assert result.message.startswith("Healing session aborted: ")
    assert "drop_database" in result.message
    assert dispatcher.docs_search.search.await_count == 1
    assert policy.calls == 1


def test_policy_unavailable_aborts(dispatcher):
    policy = MagicMock(spec=Policy)
    policy.get_next_turn = AsyncMock(side_effect=PolicyUnavailableError("All policy providers failed"))
    result = _run(policy, dispatcher)

    assert result.outcome == SessionOutcome.ERROR
    assert result.message == "Healing session aborted: All policy providers failed"
    assert result.iterations == 1


def test_unexpected_policy_crash_is_error_outcome(dispatcher):
    policy = MagicMock(spec=Policy)
    policy.get_next_turn = AsyncMock(side_effect=RuntimeError("bad state"))
    result = _run(policy, dispatcher)

    assert result.outcome == SessionOutcome.ERROR
    assert "bad state" in result.message


# ===========================================================================
# 4. Session report
# ===========================================================================
def test_session_report_written(dispatcher, tmp_path):
    policy = ScriptedPolicy([PolicyTurn(tool_calls=[_update_call()])])
    result = _run(policy, dispatcher, results_dir=str(tmp_path / "results"))

    files = os.listdir(tmp_path / "results")
    assert len(files) == 1
    assert files[0].startswith("session_col-1_req-1_")
    with open(tmp_path / "results" / files[0], encoding="utf-8") as f:
        data = json.load(f)
    assert data["final_results"]["outcome"] == "success"
    assert data["goal"] == {"collection_id": "col-1", "request_id": "req-1"}
    assert len(data["transcript"]) == len(result.transcript)


def test_report_failure_does_not_change_outcome(dispatcher):
    policy = ScriptedPolicy([PolicyTurn(text="done")])
    with patch("healer.services.results_writer.os.makedirs", side_effect=OSError("read-only")):
        result = _run(policy, dispatcher, results_dir="/nonexistent/results")
    assert result.outcome == SessionOutcome.POLICY_STOP
