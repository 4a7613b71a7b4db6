import asyncio

import pytest

from app.agent.voyage import reasoning
from app.agent.voyage.reasoning import (
    ReasoningLoop,
    build_reasoning_messages,
    summarize_recent_reasoning,
    summarize_worker_status,
)
from app.agent.voyage.registry import default_registry
from app.agent.voyage.schemas import ReasoningDecision, ReasoningParams
from app.agent.voyage.state import build_initial_state


def _decide(monkeypatch: pytest.MonkeyPatch, decision: ReasoningDecision) -> list:
    calls = []

    def fake_structured(messages, schema, **kwargs):  # type: ignore[no-untyped-def]
        calls.append((messages, kwargs))
        assert schema is ReasoningDecision
        return decision

    monkeypatch.setattr(reasoning, "call_llm_structured", fake_structured)
    return calls


def _state():
    state = build_initial_state("cheapest bunker", "cid")
    state["original_intent"] = "bunker_planning"
    return state


def _step(state=None):
    return asyncio.run(ReasoningLoop(default_registry()).step(state or _state()))


def test_call_worker_routes_and_records_step(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _decide(
        monkeypatch,
        ReasoningDecision(thought="need a route first", action="call_worker", params=ReasoningParams(worker="route")),
    )

    update = _step()

    assert update["next_worker"] == "route"
    assert update["current_thought"] == "need a route first"
    (step,) = update["reasoning_trace"]
    assert step["step_number"] == 1
    assert step["chosen_action"] == "call_worker"
    assert step["action_params"] == {"worker": "route"}
    assert calls[0][1]["task"] == "reasoning"


def test_step_number_follows_trace_length(monkeypatch: pytest.MonkeyPatch) -> None:
    _decide(monkeypatch, ReasoningDecision(thought="check", action="validate"))
    state = _state()
    state["reasoning_trace"] = [{"step_number": 1}, {"step_number": 2}]

    update = _step(state)

    assert update["reasoning_trace"][0]["step_number"] == 3
    assert update["next_worker"] == "supervisor"


def test_unknown_worker_finalizes(monkeypatch: pytest.MonkeyPatch) -> None:
    _decide(monkeypatch, ReasoningDecision(thought="x", action="call_worker", params=ReasoningParams(worker="cargo")))

    update = _step()

    assert update["next_worker"] == "finalize"
    assert "Unknown worker" in update["reasoning_trace"][0]["observation"]


def test_retry_worker_sets_pending_and_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    _decide(
        monkeypatch,
        ReasoningDecision(
            thought="route timed out, retry slower",
            action="recover",
            params=ReasoningParams(worker="route", recovery_action="retry_worker", overrides={"speed_knots": 12}),
        ),
    )

    update = _step()

    assert update["next_worker"] == "route"
    assert update["recovery_attempts"] == 1
    assert update["worker_status"] == {"route": "pending"}
    assert update["worker_overrides"] == {"route": {"speed_knots": 12.0}}


def test_retry_with_rejected_overrides_returns_to_supervisor(monkeypatch: pytest.MonkeyPatch) -> None:
    _decide(
        monkeypatch,
        ReasoningDecision(
            thought="retry",
            action="recover",
            params=ReasoningParams(worker="route", recovery_action="retry_worker", overrides={"bogus": 1}),
        ),
    )

    update = _step()

    assert update["next_worker"] == "supervisor"
    assert "recovery_attempts" not in update
    assert "Rejected overrides" in update["reasoning_trace"][0]["observation"]


def test_skip_worker_marks_skipped(monkeypatch: pytest.MonkeyPatch) -> None:
    _decide(
        monkeypatch,
        ReasoningDecision(
            thought="weather is optional",
            action="recover",
            params=ReasoningParams(worker="weather", recovery_action="skip_worker"),
        ),
    )

    update = _step()

    assert update["next_worker"] == "supervisor"
    assert update["worker_status"] == {"weather": "skipped"}


def test_clarify_sets_question(monkeypatch: pytest.MonkeyPatch) -> None:
    _decide(
        monkeypatch,
        ReasoningDecision(thought="no ports", action="clarify", params=ReasoningParams(question="Which voyage?")),
    )

    update = _step()

    assert update["next_worker"] == "finalize"
    assert update["needs_clarification"] is True
    assert update["clarification_question"] == "Which voyage?"


def test_llm_failure_finalizes(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(*args, **kwargs):  # type: ignore[no-untyped-def]
        raise TimeoutError("slow")

    monkeypatch.setattr(reasoning, "call_llm_structured", broken)

    update = _step()

    assert update["next_worker"] == "finalize"
    assert update["reasoning_trace"][0]["chosen_action"] == "finalize"


def test_prompt_summaries() -> None:
    registry = default_registry()
    state = _state()
    state["worker_status"] = {"route": "failed"}
    state["worker_errors"] = {"route": {"message": "no path"}}
    state["reasoning_trace"] = [
        {"step_number": i, "thought": f"t{i}", "chosen_action": "call_worker", "action_params": {"worker": "route"}}
        for i in range(1, 6)
    ]

    status = summarize_worker_status(state, registry)
    recent = summarize_recent_reasoning(state)
    system, human = build_reasoning_messages(state, registry)

    assert "- route: FAILED (no path)" in status
    assert "- weather: not executed" in status
    assert "Step 1:" not in recent and "Step 5: t5 -> call_worker (route)" in recent
    assert 'QUERY: "cheapest bunker"' in human.content
    assert "GOAL: bunker_planning" in human.content
    assert "- route (deterministic workflow)" in system.content
