import pytest

from app.agent.voyage.decision import (
    can_skip_llm_reasoning,
    determine_next_worker,
    get_missing_prerequisites,
    has_prerequisites,
    is_all_work_complete,
    make_routing_decision,
)
from app.agent.voyage.errors import UnknownIntentError
from app.agent.voyage.pattern_matcher import match_query_pattern
from app.agent.voyage.registry import default_registry
from app.agent.voyage.schemas import PatternMatch
from app.agent.voyage.state import build_initial_state

IDS = {"names": ["Ocean Star"], "imos": []}


def _state(query: str = "q", *, intent=None, artifacts=None, status=None, trace=None):
    state = build_initial_state(query, "cid")
    state["original_intent"] = intent
    state["artifacts"] = dict(artifacts or {})
    state["worker_status"] = dict(status or {})
    state["reasoning_trace"] = list(trace or [])
    return state


def _bunker_match() -> PatternMatch:
    return match_query_pattern("cheapest bunker from Singapore to Rotterdam")


def test_completion_predicates() -> None:
    assert is_all_work_complete(None, _state(intent="route_calculation", artifacts={"route": {"nm": 1}}))
    assert not is_all_work_complete(None, _state(intent="bunker_planning", artifacts={"route": {"nm": 1}}))
    assert is_all_work_complete(
        None, _state(intent="bunker_planning", artifacts={"route": {"nm": 1}, "bunker_analysis": {"best": "SGSIN"}})
    )
    assert not is_all_work_complete(
        None, _state(intent="vessel_info", artifacts={"vessel_specs": [{"imo": "1"}]})
    )
    assert is_all_work_complete(
        None,
        _state(intent="vessel_info", artifacts={"vessel_specs": [{"imo": "1"}]}, status={"vessel_info": "success"}),
    )


def test_ambiguous_goal_is_never_complete() -> None:
    assert is_all_work_complete(PatternMatch.no_match("nothing"), _state()) is False


def test_unknown_intent_raises() -> None:
    with pytest.raises(UnknownIntentError):
        is_all_work_complete(None, _state(intent="cargo_stowage"))


def test_bunker_chain_order() -> None:
    route = {"route": {"nm": 8288}}

    assert determine_next_worker(None, _state(intent="bunker_planning")) == "route"
    assert determine_next_worker(None, _state(intent="bunker_planning", artifacts=route)) == "entity_extraction"
    assert (
        determine_next_worker(
            None, _state(intent="bunker_planning", artifacts={**route, "vessel_identifiers": IDS})
        )
        == "vessel_info"
    )
    assert (
        determine_next_worker(
            None,
            _state(
                intent="bunker_planning",
                artifacts={**route, "vessel_identifiers": IDS, "vessel_specs": [{"imo": "1"}]},
            ),
        )
        == "bunker"
    )


def test_bunker_chain_skips_attempted_entity_extraction() -> None:
    state = _state(
        intent="bunker_planning",
        artifacts={"route": {"nm": 8288}},
        status={"entity_extraction": "success"},
    )

    assert determine_next_worker(None, state) == "bunker"


def test_high_confidence_match_acts_immediately() -> None:
    decision = make_routing_decision(match_query_pattern("route from Singapore to Rotterdam"), _state())

    assert decision.decision == "immediate_action"
    assert decision.worker == "route"
    assert decision.confidence == 90


def test_completed_worker_advances_to_next_step() -> None:
    state = _state(intent="bunker_planning", artifacts={"route": {"nm": 1}}, status={"route": "success"})

    decision = make_routing_decision(_bunker_match(), state)

    assert decision.decision == "immediate_action"
    assert decision.worker == "entity_extraction"


def test_failed_next_worker_finalizes() -> None:
    state = _state(
        intent="bunker_planning",
        artifacts={"route": {"nm": 1}, "vessel_identifiers": IDS, "vessel_specs": [{"imo": "1"}]},
        status={"route": "success", "entity_extraction": "success", "vessel_info": "success", "bunker": "failed"},
    )

    decision = make_routing_decision(_bunker_match(), state)

    assert decision.decision == "finalize"
    assert "bunker failed" in decision.reason


def test_failed_recommended_worker_needs_reasoning() -> None:
    decision = make_routing_decision(
        match_query_pattern("route from Singapore to Rotterdam"), _state(status={"route": "failed"})
    )

    assert decision.decision == "llm_reasoning"
    assert decision.confidence == 50


def test_skipped_recommended_worker_is_not_rerun() -> None:
    decision = make_routing_decision(
        match_query_pattern("route from Singapore to Rotterdam"), _state(status={"route": "skipped"})
    )

    assert decision.decision == "finalize"
    assert decision.worker == "finalize"
    assert "route was skipped" in decision.reason


def test_skipped_next_worker_finalizes() -> None:
    state = _state(
        intent="weather_analysis",
        artifacts={"route": {"nm": 1}},
        status={"route": "success", "weather": "skipped"},
    )

    decision = make_routing_decision(match_query_pattern("weather from Singapore to Rotterdam"), state)

    assert decision.decision == "finalize"
    assert "weather skipped previously" in decision.reason


def test_weather_along_route_proceeds_to_weather() -> None:
    state = _state(intent="weather_analysis", artifacts={"route": {"nm": 1}}, status={"route": "success"})

    decision = make_routing_decision(match_query_pattern("weather from Singapore to Rotterdam"), state)

    assert decision.decision == "immediate_action"
    assert decision.worker == "weather"


def test_medium_confidence_uses_reasoning() -> None:
    decision = make_routing_decision(match_query_pattern("cheapest bunker"), _state())

    assert decision.decision == "llm_reasoning"
    assert decision.confidence == 40


def test_low_confidence_requests_clarification() -> None:
    decision = make_routing_decision(match_query_pattern("what is the weather at port"), _state())

    assert decision.decision == "request_clarification"
    assert "Which port" in decision.clarification_question


def test_no_match_falls_through_to_reasoning() -> None:
    decision = make_routing_decision(PatternMatch.no_match("nothing"), _state())

    assert decision.decision == "llm_reasoning"
    assert decision.confidence == 0


def test_satisfied_goal_finalizes_regardless_of_match() -> None:
    state = _state(intent="route_calculation", artifacts={"route": {"nm": 1}}, status={"route": "success"})

    decision = make_routing_decision(match_query_pattern("route from Singapore to Rotterdam"), state)

    assert decision.decision == "finalize"
    assert decision.worker == "finalize"


def test_can_skip_llm_reasoning() -> None:
    match = match_query_pattern("route from Singapore to Rotterdam")

    assert can_skip_llm_reasoning(match, _state()) is True
    assert can_skip_llm_reasoning(match, _state(status={"weather": "failed"})) is False
    assert can_skip_llm_reasoning(match, _state(trace=[{"step_number": 1}])) is False


def test_prerequisite_helpers() -> None:
    registry = default_registry()
    empty = _state()

    assert has_prerequisites("bunker", empty, registry) is False
    assert get_missing_prerequisites("bunker", empty, registry) == ["route"]
    assert get_missing_prerequisites("hull_performance", empty, registry) == ["vessel_identifiers"]
    assert get_missing_prerequisites("hull_performance", _state(artifacts={"vessel_identifiers": IDS}), registry) == []
    assert has_prerequisites("unknown", empty, registry) is True
