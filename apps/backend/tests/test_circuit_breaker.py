from langchain_core.messages import AIMessage, HumanMessage

from app.agent.voyage.circuit_breaker import carries_signature, count_signatures, should_escape_to_supervisor
from app.agent.voyage.registry import default_registry
from app.agent.voyage.state import build_initial_state


def _route_turn() -> AIMessage:
    return AIMessage(content="[ROUTE] completed, produced: nothing", name="route")


def _state(turns, artifacts=None):
    state = build_initial_state("route from Singapore to Rotterdam", "cid")
    state["messages"] = state["messages"] + list(turns)
    state["artifacts"] = dict(artifacts or {})
    return state


def test_signature_sources() -> None:
    entry = default_registry().get_agent("route")

    assert carries_signature(AIMessage(content="anything", name="route"), entry)
    assert carries_signature(AIMessage(content="[ROUTE] working"), entry)
    assert carries_signature(
        AIMessage(content="", tool_calls=[{"name": "calculate_route", "args": {}, "id": "call-1"}]), entry
    )
    assert not carries_signature(HumanMessage(content="[ROUTE] please"), entry)
    assert not carries_signature(AIMessage(content="[WEATHER] done", name="weather"), entry)


def test_two_signatures_do_not_trip() -> None:
    registry = default_registry()
    state = _state([_route_turn(), _route_turn()])

    assert should_escape_to_supervisor(state, "route", registry) is False


def test_three_signatures_without_output_trip() -> None:
    registry = default_registry()
    state = _state([_route_turn(), _route_turn(), _route_turn()])

    assert count_signatures(state["messages"], registry.get_agent("route")) == 3
    assert should_escape_to_supervisor(state, "route", registry) is True


def test_output_present_means_progress() -> None:
    registry = default_registry()
    state = _state([_route_turn()] * 3, artifacts={"route": {"distance_nm": 8288}})

    assert should_escape_to_supervisor(state, "route", registry) is False


def test_old_signatures_fall_outside_window() -> None:
    registry = default_registry()
    filler = [AIMessage(content="[SUPERVISOR] thinking", name="supervisor")] * 10
    state = _state([_route_turn()] * 3 + filler)

    assert should_escape_to_supervisor(state, "route", registry) is False
    assert should_escape_to_supervisor(state, "route", registry, window=13) is True


def test_unknown_worker_never_trips() -> None:
    assert should_escape_to_supervisor(_state([]), "cargo", default_registry()) is False
