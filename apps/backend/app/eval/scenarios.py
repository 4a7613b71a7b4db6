"""Routing scenarios for the Tier-1/Tier-2 evaluation harness."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional


@dataclass(slots=True)
class Scenario:
    """A query, an optional starting state and the routing we expect for it."""

    name: str
    query: str
    expected_decision: str
    expected_intent: Optional[str] = None
    expected_worker: Optional[str] = None
    min_confidence: int = 0
    max_confidence: int = 100
    artifacts: Dict[str, Any] = field(default_factory=dict)
    worker_status: Dict[str, str] = field(default_factory=dict)
    original_intent: Optional[str] = None


@dataclass(slots=True)
class ScenarioResult:
    scenario: Scenario
    intent: str
    confidence: int
    decision: str
    worker: Optional[str]
    passed: bool
    feedback: str


def default_scenarios() -> List[Scenario]:
    """Return the built-in scenarios covering each routing rule."""

    return [
        Scenario(
            name="route_named_ports",
            query="route from Singapore to Rotterdam",
            expected_intent="route_calculation",
            expected_worker="route",
            expected_decision="immediate_action",
            min_confidence=85,
        ),
        Scenario(
            name="port_weather_locode",
            query="what's the weather at SGSIN tomorrow",
            expected_intent="port_weather",
            expected_worker="weather",
            expected_decision="immediate_action",
            min_confidence=95,
        ),
        Scenario(
            name="bunker_without_route",
            query="cheapest bunker",
            expected_intent="bunker_planning",
            expected_decision="llm_reasoning",
            min_confidence=30,
            max_confidence=50,
        ),
        Scenario(
            name="bunker_with_route",
            query="cheapest bunker from Singapore to Rotterdam",
            expected_intent="bunker_planning",
            expected_worker="route",
            expected_decision="immediate_action",
            min_confidence=80,
        ),
        Scenario(
            name="bunker_chain_after_route",
            query="cheapest bunker from Singapore to Rotterdam",
            expected_intent="bunker_planning",
            expected_worker="entity_extraction",
            expected_decision="immediate_action",
            artifacts={"route": {"distance_nm": 8288}},
            worker_status={"route": "success"},
            original_intent="bunker_planning",
        ),
        Scenario(
            name="weather_along_route",
            query="weather along the route from Singapore to Rotterdam",
            expected_intent="weather_analysis",
            expected_worker="route",
            expected_decision="immediate_action",
            min_confidence=85,
        ),
        Scenario(
            name="generic_weather_port",
            query="what is the weather at port",
            expected_intent="port_weather",
            expected_decision="request_clarification",
            max_confidence=29,
        ),
        Scenario(
            name="compliance_eca",
            query="check ECA zone requirements for my voyage",
            expected_intent="compliance",
            expected_worker="route",
            expected_decision="immediate_action",
        ),
        Scenario(
            name="fleet_list",
            query="how many vessels do we have",
            expected_intent="vessel_info",
            expected_worker="vessel_info",
            expected_decision="immediate_action",
        ),
        Scenario(
            name="route_already_done",
            query="route from Singapore to Rotterdam",
            expected_intent="route_calculation",
            expected_decision="finalize",
            artifacts={"route": {"distance_nm": 8288}},
            worker_status={"route": "success"},
            original_intent="route_calculation",
        ),
    ]


def _from_dict(raw: Dict[str, Any]) -> Scenario:
    allowed = set(Scenario.__dataclass_fields__)
    return Scenario(**{k: v for k, v in raw.items() if k in allowed})


def load_scenarios(extra_path: str | Path | None = None) -> Iterator[Scenario]:
    """Yield scenarios, optionally extending with a JSON list of scenario objects."""

    for scen in default_scenarios():
        yield scen

    if extra_path is None:
        return

    path = Path(extra_path)
    if not path.exists():
        return

    for raw in json.loads(path.read_text(encoding="utf-8")):
        if not isinstance(raw, dict) or not {"name", "query", "expected_decision"} <= set(raw):
            continue
        yield _from_dict(raw)
