from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from .errors import OrchestrationError
from .state import ArtifactKind, WorkflowState, has_artifact, has_vessel_identifiers

logger = logging.getLogger(__name__)

Prerequisite = Callable[[WorkflowState], bool]


def _always(_: WorkflowState) -> bool:
    return True


@dataclass(frozen=True)
class AgentRegistryEntry:
    name: str
    description: str
    capabilities: tuple[str, ...] = ()
    tools: tuple[str, ...] = ()
    is_deterministic: bool = True
    produces: tuple[ArtifactKind, ...] = ()
    prerequisites: tuple[str, ...] = ()
    prerequisite_predicate: Prerequisite = field(default=_always, compare=False)

    @property
    def log_tag(self) -> str:
        return f"[{self.name.upper().replace('_', '-')}]"


class AgentRegistry:
    def __init__(self, entries: Iterable[AgentRegistryEntry] = ()) -> None:
        self._entries: dict[str, AgentRegistryEntry] = {}
        self._frozen = False
        for entry in entries:
            self.register(entry)

    def register(self, entry: AgentRegistryEntry) -> None:
        if self._frozen:
            raise OrchestrationError("agent registry is read-only after startup")
        if entry.name in self._entries:
            logger.warning("Agent %s registered twice; keeping latest definition", entry.name)
        self._entries[entry.name] = entry

    def freeze(self) -> "AgentRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get_all_agents(self) -> list[AgentRegistryEntry]:
        return list(self._entries.values())

    def get_agent(self, name: str) -> Optional[AgentRegistryEntry]:
        return self._entries.get(name)

    def is_deterministic_agent(self, name: str) -> bool:
        entry = self._entries.get(name)
        return bool(entry and entry.is_deterministic)

    def names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def describe(self) -> str:
        lines: list[str] = []
        for entry in self._entries.values():
            prereqs = ", ".join(entry.prerequisites) if entry.prerequisites else "None"
            produces = ", ".join(kind.value for kind in entry.produces) if entry.produces else "Nothing"
            deterministic = " (deterministic workflow)" if entry.is_deterministic else ""
            lines.append(
                f"- {entry.name}{deterministic}: {entry.description}\n"
                f"  Prerequisites: {prereqs}\n"
                f"  Produces: {produces}\n"
                f"  Tools: {', '.join(entry.tools) or 'none'}"
            )
        return "\n".join(lines)


def _has_route(state: WorkflowState) -> bool:
    return has_artifact(state, ArtifactKind.ROUTE)


def default_registry() -> AgentRegistry:
    """Maritime worker set used by the API and the evaluation harness."""

    return AgentRegistry(
        [
            AgentRegistryEntry(
                name="route",
                description="Calculates the sea route, distance and voyage timeline between two ports.",
                capabilities=("route_calculation", "distance", "timeline"),
                tools=("calculate_route", "calculate_weather_timeline"),
                produces=(ArtifactKind.ROUTE,),
            ),
            AgentRegistryEntry(
                name="weather",
                description="Fetches marine weather along a route or at a single port.",
                capabilities=("marine_weather", "port_weather", "weather_consumption"),
                tools=("fetch_marine_weather", "calculate_weather_consumption", "check_port_weather"),
                produces=(ArtifactKind.WEATHER, ArtifactKind.PORT_WEATHER),
            ),
            AgentRegistryEntry(
                name="bunker",
                description="Finds bunker ports along the route, fetches prices and ranks bunkering options.",
                capabilities=("bunker_planning", "fuel_prices"),
                tools=("find_bunker_ports", "get_fuel_prices", "analyze_bunker_options"),
                produces=(ArtifactKind.BUNKER_PORTS, ArtifactKind.BUNKER_ANALYSIS),
                prerequisites=("route",),
                prerequisite_predicate=_has_route,
            ),
            AgentRegistryEntry(
                name="compliance",
                description="Checks ECA zone crossings and sulphur requirements along the route.",
                capabilities=("eca_compliance", "regulatory"),
                tools=("validate_eca_zones",),
                produces=(ArtifactKind.COMPLIANCE,),
                prerequisites=("route",),
                prerequisite_predicate=_has_route,
            ),
            AgentRegistryEntry(
                name="entity_extraction",
                description="Extracts vessel names and IMO numbers from the query.",
                capabilities=("entity_extraction",),
                tools=("extract_vessel_entities",),
                is_deterministic=False,
                produces=(ArtifactKind.VESSEL_IDENTIFIERS,),
            ),
            AgentRegistryEntry(
                name="vessel_info",
                description="Loads vessel master data, fleet lists and the current vessel profile.",
                capabilities=("vessel_info", "fleet_list"),
                tools=("fetch_vessel_details",),
                produces=(ArtifactKind.VESSEL_SPECS, ArtifactKind.VESSEL_PROFILE),
            ),
            AgentRegistryEntry(
                name="vessel_selection",
                description="Compares candidate vessels for a voyage once bunker availability is known.",
                capabilities=("vessel_selection",),
                tools=("compare_vessels",),
                is_deterministic=False,
                produces=(ArtifactKind.VESSEL_SELECTION,),
                prerequisites=("bunker_analysis", "bunker_ports"),
                prerequisite_predicate=lambda s: has_artifact(s, ArtifactKind.BUNKER_ANALYSIS)
                and has_artifact(s, ArtifactKind.BUNKER_PORTS),
            ),
            AgentRegistryEntry(
                name="rob_tracking",
                description="Projects fuel remaining on board along the voyage.",
                capabilities=("rob_projection", "safety_margin"),
                tools=("project_rob",),
                produces=(ArtifactKind.ROB_TRACKING,),
                prerequisites=("vessel_profile",),
                prerequisite_predicate=lambda s: has_artifact(s, ArtifactKind.VESSEL_PROFILE),
            ),
            AgentRegistryEntry(
                name="hull_performance",
                description="Reports hull condition, fouling and excess power for identified vessels.",
                capabilities=("hull_analysis",),
                tools=("fetch_hull_performance",),
                produces=(ArtifactKind.HULL_PERFORMANCE,),
                prerequisites=("vessel_identifiers",),
                prerequisite_predicate=has_vessel_identifiers,
            ),
        ]
    ).freeze()
