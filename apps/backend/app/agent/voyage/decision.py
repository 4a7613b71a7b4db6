"""Tier-2 decision framework.

Pure functions mapping a ``PatternMatch`` and the current workflow state onto a
``DecisionResult``. Nothing here performs I/O or mutates state.
"""

from __future__ import annotations

from typing import Callable, Optional

from .errors import UnknownIntentError
from .pattern_matcher import format_clarification_question, validate_extracted_data
from .registry import AgentRegistry
from .schemas import DecisionResult, PatternMatch
from .state import (
    ArtifactKind,
    WorkerStatus,
    WorkflowState,
    get_worker_status,
    has_artifact,
    has_vessel_identifiers,
)

HIGH_CONFIDENCE = 80
LOW_CONFIDENCE = 30

CompletionPredicate = Callable[[WorkflowState], bool]


def _succeeded(state: WorkflowState, worker: str) -> bool:
    return get_worker_status(state, worker) == WorkerStatus.SUCCESS.value


def _attempted(state: WorkflowState, worker: str) -> bool:
    return get_worker_status(state, worker) in (
        WorkerStatus.SUCCESS.value,
        WorkerStatus.FAILED.value,
        WorkerStatus.SKIPPED.value,
    )


COMPLETION_PREDICATES: dict[str, CompletionPredicate] = {
    "port_weather": lambda s: has_artifact(s, ArtifactKind.PORT_WEATHER),
    "vessel_info": lambda s: _succeeded(s, "vessel_info") and has_artifact(s, ArtifactKind.VESSEL_SPECS),
    "route_calculation": lambda s: has_artifact(s, ArtifactKind.ROUTE),
    "bunker_planning": lambda s: has_artifact(s, ArtifactKind.ROUTE) and has_artifact(s, ArtifactKind.BUNKER_ANALYSIS),
    "weather_analysis": lambda s: has_artifact(s, ArtifactKind.ROUTE) and has_artifact(s, ArtifactKind.WEATHER),
    "compliance": lambda s: has_artifact(s, ArtifactKind.ROUTE) and has_artifact(s, ArtifactKind.COMPLIANCE),
    "hull_analysis": lambda s: _succeeded(s, "hull_performance") and has_artifact(s, ArtifactKind.HULL_PERFORMANCE),
}


GOAL_ARTIFACTS: dict[str, tuple[ArtifactKind, ...]] = {
    "port_weather": (ArtifactKind.PORT_WEATHER,),
    "vessel_info": (ArtifactKind.VESSEL_SPECS,),
    "route_calculation": (ArtifactKind.ROUTE,),
    "bunker_planning": (ArtifactKind.ROUTE, ArtifactKind.BUNKER_ANALYSIS),
    "weather_analysis": (ArtifactKind.ROUTE, ArtifactKind.WEATHER),
    "compliance": (ArtifactKind.ROUTE, ArtifactKind.COMPLIANCE),
    "hull_analysis": (ArtifactKind.HULL_PERFORMANCE,),
}


def goal_intent(match: Optional[PatternMatch], state: WorkflowState) -> Optional[str]:
    intent = state.get("original_intent") or (match.intent_type if match else None)
    if not intent or intent == "ambiguous":
        return None
    return intent


def is_all_work_complete(match: Optional[PatternMatch], state: WorkflowState) -> bool:
    """Check the original goal's completion predicate against current artifacts.

    Ambiguous or missing intents are never complete. An intent without a
    registered predicate raises ``UnknownIntentError``.
    """

    intent = goal_intent(match, state)
    if intent is None:
        return False
    predicate = COMPLETION_PREDICATES.get(intent)
    if predicate is None:
        raise UnknownIntentError(intent)
    return predicate(state)


def _next_for_bunker_planning(state: WorkflowState) -> Optional[str]:
    if not has_artifact(state, ArtifactKind.ROUTE):
        return "route"
    has_ids = has_vessel_identifiers(state)
    if not has_ids and not _attempted(state, "entity_extraction"):
        return "entity_extraction"
    if (
        has_ids
        and not has_artifact(state, ArtifactKind.VESSEL_SPECS)
        and not _attempted(state, "vessel_info")
    ):
        return "vessel_info"
    if not has_artifact(state, ArtifactKind.BUNKER_ANALYSIS):
        return "bunker"
    return None


def _next_for_weather_analysis(state: WorkflowState) -> Optional[str]:
    if not has_artifact(state, ArtifactKind.ROUTE):
        return "route"
    if not has_artifact(state, ArtifactKind.WEATHER):
        return "weather"
    return None


def _next_for_compliance(state: WorkflowState) -> Optional[str]:
    if not has_artifact(state, ArtifactKind.ROUTE):
        return "route"
    if not has_artifact(state, ArtifactKind.COMPLIANCE):
        return "compliance"
    return None


def _next_for_hull_analysis(state: WorkflowState) -> Optional[str]:
    if not has_vessel_identifiers(state):
        return "entity_extraction"
    if not (_succeeded(state, "hull_performance") and has_artifact(state, ArtifactKind.HULL_PERFORMANCE)):
        return "hull_performance"
    return None


def _next_for_vessel_info(state: WorkflowState) -> Optional[str]:
    if _succeeded(state, "vessel_info") and has_artifact(state, ArtifactKind.VESSEL_SPECS):
        return None
    return "vessel_info"


def _next_for_port_weather(state: WorkflowState) -> Optional[str]:
    return None if has_artifact(state, ArtifactKind.PORT_WEATHER) else "weather"


def _next_for_route_calculation(state: WorkflowState) -> Optional[str]:
    return None if has_artifact(state, ArtifactKind.ROUTE) else "route"


STEP_TABLES: dict[str, Callable[[WorkflowState], Optional[str]]] = {
    "bunker_planning": _next_for_bunker_planning,
    "weather_analysis": _next_for_weather_analysis,
    "compliance": _next_for_compliance,
    "hull_analysis": _next_for_hull_analysis,
    "vessel_info": _next_for_vessel_info,
    "port_weather": _next_for_port_weather,
    "route_calculation": _next_for_route_calculation,
}


def determine_next_worker(match: Optional[PatternMatch], state: WorkflowState) -> Optional[str]:
    """Next worker required by the goal's step table, ``None`` when nothing is left."""

    intent = goal_intent(match, state)
    if intent is None:
        return None
    step = STEP_TABLES.get(intent)
    if step is None:
        raise UnknownIntentError(intent)
    return step(state)


def make_routing_decision(match: PatternMatch, state: WorkflowState) -> DecisionResult:
    if is_all_work_complete(match, state):
        return DecisionResult(
            decision="finalize",
            confidence=100,
            worker="finalize",
            reason="All required data is available, ready to finalize",
        )

    worker = match.recommended_worker
    if match.confidence >= HIGH_CONFIDENCE and worker:
        status = get_worker_status(state, worker)
        if status == WorkerStatus.SUCCESS.value:
            next_worker = determine_next_worker(match, state)
            if next_worker is None:
                return DecisionResult(
                    decision="finalize",
                    confidence=100,
                    worker="finalize",
                    reason=f"{worker} already completed successfully, finalizing",
                )
            next_status = get_worker_status(state, next_worker)
            if next_status in (WorkerStatus.FAILED.value, WorkerStatus.SKIPPED.value):
                return DecisionResult(
                    decision="finalize",
                    confidence=100,
                    worker="finalize",
                    reason=f"{next_worker} {next_status} previously, finalizing with available data",
                )
            if next_status == WorkerStatus.SUCCESS.value:
                return DecisionResult(
                    decision="finalize",
                    confidence=100,
                    worker="finalize",
                    reason=f"{next_worker} completed without producing its output, finalizing with available data",
                )
            return DecisionResult(
                decision="immediate_action",
                confidence=90,
                worker=next_worker,
                reason=f"{worker} already completed, proceeding to {next_worker}",
            )

        if status == WorkerStatus.FAILED.value:
            return DecisionResult(
                decision="llm_reasoning",
                confidence=50,
                reason=f"{worker} failed previously, need reasoning to decide recovery strategy",
            )

        if status == WorkerStatus.SKIPPED.value:
            return DecisionResult(
                decision="finalize",
                confidence=100,
                worker="finalize",
                reason=f"{worker} was skipped, finalizing with available data",
            )

        return DecisionResult(
            decision="immediate_action",
            confidence=match.confidence,
            worker=worker,
            reason=match.reason or f"High confidence ({match.confidence}%) match for {worker}",
        )

    if match.confidence >= LOW_CONFIDENCE:
        return DecisionResult(
            decision="llm_reasoning",
            confidence=match.confidence,
            reason=f"Medium confidence ({match.confidence}%), using reasoning to decide",
        )

    if match.matched:
        missing = validate_extracted_data(match)
        return DecisionResult(
            decision="request_clarification",
            confidence=match.confidence,
            reason=f"Low confidence ({match.confidence}%), missing: {', '.join(missing) or 'details'}",
            clarification_question=format_clarification_question(match, missing),
        )

    return DecisionResult(
        decision="llm_reasoning",
        confidence=0,
        reason="No clear pattern matched, using reasoning for complex query",
    )


def can_skip_llm_reasoning(match: PatternMatch, state: WorkflowState) -> bool:
    if state.get("reasoning_trace"):
        return False
    if any(s == WorkerStatus.FAILED.value for s in (state.get("worker_status") or {}).values()):
        return False
    return match.confidence >= HIGH_CONFIDENCE


def _prerequisite_present(state: WorkflowState, name: str) -> bool:
    if name == ArtifactKind.VESSEL_IDENTIFIERS.value:
        return has_vessel_identifiers(state)
    return has_artifact(state, name)


def has_prerequisites(worker: str, state: WorkflowState, registry: AgentRegistry) -> bool:
    entry = registry.get_agent(worker)
    if entry is None:
        return True
    return entry.prerequisite_predicate(state)


def get_missing_prerequisites(worker: str, state: WorkflowState, registry: AgentRegistry) -> list[str]:
    entry = registry.get_agent(worker)
    if entry is None:
        return []
    return [name for name in entry.prerequisites if not _prerequisite_present(state, name)]
