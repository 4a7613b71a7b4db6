"""Deterministic guardrails applied to every proposed next worker.

Each validator inspects ``state["next_worker"]`` and reports the missing
prerequisite worker. ``resolve_safe_worker`` is the only place a proposed
worker gets overridden; the supervisor node and router both go through it.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .schemas import ValidationResult
from .state import ArtifactKind, WorkflowState, has_artifact

logger = logging.getLogger(__name__)

Validator = Callable[[WorkflowState], ValidationResult]

_OK = ValidationResult(valid=True)


def validate_route_before_bunker(state: WorkflowState) -> ValidationResult:
    if state.get("next_worker") != "bunker" or has_artifact(state, ArtifactKind.ROUTE):
        return _OK
    return ValidationResult(
        valid=False,
        required_worker="route",
        reason="Cannot search bunker ports without a calculated route",
        severity="critical",
    )


def validate_bunker_before_vessel_selection(state: WorkflowState) -> ValidationResult:
    if state.get("next_worker") != "vessel_selection":
        return _OK
    if has_artifact(state, ArtifactKind.BUNKER_ANALYSIS) and has_artifact(state, ArtifactKind.BUNKER_PORTS):
        return _OK
    return ValidationResult(
        valid=False,
        required_worker="bunker",
        reason="Cannot select a vessel before bunker analysis and bunker ports are available",
        severity="critical",
    )


def validate_vessel_data_before_rob(state: WorkflowState) -> ValidationResult:
    if state.get("next_worker") != "rob_tracking" or has_artifact(state, ArtifactKind.VESSEL_PROFILE):
        return _OK
    return ValidationResult(
        valid=False,
        required_worker="vessel_info",
        reason="Cannot project ROB without a loaded vessel profile",
        severity="critical",
    )


def validate_route_before_compliance(state: WorkflowState) -> ValidationResult:
    if state.get("next_worker") != "compliance" or has_artifact(state, ArtifactKind.ROUTE):
        return _OK
    return ValidationResult(
        valid=False,
        required_worker="route",
        reason="Cannot check ECA compliance without a calculated route",
        severity="warning",
    )


VALIDATORS: tuple[Validator, ...] = (
    validate_route_before_bunker,
    validate_bunker_before_vessel_selection,
    validate_vessel_data_before_rob,
    validate_route_before_compliance,
)


def validate_all(state: WorkflowState) -> ValidationResult:
    """Run validators in order and return the first failure."""

    for validator in VALIDATORS:
        result = validator(state)
        if not result.valid:
            return result
    return _OK


def get_safe_next_worker(state: WorkflowState) -> Optional[str]:
    """Apply at most one override to ``state["next_worker"]``."""

    result = validate_all(state)
    if result.valid:
        return state.get("next_worker")
    return result.required_worker


def resolve_safe_worker(state: WorkflowState, proposed: Optional[str]) -> Optional[str]:
    """Override ``proposed`` until its prerequisites are satisfiable."""

    if not proposed or proposed == "finalize":
        return proposed
    worker = proposed
    for _ in range(len(VALIDATORS) + 1):
        result = validate_all({**state, "next_worker": worker})
        if result.valid:
            return worker
        logger.critical(
            "safety override: %s -> %s (%s)",
            worker,
            result.required_worker,
            result.reason,
            extra={
                "correlation_id": state.get("correlation_id"),
                "worker": worker,
                "severity": result.severity,
            },
        )
        worker = result.required_worker
    return worker
