"""Routing evaluation harness for the voyage orchestrator."""

from .scenarios import Scenario, ScenarioResult, load_scenarios
from .runner import run_batch, run_scenario

__all__ = [
    "Scenario",
    "ScenarioResult",
    "load_scenarios",
    "run_batch",
    "run_scenario",
]
