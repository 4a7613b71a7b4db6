from __future__ import annotations
import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Iterable, List
from uuid import uuid4
from app.agent.voyage.decision import make_routing_decision
from app.agent.voyage.pattern_matcher import match_query_pattern
from app.agent.voyage.safety import resolve_safe_worker
from app.agent.voyage.state import build_initial_state
from app.eval.scenarios import Scenario, ScenarioResult, load_scenarios


def run_scenario(scenario: Scenario) -> ScenarioResult:
    state = build_initial_state(scenario.query, str(uuid4()))
    state["artifacts"] = dict(scenario.artifacts)
    state["worker_status"] = dict(scenario.worker_status)
    state["original_intent"] = scenario.original_intent

    match = match_query_pattern(scenario.query)
    decision = make_routing_decision(match, state)
    worker = decision.worker
    if decision.decision == "immediate_action":
        worker = resolve_safe_worker(state, worker)

    problems: list[str] = []
    if scenario.expected_intent and match.intent_type != scenario.expected_intent:
        problems.append(f"intent {match.intent_type} != {scenario.expected_intent}")
    if decision.decision != scenario.expected_decision:
        problems.append(f"decision {decision.decision} != {scenario.expected_decision}")
    if scenario.expected_worker and worker != scenario.expected_worker:
        problems.append(f"worker {worker} != {scenario.expected_worker}")
    if not scenario.min_confidence <= match.confidence <= scenario.max_confidence:
        problems.append(
            f"confidence {match.confidence} outside [{scenario.min_confidence}, {scenario.max_confidence}]"
        )

    return ScenarioResult(
        scenario=scenario,
        intent=match.intent_type,
        confidence=match.confidence,
        decision=decision.decision,
        worker=worker,
        passed=not problems,
        feedback="; ".join(problems) or decision.reason,
    )


def run_batch(scenarios: Iterable[Scenario]) -> List[ScenarioResult]:
    results: List[ScenarioResult] = []
    for scenario in scenarios:
        try:
            result = run_scenario(scenario)
        except Exception as exc:  # pragma: no cover - evaluation failure path
            results.append(
                ScenarioResult(
                    scenario=scenario,
                    intent="error",
                    confidence=0,
                    decision="error",
                    worker=None,
                    passed=False,
                    feedback=f"Execution failed: {exc}",
                )
            )
            continue
        results.append(result)
    return results


def summarise_and_log(results: List[ScenarioResult], output_path: Path | None = None) -> int:
    passed = sum(1 for r in results if r.passed)
    total = len(results)

    print(f"Passed {passed}/{total} routing scenarios", file=sys.stderr)
    for result in results:
        status = "PASS" if result.passed else "FAIL"
        print(
            f"[{status}] {result.scenario.name}: {result.intent}/{result.decision}/{result.worker} "
            f"({result.confidence}%) - {result.feedback}",
            file=sys.stderr,
        )

    if output_path:
        payload = [
            {
                "scenario": asdict(result.scenario),
                "intent": result.intent,
                "confidence": result.confidence,
                "decision": result.decision,
                "worker": result.worker,
                "passed": result.passed,
                "feedback": result.feedback,
            }
            for result in results
        ]
        output_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    return 0 if passed == total else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Evaluate deterministic routing against known scenarios.")
    parser.add_argument("--extra-scenarios", type=str, help="Optional JSON file with additional scenarios", default=None)
    parser.add_argument("--output", type=str, help="Write JSON results to this path", default=None)
    args = parser.parse_args(argv)

    results = run_batch(load_scenarios(args.extra_scenarios))
    output_path = Path(args.output) if args.output else None
    return summarise_and_log(results, output_path)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
