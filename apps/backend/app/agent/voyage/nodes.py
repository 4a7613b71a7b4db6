from __future__ import annotations

import asyncio
import inspect
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from langchain_core.messages import AIMessage, BaseMessage

from .circuit_breaker import should_escape_to_supervisor
from .decision import GOAL_ARTIFACTS, goal_intent, make_routing_decision
from .errors import InvalidWorkerOutputError, UnknownIntentError, WorkerUnavailableError
from .pattern_matcher import IntentMatcher
from .reasoning import ReasoningLoop
from .registry import AgentRegistry
from .safety import resolve_safe_worker
from .schemas import PatternMatch
from .settings import OrchestratorSettings
from .state import ARTIFACT_KEYS, WorkerStatus, WorkflowState, has_artifact, user_query

logger = logging.getLogger(__name__)

WorkerFn = Callable[[WorkflowState], Union[Dict[str, Any], Awaitable[Dict[str, Any]], None]]

WORKER_OWNED_KEYS = frozenset({"artifacts", "messages"})

RECOVERY_EXHAUSTED_QUESTION = (
    "I could not complete this request after several recovery attempts. "
    "Could you confirm the ports, vessel and dates you want me to use?"
)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _supervisor_message(text: str) -> AIMessage:
    return AIMessage(content=f"[SUPERVISOR] {text}", name="supervisor")


class Supervisor:
    """Supervisor node: bounds, Tier 1, Tier 2, Tier 3, safety, circuit breaker."""

    def __init__(
        self,
        registry: AgentRegistry,
        matcher: IntentMatcher,
        reasoner: ReasoningLoop,
        settings: OrchestratorSettings,
    ) -> None:
        self.registry = registry
        self.matcher = matcher
        self.reasoner = reasoner
        self.settings = settings

    async def run(self, state: WorkflowState) -> Dict[str, Any]:
        cid = state.get("correlation_id")
        messages = state.get("messages") or []
        trace = state.get("reasoning_trace") or []

        if len(messages) >= self.settings.max_turns:
            logger.warning("turn ceiling reached (%s), finalizing", len(messages), extra={"correlation_id": cid})
            return {"next_worker": "finalize", "messages": [_supervisor_message("turn ceiling reached, finalizing")]}

        if len(trace) >= self.settings.max_reasoning_steps:
            logger.warning("reasoning step limit reached (%s), finalizing", len(trace), extra={"correlation_id": cid})
            return {
                "next_worker": "finalize",
                "messages": [_supervisor_message("reasoning step limit reached, finalizing")],
            }

        if (state.get("recovery_attempts") or 0) >= self.settings.max_recovery_attempts:
            logger.warning("recovery attempts exhausted, asking user", extra={"correlation_id": cid})
            return {
                "next_worker": "finalize",
                "needs_clarification": True,
                "clarification_question": state.get("clarification_question") or RECOVERY_EXHAUSTED_QUESTION,
                "messages": [_supervisor_message("recovery attempts exhausted, requesting clarification")],
            }

        update: Dict[str, Any] = {}
        if state.get("intent_match"):
            match = PatternMatch.model_validate(state["intent_match"])
        else:
            match = await self.matcher.match(user_query(state), cid)
            update["intent_match"] = match.model_dump()
            if match.intent_type != "ambiguous":
                update["original_intent"] = match.intent_type

        working: WorkflowState = {**state, "original_intent": state.get("original_intent") or update.get("original_intent")}

        try:
            decision = make_routing_decision(match, working)
        except UnknownIntentError as exc:
            logger.error("%s, finalizing", exc.message, extra={"correlation_id": cid})
            update.update(next_worker="finalize", messages=[_supervisor_message(exc.message)])
            return update

        logger.info(
            "decision=%s worker=%s confidence=%s: %s",
            decision.decision,
            decision.worker,
            decision.confidence,
            decision.reason,
            extra={"correlation_id": cid},
        )

        if decision.decision == "finalize":
            update.update(next_worker="finalize", messages=[_supervisor_message(decision.reason)])
            return update

        if decision.decision == "request_clarification":
            update.update(
                next_worker="finalize",
                needs_clarification=True,
                clarification_question=decision.clarification_question,
                messages=[_supervisor_message(f"clarification needed: {decision.reason}")],
            )
            return update

        if decision.decision == "immediate_action":
            proposed = decision.worker
            step_number = len(trace)
        else:
            reasoning = await self.reasoner.step(working)
            update.update(reasoning)
            proposed = reasoning.get("next_worker") or "finalize"
            step_number = len(trace) + 1
            if proposed in ("finalize", "supervisor"):
                return self._finish(update, state, proposed, step_number, reasoning.get("current_thought", ""))

        target = resolve_safe_worker(working, proposed)
        if target not in self.registry:
            logger.error("no node for worker %s, finalizing", target, extra={"correlation_id": cid})
            update.update(next_worker="finalize", messages=[_supervisor_message(f"worker {target} unavailable")])
            return update

        if should_escape_to_supervisor(
            working,
            target,
            self.registry,
            window=self.settings.breaker_window,
            threshold=self.settings.breaker_threshold,
        ):
            update["worker_status"] = {**(update.get("worker_status") or {}), target: WorkerStatus.FAILED.value}
            update["worker_errors"] = {
                target: {"message": "circuit breaker: repeated calls without output", "timestamp": _utc_now_iso()}
            }
            return self._finish(update, state, "supervisor", step_number, f"{target} is stuck, re-evaluating")

        update.update(next_worker=target, messages=[_supervisor_message(f"routing to {target}")])
        return update

    def _finish(
        self,
        update: Dict[str, Any],
        state: WorkflowState,
        target: str,
        step_number: int,
        note: str,
    ) -> Dict[str, Any]:
        if target == "supervisor":
            # one self-loop per reasoning step
            if state.get("last_self_loop_step") == step_number:
                logger.warning(
                    "second self-loop for step %s, finalizing",
                    step_number,
                    extra={"correlation_id": state.get("correlation_id")},
                )
                target = "finalize"
            else:
                update["last_self_loop_step"] = step_number
        update.update(next_worker=target, messages=[_supervisor_message(note or f"next: {target}")])
        return update


def _validate_worker_output(name: str, produces: frozenset[str], output: Any) -> Dict[str, Any]:
    if output is None:
        return {}
    if not isinstance(output, dict):
        raise InvalidWorkerOutputError(f"{name} returned {type(output).__name__}, expected a partial state dict")
    foreign = set(output) - WORKER_OWNED_KEYS
    if foreign:
        raise InvalidWorkerOutputError(f"{name} wrote fields it does not own: {sorted(foreign)}")
    artifacts = output.get("artifacts") or {}
    if not isinstance(artifacts, dict):
        raise InvalidWorkerOutputError(f"{name} returned non-mapping artifacts")
    unknown = set(artifacts) - ARTIFACT_KEYS
    if unknown:
        raise InvalidWorkerOutputError(f"{name} returned unknown artifact keys: {sorted(unknown)}")
    not_owned = set(artifacts) - produces
    if not_owned:
        raise InvalidWorkerOutputError(f"{name} returned artifacts it does not produce: {sorted(not_owned)}")
    worker_messages = output.get("messages") or []
    if not all(isinstance(m, BaseMessage) for m in worker_messages):
        raise InvalidWorkerOutputError(f"{name} returned non-message conversation turns")
    return {"artifacts": {k: v for k, v in artifacts.items() if v is not None}, "messages": list(worker_messages)}


def make_worker_node(
    name: str,
    fn: WorkerFn,
    registry: AgentRegistry,
    *,
    timeout_s: float = 30.0,
) -> Callable[[WorkflowState], Awaitable[Dict[str, Any]]]:
    """Wrap a worker so status, errors and its signature turn are always recorded."""

    entry = registry.get_agent(name)
    if entry is None:
        raise WorkerUnavailableError(f"worker {name} is not registered")
    produces = frozenset(kind.value for kind in entry.produces)

    async def node(state: WorkflowState) -> Dict[str, Any]:
        cid = state.get("correlation_id")
        start = time.perf_counter()
        try:
            if inspect.iscoroutinefunction(fn):
                pending = fn(state)
            else:
                pending = asyncio.to_thread(fn, state)
            output = _validate_worker_output(name, produces, await asyncio.wait_for(pending, timeout=timeout_s))
        except asyncio.TimeoutError:
            return _failed(name, entry.log_tag, f"timed out after {timeout_s}s", cid)
        except Exception as exc:
            return _failed(name, entry.log_tag, f"{type(exc).__name__}: {exc}", cid)

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        produced = sorted(output["artifacts"])
        logger.info(
            "%s completed in %sms, produced %s",
            name,
            elapsed_ms,
            produced or "nothing",
            extra={"correlation_id": cid, "worker": name},
        )
        update: Dict[str, Any] = {
            "artifacts": output["artifacts"],
            "worker_status": {name: WorkerStatus.SUCCESS.value},
            "messages": output["messages"]
            + [AIMessage(content=f"{entry.log_tag} completed, produced: {', '.join(produced) or 'nothing'}", name=name)],
        }
        if (state.get("worker_overrides") or {}).get(name):
            update["worker_overrides"] = {name: {}}
        return update

    node.__name__ = f"{name}_node"
    return node


def _failed(name: str, log_tag: str, message: str, correlation_id: Optional[str]) -> Dict[str, Any]:
    logger.warning("%s failed: %s", name, message, extra={"correlation_id": correlation_id, "worker": name})
    return {
        "worker_status": {name: WorkerStatus.FAILED.value},
        "worker_errors": {name: {"message": message, "timestamp": _utc_now_iso()}},
        "messages": [AIMessage(content=f"{log_tag} failed: {message}", name=name)],
    }


def unavailable_worker(name: str) -> WorkerFn:
    async def run(_: WorkflowState) -> Dict[str, Any]:
        raise WorkerUnavailableError(f"no implementation loaded for worker {name}")

    return run


def build_final_recommendation(state: WorkflowState, registry: AgentRegistry) -> str:
    query = user_query(state)
    intent = goal_intent(None, state)
    artifacts = state.get("artifacts") or {}
    statuses = state.get("worker_status") or {}
    errors = state.get("worker_errors") or {}

    lines = [f'Voyage planning result for: "{query}"']
    if intent:
        lines.append(f"Goal: {intent}")
    available = [k for k in artifacts if has_artifact(state, k)]
    lines.append(f"Available data: {', '.join(sorted(available)) if available else 'none'}")

    missing = [kind.value for kind in GOAL_ARTIFACTS.get(intent or "", ()) if not has_artifact(state, kind)]
    if missing:
        lines.append(f"Missing data: {', '.join(missing)}")

    failed = [n for n in registry.names() if statuses.get(n) == WorkerStatus.FAILED.value]
    for worker in failed:
        message = (errors.get(worker) or {}).get("message", "unknown error")
        lines.append(f"{worker} failed: {message}")
    skipped = [n for n in registry.names() if statuses.get(n) == WorkerStatus.SKIPPED.value]
    if skipped:
        lines.append(f"Skipped: {', '.join(skipped)}")
    if missing or failed:
        lines.append("This recommendation is based on partial data.")
    return "\n".join(lines)


def make_finalize_node(registry: AgentRegistry) -> Callable[[WorkflowState], Dict[str, Any]]:
    def finalize(state: WorkflowState) -> Dict[str, Any]:
        cid = state.get("correlation_id")
        if state.get("needs_clarification"):
            question = state.get("clarification_question") or "Could you please provide more details about your request?"
            logger.info("finalizing with clarification question", extra={"correlation_id": cid})
            return {
                "clarification_question": question,
                "final_recommendation": None,
                "messages": [AIMessage(content=question, name="finalize")],
            }
        recommendation = build_final_recommendation(state, registry)
        logger.info("finalizing with recommendation", extra={"correlation_id": cid})
        return {
            "final_recommendation": recommendation,
            "messages": [AIMessage(content=recommendation, name="finalize")],
        }

    return finalize
