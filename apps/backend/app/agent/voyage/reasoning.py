"""Tier-3 reasoning loop.

Each call to ``ReasoningLoop.step`` asks the reasoner LLM for one structured
decision and turns it into exactly one ``ReasoningStep`` plus the routing
fields of a partial state update. Step and recovery bounds are enforced by
the supervisor node, not here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage

from app.agent.llm import call_llm_structured

from .errors import OverrideValidationError
from .overrides import parse_override
from .registry import AgentRegistry
from .schemas import ReasoningDecision, ReasoningStep
from .state import ArtifactKind, WorkerStatus, WorkflowState, get_artifact, user_query

logger = logging.getLogger(__name__)

RECENT_STEPS = 3
DEFAULT_CLARIFICATION = "Could you please provide more details about your request?"

SYSTEM_PROMPT = """You are an intelligent maritime operations coordinator.
Reason about the voyage-planning request and decide the single next action.

AVAILABLE WORKERS:
{workers}

PRINCIPLES:
- Not every query needs every worker.
- Port weather is not route weather; a single port needs no route.
- Never call a worker that already failed unless you are recovering it.
- A partial answer is better than no answer; ask the user when truly stuck.

ACTIONS:
1. call_worker: params.worker = worker name
2. validate: params.check = what to verify before the next step
3. recover: params.recovery_action = retry_worker | skip_worker | ask_user, params.worker = worker name,
   optional params.overrides for retry_worker, params.question for ask_user
4. clarify: params.question = question for the user
5. finalize: no params

Explain your reasoning in "thought"."""


def _describe_artifact(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return f"{len(value)} item(s)"
    if isinstance(value, dict):
        keys = ", ".join(list(value)[:6])
        return f"{{{keys}}}"
    return type(value).__name__


def summarize_state(state: WorkflowState) -> str:
    lines: list[str] = []
    for kind in ArtifactKind:
        value = get_artifact(state, kind)
        if value is None:
            lines.append(f"- {kind.value}: missing")
        else:
            lines.append(f"- {kind.value}: available ({_describe_artifact(value)})")
    return "\n".join(lines)


def summarize_worker_status(state: WorkflowState, registry: AgentRegistry) -> str:
    statuses = state.get("worker_status") or {}
    errors = state.get("worker_errors") or {}
    lines: list[str] = []
    for name in registry.names():
        status = statuses.get(name)
        if status == WorkerStatus.FAILED.value:
            message = (errors.get(name) or {}).get("message")
            lines.append(f"- {name}: FAILED" + (f" ({message})" if message else ""))
        elif status:
            lines.append(f"- {name}: {status.upper()}")
        else:
            lines.append(f"- {name}: not executed")
    return "\n".join(lines) or "No workers executed yet"


def summarize_recent_reasoning(state: WorkflowState) -> str:
    trace = state.get("reasoning_trace") or []
    if not trace:
        return "None yet (first reasoning step)"
    lines = []
    for step in trace[-RECENT_STEPS:]:
        worker = (step.get("action_params") or {}).get("worker")
        suffix = f" ({worker})" if worker else ""
        lines.append(f"Step {step.get('step_number')}: {str(step.get('thought', ''))[:100]} -> {step.get('chosen_action')}{suffix}")
    return "\n".join(lines)


def build_reasoning_messages(state: WorkflowState, registry: AgentRegistry) -> list:
    prompt = (
        f'QUERY: "{user_query(state) or "Unknown query"}"\n'
        f"GOAL: {state.get('original_intent') or 'unknown'}\n\n"
        f"AVAILABLE DATA:\n{summarize_state(state)}\n\n"
        f"WORKER STATUS:\n{summarize_worker_status(state, registry)}\n\n"
        f"RECENT REASONING:\n{summarize_recent_reasoning(state)}\n\n"
        "Decide the next action."
    )
    return [SystemMessage(content=SYSTEM_PROMPT.format(workers=registry.describe())), HumanMessage(content=prompt)]


class ReasoningLoop:
    def __init__(self, registry: AgentRegistry, *, retries: int = 1) -> None:
        self.registry = registry
        self.retries = retries

    async def _decide(self, state: WorkflowState) -> ReasoningDecision:
        try:
            return await asyncio.to_thread(
                call_llm_structured,
                build_reasoning_messages(state, self.registry),
                ReasoningDecision,
                retries=self.retries,
                task="reasoning",
            )
        except Exception as exc:
            logger.warning(
                "reasoning call failed, finalizing: %s",
                exc,
                extra={"correlation_id": state.get("correlation_id")},
            )
            return ReasoningDecision(thought=f"Reasoning unavailable ({type(exc).__name__}), finalizing", action="finalize")

    async def step(self, state: WorkflowState) -> dict[str, Any]:
        """Produce one reasoning step and the routing fields that follow from it."""

        decision = await self._decide(state)
        step = ReasoningStep(
            step_number=len(state.get("reasoning_trace") or []) + 1,
            thought=decision.thought,
            chosen_action=decision.action,
            action_params=decision.params.model_dump(exclude_none=True, exclude_defaults=True),
        )
        update = self._apply(decision, state, step)
        update["reasoning_trace"] = [step.model_dump()]
        update["current_thought"] = decision.thought
        logger.info(
            "reasoning step %s: %s -> %s",
            step.step_number,
            decision.action,
            update.get("next_worker"),
            extra={"correlation_id": state.get("correlation_id")},
        )
        return update

    def _apply(self, decision: ReasoningDecision, state: WorkflowState, step: ReasoningStep) -> dict[str, Any]:
        params = decision.params
        action = decision.action

        if action == "call_worker":
            if not params.worker or params.worker not in self.registry:
                step.observation = f"Unknown worker {params.worker!r}, finalizing"
                return {"next_worker": "finalize"}
            step.observation = f"Routing to {params.worker}"
            return {"next_worker": params.worker, "needs_clarification": False}

        if action == "validate":
            step.observation = "Validation complete, continuing reasoning"
            return {"next_worker": "supervisor"}

        if action == "recover":
            return self._recover(decision, step)

        if action == "clarify":
            question = params.question or DEFAULT_CLARIFICATION
            step.observation = f'Asking user: "{question}"'
            return {"next_worker": "finalize", "needs_clarification": True, "clarification_question": question}

        step.observation = "Proceeding to finalize"
        return {"next_worker": "finalize", "needs_clarification": False}

    def _recover(self, decision: ReasoningDecision, step: ReasoningStep) -> dict[str, Any]:
        params = decision.params
        worker = params.worker

        if params.recovery_action == "retry_worker" and worker in self.registry:
            try:
                overrides = parse_override(worker, params.overrides)
            except OverrideValidationError as exc:
                logger.warning("rejected recovery overrides: %s", exc.message)
                step.observation = f"Rejected overrides for {worker}: {exc.message}"
                return {"next_worker": "supervisor"}
            step.observation = f"Retrying {worker}"
            update: dict[str, Any] = {
                "next_worker": worker,
                "recovery_attempts": 1,
                "worker_status": {worker: WorkerStatus.PENDING.value},
            }
            if overrides:
                update["worker_overrides"] = {worker: overrides}
            return update

        if params.recovery_action == "skip_worker":
            step.observation = f"Skipping {worker or 'failed worker'}, continuing with available data"
            update = {"next_worker": "supervisor"}
            if worker in self.registry:
                update["worker_status"] = {worker: WorkerStatus.SKIPPED.value}
            return update

        if params.recovery_action == "ask_user":
            question = params.question or "I ran into a problem. Could you provide more details?"
            step.observation = "Need user clarification to proceed"
            return {"next_worker": "finalize", "needs_clarification": True, "clarification_question": question}

        step.observation = f"Unusable recovery ({params.recovery_action}, {worker}), finalizing"
        return {"next_worker": "finalize", "needs_clarification": False}
