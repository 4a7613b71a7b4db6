from __future__ import annotations

import asyncio
import importlib
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Protocol
from uuid import uuid4

from langgraph.errors import GraphRecursionError
from langgraph.graph import END, START, StateGraph

from .cache import SharedCaches, build_shared_caches
from .errors import RegistryEmptyError
from .intent_classifier import IntentClassifier
from .nodes import Supervisor, WorkerFn, make_finalize_node, make_worker_node, unavailable_worker
from .pattern_matcher import IntentMatcher
from .reasoning import ReasoningLoop
from .registry import AgentRegistry, default_registry
from .safety import resolve_safe_worker
from .settings import OrchestratorSettings
from .state import WorkflowState, build_initial_state

logger = logging.getLogger(__name__)


class CheckpointStore(Protocol):
    def save(self, state: Dict[str, Any], correlation_id: str) -> None: ...

    def load(self, correlation_id: str) -> Optional[Dict[str, Any]]: ...


def make_supervisor_router(registry: AgentRegistry, settings: OrchestratorSettings) -> Callable[[WorkflowState], str]:
    def route_from_supervisor(state: WorkflowState) -> str:
        if len(state.get("messages") or []) > settings.max_turns:
            return "finalize"
        target = state.get("next_worker") or "finalize"
        if target in ("finalize", "supervisor"):
            return target
        safe = resolve_safe_worker(state, target)
        if safe not in registry:
            logger.error("router: no node for %s, finalizing", safe, extra={"correlation_id": state.get("correlation_id")})
            return "finalize"
        return safe

    return route_from_supervisor


def build_graph(
    registry: AgentRegistry,
    supervisor: Supervisor,
    worker_nodes: Mapping[str, Callable],
    settings: OrchestratorSettings,
):
    if len(registry) == 0:
        raise RegistryEmptyError("cannot build the executor without registered workers")

    builder = StateGraph(WorkflowState)
    builder.add_node("supervisor", supervisor.run)
    for name in registry.names():
        builder.add_node(name, worker_nodes[name])
    builder.add_node("finalize", make_finalize_node(registry))

    builder.add_edge(START, "supervisor")
    targets = {name: name for name in registry.names()}
    targets.update(supervisor="supervisor", finalize="finalize")
    builder.add_conditional_edges("supervisor", make_supervisor_router(registry, settings), targets)
    for name in registry.names():
        builder.add_edge(name, "supervisor")
    builder.add_edge("finalize", END)
    return builder.compile()


def load_workers(module_path: Optional[str], caches: Optional[SharedCaches] = None) -> Dict[str, WorkerFn]:
    """Import worker implementations from ``module_path``.

    The module exposes either a ``WORKERS`` mapping or a ``get_workers(caches)``
    function returning one; the shared route and weather caches are handed to
    the latter.
    """

    if not module_path:
        return {}
    module = importlib.import_module(module_path)
    workers = getattr(module, "WORKERS", None)
    if workers is None and hasattr(module, "get_workers"):
        workers = module.get_workers(caches)
    if not isinstance(workers, Mapping):
        raise ImportError(f"{module_path} does not expose a WORKERS mapping or get_workers(caches)")
    return dict(workers)


class VoyageOrchestrator:
    """Builds the graph once and runs one sequential walk per request."""

    def __init__(
        self,
        registry: AgentRegistry,
        workers: Mapping[str, WorkerFn],
        checkpoint_store: CheckpointStore,
        *,
        settings: Optional[OrchestratorSettings] = None,
        caches: Optional[SharedCaches] = None,
        matcher: Optional[IntentMatcher] = None,
        reasoner: Optional[ReasoningLoop] = None,
    ) -> None:
        if len(registry) == 0:
            raise RegistryEmptyError("cannot build the executor without registered workers")
        self.registry = registry
        self.settings = settings or OrchestratorSettings()
        self.caches = caches or build_shared_caches(self.settings)
        self.checkpoint_store = checkpoint_store
        self.matcher = matcher or IntentMatcher(
            IntentClassifier(registry, self.caches.intent),
            confidence_floor=self.settings.classifier_confidence_floor,
            timeout_s=self.settings.classifier_timeout_s,
        )
        self.reasoner = reasoner or ReasoningLoop(registry)

        missing = [name for name in registry.names() if name not in workers]
        if missing:
            logger.warning("no implementation for workers %s; they will fail when routed to", missing)
        self.worker_nodes = {
            name: make_worker_node(
                name,
                workers.get(name) or unavailable_worker(name),
                registry,
                timeout_s=self.settings.worker_timeout_s,
            )
            for name in registry.names()
        }
        self.supervisor = Supervisor(registry, self.matcher, self.reasoner, self.settings)
        self.graph = build_graph(registry, self.supervisor, self.worker_nodes, self.settings)

    async def run(self, query: str, correlation_id: Optional[str] = None) -> WorkflowState:
        cid = correlation_id or str(uuid4())
        initial = build_initial_state(query, cid)
        last: Dict[str, Any] = {"state": initial}

        async def _walk() -> None:
            async for values in self.graph.astream(
                initial,
                config={"recursion_limit": self.settings.recursion_limit},
                stream_mode="values",
            ):
                last["state"] = values

        logger.info("run started", extra={"correlation_id": cid})
        try:
            await asyncio.wait_for(_walk(), timeout=self.settings.request_timeout_s)
            final = last["state"]
        except asyncio.TimeoutError:
            logger.warning("request timed out after %ss, finalizing", self.settings.request_timeout_s, extra={"correlation_id": cid})
            final = self._finalize_fallback(last["state"], "timeout")
        except GraphRecursionError:
            logger.warning("recursion limit %s hit, finalizing", self.settings.recursion_limit, extra={"correlation_id": cid})
            final = self._finalize_fallback(last["state"], "recursion_limit")

        try:
            await asyncio.to_thread(self.checkpoint_store.save, final, cid)
        except Exception:
            logger.exception("checkpoint save failed", extra={"correlation_id": cid})
        logger.info(
            "run finished: clarification=%s",
            bool(final.get("needs_clarification")),
            extra={"correlation_id": cid},
        )
        return final

    def _finalize_fallback(self, state: Dict[str, Any], reason: str) -> Dict[str, Any]:
        if state.get("final_recommendation") or (state.get("needs_clarification") and state.get("clarification_question")):
            return state
        finalize = make_finalize_node(self.registry)
        update = finalize(state)
        final = {**state, **update}
        final["messages"] = list(state.get("messages") or []) + list(update.get("messages") or [])
        final["metadata"] = {**(state.get("metadata") or {}), "terminated_by": reason}
        return final


def build_default_orchestrator(
    checkpoint_store: CheckpointStore,
    *,
    registry: Optional[AgentRegistry] = None,
    workers: Optional[Mapping[str, WorkerFn]] = None,
    settings: Optional[OrchestratorSettings] = None,
    workers_module: Optional[str] = None,
) -> VoyageOrchestrator:
    settings = settings or OrchestratorSettings.from_env()
    caches = build_shared_caches(settings)
    return VoyageOrchestrator(
        registry or default_registry(),
        workers if workers is not None else load_workers(workers_module, caches),
        checkpoint_store,
        settings=settings,
        caches=caches,
    )
