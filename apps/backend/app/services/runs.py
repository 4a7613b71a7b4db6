from __future__ import annotations

import logging
import os
import time
from functools import lru_cache
from typing import Any, Dict, Optional
from uuid import uuid4

import sentry_sdk

from app.agent.voyage.errors import OrchestrationError
from app.agent.voyage.graph import VoyageOrchestrator, build_default_orchestrator
from app.schemas.runs import RunEvent, RunStart, RunStatus, RunTrace
from app.services.errors import InvalidQueryError, OrchestratorUnavailableError, RunNotFoundError
from app.storage import memory
from app.storage.memory import InMemoryCheckpointStore
from app.storage.postgres import PostgresCheckpointStore

logger = logging.getLogger(__name__)


def _checkpoint_store():
    url = os.getenv("LANGGRAPH_PG_URL")
    if url:
        return PostgresCheckpointStore(url)
    return InMemoryCheckpointStore()


@lru_cache(maxsize=1)
def get_orchestrator() -> VoyageOrchestrator:
    try:
        return build_default_orchestrator(
            _checkpoint_store(),
            workers_module=os.getenv("VOYAGE_WORKERS_MODULE") or None,
        )
    except (OrchestrationError, ImportError) as exc:
        logger.exception("orchestrator could not be built")
        raise OrchestratorUnavailableError(f"orchestrator unavailable: {exc}") from exc


def _status_from_state(run_id: str, state: Dict[str, Any]) -> RunStatus:
    clarification = bool(state.get("needs_clarification"))
    return RunStatus(
        id=run_id,
        status="needs_clarification" if clarification else "completed",
        final_recommendation=state.get("final_recommendation"),
        clarification_question=state.get("clarification_question") if clarification else None,
        original_intent=state.get("original_intent"),
        artifacts=dict(state.get("artifacts") or {}),
        worker_status=dict(state.get("worker_status") or {}),
        worker_errors=dict(state.get("worker_errors") or {}),
    )


async def start_run(body: RunStart) -> RunStatus:
    query = body.query.strip()
    if not query:
        raise InvalidQueryError("query must not be blank")
    run_id = body.correlation_id or str(uuid4())
    orchestrator = get_orchestrator()

    memory.save_run(RunStatus(id=run_id, status="running"))
    memory.add_event(run_id, RunEvent(ts_ms=int(time.time() * 1000), level="info", message=f"started: {query[:200]}"))
    try:
        state = await orchestrator.run(query, correlation_id=run_id)
    except Exception as exc:
        logger.exception("run failed", extra={"correlation_id": run_id})
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("correlation_id", run_id)
            sentry_sdk.capture_exception(exc)
        memory.save_run(RunStatus(id=run_id, status="failed"))
        memory.add_event(run_id, RunEvent(ts_ms=int(time.time() * 1000), level="error", message=str(exc)[:500]))
        raise

    status = memory.save_run(_status_from_state(run_id, state))
    memory.add_event(run_id, RunEvent(ts_ms=int(time.time() * 1000), level="info", message=f"finished: {status.status}"))
    return status


def fetch_status(run_id: str) -> RunStatus:
    status = memory.get_run(run_id)
    if status is None:
        raise RunNotFoundError("run not found")
    return status


def fetch_trace(run_id: str) -> RunTrace:
    reasoning_trace: Optional[list] = None
    state = get_orchestrator().checkpoint_store.load(run_id)
    if state:
        reasoning_trace = state.get("reasoning_trace")
    trace = memory.get_trace(run_id, reasoning_trace)
    if trace is None:
        raise RunNotFoundError("trace not found")
    return trace
