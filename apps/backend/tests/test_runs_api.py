import asyncio

import pytest
from fastapi.testclient import TestClient

from app.agent.voyage.graph import VoyageOrchestrator
from app.agent.voyage.pattern_matcher import IntentMatcher
from app.agent.voyage.registry import default_registry
from app.agent.voyage.settings import OrchestratorSettings
from app.main import app
from app.schemas.runs import RunStart
from app.services import runs as run_service
from app.storage import memory
from app.storage.memory import InMemoryCheckpointStore


class _FinalizingReasoner:
    async def step(self, state):
        return {
            "next_worker": "finalize",
            "reasoning_trace": [{"step_number": 1, "thought": "stop", "chosen_action": "finalize", "action_params": {}}],
            "current_thought": "stop",
        }


async def _route_worker(state):
    return {"artifacts": {"route": {"distance_nm": 8288}}}


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch):
    memory.reset()
    orchestrator = VoyageOrchestrator(
        default_registry(),
        {"route": _route_worker},
        InMemoryCheckpointStore(),
        settings=OrchestratorSettings(worker_timeout_s=1, request_timeout_s=10),
        matcher=IntentMatcher(None),
        reasoner=_FinalizingReasoner(),
    )
    monkeypatch.setattr(run_service, "get_orchestrator", lambda: orchestrator)
    yield TestClient(app)
    memory.reset()


def test_health(client: TestClient) -> None:
    assert client.get("/").json() == {"status": "ok"}

    body = client.get("/health/orchestrator").json()
    assert "route" in body["workers"]
    assert [c["name"] for c in body["caches"]] == ["intent", "route", "weather"]


def test_create_run_completes(client: TestClient) -> None:
    resp = client.post("/runs", json={"query": "route from Singapore to Rotterdam", "correlation_id": "run-42"})

    assert resp.status_code == 201
    body = resp.json()
    assert body["id"] == "run-42"
    assert body["status"] == "completed"
    assert body["original_intent"] == "route_calculation"
    assert body["artifacts"]["route"]["distance_nm"] == 8288
    assert body["worker_status"] == {"route": "success"}

    assert client.get("/runs/run-42").json()["status"] == "completed"


def test_create_run_needing_clarification(client: TestClient) -> None:
    body = client.post("/runs", json={"query": "what is the weather at port"}).json()

    assert body["status"] == "needs_clarification"
    assert "Which port" in body["clarification_question"]
    assert body["final_recommendation"] is None


def test_trace_includes_reasoning_and_events(client: TestClient) -> None:
    client.post("/runs", json={"query": "hello there", "correlation_id": "run-trace"})

    trace = client.get("/runs/run-trace/trace").json()

    assert trace["id"] == "run-trace"
    assert [s["chosen_action"] for s in trace["reasoning_trace"]] == ["finalize"]
    messages = [e["message"] for e in trace["events"]]
    assert messages[0].startswith("started:")
    assert messages[-1] == "finished: completed"


def test_blank_query_rejected(client: TestClient) -> None:
    assert client.post("/runs", json={"query": "   "}).status_code == 400
    assert client.post("/runs", json={"query": ""}).status_code == 422


def test_unknown_run_is_404(client: TestClient) -> None:
    assert client.get("/runs/missing").status_code == 404
    assert client.get("/runs/missing/trace").status_code == 404


def test_failed_run_is_recorded(monkeypatch: pytest.MonkeyPatch) -> None:
    memory.reset()

    class ExplodingOrchestrator:
        async def run(self, query, correlation_id=None):
            raise RuntimeError("graph exploded")

    monkeypatch.setattr(run_service, "get_orchestrator", lambda: ExplodingOrchestrator())

    with pytest.raises(RuntimeError):
        asyncio.run(run_service.start_run(RunStart(query="route from Singapore to Rotterdam", correlation_id="bad")))

    assert memory.get_run("bad").status == "failed"
    memory.reset()
