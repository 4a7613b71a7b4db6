from __future__ import annotations
import copy
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional
from app.schemas.runs import RunStatus, RunEvent, RunTrace

MAX_CLASSIFICATION_EVENTS = 1000

_RUNS: Dict[str, RunStatus] = {}
_EVENTS: Dict[str, List[RunEvent]] = {}
_CLASSIFICATIONS: Deque[Dict[str, Any]] = deque(maxlen=MAX_CLASSIFICATION_EVENTS)
_LOCK = threading.Lock()


def save_run(status: RunStatus) -> RunStatus:
    with _LOCK:
        _RUNS[status.id] = status
        _EVENTS.setdefault(status.id, [])
    return status

def get_run(run_id: str) -> Optional[RunStatus]:
    return _RUNS.get(run_id)

def add_event(run_id: str, event: RunEvent) -> None:
    with _LOCK:
        if run_id not in _EVENTS:
            _EVENTS[run_id] = []
        _EVENTS[run_id].append(event)

def get_trace(run_id: str, reasoning_trace: Optional[List[dict]] = None) -> Optional[RunTrace]:
    if run_id not in _RUNS:
        return None
    return RunTrace(id=run_id, reasoning_trace=list(reasoning_trace or []), events=list(_EVENTS.get(run_id, [])))


def record_classification(event: Dict[str, Any]) -> None:
    with _LOCK:
        _CLASSIFICATIONS.append(dict(event))


def classification_events(correlation_id: Optional[str] = None) -> List[Dict[str, Any]]:
    with _LOCK:
        events = list(_CLASSIFICATIONS)
    if correlation_id is None:
        return events
    return [e for e in events if e.get("correlation_id") == correlation_id]


def reset() -> None:
    with _LOCK:
        _RUNS.clear()
        _EVENTS.clear()
        _CLASSIFICATIONS.clear()


class InMemoryCheckpointStore:
    """Checkpoint store keeping deep copies of final workflow states."""

    def __init__(self) -> None:
        self._states: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save(self, state: Dict[str, Any], correlation_id: str) -> None:
        snapshot = copy.deepcopy(dict(state))
        with self._lock:
            self._states[correlation_id] = snapshot

    def load(self, correlation_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            state = self._states.get(correlation_id)
        return copy.deepcopy(state) if state is not None else None
