from typing import Annotated, TypedDict, Any, Dict, Optional
from enum import Enum
import operator
from langchain_core.messages import BaseMessage, HumanMessage


class ArtifactKind(str, Enum):
    ROUTE = "route"
    WEATHER = "weather"
    PORT_WEATHER = "port_weather"
    BUNKER_PORTS = "bunker_ports"
    BUNKER_ANALYSIS = "bunker_analysis"
    COMPLIANCE = "compliance"
    VESSEL_IDENTIFIERS = "vessel_identifiers"
    VESSEL_SPECS = "vessel_specs"
    VESSEL_PROFILE = "vessel_profile"
    ROB_TRACKING = "rob_tracking"
    VESSEL_SELECTION = "vessel_selection"
    HULL_PERFORMANCE = "hull_performance"


class WorkerStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class TurnKind(str, Enum):
    HUMAN = "human"
    AI = "ai"
    TOOL = "tool"
    SYSTEM = "system"


ARTIFACT_KEYS = frozenset(kind.value for kind in ArtifactKind)


def overwrite(_: Any, updated: Any) -> Any:
    return updated


def keep_first(existing: Any, updated: Any) -> Any:
    return existing if existing else updated


def merge_by_key(existing: Optional[dict], updated: Optional[dict]) -> dict:
    merged = dict(existing or {})
    merged.update(updated or {})
    return merged


def merge_artifacts(existing: Optional[dict], updated: Optional[dict]) -> dict:
    # whole values only: an absent (None) update keeps the previous artifact
    merged = dict(existing or {})
    for key, value in (updated or {}).items():
        if value is not None:
            merged[key] = value
    return merged


class WorkflowState(TypedDict, total=False):
    messages: Annotated[list[BaseMessage], operator.add]
    correlation_id: str
    next_worker: Annotated[str, overwrite]
    artifacts: Annotated[Dict[str, Any], merge_artifacts]
    worker_status: Annotated[Dict[str, str], merge_by_key]
    worker_errors: Annotated[Dict[str, dict], merge_by_key]
    worker_overrides: Annotated[Dict[str, dict], merge_by_key]
    reasoning_trace: Annotated[list[dict], operator.add]
    recovery_attempts: Annotated[int, operator.add]
    original_intent: Annotated[Optional[str], keep_first]
    intent_match: Annotated[Optional[dict], overwrite]
    current_thought: Annotated[str, overwrite]
    last_self_loop_step: Annotated[int, overwrite]
    needs_clarification: bool
    clarification_question: Optional[str]
    final_recommendation: Optional[str]
    metadata: Dict[str, Any]


_TURN_KINDS = {
    "human": TurnKind.HUMAN,
    "ai": TurnKind.AI,
    "AIMessageChunk": TurnKind.AI,
    "tool": TurnKind.TOOL,
    "system": TurnKind.SYSTEM,
}


def turn_kind(message: BaseMessage) -> Optional[TurnKind]:
    return _TURN_KINDS.get(getattr(message, "type", ""))


def _artifact_key(kind: ArtifactKind | str) -> str:
    return kind.value if isinstance(kind, ArtifactKind) else str(kind)


def get_artifact(state: WorkflowState, kind: ArtifactKind | str) -> Any:
    return (state.get("artifacts") or {}).get(_artifact_key(kind))


def has_artifact(state: WorkflowState, kind: ArtifactKind | str) -> bool:
    value = get_artifact(state, kind)
    if value is None:
        return False
    if isinstance(value, (list, dict, str)) and not value:
        return False
    return True


def get_worker_status(state: WorkflowState, worker: str) -> Optional[str]:
    return (state.get("worker_status") or {}).get(worker)


def has_vessel_identifiers(state: WorkflowState) -> bool:
    ids = get_artifact(state, ArtifactKind.VESSEL_IDENTIFIERS) or {}
    if not isinstance(ids, dict):
        return False
    return bool(ids.get("names")) or bool(ids.get("imos"))


def build_initial_state(query: str, correlation_id: str, *, metadata: Optional[dict] = None) -> WorkflowState:
    return {
        "messages": [HumanMessage(content=query)],
        "correlation_id": correlation_id,
        "next_worker": "",
        "artifacts": {},
        "worker_status": {},
        "worker_errors": {},
        "worker_overrides": {},
        "reasoning_trace": [],
        "recovery_attempts": 0,
        "original_intent": None,
        "intent_match": None,
        "current_thought": "",
        "last_self_loop_step": -1,
        "needs_clarification": False,
        "clarification_question": None,
        "final_recommendation": None,
        "metadata": dict(metadata or {}),
    }


def user_query(state: WorkflowState) -> str:
    for message in state.get("messages") or []:
        if turn_kind(message) is TurnKind.HUMAN:
            content = message.content
            return content if isinstance(content, str) else str(content)
    return ""
