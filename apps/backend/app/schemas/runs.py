from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, List, Optional


class RunStart(BaseModel):
    query: str = Field(min_length=1, max_length=4000)
    correlation_id: Optional[str] = None

class RunStatus(BaseModel):
    id: str
    status: Literal["queued", "running", "completed", "needs_clarification", "failed"]
    final_recommendation: Optional[str] = None
    clarification_question: Optional[str] = None
    original_intent: Optional[str] = None
    artifacts: Dict[str, Any] = Field(default_factory=dict)
    worker_status: Dict[str, str] = Field(default_factory=dict)
    worker_errors: Dict[str, dict] = Field(default_factory=dict)

class RunEvent(BaseModel):
    ts_ms: int
    level: Literal["info", "warn", "error"]
    message: str
    data: dict | None = None

class RunTrace(BaseModel):
    id: str
    reasoning_trace: List[dict] = Field(default_factory=list)
    events: List[RunEvent]
