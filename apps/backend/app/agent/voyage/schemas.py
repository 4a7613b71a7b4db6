from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

IntentType = Literal[
    "bunker_planning",
    "route_calculation",
    "weather_analysis",
    "port_weather",
    "compliance",
    "vessel_info",
    "hull_analysis",
    "ambiguous",
]

CANONICAL_INTENTS: tuple[str, ...] = (
    "bunker_planning",
    "route_calculation",
    "weather_analysis",
    "port_weather",
    "compliance",
    "vessel_info",
    "hull_analysis",
)

DecisionType = Literal["immediate_action", "llm_reasoning", "request_clarification", "finalize"]

ReasoningAction = Literal["call_worker", "validate", "recover", "clarify", "finalize"]


class PatternMatch(BaseModel):
    matched: bool
    intent_type: IntentType = "ambiguous"
    recommended_worker: Optional[str] = None
    confidence: int = Field(default=0, ge=0, le=100)
    extracted_params: dict[str, str] = Field(default_factory=dict)
    reason: str = ""
    method: Literal["pattern", "llm_classifier", "none"] = "pattern"

    latency_ms: Optional[int] = None
    cache_hit: Optional[bool] = None
    cost_usd: Optional[float] = None
    query_hash: Optional[str] = None

    @model_validator(mode="after")
    def _unmatched_has_no_confidence(self) -> "PatternMatch":
        if not self.matched:
            self.confidence = 0
            self.intent_type = "ambiguous"
        return self

    def routing_view(self) -> dict[str, Any]:
        return self.model_dump(exclude={"latency_ms", "cache_hit", "cost_usd", "query_hash"})

    @classmethod
    def no_match(cls, reason: str) -> "PatternMatch":
        return cls(matched=False, reason=reason, method="none")


class DecisionResult(BaseModel):
    decision: DecisionType
    confidence: int = Field(ge=0, le=100)
    worker: Optional[str] = None
    reason: str
    clarification_question: Optional[str] = None


class ValidationResult(BaseModel):
    valid: bool
    required_worker: Optional[str] = None
    reason: Optional[str] = None
    severity: Literal["warning", "critical"] = "warning"

    @model_validator(mode="after")
    def _failure_names_worker(self) -> "ValidationResult":
        if not self.valid and not self.required_worker:
            raise ValueError("required_worker is required when valid=false")
        return self


class ReasoningParams(BaseModel):
    worker: Optional[str] = None
    recovery_action: Optional[Literal["retry_worker", "skip_worker", "ask_user"]] = None
    question: Optional[str] = None
    check: Optional[str] = None
    overrides: dict[str, Any] = Field(default_factory=dict)


class ReasoningDecision(BaseModel):
    """Structured output requested from the reasoning LLM."""

    thought: str
    action: ReasoningAction
    params: ReasoningParams = Field(default_factory=ReasoningParams)


class ReasoningStep(BaseModel):
    step_number: int
    thought: str
    chosen_action: ReasoningAction
    action_params: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    observation: Optional[str] = None


class IntentClassification(BaseModel):
    """Structured output requested from the intent-classification LLM."""

    agent_id: str
    intent: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    extracted_params: dict[str, Any] = Field(default_factory=dict)


class ClassificationResult(BaseModel):
    agent_id: str
    intent: str
    confidence: float
    reasoning: str = ""
    extracted_params: dict[str, Any] = Field(default_factory=dict)
    latency_ms: int = 0
    cache_hit: bool = False
    cost_usd: float = 0.0
    query_hash: Optional[str] = None
