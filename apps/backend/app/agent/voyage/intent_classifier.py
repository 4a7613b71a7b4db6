from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Container, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from app.agent.llm import call_llm_structured

from .cache import TTLCache, query_hash
from .registry import AgentRegistry
from .schemas import CANONICAL_INTENTS, ClassificationResult, IntentClassification, PatternMatch

logger = logging.getLogger(__name__)

# flat per-call estimate for a small classification prompt on gpt-4o-mini
CLASSIFICATION_COST_USD = 0.0001

AGENT_INTENTS: dict[str, str] = {
    "vessel_info": "vessel_info",
    "vessel_selection": "vessel_info",
    "entity_extraction": "vessel_info",
    "bunker": "bunker_planning",
    "rob_tracking": "bunker_planning",
    "route": "route_calculation",
    "weather": "port_weather",
    "compliance": "compliance",
    "hull_performance": "hull_analysis",
}

_AGENT_ALIASES = {
    "entity_extractor": "entity_extraction",
    "hull_agent": "hull_performance",
    "rob_agent": "rob_tracking",
}

_PARAM_ALIASES = {
    "origin_port": "origin",
    "destination_port": "destination",
    "port_name": "port",
}

CLASSIFIER_PROMPT = """You route maritime voyage-planning questions to exactly one worker.

Workers:
{workers}

Return:
- agent_id: the worker that should run FIRST (one of the names above)
- intent: the user's overall goal, one of: {intents}
- confidence: 0.0 to 1.0
- reasoning: one sentence
- extracted_params: origin_port, destination_port, port, date, vessel_names (list) when present

If the user ultimately wants bunkering advice, the intent is bunker_planning even when the first worker is route or entity_extraction."""


def normalize_agent_id(agent_id: str) -> str:
    name = (agent_id or "").strip().lower()
    name = _AGENT_ALIASES.get(name, name)
    if name.endswith("_agent"):
        name = name[: -len("_agent")]
    return _AGENT_ALIASES.get(name, name)


def normalize_params(params: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in (params or {}).items():
        if value is None or value == "":
            continue
        out[_PARAM_ALIASES.get(key, key)] = value
    names = out.get("vessel_names")
    if isinstance(names, str):
        out["vessel_names"] = [n.strip() for n in names.split(",") if n.strip()]
    elif isinstance(names, (list, tuple)):
        out["vessel_names"] = [str(n).strip() for n in names if str(n).strip()]
    return out


def _is_bunker_like(text: Optional[str]) -> bool:
    return bool(text) and "bunker" in text.lower()


def resolve_intent(classification: ClassificationResult) -> str:
    """Map a classification onto a canonical intent, or ``ambiguous``."""

    intent = (classification.intent or "").strip().lower()
    resolved = intent if intent in CANONICAL_INTENTS else AGENT_INTENTS.get(classification.agent_id, "ambiguous")
    if classification.agent_id in ("route", "entity_extraction") and resolved != "bunker_planning":
        if _is_bunker_like(classification.intent) or _is_bunker_like(classification.reasoning):
            resolved = "bunker_planning"
    return resolved


def _params_as_text(params: dict[str, Any]) -> dict[str, str]:
    out: dict[str, str] = {}
    for key, value in params.items():
        if isinstance(value, (list, tuple)):
            out[key] = ", ".join(str(v) for v in value)
        else:
            out[key] = str(value)
    return out


def classification_to_match(
    classification: ClassificationResult,
    *,
    floor: float = 0.7,
    known_workers: Optional[Container[str]] = None,
) -> Optional[PatternMatch]:
    """Convert an accepted classification into a match, ``None`` when rejected."""

    if classification.confidence < floor:
        return None
    intent = resolve_intent(classification)
    if intent == "ambiguous":
        return None
    worker = classification.agent_id or None
    if worker and known_workers is not None and worker not in known_workers:
        worker = None
    return PatternMatch(
        matched=True,
        intent_type=intent,
        recommended_worker=worker,
        confidence=int(round(classification.confidence * 100)),
        extracted_params=_params_as_text(classification.extracted_params),
        reason=f"LLM classification: {classification.reasoning}",
        method="llm_classifier",
        latency_ms=classification.latency_ms,
        cache_hit=classification.cache_hit,
        cost_usd=classification.cost_usd,
        query_hash=classification.query_hash,
    )


class IntentClassifier:
    def __init__(self, registry: AgentRegistry, cache: TTLCache, *, retries: int = 1) -> None:
        self.registry = registry
        self.cache = cache
        self.retries = retries

    def _messages(self, query: str) -> list:
        workers = "\n".join(
            f"- {a.name}: {a.description}" for a in self.registry.get_all_agents()
        )
        system = CLASSIFIER_PROMPT.format(workers=workers, intents=", ".join(CANONICAL_INTENTS))
        return [SystemMessage(content=system), HumanMessage(content=query)]

    async def classify(self, query: str, correlation_id: str) -> Optional[ClassificationResult]:
        key = query_hash(query)
        start = time.perf_counter()
        cached = self.cache.get(key)
        if cached is not None:
            return cached.model_copy(
                update={"cache_hit": True, "cost_usd": 0.0, "latency_ms": int((time.perf_counter() - start) * 1000)}
            )

        try:
            out = await asyncio.to_thread(
                call_llm_structured,
                self._messages(query),
                IntentClassification,
                retries=self.retries,
                task="intent_classification",
            )
        except Exception as exc:
            logger.warning("intent classification failed: %s", exc, extra={"correlation_id": correlation_id})
            return None

        agent_id = normalize_agent_id(out.agent_id)
        if agent_id not in self.registry:
            logger.info("classifier proposed unknown worker %s", out.agent_id, extra={"correlation_id": correlation_id})
        result = ClassificationResult(
            agent_id=agent_id,
            intent=out.intent,
            confidence=out.confidence,
            reasoning=out.reasoning,
            extracted_params=normalize_params(out.extracted_params),
            latency_ms=int((time.perf_counter() - start) * 1000),
            cache_hit=False,
            cost_usd=CLASSIFICATION_COST_USD,
            query_hash=key,
        )
        self.cache.set(key, result)
        return result
