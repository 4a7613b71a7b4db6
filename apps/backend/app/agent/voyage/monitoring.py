from __future__ import annotations

import logging
import time
from typing import Any, Optional

from app.schemas.runs import RunEvent
from app.storage import memory

logger = logging.getLogger(__name__)


def log_intent_classification(
    *,
    correlation_id: str,
    query: str,
    method: str,
    matched_intent: str,
    confidence: int,
    query_hash: Optional[str] = None,
    matched_agent: Optional[str] = None,
    accepted: bool = True,
    reasoning: str = "",
    cache_hit: bool = False,
    latency_ms: int = 0,
    cost_usd: float = 0.0,
    error: Optional[str] = None,
) -> None:
    """Record one LLM classification. Telemetry failures are logged and dropped."""

    event: dict[str, Any] = {
        "correlation_id": correlation_id,
        "query": query[:500],
        "query_hash": query_hash,
        "classification_method": method,
        "matched_agent": matched_agent,
        "matched_intent": matched_intent,
        "confidence": confidence,
        "accepted": accepted,
        "reasoning": reasoning,
        "cache_hit": cache_hit,
        "latency_ms": latency_ms,
        "cost_usd": cost_usd,
        "error": error,
        "timestamp": int(time.time() * 1000),
    }
    try:
        logger.info(
            "intent classification method=%s intent=%s agent=%s confidence=%s cache_hit=%s latency_ms=%s",
            method,
            matched_intent,
            matched_agent,
            confidence,
            cache_hit,
            latency_ms,
            extra={"correlation_id": correlation_id},
        )
        memory.record_classification(event)
        memory.add_event(
            correlation_id,
            RunEvent(
                ts_ms=event["timestamp"],
                level="info" if accepted else "warn",
                message=(
                    f"classification via {method} failed: {error}"
                    if error
                    else f"classified as {matched_intent} via {method}"
                ),
                data=event,
            ),
        )
    except Exception:
        logger.debug("failed to record intent classification", exc_info=True)
