"""Tier-1 intent matching.

Deterministic regex rules run first; the LLM classifier is consulted only when
no rule matched. The first successful rule wins, and its confidence is derived
from how well-formed the extracted port entities are.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Optional

from .intent_classifier import IntentClassifier, classification_to_match
from .monitoring import log_intent_classification
from .schemas import PatternMatch

logger = logging.getLogger(__name__)

GENERIC_WORDS = frozenset({"port", "there", "here", "location", "place", "somewhere", "anywhere"})

# confidence lost per placeholder route endpoint
GENERIC_ENDPOINT_PENALTY = 65

_PORT_CODE = re.compile(r"^[A-Z]{5}$")

_FILLER_WORDS = frozenset(
    {
        "a", "an", "the", "me", "my", "our", "show", "give", "get", "find", "tell",
        "what", "whats", "is", "are", "how", "will", "please", "calculate", "compute", "plan",
    }
)

_POTENTIAL_PORT_SKIP = frozenset(
    {
        "weather", "what", "whats", "is", "the", "at", "in", "for", "on", "condition", "conditions",
        "how", "will", "be", "like", "forecast", "tomorrow", "today", "next", "week",
        "a", "an", "of", "to", "from", "show", "tell", "me", "please", "current",
        "along", "route", "voyage", "trip", "passage", "between", "and", "during", "my", "our",
    }
)

# words that turn a captured "port" into a sentence fragment
_NON_PORT_WORDS = frozenset({"from", "to", "route", "voyage", "trip", "passage", "between", "and", "along"})

_TIME_WORDS = frozenset(
    {
        "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
        "today", "tomorrow", "now", "morning", "noon", "evening", "midnight",
    }
)

_ROUTE_FIRST_INTENTS = ("route_calculation", "bunker_planning", "weather_analysis")

_NAME = r"([A-Za-z][A-Za-z\s]*?)"
_PORT_END = r"(?=\s+(?:port|on|from|tomorrow|today|next|this)\b|\s*[,?.!]|\s*$)"
_DEST_END = r"(?=\s+(?:on|via|for|with|and|by|departing|tomorrow|today|next)\b|\s*[,?.!]|\s*$)"
_WEATHER_DEST_END = (
    r"(?=\s+(?:on|via|for|with|and|by|departing|tomorrow|today|next|weather|forecast|conditions?)\b"
    r"|\s*[,?.!]|\s*$)"
)

WEATHER_ROUTE_PATTERNS = [
    re.compile(rf"\bfrom\s+{_NAME}\s+to\s+{_NAME}{_WEATHER_DEST_END}", re.I),
    re.compile(rf"\bbetween\s+{_NAME}\s+and\s+{_NAME}{_WEATHER_DEST_END}", re.I),
    re.compile(r"\b([A-Z]{5})\s+to\s+([A-Z]{5})\b"),
]

PORT_WEATHER_PATTERNS = [
    re.compile(
        rf"weather\s+(?:conditions?\s+|forecast\s+)?(?:be\s+)?(?:like\s+)?(?:at|in|for)\s+(?:the\s+)?(?:port\s+of\s+)?{_NAME}{_PORT_END}",
        re.I,
    ),
    re.compile(rf"forecast\s+(?:at|in|for)\s+(?:the\s+)?(?:port\s+of\s+)?{_NAME}{_PORT_END}", re.I),
    re.compile(rf"^{_NAME}\s+(?:port\s+)?weather\b", re.I),
]

DATE_PATTERNS = [
    re.compile(r"\bon\s+(\d{1,2}(?:st|nd|rd|th)?\s+[A-Za-z]+(?:\s+\d{4})?)", re.I),
    re.compile(r"\b([A-Za-z]+\s+\d{1,2},?\s+\d{4})", re.I),
    re.compile(r"\b(\d{1,2}[/\-]\d{1,2}[/\-]\d{4})"),
    re.compile(r"\b(\d{4}[/\-]\d{1,2}[/\-]\d{1,2})"),
    re.compile(r"\b(tomorrow|today|next\s+week|next\s+\d+\s+days?)\b", re.I),
]

BUNKER_WITH_ROUTE_PATTERNS = [
    re.compile(rf"\bbunker(?:ing)?\s+options?\s+between\s+{_NAME}\s+and\s+{_NAME}{_DEST_END}", re.I),
    re.compile(
        rf"\bbunker(?:ing)?\s+(?:options?\s+|plan(?:ning)?\s+)?(?:for\s+)?(?:(?:the|a|my|our)\s+)?(?:voyage\s+)?from\s+{_NAME}\s+to\s+{_NAME}{_DEST_END}",
        re.I,
    ),
    re.compile(rf"\b(?:cheapest|best|optimal)\s+bunker(?:ing)?\s+(?:from\s+)?{_NAME}\s+to\s+{_NAME}{_DEST_END}", re.I),
    re.compile(rf"\bwhere\s+(?:to|should\s+(?:i|we))\s+bunker\s+(?:from\s+)?{_NAME}\s+to\s+{_NAME}{_DEST_END}", re.I),
    re.compile(rf"\bbunker(?:ing)?\s+options?\s+{_NAME}\s+to\s+{_NAME}{_DEST_END}", re.I),
]

ROUTE_PATTERNS = [
    re.compile(rf"\broute\s+from\s+{_NAME}\s+to\s+{_NAME}{_DEST_END}", re.I),
    re.compile(rf"^from\s+{_NAME}\s+to\s+{_NAME}{_DEST_END}", re.I),
    re.compile(rf"^{_NAME}\s+to\s+{_NAME}\s+(?:route|distance|voyage|trip)\b", re.I),
    re.compile(
        rf"\b(?:calculate|compute|find|get|plan)\s+(?:the\s+|a\s+)?route\s+(?:from\s+)?{_NAME}\s+to\s+{_NAME}{_DEST_END}",
        re.I,
    ),
    re.compile(rf"\bdistance\s+(?:from\s+|between\s+)?{_NAME}\s+(?:to|and)\s+{_NAME}{_DEST_END}", re.I),
    re.compile(r"\b([A-Z]{5})\s+to\s+([A-Z]{5})\b"),
]

BUNKER_PATTERNS = [
    re.compile(r"\b(?:cheapest|best|optimal|lowest\s+cost)\s+(?:bunker(?:ing)?|fuel(?:ing)?)", re.I),
    re.compile(r"\bbunker(?:ing)?\s+(?:planning|optimi[sz]ation|recommendations?|analysis|options?)", re.I),
    re.compile(r"\b(?:where|when|which\s+port)\s+(?:to|should\s+(?:i|we))\s+bunker", re.I),
    re.compile(r"\bfuel\s+stop", re.I),
    re.compile(r"\b(?:refuel(?:ing)?|bunkering)\s+(?:options?|ports?|recommendations?)", re.I),
]

_ROUTE_HINT = re.compile(r"\bfrom\s+\w+\s+to\s+\w+", re.I)
_WEATHER_HINT = re.compile(r"weather|forecast|conditions?", re.I)
_BUNKER_HINT = re.compile(r"\bbunker|\brefuel|\bfuel\s+stop", re.I)

COMPLIANCE_PATTERNS = [
    re.compile(r"\beca\s+(?:zones?|crossings?|requirements?|compliance)", re.I),
    re.compile(r"\bemission\s+(?:control|zones?|requirements?)", re.I),
    re.compile(r"\bregulatory\s+(?:compliance|requirements?)", re.I),
    re.compile(r"\bsul(?:ph|f)ur\s+(?:cap|limit|requirements?)", re.I),
]

VESSEL_INFO_PATTERNS = [
    re.compile(r"\bhow\s+many\s+vessels?\s+(?:do\s+we\s+have|are\s+there|in\s+(?:our\s+)?fleet)", re.I),
    re.compile(r"\b(?:list|show|get)\s+(?:all\s+)?(?:(?:our|the)\s+)?vessels?\b", re.I),
    re.compile(r"\b(?:number|count)\s+of\s+vessels?", re.I),
    re.compile(r"\bvessels?\s+(?:we\s+have|in\s+(?:the\s+)?fleet|in\s+the\s+system)", re.I),
    re.compile(r"\b(?:our\s+)?fleet\s+(?:list|count|overview|vessels?)", re.I),
]

FIELD_LABELS = {
    "origin": "origin port",
    "destination": "destination port",
    "port": "port",
    "route": "voyage origin and destination ports",
    "vessel": "vessel name or IMO number",
}

# asked for when a low-confidence match has no specific gap to report
INTENT_REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "port_weather": ("port",),
    "weather_analysis": ("origin", "destination"),
    "route_calculation": ("origin", "destination"),
    "bunker_planning": ("route",),
    "compliance": ("origin", "destination"),
    "vessel_info": ("vessel",),
    "hull_analysis": ("vessel",),
}


def is_generic(name: Optional[str]) -> bool:
    return bool(name) and name.strip().lower() in GENERIC_WORDS


def is_port_code(name: Optional[str]) -> bool:
    return bool(name) and bool(_PORT_CODE.match(name))


def clean_port_name(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    cleaned = re.sub(r"\s+", " ", raw.strip())
    cleaned = re.sub(r"[.,;:!?]+$", "", cleaned)
    words = cleaned.split(" ")
    while words and words[0].lower() in _FILLER_WORDS:
        words.pop(0)
    cleaned = " ".join(words)
    if len(cleaned) < 2:
        return None
    return cleaned


def extract_date(query: str) -> Optional[str]:
    for pattern in DATE_PATTERNS:
        m = pattern.search(query)
        if m:
            return m.group(1).strip()
    return None


def extract_potential_port(query: str) -> Optional[str]:
    words = [re.sub(r"[^A-Za-z]", "", w) for w in query.split()]
    for word in words:
        if len(word) >= 3 and word.lower() not in _POTENTIAL_PORT_SKIP and word[0].isupper():
            return word
    for word in words:
        if len(word) >= 4 and word.lower() not in _POTENTIAL_PORT_SKIP:
            return word
    return None


def is_plausible_port(name: Optional[str]) -> bool:
    if not name:
        return False
    words = name.lower().split()
    return len(words) <= 4 and not _NON_PORT_WORDS.intersection(words)


def port_weather_confidence(port: Optional[str]) -> int:
    if not port or is_generic(port):
        return 20
    if is_port_code(port):
        return 98
    if len(port) >= 3:
        return 95
    return 85


def route_confidence(origin: Optional[str], destination: Optional[str]) -> int:
    confidence = 90
    for endpoint in (origin, destination):
        if not endpoint or is_generic(endpoint):
            confidence -= GENERIC_ENDPOINT_PENALTY
    for endpoint in (origin, destination):
        if is_port_code(endpoint):
            confidence = min(100, confidence + 5)
    return max(0, confidence)


def _route_params(origin: str, destination: str) -> dict[str, str]:
    params: dict[str, str] = {}
    if not is_generic(origin):
        params["origin"] = origin
    if not is_generic(destination):
        params["destination"] = destination
    return params


def _weather_match(port: str, query: str, reason: str, confidence: Optional[int] = None) -> PatternMatch:
    params: dict[str, str] = {}
    if not is_generic(port):
        params["port"] = port
    date = extract_date(query)
    if date:
        params["date"] = date
    return PatternMatch(
        matched=True,
        intent_type="port_weather",
        recommended_worker="weather",
        confidence=port_weather_confidence(port) if confidence is None or is_generic(port) else confidence,
        extracted_params=params,
        reason=reason,
    )


def _match_port_weather(query: str) -> Optional[PatternMatch]:
    if not _WEATHER_HINT.search(query):
        return None
    fragment_seen = False
    for pattern in PORT_WEATHER_PATTERNS:
        m = pattern.search(query)
        if not m:
            continue
        port = clean_port_name(m.group(1))
        if not port:
            continue
        if not is_plausible_port(port):
            fragment_seen = True
            continue
        return _weather_match(port, query, f'Matched port weather pattern: port="{port}"')

    port = extract_potential_port(query)
    if port:
        # guess after a rejected clause stays below the immediate-action threshold
        confidence = 40 if fragment_seen else 85
        return _weather_match(port, query, f'Weather query with potential port: "{port}"', confidence=confidence)
    return None


def _match_endpoints(patterns: list[re.Pattern], query: str) -> Optional[tuple[str, str]]:
    for pattern in patterns:
        m = pattern.search(query)
        if not m:
            continue
        origin = clean_port_name(m.group(1))
        destination = clean_port_name(m.group(2))
        if not origin or not destination:
            continue
        return origin, destination
    return None


def _weather_route_endpoints(query: str) -> Optional[tuple[str, str]]:
    if not _WEATHER_HINT.search(query):
        return None
    endpoints = _match_endpoints(WEATHER_ROUTE_PATTERNS, query)
    # "from Monday to Friday" is a time window, not a voyage
    if endpoints and any(e.lower() in _TIME_WORDS for e in endpoints):
        return None
    return endpoints


def match_query_pattern(query: str) -> PatternMatch:
    """Run the ordered deterministic rules against ``query``.

    Order: weather along a route, port weather, bunker with route (ahead of
    route so the bunker goal survives), route, bunker without route,
    compliance, vessel info. A weather query naming a voyage never falls back
    to port weather.
    """

    q = (query or "").strip()
    if not q:
        return PatternMatch.no_match("Empty query")

    weather_route = _weather_route_endpoints(q)
    if weather_route and not _BUNKER_HINT.search(q):
        origin, destination = weather_route
        return PatternMatch(
            matched=True,
            intent_type="weather_analysis",
            recommended_worker="route",
            confidence=route_confidence(origin, destination),
            extracted_params=_route_params(origin, destination),
            reason=f"Weather along route: {origin} -> {destination}, route first then weather",
        )

    if weather_route is None:
        weather = _match_port_weather(q)
        if weather is not None:
            return weather

    endpoints = _match_endpoints(BUNKER_WITH_ROUTE_PATTERNS, q)
    if endpoints:
        origin, destination = endpoints
        return PatternMatch(
            matched=True,
            intent_type="bunker_planning",
            recommended_worker="route",
            confidence=route_confidence(origin, destination),
            extracted_params=_route_params(origin, destination),
            reason=f"Bunker planning with route: {origin} -> {destination}, route first then bunker analysis",
        )

    endpoints = _match_endpoints(ROUTE_PATTERNS, q)
    if endpoints:
        origin, destination = endpoints
        return PatternMatch(
            matched=True,
            intent_type="route_calculation",
            recommended_worker="route",
            confidence=route_confidence(origin, destination),
            extracted_params=_route_params(origin, destination),
            reason=f"Matched route pattern: {origin} -> {destination}",
        )

    if any(p.search(q) for p in BUNKER_PATTERNS):
        has_route = bool(_ROUTE_HINT.search(q))
        return PatternMatch(
            matched=True,
            intent_type="bunker_planning",
            recommended_worker="route" if has_route else None,
            confidence=75 if has_route else 40,
            reason=(
                "Bunker query with route info, route first"
                if has_route
                else "Bunker query without route info, needs reasoning or existing route data"
            ),
        )

    if any(p.search(q) for p in COMPLIANCE_PATTERNS):
        return PatternMatch(
            matched=True,
            intent_type="compliance",
            recommended_worker="compliance",
            confidence=85,
            reason="Matched compliance/ECA pattern",
        )

    if any(p.search(q) for p in VESSEL_INFO_PATTERNS):
        return PatternMatch(
            matched=True,
            intent_type="vessel_info",
            recommended_worker="vessel_info",
            confidence=90,
            reason="Matched vessel info/fleet list pattern",
        )

    return PatternMatch.no_match("No deterministic pattern matched")


def validate_extracted_data(match: PatternMatch) -> list[str]:
    """Return the fields the match still needs before work can start."""

    params = match.extracted_params or {}
    missing: list[str] = []
    if match.intent_type == "port_weather" and not params.get("port"):
        missing.append("port")
    if match.intent_type in _ROUTE_FIRST_INTENTS and match.recommended_worker == "route":
        if not params.get("origin"):
            missing.append("origin")
        if not params.get("destination"):
            missing.append("destination")
    if match.intent_type == "bunker_planning" and not match.recommended_worker:
        missing.append("route")
    return missing


def format_clarification_question(match: PatternMatch, missing: list[str]) -> str:
    fields = list(missing) or list(INTENT_REQUIRED_FIELDS.get(match.intent_type, ()))
    params = match.extracted_params or {}

    if match.intent_type == "port_weather" and "port" in fields:
        return "I can check the weather for you. Which port are you interested in?"

    if match.intent_type == "route_calculation":
        if "origin" in fields and "destination" in fields:
            return "I can calculate the route. Could you provide the origin port and destination port?"
        if "origin" in fields:
            return f"I can calculate the route to {params.get('destination')}. What is the origin port?"
        if "destination" in fields:
            return f"I can calculate the route from {params.get('origin')}. What is the destination port?"

    if match.intent_type == "bunker_planning":
        return (
            "I can help with bunker planning. Could you provide the voyage details "
            "(origin port and destination port)?"
        )

    labels = [FIELD_LABELS.get(f, f) for f in fields]
    if not labels:
        labels = [FIELD_LABELS["origin"], FIELD_LABELS["destination"], FIELD_LABELS["vessel"]]
    if len(labels) == 1:
        wanted = labels[0]
    else:
        wanted = ", ".join(labels[:-1]) + f" and {labels[-1]}"
    return f"Could you provide the {wanted}?"


class IntentMatcher:
    """Deterministic rules first, LLM classification only when nothing matched."""

    def __init__(
        self,
        classifier: Optional[IntentClassifier] = None,
        *,
        confidence_floor: float = 0.7,
        timeout_s: float = 15.0,
    ) -> None:
        self.classifier = classifier
        self.confidence_floor = confidence_floor
        self.timeout_s = timeout_s

    async def match(self, query: str, correlation_id: str) -> PatternMatch:
        deterministic = match_query_pattern(query)
        if deterministic.matched and deterministic.intent_type != "ambiguous":
            logger.info(
                "pattern matched intent=%s worker=%s confidence=%s",
                deterministic.intent_type,
                deterministic.recommended_worker,
                deterministic.confidence,
                extra={"correlation_id": correlation_id},
            )
            return deterministic
        if self.classifier is None:
            return deterministic

        start = time.perf_counter()
        try:
            classification = await asyncio.wait_for(
                self.classifier.classify(query, correlation_id), timeout=self.timeout_s
            )
        except asyncio.TimeoutError:
            logger.warning(
                "intent classifier timed out after %ss; falling back to no match",
                self.timeout_s,
                extra={"correlation_id": correlation_id},
            )
            self._record_failure(query, correlation_id, start, f"timed out after {self.timeout_s}s")
            return deterministic
        except Exception as exc:
            logger.warning(
                "intent classifier failed; falling back to no match: %s",
                exc,
                extra={"correlation_id": correlation_id},
            )
            self._record_failure(query, correlation_id, start, str(exc) or type(exc).__name__)
            return deterministic

        if classification is None:
            return deterministic

        latency_ms = classification.latency_ms or int((time.perf_counter() - start) * 1000)
        converted = classification_to_match(
            classification,
            floor=self.confidence_floor,
            known_workers=self.classifier.registry,
        )
        log_intent_classification(
            correlation_id=correlation_id,
            query=query,
            query_hash=classification.query_hash,
            method="llm_intent_classifier",
            matched_agent=classification.agent_id,
            matched_intent=converted.intent_type if converted else "ambiguous",
            confidence=int(round(classification.confidence * 100)),
            accepted=converted is not None,
            reasoning=classification.reasoning,
            cache_hit=classification.cache_hit,
            latency_ms=latency_ms,
            cost_usd=classification.cost_usd,
        )
        if converted is None:
            return PatternMatch.no_match(
                f"LLM classification rejected ({classification.agent_id}, "
                f"confidence {classification.confidence:.2f})"
            )
        return converted

    def _record_failure(self, query: str, correlation_id: str, start: float, error: str) -> None:
        log_intent_classification(
            correlation_id=correlation_id,
            query=query,
            method="llm_intent_classifier",
            matched_intent="ambiguous",
            confidence=0,
            accepted=False,
            latency_ms=int((time.perf_counter() - start) * 1000),
            error=error,
        )
