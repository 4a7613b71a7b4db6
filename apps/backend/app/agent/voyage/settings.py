from __future__ import annotations

import os
from dataclasses import dataclass


def _get_int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _get_float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return default


@dataclass(frozen=True)
class OrchestratorSettings:
    max_turns: int = 100
    max_reasoning_steps: int = 15
    max_recovery_attempts: int = 3
    breaker_window: int = 10
    breaker_threshold: int = 3
    worker_timeout_s: float = 30.0
    request_timeout_s: float = 120.0
    classifier_confidence_floor: float = 0.7
    classifier_timeout_s: float = 15.0
    recursion_limit: int = 250
    intent_cache_ttl_s: float = 604_800.0
    intent_cache_max_size: int = 5_000
    route_cache_ttl_s: float = 3_600.0
    route_cache_max_size: int = 500
    weather_cache_ttl_s: float = 3_600.0
    weather_cache_max_size: int = 1_000

    @classmethod
    def from_env(cls) -> "OrchestratorSettings":
        return cls(
            max_turns=_get_int_env("VOYAGE_MAX_TURNS", cls.max_turns),
            max_reasoning_steps=_get_int_env("VOYAGE_MAX_REASONING_STEPS", cls.max_reasoning_steps),
            max_recovery_attempts=_get_int_env("VOYAGE_MAX_RECOVERY_ATTEMPTS", cls.max_recovery_attempts),
            breaker_window=_get_int_env("VOYAGE_BREAKER_WINDOW", cls.breaker_window),
            breaker_threshold=_get_int_env("VOYAGE_BREAKER_THRESHOLD", cls.breaker_threshold),
            worker_timeout_s=_get_float_env("VOYAGE_WORKER_TIMEOUT_S", cls.worker_timeout_s),
            request_timeout_s=_get_float_env("VOYAGE_REQUEST_TIMEOUT_S", cls.request_timeout_s),
            classifier_confidence_floor=_get_float_env(
                "VOYAGE_CLASSIFIER_CONFIDENCE_FLOOR", cls.classifier_confidence_floor
            ),
            classifier_timeout_s=_get_float_env("VOYAGE_CLASSIFIER_TIMEOUT_S", cls.classifier_timeout_s),
            recursion_limit=_get_int_env("VOYAGE_RECURSION_LIMIT", cls.recursion_limit),
            intent_cache_ttl_s=_get_float_env("VOYAGE_INTENT_CACHE_TTL_S", cls.intent_cache_ttl_s),
            intent_cache_max_size=_get_int_env("VOYAGE_INTENT_CACHE_MAX_SIZE", cls.intent_cache_max_size),
            route_cache_ttl_s=_get_float_env("VOYAGE_ROUTE_CACHE_TTL_S", cls.route_cache_ttl_s),
            route_cache_max_size=_get_int_env("VOYAGE_ROUTE_CACHE_MAX_SIZE", cls.route_cache_max_size),
            weather_cache_ttl_s=_get_float_env("VOYAGE_WEATHER_CACHE_TTL_S", cls.weather_cache_ttl_s),
            weather_cache_max_size=_get_int_env("VOYAGE_WEATHER_CACHE_MAX_SIZE", cls.weather_cache_max_size),
        )
