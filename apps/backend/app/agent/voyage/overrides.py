"""Typed overrides a recovery retry may pass to a worker."""

from __future__ import annotations

from typing import Any, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import OverrideValidationError


class _Override(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RouteOverride(_Override):
    origin: Optional[str] = None
    destination: Optional[str] = None
    avoid_suez: Optional[bool] = None
    speed_knots: Optional[float] = Field(default=None, gt=0, le=40)


class WeatherOverride(_Override):
    port: Optional[str] = None
    date: Optional[str] = None
    use_cached: Optional[bool] = None


class BunkerOverride(_Override):
    fuel_types: Optional[list[str]] = None
    max_deviation_nm: Optional[float] = Field(default=None, ge=0)
    quantity_mt: Optional[float] = Field(default=None, gt=0)


class VesselOverride(_Override):
    vessel_names: Optional[list[str]] = None
    imos: Optional[list[str]] = None


OVERRIDE_MODELS: dict[str, Type[_Override]] = {
    "route": RouteOverride,
    "weather": WeatherOverride,
    "bunker": BunkerOverride,
    "entity_extraction": VesselOverride,
    "vessel_info": VesselOverride,
    "hull_performance": VesselOverride,
}


def parse_override(worker: str, params: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Validate ``params`` against the worker's override record.

    Returns the record as a plain dict (unset fields dropped) so it can live in
    workflow state. Unknown keys or a worker without an override record raise
    ``OverrideValidationError``.
    """

    if not params:
        return {}
    model = OVERRIDE_MODELS.get(worker)
    if model is None:
        raise OverrideValidationError(worker, "worker does not accept overrides")
    try:
        record = model.model_validate(params)
    except ValidationError as exc:
        raise OverrideValidationError(worker, str(exc)) from exc
    return record.model_dump(exclude_none=True)
