import pytest

from app.agent.voyage.errors import OverrideValidationError
from app.agent.voyage.overrides import parse_override


def test_route_override_accepted() -> None:
    assert parse_override("route", {"origin": "SGSIN", "avoid_suez": True}) == {"origin": "SGSIN", "avoid_suez": True}


def test_empty_override_is_noop() -> None:
    assert parse_override("compliance", {}) == {}
    assert parse_override("route", None) == {}


def test_unknown_key_rejected() -> None:
    with pytest.raises(OverrideValidationError) as exc:
        parse_override("weather", {"port": "SGSIN", "radius_km": 50})

    assert exc.value.worker == "weather"


def test_out_of_range_value_rejected() -> None:
    with pytest.raises(OverrideValidationError):
        parse_override("route", {"speed_knots": 0})


def test_worker_without_override_record_rejected() -> None:
    with pytest.raises(OverrideValidationError):
        parse_override("compliance", {"strict": True})
