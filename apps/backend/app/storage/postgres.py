from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from langchain_core.messages import BaseMessage, messages_from_dict, messages_to_dict

logger = logging.getLogger(__name__)

CREATE_TABLE = """
create table if not exists voyage_checkpoints (
    correlation_id text primary key,
    state jsonb not null,
    updated_at timestamptz not null default now()
)
"""


def serialize_state(state: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in state.items():
        if key == "messages" and isinstance(value, list):
            result[key] = messages_to_dict([m for m in value if isinstance(m, BaseMessage)])
        else:
            result[key] = value
    # round-trip through json so opaque artifacts degrade to plain data
    return json.loads(json.dumps(result, default=str))


def deserialize_state(payload: Dict[str, Any]) -> Dict[str, Any]:
    state = dict(payload)
    if isinstance(state.get("messages"), list):
        state["messages"] = messages_from_dict(state["messages"])
    return state


class PostgresCheckpointStore:
    """Checkpoint store backed by one jsonb row per correlation id."""

    def __init__(self, url: str) -> None:
        self.url = url
        self._ready = False

    def _run_select(self, query: str, params: tuple = ()) -> list[dict]:
        with psycopg.connect(self.url, autocommit=True) as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                return cur.fetchall()

    def _run_execute(self, query: str, params: tuple = ()) -> None:
        with psycopg.connect(self.url, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)

    def _ensure_table(self) -> None:
        if not self._ready:
            self._run_execute(CREATE_TABLE)
            self._ready = True

    def save(self, state: Dict[str, Any], correlation_id: str) -> None:
        self._ensure_table()
        self._run_execute(
            """
            insert into voyage_checkpoints(correlation_id, state, updated_at)
            values (%s, %s, now())
            on conflict (correlation_id) do update set state = excluded.state, updated_at = now()
            """,
            (correlation_id, Jsonb(serialize_state(state))),
        )
        logger.debug("checkpoint saved", extra={"correlation_id": correlation_id})

    def load(self, correlation_id: str) -> Optional[Dict[str, Any]]:
        self._ensure_table()
        rows = self._run_select(
            "select state from voyage_checkpoints where correlation_id = %s",
            (correlation_id,),
        )
        if not rows:
            return None
        return deserialize_state(rows[0]["state"])
