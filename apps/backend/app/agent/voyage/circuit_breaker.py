from __future__ import annotations

import logging
from typing import Iterable

from langchain_core.messages import BaseMessage

from .registry import AgentRegistry, AgentRegistryEntry
from .state import TurnKind, WorkflowState, has_artifact, turn_kind

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 10
DEFAULT_THRESHOLD = 3


def _tool_names(message: BaseMessage) -> set[str]:
    names: set[str] = set()
    for call in getattr(message, "tool_calls", None) or []:
        name = call.get("name") if isinstance(call, dict) else getattr(call, "name", None)
        if name:
            names.add(name)
    return names


def carries_signature(message: BaseMessage, entry: AgentRegistryEntry) -> bool:
    """True when an AI turn was produced by, or on behalf of, the worker."""

    if turn_kind(message) is not TurnKind.AI:
        return False
    if getattr(message, "name", None) == entry.name:
        return True
    content = message.content if isinstance(message.content, str) else str(message.content)
    if entry.log_tag in content:
        return True
    return bool(_tool_names(message) & set(entry.tools))


def count_signatures(messages: Iterable[BaseMessage], entry: AgentRegistryEntry) -> int:
    return sum(1 for m in messages if carries_signature(m, entry))


def made_progress(state: WorkflowState, entry: AgentRegistryEntry) -> bool:
    return any(has_artifact(state, kind) for kind in entry.produces)


def should_escape_to_supervisor(
    state: WorkflowState,
    worker: str,
    registry: AgentRegistry,
    *,
    window: int = DEFAULT_WINDOW,
    threshold: int = DEFAULT_THRESHOLD,
) -> bool:
    """Trip when ``worker`` shows up ``threshold`` times in the last ``window`` turns without output."""

    entry = registry.get_agent(worker)
    if entry is None:
        return False
    recent = (state.get("messages") or [])[-window:]
    hits = count_signatures(recent, entry)
    if hits < threshold:
        return False
    if made_progress(state, entry):
        return False
    logger.warning(
        "circuit breaker: %s seen %s times in last %s turns without output",
        worker,
        hits,
        window,
        extra={"correlation_id": state.get("correlation_id"), "worker": worker},
    )
    return True
