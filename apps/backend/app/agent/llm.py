from __future__ import annotations
from functools import lru_cache
import os
from typing import Any, Literal, Optional, Type, TypeVar
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel
from langchain_openai import ChatOpenAI

T = TypeVar("T", bound=BaseModel)

LLMTask = Literal["intent_classification", "reasoning"]

_TASK_MODEL_ENV = {
    "intent_classification": "VOYAGE_CLASSIFIER_MODEL",
    "reasoning": "VOYAGE_REASONER_MODEL",
}

_TASK_TEMPERATURE = {
    "intent_classification": 0.0,
    "reasoning": 0.2,
}


def _to_message(x: Any) -> BaseMessage:
    if isinstance(x, BaseMessage):
        return x
    if isinstance(x, str):
        return HumanMessage(content=x)
    if isinstance(x, dict):
        role = (x.get("role") or "user").lower()
        content = x.get("content", "")
        if role == "system":
            return SystemMessage(content=str(content))
        if role in ("assistant", "ai"):
            return AIMessage(content=str(content))
        return HumanMessage(content=str(content))
    return HumanMessage(content=str(x))


def normalize_messages(messages: list[Any]) -> list[BaseMessage]:
    return [_to_message(m) for m in (messages or [])]


@lru_cache(maxsize=8)
def make_llm(task: LLMTask = "reasoning", model: str | None = None) -> ChatOpenAI:
    default_model = os.getenv("CHAT_OPENAI_MODEL", "gpt-4o-mini")
    model_name = model or os.getenv(_TASK_MODEL_ENV[task], default_model)
    max_out = int(os.getenv("CHAT_OPENAI_MAX_OUTPUT_TOKENS", "1000"))
    temperature = float(os.getenv("CHAT_OPENAI_TEMPERATURE", str(_TASK_TEMPERATURE[task])))
    timeout = float(os.getenv("CHAT_OPENAI_TIMEOUT_S", "20"))
    return ChatOpenAI(model=model_name, max_tokens=max_out, temperature=temperature, timeout=timeout)


def _repair_prompt(exc: Exception) -> SystemMessage:
    return SystemMessage(
        content=(
            "Your last response did not match the required schema.\n"
            "Return ONLY a valid structured output for the schema. Do not add extra keys.\n"
            f"Validation/parsing error: {str(exc)[:900]}"
        )
    )


def _coerce_parsed(out: Any, schema: Type[T]) -> T:
    if isinstance(out, dict) and "parsed" in out:
        parsing_error = out.get("parsing_error")
        if parsing_error:
            raise parsing_error
        out = out.get("parsed")
    if not isinstance(out, schema):
        out = schema.model_validate(out)
    return out


def call_llm_structured(
    messages: list[Any],
    schema: Type[T],
    *,
    retries: int = 2,
    task: LLMTask = "reasoning",
    model: str | None = None,
) -> T:
    ms = normalize_messages(messages)
    last_exc: Optional[Exception] = None
    for attempt in range(max(1, retries + 1)):
        try:
            llm = make_llm(task=task, model=model)
            runnable = llm.with_structured_output(schema, include_raw=True)
            return _coerce_parsed(runnable.invoke(ms), schema)
        except Exception as exc:
            last_exc = exc
            if attempt < max(1, retries + 1) - 1:
                ms = ms + [_repair_prompt(exc)]
                continue
            raise

    raise last_exc or RuntimeError("call_llm_structured failed")

