"""Normalize caller input into the backend call shape."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel

from llm_relay.orchestrator.models import (
    CallRequest,
    GenerationParameters,
    Message,
    Operation,
)

DEFAULT_OBJECT_NAME = "generated_object"
DEFAULT_OBJECT_MAX_RETRIES = 3


def build_messages(*, system_prompt: str | None, prompt: str) -> tuple[Message, ...]:
    """Optional system message followed by the mandatory user message."""

    messages: list[Message] = []
    if system_prompt:
        messages.append(Message(role="system", content=system_prompt))
    messages.append(Message(role="user", content=prompt))
    return tuple(messages)


def build_call_request(  # noqa: PLR0913
    *,
    operation: Operation,
    credential: str | None,
    model_id: str,
    parameters: GenerationParameters,
    system_prompt: str | None,
    prompt: str,
    schema: type[BaseModel] | None = None,
    object_name: str | None = None,
    extra: Mapping[str, Any] | None = None,
) -> CallRequest:
    """Assemble a fresh ``CallRequest``; the caller's ``extra`` mapping is copied."""

    is_object = operation is Operation.GENERATE_OBJECT
    return CallRequest(
        credential=credential,
        model_id=model_id,
        max_output_tokens=parameters.max_output_tokens,
        temperature=parameters.temperature,
        messages=build_messages(system_prompt=system_prompt, prompt=prompt),
        schema=schema if is_object else None,
        object_name=(object_name or DEFAULT_OBJECT_NAME) if is_object else None,
        extra=MappingProxyType(dict(extra or {})),
    )
