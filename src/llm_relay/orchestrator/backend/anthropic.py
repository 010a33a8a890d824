"""Anthropic Messages API backend."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import httpx
from pydantic import BaseModel

from llm_relay.orchestrator.backend.http_backend import (
    HttpBackend,
    iter_sse_data,
    usage_from_counts,
)
from llm_relay.orchestrator.errors import BackendCallError
from llm_relay.orchestrator.models import CallRequest, TextResult

ANTHROPIC_API_VERSION = "2023-06-01"


class AnthropicBackend(HttpBackend):
    """Text, streaming and tool-forced structured output over ``/v1/messages``."""

    name = "anthropic"

    def _text_path(self, request: CallRequest) -> str:
        return "/v1/messages"

    def _headers(self, request: CallRequest) -> dict[str, str]:
        return {
            "x-api-key": request.credential or "",
            "anthropic-version": ANTHROPIC_API_VERSION,
            "content-type": "application/json",
        }

    def _text_payload(self, request: CallRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model_id,
            "max_tokens": request.max_output_tokens,
            "temperature": request.temperature,
            "messages": [message.to_payload() for message in request.user_messages],
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        return payload

    def _object_payload(
        self,
        request: CallRequest,
        *,
        schema: type[BaseModel],
        object_name: str,
    ) -> dict[str, Any]:
        return {
            **self._text_payload(request),
            "tools": [
                {
                    "name": object_name,
                    "description": f"Respond with a {object_name} object.",
                    "input_schema": schema.model_json_schema(),
                },
            ],
            "tool_choice": {"type": "tool", "name": object_name},
        }

    def _parse_text(self, data: dict[str, Any]) -> TextResult:
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise BackendCallError("Unexpected response type from anthropic.", backend=self.name)
        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        return TextResult(
            text=text,
            usage=usage_from_counts(usage.get("input_tokens"), usage.get("output_tokens")),
        )

    def _parse_object(self, data: dict[str, Any], *, object_name: str) -> dict[str, Any]:
        for block in data.get("content") or []:
            if (
                isinstance(block, dict)
                and block.get("type") == "tool_use"
                and block.get("name") == object_name
                and isinstance(block.get("input"), dict)
            ):
                return block["input"]
        raise BackendCallError(
            f"anthropic reply contained no {object_name!r} tool call",
            backend=self.name,
        )

    def _iter_chunks(self, response: httpx.Response) -> Iterator[str]:
        for event in iter_sse_data(response):
            event_type = event.get("type")
            if event_type == "error":
                error = event.get("error") if isinstance(event.get("error"), dict) else {}
                raise BackendCallError(
                    f"anthropic stream error: {error.get('message', 'unknown error')}",
                    backend=self.name,
                )
            if event_type == "message_stop":
                return
            if event_type != "content_block_delta":
                continue
            delta = event.get("delta")
            if isinstance(delta, dict) and delta.get("type") == "text_delta" and delta.get("text"):
                yield delta["text"]
