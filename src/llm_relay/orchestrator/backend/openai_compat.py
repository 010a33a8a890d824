"""Chat Completions backend shared by OpenAI-compatible providers."""

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

OPENAI_COMPATIBLE_BACKENDS = ("openai", "perplexity", "openrouter", "xai", "mistral")


class OpenAICompatibleBackend(HttpBackend):
    """``/chat/completions`` client; the ``name`` selects which provider it speaks for."""

    name = "openai"

    def _text_path(self, request: CallRequest) -> str:
        return "/chat/completions"

    def _headers(self, request: CallRequest) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {request.credential or ''}",
            "Content-Type": "application/json",
        }

    def _text_payload(self, request: CallRequest) -> dict[str, Any]:
        return {
            "model": request.model_id,
            "messages": [message.to_payload() for message in request.messages],
            "max_tokens": request.max_output_tokens,
            "temperature": request.temperature,
        }

    def _object_payload(
        self,
        request: CallRequest,
        *,
        schema: type[BaseModel],
        object_name: str,
    ) -> dict[str, Any]:
        return {
            **self._text_payload(request),
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": object_name,
                    "schema": schema.model_json_schema(),
                },
            },
        }

    def _parse_text(self, data: dict[str, Any]) -> TextResult:
        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        return TextResult(
            text=self._message_content(data),
            usage=usage_from_counts(
                usage.get("prompt_tokens"),
                usage.get("completion_tokens"),
                usage.get("total_tokens"),
            ),
        )

    def _parse_object(self, data: dict[str, Any], *, object_name: str) -> str:
        return self._message_content(data)

    def _message_content(self, data: dict[str, Any]) -> str:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise BackendCallError(f"{self.name} reply contained no choices", backend=self.name)
        message = choices[0].get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise BackendCallError(
                f"Unexpected response type from {self.name}.",
                backend=self.name,
            )
        return content

    def _iter_chunks(self, response: httpx.Response) -> Iterator[str]:
        for event in iter_sse_data(response):
            error = event.get("error")
            if error:
                message = error.get("message") if isinstance(error, dict) else error
                raise BackendCallError(f"{self.name} stream error: {message}", backend=self.name)
            choices = event.get("choices")
            if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
                continue
            delta = choices[0].get("delta")
            content = delta.get("content") if isinstance(delta, dict) else None
            if isinstance(content, str) and content:
                yield content
