"""Ollama ``/api/chat`` backend."""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

import httpx
from pydantic import BaseModel

from llm_relay.orchestrator.backend.http_backend import HttpBackend, usage_from_counts
from llm_relay.orchestrator.errors import BackendCallError
from llm_relay.orchestrator.models import CallRequest, TextResult


class OllamaBackend(HttpBackend):
    """Local Ollama server; an API key is sent only when one is configured."""

    name = "ollama"
    requires_credential = False

    def _text_path(self, request: CallRequest) -> str:
        return "/api/chat"

    def _headers(self, request: CallRequest) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if request.credential:
            headers["Authorization"] = f"Bearer {request.credential}"
        return headers

    def _text_payload(self, request: CallRequest) -> dict[str, Any]:
        return {
            "model": request.model_id,
            "messages": [message.to_payload() for message in request.messages],
            "stream": False,
            "options": {
                "num_predict": request.max_output_tokens,
                "temperature": request.temperature,
            },
        }

    def _object_payload(
        self,
        request: CallRequest,
        *,
        schema: type[BaseModel],
        object_name: str,
    ) -> dict[str, Any]:
        return {**self._text_payload(request), "format": schema.model_json_schema()}

    def _parse_text(self, data: dict[str, Any]) -> TextResult:
        return TextResult(
            text=self._message_content(data),
            usage=usage_from_counts(data.get("prompt_eval_count"), data.get("eval_count")),
        )

    def _parse_object(self, data: dict[str, Any], *, object_name: str) -> str:
        return self._message_content(data)

    def _message_content(self, data: dict[str, Any]) -> str:
        error = data.get("error")
        if isinstance(error, str) and error:
            raise BackendCallError(f"Ollama error: {error}", backend=self.name)
        message = data.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise BackendCallError("Unexpected response type from Ollama.", backend=self.name)
        return content

    def _iter_chunks(self, response: httpx.Response) -> Iterator[str]:
        for line in response.iter_lines():
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(data, dict):
                continue
            if data.get("error"):
                raise BackendCallError(f"Ollama error: {data['error']}", backend=self.name)
            message = data.get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                if message["content"]:
                    yield message["content"]
            if data.get("done"):
                return
