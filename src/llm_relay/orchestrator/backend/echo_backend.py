"""Local deterministic backend for smoke checks and offline tests."""

from __future__ import annotations

from collections.abc import Iterator

from llm_relay.orchestrator.models import CallRequest, TextResult, TokenUsage


class EchoBackend:
    """Echo the user prompt back; implements text operations only."""

    name = "echo"

    def __init__(self, *, prefix: str = "") -> None:
        self.prefix = prefix

    def generate_text(self, request: CallRequest) -> TextResult:
        text = self._reply(request)
        input_tokens = sum(len(message.content.split()) for message in request.messages)
        output_tokens = len(text.split())
        return TextResult(
            text=text,
            usage=TokenUsage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
        )

    def stream_text(self, request: CallRequest) -> Iterator[str]:
        words = self._reply(request).split(" ")
        return iter([f"{word} " for word in words[:-1]] + words[-1:])

    def _reply(self, request: CallRequest) -> str:
        prompt = request.user_messages[-1].content.strip() if request.user_messages else ""
        return f"{self.prefix}{prompt}"
