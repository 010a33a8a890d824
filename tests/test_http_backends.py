from __future__ import annotations

import json

import allure
import httpx
import pytest
from fakes import SleepRecorder
from pydantic import BaseModel

from llm_relay.config import RoleSettings, Settings
from llm_relay.orchestrator.backend import (
    AnthropicBackend,
    OllamaBackend,
    OpenAICompatibleBackend,
)
from llm_relay.orchestrator.backend.http_backend import usage_from_counts
from llm_relay.orchestrator.errors import BackendCallError, SchemaValidationError
from llm_relay.orchestrator.failure_classifier import is_retryable
from llm_relay.orchestrator.models import CallRequest, Message, TokenUsage
from llm_relay.orchestrator.services import build_orchestrator

pytestmark = [
    allure.epic("LLM Relay"),
    allure.feature("HTTP Backends"),
]


class Headline(BaseModel):
    title: str
    score: int


def _request(
    *,
    credential: str | None = "sk-test",
    system_prompt: str | None = "Be terse.",
    schema: type[BaseModel] | None = None,
    max_retries: int = 0,
) -> CallRequest:
    messages = []
    if system_prompt:
        messages.append(Message(role="system", content=system_prompt))
    messages.append(Message(role="user", content="Hello"))
    return CallRequest(
        credential=credential,
        model_id="model-x",
        max_output_tokens=256,
        temperature=0.3,
        messages=tuple(messages),
        schema=schema,
        object_name="headline" if schema else None,
        extra={"max_retries": max_retries},
    )


def _sse(*events: object) -> bytes:
    lines = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {payload}\n\n")
    return "".join(lines).encode()


class _Recorder:
    """MockTransport handler replaying responses and keeping the requests."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.requests: list[httpx.Request] = []
        self._responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self._responses) > 1:
            return self._responses.pop(0)
        template = self._responses[0]
        return httpx.Response(
            template.status_code,
            headers=template.headers,
            content=template.content,
        )

    def body(self, index: int = 0) -> dict:
        return json.loads(self.requests[index].content)


def test_anthropic_generate_text() -> None:
    handler = _Recorder(
        httpx.Response(
            200,
            json={
                "content": [{"type": "text", "text": "Hi "}, {"type": "text", "text": "there"}],
                "usage": {"input_tokens": 12, "output_tokens": 3},
            },
        ),
    )
    backend = AnthropicBackend(
        base_url="https://anthropic.test/",
        transport=httpx.MockTransport(handler),
    )

    result = backend.generate_text(_request())

    assert result.text == "Hi there"
    assert result.usage == TokenUsage(input_tokens=12, output_tokens=3, total_tokens=15)
    sent = handler.requests[0]
    assert sent.url == "https://anthropic.test/v1/messages"
    assert sent.headers["x-api-key"] == "sk-test"
    assert sent.headers["anthropic-version"] == "2023-06-01"
    assert handler.body() == {
        "model": "model-x",
        "max_tokens": 256,
        "temperature": 0.3,
        "messages": [{"role": "user", "content": "Hello"}],
        "system": "Be terse.",
    }


def test_anthropic_stream_text() -> None:
    handler = _Recorder(
        httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=_sse(
                {"type": "message_start", "message": {}},
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hel"}},
                {"type": "ping"},
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "lo"}},
                {"type": "message_stop"},
            ),
        ),
    )
    backend = AnthropicBackend(
        base_url="https://anthropic.test",
        transport=httpx.MockTransport(handler),
    )

    chunks = list(backend.stream_text(_request()))

    assert chunks == ["Hel", "lo"]
    assert handler.body()["stream"] is True


def test_anthropic_stream_error_event_raises() -> None:
    handler = _Recorder(
        httpx.Response(
            200,
            content=_sse({"type": "error", "error": {"message": "Overloaded"}}),
        ),
    )
    backend = AnthropicBackend(
        base_url="https://anthropic.test",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(BackendCallError, match="Overloaded"):
        list(backend.stream_text(_request()))


def test_anthropic_generate_object_uses_forced_tool() -> None:
    handler = _Recorder(
        httpx.Response(
            200,
            json={
                "content": [
                    {
                        "type": "tool_use",
                        "name": "headline",
                        "input": {"title": "Rates hold", "score": 7},
                    },
                ],
            },
        ),
    )
    backend = AnthropicBackend(
        base_url="https://anthropic.test",
        transport=httpx.MockTransport(handler),
    )

    result = backend.generate_object(_request(schema=Headline))

    assert result == Headline(title="Rates hold", score=7)
    body = handler.body()
    assert body["tool_choice"] == {"type": "tool", "name": "headline"}
    assert body["tools"][0]["input_schema"]["properties"]["score"]["type"] == "integer"


def test_http_status_error_carries_status_code() -> None:
    handler = _Recorder(
        httpx.Response(429, json={"error": {"type": "rate_limit", "message": "Slow down"}}),
    )
    backend = AnthropicBackend(
        base_url="https://anthropic.test",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(BackendCallError) as excinfo:
        backend.generate_text(_request())

    assert excinfo.value.status_code == 429
    assert str(excinfo.value) == "anthropic API error (HTTP 429): Slow down"
    assert is_retryable(excinfo.value) is True


def test_stream_status_error_raises_before_iteration() -> None:
    handler = _Recorder(httpx.Response(401, json={"error": {"message": "invalid x-api-key"}}))
    backend = AnthropicBackend(
        base_url="https://anthropic.test",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(BackendCallError) as excinfo:
        backend.stream_text(_request())

    assert excinfo.value.status_code == 401
    assert is_retryable(excinfo.value) is False


def test_timeout_maps_to_retryable_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    backend = OpenAICompatibleBackend(
        base_url="https://openai.test/v1",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(BackendCallError) as excinfo:
        backend.generate_text(_request())

    assert "openai request timeout" in str(excinfo.value)
    assert is_retryable(excinfo.value) is True


def test_missing_credential_is_rejected_before_sending() -> None:
    handler = _Recorder(httpx.Response(200, json={}))
    backend = AnthropicBackend(
        base_url="https://anthropic.test",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(BackendCallError, match="API key is required"):
        backend.generate_text(_request(credential=None))

    assert handler.requests == []


def test_openai_compatible_generate_text() -> None:
    handler = _Recorder(
        httpx.Response(
            200,
            json={
                "choices": [{"message": {"role": "assistant", "content": "Sources: ..."}}],
                "usage": {"prompt_tokens": 9, "completion_tokens": 4, "total_tokens": 13},
            },
        ),
    )
    backend = OpenAICompatibleBackend(
        base_url="https://perplexity.test",
        transport=httpx.MockTransport(handler),
        name="perplexity",
    )

    result = backend.generate_text(_request())

    assert result.text == "Sources: ..."
    assert result.usage == TokenUsage(input_tokens=9, output_tokens=4, total_tokens=13)
    sent = handler.requests[0]
    assert sent.url == "https://perplexity.test/chat/completions"
    assert sent.headers["authorization"] == "Bearer sk-test"
    assert handler.body()["messages"] == [
        {"role": "system", "content": "Be terse."},
        {"role": "user", "content": "Hello"},
    ]


def test_openai_compatible_stream_text() -> None:
    handler = _Recorder(
        httpx.Response(
            200,
            content=_sse(
                {"choices": [{"delta": {"role": "assistant"}}]},
                {"choices": [{"delta": {"content": "Hi"}}]},
                {"choices": [{"delta": {"content": "!"}}]},
                "[DONE]",
            ),
        ),
    )
    backend = OpenAICompatibleBackend(
        base_url="https://openai.test/v1",
        transport=httpx.MockTransport(handler),
    )

    assert list(backend.stream_text(_request())) == ["Hi", "!"]


def test_openai_compatible_object_regenerates_on_invalid_reply() -> None:
    handler = _Recorder(
        httpx.Response(200, json={"choices": [{"message": {"content": '{"title": "x"}'}}]}),
        httpx.Response(
            200,
            json={"choices": [{"message": {"content": '{"title": "x", "score": 2}'}}]},
        ),
    )
    backend = OpenAICompatibleBackend(
        base_url="https://openai.test/v1",
        transport=httpx.MockTransport(handler),
    )

    result = backend.generate_object(_request(schema=Headline, max_retries=2))

    assert result == Headline(title="x", score=2)
    assert len(handler.requests) == 2
    assert handler.body()["response_format"]["json_schema"]["name"] == "headline"


def test_object_regeneration_budget_is_bounded() -> None:
    handler = _Recorder(
        httpx.Response(200, json={"choices": [{"message": {"content": "not json"}}]}),
    )
    backend = OpenAICompatibleBackend(
        base_url="https://openai.test/v1",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(SchemaValidationError, match="after 2 attempt"):
        backend.generate_object(_request(schema=Headline, max_retries=1))

    assert len(handler.requests) == 2


def test_ollama_text_without_credential() -> None:
    handler = _Recorder(
        httpx.Response(
            200,
            json={
                "message": {"role": "assistant", "content": "local reply"},
                "prompt_eval_count": 5,
                "eval_count": 2,
                "done": True,
            },
        ),
    )
    backend = OllamaBackend(
        base_url="http://ollama.test:11434",
        transport=httpx.MockTransport(handler),
    )

    result = backend.generate_text(_request(credential=None))

    assert result.text == "local reply"
    assert result.usage == TokenUsage(input_tokens=5, output_tokens=2, total_tokens=7)
    assert "authorization" not in handler.requests[0].headers
    assert handler.body()["options"] == {"num_predict": 256, "temperature": 0.3}


def test_ollama_streams_ndjson() -> None:
    lines = [
        {"message": {"content": "a"}, "done": False},
        {"message": {"content": "b"}, "done": False},
        {"message": {"content": ""}, "done": True},
    ]
    handler = _Recorder(
        httpx.Response(200, content="\n".join(json.dumps(line) for line in lines).encode()),
    )
    backend = OllamaBackend(
        base_url="http://ollama.test:11434",
        transport=httpx.MockTransport(handler),
    )

    assert list(backend.stream_text(_request(credential=None))) == ["a", "b"]


def test_ollama_object_uses_format_schema() -> None:
    handler = _Recorder(
        httpx.Response(200, json={"message": {"content": '{"title": "t", "score": 1}'}}),
    )
    backend = OllamaBackend(
        base_url="http://ollama.test:11434",
        transport=httpx.MockTransport(handler),
    )

    result = backend.generate_object(_request(credential=None, schema=Headline))

    assert result == Headline(title="t", score=1)
    assert handler.body()["format"]["title"] == "Headline"


def test_usage_from_counts_tolerates_missing_values() -> None:
    assert usage_from_counts(None, None) is None
    assert usage_from_counts(3, None) == TokenUsage(input_tokens=3)


def test_orchestrator_retries_http_server_errors(monkeypatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
    handler = _Recorder(
        httpx.Response(503, text="upstream unavailable"),
        httpx.Response(200, json={"content": [{"type": "text", "text": "recovered"}]}),
    )
    sleep = SleepRecorder()
    settings = Settings(
        primary=RoleSettings(backend="anthropic", model_id="claude-test"),
        research=RoleSettings(),
        fallback=RoleSettings(),
    )
    orchestrator = build_orchestrator(
        settings,
        transport=httpx.MockTransport(handler),
        sleep=sleep,
    )

    result = orchestrator.generate_text(role="primary", prompt="Hello")

    assert result.text == "recovered"
    assert len(handler.requests) == 2
    assert sleep.delays == [1.0]
    assert handler.requests[1].headers["x-api-key"] == "sk-env"


def _count_client_closes(monkeypatch) -> list[httpx.Client]:
    closed: list[httpx.Client] = []
    original_close = httpx.Client.close

    def counting_close(self: httpx.Client) -> None:
        closed.append(self)
        original_close(self)

    monkeypatch.setattr(httpx.Client, "close", counting_close)
    return closed


def _streaming_anthropic() -> AnthropicBackend:
    handler = _Recorder(
        httpx.Response(
            200,
            content=_sse(
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "a"}},
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "b"}},
                {"type": "message_stop"},
            ),
        ),
    )
    return AnthropicBackend(
        base_url="https://anthropic.test",
        transport=httpx.MockTransport(handler),
    )


def test_stream_closed_before_iteration_releases_connection(monkeypatch) -> None:
    closed = _count_client_closes(monkeypatch)

    stream = _streaming_anthropic().stream_text(_request())
    stream.close()
    stream.close()

    assert stream.closed is True
    assert len(closed) == 1
    assert list(stream) == []


def test_stream_context_manager_releases_connection_mid_iteration(monkeypatch) -> None:
    closed = _count_client_closes(monkeypatch)

    with _streaming_anthropic().stream_text(_request()) as stream:
        assert next(stream) == "a"
        assert closed == []

    assert len(closed) == 1


def test_stream_exhaustion_releases_connection(monkeypatch) -> None:
    closed = _count_client_closes(monkeypatch)

    stream = _streaming_anthropic().stream_text(_request())

    assert list(stream) == ["a", "b"]
    assert stream.closed is True
    assert len(closed) == 1
