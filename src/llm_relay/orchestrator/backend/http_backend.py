"""Shared httpx plumbing for HTTP generation backends."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from llm_relay.orchestrator.errors import BackendCallError, SchemaValidationError
from llm_relay.orchestrator.models import CallRequest, TextResult, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0
CONNECT_TIMEOUT_SECONDS = 10.0
_ERROR_PREVIEW_CHARS = 500


class HttpBackend:
    """Base class for backends reached over HTTP.

    Subclasses build provider payloads and parse replies; this class owns the
    client lifecycle, parameter validation, error mapping and the schema
    regeneration loop for structured output. A fresh ``httpx.Client`` is opened
    per call so adapters hold no connection state between invocations.
    """

    name = "http"
    requires_credential = True

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
        name: str | None = None,
    ) -> None:
        if name is not None:
            self.name = name
        self.base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds, connect=CONNECT_TIMEOUT_SECONDS)
        self._transport = transport

    def generate_text(self, request: CallRequest) -> TextResult:
        self.validate_request(request)
        logger.debug("Generating %s text with model: %s", self.name, request.model_id)
        data = self._post_json(self._text_path(request), self._text_payload(request), request)
        return self._parse_text(data)

    def stream_text(self, request: CallRequest) -> ResponseStream:
        self.validate_request(request)
        logger.debug("Streaming %s text with model: %s", self.name, request.model_id)
        client, response = self._open_stream(
            self._text_path(request),
            self._stream_payload(request),
            request,
        )
        return ResponseStream(
            client,
            response,
            chunks=self._iter_chunks(response),
            on_transport_error=self._transport_error,
        )

    def generate_object(self, request: CallRequest) -> BaseModel:
        self.validate_request(request)
        schema = request.schema
        if schema is None:
            raise BackendCallError("Schema is required for object generation", backend=self.name)
        object_name = request.object_name or schema.__name__
        budget = max(int(request.extra.get("max_retries", 0)), 0)
        last_error: ValidationError | None = None
        for attempt_no in range(1, budget + 2):
            logger.debug(
                "Generating %s object (%r) with model %s, attempt %d",
                self.name,
                object_name,
                request.model_id,
                attempt_no,
            )
            data = self._post_json(
                self._text_path(request),
                self._object_payload(request, schema=schema, object_name=object_name),
                request,
            )
            raw = self._parse_object(data, object_name=object_name)
            try:
                if isinstance(raw, str):
                    return schema.model_validate_json(raw)
                return schema.model_validate(raw)
            except ValidationError as error:
                last_error = error
                logger.warning(
                    "%s reply for %r failed schema validation (attempt %d/%d): %s",
                    self.name,
                    object_name,
                    attempt_no,
                    budget + 1,
                    error.error_count(),
                )
        raise SchemaValidationError(
            f"{self.name} reply did not match schema {object_name!r} "
            f"after {budget + 1} attempt(s): {last_error}",
            backend=self.name,
        ) from last_error

    def validate_request(self, request: CallRequest) -> None:
        """Reject requests the provider would refuse anyway."""

        if self.requires_credential and not request.credential:
            raise BackendCallError(f"{self.name} API key is required", backend=self.name)
        if not request.model_id:
            raise BackendCallError(f"{self.name} model id is required", backend=self.name)
        if not request.user_messages:
            raise BackendCallError("Invalid or empty messages provided", backend=self.name)
        for message in request.messages:
            if not message.content:
                raise BackendCallError(
                    "Invalid message format. Each message must have role and content",
                    backend=self.name,
                )

    def _text_path(self, request: CallRequest) -> str:
        raise NotImplementedError

    def _headers(self, request: CallRequest) -> dict[str, str]:
        raise NotImplementedError

    def _text_payload(self, request: CallRequest) -> dict[str, Any]:
        raise NotImplementedError

    def _stream_payload(self, request: CallRequest) -> dict[str, Any]:
        return {**self._text_payload(request), "stream": True}

    def _object_payload(
        self,
        request: CallRequest,
        *,
        schema: type[BaseModel],
        object_name: str,
    ) -> dict[str, Any]:
        raise NotImplementedError

    def _parse_text(self, data: dict[str, Any]) -> TextResult:
        raise NotImplementedError

    def _parse_object(self, data: dict[str, Any], *, object_name: str) -> str | dict[str, Any]:
        raise NotImplementedError

    def _iter_chunks(self, response: httpx.Response) -> Iterator[str]:
        raise NotImplementedError

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    def _post_json(
        self,
        path: str,
        payload: dict[str, Any],
        request: CallRequest,
    ) -> dict[str, Any]:
        with self._client() as client:
            try:
                response = client.post(path, json=payload, headers=self._headers(request))
            except httpx.HTTPError as error:
                raise self._transport_error(error) from error
            self._raise_for_status(response)
            try:
                data = response.json()
            except ValueError as error:
                raise BackendCallError(
                    f"{self.name} returned a non-JSON response",
                    backend=self.name,
                    status_code=response.status_code,
                ) from error
        if not isinstance(data, dict):
            raise BackendCallError(
                f"{self.name} returned an unexpected response shape",
                backend=self.name,
                status_code=response.status_code,
            )
        return data

    def _open_stream(
        self,
        path: str,
        payload: dict[str, Any],
        request: CallRequest,
    ) -> tuple[httpx.Client, httpx.Response]:
        client = self._client()
        try:
            http_request = client.build_request(
                "POST",
                path,
                json=payload,
                headers=self._headers(request),
            )
            response = client.send(http_request, stream=True)
        except httpx.HTTPError as error:
            client.close()
            raise self._transport_error(error) from error
        if not response.is_success:
            try:
                response.read()
                self._raise_for_status(response)
            finally:
                response.close()
                client.close()
        return client, response

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        raise BackendCallError(
            f"{self.name} API error (HTTP {response.status_code}): {_error_message(response)}",
            backend=self.name,
            status_code=response.status_code,
        )

    def _transport_error(self, error: httpx.HTTPError) -> BackendCallError:
        if isinstance(error, httpx.TimeoutException):
            return BackendCallError(f"{self.name} request timeout: {error}", backend=self.name)
        return BackendCallError(f"{self.name} network error: {error}", backend=self.name)


class ResponseStream:
    """Text chunks of one streamed reply; owns the client and response behind them.

    The connection is released when iteration ends, fails, or ``close()`` is
    called, including before the first chunk is read. Usable as a context
    manager.
    """

    def __init__(
        self,
        client: httpx.Client,
        response: httpx.Response,
        *,
        chunks: Iterator[str],
        on_transport_error: Callable[[httpx.HTTPError], BackendCallError],
    ) -> None:
        self._client = client
        self._response = response
        self._chunks = chunks
        self._on_transport_error = on_transport_error
        self.closed = False

    def __iter__(self) -> ResponseStream:
        return self

    def __next__(self) -> str:
        if self.closed:
            raise StopIteration
        try:
            return next(self._chunks)
        except StopIteration:
            self.close()
            raise
        except httpx.HTTPError as error:
            self.close()
            raise self._on_transport_error(error) from error
        except Exception:
            self.close()
            raise

    def __enter__(self) -> ResponseStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            close_chunks = getattr(self._chunks, "close", None)
            if callable(close_chunks):
                close_chunks()
        finally:
            self._response.close()
            self._client.close()


def iter_sse_data(response: httpx.Response) -> Iterator[dict[str, Any]]:
    """Yield decoded JSON ``data:`` payloads from a server-sent event stream."""

    for line in response.iter_lines():
        if not line.startswith("data:"):
            continue
        data = line[len("data:") :].strip()
        if not data:
            continue
        if data == "[DONE]":
            return
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping undecodable SSE payload: %s", data[:80])
            continue
        if isinstance(event, dict):
            yield event


def usage_from_counts(
    input_tokens: object,
    output_tokens: object,
    total_tokens: object = None,
) -> TokenUsage | None:
    """Build ``TokenUsage`` from loosely typed provider counters."""

    prompt = input_tokens if isinstance(input_tokens, int) else None
    completion = output_tokens if isinstance(output_tokens, int) else None
    total = total_tokens if isinstance(total_tokens, int) else None
    if prompt is None and completion is None and total is None:
        return None
    if total is None and prompt is not None and completion is not None:
        total = prompt + completion
    return TokenUsage(input_tokens=prompt, output_tokens=completion, total_tokens=total)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:_ERROR_PREVIEW_CHARS] or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
        if isinstance(body.get("message"), str):
            return body["message"]
    return response.text[:_ERROR_PREVIEW_CHARS]
