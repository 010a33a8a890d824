"""Backend name to adapter capability lookup."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import httpx

from llm_relay.config import Settings
from llm_relay.orchestrator.backend import (
    OPENAI_COMPATIBLE_BACKENDS,
    AnthropicBackend,
    EchoBackend,
    OllamaBackend,
    OpenAICompatibleBackend,
)
from llm_relay.orchestrator.backend.base import (
    BackendAdapter,
    SupportsGenerateObject,
    SupportsGenerateText,
    SupportsStreamText,
)
from llm_relay.orchestrator.models import CallRequest, Operation

AdapterFn = Callable[[CallRequest], Any]

OPERATION_CAPABILITIES: dict[Operation, type] = {
    Operation.GENERATE_TEXT: SupportsGenerateText,
    Operation.STREAM_TEXT: SupportsStreamText,
    Operation.GENERATE_OBJECT: SupportsGenerateObject,
}


class AdapterRegistry:
    """Runtime registry queried by backend name and operation."""

    def __init__(self, adapters: dict[str, BackendAdapter] | None = None) -> None:
        self._adapters: dict[str, BackendAdapter] = {}
        for name, adapter in (adapters or {}).items():
            self.register(name, adapter)

    def register(self, name: str, adapter: BackendAdapter) -> None:
        self._adapters[_normalize_name(name)] = adapter

    def names(self) -> Iterable[str]:
        return tuple(sorted(self._adapters))

    def get(self, name: str) -> BackendAdapter | None:
        return self._adapters.get(_normalize_name(name))

    def lookup(self, backend_name: str | None, operation: Operation) -> AdapterFn | None:
        """Return the bound operation, or None when the backend or operation is absent."""

        if not backend_name:
            return None
        adapter = self.get(backend_name)
        if adapter is None:
            return None
        if not isinstance(adapter, OPERATION_CAPABILITIES[operation]):
            return None
        return getattr(adapter, operation.value)

    def supported_operations(self, backend_name: str) -> tuple[Operation, ...]:
        return tuple(
            operation
            for operation in Operation
            if self.lookup(backend_name, operation) is not None
        )


def _normalize_name(value: str) -> str:
    return value.strip().lower()


def build_default_registry(
    settings: Settings,
    *,
    transport: httpx.BaseTransport | None = None,
) -> AdapterRegistry:
    """Register the shipped backends using base URLs and timeout from settings."""

    timeout = settings.backends.request_timeout_seconds
    registry = AdapterRegistry()
    for name, base_url in settings.backends.base_urls.items():
        if name == "anthropic":
            adapter: BackendAdapter = AnthropicBackend(
                base_url=base_url,
                timeout_seconds=timeout,
                transport=transport,
            )
        elif name == "ollama":
            adapter = OllamaBackend(base_url=base_url, timeout_seconds=timeout, transport=transport)
        elif name in OPENAI_COMPATIBLE_BACKENDS:
            adapter = OpenAICompatibleBackend(
                base_url=base_url,
                timeout_seconds=timeout,
                transport=transport,
                name=name,
            )
        else:
            continue
        registry.register(name, adapter)
    registry.register(EchoBackend.name, EchoBackend())
    return registry
