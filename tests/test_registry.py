from __future__ import annotations

import allure
from fakes import FullAdapter, ScriptedAdapter

from llm_relay.config import Settings
from llm_relay.orchestrator.backend import (
    AnthropicBackend,
    EchoBackend,
    OllamaBackend,
    OpenAICompatibleBackend,
)
from llm_relay.orchestrator.models import Operation
from llm_relay.orchestrator.registry import AdapterRegistry, build_default_registry

pytestmark = [
    allure.epic("LLM Relay"),
    allure.feature("Backend Registry"),
]


def test_lookup_returns_bound_operation() -> None:
    adapter = ScriptedAdapter("anthropic")
    registry = AdapterRegistry({"Anthropic": adapter})

    adapter_fn = registry.lookup("anthropic", Operation.GENERATE_TEXT)

    assert adapter_fn is not None
    assert adapter_fn.__self__ is adapter


def test_lookup_reports_missing_operation_and_backend() -> None:
    registry = AdapterRegistry({"anthropic": ScriptedAdapter("anthropic")})

    assert registry.lookup("anthropic", Operation.STREAM_TEXT) is None
    assert registry.lookup("anthropic", Operation.GENERATE_OBJECT) is None
    assert registry.lookup("openai", Operation.GENERATE_TEXT) is None
    assert registry.lookup(None, Operation.GENERATE_TEXT) is None


def test_supported_operations() -> None:
    registry = AdapterRegistry(
        {"anthropic": ScriptedAdapter("anthropic"), "openai": FullAdapter("openai")},
    )

    assert registry.supported_operations("anthropic") == (Operation.GENERATE_TEXT,)
    assert registry.supported_operations("openai") == tuple(Operation)
    assert registry.supported_operations("missing") == ()


def test_default_registry_wires_shipped_backends() -> None:
    settings = Settings()
    settings.backends.base_urls["openai"] = "https://proxy.example.test/v1/"

    registry = build_default_registry(settings)

    assert isinstance(registry.get("anthropic"), AnthropicBackend)
    assert isinstance(registry.get("ollama"), OllamaBackend)
    assert isinstance(registry.get("echo"), EchoBackend)
    perplexity = registry.get("perplexity")
    assert isinstance(perplexity, OpenAICompatibleBackend)
    assert perplexity.name == "perplexity"
    assert registry.get("openai").base_url == "https://proxy.example.test/v1"
    assert registry.get("google") is None
    assert registry.supported_operations("echo") == (
        Operation.GENERATE_TEXT,
        Operation.STREAM_TEXT,
    )
    assert set(registry.names()) == {
        "anthropic",
        "echo",
        "mistral",
        "ollama",
        "openai",
        "openrouter",
        "perplexity",
        "xai",
    }
