"""Backend adapter implementations."""

from llm_relay.orchestrator.backend.anthropic import AnthropicBackend
from llm_relay.orchestrator.backend.base import (
    BackendAdapter,
    SupportsGenerateObject,
    SupportsGenerateText,
    SupportsStreamText,
)
from llm_relay.orchestrator.backend.echo_backend import EchoBackend
from llm_relay.orchestrator.backend.http_backend import HttpBackend
from llm_relay.orchestrator.backend.ollama import OllamaBackend
from llm_relay.orchestrator.backend.openai_compat import (
    OPENAI_COMPATIBLE_BACKENDS,
    OpenAICompatibleBackend,
)

__all__ = [
    "OPENAI_COMPATIBLE_BACKENDS",
    "AnthropicBackend",
    "BackendAdapter",
    "EchoBackend",
    "HttpBackend",
    "OllamaBackend",
    "OpenAICompatibleBackend",
    "SupportsGenerateObject",
    "SupportsGenerateText",
    "SupportsStreamText",
]
