"""Backend adapter interface for orchestrator operations."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from llm_relay.orchestrator.models import CallRequest, TextResult, TextStream


@runtime_checkable
class SupportsGenerateText(Protocol):
    """Adapter that returns a complete text reply."""

    def generate_text(self, request: CallRequest) -> TextResult:
        """Generate text for the request messages."""


@runtime_checkable
class SupportsStreamText(Protocol):
    """Adapter that returns a lazy sequence of text chunks."""

    def stream_text(self, request: CallRequest) -> TextStream:
        """Start a stream; errors raised here are eligible for retry."""


@runtime_checkable
class SupportsGenerateObject(Protocol):
    """Adapter that returns an object validated against ``request.schema``."""

    def generate_object(self, request: CallRequest) -> BaseModel:
        """Generate and validate a structured object."""


class BackendAdapter(Protocol):
    """Any object implementing a subset of the operations above.

    Capabilities are discovered by attribute lookup in the registry, so an
    adapter declares nothing beyond the methods it actually has.
    """

    name: str
