"""Domain models for role-based backend dispatch."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel


class Role(str, Enum):
    """Caller intent labels; each maps to one configured backend/model."""

    PRIMARY = "primary"
    RESEARCH = "research"
    FALLBACK = "fallback"


class Operation(str, Enum):
    """Backend operations. The value is the adapter method name."""

    GENERATE_TEXT = "generate_text"
    STREAM_TEXT = "stream_text"
    GENERATE_OBJECT = "generate_object"


class RoleAttemptState(str, Enum):
    """Per-role outcome inside one orchestrator invocation."""

    SKIPPED_UNCONFIGURED = "skipped_unconfigured"
    SKIPPED_UNSUPPORTED = "skipped_unsupported"
    SKIPPED_NO_CREDENTIAL = "skipped_no_credential"
    SUCCEEDED = "succeeded"
    ROLE_EXHAUSTED = "role_exhausted"


@dataclass(frozen=True, slots=True)
class GenerationParameters:
    """Output size cap and sampling temperature for a role."""

    max_output_tokens: int
    temperature: float


@dataclass(frozen=True, slots=True)
class RoleConfig:
    """Backend/model selection resolved for one role at call time."""

    role: Role
    backend_name: str
    model_id: str
    parameters: GenerationParameters


@dataclass(frozen=True, slots=True)
class Message:
    """One chat message passed to a backend."""

    role: Literal["system", "user"]
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class CallRequest:
    """Normalized request handed to a backend adapter operation."""

    credential: str | None
    model_id: str
    max_output_tokens: int
    temperature: float
    messages: tuple[Message, ...]
    schema: type[BaseModel] | None = None
    object_name: str | None = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def system_prompt(self) -> str | None:
        for message in self.messages:
            if message.role == "system":
                return message.content
        return None

    @property
    def user_messages(self) -> tuple[Message, ...]:
        return tuple(message for message in self.messages if message.role == "user")


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token accounting reported by a backend, when available."""

    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None


@dataclass(frozen=True, slots=True)
class TextResult:
    """Result of a non-streaming text generation."""

    text: str
    usage: TokenUsage | None = None


TextStream = Iterator[str]
