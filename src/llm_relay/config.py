"""Runtime configuration for role routing, retries and backends."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse

from llm_relay.orchestrator.models import GenerationParameters, Role

ENV_PREFIX = "LLM_RELAY"

DEFAULT_BASE_URLS: dict[str, str] = {
    "anthropic": "https://api.anthropic.com",
    "openai": "https://api.openai.com/v1",
    "perplexity": "https://api.perplexity.ai",
    "openrouter": "https://openrouter.ai/api/v1",
    "xai": "https://api.x.ai/v1",
    "mistral": "https://api.mistral.ai/v1",
    "ollama": "http://localhost:11434",
}


# An empty tuple accepts any model id (local or routed backends).
KNOWN_MODELS: dict[str, tuple[str, ...]] = {
    "anthropic": (
        "claude-3-7-sonnet-20250219",
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
    ),
    "openai": ("gpt-4o", "gpt-4o-mini", "gpt-4.1", "gpt-4.1-mini", "o1", "o3-mini", "o4-mini"),
    "perplexity": ("sonar-pro", "sonar", "sonar-reasoning-pro", "sonar-deep-research"),
    "xai": ("grok-3", "grok-3-mini", "grok-2"),
    "mistral": ("mistral-large-latest", "mistral-small-latest", "codestral-latest"),
    "openrouter": (),
    "ollama": (),
    "echo": (),
}


def is_known_model(backend: str, model_id: str) -> bool:
    """True unless the backend lists its models and ``model_id`` is not among them."""

    models = KNOWN_MODELS.get(backend)
    if not models:
        return True
    return model_id in models


@dataclass(slots=True)
class RoleSettings:
    """Backend/model selection and generation parameters for one role."""

    backend: str | None = None
    model_id: str | None = None
    max_output_tokens: int = 64_000
    temperature: float = 0.2

    @property
    def parameters(self) -> GenerationParameters:
        return GenerationParameters(
            max_output_tokens=self.max_output_tokens,
            temperature=self.temperature,
        )


@dataclass(slots=True)
class RetrySettings:
    """Process-wide retry budget for one backend call."""

    max_retries: int = 2
    initial_delay_seconds: float = 1.0


@dataclass(slots=True)
class BackendSettings:
    """Transport settings shared by HTTP backends."""

    request_timeout_seconds: float = 120.0
    base_urls: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_BASE_URLS))
    project_root: Path | None = None


def _default_primary() -> RoleSettings:
    return RoleSettings(backend="anthropic", model_id="claude-3-7-sonnet-20250219")


def _default_research() -> RoleSettings:
    return RoleSettings(
        backend="perplexity",
        model_id="sonar-pro",
        max_output_tokens=8_700,
        temperature=0.1,
    )


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    primary: RoleSettings = field(default_factory=_default_primary)
    research: RoleSettings = field(default_factory=_default_research)
    fallback: RoleSettings = field(default_factory=RoleSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    backends: BackendSettings = field(default_factory=BackendSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults for local development."""

        project_root = _env_str(f"{ENV_PREFIX}_PROJECT_ROOT")
        return cls(
            primary=_role_from_env(Role.PRIMARY, _default_primary()),
            research=_role_from_env(Role.RESEARCH, _default_research()),
            fallback=_role_from_env(Role.FALLBACK, RoleSettings()),
            retry=RetrySettings(
                max_retries=int(os.getenv(f"{ENV_PREFIX}_MAX_RETRIES", "2")),
                initial_delay_seconds=float(
                    os.getenv(f"{ENV_PREFIX}_INITIAL_RETRY_DELAY_SECONDS", "1.0"),
                ),
            ),
            backends=BackendSettings(
                request_timeout_seconds=float(
                    os.getenv(f"{ENV_PREFIX}_REQUEST_TIMEOUT_SECONDS", "120.0"),
                ),
                base_urls={
                    backend: _env_str(f"{ENV_PREFIX}_{backend.upper()}_BASE_URL") or default
                    for backend, default in DEFAULT_BASE_URLS.items()
                },
                project_root=Path(project_root) if project_root else None,
            ),
        )

    def model_warnings(self) -> list[str]:
        """Describe role models missing from ``KNOWN_MODELS``; never blocks a call."""

        warnings: list[str] = []
        for role in Role:
            role_settings = self.role(role)
            if not role_settings.backend or not role_settings.model_id:
                continue
            if not is_known_model(role_settings.backend, role_settings.model_id):
                warnings.append(
                    f"Model {role_settings.model_id!r} is not a known "
                    f"{role_settings.backend} model (role {role.value}).",
                )
        return warnings

    def role(self, role: Role) -> RoleSettings:
        return {
            Role.PRIMARY: self.primary,
            Role.RESEARCH: self.research,
            Role.FALLBACK: self.fallback,
        }[role]

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        for role in Role:
            role_settings = self.role(role)
            if not 0.0 <= role_settings.temperature <= 1.0:
                raise ValueError(
                    f"{ENV_PREFIX}_{role.name}_TEMPERATURE must be between 0 and 1.",
                )
            if role_settings.max_output_tokens <= 0:
                raise ValueError(f"{ENV_PREFIX}_{role.name}_MAX_OUTPUT_TOKENS must be > 0.")
        if self.retry.max_retries < 0:
            raise ValueError(f"{ENV_PREFIX}_MAX_RETRIES must be >= 0.")
        if self.retry.initial_delay_seconds < 0:
            raise ValueError(f"{ENV_PREFIX}_INITIAL_RETRY_DELAY_SECONDS must be >= 0.")
        if self.backends.request_timeout_seconds <= 0:
            raise ValueError(f"{ENV_PREFIX}_REQUEST_TIMEOUT_SECONDS must be > 0.")
        for backend, base_url in self.backends.base_urls.items():
            parsed = urlparse(base_url)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError(
                    f"Invalid base URL for backend {backend!r}: {base_url!r}. "
                    "Expected an absolute URL with http:// or https:// scheme.",
                )


class RoleConfigProvider(Protocol):
    """Role-keyed configuration consumed by the orchestrator."""

    def get_backend_for_role(self, role: Role) -> str | None:
        """Backend name configured for the role, or None."""

    def get_model_id_for_role(self, role: Role) -> str | None:
        """Model identifier configured for the role, or None."""

    def get_parameters_for_role(self, role: Role) -> GenerationParameters:
        """Generation parameters for the role (always available)."""


class EnvRoleConfigProvider:
    """Re-reads the environment on every lookup so live edits apply to the next call.

    The orchestrator calls ``snapshot()`` once per role so backend, model and
    parameters come from one validated read of the environment.
    """

    def snapshot(self) -> StaticRoleConfigProvider:
        settings = Settings.from_env()
        settings.validate()
        return StaticRoleConfigProvider(settings)

    def get_backend_for_role(self, role: Role) -> str | None:
        return self.snapshot().get_backend_for_role(role)

    def get_model_id_for_role(self, role: Role) -> str | None:
        return self.snapshot().get_model_id_for_role(role)

    def get_parameters_for_role(self, role: Role) -> GenerationParameters:
        return self.snapshot().get_parameters_for_role(role)


class StaticRoleConfigProvider:
    """Serves a fixed ``Settings`` snapshot."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def get_backend_for_role(self, role: Role) -> str | None:
        return self.settings.role(role).backend

    def get_model_id_for_role(self, role: Role) -> str | None:
        return self.settings.role(role).model_id

    def get_parameters_for_role(self, role: Role) -> GenerationParameters:
        return self.settings.role(role).parameters


def _role_from_env(role: Role, defaults: RoleSettings) -> RoleSettings:
    prefix = f"{ENV_PREFIX}_{role.name}"
    backend = _env_str(f"{prefix}_BACKEND", defaults.backend)
    model_id = _env_str(f"{prefix}_MODEL", defaults.model_id)
    return RoleSettings(
        backend=backend.lower() if backend else None,
        model_id=model_id,
        max_output_tokens=int(
            os.getenv(f"{prefix}_MAX_OUTPUT_TOKENS", str(defaults.max_output_tokens)),
        ),
        temperature=float(os.getenv(f"{prefix}_TEMPERATURE", str(defaults.temperature))),
    )


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip()
    return normalized or None
