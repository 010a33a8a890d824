"""Credential resolution for backend adapters."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

from llm_relay.orchestrator.errors import MissingCredentialError, UnknownBackendError

logger = logging.getLogger(__name__)

BACKEND_CREDENTIAL_KEYS: dict[str, str | None] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "perplexity": "PERPLEXITY_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "xai": "XAI_API_KEY",
    "ollama": "OLLAMA_API_KEY",
    "echo": None,
}
OPTIONAL_CREDENTIAL_BACKENDS = frozenset({"ollama", "echo"})


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Per-caller context; ``env`` takes precedence over the process environment."""

    env: Mapping[str, str] = field(default_factory=dict)


class SecretResolver:
    """Resolve backend credentials from session, project ``.env`` and process env.

    Backends beyond ``BACKEND_CREDENTIAL_KEYS`` declare their key through
    ``credential_keys`` or ``register_key``; a ``None`` key means no credential.
    """

    def __init__(
        self,
        *,
        project_root: Path | None = None,
        environ: Mapping[str, str] | None = None,
        credential_keys: Mapping[str, str | None] | None = None,
        optional_backends: Iterable[str] = (),
    ) -> None:
        self.project_root = project_root
        self._environ = environ
        self._keys = dict(BACKEND_CREDENTIAL_KEYS)
        self._optional = set(OPTIONAL_CREDENTIAL_BACKENDS)
        for backend_name, key_name in (credential_keys or {}).items():
            self.register_key(backend_name, key_name)
        for backend_name in optional_backends:
            self._optional.add(_normalize_name(backend_name))

    def register_key(
        self,
        backend_name: str,
        key_name: str | None,
        *,
        optional: bool = False,
    ) -> None:
        name = _normalize_name(backend_name)
        self._keys[name] = key_name
        if optional:
            self._optional.add(name)

    def resolve(self, backend_name: str, session: SessionContext | None = None) -> str | None:
        """Return the backend credential or raise when a required one is absent."""

        name = _normalize_name(backend_name)
        if name not in self._keys:
            raise UnknownBackendError(backend_name)
        key_name = self._keys[name]
        if key_name is None:
            return None

        value = self.lookup(key_name, session)
        if value:
            return value
        if name in self._optional:
            return None
        raise MissingCredentialError(name, key_name=key_name)

    def lookup(self, key_name: str, session: SessionContext | None = None) -> str | None:
        """Find ``key_name`` in session env, then ``.env`` file, then process env."""

        if session is not None:
            value = session.env.get(key_name)
            if value:
                return value

        file_value = self._read_dotenv().get(key_name)
        if file_value:
            return file_value

        environ = self._environ if self._environ is not None else os.environ
        return environ.get(key_name) or None

    def _read_dotenv(self) -> dict[str, str | None]:
        if self.project_root is None:
            return {}
        env_path = self.project_root / ".env"
        if not env_path.is_file():
            return {}
        try:
            return dict(dotenv_values(env_path))
        except OSError as error:
            logger.warning("Could not read %s: %s", env_path, error)
            return {}


def _normalize_name(value: str) -> str:
    return value.strip().lower()
