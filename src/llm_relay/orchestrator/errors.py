"""Error taxonomy for orchestrator calls."""

from __future__ import annotations


class OrchestratorError(RuntimeError):
    """Base class for errors raised by the orchestrator and its backends."""


class PromptMissingError(OrchestratorError):
    """The caller supplied no user prompt."""

    def __init__(self) -> None:
        super().__init__("User prompt content is missing.")


class RoleConfigurationMissingError(OrchestratorError):
    """A role has no backend or model configured."""

    def __init__(self, role: str, *, backend_name: str | None, model_id: str | None) -> None:
        super().__init__(
            f"Configuration missing for role '{role}'. "
            f"Backend: {backend_name}, Model: {model_id}",
        )
        self.role = role


class RoleConfigurationInvalidError(OrchestratorError):
    """A role's configuration could not be loaded or failed validation."""

    def __init__(self, role: str, *, reason: str) -> None:
        super().__init__(f"Invalid configuration for role '{role}': {reason}")
        self.role = role


class UnsupportedOperationError(OrchestratorError):
    """The configured backend does not implement the requested operation."""

    def __init__(self, operation: str, *, backend_name: str, role: str) -> None:
        super().__init__(
            f"Operation '{operation}' is not supported by backend '{backend_name}' "
            f"(role '{role}').",
        )
        self.operation = operation
        self.backend_name = backend_name
        self.role = role


class UnknownBackendError(OrchestratorError):
    """Credential resolution was asked for a backend it does not know."""

    def __init__(self, backend_name: str) -> None:
        super().__init__(f"Unknown backend '{backend_name}' for credential resolution.")
        self.backend_name = backend_name


class MissingCredentialError(OrchestratorError):
    """A backend requires a credential that is not set."""

    def __init__(self, backend_name: str, *, key_name: str) -> None:
        super().__init__(
            f"Required credential {key_name} for backend '{backend_name}' "
            "is not set in environment or session.",
        )
        self.backend_name = backend_name
        self.key_name = key_name


class BackendCallError(OrchestratorError):
    """Backend call failure with an optional HTTP-like status code."""

    def __init__(self, message: str, *, backend: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.backend = backend
        self.status_code = status_code


class SchemaValidationError(BackendCallError):
    """Backend reply did not validate against the requested schema."""


class AllRolesFailedError(OrchestratorError):
    """Every role was exhausted without any recorded error."""

    def __init__(self, operation: str, sequence: tuple[str, ...]) -> None:
        super().__init__(
            f"Service call ({operation}) failed for all configured roles in the sequence "
            f"[{', '.join(sequence)}].",
        )
        self.operation = operation
        self.sequence = sequence
