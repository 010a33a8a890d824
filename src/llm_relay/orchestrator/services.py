"""Unified entry points: role fallback over retried backend calls."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Mapping
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel

from llm_relay.config import (
    EnvRoleConfigProvider,
    RoleConfigProvider,
    Settings,
    StaticRoleConfigProvider,
)
from llm_relay.orchestrator.errors import (
    AllRolesFailedError,
    OrchestratorError,
    PromptMissingError,
    RoleConfigurationInvalidError,
    RoleConfigurationMissingError,
    UnsupportedOperationError,
)
from llm_relay.orchestrator.failure_classifier import ErrorClassifier, classify_failure
from llm_relay.orchestrator.models import (
    Operation,
    Role,
    RoleAttemptState,
    RoleConfig,
    TextResult,
)
from llm_relay.orchestrator.registry import AdapterRegistry, build_default_registry
from llm_relay.orchestrator.request_builder import (
    DEFAULT_OBJECT_MAX_RETRIES,
    DEFAULT_OBJECT_NAME,
    build_call_request,
)
from llm_relay.orchestrator.retry import AttemptContext, RetryExecutor, RetryPolicy
from llm_relay.orchestrator.routing import sequence_for
from llm_relay.orchestrator.secrets import SecretResolver, SessionContext

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class UnifiedOrchestrator:
    """Walks the role sequence until one role's backend call succeeds.

    Collaborators are injected and only read; every invocation builds its own
    requests, so one instance can serve concurrent callers.
    """

    def __init__(
        self,
        *,
        config_provider: RoleConfigProvider,
        registry: AdapterRegistry,
        secrets: SecretResolver,
        executor: RetryExecutor,
    ) -> None:
        self.config_provider = config_provider
        self.registry = registry
        self.secrets = secrets
        self.executor = executor

    def generate_text(
        self,
        *,
        role: Role | str,
        prompt: str | None = None,
        system_prompt: str | None = None,
        session: SessionContext | None = None,
        **extra: Any,
    ) -> TextResult:
        """Generate a complete text reply."""

        return self._run(
            Operation.GENERATE_TEXT,
            role=role,
            prompt=prompt,
            system_prompt=system_prompt,
            session=session,
            extra=extra,
        )

    def stream_text(
        self,
        *,
        role: Role | str,
        prompt: str | None = None,
        system_prompt: str | None = None,
        session: SessionContext | None = None,
        **extra: Any,
    ) -> Iterator[str]:
        """Start a text stream; failures after the stream is returned are the caller's."""

        return self._run(
            Operation.STREAM_TEXT,
            role=role,
            prompt=prompt,
            system_prompt=system_prompt,
            session=session,
            extra=extra,
        )

    def generate_object(  # noqa: PLR0913
        self,
        *,
        role: Role | str,
        schema: type[ModelT],
        prompt: str | None = None,
        system_prompt: str | None = None,
        session: SessionContext | None = None,
        object_name: str = DEFAULT_OBJECT_NAME,
        max_retries: int = DEFAULT_OBJECT_MAX_RETRIES,
        **extra: Any,
    ) -> ModelT:
        """Generate an instance of ``schema``.

        ``max_retries`` is the schema-regeneration budget handed to the
        backend; transport retries are governed separately by the executor.
        """

        return self._run(
            Operation.GENERATE_OBJECT,
            role=role,
            prompt=prompt,
            system_prompt=system_prompt,
            session=session,
            schema=schema,
            object_name=object_name,
            extra={"max_retries": max_retries, **extra},
        )

    def _run(  # noqa: PLR0913
        self,
        operation: Operation,
        *,
        role: Role | str,
        prompt: str | None,
        system_prompt: str | None,
        session: SessionContext | None,
        extra: Mapping[str, Any],
        schema: type[BaseModel] | None = None,
        object_name: str | None = None,
    ) -> Any:
        logger.info("%s service called (role=%s)", operation.value, getattr(role, "value", role))
        _require_prompt(prompt)

        sequence = sequence_for(role)
        last_error: BaseException | None = None

        for current_role in sequence:
            logger.info("New %s call with role: %s", operation.value, current_role.value)

            try:
                role_config = self._resolve_role_config(current_role)
            except (RoleConfigurationMissingError, RoleConfigurationInvalidError) as error:
                last_error = error
                _log_skip(RoleAttemptState.SKIPPED_UNCONFIGURED, current_role, error)
                continue
            backend_name = role_config.backend_name
            model_id = role_config.model_id

            adapter_fn = self.registry.lookup(backend_name, operation)
            if adapter_fn is None:
                last_error = UnsupportedOperationError(
                    operation.value,
                    backend_name=backend_name,
                    role=current_role.value,
                )
                _log_skip(RoleAttemptState.SKIPPED_UNSUPPORTED, current_role, last_error)
                continue

            try:
                credential = self.secrets.resolve(backend_name, session)
            except OrchestratorError as error:
                last_error = error
                _log_skip(RoleAttemptState.SKIPPED_NO_CREDENTIAL, current_role, error)
                continue

            request = build_call_request(
                operation=operation,
                credential=credential,
                model_id=model_id,
                parameters=role_config.parameters,
                system_prompt=system_prompt,
                prompt=prompt,
                schema=schema,
                object_name=object_name,
                extra=extra,
            )
            context = AttemptContext(
                role=current_role,
                backend_name=backend_name,
                model_id=model_id,
                operation=operation,
            )
            try:
                result = self.executor.attempt(adapter_fn, request, context=context)
            except Exception as error:  # noqa: BLE001
                last_error = error
                logger.warning(
                    "Service call failed for role %s (backend=%s model=%s, state=%s): %s %s",
                    current_role.value,
                    backend_name,
                    model_id,
                    RoleAttemptState.ROLE_EXHAUSTED.value,
                    error,
                    classify_failure(error).to_log_details(),
                )
                continue

            logger.info(
                "%s service succeeded using role: %s (backend=%s model=%s, state=%s)",
                operation.value,
                current_role.value,
                backend_name,
                model_id,
                RoleAttemptState.SUCCEEDED.value,
            )
            return result

        logger.error(
            "All roles in the sequence [%s] failed.",
            ", ".join(item.value for item in sequence),
        )
        if last_error is not None:
            raise last_error
        raise AllRolesFailedError(operation.value, tuple(item.value for item in sequence))

    def _resolve_role_config(self, role: Role) -> RoleConfig:
        try:
            provider = _role_snapshot(self.config_provider)
            backend_name = provider.get_backend_for_role(role)
            model_id = provider.get_model_id_for_role(role)
            if not backend_name or not model_id:
                raise RoleConfigurationMissingError(
                    role.value,
                    backend_name=backend_name,
                    model_id=model_id,
                )
            parameters = provider.get_parameters_for_role(role)
        except ValueError as error:
            raise RoleConfigurationInvalidError(role.value, reason=str(error)) from error
        return RoleConfig(
            role=role,
            backend_name=backend_name,
            model_id=model_id,
            parameters=parameters,
        )


def build_orchestrator(
    settings: Settings | None = None,
    *,
    transport: httpx.BaseTransport | None = None,
    classifier: ErrorClassifier | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> UnifiedOrchestrator:
    """Wire the default collaborators.

    Without explicit ``settings`` the role configuration is re-read from the
    environment on every lookup.
    """

    resolved = settings or Settings.from_env()
    resolved.validate()
    for warning in resolved.model_warnings():
        logger.warning("%s", warning)
    config_provider: RoleConfigProvider = (
        StaticRoleConfigProvider(resolved) if settings is not None else EnvRoleConfigProvider()
    )
    return UnifiedOrchestrator(
        config_provider=config_provider,
        registry=build_default_registry(resolved, transport=transport),
        secrets=SecretResolver(project_root=resolved.backends.project_root),
        executor=RetryExecutor(
            policy=RetryPolicy(
                max_retries=resolved.retry.max_retries,
                initial_delay_seconds=resolved.retry.initial_delay_seconds,
            ),
            classifier=classifier,
            sleep=sleep,
        ),
    )


def generate_text_service(**params: Any) -> TextResult:
    """Generate text with role fallback using environment configuration."""

    _require_prompt(params.get("prompt"))
    return build_orchestrator().generate_text(**params)


def stream_text_service(**params: Any) -> Iterator[str]:
    """Stream text with role fallback using environment configuration."""

    _require_prompt(params.get("prompt"))
    return build_orchestrator().stream_text(**params)


def generate_object_service(**params: Any) -> BaseModel:
    """Generate a schema-validated object with role fallback using environment configuration."""

    _require_prompt(params.get("prompt"))
    return build_orchestrator().generate_object(**params)


def _log_skip(state: RoleAttemptState, role: Role, error: BaseException) -> None:
    logger.warning("Skipping role '%s' (%s): %s", role.value, state.value, error)


def _require_prompt(prompt: object) -> None:
    if not isinstance(prompt, str) or not prompt.strip():
        raise PromptMissingError


def _role_snapshot(provider: RoleConfigProvider) -> RoleConfigProvider:
    snapshot = getattr(provider, "snapshot", None)
    return snapshot() if callable(snapshot) else provider
