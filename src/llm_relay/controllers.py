"""Controllers for llm-relay CLI commands."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass

from llm_relay.config import Settings, is_known_model
from llm_relay.orchestrator.errors import OrchestratorError
from llm_relay.orchestrator.models import Role, TokenUsage
from llm_relay.orchestrator.registry import AdapterRegistry, build_default_registry
from llm_relay.orchestrator.routing import parse_role, sequence_for
from llm_relay.orchestrator.secrets import SecretResolver
from llm_relay.orchestrator.services import UnifiedOrchestrator, build_orchestrator


@dataclass(slots=True)
class GenerateCommand:
    """CLI input for one text generation or stream."""

    role: str
    prompt: str
    system_prompt: str | None = None


@dataclass(slots=True)
class RolesCommand:
    """CLI input for role sequence / configuration inspection."""

    role: str


class RelayCliController:
    """Translate CLI commands into orchestrator calls and printable lines."""

    def __init__(
        self,
        orchestrator_factory: Callable[[], UnifiedOrchestrator] = build_orchestrator,
    ) -> None:
        self._orchestrator_factory = orchestrator_factory

    def generate(self, command: GenerateCommand) -> list[str]:
        result = self._orchestrator_factory().generate_text(
            role=command.role,
            prompt=command.prompt,
            system_prompt=command.system_prompt,
        )
        return [result.text, _usage_line(result.usage)]

    def stream(self, command: GenerateCommand) -> Iterator[str]:
        return self._orchestrator_factory().stream_text(
            role=command.role,
            prompt=command.prompt,
            system_prompt=command.system_prompt,
        )

    def roles(self, command: RolesCommand) -> list[str]:
        settings = Settings.from_env()
        registry = build_default_registry(settings)
        secrets = SecretResolver(project_root=settings.backends.project_root)
        sequence = sequence_for(command.role)

        lines = [f"Role sequence: {' -> '.join(role.value for role in sequence)}"]
        if parse_role(command.role) is None:
            lines.append(f"Unknown role {command.role!r}; using the primary sequence.")
        for role in sequence:
            lines.append(
                _describe_role(role, settings=settings, registry=registry, secrets=secrets),
            )
        return lines


def _describe_role(
    role: Role,
    *,
    settings: Settings,
    registry: AdapterRegistry,
    secrets: SecretResolver,
) -> str:
    role_settings = settings.role(role)
    if not role_settings.backend or not role_settings.model_id:
        return f"- {role.value}: not configured"

    operations = registry.supported_operations(role_settings.backend)
    try:
        secrets.resolve(role_settings.backend)
        credential = "ok"
    except OrchestratorError as error:
        credential = f"missing ({error})"
    line = (
        f"- {role.value}: backend={role_settings.backend} model={role_settings.model_id} "
        f"max_output_tokens={role_settings.max_output_tokens} "
        f"temperature={role_settings.temperature} "
        f"operations={','.join(op.value for op in operations) or 'none'} "
        f"credential={credential}"
    )
    if not is_known_model(role_settings.backend, role_settings.model_id):
        line += " model_status=unlisted"
    return line


def _usage_line(usage: TokenUsage | None) -> str:
    if usage is None:
        return "Usage: unknown"
    return (
        f"Usage: input={_count(usage.input_tokens)} "
        f"output={_count(usage.output_tokens)} "
        f"total={_count(usage.total_tokens)}"
    )


def _count(value: int | None) -> str:
    return "-" if value is None else str(value)
