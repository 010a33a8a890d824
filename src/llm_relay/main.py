"""CLI entrypoint for llm-relay."""

import logging

import rich_click as click

from llm_relay import __version__
from llm_relay.controllers import GenerateCommand, RelayCliController, RolesCommand
from llm_relay.orchestrator.errors import OrchestratorError

click.rich_click.USE_MARKDOWN = True
RELAY_CONTROLLER = RelayCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="llm-relay")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity for orchestrator diagnostics (written to stderr).",
)
def llm_relay(log_level: str) -> None:
    """Role-based LLM request orchestrator."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _prompt_options(func):
    func = click.option(
        "--system-prompt",
        default=None,
        help="Optional system prompt sent before the user prompt.",
    )(func)
    func = click.option("--prompt", required=True, help="User prompt.")(func)
    return click.option(
        "--role",
        default="primary",
        show_default=True,
        help="Initial role: primary, research or fallback.",
    )(func)


@llm_relay.command("generate")
@_prompt_options
def generate(role: str, prompt: str, system_prompt: str | None) -> None:
    """Generate text, falling back across roles on failure."""

    try:
        lines = RELAY_CONTROLLER.generate(
            GenerateCommand(role=role, prompt=prompt, system_prompt=system_prompt),
        )
    except (OrchestratorError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@llm_relay.command("stream")
@_prompt_options
def stream(role: str, prompt: str, system_prompt: str | None) -> None:
    """Stream text chunks as the selected backend produces them."""

    try:
        for chunk in RELAY_CONTROLLER.stream(
            GenerateCommand(role=role, prompt=prompt, system_prompt=system_prompt),
        ):
            click.echo(chunk, nl=False)
    except (OrchestratorError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    click.echo()


@llm_relay.command("roles")
@click.option(
    "--role",
    default="primary",
    show_default=True,
    help="Initial role whose fallback sequence is shown.",
)
def roles(role: str) -> None:
    """Show the role sequence and each role's resolved configuration."""

    try:
        lines = RELAY_CONTROLLER.roles(RolesCommand(role=role))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    llm_relay()
