"""Role sequencing for fallback across configured backends."""

from __future__ import annotations

import logging

from llm_relay.orchestrator.models import Role

logger = logging.getLogger(__name__)

ROLE_SEQUENCES: dict[Role, tuple[Role, ...]] = {
    Role.PRIMARY: (Role.PRIMARY, Role.FALLBACK, Role.RESEARCH),
    Role.FALLBACK: (Role.FALLBACK, Role.RESEARCH),
    Role.RESEARCH: (Role.RESEARCH, Role.FALLBACK),
}
DEFAULT_ROLE = Role.PRIMARY


def sequence_for(initial_role: Role | str | None) -> tuple[Role, ...]:
    """Return the ordered roles to attempt for a caller's initial role.

    Unknown roles degrade to the primary sequence with a warning instead of
    failing, so a typo in a caller's role still reaches a backend.
    """

    role = parse_role(initial_role)
    if role is None:
        logger.warning(
            "Unknown initial role: %r. Defaulting to %s sequence.",
            initial_role,
            " -> ".join(item.value for item in ROLE_SEQUENCES[DEFAULT_ROLE]),
        )
        role = DEFAULT_ROLE
    return ROLE_SEQUENCES[role]


def parse_role(value: Role | str | None) -> Role | None:
    """Match a role name exactly; return None when it is not a known role."""

    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value)
    except ValueError:
        return None
