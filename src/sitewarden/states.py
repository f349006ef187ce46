"""Service configuration state machine.

    not configured ──tls──▶ to configure https ──ok──▶ configured
                                                         │  ▲
                                     disable_http + http │  │ ok
                                                         ▼  │
                                                     to disable http

Any state falls back to ``not configured`` when the definition stops asking
for TLS. Only ``confirm()`` with a successful report leaves a ``to *`` state;
a failed report parks the service there and ``observe()`` re-issues the same
action on the next pass.

Pure functions: no I/O, no store access.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from typing import Any

from sitewarden.codec import requires_tls, retires_http
from sitewarden.db.models import ARTIFACT_HTTP, ARTIFACT_HTTPS

STATE_NOT_CONFIGURED = "not configured"
STATE_TO_CONFIGURE_HTTPS = "to configure https"
STATE_TO_DISABLE_HTTP = "to disable http"
STATE_CONFIGURED = "configured"

STATES: frozenset[str] = frozenset(
    [STATE_NOT_CONFIGURED, STATE_TO_CONFIGURE_HTTPS, STATE_TO_DISABLE_HTTP, STATE_CONFIGURED]
)
TRANSITIONAL_STATES: frozenset[str] = frozenset([STATE_TO_CONFIGURE_HTTPS, STATE_TO_DISABLE_HTTP])

ACTION_WRITE_HTTPS = "write https"
ACTION_REMOVE_HTTP = "remove http"
ACTION_REMOVE_HTTPS = "remove https"


@dataclass(frozen=True)
class Transition:
    state: str
    action: str | None = None


def validate_state(state: str) -> str:
    if state not in STATES:
        raise ValueError(f"Unknown service state: {state!r}")
    return state


def initial_state() -> str:
    """State of every freshly decoded service."""
    return STATE_NOT_CONFIGURED


def observe(
    state: str,
    definition: Mapping[str, Any],
    artifact_kinds: Collection[str] = (),
) -> Transition:
    """Decide the next state and the artifact action for a service.

    Args:
        state: Current stored state.
        definition: Decoded service definition.
        artifact_kinds: Kinds of the artifacts the service currently owns.

    Returns:
        Transition with the (possibly unchanged) state and the action the
        artifact writer should perform, or ``action=None`` for nothing.
    """
    validate_state(state)

    if not requires_tls(definition):
        if state != STATE_NOT_CONFIGURED:
            return Transition(STATE_NOT_CONFIGURED, ACTION_REMOVE_HTTPS)
        if ARTIFACT_HTTPS in artifact_kinds:
            return Transition(STATE_NOT_CONFIGURED, ACTION_REMOVE_HTTPS)
        return Transition(state)

    if state in (STATE_NOT_CONFIGURED, STATE_TO_CONFIGURE_HTTPS):
        return Transition(STATE_TO_CONFIGURE_HTTPS, ACTION_WRITE_HTTPS)

    if state == STATE_TO_DISABLE_HTTP:
        return Transition(state, ACTION_REMOVE_HTTP)

    # configured
    if retires_http(definition) and ARTIFACT_HTTP in artifact_kinds:
        return Transition(STATE_TO_DISABLE_HTTP, ACTION_REMOVE_HTTP)
    return Transition(state)


def confirm(state: str, success: bool) -> str:
    """Apply the artifact writer's report for the pending action of *state*."""
    validate_state(state)
    if state in TRANSITIONAL_STATES and success:
        return STATE_CONFIGURED
    return state


def wants_plaintext(state: str, definition: Mapping[str, Any]) -> bool:
    """Whether the plaintext listener should exist for a service."""
    validate_state(state)
    if not (requires_tls(definition) and retires_http(definition)):
        return True
    return state not in (STATE_CONFIGURED, STATE_TO_DISABLE_HTTP)
