"""Service definition codec.

A definition file is a TOML document whose top-level tables are services:

    [blog]
    domains = ["blog.example.com"]
    backend = "http://127.0.0.1:8080"
    tls = true
    disable_http = true

Each table is stored as canonical TOML (keys sorted at every level), so two
semantically identical definitions always produce byte-identical text and an
unchanged service can be recognised by comparing stored content.

Only ``tls``, ``disable_http``, ``domain``/``domains`` and ``backend`` carry
meaning here; every other key is passed through untouched.
"""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from typing import Any

import tomli_w


class DecodeError(ValueError):
    """Raised when a definition payload is not a mapping of service tables."""


def decode(payload: str) -> dict[str, dict[str, Any]]:
    """Decode a file's content into ``{service name: definition}``.

    Raises:
        DecodeError: On invalid TOML or a top-level value that is not a table.
    """
    try:
        data = tomllib.loads(payload)
    except tomllib.TOMLDecodeError as exc:
        raise DecodeError(f"Invalid TOML: {exc}") from exc

    for name, value in data.items():
        if not isinstance(value, dict):
            raise DecodeError(
                f"Top-level key '{name}' must be a service table, got {type(value).__name__}"
            )
    return data


def canonicalize(definition: Mapping[str, Any]) -> str:
    """Serialize one definition deterministically (sorted keys at every depth)."""
    return tomli_w.dumps(_sorted(definition))


def decode_definition(text: str) -> dict[str, Any]:
    """Parse a single canonical definition back into a dict.

    Raises:
        DecodeError: If *text* is not valid TOML.
    """
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise DecodeError(f"Invalid stored definition: {exc}") from exc


def _sorted(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _sorted(value[k]) for k in sorted(value)}
    if isinstance(value, list):
        return [_sorted(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Definition accessors
# ---------------------------------------------------------------------------


def requires_tls(definition: Mapping[str, Any]) -> bool:
    """True when the service must be served over an encrypted listener."""
    return bool(definition.get("tls", False))


def retires_http(definition: Mapping[str, Any]) -> bool:
    """True when the plaintext listener is dropped once TLS is active."""
    return bool(definition.get("disable_http", False))


def domains(definition: Mapping[str, Any]) -> list[str]:
    """Server names for the service; accepts ``domain`` or ``domains``."""
    value = definition.get("domains", definition.get("domain", []))
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def backend(definition: Mapping[str, Any]) -> str | None:
    value = definition.get("backend")
    return str(value) if value is not None else None
