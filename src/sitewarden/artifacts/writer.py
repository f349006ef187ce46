"""Artifact writers: render, write and remove proxy config fragments.

A writer reports success or failure as a bool; it never raises for I/O or
reload problems. The caller feeds that report into the state machine, so a
failure simply leaves the service in its transitional state for the next pass.

``FileArtifactWriter`` writes one nginx-style server block per service and
listener kind to ``<directory>/<file id>-<service>.<kind>.conf`` and then runs
the configured reload command. Service names are only unique within one
definition file, so the owning file id is part of the name. Certificates are not obtained here: the https
block points at ``certificate``/``certificate_key`` from the definition, or
at the conventional ``/etc/letsencrypt/live/<first domain>/`` files.
"""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from pathlib import Path
from string import Template
from typing import Any, Protocol

from sitewarden.codec import DecodeError, backend, decode_definition, domains
from sitewarden.db.models import ARTIFACT_HTTP, ARTIFACT_HTTPS, ARTIFACT_KINDS, ConfigArtifact, Service

logger = logging.getLogger(__name__)

_RELOAD_TIMEOUT_S = 30
_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_.-]")

_HTTP_TEMPLATE = Template(
    """# managed by sitewarden: $service ($kind)
server {
    listen 80;
    listen [::]:80;
    server_name $server_names;

    location / {
        proxy_pass $backend;
        proxy_set_header Host $$host;
        proxy_set_header X-Forwarded-For $$proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $$scheme;
    }
}
"""
)

_HTTPS_TEMPLATE = Template(
    """# managed by sitewarden: $service ($kind)
server {
    listen 443 ssl;
    listen [::]:443 ssl;
    server_name $server_names;

    ssl_certificate $certificate;
    ssl_certificate_key $certificate_key;

    location / {
        proxy_pass $backend;
        proxy_set_header Host $$host;
        proxy_set_header X-Forwarded-For $$proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $$scheme;
    }
}
"""
)


class ArtifactWriter(Protocol):
    def path_for(self, service: Service, kind: str) -> Path: ...

    def apply(self, service: Service, kind: str) -> bool: ...

    def remove(self, artifact: ConfigArtifact) -> bool: ...


def render(service_name: str, definition: dict[str, Any], kind: str) -> str:
    """Render the server block of *kind* for one service definition."""
    if kind not in ARTIFACT_KINDS:
        raise ValueError(f"Unknown artifact kind: {kind!r}")

    names = domains(definition)
    values = {
        "service": service_name,
        "kind": kind,
        "server_names": " ".join(names) if names else "_",
        "backend": backend(definition) or "http://127.0.0.1:80",
    }
    if kind == ARTIFACT_HTTP:
        return _HTTP_TEMPLATE.substitute(values)

    live_dir = f"/etc/letsencrypt/live/{names[0] if names else service_name}"
    values["certificate"] = str(definition.get("certificate", f"{live_dir}/fullchain.pem"))
    values["certificate_key"] = str(definition.get("certificate_key", f"{live_dir}/privkey.pem"))
    return _HTTPS_TEMPLATE.substitute(values)


class FileArtifactWriter:
    """Writes server blocks into *directory* and reloads the proxy."""

    def __init__(
        self,
        directory: Path | str,
        reload_command: str | None = None,
        timeout_s: int = _RELOAD_TIMEOUT_S,
    ) -> None:
        self.directory = Path(directory)
        self.reload_command = reload_command
        self.timeout_s = timeout_s

    def path_for(self, service: Service, kind: str) -> Path:
        safe = _UNSAFE_NAME_RE.sub("_", service.name)
        return self.directory / f"{service.file_id}-{safe}.{kind}.conf"

    def apply(self, service: Service, kind: str) -> bool:
        """Write the *kind* artifact for *service* and reload the proxy."""
        target = self.path_for(service, kind)
        try:
            text = render(service.name, decode_definition(service.content), kind)
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp = target.with_suffix(target.suffix + ".tmp")
            tmp.write_text(text, encoding="utf-8")
            tmp.replace(target)
        except (OSError, DecodeError) as exc:
            logger.error(
                "writing %s failed: %s", target, exc, extra={"path": str(target), "service": service.name}
            )
            return False
        logger.info("artifact written", extra={"path": str(target), "service": service.name})
        return self.reload()

    def remove(self, artifact: ConfigArtifact) -> bool:
        """Delete the artifact file (a missing file counts as removed) and reload."""
        try:
            Path(artifact.path).unlink(missing_ok=True)
        except OSError as exc:
            logger.error("removing %s failed: %s", artifact.path, exc, extra={"path": artifact.path})
            return False
        logger.info("artifact removed", extra={"path": artifact.path})
        return self.reload()

    def reload(self) -> bool:
        """Run the reload command. No command configured counts as success."""
        if not self.reload_command:
            return True
        try:
            result = subprocess.run(
                shlex.split(self.reload_command),
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.error("reload command failed: %s", exc)
            return False
        if result.returncode != 0:
            logger.error(
                "reload command exited with %d: %s", result.returncode, result.stderr.strip()
            )
            return False
        return True
