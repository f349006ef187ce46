"""Applier: drives the artifact writer from live service states.

For each live service, one pass:
  observe()  → persist the new state (e.g. not configured → to configure https)
  action     → writer.apply / writer.remove, then update the artifact rows
  confirm()  → a successful report moves ``to *`` states to ``configured``
The plaintext listener is kept in place whenever ``wants_plaintext()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sitewarden.artifacts.writer import ArtifactWriter
from sitewarden.codec import DecodeError, decode_definition
from sitewarden.db.models import ARTIFACT_HTTP, ARTIFACT_HTTPS, ConfigArtifact, Service
from sitewarden.db.store import Store, StoreConstraintError
from sitewarden.states import (
    ACTION_REMOVE_HTTP,
    ACTION_REMOVE_HTTPS,
    ACTION_WRITE_HTTPS,
    confirm,
    observe,
    wants_plaintext,
)

logger = logging.getLogger(__name__)

_REMOVE_KIND = {ACTION_REMOVE_HTTP: ARTIFACT_HTTP, ACTION_REMOVE_HTTPS: ARTIFACT_HTTPS}


@dataclass
class ApplyReport:
    applied: int = 0
    failed: int = 0
    configured: int = 0


class Applier:
    def __init__(self, store: Store, writer: ArtifactWriter) -> None:
        self._store = store
        self._writer = writer

    def run(self) -> ApplyReport:
        report = ApplyReport()
        for service in self._store.list_live_services():
            self._apply_service(service, report)
        return report

    def _apply_service(self, service: Service, report: ApplyReport) -> None:
        try:
            definition = decode_definition(service.content)
        except DecodeError as exc:
            logger.error(
                "stored definition of service %s is unreadable: %s",
                service.name,
                exc,
                extra={"service": service.name, "service_id": service.id},
            )
            report.failed += 1
            return

        artifacts = self._artifacts_by_kind(service)
        transition = observe(service.state, definition, artifacts.keys())
        state = transition.state
        if state != service.state:
            self._set_state(service, state)

        if transition.action is not None:
            ok = self._perform(service, transition.action, artifacts)
            if ok:
                report.applied += 1
            else:
                report.failed += 1
            confirmed = confirm(state, ok)
            if confirmed != state:
                self._set_state(service, confirmed)
                report.configured += 1
            state = confirmed

        if wants_plaintext(state, definition) and ARTIFACT_HTTP not in self._artifacts_by_kind(service):
            if self._write(service, ARTIFACT_HTTP):
                report.applied += 1
            else:
                report.failed += 1

    def _perform(self, service: Service, action: str, artifacts: dict[str, ConfigArtifact]) -> bool:
        if action == ACTION_WRITE_HTTPS:
            return self._write(service, ARTIFACT_HTTPS)

        artifact = artifacts.get(_REMOVE_KIND[action])
        if artifact is None:
            return True
        if not self._writer.remove(artifact):
            return False
        self._store.delete_artifact(artifact.id, service.id)
        return True

    def _write(self, service: Service, kind: str) -> bool:
        if not self._writer.apply(service, kind):
            logger.warning(
                "%s artifact for service %s not applied; will retry",
                kind,
                service.name,
                extra={"service": service.name, "service_id": service.id},
            )
            return False
        path = str(self._writer.path_for(service, kind))
        try:
            self._store.upsert_artifact(service.id, kind, path)
        except StoreConstraintError:
            logger.warning(
                "%s artifact %s belongs to another service; not recorded",
                kind,
                path,
                extra={"service": service.name, "service_id": service.id, "path": path},
            )
            return False
        return True

    def _artifacts_by_kind(self, service: Service) -> dict[str, ConfigArtifact]:
        return {a.type: a for a in self._store.list_artifacts(service.id)}

    def _set_state(self, service: Service, state: str) -> None:
        self._store.set_service_state(service.id, state)
        logger.info(
            "service state changed",
            extra={"service": service.name, "service_id": service.id, "state": state},
        )
