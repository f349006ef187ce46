"""Cleaner: reaps services and artifacts that lost their owner.

Pass order matters:
  1. orphan services — tear down every artifact they own first; the service
     row is deleted only once all of its artifacts are gone from disk.
  2. orphan artifacts — remove the file, then delete the row.

A row is the only record of where an artifact file lives, so it is never
deleted before the writer confirms the removal. Failed removals stay for the
next pass. Both passes only touch rows whose owner reference is already NULL.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sitewarden.artifacts.writer import ArtifactWriter
from sitewarden.db.models import ConfigArtifact
from sitewarden.db.store import Store

logger = logging.getLogger(__name__)


@dataclass
class CleanReport:
    services_deleted: int = 0
    artifacts_deleted: int = 0
    failures: int = 0


class Cleaner:
    def __init__(self, store: Store, writer: ArtifactWriter) -> None:
        self._store = store
        self._writer = writer

    def run(self) -> CleanReport:
        report = CleanReport()
        self._clean_services(report)
        self._clean_artifacts(report)
        if report.services_deleted or report.artifacts_deleted or report.failures:
            logger.info(
                "clean pass finished",
                extra={
                    "services_deleted": report.services_deleted,
                    "artifacts_deleted": report.artifacts_deleted,
                    "failures": report.failures,
                },
            )
        return report

    def _clean_services(self, report: CleanReport) -> None:
        removable: list[int] = []
        for service in self._store.list_orphan_services():
            results = [self._tear_down(a, report) for a in self._store.list_artifacts(service.id)]
            if all(results):
                removable.append(service.id)
        report.services_deleted += self._store.delete_orphan_services(removable)

    def _clean_artifacts(self, report: CleanReport) -> None:
        removed: list[int] = []
        for artifact in self._store.list_orphan_artifacts():
            if self._writer.remove(artifact):
                removed.append(artifact.id)
            else:
                self._record_failure(artifact, report)
        report.artifacts_deleted += self._store.delete_orphan_artifacts(removed)

    def _tear_down(self, artifact: ConfigArtifact, report: CleanReport) -> bool:
        if not self._writer.remove(artifact):
            self._record_failure(artifact, report)
            return False
        if self._store.delete_artifact(artifact.id, artifact.service_id):
            report.artifacts_deleted += 1
        return True

    def _record_failure(self, artifact: ConfigArtifact, report: CleanReport) -> None:
        report.failures += 1
        logger.warning(
            "artifact %s not removed; will retry", artifact.path, extra={"path": artifact.path}
        )
