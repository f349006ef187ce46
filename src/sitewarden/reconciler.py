"""Reconciler: turns scanned definition files into stored services.

Per file:
  1. new path            → add file row            (NEW)
     changed mod time    → update file row         (MODIFIED)
     same mod time, not fully applied → try again  (RETRIED)
     otherwise           → nothing to do           (UNCHANGED)
  2. decode the content; a DecodeError abandons the file for this pass
     (FAILED) and leaves its previous services as they were.
  3. insert fresh services for new or changed definitions, keep services whose
     canonical content is identical, then disown everything else of the file.
  4. mark the file fully applied.

Superseded rows are disowned, not deleted: the cleaner tears down their
artifacts and reaps them later.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sitewarden.codec import DecodeError, canonicalize, decode
from sitewarden.db.models import File, as_utc
from sitewarden.db.store import Store, StoreError
from sitewarden.scanner import ScanEvent
from sitewarden.states import observe

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    NEW = "new"
    MODIFIED = "modified"
    RETRIED = "retried"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class SyncReport:
    """Outcome of one pass over a directory listing."""

    outcomes: dict[str, Outcome] = field(default_factory=dict)  # path -> outcome
    removed: list[str] = field(default_factory=list)

    def count(self, outcome: Outcome) -> int:
        return sum(1 for o in self.outcomes.values() if o is outcome)


class Reconciler:
    """Applies scan events for definition files to the store."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def reconcile(self, event: ScanEvent) -> Outcome:
        """Reconcile a single scanned file.

        Raises:
            StoreConstraintError: If a concurrent writer stored the same path.
            StoreBusyError: If another writer held the database lock too long.
            OSError: If the file content cannot be read.
        """
        existing = self._store.get_file_by_path(event.path)
        if existing is None:
            file = self._store.add_file(event.path, event.name, event.read(), event.mod_time)
            outcome = Outcome.NEW
        elif existing.last_modified != as_utc(event.mod_time):
            file = self._store.update_file(existing, event.read(), event.mod_time)
            outcome = Outcome.MODIFIED
        elif not existing.is_configured:
            file = existing
            outcome = Outcome.RETRIED
        else:
            return Outcome.UNCHANGED

        try:
            definitions = decode(file.content)
        except DecodeError as exc:
            logger.error(
                "could not decode %s: %s", file.path, exc, extra={"path": file.path, "file_id": file.id}
            )
            return Outcome.FAILED

        self._apply_definitions(file, definitions)
        self._store.mark_file_configured(file.id)
        return outcome

    def remove(self, path: str) -> bool:
        """Handle a vanished file. Its services are disowned, not deleted.

        Returns:
            True if *path* was stored.
        """
        return self._store.remove_file(path) is not None

    def sync(self, events: Iterable[ScanEvent]) -> SyncReport:
        """Reconcile a full directory listing, one file at a time.

        Stored files missing from *events* are treated as removed. A failure on
        one file is logged and recorded as FAILED; the other files still run.
        """
        report = SyncReport()
        for event in events:
            try:
                report.outcomes[event.path] = self.reconcile(event)
            except (StoreError, OSError):
                logger.exception("reconciling %s failed", event.path, extra={"path": event.path})
                report.outcomes[event.path] = Outcome.FAILED

        for file in self._store.list_files():
            if file.path not in report.outcomes:
                self.remove(file.path)
                report.removed.append(file.path)
        return report

    def _apply_definitions(self, file: File, definitions: dict[str, dict[str, Any]]) -> None:
        canonical = {name: canonicalize(defn) for name, defn in definitions.items()}

        current = {(s.name, s.content): s.id for s in self._store.list_services(file.id)}
        keep = [current[(name, text)] for name, text in canonical.items() if (name, text) in current]
        fresh = {name: text for name, text in canonical.items() if (name, text) not in current}

        created = self._store.replace_services_for_file(file, fresh) if fresh else []
        for service in created:
            transition = observe(service.state, definitions[service.name])
            if transition.state != service.state:
                self._store.set_service_state(service.id, transition.state)
        keep.extend(s.id for s in created)

        disowned = self._store.orphan_services_of(file.id, keep=keep)
        if disowned:
            logger.info(
                "services superseded",
                extra={"path": file.path, "file_id": file.id, "services": disowned},
            )
