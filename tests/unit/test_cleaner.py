"""Tests for Cleaner: orphaned services and artifacts are reaped safely."""

from __future__ import annotations

from datetime import datetime, timezone

from sitewarden.cleaner import Cleaner

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _orphan_with_artifacts(store, tmp_path, name: str = "blog", kinds=("http", "https")):
    f = store.get_file_by_path("/srv/sites.toml") or store.add_file("/srv/sites.toml", "sites", "", T0)
    (s,) = store.replace_services_for_file(f, {name: ""})
    paths = {}
    for kind in kinds:
        path = tmp_path / f"{name}.{kind}.conf"
        path.write_text("server {}", encoding="utf-8")
        store.upsert_artifact(s.id, kind, str(path))
        paths[kind] = path
    return s, paths


def test_orphan_service_and_artifacts_removed(store, writer, tmp_path):
    s, paths = _orphan_with_artifacts(store, tmp_path)
    store.orphan_services_of(s.file_id)

    report = Cleaner(store, writer).run()

    assert report.services_deleted == 1
    assert report.artifacts_deleted == 2
    assert report.failures == 0
    assert store.get_service(s.id) is None
    assert store.list_artifacts() == []
    assert not any(p.exists() for p in paths.values())


def test_artifact_removed_from_disk_before_row(store, writer, tmp_path):
    s, _ = _orphan_with_artifacts(store, tmp_path)
    store.orphan_services_of(s.file_id)
    seen_rows: list[bool] = []
    remove = writer.remove

    def _remove(artifact):
        seen_rows.append(any(a.id == artifact.id for a in store.list_artifacts()))
        return remove(artifact)

    writer.remove = _remove
    Cleaner(store, writer).run()

    assert seen_rows == [True, True]


def test_failed_removal_keeps_service_and_row(store, writer, tmp_path):
    s, paths = _orphan_with_artifacts(store, tmp_path)
    store.orphan_services_of(s.file_id)
    writer.fail_remove.add(str(paths["https"]))

    report = Cleaner(store, writer).run()

    assert report.failures == 1
    assert report.services_deleted == 0
    assert store.get_service(s.id) is not None
    assert [a.type for a in store.list_artifacts(s.id)] == ["https"]

    writer.fail_remove.clear()
    report = Cleaner(store, writer).run()
    assert report.services_deleted == 1
    assert store.list_artifacts() == []


def test_live_services_untouched(store, writer, tmp_path):
    s, paths = _orphan_with_artifacts(store, tmp_path)

    report = Cleaner(store, writer).run()

    assert report.services_deleted == 0
    assert writer.calls == []
    assert store.get_service(s.id) is not None
    assert all(p.exists() for p in paths.values())


def test_orphan_artifact_without_service_removed(store, writer, tmp_path):
    s, paths = _orphan_with_artifacts(store, tmp_path, kinds=("http",))
    store.orphan_services_of(s.file_id)
    # Delete the service row directly so its artifact loses its owner.
    store.delete_orphan_services([s.id])
    assert len(store.list_orphan_artifacts()) == 1

    report = Cleaner(store, writer).run()

    assert report.artifacts_deleted == 1
    assert store.list_artifacts() == []
    assert not paths["http"].exists()


def test_failed_orphan_artifact_removal_keeps_row(store, writer, tmp_path):
    s, paths = _orphan_with_artifacts(store, tmp_path, kinds=("http",))
    store.orphan_services_of(s.file_id)
    store.delete_orphan_services([s.id])
    writer.fail_remove.add(str(paths["http"]))

    report = Cleaner(store, writer).run()

    assert report.failures == 1
    assert len(store.list_orphan_artifacts()) == 1


def test_empty_store_is_noop(store, writer):
    report = Cleaner(store, writer).run()
    assert (report.services_deleted, report.artifacts_deleted, report.failures) == (0, 0, 0)


def test_artifact_repointed_during_removal_keeps_row(store, writer, tmp_path):
    s, paths = _orphan_with_artifacts(store, tmp_path, kinds=("http",))
    store.orphan_services_of(s.file_id)
    f = store.get_file_by_path("/srv/sites.toml")
    (fresh,) = store.replace_services_for_file(f, {"blog": "a = 1\n"})
    remove = writer.remove

    def _remove(artifact):
        store.upsert_artifact(fresh.id, artifact.type, artifact.path)
        return remove(artifact)

    writer.remove = _remove
    report = Cleaner(store, writer).run()

    assert report.artifacts_deleted == 0
    (artifact,) = store.list_artifacts()
    assert artifact.service_id == fresh.id
    assert store.get_service(s.id) is None
