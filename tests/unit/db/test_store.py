"""Tests for Store: files, services and config artifacts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sitewarden.db.connection import Database
from sitewarden.db.store import Store, StoreBusyError, StoreConstraintError, StoreError
from sitewarden.states import STATE_CONFIGURED, STATE_NOT_CONFIGURED

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _file(store: Store, path: str = "/srv/sites.toml", content: str = ""):
    return store.add_file(path, "sites", content, T0)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def test_add_file_is_not_configured(store):
    f = _file(store)
    assert f.id is not None
    assert f.is_configured is False
    stored = store.get_file_by_path("/srv/sites.toml")
    assert stored == f


def test_last_modified_round_trips_as_utc(store):
    naive = datetime(2024, 5, 1, 12, 0, 0)
    f = store.add_file("/srv/a.toml", "a", "", naive)
    stored = store.get_file(f.id)
    assert stored.last_modified == T0
    assert stored.last_modified.tzinfo is not None


def test_duplicate_path_rejected(store):
    _file(store)
    with pytest.raises(StoreConstraintError):
        _file(store)
    assert len(store.list_files()) == 1


def test_failed_insert_leaves_no_open_transaction(store, tmp_db):
    _file(store)
    with pytest.raises(StoreConstraintError):
        _file(store)
    assert not tmp_db.in_transaction


def test_update_file_resets_configured_flag(store):
    f = _file(store, content="old")
    store.mark_file_configured(f.id)
    assert store.get_file(f.id).is_configured is True

    later = T0 + timedelta(minutes=5)
    updated = store.update_file(f, "new", later)

    assert updated.is_configured is False
    stored = store.get_file(f.id)
    assert stored.content == "new"
    assert stored.last_modified == later
    assert stored.is_configured is False


def test_list_files_ordered_by_path(store):
    store.add_file("/srv/b.toml", "b", "", T0)
    store.add_file("/srv/a.toml", "a", "", T0)
    assert [f.path for f in store.list_files()] == ["/srv/a.toml", "/srv/b.toml"]


def test_remove_file_disowns_services(store):
    f = _file(store)
    services = store.replace_services_for_file(f, {"blog": "x = 1\n", "wiki": "y = 2\n"})

    removed = store.remove_file(f.path)

    assert removed is not None and removed.id == f.id
    assert store.get_file_by_path(f.path) is None
    for s in services:
        assert store.get_service(s.id).is_orphan


def test_remove_unknown_file_returns_none(store):
    assert store.remove_file("/nowhere.toml") is None


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


def test_replace_services_creates_rows_in_initial_state(store):
    f = _file(store)
    created = store.replace_services_for_file(f, {"blog": "tls = true\n"})

    assert len(created) == 1
    s = store.get_service(created[0].id)
    assert s.name == "blog"
    assert s.content == "tls = true\n"
    assert s.file_id == f.id
    assert s.state == STATE_NOT_CONFIGURED
    assert s.last_modified == f.last_modified


def test_replace_services_for_missing_file_rejected(store):
    f = _file(store)
    store.remove_file(f.path)
    with pytest.raises(StoreConstraintError):
        store.replace_services_for_file(f, {"blog": ""})
    assert store.list_services() == []


def test_orphan_services_of_honours_keep(store):
    f = _file(store)
    a, b, c = store.replace_services_for_file(f, {"a": "", "b": "", "c": ""})

    disowned = store.orphan_services_of(f.id, keep=[b.id])

    assert disowned == 2
    assert [s.id for s in store.list_services(f.id)] == [b.id]
    assert {s.id for s in store.list_orphan_services()} == {a.id, c.id}


def test_live_and_orphan_listings_are_disjoint(store):
    f = _file(store)
    a, b = store.replace_services_for_file(f, {"a": "", "b": ""})
    store.orphan_services_of(f.id, keep=[a.id])
    assert [s.id for s in store.list_live_services()] == [a.id]
    assert [s.id for s in store.list_orphan_services()] == [b.id]


def test_set_service_state_persists(store):
    f = _file(store)
    (s,) = store.replace_services_for_file(f, {"blog": ""})
    store.set_service_state(s.id, STATE_CONFIGURED)
    assert store.get_service(s.id).state == STATE_CONFIGURED


def test_set_service_state_skips_orphans(store):
    f = _file(store)
    (s,) = store.replace_services_for_file(f, {"blog": ""})
    store.orphan_services_of(f.id)
    store.set_service_state(s.id, STATE_CONFIGURED)
    assert store.get_service(s.id).state == STATE_NOT_CONFIGURED


def test_set_service_state_rejects_unknown_state(store):
    f = _file(store)
    (s,) = store.replace_services_for_file(f, {"blog": ""})
    with pytest.raises(ValueError):
        store.set_service_state(s.id, "half configured")


def test_delete_orphan_services_never_deletes_live_rows(store):
    f = _file(store)
    live, orphan = store.replace_services_for_file(f, {"live": "", "gone": ""})
    store.orphan_services_of(f.id, keep=[live.id])

    deleted = store.delete_orphan_services([live.id, orphan.id])

    assert deleted == 1
    assert store.get_service(live.id) is not None
    assert store.get_service(orphan.id) is None


def test_delete_orphan_services_empty_is_noop(store):
    assert store.delete_orphan_services([]) == 0


# ---------------------------------------------------------------------------
# Config artifacts
# ---------------------------------------------------------------------------


def test_upsert_artifact_creates_row(store):
    f = _file(store)
    (s,) = store.replace_services_for_file(f, {"blog": ""})
    a = store.upsert_artifact(s.id, "https", "/etc/nginx/blog.https.conf")

    assert a.service_id == s.id
    assert a.type == "https"
    assert store.list_artifacts(s.id) == [a]


def test_upsert_artifact_repoints_existing_path(store):
    f = _file(store)
    (old,) = store.replace_services_for_file(f, {"blog": "a = 1\n"})
    store.upsert_artifact(old.id, "http", "/etc/nginx/blog.http.conf")
    (new,) = store.replace_services_for_file(f, {"blog": "a = 2\n"})
    store.orphan_services_of(f.id, keep=[new.id])

    store.upsert_artifact(new.id, "http", "/etc/nginx/blog.http.conf")

    artifacts = store.list_artifacts()
    assert len(artifacts) == 1
    assert artifacts[0].service_id == new.id
    assert store.list_artifacts(old.id) == []


def test_deleting_service_orphans_its_artifacts(store):
    f = _file(store)
    (s,) = store.replace_services_for_file(f, {"blog": ""})
    a = store.upsert_artifact(s.id, "http", "/etc/nginx/blog.http.conf")
    store.orphan_services_of(f.id)
    store.delete_orphan_services([s.id])

    (orphan,) = store.list_orphan_artifacts()
    assert orphan.id == a.id
    assert orphan.is_orphan


def test_delete_orphan_artifacts_never_deletes_owned_rows(store):
    f = _file(store)
    (s,) = store.replace_services_for_file(f, {"blog": ""})
    a = store.upsert_artifact(s.id, "http", "/etc/nginx/blog.http.conf")

    assert store.delete_orphan_artifacts([a.id]) == 0
    assert store.list_artifacts() == [a]


def test_delete_artifact(store):
    f = _file(store)
    (s,) = store.replace_services_for_file(f, {"blog": ""})
    a = store.upsert_artifact(s.id, "http", "/etc/nginx/blog.http.conf")
    assert store.delete_artifact(a.id, s.id) is True
    assert store.list_artifacts() == []


def test_upsert_artifact_refuses_path_of_live_service(store):
    one = _file(store, "/srv/one.toml")
    two = _file(store, "/srv/two.toml")
    (first,) = store.replace_services_for_file(one, {"web": "a = 1\n"})
    (second,) = store.replace_services_for_file(two, {"web": "a = 2\n"})
    a = store.upsert_artifact(first.id, "http", "/etc/nginx/web.http.conf")

    with pytest.raises(StoreConstraintError, match="owned by live service"):
        store.upsert_artifact(second.id, "http", "/etc/nginx/web.http.conf")

    assert store.list_artifacts() == [a]
    assert store.list_artifacts(second.id) == []


def test_upsert_artifact_takes_over_detached_row(store):
    f = _file(store)
    (s,) = store.replace_services_for_file(f, {"blog": ""})
    store.upsert_artifact(s.id, "http", "/etc/nginx/blog.http.conf")
    store.orphan_services_of(f.id)
    store.delete_orphan_services([s.id])
    (fresh,) = store.replace_services_for_file(f, {"blog": "a = 1\n"})

    a = store.upsert_artifact(fresh.id, "http", "/etc/nginx/blog.http.conf")

    assert a.service_id == fresh.id
    assert store.list_orphan_artifacts() == []


def test_delete_artifact_requires_matching_owner(store):
    f = _file(store)
    blog, wiki = store.replace_services_for_file(f, {"blog": "", "wiki": ""})
    a = store.upsert_artifact(blog.id, "http", "/etc/nginx/blog.http.conf")

    assert store.delete_artifact(a.id, wiki.id) is False
    assert store.list_artifacts() == [a]


# ---------------------------------------------------------------------------
# Locking
# ---------------------------------------------------------------------------


def test_write_while_locked_raises_busy(store, tmp_db, tmp_path):
    tmp_db.execute("PRAGMA busy_timeout = 0")
    other = Database(tmp_path / ".sitewarden.db").connect()
    try:
        other.execute("BEGIN IMMEDIATE")
        with pytest.raises(StoreBusyError):
            _file(store)
        other.execute("ROLLBACK")
    finally:
        other.close()

    assert store.list_files() == []
    assert _file(store).id is not None


def test_busy_error_is_a_store_error():
    assert issubclass(StoreBusyError, StoreError)
