"""
Unit tests for the in-memory versioned resource store.
"""
import threading

import pytest

from errors import ResourceNotFoundError
from store import SEED_IDENTIFIER_SYSTEM, SEED_IDENTIFIER_VALUE, SEED_TITLE, VersionedResourceStore


def test_seed_record(store):
    """A new store holds exactly the example Composition under id 1."""
    record = store.read_latest(1)

    assert record["resourceType"] == "Composition"
    assert record["id"] == "1"
    assert record["identifier"]["value"] == SEED_IDENTIFIER_VALUE == "00002"
    assert record["identifier"]["system"] == SEED_IDENTIFIER_SYSTEM
    assert record["title"] == SEED_TITLE
    assert record["meta"]["versionId"] == "1"
    assert record["meta"]["lastUpdated"].endswith("Z")
    assert record["date"].endswith("Z")
    assert len(store) == 1


def test_unseeded_store_is_empty(empty_store):
    assert len(empty_store) == 0
    assert empty_store.search_all() == []


@pytest.mark.parametrize("resource_id", [0, 2, 999, -1])
def test_read_latest_unknown_id(store, resource_id):
    with pytest.raises(ResourceNotFoundError) as excinfo:
        store.read_latest(resource_id)

    assert excinfo.value.resource_id == str(resource_id)
    assert excinfo.value.status_code == 404


def test_read_version_matches_seed(store):
    seed = store.read_latest(1)
    assert store.read_version(1, seed["meta"]["versionId"]) == seed


@pytest.mark.parametrize("version_id", ["2", "0", "", "abc", "1.0"])
def test_read_version_unknown_version(store, version_id):
    with pytest.raises(ResourceNotFoundError) as excinfo:
        store.read_version(1, version_id)

    assert "Unknown version" in excinfo.value.diagnostics
    assert excinfo.value.version_id == version_id


def test_read_version_unknown_resource(store):
    """Unknown resource and unknown version share the error kind, not the message."""
    with pytest.raises(ResourceNotFoundError) as excinfo:
        store.read_version(42, "1")

    assert "Unknown resource" in excinfo.value.diagnostics


def test_search_all_after_init(store):
    results = store.search_all()

    assert len(results) == 1
    assert results[0] == store.read_latest(1)


def test_create_assigns_increasing_ids(empty_store, composition_body):
    first = empty_store.create(composition_body)
    second = empty_store.create(composition_body)

    assert first["id"] == "1"
    assert second["id"] == "2"
    assert first["meta"]["versionId"] == "1"
    assert len(empty_store) == 2


def test_create_ignores_client_id_and_meta(store, composition_body):
    composition_body["id"] = "77"
    composition_body["meta"] = {"versionId": "9"}

    created = store.create(composition_body)

    assert created["id"] == "2"
    assert created["meta"]["versionId"] == "1"
    assert 77 not in store


def test_update_appends_version(store, composition_body):
    updated = store.update(1, composition_body)

    assert updated["id"] == "1"
    assert updated["meta"]["versionId"] == "2"
    assert store.read_latest(1) == updated
    assert store.read_version(1, "1")["title"] == SEED_TITLE
    assert store.read_version(1, "2")["title"] == "Discharge Summary"


def test_update_unknown_id(store, composition_body):
    with pytest.raises(ResourceNotFoundError):
        store.update(5, composition_body)


def test_latest_is_last_version(store, composition_body):
    """For versions v1..vN the latest read is vN, and vread of vN returns it."""
    for n in range(2, 6):
        body = dict(composition_body, title=f"Revision {n}")
        store.update(1, body)

    latest = store.read_latest(1)
    assert latest["meta"]["versionId"] == "5"
    assert latest["title"] == "Revision 5"
    assert store.read_version(1, "5") == latest
    assert [r["id"] for r in store.search_all()] == ["1"]


def test_history_newest_first(store, composition_body):
    store.update(1, composition_body)
    store.update(1, composition_body)

    versions = [r["meta"]["versionId"] for r in store.history(1)]
    assert versions == ["3", "2", "1"]


def test_history_unknown_id(store):
    with pytest.raises(ResourceNotFoundError):
        store.history(3)


def test_reads_return_copies(store):
    record = store.read_latest(1)
    record["title"] = "changed"
    record["identifier"]["value"] = "99999"

    fresh = store.read_latest(1)
    assert fresh["title"] == SEED_TITLE
    assert fresh["identifier"]["value"] == "00002"


def test_create_does_not_keep_caller_reference(empty_store, composition_body):
    created = empty_store.create(composition_body)
    composition_body["title"] = "changed after create"

    assert empty_store.read_latest(int(created["id"]))["title"] == "Discharge Summary"


def test_stores_are_isolated(composition_body):
    first = VersionedResourceStore()
    second = VersionedResourceStore()

    first.create(composition_body)

    assert len(first) == 2
    assert len(second) == 1


def test_concurrent_updates_keep_versions_unique(store, composition_body):
    threads = [
        threading.Thread(target=store.update, args=(1, composition_body))
        for _ in range(20)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    versions = [r["meta"]["versionId"] for r in store.history(1)]
    assert len(versions) == 21
    assert len(set(versions)) == 21
    assert store.read_latest(1)["meta"]["versionId"] == "21"
