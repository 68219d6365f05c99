import pytest

from vuln_watch.errors import PersistenceError
from vuln_watch.storage import Storage


def test_create_and_find(storage, vuln):
    item = vuln("src:1", cve="CVE-2024-0001", tags=["rce"], references=["https://a.example"])
    created = storage.create(item)

    assert created.key == "src:1"
    assert created.pushed is False
    found = storage.find_by_key("src:1")
    assert found == created
    assert found.tags == ["rce"]
    assert found.references == ["https://a.example"]
    assert storage.find_by_key("missing") is None


def test_duplicate_key_is_rejected(storage, vuln):
    storage.create(vuln("src:1"))
    with pytest.raises(PersistenceError):
        storage.create(vuln("src:1"))
    assert storage.count() == 1


def test_update_overwrites_fields_but_not_pushed(storage, vuln):
    storage.create(vuln("src:1", severity="Low"))
    storage.set_pushed("src:1")

    updated = storage.update("src:1", vuln("src:1", title="New title", severity="Critical", tags=["poc"]))

    assert updated.title == "New title"
    assert updated.severity == "Critical"
    assert updated.tags == ["poc"]
    assert updated.pushed is True
    assert storage.count() == 1


def test_update_missing_key(storage, vuln):
    with pytest.raises(PersistenceError):
        storage.update("nope", vuln("nope"))
    with pytest.raises(PersistenceError):
        storage.set_pushed("nope")


def test_query_by_cve_and_pushed(storage, vuln):
    storage.create(vuln("a:1", cve="CVE-2024-1111"))
    storage.create(vuln("b:1", cve="CVE-2024-1111"))
    storage.create(vuln("c:1", cve="CVE-2024-2222"))
    storage.set_pushed("b:1")

    assert [v.key for v in storage.query(cve="CVE-2024-1111")] == ["a:1", "b:1"]
    assert [v.key for v in storage.query(cve="CVE-2024-1111", pushed=True)] == ["b:1"]
    assert storage.query(cve="CVE-2024-2222", pushed=True) == []
    assert len(storage.query()) == 3


def test_query_rejects_unknown_fields(storage):
    with pytest.raises(ValueError):
        storage.query(title="x")


def test_set_references(storage, vuln):
    storage.create(vuln("src:1"))
    stored = storage.set_references("src:1", ["https://x.example", "https://y.example"])
    assert stored.references == ["https://x.example", "https://y.example"]


def test_catalog_survives_reopen(tmp_path, vuln):
    """Seen records are remembered across process restarts."""
    db_path = str(tmp_path / "data" / "vulns.sqlite")
    first = Storage(db_path)
    first.create(vuln("src:1"))
    first.set_pushed("src:1")

    second = Storage(db_path)
    assert second.count() == 1
    assert second.find_by_key("src:1").pushed is True
