from __future__ import annotations

import json

import pytest

from assetstore_backend.errors import DuplicateSession, StorageError, StoreInconsistency
from assetstore_backend.store import AssetDB


def _fields(**overrides):
    fields = {"path": "files/s1/tone.wav", "modified": 1, "size": 12, "mime": "audio/x-wav", "hash": "abc"}
    fields.update(overrides)
    return fields


def test_missing_session_is_empty_result(db: AssetDB) -> None:
    assert db.find_by_session("s1") == []
    assert db.find_one("s1") is None


def test_upsert_inserts_then_increments(db: AssetDB) -> None:
    record, inserted = db.upsert_asset("s1", "tone", _fields())
    assert inserted is True
    assert record["updated"] == 0

    record, inserted = db.upsert_asset("s1", "tone", _fields(size=20, hash="def"))
    assert inserted is False
    assert record["updated"] == 1
    assert record["size"] == 20

    doc = db.find_one("s1")
    assert doc["assets"]["tone"]["hash"] == "def"


def test_new_key_in_existing_session_starts_at_zero(db: AssetDB) -> None:
    db.upsert_asset("s1", "tone", _fields())
    db.upsert_asset("s1", "tone", _fields())
    record, inserted = db.upsert_asset("s1", "drum", _fields(path="files/s1/drum.wav"))
    assert inserted is False
    assert record["updated"] == 0
    assert db.find_one("s1")["assets"]["tone"]["updated"] == 1


def test_caller_cannot_set_updated(db: AssetDB) -> None:
    record, _ = db.upsert_asset("s1", "tone", _fields(updated=99))
    assert record["updated"] == 0


def test_snapshots_are_copies(db: AssetDB) -> None:
    db.upsert_asset("s1", "tone", _fields())
    doc = db.find_one("s1")
    doc["assets"]["tone"]["size"] = 0
    assert db.find_one("s1")["assets"]["tone"]["size"] == 12


def test_insert_session_refuses_duplicates(db: AssetDB) -> None:
    db.insert_session({"sessionId": "s1", "assets": {}})
    with pytest.raises(DuplicateSession):
        db.insert_session({"sessionId": "s1", "assets": {}})


def test_documents_survive_reopen(settings, db: AssetDB) -> None:
    db.upsert_asset("s1", "tone", _fields())
    db.close()

    reopened = AssetDB(settings.db_location)
    reopened.open()
    assert reopened.find_one("s1")["assets"]["tone"]["hash"] == "abc"
    reopened.close()


def test_duplicate_documents_on_disk_are_inconsistent(tmp_path) -> None:
    location = tmp_path / "dup.db"
    doc = {"sessionId": "s1", "assets": {}}
    location.write_text(json.dumps(doc) + "\n" + json.dumps(doc) + "\n", encoding="utf-8")
    store = AssetDB(location)
    store.open()
    assert len(store.find_by_session("s1")) == 2
    with pytest.raises(StoreInconsistency):
        store.find_one("s1")
    with pytest.raises(StoreInconsistency):
        store.upsert_asset("s1", "tone", _fields())


def test_corrupt_store_file_fails_to_open(tmp_path) -> None:
    location = tmp_path / "bad.db"
    location.write_text("{not json\n", encoding="utf-8")
    with pytest.raises(StorageError):
        AssetDB(location).open()


def test_failed_flush_leaves_memory_unchanged(db: AssetDB, monkeypatch) -> None:
    db.upsert_asset("s1", "tone", _fields())

    def _boom(docs):
        raise StorageError("disk full")

    monkeypatch.setattr(db, "_flush", _boom)
    with pytest.raises(StorageError):
        db.upsert_asset("s1", "tone", _fields(size=99))
    assert db.find_one("s1")["assets"]["tone"]["size"] == 12
    assert db.find_one("s1")["assets"]["tone"]["updated"] == 0


def test_closed_store_rejects_lookups(settings) -> None:
    with pytest.raises(StorageError):
        AssetDB(settings.db_location).find_one("s1")
