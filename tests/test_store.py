from pathlib import Path

import pytest

from worldsave.errors import CorruptSaveError, SaveNotFound
from worldsave.records import SaveRecord
from worldsave.store import FileBackend, InMemoryBackend, SaveStore


def _record(ts, scene="Farm"):
    return SaveRecord(save_timestamp=ts, scene_identifier=scene)


def test_fourth_save_evicts_oldest():
    backend = InMemoryBackend()
    store = SaveStore(backend, max_slots=3)
    for ts in ["t1", "t2", "t3", "t4"]:
        store.save(_record(ts))

    assert store.list_timestamps() == ["t2", "t3", "t4"]
    assert backend.get("SaveTimes") == "t2,t3,t4"
    assert not backend.has("GameSave_t1")
    with pytest.raises(SaveNotFound):
        store.load("t1")
    assert store.load("t4").save_timestamp == "t4"


def test_resave_same_timestamp_moves_to_end():
    store = SaveStore(InMemoryBackend(), max_slots=3)
    store.save(_record("t1"))
    store.save(_record("t2"))
    store.save(_record("t1", scene="Town"))
    assert store.list_timestamps() == ["t2", "t1"]
    assert store.load("t1").scene_identifier == "Town"
    assert store.latest() == "t1"


def test_corrupt_payload_raises():
    backend = InMemoryBackend()
    store = SaveStore(backend)
    store.save(_record("t1"))
    backend.set("GameSave_t1", "{not json")
    with pytest.raises(CorruptSaveError):
        store.load("t1")


def test_index_entries_without_data_are_dropped():
    backend = InMemoryBackend()
    store = SaveStore(backend)
    store.save(_record("t1"))
    store.save(_record("t2"))
    backend.delete("GameSave_t1")
    assert store.list_timestamps() == ["t2"]
    assert backend.get("SaveTimes") == "t2"


def test_list_is_a_copy():
    store = SaveStore(InMemoryBackend())
    store.save(_record("t1"))
    listed = store.list_timestamps()
    listed.append("bogus")
    assert store.list_timestamps() == ["t1"]


def test_delete_and_has():
    store = SaveStore(InMemoryBackend())
    store.save(_record("t1"))
    store.save(_record("t2"))
    assert store.has("t1")
    assert store.delete("t1") is True
    assert not store.has("t1")
    assert store.delete("t1") is False
    assert store.list_timestamps() == ["t2"]


def test_empty_store():
    store = SaveStore(InMemoryBackend())
    assert store.list_timestamps() == []
    assert store.latest() is None


def test_record_without_timestamp_rejected():
    store = SaveStore(InMemoryBackend())
    with pytest.raises(ValueError):
        store.save(SaveRecord())


def test_file_backend_persists_across_instances(tmp_path: Path):
    ts = "2024-05-01 12:00:00"
    SaveStore(FileBackend(tmp_path)).save(_record(ts))

    files = sorted(p.name for p in tmp_path.iterdir())
    assert files == ["GameSave_2024-05-01 12%3A00%3A00.txt", "SaveTimes.txt"]

    reopened = SaveStore(FileBackend(tmp_path))
    assert reopened.list_timestamps() == [ts]
    assert reopened.load(ts).scene_identifier == "Farm"


def test_file_backend_delete_missing_is_noop(tmp_path: Path):
    backend = FileBackend(tmp_path)
    backend.delete("nothing")
    assert backend.get("nothing") is None


def test_file_backend_keys_never_share_a_file(tmp_path: Path):
    backend = FileBackend(tmp_path)
    backend.set("12:00", "colon")
    backend.set("12-00", "dash")
    backend.set("a/b", "slash")
    backend.set("a_b", "underscore")
    assert backend.get("12:00") == "colon"
    assert backend.get("12-00") == "dash"
    assert backend.get("a/b") == "slash"
    assert backend.get("a_b") == "underscore"
    assert len(list(tmp_path.iterdir())) == 4


def test_undecodable_save_file_is_corrupt(tmp_path: Path):
    backend = FileBackend(tmp_path)
    store = SaveStore(backend)
    ts = store.save(_record("2024-05-01 12:00:00"))
    backend.path_for(store.key_for(ts)).write_bytes(b"\xff\xfe{not utf8")

    with pytest.raises(CorruptSaveError):
        store.load(ts)
    assert store.list_timestamps() == [ts]
