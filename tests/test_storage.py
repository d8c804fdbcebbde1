import json

from climbtimer.utils.storage import RoomStore


def test_save_then_load(tmp_path):
    store = RoomStore(tmp_path / "rooms")
    payload = {"rounds": [{"name": "Qualifiers", "categories": []}], "activeRoundIndex": 0}
    assert store.save("gym", payload) is True
    assert (tmp_path / "rooms" / "gym.json").exists()
    assert store.load("gym") == payload


def test_missing_room_loads_as_none(tmp_path):
    assert RoomStore(tmp_path).load("nobody") is None


def test_unparseable_file_is_logged_and_ignored(tmp_path, caplog):
    (tmp_path / "gym.json").write_text("{not json", encoding="utf-8")
    assert RoomStore(tmp_path).load("gym") is None
    assert "Failed to load room gym" in caplog.text


def test_non_object_file_is_rejected(tmp_path):
    (tmp_path / "gym.json").write_text(json.dumps([1, 2, 3]), encoding="utf-8")
    assert RoomStore(tmp_path).load("gym") is None


def test_save_failure_returns_false(tmp_path, caplog):
    blocker = tmp_path / "rooms"
    blocker.write_text("a file where the directory should be", encoding="utf-8")
    assert RoomStore(blocker).save("gym", {"rounds": []}) is False
    assert "Failed to save room gym" in caplog.text


def test_delete_removes_file(tmp_path):
    store = RoomStore(tmp_path)
    store.save("gym", {"rounds": []})
    store.delete("gym")
    store.delete("gym")
    assert store.load("gym") is None
