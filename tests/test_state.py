"""Tests for the session record and session store."""

from datetime import datetime, timezone
from pathlib import Path

import orjson
import pytest

from devx.core.errors import NotFound, StoreCorruption, ValidationError
from devx.core.session import Session, format_time, parse_time
from devx.core.state import SessionStore, dumps_document
from helpers import Clock

T0 = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_session(name: str = "feat-foo", **kwargs) -> Session:
    values = dict(
        name=name,
        branch=name,
        path=Path(f"/repo/.worktrees/{name}"),
        ports={"ui": 3000, "api": 8080},
        created_at=T0,
        updated_at=T0,
    )
    values.update(kwargs)
    return Session(**values)


def test_format_time_uses_z():
    """Test UTC instants render with a Z suffix."""
    assert format_time(T0) == "2024-01-15T12:00:00Z"


def test_parse_time_zero_and_empty():
    """Test empty and year-one timestamps mean unset."""
    assert parse_time("") is None
    assert parse_time(None) is None
    assert parse_time("0001-01-01T00:00:00Z") is None


def test_parse_time_naive_is_utc():
    """Test timestamps without offset are read as UTC."""
    assert parse_time("2024-01-15T12:00:00") == T0


def test_session_rejects_duplicate_ports():
    """Test a record cannot hold the same port twice."""
    with pytest.raises(ValidationError, match="duplicate ports"):
        make_session(ports={"ui": 3000, "api": 3000})


def test_session_rejects_invalid_name():
    """Test a record cannot carry an invalid name."""
    with pytest.raises(ValidationError):
        make_session(name="bad..name")


def test_session_to_dict_omits_empty_fields():
    """Test optional fields are left out when empty."""
    data = make_session().to_dict()
    assert "routes" not in data
    assert "attention_flag" not in data
    assert "editor_pid" not in data
    assert data["created_at"] == "2024-01-15T12:00:00Z"


def test_session_preserves_unknown_fields():
    """Test fields written by newer versions survive a round trip."""
    data = make_session().to_dict()
    data["future_field"] = {"x": 1}
    again = Session.from_dict(data).to_dict()
    assert again["future_field"] == {"x": 1}


def test_load_missing_file_is_empty(tmp_path):
    """Test a missing store is an empty store."""
    store = SessionStore.load(tmp_path / "sessions.json")
    assert len(store) == 0


def test_load_empty_file_is_empty(tmp_path):
    """Test a zero-byte store is an empty store."""
    path = tmp_path / "sessions.json"
    path.write_text("")
    assert len(SessionStore.load(path)) == 0


def test_load_corrupt_file(tmp_path):
    """Test unparsable JSON raises and leaves the file alone."""
    path = tmp_path / "sessions.json"
    path.write_text("{not json")
    with pytest.raises(StoreCorruption):
        SessionStore.load(path)
    assert path.read_text() == "{not json"


def test_load_unsupported_version(tmp_path):
    """Test a store from an unknown format version is refused."""
    path = tmp_path / "sessions.json"
    path.write_bytes(orjson.dumps({"version": 99, "sessions": {}}))
    with pytest.raises(StoreCorruption, match="unsupported version"):
        SessionStore.load(path)


def test_load_bad_record(tmp_path):
    """Test a record missing required fields is corruption."""
    path = tmp_path / "sessions.json"
    path.write_bytes(orjson.dumps({"sessions": {"x": {"name": "x"}}}))
    with pytest.raises(StoreCorruption, match="bad record"):
        SessionStore.load(path)


def test_save_load_round_trip(tmp_path):
    """Test save(load(X)) reproduces X byte for byte."""
    path = tmp_path / "sessions.json"
    store = SessionStore(path)
    store.add(make_session("b-session", routes={"ui": "b-session-ui.localhost"}))
    store.add(
        make_session(
            "a-session",
            ports={"ui": 4000},
            attention_flag=True,
            attention_reason="done",
            attention_time=T0,
        )
    )
    first = path.read_bytes()

    SessionStore.load(path).save()
    assert path.read_bytes() == first


def test_unknown_top_level_keys_preserved(tmp_path):
    """Test extra document keys survive a save."""
    path = tmp_path / "sessions.json"
    path.write_bytes(
        orjson.dumps({"version": 1, "sessions": {}, "layout_hint": {"1": "x"}})
    )
    store = SessionStore.load(path)
    store.add(make_session())
    assert orjson.loads(path.read_bytes())["layout_hint"] == {"1": "x"}


def test_document_is_sorted():
    """Test serialization is independent of insertion order."""
    a = dumps_document({"sessions": {"b": {}, "a": {}}, "version": 1})
    b = dumps_document({"version": 1, "sessions": {"a": {}, "b": {}}})
    assert a == b


def test_add_duplicate(tmp_path):
    """Test adding an existing name fails and keeps one record."""
    store = SessionStore(tmp_path / "sessions.json")
    store.add(make_session("feat-bar"))
    with pytest.raises(ValidationError, match="session 'feat-bar' already exists"):
        store.add(make_session("feat-bar"))
    assert len(SessionStore.load(store.path)) == 1


def test_remove_missing(tmp_path):
    """Test removing an unknown session names it."""
    store = SessionStore(tmp_path / "sessions.json")
    with pytest.raises(NotFound, match="session 'ghost' not found"):
        store.remove("ghost")


def test_iteration_sorted_by_name(tmp_path):
    """Test sessions iterate in name order."""
    store = SessionStore(tmp_path / "sessions.json")
    store.add(make_session("zeta", ports={"ui": 3001}))
    store.add(make_session("alpha", ports={"ui": 3002}))
    assert [s.name for s in store] == ["alpha", "zeta"]


def test_update_advances_updated_at(tmp_path):
    """Test mutations move updated_at forward and persist."""
    store = SessionStore(tmp_path / "sessions.json", clock=Clock())
    store.add(make_session())
    updated = store.update("feat-foo", lambda s: setattr(s, "editor_pid", 99))
    assert updated.updated_at > T0
    assert SessionStore.load(store.path).require("feat-foo").editor_pid == 99


def test_update_advances_even_with_stalled_clock(tmp_path):
    """Test updated_at is strictly increasing when the clock does not move."""
    store = SessionStore(tmp_path / "sessions.json", clock=lambda: T0)
    store.add(make_session())
    first = store.update("feat-foo", lambda s: None).updated_at
    second = store.update("feat-foo", lambda s: None).updated_at
    assert T0 < first < second


def test_flag_then_clear_restores_state(tmp_path):
    """Test clearing a flag resets reason and time."""
    store = SessionStore(tmp_path / "sessions.json", clock=Clock())
    store.add(make_session())
    flagged = store.set_attention("feat-foo", "tests done")
    assert flagged.attention_flag
    assert flagged.attention_reason == "tests done"
    assert flagged.attention_time is not None

    cleared = store.clear_attention("feat-foo")
    assert not cleared.attention_flag
    assert cleared.attention_reason == ""
    assert cleared.attention_time is None


def test_set_attention_default_reason(tmp_path):
    """Test an empty reason becomes manual."""
    store = SessionStore(tmp_path / "sessions.json")
    store.add(make_session())
    assert store.set_attention("feat-foo", "").attention_reason == "manual"


def test_record_attach(tmp_path):
    """Test attaching stamps last_attached and clears the flag."""
    store = SessionStore(tmp_path / "sessions.json", clock=Clock())
    store.add(make_session())
    store.set_attention("feat-foo")
    attached = store.record_attach("feat-foo")
    assert attached.last_attached is not None
    assert not attached.attention_flag


def test_clear_returns_names(tmp_path):
    """Test clear empties the store and reports what it removed."""
    store = SessionStore(tmp_path / "sessions.json")
    store.add(make_session("b", ports={"ui": 3001}))
    store.add(make_session("a", ports={"ui": 3002}))
    assert store.clear() == ["a", "b"]
    assert len(SessionStore.load(store.path)) == 0


def test_save_leaves_no_temp_files(tmp_path):
    """Test atomic writes clean up after themselves."""
    store_dir = tmp_path / "store"
    store_dir.mkdir()
    store = SessionStore(store_dir / "sessions.json")
    store.add(make_session())
    store.set_attention("feat-foo")
    assert [p.name for p in store_dir.iterdir()] == ["sessions.json"]


def test_add_takes_lowest_free_slot(tmp_path):
    """Test new sessions fill slots from 1 and removal frees the slot."""
    store = SessionStore(tmp_path / "sessions.json")
    for i, name in enumerate(["a", "b", "c"]):
        store.add(make_session(name, ports={"ui": 3000 + i}))
    assert [store.slot_for(n) for n in ("a", "b", "c")] == [1, 2, 3]

    store.remove("b")
    assert store.session_for_slot(2) == ""
    store.add(make_session("d", ports={"ui": 3010}))
    assert store.slot_for("d") == 2
    assert SessionStore.load(store.path).slots == {1: "a", 2: "d", 3: "c"}


def test_slots_saved_as_string_keys(tmp_path):
    """Test slots persist under numbered_slots and are omitted when empty."""
    store = SessionStore(tmp_path / "sessions.json")
    store.save()
    assert "numbered_slots" not in orjson.loads(store.path.read_bytes())
    store.add(make_session())
    document = orjson.loads(store.path.read_bytes())
    assert document["numbered_slots"] == {"1": "feat-foo"}


def test_assign_slot_keeps_existing(tmp_path):
    """Test a session holding a slot keeps it."""
    store = SessionStore(tmp_path / "sessions.json")
    store.add(make_session("a", ports={"ui": 3001}))
    store.add(make_session("b", ports={"ui": 3002}))
    assert store.assign_slot("b") == 2
    assert store.assign_slot("b") == 2


def test_assign_slot_missing_session(tmp_path):
    """Test assigning a slot to an unknown session fails."""
    store = SessionStore(tmp_path / "sessions.json")
    with pytest.raises(NotFound, match="session 'ghost' not found"):
        store.assign_slot("ghost")


def test_assign_slot_evicts_least_recently_attached(tmp_path):
    """Test a full slot table evicts the holder attached longest ago."""
    store = SessionStore(tmp_path / "sessions.json", clock=Clock())
    for i in range(1, 10):
        store.add(make_session(f"s{i}", ports={"ui": 3000 + i}))
    for i in range(1, 10):
        if i != 4:
            store.record_attach(f"s{i}")
    store.record_attach("s3")

    store.add(make_session("s10", ports={"ui": 3010}))
    assert store.slot_for("s10") == 4
    assert store.slot_for("s4") == 0
    store.record_attach("s10")

    store.add(make_session("s11", ports={"ui": 3011}))
    assert store.slot_for("s11") == 1
    assert store.slot_for("s3") == 3


def test_assign_slot_ties_go_to_lowest(tmp_path):
    """Test never-attached holders are evicted lowest slot first."""
    store = SessionStore(tmp_path / "sessions.json")
    for i in range(1, 11):
        store.add(make_session(f"s{i}", ports={"ui": 3000 + i}))
    assert store.slot_for("s10") == 1
    assert store.slot_for("s1") == 0


def test_assign_slot_reuses_stale_slot(tmp_path):
    """Test a slot naming a missing session is reused before evicting."""
    sessions = {
        f"s{i}": make_session(f"s{i}", ports={"ui": 3000 + i}) for i in range(1, 9)
    }
    slots = {i: f"s{i}" for i in range(1, 9)}
    slots[9] = "gone"
    store = SessionStore(tmp_path / "sessions.json", sessions, slots=slots)
    store.add(make_session("new", ports={"ui": 3100}))
    assert store.slot_for("new") == 9
    assert all(store.slot_for(f"s{i}") == i for i in range(1, 9))


def test_load_reconciles_slots(tmp_path):
    """Test loading drops slots for missing sessions or out of range."""
    path = tmp_path / "sessions.json"
    store = SessionStore(path)
    store.add(make_session())
    document = store.to_document()
    document["numbered_slots"] = {"1": "feat-foo", "2": "gone", "12": "feat-foo"}
    path.write_bytes(orjson.dumps(document))
    assert SessionStore.load(path).slots == {1: "feat-foo"}


def test_load_bad_slots(tmp_path):
    """Test a malformed slot table is reported as corruption."""
    path = tmp_path / "sessions.json"
    path.write_bytes(
        orjson.dumps({"version": 1, "sessions": {}, "numbered_slots": {"x": "a"}})
    )
    with pytest.raises(StoreCorruption, match="bad record"):
        SessionStore.load(path)


def test_clear_frees_slots(tmp_path):
    """Test clearing the store empties the slot table."""
    store = SessionStore(tmp_path / "sessions.json")
    store.add(make_session())
    store.clear()
    assert store.slots == {}
    assert SessionStore.load(store.path).slots == {}
