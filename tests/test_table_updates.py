from __future__ import annotations

import logging

import pytest

from apps.restaurant.app import tables
from apps.restaurant.app.errors import PermissionDenied, ReadFailure, ValidationError, WriteFailure


@pytest.mark.parametrize(
    "action,status",
    [
        ("seated", "occupied"),
        ("cleared", "cleaning"),
        ("cleaned", "available"),
        ("reserved", "reserved"),
        ("out_of_order", "out_of_order"),
        ("back_in_service", "available"),
    ],
)
def test_action_mapping(action, status):
    assert tables.table_status_for_action(action) == status


def test_unknown_action_defaults_to_available_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="restaurant.tables"):
        assert tables.table_status_for_action("mopped") == "available"
    assert "mopped" in caplog.text
    with pytest.raises(ValidationError):
        tables.table_status_for_action("mopped", strict=True)


def test_can_seat_party():
    t = tables.Table(id="tb1", table_name="T1", capacity=4, status="available")
    assert tables.can_seat_party(t, 4)
    assert not tables.can_seat_party(t, 5)
    assert not tables.can_seat_party(t, 0)
    assert tables.can_seat_party(t.model_copy(update={"status": "reserved"}), 2)
    assert not tables.can_seat_party(t.model_copy(update={"status": "cleaning"}), 2)


def test_write_with_fallback_stops_at_first_success():
    seen = []

    def write(name):
        seen.append(name)
        if name == "a":
            raise RuntimeError("boom")
        return {"id": "x", "collection": name}

    out = tables.write_with_fallback(["a", "b", "c"], write)
    assert seen == ["a", "b"]
    assert out.updated
    assert out.record == {"id": "x", "collection": "b"}
    assert [a.to_dict() for a in out.attempts] == [
        {"collection": "a", "field": "status", "ok": False, "error": "boom"},
        {"collection": "b", "field": "status", "ok": True},
    ]


def test_write_with_fallback_all_failing_raises_on_demand():
    def write(name):
        raise WriteFailure(f"{name} down", status=503)

    out = tables.write_with_fallback(["a", "b"], write)
    assert not out.updated
    assert [a.ok for a in out.attempts] == [False, False]
    with pytest.raises(WriteFailure) as exc:
        out.raise_for_failure("table status write")
    assert exc.value.status == 503


def test_fetch_table_falls_back_to_second_collection(store):
    store.seed("tables_collection", {"id": "tb1", "table_name": "T1", "capacity": 4})
    assert tables.fetch_table(store, "tb1")["table_name"] == "T1"
    with pytest.raises(ReadFailure) as exc:
        tables.fetch_table(store, "missing")
    assert exc.value.status == 404


def _seed_table(store, status="available", capacity=4, name="tables"):
    store.seed(name, {"id": "tb1", "table_name": "T1", "capacity": capacity, "status": status, "current_party_size": 0})


def test_record_seated_update(store):
    _seed_table(store)
    result = tables.record_table_update(
        store, {"table_id": "tb1", "action_type": "seated", "party_size": 3, "notes": "window"}, "Host", "h1"
    )
    assert result.table_status == "occupied"
    assert store.data["tables"]["tb1"]["status"] == "occupied"
    assert store.data["tables"]["tb1"]["current_party_size"] == 3
    (entry,) = store.data["table_updates_collection"].values()
    assert entry["action_type"] == "seated"
    assert entry["performed_by"] == "h1"
    assert entry["table_name"] == "T1"


def test_record_update_uses_fallback_collections(store):
    _seed_table(store, status="occupied")
    store.fail_writes |= {"table_updates_collection", "tables"}
    result = tables.record_table_update(store, {"table_id": "tb1", "action_type": "cleared"}, "Manager", "m1")
    assert [(a.collection, a.ok) for a in result.attempts] == [
        ("table_updates_collection", False),
        ("table_updates", True),
        ("tables", False),
        ("tables_collection", True),
    ]
    assert store.data["tables_collection"]["tb1"] == {"id": "tb1", "status": "cleaning", "current_party_size": 0}


def test_record_update_guards(store):
    _seed_table(store, status="occupied")
    with pytest.raises(ValidationError, match="Cannot seat guests at occupied table"):
        tables.record_table_update(store, {"table_id": "tb1", "action_type": "seated", "party_size": 2}, "Host", "h1")

    store.data["tables"]["tb1"]["status"] = "available"
    with pytest.raises(ValidationError, match="Cannot clear already available table"):
        tables.record_table_update(store, {"table_id": "tb1", "action_type": "cleared"}, "Host", "h1")
    with pytest.raises(ValidationError):
        tables.record_table_update(store, {"table_id": "tb1", "action_type": "seated", "party_size": 9}, "Host", "h1")
    with pytest.raises(ValidationError):
        tables.record_table_update(store, {"table_id": "tb1", "action_type": "mopped"}, "Host", "h1")
    with pytest.raises(PermissionDenied):
        tables.record_table_update(store, {"table_id": "tb1", "action_type": "cleaned"}, "Chef", "c1")
    assert store.writes() == []


def test_record_update_fails_when_every_write_fails(store):
    _seed_table(store, status="cleaning")
    store.fail_writes |= {"tables", "tables_collection"}
    with pytest.raises(WriteFailure):
        tables.record_table_update(store, {"table_id": "tb1", "action_type": "cleaned"}, "Host", "h1")
    assert store.data["tables"]["tb1"]["status"] == "cleaning"
