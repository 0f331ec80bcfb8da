from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from apps.restaurant.app import holds
from apps.restaurant.app.errors import ReadFailure

NOW = datetime(2025, 8, 17, 17, 0)


def _scenario():
    return [
        {"id": "r1", "reservation_date": "2025-08-17 00:00:00.000Z", "start_time": "18:00", "status": "booked", "table_id": "t1"},
        {"id": "r2", "reservation_date": "2025-08-17 00:00:00.000Z", "start_time": "14:00", "status": "booked", "table_id": "t2"},
        {"id": "r3", "reservation_date": "2025-08-17 00:00:00.000Z", "start_time": "18:30", "status": "seated", "table_id": "t3"},
        {"id": "r4", "reservation_date": "2025-08-18 00:00:00.000Z", "start_time": "18:00", "status": "booked", "table_id": "t4"},
    ]


@pytest.fixture()
def booked(store):
    store.list_responders["reservations"] = lambda text: _scenario()
    return store


def test_scenario_applies_r1_and_r3(booked):
    report = holds.apply_holds(booked, now=NOW, hold_minutes=120)
    assert report.applied == 2
    assert report.eligible == 2
    assert [r.id for r in report.results] == ["r1", "r3"]
    assert booked.data["tables"]["t1"]["status"] == "reserved"
    assert booked.data["tables"]["t3"]["status"] == "reserved"
    assert "t2" not in booked.data["tables"]
    assert "t4" not in booked.data["tables"]


def test_hold_clears_party_size_on_occupied_table(booked):
    booked.seed("tables", {"id": "t3", "status": "occupied", "current_party_size": 3})
    holds.apply_holds(booked, now=NOW)
    assert booked.data["tables"]["t3"] == {"id": "t3", "status": "reserved", "current_party_size": 0}
    assert booked.data["tables"]["t1"]["current_party_size"] == 0


def test_fallback_trace(booked):
    booked.fail_writes.add("tables")
    report = holds.apply_holds(booked, now=NOW)
    body = report.to_dict(debug=True)
    assert body["ok"] is True
    assert body["applied"] == 2
    first = body["results"][0]
    assert first["id"] == "r1"
    assert first["table_id"] == "t1"
    assert first["updated"] is True
    assert first["start_at"] == "2025-08-17T18:00:00"
    assert [(a["collection"], a["ok"]) for a in first["attempts"]] == [("tables", False), ("tables_collection", True)]
    assert first["attempts"][0]["field"] == "status"
    assert "error" in first["attempts"][0]


def test_partial_failures_do_not_stop_the_batch(booked):
    booked.fail_writes |= {"tables", "tables_collection"}
    report = holds.apply_holds(booked, now=NOW)
    assert report.eligible == 2
    assert report.applied == 0
    assert all(len(r.attempts) == 2 for r in report.results)
    assert "results" not in report.to_dict()


def test_reservation_read_failure_propagates(store):
    store.fail_reads.add("reservations")
    with pytest.raises(ReadFailure):
        holds.apply_holds(store, now=NOW)


@pytest.mark.parametrize("minutes,expected", [(-121, False), (-120, True), (0, True), (120, True), (121, False)])
def test_window_edges_are_inclusive(minutes, expected):
    res = {"id": "r", "reservation_date": "2025-08-17", "start_time": "18:00", "status": "booked", "table_id": "t"}
    now = datetime(2025, 8, 17, 18, 0) + timedelta(minutes=minutes)
    assert (holds.hold_start_if_eligible(res, now) is not None) is expected


@pytest.mark.parametrize("day_offset", [-1, 1])
def test_other_days_never_activate(day_offset):
    res = {"id": "r", "reservation_date": "2025-08-17", "start_time": "18:00", "status": "booked", "table_id": "t"}
    assert holds.hold_start_if_eligible(res, datetime(2025, 8, 17, 18, 0) + timedelta(days=day_offset)) is None


def test_late_reservation_held_past_midnight_is_not_carried_over():
    res = {"id": "r", "reservation_date": "2025-08-17", "start_time": "23:30", "status": "booked", "table_id": "t"}
    assert holds.hold_start_if_eligible(res, datetime(2025, 8, 17, 23, 50)) is not None
    assert holds.hold_start_if_eligible(res, datetime(2025, 8, 18, 0, 30)) is None


@pytest.mark.parametrize(
    "changes",
    [{"status": "canceled"}, {"status": "CANCELED"}, {"table_id": None}, {"table_id": ""}, {"reservation_date": None}],
)
def test_ineligible_records(changes):
    res = {"id": "r", "reservation_date": "2025-08-17", "start_time": "18:00", "status": "booked", "table_id": "t"}
    res.update(changes)
    assert holds.hold_start_if_eligible(res, datetime(2025, 8, 17, 17, 0)) is None


def test_status_is_case_insensitive():
    res = {"id": "r", "reservation_date": "2025-08-17", "start_time": "18:00", "status": "Booked", "table_id": "t"}
    assert holds.hold_start_if_eligible(res, datetime(2025, 8, 17, 17, 0)) == datetime(2025, 8, 17, 18, 0)
