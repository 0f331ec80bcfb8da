import os
from typing import Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from apps.restaurant.app import filters
from apps.restaurant.app.errors import ReadFailure, WriteFailure

os.environ.setdefault("ENV", "test")


class FakeCollection:
    def __init__(self, store: "FakeStore", name: str):
        self.store = store
        self.name = name

    @property
    def records(self) -> Dict[str, dict]:
        return self.store.data.setdefault(self.name, {})

    def _read(self, op: str, **kw) -> None:
        self.store.calls.append((op, self.name, kw))
        if self.name in self.store.fail_reads:
            raise ReadFailure(f"{self.name}: unavailable", status=503, collection=self.name)

    def _write(self, op: str, **kw) -> None:
        self.store.calls.append((op, self.name, kw))
        if self.name in self.store.fail_writes:
            raise WriteFailure(f"{self.name}: rejected", status=400, collection=self.name)

    def get_full_list(self, filter=None, sort=None, expand=None, batch=500) -> List[dict]:
        text = filter if isinstance(filter, str) else filters.render(filter)
        self._read("get_full_list", filter=text, sort=sort)
        responder = self.store.list_responders.get(self.name)
        if responder is not None:
            return [dict(r) for r in responder(text)]
        return [dict(r) for r in self.records.values()]

    def get_list(self, page=1, per_page=30, filter=None, sort=None, expand=None, skip_total=False) -> dict:
        items = self.get_full_list(filter=filter, sort=sort)
        start = (page - 1) * per_page
        return {"page": page, "perPage": per_page, "items": items[start:start + per_page]}

    def get_one(self, record_id: str, expand=None) -> dict:
        self._read("get_one", id=record_id)
        if record_id not in self.records:
            raise ReadFailure(f"{self.name}: not found", status=404, collection=self.name)
        return dict(self.records[record_id])

    def create(self, data: dict) -> dict:
        self._write("create", data=dict(data))
        rec = dict(data)
        rec.setdefault("id", f"{self.name}-{len(self.records) + 1}")
        self.records[rec["id"]] = rec
        return dict(rec)

    def update(self, record_id: str, data: dict) -> dict:
        self._write("update", id=record_id, data=dict(data))
        rec = self.records.setdefault(record_id, {"id": record_id})
        rec.update(data)
        return dict(rec)

    def delete(self, record_id: str) -> bool:
        self._write("delete", id=record_id)
        if self.records.pop(record_id, None) is None:
            raise WriteFailure(f"{self.name}: not found", status=404, collection=self.name)
        return True

    def subscribe(self, topic: str, callback) -> Callable[[], None]:
        key = f"{self.name}/{topic}"
        self.store.subscriptions.setdefault(key, []).append(callback)
        return lambda: self.store.subscriptions.get(key, []).remove(callback)


class FakeStore:
    """
    In-memory stand-in for the document store. Every call is logged in
    ``calls``; names in ``fail_reads`` / ``fail_writes`` raise the
    matching store error.
    """

    def __init__(self):
        self.data: Dict[str, Dict[str, dict]] = {}
        self.calls: List[tuple] = []
        self.fail_reads: set = set()
        self.fail_writes: set = set()
        self.list_responders: Dict[str, Callable[[str], List[dict]]] = {}
        self.subscriptions: Dict[str, list] = {}

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self, name)

    def seed(self, name: str, *records: dict) -> None:
        for r in records:
            self.data.setdefault(name, {})[r["id"]] = dict(r)

    def writes(self, op: Optional[str] = None) -> List[tuple]:
        kinds = (op,) if op else ("create", "update", "delete")
        return [c for c in self.calls if c[0] in kinds]

    def close(self) -> None:
        pass


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture(scope="session")
def app():
    from apps.restaurant.app.main import app as restaurant_app

    return restaurant_app


@pytest.fixture()
def client(app, store):
    """TestClient wired to the in-memory store."""
    from apps.restaurant.app.main import get_store

    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def staff():
    """Header factory: ``staff("Server", "u1")``."""

    def _headers(role: str, staff_id: str = "u1") -> Dict[str, str]:
        return {"X-Staff-Role": role, "X-Staff-Id": staff_id}

    return _headers
