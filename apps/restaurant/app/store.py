"""
HTTP client for the PocketBase-style document store.

Every collection exposes ``get_full_list``, ``get_list``, ``get_one``,
``create``, ``update``, ``delete`` and ``subscribe``. Reads that fail raise
:class:`ReadFailure`, writes raise :class:`WriteFailure`; both carry the
upstream HTTP status (0 for transport errors). Nothing is cached.

Realtime subscriptions are a pass-through for UI layers: events are
delivered to callbacks exactly as the store sends them
(``{"action": "create"|"update"|"delete", "record": {...}}``).
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Iterable, Iterator, Optional, Union

import httpx

from apps.restaurant.app import filters
from apps.restaurant.app.errors import ReadFailure, StoreError, WriteFailure

_log = logging.getLogger("restaurant.store")

FilterArg = Union[str, filters.Condition, filters.Group, None]
EventCallback = Callable[[dict], None]


def _filter_text(value: FilterArg) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    return filters.render(value)


def _error_message(r: httpx.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return r.text or r.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return r.reason_phrase


class DocumentStore:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = client or httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
        )
        self._realtime: Optional[Realtime] = None

    def collection(self, name: str) -> "Collection":
        return Collection(self, name)

    def authenticate(self, email: str, password: str, collection: str = "_superusers") -> str:
        """Password auth; the returned token is used for later calls."""
        r = self._send(
            "POST",
            f"/api/collections/{collection}/auth-with-password",
            ReadFailure,
            collection,
            json={"identity": email, "password": password},
        )
        token = (r.json() or {}).get("token")
        if not token:
            raise ReadFailure(f"{collection}: no token in auth response", status=r.status_code, collection=collection)
        self.token = token
        return token

    def headers(self) -> dict[str, str]:
        return {"Authorization": self.token} if self.token else {}

    def _send(self, method: str, path: str, error_cls: type[StoreError], collection: str, **kwargs) -> httpx.Response:
        try:
            r = self._client.request(method, path, headers=self.headers(), **kwargs)
        except httpx.HTTPError as e:
            raise error_cls(f"{collection}: {e}", status=0, collection=collection) from e
        if r.status_code >= 400:
            raise error_cls(f"{collection}: {_error_message(r)}", status=r.status_code, collection=collection)
        return r

    def realtime(self) -> "Realtime":
        if self._realtime is None:
            self._realtime = Realtime(self)
        return self._realtime

    def close(self) -> None:
        if self._realtime is not None:
            self._realtime.close()
        self._client.close()


class Collection:
    def __init__(self, store: DocumentStore, name: str):
        self.store = store
        self.name = name

    @property
    def _records_path(self) -> str:
        return f"/api/collections/{self.name}/records"

    def get_list(
        self,
        page: int = 1,
        per_page: int = 30,
        filter: FilterArg = None,
        sort: Optional[str] = None,
        expand: Optional[str] = None,
        skip_total: bool = False,
    ) -> dict:
        params: dict[str, Any] = {"page": page, "perPage": per_page}
        text = _filter_text(filter)
        if text:
            params["filter"] = text
        if sort:
            params["sort"] = sort
        if expand:
            params["expand"] = expand
        if skip_total:
            params["skipTotal"] = 1
        r = self.store._send("GET", self._records_path, ReadFailure, self.name, params=params)
        body = r.json()
        if not isinstance(body, dict) or not isinstance(body.get("items"), list):
            raise ReadFailure(f"{self.name}: malformed list response", status=r.status_code, collection=self.name)
        return body

    def get_full_list(
        self,
        filter: FilterArg = None,
        sort: Optional[str] = None,
        expand: Optional[str] = None,
        batch: int = 500,
    ) -> list[dict]:
        out: list[dict] = []
        page = 1
        while True:
            body = self.get_list(page, batch, filter=filter, sort=sort, expand=expand, skip_total=True)
            items = body["items"]
            out.extend(items)
            if len(items) < batch:
                return out
            page += 1

    def get_one(self, record_id: str, expand: Optional[str] = None) -> dict:
        if not record_id:
            raise ReadFailure(f"{self.name}: missing record id", status=404, collection=self.name)
        params = {"expand": expand} if expand else None
        return self.store._send("GET", f"{self._records_path}/{record_id}", ReadFailure, self.name, params=params).json()

    def create(self, data: dict) -> dict:
        return self.store._send("POST", self._records_path, WriteFailure, self.name, json=data).json()

    def update(self, record_id: str, data: dict) -> dict:
        if not record_id:
            raise WriteFailure(f"{self.name}: missing record id", status=404, collection=self.name)
        return self.store._send("PATCH", f"{self._records_path}/{record_id}", WriteFailure, self.name, json=data).json()

    def delete(self, record_id: str) -> bool:
        if not record_id:
            raise WriteFailure(f"{self.name}: missing record id", status=404, collection=self.name)
        self.store._send("DELETE", f"{self._records_path}/{record_id}", WriteFailure, self.name)
        return True

    def subscribe(self, topic: str, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to ``"*"`` or a record id; returns an unsubscribe callable."""
        return self.store.realtime().subscribe(f"{self.name}/{topic}", callback)

    def unsubscribe(self, topic: Optional[str] = None) -> None:
        rt = self.store.realtime()
        if topic is None:
            rt.unsubscribe_prefix(f"{self.name}/")
        else:
            rt.unsubscribe(f"{self.name}/{topic}")


def iter_sse_events(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
    """Yield ``(event, data)`` pairs from server-sent-event lines."""
    event = "message"
    data: list[str] = []
    for line in lines:
        if line == "":
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class Realtime:
    """
    One SSE connection per store, opened on the first subscription and
    run on a daemon thread. The stream reconnects until every topic has
    been unsubscribed.
    """

    def __init__(self, store: DocumentStore):
        self._store = store
        self._callbacks: dict[str, list[EventCallback]] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._response: Optional[httpx.Response] = None
        self.client_id: Optional[str] = None

    def topics(self) -> list[str]:
        with self._lock:
            return sorted(self._callbacks)

    def subscribe(self, topic: str, callback: EventCallback) -> Callable[[], None]:
        with self._lock:
            self._callbacks.setdefault(topic, []).append(callback)
        self._ensure_running()
        self._submit_subscriptions()

        def _unsubscribe() -> None:
            self.unsubscribe(topic, callback)

        return _unsubscribe

    def unsubscribe(self, topic: str, callback: Optional[EventCallback] = None) -> None:
        with self._lock:
            if callback is None:
                self._callbacks.pop(topic, None)
            else:
                cbs = [c for c in self._callbacks.get(topic, []) if c is not callback]
                if cbs:
                    self._callbacks[topic] = cbs
                else:
                    self._callbacks.pop(topic, None)
            empty = not self._callbacks
        if empty:
            self.close()
        else:
            self._submit_subscriptions()

    def unsubscribe_prefix(self, prefix: str) -> None:
        for topic in [t for t in self.topics() if t.startswith(prefix)]:
            self.unsubscribe(topic)

    def dispatch(self, topic: str, payload: dict) -> None:
        with self._lock:
            cbs = list(self._callbacks.get(topic, []))
        for cb in cbs:
            try:
                cb(payload)
            except Exception:
                _log.exception("realtime callback failed for %s", topic)

    def handle(self, event: str, data: str) -> None:
        try:
            payload = json.loads(data) if data else {}
        except ValueError:
            _log.warning("realtime: non-JSON payload for %s", event)
            return
        if event == "PB_CONNECT":
            self.client_id = payload.get("clientId")
            self._submit_subscriptions()
            return
        self.dispatch(event, payload)

    def _submit_subscriptions(self) -> None:
        if not self.client_id:
            return
        body = {"clientId": self.client_id, "subscriptions": self.topics()}
        self._store._send("POST", "/api/realtime", WriteFailure, "realtime", json=body)

    def _ensure_running(self) -> None:
        if self._thread is not None and self._thread.is_alive() and not self._stop.is_set():
            return
        # A stopped thread keeps its own event and exits on its next line.
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, args=(self._stop,), name="pb-realtime", daemon=True)
        self._thread.start()

    def _run(self, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                with self._store._client.stream(
                    "GET",
                    "/api/realtime",
                    headers=self._store.headers(),
                    timeout=httpx.Timeout(10.0, read=None),
                ) as r:
                    if not stop.is_set():
                        self._response = r
                    try:
                        r.raise_for_status()
                        for event, data in iter_sse_events(r.iter_lines()):
                            if stop.is_set():
                                return
                            self.handle(event, data)
                    finally:
                        if self._response is r:
                            self._response = None
            except (httpx.HTTPError, httpx.StreamError, StoreError) as e:
                if stop.is_set():
                    return
                _log.warning("realtime stream error: %s", e)
            # A stopped run no longer owns client_id; a restarted one may.
            if stop.is_set():
                return
            self.client_id = None
            stop.wait(1.0)

    def close(self, timeout: float = 2.0) -> None:
        """Stop the stream thread, interrupting a blocked read."""
        self._stop.set()
        self.client_id = None
        response, self._response = self._response, None
        if response is not None:
            try:
                response.close()
            except (httpx.HTTPError, httpx.StreamError, OSError) as e:
                _log.debug("realtime close: %s", e)
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)


def build_store(settings) -> DocumentStore:
    store = DocumentStore(settings.pocketbase_url, token=settings.pocketbase_token, timeout=settings.store_timeout_secs)
    if not store.token and settings.pocketbase_admin_email and settings.pocketbase_admin_password:
        store.authenticate(settings.pocketbase_admin_email, settings.pocketbase_admin_password)
    return store


__all__ = [
    "Collection",
    "DocumentStore",
    "Realtime",
    "build_store",
    "iter_sse_events",
]
