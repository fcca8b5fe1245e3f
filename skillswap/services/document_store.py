"""Document Store - Abstraction layer for record persistence and change feeds.

This module provides a unified interface over a queryable document store
with push-based change notification, plus two implementations (in-memory
and JSON-file backed).

Interface Contract:
- get_all(collection, filters) -> list[dict]
- get(collection, doc_id) -> dict | None
- put(collection, doc_id, record, merge=True) -> None
- append(collection, record) -> (doc_id, timestamp)
- subscribe(collection, on_snapshot, on_error, filters, order_by) -> Subscription
- All methods raise StoreError when the store is unreachable

Records are plain dicts (field name -> scalar/array value) keyed by
generated string ids; every returned record carries its id under "id".
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from threading import Lock, RLock
from typing import Any, Callable, Iterable, Sequence

from config import DATA_DIR
from skillswap.models.timestamps import utc_now

logger = logging.getLogger(__name__)

# JSON 文件存储目录
STORE_DIR = DATA_DIR / "store"

SnapshotCallback = Callable[[list[dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]


class StoreError(Exception):
    """Raised when the store cannot be reached or a feed is disconnected."""
    pass


@dataclass(frozen=True)
class Filter:
    """A single query predicate.

    A record without the field counts as None, so `!=` matches it. Hosted
    document stores usually leave such records out of `!=` queries.
    """
    field: str
    op: str
    value: Any

    OPS = ("==", "!=", "array_contains")

    def __post_init__(self):
        if self.op not in self.OPS:
            raise ValueError(f"Unsupported filter op: {self.op}")

    def matches(self, record: dict[str, Any]) -> bool:
        actual = record.get(self.field)
        if self.op == "==":
            return actual == self.value
        if self.op == "!=":
            return actual != self.value
        return isinstance(actual, (list, tuple)) and self.value in actual


class Subscription:
    """Cancellable handle for a standing change-feed registration."""

    def __init__(self, on_cancel: Callable[[], None]):
        self._on_cancel = on_cancel
        self._cancelled = False
        self._lock = Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop delivery and release the registration. Safe to call repeatedly."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        self._on_cancel()

    def _mark_closed(self) -> None:
        with self._lock:
            self._cancelled = True


class DocumentStore(ABC):
    """Abstract base class for document stores."""

    @abstractmethod
    def get_all(self, collection: str, filters: Iterable[Filter] = ()) -> list[dict[str, Any]]:
        """Bulk read of every record matching all filters, in write order."""
        pass

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Point read; None when the record does not exist."""
        pass

    @abstractmethod
    def put(self, collection: str, doc_id: str, record: dict[str, Any], *, merge: bool = True) -> None:
        """Upsert a record. With merge, fields not included are left untouched."""
        pass

    @abstractmethod
    def append(
        self,
        collection: str,
        record: dict[str, Any],
        *,
        timestamp_field: str = "timestamp",
    ) -> tuple[str, datetime]:
        """Append a new record with a store-assigned id and timestamp.

        Timestamps are non-decreasing per collection in acceptance order.
        """
        pass

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
        *,
        filters: Iterable[Filter] = (),
        order_by: str | None = None,
    ) -> Subscription:
        """Register for full ordered snapshots, delivered now and on each change."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Disconnect; open subscriptions receive a StoreError."""
        pass


@dataclass
class _Listener:
    collection: str
    filters: tuple[Filter, ...]
    order_by: str | None
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback | None
    subscription: Subscription | None = field(default=None)


def _order_key(field_name: str) -> Callable[[dict[str, Any]], tuple]:
    def key(record: dict[str, Any]) -> tuple:
        value = record.get(field_name)
        return (value is None, value if value is not None else 0)
    return key


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-process document store.

    Writes and their notifications run under a dispatch lock, so listeners
    see snapshots in write order. Reads only take the data lock and do not
    wait for listeners. A listener must not block on another thread that
    writes to the same store.

    A write is committed only after _persist() accepts the new collection
    state; a failed write leaves the store unchanged.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._last_timestamp: dict[str, datetime] = {}
        self._listeners: list[_Listener] = []
        self._lock = RLock()
        self._dispatch_lock = RLock()
        self._closed = False

    # -- reads ---------------------------------------------------------------

    def get_all(self, collection: str, filters: Iterable[Filter] = ()) -> list[dict[str, Any]]:
        self._ensure_open()
        with self._lock:
            return self._query(collection, tuple(filters), None)

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        self._ensure_open()
        with self._lock:
            record = self._collections.get(collection, {}).get(doc_id)
            return dict(record) if record is not None else None

    # -- writes --------------------------------------------------------------

    def put(self, collection: str, doc_id: str, record: dict[str, Any], *, merge: bool = True) -> None:
        self._ensure_open()
        with self._dispatch_lock:
            with self._lock:
                docs = dict(self._collections.get(collection, {}))
                existing = docs.get(doc_id) if merge else None
                updated = {**existing, **record} if existing else dict(record)
                updated["id"] = doc_id
                docs[doc_id] = updated
                self._commit(collection, docs)
                pending = self._pending_snapshots(collection)
            self._dispatch(pending)

    def append(
        self,
        collection: str,
        record: dict[str, Any],
        *,
        timestamp_field: str = "timestamp",
    ) -> tuple[str, datetime]:
        self._ensure_open()
        with self._dispatch_lock:
            with self._lock:
                doc_id = uuid.uuid4().hex[:20]
                timestamp = self._clock()
                last = self._last_timestamp.get(collection)
                if last is not None and timestamp < last:
                    timestamp = last

                stored = dict(record)
                stored[timestamp_field] = timestamp
                stored["id"] = doc_id
                docs = dict(self._collections.get(collection, {}))
                docs[doc_id] = stored
                self._commit(collection, docs)
                self._last_timestamp[collection] = timestamp
                pending = self._pending_snapshots(collection)
            self._dispatch(pending)
        return doc_id, timestamp

    # -- change feed ---------------------------------------------------------

    def subscribe(
        self,
        collection: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
        *,
        filters: Iterable[Filter] = (),
        order_by: str | None = None,
    ) -> Subscription:
        self._ensure_open()
        listener = _Listener(collection, tuple(filters), order_by, on_snapshot, on_error)
        subscription = Subscription(lambda: self._remove_listener(listener))
        listener.subscription = subscription
        with self._dispatch_lock:
            with self._lock:
                self._listeners.append(listener)
                initial = self._query(collection, listener.filters, order_by)
            logger.debug("[store] subscribe collection=%s listeners=%d", collection, len(self._listeners))
            self._dispatch([(listener, initial)])
        return subscription

    def close(self) -> None:
        with self._dispatch_lock:
            with self._lock:
                if self._closed:
                    return
                self._closed = True
                listeners = list(self._listeners)
                self._listeners.clear()
            error = StoreError("Store connection closed")
            for listener in listeners:
                listener.subscription._mark_closed()
                if listener.on_error is not None:
                    listener.on_error(error)

    # -- internals -----------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreError("Store connection closed")

    def _query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: str | None,
    ) -> list[dict[str, Any]]:
        records = [
            dict(record)
            for record in self._collections.get(collection, {}).values()
            if all(f.matches(record) for f in filters)
        ]
        if order_by:
            # sort is stable: equal keys keep write order
            records.sort(key=_order_key(order_by))
        return records

    def _pending_snapshots(self, collection: str) -> list[tuple[_Listener, list[dict[str, Any]]]]:
        return [
            (listener, self._query(collection, listener.filters, listener.order_by))
            for listener in self._listeners
            if listener.collection == collection
        ]

    def _dispatch(self, pending: list[tuple[_Listener, list[dict[str, Any]]]]) -> None:
        for listener, snapshot in pending:
            if listener.subscription is not None and listener.subscription.cancelled:
                continue
            try:
                listener.on_snapshot(snapshot)
            except Exception:
                logger.exception("[store] listener failed collection=%s", listener.collection)

    def _remove_listener(self, listener: _Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
        logger.debug("[store] unsubscribe collection=%s", listener.collection)

    def _commit(self, collection: str, docs: dict[str, dict[str, Any]]) -> None:
        self._persist(collection, docs)
        self._collections[collection] = docs

    def _persist(self, collection: str, docs: dict[str, dict[str, Any]]) -> None:
        """Hook for durable subclasses; called under the lock before a write is committed."""
        pass


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"__datetime__": value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj: dict[str, Any]) -> Any:
    if set(obj) == {"__datetime__"}:
        return datetime.fromisoformat(obj["__datetime__"])
    return obj


def _latest_timestamp(docs: dict[str, dict[str, Any]]) -> datetime | None:
    """Largest datetime field value across the records of one collection."""
    values = [
        value
        for record in docs.values()
        for value in record.values()
        if isinstance(value, datetime)
    ]
    return max(values) if values else None


class JsonFileDocumentStore(InMemoryDocumentStore):
    """Document store persisted as one JSON file per collection.

    存储路径: {DATA_DIR}/store/{collection}.json
    子集合路径中的 "/" 替换为 "__"，例如 conversations__abc__messages.json
    """

    def __init__(self, root: Path | None = None, clock: Callable[[], datetime] = utc_now):
        super().__init__(clock)
        self.root = Path(root) if root is not None else STORE_DIR
        self._load()

    def _path_for(self, collection: str) -> Path:
        return self.root / f"{collection.replace('/', '__')}.json"

    def _load(self) -> None:
        """从磁盘加载所有集合"""
        if not self.root.exists():
            return
        for path in sorted(self.root.glob("*.json")):
            collection = path.stem.replace("__", "/")
            try:
                with open(path, "r", encoding="utf-8") as f:
                    docs = json.load(f, object_hook=_decode)
            except (OSError, json.JSONDecodeError) as e:
                raise StoreError(f"Failed to load {path}: {e}") from e
            self._collections[collection] = docs
            latest = _latest_timestamp(docs)
            if latest is not None:
                self._last_timestamp[collection] = latest
        logger.info("[store] loaded collections=%d root=%s", len(self._collections), self.root)

    def _persist(self, collection: str, docs: dict[str, dict[str, Any]]) -> None:
        """写入临时文件后原子替换，失败时内存中的数据保持不变"""
        path = self._path_for(collection)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(docs, f, ensure_ascii=False, indent=2, default=_encode)
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            logger.warning("[store] persist failed collection=%s error=%s", collection, e)
            raise StoreError(f"Failed to persist {collection}: {e}") from e
