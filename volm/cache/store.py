"""Generic in-memory resource store.

One ``ResourceStore`` instance exists per mirrored kind (claims, pods).  The
map is private: the five operations below are the only way in or out, and
each one takes the store's single lock.  Snapshots are copied under the lock;
callers filter and serialize outside it.

The lock is a ``threading.Lock`` so the store stays consistent when request
handlers run in a worker thread pool alongside the asyncio watch tasks.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING, Generic, TypeVar

from volm.observability.logging import get_logger
from volm.observability.metrics import store_records

if TYPE_CHECKING:
    from volm.models.resources import NamedRecord

_log = get_logger("cache.store")

T = TypeVar("T", bound="NamedRecord")


def _version_number(resource_version: str) -> int | None:
    """resourceVersion as an int, or None when it is empty or opaque."""
    try:
        return int(resource_version)
    except (TypeError, ValueError):
        return None


def is_newer(resource_version: str, snapshot_version: str) -> bool:
    """True if *resource_version* is strictly newer than *snapshot_version*.

    Versions that are not integers are never considered newer, which makes
    ``replace`` fall back to a plain swap.
    """
    current = _version_number(resource_version)
    snapshot = _version_number(snapshot_version)
    if current is None or snapshot is None:
        return False
    return current > snapshot


class ResourceStore(Generic[T]):
    """Thread-safe name -> record mapping for one resource kind.

    Invariant: at most one record per name, and it is the most recently
    applied event or snapshot entry for that name.
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._items: dict[str, T] = {}
        self._lock = threading.Lock()

    def upsert(self, record: T) -> None:
        """Insert or replace *record* keyed by its name."""
        with self._lock:
            self._items[record.name] = record
            size = len(self._items)
        store_records.labels(kind=self.kind).set(size)
        _log.debug("upsert", kind=self.kind, name=record.name, resource_version=record.resource_version)

    def remove(self, name: str) -> None:
        """Delete *name* if present.  Removing an absent name is a no-op."""
        with self._lock:
            removed = self._items.pop(name, None)
            size = len(self._items)
        if removed is not None:
            store_records.labels(kind=self.kind).set(size)
            _log.debug("remove", kind=self.kind, name=name)

    def get(self, name: str) -> T | None:
        with self._lock:
            return self._items.get(name)

    def list(self) -> list[T]:
        """Snapshot of every record.  Order is unspecified."""
        with self._lock:
            return list(self._items.values())

    def replace(self, records: Iterable[T], snapshot_version: str = "") -> None:
        """Atomically swap the store contents for *records*.

        Every name absent from *records* is dropped.  When *snapshot_version*
        is given, existing entries whose resourceVersion is newer than the
        snapshot were written by watch events after the listing was taken;
        those entries are kept instead of the stale snapshot values.
        """
        fresh = {record.name: record for record in records}
        with self._lock:
            kept = 0
            if snapshot_version:
                for name, current in self._items.items():
                    if is_newer(current.resource_version, snapshot_version):
                        fresh[name] = current
                        kept += 1
            self._items = fresh
            size = len(fresh)
        store_records.labels(kind=self.kind).set(size)
        _log.debug("replace", kind=self.kind, records=size, kept_newer=kept, snapshot_version=snapshot_version)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
