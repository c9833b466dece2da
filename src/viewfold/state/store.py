"""In-memory aggregate store.

This is the only mutable state in the engine. Every write goes through a
single lock so two reducers never interleave their read-modify-write on
the same key, whether the host is one asyncio loop or several threads.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping
from types import MappingProxyType

from viewfold.state.records import AggregateRecord

Updater = Callable[[AggregateRecord | None], AggregateRecord | None]


class AggregateStore:
    """Mapping of client identifier to :class:`AggregateRecord`.

    Records are frozen, so :meth:`snapshot` can hand out references
    without copying: a later update swaps the entry, it never edits it.
    """

    def __init__(self, records: Mapping[str, AggregateRecord] | None = None) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, AggregateRecord] = dict(records or {})

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))

    def get(self, key: str) -> AggregateRecord | None:
        return self._records.get(key)

    def upsert(self, record: AggregateRecord) -> None:
        with self._lock:
            self._records[record.key] = record

    def delete(self, key: str) -> bool:
        """Remove *key*. Returns whether anything was removed."""
        with self._lock:
            return self._records.pop(key, None) is not None

    def update(self, key: str, fn: Updater) -> tuple[AggregateRecord | None, AggregateRecord | None]:
        """Atomically replace the record for *key* with ``fn(current)``.

        ``fn`` returning ``None`` removes the key. Returns ``(before, after)``.
        """
        with self._lock:
            before = self._records.get(key)
            after = fn(before)
            if after is None:
                self._records.pop(key, None)
            elif after is not before:
                self._records[key] = after
            return before, after

    def replace_all(self, records: Mapping[str, AggregateRecord]) -> None:
        """Swap the whole content, as a snapshot load does."""
        fresh = dict(records)
        with self._lock:
            self._records = fresh

    def snapshot(self) -> Mapping[str, AggregateRecord]:
        """Read-only view of the current content."""
        with self._lock:
            return MappingProxyType(dict(self._records))
