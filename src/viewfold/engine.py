"""Projection engine.

Owns the aggregate store and is the only component that commits reducer
results. Given the same snapshot and the same sequence of events it
produces the same projection.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from viewfold._redact import redact_for_log
from viewfold.ingestion.routing import DEFAULT_ROUTES, RouteTable
from viewfold.ingestion.snapshot import SnapshotLayout, fold_snapshot
from viewfold.notify import LoggingDispatcher, NotificationDispatcher
from viewfold.state.clock import now_millis
from viewfold.state.events import InboundEvent
from viewfold.state.records import DEFAULT_PAYMENT_IDENTITY, AggregateRecord
from viewfold.state.reducers import ReduceContext, Reduction, acknowledge, reduce_event
from viewfold.state.store import AggregateStore

_logger = logging.getLogger(__name__)

Observer = Callable[[Mapping[str, AggregateRecord]], None]


class ProjectionEngine:
    """Folds the snapshot and live events into one record per client identifier.

    Usage::

        engine = ProjectionEngine()
        engine.load_snapshot(bulk_payload)
        engine.handle("newProfile", {"ip": "10.0.0.1", "name": "Ada"})
        views = engine.views()
    """

    def __init__(
        self,
        *,
        store: AggregateStore | None = None,
        dispatcher: NotificationDispatcher | None = None,
        routes: RouteTable = DEFAULT_ROUTES,
        layout: SnapshotLayout | None = None,
        payment_identity: tuple[str, ...] = DEFAULT_PAYMENT_IDENTITY,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self._store = store if store is not None else AggregateStore()
        self._dispatcher = dispatcher if dispatcher is not None else LoggingDispatcher()
        self._routes = routes
        self._layout = layout or SnapshotLayout()
        self._payment_identity = payment_identity
        self._clock = clock
        self._observers: list[Observer] = []

    @property
    def store(self) -> AggregateStore:
        return self._store

    @property
    def routes(self) -> RouteTable:
        return self._routes

    @property
    def key_field(self) -> str:
        return self._layout.key_field

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Call *observer* with a read-only snapshot after every mutation.

        Returns a function that removes the observer again.
        """
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def snapshot(self) -> Mapping[str, AggregateRecord]:
        return self._store.snapshot()

    def views(self) -> dict[str, dict[str, Any]]:
        key_field = self._layout.key_field
        return {key: record.to_view(key_field) for key, record in self._store.snapshot().items()}

    def acknowledge(self, key: str) -> bool:
        """Clear the unseen-data highlight for *key* (detail view opened)."""
        before, after = self._store.update(key, acknowledge)
        changed = after is not before
        if changed:
            self._publish()
        return changed

    def remove(self, key: str) -> bool:
        """Out-of-band administrative deletion."""
        removed = self._store.delete(key)
        if removed:
            self._publish()
        return removed

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def load_snapshot(self, payload: Mapping[str, Any] | None) -> int:
        """Rebuild the store from a bulk snapshot. Returns the record count."""
        records = fold_snapshot(payload, layout=self._layout)
        self._store.replace_all(records)
        _logger.info("Loaded snapshot with %d records", len(records))
        self._publish()
        return len(records)

    def handle(self, name: str, payload: Any) -> Reduction | None:
        """Route and reduce one named stream payload."""
        event = self._routes.classify(name, payload, key_field=self._layout.key_field)
        if event is None:
            return None
        return self.apply(event)

    def apply(self, event: InboundEvent) -> Reduction:
        """Reduce one event inside the store's single-writer section."""
        ctx = ReduceContext(now=self._clock(), payment_identity=self._payment_identity)
        outcome: list[Reduction] = []

        def _reduce(current: AggregateRecord | None) -> AggregateRecord | None:
            reduction = reduce_event(current, event, ctx)
            outcome.append(reduction)
            return reduction.record if reduction.changed else current

        self._store.update(event.key, _reduce)
        reduction = outcome[0]

        if not reduction.changed:
            _logger.debug(
                "No change for event name=%s key=%s (%s) data=%s",
                event.name,
                event.key,
                reduction.reason or "identical",
                redact_for_log(event.data),
            )
            return reduction

        self._publish()
        if reduction.notification is not None:
            self._dispatch(reduction, event.key)
        return reduction

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _dispatch(self, reduction: Reduction, key: str) -> None:
        assert reduction.notification is not None
        try:
            self._dispatcher.notify(reduction.notification, key)
        except Exception:
            _logger.warning("Notification dispatcher failed for %s", key, exc_info=True)

    def _publish(self) -> None:
        if not self._observers:
            return
        snapshot = self._store.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                _logger.warning("Projection observer failed", exc_info=True)
