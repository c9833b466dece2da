from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

import pytest

from viewfold.engine import ProjectionEngine
from viewfold.ingestion.routing import DEFAULT_ROUTES
from viewfold.state.events import NotificationClass, ReducerKind
from viewfold.state.records import AggregateRecord


class _RecordingDispatcher:
    def __init__(self) -> None:
        self.calls: list[tuple[NotificationClass, str]] = []

    def notify(self, kind: NotificationClass, key: str) -> None:
        self.calls.append((kind, key))


class _Clock:
    def __init__(self, start: int = 1_000, step: int = 0) -> None:
        self.value = start
        self.step = step

    def __call__(self) -> int:
        current = self.value
        self.value += self.step
        return current


def _payment(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"payerName": "Ada", "reference": "R-1", "amount": 10, "currency": "EUR"}
    payload.update(overrides)
    return payload


@pytest.fixture
def dispatcher() -> _RecordingDispatcher:
    return _RecordingDispatcher()


@pytest.fixture
def engine(dispatcher: _RecordingDispatcher) -> Iterator[ProjectionEngine]:
    yield ProjectionEngine(
        dispatcher=dispatcher,
        routes=DEFAULT_ROUTES.with_routes(profileSync=ReducerKind.SILENT_MERGE),
        clock=_Clock(),
    )


def test_scenario_first_data_event(engine: ProjectionEngine, dispatcher: _RecordingDispatcher) -> None:
    engine.load_snapshot({})
    engine.handle("newProfile", {"ip": "A", "name": "X"})

    assert engine.views() == {
        "A": {
            "ip": "A",
            "name": "X",
            "payments": [],
            "flag": False,
            "hasNewData": True,
            "hasPayment": False,
            "lastActivityAt": 1_000,
        }
    }
    assert dispatcher.calls == [(NotificationClass.DATA, "A")]


def test_scenario_payment_for_unseen_key_then_duplicate(
    engine: ProjectionEngine, dispatcher: _RecordingDispatcher
) -> None:
    engine.handle("newPayment", {"ip": "B", **_payment()})
    engine.handle("newPayment", {"ip": "B", **_payment()})

    record = engine.snapshot()["B"]
    assert len(record.payments) == 1
    assert record.payments[0].data == _payment()
    assert record.has_payment is True
    assert record.has_new_data is True
    assert dispatcher.calls == [(NotificationClass.PAYMENT, "B")]


def test_scenario_paid_key_stays_paid(engine: ProjectionEngine) -> None:
    engine.load_snapshot({"payment": [{"ip": "C", **_payment()}]})
    engine.handle("newProfile", {"ip": "C", "name": "Carol"})
    engine.handle("flagUpdated", {"ip": "C", "flag": False})
    engine.handle("locationUpdated", {"ip": "C", "page": "/done"})
    engine.handle("newConfirmation", {"ip": "C", "hasPayment": False})

    assert engine.snapshot()["C"].has_payment is True


def test_scenario_location_for_unseen_key(engine: ProjectionEngine, dispatcher: _RecordingDispatcher) -> None:
    engine.handle("locationUpdated", {"ip": "D", "page": "/home"})

    assert "D" not in engine.snapshot()
    assert len(engine.store) == 0
    assert dispatcher.calls == []


def test_silent_merge_never_creates_or_alerts(engine: ProjectionEngine, dispatcher: _RecordingDispatcher) -> None:
    engine.handle("profileSync", {"ip": "E", "name": "Eve"})
    assert "E" not in engine.snapshot()

    engine.handle("newProfile", {"ip": "E", "name": "Eve", "city": "Rome"})
    engine.acknowledge("E")
    engine.handle("profileSync", {"ip": "E", "city": "Oslo", "name": None})

    record = engine.snapshot()["E"]
    assert record.fields == {"name": "Eve", "city": "Oslo"}
    assert record.has_new_data is False
    assert dispatcher.calls == [(NotificationClass.DATA, "E")]


def test_has_new_data_lifecycle(engine: ProjectionEngine) -> None:
    engine.handle("newProfile", {"ip": "A", "name": "Ada"})
    engine.handle("newDetails", {"ip": "A", "city": "Rome"})
    assert engine.snapshot()["A"].has_new_data is True

    assert engine.acknowledge("A") is True
    assert engine.snapshot()["A"].has_new_data is False
    assert engine.acknowledge("A") is False
    assert engine.acknowledge("missing") is False

    engine.handle("newVerification", {"ip": "A", "step": 2})
    assert engine.snapshot()["A"].has_new_data is True


def test_acknowledge_keeps_payment_latch(engine: ProjectionEngine) -> None:
    engine.handle("newPayment", {"ip": "B", **_payment()})
    engine.acknowledge("B")

    record = engine.snapshot()["B"]
    assert record.has_new_data is False
    assert record.has_payment is True


def test_activity_is_max_of_all_candidates(dispatcher: _RecordingDispatcher) -> None:
    engine = ProjectionEngine(dispatcher=dispatcher, clock=_Clock(start=100, step=10))
    snapshot_ms = 1_704_067_200_000
    engine.load_snapshot({"profiles": [{"ip": "A", "updatedAt": "2024-01-01T00:00:00Z"}]})

    engine.handle("newProfile", {"ip": "A", "name": "Ada"})
    engine.handle("newPayment", {"ip": "A", **_payment()})
    assert engine.snapshot()["A"].last_activity_at == snapshot_ms

    engine.handle("newProfile", {"ip": "Z", "name": "Zed"})
    engine.handle("newProfile", {"ip": "Z", "name": "Zed"})
    assert engine.snapshot()["Z"].last_activity_at == 130


def test_flag_and_location_do_not_touch_activity_or_alerts(
    engine: ProjectionEngine, dispatcher: _RecordingDispatcher
) -> None:
    engine.handle("flagUpdated", {"ip": "F", "flag": True})
    engine.handle("locationUpdated", {"ip": "F", "page": "/review"})

    record = engine.snapshot()["F"]
    assert record.flag is True
    assert record.current_page == "/review"
    assert record.has_new_data is False
    assert record.last_activity_at == 0
    assert dispatcher.calls == []


def test_account_link_event_is_renamed(engine: ProjectionEngine) -> None:
    engine.handle("newAccountLink", {"ip": "A", "account": "ada-01", "provider": "example", "extra": 1})

    fields = engine.snapshot()["A"].fields
    assert fields == {"linkedAccount": "ada-01", "linkedProvider": "example"}


def test_deletion_and_admin_removal(engine: ProjectionEngine) -> None:
    engine.handle("newProfile", {"ip": "A", "name": "Ada"})
    engine.handle("newProfile", {"ip": "B", "name": "Bob"})

    engine.handle("recordDeleted", {"ip": "A"})
    assert engine.remove("B") is True
    assert engine.remove("B") is False
    assert len(engine.store) == 0


def test_unroutable_events_are_ignored(engine: ProjectionEngine) -> None:
    assert engine.handle("somethingElse", {"ip": "A"}) is None
    assert engine.handle("newProfile", {"name": "no key"}) is None
    assert engine.handle("newProfile", ["not", "an", "object"]) is None
    assert len(engine.store) == 0


def test_snapshot_reload_replaces_store(engine: ProjectionEngine) -> None:
    engine.handle("newProfile", {"ip": "stale", "name": "Old"})
    count = engine.load_snapshot({"profiles": [{"ip": "fresh", "name": "New"}]})

    assert count == 1
    assert set(engine.snapshot()) == {"fresh"}
    assert engine.snapshot()["fresh"].has_new_data is False


def test_observers_see_every_mutation(engine: ProjectionEngine) -> None:
    seen: list[Mapping[str, AggregateRecord]] = []
    unsubscribe = engine.subscribe(seen.append)

    engine.load_snapshot({})
    engine.handle("newProfile", {"ip": "A", "name": "Ada"})
    engine.handle("locationUpdated", {"ip": "ghost", "page": "/"})
    engine.acknowledge("A")

    assert len(seen) == 3
    assert seen[1]["A"].has_new_data is True
    assert seen[2]["A"].has_new_data is False

    unsubscribe()
    engine.remove("A")
    assert len(seen) == 3


def test_failing_observer_and_dispatcher_do_not_break_engine() -> None:
    class _Boom:
        def notify(self, kind: NotificationClass, key: str) -> None:
            raise RuntimeError("speaker unplugged")

    def _bad_observer(snapshot: Mapping[str, AggregateRecord]) -> None:
        raise RuntimeError("render failed")

    engine = ProjectionEngine(dispatcher=_Boom(), clock=_Clock())
    seen: list[int] = []
    engine.subscribe(_bad_observer)
    engine.subscribe(lambda snapshot: seen.append(len(snapshot)))

    result = engine.handle("newProfile", {"ip": "A", "name": "Ada"})

    assert result is not None and result.changed is True
    assert seen == [1]
    assert "A" in engine.snapshot()
