from __future__ import annotations

from viewfold.ingestion.normalize import prune_patch, safe_str
from viewfold.ingestion.routing import DEFAULT_ROUTES, EventRoute, RouteTable
from viewfold.state.events import ReducerKind


def test_default_routes_cover_every_shape_but_silent() -> None:
    kinds = {route.kind for route in DEFAULT_ROUTES.values()}
    assert kinds == set(ReducerKind) - {ReducerKind.SILENT_MERGE}
    assert DEFAULT_ROUTES["newPayment"].kind == ReducerKind.PAYMENT_APPEND
    assert DEFAULT_ROUTES.names_for(ReducerKind.CODE_MERGE) == ["newConfirmation", "newVerification"]


def test_classify_strips_key_and_prunes_none() -> None:
    event = DEFAULT_ROUTES.classify("newProfile", {"ip": "  10.0.0.1 ", "name": "Ada", "email": None})

    assert event is not None
    assert event.key == "10.0.0.1"
    assert event.kind == ReducerKind.DATA_MERGE
    assert event.data == {"name": "Ada"}
    assert event.model_dump() == {"key": "10.0.0.1", "name": "newProfile", "kind": ReducerKind.DATA_MERGE, "data": {"name": "Ada"}}


def test_classify_rejects_unroutable_payloads() -> None:
    assert DEFAULT_ROUTES.classify("nope", {"ip": "A"}) is None
    assert DEFAULT_ROUTES.classify("newProfile", {"name": "Ada"}) is None
    assert DEFAULT_ROUTES.classify("newProfile", {"ip": ""}) is None
    assert DEFAULT_ROUTES.classify("newProfile", {"ip": {"nested": True}}) is None
    assert DEFAULT_ROUTES.classify("newProfile", "text") is None


def test_classify_with_custom_key_field() -> None:
    event = DEFAULT_ROUTES.classify("newProfile", {"sessionId": 42, "ip": "kept"}, key_field="sessionId")

    assert event is not None
    assert event.key == "42"
    assert event.data == {"ip": "kept"}


def test_rename_route_keeps_only_mapped_keys() -> None:
    route = EventRoute(ReducerKind.DATA_MERGE, rename={"user": "linkedUser"})
    assert route.shape({"user": "u1", "other": 1}) == {"linkedUser": "u1"}
    assert route.shape({"other": 1}) == {}


def test_with_routes_returns_new_table() -> None:
    table = DEFAULT_ROUTES.with_routes(
        presence=ReducerKind.SILENT_MERGE,
        newProfile=EventRoute(ReducerKind.CODE_MERGE),
    )

    assert isinstance(table, RouteTable)
    assert table["presence"].kind == ReducerKind.SILENT_MERGE
    assert table["newProfile"].kind == ReducerKind.CODE_MERGE
    assert "presence" not in DEFAULT_ROUTES
    assert DEFAULT_ROUTES["newProfile"].kind == ReducerKind.DATA_MERGE


def test_prune_patch_and_safe_str() -> None:
    assert prune_patch({"a": None, "b": {"c": None, "d": 1}, "e": [1, None], "f": ""}) == {
        "b": {"d": 1},
        "e": [1],
        "f": "",
    }
    assert safe_str(" x ") == "x"
    assert safe_str(7) == "7"
    assert safe_str(True) is None
    assert safe_str("") is None
