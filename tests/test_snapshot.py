from __future__ import annotations

from viewfold.ingestion.snapshot import SnapshotLayout, fold_snapshot

_T1 = "2024-01-01T00:00:00Z"
_T1_MS = 1_704_067_200_000
_T2 = "2024-01-02T00:00:00Z"
_T2_MS = _T1_MS + 86_400_000


def test_empty_and_missing_payloads() -> None:
    assert fold_snapshot(None) == {}
    assert fold_snapshot({}) == {}
    assert fold_snapshot({"payment": None, "profiles": "nope"}) == {}


def test_general_rows_fold_before_distinguished_collections() -> None:
    # Distinguished collections listed first must still see the general rows.
    payload = {
        "payment": [{"ip": "A", "payerName": "Ada", "reference": "R1", "createdAt": _T2}],
        "profiles": [{"ip": "A", "name": "Ada", "hasNewData": True, "hasPayment": False, "createdAt": _T1}],
    }

    records = fold_snapshot(payload)

    record = records["A"]
    assert record.fields["name"] == "Ada"
    assert len(record.payments) == 1
    assert record.payments[0].data["reference"] == "R1"
    assert record.has_payment is True
    assert record.has_new_data is False
    assert record.last_activity_at == _T2_MS


def test_general_rows_last_one_wins_and_never_set_reserved_fields() -> None:
    payload = {
        "profiles": [{"ip": "A", "name": "First", "flag": True, "payments": [{"x": 1}]}],
        "details": [{"ip": "A", "name": "Second", "city": "Rome", "updatedAt": _T1}],
    }

    record = fold_snapshot(payload)["A"]

    assert record.fields == {"name": "Second", "city": "Rome", "updatedAt": _T1}
    assert record.flag is False
    assert record.payments == ()
    assert record.last_activity_at == _T1_MS


def test_payments_create_records() -> None:
    record = fold_snapshot({"payment": [{"ip": "B", "_id": "p1", "amount": 5}]})["B"]

    assert record.has_payment is True
    assert record.payments[0].id == "p1"
    assert record.payments[0].data == {"amount": 5}


def test_flags_create_and_locations_do_not() -> None:
    payload = {
        "profiles": [{"ip": "A", "name": "Ada"}],
        "flags": [{"ip": "F", "flag": True}],
        "locations": [
            {"ip": "A", "currentPage": "/checkout"},
            {"ip": "visitor", "currentPage": "/home"},
        ],
    }

    records = fold_snapshot(payload)

    assert records["F"].flag is True
    assert records["A"].current_page == "/checkout"
    assert "visitor" not in records


def test_identity_fill_keeps_existing_values() -> None:
    payload = {
        "profiles": [{"ip": "A", "name": "Ada", "email": "ada@example.com"}],
        "identity": [
            {"ip": "A", "name": None, "email": "new@example.com", "region": "North", "other": "ignored", "updatedAt": _T1},
            {"ip": "N", "name": "Newcomer"},
        ],
    }

    records = fold_snapshot(payload)

    assert records["A"].fields["name"] == "Ada"
    assert records["A"].fields["email"] == "new@example.com"
    assert records["A"].fields["region"] == "North"
    assert "other" not in records["A"].fields
    assert records["A"].last_activity_at == _T1_MS
    assert records["N"].fields == {"name": "Newcomer"}


def test_account_links_are_renamed() -> None:
    payload = {
        "profiles": [{"ip": "A", "linkedProvider": "kept"}],
        "accountLinks": [{"ip": "A", "account": "ada-01", "provider": None, "createdAt": _T1}],
    }

    record = fold_snapshot(payload)["A"]

    assert record.fields["linkedAccount"] == "ada-01"
    assert record.fields["linkedProvider"] == "kept"
    assert "account" not in record.fields
    assert record.last_activity_at == _T1_MS


def test_rows_without_key_or_not_objects_are_skipped() -> None:
    payload = {"profiles": [{"name": "anonymous"}, {"ip": "   "}, "garbage", {"ip": "A"}]}
    assert list(fold_snapshot(payload)) == ["A"]


def test_custom_layout() -> None:
    layout = SnapshotLayout(payments="charges", flags="marks", key_field="sessionId")
    payload = {
        "visits": [{"sessionId": "s1", "name": "Ada"}],
        "charges": [{"sessionId": "s1", "amount": 1}],
        "marks": [{"sessionId": "s1", "flag": "yes"}],
    }

    record = fold_snapshot(payload, layout=layout)["s1"]

    assert record.has_payment is True
    assert record.flag is True
    assert "sessionId" not in record.fields


def test_fold_is_deterministic() -> None:
    payload = {
        "profiles": [{"ip": "A", "name": "Ada", "createdAt": _T1}],
        "payment": [{"ip": "A", "amount": 3}],
        "flags": [{"ip": "A", "flag": True}],
    }
    assert fold_snapshot(payload) == fold_snapshot(payload)
