"""Snapshot loader.

Builds the initial store content from the one-time bulk payload. The
payload is a mapping of collection name to a list of rows; the
distinguished collections are folded after all general ones, in a fixed
order, so the monotonic rules see every general row first.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from viewfold.ingestion.normalize import extract_key, prune_patch
from viewfold.ingestion.routing import ACCOUNT_LINK_RENAME
from viewfold.state.clock import activity_of, bump
from viewfold.state.merge import fill_from, overlay, set_page
from viewfold.state.records import CURRENT_PAGE_FIELD, AggregateRecord, Payment, new_record
from viewfold.state.reducers import parse_flag

_logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_FIELDS: tuple[str, ...] = (
    "name",
    "email",
    "phoneNumber",
    "nationality",
    "country",
    "region",
)


@dataclass(frozen=True)
class SnapshotLayout:
    """Names of the distinguished collections and what they carry."""

    payments: str = "payment"
    flags: str = "flags"
    locations: str = "locations"
    identity: str = "identity"
    account_links: str = "accountLinks"
    identity_fields: tuple[str, ...] = DEFAULT_IDENTITY_FIELDS
    account_link_rename: Mapping[str, str] = field(default_factory=lambda: dict(ACCOUNT_LINK_RENAME))
    key_field: str = "ip"

    @property
    def distinguished(self) -> frozenset[str]:
        return frozenset({self.payments, self.flags, self.locations, self.identity, self.account_links})


def _rows(payload: Mapping[str, Any], name: str) -> list[dict[str, Any]]:
    collection = payload.get(name)
    if collection is None:
        return []
    if not isinstance(collection, list):
        _logger.debug("Skipping snapshot collection %s: not a list", name)
        return []
    rows = [row for row in collection if isinstance(row, Mapping)]
    if len(rows) != len(collection):
        _logger.debug("Skipped %d non-object rows in snapshot collection %s", len(collection) - len(rows), name)
    return rows


class _Fold:
    """Accumulates records while the collections are folded in order."""

    def __init__(self, layout: SnapshotLayout) -> None:
        self.layout = layout
        self.records: dict[str, AggregateRecord] = {}
        self.skipped = 0

    def key_of(self, row: Mapping[str, Any]) -> str | None:
        key = extract_key(row, self.layout.key_field)
        if key is None:
            self.skipped += 1
        return key

    def body_of(self, row: Mapping[str, Any]) -> dict[str, Any]:
        return prune_patch({k: v for k, v in row.items() if k != self.layout.key_field})

    def record(self, key: str) -> AggregateRecord:
        existing = self.records.get(key)
        return existing if existing is not None else new_record(key)

    def general(self, row: Mapping[str, Any]) -> None:
        key = self.key_of(row)
        if key is None:
            return
        merged = overlay(self.record(key), self.body_of(row))
        merged = merged.model_copy(update={"has_new_data": False})
        self.records[key] = bump(merged, activity_of(row))

    def payment(self, row: Mapping[str, Any]) -> None:
        key = self.key_of(row)
        if key is None:
            return
        current = self.record(key)
        updated = current.model_copy(
            update={
                "payments": (*current.payments, Payment.from_payload(self.body_of(row))),
                "has_payment": True,
            }
        )
        self.records[key] = bump(updated, activity_of(row))

    def flag(self, row: Mapping[str, Any]) -> None:
        key = self.key_of(row)
        if key is None:
            return
        flag = parse_flag(row.get("flag"))
        current = self.record(key)
        self.records[key] = current if flag is None else current.model_copy(update={"flag": flag})

    def location(self, row: Mapping[str, Any]) -> None:
        key = self.key_of(row)
        if key is None or key not in self.records:
            return
        page = row.get(CURRENT_PAGE_FIELD)
        if page is None:
            page = row.get("page")
        self.records[key] = set_page(self.records[key], page)

    def identity(self, row: Mapping[str, Any]) -> None:
        key = self.key_of(row)
        if key is None:
            return
        filled = fill_from(self.record(key), row, self.layout.identity_fields)
        self.records[key] = bump(filled, activity_of(row))

    def account_link(self, row: Mapping[str, Any]) -> None:
        key = self.key_of(row)
        if key is None:
            return
        rename = self.layout.account_link_rename
        filled = fill_from(self.record(key), row, tuple(rename), rename=rename)
        self.records[key] = bump(filled, activity_of(row))


def fold_snapshot(
    payload: Mapping[str, Any] | None,
    *,
    layout: SnapshotLayout | None = None,
) -> dict[str, AggregateRecord]:
    """Fold a bulk snapshot into a fresh ``key -> record`` mapping."""
    layout = layout or SnapshotLayout()
    fold = _Fold(layout)
    if not payload:
        return fold.records

    for name in payload:
        if name in layout.distinguished:
            continue
        for row in _rows(payload, name):
            fold.general(row)

    for row in _rows(payload, layout.payments):
        fold.payment(row)
    for row in _rows(payload, layout.flags):
        fold.flag(row)
    for row in _rows(payload, layout.locations):
        fold.location(row)
    for row in _rows(payload, layout.identity):
        fold.identity(row)
    for row in _rows(payload, layout.account_links):
        fold.account_link(row)

    if fold.skipped:
        _logger.debug("Snapshot fold skipped %d rows without %s", fold.skipped, layout.key_field)
    return fold.records
