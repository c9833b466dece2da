"""Aggregate record and payment models.

Records are frozen: reducers return new instances and the store swaps
them in, so a snapshot handed to a consumer never changes underneath it.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Payload keys that are owned by the engine and never overlaid from a payload.
RESERVED_FIELDS: frozenset[str] = frozenset(
    {
        "payments",
        "flag",
        "hasNewData",
        "hasPayment",
        "lastActivityAt",
    }
)

CURRENT_PAGE_FIELD = "currentPage"
PAYMENT_ID_FIELD = "_id"

DEFAULT_PAYMENT_IDENTITY: tuple[str, ...] = ("payerName", "reference", "amount", "currency")


class Payment(BaseModel):
    """One appended payment. Immutable once part of a record."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Payment:
        body = {k: v for k, v in payload.items() if k != PAYMENT_ID_FIELD}
        raw_id = payload.get(PAYMENT_ID_FIELD)
        payment_id = str(raw_id) if raw_id not in (None, "") else None
        return cls(id=payment_id, data=body)

    def identity(self, fields: Sequence[str]) -> tuple[Any, ...]:
        return tuple(self.data.get(name) for name in fields)

    def same_as(self, other: Payment, identity_fields: Sequence[str] = DEFAULT_PAYMENT_IDENTITY) -> bool:
        """Duplicate check: ids when both sides have one, else the identity tuple."""
        if self.id is not None and other.id is not None:
            return self.id == other.id
        return self.identity(identity_fields) == other.identity(identity_fields)

    def to_view(self) -> dict[str, Any]:
        view = dict(self.data)
        if self.id is not None:
            view[PAYMENT_ID_FIELD] = self.id
        return view


class AggregateRecord(BaseModel):
    """The materialized view for one client identifier."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    key: str
    fields: dict[str, Any] = Field(default_factory=dict)
    payments: tuple[Payment, ...] = ()
    flag: bool = False
    has_new_data: bool = False
    has_payment: bool = False
    last_activity_at: int = 0
    current_page: str | None = None

    def has_duplicate(self, payment: Payment, identity_fields: Sequence[str] = DEFAULT_PAYMENT_IDENTITY) -> bool:
        return any(existing.same_as(payment, identity_fields) for existing in self.payments)

    def to_view(self, key_field: str = "ip") -> dict[str, Any]:
        """Flatten into the camelCase shape the presentation layer renders."""
        view: dict[str, Any] = dict(self.fields)
        view[key_field] = self.key
        view["payments"] = [payment.to_view() for payment in self.payments]
        view["flag"] = self.flag
        view["hasNewData"] = self.has_new_data
        view["hasPayment"] = self.has_payment
        view["lastActivityAt"] = self.last_activity_at
        if self.current_page is not None:
            view[CURRENT_PAGE_FIELD] = self.current_page
        return view


def new_record(key: str) -> AggregateRecord:
    """Default aggregate for a key seen for the first time."""
    return AggregateRecord(key=key)
