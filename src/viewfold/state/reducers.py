"""Event reducers.

One pure function per :class:`ReducerKind`. Each takes the current
record (or ``None`` when the key is absent) and returns a
:class:`Reduction`; none of them touch the store or fire notifications
themselves. The engine commits the result and emits the intent.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import TypeAdapter, ValidationError

from viewfold.state.clock import bump
from viewfold.state.events import InboundEvent, NotificationClass, ReducerKind
from viewfold.state.merge import overlay, set_page
from viewfold.state.records import (
    CURRENT_PAGE_FIELD,
    DEFAULT_PAYMENT_IDENTITY,
    PAYMENT_ID_FIELD,
    AggregateRecord,
    Payment,
    new_record,
)

_BOOL = TypeAdapter(bool)


@dataclass(frozen=True, slots=True)
class ReduceContext:
    """Per-call inputs that are not part of the event itself."""

    now: int
    payment_identity: tuple[str, ...] = DEFAULT_PAYMENT_IDENTITY


@dataclass(frozen=True, slots=True)
class Reduction:
    """Outcome of one reducer call."""

    record: AggregateRecord | None
    changed: bool
    notification: NotificationClass | None = None
    reason: str = field(default="", compare=False)


def _unchanged(current: AggregateRecord | None, reason: str) -> Reduction:
    return Reduction(record=current, changed=False, reason=reason)


def _merge_alerting(
    current: AggregateRecord | None,
    event: InboundEvent,
    ctx: ReduceContext,
    notification: NotificationClass,
) -> Reduction:
    base = current if current is not None else new_record(event.key)
    merged = overlay(base, event.data)
    merged = bump(merged, ctx.now)
    merged = merged.model_copy(
        update={
            "has_new_data": True,
            "has_payment": base.has_payment or event.data.get("hasPayment") is True,
        }
    )
    return Reduction(record=merged, changed=True, notification=notification)


def reduce_data_merge(current: AggregateRecord | None, event: InboundEvent, ctx: ReduceContext) -> Reduction:
    return _merge_alerting(current, event, ctx, NotificationClass.DATA)


def reduce_code_merge(current: AggregateRecord | None, event: InboundEvent, ctx: ReduceContext) -> Reduction:
    return _merge_alerting(current, event, ctx, NotificationClass.CODE)


def reduce_silent_merge(current: AggregateRecord | None, event: InboundEvent, ctx: ReduceContext) -> Reduction:
    """Overlay fields without alerting. Never creates a record."""
    if current is None:
        return _unchanged(current, "silent update for absent key")
    merged = overlay(current, event.data)
    return Reduction(record=merged, changed=merged != current)


def reduce_payment_append(current: AggregateRecord | None, event: InboundEvent, ctx: ReduceContext) -> Reduction:
    base = current if current is not None else new_record(event.key)
    payment = Payment.from_payload(event.data)
    if base.has_duplicate(payment, ctx.payment_identity):
        return _unchanged(current, "duplicate payment")

    patch = {k: v for k, v in event.data.items() if k != PAYMENT_ID_FIELD}
    merged = overlay(base, patch)
    merged = bump(merged, ctx.now)
    merged = merged.model_copy(
        update={
            "payments": (*base.payments, payment),
            "has_new_data": True,
            "has_payment": True,
        }
    )
    return Reduction(record=merged, changed=True, notification=NotificationClass.PAYMENT)


def parse_flag(value: Any) -> bool | None:
    if value is None:
        return None
    try:
        return _BOOL.validate_python(value)
    except ValidationError:
        return None


def reduce_flag_update(current: AggregateRecord | None, event: InboundEvent, ctx: ReduceContext) -> Reduction:
    flag = parse_flag(event.data.get("flag"))
    if flag is None:
        return _unchanged(current, "flag missing or not a boolean")
    base = current if current is not None else new_record(event.key)
    if current is not None and base.flag == flag:
        return _unchanged(current, "flag unchanged")
    return Reduction(record=base.model_copy(update={"flag": flag}), changed=True)


def reduce_location_update(current: AggregateRecord | None, event: InboundEvent, ctx: ReduceContext) -> Reduction:
    """Only keys that already submitted something get a location."""
    if current is None:
        return _unchanged(current, "location for absent key")
    page = event.data.get("page")
    if page is None:
        page = event.data.get(CURRENT_PAGE_FIELD)
    updated = set_page(current, page)
    return Reduction(record=updated, changed=updated is not current)


def reduce_deletion(current: AggregateRecord | None, event: InboundEvent, ctx: ReduceContext) -> Reduction:
    if current is None:
        return _unchanged(current, "delete for absent key")
    return Reduction(record=None, changed=True)


def acknowledge(current: AggregateRecord | None) -> AggregateRecord | None:
    """Clear the unseen-data highlight. ``has_payment`` stays latched."""
    if current is None or not current.has_new_data:
        return current
    return current.model_copy(update={"has_new_data": False})


Reducer = Callable[[AggregateRecord | None, InboundEvent, ReduceContext], Reduction]

REDUCERS: dict[ReducerKind, Reducer] = {
    ReducerKind.DATA_MERGE: reduce_data_merge,
    ReducerKind.CODE_MERGE: reduce_code_merge,
    ReducerKind.SILENT_MERGE: reduce_silent_merge,
    ReducerKind.PAYMENT_APPEND: reduce_payment_append,
    ReducerKind.FLAG_UPDATE: reduce_flag_update,
    ReducerKind.LOCATION_UPDATE: reduce_location_update,
    ReducerKind.DELETION: reduce_deletion,
}


def reduce_event(current: AggregateRecord | None, event: InboundEvent, ctx: ReduceContext) -> Reduction:
    return REDUCERS[event.kind](current, event, ctx)
