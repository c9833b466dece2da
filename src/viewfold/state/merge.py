"""Field-level merge primitives.

Patches reaching this module are already pruned at the ingestion
boundary, but ``None`` is still skipped here: an absent value is "no
information" and never erases what a record already holds.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from typing import Any

from viewfold.state.records import CURRENT_PAGE_FIELD, RESERVED_FIELDS, AggregateRecord


def _page_value(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text else None


def overlay(record: AggregateRecord, patch: Mapping[str, Any]) -> AggregateRecord:
    """Incoming wins, field by field, for every non-reserved key it supplies."""
    if not patch:
        return record

    fields = dict(record.fields)
    current_page = record.current_page
    for key, value in patch.items():
        if value is None or key in RESERVED_FIELDS:
            continue
        if key == CURRENT_PAGE_FIELD:
            current_page = _page_value(value) or current_page
            continue
        fields[key] = copy.deepcopy(value)

    return record.model_copy(update={"fields": fields, "current_page": current_page})


def fill_from(
    record: AggregateRecord,
    patch: Mapping[str, Any],
    names: Iterable[str],
    *,
    rename: Mapping[str, str] | None = None,
) -> AggregateRecord:
    """Copy only *names* from *patch*, keeping existing values where the patch has none.

    ``rename`` maps a patch key to the record field it lands on.
    """
    fields = dict(record.fields)
    changed = False
    for name in names:
        value = patch.get(name)
        if value is None:
            continue
        target = rename.get(name, name) if rename else name
        if target in RESERVED_FIELDS:
            continue
        fields[target] = copy.deepcopy(value)
        changed = True

    if not changed:
        return record
    return record.model_copy(update={"fields": fields})


def set_page(record: AggregateRecord, page: Any) -> AggregateRecord:
    value = _page_value(page)
    if value is None or value == record.current_page:
        return record
    return record.model_copy(update={"current_page": value})
