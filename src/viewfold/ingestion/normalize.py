"""Normalization helpers.

Centralizes best-effort parsing of inbound payloads so reducers only see
plain dicts with "no information" already removed.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def safe_str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text if text else None


def is_meaningful(value: Any) -> bool:
    """Return True if the value carries information for a merge.

    Only ``None`` is dropped. Empty strings and containers are values a
    client may legitimately submit.
    """

    return value is not None


def prune_patch(data: Any) -> Any:
    """Recursively drop ``None`` values from a payload structure.

    - Dicts: remove keys with ``None`` values; recurse into nested dicts/lists.
    - Lists: drop ``None`` items, recurse into the rest.
    - Scalars: returned as-is.
    """

    if isinstance(data, Mapping):
        pruned: dict[str, Any] = {}
        for key, value in data.items():
            cleaned = prune_patch(value)
            if is_meaningful(cleaned):
                pruned[str(key)] = cleaned
        return pruned

    if isinstance(data, list):
        return [prune_patch(item) for item in data if is_meaningful(item)]

    return data


def extract_key(payload: Mapping[str, Any], key_field: str) -> str | None:
    """Client identifier of a payload, or ``None`` when it has no usable one."""
    return safe_str(payload.get(key_field))


def split_key(payload: Mapping[str, Any], key_field: str) -> tuple[str | None, dict[str, Any]]:
    """Return ``(key, pruned payload without the key field)``."""
    key = extract_key(payload, key_field)
    body = prune_patch({k: v for k, v in payload.items() if k != key_field})
    return key, body
