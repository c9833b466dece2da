"""Normalized inbound events.

Every transport path (MQTT, replay files, direct calls) converts its
inputs into these events. Only the reducers are allowed to merge them.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReducerKind(StrEnum):
    DATA_MERGE = "data-merge"
    CODE_MERGE = "code-merge"
    SILENT_MERGE = "silent-merge"
    PAYMENT_APPEND = "payment-append"
    FLAG_UPDATE = "flag-update"
    LOCATION_UPDATE = "location-update"
    DELETION = "deletion"


class NotificationClass(StrEnum):
    DATA = "data"
    CODE = "code"
    PAYMENT = "payment"


class InboundEvent(BaseModel):
    """A routed update to reduce into the aggregate store."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Client identifier")
    name: str = Field(..., description="Event name as received")
    kind: ReducerKind
    data: dict[str, Any] = Field(default_factory=dict, description="Pruned payload (key field removed)")

    @field_validator("key")
    @classmethod
    def _normalize_key(cls, value: str) -> str:
        key = value.strip()
        if not key:
            raise ValueError("key must be non-empty")
        return key
