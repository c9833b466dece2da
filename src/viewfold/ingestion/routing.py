"""Event name routing.

Many named events share a handful of reducer shapes. The route table
classifies each name into a :class:`ReducerKind` once, so dispatch
happens on the kind and never on ad hoc per-name callbacks.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from viewfold._redact import redact_for_log
from viewfold.ingestion.normalize import split_key
from viewfold.state.events import InboundEvent, ReducerKind

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventRoute:
    """How one event name is reduced.

    ``rename`` maps payload keys onto record field names before merging;
    when set, only the renamed keys are kept.
    """

    kind: ReducerKind
    rename: Mapping[str, str] | None = None

    def shape(self, body: dict[str, Any]) -> dict[str, Any]:
        if not self.rename:
            return body
        return {target: body[source] for source, target in self.rename.items() if source in body}


class RouteTable(Mapping[str, EventRoute]):
    """Immutable mapping of event name to :class:`EventRoute`."""

    def __init__(self, routes: Mapping[str, EventRoute]) -> None:
        self._routes: Mapping[str, EventRoute] = MappingProxyType(dict(routes))

    def __getitem__(self, name: str) -> EventRoute:
        return self._routes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def with_routes(self, **routes: EventRoute | ReducerKind) -> RouteTable:
        """Return a copy with extra (or replaced) routes."""
        merged = dict(self._routes)
        for name, route in routes.items():
            merged[name] = route if isinstance(route, EventRoute) else EventRoute(route)
        return RouteTable(merged)

    def names_for(self, kind: ReducerKind) -> list[str]:
        return [name for name, route in self._routes.items() if route.kind == kind]

    def classify(self, name: str, payload: Any, *, key_field: str = "ip") -> InboundEvent | None:
        """Turn a named payload into an event, or ``None`` when it cannot be routed."""
        route = self._routes.get(name)
        if route is None:
            _logger.debug("Ignoring unrouted event name=%s", name)
            return None
        if not isinstance(payload, Mapping):
            _logger.debug("Ignoring event name=%s with non-object payload", name)
            return None

        key, body = split_key(payload, key_field)
        if key is None:
            _logger.debug("Ignoring event name=%s without %s payload=%s", name, key_field, redact_for_log(payload))
            return None

        try:
            return InboundEvent(key=key, name=name, kind=route.kind, data=route.shape(body))
        except ValidationError:
            _logger.debug("Ignoring malformed event name=%s", name, exc_info=True)
            return None


ACCOUNT_LINK_RENAME: Mapping[str, str] = MappingProxyType(
    {
        "account": "linkedAccount",
        "provider": "linkedProvider",
    }
)

DEFAULT_ROUTES = RouteTable(
    {
        "newProfile": EventRoute(ReducerKind.DATA_MERGE),
        "newDetails": EventRoute(ReducerKind.DATA_MERGE),
        "newContact": EventRoute(ReducerKind.DATA_MERGE),
        "newBilling": EventRoute(ReducerKind.DATA_MERGE),
        "newAddress": EventRoute(ReducerKind.DATA_MERGE),
        "newIdentity": EventRoute(ReducerKind.DATA_MERGE),
        "newAccountLink": EventRoute(ReducerKind.DATA_MERGE, rename=ACCOUNT_LINK_RENAME),
        "newConfirmation": EventRoute(ReducerKind.CODE_MERGE),
        "newVerification": EventRoute(ReducerKind.CODE_MERGE),
        "newPayment": EventRoute(ReducerKind.PAYMENT_APPEND),
        "flagUpdated": EventRoute(ReducerKind.FLAG_UPDATE),
        "locationUpdated": EventRoute(ReducerKind.LOCATION_UPDATE),
        "recordDeleted": EventRoute(ReducerKind.DELETION),
    }
)
