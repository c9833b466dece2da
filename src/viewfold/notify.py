"""Notification dispatcher port.

Reducers only decide *which* class of alert a change deserves; how it is
rendered (sound, toast, push) belongs to whatever is plugged in here.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from viewfold.state.events import NotificationClass

_logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def notify(self, kind: NotificationClass, key: str) -> None: ...


class NullDispatcher:
    """Drops every notification."""

    def notify(self, kind: NotificationClass, key: str) -> None:
        return None


class LoggingDispatcher:
    """Writes one INFO line per notification."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _logger

    def notify(self, kind: NotificationClass, key: str) -> None:
        self._logger.info("New %s for %s", kind.value, key)


class CallbackDispatcher:
    """Forwards notifications to a callback.

    With a loop, the callback is scheduled via ``call_soon_threadsafe`` so
    the reducer that triggered it never waits on it.
    """

    def __init__(
        self,
        callback: Callable[[NotificationClass, str], None],
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._callback = callback
        self._loop = loop

    def notify(self, kind: NotificationClass, key: str) -> None:
        if self._loop is None:
            self._callback(kind, key)
            return
        self._loop.call_soon_threadsafe(self._callback, kind, key)
