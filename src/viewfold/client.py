"""High-level async client wiring the event stream and snapshot query to an engine."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from viewfold._mqtt import EventStreamRuntime, StreamMessage
from viewfold._transport import SnapshotTransport, Transport
from viewfold.config import EngineConfig
from viewfold.engine import ProjectionEngine
from viewfold.exceptions import ViewfoldError
from viewfold.ingestion.snapshot import SnapshotLayout

_logger = logging.getLogger(__name__)


class ProjectionClient:
    """Keeps a :class:`ProjectionEngine` in sync with a live deployment.

    Every broker (re)connect reloads the snapshot, which replaces the
    projection wholesale; events missed while disconnected are not replayed.

    Usage::

        async with ProjectionClient(EngineConfig.from_env()) as client:
            await client.start()
            client.engine.subscribe(render)
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        engine: ProjectionEngine | None = None,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
    ) -> None:
        config.validate()
        self._config = config
        self._engine = engine or ProjectionEngine(layout=SnapshotLayout(key_field=config.key_field))
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._loop: asyncio.AbstractEventLoop | None = None
        self._runtime: EventStreamRuntime | None = None
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def engine(self) -> ProjectionEngine:
        return self._engine

    @property
    def config(self) -> EngineConfig:
        return self._config

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ProjectionClient:
        self._loop = asyncio.get_running_loop()
        if self._transport is None and self._config.snapshot_url:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = SnapshotTransport(self._http_session, timeout=self._config.snapshot_timeout)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
        task = self._refresh_task
        self._refresh_task = None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None
        self._loop = None

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect to the event stream, or just load the snapshot when there is no broker."""
        loop = self._require_loop()
        if not self._config.broker_host:
            await self.refresh()
            return

        runtime = EventStreamRuntime(
            loop=loop,
            config=self._config,
            on_message=self._on_message,
            on_connected=self._on_connected,
            logger=_logger,
        )
        self._runtime = runtime
        try:
            await loop.run_in_executor(None, runtime.start)
        except Exception:
            self._runtime = None
            raise

    async def stop(self) -> None:
        runtime = self._runtime
        self._runtime = None
        if runtime is None or self._loop is None:
            return
        try:
            await self._loop.run_in_executor(None, runtime.stop)
        except Exception:
            _logger.debug("MQTT runtime stop failed", exc_info=True)

    async def refresh(self) -> None:
        """Reload the snapshot: HTTP when configured, otherwise an MQTT request."""
        url = self._config.snapshot_url
        if url and self._transport is not None:
            payload = await self._transport.fetch_snapshot(url)
            self._engine.load_snapshot(payload)
            return

        runtime = self._runtime
        if runtime is None or not runtime.is_running:
            _logger.debug("Snapshot refresh skipped: no transport and stream not running")
            return
        runtime.publish(self._config.snapshot_request_topic, {"clientId": self._config.client_id})

    def _on_connected(self) -> None:
        loop = self._require_loop()
        # Only the newest reload may land; an older reply must not win.
        pending = self._refresh_task
        if pending is not None and not pending.done():
            pending.cancel()
        self._refresh_task = loop.create_task(self._refresh_logged())

    async def _refresh_logged(self) -> None:
        try:
            await self.refresh()
        except ViewfoldError:
            _logger.warning("Snapshot refresh failed; keeping previous projection", exc_info=True)

    def _on_message(self, message: StreamMessage) -> None:
        if message.is_snapshot:
            self._engine.load_snapshot(message.payload)
            return
        self._engine.handle(message.name, message.payload)

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise ViewfoldError("ProjectionClient must be used as an async context manager")
        return self._loop
