"""HTTP transport for the one-shot snapshot query."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp

from viewfold.exceptions import ViewfoldTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural snapshot transport used by the client.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`SnapshotTransport`) concrete.
    """

    async def fetch_snapshot(self, url: str) -> dict[str, Any]: ...


class SnapshotTransport:
    """Fetches the bulk snapshot as one JSON object of named collections."""

    def __init__(self, http_session: aiohttp.ClientSession, *, timeout: float = 30.0) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def fetch_snapshot(self, url: str) -> dict[str, Any]:
        _logger.debug("GET %s", url)

        try:
            async with self._http.get(url, headers={"accept": "application/json"}, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise ViewfoldTransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=url,
                    )
        except ViewfoldTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ViewfoldTransportError(
                f"Request to {url} failed: {exc}",
                endpoint=url,
            ) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ViewfoldTransportError(
                f"Invalid JSON from {url}: {text[:200]}",
                endpoint=url,
            ) from exc

        if not isinstance(body, dict):
            raise ViewfoldTransportError(
                f"Snapshot from {url} is not a JSON object",
                endpoint=url,
            )
        return body
