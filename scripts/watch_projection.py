#!/usr/bin/env python3
"""Watch a live projection.

Connects with ``EngineConfig.from_env()`` (``VIEWFOLD_*`` variables),
loads the snapshot, follows the event stream and logs a one-line
summary per changed record.

Usage
-----
::

    export VIEWFOLD_BROKER_HOST=broker.local
    export VIEWFOLD_SNAPSHOT_URL=http://api.local/snapshot
    python scripts/watch_projection.py --duration 600
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Mapping
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from viewfold import (  # noqa: E402
    AggregateRecord,
    EngineConfig,
    LoggingDispatcher,
    ProjectionClient,
    ProjectionEngine,
    SnapshotLayout,
    ViewfoldError,
)

_LOG = logging.getLogger("watch_projection")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Follow a live projection and log record changes.")
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _summary(record: AggregateRecord) -> str:
    marks = "".join(
        (
            "N" if record.has_new_data else "-",
            "P" if record.has_payment else "-",
            "F" if record.flag else "-",
        )
    )
    return (
        f"{record.key:<20} [{marks}] payments={len(record.payments)} "
        f"page={record.current_page or '-'} last={record.last_activity_at}"
    )


class _ChangeLogger:
    def __init__(self) -> None:
        self._seen: dict[str, AggregateRecord] = {}

    def __call__(self, snapshot: Mapping[str, AggregateRecord]) -> None:
        for key, record in snapshot.items():
            if self._seen.get(key) is not record:
                _LOG.info("%s", _summary(record))
        for key in self._seen.keys() - snapshot.keys():
            _LOG.info("%-20s removed", key)
        self._seen = dict(snapshot)


async def _run(config: EngineConfig, duration: int) -> None:
    engine = ProjectionEngine(dispatcher=LoggingDispatcher(_LOG), layout=SnapshotLayout(key_field=config.key_field))
    engine.subscribe(_ChangeLogger())

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    async with ProjectionClient(config, engine=engine) as client:
        await client.start()
        if duration > 0:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop.wait(), duration)
        else:
            await stop.wait()


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = EngineConfig.from_env()
        asyncio.run(_run(config, args.duration))
    except ViewfoldError as exc:
        print(f"[watch] {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
