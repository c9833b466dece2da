#!/usr/bin/env python3
"""Fold a snapshot and a recorded event stream into the final projection.

Usage
-----
::

    python scripts/replay_events.py snapshot.json events.jsonl

``snapshot.json`` is the bulk payload (named collections). Each line of
``events.jsonl`` is ``{"event": "<name>", "data": {...}}``. The resulting
views are printed as JSON, keyed by client identifier.

Options::

    --key-field NAME     Payload field holding the client identifier (default: ip)
    --notifications      Print each notification intent as it fires
    --output FILE        Write output to FILE instead of stdout
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from viewfold import (  # noqa: E402
    CallbackDispatcher,
    NotificationClass,
    NullDispatcher,
    ProjectionEngine,
    SnapshotLayout,
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay recorded events over a snapshot.")
    parser.add_argument("snapshot", type=Path, help="Bulk snapshot JSON file.")
    parser.add_argument("events", type=Path, nargs="?", help="JSON-lines event file.")
    parser.add_argument("--key-field", default="ip", help="Client identifier field.")
    parser.add_argument("--notifications", action="store_true", help="Print notification intents.")
    parser.add_argument("--output", type=Path, help="Write output to FILE instead of stdout.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _print_notification(kind: NotificationClass, key: str) -> None:
    print(f"[notify] {kind.value:<8} {key}", file=sys.stderr)


def _iter_events(path: Path) -> list[tuple[int, dict[str, Any]]]:
    entries: list[tuple[int, dict[str, Any]]] = []
    with path.open(encoding="utf-8") as handle:
        for lineno, line in enumerate(handle, start=1):
            text = line.strip()
            if not text:
                continue
            try:
                entry = json.loads(text)
            except json.JSONDecodeError as exc:
                print(f"[replay] line {lineno}: invalid JSON ({exc})", file=sys.stderr)
                continue
            if not isinstance(entry, dict):
                print(f"[replay] line {lineno}: not an object", file=sys.stderr)
                continue
            entries.append((lineno, entry))
    return entries


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    dispatcher = CallbackDispatcher(_print_notification) if args.notifications else NullDispatcher()
    engine = ProjectionEngine(
        dispatcher=dispatcher,
        layout=SnapshotLayout(key_field=args.key_field),
    )

    snapshot = json.loads(args.snapshot.read_text(encoding="utf-8"))
    if not isinstance(snapshot, dict):
        print("[replay] snapshot must be a JSON object", file=sys.stderr)
        return 2
    engine.load_snapshot(snapshot)

    applied = ignored = 0
    if args.events is not None:
        for lineno, entry in _iter_events(args.events):
            name = entry.get("event")
            if not isinstance(name, str):
                print(f"[replay] line {lineno}: missing event name", file=sys.stderr)
                continue
            reduction = engine.handle(name, entry.get("data"))
            if reduction is not None and reduction.changed:
                applied += 1
            else:
                ignored += 1

    output = json.dumps(engine.views(), indent=2, sort_keys=True, default=str)
    if args.output:
        args.output.write_text(output + "\n", encoding="utf-8")
    else:
        print(output)
    print(f"[replay] records={len(engine.store)} applied={applied} ignored={ignored}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
