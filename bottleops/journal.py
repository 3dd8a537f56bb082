# SPDX-License-Identifier: AGPL-3.0-or-later
"""Append-only JSONL journals for order transitions and batch events.

Entries are written after the database commit; a failed append is logged and never
undoes the change it describes.
"""

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List

logger = logging.getLogger(__name__)

ORDERS = "orders"
BATCHES = "batches"


def journal_path(name: str) -> Path:
    override = os.getenv(f"BOTTLEOPS_{name.upper()}_JOURNAL")
    if override:
        return Path(override)
    from bottleops.settings import get_settings

    return get_settings().journals_dir() / f"{name}.jsonl"


def append(name: str, entry: Dict) -> None:
    path = journal_path(name)
    try:
        entry = dict(entry)
        entry.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, separators=(",", ":"), default=str) + "\n")
            f.flush()
            os.fsync(f.fileno())
    except Exception:  # pragma: no cover - best-effort logging
        logger.exception("Failed to append %s journal at %s", name, path)


def append_order_journal(entry: Dict) -> None:
    append(ORDERS, entry)


def append_batch_journal(entry: Dict) -> None:
    append(BATCHES, entry)


def load_recent(name: str, days: int = 30) -> List[Dict]:
    path = journal_path(name)
    if not path.exists():
        return []
    cutoff = datetime.now(timezone.utc) - timedelta(days=int(days))
    rows: List[Dict] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
                ts = datetime.fromisoformat(str(obj.get("timestamp")))
            except ValueError:
                continue
            if ts.tzinfo is None:
                ts = ts.replace(tzinfo=timezone.utc)
            if ts >= cutoff:
                rows.append(obj)
    rows.sort(key=lambda r: r.get("timestamp", ""), reverse=True)
    return rows


__all__ = [
    "BATCHES",
    "ORDERS",
    "append",
    "append_batch_journal",
    "append_order_journal",
    "journal_path",
    "load_recent",
]
