# SPDX-License-Identifier: AGPL-3.0-or-later
"""Unified event log: one JSON object per line."""

from __future__ import annotations

import json
import os
import pathlib
import time
from typing import Any


def _log_path() -> pathlib.Path:
    path_value = os.getenv("BOTTLEOPS_UNIFIED_LOG")
    if path_value:
        path = pathlib.Path(path_value)
    else:
        from bottleops.settings import get_settings

        path = get_settings().resolve_unified_log()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def write(event: str, run_id: str | None = None, **fields: Any) -> None:
    record = {
        "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "event": event,
        "run_id": run_id,
        **fields,
    }
    with _log_path().open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")


def read(event: str | None = None) -> list[dict]:
    path = _log_path()
    if not path.exists():
        return []
    records: list[dict] = []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
            except ValueError:
                continue
            if event is None or obj.get("event") == event:
                records.append(obj)
    return records


__all__ = ["read", "write"]
