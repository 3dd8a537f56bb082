# SPDX-License-Identifier: AGPL-3.0-or-later
"""BottleOps CLI entrypoints."""

from __future__ import annotations

import argparse
import json
import logging
from typing import List, Optional

from bottleops.settings import get_settings

logger = logging.getLogger(__name__)


def _bootstrap():
    from bottleops.appdb.engine import configure, init_db
    from bottleops.logging_setup import setup_logging

    settings = get_settings()
    setup_logging(settings.resolve_log_file())
    engine = configure()
    init_db(engine)
    return settings, engine


def serve_cmd(args):
    import uvicorn

    from bottleops.api.http import app

    settings, _ = _bootstrap()
    host = getattr(args, "host", None) or settings.host
    port = int(getattr(args, "port", None) or settings.port)
    print(f"Serving on http://{host}:{port}")
    print(f"Database: {settings.resolve_db_path()}")
    uvicorn.run(app, host=host, port=port, log_level="warning")


def _wire_serve(subparsers):
    parser = subparsers.add_parser("serve", help="Start the HTTP API")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.set_defaults(func=serve_cmd)


def init_db_cmd(args):
    settings, _ = _bootstrap()
    print(f"[init-db] schema ready at {settings.resolve_db_path()}")


def _wire_init_db(subparsers):
    parser = subparsers.add_parser("init-db", help="Create the database schema if missing")
    parser.set_defaults(func=init_db_cmd)


def reset_db_cmd(args):
    settings = get_settings()
    path = settings.resolve_db_path()
    if not args.yes:
        print(f"[reset] refusing to remove {path} without --yes")
        return 1
    if path.exists():
        path.unlink()
        print(f"[reset] removed {path}")
    _bootstrap()
    print(f"[reset] recreated schema at {path}")


def _wire_reset_db(subparsers):
    parser = subparsers.add_parser("reset-db", help="Delete and recreate the local database")
    parser.add_argument("--yes", action="store_true")
    parser.set_defaults(func=reset_db_cmd)


def edges_cmd(args):
    from bottleops.orders.state_machine import allowed_targets
    from bottleops.statuses import OrderStatus

    table = {s.value: sorted(t.value for t in allowed_targets(s)) for s in OrderStatus}
    print(json.dumps(table, indent=2))


def _wire_edges(subparsers):
    parser = subparsers.add_parser("edges", help="Print the order status transition table")
    parser.set_defaults(func=edges_cmd)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bottleops")
    subparsers = parser.add_subparsers(dest="command")
    _wire_serve(subparsers)
    _wire_init_db(subparsers)
    _wire_reset_db(subparsers)
    _wire_edges(subparsers)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return 0
    result = func(args)
    return 0 if result is None else int(result)


__all__ = ["build_parser", "main", "serve_cmd"]
