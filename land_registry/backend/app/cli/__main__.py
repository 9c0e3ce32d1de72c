# backend/app/cli/__main__.py
from __future__ import annotations

import argparse
import json
import sys
from typing import Optional, Sequence

from app.cli.seed_demo import seed_demo
from app.config import settings
from app.db import Database
from app.logging_config import configure_logging
from app.services.lock_reconciliation import reconcile_locks


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="python -m app.cli")
    p.add_argument("--database-url", default=None, help="overrides DATABASE_URL")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create all tables")

    rl = sub.add_parser("reconcile-locks", help="report (and optionally repair) property lock drift")
    rl.add_argument("--fix", action="store_true")
    rl.add_argument("--property-id", type=int, default=None)

    sd = sub.add_parser("seed-demo", help="create demo accounts and a sample property")
    sd.add_argument("--no-sample-property", action="store_true")
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(settings.log_level, settings.sql_log_level)

    database = Database(args.database_url or settings.database_url, echo=settings.database_echo)
    try:
        if args.command == "init-db":
            database.create_all()
            print(json.dumps({"ok": True, "command": "init-db"}))
            return 0

        if args.command == "reconcile-locks":
            with database.session() as db:
                report = reconcile_locks(db, fix=args.fix, property_id=args.property_id)
            print(json.dumps(report.as_dict(), default=str))
            # non-zero on unrepaired drift so cron jobs notice
            return 0 if (report.ok or report.fixed) else 1

        if args.command == "seed-demo":
            database.create_all()
            with database.session() as db:
                out = seed_demo(db, create_sample_property=(not args.no_sample_property))
            print(json.dumps({"ok": True, "users": out.user_ids, "sample_property_id": out.property_id}))
            return 0
    finally:
        database.dispose()

    return 2


if __name__ == "__main__":
    sys.exit(main())
