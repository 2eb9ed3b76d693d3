from __future__ import annotations

import argparse
import json

from timekeeper.core.config import settings
from timekeeper.core.logging import configure_logging
from timekeeper.db.session import Base, SessionLocal, engine, session_scope
from timekeeper.overtime.dispatch import build_dispatcher
from timekeeper.overtime.settings_store import SettingsStore
from timekeeper.seed.seed_data import seed


def cmd_show_options(args: argparse.Namespace) -> None:
    with session_scope(SessionLocal) as db:
        options = SettingsStore(db).ot_options()
    print(json.dumps(options.as_dict(), indent=2, sort_keys=True))


def cmd_replay_outbox(args: argparse.Namespace) -> None:
    report = build_dispatcher(SessionLocal).replay(limit=args.limit)
    print(f"Replayed outbox: sent={len(report.sent)} skipped={len(report.skipped)} failed={len(report.failed)}")


def cmd_seed(args: argparse.Namespace) -> None:
    Base.metadata.create_all(bind=engine)
    with session_scope(SessionLocal) as db:
        seed(db, year=args.year)
    print(f"Seeded demo data into {settings.database_url}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Overtime request administration CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show-options", help="Print the resolved overtime settings")
    show.set_defaults(func=cmd_show_options)

    replay = sub.add_parser("replay-outbox", help="Retry pending or failed notifications")
    replay.add_argument("--limit", type=int, default=100)
    replay.set_defaults(func=cmd_replay_outbox)

    seed_cmd = sub.add_parser("seed", help="Create tables and load demo data")
    seed_cmd.add_argument("--year", type=int, help="Year used for the demo holidays")
    seed_cmd.set_defaults(func=cmd_seed)

    return parser


def main(argv: list[str] | None = None) -> None:
    configure_logging(settings.log_level)
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
