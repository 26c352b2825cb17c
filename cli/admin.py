#!/usr/bin/env python3
"""Store maintenance: migrate the flat layout, clean up leftovers, report the layout."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from internly import (
    InternlyError,
    cleanup_legacy,
    configure_logging,
    load_settings,
    migrate_all_users,
    open_document_store,
    verify_layout,
    workspace_root,
)

logger = logging.getLogger("internly.admin")


def cmd_migrate(db, args: argparse.Namespace) -> int:
    stats = migrate_all_users(db, dry_run=args.dry_run)
    print(json.dumps({name: s.to_dict() for name, s in stats.items()}, indent=2))
    return 0


def cmd_cleanup(db, args: argparse.Namespace) -> int:
    deleted = cleanup_legacy(db, dry_run=args.dry_run)
    verb = "Would delete" if args.dry_run else "Deleted"
    print(f"{verb} {deleted} legacy document(s)")
    return 0


def cmd_verify(db, args: argparse.Namespace) -> int:
    report = verify_layout(db)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return 0

    for user in report.users:
        counts = "  ".join(f"{name}={count}" for name, count in user.counts.items())
        print(f"{user.name} ({user.uid}): {counts}")
    leftover = {name: count for name, count in report.flat.items() if count}
    if leftover:
        print("Flat collections still hold: " + ", ".join(f"{n}={c}" for n, c in leftover.items()))
    else:
        print("Flat collections are empty.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="internly-admin", description="Internly document store maintenance")
    sub = parser.add_subparsers(dest="command", required=True)

    p_migrate = sub.add_parser("migrate", help="Copy every flat-layout document into its owner's subcollection.")
    p_migrate.add_argument("--dry-run", action="store_true", help="Count what would be copied without writing.")
    p_migrate.set_defaults(func=cmd_migrate)

    p_cleanup = sub.add_parser("cleanup", help="Delete the legacy flat collections and schema markers.")
    p_cleanup.add_argument("--dry-run", action="store_true", help="List what would be deleted without deleting.")
    p_cleanup.set_defaults(func=cmd_cleanup)

    p_verify = sub.add_parser("verify", help="Show per-user subcollection counts next to the flat counts.")
    p_verify.add_argument("--json", action="store_true", help="Print the report as JSON.")
    p_verify.set_defaults(func=cmd_verify)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    root = workspace_root()
    settings = load_settings(root)
    configure_logging(settings.log_level)

    try:
        db = open_document_store(settings, root)
        return args.func(db, args)
    except InternlyError as e:
        logger.error("%s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
