#!/usr/bin/env python3
"""List the changes a JSON file store recorded after a checkpoint.

Usage:
    python scripts/list_changes.py PATH --model notes [--since N] [--id ID ...] [--json]
"""

import argparse
import json
import sys

import structlog

from changesync.models.change import ChangeFilter
from changesync.storage.file_store import JsonFileRecordStore
from changesync.sync.checkpoint import NEVER_SYNCED
from changesync.sync.errors import ReplicationError
from changesync.utils.logging_config import configure_logging

log = structlog.stdlib.get_logger()


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="List changes recorded by a store")
    parser.add_argument("path", type=str, help="JSON file backing the store")
    parser.add_argument("--model", "-m", type=str, required=True, help="Model name of the store")
    parser.add_argument(
        "--since", type=int, default=NEVER_SYNCED, help="Only changes after this checkpoint"
    )
    parser.add_argument(
        "--id", dest="ids", action="append", default=None, help="Restrict to a record id"
    )
    parser.add_argument("--json", action="store_true", default=False, help="Print JSON")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_arguments(argv)
    configure_logging(log_level="WARNING", json_logs=False)

    try:
        store = JsonFileRecordStore(args.path, args.model)
        change_filter = ChangeFilter(model_ids=args.ids) if args.ids else None
        changes = store.changes_since(args.since, change_filter)
    except ReplicationError as e:
        log.error("list_changes_failed", path=args.path, error=str(e))
        print(f"✗ {e}")
        return 1

    if args.json:
        print(json.dumps([change.to_dict() for change in changes], indent=2))
        return 0

    print(f"Current checkpoint: {store.current_checkpoint()}")
    for change in changes:
        origin = " (replicated)" if change.replicated else ""
        print(
            f"  [{change.checkpoint}] {change.type.value:<6} {change.model_id} "
            f"rev={change.revision or '-'}{origin}"
        )
    if not changes:
        print("  no changes")
    return 0


if __name__ == "__main__":
    sys.exit(main())
