#!/usr/bin/env python3
"""
Run one replication pass between two JSON file stores.

Reads the source changes since the last confirmed checkpoints, applies the
safe ones to the target, prints any conflicts and records the new
checkpoints for the next run.

Usage:
    python scripts/replicate.py [--config CONFIG_PATH] [--since N]
                                [--source-since N --target-since N]
                                [--reverse] [--json] [--verbose]
"""

import argparse
import json
import sys

import structlog

from changesync.models.config import AppConfig
from changesync.storage.file_store import JsonFileRecordStore
from changesync.sync.checkpoint_tracker import CheckpointTracker
from changesync.sync.errors import ReplicationError
from changesync.sync.models import ReplicationOptions, ReplicationResult
from changesync.sync.replication_coordinator import ReplicationCoordinator
from changesync.utils.config_loader import ConfigLoader, ConfigurationError
from changesync.utils.logging_config import configure_logging
from changesync.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Replicate changes from a source store to a target store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Replicate from the last confirmed checkpoints
  python scripts/replicate.py

  # Replicate everything after checkpoint 10 on both sides
  python scripts/replicate.py --since 10

  # Resume asymmetric progress
  python scripts/replicate.py --source-since 12 --target-since 4

  # Push target changes back to the source, JSON output
  python scripts/replicate.py --reverse --json
        """,
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration YAML file (default: config/default.yaml)",
        default=None,
    )
    parser.add_argument(
        "--since",
        type=int,
        help="Checkpoint lower bound for both stores",
        default=None,
    )
    parser.add_argument("--source-since", type=int, default=None, help="Source lower bound")
    parser.add_argument("--target-since", type=int, default=None, help="Target lower bound")
    parser.add_argument(
        "--reverse",
        action="store_true",
        help="Replicate from the target store to the source store",
        default=False,
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON",
        default=False,
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
        default=False,
    )

    args = parser.parse_args(argv)

    if (args.source_since is None) != (args.target_since is None):
        parser.error("--source-since and --target-since must be given together")
    if args.since is not None and args.source_since is not None:
        parser.error("--since cannot be combined with --source-since/--target-since")

    return args


def resolve_since(args: argparse.Namespace) -> int | dict[str, int] | None:
    if args.source_since is not None:
        return {"source": args.source_since, "target": args.target_since}
    return args.since


def run_pass(
    config: AppConfig, since: int | dict[str, int] | None, reverse: bool
) -> ReplicationResult:
    """Open both stores and run one pass, retrying transient failures."""
    tracker = (
        CheckpointTracker(config.replication.state_file)
        if config.replication.state_file
        else None
    )
    coordinator = ReplicationCoordinator(checkpoint_tracker=tracker)
    options = ReplicationOptions(include_replicated=config.replication.include_replicated)

    @exponential_backoff_retry(
        max_retries=config.replication.max_retries,
        base_delay=config.replication.retry_base_delay,
    )
    def attempt() -> ReplicationResult:
        # Reopen the stores on every attempt so no half-applied state is reused
        source = JsonFileRecordStore(
            config.stores.source_path,
            config.stores.model_name,
            id_field=config.stores.id_field,
            name=config.stores.source_name,
        )
        target = JsonFileRecordStore(
            config.stores.target_path,
            config.stores.model_name,
            id_field=config.stores.id_field,
            name=config.stores.target_name,
        )
        if reverse:
            source, target = target, source
        return coordinator.replicate(source, target, since=since, options=options)

    return attempt()


def print_result(result: ReplicationResult, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
        return

    print(f"\n✓ Replication pass completed in {result.duration_seconds:.2f} seconds")
    print(f"  Records applied: {result.applied}")
    print(
        f"  Next checkpoints: source={result.checkpoints.source} "
        f"target={result.checkpoints.target}"
    )
    if not result.conflicts:
        print("  Conflicts: none")
        return

    print(f"  Conflicts: {len(result.conflicts)}")
    for conflict in result.conflicts:
        source_change, target_change = conflict.changes()
        print(
            f"    - {conflict.model_id} [{conflict.type().value}] "
            f"source={source_change.type.value} target={target_change.type.value}"
        )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the replication CLI.

    Returns:
        Exit code (0 for success, 1 for failure, 2 when conflicts were found)
    """
    args = parse_arguments(argv)
    loader = ConfigLoader()

    try:
        config = loader.load_config(args.config)
    except ConfigurationError as e:
        configure_logging(log_level="DEBUG" if args.verbose else "INFO", json_logs=False)
        log.error("configuration_error", error=str(e))
        print(f"\n✗ Configuration error: {e}")
        return 1

    configure_logging(
        log_level="DEBUG" if args.verbose else config.logging.log_level,
        json_logs=config.logging.json_logs,
        log_file=config.logging.log_file,
    )
    loader.validate_config(config)

    log.info(
        "replication_cli_started",
        config=args.config,
        since=resolve_since(args),
        reverse=args.reverse,
    )

    try:
        result = run_pass(config, resolve_since(args), args.reverse)
    except ReplicationError as e:
        log.error("replication_cli_failed", error=str(e), error_type=type(e).__name__)
        print(f"\n✗ Replication failed: {e}")
        return 1
    except RuntimeError as e:
        # Raised by the checkpoint tracker when the state file is unusable
        log.error("replication_state_error", error=str(e))
        print(f"\n✗ Replication state error: {e}")
        return 1
    except KeyboardInterrupt:
        log.info("replication_interrupted_by_user")
        print("\n\nReplication interrupted by user.")
        return 1

    print_result(result, args.json)
    return 2 if result.conflicts else 0


if __name__ == "__main__":
    sys.exit(main())
