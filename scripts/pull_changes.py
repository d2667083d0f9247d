#!/usr/bin/env python3
"""
Pull the change feed for one user from the configured database.

This script drains a user's change feed the way a client replica does:
- Starts from the given cursor, or from the beginning
- Pulls pages until hasMore is false or the page budget is exhausted
- Retries store failures with exponential backoff
- Prints a summary (or the JSON report with the final cursor)

Useful for inspecting what a device would receive and for checking that a
drain terminates.

Usage:
    python scripts/pull_changes.py --user-id USER_ID [--since CURSOR] [--limit N]
        [--max-pages N] [--config CONFIG_PATH] [--json] [--items]
"""

import argparse
import json
import sys

import structlog

from src.sync.puller import SyncPuller, SyncPullReport
from src.sync.service import SyncService
from src.utils.config_loader import ConfigLoader, ConfigurationError
from src.utils.logging_config import configure_logging_from_config

log = structlog.stdlib.get_logger()


def perform_pull(
    user_id: str,
    since: str | None = None,
    limit: int | None = None,
    max_pages: int | None = None,
    config_path: str | None = None,
) -> tuple[SyncPullReport, SyncPuller]:
    """
    Drain the change feed for a user.

    Args:
        user_id: User whose feed to pull
        since: Optional cursor to resume from
        limit: Optional page size; the configured default if None
        max_pages: Optional cap on pages
        config_path: Optional path to configuration file

    Returns:
        Tuple of (pull report, puller holding the resulting replica)
    """
    config = ConfigLoader().load_config(config_path)
    configure_logging_from_config(config.logging)

    service = SyncService.from_config(config)
    puller = SyncPuller(
        service,
        page_limit=limit or config.sync.default_limit,
        max_pages=max_pages,
        max_retries=3,
    )

    report = puller.pull(user_id, since=since)
    return report, puller


def print_summary(report: SyncPullReport, puller: SyncPuller) -> None:
    replica = puller.replica

    print("\n" + "=" * 60)
    print("CHANGE FEED PULL SUMMARY")
    print("=" * 60)
    print(f"Status: {'SUCCESS' if report.success else 'FAILED'}")
    print(f"User: {report.user_id}")
    print(f"Pages: {report.pages}")
    print(f"Items: {report.items_received}")
    print(f"Drained: {'yes' if report.complete else 'no'}")
    print(f"Recordings: {len(replica.recordings)}")
    print(f"Folders: {len(replica.folders)}")
    print(f"Tags: {len(replica.tags)}")
    print(f"Tag assignments: {len(replica.recording_tags)}")
    print(f"Folder assignments: {len(replica.recording_folders)}")
    print(f"Next cursor: {report.next_cursor}")
    print(f"Duration: {report.duration_seconds:.2f} seconds")
    for error in report.errors:
        print(f"Error: {error}")
    print("=" * 60)


def main():
    """Main entry point for the change feed pull script."""
    parser = argparse.ArgumentParser(description="Pull the change feed for a user")
    parser.add_argument("--user-id", type=str, required=True, help="User whose feed to pull")
    parser.add_argument("--since", type=str, default=None, help="Cursor to resume from")
    parser.add_argument("--limit", type=int, default=None, help="Page size (1-1000)")
    parser.add_argument("--max-pages", type=int, default=None, help="Maximum pages to pull")
    parser.add_argument("--config", type=str, default=None, help="Path to configuration file")
    parser.add_argument("--json", action="store_true", help="Output the report as JSON")
    parser.add_argument(
        "--items", action="store_true", help="Include the replica contents in JSON output"
    )

    args = parser.parse_args()

    try:
        report, puller = perform_pull(
            user_id=args.user_id,
            since=args.since,
            limit=args.limit,
            max_pages=args.max_pages,
            config_path=args.config,
        )
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.json:
        output = report.model_dump(mode="json")
        if args.items:
            replica = puller.replica
            output["replica"] = {
                "recordings": replica.recordings,
                "folders": replica.folders,
                "tags": replica.tags,
                "recording_tags": sorted(list(link) for link in replica.recording_tags),
                "recording_folders": replica.recording_folders,
            }
        print(json.dumps(output, indent=2))
    else:
        print_summary(report, puller)

    sys.exit(0 if report.success else 1)


if __name__ == "__main__":
    main()
