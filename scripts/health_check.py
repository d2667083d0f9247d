#!/usr/bin/env python3
"""
Health check script for the recording library sync service.

This script checks:
- Configuration loading and validation warnings
- Database connectivity at the configured isolation level
- Change feed readability (a one-item pull for a probe user)

Can be used for monitoring, alerting, or pre-deployment validation.

Usage:
    python scripts/health_check.py [--config CONFIG_PATH] [--user-id USER_ID] [--json]

Exit codes:
    0: All checks passed
    1: One or more checks failed
"""

import argparse
import json
import sys
from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError

from src.exceptions import SyncError
from src.models.config import AppConfig
from src.storage.database import ChangeStore
from src.sync.change_feed import ChangeFeed
from src.sync.cursor import initial_cursor
from src.utils.config_loader import ConfigLoader, ConfigurationError

log = structlog.stdlib.get_logger()

PROBE_USER_ID = "00000000-0000-0000-0000-000000000000"


class HealthChecker:
    """Performs health checks on service components."""

    def __init__(self, config_path: str | None = None, probe_user_id: str = PROBE_USER_ID):
        """
        Initialize health checker.

        Args:
            config_path: Optional path to configuration file
            probe_user_id: User id used for the change feed probe
        """
        self.config_path = config_path
        self.probe_user_id = probe_user_id
        self.results: dict[str, dict] = {}
        self._config: AppConfig | None = None
        self._store: ChangeStore | None = None

    def check_configuration(self) -> bool:
        check_name = "configuration"
        log.info("checking_configuration")

        try:
            loader = ConfigLoader()
            self._config = loader.load_config(self.config_path)
            warnings = loader.validate_config(self._config)
        except ConfigurationError as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Configuration error: {e}",
                "details": {},
            }
            return False

        self.results[check_name] = {
            "status": "warn" if warnings else "pass",
            "message": "Configuration loaded successfully",
            "details": {
                "default_limit": self._config.sync.default_limit,
                "max_limit": self._config.sync.max_limit,
                "warnings": warnings,
            },
        }
        return True

    def check_database(self) -> bool:
        check_name = "database"
        log.info("checking_database")

        if self._config is None:
            self.results[check_name] = {
                "status": "skip",
                "message": "Skipped because configuration failed to load",
                "details": {},
            }
            return False

        try:
            self._store = ChangeStore.from_config(self._config.database)
            self._store.ping()
        except (SyncError, SQLAlchemyError) as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Database unreachable: {e.__cause__ or e}",
                "details": {},
            }
            return False

        self.results[check_name] = {
            "status": "pass",
            "message": "Database accepts connections",
            "details": {
                "dialect": self._store.engine.dialect.name,
                "isolation_level": self._store.isolation_level,
            },
        }
        return True

    def check_change_feed(self) -> bool:
        check_name = "change_feed"
        log.info("checking_change_feed")

        if self._store is None or self._config is None:
            self.results[check_name] = {
                "status": "skip",
                "message": "Skipped because the database is unavailable",
                "details": {},
            }
            return False

        feed = ChangeFeed(self._store, max_limit=self._config.sync.max_limit)
        try:
            page = feed.pull(self.probe_user_id, initial_cursor(), limit=1)
        except SyncError as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Change feed error: {e.__cause__ or e}",
                "details": {},
            }
            return False

        self.results[check_name] = {
            "status": "pass",
            "message": "Change feed is readable",
            "details": {
                "probe_user_id": self.probe_user_id,
                "items_returned": len(page.items),
            },
        }
        return True

    def run_all_checks(self) -> bool:
        """
        Run all health checks in dependency order.

        Returns:
            True if all checks passed, False otherwise
        """
        results = [
            self.check_configuration(),
            self.check_database(),
            self.check_change_feed(),
        ]
        if self._store is not None:
            self._store.dispose()
        return all(results)

    def get_summary(self) -> dict:
        statuses = [r["status"] for r in self.results.values()]
        failed = statuses.count("fail")

        return {
            "timestamp": datetime.now().isoformat(),
            "overall_status": "healthy" if failed == 0 else "unhealthy",
            "total_checks": len(statuses),
            "passed": statuses.count("pass"),
            "failed": failed,
            "warnings": statuses.count("warn"),
            "skipped": statuses.count("skip"),
            "checks": self.results,
        }


def main():
    """Main entry point for health check script."""
    parser = argparse.ArgumentParser(description="Health check for the sync service")
    parser.add_argument("--config", type=str, default=None, help="Path to configuration file")
    parser.add_argument(
        "--user-id", type=str, default=PROBE_USER_ID, help="User id for the change feed probe"
    )
    parser.add_argument("--json", action="store_true", help="Output results in JSON format")

    args = parser.parse_args()

    checker = HealthChecker(config_path=args.config, probe_user_id=args.user_id)
    all_passed = checker.run_all_checks()
    summary = checker.get_summary()

    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        print("\n" + "=" * 60)
        print(f"HEALTH CHECK: {summary['overall_status'].upper()}")
        print("=" * 60)
        for name, result in summary["checks"].items():
            print(f"[{result['status'].upper():4}] {name}: {result['message']}")
        print("=" * 60)

    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    main()
