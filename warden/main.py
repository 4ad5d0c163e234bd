#!/usr/bin/env python3
# WARDEN_FEAT: main-entry-001
"""
WARDEN - Main Entry Point
=========================

Validates configuration and builds the access-control service.

Usage:
    python -m warden.main --config config/warden.yaml --dry-run
    python -m warden.main --config config/warden.yaml --export csv

Author: WARDEN Development Team
Version: 1.0.0
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from warden.access.service import AccessControlService
from warden.core.config_manager import ConfigManager
from warden.core.settings import get_settings
from warden.engine.exceptions import WardenError


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="WARDEN - Profile Access Control",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="Path to configuration file (default: $CONFIG_PATH, else built-in defaults)",
    )

    parser.add_argument(
        "-l", "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate config and exit",
    )

    parser.add_argument(
        "--export",
        type=str,
        choices=["json", "csv"],
        default=None,
        help="Print the audit export in the given format",
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    settings = get_settings()

    setup_logging(args.log_level or settings.LOG_LEVEL)
    logger = logging.getLogger("WARDEN_MAIN")

    logger.info("=" * 60)
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} - Profile Access Control")
    logger.info("=" * 60)

    config_manager = ConfigManager()
    config_path = args.config or settings.CONFIG_PATH
    if config_path:
        if not Path(config_path).exists():
            logger.error(f"Configuration file not found: {config_path}")
            return 1
        if not config_manager.load(config_path):
            logger.error(f"Failed to load configuration: {config_path}")
            return 1
    else:
        config_manager.load_env()

    errors = config_manager.validate()
    if errors:
        for error in errors:
            logger.error(f"Validation error: {error}")
        return 1

    if args.dry_run:
        logger.info("Configuration valid!")
        for key, value in config_manager.get_info().items():
            logger.info(f"{key}: {value}")
        return 0

    service = AccessControlService(config=config_manager.config)
    stats = service.get_statistics()
    logger.info(f"Roles: {[r.value for r in service.roles.list_roles()]}")
    logger.info(f"Policies: {stats['engine']['policies']}")

    if args.export:
        print(service.export_access_data(args.export))
    else:
        print(json.dumps(stats, indent=2, default=str))

    logger.info("WARDEN ready")
    return 0


def run() -> None:
    """Console script entry."""
    try:
        sys.exit(main())
    except WardenError as e:
        logging.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
