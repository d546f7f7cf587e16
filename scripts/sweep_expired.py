#!/usr/bin/env python3
"""
Delete videos, chunks and metadata older than the retention window.

Meant to run from cron (or any scheduler) against the same bucket the API
uses, e.g. every 15 minutes:

    */15 * * * * cd /srv/castdrop && python scripts/sweep_expired.py

Usage:
    python scripts/sweep_expired.py [--dry-run] [--max-age-minutes N]

Requires:
    - .env file with R2 credentials (same variables as the API)
"""

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from castdrop.api.dependencies import build_storage_client
from castdrop.config.settings import Settings
from castdrop.core.media.models import MediaConfig
from castdrop.core.media.sweeper import ExpirySweeper


def build_sweeper(settings: Settings, max_age_minutes: int | None = None) -> ExpirySweeper:
    """Sweeper for the configured bucket, optionally with a different window."""
    config = settings.media_config
    if max_age_minutes is not None:
        config = MediaConfig(
            max_file_size=config.max_file_size,
            chunk_size=config.chunk_size,
            max_age=timedelta(minutes=max_age_minutes),
            default_content_type=config.default_content_type,
        )
    return ExpirySweeper(store=build_storage_client(settings), config=config)


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Delete expired CastDrop objects')
    parser.add_argument('--dry-run', action='store_true', help='List expired objects, don\'t delete')
    parser.add_argument('--max-age-minutes', type=int, default=None,
                        help='Override the retention window for this run')
    args = parser.parse_args()

    settings = Settings()

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=settings.log_level.upper(),
    )

    missing = settings.validate_required_fields()
    if missing:
        print(f"ERROR: Missing configuration: {', '.join(missing)}")
        sys.exit(1)

    if args.max_age_minutes is not None and args.max_age_minutes <= 0:
        print("ERROR: --max-age-minutes must be positive")
        sys.exit(1)

    sweeper = build_sweeper(settings, args.max_age_minutes)
    report = asyncio.run(sweeper.sweep(dry_run=args.dry_run))

    if args.dry_run:
        print("\n=== DRY RUN - Nothing was deleted ===\n")

    print(f"Cutoff: {report.cutoff.isoformat()}")
    for result in report.prefixes:
        print(
            f"  {result.prefix:<8} scanned={result.scanned} expired={result.expired} "
            f"deleted={result.deleted} failed={result.failed}"
        )

    print(f"\n=== Sweep Complete ===")
    print(f"Deleted: {report.deleted}")
    print(f"Errors: {report.failed}")

    sys.exit(0 if report.failed == 0 else 1)


if __name__ == '__main__':
    main()
