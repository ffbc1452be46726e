#!/usr/bin/env python3
"""
Cron script to clean up orphaned QR images in S3.

An orphaned image is one under S3_KEY_PREFIX whose code id has no row in
qr_codes (a generation job uploaded it, then failed to persist and failed
to remove it). Runs as a dry run unless --delete is passed.

Usage:
    python scripts/reconcile_orphaned_uploads.py
    python scripts/reconcile_orphaned_uploads.py --delete --min-age 7200

Add to crontab to run automatically:
    # Run every night at 3am
    0 3 * * * cd /path/to/qrcoded && python scripts/reconcile_orphaned_uploads.py --delete
"""

import argparse
import sys
import logging
from pathlib import Path

# Add src to path so we can import qrcoded without installing it
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv
load_dotenv()

from qrcoded.db.database import SessionLocal
from qrcoded.logging_config import configure_logging
from qrcoded.services.orphan_reconciliation import (
    DEFAULT_MIN_AGE_SECONDS,
    reconcile_orphaned_uploads,
)

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile orphaned QR uploads")
    parser.add_argument("--delete", action="store_true", help="delete orphaned objects")
    parser.add_argument(
        "--min-age",
        type=int,
        default=DEFAULT_MIN_AGE_SECONDS,
        help="skip objects younger than this many seconds",
    )
    args = parser.parse_args(argv)

    configure_logging()
    logger.info("Starting orphaned upload reconciliation (delete=%s)", args.delete)

    db = SessionLocal()
    try:
        results = reconcile_orphaned_uploads(
            db, delete=args.delete, min_age_seconds=args.min_age
        )
    finally:
        db.close()

    logger.info("Reconciliation results:")
    logger.info("  Scanned: %s", results["scanned"])
    logger.info("  Orphaned: %s", results["orphaned"])
    logger.info("  Deleted: %s", results["deleted"])
    logger.info("  Errors: %s", results["errors"])

    # Non-zero exit code for monitoring
    return 1 if results["errors"] else 0


if __name__ == "__main__":
    sys.exit(main())
