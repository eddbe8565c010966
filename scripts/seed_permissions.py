#!/usr/bin/env python3
"""
Seed Permission Catalog
Creates the database tables (when missing) and upserts every built-in
permission code. Safe to run repeatedly.

Usage:
    python scripts/seed_permissions.py
    python scripts/seed_permissions.py --skip-create-tables

Author: Back Office Team
Date: 2025-11-14
"""
import argparse
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from backoffice.core.database import SessionLocal, init_db  # noqa: E402
from backoffice.services.permission_service import PermissionService  # noqa: E402

logging.basicConfig(level=logging.INFO, format='%(message)s')
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description='Seed the permission catalog')
    parser.add_argument('--skip-create-tables', action='store_true', help='Do not create missing tables first')
    args = parser.parse_args()

    logger.info("=" * 80)
    logger.info("SEED PERMISSIONS")
    logger.info("=" * 80)

    if not args.skip_create_tables:
        init_db()

    db = SessionLocal()
    try:
        result = PermissionService(db).seed()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Seeding failed: {e}")
        return 1
    finally:
        db.close()

    logger.info(f"✅ Created: {result['created']}, updated: {result['updated']}, catalog size: {result['total']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
