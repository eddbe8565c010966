#!/usr/bin/env python3
"""
Create Super Admin
Bootstraps the first SUPER_ADMIN account, already onboarded and ACTIVE, so
that someone can sign in and invite the rest of the staff.

Usage:
    python scripts/create_super_admin.py --email owner@example.com --name "Owner"

The password is read from the SUPER_ADMIN_PASSWORD environment variable or
prompted for.

Author: Back Office Team
Date: 2025-11-14
"""
import argparse
import getpass
import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

from backoffice.core.auth import hash_password  # noqa: E402
from backoffice.core.database import SessionLocal, init_db, utcnow  # noqa: E402
from backoffice.models import AdminUser  # noqa: E402
from backoffice.services.admin_user_service import (  # noqa: E402
    USER_CODE_COUNTER,
    next_counter_value,
    password_policy_errors,
)
from backoffice.services.permission_service import PermissionService  # noqa: E402

logging.basicConfig(level=logging.INFO, format='%(message)s')
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description='Create the first SUPER_ADMIN account')
    parser.add_argument('--email', required=True)
    parser.add_argument('--name', required=True)
    parser.add_argument('--phone', default=None)
    args = parser.parse_args()

    password = os.getenv('SUPER_ADMIN_PASSWORD') or getpass.getpass('Password: ')
    errors = password_policy_errors(password)
    if errors:
        for error in errors:
            logger.error(f"❌ {error}")
        return 1

    init_db()
    db = SessionLocal()
    try:
        PermissionService(db).seed()

        email = args.email.strip().lower()
        if db.query(AdminUser).filter(AdminUser.email == email).first():
            logger.error(f"❌ A user with email {email} already exists")
            return 1

        user_number = next_counter_value(db, USER_CODE_COUNTER)
        user = AdminUser(
            user_code=f"ADMIN_USER_{user_number:03d}",
            name=args.name,
            email=email,
            phone=args.phone,
            role="SUPER_ADMIN",
            status="ACTIVE",
            password_hash=hash_password(password),
            onboarding_completed_at=utcnow(),
        )
        db.add(user)
        db.commit()
        logger.info(f"✅ Super admin {user.user_code} ({user.email}) created")
        return 0
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Could not create super admin: {e}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
