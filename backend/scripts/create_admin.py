#!/usr/bin/env python3
"""
Create an identity account and put it on the admin allow-list.

    python backend/scripts/create_admin.py admin@example.com --name "Admin"

The password is prompted for unless --password is given. An existing
account is only allow-listed, its password is left alone.
"""

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path

# Ensure backend/ is on sys.path for "tour_admin.*" imports when run from a checkout
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from tour_admin.core.security import IdentityProvider
from tour_admin.core.settings import Settings
from tour_admin.db.crud import DocumentStore
from tour_admin.db.session import DatabaseManager

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_admin(email: str, password: str, name: str) -> str:
    settings = Settings()
    db = DatabaseManager(settings)
    await db.initialize()
    try:
        identity = IdentityProvider(DocumentStore(db), settings)
        account = await identity.find_account(email)
        if account is None:
            account = await identity.create_account(email, password, display_name=name)
        else:
            logger.info(f"Account {email} already exists, granting admin only")
        await identity.grant_admin(account)
        return account.id
    finally:
        await db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a back-office admin")
    parser.add_argument("email")
    parser.add_argument("--name", default="", help="Display name")
    parser.add_argument("--password", help="Password (prompted when omitted)")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    try:
        account_id = asyncio.run(create_admin(args.email, password, args.name))
    except ValueError as e:
        logger.error(str(e))
        return 1

    logger.info(f"✅ {args.email} is an admin (account {account_id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
