#!/usr/bin/env python3
"""
Example: Seed a merchant (and optionally an admin) into the database.

Merchant signup happens in the dashboard, so local testing needs a row
created directly.

Usage:
    python seed_merchant.py m1 shop@example.com

    # Already verified, with an opening balance
    python seed_merchant.py m1 shop@example.com --status approved --balance 5000

    # Also register an admin address for notification emails
    python seed_merchant.py m1 shop@example.com --admin ops@example.com
"""

import argparse
import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import load_config
from database.db import Database
from models.merchant import Merchant


async def seed(
    merchant_id: str,
    email: str,
    status: str,
    balance: float,
    business_name: str = None,
    admin_email: str = None
) -> None:
    config = load_config()

    db = Database(config.database.url)
    await db.connect()
    await db.init_schema()

    try:
        if await db.get_merchant(merchant_id):
            print(f"❌ Merchant {merchant_id} already exists")
            return

        merchant = Merchant.from_dict(await db.create_merchant(
            merchant_id=merchant_id,
            email=email,
            business_name=business_name,
            verification_status=status,
            balance=balance
        ))
        print(f"✅ Created {merchant!r}")

        if admin_email:
            await db.create_admin(admin_email)
            print(f"✅ Registered admin {admin_email}")
    finally:
        await db.disconnect()


async def main():
    parser = argparse.ArgumentParser(description='Seed a merchant for local testing')
    parser.add_argument('merchant_id', help='Merchant identifier')
    parser.add_argument('email', help='Merchant contact email')
    parser.add_argument(
        '--status',
        default='pending',
        choices=['pending', 'approved', 'rejected'],
        help='Verification status (default: pending)'
    )
    parser.add_argument('--balance', type=float, default=0, help='Opening balance')
    parser.add_argument('--name', help='Business name (optional)')
    parser.add_argument('--admin', help='Admin email to register (optional)')

    args = parser.parse_args()

    await seed(
        merchant_id=args.merchant_id,
        email=args.email,
        status=args.status,
        balance=args.balance,
        business_name=args.name,
        admin_email=args.admin
    )


if __name__ == '__main__':
    asyncio.run(main())
