#!/usr/bin/env python3
"""
Create the back-office tables in Postgres and seed the permission catalogue.

Uses DATABASE_URL. Does NOT drop existing tables. With --admin-username and
--admin-password (or ADMIN_USERNAME / ADMIN_PASSWORD) a super admin is
created when the users table is still empty.

Run from the project root:  python -m scripts.init_database
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from dotenv import load_dotenv
from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError

from src.backoffice import security
from src.database.postgres_real import PostgresDB


def main() -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Create back-office tables and seed permissions")
    parser.add_argument("--admin-username", default=os.environ.get("ADMIN_USERNAME", ""))
    parser.add_argument("--admin-password", default=os.environ.get("ADMIN_PASSWORD", ""))
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    url = os.environ.get("DATABASE_URL")
    if not url:
        print("DATABASE_URL is not set", file=sys.stderr)
        return 1

    try:
        db = PostgresDB(url)
        with db.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")

        db.create_tables()
        tables = inspect(db.engine).get_table_names()
        print("✅ Tables now exist:", sorted(tables))

        if args.admin_username and args.admin_password:
            admin = db.ensure_super_admin(args.admin_username.strip(), security.hash_password(args.admin_password))
            if admin:
                print(f"✅ Super admin created: {admin.username}")
            else:
                print("Users already exist; super admin not created")
        return 0

    except OperationalError as e:
        print(f"❌ Failed to connect to database: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
