#!/usr/bin/env python3
"""
Database Initialisation Script

Creates all tables and, optionally, the first super admin account.
Usage:
    python scripts/init_db.py
    python scripts/init_db.py --admin-email admin@example.com --admin-password 'S3cure-pass'
"""
import argparse
import sys
sys.path.insert(0, '.')

from sqlalchemy import text

from portal.core.auth import hash_password
from portal.db.postgres import engine, get_db_session
from portal.db.schema import create_schema


def seed_super_admin(email: str, password: str) -> bool:
    """Insert a super admin unless the email already exists. Returns True if created."""
    with get_db_session() as db:
        if db.execute(text("SELECT id FROM users WHERE email = :email"), {"email": email}).fetchone():
            return False
        db.execute(
            text("""
                INSERT INTO users (email, password_hash, role, is_active)
                VALUES (:email, :password_hash, 'super_admin', TRUE)
            """),
            {"email": email, "password_hash": hash_password(password)}
        )
    return True


def main():
    parser = argparse.ArgumentParser(description="Create tables and seed the first super admin")
    parser.add_argument("--admin-email")
    parser.add_argument("--admin-password")
    args = parser.parse_args()

    print("[1] Creating tables...")
    create_schema(engine)
    print("    ✅ Schema ready")

    if args.admin_email and args.admin_password:
        print("\n[2] Seeding super admin...")
        if seed_super_admin(args.admin_email, args.admin_password):
            print(f"    ✅ Created {args.admin_email}")
        else:
            print(f"    ⚠️  {args.admin_email} already exists, left unchanged")


if __name__ == "__main__":
    main()
