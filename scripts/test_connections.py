#!/usr/bin/env python3
"""
Connection Test Script

Run this to verify the database and asset host are reachable.
Usage: python scripts/test_connections.py
"""
import sys
sys.path.insert(0, '.')

from portal.db.postgres import test_postgres_connection
from portal.services.asset_cleaner import get_asset_cleaner
from portal.core.config import get_settings


def main():
    settings = get_settings()
    print("=" * 50)
    print("PLACEMENT PORTAL - CONNECTION TEST")
    print("=" * 50)

    # Test PostgreSQL
    print("\n[1] Testing PostgreSQL...")
    print(f"    URL: postgresql://{settings.postgres_user}:****@{settings.postgres_host}:{settings.postgres_port}/{settings.postgres_db}")
    if test_postgres_connection():
        print("    ✅ PostgreSQL: CONNECTED")
    else:
        print("    ❌ PostgreSQL: FAILED")

    # Test asset host (only if a bucket is set)
    print("\n[2] Testing asset host...")
    if settings.asset_host_configured:
        print(f"    Endpoint: {settings.asset_host_endpoint_url or 'AWS default'}")
        print(f"    Bucket: {settings.asset_host_bucket}")
        if get_asset_cleaner().test_connection():
            print("    ✅ Asset host: CONNECTED")
        else:
            print("    ❌ Asset host: FAILED")
    else:
        print("    ⚠️  Asset host: bucket not configured (photo cleanup will report failures)")

    print("\n" + "=" * 50)
    print("Connection test complete!")
    print("=" * 50)


if __name__ == "__main__":
    main()
