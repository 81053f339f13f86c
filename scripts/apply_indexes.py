#!/usr/bin/env python3
"""
Create master and per-organization indexes

Safe to re-run: create_index is a no-op for indexes that already exist.

Usage:
    python scripts/apply_indexes.py
"""

import logging
import sys
from pymongo.errors import PyMongoError
from sowtracker.models import init_db
from sowtracker.models.organization import Organization

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True
)

def main():
    init_db()
    print("✓ Master database indexes applied")

    failures = 0
    for organization in Organization.find_all():
        try:
            Organization.initialize_organization_database(organization['slug'])
            print(f"✓ {organization['slug']}")
        except PyMongoError as e:
            failures += 1
            print(f"✗ {organization['slug']}: {e}")

    return 1 if failures else 0

if __name__ == '__main__':
    raise SystemExit(main())
