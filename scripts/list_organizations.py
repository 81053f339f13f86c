#!/usr/bin/env python3
"""
List organizations with their ids, slugs and member counts

Usage:
    python scripts/list_organizations.py [--include-deleted]
"""

import argparse
from pymongo.errors import PyMongoError
from sowtracker import db
from sowtracker.models.organization import Organization

def print_error(text):
    print(f"✗ {text}")

def main():
    parser = argparse.ArgumentParser(description='List organizations')
    parser.add_argument('--include-deleted', action='store_true', help='Show soft-deleted organizations too')
    args = parser.parse_args()

    try:
        organizations = Organization.find_all(include_deleted=args.include_deleted)
    except PyMongoError as e:
        print_error(f"Could not read organizations: {e}")
        return 1

    if not organizations:
        print("No organizations found.")
        return 0

    print(f"\n{'ID':<26} {'Slug':<32} {'Members':>7}  Name")
    print("-" * 90)
    for organization in organizations:
        members = db.organization_members.count_documents({
            'organization_id': organization['_id'],
            'is_active': True
        })
        name = organization['name']
        if organization.get('deleted_at'):
            name += ' (deleted)'
        print(f"{str(organization['_id']):<26} {organization['slug']:<32} {members:>7}  {name}")
    print(f"\n{len(organizations)} organization(s)")
    return 0

if __name__ == '__main__':
    raise SystemExit(main())
