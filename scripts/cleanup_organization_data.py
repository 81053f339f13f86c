#!/usr/bin/env python3
"""
Delete farm data for one organization (or all of them)

Users, organizations and memberships are preserved. Collections are
cleared children first so nothing is left pointing at a deleted parent.

Usage:
    python scripts/cleanup_organization_data.py --organization my-farm
    python scripts/cleanup_organization_data.py --all -y
"""

import argparse
from pymongo.errors import PyMongoError
from sowtracker import db, get_org_db
from sowtracker.models.organization import Organization

# Children before parents
CLEANUP_ORDER = [
    'scheduled_tasks',
    'protocols',
    'calendar_events',
    'budgets',
    'expense_records',
    'income_records',
    'feed_records',
    'matrix_treatments',
    'health_records',
    'location_history',
    'ai_doses',
    'piglets',
    'farrowings',
    'breeding_attempts',
    'housing_units',
    'boars',
    'sows',
]

def print_success(text):
    print(f"✓ {text}")

def print_warning(text):
    print(f"⚠ {text}")

def print_error(text):
    print(f"✗ {text}")

def cleanup_organization(organization):
    """Delete every farm record of one organization, returning the row count"""
    org_db = get_org_db(organization['slug'])
    total = 0
    for collection in CLEANUP_ORDER:
        result = org_db[collection].delete_many({})
        if result.deleted_count:
            print_success(f"{organization['slug']}: deleted {result.deleted_count} {collection}")
        total += result.deleted_count

    # Transfer requests reference this organization's animals
    result = db.transfer_requests.delete_many({'organization_id': organization['_id']})
    total += result.deleted_count
    return total

def main():
    parser = argparse.ArgumentParser(description='Delete farm data for organizations')
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument('--organization', help='Organization slug or id')
    target.add_argument('--all', action='store_true', help='Clean every organization')
    parser.add_argument('-y', '--yes', action='store_true', help='Skip confirmation')
    args = parser.parse_args()

    try:
        if args.all:
            organizations = Organization.find_all()
        else:
            organization = Organization.find_by_slug(args.organization)
            if not organization and len(args.organization) == 24:
                organization = Organization.find_by_id(args.organization)
            if not organization:
                print_error(f"Organization not found: {args.organization}")
                return 1
            organizations = [organization]
    except PyMongoError as e:
        print_error(f"Could not read organizations: {e}")
        return 1

    print("\n" + "=" * 60)
    print("Organization Data Cleanup")
    print("=" * 60 + "\n")
    print("This will delete all farm records for:")
    for organization in organizations:
        print(f"  - {organization['name']} ({organization['slug']})")
    print()
    print_warning("Users, organizations and memberships will be preserved")
    print()

    if not args.yes:
        confirm = input("Continue? (yes/no): ")
        if confirm.lower() != 'yes':
            print("Aborted.")
            return 0

    total = 0
    for organization in organizations:
        try:
            total += cleanup_organization(organization)
        except PyMongoError as e:
            print_error(f"{organization['slug']}: {e}")
            return 1

    print()
    print_success(f"Cleanup complete ({total} records deleted)")
    return 0

if __name__ == '__main__':
    raise SystemExit(main())
