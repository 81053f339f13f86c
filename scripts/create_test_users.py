#!/usr/bin/env python3
"""
Create test users in MongoDB for local testing

This script creates:
1. admin@sowtracker.local - site admin (feedback pages) and farm owner
2. manager@sowtracker.local - manager of the demo farm
3. vet@sowtracker.local - vet of the demo farm (health records only)
4. A demo farm organization

Usage:
    python scripts/create_test_users.py [--password devpass123]
"""

import argparse
from pymongo.errors import PyMongoError
from sowtracker.models.user import User
from sowtracker.models.organization import Organization, OrganizationMember

DEMO_FARM_NAME = 'Demo Farm'

TEST_USERS = [
    ('admin@sowtracker.local', 'Farm Admin', True, 'owner'),
    ('manager@sowtracker.local', 'Barn Manager', False, 'manager'),
    ('vet@sowtracker.local', 'Herd Vet', False, 'vet'),
]

def get_or_create_user(email, password, full_name, is_admin):
    user = User.find_by_email(email)
    if user:
        print(f"✓ User {email} already exists (ID: {user['_id']})")
        return str(user['_id'])
    user_id = User.create_user(email, password, full_name=full_name, is_admin=is_admin)
    print(f"✓ Created user: {email} (ID: {user_id})")
    return user_id

def create_test_data(password):
    """Create test users and the demo farm"""
    user_ids = {}
    for email, full_name, is_admin, role in TEST_USERS:
        user_ids[email] = get_or_create_user(email, password, full_name, is_admin)

    owner_id = user_ids[TEST_USERS[0][0]]
    organization = next(
        (o for o in Organization.find_for_user(owner_id) if o['name'] == DEMO_FARM_NAME),
        None
    )
    if organization:
        organization_id = str(organization['_id'])
        print(f"✓ Organization {DEMO_FARM_NAME} already exists (slug: {organization['slug']})")
    else:
        organization_id = Organization.create_organization(DEMO_FARM_NAME, owner_id)
        organization = Organization.find_by_id(organization_id)
        print(f"✓ Created organization: {DEMO_FARM_NAME} (slug: {organization['slug']})")

    for email, _, _, role in TEST_USERS[1:]:
        OrganizationMember.add_member(organization_id, user_ids[email], role, invited_by=owner_id)
        print(f"✓ {email} is {role} of {DEMO_FARM_NAME}")

    print("\n" + "=" * 60)
    print("Test Credentials")
    print("=" * 60)
    for email, _, _, role in TEST_USERS:
        print(f"  {email:<28} {password:<14} ({role})")
    print("=" * 60)
    print(f"\nSeed farm data with:\n  python scripts/generate_farm_data.py --organization {organization['slug']}")

def main():
    parser = argparse.ArgumentParser(description='Create local test users and a demo farm')
    parser.add_argument('--password', default='devpass123', help='Password for every test user (min 8 characters)')
    args = parser.parse_args()

    try:
        create_test_data(args.password)
    except (ValueError, PyMongoError) as e:
        print(f"✗ Error: {e}")
        return 1
    return 0

if __name__ == '__main__':
    raise SystemExit(main())
