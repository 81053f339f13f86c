import re
import logging
from datetime import datetime
from bson import ObjectId
from pymongo.errors import PyMongoError
from sowtracker import db, get_org_db

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 40

ROLES = ['owner', 'manager', 'member', 'vet', 'readonly']

PERMISSIONS = {
    'view': ['owner', 'manager', 'member', 'vet', 'readonly'],
    'health': ['owner', 'manager', 'member', 'vet'],
    'write': ['owner', 'manager', 'member'],
    'manage_members': ['owner', 'manager'],
    'manage_organization': ['owner'],
}

class Organization:
    @staticmethod
    def slugify(name):
        """Lowercase, collapse non-alphanumerics to '-', trim, cap length"""
        slug = re.sub(r'[^a-z0-9]+', '-', (name or '').lower()).strip('-')
        slug = slug[:MAX_SLUG_LENGTH].strip('-')
        return slug or 'farm'

    @staticmethod
    def generate_unique_slug(name):
        """Generate a slug that no other organization uses

        Collisions get a numeric suffix: my-farm, my-farm-2, my-farm-3, ...
        """
        base_slug = Organization.slugify(name)
        slug = base_slug
        counter = 1
        while db.organizations.find_one({'slug': slug}):
            counter += 1
            suffix = f'-{counter}'
            slug = base_slug[:MAX_SLUG_LENGTH - len(suffix)].rstrip('-') + suffix
        return slug

    @staticmethod
    def initialize_organization_database(slug):
        """Create collections and indexes in an organization's database

        Args:
            slug: The organization slug

        Returns:
            Database instance
        """
        if not slug:
            raise ValueError("slug is required")

        org_db = get_org_db(slug)

        # Ear tags are unique per animal collection
        org_db.sows.create_index('ear_tag_lower', unique=True, sparse=True)
        org_db.sows.create_index('status')
        org_db.boars.create_index('ear_tag_lower', unique=True, sparse=True)
        org_db.piglets.create_index('sow_id')
        org_db.piglets.create_index('farrowing_id')

        org_db.breeding_attempts.create_index([('sow_id', 1), ('breeding_date', -1)])
        org_db.ai_doses.create_index([('breeding_attempt_id', 1), ('dose_number', 1)])
        org_db.farrowings.create_index([('sow_id', 1), ('created_at', -1)])
        org_db.farrowings.create_index('expected_farrowing_date')

        org_db.housing_units.create_index('name')
        org_db.location_history.create_index([('sow_id', 1), ('moved_in_date', -1)])
        org_db.location_history.create_index('housing_unit_id')

        org_db.health_records.create_index([('animal_type', 1), ('animal_id', 1)])
        org_db.health_records.create_index('next_due_date')
        org_db.matrix_treatments.create_index('sow_id')

        org_db.feed_records.create_index('record_date')
        org_db.income_records.create_index('income_date')
        org_db.expense_records.create_index('expense_date')
        org_db.budgets.create_index('status')

        org_db.calendar_events.create_index('event_date')
        org_db.protocols.create_index('trigger_event')
        org_db.scheduled_tasks.create_index([('is_completed', 1), ('due_date', 1)])

        return org_db

    @staticmethod
    def create_organization(name, created_by):
        """Create an organization owned by created_by

        The creator gets an owner membership, the organization database is
        initialized and default farm settings are written.

        Returns:
            The new organization's id as a string
        """
        name = (name or '').strip()
        if not name:
            raise ValueError('Organization name is required.')

        slug = Organization.generate_unique_slug(name)
        organization_data = {
            'name': name,
            'slug': slug,
            'created_by': ObjectId(created_by),
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow()
        }
        result = db.organizations.insert_one(organization_data)
        organization_id = str(result.inserted_id)

        OrganizationMember.add_member(organization_id, created_by, 'owner')

        try:
            Organization.initialize_organization_database(slug)
        except PyMongoError as e:
            logger.warning(f"Failed to initialize organization database for {slug}: {e}")

        from sowtracker.models.farm_settings import FarmSettings
        FarmSettings.get_settings(slug, farm_name=name)

        return organization_id

    @staticmethod
    def find_by_id(organization_id, include_deleted=False):
        query = {'_id': ObjectId(organization_id)}
        if not include_deleted:
            query['deleted_at'] = None
        return db.organizations.find_one(query)

    @staticmethod
    def find_by_slug(slug):
        if not slug:
            return None
        return db.organizations.find_one({'slug': slug.lower().strip(), 'deleted_at': None})

    @staticmethod
    def find_all(include_deleted=False):
        query = {}
        if not include_deleted:
            query['deleted_at'] = None
        return list(db.organizations.find(query).sort('name', 1))

    @staticmethod
    def find_for_user(user_id):
        """Organizations the user holds an active membership in, with their role"""
        memberships = OrganizationMember.find_for_user(user_id)
        role_by_org = {m['organization_id']: m['role'] for m in memberships}
        if not role_by_org:
            return []
        organizations = list(db.organizations.find({
            '_id': {'$in': list(role_by_org.keys())},
            'deleted_at': None
        }).sort('name', 1))
        for organization in organizations:
            organization['role'] = role_by_org.get(organization['_id'])
        return organizations

    @staticmethod
    def update_organization(organization_id, update_data):
        allowed = {k: v for k, v in update_data.items() if k in ('name',)}
        if 'name' in allowed:
            allowed['name'] = (allowed['name'] or '').strip()
            if not allowed['name']:
                raise ValueError('Organization name is required.')
        allowed['updated_at'] = datetime.utcnow()
        db.organizations.update_one(
            {'_id': ObjectId(organization_id)},
            {'$set': allowed}
        )

    @staticmethod
    def delete_organization(organization_id):
        """Soft delete an organization; its farm database is left in place"""
        db.organizations.update_one(
            {'_id': ObjectId(organization_id)},
            {'$set': {
                'deleted_at': datetime.utcnow(),
                'updated_at': datetime.utcnow()
            }}
        )

class OrganizationMember:
    @staticmethod
    def has_permission(role, permission):
        return role in PERMISSIONS.get(permission, [])

    @staticmethod
    def add_member(organization_id, user_id, role='member', invited_by=None):
        """Create or reactivate a membership"""
        if role not in ROLES:
            raise ValueError(f'Invalid role: {role}')
        now = datetime.utcnow()
        db.organization_members.update_one(
            {'organization_id': ObjectId(organization_id), 'user_id': ObjectId(user_id)},
            {
                '$set': {
                    'role': role,
                    'is_active': True,
                    'invited_by': ObjectId(invited_by) if invited_by else None,
                    'updated_at': now
                },
                '$setOnInsert': {'joined_at': now}
            },
            upsert=True
        )
        return OrganizationMember.find_membership(organization_id, user_id)

    @staticmethod
    def find_membership(organization_id, user_id, active_only=True):
        query = {'organization_id': ObjectId(organization_id), 'user_id': ObjectId(user_id)}
        if active_only:
            query['is_active'] = True
        return db.organization_members.find_one(query)

    @staticmethod
    def find_for_user(user_id):
        return list(db.organization_members.find({'user_id': ObjectId(user_id), 'is_active': True}))

    @staticmethod
    def find_by_organization(organization_id):
        """Active members joined with their user profile"""
        memberships = list(db.organization_members.find({
            'organization_id': ObjectId(organization_id),
            'is_active': True
        }).sort('joined_at', 1))
        user_ids = [m['user_id'] for m in memberships]
        users = {u['_id']: u for u in db.users.find({'_id': {'$in': user_ids}})}
        for membership in memberships:
            user = users.get(membership['user_id']) or {}
            membership['email'] = user.get('email')
            membership['full_name'] = user.get('full_name')
        return memberships

    @staticmethod
    def find_owners(organization_id):
        return list(db.organization_members.find({
            'organization_id': ObjectId(organization_id),
            'role': 'owner',
            'is_active': True
        }))

    @staticmethod
    def change_role(organization_id, user_id, new_role, changed_by):
        """Change a member's role

        Owners cannot be demoted and nobody can change their own role.
        """
        if new_role not in ROLES:
            raise ValueError(f'Invalid role: {new_role}')
        if str(user_id) == str(changed_by):
            raise ValueError('You cannot change your own role.')
        membership = OrganizationMember.find_membership(organization_id, user_id)
        if not membership:
            raise LookupError('Member not found.')
        if membership['role'] == 'owner' and new_role != 'owner':
            raise ValueError('Owners cannot be demoted.')
        db.organization_members.update_one(
            {'_id': membership['_id']},
            {'$set': {'role': new_role, 'updated_at': datetime.utcnow()}}
        )

    @staticmethod
    def remove_member(organization_id, user_id):
        """Deactivate a membership; the last owner cannot be removed"""
        membership = OrganizationMember.find_membership(organization_id, user_id)
        if not membership:
            raise LookupError('Member not found.')
        if membership['role'] == 'owner' and len(OrganizationMember.find_owners(organization_id)) <= 1:
            raise ValueError('The last owner cannot be removed.')
        db.organization_members.update_one(
            {'_id': membership['_id']},
            {'$set': {'is_active': False, 'updated_at': datetime.utcnow()}}
        )
