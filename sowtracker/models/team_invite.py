import secrets
from datetime import datetime, timedelta
from bson import ObjectId
from config import Config
from sowtracker import db
from sowtracker.models.organization import OrganizationMember, ROLES

class TeamInvite:
    @staticmethod
    def create_invite(organization_id, email, role, invited_by):
        """Create a pending invite and return the stored document"""
        email = (email or '').strip().lower()
        if not email or '@' not in email:
            raise ValueError('A valid email address is required.')
        if role not in ROLES or role == 'owner':
            raise ValueError(f'Invalid role: {role}')

        now = datetime.utcnow()
        invite_data = {
            'organization_id': ObjectId(organization_id),
            'email': email,
            'role': role,
            'token': secrets.token_urlsafe(32),
            'invited_by': ObjectId(invited_by),
            'created_at': now,
            'expires_at': now + timedelta(days=Config.INVITE_EXPIRY_DAYS),
            'accepted_at': None
        }
        result = db.team_invites.insert_one(invite_data)
        invite_data['_id'] = result.inserted_id
        return invite_data

    @staticmethod
    def find_by_token(token):
        if not token:
            return None
        return db.team_invites.find_one({'token': token})

    @staticmethod
    def find_pending(organization_id):
        return list(db.team_invites.find({
            'organization_id': ObjectId(organization_id),
            'accepted_at': None,
            'expires_at': {'$gt': datetime.utcnow()}
        }).sort('created_at', -1))

    @staticmethod
    def get_valid_invite(token):
        """Return an invite that can still be accepted

        Raises:
            LookupError: token unknown
            ValueError: invite already accepted or expired
        """
        invite = TeamInvite.find_by_token(token)
        if not invite:
            raise LookupError('Invite not found.')
        if invite.get('accepted_at'):
            raise ValueError('This invite has already been accepted.')
        if invite['expires_at'] <= datetime.utcnow():
            raise ValueError('This invite has expired.')
        return invite

    @staticmethod
    def accept_invite(token, user):
        """Accept an invite on behalf of a user whose email matches

        Returns:
            The resulting membership document
        """
        invite = TeamInvite.get_valid_invite(token)
        if (user.get('email') or '').lower() != invite['email'].lower():
            raise ValueError('This invite was sent to a different email address.')

        membership = OrganizationMember.add_member(
            invite['organization_id'],
            user['_id'],
            invite['role'],
            invited_by=invite.get('invited_by')
        )
        db.team_invites.update_one(
            {'_id': invite['_id']},
            {'$set': {'accepted_at': datetime.utcnow(), 'accepted_by': user['_id']}}
        )
        return membership

    @staticmethod
    def revoke_invite(organization_id, invite_id):
        result = db.team_invites.delete_one({
            '_id': ObjectId(invite_id),
            'organization_id': ObjectId(organization_id),
            'accepted_at': None
        })
        return result.deleted_count > 0
