from datetime import datetime
from bson import ObjectId
from sowtracker import db

ANIMAL_TYPES = ['sow', 'boar']
TRANSFER_STATUSES = ['pending', 'accepted', 'declined', 'cancelled']

class TransferRequest:
    @staticmethod
    def create_request(organization_id, animal_type, animal, from_user, to_user_email, message=None, retain_records=False):
        """Create a pending transfer request for a sow or boar

        Raises:
            ValueError: invalid recipient, self-transfer or an existing
                pending request for the same animal
        """
        if animal_type not in ANIMAL_TYPES:
            raise ValueError('animal_type must be one of: sow, boar')
        to_user_email = (to_user_email or '').strip().lower()
        if not to_user_email or '@' not in to_user_email:
            raise ValueError('A valid recipient email is required')
        if to_user_email == (from_user.get('email') or '').lower():
            raise ValueError('You cannot transfer an animal to yourself')
        if db.transfer_requests.find_one({'animal_id': animal['_id'], 'status': 'pending'}):
            raise ValueError(f'This {animal_type} already has a pending transfer request')

        now = datetime.utcnow()
        request_data = {
            'organization_id': ObjectId(organization_id),
            'animal_type': animal_type,
            'animal_id': animal['_id'],
            'animal_ear_tag': animal.get('ear_tag'),
            'animal_name': animal.get('name'),
            'from_user_id': from_user['_id'],
            'from_user_email': from_user.get('email'),
            'to_user_email': to_user_email,
            'to_user_id': None,
            'target_organization_id': None,
            'transferred_animal_id': None,
            'message': (message or '').strip() or None,
            'retain_records': bool(retain_records),
            'status': 'pending',
            'created_at': now,
            'responded_at': None
        }
        result = db.transfer_requests.insert_one(request_data)
        request_data['_id'] = result.inserted_id
        return request_data

    @staticmethod
    def find_by_id(request_id):
        return db.transfer_requests.find_one({'_id': ObjectId(request_id)})

    @staticmethod
    def find_received(email):
        return list(db.transfer_requests.find({'to_user_email': (email or '').lower()}).sort('created_at', -1))

    @staticmethod
    def find_sent(user_id):
        return list(db.transfer_requests.find({'from_user_id': ObjectId(user_id)}).sort('created_at', -1))

    @staticmethod
    def respond(request_id, status, extra=None):
        """Move a pending request to accepted, declined or cancelled"""
        if status not in TRANSFER_STATUSES or status == 'pending':
            raise ValueError(f'Invalid transfer status: {status}')
        update = {'status': status, 'responded_at': datetime.utcnow()}
        update.update(extra or {})
        result = db.transfer_requests.update_one(
            {'_id': ObjectId(request_id), 'status': 'pending'},
            {'$set': update}
        )
        if result.matched_count == 0:
            raise ValueError('This transfer request is no longer pending')
