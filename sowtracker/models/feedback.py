from datetime import datetime
from bson import ObjectId
from sowtracker import db
from sowtracker.utils.forms import clean_str, require_choice

FEEDBACK_TYPES = ['bug', 'feature', 'improvement', 'other']
FEEDBACK_STATUSES = ['new', 'reviewed', 'planned', 'resolved', 'closed']

class Feedback:
    @staticmethod
    def create_feedback(user, data):
        title = clean_str(data.get('title'))
        description = clean_str(data.get('description'))
        if not title or not description:
            raise ValueError('Title and description are required')
        feedback_data = {
            'user_id': user['_id'],
            'user_email': user.get('email'),
            'feedback_type': require_choice(data.get('feedback_type') or 'other', FEEDBACK_TYPES, 'feedback_type'),
            'title': title,
            'description': description,
            'page_url': clean_str(data.get('page_url')),
            'status': 'new',
            'admin_notes': None,
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow()
        }
        result = db.feedback.insert_one(feedback_data)
        return str(result.inserted_id)

    @staticmethod
    def find_all(status=None, feedback_type=None):
        query = {}
        if status:
            query['status'] = status
        if feedback_type:
            query['feedback_type'] = feedback_type
        return list(db.feedback.find(query).sort('created_at', -1))

    @staticmethod
    def find_by_user(user_id):
        return list(db.feedback.find({'user_id': ObjectId(user_id)}).sort('created_at', -1))

    @staticmethod
    def update_status(feedback_id, status, admin_notes=None):
        update_data = {
            'status': require_choice(status, FEEDBACK_STATUSES, 'status'),
            'updated_at': datetime.utcnow()
        }
        if admin_notes is not None:
            update_data['admin_notes'] = clean_str(admin_notes)
        result = db.feedback.update_one({'_id': ObjectId(feedback_id)}, {'$set': update_data})
        if result.matched_count == 0:
            raise LookupError('Feedback not found')
