from datetime import datetime
from bson import ObjectId
from sowtracker import db
import bcrypt

MIN_PASSWORD_LENGTH = 8

class User:
    @staticmethod
    def normalize_email(email):
        return (email or '').strip().lower()

    @staticmethod
    def create_user(email, password, full_name=None, is_admin=False):
        """Create a new user

        Args:
            email: Email address (unique, stored lowercase)
            password: Plain text password (will be hashed)
            full_name: Optional display name
            is_admin: Grants access to the feedback admin pages

        Returns:
            The new user's id as a string
        """
        email = User.normalize_email(email)
        if not email or '@' not in email:
            raise ValueError('A valid email address is required.')
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.')
        if User.find_by_email(email):
            raise ValueError('An account with this email already exists.')

        hashed_password = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt())

        user_data = {
            'email': email,
            'password_hash': hashed_password,
            'full_name': (full_name or '').strip() or None,
            'is_admin': bool(is_admin),
            'created_at': datetime.utcnow(),
            'is_active': True
        }

        result = db.users.insert_one(user_data)
        return str(result.inserted_id)

    @staticmethod
    def find_by_email(email):
        """Find user by email (case-insensitive)"""
        return db.users.find_one({'email': User.normalize_email(email)})

    @staticmethod
    def find_by_id(user_id):
        """Find user by ID"""
        return db.users.find_one({'_id': ObjectId(user_id)})

    @staticmethod
    def find_by_ids(user_ids):
        if not user_ids:
            return []
        return list(db.users.find({'_id': {'$in': [ObjectId(uid) for uid in user_ids]}}))

    @staticmethod
    def verify_password(stored_password, provided_password):
        """Verify user password"""
        if not stored_password or not provided_password:
            return False
        if isinstance(stored_password, str):
            stored_password = stored_password.encode('utf-8')
        if isinstance(provided_password, str):
            provided_password = provided_password.encode('utf-8')
        return bcrypt.checkpw(provided_password, stored_password)

    @staticmethod
    def update_user(user_id, update_data):
        """Update user profile fields"""
        allowed = {k: v for k, v in update_data.items() if k in ('full_name',)}
        if not allowed:
            return
        allowed['updated_at'] = datetime.utcnow()
        db.users.update_one(
            {'_id': ObjectId(user_id)},
            {'$set': allowed}
        )

    @staticmethod
    def change_password(user_id, new_password):
        if not new_password or len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.')
        db.users.update_one(
            {'_id': ObjectId(user_id)},
            {'$set': {
                'password_hash': bcrypt.hashpw(new_password.encode('utf-8'), bcrypt.gensalt()),
                'updated_at': datetime.utcnow()
            }}
        )
