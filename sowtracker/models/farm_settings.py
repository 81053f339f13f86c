from datetime import datetime
from sowtracker import get_org_db

DEFAULT_SETTINGS = {
    'farm_name': 'My Farm',
    'prop12_compliance_enabled': False,
    'timezone': 'America/Los_Angeles',
    'weight_unit': 'kg',
    'measurement_unit': 'feet',
    'email_notifications_enabled': True,
    'task_reminders_enabled': True,
    'ear_notch_current_litter': 1,
    'ear_notch_last_reset_date': None,
}

WEIGHT_UNITS = ['kg', 'lbs']
MEASUREMENT_UNITS = ['feet', 'meters']

class FarmSettings:
    """One settings document per organization database"""

    @staticmethod
    def get_settings(org_code, farm_name=None):
        """Fetch settings, creating the defaults on first read"""
        org_db = get_org_db(org_code)
        settings = org_db.farm_settings.find_one({})
        if settings:
            merged = dict(DEFAULT_SETTINGS)
            merged.update(settings)
            return merged

        settings = dict(DEFAULT_SETTINGS)
        if farm_name:
            settings['farm_name'] = farm_name
        settings['created_at'] = datetime.utcnow()
        settings['updated_at'] = datetime.utcnow()
        org_db.farm_settings.insert_one(settings)
        return settings

    @staticmethod
    def update_settings(org_code, update_data):
        """Update known settings keys; unknown keys are ignored"""
        allowed = {k: v for k, v in update_data.items() if k in DEFAULT_SETTINGS}
        if 'weight_unit' in allowed and allowed['weight_unit'] not in WEIGHT_UNITS:
            raise ValueError(f'weight_unit must be one of: {", ".join(WEIGHT_UNITS)}')
        if 'measurement_unit' in allowed and allowed['measurement_unit'] not in MEASUREMENT_UNITS:
            raise ValueError(f'measurement_unit must be one of: {", ".join(MEASUREMENT_UNITS)}')
        if 'ear_notch_current_litter' in allowed:
            litter = int(allowed['ear_notch_current_litter'])
            if litter < 1:
                raise ValueError('ear_notch_current_litter must be at least 1')
            allowed['ear_notch_current_litter'] = litter

        settings = FarmSettings.get_settings(org_code)
        allowed['updated_at'] = datetime.utcnow()
        get_org_db(org_code).farm_settings.update_one(
            {'_id': settings['_id']},
            {'$set': allowed}
        )
        return FarmSettings.get_settings(org_code)

    @staticmethod
    def is_prop12_enabled(org_code):
        return bool(FarmSettings.get_settings(org_code).get('prop12_compliance_enabled'))

    @staticmethod
    def next_litter_number(org_code):
        """Return the current ear-notch litter number and advance the counter"""
        settings = FarmSettings.get_settings(org_code)
        litter_number = settings.get('ear_notch_current_litter') or 1
        get_org_db(org_code).farm_settings.update_one(
            {'_id': settings['_id']},
            {'$set': {'ear_notch_current_litter': litter_number + 1, 'updated_at': datetime.utcnow()}}
        )
        return litter_number

    @staticmethod
    def reset_litter_counter(org_code):
        settings = FarmSettings.get_settings(org_code)
        now = datetime.utcnow()
        get_org_db(org_code).farm_settings.update_one(
            {'_id': settings['_id']},
            {'$set': {'ear_notch_current_litter': 1, 'ear_notch_last_reset_date': now, 'updated_at': now}}
        )
