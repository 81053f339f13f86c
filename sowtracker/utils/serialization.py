from datetime import datetime, date
from bson import ObjectId

def serialize(data):
    """Recursively convert ObjectId and datetime values for JSON responses

    MongoDB's `_id` is exposed as `id` so clients never see BSON naming.
    """
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if key == '_id':
                result['id'] = serialize(value)
            elif key == 'password_hash':
                continue
            else:
                result[key] = serialize(value)
        return result
    elif isinstance(data, (list, tuple)):
        return [serialize(item) for item in data]
    elif isinstance(data, ObjectId):
        return str(data)
    elif isinstance(data, datetime):
        if data.hour == 0 and data.minute == 0 and data.second == 0 and data.microsecond == 0:
            return data.strftime('%Y-%m-%d')
        return data.isoformat()
    elif isinstance(data, date):
        return data.isoformat()
    return data
