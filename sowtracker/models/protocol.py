from datetime import datetime
from bson import ObjectId
from sowtracker import get_org_db
from sowtracker.utils.breeding_dates import add_days
from sowtracker.utils.forms import parse_int, parse_bool, clean_str, require_choice

TRIGGER_EVENTS = ['breeding', 'farrowing', 'weaning']
TASK_FILTERS = ['all', 'pending', 'overdue', 'completed']

class Protocol:
    @staticmethod
    def create_protocol(org_code, name, trigger_event, description=None, is_active=True):
        name = clean_str(name)
        if not name:
            raise ValueError('Protocol name is required')
        protocol_data = {
            'name': name,
            'description': clean_str(description),
            'trigger_event': require_choice(trigger_event, TRIGGER_EVENTS, 'trigger_event'),
            'is_active': parse_bool(is_active, True),
            'tasks': [],
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow()
        }
        result = get_org_db(org_code).protocols.insert_one(protocol_data)
        return str(result.inserted_id)

    @staticmethod
    def find_by_id(org_code, protocol_id):
        return get_org_db(org_code).protocols.find_one({'_id': ObjectId(protocol_id)})

    @staticmethod
    def find_all(org_code, trigger_event=None, active_only=False):
        query = {}
        if trigger_event:
            query['trigger_event'] = trigger_event
        if active_only:
            query['is_active'] = True
        return list(get_org_db(org_code).protocols.find(query).sort('name', 1))

    @staticmethod
    def update_protocol(org_code, protocol_id, data):
        update_data = {}
        if 'name' in data:
            update_data['name'] = clean_str(data.get('name'))
            if not update_data['name']:
                raise ValueError('Protocol name is required')
        if 'description' in data:
            update_data['description'] = clean_str(data.get('description'))
        if 'trigger_event' in data:
            update_data['trigger_event'] = require_choice(data.get('trigger_event'), TRIGGER_EVENTS, 'trigger_event')
        if 'is_active' in data:
            update_data['is_active'] = parse_bool(data.get('is_active'))
        update_data['updated_at'] = datetime.utcnow()
        result = get_org_db(org_code).protocols.update_one(
            {'_id': ObjectId(protocol_id)},
            {'$set': update_data}
        )
        if result.matched_count == 0:
            raise LookupError('Protocol not found')

    @staticmethod
    def add_task(org_code, protocol_id, task_name, days_offset=0, description=None, is_required=True, task_order=0):
        task_name = clean_str(task_name)
        if not task_name:
            raise ValueError('Task name is required')
        task = {
            '_id': ObjectId(),
            'task_name': task_name,
            'description': clean_str(description),
            'days_offset': parse_int(days_offset, 'days_offset') or 0,
            'is_required': parse_bool(is_required, True),
            'task_order': parse_int(task_order, 'task_order') or 0
        }
        result = get_org_db(org_code).protocols.update_one(
            {'_id': ObjectId(protocol_id)},
            {'$push': {'tasks': task}, '$set': {'updated_at': datetime.utcnow()}}
        )
        if result.matched_count == 0:
            raise LookupError('Protocol not found')
        return task

    @staticmethod
    def remove_task(org_code, protocol_id, task_id):
        get_org_db(org_code).protocols.update_one(
            {'_id': ObjectId(protocol_id)},
            {'$pull': {'tasks': {'_id': ObjectId(task_id)}}, '$set': {'updated_at': datetime.utcnow()}}
        )

    @staticmethod
    def delete_protocol(org_code, protocol_id):
        get_org_db(org_code).protocols.delete_one({'_id': ObjectId(protocol_id)})

class ScheduledTask:
    @staticmethod
    def generate_tasks(org_code, trigger_event, anchor_date, sow_id=None, farrowing_id=None, breeding_attempt_id=None):
        """Create scheduled tasks from every active protocol for an event

        Each protocol task is due anchor_date + days_offset.

        Returns:
            Number of tasks created
        """
        protocols = Protocol.find_all(org_code, trigger_event=trigger_event, active_only=True)
        tasks = []
        now = datetime.utcnow()
        for protocol in protocols:
            for protocol_task in sorted(protocol.get('tasks', []), key=lambda t: (t.get('days_offset', 0), t.get('task_order', 0))):
                tasks.append({
                    'protocol_id': protocol['_id'],
                    'protocol_task_id': protocol_task['_id'],
                    'trigger_event': trigger_event,
                    'sow_id': ObjectId(sow_id) if sow_id else None,
                    'farrowing_id': ObjectId(farrowing_id) if farrowing_id else None,
                    'breeding_attempt_id': ObjectId(breeding_attempt_id) if breeding_attempt_id else None,
                    'task_name': protocol_task['task_name'],
                    'description': protocol_task.get('description'),
                    'is_required': protocol_task.get('is_required', True),
                    'due_date': add_days(anchor_date, protocol_task.get('days_offset', 0)),
                    'is_completed': False,
                    'completed_at': None,
                    'completed_notes': None,
                    'created_at': now
                })
        if tasks:
            get_org_db(org_code).scheduled_tasks.insert_many(tasks)
        return len(tasks)

    @staticmethod
    def find_by_id(org_code, task_id):
        return get_org_db(org_code).scheduled_tasks.find_one({'_id': ObjectId(task_id)})

    @staticmethod
    def find_all(org_code, task_filter='all', now=None):
        """List tasks by filter: all, pending, overdue or completed"""
        require_choice(task_filter, TASK_FILTERS, 'filter')
        now = now or datetime.utcnow()
        today = datetime(now.year, now.month, now.day)
        query = {}
        if task_filter == 'pending':
            query['is_completed'] = False
        elif task_filter == 'overdue':
            query['is_completed'] = False
            query['due_date'] = {'$lt': today}
        elif task_filter == 'completed':
            query['is_completed'] = True
        return list(get_org_db(org_code).scheduled_tasks.find(query).sort('due_date', 1))

    @staticmethod
    def find_in_range(org_code, start, end):
        return list(get_org_db(org_code).scheduled_tasks.find({
            'due_date': {'$gte': start, '$lte': end}
        }).sort('due_date', 1))

    @staticmethod
    def find_due(org_code, day):
        """Incomplete tasks due on or before a day"""
        return list(get_org_db(org_code).scheduled_tasks.find({
            'is_completed': False,
            'due_date': {'$lte': day}
        }).sort('due_date', 1))

    @staticmethod
    def find_next_for_sow(org_code, sow_id, now=None):
        now = now or datetime.utcnow()
        today = datetime(now.year, now.month, now.day)
        tasks = list(get_org_db(org_code).scheduled_tasks.find({
            'sow_id': ObjectId(sow_id),
            'is_completed': False,
            'due_date': {'$gte': today}
        }).sort('due_date', 1).limit(1))
        return tasks[0] if tasks else None

    @staticmethod
    def count_overdue(org_code, now=None):
        now = now or datetime.utcnow()
        today = datetime(now.year, now.month, now.day)
        return get_org_db(org_code).scheduled_tasks.count_documents({
            'is_completed': False,
            'due_date': {'$lt': today}
        })

    @staticmethod
    def complete_task(org_code, task_id, notes=None):
        result = get_org_db(org_code).scheduled_tasks.update_one(
            {'_id': ObjectId(task_id)},
            {'$set': {'is_completed': True, 'completed_at': datetime.utcnow(), 'completed_notes': clean_str(notes)}}
        )
        if result.matched_count == 0:
            raise LookupError('Task not found')

    @staticmethod
    def reopen_task(org_code, task_id):
        result = get_org_db(org_code).scheduled_tasks.update_one(
            {'_id': ObjectId(task_id)},
            {'$set': {'is_completed': False, 'completed_at': None, 'completed_notes': None}}
        )
        if result.matched_count == 0:
            raise LookupError('Task not found')
