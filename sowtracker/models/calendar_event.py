from datetime import datetime
from bson import ObjectId
from sowtracker import get_org_db
from sowtracker.utils import breeding_dates
from sowtracker.utils.forms import parse_date, parse_bool, clean_str, require_choice

EVENT_TYPES = ['custom', 'task', 'reminder', 'appointment', 'maintenance']
PRIORITIES = ['low', 'medium', 'high']

def _time_of_day(value):
    value = clean_str(value)
    if value is None:
        return None
    try:
        datetime.strptime(value[:5], '%H:%M')
    except ValueError:
        raise ValueError('Invalid time format (use HH:MM)')
    return value[:5]

class CalendarEvent:
    @staticmethod
    def create_event(org_code, data, created_by='system'):
        title = clean_str(data.get('title'))
        if not title:
            raise ValueError('Title is required')
        all_day = parse_bool(data.get('all_day'), True)
        event = {
            'title': title,
            'description': clean_str(data.get('description')),
            'event_type': require_choice(data.get('event_type') or 'custom', EVENT_TYPES, 'event_type'),
            'event_date': parse_date(data.get('event_date'), 'event date', required=True),
            'all_day': all_day,
            'start_time': None if all_day else _time_of_day(data.get('start_time')),
            'end_time': None if all_day else _time_of_day(data.get('end_time')),
            'priority': require_choice(data.get('priority') or 'medium', PRIORITIES, 'priority'),
            'sow_id': ObjectId(data['sow_id']) if data.get('sow_id') else None,
            'completed': False,
            'created_by': created_by,
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow()
        }
        result = get_org_db(org_code).calendar_events.insert_one(event)
        return str(result.inserted_id)

    @staticmethod
    def find_by_id(org_code, event_id):
        return get_org_db(org_code).calendar_events.find_one({'_id': ObjectId(event_id)})

    @staticmethod
    def find_in_range(org_code, start, end):
        return list(get_org_db(org_code).calendar_events.find({
            'event_date': {'$gte': start, '$lte': end}
        }).sort('event_date', 1))

    @staticmethod
    def update_event(org_code, event_id, data):
        event = CalendarEvent.find_by_id(org_code, event_id)
        if not event:
            raise LookupError('Event not found')
        update_data = {}
        if 'title' in data:
            update_data['title'] = clean_str(data.get('title'))
            if not update_data['title']:
                raise ValueError('Title is required')
        if 'description' in data:
            update_data['description'] = clean_str(data.get('description'))
        if 'event_type' in data:
            update_data['event_type'] = require_choice(data.get('event_type'), EVENT_TYPES, 'event_type')
        if 'event_date' in data:
            update_data['event_date'] = parse_date(data.get('event_date'), 'event date', required=True)
        if 'priority' in data:
            update_data['priority'] = require_choice(data.get('priority'), PRIORITIES, 'priority')
        if 'completed' in data:
            update_data['completed'] = parse_bool(data.get('completed'))
        all_day = parse_bool(data.get('all_day'), event.get('all_day', True)) if 'all_day' in data else event.get('all_day', True)
        update_data['all_day'] = all_day
        if all_day:
            update_data['start_time'] = None
            update_data['end_time'] = None
        else:
            if 'start_time' in data:
                update_data['start_time'] = _time_of_day(data.get('start_time'))
            if 'end_time' in data:
                update_data['end_time'] = _time_of_day(data.get('end_time'))
        update_data['updated_at'] = datetime.utcnow()
        get_org_db(org_code).calendar_events.update_one(
            {'_id': ObjectId(event_id)},
            {'$set': update_data}
        )

    @staticmethod
    def delete_event(org_code, event_id):
        get_org_db(org_code).calendar_events.delete_one({'_id': ObjectId(event_id)})

    @staticmethod
    def build_feed(org_code, start, end):
        """Merge custom events with farm milestones between start and end

        Each item has type, title, date, related_id and related_type.
        """
        org_db = get_org_db(org_code)
        sows = {s['_id']: s for s in org_db.sows.find({'deleted_at': None}, {'ear_tag': 1, 'name': 1})}

        def sow_label(sow_id):
            sow = sows.get(sow_id)
            if not sow:
                return 'Unknown sow'
            return sow.get('name') or sow.get('ear_tag')

        items = []

        def add(item_type, title, date, related_id=None, related_type='sow', **extra):
            item = {'type': item_type, 'title': title, 'date': date, 'related_id': related_id, 'related_type': related_type}
            item.update(extra)
            items.append(item)

        for attempt in org_db.breeding_attempts.find({'breeding_date': {'$gte': start, '$lte': end}}):
            add('breeding', f"Bred: {sow_label(attempt['sow_id'])}", attempt['breeding_date'], attempt['sow_id'])

        check_start = breeding_dates.add_days(start, -breeding_dates.PREGNANCY_CHECK_DAY)
        check_end = breeding_dates.add_days(end, -breeding_dates.PREGNANCY_CHECK_DAY)
        for attempt in org_db.breeding_attempts.find({'result': 'pending', 'breeding_date': {'$gte': check_start, '$lte': check_end}}):
            add('pregnancyCheck', f"Pregnancy check: {sow_label(attempt['sow_id'])}",
                breeding_dates.pregnancy_check_date(attempt['breeding_date']), attempt['sow_id'])

        for farrowing in org_db.farrowings.find({'actual_farrowing_date': None, 'expected_farrowing_date': {'$gte': start, '$lte': end}}):
            add('expectedFarrowing', f"Expected farrowing: {sow_label(farrowing['sow_id'])}",
                farrowing['expected_farrowing_date'], farrowing['sow_id'])

        for farrowing in org_db.farrowings.find({'actual_farrowing_date': {'$gte': start, '$lte': end}}):
            add('actualFarrowing', f"Farrowed: {sow_label(farrowing['sow_id'])} ({farrowing.get('live_piglets') or 0} live)",
                farrowing['actual_farrowing_date'], farrowing['sow_id'])

        for farrowing in org_db.farrowings.find({'moved_out_of_farrowing_date': {'$gte': start, '$lte': end}}):
            add('weaning', f"Weaned: {sow_label(farrowing['sow_id'])}", farrowing['moved_out_of_farrowing_date'], farrowing['sow_id'])

        for treatment in org_db.matrix_treatments.find({'administration_date': {'$gte': start, '$lte': end}}):
            add('matrixTreatment', f"Matrix started: {sow_label(treatment['sow_id'])}",
                treatment['administration_date'], treatment['sow_id'], batch_name=treatment.get('batch_name'))

        for treatment in org_db.matrix_treatments.find({'bred': False, 'expected_heat_date': {'$gte': start, '$lte': end}}):
            add('expectedHeat', f"Expected heat: {sow_label(treatment['sow_id'])}",
                treatment['expected_heat_date'], treatment['sow_id'], batch_name=treatment.get('batch_name'))

        for record in org_db.health_records.find({'next_due_date': {'$gte': start, '$lte': end}}):
            add('healthRecord', f"Due: {record['title']}", record['next_due_date'], record['animal_id'], record['animal_type'])

        for task in org_db.scheduled_tasks.find({'due_date': {'$gte': start, '$lte': end}}):
            add('task', task['task_name'], task['due_date'], task.get('sow_id'), completed=task.get('is_completed', False))

        for event in CalendarEvent.find_in_range(org_code, start, end):
            add('customEvent', event['title'], event['event_date'], event['_id'], 'event',
                priority=event.get('priority'), all_day=event.get('all_day'),
                start_time=event.get('start_time'), completed=event.get('completed', False))

        items.sort(key=lambda i: i['date'])
        return items
