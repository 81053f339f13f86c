from flask import Blueprint, request, jsonify, g
from datetime import datetime, timedelta
import logging
from sowtracker.models.sow import Sow
from sowtracker.models.calendar_event import CalendarEvent
from sowtracker.models.farm_settings import FarmSettings
from sowtracker.models.protocol import Protocol, ScheduledTask
from sowtracker.services import notification_service
from sowtracker.routes.auth_routes import organization_access_required
from sowtracker.utils.serialization import serialize
from sowtracker.utils.forms import parse_date, parse_bool
from sowtracker.utils.responses import error_response, not_found

logger = logging.getLogger(__name__)

schedule_bp = Blueprint('schedule', __name__, url_prefix='/api/organizations/<organization_id>')

def _month_range():
    """start/end query parameters, defaulting to the current month"""
    today = parse_date(datetime.utcnow())
    default_start = today.replace(day=1)
    default_end = (default_start + timedelta(days=32)).replace(day=1) - timedelta(days=1)
    start = parse_date(request.args.get('start'), 'start date') or default_start
    end = parse_date(request.args.get('end'), 'end date') or default_end
    if end < start:
        raise ValueError('End date must be on or after start date')
    return start, end

# Calendar

@schedule_bp.route('/calendar', methods=['GET'])
@organization_access_required('view')
def calendar_feed(organization_id):
    """Custom events plus breeding, farrowing, task and heat milestones"""
    try:
        start, end = _month_range()
        return jsonify({
            'success': True,
            'start': serialize(start),
            'end': serialize(end),
            'items': serialize(CalendarEvent.build_feed(g.org_code, start, end))
        })
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/calendar/events', methods=['GET'])
@organization_access_required('view')
def list_events(organization_id):
    try:
        start, end = _month_range()
        return jsonify({'success': True, 'events': serialize(CalendarEvent.find_in_range(g.org_code, start, end))})
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/calendar/events', methods=['POST'])
@organization_access_required('write')
def create_event(organization_id):
    try:
        event_id = CalendarEvent.create_event(g.org_code, request.get_json() or {}, str(g.user['_id']))
        return jsonify({'success': True, 'event': serialize(CalendarEvent.find_by_id(g.org_code, event_id))}), 201
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/calendar/events/<event_id>', methods=['PUT'])
@organization_access_required('write')
def update_event(organization_id, event_id):
    try:
        CalendarEvent.update_event(g.org_code, event_id, request.get_json() or {})
        return jsonify({'success': True, 'event': serialize(CalendarEvent.find_by_id(g.org_code, event_id))})
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/calendar/events/<event_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_event(organization_id, event_id):
    try:
        if not CalendarEvent.find_by_id(g.org_code, event_id):
            return not_found('Event not found')
        CalendarEvent.delete_event(g.org_code, event_id)
        return jsonify({'success': True, 'message': 'Event deleted.'})
    except Exception as e:
        return error_response(e)

# Protocols

@schedule_bp.route('/protocols', methods=['GET'])
@organization_access_required('view')
def list_protocols(organization_id):
    protocols = Protocol.find_all(
        g.org_code, trigger_event=request.args.get('trigger_event'),
        active_only=parse_bool(request.args.get('active_only'))
    )
    return jsonify({'success': True, 'protocols': serialize(protocols)})

@schedule_bp.route('/protocols', methods=['POST'])
@organization_access_required('write')
def create_protocol(organization_id):
    data = request.get_json() or {}
    try:
        protocol_id = Protocol.create_protocol(
            g.org_code, data.get('name'), data.get('trigger_event'),
            data.get('description'), parse_bool(data.get('is_active'), True)
        )
        for index, task in enumerate(data.get('tasks') or []):
            Protocol.add_task(
                g.org_code, protocol_id, task.get('task_name'), task.get('days_offset'),
                task.get('description'), task.get('is_required', True), task.get('task_order', index)
            )
        return jsonify({'success': True, 'protocol': serialize(Protocol.find_by_id(g.org_code, protocol_id))}), 201
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/protocols/<protocol_id>', methods=['GET'])
@organization_access_required('view')
def get_protocol(organization_id, protocol_id):
    try:
        protocol = Protocol.find_by_id(g.org_code, protocol_id)
        if not protocol:
            return not_found('Protocol not found')
        return jsonify({'success': True, 'protocol': serialize(protocol)})
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/protocols/<protocol_id>', methods=['PUT'])
@organization_access_required('write')
def update_protocol(organization_id, protocol_id):
    try:
        Protocol.update_protocol(g.org_code, protocol_id, request.get_json() or {})
        return jsonify({'success': True, 'protocol': serialize(Protocol.find_by_id(g.org_code, protocol_id))})
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/protocols/<protocol_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_protocol(organization_id, protocol_id):
    try:
        Protocol.delete_protocol(g.org_code, protocol_id)
        return jsonify({'success': True, 'message': 'Protocol deleted.'})
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/protocols/<protocol_id>/tasks', methods=['POST'])
@organization_access_required('write')
def add_protocol_task(organization_id, protocol_id):
    data = request.get_json() or {}
    try:
        task = Protocol.add_task(
            g.org_code, protocol_id, data.get('task_name'), data.get('days_offset'),
            data.get('description'), data.get('is_required', True), data.get('task_order')
        )
        return jsonify({'success': True, 'task': serialize(task)}), 201
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/protocols/<protocol_id>/tasks/<task_id>', methods=['DELETE'])
@organization_access_required('write')
def remove_protocol_task(organization_id, protocol_id, task_id):
    try:
        Protocol.remove_task(g.org_code, protocol_id, task_id)
        return jsonify({'success': True, 'message': 'Task removed.'})
    except Exception as e:
        return error_response(e)

# Scheduled tasks

@schedule_bp.route('/tasks', methods=['GET'])
@organization_access_required('view')
def list_tasks(organization_id):
    try:
        tasks = ScheduledTask.find_all(g.org_code, request.args.get('filter') or 'all')
        sows = {s['_id']: s for s in Sow.find_by_ids(g.org_code, list({t['sow_id'] for t in tasks if t.get('sow_id')}))}
        for task in tasks:
            task['sow_ear_tag'] = (sows.get(task.get('sow_id')) or {}).get('ear_tag')
        return jsonify({'success': True, 'tasks': serialize(tasks)})
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/tasks/<task_id>/complete', methods=['POST'])
@organization_access_required('write')
def complete_task(organization_id, task_id):
    data = request.get_json() or {}
    try:
        ScheduledTask.complete_task(g.org_code, task_id, data.get('notes'))
        notification_service.cancel_scheduled_notifications(str(g.user['_id']), task_id)
        return jsonify({'success': True, 'task': serialize(ScheduledTask.find_by_id(g.org_code, task_id))})
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/tasks/<task_id>/reopen', methods=['POST'])
@organization_access_required('write')
def reopen_task(organization_id, task_id):
    try:
        ScheduledTask.reopen_task(g.org_code, task_id)
        return jsonify({'success': True, 'task': serialize(ScheduledTask.find_by_id(g.org_code, task_id))})
    except Exception as e:
        return error_response(e)

@schedule_bp.route('/tasks/send-reminders', methods=['POST'])
@organization_access_required('view')
def send_task_reminders(organization_id):
    """Notify the current user about tasks due today or overdue"""
    if not FarmSettings.get_settings(g.org_code).get('task_reminders_enabled', True):
        return jsonify({'success': True, 'sent': 0, 'message': 'Task reminders are disabled for this farm.'})
    now = datetime.utcnow()
    sent = 0
    for task in ScheduledTask.find_due(g.org_code, parse_date(now)):
        if notification_service.send_task_reminder(task['_id'], task['task_name'], task['due_date'], str(g.user['_id']), now):
            sent += 1
    return jsonify({'success': True, 'sent': sent})
