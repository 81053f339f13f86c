"""Breeding, farrowing and weaning workflows

Each workflow writes its primary record first; protocol tasks, Matrix
linkage and notifications are secondary and only logged on failure.
"""
import logging
from datetime import datetime
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError
from sowtracker.models.sow import Sow
from sowtracker.models.boar import Boar
from sowtracker.models.piglet import Piglet
from sowtracker.models.farrowing import Farrowing
from sowtracker.models.farm_settings import FarmSettings
from sowtracker.models.protocol import ScheduledTask
from sowtracker.models.breeding import (
    BreedingAttempt, MatrixTreatment, BREEDING_METHODS, append_note, combine_date_and_time
)
from sowtracker.services import notification_service
from sowtracker.utils import breeding_dates
from sowtracker.utils.forms import parse_date, parse_int, clean_str, require_choice

logger = logging.getLogger(__name__)

SECONDARY_ERRORS = (PyMongoError, InvalidId, ValueError)

def _today():
    now = datetime.utcnow()
    return datetime(now.year, now.month, now.day)

def _sow_label(sow):
    return sow.get('ear_tag') or sow.get('name') or 'Unknown'

def _generate_tasks(org_code, trigger_event, anchor_date, **links):
    try:
        created = ScheduledTask.generate_tasks(org_code, trigger_event, anchor_date, **links)
        if created:
            logger.info(f"Created {created} {trigger_event} protocol tasks for {org_code}")
        return created
    except SECONDARY_ERRORS as e:
        logger.error(f"Error creating {trigger_event} protocol tasks: {e}")
        return 0

def _require_sow(org_code, sow_id):
    sow = Sow.find_by_id(org_code, sow_id)
    if not sow:
        raise LookupError('Sow not found')
    return sow

def _litter_sire(org_code, farrowing):
    if not farrowing.get('breeding_attempt_id'):
        return None
    attempt = BreedingAttempt.find_by_id(org_code, farrowing['breeding_attempt_id']) or {}
    return attempt.get('boar_id')

def _require_attempt(org_code, attempt_id):
    attempt = BreedingAttempt.find_by_id(org_code, attempt_id)
    if not attempt:
        raise LookupError('Breeding attempt not found')
    return attempt

def record_breeding(org_code, sow_id, data, user_id, performed_by='system'):
    """Record a breeding for a sow

    Exactly one of boar_id or other_boar_description must be given. AI
    semen uses up one straw.

    Returns:
        The new breeding attempt id as a string
    """
    sow = _require_sow(org_code, sow_id)
    if sow.get('status') != 'active':
        raise ValueError('Only active sows can be bred')

    breeding_date = parse_date(data.get('breeding_date'), 'Breeding date', required=True)
    if breeding_date > _today():
        raise ValueError('Breeding date cannot be in the future')
    if not clean_str(data.get('breeding_time')):
        raise ValueError('Breeding time is required')
    breeding_time = combine_date_and_time(breeding_date, data.get('breeding_time'))
    breeding_method = require_choice(data.get('breeding_method') or 'natural', BREEDING_METHODS, 'breeding_method')

    boar_id = clean_str(data.get('boar_id'))
    other_description = clean_str(data.get('other_boar_description'))
    if bool(boar_id) == bool(other_description):
        raise ValueError('Select a boar or AI semen, or describe the boar used (not both)')

    notes = clean_str(data.get('notes'))
    boar_description = None
    boar = None
    if boar_id:
        boar = Boar.find_by_id(org_code, boar_id)
        if not boar:
            raise LookupError('Boar not found')
        if boar.get('boar_type') == 'ai_semen':
            if (boar.get('semen_straws') or 0) < 1:
                raise ValueError('Insufficient semen straws available')
            Boar.use_straw(org_code, boar_id)
    else:
        source_type = 'Boar' if breeding_method == 'natural' else 'AI Semen'
        boar_description = f'{source_type}: {other_description}'
        notes = append_note(boar_description, notes)

    matrix_treatment_id = clean_str(data.get('matrix_treatment_id'))
    attempt_id = BreedingAttempt.create_attempt(
        org_code, sow_id, breeding_date, breeding_time, breeding_method,
        boar_id=boar_id, notes=notes, matrix_treatment_id=matrix_treatment_id,
        created_by=str(user_id) if user_id else performed_by, boar_description=boar_description
    )
    Sow.add_audit_log_entry(org_code, sow_id, 'bred', f"Bred on {breeding_date.strftime('%Y-%m-%d')} ({breeding_method})",
                            performed_by, {'breeding_attempt_id': attempt_id})

    if matrix_treatment_id:
        try:
            MatrixTreatment.mark_bred(org_code, matrix_treatment_id, breeding_date)
        except SECONDARY_ERRORS as e:
            logger.error(f"Error updating matrix treatment {matrix_treatment_id}: {e}")

    _generate_tasks(org_code, 'breeding', breeding_date, sow_id=sow_id, breeding_attempt_id=attempt_id)

    if user_id:
        boar_label = (boar.get('name') or boar.get('ear_tag')) if boar else other_description
        notification_service.send_breeding_notification(attempt_id, _sow_label(sow), boar_label, user_id)
        notification_service.schedule_pregnancy_check_reminders(
            attempt_id, _sow_label(sow), breeding_dates.pregnancy_check_date(breeding_date), user_id
        )
    return attempt_id

def bulk_record_breeding(org_code, sow_ids, data, user_id, performed_by='system'):
    """Breed several sows with the same boar, date and time

    Returns:
        dict with created (attempt ids) and errors (per sow messages)
    """
    if not sow_ids:
        raise ValueError('Select at least one sow')
    created = []
    errors = []
    for sow_id in sow_ids:
        try:
            created.append(record_breeding(org_code, sow_id, data, user_id, performed_by))
        except (ValueError, LookupError, InvalidId) as e:
            errors.append({'sow_id': str(sow_id), 'message': str(e)})
    return {'created': created, 'errors': errors}

def confirm_pregnancy(org_code, attempt_id, check_date=None, notes=None, user_id=None):
    """Mark a pending breeding pregnant and open its farrowing

    Returns:
        The farrowing id as a string
    """
    attempt = _require_attempt(org_code, attempt_id)
    if attempt.get('result') != 'pending':
        raise ValueError('Pregnancy result has already been recorded for this breeding')
    check_date = parse_date(check_date, 'check date') or _today()

    farrowing_id = Farrowing.create_farrowing(org_code, attempt['sow_id'], attempt['breeding_date'], attempt_id)
    note = f"Pregnancy confirmed on {check_date.strftime('%Y-%m-%d')}"
    if clean_str(notes):
        note = f"{note}: {clean_str(notes)}"
    BreedingAttempt.update_attempt(org_code, attempt_id, {
        'result': 'pregnant',
        'pregnancy_confirmed': True,
        'pregnancy_check_date': check_date,
        'farrowing_id': ObjectId(farrowing_id),
        'notes': append_note(attempt.get('notes'), note)
    })

    if user_id:
        sow = Sow.find_by_id(org_code, attempt['sow_id'], include_deleted=True) or {}
        notification_service.cancel_scheduled_notifications(user_id, attempt_id)
        notification_service.schedule_farrowing_reminders(
            farrowing_id, _sow_label(sow), breeding_dates.expected_farrowing_date(attempt['breeding_date']), user_id
        )
    return farrowing_id

def mark_returned_to_heat(org_code, attempt_id, check_date=None, notes=None, user_id=None):
    attempt = _require_attempt(org_code, attempt_id)
    if attempt.get('result') != 'pending':
        raise ValueError('Pregnancy result has already been recorded for this breeding')
    check_date = parse_date(check_date, 'check date') or _today()
    note = f"Returned to heat on {check_date.strftime('%Y-%m-%d')}"
    if clean_str(notes):
        note = f"{note}: {clean_str(notes)}"
    BreedingAttempt.update_attempt(org_code, attempt_id, {
        'result': 'returned_to_heat',
        'pregnancy_confirmed': False,
        'pregnancy_check_date': check_date,
        'notes': append_note(attempt.get('notes'), note)
    })
    if user_id:
        notification_service.cancel_scheduled_notifications(user_id, attempt_id)

def move_to_farrowing(org_code, sow_id, data, user_id=None):
    """Create a farrowing straight from a breeding date"""
    sow = _require_sow(org_code, sow_id)
    breeding_date = parse_date(data.get('breeding_date'), 'Breeding date', required=True)
    farrowing_id = Farrowing.create_farrowing(org_code, sow_id, breeding_date, notes=clean_str(data.get('notes')))
    moved_date = parse_date(data.get('moved_to_farrowing_date'), 'moved to farrowing date')
    if moved_date:
        Farrowing.update_farrowing(org_code, farrowing_id, {'moved_to_farrowing_date': moved_date})
    if user_id:
        notification_service.schedule_farrowing_reminders(
            farrowing_id, _sow_label(sow), breeding_dates.expected_farrowing_date(breeding_date), user_id
        )
    return farrowing_id

def record_litter(org_code, farrowing_id, data, user_id=None):
    """Record the actual farrowing, litter counts and optional piglets

    Piglets without notches get right notch = litter number and left
    notch = position in the litter. The litter number comes from farm
    settings (advancing the counter) unless one is supplied.

    Returns:
        dict with piglets_created and litter_number
    """
    farrowing = Farrowing.find_by_id(org_code, farrowing_id)
    if not farrowing:
        raise LookupError('Farrowing not found')
    if farrowing.get('actual_farrowing_date'):
        raise ValueError('A litter has already been recorded for this farrowing')

    actual_date = parse_date(data.get('actual_farrowing_date'), 'Farrowing date', required=True)
    if actual_date > _today():
        raise ValueError('Farrowing date cannot be in the future')
    counts = Farrowing.clean_litter_counts(data)
    piglets_data = data.get('piglets') or []
    if not isinstance(piglets_data, list):
        raise ValueError('piglets must be a list')
    if len(piglets_data) > counts['live_piglets']:
        raise ValueError('More piglets were entered than live piglets recorded')

    farrowing['actual_farrowing_date'] = actual_date
    litter_number = parse_int(data.get('litter_number'), 'Litter number')
    needs_notches = any(p.get('right_ear_notch') in (None, '') for p in piglets_data)
    if needs_notches and litter_number is None:
        litter_number = FarmSettings.next_litter_number(org_code)

    sire_id = _litter_sire(org_code, farrowing)
    piglet_docs = []
    for index, piglet_data in enumerate(piglets_data, start=1):
        piglet_data = dict(piglet_data)
        if piglet_data.get('right_ear_notch') in (None, ''):
            piglet_data['right_ear_notch'] = litter_number
            if piglet_data.get('left_ear_notch') in (None, ''):
                piglet_data['left_ear_notch'] = index
        piglet_docs.append(Piglet.build_piglet(farrowing, piglet_data, sire_id=sire_id))

    update_data = {'actual_farrowing_date': actual_date, 'litter_number': litter_number}
    update_data.update(counts)
    notes = clean_str(data.get('notes'))
    if notes:
        update_data['notes'] = append_note(farrowing.get('notes'), notes)
    if not farrowing.get('moved_to_farrowing_date'):
        update_data['moved_to_farrowing_date'] = actual_date
    Farrowing.update_farrowing(org_code, farrowing_id, update_data)
    Piglet.create_piglets(org_code, piglet_docs)

    _generate_tasks(org_code, 'farrowing', actual_date, sow_id=farrowing['sow_id'], farrowing_id=farrowing_id)

    if user_id:
        sow = Sow.find_by_id(org_code, farrowing['sow_id'], include_deleted=True) or {}
        notification_service.cancel_scheduled_notifications(user_id, farrowing_id)
        notification_service.schedule_weaning_reminders(
            farrowing_id, _sow_label(sow), breeding_dates.expected_weaning_date(actual_date), user_id
        )
    return {'piglets_created': len(piglet_docs), 'litter_number': litter_number}

def wean_litter(org_code, farrowing_id, data, user_id=None):
    """Wean a litter and move it out of farrowing

    `piglets` is an optional list of {id, weaning_weight}; when the litter
    has no piglet records, entries without an id create weaned piglets.

    Returns:
        Number of piglets weaned
    """
    farrowing = Farrowing.find_by_id(org_code, farrowing_id)
    if not farrowing:
        raise LookupError('Farrowing not found')
    if not farrowing.get('actual_farrowing_date'):
        raise ValueError('Record the litter before weaning')
    if farrowing.get('moved_out_of_farrowing_date'):
        raise ValueError('This litter has already been weaned')

    weaning_date = parse_date(data.get('weaning_date'), 'Weaning date', required=True)
    if weaning_date < farrowing['actual_farrowing_date']:
        raise ValueError('Weaning date cannot be before the farrowing date')
    piglets_data = data.get('piglets') or []
    weights = {}
    for entry in piglets_data:
        if entry.get('id'):
            weights[str(entry['id'])] = entry.get('weaning_weight')

    weaned = 0
    nursing = Piglet.find_by_farrowing(org_code, farrowing_id, status='nursing')
    if nursing:
        for piglet in nursing:
            update = {'status': 'weaned', 'weaning_date': weaning_date}
            if str(piglet['_id']) in weights:
                update['weaning_weight'] = weights[str(piglet['_id'])]
            Piglet.update_piglet(org_code, piglet['_id'], update)
            weaned += 1
    elif Piglet.count_by_farrowing(org_code, farrowing_id) == 0:
        sire_id = _litter_sire(org_code, farrowing)
        docs = [Piglet.build_piglet(farrowing, dict(entry, weaning_date=weaning_date), status='weaned', sire_id=sire_id)
                for entry in piglets_data if not entry.get('id')]
        Piglet.create_piglets(org_code, docs)
        weaned = len(docs)

    Farrowing.update_farrowing(org_code, farrowing_id, {'moved_out_of_farrowing_date': weaning_date})
    _generate_tasks(org_code, 'weaning', weaning_date, sow_id=farrowing['sow_id'], farrowing_id=farrowing_id)
    if user_id:
        notification_service.cancel_scheduled_notifications(user_id, farrowing_id)
    return weaned

def pregnancy_status(attempt, farrowing=None):
    """pending, confirmed, open or farrowed"""
    if farrowing and farrowing.get('actual_farrowing_date'):
        return 'farrowed'
    result = attempt.get('result')
    if result == 'pregnant':
        return 'confirmed'
    if result in ('returned_to_heat', 'aborted'):
        return 'open'
    return 'pending'

def list_bred_sows(org_code, status_filter=None, now=None):
    """Latest breeding per active sow with pregnancy status and next task"""
    now = now or datetime.utcnow()
    sows = {s['_id']: s for s in Sow.find_all(org_code, status='active')}
    latest = {}
    for attempt in BreedingAttempt.find_all(org_code):
        if attempt['sow_id'] in sows and attempt['sow_id'] not in latest:
            latest[attempt['sow_id']] = attempt
    farrowing_ids = [a['farrowing_id'] for a in latest.values() if a.get('farrowing_id')]
    farrowings = {}
    if farrowing_ids:
        for farrowing in Farrowing.find_all(org_code):
            if farrowing['_id'] in farrowing_ids:
                farrowings[farrowing['_id']] = farrowing

    rows = []
    for sow_id, attempt in latest.items():
        sow = sows[sow_id]
        farrowing = farrowings.get(attempt.get('farrowing_id'))
        status = pregnancy_status(attempt, farrowing)
        if status_filter and status != status_filter:
            continue
        days = breeding_dates.days_since(attempt['breeding_date'], now)
        rows.append({
            'sow_id': sow_id,
            'ear_tag': sow.get('ear_tag'),
            'name': sow.get('name'),
            'breeding_attempt_id': attempt['_id'],
            'breeding_date': attempt['breeding_date'],
            'breeding_method': attempt.get('breeding_method'),
            'days_since_breeding': days,
            'status_label': breeding_dates.breeding_status_label(days),
            'expected_farrowing_date': breeding_dates.expected_farrowing_date(attempt['breeding_date']),
            'pregnancy_status': status,
            'needs_pregnancy_check': status == 'pending' and days >= breeding_dates.PREGNANCY_CHECK_START_DAY,
            'farrowing_id': attempt.get('farrowing_id'),
            'next_task': ScheduledTask.find_next_for_sow(org_code, sow_id, now)
        })
    rows.sort(key=lambda r: r['breeding_date'], reverse=True)
    return rows

def record_matrix_batch(org_code, data, user_id=None):
    """Record Matrix treatments for several sows as one batch"""
    sow_ids = data.get('sow_ids') or []
    treatment_ids = MatrixTreatment.create_treatments(
        org_code, sow_ids, data.get('administration_date'),
        days_until_heat=data.get('days_until_heat'),
        batch_name=data.get('batch_name'),
        dosage=data.get('dosage'),
        lot_number=data.get('lot_number'),
        notes=data.get('notes')
    )
    if user_id and treatment_ids:
        treatment = MatrixTreatment.find_by_id(org_code, treatment_ids[0])
        notification_service.send_matrix_notification(
            treatment['batch_name'], len(treatment_ids), treatment['expected_heat_date'], user_id
        )
    return treatment_ids
