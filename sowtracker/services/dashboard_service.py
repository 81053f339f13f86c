from datetime import datetime, timedelta
from sowtracker import get_org_db
from sowtracker.models.farrowing import Farrowing
from sowtracker.models.breeding import MatrixTreatment
from sowtracker.models.protocol import ScheduledTask

def get_dashboard_stats(org_code, now=None):
    """Headline counts for the farm dashboard"""
    now = now or datetime.utcnow()
    today = datetime(now.year, now.month, now.day)
    org_db = get_org_db(org_code)

    active_farrowings = Farrowing.find_active(org_code)
    week_end = today + timedelta(days=7)

    return {
        'total_sows': org_db.sows.count_documents({'deleted_at': None}),
        'active_sows': org_db.sows.count_documents({'deleted_at': None, 'status': 'active'}),
        'total_boars': org_db.boars.count_documents({'deleted_at': None, 'status': 'active'}),
        'currently_farrowing': Farrowing.count_currently_farrowing(org_code, now),
        'nursing_piglets': sum(f.get('live_piglets') or 0 for f in active_farrowings),
        'weaned_piglets': org_db.piglets.count_documents({'status': 'weaned'}),
        'expected_heats_this_week': len(MatrixTreatment.find_expected_heats(org_code, today, week_end)),
        'upcoming_farrowings': len(Farrowing.find_upcoming(org_code, today, week_end)),
        'overdue_tasks': ScheduledTask.count_overdue(org_code, now),
        'pending_pregnancy_checks': org_db.breeding_attempts.count_documents({
            'result': 'pending',
            'breeding_date': {'$lte': today - timedelta(days=18)}
        })
    }
