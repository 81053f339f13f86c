"""Reproductive-cycle date arithmetic"""
import math
from datetime import datetime, timedelta

GESTATION_DAYS = 114
PREGNANCY_CHECK_START_DAY = 18
PREGNANCY_CHECK_DAY = 21
WEANING_AGE_DAYS = 21
RETURN_TO_HEAT_DAYS = 7
MATRIX_DAYS_TO_HEAT = 5
PRE_FARROWING_WINDOW_START_DAY = 107

def _midnight(value):
    return datetime(value.year, value.month, value.day)

def add_days(value, days):
    """Offset a date by whole days, keeping midnight precision"""
    return _midnight(value) + timedelta(days=days)

def expected_farrowing_date(breeding_date):
    return add_days(breeding_date, GESTATION_DAYS)

def pregnancy_check_date(breeding_date):
    return add_days(breeding_date, PREGNANCY_CHECK_DAY)

def expected_weaning_date(birth_date):
    return add_days(birth_date, WEANING_AGE_DAYS)

def expected_heat_after_weaning(weaning_date):
    return add_days(weaning_date, RETURN_TO_HEAT_DAYS)

def expected_heat_after_matrix(administration_date, days_until_heat=None):
    return add_days(administration_date, days_until_heat or MATRIX_DAYS_TO_HEAT)

def days_since(value, now=None):
    """Whole days elapsed since a date (floor), None when unknown"""
    if value is None:
        return None
    now = now or datetime.utcnow()
    return (_midnight(now) - _midnight(value)).days

def days_until(target, now=None):
    """Days until a target date, rounded up like a countdown"""
    now = now or datetime.utcnow()
    return math.ceil((target - now).total_seconds() / 86400)

def breeding_status_label(days):
    """Human label for the stage of gestation"""
    if days is None:
        return None
    if days < PREGNANCY_CHECK_START_DAY:
        return f'Bred {days} day{"" if days == 1 else "s"} ago'
    if days <= PREGNANCY_CHECK_DAY:
        return 'Pregnancy check window'
    if days < PRE_FARROWING_WINDOW_START_DAY:
        return f'Day {days} of gestation'
    if days <= GESTATION_DAYS:
        return 'Due to farrow'
    return 'Past due date'

def pregnancy_check_advice(days):
    if days is None:
        return None
    if PREGNANCY_CHECK_START_DAY <= days <= PREGNANCY_CHECK_DAY:
        return 'Optimal time for pregnancy check (18-21 days)'
    if days > PREGNANCY_CHECK_DAY:
        return 'Pregnancy check is overdue. Check as soon as possible.'
    return None
