from datetime import datetime
from sowtracker.utils import breeding_dates


def test_gestation_and_check_offsets():
    bred = datetime(2024, 1, 1, 15, 45)
    assert breeding_dates.expected_farrowing_date(bred) == datetime(2024, 4, 24)
    assert breeding_dates.pregnancy_check_date(bred) == datetime(2024, 1, 22)


def test_weaning_and_heat_offsets():
    assert breeding_dates.expected_weaning_date(datetime(2024, 3, 1)) == datetime(2024, 3, 22)
    assert breeding_dates.expected_heat_after_weaning(datetime(2024, 3, 22)) == datetime(2024, 3, 29)
    assert breeding_dates.expected_heat_after_matrix(datetime(2024, 3, 1)) == datetime(2024, 3, 6)
    assert breeding_dates.expected_heat_after_matrix(datetime(2024, 3, 1), 7) == datetime(2024, 3, 8)


def test_days_since_counts_whole_days():
    assert breeding_dates.days_since(datetime(2024, 1, 1), now=datetime(2024, 1, 11, 23, 59)) == 10
    assert breeding_dates.days_since(None) is None


def test_days_until_rounds_up():
    now = datetime(2024, 1, 1, 12, 0)
    assert breeding_dates.days_until(datetime(2024, 1, 3), now) == 2
    assert breeding_dates.days_until(datetime(2024, 1, 1, 12, 0), now) == 0


def test_status_labels():
    assert breeding_dates.breeding_status_label(1) == 'Bred 1 day ago'
    assert breeding_dates.breeding_status_label(5) == 'Bred 5 days ago'
    assert breeding_dates.breeding_status_label(19) == 'Pregnancy check window'
    assert breeding_dates.breeding_status_label(50) == 'Day 50 of gestation'
    assert breeding_dates.breeding_status_label(110) == 'Due to farrow'
    assert breeding_dates.breeding_status_label(120) == 'Past due date'
    assert breeding_dates.breeding_status_label(None) is None


def test_pregnancy_check_advice():
    assert breeding_dates.pregnancy_check_advice(10) is None
    assert 'Optimal' in breeding_dates.pregnancy_check_advice(18)
    assert 'overdue' in breeding_dates.pregnancy_check_advice(22)
