#!/usr/bin/env python3
"""
Populate an organization with realistic test farm data

Creates housing units, sows, boars, breedings at different stages
(pending, confirmed, farrowed and weaned litters) and a few months of
feed, income and expense records. Everything goes through the models
and services, so the usual validation applies.

Usage:
    python scripts/generate_farm_data.py --organization my-farm --sows 40
"""

import argparse
import random
from datetime import datetime, timedelta
from pymongo.errors import PyMongoError
from sowtracker.models.organization import Organization
from sowtracker.models.sow import Sow
from sowtracker.models.boar import Boar
from sowtracker.models.housing import HousingUnit
from sowtracker.models.finance import FeedRecord, IncomeRecord, ExpenseRecord
from sowtracker.services import breeding_service, housing_service
from sowtracker.utils import breeding_dates

BREEDS = ['Yorkshire', 'Landrace', 'Duroc', 'Hampshire', 'Berkshire', 'Large White x Landrace']
SOW_NAMES = ['Daisy', 'Rosie', 'Hazel', 'Mabel', 'Penny', 'Clover', 'Willow', 'Ginger', 'Poppy', 'Maple']
FEED_TYPES = ['Gestation ration', 'Lactation ration', 'Creep feed', 'Boar developer']

def print_success(text):
    print(f"✓ {text}")

def print_error(text):
    print(f"✗ {text}")

def _day(days_ago):
    today = datetime.utcnow()
    return (today - timedelta(days=days_ago)).strftime('%Y-%m-%d')

def create_housing(org_code):
    units = []
    for pen in range(1, 5):
        units.append(HousingUnit.create_unit(org_code, {
            'name': f'Gestation Pen {pen}',
            'type': 'gestation',
            'building_name': 'Gestation Barn',
            'pen_number': str(pen),
            'length_feet': 20,
            'width_feet': 12,
            'max_capacity': 10
        }))
    farrowing_units = []
    for crate in range(1, 9):
        farrowing_units.append(HousingUnit.create_unit(org_code, {
            'name': f'Farrowing Crate {crate}',
            'type': 'farrowing',
            'building_name': 'Farrowing Room',
            'pen_number': str(crate),
            'length_feet': 7,
            'width_feet': 5,
            'max_capacity': 1
        }))
    print_success(f"Created {len(units) + len(farrowing_units)} housing units")
    return units

def create_boars(org_code):
    boar_ids = [
        Boar.create_boar(org_code, {'ear_tag': 'B-001', 'name': 'Duke', 'breed': 'Duroc',
                                    'birth_date': _day(900), 'boar_type': 'live'}),
        Boar.create_boar(org_code, {'ear_tag': 'B-002', 'name': 'Samson', 'breed': 'Hampshire',
                                    'birth_date': _day(700), 'boar_type': 'live'}),
        Boar.create_boar(org_code, {'name': 'Terminal Duroc Semen', 'breed': 'Duroc', 'boar_type': 'ai_semen',
                                    'semen_straws': 60, 'supplier': 'Genetics Co-op', 'cost_per_straw': 18.5})
    ]
    print_success(f"Created {len(boar_ids)} boars")
    return boar_ids

def create_sows(org_code, count, housing_units):
    sow_ids = []
    for index in range(1, count + 1):
        sow_id = Sow.create_sow(org_code, {
            'ear_tag': f'S-{index:03d}',
            'name': random.choice(SOW_NAMES) if random.random() < 0.4 else None,
            'breed': random.choice(BREEDS),
            'birth_date': _day(random.randint(300, 1400)),
            'right_ear_notch': random.randint(1, 9),
            'left_ear_notch': random.randint(1, 12)
        }, created_by='generate_farm_data')
        unit_id = housing_units[(index - 1) % len(housing_units)]
        try:
            housing_service.assign_housing(org_code, sow_id, unit_id, reason='Initial placement',
                                           moved_at=datetime.utcnow() - timedelta(days=random.randint(20, 120)))
        except ValueError as e:
            print(f"⚠ S-{index:03d} left unhoused: {e}")
        sow_ids.append(sow_id)
    print_success(f"Created {len(sow_ids)} sows")
    return sow_ids

def create_breedings(org_code, sow_ids, boar_ids):
    """Spread sows across the breeding cycle"""
    counts = {'pending': 0, 'confirmed': 0, 'farrowed': 0, 'weaned': 0}
    for sow_id in sow_ids:
        stage = random.choice(['open', 'pending', 'confirmed', 'farrowed', 'weaned'])
        if stage == 'open':
            continue

        days_ago = {
            'pending': random.randint(3, 25),
            'confirmed': random.randint(30, 110),
            'farrowed': breeding_dates.GESTATION_DAYS + random.randint(1, 15),
            'weaned': breeding_dates.GESTATION_DAYS + random.randint(25, 35),
        }[stage]
        boar_id = random.choice(boar_ids)
        attempt_id = breeding_service.record_breeding(org_code, sow_id, {
            'breeding_date': _day(days_ago),
            'breeding_time': '08:00',
            'breeding_method': 'natural' if boar_id != boar_ids[-1] else 'ai',
            'boar_id': boar_id
        }, None, performed_by='generate_farm_data')
        if stage == 'pending':
            counts['pending'] += 1
            continue

        farrowing_id = breeding_service.confirm_pregnancy(org_code, attempt_id, _day(days_ago - 21))
        counts['confirmed'] += 1
        if stage == 'confirmed':
            continue

        farrowed_days_ago = days_ago - breeding_dates.GESTATION_DAYS
        live = random.randint(8, 14)
        breeding_service.record_litter(org_code, farrowing_id, {
            'actual_farrowing_date': _day(farrowed_days_ago),
            'live_piglets': live,
            'stillborn': random.randint(0, 2),
            'mummified': random.randint(0, 1),
            'piglets': [{'sex': random.choice(['male', 'female']),
                         'birth_weight': round(random.uniform(1.1, 1.8), 2)} for _ in range(live)]
        })
        counts['farrowed'] += 1
        if stage == 'weaned':
            breeding_service.wean_litter(org_code, farrowing_id, {
                'weaning_date': _day(farrowed_days_ago - breeding_dates.WEANING_AGE_DAYS)
            })
            counts['weaned'] += 1
    print_success(
        f"Breedings - pending: {counts['pending']}, confirmed: {counts['confirmed']}, "
        f"farrowed: {counts['farrowed']}, weaned: {counts['weaned']}"
    )

def create_finances(org_code, months):
    records = 0
    for month in range(months):
        base = month * 30
        for _ in range(3):
            FeedRecord.create_record(org_code, {
                'record_date': _day(base + random.randint(0, 29)),
                'feed_type': random.choice(FEED_TYPES),
                'animal_group': random.choice(['gestation', 'farrowing', 'nursery', 'boars']),
                'quantity_lbs': random.choice([500, 1000, 2000]),
                'cost_per_unit': round(random.uniform(0.14, 0.22), 3),
                'supplier': 'Valley Feed Mill'
            })
            records += 1
        IncomeRecord.create_record(org_code, {
            'income_date': _day(base + random.randint(0, 29)),
            'income_type': 'piglet_sale',
            'quantity': random.randint(20, 60),
            'price_per_unit': round(random.uniform(45, 75), 2),
            'buyer_name': 'Regional Finisher LLC',
            'payment_status': random.choice(['paid', 'paid', 'pending'])
        })
        ExpenseRecord.create_record(org_code, {
            'expense_date': _day(base + random.randint(0, 29)),
            'expense_category': random.choice(['veterinary', 'utilities', 'supplies']),
            'amount': round(random.uniform(150, 900), 2),
            'description': 'Monthly operating expense'
        })
        records += 2
    print_success(f"Created {records} finance records over {months} month(s)")

def main():
    parser = argparse.ArgumentParser(description='Generate test farm data for an organization')
    parser.add_argument('--organization', required=True, help='Organization slug')
    parser.add_argument('--sows', type=int, default=40, help='Number of sows to create')
    parser.add_argument('--months', type=int, default=3, help='Months of finance history')
    parser.add_argument('--seed', type=int, help='Random seed for repeatable data')
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)

    organization = Organization.find_by_slug(args.organization)
    if not organization:
        print_error(f"Organization not found: {args.organization}")
        return 1
    org_code = organization['slug']

    print("\n" + "=" * 60)
    print(f"Generating farm data for {organization['name']}")
    print("=" * 60 + "\n")

    try:
        housing_units = create_housing(org_code)
        boar_ids = create_boars(org_code)
        sow_ids = create_sows(org_code, args.sows, housing_units)
        create_breedings(org_code, sow_ids, boar_ids)
        create_finances(org_code, args.months)
    except (ValueError, LookupError, PyMongoError) as e:
        print_error(f"Generation stopped: {e}")
        return 1

    print()
    print_success("Farm data generated")
    return 0

if __name__ == '__main__':
    raise SystemExit(main())
