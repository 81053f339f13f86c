from datetime import datetime
import pytest
from sowtracker import get_org_db
from sowtracker.models.sow import Sow
from sowtracker.models.health import HealthRecord
from sowtracker.models.finance import (
    FeedRecord, IncomeRecord, ExpenseRecord, Budget, FinancialReport, budget_category
)

START = datetime(2024, 5, 1)
END = datetime(2024, 5, 31)


def test_feed_record_creates_matching_expense(org_code):
    record_id = FeedRecord.create_record(org_code, {
        'feed_type': 'Gestation ration', 'quantity_lbs': '2000', 'cost_per_unit': '0.125',
        'animal_group': 'gestation', 'record_date': '2024-05-03', 'supplier': 'Valley Mill'
    })
    feed = get_org_db(org_code).feed_records.find_one({})
    assert feed['total_cost'] == 250.0

    expenses = ExpenseRecord.find_all(org_code)
    assert len(expenses) == 1
    assert expenses[0]['expense_category'] == 'feed'
    assert expenses[0]['amount'] == 250.0
    assert expenses[0]['description'] == 'Feed: Gestation ration for Gestation Sows'
    assert expenses[0]['vendor'] == 'Valley Mill'

    FeedRecord.delete_record(org_code, record_id)
    assert FeedRecord.find_all(org_code) == []
    assert ExpenseRecord.find_all(org_code) == []


def test_feed_record_validation(org_code):
    with pytest.raises(ValueError, match='feed type'):
        FeedRecord.create_record(org_code, {'quantity_lbs': 10, 'total_cost': 5})
    with pytest.raises(ValueError, match='quantity'):
        FeedRecord.create_record(org_code, {'feed_type': 'Creep', 'quantity_lbs': 0, 'total_cost': 5})
    with pytest.raises(ValueError, match='total cost'):
        FeedRecord.create_record(org_code, {'feed_type': 'Creep', 'quantity_lbs': 10})
    with pytest.raises(ValueError):
        FeedRecord.create_record(org_code, {'feed_type': 'Creep', 'quantity_lbs': 10, 'total_cost': 5, 'animal_group': 'cattle'})


def test_income_total_computed_from_quantity(org_code):
    IncomeRecord.create_record(org_code, {'income_type': 'piglet_sale', 'quantity': 12, 'price_per_unit': 65.5,
                                          'income_date': '2024-05-10'})
    income = IncomeRecord.find_all(org_code)[0]
    assert income['total_amount'] == 786.0
    assert income['payment_status'] == 'pending'

    with pytest.raises(ValueError, match='total amount'):
        IncomeRecord.create_record(org_code, {'income_type': 'piglet_sale', 'quantity': 0, 'price_per_unit': 10})
    with pytest.raises(ValueError):
        IncomeRecord.create_record(org_code, {'income_type': 'piglet_sale', 'total_amount': 10, 'payment_status': 'someday'})


def test_expense_validation(org_code):
    with pytest.raises(ValueError, match='amount'):
        ExpenseRecord.create_record(org_code, {'amount': -3, 'description': 'Refund'})
    with pytest.raises(ValueError, match='description'):
        ExpenseRecord.create_record(org_code, {'amount': 3})
    with pytest.raises(ValueError, match='together'):
        ExpenseRecord.create_record(org_code, {'amount': 3, 'description': 'Vet', 'animal_type': 'sow'})


def test_summary_groups_income_and_expenses(org_code):
    IncomeRecord.create_record(org_code, {'income_type': 'piglet_sale', 'total_amount': 1000, 'income_date': '2024-05-02'})
    IncomeRecord.create_record(org_code, {'income_type': 'boar_sale', 'total_amount': 500, 'income_date': '2024-05-03'})
    IncomeRecord.create_record(org_code, {'income_type': 'other', 'total_amount': 99, 'income_date': '2024-06-03'})
    ExpenseRecord.create_record(org_code, {'amount': 300, 'description': 'Vet call', 'expense_category': 'veterinary',
                                           'expense_date': '2024-05-04'})
    ExpenseRecord.create_record(org_code, {'amount': 450, 'description': 'Wages', 'expense_category': 'labor',
                                           'expense_date': '2024-05-05'})

    summary = FinancialReport.summary(org_code, START, END)
    assert summary['piglet_sales'] == 1000
    assert summary['breeding_stock_sales'] == 500
    assert summary['other_income'] == 0
    assert summary['veterinary_costs'] == 300
    assert summary['labor_costs'] == 450
    assert summary['total_revenue'] == 1500
    assert summary['total_expenses'] == 750
    assert summary['net_profit'] == 750
    assert summary['profit_margin'] == 50.0


def test_budget_rolls_extra_categories_into_other(org_code):
    assert budget_category('labor') == 'other'
    assert budget_category('feed') == 'feed'

    budget_id = Budget.create_budget(org_code, {
        'budget_name': 'May', 'start_date': '2024-05-01', 'end_date': '2024-05-31',
        'feed_budget': 1000, 'other_budget': 400, 'revenue_target': 5000
    })
    ExpenseRecord.create_record(org_code, {'amount': 250, 'description': 'Feed', 'expense_category': 'feed',
                                           'expense_date': '2024-05-04'})
    ExpenseRecord.create_record(org_code, {'amount': 100, 'description': 'Gloves', 'expense_category': 'supplies',
                                           'expense_date': '2024-05-04'})
    ExpenseRecord.create_record(org_code, {'amount': 100, 'description': 'Semen', 'expense_category': 'breeding',
                                           'expense_date': '2024-05-20'})

    comparison = Budget.compare_to_actual(org_code, Budget.find_by_id(org_code, budget_id))
    by_category = {c['category']: c for c in comparison['categories']}
    assert by_category['feed']['percent_used'] == 25.0
    assert by_category['other']['actual'] == 200
    assert by_category['other']['remaining'] == 200
    assert by_category['veterinary']['percent_used'] == 0
    assert comparison['total_budgeted'] == 1400
    assert comparison['percent_used'] == 32.1


def test_budget_dates_validated(org_code):
    with pytest.raises(ValueError, match='on or after'):
        Budget.create_budget(org_code, {'budget_name': 'Bad', 'start_date': '2024-05-31', 'end_date': '2024-05-01'})
    with pytest.raises(LookupError):
        Budget.update_budget(org_code, '64b000000000000000000000', {'notes': 'x'})


def test_animal_profit_loss(org_code):
    sow_id = Sow.create_sow(org_code, {'ear_tag': 'S-1', 'birth_date': '2021-01-01'})
    IncomeRecord.create_record(org_code, {'income_type': 'cull_sow_sale', 'total_amount': 400,
                                          'animal_type': 'sow', 'animal_id': sow_id})
    ExpenseRecord.create_record(org_code, {'amount': 150, 'description': 'Feed share',
                                           'animal_type': 'sow', 'animal_id': sow_id})
    HealthRecord.create_record(org_code, 'sow', sow_id, {'title': 'Lameness check', 'cost': 50})

    result = FinancialReport.animal_profit_loss(org_code, 'sow', sow_id)
    assert result['total_revenue'] == 400
    assert result['total_costs'] == 200
    assert result['health_costs'] == 50
    assert result['profit_loss'] == 200
    assert result['roi_percent'] == 100.0


def test_finance_routes(client, organization, owner, member_factory, login):
    base = f"/api/organizations/{organization['_id']}/finance"
    login(owner)
    r = client.post(base + '/income', json={'income_type': 'piglet_sale', 'total_amount': 120, 'income_date': '2024-05-02',
                                            'buyer_name': 'Smith, J'})
    assert r.status_code == 201, r.get_json()

    summary = client.get(base + '/summary?start_date=2024-05-01&end_date=2024-05-31').get_json()['summary']
    assert summary['total_revenue'] == 120
    assert client.get(base + '/summary?start_date=2024-05-31&end_date=2024-05-01').status_code == 400

    export = client.get(base + '/export?start_date=2024-05-01&end_date=2024-05-31')
    lines = export.get_data(as_text=True).split('\n')
    assert lines[0] == 'Date,Kind,Category,Description,Amount,Party,Payment Status,Notes'
    assert lines[1] == '05/02/2024,Income,piglet_sale,,120.0,"Smith, J",pending,'

    vet = member_factory(organization, 'vet')
    client.post('/api/auth/logout')
    login(vet)
    assert client.post(base + '/expenses', json={'amount': 5, 'description': 'x'}).status_code == 403
