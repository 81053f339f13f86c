import logging
from datetime import datetime, timedelta
from bson import ObjectId
from pymongo.errors import PyMongoError
from sowtracker import get_org_db
from sowtracker.utils.forms import parse_date, parse_float, parse_int, clean_str, require_choice

logger = logging.getLogger(__name__)

ANIMAL_GROUPS = {
    'gestation': 'Gestation Sows',
    'farrowing': 'Farrowing Sows',
    'nursery': 'Nursery Pigs',
    'boars': 'Boars',
    'other': 'Other',
}
INCOME_TYPES = ['piglet_sale', 'cull_sow_sale', 'breeding_stock_sale', 'boar_sale', 'other']
PAYMENT_STATUSES = ['pending', 'paid', 'partial', 'overdue']
EXPENSE_CATEGORIES = ['feed', 'veterinary', 'facilities', 'utilities', 'labor', 'supplies', 'breeding', 'other']
BUDGET_CATEGORIES = ['feed', 'veterinary', 'facilities', 'utilities', 'other']
BUDGET_STATUSES = ['active', 'archived']
ANIMAL_TYPES = ['sow', 'boar', 'piglet']

def _today():
    return parse_date(datetime.utcnow())

def _animal_link(data):
    animal_type = data.get('animal_type') or None
    animal_id = data.get('animal_id') or None
    if animal_type is None and animal_id is None:
        return None, None
    if animal_type not in ANIMAL_TYPES or not animal_id:
        raise ValueError('animal_type and animal_id must be given together')
    return animal_type, ObjectId(animal_id)

def budget_category(expense_category):
    """Budgets track labor, supplies and breeding under 'other'"""
    return expense_category if expense_category in BUDGET_CATEGORIES else 'other'

class FeedRecord:
    @staticmethod
    def create_record(org_code, data, created_by='system'):
        """Record a feed purchase and its matching feed expense

        The expense is a secondary write: if it fails the feed record
        still stands.
        """
        feed_type = clean_str(data.get('feed_type'))
        if not feed_type:
            raise ValueError('Please enter a feed type')
        quantity = parse_float(data.get('quantity_lbs'), 'Quantity')
        if quantity is None or quantity <= 0:
            raise ValueError('Please enter a valid quantity')
        cost_per_unit = parse_float(data.get('cost_per_unit'), 'Cost per unit')
        total_cost = parse_float(data.get('total_cost'), 'Total cost')
        if total_cost is None and cost_per_unit is not None:
            total_cost = round(quantity * cost_per_unit, 2)
        if total_cost is None or total_cost <= 0:
            raise ValueError('Please enter a valid total cost')
        animal_group = require_choice(data.get('animal_group') or 'other', list(ANIMAL_GROUPS), 'animal_group')
        record_date = parse_date(data.get('record_date'), 'record date') or _today()

        record = {
            'record_date': record_date,
            'feed_type': feed_type,
            'animal_group': animal_group,
            'quantity_lbs': quantity,
            'cost_per_unit': cost_per_unit,
            'total_cost': total_cost,
            'supplier': clean_str(data.get('supplier')),
            'notes': clean_str(data.get('notes')),
            'created_by': created_by,
            'is_deleted': False,
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow()
        }
        result = get_org_db(org_code).feed_records.insert_one(record)

        try:
            ExpenseRecord.create_record(org_code, {
                'expense_date': record_date,
                'expense_category': 'feed',
                'amount': total_cost,
                'description': f'Feed: {feed_type} for {ANIMAL_GROUPS[animal_group]}',
                'vendor': record['supplier'],
                'notes': record['notes']
            }, created_by=created_by, feed_record_id=result.inserted_id)
        except (ValueError, PyMongoError) as e:
            logger.error(f"Error creating expense record for feed {result.inserted_id}: {e}")

        return str(result.inserted_id)

    @staticmethod
    def find_all(org_code, start=None, end=None):
        query = {'is_deleted': False}
        if start or end:
            query['record_date'] = {}
            if start:
                query['record_date']['$gte'] = start
            if end:
                query['record_date']['$lte'] = end
        return list(get_org_db(org_code).feed_records.find(query).sort('record_date', -1))

    @staticmethod
    def delete_record(org_code, record_id):
        now = datetime.utcnow()
        org_db = get_org_db(org_code)
        org_db.feed_records.update_one(
            {'_id': ObjectId(record_id)},
            {'$set': {'is_deleted': True, 'deleted_at': now, 'updated_at': now}}
        )
        org_db.expense_records.update_many(
            {'feed_record_id': ObjectId(record_id)},
            {'$set': {'is_deleted': True, 'deleted_at': now, 'updated_at': now}}
        )

class IncomeRecord:
    @staticmethod
    def create_record(org_code, data, created_by='system'):
        income_type = require_choice(data.get('income_type') or 'piglet_sale', INCOME_TYPES, 'income_type')
        quantity = parse_int(data.get('quantity'), 'Quantity')
        price_per_unit = parse_float(data.get('price_per_unit'), 'Price per unit')
        total = parse_float(data.get('total_amount'), 'Total amount')
        if total is None and quantity and price_per_unit is not None:
            total = round(quantity * price_per_unit, 2)
        if total is None or total <= 0:
            raise ValueError('Please enter a valid total amount')
        animal_type, animal_id = _animal_link(data)

        record = {
            'income_date': parse_date(data.get('income_date'), 'income date') or _today(),
            'income_type': income_type,
            'quantity': quantity,
            'price_per_unit': price_per_unit,
            'total_amount': total,
            'buyer_name': clean_str(data.get('buyer_name')),
            'invoice_number': clean_str(data.get('invoice_number')),
            'payment_status': require_choice(data.get('payment_status') or 'pending', PAYMENT_STATUSES, 'payment_status'),
            'description': clean_str(data.get('description')),
            'animal_type': animal_type,
            'animal_id': animal_id,
            'created_by': created_by,
            'is_deleted': False,
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow()
        }
        result = get_org_db(org_code).income_records.insert_one(record)
        return str(result.inserted_id)

    @staticmethod
    def find_all(org_code, start=None, end=None, income_type=None):
        query = {'is_deleted': False}
        if income_type:
            query['income_type'] = income_type
        if start or end:
            query['income_date'] = {}
            if start:
                query['income_date']['$gte'] = start
            if end:
                query['income_date']['$lte'] = end
        return list(get_org_db(org_code).income_records.find(query).sort('income_date', -1))

    @staticmethod
    def update_payment_status(org_code, record_id, payment_status):
        require_choice(payment_status, PAYMENT_STATUSES, 'payment_status')
        get_org_db(org_code).income_records.update_one(
            {'_id': ObjectId(record_id)},
            {'$set': {'payment_status': payment_status, 'updated_at': datetime.utcnow()}}
        )

    @staticmethod
    def delete_record(org_code, record_id):
        now = datetime.utcnow()
        get_org_db(org_code).income_records.update_one(
            {'_id': ObjectId(record_id)},
            {'$set': {'is_deleted': True, 'deleted_at': now, 'updated_at': now}}
        )

class ExpenseRecord:
    @staticmethod
    def create_record(org_code, data, created_by='system', feed_record_id=None):
        amount = parse_float(data.get('amount'), 'Amount')
        if amount is None or amount <= 0:
            raise ValueError('Please enter a valid amount')
        description = clean_str(data.get('description'))
        if not description:
            raise ValueError('Please enter a description')
        animal_type, animal_id = _animal_link(data)

        record = {
            'expense_date': parse_date(data.get('expense_date'), 'expense date') or _today(),
            'expense_category': require_choice(data.get('expense_category') or 'other', EXPENSE_CATEGORIES, 'expense_category'),
            'amount': amount,
            'description': description,
            'vendor': clean_str(data.get('vendor')),
            'invoice_number': clean_str(data.get('invoice_number')),
            'notes': clean_str(data.get('notes')),
            'animal_type': animal_type,
            'animal_id': animal_id,
            'feed_record_id': feed_record_id,
            'created_by': created_by,
            'is_deleted': False,
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow()
        }
        result = get_org_db(org_code).expense_records.insert_one(record)
        return str(result.inserted_id)

    @staticmethod
    def find_all(org_code, start=None, end=None, category=None):
        query = {'is_deleted': False}
        if category:
            query['expense_category'] = category
        if start or end:
            query['expense_date'] = {}
            if start:
                query['expense_date']['$gte'] = start
            if end:
                query['expense_date']['$lte'] = end
        return list(get_org_db(org_code).expense_records.find(query).sort('expense_date', -1))

    @staticmethod
    def delete_record(org_code, record_id):
        now = datetime.utcnow()
        get_org_db(org_code).expense_records.update_one(
            {'_id': ObjectId(record_id)},
            {'$set': {'is_deleted': True, 'deleted_at': now, 'updated_at': now}}
        )

class Budget:
    @staticmethod
    def _clean_fields(data):
        fields = {}
        if 'budget_name' in data:
            fields['budget_name'] = clean_str(data.get('budget_name'))
            if not fields['budget_name']:
                raise ValueError('Please enter a budget name')
        for key in ('start_date', 'end_date'):
            if key in data:
                fields[key] = parse_date(data.get(key), key.replace('_', ' '), required=True)
        for category in BUDGET_CATEGORIES:
            key = f'{category}_budget'
            if key in data:
                fields[key] = parse_float(data.get(key), key) or 0
        if 'revenue_target' in data:
            fields['revenue_target'] = parse_float(data.get('revenue_target'), 'Revenue target') or 0
        if 'status' in data:
            fields['status'] = require_choice(data.get('status'), BUDGET_STATUSES, 'status')
        if 'notes' in data:
            fields['notes'] = clean_str(data.get('notes'))
        return fields

    @staticmethod
    def create_budget(org_code, data, created_by='system'):
        fields = Budget._clean_fields(data)
        if not fields.get('budget_name'):
            raise ValueError('Please enter a budget name')
        if not fields.get('start_date') or not fields.get('end_date'):
            raise ValueError('Start and end dates are required')
        if fields['end_date'] < fields['start_date']:
            raise ValueError('End date must be on or after start date')
        budget = {f'{c}_budget': 0 for c in BUDGET_CATEGORIES}
        budget.update({'revenue_target': 0, 'status': 'active', 'notes': None})
        budget.update(fields)
        budget.update({
            'created_by': created_by,
            'created_at': datetime.utcnow(),
            'updated_at': datetime.utcnow()
        })
        result = get_org_db(org_code).budgets.insert_one(budget)
        return str(result.inserted_id)

    @staticmethod
    def find_by_id(org_code, budget_id):
        return get_org_db(org_code).budgets.find_one({'_id': ObjectId(budget_id)})

    @staticmethod
    def find_all(org_code, status=None):
        query = {}
        if status:
            query['status'] = status
        return list(get_org_db(org_code).budgets.find(query).sort('start_date', -1))

    @staticmethod
    def update_budget(org_code, budget_id, data):
        fields = Budget._clean_fields(data)
        fields['updated_at'] = datetime.utcnow()
        result = get_org_db(org_code).budgets.update_one(
            {'_id': ObjectId(budget_id)},
            {'$set': fields}
        )
        if result.matched_count == 0:
            raise LookupError('Budget not found')

    @staticmethod
    def delete_budget(org_code, budget_id):
        get_org_db(org_code).budgets.delete_one({'_id': ObjectId(budget_id)})

    @staticmethod
    def compare_to_actual(org_code, budget):
        """Budgeted vs actual spend per category over the budget period"""
        actual = {c: 0.0 for c in BUDGET_CATEGORIES}
        for expense in ExpenseRecord.find_all(org_code, budget['start_date'], budget['end_date']):
            actual[budget_category(expense['expense_category'])] += expense.get('amount') or 0
        revenue = sum(r.get('total_amount') or 0 for r in IncomeRecord.find_all(org_code, budget['start_date'], budget['end_date']))

        categories = []
        for category in BUDGET_CATEGORIES:
            budgeted = budget.get(f'{category}_budget') or 0
            spent = round(actual[category], 2)
            categories.append({
                'category': category,
                'budgeted': budgeted,
                'actual': spent,
                'remaining': round(budgeted - spent, 2),
                'percent_used': round(spent / budgeted * 100, 1) if budgeted > 0 else 0
            })
        total_budgeted = sum(c['budgeted'] for c in categories)
        total_actual = round(sum(c['actual'] for c in categories), 2)
        return {
            'budget_id': budget['_id'],
            'budget_name': budget.get('budget_name'),
            'categories': categories,
            'total_budgeted': total_budgeted,
            'total_actual': total_actual,
            'percent_used': round(total_actual / total_budgeted * 100, 1) if total_budgeted > 0 else 0,
            'revenue_target': budget.get('revenue_target') or 0,
            'actual_revenue': round(revenue, 2)
        }

class FinancialReport:
    @staticmethod
    def default_range(now=None):
        """Last 30 days up to today"""
        today = parse_date(now or datetime.utcnow())
        return today - timedelta(days=30), today

    @staticmethod
    def summary(org_code, start=None, end=None):
        """Totals per expense category, income per type group and net profit"""
        default_start, default_end = FinancialReport.default_range()
        start = start or default_start
        end = end or default_end

        income_groups = {'piglet_sales': 0.0, 'cull_sales': 0.0, 'breeding_stock_sales': 0.0, 'other_income': 0.0}
        for income in IncomeRecord.find_all(org_code, start, end):
            amount = income.get('total_amount') or 0
            income_type = income.get('income_type')
            if income_type == 'piglet_sale':
                income_groups['piglet_sales'] += amount
            elif income_type == 'cull_sow_sale':
                income_groups['cull_sales'] += amount
            elif income_type in ('breeding_stock_sale', 'boar_sale'):
                income_groups['breeding_stock_sales'] += amount
            else:
                income_groups['other_income'] += amount

        expense_groups = {f'{c}_costs': 0.0 for c in EXPENSE_CATEGORIES}
        for expense in ExpenseRecord.find_all(org_code, start, end):
            expense_groups[f"{expense['expense_category']}_costs"] += expense.get('amount') or 0

        total_revenue = round(sum(income_groups.values()), 2)
        total_expenses = round(sum(expense_groups.values()), 2)
        summary = {k: round(v, 2) for k, v in income_groups.items()}
        summary.update({k: round(v, 2) for k, v in expense_groups.items()})
        summary.update({
            'start_date': start,
            'end_date': end,
            'total_revenue': total_revenue,
            'total_expenses': total_expenses,
            'net_profit': round(total_revenue - total_expenses, 2),
            'profit_margin': round((total_revenue - total_expenses) / total_revenue * 100, 1) if total_revenue > 0 else 0
        })
        return summary

    @staticmethod
    def animal_profit_loss(org_code, animal_type, animal_id):
        """Revenue and costs attributed to one animal"""
        org_db = get_org_db(org_code)
        animal_oid = ObjectId(animal_id)
        link = {'animal_type': animal_type, 'animal_id': animal_oid, 'is_deleted': False}
        revenue = sum(r.get('total_amount') or 0 for r in org_db.income_records.find(link))
        expenses = sum(r.get('amount') or 0 for r in org_db.expense_records.find(link))
        health_costs = sum(
            r.get('cost') or 0
            for r in org_db.health_records.find({'animal_type': animal_type, 'animal_id': animal_oid})
        )
        total_costs = round(expenses + health_costs, 2)
        profit_loss = round(revenue - total_costs, 2)
        return {
            'animal_type': animal_type,
            'animal_id': animal_oid,
            'total_revenue': round(revenue, 2),
            'total_costs': total_costs,
            'health_costs': round(health_costs, 2),
            'profit_loss': profit_loss,
            'roi_percent': round(profit_loss / total_costs * 100, 1) if total_costs > 0 else 0
        }
