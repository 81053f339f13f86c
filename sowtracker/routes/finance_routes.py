from flask import Blueprint, request, jsonify, g
import logging
from sowtracker.models.finance import (
    FeedRecord, IncomeRecord, ExpenseRecord, Budget, FinancialReport, ANIMAL_TYPES
)
from sowtracker.routes.auth_routes import organization_access_required
from sowtracker.utils.serialization import serialize
from sowtracker.utils.forms import parse_date
from sowtracker.utils.csv_export import csv_response, format_date_for_csv
from sowtracker.utils.responses import error_response, not_found

logger = logging.getLogger(__name__)

finance_bp = Blueprint('finance', __name__, url_prefix='/api/organizations/<organization_id>/finance')

def _created_by():
    return str(g.user['_id'])

def _date_range():
    """start/end query parameters, defaulting to the last 30 days"""
    default_start, default_end = FinancialReport.default_range()
    start = parse_date(request.args.get('start_date'), 'start date') or default_start
    end = parse_date(request.args.get('end_date'), 'end date') or default_end
    if end < start:
        raise ValueError('End date must be on or after start date')
    return start, end

@finance_bp.route('/summary', methods=['GET'])
@organization_access_required('view')
def financial_summary(organization_id):
    try:
        start, end = _date_range()
        return jsonify({'success': True, 'summary': serialize(FinancialReport.summary(g.org_code, start, end))})
    except Exception as e:
        return error_response(e)

@finance_bp.route('/profit-loss/<animal_type>/<animal_id>', methods=['GET'])
@organization_access_required('view')
def animal_profit_loss(organization_id, animal_type, animal_id):
    if animal_type not in ANIMAL_TYPES:
        return not_found('Not found.')
    try:
        return jsonify({
            'success': True,
            'profit_loss': serialize(FinancialReport.animal_profit_loss(g.org_code, animal_type, animal_id))
        })
    except Exception as e:
        return error_response(e)

# Feed

@finance_bp.route('/feed', methods=['GET'])
@organization_access_required('view')
def list_feed(organization_id):
    try:
        start, end = _date_range()
        return jsonify({'success': True, 'feed_records': serialize(FeedRecord.find_all(g.org_code, start, end))})
    except Exception as e:
        return error_response(e)

@finance_bp.route('/feed', methods=['POST'])
@organization_access_required('write')
def create_feed(organization_id):
    try:
        record_id = FeedRecord.create_record(g.org_code, request.get_json() or {}, _created_by())
        return jsonify({'success': True, 'id': record_id}), 201
    except Exception as e:
        return error_response(e)

@finance_bp.route('/feed/<record_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_feed(organization_id, record_id):
    try:
        FeedRecord.delete_record(g.org_code, record_id)
        return jsonify({'success': True, 'message': 'Feed record deleted.'})
    except Exception as e:
        return error_response(e)

# Income

@finance_bp.route('/income', methods=['GET'])
@organization_access_required('view')
def list_income(organization_id):
    try:
        start, end = _date_range()
        records = IncomeRecord.find_all(g.org_code, start, end, income_type=request.args.get('income_type'))
        return jsonify({'success': True, 'income_records': serialize(records)})
    except Exception as e:
        return error_response(e)

@finance_bp.route('/income', methods=['POST'])
@organization_access_required('write')
def create_income(organization_id):
    try:
        record_id = IncomeRecord.create_record(g.org_code, request.get_json() or {}, _created_by())
        return jsonify({'success': True, 'id': record_id}), 201
    except Exception as e:
        return error_response(e)

@finance_bp.route('/income/<record_id>/payment-status', methods=['PUT'])
@organization_access_required('write')
def update_payment_status(organization_id, record_id):
    data = request.get_json() or {}
    try:
        IncomeRecord.update_payment_status(g.org_code, record_id, data.get('payment_status'))
        return jsonify({'success': True, 'message': 'Payment status updated.'})
    except Exception as e:
        return error_response(e)

@finance_bp.route('/income/<record_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_income(organization_id, record_id):
    try:
        IncomeRecord.delete_record(g.org_code, record_id)
        return jsonify({'success': True, 'message': 'Income record deleted.'})
    except Exception as e:
        return error_response(e)

# Expenses

@finance_bp.route('/expenses', methods=['GET'])
@organization_access_required('view')
def list_expenses(organization_id):
    try:
        start, end = _date_range()
        records = ExpenseRecord.find_all(g.org_code, start, end, category=request.args.get('category'))
        return jsonify({'success': True, 'expense_records': serialize(records)})
    except Exception as e:
        return error_response(e)

@finance_bp.route('/expenses', methods=['POST'])
@organization_access_required('write')
def create_expense(organization_id):
    try:
        record_id = ExpenseRecord.create_record(g.org_code, request.get_json() or {}, _created_by())
        return jsonify({'success': True, 'id': record_id}), 201
    except Exception as e:
        return error_response(e)

@finance_bp.route('/expenses/<record_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_expense(organization_id, record_id):
    try:
        ExpenseRecord.delete_record(g.org_code, record_id)
        return jsonify({'success': True, 'message': 'Expense deleted.'})
    except Exception as e:
        return error_response(e)

# Budgets

@finance_bp.route('/budgets', methods=['GET'])
@organization_access_required('view')
def list_budgets(organization_id):
    budgets = Budget.find_all(g.org_code, status=request.args.get('status'))
    return jsonify({'success': True, 'budgets': serialize(budgets)})

@finance_bp.route('/budgets', methods=['POST'])
@organization_access_required('write')
def create_budget(organization_id):
    try:
        budget_id = Budget.create_budget(g.org_code, request.get_json() or {}, _created_by())
        return jsonify({'success': True, 'budget': serialize(Budget.find_by_id(g.org_code, budget_id))}), 201
    except Exception as e:
        return error_response(e)

@finance_bp.route('/budgets/<budget_id>', methods=['GET'])
@organization_access_required('view')
def get_budget(organization_id, budget_id):
    """Budget with its budget-vs-actual comparison"""
    try:
        budget = Budget.find_by_id(g.org_code, budget_id)
        if not budget:
            return not_found('Budget not found')
        return jsonify({
            'success': True,
            'budget': serialize(budget),
            'comparison': serialize(Budget.compare_to_actual(g.org_code, budget))
        })
    except Exception as e:
        return error_response(e)

@finance_bp.route('/budgets/<budget_id>', methods=['PUT'])
@organization_access_required('write')
def update_budget(organization_id, budget_id):
    try:
        Budget.update_budget(g.org_code, budget_id, request.get_json() or {})
        return jsonify({'success': True, 'budget': serialize(Budget.find_by_id(g.org_code, budget_id))})
    except Exception as e:
        return error_response(e)

@finance_bp.route('/budgets/<budget_id>', methods=['DELETE'])
@organization_access_required('write')
def delete_budget(organization_id, budget_id):
    try:
        Budget.delete_budget(g.org_code, budget_id)
        return jsonify({'success': True, 'message': 'Budget deleted.'})
    except Exception as e:
        return error_response(e)

@finance_bp.route('/export', methods=['GET'])
@organization_access_required('view')
def export_finance(organization_id):
    """Income and expense rows for the date range as one CSV"""
    try:
        start, end = _date_range()
    except ValueError as e:
        return error_response(e)
    rows = []
    for income in IncomeRecord.find_all(g.org_code, start, end):
        rows.append({
            'Date': format_date_for_csv(income.get('income_date')),
            'Kind': 'Income',
            'Category': income.get('income_type'),
            'Description': income.get('description'),
            'Amount': income.get('total_amount'),
            'Party': income.get('buyer_name'),
            'Payment Status': income.get('payment_status'),
            'Notes': income.get('notes')
        })
    for expense in ExpenseRecord.find_all(g.org_code, start, end):
        rows.append({
            'Date': format_date_for_csv(expense.get('expense_date')),
            'Kind': 'Expense',
            'Category': expense.get('expense_category'),
            'Description': expense.get('description'),
            'Amount': expense.get('amount'),
            'Party': expense.get('vendor'),
            'Payment Status': None,
            'Notes': expense.get('notes')
        })
    return csv_response(rows, f"finance-{start.strftime('%Y-%m-%d')}-to-{end.strftime('%Y-%m-%d')}")
