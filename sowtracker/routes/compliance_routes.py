from flask import Blueprint, jsonify, g, Response
from datetime import datetime
import logging
from sowtracker.models.sow import Sow
from sowtracker.models.farm_settings import FarmSettings
from sowtracker.services import compliance
from sowtracker.services.compliance_pdf import generate_farm_wide_pdf, generate_individual_pdf
from sowtracker.services.housing_service import location_history_for_sow
from sowtracker.routes.auth_routes import organization_access_required
from sowtracker.utils.serialization import serialize
from sowtracker.utils.csv_export import csv_response
from sowtracker.utils.responses import error_response, not_found

logger = logging.getLogger(__name__)

compliance_bp = Blueprint('compliance', __name__, url_prefix='/api/organizations/<organization_id>/compliance')

def _pdf_response(pdf_buffer, filename):
    return Response(
        pdf_buffer.getvalue(),
        mimetype='application/pdf',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )

@compliance_bp.route('/report', methods=['GET'])
@organization_access_required('view')
def compliance_report(organization_id):
    try:
        report = compliance.compliance_report(g.org_code)
        return jsonify({
            'success': True,
            'prop12_compliance_enabled': FarmSettings.is_prop12_enabled(g.org_code),
            'report': serialize(report)
        })
    except Exception as e:
        return error_response(e)

@compliance_bp.route('/sows/<sow_id>', methods=['GET'])
@organization_access_required('view')
def sow_compliance(organization_id, sow_id):
    try:
        sow = Sow.find_by_id(g.org_code, sow_id)
        if not sow:
            return not_found('Sow not found')
        return jsonify({
            'success': True,
            'compliance': serialize(compliance.sow_compliance(g.org_code, sow)),
            'location_history': serialize(location_history_for_sow(g.org_code, sow_id))
        })
    except Exception as e:
        return error_response(e)

@compliance_bp.route('/report/export', methods=['GET'])
@organization_access_required('view')
def export_compliance_csv(organization_id):
    report = compliance.compliance_report(g.org_code)
    return csv_response(compliance.report_csv_rows(report), f"prop12-compliance-{report['generated_at'].strftime('%Y-%m-%d')}")

@compliance_bp.route('/report/pdf', methods=['GET'])
@organization_access_required('view')
def export_compliance_pdf(organization_id):
    """Farm-wide Prop 12 audit document"""
    report = compliance.compliance_report(g.org_code)
    farm_name = FarmSettings.get_settings(g.org_code).get('farm_name')
    pdf_buffer = generate_farm_wide_pdf(report, farm_name)
    return _pdf_response(pdf_buffer, f"prop12-farm-report-{report['generated_at'].strftime('%Y%m%d')}.pdf")

@compliance_bp.route('/sows/<sow_id>/pdf', methods=['GET'])
@organization_access_required('view')
def export_sow_pdf(organization_id, sow_id):
    """Individual sow audit trail"""
    try:
        sow = Sow.find_by_id(g.org_code, sow_id)
        if not sow:
            return not_found('Sow not found')
        now = datetime.utcnow()
        row = compliance.sow_compliance(g.org_code, sow, now)
        history = list(reversed(location_history_for_sow(g.org_code, sow_id)))
        farm_name = FarmSettings.get_settings(g.org_code).get('farm_name')
        pdf_buffer = generate_individual_pdf(row, history, farm_name, now)
        tag = ''.join(c for c in (sow.get('ear_tag') or 'sow') if c.isalnum() or c in '-_')
        return _pdf_response(pdf_buffer, f"prop12-sow-{tag}-{now.strftime('%Y%m%d')}.pdf")
    except Exception as e:
        return error_response(e)

@compliance_bp.route('/alerts', methods=['POST'])
@organization_access_required('manage_organization')
def send_alerts(organization_id):
    """Notify owners about every non-compliant sow"""
    try:
        report = compliance.compliance_report(g.org_code)
        sent = compliance.send_compliance_alerts(g.organization, report)
        return jsonify({'success': True, 'sent': sent, 'non_compliant': report['summary']['non_compliant']})
    except Exception as e:
        return error_response(e)
