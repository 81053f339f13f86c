"""Prop 12 audit documents rendered with reportlab"""
from datetime import datetime
from io import BytesIO
from xml.sax.saxutils import escape
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.lib import colors
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER
from sowtracker.services.compliance import MAX_HOURS_24H, MAX_HOURS_30D

GREEN = '#008000'
RED = '#FF0000'
ORANGE = '#FFA500'
HEADER_RED = colors.HexColor('#DC3545')

INDIVIDUAL_STATEMENT = ('This report satisfies California Proposition 12 record-keeping '
                        'requirements for a 2-year audit trail.')
FARM_WIDE_STATEMENT = ('This report satisfies California Proposition 12 record-keeping '
                       'requirements for farm-wide compliance verification.')

def _styles():
    styles = getSampleStyleSheet()
    return {
        'title': ParagraphStyle('ComplianceTitle', parent=styles['Heading1'], fontSize=16,
                                alignment=TA_CENTER, spaceAfter=4),
        'section': ParagraphStyle('ComplianceSection', parent=styles['Heading2'], fontSize=13,
                                  spaceBefore=10, spaceAfter=6),
        'normal': styles['Normal'],
        'statement': ParagraphStyle('ComplianceStatement', parent=styles['Italic'], fontSize=9,
                                    textColor=colors.HexColor('#404040'), spaceBefore=12),
    }

def _colored(text, color, style, bold=False):
    content = f'<b>{text}</b>' if bold else text
    return Paragraph(f'<font color="{color}">{content}</font>', style)

def _header(story, styles, subtitle, farm_name, generated_at):
    story.append(Paragraph('CALIFORNIA PROPOSITION 12', styles['title']))
    story.append(Paragraph(subtitle, styles['title']))
    story.append(Spacer(1, 0.15*inch))
    story.append(Paragraph(f'Farm: {escape(farm_name or "")}', styles['normal']))
    story.append(Paragraph(f"Report Generated: {generated_at.strftime('%m/%d/%Y %I:%M %p')}", styles['normal']))

def _table_style(extra=None):
    commands = [
        ('BACKGROUND', (0, 0), (-1, 0), HEADER_RED),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 8),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#F2F2F2')]),
        ('GRID', (0, 0), (-1, -1), 0.25, colors.HexColor('#CCCCCC')),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
    ]
    return TableStyle(commands + (extra or []))

def _format_hours(value):
    return f'{value:.1f}'

def generate_farm_wide_pdf(report, farm_name, output_buffer=None):
    """Farm-wide summary: statistics plus a per-sow table

    Returns:
        BytesIO positioned at the start of the PDF
    """
    if output_buffer is None:
        output_buffer = BytesIO()
    doc = SimpleDocTemplate(output_buffer, pagesize=letter,
                            rightMargin=0.5*inch, leftMargin=0.5*inch,
                            topMargin=0.5*inch, bottomMargin=0.5*inch)
    styles = _styles()
    story = []
    _header(story, styles, 'FARM-WIDE COMPLIANCE SUMMARY', farm_name, report.get('generated_at') or datetime.utcnow())

    summary = report['summary']
    story.append(Paragraph('Summary Statistics', styles['section']))
    story.append(Paragraph(f"Total Breeding Sows: {summary['total']}", styles['normal']))
    story.append(_colored(f"Compliant: {summary['compliant']} ({summary['compliance_rate']}%)", GREEN, styles['normal']))
    story.append(_colored(f"Non-Compliant: {summary['non_compliant']}", RED, styles['normal']))
    story.append(_colored(f"At Risk: {summary['at_risk']}", ORANGE, styles['normal']))

    story.append(Paragraph('Individual Sow Compliance', styles['section']))
    table_data = [['Ear Tag', 'Name', 'Compliant', '24h Hours', '30d Hours', 'Housing', 'Floor Space']]
    extra_style = []
    for index, row in enumerate(report['sows'], start=1):
        table_data.append([
            row['sow_ear_tag'],
            row['sow_name'] or '-',
            'Yes' if row['is_compliant'] else 'No',
            _format_hours(row['confinement_hours_24h']),
            _format_hours(row['confinement_hours_30d']),
            row['current_housing'] or 'None',
            f"{row['floor_space']} sq ft" if row['floor_space'] else 'Not specified',
        ])
        extra_style.append(('TEXTCOLOR', (2, index), (2, index), colors.HexColor(GREEN if row['is_compliant'] else RED)))
        extra_style.append(('FONTNAME', (2, index), (2, index), 'Helvetica-Bold'))
    table = Table(table_data, colWidths=[1.0*inch, 1.0*inch, 0.8*inch, 0.8*inch, 0.8*inch, 1.6*inch, 1.3*inch],
                  repeatRows=1)
    table.setStyle(_table_style(extra_style + [('ALIGN', (2, 0), (4, -1), 'CENTER')]))
    story.append(table)

    story.append(Paragraph(FARM_WIDE_STATEMENT, styles['statement']))
    doc.build(story)
    output_buffer.seek(0)
    return output_buffer

def generate_individual_pdf(sow_row, location_history, farm_name, now=None, output_buffer=None):
    """Audit trail for one sow

    Args:
        sow_row: Row from compliance.evaluate_sow
        location_history: Entries (oldest first) with housing_unit_name,
            moved_in_date, moved_out_date and reason
    """
    now = now or datetime.utcnow()
    if output_buffer is None:
        output_buffer = BytesIO()
    doc = SimpleDocTemplate(output_buffer, pagesize=letter,
                            rightMargin=0.5*inch, leftMargin=0.5*inch,
                            topMargin=0.5*inch, bottomMargin=0.5*inch)
    styles = _styles()
    story = []
    _header(story, styles, 'COMPLIANCE AUDIT TRAIL', farm_name, now)

    story.append(Paragraph('Sow Information', styles['section']))
    story.append(Paragraph(f"Ear Tag: {escape(sow_row['sow_ear_tag'] or '')}", styles['normal']))
    if sow_row.get('sow_name'):
        story.append(Paragraph(f"Name: {escape(sow_row['sow_name'])}", styles['normal']))
    if sow_row['is_compliant']:
        story.append(_colored('Compliance Status: COMPLIANT', GREEN, styles['normal'], bold=True))
    else:
        story.append(_colored('Compliance Status: NON-COMPLIANT', RED, styles['normal'], bold=True))
    story.append(Paragraph(f"Current Housing: {escape(sow_row.get('current_housing') or 'Not Assigned')}", styles['normal']))
    floor_space = sow_row.get('floor_space')
    story.append(Paragraph(f"Floor Space: {f'{floor_space} sq ft' if floor_space else 'Not Specified'}", styles['normal']))

    story.append(Paragraph('Confinement Hours', styles['section']))
    hours_24h = sow_row['confinement_hours_24h']
    hours_30d = sow_row['confinement_hours_30d']
    story.append(_colored(f'Last 24 hours: {hours_24h:.2f} hours (Limit: {MAX_HOURS_24H} hours)',
                          RED if hours_24h > MAX_HOURS_24H else GREEN, styles['normal']))
    story.append(_colored(f'Last 30 days: {hours_30d:.2f} hours (Limit: {MAX_HOURS_30D} hours)',
                          RED if hours_30d > MAX_HOURS_30D else GREEN, styles['normal']))

    story.append(Paragraph(f'Location History ({len(location_history)} entries)', styles['section']))
    table_data = [['#', 'Housing Unit', 'Moved In', 'Moved Out', 'Duration', 'Reason']]
    for index, entry in enumerate(location_history, start=1):
        moved_in = entry['moved_in_date']
        moved_out = entry.get('moved_out_date')
        duration_days = ((moved_out or now) - moved_in).days
        table_data.append([
            str(index),
            entry.get('housing_unit_name') or 'Unknown',
            moved_in.strftime('%m/%d/%Y %I:%M %p'),
            moved_out.strftime('%m/%d/%Y %I:%M %p') if moved_out else 'Current',
            f'{duration_days} days',
            entry.get('reason') or 'N/A',
        ])
    table = Table(table_data, colWidths=[0.4*inch, 1.6*inch, 1.5*inch, 1.5*inch, 0.8*inch, 1.5*inch], repeatRows=1)
    table.setStyle(_table_style())
    story.append(table)

    story.append(Paragraph(INDIVIDUAL_STATEMENT, styles['statement']))
    doc.build(story)
    output_buffer.seek(0)
    return output_buffer
