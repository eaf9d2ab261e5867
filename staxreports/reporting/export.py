# ==============================================================================
# staxreports/reporting/export.py
# ------------------------------------------------------------------------------
# Builds the formatted .xlsx workbook for a report: a styled "Data" sheet with
# a totals row and a "Summary" sheet with the headline figures.
# ==============================================================================

import io
import re

import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.page import PageMargins

from .schema import RATE_COLUMNS

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

HEADER_FONT = Font(bold=True, color='FFFFFFFF', size=11)
HEADER_FILL = PatternFill(fill_type='solid', fgColor='FF1F5A96')
TOTAL_FILL = PatternFill(fill_type='solid', fgColor='FFE7E6E6')
BOLD = Font(bold=True)

NUMBER_FORMAT = '#,##0.00'
MONEY_FORMAT = '£#,##0.00'
RATE_FORMAT = '0.00'
MAX_COLUMN_WIDTH = 50

# Numeric columns where a column total means nothing
NON_ADDITIVE_COLUMNS = set(RATE_COLUMNS) | {'average_loan', 'apr', 'priority', 'term_months', 'deferral_months'}


def format_header(name):
    """'loan_value' / 'loanValue' -> 'Loan Value'."""
    spaced = re.sub(r'([a-z0-9])([A-Z])', r'\1 \2', name).replace('_', ' ')
    return ' '.join(word[:1].upper() + word[1:] for word in spaced.split())


def export_columns(config):
    """Columns to emit for a grouped report: dimensions then the requested metrics."""
    if config.group_by and config.metrics:
        return list(config.group_by) + list(config.metrics)
    return None


def export_filename(report_name, day):
    slug = re.sub(r'[^a-z0-9]', '-', report_name, flags=re.IGNORECASE).lower()
    return f"{slug}-{day.isoformat()}.xlsx"


def _column_width(header, values):
    longest = max([len(header) + 2] + [len(str(value)) for value in values if value is not None])
    return min(longest + 2, MAX_COLUMN_WIDTH)


def _style_header(sheet):
    for cell in sheet[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)


def _style_data_sheet(sheet, frame, numeric, totals):
    _style_header(sheet)
    last_row = len(frame) + 1
    sheet.auto_filter.ref = f"A1:{get_column_letter(len(frame.columns))}{last_row}"

    for position, column in enumerate(frame.columns, start=1):
        letter = get_column_letter(position)
        sheet.column_dimensions[letter].width = _column_width(column, frame[column].tolist())
        horizontal = 'right' if column in numeric else 'left'
        for row in range(2, last_row + 1):
            cell = sheet.cell(row=row, column=position)
            cell.alignment = Alignment(horizontal=horizontal, vertical='center')
            if column in numeric:
                cell.number_format = NUMBER_FORMAT

    total_row = last_row + 2
    label = sheet.cell(row=total_row, column=1, value='TOTAL')
    label.font = BOLD
    for position, column in enumerate(frame.columns, start=1):
        cell = sheet.cell(row=total_row, column=position)
        cell.fill = TOTAL_FILL
        if position > 1 and column in totals:
            letter = get_column_letter(position)
            cell.value = f"=SUM({letter}2:{letter}{last_row})"
            cell.number_format = NUMBER_FORMAT
            cell.font = BOLD
            cell.alignment = Alignment(horizontal='right', vertical='center')

    sheet.page_setup.paperSize = sheet.PAPERSIZE_A4
    sheet.page_setup.orientation = 'landscape'
    sheet.page_margins = PageMargins(left=0.5, right=0.5, top=0.75, bottom=0.75, header=0.5, footer=0.5)


def _summary_frame(summary):
    return pd.DataFrame([
        ('Total Records', summary.total_records),
        ('Total Loan Value', summary.total_loan_value),
        ('Total Commission', summary.total_commission),
        ('Average Loan Amount', summary.average_loan_amount),
        ('Approval Rate (%)', round(summary.approval_rate, 2)),
        ('Execution Rate (%)', round(summary.execution_rate, 2)),
    ], columns=['Metric', 'Value'])


def _style_summary_sheet(sheet, frame):
    _style_header(sheet)
    sheet.column_dimensions['A'].width = 25
    sheet.column_dimensions['B'].width = 20
    for row, metric in enumerate(frame['Metric'], start=2):
        sheet.cell(row=row, column=1).font = BOLD
        value = sheet.cell(row=row, column=2)
        if 'Rate' in metric:
            value.number_format = RATE_FORMAT
        elif metric != 'Total Records':
            value.number_format = MONEY_FORMAT


def to_spreadsheet(rows, summary=None, report_name='Report', columns=None):
    """
    Renders report rows (and optionally the summary) as .xlsx bytes.

    Args:
        rows (list): Grouped rows or raw records, all with the same keys.
        summary (ReportSummary): Headline figures for the "Summary" sheet.
        report_name (str): Used as the workbook title.
        columns (list): Optional subset and order of row keys to emit.
    """
    buffer = io.BytesIO()
    if not rows:
        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            pd.DataFrame({'No Data': ['No records to export']}).to_excel(writer, sheet_name='No Data', index=False)
            writer.book.properties.title = report_name
        return buffer.getvalue()

    with pd.ExcelWriter(buffer, engine='openpyxl', date_format='DD/MM/YYYY') as writer:
        frame = pd.DataFrame(rows)
        if columns:
            frame = frame[[column for column in columns if column in frame.columns]]
        for column in frame.columns:
            if column.endswith('_date'):
                frame[column] = pd.to_datetime(frame[column], errors='coerce').dt.date

        numeric = {column for column in frame.columns
                   if pd.api.types.is_numeric_dtype(frame[column]) and not pd.api.types.is_bool_dtype(frame[column])}
        totals = numeric - NON_ADDITIVE_COLUMNS

        headers = {column: format_header(column) for column in frame.columns}
        frame = frame.rename(columns=headers)
        frame.to_excel(writer, sheet_name='Data', index=False)
        _style_data_sheet(writer.sheets['Data'], frame,
                          {headers[column] for column in numeric}, {headers[column] for column in totals})

        if summary is not None:
            summary_frame = _summary_frame(summary)
            summary_frame.to_excel(writer, sheet_name='Summary', index=False)
            _style_summary_sheet(writer.sheets['Summary'], summary_frame)

        writer.book.properties.title = report_name

    return buffer.getvalue()
