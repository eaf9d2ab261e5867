# ==============================================================================
# staxreports/reporting/engine.py
# ------------------------------------------------------------------------------
# The report aggregation engine: record filtering, grouped metrics and the
# whole-result summary. Pure computation over an already fetched record set.
# ==============================================================================

import logging
from datetime import date, datetime

import numpy as np
import pandas as pd

from staxreports.models import DEFAULT_STATUS, STATUS_MILESTONES
from .options import ReportSummary
from .schema import (APPROVED_STATUSES, DECLINED_STATUS, EXECUTED_STATUSES, GROUP_BY_DIMENSIONS,
                     LIVE_STATUS, METRIC_COLUMNS, PAID_STATUSES, UNKNOWN_GROUP_VALUE)

DATE_COLUMNS = ['submitted_date'] + [column for column, _ in STATUS_MILESTONES]
MONEY_COLUMNS = ['loan_amount', 'commission_amount']
FRAME_COLUMNS = (['status', 'lender_name', 'retailer_name', 'parent_company', 'bdm_name',
                  'finance_product', 'prime_subprime'] + MONEY_COLUMNS + DATE_COLUMNS)

COUNT_COLUMNS = ('volume', 'approved_count', 'declined_count', 'executed_count', 'live_count')


# --- Helper Functions ---

def _coerce_date(value):
    """Normalises a date-ish value to 'YYYY-MM-DD' (or None)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if pd.isna(value):
        return None
    text = str(value).strip()
    if not text:
        return None
    if 'T' in text:
        text = text.split('T')[0]
    parts = text.split('/')
    if len(parts) == 3:
        # DD/MM/YYYY as exported by Salesforce reports
        return f"{parts[2]}-{parts[1].zfill(2)}-{parts[0].zfill(2)}"
    return text[:10]


def _resolve_status(frame):
    """Stored status where present, otherwise derived from the milestone dates."""
    conditions = [frame[column].notna().to_numpy() for column, _ in STATUS_MILESTONES]
    choices = [status for _, status in STATUS_MILESTONES]
    derived = pd.Series(np.select(conditions, choices, default=DEFAULT_STATUS), index=frame.index)
    stored = frame['status']
    has_stored = stored.notna() & (stored.astype(str) != '')
    return stored.where(has_stored, derived)


def _prepare_frame(records):
    frame = pd.DataFrame(records, columns=FRAME_COLUMNS)
    for column in DATE_COLUMNS:
        frame[column] = frame[column].map(_coerce_date).astype(object)
    frame['status'] = _resolve_status(frame)
    for column in MONEY_COLUMNS:
        frame[column] = pd.to_numeric(frame[column], errors='coerce').fillna(0.0)
    frame['_submitted'] = pd.to_datetime(frame['submitted_date'], format='%Y-%m-%d', errors='coerce')
    return frame


def _ratio(numerator, denominator, scale=100.0):
    """Vectorised numerator/denominator*scale with 0 wherever the denominator is 0."""
    safe = denominator.where(denominator > 0)
    return (numerator / safe * scale).fillna(0.0)


def _safe_rate(numerator, denominator, scale=100.0):
    return (numerator / denominator) * scale if denominator > 0 else 0.0


def _dimension_values(frame, dimension):
    if dimension == 'month':
        values = frame['_submitted'].dt.strftime('%Y-%m')
    elif dimension == 'week':
        submitted = frame['_submitted']
        monday = submitted - pd.to_timedelta(submitted.dt.weekday, unit='D')
        values = monday.dt.strftime('%Y-%m-%d')
    else:
        values = frame[GROUP_BY_DIMENSIONS[dimension]]
    present = values.notna() & (values.astype(str) != '')
    return values.where(present, UNKNOWN_GROUP_VALUE).astype(str)


def _filter_mask(frame, filters):
    mask = pd.Series(True, index=frame.index)
    if filters.date_from is not None:
        mask &= frame['_submitted'] >= pd.Timestamp(filters.date_from)
    if filters.date_to is not None:
        mask &= frame['_submitted'] <= pd.Timestamp(filters.date_to)
    for column, values in filters.membership_clauses():
        mask &= frame[column].isin(list(values))
    return mask


def _take(records, mask):
    return [records[position] for position in np.flatnonzero(mask.to_numpy())]


# --- Public API ---

def filter_records(records, filters):
    """
    Applies every active filter clause (logical AND) to the records.

    Date bounds are inclusive on the submission date. Membership clauses use
    exact, case-sensitive equality and never match a missing value.
    An empty filter set returns the input unchanged. A relative date range
    that was not resolved by the caller is resolved against today.
    """
    records = list(records)
    if filters is None or filters.is_empty or not records:
        return records
    filters = filters.resolved(date.today())
    frame = _prepare_frame(records)
    selected = _take(records, _filter_mask(frame, filters))
    logging.debug(f"Record filter kept {len(selected)} of {len(records)} records.")
    return selected


def select_report_view(records, report_type):
    """AP reports only see deals that paid out; AD reports see every decision."""
    records = list(records)
    if report_type != 'AP' or not records:
        return records
    frame = _prepare_frame(records)
    return _take(records, frame['status'].isin(PAID_STATUSES))


def aggregate(records, group_by, metrics=()):
    """
    Partitions the records by the grouping dimensions (in caller order) and
    computes the full metric set for every group.

    `metrics` only matters to whoever renders the rows; every metric column is
    always computed. Rows are ordered by volume, largest first, with ties
    broken by the group key so that output is reproducible.
    """
    dimensions = list(group_by)
    if not dimensions:
        raise ValueError("aggregate() needs at least one grouping dimension")

    records = list(records)
    if not records:
        return []

    frame = _prepare_frame(records)
    key_columns = [f'_key_{position}' for position in range(len(dimensions))]
    for column, dimension in zip(key_columns, dimensions):
        frame[column] = _dimension_values(frame, dimension)

    status = frame['status']
    frame['_approved'] = status.isin(APPROVED_STATUSES).astype(int)
    frame['_declined'] = (status == DECLINED_STATUS).astype(int)
    frame['_executed'] = status.isin(EXECUTED_STATUSES).astype(int)
    frame['_live'] = (status == LIVE_STATUS).astype(int)

    grouped = frame.groupby(key_columns, sort=False).agg(
        volume=('_approved', 'count'),
        loan_value=('loan_amount', 'sum'),
        commission=('commission_amount', 'sum'),
        approved_count=('_approved', 'sum'),
        declined_count=('_declined', 'sum'),
        executed_count=('_executed', 'sum'),
        live_count=('_live', 'sum'),
    ).reset_index()

    grouped['average_loan'] = _ratio(grouped['loan_value'], grouped['volume'], scale=1.0)
    grouped['approval_rate'] = _ratio(grouped['approved_count'],
                                      grouped['approved_count'] + grouped['declined_count'])
    grouped['execution_rate'] = _ratio(grouped['executed_count'], grouped['approved_count'])
    grouped['completion_rate'] = _ratio(grouped['live_count'], grouped['executed_count'])

    grouped = grouped.sort_values(['volume'] + key_columns,
                                  ascending=[False] + [True] * len(key_columns))

    rows = []
    for group in grouped.to_dict(orient='records'):
        row = {dimension: group[column] for dimension, column in zip(dimensions, key_columns)}
        for metric in METRIC_COLUMNS:
            row[metric] = int(group[metric]) if metric in COUNT_COLUMNS else float(group[metric])
        rows.append(row)

    logging.info(f"Aggregated {len(records)} records into {len(rows)} groups by {dimensions}.")
    return rows


def summarize(records):
    """Whole-result totals and rates; every rate is 0 when its denominator is 0."""
    records = list(records)
    if not records:
        return ReportSummary()

    frame = _prepare_frame(records)
    total = len(frame)
    loan_value = float(frame['loan_amount'].sum())
    commission = float(frame['commission_amount'].sum())

    status = frame['status']
    approved = int(status.isin(APPROVED_STATUSES).sum())
    declined = int((status == DECLINED_STATUS).sum())
    executed = int(status.isin(EXECUTED_STATUSES).sum())

    return ReportSummary(
        total_records=total,
        total_loan_value=loan_value,
        total_commission=commission,
        average_loan_amount=_safe_rate(loan_value, total, scale=1.0),
        approval_rate=_safe_rate(approved, approved + declined),
        execution_rate=_safe_rate(executed, approved),
    )
