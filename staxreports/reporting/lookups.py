# ==============================================================================
# staxreports/reporting/lookups.py
# ------------------------------------------------------------------------------
# Read-only queries that feed the report builder and the dashboard: the
# distinct values available for each filter and the headline totals.
# ==============================================================================

from sqlalchemy import func

from staxreports import db
from staxreports.models import ApplicationDecision
from staxreports.sync.service import last_sync as latest_sync
from .schema import MEMBERSHIP_FILTERS, UNKNOWN_GROUP_VALUE


def _distinct_values(column_name):
    column = getattr(ApplicationDecision, column_name)
    rows = (db.session.query(column).filter(column.isnot(None), column != '')
            .distinct().order_by(column).all())
    return [value for (value,) in rows]


def filter_options():
    """Distinct values for every membership filter plus the submitted date span."""
    options = {wire_name: _distinct_values(column) for wire_name, column in MEMBERSHIP_FILTERS.items()}
    earliest, latest = db.session.query(func.min(ApplicationDecision.submitted_date),
                                        func.max(ApplicationDecision.submitted_date)).one()
    options['dateRange'] = {
        'min': earliest.isoformat() if earliest else None,
        'max': latest.isoformat() if latest else None,
    }
    return options


def dashboard_stats():
    """Headline totals, a per-status breakdown and the most recent sync."""
    total, loan_value, commission = db.session.query(
        func.count(ApplicationDecision.id),
        func.coalesce(func.sum(ApplicationDecision.loan_amount), 0.0),
        func.coalesce(func.sum(ApplicationDecision.commission_amount), 0.0),
    ).one()

    breakdown = {}
    for status, count in (db.session.query(ApplicationDecision.status, func.count(ApplicationDecision.id))
                          .group_by(ApplicationDecision.status).all()):
        key = status or UNKNOWN_GROUP_VALUE
        breakdown[key] = breakdown.get(key, 0) + count

    last_sync = latest_sync()
    return {
        'totalApplications': int(total),
        'totalLoanValue': float(loan_value),
        'totalCommission': float(commission),
        'statusBreakdown': breakdown,
        'lastSync': last_sync.to_dict() if last_sync else None,
    }
