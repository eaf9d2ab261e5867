# ==============================================================================
# staxreports/reporting/options.py
# ------------------------------------------------------------------------------
# Typed report configuration objects: filters, report config and the summary
# produced for every report.
# ==============================================================================

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Optional, Tuple

from .schema import DEFAULT_REPORT_TYPE, MEMBERSHIP_FILTERS


def _quarter_start(day):
    return date(day.year, 3 * ((day.month - 1) // 3) + 1, 1)


def resolve_date_range(preset, today):
    """Turns a relative preset such as 'last30days' into (date_from, date_to)."""
    if preset == 'today':
        return today, today
    if preset == 'yesterday':
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    if preset == 'last7days':
        return today - timedelta(days=7), today
    if preset == 'last30days':
        return today - timedelta(days=30), today
    if preset == 'last90days':
        return today - timedelta(days=90), today
    if preset == 'thisMonth':
        return today.replace(day=1), today
    if preset == 'lastMonth':
        last_month_end = today.replace(day=1) - timedelta(days=1)
        return last_month_end.replace(day=1), last_month_end
    if preset == 'thisQuarter':
        return _quarter_start(today), today
    if preset == 'lastQuarter':
        last_quarter_end = _quarter_start(today) - timedelta(days=1)
        return _quarter_start(last_quarter_end), last_quarter_end
    if preset == 'thisYear':
        return date(today.year, 1, 1), today
    raise ValueError(f"Unknown date range preset: {preset}")


@dataclass(frozen=True)
class ReportFilters:
    """
    Optional constraints applied to the record set. An empty tuple means
    "no constraint on this field", never "match nothing".

    `date_range` holds a relative preset; it takes precedence over the fixed
    bounds once resolved against the day the report runs.
    """
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    date_range: Optional[str] = None
    lenders: Tuple[str, ...] = ()
    retailers: Tuple[str, ...] = ()
    statuses: Tuple[str, ...] = ()
    bdms: Tuple[str, ...] = ()
    finance_products: Tuple[str, ...] = ()
    prime_subprime: Tuple[str, ...] = ()

    # wire name -> attribute name
    _ATTRIBUTES = {
        'lenders': 'lenders',
        'retailers': 'retailers',
        'statuses': 'statuses',
        'bdms': 'bdms',
        'financeProducts': 'finance_products',
        'primeSubprime': 'prime_subprime',
    }

    def membership_clauses(self):
        """Yields (record column, allowed values) for every active clause."""
        for wire_name, column in MEMBERSHIP_FILTERS.items():
            values = getattr(self, self._ATTRIBUTES[wire_name])
            if values:
                yield column, values

    @property
    def is_empty(self):
        return (self.date_from is None and self.date_to is None and self.date_range is None
                and not any(self.membership_clauses()))

    def resolved(self, today):
        """Copy with any relative date range replaced by concrete bounds."""
        if self.date_range is None:
            return self
        date_from, date_to = resolve_date_range(self.date_range, today)
        return replace(self, date_from=date_from, date_to=date_to, date_range=None)

    def as_dict(self):
        data = {}
        if self.date_range:
            data['dateRange'] = self.date_range
        if self.date_from:
            data['dateFrom'] = self.date_from.isoformat()
        if self.date_to:
            data['dateTo'] = self.date_to.isoformat()
        for wire_name, attribute in self._ATTRIBUTES.items():
            values = getattr(self, attribute)
            if values:
                data[wire_name] = list(values)
        return data


@dataclass(frozen=True)
class ReportConfig:
    """Everything needed to produce one report."""
    name: str = 'Custom Report'
    report_type: str = DEFAULT_REPORT_TYPE
    group_by: Tuple[str, ...] = ()
    metrics: Tuple[str, ...] = ()
    filters: ReportFilters = field(default_factory=ReportFilters)
    preset_id: Optional[str] = None

    def as_dict(self):
        data = {
            'name': self.name,
            'reportType': self.report_type,
            'groupBy': list(self.group_by),
            'metrics': list(self.metrics),
            'filters': self.filters.as_dict(),
        }
        if self.preset_id:
            data['presetId'] = self.preset_id
        return data


@dataclass(frozen=True)
class ReportSummary:
    """Whole-result totals, computed independently of any grouping."""
    total_records: int = 0
    total_loan_value: float = 0.0
    total_commission: float = 0.0
    average_loan_amount: float = 0.0
    approval_rate: float = 0.0
    execution_rate: float = 0.0

    def as_dict(self):
        return {
            'totalRecords': self.total_records,
            'totalLoanValue': self.total_loan_value,
            'totalCommission': self.total_commission,
            'averageLoanAmount': self.average_loan_amount,
            'approvalRate': self.approval_rate,
            'executionRate': self.execution_rate,
        }
