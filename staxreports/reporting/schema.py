# ==============================================================================
# staxreports/reporting/schema.py
# ------------------------------------------------------------------------------
# Closed vocabularies for report configurations: report types, grouping
# dimensions, metric columns and filter keys.
# This module is the single source of truth for the validator and the engine.
# ==============================================================================

REPORT_TYPES = ('AD', 'AP')
DEFAULT_REPORT_TYPE = 'AD'

# Statuses that count towards each funnel stage
APPROVED_STATUSES = ('Approved', 'Executed', 'Live')
EXECUTED_STATUSES = ('Executed', 'Live')
DECLINED_STATUS = 'Declined'
LIVE_STATUS = 'Live'

# The "approved & paid" view only contains deals that have paid out
PAID_STATUSES = EXECUTED_STATUSES

# Grouping dimension -> record column. None marks a derived temporal key.
GROUP_BY_DIMENSIONS = {
    'lender': 'lender_name',
    'retailer': 'retailer_name',
    'parent_company': 'parent_company',
    'bdm': 'bdm_name',
    'product': 'finance_product',
    'prime_subprime': 'prime_subprime',
    'status': 'status',
    'month': None,
    'week': None,
}

# Alternative spellings accepted from clients
GROUP_BY_ALIASES = {
    'lender_name': 'lender',
    'retailer_name': 'retailer',
    'parentCompany': 'parent_company',
    'bdm_name': 'bdm',
    'finance_product': 'product',
    'financeProduct': 'product',
    'primeSubprime': 'prime_subprime',
}

UNKNOWN_GROUP_VALUE = 'Unknown'

# Every column the aggregator emits per group, in output order
METRIC_COLUMNS = (
    'volume', 'loan_value', 'commission', 'average_loan',
    'approved_count', 'declined_count', 'executed_count', 'live_count',
    'approval_rate', 'execution_rate', 'completion_rate',
)

METRIC_ALIASES = {
    'totalApplications': 'volume',
    'loanValue': 'loan_value',
    'totalLoanValue': 'loan_value',
    'totalCommission': 'commission',
    'avgLoanSize': 'average_loan',
    'averageLoan': 'average_loan',
    'approvedCount': 'approved_count',
    'declinedCount': 'declined_count',
    'executedCount': 'executed_count',
    'settledCount': 'executed_count',
    'liveCount': 'live_count',
    'approvalRate': 'approval_rate',
    'executionRate': 'execution_rate',
    'settlementRate': 'execution_rate',
    'completionRate': 'completion_rate',
}

# Report-builder metric ids the report service never computed; accepted and dropped
IGNORED_METRICS = ('pendingCount', 'avgCommission', 'conversionRate')

RATE_COLUMNS = ('approval_rate', 'execution_rate', 'completion_rate')

# Filter key (wire name) -> record column for set-membership clauses
MEMBERSHIP_FILTERS = {
    'lenders': 'lender_name',
    'retailers': 'retailer_name',
    'statuses': 'status',
    'bdms': 'bdm_name',
    'financeProducts': 'finance_product',
    'primeSubprime': 'prime_subprime',
}

DATE_FILTER_KEYS = ('dateFrom', 'dateTo', 'dateRange')
FILTER_KEYS = tuple(MEMBERSHIP_FILTERS) + DATE_FILTER_KEYS

CONFIG_KEYS = ('name', 'reportType', 'groupBy', 'metrics', 'filters', 'presetId')

SCHEDULE_TYPES = ('daily', 'weekly', 'monthly')
SCHEDULE_KEYS = ('name', 'config', 'scheduleType', 'scheduleDay', 'scheduleTime', 'recipients', 'isActive')

# Relative date-range presets, resolved against the day a report runs
DATE_RANGE_PRESETS = (
    'today', 'yesterday', 'last7days', 'last30days', 'last90days',
    'thisMonth', 'lastMonth', 'thisQuarter', 'lastQuarter', 'thisYear',
)
