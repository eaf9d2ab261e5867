# ==============================================================================
# staxreports/reporting/generator.py
# ------------------------------------------------------------------------------
# Composes record fetching, filtering, aggregation and the summary into one
# report, and optionally records it in the user's report history.
# ==============================================================================

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy import and_, case
from sqlalchemy.exc import SQLAlchemyError

from staxreports import db
from staxreports.models import DEFAULT_STATUS, STATUS_MILESTONES, ApplicationDecision, GeneratedReport
from .engine import aggregate, filter_records, select_report_view, summarize
from .options import ReportSummary
from .schema import PAID_STATUSES

logger = logging.getLogger(__name__)


def effective_status():
    """SQL twin of the engine's status resolution: stored status, else derived from milestones."""
    derived = case(*[(getattr(ApplicationDecision, column).isnot(None), status)
                     for column, status in STATUS_MILESTONES], else_=DEFAULT_STATUS)
    stored = ApplicationDecision.status
    return case((and_(stored.isnot(None), stored != ''), stored), else_=derived)


class SqlRecordSource:
    """
    Reads application decisions from the local store. Every filter clause is
    pushed down into the SQL query; status clauses match the effective status.
    """

    def fetch(self, filters, report_type='AD'):
        query = ApplicationDecision.query
        status = effective_status()
        if filters.date_from is not None:
            query = query.filter(ApplicationDecision.submitted_date >= filters.date_from)
        if filters.date_to is not None:
            query = query.filter(ApplicationDecision.submitted_date <= filters.date_to)
        for column, values in filters.membership_clauses():
            target = status if column == 'status' else getattr(ApplicationDecision, column)
            query = query.filter(target.in_(values))
        if report_type == 'AP':
            query = query.filter(status.in_(PAID_STATUSES))

        decisions = query.order_by(ApplicationDecision.submitted_date.desc(), ApplicationDecision.id).all()
        logger.info(f"Fetched {len(decisions)} application decisions for a {report_type} report.")
        return [decision.to_record() for decision in decisions]


@dataclass
class ReportResult:
    """Outcome of one report generation. `error` is set whenever `success` is False."""
    success: bool
    rows: List[dict] = field(default_factory=list)
    summary: ReportSummary = field(default_factory=ReportSummary)
    record_count: int = 0
    error: Optional[str] = None
    report_id: Optional[str] = None

    def as_dict(self):
        if not self.success:
            return {'success': False, 'error': self.error}
        return {
            'success': True,
            'data': self.rows,
            'summary': self.summary.as_dict(),
            'recordCount': self.record_count,
            'reportId': self.report_id,
        }


class ReportGenerator:
    """Runs the filter -> aggregate/summarize pipeline for a ReportConfig."""

    def __init__(self, source=None):
        self.source = source or SqlRecordSource()

    def generate(self, config, user_id=None, as_of=None):
        """
        Produces the report described by `config`.

        Args:
            config (ReportConfig): A validated report configuration.
            user_id (str): When given, the report is stored in that user's history.
            as_of (date): Day that relative date ranges are resolved against.

        Returns:
            ReportResult: Grouped rows (or the raw filtered records when the
            config has no grouping) plus the summary. Failures are reported
            through `success`/`error` instead of being raised.
        """
        as_of = as_of or date.today()
        try:
            filters = config.filters.resolved(as_of)
            fetched = self.source.fetch(filters, config.report_type)
            records = select_report_view(filter_records(fetched, filters), config.report_type)

            if config.group_by:
                rows = aggregate(records, config.group_by, config.metrics)
            else:
                rows = records
            summary = summarize(records)
        except Exception as e:
            logger.error(f"Report generation failed for '{config.name}': {e}", exc_info=True)
            return ReportResult(success=False, error=str(e) or e.__class__.__name__)

        report_id = None
        if user_id:
            report_id = self._save_history(config, summary, len(records), user_id)

        return ReportResult(success=True, rows=rows, summary=summary,
                            record_count=len(records), report_id=report_id)

    def _save_history(self, config, summary, record_count, user_id):
        entry = GeneratedReport(
            user_id=user_id,
            preset_id=config.preset_id,
            name=config.name,
            config=config.as_dict(),
            result_summary=summary.as_dict(),
            record_count=record_count,
        )
        try:
            db.session.add(entry)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning(f"Could not save report history for user {user_id}: {e}")
            return None
        return entry.id
