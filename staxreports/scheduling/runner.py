# ==============================================================================
# staxreports/scheduling/runner.py
# ------------------------------------------------------------------------------
# One scheduler tick: finds every due scheduled report, claims it, generates
# it, exports and emails the workbook, and records the run.
#
# Each schedule is executed in isolation. A failing schedule is sealed as a
# failed run and still moves on to its next recurrence; it never stops the
# other schedules in the same tick.
# ==============================================================================

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime, time
from typing import Any, List, Optional

from flask import current_app

from staxreports.models import ScheduledReportRun
from staxreports.reporting.export import export_columns, export_filename, to_spreadsheet
from staxreports.reporting.generator import ReportGenerator
from staxreports.reporting.validator import ReportValidationError, parse_report_config
from . import store
from .calculator import ScheduleError, next_run_for
from .delivery import Attachment, ResendMailer, render_report_email

logger = logging.getLogger(__name__)

OUTCOME_SUCCESS = 'succeeded'
OUTCOME_FAILED = 'failed'
OUTCOME_SKIPPED = 'skipped'


@dataclass
class TickResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    def as_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class DueSchedule:
    """
    Detached snapshot of a due ScheduledReport, safe to hand to a worker
    thread. `next_run_at` is the value observed when the schedule was found due.
    """
    id: str
    name: str
    config: Any
    schedule_type: str
    schedule_time: time
    schedule_day: Optional[int]
    recipients: List[str]
    next_run_at: datetime

    @classmethod
    def from_model(cls, schedule):
        return cls(id=schedule.id, name=schedule.name, config=schedule.config,
                   schedule_type=schedule.schedule_type, schedule_time=schedule.schedule_time,
                   schedule_day=schedule.schedule_day, recipients=list(schedule.recipients or []),
                   next_run_at=schedule.next_run_at)


class ScheduledReportRunner:
    """
    Executes due scheduled reports.

    Args:
        generator (ReportGenerator): Produces the report for each schedule.
        exporter (callable): (rows, summary, report_name, columns=...) -> xlsx bytes.
        mailer: Object with send(recipients, subject, body_html, attachment) -> bool.
        max_workers (int): Schedules executed in parallel; 1 runs them inline.
    """

    def __init__(self, generator=None, exporter=to_spreadsheet, mailer=None, max_workers=1):
        self.generator = generator or ReportGenerator()
        self.exporter = exporter
        self.mailer = mailer
        self.max_workers = max(1, int(max_workers or 1))

    def run_tick(self, now):
        """
        Executes every schedule that is due at `now` and returns the counts.
        Individual schedule failures are counted, never raised.
        """
        try:
            due = [DueSchedule.from_model(schedule) for schedule in store.find_due(now)]
            logger.info(f"Found {len(due)} scheduled reports to execute")
            result = TickResult(processed=len(due))

            if self.max_workers == 1 or len(due) <= 1:
                outcomes = [self._execute_isolated(schedule, now) for schedule in due]
            else:
                app = current_app._get_current_object()
                with ThreadPoolExecutor(max_workers=min(self.max_workers, len(due)),
                                        thread_name_prefix='scheduled-report') as pool:
                    futures = [pool.submit(self._execute_in_context, app, schedule, now) for schedule in due]
                    outcomes = [future.result() for future in futures]
        except Exception:
            logger.exception("Scheduled report tick aborted")
            raise

        for outcome in outcomes:
            setattr(result, outcome, getattr(result, outcome) + 1)

        logger.info(f"Scheduled report tick completed: {result.succeeded} succeeded, "
                    f"{result.failed} failed, {result.skipped} skipped")
        return result

    def _execute_in_context(self, app, schedule, now):
        # Each worker gets its own app context and therefore its own DB session
        with app.app_context():
            return self._execute_isolated(schedule, now)

    def _execute_isolated(self, schedule, now):
        try:
            return self._execute(schedule, now)
        except Exception:
            logger.exception(f"Failed to execute scheduled report: {schedule.name} ({schedule.id})")
            return OUTCOME_FAILED

    def _execute(self, schedule, now):
        try:
            next_run_at = next_run_for(schedule, now)
        except ScheduleError as e:
            logger.error(f"Scheduled report '{schedule.name}' ({schedule.id}) has no valid next run: {e}")
            store.deactivate(schedule.id, now)
            return OUTCOME_FAILED

        if not store.claim(schedule, next_run_at, now):
            logger.info(f"Scheduled report '{schedule.name}' ({schedule.id}) was already claimed, skipping")
            return OUTCOME_SKIPPED

        logger.info(f"Executing scheduled report: {schedule.name} ({schedule.id}), next run {next_run_at}")
        run = store.create_run(schedule.id, now)
        try:
            return self._generate_and_deliver(schedule, run.id, now)
        except Exception as e:
            logger.exception(f"Scheduled report '{schedule.name}' ({schedule.id}) failed")
            store.seal_run(run.id, ScheduledReportRun.STATUS_FAILED,
                           error_message=str(e) or e.__class__.__name__, now=now)
            return OUTCOME_FAILED

    def _generate_and_deliver(self, schedule, run_id, now):
        try:
            config = parse_report_config({**(schedule.config or {}), 'name': schedule.name})
        except ReportValidationError as e:
            logger.error(f"Scheduled report '{schedule.name}' has an invalid configuration: {e}")
            store.seal_run(run_id, ScheduledReportRun.STATUS_FAILED,
                           error_message=f"Invalid report configuration: {e}", now=now)
            return OUTCOME_FAILED

        result = self.generator.generate(config, as_of=now.date())
        if not result.success:
            store.seal_run(run_id, ScheduledReportRun.STATUS_FAILED, error_message=result.error, now=now)
            logger.warning(f"Scheduled report '{schedule.name}' failed: {result.error}")
            return OUTCOME_FAILED

        workbook = self.exporter(result.rows, result.summary, schedule.name, columns=export_columns(config))
        email_sent = self._deliver(schedule, result.summary, workbook, now)

        store.seal_run(run_id, ScheduledReportRun.STATUS_SUCCESS, record_count=result.record_count,
                       result_summary=result.summary.as_dict(), email_sent=email_sent, now=now)
        logger.info(f"Successfully executed scheduled report: {schedule.name} "
                    f"({result.record_count} records, email sent: {email_sent})")
        return OUTCOME_SUCCESS

    def _deliver(self, schedule, summary, workbook, now):
        """Emails the workbook; any failure only downgrades email_sent."""
        if self.mailer is None:
            logger.info(f"No mailer configured, '{schedule.name}' will not be emailed")
            return False
        try:
            subject, body_html = render_report_email(schedule.name, summary, now)
            attachment = Attachment(filename=export_filename(schedule.name, now.date()), content=workbook)
            return bool(self.mailer.send(schedule.recipients, subject, body_html, attachment))
        except Exception:
            logger.exception(f"Delivery of scheduled report '{schedule.name}' failed")
            return False


def build_runner():
    """A runner wired from the current app's configuration."""
    config = current_app.config
    mailer = ResendMailer(api_key=config.get('RESEND_API_KEY'),
                          from_email=config.get('REPORT_FROM_EMAIL'),
                          api_url=config.get('RESEND_API_URL', 'https://api.resend.com/emails'),
                          timeout=config.get('HTTP_TIMEOUT', 30.0))
    return ScheduledReportRunner(ReportGenerator(), to_spreadsheet, mailer,
                                 max_workers=config.get('SCHEDULER_MAX_WORKERS', 1))
