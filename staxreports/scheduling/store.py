# ==============================================================================
# staxreports/scheduling/store.py
# ------------------------------------------------------------------------------
# Persistence for scheduled reports and their run history. Every function
# commits its own unit of work and rolls the session back on failure.
# ==============================================================================

import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from staxreports import db
from staxreports.models import ScheduledReport, ScheduledReportRun, utcnow
from .calculator import compute_next_run

logger = logging.getLogger(__name__)

TIMING_ATTRIBUTES = ('schedule_type', 'schedule_day', 'schedule_time', 'is_active')


class RunAlreadySealedError(RuntimeError):
    """A run that already reached success/failed may not be updated again."""


def _commit():
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


# --- Schedule CRUD ---

def list_schedules(user_id):
    return (ScheduledReport.query.filter_by(user_id=user_id)
            .order_by(ScheduledReport.created_at.desc()).all())


def get_schedule(schedule_id, user_id=None):
    """The schedule, or None when missing or owned by someone else."""
    schedule = db.session.get(ScheduledReport, schedule_id)
    if schedule is None or (user_id is not None and schedule.user_id != user_id):
        return None
    return schedule


def create_schedule(user_id, data, now=None):
    """
    Creates a schedule from validated attributes (see validate_schedule_payload)
    and computes its first run instant.
    """
    now = now or utcnow()
    schedule = ScheduledReport(user_id=user_id, is_active=data.get('is_active', True),
                               **{key: value for key, value in data.items() if key != 'is_active'})
    schedule.next_run_at = _initial_next_run(schedule, now)
    db.session.add(schedule)
    _commit()
    logger.info(f"Created scheduled report '{schedule.name}' ({schedule.id}), next run {schedule.next_run_at}")
    return schedule


def update_schedule(schedule, data, now=None):
    """Applies validated attributes; the next run is recomputed when timing or activation changes."""
    now = now or utcnow()
    for key, value in data.items():
        setattr(schedule, key, value)
    if any(key in data for key in TIMING_ATTRIBUTES):
        schedule.next_run_at = _initial_next_run(schedule, now)
    _commit()
    return schedule


def delete_schedule(schedule):
    db.session.delete(schedule)
    _commit()
    logger.info(f"Deleted scheduled report {schedule.id}")


def _initial_next_run(schedule, now):
    if not schedule.is_active:
        return None
    return compute_next_run(schedule.schedule_type, schedule.schedule_time, schedule.schedule_day, now)


# --- Scheduler operations ---

def find_due(now):
    """Active schedules whose next run instant has been reached, oldest first."""
    return (ScheduledReport.query
            .filter(ScheduledReport.is_active.is_(True),
                    ScheduledReport.next_run_at.isnot(None),
                    ScheduledReport.next_run_at <= now)
            .order_by(ScheduledReport.next_run_at, ScheduledReport.id)
            .all())


def claim(schedule, next_run_at, now):
    """
    Atomically takes ownership of one due execution of `schedule`.

    A single conditional UPDATE advances next_run_at and stamps last_run_at,
    but only while the row still carries the next_run_at value observed when
    the schedule was found due. Returns False when another tick got there first.
    """
    statement = (
        update(ScheduledReport)
        .where(ScheduledReport.id == schedule.id,
               ScheduledReport.is_active.is_(True),
               ScheduledReport.next_run_at == schedule.next_run_at,
               ScheduledReport.next_run_at <= now)
        .values(next_run_at=next_run_at, last_run_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.session.execute(statement)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return result.rowcount == 1


def deactivate(schedule_id, now=None):
    """Switches a schedule off; it is no longer considered due."""
    now = now or utcnow()
    db.session.execute(
        update(ScheduledReport)
        .where(ScheduledReport.id == schedule_id)
        .values(is_active=False, next_run_at=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    _commit()
    logger.warning(f"Scheduled report {schedule_id} has been deactivated.")


# --- Run history ---

def create_run(schedule_id, now=None):
    run = ScheduledReportRun(scheduled_report_id=schedule_id, started_at=now or utcnow(),
                             status=ScheduledReportRun.STATUS_RUNNING)
    db.session.add(run)
    _commit()
    return run


def seal_run(run_id, status, record_count=None, result_summary=None, error_message=None,
             email_sent=False, now=None):
    """
    Moves a running run to its terminal status. Raises RunAlreadySealedError
    for a run that is already sealed.
    """
    if status not in (ScheduledReportRun.STATUS_SUCCESS, ScheduledReportRun.STATUS_FAILED):
        raise ValueError(f"Runs can only be sealed as success or failed, not {status!r}")

    run = db.session.get(ScheduledReportRun, run_id)
    if run is None:
        raise LookupError(f"Scheduled report run {run_id} does not exist")
    if run.is_sealed:
        raise RunAlreadySealedError(f"Run {run_id} is already {run.status}")

    run.status = status
    run.completed_at = now or utcnow()
    run.record_count = record_count
    run.result_summary = result_summary
    run.error_message = error_message
    run.email_sent = bool(email_sent)
    _commit()
    return run


def list_runs(schedule_id, limit=20):
    return (ScheduledReportRun.query.filter_by(scheduled_report_id=schedule_id)
            .order_by(ScheduledReportRun.started_at.desc())
            .limit(limit).all())
