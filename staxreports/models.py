# ==============================================================================
# staxreports/models.py
# ------------------------------------------------------------------------------
# Defines the database schema using SQLAlchemy ORM models.
# ==============================================================================

import uuid
from datetime import date, datetime, timezone

from staxreports import db


def utcnow():
    """Naive UTC timestamp; every datetime column in this schema is UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id():
    return str(uuid.uuid4())


def _iso(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


# Status hierarchy, highest priority first: (milestone column, status)
STATUS_MILESTONES = [
    ('cancelled_date', 'Cancelled'),
    ('expired_date', 'Expired'),
    ('live_date', 'Live'),
    ('contract_signed_date', 'Executed'),
    ('approved_date', 'Approved'),
    ('declined_date', 'Declined'),
    ('referred_date', 'Referred'),
]
DEFAULT_STATUS = 'Created'


def derive_status(record):
    """Works out the application status from whichever milestone dates are set."""
    for column, status in STATUS_MILESTONES:
        if record.get(column):
            return status
    return DEFAULT_STATUS


class ApplicationDecision(db.Model):
    """
    One finance-application decision synced from Salesforce.
    The reporting core only ever reads these rows.
    """
    __tablename__ = 'application_decisions'
    id = db.Column(db.String(64), primary_key=True)
    application_number = db.Column(db.String(64))
    lender_name = db.Column(db.String(128), index=True)
    status = db.Column(db.String(32), index=True)

    submitted_date = db.Column(db.Date, index=True)
    approved_date = db.Column(db.Date)
    declined_date = db.Column(db.Date)
    contract_signed_date = db.Column(db.Date)
    live_date = db.Column(db.Date)
    cancelled_date = db.Column(db.Date)
    expired_date = db.Column(db.Date)
    referred_date = db.Column(db.Date)

    loan_amount = db.Column(db.Float)
    deposit_amount = db.Column(db.Float)
    goods_amount = db.Column(db.Float)
    commission_amount = db.Column(db.Float)

    retailer_name = db.Column(db.String(128), index=True)
    parent_company = db.Column(db.String(128))
    bdm_name = db.Column(db.String(128), index=True)
    finance_product = db.Column(db.String(128))
    prime_subprime = db.Column(db.String(16))
    apr = db.Column(db.Float)
    term_months = db.Column(db.Integer)
    deferral_months = db.Column(db.Integer)
    priority = db.Column(db.Integer)

    synced_at = db.Column(db.DateTime, default=utcnow)

    RECORD_FIELDS = (
        'id', 'application_number', 'lender_name', 'status', 'submitted_date',
        'approved_date', 'declined_date', 'contract_signed_date', 'live_date',
        'cancelled_date', 'expired_date', 'referred_date', 'loan_amount',
        'deposit_amount', 'goods_amount', 'commission_amount', 'retailer_name',
        'parent_company', 'bdm_name', 'finance_product', 'prime_subprime', 'apr',
        'term_months', 'deferral_months', 'priority',
    )

    def __repr__(self):
        return f'<ApplicationDecision {self.id}: {self.lender_name} ({self.status})>'

    def to_record(self):
        """Plain dict view with ISO date strings, as consumed by the engine."""
        return {field: _iso(getattr(self, field)) for field in self.RECORD_FIELDS}


class ReportPreset(db.Model):
    """A saved report configuration; built-in presets have no owner."""
    __tablename__ = 'report_presets'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(64), index=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.String(512))
    config = db.Column(db.JSON, nullable=False)
    is_built_in = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f'<ReportPreset {self.id}: {self.name}>'

    def to_dict(self):
        return {
            'id': self.id, 'userId': self.user_id, 'name': self.name,
            'description': self.description, 'config': self.config,
            'isBuiltIn': self.is_built_in, 'createdAt': _iso(self.created_at),
        }


class GeneratedReport(db.Model):
    """
    History entry written every time a user generates a report on demand.
    """
    __tablename__ = 'generated_reports'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(64), index=True, nullable=False)
    preset_id = db.Column(db.String(36), db.ForeignKey('report_presets.id', ondelete='SET NULL'))
    name = db.Column(db.String(128))
    config = db.Column(db.JSON, nullable=False)
    result_summary = db.Column(db.JSON)
    record_count = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, index=True, default=utcnow)

    def __repr__(self):
        return f'<GeneratedReport {self.id}: {self.name}>'

    def to_dict(self):
        return {
            'id': self.id, 'userId': self.user_id, 'presetId': self.preset_id,
            'name': self.name, 'config': self.config,
            'resultSummary': self.result_summary, 'recordCount': self.record_count,
            'createdAt': _iso(self.created_at),
        }


class ScheduledReport(db.Model):
    """
    A recurring report definition. While `is_active` is set, `next_run_at`
    always points at the next future execution instant.
    """
    __tablename__ = 'scheduled_reports'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(64), index=True, nullable=False)
    name = db.Column(db.String(128), nullable=False)
    config = db.Column(db.JSON, nullable=False)
    schedule_type = db.Column(db.String(16), nullable=False)  # daily | weekly | monthly
    schedule_day = db.Column(db.Integer)  # 0-6 (Sunday=0) weekly, 1-31 monthly
    schedule_time = db.Column(db.Time, nullable=False)
    recipients = db.Column(db.JSON, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_run_at = db.Column(db.DateTime)
    next_run_at = db.Column(db.DateTime, index=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    runs = db.relationship('ScheduledReportRun', backref='scheduled_report', lazy='dynamic',
                           cascade='all, delete-orphan')

    def __repr__(self):
        return f'<ScheduledReport {self.id}: {self.name} ({self.schedule_type})>'

    def to_dict(self):
        return {
            'id': self.id, 'userId': self.user_id, 'name': self.name,
            'config': self.config, 'scheduleType': self.schedule_type,
            'scheduleDay': self.schedule_day,
            'scheduleTime': self.schedule_time.strftime('%H:%M') if self.schedule_time else None,
            'recipients': self.recipients, 'isActive': self.is_active,
            'lastRunAt': _iso(self.last_run_at), 'nextRunAt': _iso(self.next_run_at),
            'createdAt': _iso(self.created_at), 'updatedAt': _iso(self.updated_at),
        }


class ScheduledReportRun(db.Model):
    """
    One execution of a scheduled report: created as 'running', sealed once
    as 'success' or 'failed' and never touched again.
    """
    __tablename__ = 'scheduled_report_runs'
    STATUS_RUNNING = 'running'
    STATUS_SUCCESS = 'success'
    STATUS_FAILED = 'failed'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    scheduled_report_id = db.Column(db.String(36), db.ForeignKey('scheduled_reports.id', ondelete='CASCADE'),
                                    nullable=False, index=True)
    started_at = db.Column(db.DateTime, default=utcnow)
    completed_at = db.Column(db.DateTime)
    status = db.Column(db.String(16), default=STATUS_RUNNING, nullable=False, index=True)
    record_count = db.Column(db.Integer)
    result_summary = db.Column(db.JSON)
    error_message = db.Column(db.Text)
    email_sent = db.Column(db.Boolean, default=False, nullable=False)

    def __repr__(self):
        return f'<ScheduledReportRun {self.id}: {self.status}>'

    @property
    def is_sealed(self):
        return self.status != self.STATUS_RUNNING

    def to_dict(self):
        return {
            'id': self.id, 'scheduledReportId': self.scheduled_report_id,
            'startedAt': _iso(self.started_at), 'completedAt': _iso(self.completed_at),
            'status': self.status, 'recordCount': self.record_count,
            'resultSummary': self.result_summary, 'errorMessage': self.error_message,
            'emailSent': self.email_sent,
        }


class SyncLog(db.Model):
    """Bookkeeping for each pull of application decisions from Salesforce."""
    __tablename__ = 'sync_log'
    id = db.Column(db.Integer, primary_key=True)
    started_at = db.Column(db.DateTime, index=True, default=utcnow)
    completed_at = db.Column(db.DateTime)
    status = db.Column(db.String(16), default='running', nullable=False)
    records_synced = db.Column(db.Integer, default=0)
    error_message = db.Column(db.Text)

    def __repr__(self):
        return f'<SyncLog {self.id}: {self.status}>'

    def to_dict(self):
        return {
            'id': self.id, 'startedAt': _iso(self.started_at),
            'completedAt': _iso(self.completed_at), 'status': self.status,
            'recordsSynced': self.records_synced, 'errorMessage': self.error_message,
        }
