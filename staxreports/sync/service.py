# ==============================================================================
# staxreports/sync/service.py
# ------------------------------------------------------------------------------
# Replaces the local application decision table with a fresh pull from
# Salesforce and keeps a SyncLog entry for every attempt.
# ==============================================================================

import logging
from dataclasses import dataclass
from typing import Optional

from flask import current_app

from staxreports import db
from staxreports.models import ApplicationDecision, SyncLog, utcnow
from .salesforce import APPLICATION_DECISION_SOQL, SalesforceSession, transform_record

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    success: bool
    record_count: int = 0
    error: Optional[str] = None

    def as_dict(self):
        data = {'success': self.success, 'recordCount': self.record_count}
        if self.error:
            data['error'] = self.error
        return data


def build_session():
    """A SalesforceSession configured from the current app."""
    config = current_app.config
    return SalesforceSession(
        client_id=config.get('SALESFORCE_CLIENT_ID'),
        client_secret=config.get('SALESFORCE_CLIENT_SECRET'),
        instance_url=config['SALESFORCE_INSTANCE_URL'],
        api_version=config.get('SALESFORCE_API_VERSION', 'v59.0'),
        token_ttl=config.get('SALESFORCE_TOKEN_TTL', 3600),
        timeout=config.get('HTTP_TIMEOUT', 30.0),
    )


def _finish_log(log_id, status, records_synced=0, error_message=None):
    log = db.session.get(SyncLog, log_id)
    log.status = status
    log.completed_at = utcnow()
    log.records_synced = records_synced
    log.error_message = error_message
    db.session.commit()


def sync_application_decisions(session):
    """
    Pulls every active application decision and swaps it in for the current
    table contents in a single transaction.
    """
    log = SyncLog(started_at=utcnow(), status='running')
    db.session.add(log)
    db.session.commit()
    log_id = log.id

    logger.info("Starting Salesforce data sync...")
    try:
        raw_records = session.query(APPLICATION_DECISION_SOQL)
        logger.info(f"Fetched {len(raw_records)} records from Salesforce")

        synced_at = utcnow()
        # keyed by id: the last occurrence of a decision wins
        by_id = {}
        for raw in raw_records:
            record = transform_record(raw)
            if record['id']:
                by_id[record['id']] = record
        records = list(by_id.values())
        ApplicationDecision.query.delete()
        db.session.add_all(ApplicationDecision(synced_at=synced_at, **record) for record in records)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Sync failed: {e}", exc_info=True)
        _finish_log(log_id, 'failed', error_message=str(e))
        return SyncResult(success=False, error=str(e))

    _finish_log(log_id, 'success', records_synced=len(records))
    logger.info(f"Sync completed successfully: {len(records)} records")
    return SyncResult(success=True, record_count=len(records))


def last_sync():
    return SyncLog.query.order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).first()


def sync_history(limit=10):
    return SyncLog.query.order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit).all()
