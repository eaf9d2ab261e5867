# ==============================================================================
# staxreports/api/routes.py
# ------------------------------------------------------------------------------
# JSON endpoints of the reporting service: on-demand reports and exports,
# presets, history, scheduled report management and the cron triggers.
# ==============================================================================

import hmac
import io
from datetime import date
from functools import wraps

from flask import current_app, jsonify, request, send_file, session
from sqlalchemy import or_

from staxreports import db
from staxreports.api import bp
from staxreports.models import GeneratedReport, ReportPreset, utcnow
from staxreports.reporting.export import XLSX_MIMETYPE, export_columns, export_filename, to_spreadsheet
from staxreports.reporting.generator import ReportGenerator
from staxreports.reporting.lookups import dashboard_stats, filter_options
from staxreports.reporting.validator import ReportValidationError, parse_report_config, validate_schedule_payload
from staxreports.scheduling import store
from staxreports.scheduling.calculator import ScheduleError
from staxreports.scheduling.runner import build_runner
from staxreports.sync.service import build_session, sync_application_decisions, sync_history

MAX_LIST_LIMIT = 100


# --- Helper Functions ---

def current_user_id():
    return session.get('user_id')


def _limit(default):
    limit = request.args.get('limit', default, type=int)
    return max(1, min(limit, MAX_LIST_LIMIT))


def user_required(f):
    """Rejects requests without a signed-in user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user_id():
            return jsonify({'error': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function


def cron_secret_required(f):
    """Protects cron triggers with the shared CRON_SECRET bearer token."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get('CRON_SECRET')
        if secret:
            supplied = request.headers.get('Authorization', '')
            if not hmac.compare_digest(supplied.encode(), f'Bearer {secret}'.encode()):
                current_app.logger.warning('Unauthorized cron request')
                return jsonify({'error': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function


@bp.errorhandler(ReportValidationError)
def handle_validation_error(error):
    return jsonify({'error': 'Invalid request', 'details': error.errors}), 400


def _not_found(what):
    return jsonify({'error': f'{what} not found'}), 404


# --- Reports ---

@bp.route('/reports/generate', methods=['POST'])
def generate_report():
    config = parse_report_config(request.get_json(silent=True))
    result = ReportGenerator().generate(config, user_id=current_user_id())
    if not result.success:
        return jsonify({'error': result.error}), 500
    return jsonify(result.as_dict())


@bp.route('/reports/export', methods=['POST'])
def export_report():
    config = parse_report_config(request.get_json(silent=True))
    result = ReportGenerator().generate(config)
    if not result.success:
        return jsonify({'error': result.error}), 500

    workbook = to_spreadsheet(result.rows, result.summary, config.name, columns=export_columns(config))
    current_app.logger.info(f"Exported '{config.name}' with {result.record_count} records")
    return send_file(io.BytesIO(workbook), mimetype=XLSX_MIMETYPE, as_attachment=True,
                     download_name=export_filename(config.name, date.today()))


@bp.route('/reports/history', methods=['GET'])
@user_required
def report_history():
    entries = (GeneratedReport.query.filter_by(user_id=current_user_id())
               .order_by(GeneratedReport.created_at.desc()).limit(_limit(20)).all())
    return jsonify({'history': [entry.to_dict() for entry in entries]})


# --- Presets ---

@bp.route('/reports/presets', methods=['GET'])
def list_presets():
    query = ReportPreset.query
    user_id = current_user_id()
    if user_id:
        query = query.filter(or_(ReportPreset.is_built_in.is_(True), ReportPreset.user_id == user_id))
    else:
        query = query.filter(ReportPreset.is_built_in.is_(True))
    return jsonify({'presets': [preset.to_dict() for preset in query.order_by(ReportPreset.name).all()]})


@bp.route('/reports/presets', methods=['POST'])
@user_required
def create_preset():
    payload = request.get_json(silent=True) or {}
    name = payload.get('name')
    if not isinstance(name, str) or not name.strip():
        raise ReportValidationError(["'name' is required."])
    config = parse_report_config(payload.get('config') or {})

    preset = ReportPreset(user_id=current_user_id(), name=name.strip(),
                          description=payload.get('description'), config=config.as_dict(),
                          is_built_in=False)
    db.session.add(preset)
    db.session.commit()
    current_app.logger.info(f"Saved preset '{preset.name}' for user {preset.user_id}")
    return jsonify({'preset': preset.to_dict()}), 201


@bp.route('/reports/presets/<preset_id>', methods=['DELETE'])
@user_required
def delete_preset(preset_id):
    preset = db.session.get(ReportPreset, preset_id)
    if preset is None or preset.is_built_in or preset.user_id != current_user_id():
        return _not_found('Preset')
    db.session.delete(preset)
    db.session.commit()
    return jsonify({'success': True})


# --- Lookups ---

@bp.route('/filters/options', methods=['GET'])
def get_filter_options():
    return jsonify(filter_options())


@bp.route('/dashboard', methods=['GET'])
def get_dashboard():
    return jsonify(dashboard_stats())


# --- Scheduled reports ---

@bp.route('/reports/schedules', methods=['GET'])
@user_required
def list_schedules():
    schedules = store.list_schedules(current_user_id())
    return jsonify({'schedules': [schedule.to_dict() for schedule in schedules]})


@bp.route('/reports/schedules', methods=['POST'])
@user_required
def create_schedule():
    data, errors = validate_schedule_payload(request.get_json(silent=True))
    if errors:
        raise ReportValidationError(errors)
    schedule = store.create_schedule(current_user_id(), data, utcnow())
    return jsonify({'schedule': schedule.to_dict()}), 201


@bp.route('/reports/schedules/<schedule_id>', methods=['GET'])
@user_required
def get_schedule(schedule_id):
    schedule = store.get_schedule(schedule_id, current_user_id())
    if schedule is None:
        return _not_found('Scheduled report')
    return jsonify({'schedule': schedule.to_dict()})


@bp.route('/reports/schedules/<schedule_id>', methods=['PUT'])
@user_required
def update_schedule(schedule_id):
    schedule = store.get_schedule(schedule_id, current_user_id())
    if schedule is None:
        return _not_found('Scheduled report')
    data, errors = validate_schedule_payload(request.get_json(silent=True), partial=True)
    if errors:
        raise ReportValidationError(errors)
    try:
        schedule = store.update_schedule(schedule, data, utcnow())
    except ScheduleError as e:
        db.session.rollback()
        raise ReportValidationError([str(e)])
    return jsonify({'schedule': schedule.to_dict()})


@bp.route('/reports/schedules/<schedule_id>', methods=['DELETE'])
@user_required
def delete_schedule(schedule_id):
    schedule = store.get_schedule(schedule_id, current_user_id())
    if schedule is None:
        return _not_found('Scheduled report')
    store.delete_schedule(schedule)
    return jsonify({'success': True})


@bp.route('/reports/schedules/<schedule_id>/runs', methods=['GET'])
@user_required
def list_schedule_runs(schedule_id):
    if store.get_schedule(schedule_id, current_user_id()) is None:
        return _not_found('Scheduled report')
    runs = store.list_runs(schedule_id, limit=_limit(20))
    return jsonify({'runs': [run.to_dict() for run in runs]})


# --- Cron triggers ---

@bp.route('/cron/reports', methods=['GET'])
@cron_secret_required
def cron_reports():
    current_app.logger.info('Starting scheduled reports cron job')
    try:
        result = build_runner().run_tick(utcnow())
    except Exception as e:
        current_app.logger.error(f"Cron job failed: {e}", exc_info=True)
        return jsonify({'error': 'Cron job failed', 'message': str(e)}), 500
    return jsonify({'success': True, **result.as_dict()})


@bp.route('/cron/sync', methods=['GET'])
@cron_secret_required
def cron_sync():
    current_app.logger.info(f"Cron sync triggered at {utcnow().isoformat()}")
    with build_session() as salesforce:
        result = sync_application_decisions(salesforce)
    payload = {**result.as_dict(), 'timestamp': utcnow().isoformat()}
    if not result.success:
        return jsonify(payload), 500
    payload['message'] = f"Synced {result.record_count} records from Salesforce"
    return jsonify(payload)


@bp.route('/sync/status', methods=['GET'])
def sync_status():
    history = sync_history(limit=_limit(10))
    return jsonify({
        'lastSync': history[0].to_dict() if history else None,
        'history': [entry.to_dict() for entry in history],
    })
