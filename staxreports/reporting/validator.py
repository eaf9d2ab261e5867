# ==============================================================================
# staxreports/reporting/validator.py
# ------------------------------------------------------------------------------
# Validates incoming report configurations and schedule definitions before
# anything runs. Unknown keys and values are rejected, never passed through.
# ==============================================================================

import re
from datetime import date, time

from .options import ReportConfig, ReportFilters
from .schema import (CONFIG_KEYS, DATE_RANGE_PRESETS, DEFAULT_REPORT_TYPE, FILTER_KEYS, GROUP_BY_ALIASES, GROUP_BY_DIMENSIONS,
                     IGNORED_METRICS, MEMBERSHIP_FILTERS, METRIC_ALIASES, METRIC_COLUMNS, REPORT_TYPES, SCHEDULE_KEYS,
                     SCHEDULE_TYPES)

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
TIME_PATTERN = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$')

# wire name -> ReportFilters attribute
_FILTER_ATTRIBUTES = {
    'lenders': 'lenders',
    'retailers': 'retailers',
    'statuses': 'statuses',
    'bdms': 'bdms',
    'financeProducts': 'finance_products',
    'primeSubprime': 'prime_subprime',
}


class ReportValidationError(ValueError):
    """Raised when a report configuration or schedule payload is malformed."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__('; '.join(self.errors))


def _parse_date(value, label, errors):
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        errors.append(f"'{label}' must be a date in YYYY-MM-DD format, got '{value}'.")
        return None


def _string_list(value, label, errors):
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        errors.append(f"'{label}' must be a list of strings.")
        return ()
    if not all(isinstance(item, str) for item in value):
        errors.append(f"'{label}' may only contain strings.")
        return ()
    return tuple(dict.fromkeys(value))


def _normalise(values, label, known, aliases, errors, ignored=()):
    items = _string_list(values, label, errors)
    normalised = []
    for item in items:
        if item in ignored:
            continue
        canonical = aliases.get(item, item)
        if canonical not in known:
            errors.append(f"Unknown {label} value '{item}'.")
            continue
        if canonical not in normalised:
            normalised.append(canonical)
    return tuple(normalised)


def _parse_filters(raw, errors):
    unknown = sorted(set(raw) - set(FILTER_KEYS))
    if unknown:
        errors.append(f"Unknown filter keys: {', '.join(unknown)}")

    date_from = _parse_date(raw.get('dateFrom'), 'dateFrom', errors)
    date_to = _parse_date(raw.get('dateTo'), 'dateTo', errors)

    relative_range = None
    date_range = raw.get('dateRange')
    if isinstance(date_range, str):
        # 'custom' means the explicit dateFrom/dateTo bounds apply
        if date_range in DATE_RANGE_PRESETS:
            relative_range = date_range
        elif date_range != 'custom':
            errors.append(f"Unknown date range preset '{date_range}'.")
    elif date_range is not None:
        if not isinstance(date_range, dict) or set(date_range) - {'start', 'end'}:
            errors.append("'dateRange' must be a preset name or an object with 'start' and 'end'.")
        else:
            date_from = _parse_date(date_range.get('start'), 'dateRange.start', errors) or date_from
            date_to = _parse_date(date_range.get('end'), 'dateRange.end', errors) or date_to

    if date_from and date_to and date_from > date_to:
        errors.append(f"'dateFrom' ({date_from}) is after 'dateTo' ({date_to}).")

    memberships = {
        attribute: _string_list(raw.get(wire_name), wire_name, errors)
        for wire_name, attribute in _FILTER_ATTRIBUTES.items()
    }
    return ReportFilters(date_from=date_from, date_to=date_to, date_range=relative_range, **memberships)


def validate_report_config(payload):
    """
    Validates a report configuration payload.

    Filter keys may appear nested under 'filters' or flat at the top level
    (the shape stored in scheduled report definitions).

    Returns:
        tuple: (ReportConfig, []) when valid, otherwise (None, list of errors).
    """
    errors = []
    if not isinstance(payload, dict):
        return None, ["Report configuration must be a JSON object."]

    unknown = sorted(set(payload) - set(CONFIG_KEYS) - set(FILTER_KEYS))
    if unknown:
        errors.append(f"Unknown report configuration keys: {', '.join(unknown)}")

    report_type = payload.get('reportType') or DEFAULT_REPORT_TYPE
    if report_type not in REPORT_TYPES:
        errors.append(f"Invalid report type: {report_type}")

    name = payload.get('name') or 'Custom Report'
    if not isinstance(name, str):
        errors.append("'name' must be a string.")

    group_by = _normalise(payload.get('groupBy'), 'groupBy', GROUP_BY_DIMENSIONS, GROUP_BY_ALIASES, errors)
    metrics = _normalise(payload.get('metrics'), 'metrics', METRIC_COLUMNS, METRIC_ALIASES, errors,
                         ignored=IGNORED_METRICS)

    raw_filters = payload.get('filters') or {}
    if not isinstance(raw_filters, dict):
        errors.append("'filters' must be a JSON object.")
        raw_filters = {}
    flat_filters = {key: payload[key] for key in FILTER_KEYS if key in payload}
    filters = _parse_filters({**flat_filters, **raw_filters}, errors)

    preset_id = payload.get('presetId')
    if preset_id is not None and not isinstance(preset_id, str):
        errors.append("'presetId' must be a string.")

    if errors:
        return None, errors

    return ReportConfig(name=name, report_type=report_type, group_by=group_by, metrics=metrics,
                        filters=filters, preset_id=preset_id), []


def parse_report_config(payload):
    """Like validate_report_config() but raises ReportValidationError."""
    config, errors = validate_report_config(payload)
    if errors:
        raise ReportValidationError(errors)
    return config


def parse_time(value):
    """'HH:MM' or 'HH:MM:SS' (or a time) -> datetime.time; None when malformed."""
    if isinstance(value, time):
        return value
    match = TIME_PATTERN.match(str(value or '').strip())
    if not match:
        return None
    hour, minute, second = match.groups()
    return time(int(hour), int(minute), int(second or 0))


def validate_schedule_payload(payload, partial=False):
    """
    Validates a scheduled report definition.

    With `partial=True` only the keys present are checked (updates).

    Returns:
        tuple: (dict of model attributes, []) when valid, otherwise (None, errors).
    """
    errors = []
    if not isinstance(payload, dict):
        return None, ["Scheduled report must be a JSON object."]

    unknown = sorted(set(payload) - set(SCHEDULE_KEYS))
    if unknown:
        errors.append(f"Unknown scheduled report keys: {', '.join(unknown)}")

    data = {}
    required = () if partial else ('name', 'config', 'scheduleType', 'scheduleTime', 'recipients')
    for key in required:
        if payload.get(key) in (None, '', [], {}):
            errors.append(f"'{key}' is required.")

    if 'name' in payload:
        if not isinstance(payload['name'], str) or not payload['name'].strip():
            errors.append("'name' must be a non-empty string.")
        else:
            data['name'] = payload['name'].strip()

    if payload.get('config') is not None:
        config, config_errors = validate_report_config(payload['config'])
        errors.extend(config_errors)
        if config is not None:
            data['config'] = config.as_dict()

    if 'scheduleType' in payload:
        if payload['scheduleType'] not in SCHEDULE_TYPES:
            errors.append(f"'scheduleType' must be one of {', '.join(SCHEDULE_TYPES)}.")
        else:
            data['schedule_type'] = payload['scheduleType']

    if payload.get('scheduleDay') is not None:
        day = payload['scheduleDay']
        if isinstance(day, bool) or not isinstance(day, int):
            errors.append("'scheduleDay' must be an integer.")
        else:
            data['schedule_day'] = day
    elif 'scheduleDay' in payload:
        data['schedule_day'] = None

    schedule_type = data.get('schedule_type', payload.get('scheduleType'))
    day = data.get('schedule_day')
    if day is not None:
        if schedule_type == 'weekly' and not 0 <= day <= 6:
            errors.append("'scheduleDay' must be between 0 (Sunday) and 6 for weekly schedules.")
        elif schedule_type == 'monthly' and not 1 <= day <= 31:
            errors.append("'scheduleDay' must be between 1 and 31 for monthly schedules.")

    if payload.get('scheduleTime') is not None:
        parsed = parse_time(payload['scheduleTime'])
        if parsed is None:
            errors.append(f"'scheduleTime' must be HH:MM, got '{payload['scheduleTime']}'.")
        else:
            data['schedule_time'] = parsed

    if payload.get('recipients') is not None:
        recipients = _string_list(payload['recipients'], 'recipients', errors)
        invalid = [address for address in recipients if not EMAIL_PATTERN.match(address)]
        if invalid:
            errors.append(f"Invalid recipient email addresses: {', '.join(invalid)}")
        elif not recipients:
            errors.append("'recipients' must contain at least one address.")
        else:
            data['recipients'] = list(recipients)

    if 'isActive' in payload:
        if not isinstance(payload['isActive'], bool):
            errors.append("'isActive' must be true or false.")
        else:
            data['is_active'] = payload['isActive']

    if errors:
        return None, errors
    return data, []
