# tests/test_routes.py

from datetime import time, timedelta

from staxreports import db
from staxreports.models import GeneratedReport, ScheduledReport, ScheduledReportRun, utcnow
from staxreports.reporting.export import XLSX_MIMETYPE
from staxreports.seed import BUILT_IN_PRESETS, seed_data

CRON_HEADERS = {'Authorization': 'Bearer test-cron-secret'}

DECISIONS = [
    {'lender_name': 'Lender A', 'retailer_name': 'Bikes Ltd', 'status': 'Approved',
     'submitted_date': '2026-01-05', 'loan_amount': 1000.0, 'commission_amount': 50.0},
    {'lender_name': 'Lender A', 'retailer_name': 'Bikes Ltd', 'status': 'Declined',
     'submitted_date': '2026-01-06', 'loan_amount': 2000.0, 'commission_amount': 0.0},
    {'lender_name': 'Lender B', 'retailer_name': 'Sofa World', 'status': 'Live',
     'submitted_date': '2026-02-02', 'loan_amount': 500.0, 'commission_amount': 25.0},
]

SCHEDULE = {
    'name': 'Daily lenders',
    'config': {'reportType': 'AD', 'groupBy': ['lender'], 'metrics': ['volume', 'approvalRate']},
    'scheduleType': 'daily',
    'scheduleTime': '09:00',
    'recipients': ['ops@example.com'],
}


# --- Cron ---

def test_cron_requires_the_bearer_secret(client):
    assert client.get('/api/cron/reports').status_code == 401
    response = client.get('/api/cron/reports', headers={'Authorization': 'Bearer wrong'})
    assert response.status_code == 401
    assert response.get_json() == {'error': 'Unauthorized'}


def test_cron_runs_due_schedules(client, add_decisions):
    add_decisions(*DECISIONS)
    schedule = ScheduledReport(user_id='user-1', name='Due now', config=SCHEDULE['config'],
                               schedule_type='daily', schedule_time=time(9, 0),
                               recipients=['ops@example.com'], next_run_at=utcnow() - timedelta(hours=1))
    db.session.add(schedule)
    db.session.commit()
    schedule_id = schedule.id

    response = client.get('/api/cron/reports', headers=CRON_HEADERS)

    assert response.status_code == 200
    assert response.get_json() == {'success': True, 'processed': 1, 'succeeded': 1, 'failed': 0, 'skipped': 0}
    run = ScheduledReportRun.query.filter_by(scheduled_report_id=schedule_id).one()
    assert run.status == 'success'
    assert run.record_count == 3
    assert run.email_sent is False  # no RESEND_API_KEY in tests
    assert db.session.get(ScheduledReport, schedule_id).next_run_at > utcnow()


def test_cron_sync_without_credentials_fails_cleanly(client):
    response = client.get('/api/cron/sync', headers=CRON_HEADERS)
    assert response.status_code == 500
    body = response.get_json()
    assert body['success'] is False
    assert 'Missing Salesforce credentials' in body['error']

    status = client.get('/api/sync/status').get_json()
    assert status['lastSync']['status'] == 'failed'


# --- Reports ---

def test_generate_grouped_report(client, add_decisions):
    add_decisions(*DECISIONS)

    response = client.post('/api/reports/generate', json={
        'groupBy': ['lender'], 'metrics': ['totalApplications'],
        'filters': {'dateFrom': '2026-01-01', 'dateTo': '2026-01-31'},
    })

    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert [(row['lender'], row['volume']) for row in body['data']] == [('Lender A', 2)]
    assert body['summary']['totalRecords'] == 2
    assert body['summary']['approvalRate'] == 50.0
    assert body['reportId'] is None


def test_generate_without_grouping_returns_records(client, add_decisions):
    add_decisions(*DECISIONS)
    body = client.post('/api/reports/generate', json={'reportType': 'AP'}).get_json()
    assert [row['lender_name'] for row in body['data']] == ['Lender B']
    assert body['recordCount'] == 1


def test_paid_view_uses_the_status_derived_from_milestones(client, add_decisions):
    add_decisions({'lender_name': 'Lender C', 'status': None, 'submitted_date': '2026-01-08',
                   'contract_signed_date': '2026-01-09', 'live_date': '2026-01-12', 'loan_amount': 800.0})

    paid = client.post('/api/reports/generate', json={'reportType': 'AP'}).get_json()
    assert paid['recordCount'] == 1

    live = client.post('/api/reports/generate', json={'filters': {'statuses': ['Live']}}).get_json()
    assert [row['lender_name'] for row in live['data']] == ['Lender C']


def test_generate_rejects_invalid_config(client):
    response = client.post('/api/reports/generate', json={'reportType': 'ZZ', 'groupBy': ['colour']})
    assert response.status_code == 400
    body = response.get_json()
    assert body['error'] == 'Invalid request'
    assert len(body['details']) == 2


def test_signed_in_generation_is_kept_in_history(signed_in_client, add_decisions):
    add_decisions(*DECISIONS)

    body = signed_in_client.post('/api/reports/generate', json={'name': 'Mine', 'groupBy': ['status']}).get_json()

    assert body['reportId'] is not None
    history = signed_in_client.get('/api/reports/history').get_json()['history']
    assert [entry['name'] for entry in history] == ['Mine']
    assert history[0]['recordCount'] == 3
    assert GeneratedReport.query.count() == 1


def test_history_requires_a_user(client):
    assert client.get('/api/reports/history').status_code == 401


def test_export_downloads_a_workbook(client, add_decisions):
    add_decisions(*DECISIONS)

    response = client.post('/api/reports/export', json={'name': 'By Lender', 'groupBy': ['lender']})

    assert response.status_code == 200
    assert response.mimetype == XLSX_MIMETYPE
    assert 'attachment' in response.headers['Content-Disposition']
    assert 'by-lender-' in response.headers['Content-Disposition']
    assert response.data[:2] == b'PK'


# --- Presets and lookups ---

def test_presets_builtin_and_custom(signed_in_client):
    seed_data()
    assert seed_data() == 0  # idempotent

    builtin = signed_in_client.get('/api/reports/presets').get_json()['presets']
    assert len(builtin) == len(BUILT_IN_PRESETS)
    assert all(preset['isBuiltIn'] for preset in builtin)

    response = signed_in_client.post('/api/reports/presets', json={
        'name': 'My lenders', 'description': 'Just lenders', 'config': {'groupBy': ['lender']}})
    assert response.status_code == 201
    preset_id = response.get_json()['preset']['id']
    assert len(signed_in_client.get('/api/reports/presets').get_json()['presets']) == len(BUILT_IN_PRESETS) + 1

    assert signed_in_client.delete(f"/api/reports/presets/{builtin[0]['id']}").status_code == 404
    assert signed_in_client.delete(f'/api/reports/presets/{preset_id}').status_code == 200


def test_filter_options_and_dashboard(client, add_decisions):
    add_decisions(*DECISIONS)

    options = client.get('/api/filters/options').get_json()
    assert options['lenders'] == ['Lender A', 'Lender B']
    assert options['statuses'] == ['Approved', 'Declined', 'Live']
    assert options['dateRange'] == {'min': '2026-01-05', 'max': '2026-02-02'}

    stats = client.get('/api/dashboard').get_json()
    assert stats['totalApplications'] == 3
    assert stats['totalLoanValue'] == 3500.0
    assert stats['statusBreakdown'] == {'Approved': 1, 'Declined': 1, 'Live': 1}
    assert stats['lastSync'] is None


# --- Scheduled reports ---

def test_schedule_lifecycle(signed_in_client):
    response = signed_in_client.post('/api/reports/schedules', json=SCHEDULE)
    assert response.status_code == 201
    schedule = response.get_json()['schedule']
    assert schedule['scheduleTime'] == '09:00'
    assert schedule['isActive'] is True
    assert schedule['nextRunAt'] is not None

    listed = signed_in_client.get('/api/reports/schedules').get_json()['schedules']
    assert [item['id'] for item in listed] == [schedule['id']]

    url = f"/api/reports/schedules/{schedule['id']}"
    paused = signed_in_client.put(url, json={'isActive': False}).get_json()['schedule']
    assert paused['isActive'] is False
    assert paused['nextRunAt'] is None

    resumed = signed_in_client.put(url, json={'isActive': True, 'scheduleType': 'monthly',
                                              'scheduleDay': 31}).get_json()['schedule']
    assert resumed['scheduleType'] == 'monthly'
    assert resumed['nextRunAt'] is not None

    assert signed_in_client.get(f'{url}/runs').get_json() == {'runs': []}
    assert signed_in_client.delete(url).status_code == 200
    assert signed_in_client.get(url).status_code == 404


def test_schedule_validation_and_ownership(signed_in_client, client):
    response = signed_in_client.post('/api/reports/schedules', json={**SCHEDULE, 'recipients': ['nope']})
    assert response.status_code == 400
    assert 'Invalid recipient email addresses: nope' in response.get_json()['details']

    schedule_id = signed_in_client.post('/api/reports/schedules', json=SCHEDULE).get_json()['schedule']['id']
    with client.session_transaction() as sess:
        sess['user_id'] = 'someone-else'
    assert client.get(f'/api/reports/schedules/{schedule_id}').status_code == 404


def test_schedules_require_a_user(client):
    assert client.get('/api/reports/schedules').status_code == 401
    assert client.post('/api/reports/schedules', json=SCHEDULE).status_code == 401
