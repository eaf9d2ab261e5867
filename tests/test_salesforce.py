# tests/test_salesforce.py

from datetime import date

import httpx
import pytest

from staxreports.models import ApplicationDecision, SyncLog
from staxreports.sync.salesforce import SalesforceError, SalesforceSession, parse_salesforce_date, transform_record
from staxreports.sync.service import sync_application_decisions

INSTANCE = 'https://example.my.salesforce.com'

RAW_DECISION = {
    'Id': 'a0X000000000001', 'Name': 'AD-000123', 'CreatedDate': '2026-01-15T10:42:00.000+0000',
    'Lender__r': {'Name': 'Lender A'}, 'Lender_Name__c': 'ignored',
    'Retailer__r': {'Name': 'Bikes Ltd', 'Parent': {'Name': 'Bikes Group'}},
    'BDM_Name__c': 'Sam', 'Priority__c': '2', 'Prime_Sub_Prime__c': 'Prime',
    'Accepted_Date__c': '2026-01-16', 'Contract_Signed_Date__c': '2026-01-18',
    'Loan_Amount__c': 1500.5, 'Purchase_Amount__c': 1800, 'Shermin_Commission_Amount__c': '75.25',
    'Product_Name__c': 'IFC',
    'Application__r': {'Name': 'APP-1', 'Application_Number__c': 'AP-99', 'APR__c': 19.9,
                       'Terms_Month__c': 24, 'Deferral_Period__c': None, 'Deposit_Amount__c': 300},
}


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _salesforce_transport(pages, calls):
    def handler(request):
        calls.append(request.url.path)
        if request.url.path == '/services/oauth2/token':
            return httpx.Response(200, json={'access_token': f'token-{len(calls)}', 'instance_url': INSTANCE})
        assert request.headers['Authorization'].startswith('Bearer token-')
        if request.url.path == '/services/data/v59.0/query':
            return httpx.Response(200, json=pages[0])
        if request.url.path == '/services/data/v59.0/query/01g-2000':
            return httpx.Response(200, json=pages[1])
        return httpx.Response(404, text='not found')
    return httpx.MockTransport(handler)


def _session(transport, clock=None, client_id='id'):
    return SalesforceSession(client_id=client_id, client_secret='secret', instance_url=INSTANCE,
                             token_ttl=3600, transport=transport, clock=clock or FakeClock())


TWO_PAGES = [
    {'done': False, 'totalSize': 3, 'nextRecordsUrl': '/services/data/v59.0/query/01g-2000',
     'records': [{'Name': 'AD-1'}, {'Name': 'AD-2'}]},
    {'done': True, 'totalSize': 3, 'records': [{'Name': 'AD-3'}]},
]


def test_query_follows_pagination():
    calls = []
    with _session(_salesforce_transport(TWO_PAGES, calls)) as session:
        records = session.query('SELECT Name FROM Application_Decision__c')

    assert [r['Name'] for r in records] == ['AD-1', 'AD-2', 'AD-3']
    assert calls == ['/services/oauth2/token', '/services/data/v59.0/query',
                     '/services/data/v59.0/query/01g-2000']


def test_access_token_is_cached_until_it_expires():
    calls = []
    clock = FakeClock()
    session = _session(_salesforce_transport(TWO_PAGES, calls), clock=clock)

    first = session.access_token()
    assert session.access_token() == first
    assert session.expires_at == pytest.approx(4600.0)

    clock.now += 3601
    assert session.access_token() != first
    assert calls.count('/services/oauth2/token') == 2
    session.close()


def test_missing_credentials_and_oauth_failures_raise():
    with pytest.raises(SalesforceError):
        _session(httpx.MockTransport(lambda request: httpx.Response(200)), client_id=None).access_token()

    failing = httpx.MockTransport(lambda request: httpx.Response(400, text='invalid_client'))
    with pytest.raises(SalesforceError, match='invalid_client'):
        _session(failing).access_token()


def test_transform_record_maps_fields_and_derives_status():
    record = transform_record(RAW_DECISION)

    assert record['id'] == 'AD-000123'
    assert record['application_number'] == 'AP-99'
    assert record['lender_name'] == 'Lender A'
    assert record['parent_company'] == 'Bikes Group'
    assert record['submitted_date'] == date(2026, 1, 15)
    assert record['contract_signed_date'] == date(2026, 1, 18)
    assert record['commission_amount'] == pytest.approx(75.25)
    assert record['priority'] == 2
    assert record['deferral_months'] == 0
    assert record['status'] == 'Executed'


def test_parse_salesforce_date_formats():
    assert parse_salesforce_date('05/03/2026') == date(2026, 3, 5)
    assert parse_salesforce_date('2026-03-05T00:00:00.000+0000') == date(2026, 3, 5)
    assert parse_salesforce_date('') is None
    assert parse_salesforce_date('soon') is None


class StubSession:
    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error

    def query(self, soql):
        if self.error:
            raise self.error
        return self.records


def test_sync_replaces_local_records_and_logs(app, add_decisions):
    add_decisions({'id': 'STALE-1', 'lender_name': 'Old Lender', 'status': 'Approved'})

    result = sync_application_decisions(StubSession([RAW_DECISION, {**RAW_DECISION, 'Name': 'AD-000124'}]))

    assert result.success
    assert result.record_count == 2
    assert sorted(d.id for d in ApplicationDecision.query.all()) == ['AD-000123', 'AD-000124']
    log = SyncLog.query.one()
    assert log.status == 'success'
    assert log.records_synced == 2
    assert log.completed_at is not None


def test_failed_sync_keeps_existing_records(app, add_decisions):
    add_decisions({'id': 'KEEP-1', 'lender_name': 'Lender A', 'status': 'Approved'})

    result = sync_application_decisions(StubSession(error=SalesforceError('SOQL query failed: 500')))

    assert not result.success
    assert 'SOQL query failed' in result.error
    assert [d.id for d in ApplicationDecision.query.all()] == ['KEEP-1']
    log = SyncLog.query.one()
    assert log.status == 'failed'
    assert 'SOQL query failed' in log.error_message


def test_unreadable_salesforce_response_fails_the_sync(app, add_decisions):
    add_decisions({'id': 'KEEP-1', 'lender_name': 'Lender A', 'status': 'Approved'})
    maintenance = httpx.MockTransport(lambda request: httpx.Response(200, text='<html>maintenance</html>'))

    with _session(maintenance) as session:
        result = sync_application_decisions(session)

    assert not result.success
    assert result.error
    assert [d.id for d in ApplicationDecision.query.all()] == ['KEEP-1']
    assert SyncLog.query.one().status == 'failed'


class ClosingSession(StubSession):
    closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True


def test_sync_records_command_closes_the_session(app, monkeypatch):
    session = ClosingSession([RAW_DECISION])
    monkeypatch.setattr('staxreports.sync.service.build_session', lambda: session)

    result = app.test_cli_runner().invoke(args=['sync-records'])

    assert result.exit_code == 0
    assert session.closed
    assert ApplicationDecision.query.count() == 1
