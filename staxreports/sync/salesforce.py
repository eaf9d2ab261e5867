# ==============================================================================
# staxreports/sync/salesforce.py
# ------------------------------------------------------------------------------
# Salesforce REST client (client-credentials OAuth + paginated SOQL) and the
# mapping from Application_Decision__c rows to local records.
# ==============================================================================

import logging
import time
from datetime import date

import httpx

from staxreports.models import derive_status

logger = logging.getLogger(__name__)

APPLICATION_DECISION_SOQL = """
SELECT
  Id, Name, CreatedDate, Active__c,
  Lender__c, Lender__r.Name, Lender_Name__c,
  Retailer__c, Retailer__r.Name, Retailer__r.Parent.Name,
  BDM_Name__c, Priority__c, Prime_Sub_Prime__c,
  Accepted_Date__c, Referred_Date__c, Approved_Declined_Date__c,
  Contract_Signed_Date__c, Paid_Out_Date__c, Cancelled_Date__c, Expired_On__c,
  Loan_Amount__c, Purchase_Amount__c, Shermin_Commission_Amount__c,
  Product_Name__c,
  Application__c, Application__r.Name, Application__r.Application_Number__c,
  Application__r.APR__c, Application__r.Terms_Month__c,
  Application__r.Deferral_Period__c, Application__r.Deposit_Amount__c
FROM Application_Decision__c
WHERE Active__c = true
ORDER BY CreatedDate DESC
"""


class SalesforceError(RuntimeError):
    """Authentication or query failure reported by Salesforce."""


class SalesforceSession:
    """
    A Salesforce API session. The access token is cached on the session
    itself together with its expiry and renewed on demand.

    Args:
        token_ttl (int): Seconds a freshly issued token is reused for.
        transport (httpx.BaseTransport): Optional transport, e.g. a MockTransport.
        clock (callable): Monotonic seconds; replaceable for tests.
    """

    def __init__(self, client_id, client_secret, instance_url, api_version='v59.0',
                 token_ttl=3600, timeout=30.0, transport=None, clock=time.monotonic):
        self.client_id = client_id
        self.client_secret = client_secret
        self.instance_url = instance_url.rstrip('/')
        self.api_version = api_version
        self.token_ttl = token_ttl
        self._clock = clock
        self._client = httpx.Client(timeout=timeout, transport=transport)
        self._token = None
        self.expires_at = 0.0

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def access_token(self):
        if self._token and self.expires_at > self._clock():
            return self._token

        if not self.client_id or not self.client_secret:
            raise SalesforceError('Missing Salesforce credentials: SALESFORCE_CLIENT_ID and '
                                  'SALESFORCE_CLIENT_SECRET are required')

        logger.info("Requesting a Salesforce access token (client credentials flow)")
        response = self._client.post(f"{self.instance_url}/services/oauth2/token", data={
            'grant_type': 'client_credentials',
            'client_id': self.client_id,
            'client_secret': self.client_secret,
        })
        if response.is_error:
            raise SalesforceError(f"Salesforce OAuth failed: {response.status_code} - {response.text}")

        data = response.json()
        self._token = data['access_token']
        self.instance_url = (data.get('instance_url') or self.instance_url).rstrip('/')
        self.expires_at = self._clock() + self.token_ttl
        return self._token

    def query(self, soql):
        """Runs a SOQL query and follows nextRecordsUrl until every batch is read."""
        token = self.access_token()
        headers = {'Authorization': f'Bearer {token}'}
        url = f"{self.instance_url}/services/data/{self.api_version}/query"
        params = {'q': soql}

        records = []
        batch = 0
        while url:
            batch += 1
            response = self._client.get(url, params=params, headers=headers)
            if response.is_error:
                raise SalesforceError(f"SOQL query failed: {response.status_code} - {response.text}")
            data = response.json()
            records.extend(data.get('records', []))
            logger.info(f"SOQL batch {batch}: got {len(data.get('records', []))} records "
                        f"(total {len(records)}/{data.get('totalSize', '?')})")

            next_url = data.get('nextRecordsUrl')
            url = f"{self.instance_url}{next_url}" if not data.get('done', True) and next_url else None
            params = None

        return records


# --- Record mapping ---

def parse_salesforce_date(value):
    """ISO datetimes ('2024-01-15T00:00:00.000+0000') or DD/MM/YYYY -> date."""
    if not value:
        return None
    text = str(value).strip()
    if 'T' in text:
        text = text.split('T')[0]
    parts = text.split('/')
    if len(parts) == 3:
        text = f"{parts[2]}-{parts[1].zfill(2)}-{parts[0].zfill(2)}"
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.warning(f"Ignoring unparseable Salesforce date: {value!r}")
        return None


def _number(value, cast=float):
    try:
        return cast(float(value or 0))
    except (TypeError, ValueError):
        return cast(0)


def _related(raw, *path):
    value = raw
    for key in path:
        value = (value or {}).get(key)
    return value


def transform_record(raw):
    """Maps one SOQL Application_Decision__c row to ApplicationDecision columns."""
    application = raw.get('Application__r') or {}
    record = {
        'id': raw.get('Name') or raw.get('Id'),
        'application_number': application.get('Application_Number__c') or application.get('Name') or '',
        'lender_name': _related(raw, 'Lender__r', 'Name') or raw.get('Lender_Name__c') or raw.get('Lender__c') or '',
        'retailer_name': _related(raw, 'Retailer__r', 'Name') or '',
        'parent_company': _related(raw, 'Retailer__r', 'Parent', 'Name') or '',
        'bdm_name': raw.get('BDM_Name__c') or '',
        'prime_subprime': raw.get('Prime_Sub_Prime__c') or '',
        'priority': _number(raw.get('Priority__c'), int),
        'finance_product': raw.get('Product_Name__c') or '',
        'submitted_date': parse_salesforce_date(raw.get('CreatedDate')),
        'approved_date': parse_salesforce_date(raw.get('Accepted_Date__c')),
        'referred_date': parse_salesforce_date(raw.get('Referred_Date__c')),
        'declined_date': parse_salesforce_date(raw.get('Approved_Declined_Date__c')),
        'contract_signed_date': parse_salesforce_date(raw.get('Contract_Signed_Date__c')),
        'live_date': parse_salesforce_date(raw.get('Paid_Out_Date__c')),
        'cancelled_date': parse_salesforce_date(raw.get('Cancelled_Date__c')),
        'expired_date': parse_salesforce_date(raw.get('Expired_On__c')),
        'loan_amount': _number(raw.get('Loan_Amount__c')),
        'goods_amount': _number(raw.get('Purchase_Amount__c')),
        'deposit_amount': _number(application.get('Deposit_Amount__c')),
        'commission_amount': _number(raw.get('Shermin_Commission_Amount__c')),
        'apr': _number(application.get('APR__c')),
        'term_months': _number(application.get('Terms_Month__c'), int),
        'deferral_months': _number(application.get('Deferral_Period__c'), int),
    }
    record['status'] = derive_status(record)
    return record
