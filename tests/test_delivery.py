# tests/test_delivery.py

import base64
import json
from datetime import datetime

import httpx

from staxreports.reporting.options import ReportSummary
from staxreports.scheduling.delivery import Attachment, ResendMailer, render_report_email


def _mailer(handler, api_key='re_test_key'):
    return ResendMailer(api_key=api_key, from_email='reports@example.com',
                        api_url='https://api.resend.test/emails', timeout=5,
                        transport=httpx.MockTransport(handler))


def test_send_posts_the_message_with_a_base64_attachment():
    captured = {}

    def handler(request):
        captured['request'] = request
        return httpx.Response(200, json={'id': 'email-1'})

    attachment = Attachment(filename='report-2026-02-03.xlsx', content=b'PK\x03\x04workbook')
    sent = _mailer(handler).send(['a@example.com', 'b@example.com'], 'Scheduled Report: X', '<p>hi</p>',
                                 attachment)

    assert sent is True
    request = captured['request']
    assert request.headers['Authorization'] == 'Bearer re_test_key'
    body = json.loads(request.content)
    assert body['from'] == 'reports@example.com'
    assert body['to'] == ['a@example.com', 'b@example.com']
    assert body['subject'] == 'Scheduled Report: X'
    assert body['attachments'][0]['filename'] == 'report-2026-02-03.xlsx'
    assert base64.b64decode(body['attachments'][0]['content']) == b'PK\x03\x04workbook'


def test_send_reports_http_errors_as_false():
    mailer = _mailer(lambda request: httpx.Response(422, json={'message': 'invalid from address'}))
    assert mailer.send(['a@example.com'], 'Subject', '<p></p>') is False


def test_send_reports_transport_errors_as_false():
    def handler(request):
        raise httpx.ConnectError('connection refused', request=request)

    assert _mailer(handler).send(['a@example.com'], 'Subject', '<p></p>') is False


def test_send_without_api_key_skips_the_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200)

    assert _mailer(handler, api_key=None).send(['a@example.com'], 'Subject', '<p></p>') is False
    assert calls == []


def test_report_email_template(app):
    summary = ReportSummary(total_records=1234, total_loan_value=98765.5, total_commission=321.0,
                            approval_rate=66.666, execution_rate=50.0)
    subject, body = render_report_email('Lender view', summary, datetime(2026, 2, 3, 9, 0))

    assert subject == 'Scheduled Report: Lender view'
    assert '1,234' in body
    assert '£98,765.50' in body
    assert '66.7%' in body
    assert '03/02/2026' in body
