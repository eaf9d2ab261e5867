# ==============================================================================
# staxreports/scheduling/delivery.py
# ------------------------------------------------------------------------------
# Emails generated reports to their recipients through the Resend HTTP API.
# ==============================================================================

import base64
import logging
from dataclasses import dataclass

import httpx
from flask import render_template

from staxreports.reporting.export import XLSX_MIMETYPE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str = XLSX_MIMETYPE


def render_report_email(report_name, summary, generated_at):
    """Subject line and HTML body for a scheduled report email."""
    subject = f"Scheduled Report: {report_name}"
    body_html = render_template('email/scheduled_report.html', report_name=report_name,
                                summary=summary, generated_at=generated_at)
    return subject, body_html


class ResendMailer:
    """
    Sends mail with the Resend API. `send` never raises: every failure is
    logged and reported as False.
    """

    def __init__(self, api_key, from_email, api_url='https://api.resend.com/emails',
                 timeout=30.0, transport=None):
        self.api_key = api_key
        self.from_email = from_email
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport

    def _payload(self, recipients, subject, body_html, attachment):
        payload = {
            'from': self.from_email,
            'to': list(recipients),
            'subject': subject,
            'html': body_html,
        }
        if attachment is not None:
            payload['attachments'] = [{
                'filename': attachment.filename,
                'content': base64.b64encode(attachment.content).decode('ascii'),
            }]
        return payload

    def send(self, recipients, subject, body_html, attachment=None):
        if not self.api_key:
            logger.info("RESEND_API_KEY not configured, skipping email")
            return False
        if not recipients:
            logger.warning(f"No recipients for '{subject}', skipping email")
            return False

        headers = {'Authorization': f'Bearer {self.api_key}'}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.api_url, json=self._payload(recipients, subject, body_html, attachment),
                                       headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(f"Failed to send email '{subject}': {exc.response.status_code} {exc.response.text}")
            return False
        except httpx.HTTPError as exc:
            logger.error(f"Error sending email '{subject}': {exc}")
            return False

        logger.info(f"Sent '{subject}' to {len(recipients)} recipient(s)")
        return True
