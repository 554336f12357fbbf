"""
Email notification service.

Emails are delivered through the SendGrid v3 API. In debug mode, or when no
API key is configured, they are written to a log file instead of sent.
"""
import logging
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from pathlib import Path

import httpx

from gtc_api.core.config import Settings

if TYPE_CHECKING:
    from gtc_api.services.csv_import import ImportDiff

logger = logging.getLogger(__name__)


class EmailService:
    """
    Email service for sending notifications.

    In development mode, emails are logged to a file.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME
        self.api_key = settings.SENDGRID_API_KEY
        self.api_url = settings.SENDGRID_API_URL
        self.debug = settings.DEBUG
        self.email_log_path = Path(settings.EMAIL_LOG_PATH)
        self._client = client

    @property
    def delivers(self) -> bool:
        """Whether emails are really sent rather than logged."""
        return not self.debug and bool(self.api_key)

    def _log_email(self, to: list[str], subject: str, body: str, html: Optional[str] = None):
        """Log email to file for development/testing."""
        timestamp = datetime.now().isoformat()
        log_entry = f"""
================================================================================
EMAIL SENT: {timestamp}
================================================================================
TO: {", ".join(to)}
FROM: {self.from_name} <{self.from_email}>
SUBJECT: {subject}
--------------------------------------------------------------------------------
BODY:
{body}
--------------------------------------------------------------------------------
"""
        if html:
            log_entry += f"""
HTML:
{html}
--------------------------------------------------------------------------------
"""

        with open(self.email_log_path, 'a') as f:
            f.write(log_entry)

        logger.info(f"Email logged: to={to}, subject={subject}")

    async def _deliver(self, to: list[str], subject: str, body: str, html: Optional[str]) -> None:
        content = [{"type": "text/plain", "value": body}]
        if html:
            content.append({"type": "text/html", "value": html})

        payload = {
            "personalizations": [{"to": [{"email": address} for address in to]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": content,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        if self._client is not None:
            response = await self._client.post(self.api_url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
        response.raise_for_status()

    async def send_email(
        self,
        to: list[str],
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> bool:
        """
        Send an email.

        Args:
            to: Recipient email addresses
            subject: Email subject line
            body: Plain text body
            html: Optional HTML body

        Returns:
            True if email was sent/logged successfully
        """
        if not to:
            logger.warning(f"No recipients for email '{subject}', not sending")
            return False

        try:
            if not self.delivers:
                self._log_email(to, subject, body, html)
                return True

            await self._deliver(to, subject, body, html)
            logger.info(f"Email sent: to={to}, subject={subject}")
            return True

        except (httpx.HTTPError, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False


def _format_numbers(numbers: set[int]) -> str:
    if not numbers:
        return "(none)"
    return ", ".join(str(n) for n in sorted(numbers))


def build_import_summary(diff: "ImportDiff") -> tuple[str, str]:
    """Subject and plain-text body describing an import run."""
    subject = (
        f"Membership import: {len(diff.created_set)} created, "
        f"{len(diff.updated_set)} updated, {len(diff.deleted_set)} deleted"
    )
    body = f"""Hello,

A membership CSV import has just been processed.

Rows imported: {len(diff.imported_set)}
Members before import: {len(diff.existing_set)}

Created ({len(diff.created_set)}): {_format_numbers(diff.created_set)}
Updated ({len(diff.updated_set)}): {_format_numbers(diff.updated_set)}
Deleted ({len(diff.deleted_set)}): {_format_numbers(diff.deleted_set)}
Errors ({len(diff.error_set)}): {_format_numbers(diff.error_set)}

Records listed under errors were left untouched and need checking by hand.

GTC Membership
"""
    return subject, body


class ImportNotifier:
    """Emails administrators when an import changed the member set."""

    def __init__(self, email_service: EmailService, recipients: list[str]):
        self.email_service = email_service
        self.recipients = list(recipients)

    async def send_import_summary(self, diff: "ImportDiff") -> bool:
        subject, body = build_import_summary(diff)
        return await self.email_service.send_email(self.recipients, subject, body)

    async def notify_if_changed(self, diff: "ImportDiff") -> bool:
        """Send the summary only when the run resulted in change. Never raises."""
        if not diff.resulted_in_change():
            logger.info("Skipping import notification email as no changes detected")
            return True

        try:
            return await self.send_import_summary(diff)
        except Exception as e:
            logger.error(f"Import notification failed: {e}")
            return False
