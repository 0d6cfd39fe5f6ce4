import html
import logging
import smtplib
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Sequence

import requests

from . import settings
from .errors import NotificationError
from .schemas import Report

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Delivers a short summary of a finished report. Configured once, reused per run."""

    def __init__(self, top_n: int = settings.NOTIFY_TOP_N):
        self.top_n = top_n

    @abstractmethod
    def send(self, report: Report, recipients: Sequence[str]) -> None:
        """Raises NotificationError if delivery failed."""

    def subject(self, report: Report) -> str:
        return (
            f"Inventory Comparison Report - {report.date.isoformat()} "
            f"({report.total_discrepancies} discrepancies)"
        )


def render_report_html(report: Report, top_n: int = settings.NOTIFY_TOP_N) -> str:
    """HTML body with the `top_n` largest discrepancies."""
    rows = []
    for item in report.discrepancies[:top_n]:
        color = "red" if item.difference < 0 else "green"
        sign = "+" if item.difference > 0 else ""
        rows.append(
            "<tr>"
            f"<td><strong>{html.escape(item.sku)}</strong></td>"
            f"<td>{html.escape(item.product_name or 'N/A')}</td>"
            f'<td style="text-align: right;">{item.source_a_quantity}</td>'
            f'<td style="text-align: right;">{item.source_b_quantity}</td>'
            f'<td style="text-align: right; color: {color};">{sign}{item.difference}</td>'
            "</tr>"
        )

    if rows:
        table = (
            "<h3>Top Discrepancies:</h3>"
            '<table border="1" cellpadding="8" cellspacing="0" style="border-collapse: collapse;">'
            '<thead><tr style="background-color: #f0f0f0;">'
            "<th>SKU</th><th>Product Name</th><th>Brightpearl Stock</th>"
            "<th>Infoplus Stock</th><th>Difference</th>"
            "</tr></thead>"
            f"<tbody>{''.join(rows)}</tbody></table>"
        )
    else:
        table = '<p style="color: green;"><strong>No discrepancies found!</strong></p>'

    return (
        "<h2>Inventory Comparison Report</h2>"
        f"<p><strong>Date:</strong> {report.date.isoformat()}</p>"
        f"<p><strong>Total Discrepancies:</strong> {report.total_discrepancies}</p>"
        f"{table}"
        "<p><em>Automated report from the inventory comparison system.</em></p>"
    )


class EmailNotifier(Notifier):
    """Sends the report summary over SMTP."""

    def __init__(
        self,
        smtp_host: str | None = settings.SMTP_HOST,
        smtp_port: int = settings.SMTP_PORT,
        smtp_user: str | None = settings.SMTP_USER,
        smtp_password: str | None = settings.SMTP_PASS,
        from_email: str | None = settings.SMTP_FROM,
        use_ssl: bool = settings.SMTP_SECURE,
        timeout: float = 10,
        top_n: int = settings.NOTIFY_TOP_N,
    ):
        super().__init__(top_n=top_n)
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user
        self.use_ssl = use_ssl
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    def build_message(self, report: Report, recipients: Sequence[str]) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = self.subject(report)
        msg["From"] = self.from_email or ""
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(render_report_html(report, self.top_n), "html"))
        return msg

    def send(self, report: Report, recipients: Sequence[str]) -> None:
        if not self.configured:
            raise NotificationError("Email service not configured. SMTP credentials missing.")

        msg = self.build_message(report, recipients)
        smtp_class = smtplib.SMTP_SSL if self.use_ssl else smtplib.SMTP
        try:
            with smtp_class(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                if not self.use_ssl:
                    server.starttls()
                server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, list(recipients), msg.as_string())
        except smtplib.SMTPAuthenticationError as e:
            raise NotificationError("SMTP Authentication failed. Check email credentials.") from e
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send email: {e}") from e

        logger.info(f"✅ Email report sent to {', '.join(recipients)}")


class WebhookNotifier(Notifier):
    """Posts the report summary as JSON to each recipient URL."""

    def __init__(self, timeout: float = 15, top_n: int = settings.NOTIFY_TOP_N):
        super().__init__(top_n=top_n)
        self.timeout = timeout

    def payload(self, report: Report) -> dict:
        data = report.model_dump(mode="json", by_alias=True)
        data["discrepancies"] = data["discrepancies"][: self.top_n]
        return {"text": self.subject(report), "report": data}

    def send(self, report: Report, recipients: Sequence[str]) -> None:
        payload = self.payload(report)
        for url in recipients:
            logger.info(f"🚀 Posting report summary to webhook: {url}")
            try:
                response = requests.post(url, json=payload, timeout=self.timeout)
                response.raise_for_status()
            except requests.exceptions.RequestException as e:
                raise NotificationError(f"Error posting to webhook {url}: {e}") from e
        logger.info("✅ Report summary successfully posted to webhook.")
