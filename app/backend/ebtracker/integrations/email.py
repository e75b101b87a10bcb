"""Notification sender.

Senders take ``(recipients, template, data)`` and either deliver or raise.
Callers treat every failure as non-fatal.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from functools import lru_cache
from typing import Any, Protocol

from ebtracker.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class EmailProvider:
    SMTP = "smtp"
    LOG = "log"


# Subject and body per template. Bodies are plain text; rich rendering lives
# outside this service.
TEMPLATES: dict[str, tuple[str, str]] = {
    "proposalApproved": (
        "Proposal approved: {project_name}",
        "Your proposal for {client_company} ({project_name}) was approved by {reviewer}.\n{notes}",
    ),
    "proposalRejected": (
        "Proposal rejected: {project_name}",
        "Your proposal for {client_company} ({project_name}) was rejected by {reviewer}.\nReason: {notes}",
    ),
    "projectAllocated": (
        "Project allocated: {project_name}",
        "You have been assigned as design lead for {project_name} ({project_code}).",
    ),
    "designerAssigned": (
        "Assigned to project: {project_name}",
        "You have been assigned to {project_name} ({project_code}).",
    ),
    "variationSubmitted": (
        "Variation submitted: {variation_code}",
        "{submitted_by} submitted variation {variation_code} for {estimated_hours} hours on {project_code}.",
    ),
    "variationApproved": (
        "Variation approved: {variation_code}",
        "Variation {variation_code} was approved for {approved_hours} hours by {reviewer}.\n{notes}",
    ),
    "variationRejected": (
        "Variation rejected: {variation_code}",
        "Variation {variation_code} was rejected by {reviewer}.\nReason: {notes}",
    ),
    "paymentReceived": (
        "Payment received for {project_name}",
        "We received your payment of {amount} {currency}. Thank you.",
    ),
    "invoiceGenerated": (
        "Invoice {invoice_no}",
        "Invoice {invoice_no} for {amount} {currency} is due on {due_date}.",
    ),
    "timeRequestSubmitted": (
        "Time-off request from {user_name}",
        "{user_name} requested {days} day(s) off from {start_date} to {end_date}.",
    ),
    "timeRequestApproved": (
        "Time-off approved",
        "Your time off from {start_date} to {end_date} was approved by {reviewer}.\n{notes}",
    ),
    "timeRequestRejected": (
        "Time-off rejected",
        "Your time off from {start_date} to {end_date} was rejected by {reviewer}.\nReason: {notes}",
    ),
    "deliverableSubmitted": (
        "Deliverable submitted: {deliverable_name}",
        "{submitted_by} submitted deliverable {deliverable_name} for review.",
    ),
}


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return ""


def render(template: str, data: dict[str, Any], *, login_url: str | None = None) -> tuple[str, str]:
    """Return ``(subject, body)`` for a template name."""

    try:
        subject, body = TEMPLATES[template]
    except KeyError:
        raise ValueError(f"Unknown notification template: {template}") from None

    values = _Blank(data)
    rendered_body = body.format_map(values)
    if login_url:
        rendered_body = f"{rendered_body}\n\nSign in: {login_url}"
    return subject.format_map(values), rendered_body


class NotificationSender(Protocol):
    def send(self, recipients: list[str], template: str, data: dict[str, Any]) -> None:
        ...


class LoggingNotificationSender:
    """Writes notifications to the log instead of sending them."""

    def __init__(self, *, login_url: str | None = None) -> None:
        self.login_url = login_url

    def send(self, recipients: list[str], template: str, data: dict[str, Any]) -> None:
        subject, _ = render(template, data, login_url=self.login_url)
        logger.info("Notification %s to %s: %s", template, ", ".join(recipients), subject)


class SmtpNotificationSender:
    def __init__(self, settings: Settings) -> None:
        if not settings.smtp_host:
            raise ValueError("smtp_host must be configured for the smtp email provider")
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.use_tls = settings.smtp_use_tls
        self.from_email = settings.email_from
        self.login_url = settings.frontend_url

    def send(self, recipients: list[str], template: str, data: dict[str, Any]) -> None:
        subject, body = render(template, data, login_url=self.login_url)

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.from_email
        message["To"] = ", ".join(recipients)
        message.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message)

        logger.info("Sent %s notification to %d recipient(s)", template, len(recipients))


def build_notification_sender(settings: Settings) -> NotificationSender:
    if settings.email_provider == EmailProvider.SMTP:
        return SmtpNotificationSender(settings)
    return LoggingNotificationSender(login_url=settings.frontend_url)


@lru_cache
def get_notification_sender() -> NotificationSender:
    return build_notification_sender(get_settings())
