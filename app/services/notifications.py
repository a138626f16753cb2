"""Fire-and-forget notification sinks.

Registration hands the sink a recipient, a template kind and a data dict.
Delivery problems are logged here and never reach the caller.
"""
import os
import smtplib
import ssl
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Dict, Optional, Protocol

from fastapi import BackgroundTasks

logger = logging.getLogger(__name__)

REGISTRATION_TICKET = "registration_ticket"


class Notifier(Protocol):
    def notify(self, recipient: str, template_kind: str, data: Dict[str, Any]) -> None:
        ...


def notify_safely(notifier: Optional[Notifier], recipient: Optional[str], template_kind: str, data: Dict[str, Any]) -> None:
    if notifier is None or not recipient:
        return
    try:
        notifier.notify(recipient, template_kind, data)
    except Exception as e:
        logger.warning(f"Notification '{template_kind}' to {recipient} failed: {str(e)}")


class LoggingNotifier:
    def notify(self, recipient: str, template_kind: str, data: Dict[str, Any]) -> None:
        logger.info(f"Notification '{template_kind}' for {recipient}: {data}")


def _bool_env(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class SMTPConfig:
    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    use_tls: bool
    sender: str

    @classmethod
    def from_env(cls) -> Optional["SMTPConfig"]:
        host = os.getenv("SMTP_HOST")
        port_raw = os.getenv("SMTP_PORT")
        sender = os.getenv("SMTP_FROM")
        if not host or not port_raw or not sender:
            return None
        try:
            port = int(port_raw)
        except ValueError:
            raise RuntimeError(f"Invalid SMTP_PORT: {port_raw}")
        return cls(
            host=host,
            port=port,
            user=os.getenv("SMTP_USER"),
            password=os.getenv("SMTP_PASS"),
            use_tls=_bool_env(os.getenv("SMTP_TLS"), default=True),
            sender=sender,
        )


def render_ticket(data: Dict[str, Any]) -> tuple:
    program_name = data.get("program_name", "")
    event_date = data.get("date") or "Date To Be Announced"
    venue = data.get("venue") or "Venue TBD"
    attendee = data.get("full_name", "")
    organization = data.get("organization") or "Individual"
    subject = f"Your Ticket: {program_name}"
    text = (
        f"Event Registration\n{program_name}\n"
        f"Date: {event_date}\nLocation: {venue}\n\n"
        f"Attendee: {attendee} ({organization})\n"
        f"Ticket: {data.get('participant_id')}\n"
    )
    html = (
        f"<h2>{program_name}</h2>"
        f"<p><strong>Date:</strong> {event_date}</p>"
        f"<p><strong>Location:</strong> {venue}</p>"
        f"<p><strong>Attendee:</strong> {attendee} ({organization})</p>"
        f"<p><strong>Ticket:</strong> {data.get('participant_id')}</p>"
    )
    return subject, text, html


class SMTPNotifier:
    TEMPLATES = {REGISTRATION_TICKET: render_ticket}

    def __init__(self, config: SMTPConfig):
        self.config = config

    def notify(self, recipient: str, template_kind: str, data: Dict[str, Any]) -> None:
        render = self.TEMPLATES.get(template_kind)
        if render is None:
            raise ValueError(f"Unknown notification template: {template_kind}")
        subject, text, html = render(data)

        message = EmailMessage()
        message["From"] = self.config.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")

        with smtplib.SMTP(self.config.host, self.config.port, timeout=20) as server:
            server.ehlo()
            if self.config.use_tls:
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            if self.config.user and self.config.password:
                server.login(self.config.user, self.config.password)
            server.send_message(message)
        logger.info(f"Sent '{template_kind}' email to {recipient}")


class BackgroundNotifier:
    """Defers delivery to FastAPI background tasks so the response is not held up."""

    def __init__(self, background_tasks: BackgroundTasks, sink: Notifier):
        self.background_tasks = background_tasks
        self.sink = sink

    def notify(self, recipient: str, template_kind: str, data: Dict[str, Any]) -> None:
        self.background_tasks.add_task(notify_safely, self.sink, recipient, template_kind, data)


def get_notifier() -> Notifier:
    config = SMTPConfig.from_env()
    if config is None:
        return LoggingNotifier()
    return SMTPNotifier(config)
