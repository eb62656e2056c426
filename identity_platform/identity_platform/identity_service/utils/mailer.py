"""
Outgoing email for one-time codes.

Services depend on the NotificationSink protocol. ConsoleNotificationSink
writes rendered messages to the log (development); SmtpNotificationSink
delivers them through an SMTP relay. Both render Jinja2 templates named
after the template id.
"""
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Mapping, Protocol

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from ..config import Settings
from ..errors import DeliveryError

logger = logging.getLogger(__name__)

VERIFY_ACCOUNT_TEMPLATE = "verify-account"
RESET_PASSWORD_TEMPLATE = "reset-password"

VERIFY_ACCOUNT_SUBJECT = "Verify your email"
RESET_PASSWORD_SUBJECT = "Reset password"


class NotificationSink(Protocol):
    def send(self, to: str, subject: str, template_id: str, context: Mapping[str, Any]) -> None:
        """Deliver a templated message or raise DeliveryError."""
        ...


class TemplateRenderer:
    def __init__(self, template_dir: str):
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def render(self, template_id: str, context: Mapping[str, Any]) -> str:
        try:
            return self._jinja.get_template(f"{template_id}.html").render(**context)
        except TemplateError as exc:
            raise DeliveryError(f"Could not render email template '{template_id}'") from exc


class ConsoleNotificationSink:
    """Development sink: log the message instead of sending it."""

    def __init__(self, renderer: TemplateRenderer):
        self._renderer = renderer

    def send(self, to: str, subject: str, template_id: str, context: Mapping[str, Any]) -> None:
        body = self._renderer.render(template_id, context)
        logger.info("[DEV] Email to=%s subject=%r template=%s context=%s", to, subject, template_id, dict(context))
        logger.debug("[DEV] Email body:\n%s", body)


class SmtpNotificationSink:
    def __init__(
        self,
        renderer: TemplateRenderer,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        use_ssl: bool = False,
        timeout: float = 10.0,
    ):
        self._renderer = renderer
        self._host = host
        self._port = port
        self._sender = sender
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._use_ssl = use_ssl
        self._timeout = timeout

    def send(self, to: str, subject: str, template_id: str, context: Mapping[str, Any]) -> None:
        message = EmailMessage()
        message["From"] = f'"No Reply" <{self._sender}>'
        message["To"] = to
        message["Subject"] = subject
        message.set_content(f"{subject}\n\nYour code is: {context.get('otp_code', '')}")
        message.add_alternative(self._renderer.render(template_id, context), subtype="html")

        try:
            transport = smtplib.SMTP_SSL if self._use_ssl else smtplib.SMTP
            with transport(self._host, self._port, timeout=self._timeout) as smtp:
                if self._use_tls and not self._use_ssl:
                    smtp.starttls()
                if self._username:
                    smtp.login(self._username, self._password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email_send_error to=%s subject=%r error=%s", to, subject, exc)
            raise DeliveryError("Failed to send email") from exc

        logger.info("email_sent_success to=%s subject=%r", to, subject)


def build_notification_sink(settings: Settings) -> NotificationSink:
    renderer = TemplateRenderer(settings.TEMPLATE_DIR)
    if settings.EMAIL_BACKEND == "smtp":
        return SmtpNotificationSink(
            renderer,
            host=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            sender=settings.EMAIL_FROM,
            username=settings.EMAIL_USER,
            password=settings.EMAIL_PASSWORD,
            use_tls=settings.EMAIL_USE_TLS,
            use_ssl=settings.EMAIL_USE_SSL,
        )
    return ConsoleNotificationSink(renderer)
