from email.message import EmailMessage
import html
import logging
import smtplib
from typing import Protocol

from bounce_report.config import Settings
from bounce_report.schemas import OutboundEmail


logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send_templated_email(self, template: str, message: OutboundEmail, locals: dict[str, str]) -> None: ...


def render_alert(message: OutboundEmail, locals: dict[str, str]) -> tuple[str, str]:
    body = locals.get("message", "")
    html_body = (
        "<!doctype html>\n"
        "<html><body>\n"
        f"<h2>{html.escape(message.subject)}</h2>\n"
        f"{body}\n"
        "</body></html>\n"
    )
    text_body = f"{message.subject}\n\nThis alert is best viewed in an HTML capable mail client.\n"
    return html_body, text_body


TEMPLATES = {
    "alert": render_alert,
}


def build_email_message(template: str, message: OutboundEmail, locals: dict[str, str], *, sender: str) -> EmailMessage:
    try:
        render = TEMPLATES[template]
    except KeyError:
        raise ValueError(f"unknown email template: {template}") from None

    html_body, text_body = render(message, locals)

    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = message.to
    msg["Subject"] = message.subject
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")

    for attachment in message.attachments:
        maintype, _, subtype = attachment.content_type.partition("/")
        msg.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
    return msg


class SmtpMailer:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def send_templated_email(self, template: str, message: OutboundEmail, locals: dict[str, str]) -> None:
        msg = build_email_message(template, message, locals, sender=self.settings.mail_from)

        if self.settings.mail_preview:
            logger.info(
                "mail preview, not sending",
                extra={"to": message.to, "subject": message.subject, "attachments": len(message.attachments)},
            )
            return

        with smtplib.SMTP(
            self.settings.smtp_host,
            self.settings.smtp_port,
            timeout=self.settings.smtp_timeout_seconds,
        ) as server:
            if self.settings.smtp_starttls:
                server.starttls()
            if self.settings.smtp_username:
                server.login(self.settings.smtp_username, self.settings.smtp_password)
            server.send_message(msg)

        logger.info("email sent", extra={"to": message.to, "subject": message.subject})
