import os
import smtplib
import ssl
import logging
import socket
from smtplib import SMTPServerDisconnected, SMTPAuthenticationError
import certifi
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Dict

from jinja2 import Environment, FileSystemLoader, select_autoescape


logger = logging.getLogger(__name__)


def _get_env() -> Environment:
    templates_dir = Path(__file__).resolve().parent.parent.parent / "templates" / "email"
    loader = FileSystemLoader(str(templates_dir))
    return Environment(loader=loader, autoescape=select_autoescape(["html", "xml"]))


def render_template(template_name: str, context: Dict[str, Any]) -> str:
    env = _get_env()
    template = env.get_template(template_name)
    return template.render(**context)


def _build_message(subject: str, to: str, html_body: str, text_body: str | None = None) -> EmailMessage:
    msg = EmailMessage()
    from_email = os.getenv("FROM_EMAIL", os.getenv("SMTP_USER", "no-reply@example.com"))
    from_name = os.getenv("FROM_NAME", "Hourbook")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to
    if text_body:
        msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")
    return msg


def send_email_smtp(message: EmailMessage) -> None:
    host = os.getenv("SMTP_HOST", "smtp.gmail.com")
    port = int(os.getenv("SMTP_PORT", "587"))
    user = os.getenv("SMTP_USER", "")
    password = os.getenv("SMTP_PASSWORD", "")
    timeout = float(os.getenv("SMTP_TIMEOUT", "10"))
    use_ssl = os.getenv("SMTP_USE_SSL", "false").lower() in {"1", "true", "yes"}
    use_tls = os.getenv("SMTP_USE_TLS", "true").lower() in {"1", "true", "yes"}

    if not user or not password:
        raise RuntimeError("SMTP credentials missing: set SMTP_USER and SMTP_PASSWORD env vars")

    # App passwords are often shown with spaces
    password = password.replace(" ", "")

    if port == 465 and not use_ssl:
        logger.warning("SMTP configured with port 465; enabling SSL and disabling STARTTLS")
        use_ssl = True
        use_tls = False
    if port == 587 and use_ssl:
        logger.warning("SMTP configured with port 587 and SSL; switching to STARTTLS")
        use_ssl = False
        use_tls = True

    context = ssl.create_default_context(cafile=certifi.where())

    try:
        if use_ssl:
            with smtplib.SMTP_SSL(host, port, timeout=timeout, context=context) as server:
                server.login(user, password)
                server.send_message(message)
            return

        with smtplib.SMTP(host, port, timeout=timeout) as server:
            server.ehlo()
            if use_tls:
                server.starttls(context=context)
                server.ehlo()
            server.login(user, password)
            server.send_message(message)
    except SMTPAuthenticationError as exc:
        raise RuntimeError(f"SMTP auth failed ({exc.smtp_code})") from exc
    except (SMTPServerDisconnected, ssl.SSLError, socket.timeout) as exc:
        raise RuntimeError(f"SMTP connection failed: {type(exc).__name__}: {exc}") from exc


def send_past_due_reminder_email(*, to: str, first_name: str | None, week_label: str, dashboard_url: str) -> None:
    name = first_name or "there"
    html = render_template(
        "past_due_reminder.html",
        {
            "first_name": name,
            "week_label": week_label,
            "dashboard_url": dashboard_url,
        },
    )
    text = (
        f"Hello {name},\n\n"
        f"You have not logged any time for the week of {week_label}.\n"
        f"Fill in your timesheet: {dashboard_url}\n"
    )
    msg = _build_message(
        subject=f"Reminder: timesheet for the week of {week_label}",
        to=to,
        html_body=html,
        text_body=text,
    )
    send_email_smtp(msg)
