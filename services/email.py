import logging
import os
from decimal import Decimal
from typing import Dict, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import settings
from tasks.email_tasks import send_email_task

logger = logging.getLogger(__name__)

# Queue through Celery; direct SMTP is only the fallback when the broker is unreachable
USE_CELERY = not settings.TESTING


# Jinja2 environment for email templates
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
)


def send_email(to_email: str, subject: str, body: str) -> None:
    """
    Send email using Celery if available, otherwise send directly.
    Returns immediately when the task could be queued.
    """
    if USE_CELERY:
        try:
            send_email_task.delay(to_email, subject, body)
            logger.info("Email to %s queued", to_email)
            return
        except Exception as e:
            logger.warning("Celery not available, sending email directly: %s", e)

    _send_email_direct(to_email, subject, body)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(**context)


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
    """Render a template and send email via existing send_email path."""
    body = render_template(template_path, context)
    send_email(to_email, subject, body)


def send_order_ready_email(to_email: str, name: str, canteen_name: str, total_amount: Decimal | str) -> None:
    send_templated_email(
        to_email,
        f"Your order at {canteen_name} is ready",
        "emails/order_ready.txt",
        {"name": name, "canteen_name": canteen_name, "total_amount": total_amount},
    )


def _send_email_direct(to_email: str, subject: str, body: str) -> None:
    """Direct email sending fallback"""
    import smtplib
    from email.message import EmailMessage

    if not settings.SMTP_USERNAME or not settings.SMTP_PASSWORD:
        logger.info("SMTP not configured, skipping email to %s: %s", to_email, subject)
        return

    try:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = settings.SMTP_FROM or settings.SMTP_USERNAME
        msg["To"] = to_email
        msg.set_content(body)

        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            server.starttls()
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.send_message(msg)

        logger.info("Email sent to %s", to_email)
    except Exception:
        logger.exception("Email sending to %s failed", to_email)
