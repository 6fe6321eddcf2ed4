"""Customer email notifications.

Templates live in ``settings.template_dir`` as ``<name>.html`` Jinja2 files.
Delivery is best-effort: failures are logged and reported as ``False`` and
never raised, so a notification cannot undo a business operation that has
already been saved.  When email is disabled the rendered message is only
logged (preview mode).
"""

from __future__ import annotations

import functools
import logging
import smtplib
import ssl
import threading
from email.message import EmailMessage
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import settings

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=4)
def _environment(template_dir: str) -> Environment:
    return Environment(
        loader=FileSystemLoader(template_dir),
        autoescape=select_autoescape(["html"]),
    )


def render_email(template_name: str, payload: dict[str, Any]) -> str:
    """Render the ``<template_name>.html`` template with *payload*."""
    template = _environment(settings.template_dir).get_template(f"{template_name}.html")
    return template.render(shop_name=settings.shop_name, **payload)


def _deliver(to: str, subject: str, html: str) -> None:
    """Send one HTML message over SMTP with implicit TLS."""
    message = EmailMessage()
    message["From"] = settings.email_from or settings.smtp_user
    message["To"] = to
    message["Subject"] = subject
    message.set_content("This message requires an HTML-capable mail client.")
    message.add_alternative(html, subtype="html")

    context = ssl.create_default_context()
    with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, context=context, timeout=30) as smtp:
        if settings.smtp_user:
            smtp.login(settings.smtp_user, settings.smtp_password)
        smtp.send_message(message)


def send_email(
    template_name: str,
    to: str | None,
    subject: str,
    payload: dict[str, Any],
) -> bool:
    """Render and send an email. Returns True only if it was delivered."""
    if not to:
        logger.warning("No recipient for %s email, skipping", template_name)
        return False
    try:
        html = render_email(template_name, payload)
        if not settings.email_enabled or not settings.smtp_host:
            logger.info("Email disabled, preview of %s to %s: %s", template_name, to, subject)
            logger.debug("%s", html)
            return False
        _deliver(to, subject, html)
    except Exception:
        logger.exception("Failed to send %s email to %s", template_name, to)
        return False
    logger.info("Sent %s email to %s", template_name, to)
    return True


def send_email_async(
    template_name: str,
    to: str | None,
    subject: str,
    payload: dict[str, Any],
) -> threading.Thread:
    """Send an email from a daemon thread and return the started thread.

    *payload* must already be fully built; the worker never touches the
    database.
    """
    thread = threading.Thread(
        target=send_email,
        args=(template_name, to, subject, payload),
        name=f"email-{template_name}",
        daemon=True,
    )
    thread.start()
    return thread
