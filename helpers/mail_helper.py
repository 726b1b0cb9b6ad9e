# helpers/mail_helper.py

import asyncio
import html
import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from pathlib import Path
from typing import Optional

from config.settings import settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

# header colour / icon per email type
EMAIL_STYLES = {
    "attendance": ("#00b894", "&#9989;"),
    "absence":    ("#ee5a24", "&#9888;&#65039;"),
    "general":    ("#667eea", "&#127891;"),
}

ABSENCE_NOTICE = (
    "<div class=\"important\"><strong>Important:</strong> If the absence is expected, "
    "please contact the office. If they are on their way, you may disregard this message.</div>"
)


def render_template(template_name: str, **kwargs) -> str:
    template_path = TEMPLATE_DIR / template_name
    if not template_path.exists():
        raise FileNotFoundError(f"Template not found: {template_path}")

    html_text = template_path.read_text(encoding="utf-8")

    for key, value in kwargs.items():
        html_text = html_text.replace(f"{{{{ {key} }}}}", str(value))

    return html_text


def render_notification_html(text: str, email_type: str = "general") -> str:
    color, icon = EMAIL_STYLES.get(email_type, EMAIL_STYLES["general"])
    now = datetime.now()
    return render_template(
        "emails/notification.html",
        app_name=html.escape(settings.APP_NAME),
        header_color=color,
        icon=icon,
        body=html.escape(text.strip()).replace("\n", "<br>"),
        timestamp=now.strftime("%B %d, %Y at %I:%M %p"),
        important=ABSENCE_NOTICE if email_type == "absence" else "",
        organization=html.escape(settings.ORGANIZATION_NAME),
        year=now.year,
    )


def send_email(to_email: str, subject: str, body: str, html_body: Optional[str] = None) -> str:
    """
    Send a multipart (text + HTML) email over SMTP. Blocking; returns the
    Message-ID we stamped on the message.
    """
    if not settings.email_configured:
        raise RuntimeError("Email transport not configured - check EMAIL_HOST / EMAIL_FROM")

    sender = settings.EMAIL_FROM or settings.EMAIL_USER
    message_id = make_msgid(domain=sender.split("@")[-1] if "@" in sender else None)

    msg = MIMEMultipart("alternative")
    msg["From"] = formataddr((settings.EMAIL_NAME, sender))
    msg["To"] = to_email
    msg["Subject"] = subject
    msg["Message-ID"] = message_id
    msg.attach(MIMEText(body, "plain", "utf-8"))
    if html_body:
        msg.attach(MIMEText(html_body, "html", "utf-8"))

    smtp_class = smtplib.SMTP_SSL if settings.EMAIL_USE_SSL else smtplib.SMTP
    with smtp_class(settings.EMAIL_HOST, settings.EMAIL_PORT, timeout=settings.EMAIL_TIMEOUT) as server:
        if settings.EMAIL_USE_TLS and not settings.EMAIL_USE_SSL:
            server.starttls()
        if settings.EMAIL_USER and settings.EMAIL_PASSWORD:
            server.login(settings.EMAIL_USER, settings.EMAIL_PASSWORD)
        server.send_message(msg)

    logger.info("Email sent to %s (%s)", to_email, message_id)
    return message_id


async def send_email_async(to_email: str, subject: str, body: str, html_body: Optional[str] = None) -> str:
    return await asyncio.to_thread(send_email, to_email, subject, body, html_body)
