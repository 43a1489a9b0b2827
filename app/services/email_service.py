import logging
import smtplib
import uuid
from datetime import datetime, timezone
from email.message import EmailMessage

import requests
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.email_log import EmailLog

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5


def queue_email(db: Session, to_email: str, subject: str, body: str, html_body: str | None = None,
                related_booking_number: str = "") -> str:
    """Persist the message, then try to send it once. Failed sends stay in the table for the worker."""
    eid = str(uuid.uuid4())
    log = EmailLog(
        id=eid,
        to_email=to_email,
        subject=subject,
        body=body,
        html_body=html_body,
        status="queued",
        related_booking_number=related_booking_number,
    )
    db.add(log)
    db.commit()

    _attempt(log)
    db.commit()
    return eid


def _attempt(log: EmailLog) -> bool:
    log.attempts = (log.attempts or 0) + 1
    try:
        send_email(log.to_email, log.subject, log.body or "", log.html_body)
    except Exception:
        logger.warning("email %s to %s failed (attempt %s)", log.id, log.to_email, log.attempts, exc_info=True)
        log.status = "failed"
        return False
    log.status = "sent"
    log.sent_at = datetime.now(timezone.utc)
    return True


def send_email(to_email: str, subject: str, body: str, html_body: str | None = None):
    """Send via SendGrid if configured, otherwise SMTP (MailHog recommended for local)."""
    if settings.SENDGRID_API_KEY:
        _send_via_sendgrid(to_email, subject, body, html_body)
        return

    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


def _send_via_sendgrid(to_email: str, subject: str, body: str, html_body: str | None):
    content = [{"type": "text/plain", "value": body}]
    if html_body:
        content.append({"type": "text/html", "value": html_body})
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM},
        "subject": subject,
        "content": content,
    }
    r = requests.post(
        "https://api.sendgrid.com/v3/mail/send",
        json=payload,
        headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        timeout=20,
    )
    if r.status_code >= 400:
        raise RuntimeError(f"SendGrid error {r.status_code}: {r.text}")


def process_pending_emails(db: Session, limit: int = 50) -> dict:
    """Retry queued/failed emails that still have attempts left. Returns counts."""
    pending = (
        db.query(EmailLog)
        .filter(
            EmailLog.status.in_(["queued", "failed"]),
            EmailLog.attempts < MAX_ATTEMPTS,
            EmailLog.body.isnot(None),
        )
        .order_by(EmailLog.created_at.asc())
        .limit(limit)
        .all()
    )
    sent = sum(1 for log in pending if _attempt(log))
    if pending:
        db.commit()
    return {"processed": len(pending), "sent": sent, "failed": len(pending) - sent}
