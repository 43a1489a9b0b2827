"""Best-effort booking notifications.

Notifiers run after the booking transaction has committed. Every public method
swallows and logs its own failures: a broken mail server or broker must never
fail or roll back a booking.
"""
import logging
from abc import ABC, abstractmethod
from html import escape

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal
from app.models.booking import Booking
from app.models.catalog_item import CatalogItem
from app.models.user import User
from app.services.email_service import queue_email

logger = logging.getLogger(__name__)

CREATED = "created"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"


class Notifier(ABC):
    def notify_booking_created(self, booking: Booking, customer: User, item: CatalogItem) -> None:
        self._safe(CREATED, booking, customer, item)

    def notify_booking_confirmed(self, booking: Booking, customer: User, item: CatalogItem) -> None:
        self._safe(CONFIRMED, booking, customer, item)

    def notify_booking_cancelled(self, booking: Booking, customer: User, item: CatalogItem) -> None:
        self._safe(CANCELLED, booking, customer, item)

    def _safe(self, kind: str, booking: Booking, customer: User, item: CatalogItem) -> None:
        try:
            self.send(kind, booking, customer, item)
        except Exception:
            logger.exception("booking %s: %s notification failed", booking.booking_number, kind)

    @abstractmethod
    def send(self, kind: str, booking: Booking, customer: User, item: CatalogItem) -> None:
        """Deliver one notification; may raise, callers go through _safe."""


class DisabledNotifier(Notifier):
    def send(self, kind, booking, customer, item):
        logger.debug("notifications disabled; skipping %s for %s", kind, booking.booking_number)


class CeleryNotifier(Notifier):
    """Hands the notification to the worker; only ids cross the broker."""

    def send(self, kind, booking, customer, item):
        from app.tasks.jobs import send_booking_notification

        send_booking_notification.delay(booking.id, kind)


class EmailNotifier(Notifier):
    def __init__(self, db: Session):
        self.db = db

    def send(self, kind, booking, customer, item):
        for to_email, subject, text_body, html_body in render_messages(kind, booking, customer, item):
            queue_email(self.db, to_email, subject, text_body, html_body, related_booking_number=booking.booking_number)


class InlineEmailNotifier(Notifier):
    """Sends from the web process with a session of its own."""

    def send(self, kind, booking, customer, item):
        db = SessionLocal()
        try:
            EmailNotifier(db).send(kind, booking, customer, item)
        finally:
            db.close()


def build_notifier(backend: str | None = None) -> Notifier:
    backend = (backend or settings.NOTIFIER_BACKEND or "celery").lower()
    if backend == "inline":
        return InlineEmailNotifier()
    if backend == "disabled":
        return DisabledNotifier()
    return CeleryNotifier()


def _details(booking: Booking, item: CatalogItem) -> list[tuple[str, str]]:
    rows = [
        ("Booking Number", booking.booking_number),
        ("Tour" if item.kind == "tour" else "Service", item.title),
        ("Start Date", booking.start_date.isoformat()),
        ("End Date", booking.end_date.isoformat()),
        ("Travelers", str(booking.total_travelers)),
        ("Total Amount", f"{booking.currency} {booking.total_amount}"),
    ]
    if booking.special_requests:
        rows.append(("Special Requests", booking.special_requests))
    return rows


def _render(heading: str, intro: str, rows: list[tuple[str, str]], outro: str) -> tuple[str, str]:
    text = "\n".join([heading, "", intro, ""] + [f"{k}: {v}" for k, v in rows] + ["", outro])
    # customer-supplied text (names, special requests) is escaped in the HTML part
    items = "".join(f"<li><strong>{escape(k)}:</strong> {escape(v)}</li>" for k, v in rows)
    html = f"<h2>{escape(heading)}</h2><p>{escape(intro)}</p><ul>{items}</ul><p>{escape(outro)}</p>"
    return text, html


def render_messages(kind: str, booking: Booking, customer: User, item: CatalogItem) -> list[tuple[str, str, str, str]]:
    """(to, subject, text, html) for every recipient of a notification kind."""
    rows = _details(booking, item)
    name = customer.full_name or customer.email
    signature = f"Best regards, {settings.COMPANY_NAME}"
    out = []

    if kind == CREATED:
        text, html = _render(
            f"Booking Request Received - {item.title}",
            f"Dear {name}, thank you for your booking request. Your booking is reserved and awaiting payment.",
            rows, signature,
        )
        out.append((customer.email, f"Booking Request Received - {booking.booking_number}", text, html))
        if settings.STAFF_EMAIL:
            staff_rows = [("Customer", name), ("Email", customer.email), ("Phone", customer.phone or "-")] + rows
            text, html = _render(
                f"New Booking Received - {item.title}",
                "A new booking has been submitted through the website.",
                staff_rows, "Please review this booking.",
            )
            out.append((settings.STAFF_EMAIL, f"New Booking - {booking.booking_number}", text, html))
    elif kind == CONFIRMED:
        text, html = _render(
            f"Booking Confirmed - {item.title}",
            f"Dear {name}, we received your payment and your booking is confirmed.",
            rows + [("Paid Amount", f"{booking.currency} {booking.paid_amount}")], signature,
        )
        out.append((customer.email, f"Booking Confirmed - {booking.booking_number}", text, html))
    elif kind == CANCELLED:
        text, html = _render(
            f"Booking Cancelled - {item.title}",
            f"Dear {name}, your booking has been cancelled.",
            rows, signature,
        )
        out.append((customer.email, f"Booking Cancelled - {booking.booking_number}", text, html))
    else:
        raise ValueError(f"unknown notification kind: {kind}")
    return out
