import logging
from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError
from app.db.session import SessionLocal
from app.models.booking import Booking
from app.models.catalog_item import CatalogItem
from app.models.user import User
from app.services.email_service import process_pending_emails
from app.services.notifier import EmailNotifier

logger = logging.getLogger(__name__)


def send_booking_notification(booking_id: str, kind: str) -> dict:
    """Render and queue the emails for one booking event."""
    db: Session = SessionLocal()
    try:
        booking = db.get(Booking, booking_id)
        if booking is None:
            logger.warning("notification %s skipped: booking %s not found", kind, booking_id)
            return {"skipped": True, "reason": "booking_not_found"}
        customer = db.get(User, booking.customer_id)
        item = db.get(CatalogItem, booking.catalog_item_id)
        if customer is None or item is None:
            return {"skipped": True, "reason": "missing_related"}
        EmailNotifier(db).send(kind, booking, customer, item)
        return {"ok": True, "bookingNumber": booking.booking_number, "kind": kind}
    finally:
        db.close()


def process_email_queue(limit: int = 50) -> dict:
    """Process queued/failed emails (retry send). Run periodically via Celery beat."""
    db: Session = SessionLocal()
    try:
        try:
            return process_pending_emails(db, limit=limit)
        except ProgrammingError:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()
