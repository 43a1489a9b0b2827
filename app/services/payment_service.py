"""Applies payment provider outcomes to bookings.

Every outcome is keyed by (booking, provider, transaction reference, status)
in the ``payments`` ledger, so a redelivered webhook or a client confirm racing
the webhook is applied at most once per booking.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    RetryableError,
    ValidationError,
)
from app.models.booking import (
    Booking,
    BOOKING_PENDING,
    BOOKING_CONFIRMED,
    BOOKING_CANCELLED,
    PAYMENT_PAID,
    PAYMENT_FAILED,
    PAYMENT_REFUNDED,
)
from app.models.booking_note import BookingNote
from app.models.catalog_item import CatalogItem
from app.models.payment import Payment
from app.models.user import User
from app.services.audit_service import record_admin_action
from app.services.booking_service import utcnow
from app.services.inventory import apply_transaction_timeout
from app.services.notifier import DisabledNotifier, Notifier
from app.services.pricing import money

logger = logging.getLogger(__name__)

SYSTEM_AUTHOR = "system"


@dataclass(frozen=True)
class PaymentSucceeded:
    transaction_id: str
    amount: Decimal
    method: Optional[str] = None


@dataclass(frozen=True)
class PaymentFailed:
    reason: str
    transaction_id: Optional[str] = None


PaymentOutcome = Union[PaymentSucceeded, PaymentFailed]


@dataclass
class ReconciliationResult:
    booking: Booking
    applied: bool
    confirmed: bool = False


class PaymentReconciler:
    def __init__(self, db: Session, notifier: Notifier | None = None, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.notifier = notifier or DisabledNotifier()
        self.clock = clock

    def _lock_booking(self, booking_id: str) -> Booking:
        booking = self.db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if booking is None:
            raise NotFoundError("booking not found")
        return booking

    def booking_id_for_number(self, booking_number: str) -> str:
        row = self.db.execute(select(Booking.id).where(Booking.booking_number == booking_number)).first()
        if row is None:
            raise NotFoundError("booking not found")
        return row[0]

    def _ledgered(self, booking_id: str, provider: str, ref: str, status: str) -> bool:
        return self.db.execute(
            select(Payment.id).where(
                Payment.booking_id == booking_id,
                Payment.provider == provider,
                Payment.provider_ref == ref,
                Payment.status == status,
            )
        ).first() is not None

    def _ledger(self, booking: Booking, provider: str, ref: str, amount: Decimal, status: str) -> None:
        self.db.add(Payment(
            id=str(uuid.uuid4()),
            booking_id=booking.id,
            provider=provider,
            provider_ref=ref,
            amount=amount,
            currency=booking.currency,
            status=status,
            created_at=self.clock(),
        ))

    def _note(self, booking: Booking, content: str, author: str = SYSTEM_AUTHOR) -> None:
        self.db.add(BookingNote(
            id=str(uuid.uuid4()), booking_id=booking.id, content=content, author=author, created_at=self.clock(),
        ))

    # -------------------------
    # outcomes
    # -------------------------
    def apply_payment_result(self, booking_id: str, outcome: PaymentOutcome, provider: str = "stripe",
                             actor: User | None = None) -> ReconciliationResult:
        """Apply a provider outcome idempotently. Returns whether anything changed.

        When an admin ``actor`` records the outcome, the audit row is written in
        the same transaction as the payment.
        """
        try:
            apply_transaction_timeout(self.db)
            booking = self._lock_booking(booking_id)
            if isinstance(outcome, PaymentSucceeded):
                applied, confirmed = self._apply_success(booking, outcome, provider)
            elif isinstance(outcome, PaymentFailed):
                applied, confirmed = self._apply_failure(booking, outcome, provider), False
            else:
                raise ValidationError("unknown payment outcome")
            if applied:
                if actor is not None:
                    details = {"reference": outcome.transaction_id}
                    if isinstance(outcome, PaymentSucceeded):
                        details.update(amount=str(money(outcome.amount)), method=outcome.method)
                    record_admin_action(self.db, actor.id, f"booking.{provider}_payment", "booking", booking.id,
                                        **details)
                self.db.commit()
            else:
                self.db.rollback()
        except IntegrityError:
            # a concurrent delivery of the same outcome won the ledger insert
            self.db.rollback()
            logger.info("booking %s: %s outcome already recorded concurrently", booking_id, provider)
            return ReconciliationResult(booking=self.db.get(Booking, booking_id), applied=False)
        except StaleDataError as e:
            self.db.rollback()
            raise ConflictError("booking was modified concurrently, retry") from e
        except OperationalError as e:
            self.db.rollback()
            raise RetryableError("payment reconciliation busy, please retry") from e

        if confirmed:
            customer = self.db.get(User, booking.customer_id)
            item = self.db.get(CatalogItem, booking.catalog_item_id)
            if customer is not None and item is not None:
                self.notifier.notify_booking_confirmed(booking, customer, item)
        return ReconciliationResult(booking=booking, applied=applied, confirmed=confirmed)

    def _apply_success(self, booking: Booking, outcome: PaymentSucceeded, provider: str) -> tuple[bool, bool]:
        txn = outcome.transaction_id
        amount = money(outcome.amount)
        if not txn:
            raise ValidationError("transaction id is required")

        if booking.payment_status == PAYMENT_PAID and booking.transaction_id == txn:
            logger.info("booking %s: duplicate success for %s ignored", booking.booking_number, txn)
            return False, False

        if booking.payment_status in (PAYMENT_PAID, PAYMENT_REFUNDED):
            # settled by another transaction: record it for review, never re-apply
            if self._ledgered(booking.id, provider, txn, PAYMENT_PAID):
                return False, False
            logger.warning("booking %s: second payment %s received while %s via %s",
                           booking.booking_number, txn, booking.payment_status, booking.transaction_id)
            self._ledger(booking, provider, txn, amount, PAYMENT_PAID)
            self._note(booking, f"Additional payment {txn} of {booking.currency} {amount} received via {provider} "
                                f"while booking was already {booking.payment_status}; review for refund")
            return True, False

        if amount != money(booking.total_amount):
            logger.warning("booking %s: paid %s but total is %s", booking.booking_number, amount, booking.total_amount)

        booking.payment_status = PAYMENT_PAID
        booking.transaction_id = txn
        booking.paid_amount = amount
        booking.payment_date = self.clock()
        if outcome.method:
            booking.payment_method = outcome.method

        confirmed = False
        content = f"Payment {txn} of {booking.currency} {amount} received via {provider}"
        if booking.status == BOOKING_PENDING:
            booking.status = BOOKING_CONFIRMED
            confirmed = True
            content += "; booking confirmed"
        elif booking.status == BOOKING_CANCELLED:
            content += "; booking is cancelled, refund required"
        self._ledger(booking, provider, txn, amount, PAYMENT_PAID)
        self._note(booking, content)
        self.db.flush()
        logger.info("booking %s: payment %s applied (%s %s)", booking.booking_number, txn, booking.currency, amount)
        return True, confirmed

    def _apply_failure(self, booking: Booking, outcome: PaymentFailed, provider: str) -> bool:
        if booking.payment_status in (PAYMENT_PAID, PAYMENT_REFUNDED):
            logger.info("booking %s: late failure from %s ignored, booking already %s",
                        booking.booking_number, provider, booking.payment_status)
            return False
        ref = outcome.transaction_id or ""
        if self._ledgered(booking.id, provider, ref, PAYMENT_FAILED):
            return False

        booking.payment_status = PAYMENT_FAILED
        self._ledger(booking, provider, ref, Decimal("0"), PAYMENT_FAILED)
        self._note(booking, f"Payment failed via {provider}: {outcome.reason or 'no reason given'}")
        self.db.flush()
        logger.info("booking %s: payment failure recorded (%s)", booking.booking_number, outcome.reason)
        return True

    # -------------------------
    # refunds
    # -------------------------
    def refund(self, booking_id: str, actor: User, gateway=None, amount: Decimal | None = None) -> Booking:
        """Refund a paid booking. The provider is called outside any open transaction."""
        booking = self.db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("booking not found")
        if booking.payment_status != PAYMENT_PAID:
            raise InvalidStateError(f"cannot refund a booking whose payment is {booking.payment_status}")
        paid = money(booking.paid_amount)
        amount = money(amount) if amount is not None else paid
        if amount <= 0 or amount > paid:
            raise ValidationError("refund amount must be positive and not exceed the paid amount")

        txn, currency = booking.transaction_id, booking.currency
        provider_row = self.db.execute(
            select(Payment.provider).where(
                Payment.booking_id == booking.id, Payment.provider_ref == txn, Payment.status == PAYMENT_PAID,
            )
        ).first()
        provider = provider_row[0] if provider_row else "manual"
        self.db.rollback()

        if provider == "stripe":
            if gateway is None:
                raise InvalidStateError("stripe is not configured")
            refund_ref = gateway.refund(txn, amount, currency)
        else:
            # settled outside the API (bank transfer, VNPay portal); record only
            refund_ref = f"{txn}-refund"

        try:
            apply_transaction_timeout(self.db)
            booking = self._lock_booking(booking_id)
            if booking.payment_status != PAYMENT_PAID or booking.transaction_id != txn:
                raise ConflictError("booking payment changed during refund")
            booking.payment_status = PAYMENT_REFUNDED
            booking.refund_amount = amount
            booking.refund_date = self.clock()
            self._ledger(booking, provider, refund_ref, amount, PAYMENT_REFUNDED)
            self._note(booking, f"Refunded {currency} {amount} via {provider} ({refund_ref})", actor.id)
            record_admin_action(self.db, actor.id, "booking.refund", "booking", booking.id,
                                amount=str(amount), provider=provider, reference=refund_ref)
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise ConflictError("booking was modified concurrently, retry") from e
        except OperationalError as e:
            self.db.rollback()
            raise RetryableError("refund recording busy, please retry") from e
        logger.info("booking %s refunded %s %s by %s", booking.booking_number, currency, amount, actor.id)
        return booking
