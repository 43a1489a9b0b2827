from datetime import date, datetime, timezone
from decimal import Decimal
from sqlalchemy import String, Integer, Date, DateTime, Numeric, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.session import Base

BOOKING_PENDING = "pending"
BOOKING_CONFIRMED = "confirmed"
BOOKING_IN_PROGRESS = "in_progress"
BOOKING_COMPLETED = "completed"
BOOKING_CANCELLED = "cancelled"

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"
PAYMENT_REFUNDED = "refunded"

PAYMENT_METHODS = ("credit_card", "bank_transfer", "vnpay", "momo")

OPEN_STATUSES = (BOOKING_PENDING, BOOKING_CONFIRMED, BOOKING_IN_PROGRESS)

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_number: Mapped[str] = mapped_column(String(20), unique=True, index=True)

    customer_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)
    catalog_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("catalog_items.id"), index=True)
    slot_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("availability_slots.id"), nullable=True, index=True)

    start_date: Mapped[date] = mapped_column(Date, index=True)
    end_date: Mapped[date] = mapped_column(Date)
    total_travelers: Mapped[int] = mapped_column(Integer)

    # pricing snapshot, fixed at creation
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    taxes: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    payment_status: Mapped[str] = mapped_column(String(20), default=PAYMENT_PENDING, index=True)  # pending, paid, failed, refunded
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    refund_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(String(20), default=BOOKING_PENDING, index=True)  # pending, confirmed, in_progress, completed, cancelled

    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)
    emergency_contact_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    emergency_contact_phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    emergency_contact_relationship: Mapped[str | None] = mapped_column(String(80), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    travelers: Mapped[list["Traveler"]] = relationship(order_by="Traveler.position", cascade="all, delete-orphan")
    notes: Mapped[list["BookingNote"]] = relationship(order_by="BookingNote.created_at", cascade="all, delete-orphan")

    # stale writers fail with StaleDataError instead of overwriting status/notes
    __mapper_args__ = {"version_id_col": version}


from app.models.traveler import Traveler  # noqa: E402,F401
from app.models.booking_note import BookingNote  # noqa: E402,F401
