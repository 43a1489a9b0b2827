from decimal import Decimal
from sqlalchemy import String, DateTime, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Payment(Base):
    """One row per provider outcome applied to a booking (webhook idempotency ledger)."""
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("booking_id", "provider", "provider_ref", "status", name="uq_payments_booking_provider_ref_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), ForeignKey("bookings.id", ondelete="CASCADE"), index=True)
    provider: Mapped[str] = mapped_column(String(20), default="manual")  # stripe, vnpay, manual
    provider_ref: Mapped[str] = mapped_column(String(120), default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    status: Mapped[str] = mapped_column(String(20), default="paid")  # paid, failed, refunded
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
