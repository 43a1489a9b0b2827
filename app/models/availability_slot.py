from datetime import date, datetime, timezone
from sqlalchemy import String, Integer, Date, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.session import Base

class AvailabilitySlot(Base):
    __tablename__ = "availability_slots"
    __table_args__ = (
        CheckConstraint("booked_count >= 0", name="ck_availability_slots_booked_nonnegative"),
        CheckConstraint("end_date >= start_date", name="ck_availability_slots_range"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    catalog_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("catalog_items.id", ondelete="CASCADE"), index=True)
    start_date: Mapped[date] = mapped_column(Date, index=True)
    end_date: Mapped[date] = mapped_column(Date)
    # only changed through the conditional updates in services.inventory
    booked_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    catalog_item: Mapped["CatalogItem"] = relationship(back_populates="slots")

    def covers(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date
