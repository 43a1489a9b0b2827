from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, Numeric, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime, timezone
from app.db.session import Base

ITEM_KINDS = ("tour", "service")
ITEM_STATUSES = ("draft", "published", "archived")

class CatalogItem(Base):
    """A bookable Tour or Service."""
    __tablename__ = "catalog_items"
    __table_args__ = (
        CheckConstraint("capacity_per_slot >= 1", name="ck_catalog_items_capacity_positive"),
        CheckConstraint("duration_days >= 1", name="ck_catalog_items_duration_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    kind: Mapped[str] = mapped_column(String(12), index=True, default="tour")  # tour | service
    title: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(220), unique=True, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    destination: Mapped[str] = mapped_column(String(200), default="")

    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    capacity_per_slot: Mapped[int] = mapped_column(Integer, default=1)
    duration_days: Mapped[int] = mapped_column(Integer, default=1)

    status: Mapped[str] = mapped_column(String(12), index=True, default="draft")  # draft | published | archived

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    slots: Mapped[list["AvailabilitySlot"]] = relationship(
        back_populates="catalog_item", order_by="AvailabilitySlot.start_date", cascade="all, delete-orphan"
    )
    seasonal_prices: Mapped[list["SeasonalPrice"]] = relationship(
        order_by="SeasonalPrice.start_date", cascade="all, delete-orphan"
    )
    group_discounts: Mapped[list["GroupDiscount"]] = relationship(
        order_by="GroupDiscount.min_people", cascade="all, delete-orphan"
    )


from app.models.availability_slot import AvailabilitySlot  # noqa: E402,F401
from app.models.pricing_rule import SeasonalPrice, GroupDiscount  # noqa: E402,F401
