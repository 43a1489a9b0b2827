from datetime import date
from decimal import Decimal
from sqlalchemy import String, Integer, Date, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.db.session import Base

class SeasonalPrice(Base):
    """Date-tiered price: per-person price is base_price * multiplier inside [start_date, end_date]."""
    __tablename__ = "seasonal_prices"
    __table_args__ = (
        CheckConstraint("multiplier > 0", name="ck_seasonal_prices_multiplier_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    catalog_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("catalog_items.id", ondelete="CASCADE"), index=True)
    season: Mapped[str] = mapped_column(String(80), default="")
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3))

    def covers(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date


class GroupDiscount(Base):
    __tablename__ = "group_discounts"
    __table_args__ = (
        CheckConstraint("min_people >= 1", name="ck_group_discounts_min_people"),
        CheckConstraint("discount_percent >= 0 AND discount_percent <= 100", name="ck_group_discounts_percent"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    catalog_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("catalog_items.id", ondelete="CASCADE"), index=True)
    min_people: Mapped[int] = mapped_column(Integer)
    discount_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2))
