from sqlalchemy import String, Integer, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from app.db.session import Base

TRAVELER_TYPES = ("adult", "child", "infant")

class Traveler(Base):
    __tablename__ = "travelers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), ForeignKey("bookings.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    name: Mapped[str] = mapped_column(String(200))
    type: Mapped[str] = mapped_column(String(10), default="adult")  # adult, child, infant
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    passport_number: Mapped[str] = mapped_column(String(80), default="")
    nationality: Mapped[str] = mapped_column(String(80), default="")
    dietary_requirements: Mapped[str] = mapped_column(String(255), default="")
