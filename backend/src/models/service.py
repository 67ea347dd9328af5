"""
Service model representing a bookable treatment with a fixed duration and price.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, Integer, Numeric, TIMESTAMP, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base
from models.provider import new_document_id


class Service(Base):
    """A treatment offered by the clinic."""

    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_document_id)

    name: Mapped[str] = mapped_column(String(255))

    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    duration_minutes: Mapped[int] = mapped_column(Integer)
    """Length of one appointment for this service. Fixed at booking time."""

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    """Listed treatment price before tax (INR)."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_service_duration_positive"),
        CheckConstraint("price >= 0", name="check_service_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name={self.name}, duration={self.duration_minutes})>"
