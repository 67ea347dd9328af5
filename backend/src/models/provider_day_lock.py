"""
Provider-day lock model: the serialization point for bookings.

Every write that places an appointment on a provider's day bumps this row
inside the same transaction, so concurrent bookings for the same provider and
date queue behind each other and re-check overlap against committed data.
"""

from datetime import date as date_type

from sqlalchemy import String, ForeignKey, Date, Integer, PrimaryKeyConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class ProviderDayLock(Base):
    """Lock row keyed by (provider_id, day)."""

    __tablename__ = "provider_day_locks"

    provider_id: Mapped[str] = mapped_column(ForeignKey("providers.id", ondelete="CASCADE"))

    day: Mapped[date_type] = mapped_column(Date)

    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    """Incremented by every booking write for this provider-day."""

    __table_args__ = (
        PrimaryKeyConstraint("provider_id", "day", name="pk_provider_day_locks"),
    )

    def __repr__(self) -> str:
        return f"<ProviderDayLock(provider_id={self.provider_id}, day={self.day}, version={self.version})>"
