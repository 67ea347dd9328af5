"""
Provider schedule model for the default weekly availability template.

One row per provider per weekday holds the open/close window and an optional
break. Clinic staff maintain these rows; the scheduling engine only reads them,
fresh on every availability computation.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, TIMESTAMP, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base
from models.provider import new_document_id
from utils.datetime_utils import parse_time_to_minutes


class ProviderSchedule(Base):
    """
    Weekly availability template entry for a provider.

    Times are stored as ``HH:MM`` strings and exposed as minute-of-day through
    the ``*_minutes`` properties. ``day_of_week`` follows 0=Sunday..6=Saturday.
    """

    __tablename__ = "provider_schedules"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_document_id)

    provider_id: Mapped[str] = mapped_column(ForeignKey("providers.id", ondelete="CASCADE"))
    """Reference to the provider."""

    day_of_week: Mapped[int] = mapped_column()
    """Day of the week (0=Sunday, 1=Monday, ..., 6=Saturday)."""

    open_time: Mapped[str] = mapped_column(String(5))
    """Opening time (HH:MM)."""

    close_time: Mapped[str] = mapped_column(String(5))
    """Closing time (HH:MM). No slot may end after it."""

    break_start: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    """Optional break start (HH:MM)."""

    break_end: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    """Optional break end (HH:MM)."""

    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    """False closes the whole day."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    provider = relationship("Provider", back_populates="schedules")

    __table_args__ = (
        UniqueConstraint("provider_id", "day_of_week", name="uq_provider_schedule_day"),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="check_schedule_day_of_week"),
        Index("idx_provider_schedules_provider_day", "provider_id", "day_of_week"),
    )

    @property
    def open_minutes(self) -> int:
        return parse_time_to_minutes(self.open_time)

    @property
    def close_minutes(self) -> int:
        return parse_time_to_minutes(self.close_time)

    @property
    def break_start_minutes(self) -> Optional[int]:
        return parse_time_to_minutes(self.break_start) if self.break_start else None

    @property
    def break_end_minutes(self) -> Optional[int]:
        return parse_time_to_minutes(self.break_end) if self.break_end else None

    @property
    def day_name(self) -> str:
        """Get the day name for display."""
        days = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']
        return days[self.day_of_week]

    def __repr__(self) -> str:
        return (
            f"<ProviderSchedule(provider_id={self.provider_id}, day={self.day_name}, "
            f"{self.open_time}-{self.close_time}, available={self.is_available})>"
        )
