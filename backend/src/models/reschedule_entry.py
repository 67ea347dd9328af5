"""
Reschedule entry model: an immutable audit record of one appointment move.

Entries are created only by the reschedule coordinator, in the same
transaction that moves the appointment. They are never updated or deleted.
"""

from datetime import date as date_type, datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, ForeignKey, Date, Integer, TIMESTAMP, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base
from models.enums import ActorRole, NormalizedEnum
from models.provider import new_document_id


class RescheduleEntry(Base):
    """One move of an appointment from an old slot to a new slot."""

    __tablename__ = "reschedule_entries"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_document_id)

    appointment_id: Mapped[str] = mapped_column(ForeignKey("appointments.id"))

    sequence: Mapped[int] = mapped_column(Integer)
    """1-based reschedule number within the appointment."""

    from_date: Mapped[date_type] = mapped_column(Date)
    from_start_time: Mapped[str] = mapped_column(String(5))
    from_end_time: Mapped[str] = mapped_column(String(5))

    to_date: Mapped[date_type] = mapped_column(Date)
    to_start_time: Mapped[str] = mapped_column(String(5))
    to_end_time: Mapped[str] = mapped_column(String(5))

    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    rescheduled_by: Mapped[str] = mapped_column(String(128))
    """Actor id of whoever moved the appointment."""

    rescheduled_by_role: Mapped[ActorRole] = mapped_column(NormalizedEnum(ActorRole))

    rescheduled_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    appointment = relationship("Appointment", back_populates="reschedule_history")

    __table_args__ = (
        UniqueConstraint("appointment_id", "sequence", name="uq_reschedule_entry_sequence"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": {
                "date": self.from_date.isoformat(),
                "start_time": self.from_start_time,
                "end_time": self.from_end_time,
            },
            "to": {
                "date": self.to_date.isoformat(),
                "start_time": self.to_start_time,
                "end_time": self.to_end_time,
            },
            "reason": self.reason,
            "rescheduled_by": self.rescheduled_by,
            "rescheduled_by_role": self.rescheduled_by_role.value,
            "rescheduled_at": self.rescheduled_at,
        }

    def __repr__(self) -> str:
        return (
            f"<RescheduleEntry(appointment_id={self.appointment_id}, #{self.sequence}, "
            f"{self.from_date} {self.from_start_time} -> {self.to_date} {self.to_start_time})>"
        )


@event.listens_for(RescheduleEntry, "before_update")
def _reject_update(mapper, connection, target):  # type: ignore
    raise ValueError("Reschedule entries are append-only and cannot be modified")


@event.listens_for(RescheduleEntry, "before_delete")
def _reject_delete(mapper, connection, target):  # type: ignore
    raise ValueError("Reschedule entries are append-only and cannot be deleted")
