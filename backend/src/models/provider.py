"""
Provider model representing the clinicians patients book with.

The provider record is the source of truth for display fields (name, image)
that appointments cache for read performance.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


def new_document_id() -> str:
    """Generate a document identifier (uuid4 hex)."""
    return uuid.uuid4().hex


class Provider(Base):
    """A clinician with a fixed weekly availability template."""

    __tablename__ = "providers"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_document_id)
    """Unique identifier for the provider."""

    name: Mapped[str] = mapped_column(String(255))
    """Display name shown to patients."""

    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Professional title (e.g., 'Dentist')."""

    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    """Profile image URL."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    """Inactive providers cannot receive new bookings."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    schedules = relationship("ProviderSchedule", back_populates="provider", cascade="all, delete-orphan")
    """Weekly availability template, one row per weekday."""

    def __repr__(self) -> str:
        return f"<Provider(id={self.id}, name={self.name})>"
