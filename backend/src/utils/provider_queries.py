"""
Read helpers for providers, services and weekly schedule templates, plus the
provider-day lock used to serialize bookings.

Schedule templates are read fresh on every call; nothing here caches.
"""

from datetime import date as date_type
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Query, Session

from core.exceptions import NotFound
from models import Provider, ProviderDayLock, ProviderSchedule, Service
from utils.datetime_utils import schedule_day_of_week


def filter_active(query: Query, model) -> Query:  # type: ignore[type-arg]
    """Restrict a Provider or Service query to active rows."""
    return query.filter(model.is_active == True)  # noqa: E712


def get_provider(db: Session, provider_id: str, active_only: bool = True) -> Provider:
    """
    Get a provider by ID.

    Args:
        db: Database session
        provider_id: Provider ID
        active_only: Treat inactive providers as missing

    Returns:
        Provider object

    Raises:
        NotFound: If the provider does not exist (or is inactive)
    """
    query = db.query(Provider).filter(Provider.id == provider_id)
    if active_only:
        query = filter_active(query, Provider)
    provider = query.first()
    if provider is None:
        raise NotFound("Provider", provider_id)
    return provider


def get_service(db: Session, service_id: str, active_only: bool = True) -> Service:
    """
    Get a bookable service by ID.

    Raises:
        NotFound: If the service does not exist (or is inactive)
    """
    query = db.query(Service).filter(Service.id == service_id)
    if active_only:
        query = filter_active(query, Service)
    service = query.first()
    if service is None:
        raise NotFound("Service", service_id)
    return service


def get_schedule_template(db: Session, provider_id: str, day: date_type) -> Optional[ProviderSchedule]:
    """
    Get the provider's template row for the weekday of ``day``.

    Returns:
        The ProviderSchedule for that weekday, or None if the provider has none
    """
    return (
        db.query(ProviderSchedule)
        .populate_existing()
        .filter(
            ProviderSchedule.provider_id == provider_id,
            ProviderSchedule.day_of_week == schedule_day_of_week(day),
        )
        .first()
    )


def _insert_lock_row_if_missing(db: Session, provider_id: str, day: date_type) -> None:
    dialect = db.get_bind().dialect.name
    values = {"provider_id": provider_id, "day": day, "version": 0}

    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as pg_insert
        db.execute(pg_insert(ProviderDayLock).values(**values).on_conflict_do_nothing())
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert
        db.execute(sqlite_insert(ProviderDayLock).values(**values).on_conflict_do_nothing())
    elif db.get(ProviderDayLock, (provider_id, day)) is None:
        db.add(ProviderDayLock(**values))
        db.flush()


def lock_provider_day(db: Session, provider_id: str, day: date_type) -> None:
    """
    Take the serialization lock for one provider-day in the current transaction.

    Bumps the lock row's version, creating the row first if needed. The write
    holds a row lock (PostgreSQL) or the database write lock (SQLite) until the
    transaction ends, so a second booking for the same provider-day waits here
    and then sees the first booking when it re-reads.
    """
    _insert_lock_row_if_missing(db, provider_id, day)
    db.execute(
        update(ProviderDayLock)
        .where(ProviderDayLock.provider_id == provider_id, ProviderDayLock.day == day)
        .values(version=ProviderDayLock.version + 1)
        .execution_options(synchronize_session=False)
    )
