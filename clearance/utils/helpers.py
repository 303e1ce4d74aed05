"""Shared utility functions used by services and blueprints.

utcnow / as_utc:   timezone handling (SQLite returns naive datetimes)
missing_fields:    required-field check for JSON bodies
commit_or_raise:   service-layer commit that rolls back and raises UpstreamError
"""
import logging
from datetime import datetime, timezone

from clearance.models import db

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def missing_fields(data: dict, *names: str) -> list[str]:
    """Return the names whose values are absent or blank in ``data``."""
    missing = []
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing


def commit_or_raise(context: str):
    """Commit the current session; on failure roll back and raise UpstreamError.

    Usage::

        db.session.add(row)
        commit_or_raise("approve request 12")
    """
    from sqlalchemy.exc import SQLAlchemyError

    from clearance.core.exceptions import UpstreamError

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error during %s", context)
        raise UpstreamError(f"Database error during {context}: {exc.__class__.__name__}") from exc
