# rowclaim/core/utils/db.py
"""Classify claim-store errors as transient or not."""

from __future__ import annotations

from psycopg import InterfaceError, OperationalError
from psycopg.errors import DeadlockDetected, LockNotAvailable, SerializationFailure
from sqlalchemy.exc import DBAPIError, OperationalError as SAOperationalError

# Lock conflicts between claimers: the transaction was aborted as a whole,
# so running the claim again is safe.
_LOCK_CONFLICTS = (DeadlockDetected, LockNotAvailable, SerializationFailure)


def is_dbapi_disconnect(exc: DBAPIError) -> bool:
    """True if SQLAlchemy flagged the error as a dropped/invalidated connection."""
    return bool(getattr(exc, 'connection_invalidated', False)) or bool(
        getattr(exc, 'is_disconnect', False)
    )


def is_lock_conflict(exc: BaseException) -> bool:
    """True for deadlock/lock-timeout/serialization aborts, raw or SQLAlchemy-wrapped."""
    if isinstance(exc, DBAPIError):
        return isinstance(exc.orig, _LOCK_CONFLICTS)
    return isinstance(exc, _LOCK_CONFLICTS)


def is_retryable_connection_error(exc: BaseException) -> bool:
    """True for failures after which the caller may simply claim again."""
    if is_lock_conflict(exc):
        return True
    match exc:
        case OperationalError() | InterfaceError() | SAOperationalError():
            return True
        case DBAPIError() as db_exc if is_dbapi_disconnect(db_exc):
            return True
        case _:
            return False
