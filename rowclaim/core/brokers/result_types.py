"""Typed error results for PostgresBroker operations.

Result propagation policy
-------------------------
* **Configuration** (``PostgresConfig``, ``ClaimConfig``) raises
  ``ConfigurationError`` at construction time.  A bad config is a startup
  bug, not an operational outcome.

* **Broker layer** returns ``BrokerResult``.  Store failures (cannot
  connect, locking read failed, write failed, commit failed) come back as
  ``Err(BrokerOperationError)``; only ``asyncio.CancelledError`` is raised.
  Before an ``Err`` is returned for a claim, its transaction has already
  been rolled back, so the store is exactly as it was before the call.

* **Callers** decide what to do with ``retryable``.  The broker never
  retries on its own; retrying a failed claim is always safe because
  nothing from it was committed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from rowclaim.core.types.result import Result


class BrokerErrorCode(str, Enum):
    """Categorized broker operation failure codes."""

    SCHEMA_INIT_FAILED = 'SCHEMA_INIT_FAILED'
    CONNECT_FAILED = 'CONNECT_FAILED'
    CLAIM_QUERY_FAILED = 'CLAIM_QUERY_FAILED'
    CLAIM_DECODE_FAILED = 'CLAIM_DECODE_FAILED'
    CLAIM_WRITE_FAILED = 'CLAIM_WRITE_FAILED'
    COMMIT_FAILED = 'COMMIT_FAILED'
    ROLLBACK_FAILED = 'ROLLBACK_FAILED'
    CLAIM_ALREADY_FINALIZED = 'CLAIM_ALREADY_FINALIZED'
    OUTCOME_WRITE_FAILED = 'OUTCOME_WRITE_FAILED'
    MONITORING_QUERY_FAILED = 'MONITORING_QUERY_FAILED'
    CLOSE_FAILED = 'CLOSE_FAILED'


@dataclass(slots=True, frozen=True)
class BrokerOperationError:
    """Error payload carried inside Err(...) for broker operations.

    Fields:
        code: which operation category failed
        message: human-readable description
        retryable: whether the caller can retry this operation
        exception: the original cause (if any)
        unit_ids: units selected before a claim failed; diagnostic only,
            none of them are claimed
    """

    code: BrokerErrorCode
    message: str
    retryable: bool
    exception: BaseException | None = None
    unit_ids: tuple[str, ...] = ()


type BrokerResult[T] = Result[T, BrokerOperationError]
