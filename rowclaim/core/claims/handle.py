"""Scoped commit handle returned by PostgresBroker.claim_next_async()."""

from __future__ import annotations

import asyncio
from enum import Enum
from types import TracebackType
from typing import TYPE_CHECKING, Optional

from rowclaim.core.brokers.result_types import (
    BrokerErrorCode,
    BrokerOperationError,
    BrokerResult,
)
from rowclaim.core.logging import get_logger
from rowclaim.core.types.result import Err, Ok
from rowclaim.core.utils.db import is_retryable_connection_error
from rowclaim.core.utils.loop_runner import LoopRunnerError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from rowclaim.core.utils.loop_runner import LoopRunner


class ClaimState(Enum):
    OPEN = 'open'
    COMMITTED = 'committed'
    ROLLED_BACK = 'rolled_back'


class Claim:
    """
    The units claimed by one claim_next() call plus their open transaction.

    While the claim is OPEN its units stay row-locked and their stage
    records stay pending-but-uncommitted, so no other claimer can return
    them. Finalize exactly once:

      - commit_async() / commit(): publish the pending records, release locks
      - rollback_async() / rollback(): revert everything, units are eligible again

    Used as a context manager, leaving the block without a commit rolls back:

        async with (await broker.claim_next_async()).unwrap() as claim:
            for unit_id in claim.unit_ids:
                ...
            await claim.commit_async()

    An empty claim holds no transaction; committing it is a no-op.
    """

    def __init__(
        self,
        session: Optional['AsyncSession'],
        updated_unit_ids: list[str],
        inserted_unit_ids: list[str],
        *,
        runner: Optional['LoopRunner'] = None,
    ) -> None:
        self.logger = get_logger('claim')
        self._session = session
        self._updated = list(updated_unit_ids)
        self._inserted = list(inserted_unit_ids)
        self._runner = runner
        self._state = ClaimState.OPEN
        if session is None:
            if not self.is_empty:
                raise ValueError('A non-empty claim needs the session holding its locks')
            # Nothing was written, so there is nothing to publish.
            self._state = ClaimState.COMMITTED

    @classmethod
    def empty(cls, *, runner: Optional['LoopRunner'] = None) -> Claim:
        return cls(None, [], [], runner=runner)

    @property
    def unit_ids(self) -> list[str]:
        """Claimed unit ids: update group first, then insert group."""
        return [*self._updated, *self._inserted]

    @property
    def updated_unit_ids(self) -> list[str]:
        return list(self._updated)

    @property
    def inserted_unit_ids(self) -> list[str]:
        return list(self._inserted)

    @property
    def state(self) -> ClaimState:
        return self._state

    @property
    def is_empty(self) -> bool:
        return not self._updated and not self._inserted

    @property
    def is_open(self) -> bool:
        return self._state is ClaimState.OPEN and self._session is not None

    def __repr__(self) -> str:
        return f'Claim(unit_ids={self.unit_ids!r}, state={self._state.value})'

    # ----------------- Async API -----------------

    async def commit_async(self) -> BrokerResult[None]:
        if self._session is None and self.is_empty:
            # Empty claim: valid to commit, nothing to do.
            return Ok(None)
        if not self.is_open:
            return Err(
                BrokerOperationError(
                    code=BrokerErrorCode.CLAIM_ALREADY_FINALIZED,
                    message=f'Claim already {self._state.value}; commit is allowed once',
                    retryable=False,
                    unit_ids=tuple(self.unit_ids),
                )
            )

        session = self._session
        assert session is not None
        try:
            await session.commit()
        except asyncio.CancelledError:
            await self._discard(session)
            raise
        except Exception as exc:
            self.logger.exception(f'Commit failed for claim of {self.unit_ids}')
            await self._discard(session)
            return Err(
                BrokerOperationError(
                    code=BrokerErrorCode.COMMIT_FAILED,
                    message=f'Commit failed; claim of {len(self.unit_ids)} unit(s) rolled back',
                    retryable=is_retryable_connection_error(exc),
                    exception=exc,
                    unit_ids=tuple(self.unit_ids),
                )
            )

        self._state = ClaimState.COMMITTED
        self._session = None
        await self._close(session)
        self.logger.debug(f'Committed claim of {self.unit_ids}')
        return Ok(None)

    async def rollback_async(self) -> BrokerResult[None]:
        """Abort the claim. Safe to call on an already finalized claim."""
        if not self.is_open:
            return Ok(None)

        session = self._session
        assert session is not None
        self._state = ClaimState.ROLLED_BACK
        self._session = None
        try:
            await session.rollback()
        except asyncio.CancelledError:
            await self._close(session)
            raise
        except Exception as exc:
            # The connection is invalidated on close; the server drops the
            # transaction and its locks with it.
            self.logger.exception(f'Rollback failed for claim of {self.unit_ids}')
            await self._close(session)
            return Err(
                BrokerOperationError(
                    code=BrokerErrorCode.ROLLBACK_FAILED,
                    message='Rollback failed; the transaction is abandoned with its connection',
                    retryable=is_retryable_connection_error(exc),
                    exception=exc,
                    unit_ids=tuple(self.unit_ids),
                )
            )
        await self._close(session)
        self.logger.debug(f'Rolled back claim of {self.unit_ids}')
        return Ok(None)

    async def __aenter__(self) -> Claim:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.is_open:
            if exc_type is None:
                self.logger.warning(
                    f'Claim of {self.unit_ids} left without commit; rolling back'
                )
            await self.rollback_async()

    # ----------------- Sync API Facades -----------------

    def _require_runner(self) -> 'LoopRunner':
        if self._runner is None:
            raise LoopRunnerError(
                'Claim was opened on a caller-owned event loop; use commit_async()/rollback_async()'
            )
        return self._runner

    def commit(self) -> BrokerResult[None]:
        """Synchronous commit for claims returned by PostgresBroker.claim_next()."""
        if self._session is None and self.is_empty:
            return Ok(None)
        return self._require_runner().call(self.commit_async)

    def rollback(self) -> BrokerResult[None]:
        """Synchronous rollback for claims returned by PostgresBroker.claim_next()."""
        if not self.is_open:
            return Ok(None)
        return self._require_runner().call(self.rollback_async)

    def __enter__(self) -> Claim:
        if self.is_open and self._runner is None:
            # __exit__ could not roll back, leaving the locks held.
            raise LoopRunnerError(
                'Claim was opened on a caller-owned event loop; use `async with`'
            )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.is_open:
            if exc_type is None:
                self.logger.warning(
                    f'Claim of {self.unit_ids} left without commit; rolling back'
                )
            self.rollback()

    # ----------------- Internals -----------------

    async def _discard(self, session: 'AsyncSession') -> None:
        self._state = ClaimState.ROLLED_BACK
        self._session = None
        try:
            await session.rollback()
        except Exception:
            self.logger.debug('Rollback after failed commit also failed', exc_info=True)
        await self._close(session)

    async def _close(self, session: 'AsyncSession') -> None:
        try:
            await session.close()
        except Exception:
            self.logger.debug('Closing claim session failed', exc_info=True)
