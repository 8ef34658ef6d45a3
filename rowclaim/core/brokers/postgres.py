# rowclaim/core/brokers/postgres.py
from __future__ import annotations
import asyncio
import hashlib
from typing import Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy import text

from rowclaim.core.brokers.result_types import (
    BrokerErrorCode,
    BrokerOperationError,
    BrokerResult,
)
from rowclaim.core.claims.candidates import CandidateDecodeError, partition_candidates
from rowclaim.core.claims.handle import Claim
from rowclaim.core.claims.sql import (
    GET_PENDING_RECORDS_SQL,
    INSERT_PENDING_SQL,
    MARK_EXISTING_PENDING_SQL,
    RECORD_OUTCOME_SQL,
    peek_eligible_sql,
    predicate_params,
    select_candidates_sql,
)
from rowclaim.core.logging import get_logger
from rowclaim.core.models.broker import PostgresConfig
from rowclaim.core.models.claim import ClaimConfig
from rowclaim.core.models.unit_pg import Base
from rowclaim.core.types.result import Err, Ok
from rowclaim.core.types.status import WorkStatus
from rowclaim.core.utils.db import is_retryable_connection_error
from rowclaim.core.utils.loop_runner import LoopRunner
from rowclaim.core.utils.url import mask_database_url


class PostgresBroker:
    """
    PostgreSQL work-claiming broker.

    Hands each eligible unit to exactly one caller at a time using a
    ``FOR UPDATE ... SKIP LOCKED`` read: concurrent callers never block on
    each other's candidates and never receive the same unit while its claim
    is open.

    Provides both async and sync APIs:
      - Async: claim_next_async(), record_outcome_async(), ...
      - Sync: claim_next(), record_outcome(), ... (run in background event loop)

    All store failures are returned as ``Err(BrokerOperationError)``; see
    ``rowclaim.core.brokers.result_types`` for the policy.
    """

    def __init__(
        self,
        config: PostgresConfig,
        claim_config: Optional[ClaimConfig] = None,
    ):
        self.config = config
        self.claim_config = claim_config or ClaimConfig()
        self.logger = get_logger('broker')

        engine_cfg = self.config.model_dump(exclude={'database_url'}, exclude_none=True)
        self.async_engine = create_async_engine(self.config.database_url, **engine_cfg)
        self.session_factory = async_sessionmaker(
            self.async_engine, expire_on_commit=False
        )

        self._initialized = False
        self._loop_runner = LoopRunner()  # for sync facades

        self.logger.info(
            f'PostgresBroker initialized for {mask_database_url(self.config.database_url)} '
            f"(stage='{self.claim_config.stage_kind}', "
            f"prerequisite={self.claim_config.prerequisite_kind!r}, "
            f'max_open_claims={self.config.max_open_claims})'
        )

    def _schema_advisory_key(self) -> int:
        """
        Stable signed 64-bit key for the schema-creation advisory lock.

        Derived from the database URL so separate clusters never share a key.
        """
        basis = self.config.database_url.encode('utf-8', errors='ignore')
        h = hashlib.sha256(b'rowclaim-schema:' + basis).digest()
        return int.from_bytes(h[:8], byteorder='big', signed=True)

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self.async_engine.begin() as conn:
            # Serialize DDL across every process starting against this cluster.
            await conn.execute(
                text('SELECT pg_advisory_xact_lock(CAST(:key AS BIGINT))'),
                {'key': self._schema_advisory_key()},
            )
            await conn.run_sync(Base.metadata.create_all)
        self._initialized = True

    async def ensure_schema_initialized(self) -> BrokerResult[None]:
        """
        Create the unit and work record tables if they do not exist.

        Safe to call repeatedly and from many processes at once.
        """
        try:
            await self._ensure_initialized()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.logger.exception('Schema initialization failed')
            return Err(
                BrokerOperationError(
                    code=BrokerErrorCode.SCHEMA_INIT_FAILED,
                    message='Failed to create rowclaim tables',
                    retryable=is_retryable_connection_error(exc),
                    exception=exc,
                )
            )
        return Ok(None)

    # ----------------- Claim protocol -----------------

    async def claim_next_async(self, limit: Optional[int] = None) -> BrokerResult[Claim]:
        """
        Claim up to ``limit`` eligible units (default ``claim_config.batch_size``).

        Within one transaction: lock the oldest eligible units (skipping any
        locked elsewhere), then move their stage records to pending, updating
        existing records and inserting missing ones.

        Returns Ok(Claim) holding the open transaction; the caller must
        commit or roll it back. On any failure the transaction is rolled back
        before Err is returned, so the store is unchanged.
        """
        return await self._claim_next(limit, runner=None)

    async def _claim_next(
        self, limit: Optional[int], runner: Optional[LoopRunner]
    ) -> BrokerResult[Claim]:
        lim = self.claim_config.batch_size if limit is None else limit
        if lim < 1:
            raise ValueError(f'limit must be >= 1, got {lim}')

        init_result = await self.ensure_schema_initialized()
        if init_result.is_err():
            return init_result

        session = self.session_factory()
        try:
            # Acquiring the connection begins the transaction.
            await session.connection()
        except asyncio.CancelledError:
            await session.close()
            raise
        except Exception as exc:
            self.logger.error(f'Could not open claim transaction: {exc}')
            await session.close()
            return Err(
                BrokerOperationError(
                    code=BrokerErrorCode.CONNECT_FAILED,
                    message='Could not open a transaction for claiming',
                    retryable=is_retryable_connection_error(exc),
                    exception=exc,
                )
            )

        params = predicate_params(self.claim_config)
        code = BrokerErrorCode.CLAIM_QUERY_FAILED
        selected: list[str] = []
        try:
            rows = (
                await session.execute(
                    select_candidates_sql(self.claim_config), {**params, 'lim': lim}
                )
            ).fetchall()

            code = BrokerErrorCode.CLAIM_DECODE_FAILED
            partition = partition_candidates(rows)
            selected = partition.unit_ids

            code = BrokerErrorCode.CLAIM_WRITE_FAILED
            updated: set[str] = set()
            if partition.to_update:
                result = await session.execute(
                    MARK_EXISTING_PENDING_SQL,
                    {
                        'stage_kind': self.claim_config.stage_kind,
                        'ids': partition.to_update,
                        'ready_statuses': self.claim_config.ready_status_values,
                    },
                )
                updated = {row[0] for row in result.fetchall()}

            inserted: set[str] = set()
            if partition.to_insert:
                result = await session.execute(
                    INSERT_PENDING_SQL,
                    {
                        'stage_kind': self.claim_config.stage_kind,
                        'ids': partition.to_insert,
                        'ready_statuses': self.claim_config.ready_status_values,
                    },
                )
                inserted = {row[0] for row in result.fetchall()}
        except asyncio.CancelledError:
            await self._abandon(session)
            raise
        except Exception as exc:
            if isinstance(exc, CandidateDecodeError):
                self.logger.error(f'Malformed candidate row, rolling back: {exc}')
            else:
                self.logger.exception(f'Claim failed ({code.value}), rolling back')
            await self._abandon(session)
            return Err(
                BrokerOperationError(
                    code=code,
                    message=f'Claim failed during {_STAGE_NAMES[code]}; transaction rolled back',
                    retryable=is_retryable_connection_error(exc),
                    exception=exc,
                    unit_ids=tuple(selected),
                )
            )

        claimed_update = [u for u in partition.to_update if u in updated]
        claimed_insert = [u for u in partition.to_insert if u in inserted]
        lost = [
            u for u in selected if u not in updated and u not in inserted
        ]
        if lost:
            self.logger.debug(f'Dropped units already claimed concurrently: {lost}')

        if not claimed_update and not claimed_insert:
            await self._abandon(session)
            return Ok(Claim.empty(runner=runner))

        self.logger.debug(
            f'Claimed {claimed_update + claimed_insert} '
            f'(update={len(claimed_update)}, insert={len(claimed_insert)})'
        )
        return Ok(Claim(session, claimed_update, claimed_insert, runner=runner))

    async def _abandon(self, session: AsyncSession) -> None:
        """Roll back and release a claim session that will not be handed out."""
        try:
            await session.rollback()
        except Exception:
            self.logger.warning('Rollback of abandoned claim failed', exc_info=True)
        finally:
            await session.close()

    # ----------------- Outcomes & monitoring -----------------

    async def record_outcome_async(
        self, unit_id: str, status: WorkStatus
    ) -> BrokerResult[bool]:
        """
        Record the result of processing a claimed unit.

        Moves the unit's pending stage record to ``completed`` or ``failed``.
        Returns Ok(False) if the unit has no pending record for the stage.
        """
        if not status.is_terminal:
            raise ValueError(f'Outcome must be completed or failed, got {status.value}')

        try:
            await self._ensure_initialized()
            async with self.session_factory() as session:
                result = await session.execute(
                    RECORD_OUTCOME_SQL,
                    {
                        'unit_id': unit_id,
                        'stage_kind': self.claim_config.stage_kind,
                        'status': status.value,
                    },
                )
                matched = result.fetchone() is not None
                await session.commit()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.logger.exception(f'Recording outcome for {unit_id} failed')
            return Err(
                BrokerOperationError(
                    code=BrokerErrorCode.OUTCOME_WRITE_FAILED,
                    message=f'Failed to record {status.value} for unit {unit_id}',
                    retryable=is_retryable_connection_error(exc),
                    exception=exc,
                    unit_ids=(unit_id,),
                )
            )

        if not matched:
            self.logger.warning(
                f'No pending {self.claim_config.stage_kind} record for unit {unit_id}'
            )
        return Ok(matched)

    async def get_eligible_units_async(self) -> BrokerResult[list[dict[str, Any]]]:
        """
        List units that are eligible right now, oldest first.

        Plain read without locks: units claimed by an open transaction still
        show up until that claim commits.
        """
        return await self._monitoring_query(
            peek_eligible_sql(self.claim_config),
            predicate_params(self.claim_config),
            'eligible units',
        )

    async def get_pending_records_async(
        self, older_than_ms: Optional[int] = None
    ) -> BrokerResult[list[dict[str, Any]]]:
        """
        List stage records sitting in pending, longest-pending first.

        Args:
            older_than_ms: only records claimed more than this long ago

        Returns:
            Ok(list of dicts: unit_id, kind, claimed_at, pending_for)
        """
        return await self._monitoring_query(
            GET_PENDING_RECORDS_SQL,
            {
                'stage_kind': self.claim_config.stage_kind,
                'older_than_seconds': (
                    older_than_ms / 1000.0 if older_than_ms is not None else None
                ),
            },
            'pending records',
        )

    async def _monitoring_query(
        self, query: Any, params: dict[str, Any], what: str
    ) -> BrokerResult[list[dict[str, Any]]]:
        try:
            await self._ensure_initialized()
            async with self.session_factory() as session:
                result = await session.execute(query, params)
                columns = list(result.keys())
                return Ok([dict(zip(columns, row)) for row in result.fetchall()])
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.logger.exception(f'Monitoring query for {what} failed')
            return Err(
                BrokerOperationError(
                    code=BrokerErrorCode.MONITORING_QUERY_FAILED,
                    message=f'Failed to query {what}',
                    retryable=is_retryable_connection_error(exc),
                    exception=exc,
                )
            )

    async def close_async(self) -> BrokerResult[None]:
        try:
            await self.async_engine.dispose()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.logger.exception('Disposing the engine failed')
            return Err(
                BrokerOperationError(
                    code=BrokerErrorCode.CLOSE_FAILED,
                    message='Failed to dispose the database engine',
                    retryable=False,
                    exception=exc,
                )
            )
        return Ok(None)

    # ----------------- Sync API Facades -----------------

    def claim_next(self, limit: Optional[int] = None) -> BrokerResult[Claim]:
        """
        Synchronous claim (runs on the background loop).

        The returned Claim supports commit()/rollback() and ``with`` blocks.
        Safe to call from many threads at once.
        """
        return self._loop_runner.call(self._claim_next, limit, self._loop_runner)

    def record_outcome(self, unit_id: str, status: WorkStatus) -> BrokerResult[bool]:
        """Synchronous wrapper for record_outcome_async()."""
        if not status.is_terminal:
            raise ValueError(f'Outcome must be completed or failed, got {status.value}')
        return self._loop_runner.call(self.record_outcome_async, unit_id, status)

    def get_eligible_units(self) -> BrokerResult[list[dict[str, Any]]]:
        """Synchronous wrapper for get_eligible_units_async()."""
        return self._loop_runner.call(self.get_eligible_units_async)

    def get_pending_records(
        self, older_than_ms: Optional[int] = None
    ) -> BrokerResult[list[dict[str, Any]]]:
        """Synchronous wrapper for get_pending_records_async()."""
        return self._loop_runner.call(self.get_pending_records_async, older_than_ms)

    def close(self) -> BrokerResult[None]:
        """
        Synchronous cleanup (runs close_async in background loop).
        """
        try:
            return self._loop_runner.call(self.close_async)
        finally:
            self._loop_runner.stop()


_STAGE_NAMES: dict[BrokerErrorCode, str] = {
    BrokerErrorCode.CLAIM_QUERY_FAILED: 'the locking read',
    BrokerErrorCode.CLAIM_DECODE_FAILED: 'candidate decoding',
    BrokerErrorCode.CLAIM_WRITE_FAILED: 'the pending-state writes',
}
