"""Scenario seeding and raw SQL helpers for integration tests."""

from __future__ import annotations

from sqlalchemy import text

from rowclaim.core.brokers.postgres import PostgresBroker
from rowclaim.core.types.result import is_ok


# Three units, seeded fresh for every test:
# - one:   2h stale, initial completed, no incremental record    -> insert group
# - two:   1h stale, initial completed, incremental completed    -> update group
# - three: 1h stale, initial failed                              -> never eligible
SCENARIO_SQL = [
    "DELETE FROM rowclaim_units",
    """
    INSERT INTO rowclaim_units (id, last_updated) VALUES
      ('one',   now() - interval '2 hours'),
      ('two',   now() - interval '1 hour'),
      ('three', now() - interval '1 hour')
    """,
    """
    INSERT INTO rowclaim_work_records (unit_id, kind, status, updated_at) VALUES
      ('one',   'initial',     'completed', now()),
      ('two',   'initial',     'completed', now()),
      ('two',   'incremental', 'completed', now()),
      ('three', 'initial',     'failed',    now())
    """,
]


async def seed_scenario(broker: PostgresBroker) -> None:
    result = await broker.ensure_schema_initialized()
    assert is_ok(result), result
    async with broker.async_engine.begin() as conn:
        for statement in SCENARIO_SQL:
            await conn.execute(text(statement))


async def execute_sql(broker: PostgresBroker, statement: str, **params: object) -> list[tuple]:
    """Run one statement in its own transaction and return any rows."""
    async with broker.async_engine.begin() as conn:
        result = await conn.execute(text(statement), params)
        return [tuple(row) for row in result.fetchall()] if result.returns_rows else []
