"""SQL constants for the claim protocol."""

from __future__ import annotations

from sqlalchemy import TextClause, text

from rowclaim.core.models.claim import ClaimConfig


# ---------- Candidate selection (locking read) ----------
# FOR UPDATE ... SKIP LOCKED: units locked by another open transaction are
# left out of the result instead of making this read wait for them.
# The stage record sits on the nullable side of the LEFT JOIN and cannot be
# locked here; the conditional writes below re-check it.

SELECT_CANDIDATES_WITH_PREREQUISITE_SQL = text("""
SELECT
  u.id AS unit_id,
  rec.unit_id IS NOT NULL AS has_record,
  u.last_updated
FROM rowclaim_units u
INNER JOIN rowclaim_work_records pre
  ON pre.unit_id = u.id AND pre.kind = :prerequisite_kind
LEFT JOIN rowclaim_work_records rec
  ON rec.unit_id = u.id AND rec.kind = :stage_kind
WHERE u.last_updated < now() - make_interval(secs => CAST(:stale_seconds AS DOUBLE PRECISION))
  AND pre.status = ANY(:prerequisite_statuses)
  AND (rec.unit_id IS NULL OR rec.status = ANY(:ready_statuses))
ORDER BY u.last_updated ASC, u.id ASC
LIMIT :lim
FOR UPDATE OF u, pre SKIP LOCKED
""")

SELECT_CANDIDATES_SQL = text("""
SELECT
  u.id AS unit_id,
  rec.unit_id IS NOT NULL AS has_record,
  u.last_updated
FROM rowclaim_units u
LEFT JOIN rowclaim_work_records rec
  ON rec.unit_id = u.id AND rec.kind = :stage_kind
WHERE u.last_updated < now() - make_interval(secs => CAST(:stale_seconds AS DOUBLE PRECISION))
  AND (rec.unit_id IS NULL OR rec.status = ANY(:ready_statuses))
ORDER BY u.last_updated ASC, u.id ASC
LIMIT :lim
FOR UPDATE OF u SKIP LOCKED
""")


# ---------- State transition (same transaction) ----------
# Each statement takes a fresh READ COMMITTED snapshot. A record that a
# concurrent claim already moved to pending (or inserted) and committed no
# longer matches, and its unit is dropped from this claim. A record that
# appeared after the read and is already ready again is claimed by the
# insert's conflict branch.

MARK_EXISTING_PENDING_SQL = text("""
UPDATE rowclaim_work_records
SET status = 'pending',
    claimed_at = now(),
    updated_at = now()
WHERE kind = :stage_kind
  AND unit_id = ANY(:ids)
  AND status = ANY(:ready_statuses)
RETURNING unit_id
""")

INSERT_PENDING_SQL = text("""
INSERT INTO rowclaim_work_records (unit_id, kind, status, claimed_at, updated_at)
SELECT ids.unit_id, :stage_kind, 'pending', now(), now()
FROM unnest(CAST(:ids AS TEXT[])) AS ids(unit_id)
ON CONFLICT (unit_id, kind) DO UPDATE
SET status = 'pending',
    claimed_at = now(),
    updated_at = now()
WHERE rowclaim_work_records.status = ANY(:ready_statuses)
RETURNING unit_id
""")


# ---------- Outcome recording (external processing) ----------

RECORD_OUTCOME_SQL = text("""
UPDATE rowclaim_work_records
SET status = :status,
    updated_at = now()
WHERE unit_id = :unit_id
  AND kind = :stage_kind
  AND status = 'pending'
RETURNING unit_id
""")


# ---------- Monitoring (non-locking) ----------

PEEK_ELIGIBLE_WITH_PREREQUISITE_SQL = text("""
SELECT
  u.id AS unit_id,
  u.last_updated,
  rec.status AS stage_status
FROM rowclaim_units u
INNER JOIN rowclaim_work_records pre
  ON pre.unit_id = u.id AND pre.kind = :prerequisite_kind
LEFT JOIN rowclaim_work_records rec
  ON rec.unit_id = u.id AND rec.kind = :stage_kind
WHERE u.last_updated < now() - make_interval(secs => CAST(:stale_seconds AS DOUBLE PRECISION))
  AND pre.status = ANY(:prerequisite_statuses)
  AND (rec.unit_id IS NULL OR rec.status = ANY(:ready_statuses))
ORDER BY u.last_updated ASC, u.id ASC
""")

PEEK_ELIGIBLE_SQL = text("""
SELECT
  u.id AS unit_id,
  u.last_updated,
  rec.status AS stage_status
FROM rowclaim_units u
LEFT JOIN rowclaim_work_records rec
  ON rec.unit_id = u.id AND rec.kind = :stage_kind
WHERE u.last_updated < now() - make_interval(secs => CAST(:stale_seconds AS DOUBLE PRECISION))
  AND (rec.unit_id IS NULL OR rec.status = ANY(:ready_statuses))
ORDER BY u.last_updated ASC, u.id ASC
""")

GET_PENDING_RECORDS_SQL = text("""
SELECT
  r.unit_id,
  r.kind,
  r.claimed_at,
  now() - r.claimed_at AS pending_for
FROM rowclaim_work_records r
WHERE r.kind = :stage_kind
  AND r.status = 'pending'
  AND (
    CAST(:older_than_seconds AS DOUBLE PRECISION) IS NULL
    OR r.claimed_at < now() - make_interval(secs => CAST(:older_than_seconds AS DOUBLE PRECISION))
  )
ORDER BY r.claimed_at ASC NULLS FIRST
""")


def select_candidates_sql(config: ClaimConfig) -> TextClause:
    """Pick the locking read matching the configured stage layout."""
    if config.prerequisite_kind is None:
        return SELECT_CANDIDATES_SQL
    return SELECT_CANDIDATES_WITH_PREREQUISITE_SQL


def peek_eligible_sql(config: ClaimConfig) -> TextClause:
    if config.prerequisite_kind is None:
        return PEEK_ELIGIBLE_SQL
    return PEEK_ELIGIBLE_WITH_PREREQUISITE_SQL


def predicate_params(config: ClaimConfig) -> dict[str, object]:
    """Bind parameters shared by the candidate and peek queries."""
    params: dict[str, object] = {
        'stage_kind': config.stage_kind,
        'stale_seconds': config.stale_after_seconds,
        'ready_statuses': config.ready_status_values,
    }
    if config.prerequisite_kind is not None:
        params['prerequisite_kind'] = config.prerequisite_kind
        params['prerequisite_statuses'] = config.prerequisite_status_values
    return params
