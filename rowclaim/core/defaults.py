"""Shared default constants for rowclaim."""

# A unit becomes eligible once its last_updated is older than this.
DEFAULT_STALE_AFTER_MS: int = 600_000  # 10 minutes

# Units claimed per claim_next() call when no limit is passed.
DEFAULT_CLAIM_BATCH_SIZE: int = 1

# Upper bound on a single claim batch; every claimed unit holds a row lock
# until the claim is committed or rolled back.
MAX_CLAIM_BATCH_SIZE: int = 1_000

# Stage names used by the two-stage layout (initial import, then incremental).
DEFAULT_PREREQUISITE_KIND: str = 'initial'
DEFAULT_STAGE_KIND: str = 'incremental'
