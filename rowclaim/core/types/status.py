# core/types/status.py
"""
Work record states.
This module should not import from other application modules.
"""

from enum import Enum


class WorkStatus(Enum):
    """Status of a unit's work record for one stage"""

    PENDING = 'pending'  # Claimed by a worker, processing in flight.
    # The only state the claim protocol ever writes.

    COMPLETED = 'completed'  # Processed successfully by the owning process.

    FAILED = 'failed'  # Processing failed; blocks later stages.

    @property
    def is_terminal(self) -> bool:
        """Whether this status is written by external processing, not by a claim."""
        return self in WORK_TERMINAL_STATES


WORK_TERMINAL_STATES: frozenset[WorkStatus] = frozenset({
    WorkStatus.COMPLETED,
    WorkStatus.FAILED,
})
