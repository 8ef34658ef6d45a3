"""Decoding of locking-read rows into update/insert groups."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence


class CandidateDecodeError(ValueError):
    """A row returned by the locking read does not have the expected shape."""


@dataclass(slots=True, frozen=True)
class ClaimCandidate:
    unit_id: str
    has_record: bool
    last_updated: datetime

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> ClaimCandidate:
        if len(row) < 3:
            raise CandidateDecodeError(f'expected 3 columns, got {len(row)}: {row!r}')
        unit_id, has_record, last_updated = row[0], row[1], row[2]
        if not isinstance(unit_id, str) or not unit_id:
            raise CandidateDecodeError(f'unit_id must be a non-empty string, got {unit_id!r}')
        if not isinstance(has_record, bool):
            raise CandidateDecodeError(
                f'has_record must be a boolean for unit {unit_id}, got {has_record!r}'
            )
        if not isinstance(last_updated, datetime):
            raise CandidateDecodeError(
                f'last_updated must be a datetime for unit {unit_id}, got {last_updated!r}'
            )
        return cls(unit_id=unit_id, has_record=has_record, last_updated=last_updated)


@dataclass(slots=True, frozen=True)
class CandidatePartition:
    """Candidates split by whether their stage record already exists.

    Both lists keep the staleness order of the locking read.
    """

    to_update: list[str]
    to_insert: list[str]

    @property
    def unit_ids(self) -> list[str]:
        return [*self.to_update, *self.to_insert]


def partition_candidates(rows: Iterable[Sequence[Any]]) -> CandidatePartition:
    """Decode rows and split them into update and insert groups.

    Raises CandidateDecodeError on the first malformed row.
    """
    to_update: list[str] = []
    to_insert: list[str] = []
    for row in rows:
        candidate = ClaimCandidate.from_row(row)
        if candidate.has_record:
            to_update.append(candidate.unit_id)
        else:
            to_insert.append(candidate.unit_id)
    return CandidatePartition(to_update=to_update, to_insert=to_insert)
