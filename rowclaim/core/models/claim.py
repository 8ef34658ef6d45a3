# rowclaim/core/models/claim.py
from __future__ import annotations

from typing import Annotated, Optional, Self
from pydantic import BaseModel, Field, model_validator

from rowclaim.core.defaults import (
    DEFAULT_CLAIM_BATCH_SIZE,
    DEFAULT_PREREQUISITE_KIND,
    DEFAULT_STAGE_KIND,
    DEFAULT_STALE_AFTER_MS,
    MAX_CLAIM_BATCH_SIZE,
)
from rowclaim.core.errors import (
    ConfigurationError,
    ErrorCode,
    ValidationReport,
    raise_collected,
)
from rowclaim.core.types.status import WorkStatus


class ClaimConfig(BaseModel):
    """
    Eligibility predicate for claim_next().

    A unit is eligible when its last_updated is older than stale_after_ms,
    its prerequisite record (when prerequisite_kind is set) has one of
    prerequisite_statuses, and its stage record is either missing or has
    one of ready_statuses.

    Set prerequisite_kind to None for the single-stage layout.
    """

    stale_after_ms: Annotated[int, Field(ge=0)] = Field(
        default=DEFAULT_STALE_AFTER_MS,
        description='Minimum age of last_updated before a unit is eligible',
    )
    batch_size: Annotated[int, Field(ge=1, le=MAX_CLAIM_BATCH_SIZE)] = Field(
        default=DEFAULT_CLAIM_BATCH_SIZE,
        description='Units claimed per call when no explicit limit is given',
    )
    stage_kind: Annotated[str, Field(min_length=1, max_length=100)] = Field(
        default=DEFAULT_STAGE_KIND,
        description='Work record kind written as pending by a claim',
    )
    prerequisite_kind: Optional[Annotated[str, Field(min_length=1, max_length=100)]] = Field(
        default=DEFAULT_PREREQUISITE_KIND,
        description='Work record kind that must be ready first; None disables the gate',
    )
    prerequisite_statuses: list[WorkStatus] = Field(
        default_factory=lambda: [WorkStatus.COMPLETED],
        description='Prerequisite statuses that allow claiming',
    )
    ready_statuses: list[WorkStatus] = Field(
        default_factory=lambda: [WorkStatus.COMPLETED],
        description='Existing stage statuses that allow claiming again',
    )

    @property
    def stale_after_seconds(self) -> float:
        return self.stale_after_ms / 1000.0

    @property
    def prerequisite_status_values(self) -> list[str]:
        return [s.value for s in self.prerequisite_statuses]

    @property
    def ready_status_values(self) -> list[str]:
        return [s.value for s in self.ready_statuses]

    @model_validator(mode='after')
    def validate_predicate(self) -> Self:
        report = ValidationReport('claim')

        if WorkStatus.PENDING in self.ready_statuses:
            report.add(
                ConfigurationError(
                    message='ready_statuses must not contain pending',
                    code=ErrorCode.CONFIG_INVALID_STATUS,
                    notes=[
                        'a pending record is already claimed by another worker',
                        f'ready_statuses={self.ready_status_values}',
                    ],
                    help_text='list only statuses set by external processing, e.g. completed',
                )
            )
        if not self.ready_statuses:
            report.add(
                ConfigurationError(
                    message='ready_statuses must not be empty',
                    code=ErrorCode.CONFIG_INVALID_STATUS,
                    notes=['an empty list makes units with a stage record unclaimable forever'],
                    help_text="use ready_statuses=[WorkStatus.COMPLETED]",
                )
            )
        if self.prerequisite_kind is not None and not self.prerequisite_statuses:
            report.add(
                ConfigurationError(
                    message='prerequisite_statuses must not be empty',
                    code=ErrorCode.CONFIG_INVALID_STATUS,
                    notes=[f"prerequisite_kind='{self.prerequisite_kind}'"],
                    help_text='add a status or set prerequisite_kind=None',
                )
            )
        if self.prerequisite_kind == self.stage_kind:
            report.add(
                ConfigurationError(
                    message='stage_kind and prerequisite_kind must differ',
                    code=ErrorCode.CONFIG_INVALID_STAGE,
                    notes=[f"both are '{self.stage_kind}'"],
                    help_text='set prerequisite_kind=None for a single-stage layout',
                )
            )

        raise_collected(report)
        return self
