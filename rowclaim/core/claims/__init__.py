from rowclaim.core.claims.candidates import (
    CandidateDecodeError,
    CandidatePartition,
    ClaimCandidate,
    partition_candidates,
)
from rowclaim.core.claims.handle import Claim, ClaimState

__all__ = [
    'Claim',
    'ClaimState',
    'ClaimCandidate',
    'CandidatePartition',
    'CandidateDecodeError',
    'partition_candidates',
]
