"""rowclaim - concurrency-safe work claiming over PostgreSQL rows"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.brokers.postgres import PostgresBroker
from .core.brokers.result_types import (
    BrokerErrorCode,
    BrokerOperationError,
    BrokerResult,
)
from .core.claims.handle import Claim, ClaimState
from .core.models.broker import PostgresConfig
from .core.models.claim import ClaimConfig
from .core.models.unit_pg import UnitModel, WorkRecordModel
from .core.types.status import WorkStatus, WORK_TERMINAL_STATES
from .core.types.result import Result, Ok, Err, is_ok, is_err
from .core.errors import (
    ConfigurationError,
    ErrorCode,
    MultipleValidationErrors,
    RowclaimError,
    ValidationReport,
)
from .core.logging import get_logger, set_default_level

__all__ = [
    # Core
    'PostgresBroker',
    'PostgresConfig',
    'ClaimConfig',
    'Claim',
    'ClaimState',
    # Models
    'UnitModel',
    'WorkRecordModel',
    'WorkStatus',
    'WORK_TERMINAL_STATES',
    # Results
    'BrokerErrorCode',
    'BrokerOperationError',
    'BrokerResult',
    'Result',
    'Ok',
    'Err',
    'is_ok',
    'is_err',
    # Errors
    'RowclaimError',
    'ConfigurationError',
    'ErrorCode',
    'ValidationReport',
    'MultipleValidationErrors',
    # Logging
    'get_logger',
    'set_default_level',
]
