from rowclaim.core.brokers.postgres import PostgresBroker
from rowclaim.core.brokers.result_types import (
    BrokerErrorCode,
    BrokerOperationError,
    BrokerResult,
)

__all__ = [
    'PostgresBroker',
    'BrokerErrorCode',
    'BrokerOperationError',
    'BrokerResult',
]
