"""
marketcore Services

Service layer containing all business logic.
Each service has a defined interface (contract) and implementation.
"""

from marketcore.services.base import (
    BaseService,
    NoDataError,
    NoHistoricalDataError,
    NoValidDataError,
    PartialIndicatorFailure,
    ServiceError,
    UpstreamUnavailableError,
    ValidationError,
)

__all__ = [
    "BaseService",
    "ServiceError",
    "ValidationError",
    "UpstreamUnavailableError",
    "NoDataError",
    "NoHistoricalDataError",
    "NoValidDataError",
    "PartialIndicatorFailure",
]
