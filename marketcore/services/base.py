"""
Service contract and error hierarchy.

Historical data, indicators, trade setups and the analysis pipeline all
implement BaseService. Every failure they surface is a ServiceError subclass
so callers can tell bad input from an unreachable provider from an empty
result.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class BaseService(ABC, Generic[InputT, OutputT]):
    """
    Async service with a typed request and result.

    Subclasses provide a name for log lines, the main coroutine and a
    health probe. validate_input runs before execute.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in log lines and ServiceError.service_name."""
        pass

    @abstractmethod
    async def execute(self, input_data: InputT) -> OutputT:
        """
        Run the service for one request.

        Raises:
            ValidationError: Malformed request
            UpstreamUnavailableError: Provider unreachable or failing
            NoDataError: Provider answered but nothing usable came back
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the service can currently serve requests."""
        pass

    async def validate_input(self, input_data: InputT) -> InputT:
        """
        Reject malformed requests before any network call.
        Pydantic covers field types; override for semantic checks.
        """
        return input_data


class ServiceError(Exception):
    """Root of every error raised by marketcore services."""

    def __init__(self, service_name: str, message: str, details: dict = None):
        self.service_name = service_name
        self.message = message
        self.details = details or {}
        super().__init__(f"[{service_name}] {message}")


class ValidationError(ServiceError):
    """Malformed symbol, timeframe or period. Never retried."""
    pass


class UpstreamUnavailableError(ServiceError):
    """Network failure, timeout or non-success response from the provider."""
    pass


class NoDataError(ServiceError):
    """Well-formed request that produced no usable data."""
    pass


class NoHistoricalDataError(NoDataError):
    """No base resolution could be retrieved at all."""

    def __init__(self, service_name: str, details: dict = None):
        super().__init__(service_name, "No historical data available", details)


class NoValidDataError(NoDataError):
    """Data was retrieved but nothing survived normalization."""

    def __init__(self, service_name: str, details: dict = None):
        super().__init__(
            service_name, "No valid historical data after normalization", details
        )


class PartialIndicatorFailure(UpstreamUnavailableError):
    """A single remote indicator could not be fetched."""

    def __init__(self, service_name: str, indicator: str, reason: str):
        self.indicator = indicator
        super().__init__(
            service_name,
            f"Indicator {indicator} unavailable: {reason}",
            {"indicator": indicator},
        )
