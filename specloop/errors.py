"""
Error taxonomy for specloop.

This module provides:
- SpecloopError, the base of every error the CLI reports
- Configuration, network, response-parsing and file-update errors
- MaxAttemptsReachedError for an exhausted build-repair loop
- QueryError subclasses classifying a single failed LLM request
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Optional


class SpecloopError(Exception):
    """Base exception for all specloop errors."""

    prefix = "Error"

    def __str__(self) -> str:
        return f"{self.prefix}: {super().__str__()}"


class ConfigError(SpecloopError):
    """Raised for bad configuration: ignore file, dependency file, cycles, keys."""

    prefix = "Configuration Error"


class NetworkError(SpecloopError):
    """Raised when an LLM request fails after the retry policy gives up."""

    prefix = "HTTP Request Error"


class ResponseParsingError(SpecloopError):
    """Raised when an LLM response does not follow the expected protocol or shape."""

    prefix = "LLM Response Parsing Error"


class FileUpdateError(SpecloopError):
    """
    Raised when a file mutation is rejected or cannot be applied.

    The offending path (when known) is kept on the exception.
    """

    prefix = "File Update Error"

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class MaxAttemptsReachedError(SpecloopError):
    """
    Raised when the build did not pass within the attempt budget.

    Distinct from any single-attempt failure: every attempt completed, the
    build just never went green.
    """

    prefix = "Build Error"

    def __init__(self, attempts: int, last_build_output: str = "") -> None:
        super().__init__(
            f"The build did not pass after the maximum number of attempts ({attempts})."
        )
        self.attempts = attempts
        self.last_build_output = last_build_output


class QueryErrorType(Enum):
    """Classification of a single failed LLM request."""

    HTTP = auto()           # Non-2xx status
    TRANSPORT = auto()      # Connect/timeout/other transport failure
    INVALID_JSON = auto()   # 2xx with a body that is not JSON


class QueryError(Exception):
    """
    Base class for one failed attempt of an LLM request.

    These never escape the LLM client: the retry loop either retries them or
    converts them into a NetworkError via to_network_error().
    """

    error_type: QueryErrorType

    def to_network_error(self) -> NetworkError:
        return NetworkError(str(self))


class HttpQueryError(QueryError):
    """The server answered with a non-success status."""

    error_type = QueryErrorType.HTTP

    def __init__(self, status: int, body: str, retry_after: Optional[float] = None) -> None:
        super().__init__(f"HTTP {status} with body:\n{body}")
        self.status = status
        self.body = body
        self.retry_after = retry_after


class TransportQueryError(QueryError):
    """The request never produced a response (connect failure, timeout, ...)."""

    error_type = QueryErrorType.TRANSPORT

    def __init__(self, message: str, is_connect: bool = False, is_timeout: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.is_connect = is_connect
        self.is_timeout = is_timeout


class InvalidJsonQueryError(QueryError):
    """A success status arrived with a body that could not be decoded."""

    error_type = QueryErrorType.INVALID_JSON

    def __init__(self, body: str, parse_error: str) -> None:
        super().__init__(
            f"Invalid JSON in success response: {parse_error}; raw body:\n{body}"
        )
        self.body = body
        self.parse_error = parse_error
