"""core.exceptions

Centralised exception hierarchy for *knightcode*.

Each error carries a `category` and an `exit_code` at class level so that the
CLI can print a categorised message and pick the process exit status *without*
scattering that logic throughout the adapters.  Instances may add a
human-readable `resolution` hint and free-form `details`.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from collections.abc import Mapping


class ErrorCategory(StrEnum):
    connection = 'connection'
    ai_service = 'ai_service'
    timeout = 'timeout'
    initialization = 'initialization'
    configuration = 'configuration'
    unknown = 'unknown'


class ErrorLevel(StrEnum):
    informational = 'informational'
    minor = 'minor'
    major = 'major'
    critical = 'critical'


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class KnightcodeError(Exception):
    """Base class for all *knightcode* domain errors."""

    category: ClassVar[ErrorCategory] = ErrorCategory.unknown
    #: Process exit status used by the CLI for user-classified errors.
    exit_code: ClassVar[int] = 1
    default_resolution: ClassVar[str | None] = None

    def __init__(
        self,
        message: str | None = None,
        *,
        resolution: str | None = None,
        details: Mapping[str, Any] | None = None,
        level: ErrorLevel = ErrorLevel.major,
        retryable: bool = True,
    ) -> None:
        super().__init__(message or self.__class__.__name__)
        self.resolution = resolution or self.default_resolution
        self.details = dict(details) if details else {}
        self.level = level
        self.retryable = retryable

    @property
    def message(self) -> str:
        return str(self)


# ---------------------------------------------------------------------------
# Concrete error classes
# ---------------------------------------------------------------------------


class ConnectionFailedError(KnightcodeError):
    """Backend unreachable, or its connectivity probe failed."""

    category: ClassVar[ErrorCategory] = ErrorCategory.connection
    default_resolution: ClassVar[str | None] = 'Make sure the local AI service is running and reachable.'


class AIServiceError(KnightcodeError):
    """Backend reachable but answered with an error or a malformed payload."""

    category: ClassVar[ErrorCategory] = ErrorCategory.ai_service
    default_resolution: ClassVar[str | None] = 'Check the AI service logs and make sure the model is loaded.'


class OperationTimeoutError(KnightcodeError):
    """Raised by `with_timeout` when the deadline passes."""

    category: ClassVar[ErrorCategory] = ErrorCategory.timeout
    default_resolution: ClassVar[str | None] = 'The AI service is slow to answer; try again or raise the timeout.'


class InitializationError(KnightcodeError):
    """A provider was requested before one was successfully initialized."""

    category: ClassVar[ErrorCategory] = ErrorCategory.initialization
    default_resolution: ClassVar[str | None] = 'Initialize a provider before using AI capabilities.'


class ConfigurationError(KnightcodeError):
    """Missing or invalid provider / model selection."""

    category: ClassVar[ErrorCategory] = ErrorCategory.configuration
    default_resolution: ClassVar[str | None] = 'Check your knightcode configuration and command-line options.'


class ProviderNotFoundError(ConfigurationError):
    """Raised when `ProviderRegistry` cannot find a requested provider key."""

    default_resolution: ClassVar[str | None] = 'Use one of the supported providers: ollama, lmstudio.'
