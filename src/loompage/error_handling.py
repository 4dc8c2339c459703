"""Error taxonomy and retry handling for outbound provider calls."""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List

import aiohttp


logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """Error category types."""
    CONFIGURATION = "configuration"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    MALFORMED_RESPONSE = "malformed_response"


RETRYABLE_CATEGORIES = {
    ErrorCategory.RATE_LIMIT,
    ErrorCategory.SERVER_ERROR,
    ErrorCategory.TIMEOUT,
    ErrorCategory.NETWORK_ERROR,
}


class ProviderError(Exception):
    """A failed call to an external image service."""

    def __init__(
        self,
        provider: str,
        message: str,
        status: int | None = None,
        category: ErrorCategory | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status = status
        self.category = category or (
            ErrorAnalyzer.categorize_status(status) if status is not None else ErrorCategory.NETWORK_ERROR
        )

    @property
    def retryable(self) -> bool:
        return is_retryable(self.category)

    def __str__(self) -> str:
        status = f" (HTTP {self.status})" if self.status is not None else ""
        return f"{self.provider}: {self.args[0]}{status}"


@dataclass
class ErrorContext:
    """Context information for error handling."""
    function_name: str
    attempt_number: int
    max_attempts: int
    error_category: ErrorCategory
    timestamp: float
    additional_info: Dict[str, Any] = field(default_factory=dict)


class ErrorAnalyzer:
    """Maps HTTP statuses and exceptions onto error categories."""

    @staticmethod
    def categorize_status(status: int) -> ErrorCategory:
        """Categorize a non-success HTTP status."""
        if status == 429:
            return ErrorCategory.RATE_LIMIT
        if status >= 500:
            return ErrorCategory.SERVER_ERROR
        return ErrorCategory.CLIENT_ERROR

    @staticmethod
    def categorize_error(error: Exception) -> ErrorCategory:
        """Categorize an exception raised while talking to a provider."""
        if isinstance(error, ProviderError):
            return error.category
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return ErrorCategory.TIMEOUT
        if isinstance(error, aiohttp.ContentTypeError):
            return ErrorCategory.MALFORMED_RESPONSE
        if isinstance(error, aiohttp.ClientResponseError):
            return ErrorAnalyzer.categorize_status(error.status)
        if isinstance(error, (aiohttp.ClientError, ConnectionError, OSError)):
            return ErrorCategory.NETWORK_ERROR
        if isinstance(error, (ValueError, KeyError, TypeError)):
            return ErrorCategory.MALFORMED_RESPONSE
        return ErrorCategory.NETWORK_ERROR


def is_retryable(category: ErrorCategory) -> bool:
    """Rate limits, server errors, timeouts and network errors may be retried."""
    return category in RETRYABLE_CATEGORIES


def backoff_delay(attempt_number: int, base_delay: float, jitter: float = 0.0) -> float:
    """Exponential backoff: base, 2*base, 4*base ... plus optional jitter."""
    delay = base_delay * (2 ** (attempt_number - 1))
    if jitter:
        delay += random.uniform(0, jitter)
    return delay


class ErrorRecoveryHandler:
    """Retries retryable failures with exponential backoff and keeps statistics."""

    def __init__(self, max_attempts: int = 3, base_delay: float = 2.0, jitter: float = 0.0):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.jitter = jitter
        self.error_history: List[ErrorContext] = []
        self.recovery_stats = {
            'total_errors': 0,
            'recovered_errors': 0,
            'failed_recoveries': 0,
            'category_counts': {},
        }

    async def handle_with_recovery(
        self,
        func: Callable,
        args: tuple = (),
        kwargs: Dict[str, Any] = None,
        context: Dict[str, Any] = None
    ) -> Any:
        """Execute ``func``, retrying only errors whose category is retryable."""

        kwargs = kwargs or {}
        context = context or {}

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await func(*args, **kwargs)

                if attempt > 1:
                    logger.info(f"Successfully recovered from error on attempt {attempt}")
                    self.recovery_stats['recovered_errors'] += 1

                return result

            except Exception as error:
                self.recovery_stats['total_errors'] += 1

                error_category = ErrorAnalyzer.categorize_error(error)
                self.recovery_stats['category_counts'][error_category] = \
                    self.recovery_stats['category_counts'].get(error_category, 0) + 1

                self.error_history.append(ErrorContext(
                    function_name=getattr(func, '__name__', repr(func)),
                    attempt_number=attempt,
                    max_attempts=self.max_attempts,
                    error_category=error_category,
                    timestamp=time.time(),
                    additional_info=context
                ))
                if len(self.error_history) > 100:
                    self.error_history = self.error_history[-100:]

                logger.warning(
                    f"Error in {getattr(func, '__name__', 'call')} (attempt {attempt}/{self.max_attempts}): "
                    f"{error_category.value} - {error}"
                )

                if not is_retryable(error_category):
                    self.recovery_stats['failed_recoveries'] += 1
                    raise

                if attempt >= self.max_attempts:
                    logger.error(f"Max attempts reached for {getattr(func, '__name__', 'call')}")
                    self.recovery_stats['failed_recoveries'] += 1
                    raise

                delay = backoff_delay(attempt, self.base_delay, self.jitter)
                if delay > 0:
                    logger.info(f"Retrying in {delay:.1f} seconds...")
                    await asyncio.sleep(delay)

    def get_error_statistics(self) -> Dict[str, Any]:
        """Get error handling statistics."""
        total_errors = self.recovery_stats['total_errors']

        return {
            'total_errors': total_errors,
            'recovered_errors': self.recovery_stats['recovered_errors'],
            'failed_recoveries': self.recovery_stats['failed_recoveries'],
            'recovery_rate': (
                self.recovery_stats['recovered_errors'] / max(1, total_errors)
            ),
            'category_breakdown': {
                category.value: count for category, count in self.recovery_stats['category_counts'].items()
            },
            'recent_errors': [
                {
                    'function': ctx.function_name,
                    'category': ctx.error_category.value,
                    'attempt': ctx.attempt_number,
                    'timestamp': ctx.timestamp
                }
                for ctx in self.error_history[-10:]
            ]
        }
