"""Retry utilities for cloud and database calls with exponential backoff"""

import logging
import random
import time
from enum import Enum
from typing import Callable, List, Optional, Tuple, TypeVar

from utils.error_utils import ActionableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# AWS error codes that indicate throttling or a transient service problem
RETRYABLE_CLOUD_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "RequestThrottled",
    "ServiceUnavailable",
    "InternalError",
    "Unavailable",
}


class RetryableErrorType(Enum):
    """Types of errors that should trigger retries"""

    NETWORK = "network"  # Connection errors, timeouts
    TEMPORARY = "temporary"  # Throttling, 5xx, replica set failover
    PERMANENT = "permanent"  # Not found, auth failures, in-use resources


def is_retryable_error(error: Exception) -> Tuple[bool, RetryableErrorType]:
    """Determine if an error is retryable and what type it is

    Args:
        error: The exception that occurred

    Returns:
        Tuple of (is_retryable, error_type)
    """
    # Errors we raise ourselves already carry a final verdict
    if isinstance(error, ActionableError):
        return False, RetryableErrorType.PERMANENT

    response = getattr(error, "response", None)
    if isinstance(response, dict) and "Error" in response:
        code = response["Error"].get("Code", "")
        if code in RETRYABLE_CLOUD_CODES:
            return True, RetryableErrorType.TEMPORARY
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if status >= 500:
            return True, RetryableErrorType.TEMPORARY
        return False, RetryableErrorType.PERMANENT

    # pymongo.errors.AutoReconnect and subclasses signal a failover in progress
    if type(error).__name__ in ("AutoReconnect", "NetworkTimeout", "ConnectionFailure"):
        return True, RetryableErrorType.NETWORK

    if isinstance(error, (ConnectionError, TimeoutError)):
        return True, RetryableErrorType.NETWORK

    error_str = str(error).lower()
    network_indicators = [
        "connection",
        "timeout",
        "timed out",
        "network",
        "refused",
        "unreachable",
        "reset",
        "temporary failure",
    ]
    if any(indicator in error_str for indicator in network_indicators):
        return True, RetryableErrorType.NETWORK

    return False, RetryableErrorType.PERMANENT


def compute_delay(attempt: int, initial_delay: float, max_delay: float, exponential_base: float, jitter: bool) -> float:
    """Backoff delay before retry number ``attempt + 1``"""
    delay = min(initial_delay * (exponential_base**attempt), max_delay)
    if jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay = max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))
    return delay


def retry_operation(
    operation: Callable[[], T],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    operation_name: str = "operation",
    retryable_errors: Optional[List[RetryableErrorType]] = None,
) -> T:
    """Call ``operation``, retrying retryable failures with exponential backoff

    Args:
        operation: Zero-argument callable to run
        max_retries: Maximum number of retry attempts (default: 3)
        initial_delay: Initial delay in seconds before first retry (default: 1.0)
        max_delay: Maximum delay between retries in seconds (default: 60.0)
        exponential_base: Base for exponential backoff (default: 2.0)
        jitter: Add random jitter to prevent thundering herd (default: True)
        operation_name: Name used in log messages
        retryable_errors: List of error types to retry (None = retry all retryable types)

    Returns:
        The operation's result
    """
    if retryable_errors is None:
        retryable_errors = [RetryableErrorType.NETWORK, RetryableErrorType.TEMPORARY]

    for attempt in range(max_retries + 1):
        try:
            result = operation()
            if attempt > 0:
                logger.info(f"{operation_name} succeeded on attempt {attempt + 1}")
            return result
        except Exception as e:
            is_retryable, error_type = is_retryable_error(e)

            if not is_retryable or error_type not in retryable_errors:
                logger.debug(f"{operation_name} failed with non-retryable error ({error_type.value}): {e}")
                raise

            if attempt >= max_retries:
                logger.error(
                    f"{operation_name} failed after {max_retries + 1} attempts. "
                    f"Last error ({error_type.value}): {e}"
                )
                raise

            delay = compute_delay(attempt, initial_delay, max_delay, exponential_base, jitter)
            logger.warning(
                f"{operation_name} failed on attempt {attempt + 1}/{max_retries + 1} "
                f"({error_type.value} error: {e}). "
                f"Retrying in {delay:.2f}s..."
            )
            time.sleep(delay)
    raise RuntimeError(f"{operation_name} was attempted zero times")
