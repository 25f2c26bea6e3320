"""
Retry with exponential backoff and jitter, plus error-classification predicates.

Errors are classified by type where possible (requests connection/timeout
errors, HTTP status codes) and otherwise by substring matching on the error
message, which is how backend SDK errors surface.
"""

from __future__ import annotations

import functools
import random
import re
import socket
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

import requests

from karatapp.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_DELAY = 30.0
JITTER_FRACTION = 0.1

RETRYABLE_STATUS_CODES = frozenset({408, 429})

_RETRYABLE_MARKERS = (
    "network",
    "timeout",
    "timed out",
    "connection",
    "server error",
    "service unavailable",
    "rate limit",
)
_AUTH_FATAL_MARKERS = ("invalid", "unauthorized", "forbidden", "not found", "email", "password")
_IMAGE_FATAL_MARKERS = ("not found", "permission denied", "access denied", "file does not exist")

_STATUS_RE = re.compile(r"\b([1-5]\d{2})\b")


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay: float = DEFAULT_INITIAL_DELAY
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_delay: float = DEFAULT_MAX_DELAY
    should_retry: Optional[Callable[[BaseException], bool]] = None


def _status_code_of(error: BaseException) -> int | None:
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    if isinstance(error, requests.HTTPError):
        m = _STATUS_RE.search(str(error))
        if m:
            return int(m.group(1))
    return None


def should_retry_error(error: BaseException) -> bool:
    """True for connectivity problems, timeouts, HTTP 408/429/5xx and similar messages."""
    if isinstance(error, (requests.ConnectionError, requests.Timeout, socket.timeout, TimeoutError, ConnectionError)):
        return True
    status = _status_code_of(error)
    if status is not None:
        if status >= 500 or status in RETRYABLE_STATUS_CODES:
            return True
    text = str(error).lower()
    return any(marker in text for marker in _RETRYABLE_MARKERS)


_NETWORK_MARKERS = (
    "socket",
    "failed host lookup",
    "name or service not known",
    "network",
    "connection",
    "timeout",
    "timed out",
    "dns",
    "no internet",
    "unreachable",
)


def is_network_error(error: BaseException) -> bool:
    """True when the backend could not be reached at all (offline fallback applies)."""
    if isinstance(error, (requests.ConnectionError, requests.Timeout, socket.timeout, TimeoutError, ConnectionError)):
        return True
    if _status_code_of(error) is not None:
        return False
    text = str(error).lower()
    return any(marker in text for marker in _NETWORK_MARKERS)


def should_retry_auth_error(error: BaseException) -> bool:
    """Never retry bad credentials; otherwise defer to should_retry_error."""
    text = str(error).lower()
    if any(marker in text for marker in _AUTH_FATAL_MARKERS):
        return False
    return should_retry_error(error)


def should_retry_image_error(error: BaseException) -> bool:
    """Never retry missing files or permission problems."""
    text = str(error).lower()
    if any(marker in text for marker in _IMAGE_FATAL_MARKERS):
        return False
    return should_retry_error(error)


def next_delay(current: float, multiplier: float, max_delay: float, rng: Callable[[], float] = random.random) -> float:
    """Grow ``current`` by ``multiplier``, cap at ``max_delay`` and add up to 10% jitter."""
    grown = min(current * multiplier, max_delay)
    return grown * (1 + rng() * JITTER_FRACTION)


def execute_with_retry(
    operation: Callable[[], T],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    max_delay: float = DEFAULT_MAX_DELAY,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
    sleep: Callable[[float], Any] = time.sleep,
    label: str = "operation",
) -> T:
    """
    Run ``operation`` until it succeeds or retries are exhausted.

    Args:
        operation: Zero-argument callable to invoke.
        max_retries: Retries after the first attempt (total attempts = max_retries + 1).
        initial_delay: Seconds to wait before the first retry.
        backoff_multiplier: Growth factor applied to the delay after each retry.
        max_delay: Upper bound for the delay before jitter.
        should_retry: Predicate; errors it rejects propagate immediately.
            None retries every Exception.
        on_retry: Called with (attempt, error) before each wait.
        sleep: Wait function; injectable for tests.
        label: Name used in log lines.

    Returns:
        Whatever ``operation`` returns.

    Raises:
        The last error raised by ``operation``.
    """
    attempt = 0
    delay = max(0.0, initial_delay)
    while True:
        try:
            return operation()
        except Exception as e:
            attempt += 1
            if should_retry is not None and not should_retry(e):
                raise
            if attempt > max_retries:
                logger.error("%s failed after %d retries: %s", label, max_retries, e)
                raise
            logger.warning(
                "%s attempt %d/%d failed, retrying in %.2fs: %s",
                label, attempt, max_retries, delay, e,
            )
            if on_retry is not None:
                on_retry(attempt, e)
            sleep(delay)
            delay = next_delay(delay, backoff_multiplier, max_delay)


def execute_with_config(
    operation: Callable[[], T],
    config: RetryConfig,
    *,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
    sleep: Callable[[float], Any] = time.sleep,
    label: str = "operation",
) -> T:
    return execute_with_retry(
        operation,
        max_retries=config.max_retries,
        initial_delay=config.initial_delay,
        backoff_multiplier=config.backoff_multiplier,
        max_delay=config.max_delay,
        should_retry=config.should_retry,
        on_retry=on_retry,
        sleep=sleep,
        label=label,
    )


def with_retry(config: RetryConfig, label: str | None = None) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator form of execute_with_config."""

    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return execute_with_config(
                lambda: fn(*args, **kwargs),
                config,
                label=label or fn.__name__,
            )

        return wrapper

    return decorator


def network_retry_config() -> RetryConfig:
    return RetryConfig(
        max_retries=3,
        initial_delay=1.0,
        backoff_multiplier=2.0,
        max_delay=10.0,
        should_retry=should_retry_error,
    )


def auth_retry_config() -> RetryConfig:
    return RetryConfig(
        max_retries=2,
        initial_delay=0.5,
        backoff_multiplier=2.0,
        max_delay=5.0,
        should_retry=should_retry_auth_error,
    )


def image_retry_config() -> RetryConfig:
    return RetryConfig(
        max_retries=3,
        initial_delay=2.0,
        backoff_multiplier=1.5,
        max_delay=15.0,
        should_retry=should_retry_image_error,
    )
