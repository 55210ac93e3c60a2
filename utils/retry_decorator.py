"""
Retry decorator with exponential backoff using tenacity
"""
import logging
from typing import Callable
import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
    after_log
)

from config import settings
from utils.logger import logger


# Transport-level failures only; HTTP error statuses are reported, not retried
RETRYABLE_EXCEPTIONS = (
    requests.ConnectionError,
    requests.Timeout,
    TimeoutError,
    ConnectionError,
)


def with_retry(
    max_attempts: int = None,
    min_wait: int = None,
    max_wait: int = None,
    multiplier: int = None
) -> Callable:
    """
    Decorator to add retry logic with exponential backoff

    Args:
        max_attempts: Maximum number of retry attempts
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds
        multiplier: Exponential backoff multiplier

    Returns:
        Decorated function with retry logic
    """
    max_attempts = max_attempts or settings.MAX_RETRIES
    min_wait = min_wait if min_wait is not None else settings.RETRY_MIN_WAIT
    max_wait = max_wait if max_wait is not None else settings.RETRY_MAX_WAIT
    multiplier = multiplier or settings.RETRY_MULTIPLIER

    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=multiplier,
            min=min_wait,
            max=max_wait
        ),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.INFO),
        reraise=True
    )
