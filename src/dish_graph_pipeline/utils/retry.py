"""Shared retry decorators for the extraction and persistence boundaries.

The two blocking operations in the pipeline are the LLM call and the
graph-store transaction. Each gets a tenacity decorator here so retry
policy lives in one place.

Note: the OpenAI client is created with ``max_retries=0`` so that these
decorators are the only retry layer (no double-retry cascades).
"""

from __future__ import annotations

import logging

import openai
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random_exponential,
)

from dish_graph_pipeline.config import LLM_MAX_RETRIES, STORE_MAX_RETRIES
from dish_graph_pipeline.exceptions import SchemaViolationError, StoreUnavailableError

# tenacity's before_sleep_log requires a stdlib logger, NOT structlog.
# See: https://tenacity.readthedocs.io/en/latest/#before-and-after-retry
_tenacity_logger = logging.getLogger("dish_graph_pipeline.retry")

_RETRYABLE_API_ERRORS = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
)


def _is_retryable_extraction_error(exc: BaseException) -> bool:
    """Check if an extraction failure should be retried.

    Schema violations are retried because a second sample from the model
    usually parses. Rate limits, timeouts and connection drops are retried
    as transient API failures.

    Args:
        exc: The exception to inspect.

    Returns:
        True if the exception is retryable.
    """
    return isinstance(exc, (SchemaViolationError, *_RETRYABLE_API_ERRORS))


extraction_retry = retry(
    retry=retry_if_exception(_is_retryable_extraction_error),
    stop=stop_after_attempt(LLM_MAX_RETRIES),
    wait=wait_random_exponential(multiplier=2, min=1, max=60),
    before_sleep=before_sleep_log(_tenacity_logger, logging.WARNING),
)
"""Retry decorator for LLM extraction calls.

3 attempts with random exponential backoff capped at 60s. Raises
``tenacity.RetryError`` once attempts are exhausted; the batch processor
turns that into a dead-letter record.
"""

store_retry = retry(
    retry=retry_if_exception_type(StoreUnavailableError),
    stop=stop_after_attempt(STORE_MAX_RETRIES),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
    before_sleep=before_sleep_log(_tenacity_logger, logging.WARNING),
)
"""Retry decorator for one batch item's graph transaction.

Only ``StoreUnavailableError`` is retried; any other exception surfaces
immediately and marks the item as failed.
"""
