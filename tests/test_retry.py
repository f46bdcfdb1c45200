"""Tests for retry decorators and retry behavior across call sites.

Verifies that:
- extraction_retry retries schema violations, rate limits, timeouts and
  connection errors, and nothing else
- store_retry retries only StoreUnavailableError
- Both raise tenacity.RetryError once attempts are exhausted
- The decorated call sites carry the shared policies
"""

from __future__ import annotations

from unittest.mock import MagicMock

import openai
import pytest
import tenacity

from dish_graph_pipeline.exceptions import (
    SchemaViolationError,
    StoreUnavailableError,
    UniqueConstraintViolation,
)
from dish_graph_pipeline.extraction.extractor import OpenAIExtractor
from dish_graph_pipeline.pipeline import BatchProcessor
from dish_graph_pipeline.utils.retry import (
    _is_retryable_extraction_error,
    extraction_retry,
    store_retry,
)

NO_WAIT = tenacity.wait_none()


class TestRetryPredicates:
    """Tests for retry predicate functions."""

    def test_schema_violation_is_retryable(self) -> None:
        assert _is_retryable_extraction_error(SchemaViolationError("c1", "bad")) is True

    def test_rate_limit_is_retryable(self) -> None:
        exc = openai.RateLimitError(
            message="rate limited",
            response=MagicMock(status_code=429),
            body=None,
        )
        assert _is_retryable_extraction_error(exc) is True

    def test_timeout_is_retryable(self) -> None:
        exc = openai.APITimeoutError(request=MagicMock())
        assert _is_retryable_extraction_error(exc) is True

    def test_connection_error_is_retryable(self) -> None:
        exc = openai.APIConnectionError(request=MagicMock())
        assert _is_retryable_extraction_error(exc) is True

    def test_other_errors_not_retryable(self) -> None:
        assert _is_retryable_extraction_error(ValueError("not retryable")) is False
        assert _is_retryable_extraction_error(StoreUnavailableError("down")) is False


class TestExtractionRetryDecorator:
    """Tests for the extraction_retry decorator."""

    @pytest.mark.asyncio
    async def test_retries_on_rate_limit(self) -> None:
        call_count = 0

        @extraction_retry
        async def flaky_call() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise openai.RateLimitError(
                    message="rate limited",
                    response=MagicMock(status_code=429),
                    body=None,
                )
            return "success"

        result = await flaky_call.retry_with(wait=NO_WAIT)()
        assert result == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_raises_retry_error_after_max_attempts(self) -> None:
        @extraction_retry
        async def always_fails() -> str:
            raise SchemaViolationError("c1", "invalid JSON", "{")

        with pytest.raises(tenacity.RetryError) as exc_info:
            await always_fails.retry_with(wait=NO_WAIT)()

        assert exc_info.value.last_attempt.attempt_number == 3

    @pytest.mark.asyncio
    async def test_does_not_retry_non_retryable(self) -> None:
        call_count = 0

        @extraction_retry
        async def bad_call() -> str:
            nonlocal call_count
            call_count += 1
            raise ValueError("not retryable")

        with pytest.raises(ValueError, match="not retryable"):
            await bad_call.retry_with(wait=NO_WAIT)()
        assert call_count == 1


class TestStoreRetryDecorator:
    """Tests for the store_retry decorator."""

    @pytest.mark.asyncio
    async def test_retries_unavailable_store(self) -> None:
        call_count = 0

        @store_retry
        async def write() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise StoreUnavailableError("deadlock")
            return "committed"

        assert await write.retry_with(wait=NO_WAIT)() == "committed"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_constraint_violation_not_retried(self) -> None:
        call_count = 0

        @store_retry
        async def write() -> None:
            nonlocal call_count
            call_count += 1
            raise UniqueConstraintViolation("franklin bbq", "restaurant")

        with pytest.raises(UniqueConstraintViolation):
            await write.retry_with(wait=NO_WAIT)()
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_exhausted(self) -> None:
        @store_retry
        async def write() -> None:
            raise StoreUnavailableError("down")

        with pytest.raises(tenacity.RetryError):
            await write.retry_with(wait=NO_WAIT)()


class TestCallSites:
    """The blocking call sites carry the shared decorators."""

    def test_llm_call_has_retry(self) -> None:
        assert hasattr(OpenAIExtractor._complete, "retry")

    def test_store_transactions_have_retry(self) -> None:
        assert hasattr(BatchProcessor._plan, "retry")
        assert hasattr(BatchProcessor._write_item, "retry")

    def test_openai_client_retries_disabled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        captured = {}

        class FakeClient:
            def __init__(self, **kwargs) -> None:
                captured.update(kwargs)

        monkeypatch.setattr(openai, "AsyncOpenAI", FakeClient)

        OpenAIExtractor(api_key="sk-test")

        assert captured["max_retries"] == 0
