"""Pytest configuration and shared test fixtures.

This module provides fixtures for testing the dish graph pipeline,
including content unit factories, stores, stub extractors, and Neo4j
mock utilities.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import tenacity

from dish_graph_pipeline.exceptions import StoreUnavailableError
from dish_graph_pipeline.extraction.extractor import ExtractionContext, OpenAIExtractor
from dish_graph_pipeline.graph.memory_store import InMemoryGraphStore
from dish_graph_pipeline.graph.store import GraphTransaction
from dish_graph_pipeline.models import ContentUnit, MentionRecord, SourceType
from dish_graph_pipeline.pipeline import BatchProcessor

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

# =============================================================================
# RETRY FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove backoff sleeps from the decorated store and LLM calls."""
    for decorated in (
        BatchProcessor._plan,
        BatchProcessor._write_item,
        OpenAIExtractor._complete,
    ):
        monkeypatch.setattr(decorated.retry, "wait", tenacity.wait_none())


# =============================================================================
# CONTENT FIXTURES
# =============================================================================


@pytest.fixture
def fixed_now() -> datetime:
    """Provide a fixed "now" for recency-dependent tests.

    Returns:
        A timezone-aware timestamp.
    """
    return FIXED_NOW


@pytest.fixture
def make_unit() -> Callable[..., ContentUnit]:
    """Provide a factory for content units.

    Returns:
        Callable building a comment unit; keyword arguments override fields.
    """

    def factory(text: str, source_id: str = "c1", **overrides: Any) -> ContentUnit:
        fields: dict[str, Any] = {
            "text": text,
            "source_type": SourceType.COMMENT,
            "source_id": source_id,
            "upvotes": 10,
            "subreddit": "austinfood",
            "created_at": FIXED_NOW - timedelta(days=1),
        }
        fields.update(overrides)
        return ContentUnit(**fields)

    return factory


@pytest.fixture
def franklin_text() -> str:
    """Provide a unit that praises a restaurant and one of its dishes.

    Returns:
        Comment text naming Franklin BBQ and its brisket.
    """
    return "Franklin BBQ is amazing and their brisket is great"


# =============================================================================
# STORE FIXTURES
# =============================================================================


@pytest.fixture
def memory_store() -> InMemoryGraphStore:
    """Provide an empty in-memory graph store.

    Returns:
        InMemoryGraphStore instance.
    """
    return InMemoryGraphStore()


class FlakyStore(InMemoryGraphStore):
    """In-memory store whose transactions fail before they open.

    The first ``healthy`` transactions succeed, the next ``failures`` raise
    StoreUnavailableError, and everything after succeeds again.
    """

    def __init__(self, failures: int, healthy: int = 0) -> None:
        super().__init__()
        self.failures = failures
        self.healthy = healthy
        self.attempts = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[GraphTransaction]:
        self.attempts += 1
        if self.healthy > 0:
            self.healthy -= 1
        elif self.failures > 0:
            self.failures -= 1
            raise StoreUnavailableError("database unavailable")
        async with super().transaction() as tx:
            yield tx


# =============================================================================
# EXTRACTOR FIXTURES
# =============================================================================


class StubExtractor:
    """Extractor returning fixed records, or raising a fixed error."""

    def __init__(
        self,
        records: list[MentionRecord] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.records = records or []
        self.error = error
        self.calls: list[str] = []

    async def extract(self, unit: ContentUnit, context: ExtractionContext) -> list[MentionRecord]:
        self.calls.append(unit.source_id)
        if self.error is not None:
            raise self.error
        return [record.model_copy(update={"source_id": unit.source_id}) for record in self.records]


# =============================================================================
# NEO4J MOCK FIXTURES
# =============================================================================


class MockRecord:
    """Mock Neo4j record for testing."""

    def __init__(self, values: dict) -> None:
        """Initialize with the record's values."""
        self._values = values

    def __getitem__(self, key: str) -> Any:
        """Get item from record data."""
        return self._values[key]

    def keys(self) -> list[str]:
        """Get record keys."""
        return list(self._values.keys())

    def data(self) -> dict:
        """Return the record as a dictionary."""
        return dict(self._values)


class MockResult:
    """Mock Neo4j result for testing."""

    def __init__(self, records: list[dict]) -> None:
        """Initialize with list of record dicts."""
        self._records = [MockRecord(r) for r in records]
        self._index = 0

    async def single(self) -> MockRecord | None:
        """Return single record or None."""
        return self._records[0] if self._records else None

    def __aiter__(self) -> MockResult:
        """Return async iterator."""
        return self

    async def __anext__(self) -> MockRecord:
        """Get next record."""
        if self._index >= len(self._records):
            raise StopAsyncIteration
        record = self._records[self._index]
        self._index += 1
        return record


class _PatternResults:
    """Query-substring to records mapping shared by the session and transaction mocks."""

    def __init__(self) -> None:
        self._results: dict[str, list[dict]] = {}
        self._errors: dict[str, BaseException] = {}
        self.queries: list[tuple[str, dict]] = []

    def set_result(self, query_pattern: str, records: list[dict]) -> None:
        """Set result for queries matching pattern."""
        self._results[query_pattern] = records

    def set_error(self, query_pattern: str, error: BaseException) -> None:
        """Raise an error for queries matching pattern."""
        self._errors[query_pattern] = error

    def _respond(self, query: str, params: dict) -> MockResult:
        self.queries.append((query, params))
        for pattern, error in self._errors.items():
            if pattern in query:
                raise error
        for pattern, records in self._results.items():
            if pattern in query:
                return MockResult(records)
        return MockResult([])


class MockTransaction(_PatternResults):
    """Mock Neo4j async transaction for testing."""

    def __init__(self) -> None:
        super().__init__()
        self.committed = False
        self.rolled_back = False

    async def run(self, query: str, parameters: dict | None = None, **kwargs: Any) -> MockResult:
        """Run query and return mock result."""
        return self._respond(query, {**(parameters or {}), **kwargs})

    async def commit(self) -> None:
        self.committed = True

    async def rollback(self) -> None:
        self.rolled_back = True


class MockSession(_PatternResults):
    """Mock Neo4j async session for testing."""

    def __init__(self, transaction: MockTransaction | None = None) -> None:
        super().__init__()
        self.transaction = transaction or MockTransaction()
        self.begin_error: BaseException | None = None

    async def run(self, query: str, **kwargs: Any) -> MockResult:
        """Run query and return mock result."""
        return self._respond(query, kwargs)

    async def begin_transaction(self) -> MockTransaction:
        """Open the mock transaction."""
        if self.begin_error is not None:
            raise self.begin_error
        return self.transaction

    async def __aenter__(self) -> MockSession:
        """Enter async context."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Exit async context."""


class MockDriver:
    """Mock Neo4j async driver for testing."""

    def __init__(self, session: MockSession | None = None) -> None:
        """Initialize with optional mock session."""
        self._session = session or MockSession()
        self.closed = False

    def session(self, database: str = "neo4j") -> MockSession:
        """Return mock session."""
        return self._session

    async def close(self) -> None:
        """Close driver (no-op for mock)."""
        self.closed = True


@pytest.fixture
def mock_neo4j_session() -> MockSession:
    """Provide mock Neo4j session for testing.

    Returns:
        MockSession instance with configurable results.
    """
    return MockSession()


@pytest.fixture
def mock_neo4j_driver(mock_neo4j_session: MockSession) -> MockDriver:
    """Provide mock Neo4j driver for testing.

    Returns:
        MockDriver instance wrapping the mock session.
    """
    return MockDriver(mock_neo4j_session)


# =============================================================================
# ENVIRONMENT FIXTURES
# =============================================================================


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Provide mock environment variables for testing.

    Returns:
        Dictionary of environment variables that were set.
    """
    env_vars = {
        "NEO4J_URI": "bolt://localhost:7687",
        "NEO4J_USERNAME": "neo4j",
        "NEO4J_PASSWORD": "testpassword",
        "NEO4J_DATABASE": "neo4j",
        "OPENAI_API_KEY": "sk-test-key-123",
        "LLM_MODEL": "gpt-4o-mini",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars
