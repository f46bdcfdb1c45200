"""Tests for the Neo4j graph store and constraint management.

Uses the mock driver, session and transaction from conftest; no database
is required.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import neo4j
from neo4j.exceptions import ConstraintError, ServiceUnavailable, TransientError
import pytest

from dish_graph_pipeline.config import PipelineConfig
from dish_graph_pipeline.exceptions import (
    Neo4jConfigError,
    StoreUnavailableError,
    UniqueConstraintViolation,
)
from dish_graph_pipeline.graph.constraints import (
    INDEXES,
    UNIQUENESS_CONSTRAINTS,
    ConstraintManager,
    constraint_name,
    create_all_constraints,
)
from dish_graph_pipeline.graph.neo4j_store import (
    Neo4jGraphStore,
    Neo4jTransaction,
    _entity_props,
)
from dish_graph_pipeline.models import DeadLetterRecord, Entity, EntityType
from tests.conftest import MockTransaction


@pytest.fixture
def franklin() -> Entity:
    return Entity(
        entity_id="e-1",
        name="franklin bbq",
        type=EntityType.RESTAURANT,
        aliases=["franklins"],
        location={"lat": 30.27, "lng": -97.73},
    )


class TestNeo4jTransaction:
    """Tests for Cypher-backed reads and writes."""

    @pytest.mark.asyncio
    async def test_find_entity_normalizes_lookup(self, franklin) -> None:
        mock_tx = MockTransaction()
        mock_tx.set_result("{name: $name", [{"e": _entity_props(franklin)}])

        entity = await Neo4jTransaction(mock_tx).find_entity(" Franklin BBQ ", EntityType.RESTAURANT)

        assert entity == franklin
        _, params = mock_tx.queries[-1]
        assert params == {"name": "franklin bbq", "type": "restaurant"}

    @pytest.mark.asyncio
    async def test_find_entity_missing(self) -> None:
        entity = await Neo4jTransaction(MockTransaction()).find_entity("x", EntityType.FOOD)

        assert entity is None

    def test_location_stored_as_json(self, franklin) -> None:
        props = _entity_props(franklin)

        assert json.loads(props["location"]) == {"lat": 30.27, "lng": -97.73}
        assert isinstance(props["created_at"], str)

    @pytest.mark.asyncio
    async def test_create_entity(self, franklin) -> None:
        mock_tx = MockTransaction()
        mock_tx.set_result("MERGE (e:Entity", [{"e": _entity_props(franklin)}])

        stored = await Neo4jTransaction(mock_tx).create_entity(franklin)

        assert stored.entity_id == "e-1"

    @pytest.mark.asyncio
    async def test_create_entity_lost_race(self, franklin) -> None:
        winner = franklin.model_copy(update={"entity_id": "e-0"})
        mock_tx = MockTransaction()
        mock_tx.set_result("MERGE (e:Entity", [{"e": _entity_props(winner)}])

        with pytest.raises(UniqueConstraintViolation):
            await Neo4jTransaction(mock_tx).create_entity(franklin)

    @pytest.mark.asyncio
    async def test_constraint_error_translated(self, franklin) -> None:
        mock_tx = MockTransaction()
        mock_tx.set_error("MERGE (e:Entity", ConstraintError("already exists with label"))

        with pytest.raises(UniqueConstraintViolation):
            await Neo4jTransaction(mock_tx).create_entity(franklin)

    @pytest.mark.asyncio
    async def test_unavailable_database_translated(self) -> None:
        mock_tx = MockTransaction()
        mock_tx.set_error("MATCH (e:Entity", ServiceUnavailable("connection refused"))

        with pytest.raises(StoreUnavailableError):
            await Neo4jTransaction(mock_tx).get_entity("e-1")

    @pytest.mark.asyncio
    async def test_deadlock_translated(self) -> None:
        mock_tx = MockTransaction()
        mock_tx.set_error("MATCH (c:Connection", TransientError("deadlock detected"))

        with pytest.raises(StoreUnavailableError):
            await Neo4jTransaction(mock_tx).find_connection("r|f|")

    @pytest.mark.asyncio
    async def test_praise_credit(self) -> None:
        mock_tx = MockTransaction()
        mock_tx.set_result("PraiseCredit", [{"credited": 1}])

        credited = await Neo4jTransaction(mock_tx).record_general_praise("e-1", "comment", "c1", 7)

        assert credited is True
        _, params = mock_tx.queries[-1]
        assert params["upvotes"] == 7

    @pytest.mark.asyncio
    async def test_praise_already_credited(self) -> None:
        credited = await Neo4jTransaction(MockTransaction()).record_general_praise(
            "e-1", "comment", "c1", 7
        )

        assert credited is False

    @pytest.mark.asyncio
    async def test_find_by_alias_lowercases(self, franklin) -> None:
        mock_tx = MockTransaction()
        mock_tx.set_result("e.aliases", [{"e": _entity_props(franklin)}])

        holders = await Neo4jTransaction(mock_tx).find_by_alias("FRANKLINS", EntityType.RESTAURANT)

        assert [e.entity_id for e in holders] == ["e-1"]
        _, params = mock_tx.queries[-1]
        assert params["alias"] == "franklins"


class TestNeo4jGraphStore:
    """Tests for transaction lifecycle and store plumbing."""

    @pytest.mark.asyncio
    async def test_commit_on_clean_exit(self, mock_neo4j_driver, mock_neo4j_session) -> None:
        store = Neo4jGraphStore(mock_neo4j_driver)

        async with store.transaction() as tx:
            await tx.find_entity("franklin bbq", EntityType.RESTAURANT)

        assert mock_neo4j_session.transaction.committed is True
        assert mock_neo4j_session.transaction.rolled_back is False

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, mock_neo4j_driver, mock_neo4j_session) -> None:
        store = Neo4jGraphStore(mock_neo4j_driver)

        with pytest.raises(ValueError):
            async with store.transaction():
                raise ValueError("boom")

        assert mock_neo4j_session.transaction.rolled_back is True
        assert mock_neo4j_session.transaction.committed is False

    @pytest.mark.asyncio
    async def test_unavailable_on_begin(self, mock_neo4j_driver, mock_neo4j_session) -> None:
        mock_neo4j_session.begin_error = ServiceUnavailable("no route to host")
        store = Neo4jGraphStore(mock_neo4j_driver)

        with pytest.raises(StoreUnavailableError):
            async with store.transaction():
                pass

    @pytest.mark.asyncio
    async def test_dead_letter_payload_serialized(self, mock_neo4j_driver, mock_neo4j_session) -> None:
        store = Neo4jGraphStore(mock_neo4j_driver)
        record = DeadLetterRecord(
            source_type="comment",
            source_id="c1",
            stage="extraction",
            error="Schema violation",
            payload={"text": "Franklin BBQ is amazing"},
        )

        await store.record_dead_letter(record)

        query, params = mock_neo4j_session.queries[-1]
        assert "DeadLetter" in query
        assert json.loads(params["props"]["payload"]) == {"text": "Franklin BBQ is amazing"}

    @pytest.mark.asyncio
    async def test_context_manager_closes_driver(self, mock_neo4j_driver) -> None:
        async with Neo4jGraphStore(mock_neo4j_driver):
            pass

        assert mock_neo4j_driver.closed is True

    def test_from_config_requires_credentials(self) -> None:
        with pytest.raises(Neo4jConfigError):
            Neo4jGraphStore.from_config(PipelineConfig(neo4j_password=""))

    def test_from_config(self, mock_env_vars, monkeypatch: pytest.MonkeyPatch) -> None:
        factory = MagicMock(return_value="driver")
        monkeypatch.setattr(neo4j.AsyncGraphDatabase, "driver", factory)

        store = Neo4jGraphStore.from_config(PipelineConfig.from_env())

        factory.assert_called_once_with("bolt://localhost:7687", auth=("neo4j", "testpassword"))
        assert store.driver == "driver"
        assert store.database == "neo4j"


class TestConstraintManager:
    """Tests for constraint and index creation."""

    def test_constraint_names(self) -> None:
        assert constraint_name("Entity", ("name", "type")) == "unique_entity_name_type"

    @pytest.mark.asyncio
    async def test_create_all(self, mock_neo4j_driver, mock_neo4j_session) -> None:
        stats = await ConstraintManager(mock_neo4j_driver).create_all()

        assert stats["uniqueness_constraints"] == len(UNIQUENESS_CONSTRAINTS)
        assert stats["indexes"] == len(INDEXES)
        assert stats["errors"] == []
        queries = [query for query, _ in mock_neo4j_session.queries]
        assert any("REQUIRE (n.name, n.type) IS UNIQUE" in q for q in queries)
        assert any("REQUIRE n.entity_id IS UNIQUE" in q for q in queries)

    @pytest.mark.asyncio
    async def test_existing_constraints_not_errors(self, mock_neo4j_driver, mock_neo4j_session) -> None:
        mock_neo4j_session.set_error("CREATE CONSTRAINT", ValueError("Constraint already exists"))

        stats = await create_all_constraints(mock_neo4j_driver)

        assert stats["uniqueness_constraints"] == 0
        assert stats["errors"] == []

    @pytest.mark.asyncio
    async def test_other_errors_reported(self, mock_neo4j_driver, mock_neo4j_session) -> None:
        mock_neo4j_session.set_error("CREATE INDEX", ValueError("permission denied"))

        stats = await ConstraintManager(mock_neo4j_driver).create_all()

        assert len(stats["errors"]) == len(INDEXES)

    @pytest.mark.asyncio
    async def test_verify_all(self, mock_neo4j_driver, mock_neo4j_session) -> None:
        mock_neo4j_session.set_result(
            "SHOW CONSTRAINTS",
            [{"name": constraint_name(label, props)} for label, props in UNIQUENESS_CONSTRAINTS[:-1]],
        )
        mock_neo4j_session.set_result("SHOW INDEXES", [{"name": "idx_entity_type"}])

        status = await ConstraintManager(mock_neo4j_driver).verify_all()

        assert status["missing_constraints"] == ["PraiseCredit.restaurant_id+source_type+source_id"]
        assert status["missing_indexes"] == ["Mention.connection_id", "DeadLetter.source_id"]
