"""Neo4j-backed graph store.

Each batch item runs in one explicit transaction on its own session.
Entities, connections and mentions are nodes; relationships mirror the
id lists on the records so the graph can be traversed in Cypher:

    (:Entity)-[:SERVES]->(:Connection)-[:OF_FOOD]->(:Entity)
    (:Connection)-[:IN_CATEGORY|HAS_ATTRIBUTE]->(:Entity)
    (:Mention)-[:SUPPORTS]->(:Connection|:Entity)

Timestamps are stored as ISO-8601 strings and nested payloads as JSON
strings, since Neo4j properties cannot hold maps.
"""

import json
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import structlog
from neo4j.exceptions import (
    ConstraintError,
    ServiceUnavailable,
    SessionExpired,
    TransientError,
)

from dish_graph_pipeline.exceptions import (
    Neo4jConfigError,
    StoreUnavailableError,
    UniqueConstraintViolation,
)
from dish_graph_pipeline.graph.constraints import ConstraintManager
from dish_graph_pipeline.graph.store import GraphStore, GraphTransaction
from dish_graph_pipeline.models import (
    Connection,
    DeadLetterRecord,
    Entity,
    EntityType,
    Mention,
)

if TYPE_CHECKING:
    from neo4j import AsyncDriver, AsyncTransaction

    from dish_graph_pipeline.config import PipelineConfig

logger = structlog.get_logger(__name__)

_UNAVAILABLE_ERRORS = (ServiceUnavailable, SessionExpired, TransientError)


# =============================================================================
# RECORD CONVERSION
# =============================================================================


def _entity_props(entity: Entity) -> dict[str, Any]:
    props = entity.model_dump(mode="json")
    props["location"] = json.dumps(entity.location) if entity.location is not None else None
    return props


def _entity_from_props(props: dict[str, Any]) -> Entity:
    data = dict(props)
    if isinstance(data.get("location"), str):
        data["location"] = json.loads(data["location"])
    return Entity.model_validate(data)


def _mention_props(mention: Mention) -> dict[str, Any]:
    props = mention.model_dump(mode="json")
    props["target_id"] = mention.target_id
    return props


# =============================================================================
# TRANSACTION
# =============================================================================


class Neo4jTransaction(GraphTransaction):
    """Graph reads and writes on an open neo4j transaction."""

    def __init__(self, tx: "AsyncTransaction") -> None:
        self._tx = tx

    async def _run(self, query: str, **params: Any) -> list[dict[str, Any]]:
        try:
            result = await self._tx.run(query, params)
            return [record.data() async for record in result]
        except _UNAVAILABLE_ERRORS as e:
            raise StoreUnavailableError(str(e)) from e

    # ─── Entities ─────────────────────────────────────────────────────────

    async def get_entity(self, entity_id: str) -> Entity | None:
        rows = await self._run(
            "MATCH (e:Entity {entity_id: $entity_id}) RETURN e",
            entity_id=entity_id,
        )
        return _entity_from_props(rows[0]["e"]) if rows else None

    async def find_entity(self, name: str, entity_type: EntityType) -> Entity | None:
        rows = await self._run(
            "MATCH (e:Entity {name: $name, type: $type}) RETURN e",
            name=name.strip().lower(),
            type=entity_type.value,
        )
        return _entity_from_props(rows[0]["e"]) if rows else None

    async def find_by_alias(self, alias: str, entity_type: EntityType) -> list[Entity]:
        rows = await self._run(
            """
            MATCH (e:Entity {type: $type})
            WHERE any(a IN e.aliases WHERE toLower(a) = $alias)
            RETURN e
            ORDER BY e.entity_id
            """,
            alias=alias.strip().lower(),
            type=entity_type.value,
        )
        return [_entity_from_props(row["e"]) for row in rows]

    async def list_entities(self, entity_types: Iterable[EntityType]) -> list[Entity]:
        rows = await self._run(
            "MATCH (e:Entity) WHERE e.type IN $types RETURN e",
            types=[t.value for t in entity_types],
        )
        return [_entity_from_props(row["e"]) for row in rows]

    async def create_entity(self, entity: Entity) -> Entity:
        # MERGE on the constrained key takes the index lock, so a
        # concurrent creator shows up as a different entity_id here
        # instead of aborting the transaction with a ConstraintError.
        try:
            rows = await self._run(
                """
                MERGE (e:Entity {name: $name, type: $type})
                ON CREATE SET e += $props
                RETURN e
                """,
                name=entity.name.lower(),
                type=entity.type.value,
                props=_entity_props(entity),
            )
        except ConstraintError as e:
            raise UniqueConstraintViolation(entity.name, entity.type.value) from e

        stored = _entity_from_props(rows[0]["e"])
        if stored.entity_id != entity.entity_id:
            raise UniqueConstraintViolation(entity.name, entity.type.value)
        return stored

    async def add_alias(self, entity_id: str, alias: str) -> None:
        await self._run(
            """
            MATCH (e:Entity {entity_id: $entity_id})
            WHERE NOT any(a IN e.aliases WHERE toLower(a) = toLower($alias))
            SET e.aliases = e.aliases + $alias
            """,
            entity_id=entity_id,
            alias=alias,
        )

    async def add_restaurant_attributes(self, restaurant_id: str, attribute_ids: Iterable[str]) -> None:
        await self._run(
            """
            MATCH (r:Entity {entity_id: $restaurant_id})
            SET r.restaurant_attribute_ids = r.restaurant_attribute_ids
                + [x IN $attribute_ids WHERE NOT x IN r.restaurant_attribute_ids]
            WITH r
            UNWIND $attribute_ids AS attribute_id
            MATCH (a:Entity {entity_id: attribute_id})
            MERGE (r)-[:HAS_ATTRIBUTE]->(a)
            """,
            restaurant_id=restaurant_id,
            attribute_ids=list(dict.fromkeys(attribute_ids)),
        )

    async def record_general_praise(
        self,
        restaurant_id: str,
        source_type: str,
        source_id: str,
        upvotes: int,
    ) -> bool:
        rows = await self._run(
            """
            OPTIONAL MATCH (p:PraiseCredit {
                restaurant_id: $restaurant_id,
                source_type: $source_type,
                source_id: $source_id
            })
            WITH p WHERE p IS NULL
            CREATE (:PraiseCredit {
                restaurant_id: $restaurant_id,
                source_type: $source_type,
                source_id: $source_id
            })
            WITH 1 AS credit
            MATCH (r:Entity {entity_id: $restaurant_id})
            SET r.general_praise_upvotes = coalesce(r.general_praise_upvotes, 0) + $upvotes
            RETURN count(r) AS credited
            """,
            restaurant_id=restaurant_id,
            source_type=source_type,
            source_id=source_id,
            upvotes=upvotes,
        )
        return bool(rows and rows[0]["credited"])

    # ─── Connections and mentions ─────────────────────────────────────────

    async def find_connection(self, key: str) -> Connection | None:
        rows = await self._run("MATCH (c:Connection {key: $key}) RETURN c", key=key)
        return Connection.model_validate(rows[0]["c"]) if rows else None

    async def save_connection(self, connection: Connection) -> None:
        props = connection.model_dump(mode="json")
        try:
            await self._run(
                """
                MERGE (c:Connection {connection_id: $connection_id})
                SET c += $props
                WITH c
                MATCH (r:Entity {entity_id: $restaurant_id})
                MATCH (f:Entity {entity_id: $food_id})
                MERGE (r)-[:SERVES]->(c)
                MERGE (c)-[:OF_FOOD]->(f)
                WITH c
                CALL {
                    WITH c
                    UNWIND $category_ids AS category_id
                    MATCH (x:Entity {entity_id: category_id})
                    MERGE (c)-[:IN_CATEGORY]->(x)
                }
                CALL {
                    WITH c
                    UNWIND $attribute_ids AS attribute_id
                    MATCH (x:Entity {entity_id: attribute_id})
                    MERGE (c)-[:HAS_ATTRIBUTE]->(x)
                }
                """,
                connection_id=connection.connection_id,
                props=props,
                restaurant_id=connection.restaurant_id,
                food_id=connection.food_id,
                category_ids=connection.category_ids,
                attribute_ids=[
                    *connection.dish_attribute_ids,
                    *connection.descriptive_attribute_ids,
                ],
            )
        except ConstraintError as e:
            raise UniqueConstraintViolation(connection.key, "connection") from e

    async def find_mention(self, target_id: str, source_type: str, source_id: str) -> Mention | None:
        rows = await self._run(
            """
            MATCH (m:Mention {target_id: $target_id, source_type: $source_type, source_id: $source_id})
            RETURN m
            """,
            target_id=target_id,
            source_type=source_type,
            source_id=source_id,
        )
        return Mention.model_validate(rows[0]["m"]) if rows else None

    async def insert_mention(self, mention: Mention) -> None:
        try:
            await self._run(
                """
                CREATE (m:Mention)
                SET m = $props
                WITH m
                OPTIONAL MATCH (c:Connection {connection_id: $target_id})
                OPTIONAL MATCH (r:Entity {entity_id: $target_id})
                WITH m, coalesce(c, r) AS target
                WHERE target IS NOT NULL
                MERGE (m)-[:SUPPORTS]->(target)
                """,
                props=_mention_props(mention),
                target_id=mention.target_id,
            )
        except ConstraintError as e:
            raise UniqueConstraintViolation(mention.source_id, "mention") from e

    async def list_mentions(self, connection_id: str) -> list[Mention]:
        rows = await self._run(
            "MATCH (m:Mention {connection_id: $connection_id}) RETURN m",
            connection_id=connection_id,
        )
        return [Mention.model_validate(row["m"]) for row in rows]


# =============================================================================
# STORE
# =============================================================================


class Neo4jGraphStore(GraphStore):
    """Graph store on a Neo4j database.

    Example:
        >>> store = Neo4jGraphStore.from_config(PipelineConfig.from_env())
        >>> await store.initialize()
        >>> async with store.transaction() as tx:
        ...     entity = await tx.find_entity("franklin bbq", EntityType.RESTAURANT)
    """

    def __init__(self, driver: "AsyncDriver", database: str = "neo4j") -> None:
        """Initialize the store.

        Args:
            driver: Neo4j async driver instance (owned by the store).
            database: Database name.
        """
        self.driver = driver
        self.database = database

    @classmethod
    def from_config(cls, config: "PipelineConfig") -> "Neo4jGraphStore":
        """Create a store with a driver built from pipeline configuration.

        Raises:
            Neo4jConfigError: If the URI, username or password is missing.
        """
        if not (config.neo4j_uri and config.neo4j_username and config.neo4j_password):
            raise Neo4jConfigError()

        from neo4j import AsyncGraphDatabase

        driver = AsyncGraphDatabase.driver(
            config.neo4j_uri,
            auth=(config.neo4j_username, config.neo4j_password),
        )
        return cls(driver, config.neo4j_database)

    async def initialize(self) -> dict:
        """Create the constraints and indexes the store relies on.

        Returns:
            Creation statistics from the constraint manager.
        """
        return await ConstraintManager(self.driver, self.database).create_all()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[GraphTransaction]:
        try:
            async with self.driver.session(database=self.database) as session:
                tx = await session.begin_transaction()
                try:
                    yield Neo4jTransaction(tx)
                except BaseException:
                    await tx.rollback()
                    raise
                await tx.commit()
        except _UNAVAILABLE_ERRORS as e:
            logger.warning("Neo4j transaction failed", error=str(e))
            raise StoreUnavailableError(str(e)) from e

    async def record_dead_letter(self, record: DeadLetterRecord) -> None:
        props = record.model_dump(mode="json")
        props["payload"] = json.dumps(record.payload)
        async with self.driver.session(database=self.database) as session:
            await session.run("CREATE (d:DeadLetter) SET d = $props", props=props)
        logger.warning(
            "Dead-letter record written",
            source_id=record.source_id,
            stage=record.stage,
        )

    async def close(self) -> None:
        await self.driver.close()
