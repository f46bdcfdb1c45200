"""Graph store interfaces.

The entity store is the only shared mutable resource in the pipeline.
Every write goes through a ``GraphTransaction`` obtained from
``GraphStore.transaction()``: either all of a batch item's writes commit
together, or none of them do.

Implementations:
- InMemoryGraphStore: serialized transactions over in-process tables
- Neo4jGraphStore: neo4j async driver with explicit transactions
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager

from dish_graph_pipeline.models import (
    Connection,
    DeadLetterRecord,
    Entity,
    EntityType,
    Mention,
)


class GraphTransaction(ABC):
    """Reads and writes within one atomic unit of work."""

    # ─── Entities ─────────────────────────────────────────────────────────

    @abstractmethod
    async def get_entity(self, entity_id: str) -> Entity | None:
        """Fetch an entity by id."""

    @abstractmethod
    async def find_entity(self, name: str, entity_type: EntityType) -> Entity | None:
        """Case-insensitive exact match on ``(name, type)``."""

    @abstractmethod
    async def find_by_alias(self, alias: str, entity_type: EntityType) -> list[Entity]:
        """Entities of the type carrying the alias (case-insensitive)."""

    @abstractmethod
    async def list_entities(self, entity_types: Iterable[EntityType]) -> list[Entity]:
        """All entities of the given types."""

    @abstractmethod
    async def create_entity(self, entity: Entity) -> Entity:
        """Insert a new entity.

        Raises:
            UniqueConstraintViolation: If ``(name, type)`` already exists.
        """

    @abstractmethod
    async def add_alias(self, entity_id: str, alias: str) -> None:
        """Append an alias to an entity (caller checks collisions)."""

    @abstractmethod
    async def add_restaurant_attributes(self, restaurant_id: str, attribute_ids: Iterable[str]) -> None:
        """Attach restaurant-scoped attribute entities to a restaurant."""

    @abstractmethod
    async def record_general_praise(
        self,
        restaurant_id: str,
        source_type: str,
        source_id: str,
        upvotes: int,
    ) -> bool:
        """Credit general-praise upvotes once per source.

        Returns:
            True if credited, False if this source was already counted.
        """

    # ─── Connections and mentions ─────────────────────────────────────────

    @abstractmethod
    async def find_connection(self, key: str) -> Connection | None:
        """Fetch a connection by its identity key."""

    @abstractmethod
    async def save_connection(self, connection: Connection) -> None:
        """Insert or replace a connection."""

    @abstractmethod
    async def find_mention(self, target_id: str, source_type: str, source_id: str) -> Mention | None:
        """Mention of a source on a connection (or restaurant), if any."""

    @abstractmethod
    async def insert_mention(self, mention: Mention) -> None:
        """Insert a mention."""

    @abstractmethod
    async def list_mentions(self, connection_id: str) -> list[Mention]:
        """All mentions attached to a connection."""


class GraphStore(ABC):
    """Persistent store for entities, connections and mentions."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[GraphTransaction]:
        """Open a transaction; it commits on clean exit and rolls back on error.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """

    @abstractmethod
    async def record_dead_letter(self, record: DeadLetterRecord) -> None:
        """Persist a dead-letter record for manual review."""

    @abstractmethod
    async def close(self) -> None:
        """Release resources."""

    async def __aenter__(self) -> "GraphStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
