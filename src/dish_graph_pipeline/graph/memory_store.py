"""In-process graph store.

Transactions are serialized with an ``asyncio.Lock`` and work on a staged
copy of the tables; the copy replaces the live tables only when the
transaction body exits cleanly, so a failed batch item leaves no partial
writes behind.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import structlog

from dish_graph_pipeline.exceptions import UniqueConstraintViolation
from dish_graph_pipeline.graph.store import GraphStore, GraphTransaction
from dish_graph_pipeline.models import (
    Connection,
    DeadLetterRecord,
    Entity,
    EntityType,
    Mention,
)

logger = structlog.get_logger(__name__)

MentionKey = tuple[str, str, str]


@dataclass
class _Tables:
    entities: dict[str, Entity] = field(default_factory=dict)
    entity_keys: dict[tuple[str, EntityType], str] = field(default_factory=dict)
    connections: dict[str, Connection] = field(default_factory=dict)
    connection_keys: dict[str, str] = field(default_factory=dict)
    mentions: dict[str, Mention] = field(default_factory=dict)
    mention_keys: dict[MentionKey, str] = field(default_factory=dict)
    praise_sources: set[MentionKey] = field(default_factory=set)

    def stage(self) -> "_Tables":
        """Shallow copy; writers replace records instead of mutating them."""
        return _Tables(
            entities=dict(self.entities),
            entity_keys=dict(self.entity_keys),
            connections=dict(self.connections),
            connection_keys=dict(self.connection_keys),
            mentions=dict(self.mentions),
            mention_keys=dict(self.mention_keys),
            praise_sources=set(self.praise_sources),
        )


class InMemoryTransaction(GraphTransaction):
    """Transaction over staged in-memory tables."""

    def __init__(self, tables: _Tables) -> None:
        self._tables = tables

    async def get_entity(self, entity_id: str) -> Entity | None:
        return self._tables.entities.get(entity_id)

    async def find_entity(self, name: str, entity_type: EntityType) -> Entity | None:
        entity_id = self._tables.entity_keys.get((name.strip().lower(), entity_type))
        return self._tables.entities.get(entity_id) if entity_id else None

    async def find_by_alias(self, alias: str, entity_type: EntityType) -> list[Entity]:
        return [
            entity
            for entity in self._tables.entities.values()
            if entity.type == entity_type and entity.has_alias(alias)
        ]

    async def list_entities(self, entity_types: Iterable[EntityType]) -> list[Entity]:
        wanted = set(entity_types)
        return [entity for entity in self._tables.entities.values() if entity.type in wanted]

    async def create_entity(self, entity: Entity) -> Entity:
        if entity.key in self._tables.entity_keys:
            raise UniqueConstraintViolation(entity.name, entity.type.value)
        stored = entity.model_copy(deep=True)
        self._tables.entities[stored.entity_id] = stored
        self._tables.entity_keys[stored.key] = stored.entity_id
        return stored

    async def add_alias(self, entity_id: str, alias: str) -> None:
        entity = self._tables.entities[entity_id]
        if entity.has_alias(alias):
            return
        self._tables.entities[entity_id] = entity.model_copy(
            update={"aliases": [*entity.aliases, alias]}
        )

    async def add_restaurant_attributes(self, restaurant_id: str, attribute_ids: Iterable[str]) -> None:
        entity = self._tables.entities[restaurant_id]
        merged = list(dict.fromkeys([*entity.restaurant_attribute_ids, *attribute_ids]))
        if merged != entity.restaurant_attribute_ids:
            self._tables.entities[restaurant_id] = entity.model_copy(
                update={"restaurant_attribute_ids": merged}
            )

    async def record_general_praise(
        self,
        restaurant_id: str,
        source_type: str,
        source_id: str,
        upvotes: int,
    ) -> bool:
        key = (restaurant_id, source_type, source_id)
        if key in self._tables.praise_sources:
            return False
        entity = self._tables.entities[restaurant_id]
        self._tables.entities[restaurant_id] = entity.model_copy(
            update={"general_praise_upvotes": entity.general_praise_upvotes + upvotes}
        )
        self._tables.praise_sources.add(key)
        return True

    async def find_connection(self, key: str) -> Connection | None:
        connection_id = self._tables.connection_keys.get(key)
        if connection_id is None:
            return None
        return self._tables.connections[connection_id].model_copy(deep=True)

    async def save_connection(self, connection: Connection) -> None:
        existing_id = self._tables.connection_keys.get(connection.key)
        if existing_id is not None and existing_id != connection.connection_id:
            raise UniqueConstraintViolation(connection.key, "connection")
        self._tables.connections[connection.connection_id] = connection.model_copy(deep=True)
        self._tables.connection_keys[connection.key] = connection.connection_id

    async def find_mention(self, target_id: str, source_type: str, source_id: str) -> Mention | None:
        mention_id = self._tables.mention_keys.get((target_id, source_type, source_id))
        return self._tables.mentions.get(mention_id) if mention_id else None

    async def insert_mention(self, mention: Mention) -> None:
        key = (mention.target_id, mention.source_type, mention.source_id)
        if key in self._tables.mention_keys:
            raise UniqueConstraintViolation(mention.source_id, "mention")
        self._tables.mentions[mention.mention_id] = mention.model_copy(deep=True)
        self._tables.mention_keys[key] = mention.mention_id

    async def list_mentions(self, connection_id: str) -> list[Mention]:
        return [m for m in self._tables.mentions.values() if m.connection_id == connection_id]


class InMemoryGraphStore(GraphStore):
    """Graph store held in process memory.

    Suitable for tests, dry runs and small batch jobs. Concurrent batch
    workers sharing one instance are serialized per transaction.

    Example:
        >>> store = InMemoryGraphStore()
        >>> async with store.transaction() as tx:
        ...     await tx.create_entity(Entity(name="franklin bbq", type=EntityType.RESTAURANT))
    """

    def __init__(self) -> None:
        self._tables = _Tables()
        self._lock = asyncio.Lock()
        self.dead_letters: list[DeadLetterRecord] = []

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[GraphTransaction]:
        async with self._lock:
            staged = self._tables.stage()
            yield InMemoryTransaction(staged)
            # Reached only when the body did not raise
            self._tables = staged

    async def record_dead_letter(self, record: DeadLetterRecord) -> None:
        self.dead_letters.append(record)
        logger.warning(
            "Dead-letter record written",
            source_id=record.source_id,
            stage=record.stage,
        )

    async def close(self) -> None:
        pass

    # ─── Read helpers ─────────────────────────────────────────────────────

    def entities(self, entity_type: EntityType | None = None) -> list[Entity]:
        """Committed entities, optionally filtered by type."""
        return [
            entity
            for entity in self._tables.entities.values()
            if entity_type is None or entity.type == entity_type
        ]

    def entity_named(self, name: str, entity_type: EntityType) -> Entity | None:
        """Committed entity with the exact canonical name, if any."""
        entity_id = self._tables.entity_keys.get((name.lower(), entity_type))
        return self._tables.entities.get(entity_id) if entity_id else None

    def connections(self) -> list[Connection]:
        """Committed connections."""
        return list(self._tables.connections.values())

    def mentions(self) -> list[Mention]:
        """Committed mentions."""
        return list(self._tables.mentions.values())
