"""Alias bookkeeping for resolved entities.

An alias is recorded when an alias or fuzzy match resolves an input that
differs from the entity's canonical name, so the next lookup for the same
string short-circuits at the exact/alias tier.
"""

import structlog

from dish_graph_pipeline.config import MAX_ALIAS_LENGTH
from dish_graph_pipeline.graph.store import GraphTransaction
from dish_graph_pipeline.models import Entity

logger = structlog.get_logger(__name__)


async def alias_conflicts(tx: GraphTransaction, entity: Entity, alias: str) -> bool:
    """Whether the alias is already a name or alias of another same-type entity."""
    owner = await tx.find_entity(alias, entity.type)
    if owner is not None and owner.entity_id != entity.entity_id:
        return True
    holders = await tx.find_by_alias(alias, entity.type)
    return any(holder.entity_id != entity.entity_id for holder in holders)


async def append_alias(tx: GraphTransaction, entity_id: str, alias: str) -> bool:
    """Append an alias to an entity, idempotently.

    Skipped when the alias equals the canonical name, is already present
    (case-insensitive), is too long, or would collide with another entity
    of the same type.

    Args:
        tx: Open transaction.
        entity_id: Entity to extend.
        alias: Input string that resolved to the entity.

    Returns:
        True if the alias was added.
    """
    alias = alias.strip()
    entity = await tx.get_entity(entity_id)
    if entity is None or not alias or len(alias) > MAX_ALIAS_LENGTH:
        return False
    if entity.answers_to(alias):
        return False
    if await alias_conflicts(tx, entity, alias):
        logger.warning(
            "Alias skipped: collides with another entity",
            alias=alias,
            entity_id=entity_id,
            entity_type=entity.type.value,
        )
        return False

    await tx.add_alias(entity_id, alias)
    logger.debug("Alias recorded", alias=alias, entity=entity.name, entity_id=entity_id)
    return True
