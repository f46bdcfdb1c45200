"""Connection and mention upserts.

Given a mention whose entities are already resolved, finds or creates
the connection keyed by ``(restaurant, food, selective attribute set)``,
skips the mention if its source was already counted on that connection,
and otherwise inserts it and refreshes the connection's aggregates. All
writes happen in the caller's transaction, so a failure leaves neither a
mention without aggregates nor aggregates without a mention.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from dish_graph_pipeline.config import CONTENT_EXCERPT_LIMIT, ScoringConfig
from dish_graph_pipeline.graph.scoring import (
    activity_level,
    connection_quality_score,
    select_top_mentions,
)
from dish_graph_pipeline.graph.store import GraphTransaction
from dish_graph_pipeline.models import (
    Connection,
    ContentUnit,
    Mention,
    MentionRecord,
    Sentiment,
    connection_key,
)
from dish_graph_pipeline.resolution.resolver import Resolution

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _merge_ids(current: list[str], new: list[str]) -> list[str]:
    return list(dict.fromkeys([*current, *new]))


@dataclass
class ResolvedMention:
    """A normalized mention record with every entity resolved.

    Attributes:
        record: The normalized mention record.
        restaurant: Restaurant resolution.
        food: Food resolution, None for restaurant-only mentions.
        categories: Category resolutions (primary food first).
        selective_attributes: Selective dish-attribute resolutions.
        descriptive_attributes: Descriptive dish-attribute resolutions.
        restaurant_attributes: Restaurant-attribute resolutions.
    """

    record: MentionRecord
    restaurant: Resolution
    food: Resolution | None = None
    categories: list[Resolution] = field(default_factory=list)
    selective_attributes: list[Resolution] = field(default_factory=list)
    descriptive_attributes: list[Resolution] = field(default_factory=list)
    restaurant_attributes: list[Resolution] = field(default_factory=list)

    def all_resolutions(self) -> list[Resolution]:
        resolutions = [self.restaurant]
        if self.food is not None:
            resolutions.append(self.food)
        resolutions.extend(self.categories)
        resolutions.extend(self.selective_attributes)
        resolutions.extend(self.descriptive_attributes)
        resolutions.extend(self.restaurant_attributes)
        return resolutions


@dataclass
class UpsertResult:
    """What one upsert changed."""

    connection_id: str | None = None
    mention_id: str | None = None
    connection_created: bool = False
    duplicate: bool = False
    praise_credited: bool = False


class UpsertEngine:
    """Applies resolved mentions to connections and mentions.

    Example:
        >>> engine = UpsertEngine()
        >>> async with store.transaction() as tx:
        ...     result = await engine.apply(tx, resolved, unit)
    """

    def __init__(
        self,
        config: ScoringConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Scoring settings for aggregates.
            clock: Source of "now" for recency-derived aggregates.
        """
        self.config = config or ScoringConfig()
        self.clock = clock

    async def apply(
        self,
        tx: GraphTransaction,
        resolved: ResolvedMention,
        unit: ContentUnit,
    ) -> UpsertResult:
        """Upsert one resolved mention inside the caller's transaction.

        Args:
            tx: Open transaction for the batch item.
            resolved: Mention with resolved entity ids.
            unit: Source content unit (the mention's source reference).

        Returns:
            UpsertResult describing the change (``duplicate`` when the
            source was already counted).
        """
        result = UpsertResult()
        restaurant_id = resolved.restaurant.entity_id
        source_type = unit.source_type.value

        if resolved.restaurant_attributes:
            await tx.add_restaurant_attributes(
                restaurant_id, [r.entity_id for r in resolved.restaurant_attributes]
            )
        if resolved.record.general_praise:
            result.praise_credited = await tx.record_general_praise(
                restaurant_id, source_type, unit.source_id, unit.upvotes
            )

        if resolved.food is None:
            return await self._apply_restaurant_only(tx, resolved, unit, result)

        selective_ids = sorted({r.entity_id for r in resolved.selective_attributes})
        key = connection_key(restaurant_id, resolved.food.entity_id, selective_ids)
        connection = await tx.find_connection(key)

        if connection is not None:
            existing = await tx.find_mention(connection.connection_id, source_type, unit.source_id)
            if existing is not None:
                logger.debug(
                    "Mention already counted",
                    connection_id=connection.connection_id,
                    source_id=unit.source_id,
                )
                result.connection_id = connection.connection_id
                result.duplicate = True
                return result
            previous = await tx.list_mentions(connection.connection_id)
        else:
            connection = Connection(
                restaurant_id=restaurant_id,
                food_id=resolved.food.entity_id,
                dish_attribute_ids=selective_ids,
            )
            result.connection_created = True
            previous = []

        mention = self._build_mention(unit, restaurant_id, connection.connection_id, resolved.record)
        self._refresh_aggregates(connection, resolved, mention, previous)

        # Connection first, so the mention can attach to it
        await tx.save_connection(connection)
        await tx.insert_mention(mention)

        result.connection_id = connection.connection_id
        result.mention_id = mention.mention_id
        return result

    async def _apply_restaurant_only(
        self,
        tx: GraphTransaction,
        resolved: ResolvedMention,
        unit: ContentUnit,
        result: UpsertResult,
    ) -> UpsertResult:
        restaurant_id = resolved.restaurant.entity_id
        existing = await tx.find_mention(restaurant_id, unit.source_type.value, unit.source_id)
        if existing is not None:
            result.duplicate = True
            return result

        mention = self._build_mention(unit, restaurant_id, None, resolved.record)
        await tx.insert_mention(mention)
        result.mention_id = mention.mention_id
        return result

    @staticmethod
    def _build_mention(
        unit: ContentUnit,
        restaurant_id: str,
        connection_id: str | None,
        record: MentionRecord,
    ) -> Mention:
        positive = record.general_praise or record.food_name is not None
        return Mention(
            connection_id=connection_id,
            restaurant_id=restaurant_id,
            source_type=unit.source_type.value,
            source_id=unit.source_id,
            content_excerpt=unit.text[:CONTENT_EXCERPT_LIMIT],
            upvotes=unit.upvotes,
            source_url=unit.source_url,
            subreddit=unit.subreddit,
            created_at=unit.created_at,
            sentiment=Sentiment.POSITIVE if positive else Sentiment.NEUTRAL,
        )

    def _refresh_aggregates(
        self,
        connection: Connection,
        resolved: ResolvedMention,
        mention: Mention,
        previous: list[Mention],
    ) -> None:
        connection.category_ids = _merge_ids(
            connection.category_ids, [r.entity_id for r in resolved.categories]
        )
        connection.descriptive_attribute_ids = _merge_ids(
            connection.descriptive_attribute_ids,
            [r.entity_id for r in resolved.descriptive_attributes],
        )
        connection.is_menu_item = connection.is_menu_item or resolved.record.is_menu_item
        connection.mention_count += 1
        connection.total_upvotes += mention.upvotes
        if connection.last_mentioned_at is None or mention.created_at > connection.last_mentioned_at:
            connection.last_mentioned_at = mention.created_at

        now = self.clock()
        top = select_top_mentions([*previous, mention], now, self.config)
        connection.top_mentions = [m.mention_id for m in top]
        connection.activity_level = activity_level(
            connection.last_mentioned_at, top, now, self.config
        )
        connection.quality_score = connection_quality_score(
            connection.mention_count, connection.total_upvotes, self.config
        )
