"""Knowledge graph records persisted by the graph store.

This module defines Pydantic models for the three persisted tables:
- Entity: restaurants, foods/categories and scoped attributes
- Connection: "restaurant serves food" edges with aggregated evidence
- Mention: one piece of source evidence attached to a connection

plus the dead-letter record used for extraction failures that exhausted
their retries.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field

from dish_graph_pipeline.models.mention import Sentiment


def _now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    """Generate a new record identifier."""
    return str(uuid.uuid4())


class EntityType(str, Enum):
    """Type of a node in the knowledge graph."""

    RESTAURANT = "restaurant"
    FOOD = "food"
    DISH_ATTRIBUTE = "dish_attribute"
    RESTAURANT_ATTRIBUTE = "restaurant_attribute"


class ActivityLevel(str, Enum):
    """Recency-derived activity of a connection."""

    NORMAL = "normal"
    ACTIVE = "active"
    TRENDING = "trending"


class Entity(BaseModel):
    """A node in the knowledge graph.

    ``(name, type)`` is unique: the same string may exist once per type,
    so "italian" can be both a dish attribute and a restaurant attribute.

    Attributes:
        entity_id: Unique identifier.
        name: Canonical lowercase normalized name.
        type: Entity type.
        aliases: Alternative names, unique per entity (case-insensitive).
        location: Geographic payload, restaurants only.
        quality_score: Precomputed quality score.
        restaurant_attribute_ids: Restaurant-scoped attributes attached to a restaurant.
        general_praise_upvotes: Upvotes from general-praise mentions of a restaurant.
        created_at: Creation timestamp.
    """

    entity_id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1)
    type: EntityType
    aliases: list[str] = Field(default_factory=list)
    location: dict[str, Any] | None = None
    quality_score: float = 0.0
    restaurant_attribute_ids: list[str] = Field(default_factory=list)
    general_praise_upvotes: int = 0
    created_at: datetime = Field(default_factory=_now)

    @property
    def key(self) -> tuple[str, EntityType]:
        """Uniqueness key ``(name, type)``."""
        return (self.name.lower(), self.type)

    def has_alias(self, alias: str) -> bool:
        """Case-insensitive alias membership."""
        folded = alias.strip().lower()
        return any(existing.lower() == folded for existing in self.aliases)

    def answers_to(self, text: str) -> bool:
        """Whether ``text`` equals the canonical name or any alias."""
        return self.name.lower() == text.strip().lower() or self.has_alias(text)


class Connection(BaseModel):
    """An edge recording that a restaurant serves a food.

    ``(restaurant_id, food_id, dish_attribute_ids)`` is unique: the same
    dish with a different selective-attribute combination is a distinct
    connection.

    Attributes:
        connection_id: Unique identifier.
        restaurant_id: Restaurant entity id.
        food_id: Food-or-category entity id.
        category_ids: Decomposed category entity ids.
        dish_attribute_ids: Selective dish-attribute entity ids (identity).
        descriptive_attribute_ids: Descriptive dish-attribute ids seen on mentions.
        is_menu_item: Whether any mention treated the food as an orderable item.
        mention_count: Number of distinct mentions.
        total_upvotes: Sum of mention upvotes.
        last_mentioned_at: Creation time of the most recent mention.
        activity_level: Recency-derived activity.
        quality_score: Connection-strength score (0-100).
        top_mentions: Mention ids with the best time-weighted score.
    """

    connection_id: str = Field(default_factory=new_id)
    restaurant_id: str
    food_id: str
    category_ids: list[str] = Field(default_factory=list)
    dish_attribute_ids: list[str] = Field(default_factory=list)
    descriptive_attribute_ids: list[str] = Field(default_factory=list)
    is_menu_item: bool = False
    mention_count: int = 0
    total_upvotes: int = 0
    last_mentioned_at: datetime | None = None
    activity_level: ActivityLevel = ActivityLevel.NORMAL
    quality_score: float = 0.0
    top_mentions: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def key(self) -> str:
        """Stable string form of the uniqueness key."""
        return connection_key(self.restaurant_id, self.food_id, self.dish_attribute_ids)


def connection_key(restaurant_id: str, food_id: str, dish_attribute_ids: list[str]) -> str:
    """Build the uniqueness key for a connection.

    The attribute set is order-independent.
    """
    attrs = ",".join(sorted(set(dish_attribute_ids)))
    return f"{restaurant_id}|{food_id}|{attrs}"


class Mention(BaseModel):
    """One piece of source evidence.

    Attached to a connection, or directly to a restaurant when the mention
    is restaurant-only general praise (``connection_id`` is None).

    Attributes:
        mention_id: Unique identifier.
        connection_id: Connection the evidence supports, if any.
        restaurant_id: Restaurant the evidence is about.
        source_type: "post" or "comment".
        source_id: External post/comment id.
        content_excerpt: Truncated source text.
        upvotes: Score of the source content.
        source_url: Permalink of the source content.
        subreddit: Subreddit of the source content.
        created_at: Creation time of the source content.
        sentiment: Sentiment indicator.
    """

    mention_id: str = Field(default_factory=new_id)
    connection_id: str | None = None
    restaurant_id: str
    source_type: str
    source_id: str
    content_excerpt: str = ""
    upvotes: int = 0
    source_url: str = ""
    subreddit: str = "unknown"
    created_at: datetime = Field(default_factory=_now)
    sentiment: Sentiment = Sentiment.POSITIVE

    @property
    def target_id(self) -> str:
        """Record the mention is counted against."""
        return self.connection_id or self.restaurant_id


class DeadLetterRecord(BaseModel):
    """A content unit whose extraction failed permanently.

    Attributes:
        source_type: "post" or "comment".
        source_id: External id of the unit, for replay.
        stage: Pipeline stage that failed (e.g. "extraction").
        error: Final error message.
        payload: The unit text and any raw model response.
        created_at: When the record was written.
    """

    source_type: str
    source_id: str
    stage: str
    error: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)
