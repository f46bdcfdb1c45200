"""Pydantic models for the dish graph pipeline.

This package contains:
- Content models (the input boundary)
- Mention records (extraction and normalization output)
- Graph records (entities, connections, mentions, dead letters)
"""

from dish_graph_pipeline.models.content import ContentUnit, SourceType
from dish_graph_pipeline.models.graph import (
    ActivityLevel,
    Connection,
    DeadLetterRecord,
    Entity,
    EntityType,
    Mention,
    connection_key,
    new_id,
)
from dish_graph_pipeline.models.mention import (
    AttributeKind,
    ExtractionResponse,
    MentionRecord,
    Sentiment,
)

__all__ = [
    # Content
    "ContentUnit",
    "SourceType",
    # Mentions
    "AttributeKind",
    "ExtractionResponse",
    "MentionRecord",
    "Sentiment",
    # Graph
    "ActivityLevel",
    "Connection",
    "DeadLetterRecord",
    "Entity",
    "EntityType",
    "Mention",
    "connection_key",
    "new_id",
]
