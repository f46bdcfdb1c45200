"""Graph storage for entities, connections and mentions.

This package provides:
- Store interfaces and the in-memory / Neo4j implementations
- Database constraints and indexes
- Connection scoring

Connection upserts live in ``dish_graph_pipeline.graph.upsert``, which
depends on the resolution package and is imported from there directly.
"""

from dish_graph_pipeline.graph.constraints import (
    ConstraintManager,
    create_all_constraints,
)
from dish_graph_pipeline.graph.memory_store import InMemoryGraphStore
from dish_graph_pipeline.graph.neo4j_store import Neo4jGraphStore
from dish_graph_pipeline.graph.scoring import (
    activity_level,
    connection_quality_score,
    select_top_mentions,
)
from dish_graph_pipeline.graph.store import GraphStore, GraphTransaction

__all__ = [
    # Stores
    "GraphStore",
    "GraphTransaction",
    "InMemoryGraphStore",
    "Neo4jGraphStore",
    # Constraints
    "ConstraintManager",
    "create_all_constraints",
    # Scoring
    "activity_level",
    "connection_quality_score",
    "select_top_mentions",
]
