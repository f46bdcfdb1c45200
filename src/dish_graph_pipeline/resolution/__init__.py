"""Entity resolution against the graph store."""

from dish_graph_pipeline.resolution.aliases import append_alias
from dish_graph_pipeline.resolution.resolver import (
    EntityIndex,
    EntityResolver,
    MatchTier,
    Resolution,
    ResolutionPlan,
    ResolutionRequest,
)

__all__ = [
    "EntityIndex",
    "EntityResolver",
    "MatchTier",
    "Resolution",
    "ResolutionPlan",
    "ResolutionRequest",
    "append_alias",
]
