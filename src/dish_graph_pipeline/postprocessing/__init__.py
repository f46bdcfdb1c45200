"""Post-extraction processing of mention records."""

from dish_graph_pipeline.postprocessing.normalizer import (
    MentionNormalizer,
    correct_typos,
    names_are_equivalent,
    normalize_entity_name,
)

__all__ = [
    "MentionNormalizer",
    "correct_typos",
    "names_are_equivalent",
    "normalize_entity_name",
]
