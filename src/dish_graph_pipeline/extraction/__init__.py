"""Content admission and mention extraction.

This package turns content units into candidate mention records:
- admission: decides whether a unit may produce mentions
- classifier: restaurant, food and attribute classification
- decomposer: compound food terms into category hierarchies
- menu_item: menu item vs category inference
- extractor: rule-based and OpenAI-backed extractors
"""

from dish_graph_pipeline.extraction.admission import (
    AdmissionDecision,
    AdmissionFilter,
    RecommendationRequest,
    SkipReason,
)
from dish_graph_pipeline.extraction.classifier import (
    AttributeScope,
    UnitAnalysis,
    classify_unit,
    infer_attribute_scope,
)
from dish_graph_pipeline.extraction.decomposer import Decomposition, decompose_food_term
from dish_graph_pipeline.extraction.extractor import (
    ExtractionContext,
    Extractor,
    OpenAIExtractor,
    RuleBasedExtractor,
)
from dish_graph_pipeline.extraction.menu_item import MenuItemDecision, classify_menu_item

__all__ = [
    # Admission
    "AdmissionDecision",
    "AdmissionFilter",
    "RecommendationRequest",
    "SkipReason",
    # Classification
    "AttributeScope",
    "UnitAnalysis",
    "classify_unit",
    "infer_attribute_scope",
    # Decomposition
    "Decomposition",
    "decompose_food_term",
    # Menu items
    "MenuItemDecision",
    "classify_menu_item",
    # Extractors
    "ExtractionContext",
    "Extractor",
    "OpenAIExtractor",
    "RuleBasedExtractor",
]
