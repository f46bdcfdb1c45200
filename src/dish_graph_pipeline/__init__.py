"""Dish graph extraction and resolution pipeline.

Turns Reddit posts and comments about restaurants into a graph of
restaurants, dishes, categories and scoped attributes, resolving each
mention against the existing entity store (exact, alias, fuzzy, create)
so the same place or dish never appears twice.

Usage:
    from dish_graph_pipeline import BatchProcessor, ContentUnit, InMemoryGraphStore
    import asyncio

    store = InMemoryGraphStore()
    processor = BatchProcessor(store, known_restaurants=["Franklin BBQ"])
    report = asyncio.run(processor.process_batch(units))

    # LLM-backed extraction
    extractor = OpenAIExtractor(api_key="sk-...")
    processor = BatchProcessor(store, extractor=extractor)

    # Neo4j persistence
    store = Neo4jGraphStore.from_config(PipelineConfig.from_env())
"""

# =============================================================================
# CONFIGURATION AND EXCEPTIONS
# =============================================================================
from .config import PipelineConfig, ResolverConfig, ScoringConfig
from .exceptions import (
    Neo4jConfigError,
    PipelineCancelledError,
    PipelineError,
    ResolutionConflictError,
    SchemaViolationError,
    StoreUnavailableError,
    UniqueConstraintViolation,
)

# =============================================================================
# EXTRACTION
# =============================================================================
from .extraction import (
    AdmissionDecision,
    AdmissionFilter,
    AttributeScope,
    Decomposition,
    ExtractionContext,
    Extractor,
    MenuItemDecision,
    OpenAIExtractor,
    RuleBasedExtractor,
    SkipReason,
    classify_menu_item,
    classify_unit,
    decompose_food_term,
    infer_attribute_scope,
)

# =============================================================================
# GRAPH STORAGE
# =============================================================================
from .graph import (
    ConstraintManager,
    GraphStore,
    GraphTransaction,
    InMemoryGraphStore,
    Neo4jGraphStore,
)
from .graph.upsert import ResolvedMention, UpsertEngine, UpsertResult

# =============================================================================
# MODELS
# =============================================================================
from .models import (
    ActivityLevel,
    AttributeKind,
    Connection,
    ContentUnit,
    DeadLetterRecord,
    Entity,
    EntityType,
    Mention,
    MentionRecord,
    Sentiment,
    SourceType,
)

# =============================================================================
# PIPELINE
# =============================================================================
from .pipeline import BatchProcessor, BatchReport, CancellationToken
from .postprocessing import MentionNormalizer, normalize_entity_name
from .resolution import EntityResolver, MatchTier, Resolution, ResolutionRequest

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "PipelineConfig",
    "ResolverConfig",
    "ScoringConfig",
    # Models
    "ActivityLevel",
    "AttributeKind",
    "Connection",
    "ContentUnit",
    "DeadLetterRecord",
    "Entity",
    "EntityType",
    "Mention",
    "MentionRecord",
    "Sentiment",
    "SourceType",
    # Extraction
    "AdmissionDecision",
    "AdmissionFilter",
    "AttributeScope",
    "Decomposition",
    "ExtractionContext",
    "Extractor",
    "MenuItemDecision",
    "OpenAIExtractor",
    "RuleBasedExtractor",
    "SkipReason",
    "classify_menu_item",
    "classify_unit",
    "decompose_food_term",
    "infer_attribute_scope",
    # Normalization and resolution
    "MentionNormalizer",
    "normalize_entity_name",
    "EntityResolver",
    "MatchTier",
    "Resolution",
    "ResolutionRequest",
    # Graph storage
    "ConstraintManager",
    "GraphStore",
    "GraphTransaction",
    "InMemoryGraphStore",
    "Neo4jGraphStore",
    "ResolvedMention",
    "UpsertEngine",
    "UpsertResult",
    # Pipeline
    "BatchProcessor",
    "BatchReport",
    "CancellationToken",
    # Exceptions
    "Neo4jConfigError",
    "PipelineCancelledError",
    "PipelineError",
    "ResolutionConflictError",
    "SchemaViolationError",
    "StoreUnavailableError",
    "UniqueConstraintViolation",
]
