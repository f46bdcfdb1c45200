"""Configuration for the dish graph pipeline.

Module-level constants hold the documented defaults; the dataclasses
below group them for the resolver, the scoring step and the batch
processor. ``PipelineConfig.from_env`` reads connection settings from the
environment (and a local ``.env`` file).
"""

from dataclasses import dataclass, field
from typing import Any

# Entity resolution
FUZZY_MATCH_THRESHOLD = 0.80  # rapidfuzz fuzz.ratio / 100
MAX_EDIT_DISTANCE = 3
MAX_ALIAS_LENGTH = 255

# Typo correction against the food vocabulary (0-100)
TYPO_CORRECTION_THRESHOLD = 90

# Connection scoring
ACTIVE_WINDOW_DAYS = 7
TRENDING_WINDOW_DAYS = 30
TRENDING_MIN_TOP_MENTIONS = 3
TOP_MENTIONS_LIMIT = 5
MENTION_DECAY_DAYS = 60.0
CONTENT_EXCERPT_LIMIT = 500

# LLM extraction
LLM_MODEL = "gpt-4o"
LLM_TIMEOUT_SECONDS = 60.0
LLM_MAX_RETRIES = 3

# Batch processing
MAX_CONCURRENT_EXTRACTIONS = 4
STORE_MAX_RETRIES = 3


@dataclass(frozen=True)
class ResolverConfig:
    """Configuration for tiered entity resolution.

    Attributes:
        fuzzy_threshold: Minimum normalized similarity (0.0-1.0) for a fuzzy hit.
        max_edit_distance: Maximum Levenshtein distance for a fuzzy hit.
        enable_fuzzy: Whether the fuzzy tier runs at all.
        record_aliases: Whether alias/fuzzy hits append the input as an alias.
    """

    fuzzy_threshold: float = FUZZY_MATCH_THRESHOLD
    max_edit_distance: int = MAX_EDIT_DISTANCE
    enable_fuzzy: bool = True
    record_aliases: bool = True


@dataclass(frozen=True)
class ScoringConfig:
    """Configuration for connection aggregates and quality scores.

    Attributes:
        mention_count_weight: Weight of the mention component.
        upvote_weight: Weight of the upvote component.
        mention_scale: Multiplier applied to log1p(mention count).
        upvote_scale: Multiplier applied to log1p(total upvotes).
        decay_days: Time constant for the time-weighted mention score.
        active_window_days: Last mention within this window marks a connection active.
        trending_window_days: All top mentions within this window marks it trending.
        trending_min_mentions: Minimum top mentions required for trending.
        top_mentions_limit: Number of top mentions kept per connection.
    """

    mention_count_weight: float = 0.6
    upvote_weight: float = 0.4
    mention_scale: float = 25.0
    upvote_scale: float = 12.0
    decay_days: float = MENTION_DECAY_DAYS
    active_window_days: int = ACTIVE_WINDOW_DAYS
    trending_window_days: int = TRENDING_WINDOW_DAYS
    trending_min_mentions: int = TRENDING_MIN_TOP_MENTIONS
    top_mentions_limit: int = TOP_MENTIONS_LIMIT


@dataclass
class PipelineConfig:
    """Configuration for a pipeline run.

    Consolidates Neo4j connection, LLM provider and batch settings.

    Attributes:
        neo4j_uri: Neo4j connection URI.
        neo4j_username: Neo4j username.
        neo4j_password: Neo4j password.
        neo4j_database: Neo4j database name.
        openai_api_key: OpenAI API key for LLM extraction.
        llm_model: LLM model name for extraction.
        llm_timeout: Per-request timeout for the LLM call in seconds.
        max_concurrent_extractions: Parallel extraction calls per batch.
        resolver: Entity resolution settings.
        scoring: Connection scoring settings.
    """

    # Neo4j connection
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_username: str = "neo4j"
    neo4j_password: str = ""
    neo4j_database: str = "neo4j"

    # OpenAI configuration
    openai_api_key: str = ""
    llm_model: str = LLM_MODEL
    llm_timeout: float = LLM_TIMEOUT_SECONDS

    # Batch settings
    max_concurrent_extractions: int = MAX_CONCURRENT_EXTRACTIONS

    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create configuration from environment variables.

        Reads from standard environment variables:
        - NEO4J_URI, NEO4J_USERNAME, NEO4J_PASSWORD, NEO4J_DATABASE
        - OPENAI_API_KEY, LLM_MODEL

        The OpenAI key is optional here; it is only required when the
        LLM extractor is selected.

        Returns:
            Configuration populated from environment.
        """
        import os

        from dotenv import load_dotenv

        load_dotenv()

        return cls(
            neo4j_uri=os.getenv("NEO4J_URI", "bolt://localhost:7687"),
            neo4j_username=os.getenv("NEO4J_USERNAME", "neo4j"),
            neo4j_password=os.getenv("NEO4J_PASSWORD", ""),
            neo4j_database=os.getenv("NEO4J_DATABASE", "neo4j"),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            llm_model=os.getenv("LLM_MODEL", LLM_MODEL),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (excluding sensitive values).

        Returns:
            Dictionary representation with secrets omitted.
        """
        return {
            "neo4j_uri": self.neo4j_uri,
            "neo4j_username": self.neo4j_username,
            "neo4j_database": self.neo4j_database,
            "llm_model": self.llm_model,
            "llm_timeout": self.llm_timeout,
            "max_concurrent_extractions": self.max_concurrent_extractions,
            "fuzzy_threshold": self.resolver.fuzzy_threshold,
        }
