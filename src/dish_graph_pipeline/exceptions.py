"""Custom exceptions for the dish graph pipeline.

Provides a hierarchy of exceptions for different error conditions:
- PipelineError: Base exception for all pipeline errors
- SchemaViolationError: LLM response does not match the mention schema
- ResolutionConflictError: Fuzzy tie that the tie-break chain could not settle
- UniqueConstraintViolation: Concurrent creation of the same entity
- StoreUnavailableError: Database unavailable, deadlock or transient failure
- PipelineCancelledError: Batch cancelled between content units
- Neo4jConfigError: Neo4j environment variables not set

Skipped content is not an error: the admission filter returns a skip
decision instead of raising.
"""


class PipelineError(Exception):
    """Base exception for pipeline errors."""


class SchemaViolationError(PipelineError):
    """LLM response failed to parse into the expected mention structure.

    Retryable. After retries are exhausted the offending content unit is
    written to a dead-letter record for manual review.

    Attributes:
        source_id: External id of the content unit being extracted.
        raw_response: The raw response text that failed validation.
    """

    def __init__(self, source_id: str, message: str, raw_response: str = "") -> None:
        """Initialize SchemaViolationError.

        Args:
            source_id: External id of the content unit being extracted.
            message: Description of the validation failure.
            raw_response: The raw response text that failed validation.
        """
        self.source_id = source_id
        self.raw_response = raw_response
        super().__init__(f"Schema violation for {source_id}: {message}")


class ResolutionConflictError(PipelineError):
    """Fuzzy-match tie that the tie-break chain could not resolve.

    Should not occur given the similarity/score/alias-count chain. The
    resolver logs it and falls back to the lowest entity id.

    Attributes:
        name: The name being resolved.
        candidate_ids: Ids of the tied candidates.
    """

    def __init__(self, name: str, candidate_ids: list[str]) -> None:
        """Initialize ResolutionConflictError.

        Args:
            name: The name being resolved.
            candidate_ids: Ids of the tied candidates.
        """
        self.name = name
        self.candidate_ids = candidate_ids
        super().__init__(f"Unresolvable fuzzy tie for '{name}': {', '.join(candidate_ids)}")


class UniqueConstraintViolation(PipelineError):
    """An entity with the same (name, type) already exists.

    Raised by stores when another writer created the entity first. The
    resolver recovers by converting the creation into a lookup.

    Attributes:
        name: Canonical name of the conflicting entity.
        entity_type: Entity type value of the conflicting entity.
    """

    def __init__(self, name: str, entity_type: str) -> None:
        """Initialize UniqueConstraintViolation.

        Args:
            name: Canonical name of the conflicting entity.
            entity_type: Entity type value of the conflicting entity.
        """
        self.name = name
        self.entity_type = entity_type
        super().__init__(f"Entity already exists: ({name!r}, {entity_type})")


class StoreUnavailableError(PipelineError):
    """The graph store could not complete a transaction.

    Covers an unavailable database, deadlocks and other transient failures.
    Retried with backoff at the batch-item level.
    """


class PipelineCancelledError(PipelineError):
    """The batch was cancelled between content units.

    Units committed before cancellation stay committed.

    Attributes:
        processed: Number of units committed before cancellation.
        report: Partial batch report, if one was built.
    """

    def __init__(self, processed: int, report: object | None = None) -> None:
        """Initialize PipelineCancelledError.

        Args:
            processed: Number of units committed before cancellation.
            report: Partial batch report, if one was built.
        """
        self.processed = processed
        self.report = report
        super().__init__(f"Batch cancelled after {processed} units")


class Neo4jConfigError(PipelineError):
    """Neo4j configuration environment variables not set.

    Raised when the Neo4j store is requested but NEO4J_URI, NEO4J_USERNAME,
    or NEO4J_PASSWORD environment variables are missing.
    """

    def __init__(self) -> None:
        """Initialize Neo4jConfigError."""
        super().__init__(
            "Neo4j configuration missing. "
            "Set NEO4J_URI, NEO4J_USERNAME, and NEO4J_PASSWORD environment variables."
        )
