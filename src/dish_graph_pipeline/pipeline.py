"""Batch orchestration for the extraction and resolution pipeline.

A batch moves through five stages:

1. Admission: every unit is screened; skips are counted, not raised
2. Extraction: admitted units are extracted concurrently (bounded by a
   semaphore); affirmations wait for their parent unit's mentions
3. Normalization: records are normalized and filtered for linkage
4. Planning: every name in the batch is resolved against one snapshot
   of the store, so identical names share one tentative entity
5. Persistence: one transaction per unit, retried on transient store
   failures; a unit that still fails is reported and the batch goes on

Cancellation is cooperative: the token is checked between units, and
units already committed stay committed.
"""

import asyncio
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import structlog
from tenacity import RetryError

from dish_graph_pipeline.config import PipelineConfig
from dish_graph_pipeline.exceptions import (
    PipelineCancelledError,
    PipelineError,
    SchemaViolationError,
    StoreUnavailableError,
    UniqueConstraintViolation,
)
from dish_graph_pipeline.extraction.admission import (
    AdmissionDecision,
    AdmissionFilter,
    SkipReason,
    is_short_affirmation,
)
from dish_graph_pipeline.extraction.extractor import (
    ExtractionContext,
    Extractor,
    RuleBasedExtractor,
)
from dish_graph_pipeline.graph.store import GraphStore, GraphTransaction
from dish_graph_pipeline.graph.upsert import ResolvedMention, UpsertEngine
from dish_graph_pipeline.models import (
    ContentUnit,
    DeadLetterRecord,
    EntityType,
    MentionRecord,
)
from dish_graph_pipeline.postprocessing.normalizer import MentionNormalizer
from dish_graph_pipeline.resolution.resolver import (
    EntityResolver,
    Resolution,
    ResolutionPlan,
    ResolutionRequest,
)
from dish_graph_pipeline.utils.retry import store_retry

logger = structlog.get_logger(__name__)

SourceRef = tuple[str, str]


class CancellationToken:
    """Cooperative cancellation flag shared with a running batch.

    Example:
        >>> token = CancellationToken()
        >>> task = asyncio.create_task(processor.process_batch(units, token))
        >>> token.cancel()
    """

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        """Request cancellation at the next unit boundary."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class BatchReport:
    """Outcome of one batch.

    Attributes:
        admitted: Units that produced at least one linked mention.
        skipped: Units that produced nothing (see ``skip_reasons``).
        resolved_existing: Entity resolutions that matched an existing entity.
        created_new: Entity resolutions that created a new entity.
        failed: Units that failed extraction or persistence.
        committed: Units whose transaction committed.
        mentions_written: Mentions inserted.
        duplicate_mentions: Mentions skipped because the source was already counted.
        skip_reasons: Skip counts keyed by reason.
        failed_sources: ``(source_type, source_id)`` of failed units.
        dead_letters: Dead-letter records written during the batch.
        cancelled: Whether the batch stopped on a cancellation request.
    """

    admitted: int = 0
    skipped: int = 0
    resolved_existing: int = 0
    created_new: int = 0
    failed: int = 0
    committed: int = 0
    mentions_written: int = 0
    duplicate_mentions: int = 0
    skip_reasons: Counter[str] = field(default_factory=Counter)
    failed_sources: list[SourceRef] = field(default_factory=list)
    dead_letters: list[DeadLetterRecord] = field(default_factory=list)
    cancelled: bool = False

    def counts(self) -> dict[str, int]:
        """The headline counts."""
        return {
            "admitted": self.admitted,
            "skipped": self.skipped,
            "resolved_existing": self.resolved_existing,
            "created_new": self.created_new,
            "failed": self.failed,
        }

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            **self.counts(),
            "committed": self.committed,
            "mentions_written": self.mentions_written,
            "duplicate_mentions": self.duplicate_mentions,
            "skip_reasons": dict(self.skip_reasons),
            "failed_sources": [list(ref) for ref in self.failed_sources],
            "dead_letters": [record.model_dump(mode="json") for record in self.dead_letters],
            "cancelled": self.cancelled,
        }

    def merge(self, other: "BatchReport") -> None:
        """Fold another batch's report into this one."""
        for name in (
            "admitted",
            "skipped",
            "resolved_existing",
            "created_new",
            "failed",
            "committed",
            "mentions_written",
            "duplicate_mentions",
        ):
            setattr(self, name, getattr(self, name) + getattr(other, name))
        self.skip_reasons.update(other.skip_reasons)
        self.failed_sources.extend(other.failed_sources)
        self.dead_letters.extend(other.dead_letters)
        self.cancelled = self.cancelled or other.cancelled

    def skip(self, reason: SkipReason) -> None:
        self.skipped += 1
        self.skip_reasons[reason.value] += 1

    def fail(self, unit: ContentUnit) -> None:
        self.failed += 1
        self.failed_sources.append(unit.source_key)


@dataclass
class _WorkItem:
    unit: ContentUnit
    decision: AdmissionDecision | None = None
    records: list[MentionRecord] = field(default_factory=list)
    failed: bool = False


@dataclass
class _ItemOutcome:
    created_ids: set[str] = field(default_factory=set)
    existing_ids: set[str] = field(default_factory=set)
    mentions_written: int = 0
    duplicates: int = 0


def resolution_requests(records: Sequence[MentionRecord]) -> list[ResolutionRequest]:
    """Every ``(name, type)`` a set of normalized records refers to."""
    requests: list[ResolutionRequest] = []
    for record in records:
        requests.append(ResolutionRequest(record.restaurant_name, EntityType.RESTAURANT))
        if record.food_name:
            requests.append(ResolutionRequest(record.food_name, EntityType.FOOD))
            requests.extend(
                ResolutionRequest(name, EntityType.FOOD) for name in record.food_categories
            )
            requests.extend(
                ResolutionRequest(name, EntityType.DISH_ATTRIBUTE)
                for name in record.dish_attributes
            )
        requests.extend(
            ResolutionRequest(name, EntityType.RESTAURANT_ATTRIBUTE)
            for name in record.restaurant_attributes
        )
    return requests


class BatchProcessor:
    """Runs content units through admission, extraction, resolution and upsert.

    Example:
        >>> processor = BatchProcessor(InMemoryGraphStore())
        >>> report = await processor.process_batch(units)
        >>> report.counts()
        {'admitted': 3, 'skipped': 1, 'resolved_existing': 4, 'created_new': 5, 'failed': 0}
    """

    def __init__(
        self,
        store: GraphStore,
        extractor: Extractor | None = None,
        config: PipelineConfig | None = None,
        known_restaurants: Sequence[str] = (),
        admission: AdmissionFilter | None = None,
        normalizer: MentionNormalizer | None = None,
        resolver: EntityResolver | None = None,
        upsert: UpsertEngine | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            store: Graph store shared by all batches.
            extractor: Mention extractor (default: RuleBasedExtractor).
            config: Pipeline settings (default: PipelineConfig()).
            known_restaurants: Restaurant names passed to the extractor.
            admission: Admission filter.
            normalizer: Mention normalizer.
            resolver: Entity resolver (default: built from config.resolver).
            upsert: Upsert engine (default: built from config.scoring).
        """
        self.store = store
        self.config = config or PipelineConfig()
        self.known_restaurants = list(known_restaurants)
        self.admission = admission or AdmissionFilter()
        self.extractor = extractor or RuleBasedExtractor(self.known_restaurants, self.admission)
        self.normalizer = normalizer or MentionNormalizer()
        self.resolver = resolver or EntityResolver(self.config.resolver)
        self.upsert = upsert or UpsertEngine(self.config.scoring)

    async def process_batch(
        self,
        units: Sequence[ContentUnit],
        cancel_token: CancellationToken | None = None,
        parent_mentions: Mapping[str, Sequence[MentionRecord]] | None = None,
    ) -> BatchReport:
        """Process one batch of content units.

        Args:
            units: Content units, parents before replies where both are present.
            cancel_token: Token checked between units.
            parent_mentions: Mentions already extracted for parents outside
                the batch, keyed by parent source id.

        Returns:
            BatchReport with counts, failed source references and dead letters.

        Raises:
            PipelineCancelledError: If the token was cancelled; carries the
                partial report.
        """
        token = cancel_token or CancellationToken()
        report = BatchReport()
        items = [_WorkItem(unit) for unit in units]

        logger.info("Processing batch", units=len(items))

        await self._extract_all(items, token, report, parent_mentions or {})
        if token.cancelled:
            raise self._cancelled(report)

        pending: list[_WorkItem] = []
        for item in items:
            if item.failed:
                continue
            if item.decision is not None and not item.decision.admitted:
                report.skip(item.decision.reason or SkipReason.NO_LINKAGE)
            elif not item.records:
                report.skip(SkipReason.NO_LINKAGE)
            else:
                pending.append(item)

        if pending:
            requests = [
                request for item in pending for request in resolution_requests(item.records)
            ]
            try:
                plan = await self._plan(requests)
            except RetryError as e:
                logger.error("Resolution planning failed", error=str(e.last_attempt.exception()))
                for item in pending:
                    report.fail(item.unit)
                return report

            for item in pending:
                if token.cancelled:
                    raise self._cancelled(report)
                await self._persist_item(item, plan, report)

        logger.info("Batch processing complete", committed=report.committed, **report.counts())
        return report

    # ─── Extraction ───────────────────────────────────────────────────────

    async def _extract_all(
        self,
        items: list[_WorkItem],
        token: CancellationToken,
        report: BatchReport,
        parent_mentions: Mapping[str, Sequence[MentionRecord]],
    ) -> None:
        by_source = {item.unit.source_id: item for item in items}
        semaphore = asyncio.Semaphore(self.config.max_concurrent_extractions)

        # Affirmations of a parent in this batch wait for the parent's mentions
        deferred = [
            item
            for item in items
            if item.unit.parent_source_id in by_source
            and is_short_affirmation(item.unit.text.strip())
        ]
        deferred_ids = {id(item) for item in deferred}
        first_wave = [item for item in items if id(item) not in deferred_ids]

        async def run(item: _WorkItem, inherited: Sequence[MentionRecord] | None) -> None:
            async with semaphore:
                if token.cancelled:
                    return
                await self._extract_item(item, inherited, report)

        await asyncio.gather(
            *(
                run(item, parent_mentions.get(item.unit.parent_source_id or ""))
                for item in first_wave
            )
        )

        for item in deferred:
            if token.cancelled:
                return
            parent = by_source[item.unit.parent_source_id or ""]
            await run(item, parent.records)

    async def _extract_item(
        self,
        item: _WorkItem,
        inherited: Sequence[MentionRecord] | None,
        report: BatchReport,
    ) -> None:
        unit = item.unit
        item.decision = self.admission.screen(unit, inherited)
        if not item.decision.admitted:
            return

        context = ExtractionContext(
            decision=item.decision,
            inherited_entities=None if inherited is None else list(inherited),
            known_restaurants=self.known_restaurants,
        )
        try:
            raw = await self.extractor.extract(unit, context)
        except RetryError as e:
            await self._dead_letter(item, e.last_attempt.exception(), report)
            return
        except SchemaViolationError as e:
            await self._dead_letter(item, e, report)
            return

        # A disabled post body never emits, whatever the extractor returned
        if not self.admission.permits_emission(unit):
            return

        records = [
            record
            for record in self.normalizer.normalize_all(raw)
            if self.admission.has_linkage(record)
        ]
        if len(records) < len(raw):
            logger.debug(
                "Mentions dropped by normalization or linkage",
                source_id=unit.source_id,
                extracted=len(raw),
                kept=len(records),
            )
        item.records = records

    async def _dead_letter(
        self,
        item: _WorkItem,
        error: BaseException | None,
        report: BatchReport,
    ) -> None:
        payload = {"text": item.unit.text}
        if isinstance(error, SchemaViolationError) and error.raw_response:
            payload["raw_response"] = error.raw_response
        record = DeadLetterRecord(
            source_type=item.unit.source_type.value,
            source_id=item.unit.source_id,
            stage="extraction",
            error=str(error),
            payload=payload,
        )
        logger.error(
            "Extraction failed after retries",
            source_id=item.unit.source_id,
            error=str(error),
        )
        await self.store.record_dead_letter(record)
        report.dead_letters.append(record)
        report.fail(item.unit)
        item.failed = True

    # ─── Resolution and persistence ───────────────────────────────────────

    @store_retry
    async def _plan(self, requests: list[ResolutionRequest]) -> ResolutionPlan:
        async with self.store.transaction() as tx:
            return await self.resolver.plan_batch(tx, requests)

    async def _persist_item(
        self,
        item: _WorkItem,
        plan: ResolutionPlan,
        report: BatchReport,
    ) -> None:
        try:
            outcome = await self._write_item(item, plan)
        except RetryError as e:
            logger.error(
                "Store write failed after retries",
                source_id=item.unit.source_id,
                error=str(e.last_attempt.exception()),
            )
            report.fail(item.unit)
            return
        except PipelineError as e:
            logger.error(
                "Store write failed",
                source_id=item.unit.source_id,
                error=str(e),
            )
            report.fail(item.unit)
            return

        report.admitted += 1
        report.committed += 1
        report.created_new += len(outcome.created_ids)
        report.resolved_existing += len(outcome.existing_ids - outcome.created_ids)
        report.mentions_written += outcome.mentions_written
        report.duplicate_mentions += outcome.duplicates

    @store_retry
    async def _write_item(self, item: _WorkItem, plan: ResolutionPlan) -> _ItemOutcome:
        outcome = _ItemOutcome()
        try:
            async with self.store.transaction() as tx:
                cache: dict[tuple[str, EntityType], Resolution] = {}
                for record in item.records:
                    resolved = await self._resolve_record(tx, record, plan, cache)
                    result = await self.upsert.apply(tx, resolved, item.unit)
                    if result.duplicate:
                        outcome.duplicates += 1
                    else:
                        outcome.mentions_written += 1
                    for resolution in resolved.all_resolutions():
                        if resolution.is_existing:
                            outcome.existing_ids.add(resolution.entity_id)
                        else:
                            outcome.created_ids.add(resolution.entity_id)
        except UniqueConstraintViolation as e:
            # Another writer got there first; a fresh attempt reads its rows
            raise StoreUnavailableError(f"Concurrent write conflict: {e}") from e
        return outcome

    async def _resolve_record(
        self,
        tx: GraphTransaction,
        record: MentionRecord,
        plan: ResolutionPlan,
        cache: dict[tuple[str, EntityType], Resolution],
    ) -> ResolvedMention:
        async def resolve(name: str, entity_type: EntityType) -> Resolution:
            key = (name.strip().lower(), entity_type)
            if key not in cache:
                cache[key] = await self.resolver.materialize(tx, plan.get(name, entity_type))
            return cache[key]

        resolved = ResolvedMention(
            record=record,
            restaurant=await resolve(record.restaurant_name, EntityType.RESTAURANT),
            restaurant_attributes=[
                await resolve(name, EntityType.RESTAURANT_ATTRIBUTE)
                for name in record.restaurant_attributes
            ],
        )
        if record.food_name:
            resolved.food = await resolve(record.food_name, EntityType.FOOD)
            resolved.categories = [
                await resolve(name, EntityType.FOOD) for name in record.food_categories
            ]
            resolved.selective_attributes = [
                await resolve(name, EntityType.DISH_ATTRIBUTE)
                for name in record.food_attributes_selective
            ]
            resolved.descriptive_attributes = [
                await resolve(name, EntityType.DISH_ATTRIBUTE)
                for name in record.food_attributes_descriptive
            ]
        return resolved

    @staticmethod
    def _cancelled(report: BatchReport) -> PipelineCancelledError:
        report.cancelled = True
        logger.warning("Batch cancelled", committed=report.committed, **report.counts())
        return PipelineCancelledError(report.committed, report)
