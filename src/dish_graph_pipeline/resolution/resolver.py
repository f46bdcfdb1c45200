"""Tiered entity resolution.

Resolves a normalized name and entity type to an entity id, trying in
order (first hit wins):

1. Exact: case-insensitive ``(name, type)`` equality
2. Alias: case-insensitive equality with an alias of that type
3. Fuzzy: rapidfuzz ``fuzz.ratio`` similarity >= threshold AND
   Levenshtein distance <= max edit distance, against names and aliases
   of that type
4. Create: a new entity with the name as canonical

Fuzzy candidates are ranked by similarity, then quality score, then alias
count, then lowest id, so resolution is reproducible for the same input
set regardless of processing order.

Batches are planned against one snapshot of the store. Identical
``(name, type)`` pairs in a batch share one tentative id before anything
is persisted; the store's unique constraint is the final arbiter, and a
constraint violation during creation turns into a lookup.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum

from rapidfuzz import fuzz, process
from rapidfuzz.distance import Levenshtein
import structlog

from dish_graph_pipeline.config import ResolverConfig
from dish_graph_pipeline.exceptions import ResolutionConflictError, UniqueConstraintViolation
from dish_graph_pipeline.graph.store import GraphTransaction
from dish_graph_pipeline.models import Entity, EntityType, new_id
from dish_graph_pipeline.resolution.aliases import append_alias

logger = structlog.get_logger(__name__)


class MatchTier(str, Enum):
    """How a name was resolved."""

    EXACT = "exact"
    ALIAS = "alias"
    FUZZY = "fuzzy"
    CREATE = "create"


@dataclass(frozen=True)
class ResolutionRequest:
    """A name to resolve within a type."""

    name: str
    entity_type: EntityType

    @property
    def key(self) -> tuple[str, EntityType]:
        return (self.name.strip().lower(), self.entity_type)


@dataclass
class Resolution:
    """Outcome of resolving one name.

    Attributes:
        name: Input name.
        entity_type: Target type.
        entity_id: Resolved (or tentative) entity id.
        canonical_name: Canonical name of the resolved entity.
        tier: Tier that produced the match.
        similarity: Similarity of the winning fuzzy candidate (1.0 otherwise).
        needs_creation: The target entity may not exist yet and must be
            created (if absent) when the resolution is materialized.
        created: Set by ``materialize`` when the entity was actually inserted.
    """

    name: str
    entity_type: EntityType
    entity_id: str
    canonical_name: str
    tier: MatchTier
    similarity: float = 1.0
    needs_creation: bool = False
    created: bool = False

    @property
    def alias(self) -> str | None:
        """Input string to record as an alias, if any."""
        if self.tier in (MatchTier.ALIAS, MatchTier.FUZZY) and self.name != self.canonical_name:
            return self.name
        return None

    @property
    def is_existing(self) -> bool:
        return not self.created


@dataclass
class _FuzzyCandidate:
    entity: Entity
    similarity: float

    def rank(self) -> tuple[float, float, int, str]:
        # Sort ascending: best similarity, score and alias count first
        return (
            -self.similarity,
            -self.entity.quality_score,
            -len(self.entity.aliases),
            self.entity.entity_id,
        )

    def tie_key(self) -> tuple[float, float, int]:
        return self.rank()[:3]


class EntityIndex:
    """In-memory lookup tables over a snapshot of entities.

    Tentative entities planned for creation are added as planning goes,
    so later names in the same batch resolve to them.
    """

    def __init__(self, entities: Iterable[Entity] = ()) -> None:
        self._by_key: dict[tuple[str, EntityType], Entity] = {}
        self._by_alias: dict[tuple[str, EntityType], list[Entity]] = defaultdict(list)
        self._by_type: dict[EntityType, list[Entity]] = defaultdict(list)
        for entity in entities:
            self.add(entity)

    def add(self, entity: Entity) -> None:
        self._by_key[entity.key] = entity
        self._by_type[entity.type].append(entity)
        for alias in entity.aliases:
            self._by_alias[(alias.lower(), entity.type)].append(entity)

    def exact(self, name: str, entity_type: EntityType) -> Entity | None:
        return self._by_key.get((name.strip().lower(), entity_type))

    def alias(self, name: str, entity_type: EntityType) -> list[Entity]:
        return list(self._by_alias.get((name.strip().lower(), entity_type), []))

    def of_type(self, entity_type: EntityType) -> list[Entity]:
        return list(self._by_type.get(entity_type, []))

    def __len__(self) -> int:
        return len(self._by_key)


@dataclass
class ResolutionPlan:
    """Resolutions for a batch, keyed by ``(name, type)``."""

    resolutions: dict[tuple[str, EntityType], Resolution] = field(default_factory=dict)

    def get(self, name: str, entity_type: EntityType) -> Resolution:
        return self.resolutions[(name.strip().lower(), entity_type)]

    def __len__(self) -> int:
        return len(self.resolutions)

    @property
    def pending_creations(self) -> int:
        return sum(1 for r in self.resolutions.values() if r.tier is MatchTier.CREATE)


class EntityResolver:
    """Resolves names to entities with exact, alias, fuzzy and create tiers.

    Example:
        >>> resolver = EntityResolver()
        >>> async with store.transaction() as tx:
        ...     resolution = await resolver.resolve(tx, "franklin bbq", EntityType.RESTAURANT)
        >>> resolution.tier
        <MatchTier.CREATE: 'create'>
    """

    def __init__(self, config: ResolverConfig | None = None) -> None:
        """Initialize the resolver.

        Args:
            config: Resolver settings (default: ResolverConfig()).
        """
        self.config = config or ResolverConfig()

    # ─── Matching (pure) ──────────────────────────────────────────────────

    def match(self, index: EntityIndex, name: str, entity_type: EntityType) -> Resolution | None:
        """Run the exact, alias and fuzzy tiers against an index.

        Returns:
            The resolution, or None when the name needs a new entity.
        """
        name = name.strip()
        entity = index.exact(name, entity_type)
        if entity is not None:
            return self._resolved(name, entity, MatchTier.EXACT)

        holders = index.alias(name, entity_type)
        if holders:
            entity = min(
                holders,
                key=lambda e: (-e.quality_score, -len(e.aliases), e.entity_id),
            )
            return self._resolved(name, entity, MatchTier.ALIAS)

        if self.config.enable_fuzzy:
            candidate = self._best_fuzzy(index, name, entity_type)
            if candidate is not None:
                return self._resolved(
                    name, candidate.entity, MatchTier.FUZZY, candidate.similarity
                )
        return None

    def _best_fuzzy(
        self,
        index: EntityIndex,
        name: str,
        entity_type: EntityType,
    ) -> _FuzzyCandidate | None:
        entities = index.of_type(entity_type)
        if not entities:
            return None

        choices: list[str] = []
        owners: list[Entity] = []
        for entity in entities:
            for text in (entity.name, *entity.aliases):
                choices.append(text.lower())
                owners.append(entity)

        query = name.lower()
        best: dict[str, _FuzzyCandidate] = {}
        for choice, score, position in process.extract(
            query,
            choices,
            scorer=fuzz.ratio,
            score_cutoff=self.config.fuzzy_threshold * 100,
            limit=None,
        ):
            if Levenshtein.distance(query, choice) > self.config.max_edit_distance:
                continue
            entity = owners[position]
            similarity = score / 100
            current = best.get(entity.entity_id)
            if current is None or similarity > current.similarity:
                best[entity.entity_id] = _FuzzyCandidate(entity, similarity)

        if not best:
            return None

        ranked = sorted(best.values(), key=_FuzzyCandidate.rank)
        if len(ranked) > 1 and ranked[0].tie_key() == ranked[1].tie_key():
            tied = [c.entity.entity_id for c in ranked if c.tie_key() == ranked[0].tie_key()]
            conflict = ResolutionConflictError(name, tied)
            logger.error(
                "Fuzzy tie not broken by score or alias count, using lowest id",
                error=str(conflict),
                name=name,
                entity_type=entity_type.value,
                chosen=ranked[0].entity.entity_id,
            )
        return ranked[0]

    @staticmethod
    def _resolved(
        name: str,
        entity: Entity,
        tier: MatchTier,
        similarity: float = 1.0,
        needs_creation: bool = False,
    ) -> Resolution:
        return Resolution(
            name=name,
            entity_type=entity.type,
            entity_id=entity.entity_id,
            canonical_name=entity.name,
            tier=tier,
            similarity=similarity,
            needs_creation=needs_creation,
        )

    # ─── Batch planning ───────────────────────────────────────────────────

    async def snapshot(
        self,
        tx: GraphTransaction,
        entity_types: Iterable[EntityType],
    ) -> EntityIndex:
        """Read one consistent view of the entities of the given types."""
        return EntityIndex(await tx.list_entities(set(entity_types)))

    def plan(self, index: EntityIndex, requests: Iterable[ResolutionRequest]) -> ResolutionPlan:
        """Resolve a batch of requests against a snapshot index.

        Requests are deduplicated on ``(name, type)`` and processed in
        sorted order; every name planned for creation is added to the
        index as a tentative entity, so identical (and near-identical)
        names later in the batch resolve to it instead of creating a
        duplicate.

        Args:
            index: Snapshot of existing entities. Mutated with tentative entities.
            requests: Names to resolve.

        Returns:
            ResolutionPlan keyed by ``(name, type)``.
        """
        plan = ResolutionPlan()
        tentative: set[str] = set()
        unique = {request.key: request for request in requests if request.name.strip()}

        for key in sorted(unique, key=lambda k: (k[1].value, k[0])):
            request = unique[key]
            resolution = self.match(index, request.name, request.entity_type)
            if resolution is None:
                entity = Entity(entity_id=new_id(), name=key[0], type=request.entity_type)
                index.add(entity)
                tentative.add(entity.entity_id)
                resolution = self._resolved(
                    key[0], entity, MatchTier.CREATE, needs_creation=True
                )
            elif resolution.entity_id in tentative:
                resolution.needs_creation = True
            plan.resolutions[key] = resolution

        logger.debug(
            "Resolution plan built",
            requests=len(plan),
            creations=plan.pending_creations,
            snapshot_size=len(index),
        )
        return plan

    async def plan_batch(
        self,
        tx: GraphTransaction,
        requests: Sequence[ResolutionRequest],
    ) -> ResolutionPlan:
        """Snapshot the store and plan a batch of requests."""
        index = await self.snapshot(tx, {request.entity_type for request in requests})
        return self.plan(index, requests)

    # ─── Persistence ──────────────────────────────────────────────────────

    async def materialize(self, tx: GraphTransaction, resolution: Resolution) -> Resolution:
        """Apply a planned resolution's side effects inside a transaction.

        Creates the target entity if it is still absent (converting a
        unique-constraint race into a lookup), then records the input as
        an alias when configured.

        Args:
            tx: Open transaction for the batch item.
            resolution: Planned resolution.

        Returns:
            A copy with the final entity id and ``created`` flag.
        """
        result = replace(resolution, created=False)

        if resolution.needs_creation:
            existing = await tx.find_entity(resolution.canonical_name, resolution.entity_type)
            if existing is None:
                try:
                    await tx.create_entity(
                        Entity(
                            entity_id=resolution.entity_id,
                            name=resolution.canonical_name,
                            type=resolution.entity_type,
                        )
                    )
                    result.created = True
                    logger.debug(
                        "Entity created",
                        name=resolution.canonical_name,
                        entity_type=resolution.entity_type.value,
                        entity_id=resolution.entity_id,
                    )
                except UniqueConstraintViolation:
                    existing = await tx.find_entity(
                        resolution.canonical_name, resolution.entity_type
                    )
                    if existing is None:
                        raise
                    logger.info(
                        "Concurrent creation detected, resolved by lookup",
                        name=resolution.canonical_name,
                        entity_type=resolution.entity_type.value,
                    )
            if existing is not None:
                result.entity_id = existing.entity_id

        if self.config.record_aliases and result.alias:
            await append_alias(tx, result.entity_id, result.alias)

        return result

    async def resolve(self, tx: GraphTransaction, name: str, entity_type: EntityType) -> Resolution:
        """Resolve and materialize a single name inside a transaction."""
        index = await self.snapshot(tx, [entity_type])
        plan = self.plan(index, [ResolutionRequest(name, entity_type)])
        return await self.materialize(tx, plan.get(name, entity_type))
