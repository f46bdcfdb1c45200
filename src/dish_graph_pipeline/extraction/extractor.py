"""Mention extractors using a Protocol-based abstraction.

This module provides pluggable extraction strategies:
- RuleBasedExtractor: Lexicon and heuristic rules, no external calls (default)
- OpenAIExtractor: Chat completion with JSON output, validated with pydantic

Both return raw ``MentionRecord`` candidates; the mention normalizer and
the admission filter's linkage check run after either one.

Example:
    extractor = RuleBasedExtractor(known_restaurants=["Franklin BBQ"])
    records = await extractor.extract(unit, ExtractionContext())
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog

from dish_graph_pipeline.config import LLM_MODEL, LLM_TIMEOUT_SECONDS
from dish_graph_pipeline.extraction.admission import (
    AdmissionDecision,
    AdmissionFilter,
    RecommendationRequest,
    has_negative_recommendation,
)
from dish_graph_pipeline.extraction.classifier import (
    Clause,
    FoodPhrase,
    RestaurantRef,
    UnitAnalysis,
    classify_unit,
    dish_attribute_kinds,
)
from dish_graph_pipeline.extraction.decomposer import (
    Decomposition,
    decompose_food_term,
    split_food_units,
)
from dish_graph_pipeline.extraction.menu_item import classify_menu_item
from dish_graph_pipeline.extraction.prompts import build_extraction_prompt
from dish_graph_pipeline.extraction.schema import parse_extraction_response
from dish_graph_pipeline.models import AttributeKind, ContentUnit, MentionRecord
from dish_graph_pipeline.utils.retry import extraction_retry

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = structlog.get_logger(__name__)


@dataclass
class ExtractionContext:
    """Explicit context passed to an extractor for one content unit.

    Attributes:
        decision: Admission decision for the unit, if already screened.
        inherited_entities: Mentions of the parent unit (for affirmations),
            or None when the parent's mentions are unknown.
        known_restaurants: Restaurant names known to the caller.
    """

    decision: AdmissionDecision | None = None
    inherited_entities: list[MentionRecord] | None = None
    known_restaurants: list[str] = field(default_factory=list)


@runtime_checkable
class Extractor(Protocol):
    """Protocol defining the extractor interface."""

    async def extract(self, unit: ContentUnit, context: ExtractionContext) -> list[MentionRecord]:
        """Extract candidate mentions from one content unit.

        Args:
            unit: Content unit to extract from.
            context: Admission decision, inherited entities and hints.

        Returns:
            Candidate mention records (possibly empty).
        """
        ...


def inherit_mentions(records: Sequence[MentionRecord], source_id: str) -> list[MentionRecord]:
    """Copy a parent's mentions onto an affirming unit."""
    return [record.model_copy(update={"source_id": source_id}, deep=True) for record in records]


def _unique(values: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(values))


class RuleBasedExtractor:
    """Extractor that applies the classification rules directly.

    Combines the entity/attribute classifier, the compound term
    decomposer and the menu-item classifier, and applies the
    recommendation-reply branching of the admission rules.

    Attributes:
        known_restaurants: Gazetteer of restaurant names.
        admission: Filter used when no decision is passed in.
    """

    def __init__(
        self,
        known_restaurants: Sequence[str] = (),
        admission: AdmissionFilter | None = None,
    ) -> None:
        """Initialize the extractor.

        Args:
            known_restaurants: Gazetteer of restaurant names.
            admission: Admission filter (default: a new AdmissionFilter).
        """
        self.known_restaurants = list(known_restaurants)
        self.admission = admission or AdmissionFilter()

    async def extract(self, unit: ContentUnit, context: ExtractionContext) -> list[MentionRecord]:
        decision = context.decision or self.admission.screen(unit, context.inherited_entities)
        if not decision.admitted:
            return []

        known = [*self.known_restaurants, *context.known_restaurants]

        if decision.is_affirmation:
            inherited = decision.inherited_entities or context.inherited_entities
            if inherited:
                return inherit_mentions(inherited, unit.source_id)
            # Parent mentions unknown: classify the parent text on the unit's behalf
            analysis = classify_unit(unit.parent_context_text or "", known)
            return self._from_content(unit, analysis)

        analysis = classify_unit(
            unit.text,
            known,
            list_reply=decision.request is not None,
            context_text=unit.parent_context_text,
        )
        if decision.request is not None:
            records = self._from_reply(unit, analysis, decision.request)
        else:
            records = self._from_content(unit, analysis)

        logger.debug(
            "Rule-based extraction complete",
            source_id=unit.source_id,
            restaurants=len(analysis.unique_restaurants()),
            mentions=len(records),
        )
        return records

    # ─── Branches ─────────────────────────────────────────────────────────

    def _from_content(self, unit: ContentUnit, analysis: UnitAnalysis) -> list[MentionRecord]:
        records: list[MentionRecord] = []
        co_mentions = self._co_mentions(analysis)

        for ref in analysis.unique_restaurants():
            clauses = analysis.clauses_for(ref)
            praise = any(clause.is_holistic_praise for clause in clauses)
            foods = analysis.foods_for(ref)
            restaurant_attributes = self._restaurant_attributes(clauses, foods)

            food_records = self._food_mentions(
                unit, ref, foods, co_mentions, praise, restaurant_attributes
            )
            if food_records:
                records.extend(food_records)
            elif praise or restaurant_attributes:
                records.append(
                    self._restaurant_only(unit, ref, praise, restaurant_attributes)
                )
        return records

    def _from_reply(
        self,
        unit: ContentUnit,
        analysis: UnitAnalysis,
        request: RecommendationRequest,
    ) -> list[MentionRecord]:
        records: list[MentionRecord] = []
        co_mentions = self._co_mentions(analysis)
        requested = decompose_food_term(request.dish) if request.dish else None

        for ref in analysis.unique_restaurants():
            clauses = analysis.clauses_for(ref)
            if any(has_negative_recommendation(clause.text) for clause in clauses):
                logger.debug(
                    "Restaurant excluded by negative recommendation",
                    source_id=unit.source_id,
                    restaurant=ref.name,
                )
                continue

            praise = any(clause.is_holistic_praise for clause in clauses)
            foods = analysis.foods_for(ref)
            restaurant_attributes = self._restaurant_attributes(clauses, foods)

            if requested is None:
                records.append(self._restaurant_only(unit, ref, True, restaurant_attributes))
                continue

            food_records = self._food_mentions(
                unit, ref, foods, co_mentions, praise, restaurant_attributes
            )
            names_dish = any(
                requested.primary in record.food_categories for record in food_records
            )
            if not names_dish:
                # The reply never names the dish: credit the requested dish once
                food_records.insert(
                    0,
                    MentionRecord(
                        restaurant_name=ref.name,
                        food_name=requested.primary,
                        food_categories=requested.categories,
                        is_menu_item=False,
                        restaurant_attributes=restaurant_attributes,
                        general_praise=praise,
                        source_id=unit.source_id,
                    ),
                )
            records.extend(food_records)
        return records

    # ─── Record builders ──────────────────────────────────────────────────

    @staticmethod
    def _co_mentions(analysis: UnitAnalysis) -> list[str]:
        primaries = []
        for food in analysis.all_foods():
            decomposition = decompose_food_term(food.surface, food.attributes)
            if decomposition is not None:
                primaries.append(decomposition.primary)
        return primaries

    @staticmethod
    def _restaurant_attributes(
        clauses: Sequence[Clause],
        foods: Sequence[tuple[FoodPhrase, Clause]],
    ) -> list[str]:
        terms = [term for clause in clauses for term in clause.restaurant_attributes]
        terms.extend(term for food, _ in foods for term in food.restaurant_attributes)
        return _unique(terms)

    def _food_mentions(
        self,
        unit: ContentUnit,
        ref: RestaurantRef,
        foods: Sequence[tuple[FoodPhrase, Clause]],
        co_mentions: Sequence[str],
        praise: bool,
        restaurant_attributes: list[str],
    ) -> list[MentionRecord]:
        merged: dict[tuple[str, tuple[str, ...]], MentionRecord] = {}
        for food, clause in foods:
            decomposition = decompose_food_term(food.surface, food.attributes)
            if decomposition is None:
                continue
            is_menu_item = self._is_menu_item(food, clause, decomposition, co_mentions)
            kinds = dish_attribute_kinds(food)
            selective = [term for term, kind in kinds.items() if kind is AttributeKind.SELECTIVE]
            descriptive = [term for term, kind in kinds.items() if kind is AttributeKind.DESCRIPTIVE]
            key = (decomposition.primary, tuple(sorted(selective)))
            existing = merged.get(key)
            if existing is not None:
                existing.is_menu_item = existing.is_menu_item or is_menu_item
                existing.food_attributes_descriptive = _unique(
                    [*existing.food_attributes_descriptive, *descriptive]
                )
                continue
            merged[key] = MentionRecord(
                restaurant_name=ref.name,
                food_name=decomposition.primary,
                food_categories=decomposition.categories,
                is_menu_item=is_menu_item,
                food_attributes_selective=selective,
                food_attributes_descriptive=descriptive,
                restaurant_attributes=restaurant_attributes,
                general_praise=praise,
                source_id=unit.source_id,
            )
        return list(merged.values())

    @staticmethod
    def _is_menu_item(
        food: FoodPhrase,
        clause: Clause,
        decomposition: Decomposition,
        co_mentions: Sequence[str],
    ) -> bool:
        attributes = set(food.attributes)
        surface = " ".join(
            unit for unit in split_food_units(food.surface) if unit not in attributes
        )
        return classify_menu_item(
            decomposition.primary,
            clause.text,
            surface=surface,
            co_mentions=co_mentions,
        ).is_menu_item

    @staticmethod
    def _restaurant_only(
        unit: ContentUnit,
        ref: RestaurantRef,
        praise: bool,
        restaurant_attributes: list[str],
    ) -> MentionRecord:
        return MentionRecord(
            restaurant_name=ref.name,
            food_name=None,
            restaurant_attributes=restaurant_attributes,
            general_praise=praise,
            source_id=unit.source_id,
        )


class OpenAIExtractor:
    """Extractor backed by an OpenAI chat completion.

    The response is requested as a JSON object and validated against the
    mention schema. Schema violations and transient API errors are
    retried by ``extraction_retry``; the batch processor dead-letters the
    unit once retries are exhausted.

    Attributes:
        model: Chat model name.
        timeout: Per-request timeout in seconds.
        known_restaurants: Restaurant names passed to the prompt.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = LLM_MODEL,
        timeout: float = LLM_TIMEOUT_SECONDS,
        client: "AsyncOpenAI | None" = None,
        known_restaurants: Sequence[str] = (),
    ) -> None:
        """Initialize the extractor.

        Args:
            api_key: OpenAI API key (ignored when a client is given).
            model: Chat model name.
            timeout: Per-request timeout in seconds.
            client: Preconfigured async client (useful for tests).
            known_restaurants: Restaurant names passed to the prompt.
        """
        if client is None:
            from openai import AsyncOpenAI

            # Retries are handled by extraction_retry
            client = AsyncOpenAI(api_key=api_key, max_retries=0)
        self._client = client
        self.model = model
        self.timeout = timeout
        self.known_restaurants = list(known_restaurants)

    async def extract(self, unit: ContentUnit, context: ExtractionContext) -> list[MentionRecord]:
        decision = context.decision
        if decision is not None and not decision.admitted:
            return []

        affirmation = decision is not None and decision.is_affirmation
        inherited = (decision.inherited_entities if decision else []) or context.inherited_entities
        if affirmation and inherited:
            return inherit_mentions(inherited, unit.source_id)

        request = decision.request if decision else None
        messages = build_extraction_prompt(
            unit,
            request_text=request.text if request else None,
            request_dish=request.dish if request else None,
            known_restaurants=[*self.known_restaurants, *context.known_restaurants],
            affirmation=affirmation,
        )
        records = [
            record.model_copy(update={"source_id": unit.source_id})
            for record in await self._complete(unit.source_id, messages)
        ]
        logger.debug(
            "LLM extraction complete",
            source_id=unit.source_id,
            model=self.model,
            mentions=len(records),
        )
        return records

    @extraction_retry
    async def _complete(self, source_id: str, messages: list[dict[str, str]]) -> list[MentionRecord]:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=0,
            max_tokens=2000,
            response_format={"type": "json_object"},
            timeout=self.timeout,
        )
        content = response.choices[0].message.content
        return parse_extraction_response(content, source_id)
