"""Content admission filter.

Decides whether a content unit may produce mentions at all, before any
extraction cost is spent, and checks candidate mention records for
restaurant linkage afterwards.

Skipping is a normal outcome, not an error: the filter returns an
``AdmissionDecision`` carrying a ``SkipReason`` and logs at debug level.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

import structlog

from dish_graph_pipeline.extraction.classifier import (
    find_food_terms,
    has_positive_sentiment,
    tokenize,
)
from dish_graph_pipeline.extraction.decomposer import decompose_food_term, is_food_unit
from dish_graph_pipeline.extraction.lexicon import (
    GENERIC_FOOD_HEADS,
    HEARSAY_PATTERN,
    NEGATIVE_RECOMMENDATION_PATTERN,
    NEGATORS,
    NON_FOOD_TOPIC_TERMS,
    NOT_CURRENT_PATTERN,
    PROMOTIONAL_PATTERN,
    RECOMMENDATION_REQUEST_PATTERN,
    SHORT_AFFIRMATION_PATTERN,
)
from dish_graph_pipeline.models import ContentUnit, MentionRecord

logger = structlog.get_logger(__name__)


class SkipReason(str, Enum):
    """Why a content unit produced no mentions."""

    EXTRACTION_DISABLED = "extraction_disabled"
    EMPTY = "empty"
    PROMOTIONAL = "promotional"
    RECOMMENDATION_REQUEST = "recommendation_request"
    HEARSAY = "hearsay"
    NOT_CURRENT = "not_current"
    NON_FOOD = "non_food"
    NO_POSITIVE_SENTIMENT = "no_positive_sentiment"
    NO_LINKAGE = "no_linkage"
    NOTHING_TO_INHERIT = "nothing_to_inherit"


@dataclass
class RecommendationRequest:
    """A parent unit asking for recommendations.

    Attributes:
        text: The request text.
        dish: The specific dish asked about, or None ("Where should I eat?").
    """

    text: str
    dish: str | None = None


@dataclass
class AdmissionDecision:
    """Outcome of screening one content unit."""

    admitted: bool
    reason: SkipReason | None = None
    request: RecommendationRequest | None = None
    is_affirmation: bool = False
    inherited_entities: list[MentionRecord] = field(default_factory=list)

    @classmethod
    def skip(cls, reason: SkipReason) -> "AdmissionDecision":
        return cls(admitted=False, reason=reason)


def is_short_affirmation(text: str) -> bool:
    """Whether the text is a bare agreement such as "+1" or "this"."""
    return bool(SHORT_AFFIRMATION_PATTERN.match(text))


def is_recommendation_request(text: str) -> bool:
    """Whether the text asks for restaurant or dish recommendations."""
    return bool(RECOMMENDATION_REQUEST_PATTERN.search(text))


def detect_request(text: str | None) -> RecommendationRequest | None:
    """Parse a recommendation request and the specific dish it names.

    Example:
        >>> detect_request("Best burger in EV?").dish
        'burger'
        >>> detect_request("Where should I eat?").dish is None
        True
    """
    if not text or not is_recommendation_request(text):
        return None
    for term in find_food_terms(text):
        decomposition = decompose_food_term(term)
        if decomposition is None:
            continue
        head = decomposition.primary.rpartition(" ")[2]
        if head not in GENERIC_FOOD_HEADS:
            return RecommendationRequest(text=text, dish=decomposition.primary)
    return RecommendationRequest(text=text)


def has_negative_recommendation(text: str) -> bool:
    """Explicit "avoid" / "worst" / "don't go" language.

    A cue right after a negator ("not bad at all") does not count.

    Example:
        >>> has_negative_recommendation("Crispy Burger is the worst")
        True
        >>> has_negative_recommendation("Yafa Deli, not bad at all")
        False
    """
    for match in NEGATIVE_RECOMMENDATION_PATTERN.finditer(text):
        preceding = tokenize(text[: match.start()])[-2:]
        if not any(token.lower in NEGATORS for token in preceding):
            return True
    return False


class AdmissionFilter:
    """Screens content units and candidate mentions.

    Example:
        >>> decision = AdmissionFilter().screen(unit)
        >>> if not decision.admitted:
        ...     print(decision.reason)
    """

    def screen(
        self,
        unit: ContentUnit,
        inherited_entities: Sequence[MentionRecord] | None = None,
    ) -> AdmissionDecision:
        """Decide whether a unit may produce mentions.

        Args:
            unit: Content unit to screen.
            inherited_entities: Mentions of the immediate parent unit, used
                when the unit is a short affirmation. None means the parent's
                mentions are unknown; an empty sequence means the parent is
                known and produced nothing.

        Returns:
            Admit (with request and inherited hints) or skip with a reason.
        """
        decision = self._screen(unit, inherited_entities)
        if not decision.admitted:
            logger.debug(
                "Content skipped",
                source_id=unit.source_id,
                source_type=unit.source_type.value,
                reason=decision.reason.value if decision.reason else None,
            )
        return decision

    def _screen(
        self,
        unit: ContentUnit,
        inherited_entities: Sequence[MentionRecord] | None,
    ) -> AdmissionDecision:
        if not self.permits_emission(unit):
            return AdmissionDecision.skip(SkipReason.EXTRACTION_DISABLED)

        text = unit.text.strip()
        if not text:
            return AdmissionDecision.skip(SkipReason.EMPTY)

        # Affirmations copy the parent outright, no independent classification
        if is_short_affirmation(text):
            inherited = list(inherited_entities or [])
            if not inherited and not self._parent_text_admitted(unit, inherited_entities):
                return AdmissionDecision.skip(SkipReason.NOTHING_TO_INHERIT)
            return AdmissionDecision(
                admitted=True,
                is_affirmation=True,
                inherited_entities=inherited,
            )

        if PROMOTIONAL_PATTERN.search(text):
            return AdmissionDecision.skip(SkipReason.PROMOTIONAL)
        if is_recommendation_request(text):
            return AdmissionDecision.skip(SkipReason.RECOMMENDATION_REQUEST)
        if HEARSAY_PATTERN.search(text):
            return AdmissionDecision.skip(SkipReason.HEARSAY)
        if NOT_CURRENT_PATTERN.search(text):
            return AdmissionDecision.skip(SkipReason.NOT_CURRENT)

        request = detect_request(unit.parent_context_text)

        if request is None and self._is_non_food(text):
            return AdmissionDecision.skip(SkipReason.NON_FOOD)
        if request is None and not has_positive_sentiment(text):
            return AdmissionDecision.skip(SkipReason.NO_POSITIVE_SENTIMENT)

        return AdmissionDecision(admitted=True, request=request)

    def _parent_text_admitted(
        self,
        unit: ContentUnit,
        inherited_entities: Sequence[MentionRecord] | None,
    ) -> bool:
        """Whether an affirmation may fall back to its parent's text.

        A parent that is known to have produced nothing (skipped, failed or
        unlinked) leaves nothing to agree with. Otherwise the parent text
        must pass the same rules the parent itself would.
        """
        if inherited_entities is not None or not unit.parent_context_text:
            return False
        parent = unit.model_copy(
            update={
                "text": unit.parent_context_text,
                "parent_context_text": None,
                "parent_source_id": None,
            }
        )
        return self._screen(parent, None).admitted

    @staticmethod
    def _is_non_food(text: str) -> bool:
        words = [token.lower for token in tokenize(text)]
        mentions_topic = any(word in NON_FOOD_TOPIC_TERMS for word in words)
        mentions_food = any(is_food_unit(word) for word in words)
        return mentions_topic and not mentions_food

    @staticmethod
    def permits_emission(unit: ContentUnit) -> bool:
        """A post body with extraction disabled is context only."""
        return not (unit.is_post_body and not unit.extract_from_post)

    @staticmethod
    def has_linkage(mention: MentionRecord) -> bool:
        """A restaurant plus a food, a restaurant attribute or holistic praise."""
        if not mention.restaurant_name.strip():
            return False
        return bool(mention.food_name or mention.restaurant_attributes or mention.general_praise)
