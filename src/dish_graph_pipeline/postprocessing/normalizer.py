"""Mention name normalization utilities.

This module normalizes the names carried by mention records before they
reach the entity resolver, and re-applies the decomposition rules
to records from any extractor (attributes never inside categories,
primary term first).
"""

from collections.abc import Iterable, Sequence
import re

from rapidfuzz import fuzz, process
import structlog

from dish_graph_pipeline.config import TYPO_CORRECTION_THRESHOLD
from dish_graph_pipeline.extraction.decomposer import decompose_food_term
from dish_graph_pipeline.extraction.lexicon import (
    ATTRIBUTE_TERMS,
    COMPOUND_FOODS,
    CULINARY_PARENTS,
    FOOD_NOUNS,
    LEADING_ARTICLES,
    TYPO_CORRECTIONS,
    singularize,
)
from dish_graph_pipeline.models import MentionRecord

logger = structlog.get_logger(__name__)

_PUNCTUATION_MAP = str.maketrans(
    {
        "‘": "'",
        "’": "'",
        "“": '"',
        "”": '"',
        "–": "-",
        "—": "-",
        " ": " ",
    }
)

# Words shorter than this are never fuzzily corrected ("pho" vs "pie")
_MIN_FUZZY_WORD_LENGTH = 5


def _build_vocabulary() -> frozenset[str]:
    words: set[str] = set(FOOD_NOUNS) | set(ATTRIBUTE_TERMS)
    for term in (*COMPOUND_FOODS, *CULINARY_PARENTS):
        words.update(term.split())
    for parents in CULINARY_PARENTS.values():
        for parent in parents:
            words.update(parent.split())
    return frozenset(words)


FOOD_VOCABULARY: frozenset[str] = _build_vocabulary()


def normalize_entity_name(name: str) -> str:
    """Normalize an entity name to lowercase, trimmed form.

    Applies standard normalization:
    - Lowercase
    - Unify curly quotes and dashes
    - Collapse whitespace
    - Strip a leading article ("the", "a", "an")
    - Remove leading/trailing punctuation

    Args:
        name: Raw entity name.

    Returns:
        Normalized name.

    Example:
        >>> normalize_entity_name("  The Franklin  BBQ! ")
        'franklin bbq'
        >>> normalize_entity_name("Joe’s Pizza")
        "joe's pizza"
    """
    if not name:
        return ""

    normalized = name.translate(_PUNCTUATION_MAP).lower().strip()
    normalized = re.sub(r"\s+", " ", normalized)

    # Remove leading/trailing punctuation (but keep internal)
    normalized = re.sub(r"^[^\w]+|[^\w]+$", "", normalized)

    for article in LEADING_ARTICLES:
        if normalized.startswith(article) and len(normalized) > len(article):
            normalized = normalized[len(article) :]
            break

    return normalized


def names_are_equivalent(name1: str, name2: str) -> bool:
    """Check if two names are equivalent after normalization."""
    return normalize_entity_name(name1) == normalize_entity_name(name2)


def correct_typos(
    term: str,
    vocabulary: Iterable[str] = FOOD_VOCABULARY,
    threshold: int = TYPO_CORRECTION_THRESHOLD,
) -> str:
    """Correct unambiguous misspellings word by word.

    A word is corrected when it appears in the explicit typo table, or
    when exactly one vocabulary word scores at or above ``threshold``
    with rapidfuzz ``fuzz.ratio``. Known words (and plurals of known
    words) are left alone.

    Args:
        term: Normalized food or attribute term.
        vocabulary: Known words.
        threshold: Minimum similarity (0-100) for a fuzzy correction.

    Returns:
        Corrected term.

    Example:
        >>> correct_typos("chicken sandwhich")
        'chicken sandwich'
    """
    if term in TYPO_CORRECTIONS:
        return TYPO_CORRECTIONS[term]

    known = vocabulary if isinstance(vocabulary, (set, frozenset)) else frozenset(vocabulary)
    corrected = []
    for word in term.split(" "):
        replacement = TYPO_CORRECTIONS.get(word)
        if replacement is None and word not in known and singularize(word) not in known:
            if len(word) >= _MIN_FUZZY_WORD_LENGTH and word.isalpha():
                candidates = process.extract(
                    word, sorted(known), scorer=fuzz.ratio, score_cutoff=threshold, limit=2
                )
                if len(candidates) == 1:
                    replacement = candidates[0][0]
        if replacement is not None and replacement != word:
            logger.debug("Typo corrected", original=word, corrected=replacement)
            corrected.append(replacement)
        else:
            corrected.append(word)
    return " ".join(corrected)


def _normalize_terms(terms: Sequence[str], typo_threshold: int) -> list[str]:
    normalized = []
    for term in terms:
        clean = correct_typos(normalize_entity_name(term), threshold=typo_threshold)
        if clean and clean not in normalized:
            normalized.append(clean)
    return normalized


def _strip_attribute_words(term: str, attributes: set[str]) -> str:
    return " ".join(word for word in term.split(" ") if word not in attributes)


class MentionNormalizer:
    """Assembles final mention records with normalized names.

    Example:
        >>> normalizer = MentionNormalizer()
        >>> record = normalizer.normalize(raw_record)
        >>> record.restaurant_name
        'franklin bbq'
    """

    def __init__(self, typo_threshold: int = TYPO_CORRECTION_THRESHOLD) -> None:
        """Initialize the normalizer.

        Args:
            typo_threshold: Minimum rapidfuzz score for a fuzzy typo fix.
        """
        self.typo_threshold = typo_threshold

    def normalize(self, record: MentionRecord) -> MentionRecord | None:
        """Normalize one mention record.

        Args:
            record: Raw record from an extractor.

        Returns:
            Normalized copy, or None when the restaurant name is empty
            after normalization.
        """
        restaurant = normalize_entity_name(record.restaurant_name)
        if not restaurant:
            logger.debug("Mention dropped: empty restaurant name", source_id=record.source_id)
            return None

        selective = _normalize_terms(record.food_attributes_selective, self.typo_threshold)
        descriptive = [
            term
            for term in _normalize_terms(record.food_attributes_descriptive, self.typo_threshold)
            if term not in selective
        ]
        restaurant_attributes = _normalize_terms(record.restaurant_attributes, self.typo_threshold)
        attributes = {*selective, *descriptive}

        food_name = None
        categories: list[str] = []
        if record.food_name:
            food = correct_typos(normalize_entity_name(record.food_name), threshold=self.typo_threshold)
            decomposition = decompose_food_term(food, attributes)
            if decomposition is not None:
                food_name = decomposition.primary
                candidates = [
                    food_name,
                    *(
                        singularize(_strip_attribute_words(term, attributes))
                        for term in _normalize_terms(record.food_categories, self.typo_threshold)
                    ),
                    *decomposition.categories,
                ]
                for term in candidates:
                    if term and term not in attributes and term not in categories:
                        categories.append(term)

        return record.model_copy(
            update={
                "restaurant_name": restaurant,
                "food_name": food_name,
                "food_categories": categories,
                "food_attributes_selective": selective if food_name else [],
                "food_attributes_descriptive": descriptive if food_name else [],
                "restaurant_attributes": restaurant_attributes,
                "is_menu_item": record.is_menu_item if food_name else False,
            }
        )

    def normalize_all(self, records: Iterable[MentionRecord]) -> list[MentionRecord]:
        """Normalize records, dropping empties and exact duplicates."""
        normalized: list[MentionRecord] = []
        seen: set[str] = set()
        for record in records:
            result = self.normalize(record)
            if result is None:
                continue
            fingerprint = result.model_dump_json()
            if fingerprint not in seen:
                seen.add(fingerprint)
                normalized.append(result)
        return normalized
