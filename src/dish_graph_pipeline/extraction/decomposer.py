"""Compound food term decomposition.

Breaks a food phrase into its canonical primary term and an ordered list
of parent categories, e.g. "nashville hot chicken sandwich" becomes
primary "nashville hot chicken sandwich" with categories ending in
"sandwich" and "chicken".
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from dish_graph_pipeline.extraction.lexicon import (
    ATTRIBUTE_TERMS,
    COMPOUND_FOODS,
    CULINARY_PARENTS,
    FOOD_NOUNS,
    GENERIC_FOOD_HEADS,
    LEADING_ARTICLES,
    singularize,
)

_WORD_PATTERN = re.compile(r"[a-z0-9][a-z0-9'&\-]*")
_MAX_COMPOUND_WORDS = max(len(term.split()) for term in COMPOUND_FOODS)


@dataclass
class Decomposition:
    """Result of decomposing a food phrase.

    Attributes:
        primary: Full phrase minus attribute terms, in singular form.
        categories: Ordered parent categories, primary first.
        attributes: Attribute terms removed from the phrase.
    """

    primary: str
    categories: list[str] = field(default_factory=list)
    attributes: list[str] = field(default_factory=list)


def split_food_units(phrase: str) -> list[str]:
    """Tokenize a lowercase phrase, keeping multi-word foods as one unit.

    Example:
        >>> split_food_units("spicy pad thai")
        ['spicy', 'pad thai']
    """
    words = _WORD_PATTERN.findall(phrase.lower())
    units: list[str] = []
    i = 0
    while i < len(words):
        for size in range(min(_MAX_COMPOUND_WORDS, len(words) - i), 1, -1):
            candidate = " ".join(words[i : i + size])
            if candidate in COMPOUND_FOODS or singularize(candidate) in COMPOUND_FOODS:
                units.append(candidate)
                i += size
                break
        else:
            units.append(words[i])
            i += 1
    return units


def is_food_unit(unit: str) -> bool:
    """Whether a unit is a known food noun or compound food."""
    singular = singularize(unit)
    return (
        unit in FOOD_NOUNS
        or singular in FOOD_NOUNS
        or unit in COMPOUND_FOODS
        or singular in COMPOUND_FOODS
    )


def _strip_articles(phrase: str) -> str:
    for article in LEADING_ARTICLES:
        if phrase.startswith(article):
            return phrase[len(article) :]
    return phrase


def decompose_food_term(
    phrase: str,
    attribute_terms: Iterable[str] = ATTRIBUTE_TERMS,
) -> Decomposition | None:
    """Decompose a food phrase into a primary term and parent categories.

    Categories are built in three passes:
    1. Suffixes of the phrase, stripping leading modifiers one at a time
       down to the head noun.
    2. Remaining modifiers that are food nouns on their own.
    3. Known culinary parents of any unit (e.g. carnitas implies pork).

    Attribute terms are removed before any pass, so they never appear in
    the primary term or the categories.

    Args:
        phrase: Raw food phrase.
        attribute_terms: Terms classified as attributes for this mention.

    Returns:
        The decomposition, or None when nothing but attributes remains.

    Example:
        >>> decompose_food_term("house-made carnitas taco").categories
        ['carnitas taco', 'taco', 'carnitas', 'pork']
    """
    attributes = {term.lower() for term in attribute_terms}
    normalized = _strip_articles(re.sub(r"\s+", " ", phrase.lower()).strip())

    removed: list[str] = []
    units: list[str] = []
    for unit in split_food_units(normalized):
        if unit in attributes:
            removed.append(unit)
        else:
            units.append(unit)

    if not units:
        return None

    units[-1] = singularize(units[-1])
    primary = " ".join(units)
    categories: list[str] = []

    def add(term: str) -> None:
        if term and term not in categories and term not in attributes:
            categories.append(term)

    # Suffixes down to the head noun
    for start in range(len(units)):
        suffix = " ".join(units[start:])
        if start > 0 and suffix in GENERIC_FOOD_HEADS:
            continue
        add(suffix)

    # Standalone food modifiers
    for unit in units[:-1]:
        if is_food_unit(unit) and unit not in GENERIC_FOOD_HEADS:
            add(singularize(unit))

    # Implied culinary parents
    for term in [primary, *(singularize(unit) for unit in units)]:
        for parent in CULINARY_PARENTS.get(term, ()):
            add(parent)

    return Decomposition(primary=primary, categories=categories, attributes=removed)
