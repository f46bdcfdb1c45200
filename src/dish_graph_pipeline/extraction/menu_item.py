"""Menu-item inference for extracted food terms.

Decides whether a food term names a specific orderable dish or a broad
category, using ordered heuristics. The first rule that gives a confident
signal wins.
"""

import re
from collections.abc import Sequence
from typing import NamedTuple

from dish_graph_pipeline.extraction.decomposer import split_food_units
from dish_graph_pipeline.extraction.lexicon import (
    CATEGORY_CUES,
    CATEGORY_NOUNS,
    GENERIC_FOOD_HEADS,
    MENU_ITEM_CUES,
    ORDER_VERBS,
    is_plural,
    singularize,
)

DETERMINERS: frozenset[str] = frozenset(
    {"the", "their", "a", "an", "this", "that", "my", "his", "her", "our", "its"}
)


class MenuItemDecision(NamedTuple):
    """Outcome of menu-item inference and the rule that decided it."""

    is_menu_item: bool
    rule: str


def _locate(surface: str, sentence: str) -> tuple[str, str] | None:
    """Find a surface form in the sentence.

    Returns:
        (text before the match, matched text), or None if absent.
    """
    match = re.search(rf"(?<![\w-]){re.escape(surface)}(?![\w-])", sentence, re.IGNORECASE)
    if match is None:
        return None
    return sentence[: match.start()], match.group(0).lower()


def _previous_word(prefix: str) -> str:
    words = re.findall(r"[a-z0-9'\-]+", prefix.lower())
    return words[-1] if words else ""


def _specificity(term: str, determined: bool) -> bool | None:
    units = split_food_units(term)
    if not units:
        return None
    head = singularize(units[-1])
    if head in GENERIC_FOOD_HEADS:
        return False
    if len(units) >= 2:
        return True
    if head in CATEGORY_NOUNS and not determined:
        return False
    return None


def _plurality(surface: str, determined: bool) -> bool | None:
    if is_plural(surface):
        return False
    if determined:
        return True
    return None


def _cue_phrase(prefix: str) -> bool | None:
    # Only the words right before the term count as its cue
    window = " ".join(prefix.split()[-4:])
    if CATEGORY_CUES.search(window):
        return False
    if MENU_ITEM_CUES.search(window):
        return True
    return None


def _co_mention(term: str, co_mentions: Sequence[str]) -> bool | None:
    for other in co_mentions:
        if other == term:
            continue
        if other.endswith(f" {term}"):
            return False
        if term.endswith(f" {other}"):
            return True
    return None


def classify_menu_item(
    term: str,
    sentence: str,
    surface: str | None = None,
    co_mentions: Sequence[str] = (),
) -> MenuItemDecision:
    """Decide whether a food term is a specific menu item.

    Rules, in order:
    1. Specificity: modified terms are menu items, bare category nouns
       and generic heads ("thai food") are not.
    2. Plurality: plural phrasing is general, singular with a determiner
       ("the pad thai") is specific.
    3. Cue phrases: "ordered the X" / "known for X" vs "type of X" /
       "specialize in X".
    4. Co-mention: a more specific sibling makes the general term a
       category and the specific term a menu item.
    5. Default: only terms framed as something ordered are menu items.

    Args:
        term: Clean (decomposed primary) food term.
        sentence: Surrounding sentence or clause.
        surface: Form of the term as written, if it differs from ``term``.
        co_mentions: Other food terms mentioned in the same content.

    Returns:
        MenuItemDecision with the deciding rule name.

    Example:
        >>> classify_menu_item("pad thai", "I ordered the pad thai").is_menu_item
        True
        >>> classify_menu_item("thai food", "They specialize in Thai food").is_menu_item
        False
    """
    written = (surface or term).lower()
    located = _locate(written, sentence) or _locate(term, sentence)
    prefix = located[0] if located else ""
    determined = _previous_word(prefix) in DETERMINERS

    checks = (
        ("specificity", lambda: _specificity(term, determined)),
        ("plurality", lambda: _plurality(written, determined)),
        ("cue_phrase", lambda: _cue_phrase(prefix)),
        ("co_mention", lambda: _co_mention(term, co_mentions)),
    )
    for rule, check in checks:
        signal = check()
        if signal is not None:
            return MenuItemDecision(signal, rule)

    return MenuItemDecision(bool(ORDER_VERBS.search(prefix)), "default")
