"""Entity and attribute classification for community food content.

Identifies restaurant references, food phrases and attribute terms in a
content unit, scopes each attribute to a dish or a restaurant, and groups
everything by clause so sentiment and ownership can be judged locally.

Restaurant references come from three sources, in priority order:
- A gazetteer of known restaurant names (exact, case-insensitive)
- Leading title-case segments of list-style reply lines
- Capitalized multi-word spans in free text

When the unit itself names no restaurant, a single restaurant named in
the parent context is inherited.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

import structlog

from dish_graph_pipeline.extraction.decomposer import is_food_unit
from dish_graph_pipeline.extraction.lexicon import (
    COMPOUND_FOODS,
    CONTEXT_DEPENDENT_TERMS,
    DISH_ATTRIBUTE_TERMS,
    FILLER_WORDS,
    GENERIC_FOOD_HEADS,
    HOLISTIC_PRAISE_PATTERN,
    INTENSIFIERS,
    NEGATIVE_TERMS,
    NEGATORS,
    POSITIVE_TERMS,
    RESTAURANT_ATTRIBUTE_TERMS,
    RESTAURANT_NOUNS,
    STOPWORDS,
    singularize,
)
from dish_graph_pipeline.models import AttributeKind

logger = structlog.get_logger(__name__)

_TOKEN_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9'&\-]*")
_CLAUSE_SEPARATOR = re.compile(
    r"[.;!?\n]+|,|\s(?:and|but|though|although|while|plus)\s|\s[-–—]\s|[—–]",
    re.IGNORECASE,
)
_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_LINE_SEGMENT_END = re.compile(r"\s[-–—]\s|[—–:,!(]|\.\s|\.$")
_CAPITALIZED_SPAN = re.compile(
    r"(?:[A-Z][A-Za-z0-9'’&\-]*)(?:[ \t]+(?:[A-Z][A-Za-z0-9'’&\-]*|&|of|de|la|el|on|the))*"
)
_NAME_CONNECTORS = {"&", "of", "de", "la", "el", "on", "the", "and"}
_SENTENCE_STARTERS = {
    "i",
    "i'm",
    "i've",
    "im",
    "the",
    "a",
    "an",
    "my",
    "we",
    "our",
    "their",
    "they",
    "this",
    "that",
    "it",
    "its",
    "if",
    "but",
    "and",
    "also",
    "just",
    "went",
    "go",
    "try",
    "get",
    "best",
    "great",
    "love",
    "definitely",
    "honestly",
    "edit",
    "yes",
    "no",
    "omg",
    "lol",
    "you",
    "your",
    "there",
    "here",
    "what",
    "where",
    "so",
    "ok",
    "also",
}
_COPULAS = {"is", "was", "are", "were", "be", "been", "looks", "looked", "tastes", "tasted"}
_PRONOUN_SUBJECTS = {"they", "it", "this", "that", "everything"}


class AttributeScope(str, Enum):
    """What an attribute term describes."""

    DISH = "dish"
    RESTAURANT = "restaurant"


@dataclass
class RestaurantRef:
    """A restaurant reference found in text.

    Attributes:
        name: Name as written.
        start: Character offset in the unit text (-1 when inherited).
        end: End offset (-1 when inherited).
        source: "gazetteer", "list", "capitalized" or "context".
    """

    name: str
    start: int
    end: int
    source: str

    @property
    def key(self) -> str:
        return self.name.lower()


@dataclass
class Token:
    text: str
    start: int
    end: int

    @property
    def lower(self) -> str:
        return self.text.lower()


@dataclass
class FoodPhrase:
    """A food phrase with the dish attributes that modify it.

    Attributes:
        surface: Lowercase phrase as written, attributes included.
        start: Character offset of the phrase.
        end: End offset of the phrase.
        selective: Attributive terms that narrow the dish ("vegan sandwich").
        descriptive: Terms describing this instance ("the sandwich is so big").
        restaurant_attributes: Restaurant-scoped terms found inside the phrase.
    """

    surface: str
    start: int
    end: int
    selective: list[str] = field(default_factory=list)
    descriptive: list[str] = field(default_factory=list)
    restaurant_attributes: list[str] = field(default_factory=list)

    @property
    def attributes(self) -> list[str]:
        return [*self.selective, *self.descriptive, *self.restaurant_attributes]


@dataclass
class Clause:
    """A clause of the unit with its local classification."""

    text: str
    start: int
    end: int
    restaurants: list[RestaurantRef] = field(default_factory=list)
    foods: list[FoodPhrase] = field(default_factory=list)
    restaurant_attributes: list[str] = field(default_factory=list)
    positive: bool = False
    negative: bool = False
    praise_pattern: bool = False
    refers_to_restaurant: bool = False

    @property
    def is_holistic_praise(self) -> bool:
        """Positive about the restaurant as a whole, not about a dish."""
        if self.praise_pattern:
            return True
        return (
            self.positive
            and not self.negative
            and not self.foods
            and (bool(self.restaurants) or self.refers_to_restaurant)
        )


@dataclass
class UnitAnalysis:
    """Classification of one content unit."""

    text: str
    restaurants: list[RestaurantRef]
    clauses: list[Clause]

    def unique_restaurants(self) -> list[RestaurantRef]:
        """Restaurants in order of first appearance, one per name."""
        seen: set[str] = set()
        unique = []
        for ref in self.restaurants:
            if ref.key not in seen:
                seen.add(ref.key)
                unique.append(ref)
        return unique

    def owner_of(self, position: int, clause: Clause | None = None) -> RestaurantRef | None:
        """Restaurant a position in the text belongs to.

        The nearest restaurant named before the position wins; a phrase
        that precedes every restaurant belongs to the first one named in
        its clause, then to the first one named at all.
        """
        before = [ref for ref in self.restaurants if ref.start <= position]
        if before:
            return max(before, key=lambda ref: ref.start)
        if clause is not None and clause.restaurants:
            return clause.restaurants[0]
        return self.restaurants[0] if self.restaurants else None

    def clauses_for(self, restaurant: RestaurantRef) -> list[Clause]:
        """Clauses that name the restaurant or belong to it."""
        owned = []
        for clause in self.clauses:
            named = any(ref.key == restaurant.key for ref in clause.restaurants)
            owner = self.owner_of(clause.start, clause)
            if named or (owner is not None and owner.key == restaurant.key):
                owned.append(clause)
        return owned

    def foods_for(self, restaurant: RestaurantRef) -> list[tuple[FoodPhrase, Clause]]:
        """Food phrases owned by the restaurant, with their clauses."""
        owned = []
        for clause in self.clauses:
            for food in clause.foods:
                owner = self.owner_of(food.start, clause)
                if owner is not None and owner.key == restaurant.key:
                    owned.append((food, clause))
        return owned

    def all_foods(self) -> list[FoodPhrase]:
        return [food for clause in self.clauses for food in clause.foods]


def infer_attribute_scope(term: str, next_noun_is_food: bool) -> AttributeScope:
    """Scope an attribute term by how it is used.

    Dish-only and restaurant-only terms keep their fixed scope. A
    context-dependent term ("italian", "vegan") is dish-scoped when the
    adjacent noun phrase is a food; a restaurant noun, or no food noun at
    all, makes it restaurant-scoped.

    Example:
        >>> infer_attribute_scope("italian", next_noun_is_food=True)
        <AttributeScope.DISH: 'dish'>
        >>> infer_attribute_scope("italian", next_noun_is_food=False)
        <AttributeScope.RESTAURANT: 'restaurant'>
    """
    term = term.lower()
    if term in DISH_ATTRIBUTE_TERMS:
        return AttributeScope.DISH
    if term in RESTAURANT_ATTRIBUTE_TERMS:
        return AttributeScope.RESTAURANT
    return AttributeScope.DISH if next_noun_is_food else AttributeScope.RESTAURANT


def is_attribute_term(term: str) -> bool:
    term = term.lower()
    return (
        term in DISH_ATTRIBUTE_TERMS
        or term in RESTAURANT_ATTRIBUTE_TERMS
        or term in CONTEXT_DEPENDENT_TERMS
    )


# =============================================================================
# RESTAURANT REFERENCES
# =============================================================================


def _overlaps(start: int, end: int, refs: Iterable[RestaurantRef]) -> bool:
    return any(start < ref.end and ref.start < end for ref in refs)


def _looks_like_name(words: Sequence[str], allow_food_words: bool = False) -> bool:
    if not words:
        return False
    lowered = [word.lower() for word in words]
    if all(word in _NAME_CONNECTORS for word in lowered):
        return False
    # "Pad Thai" or "Thai Food" are dishes, not places
    food_like = is_food_unit(" ".join(lowered)) or all(
        is_food_unit(word) or is_attribute_term(word) for word in lowered
    )
    if food_like and not (allow_food_words and len(words) > 1):
        return False
    return all(
        word[0].isupper() or word[0].isdigit() or word.lower() in _NAME_CONNECTORS
        for word in words
    )


def find_gazetteer_restaurants(text: str, known_restaurants: Iterable[str]) -> list[RestaurantRef]:
    """Find known restaurant names, longest names first, without overlaps."""
    found: list[RestaurantRef] = []
    for name in sorted({n.strip() for n in known_restaurants if n.strip()}, key=len, reverse=True):
        pattern = re.compile(rf"(?<![\w]){re.escape(name)}(?![\w])", re.IGNORECASE)
        for match in pattern.finditer(text):
            if not _overlaps(match.start(), match.end(), found):
                found.append(RestaurantRef(match.group(0), match.start(), match.end(), "gazetteer"))
    return found


def find_list_restaurants(text: str, existing: Sequence[RestaurantRef] = ()) -> list[RestaurantRef]:
    """Leading title-case segment of each line in a list-style reply.

    Example:
        "Crispy Burger — sides suck" yields "Crispy Burger".
    """
    found: list[RestaurantRef] = []
    offset = 0
    for line in text.splitlines(keepends=True):
        marker = _LIST_MARKER.match(line)
        body_start = marker.end() if marker else 0
        body = line[body_start:].rstrip("\r\n")
        cut = _LINE_SEGMENT_END.search(body)
        segment = body[: cut.start()] if cut else body
        segment = segment.strip()
        if segment:
            start = offset + body_start + body.index(segment)
            words = segment.split()
            if (
                len(words) <= 6
                and _looks_like_name(words, allow_food_words=True)
                and not _overlaps(start, start + len(segment), [*existing, *found])
            ):
                found.append(RestaurantRef(segment, start, start + len(segment), "list"))
        offset += len(line)
    return found


def find_capitalized_restaurants(
    text: str,
    existing: Sequence[RestaurantRef] = (),
) -> list[RestaurantRef]:
    """Capitalized multi-word spans, or single words right after "at"/"from"."""
    found: list[RestaurantRef] = []
    for match in _CAPITALIZED_SPAN.finditer(text):
        words = match.group(0).split()
        start = match.start()
        # Trim sentence starters ("The", "I", "Went") from the front
        while words and words[0].lower().strip("’'") in _SENTENCE_STARTERS:
            start = text.index(words[1], start + len(words[0])) if len(words) > 1 else match.end()
            words = words[1:]
        while words and words[-1].lower() in _NAME_CONNECTORS:
            words = words[:-1]
        if not words:
            continue
        name = " ".join(words)
        end = start + len(name)
        if text[start:end] != name:
            end = text.index(words[-1], start) + len(words[-1])
            name = text[start:end]
        preceding = text[:start].rstrip().lower()
        after_preposition = preceding.endswith((" at", " from")) or preceding in {"at", "from"}
        if len(words) < 2 and not after_preposition:
            continue
        if not _looks_like_name(words) or _overlaps(start, end, [*existing, *found]):
            continue
        found.append(RestaurantRef(name, start, end, "capitalized"))
    return found


def find_restaurants(
    text: str,
    known_restaurants: Iterable[str] = (),
    *,
    list_reply: bool = False,
) -> list[RestaurantRef]:
    """Find restaurant references in text, ordered by position."""
    refs = find_gazetteer_restaurants(text, known_restaurants)
    if list_reply:
        refs.extend(find_list_restaurants(text, refs))
    refs.extend(find_capitalized_restaurants(text, refs))
    return sorted(refs, key=lambda ref: ref.start)


# =============================================================================
# TOKENS, CLAUSES, FOOD PHRASES
# =============================================================================


def _mask(text: str, refs: Sequence[RestaurantRef]) -> str:
    chars = list(text)
    for ref in refs:
        if ref.start >= 0:
            chars[ref.start : ref.end] = " " * (ref.end - ref.start)
    return "".join(chars)


def tokenize(text: str) -> list[Token]:
    """Word tokens with multi-word foods merged into single tokens."""
    raw = [Token(m.group(0), m.start(), m.end()) for m in _TOKEN_PATTERN.finditer(text)]
    merged: list[Token] = []
    i = 0
    while i < len(raw):
        for size in (3, 2):
            window = raw[i : i + size]
            if len(window) < size:
                continue
            joined = " ".join(token.lower for token in window)
            gaps = all(
                not text[a.end : b.start].strip() for a, b in zip(window, window[1:], strict=False)
            )
            if gaps and (joined in COMPOUND_FOODS or singularize(joined) in COMPOUND_FOODS):
                merged.append(Token(text[window[0].start : window[-1].end], window[0].start, window[-1].end))
                i += size
                break
        else:
            merged.append(raw[i])
            i += 1
    return merged


def split_clauses(text: str, masked: str) -> list[tuple[int, int]]:
    """Clause boundaries as (start, end) offsets."""
    protected = [
        (token.start, token.end) for token in tokenize(masked) if " " in token.text
    ]
    bounds = []
    start = 0
    for sep in _CLAUSE_SEPARATOR.finditer(masked):
        if any(sep.start() < p_end and p_start < sep.end() for p_start, p_end in protected):
            continue
        if sep.start() > start:
            bounds.append((start, sep.start()))
        start = sep.end()
    if start < len(text):
        bounds.append((start, len(text)))
    return [(s, e) for s, e in bounds if text[s:e].strip()]


def _is_negated(tokens: Sequence[Token], index: int) -> bool:
    window = tokens[max(0, index - 2) : index]
    return any(token.lower in NEGATORS for token in window)


def _sentiment(tokens: Sequence[Token]) -> tuple[bool, bool]:
    positive = negative = False
    for i, token in enumerate(tokens):
        word = token.lower
        if word in POSITIVE_TERMS:
            if _is_negated(tokens, i):
                negative = True
            else:
                positive = True
        elif word in NEGATIVE_TERMS and not _is_negated(tokens, i):
            negative = True
    return positive, negative


def _is_phrase_word(word: str) -> bool:
    return not (
        word in STOPWORDS
        or word in FILLER_WORDS
        or word in POSITIVE_TERMS
        or word in NEGATIVE_TERMS
        or word in INTENSIFIERS
        or word in NEGATORS
        or word in RESTAURANT_NOUNS
        or word.isdigit()
    )


def _food_phrases(tokens: Sequence[Token], text: str) -> list[tuple[int, int]]:
    """Token index ranges [start, end) of food phrases."""
    phrases = []
    i = 0
    while i < len(tokens):
        if not _is_phrase_word(tokens[i].lower):
            i += 1
            continue
        j = i
        while j < len(tokens) and _is_phrase_word(tokens[j].lower):
            # Runs do not cross punctuation
            if j > i and text[tokens[j - 1].end : tokens[j].start].strip():
                break
            j += 1
        last_food = None
        for k in range(i, j):
            if is_food_unit(tokens[k].lower) and tokens[k].lower not in DISH_ATTRIBUTE_TERMS:
                last_food = k
        if last_food is not None:
            head = singularize(tokens[last_food].lower)
            if not (last_food == i and head in GENERIC_FOOD_HEADS):
                phrases.append((i, last_food + 1))
        i = j
    return phrases


def _next_noun_is_food(tokens: Sequence[Token], index: int) -> bool:
    for token in tokens[index + 1 : index + 4]:
        word = token.lower
        if is_attribute_term(word) or word in INTENSIFIERS or word in {"and", ","}:
            continue
        return is_food_unit(word) and singularize(word) not in GENERIC_FOOD_HEADS
    return False


def _classify_clause(
    text: str,
    masked: str,
    start: int,
    end: int,
    refs: Sequence[RestaurantRef],
) -> Clause:
    clause = Clause(
        text=text[start:end].strip(),
        start=start,
        end=end,
        restaurants=[ref for ref in refs if ref.start >= 0 and start <= ref.start < end],
    )
    tokens = [
        Token(t.text, t.start + start, t.end + start) for t in tokenize(masked[start:end])
    ]
    clause.positive, clause.negative = _sentiment(tokens)
    clause.praise_pattern = bool(HOLISTIC_PRAISE_PATTERN.search(text[start:end]))
    lowered = [token.lower for token in tokens]
    clause.refers_to_restaurant = any(word in RESTAURANT_NOUNS for word in lowered) or bool(
        lowered and lowered[0] in _PRONOUN_SUBJECTS
    )

    # Caveats carry no attributes or foods
    if clause.negative:
        return clause

    consumed: set[int] = set()
    for phrase_start, phrase_end in _food_phrases(tokens, masked):
        phrase_tokens = tokens[phrase_start:phrase_end]
        food = FoodPhrase(
            surface=" ".join(token.lower for token in phrase_tokens),
            start=phrase_tokens[0].start,
            end=phrase_tokens[-1].end,
        )
        generic_head = singularize(phrase_tokens[-1].lower) in GENERIC_FOOD_HEADS
        for offset, token in enumerate(phrase_tokens[:-1]):
            word = token.lower
            if not is_attribute_term(word):
                continue
            # "thai food" names a cuisine, not a scoped dish
            if generic_head and word in CONTEXT_DEPENDENT_TERMS:
                continue
            index = phrase_start + offset
            scope = infer_attribute_scope(word, _next_noun_is_food(tokens, index))
            if scope is AttributeScope.RESTAURANT:
                food.restaurant_attributes.append(word)
            elif index > 0 and tokens[index - 1].lower in INTENSIFIERS:
                food.descriptive.append(word)
            else:
                food.selective.append(word)
        consumed.update(range(phrase_start, phrase_end))
        clause.foods.append(food)

    # Predicative attributes: "the brisket was so tender", "cozy patio"
    for index, token in enumerate(tokens):
        word = token.lower
        if index in consumed or not is_attribute_term(word):
            continue
        previous_food = next(
            (food for food in reversed(clause.foods) if food.end <= token.start), None
        )
        preceded_by_copula = any(
            t.lower in _COPULAS or t.lower in INTENSIFIERS for t in tokens[max(0, index - 3) : index]
        )
        next_is_food = _next_noun_is_food(tokens, index)
        scope = infer_attribute_scope(
            word,
            next_is_food or (previous_food is not None and preceded_by_copula),
        )
        if scope is AttributeScope.DISH:
            target = previous_food if previous_food is not None and preceded_by_copula else None
            if target is not None and word not in target.descriptive:
                target.descriptive.append(word)
        elif word not in clause.restaurant_attributes:
            clause.restaurant_attributes.append(word)

    return clause


def classify_unit(
    text: str,
    known_restaurants: Iterable[str] = (),
    *,
    list_reply: bool = False,
    context_text: str | None = None,
) -> UnitAnalysis:
    """Classify the restaurants, foods and attributes in a content unit.

    Args:
        text: Unit text.
        known_restaurants: Gazetteer of restaurant names.
        list_reply: Treat each line as a possible restaurant (reply to a
            recommendation request).
        context_text: Parent text, used to infer the restaurant when the
            unit itself names none.

    Returns:
        UnitAnalysis with per-clause classification.
    """
    known = list(known_restaurants)
    refs = find_restaurants(text, known, list_reply=list_reply)

    if not refs and context_text:
        context_refs = find_restaurants(context_text, known)
        unique = {ref.key: ref for ref in context_refs}
        if len(unique) == 1:
            inherited = next(iter(unique.values()))
            refs = [RestaurantRef(inherited.name, -1, -1, "context")]
            logger.debug("Restaurant inferred from parent context", restaurant=inherited.name)

    masked = _mask(text, refs)
    clauses = [
        _classify_clause(text, masked, start, end, refs)
        for start, end in split_clauses(text, masked)
    ]
    return UnitAnalysis(text=text, restaurants=refs, clauses=clauses)


def find_food_terms(text: str) -> list[str]:
    """Food phrases in free text, e.g. the dish named in a request.

    Example:
        >>> find_food_terms("Best burger in EV?")
        ['burger']
    """
    analysis = classify_unit(text)
    return [food.surface for food in analysis.all_foods()]


def dish_attribute_kinds(food: FoodPhrase) -> dict[str, AttributeKind]:
    """Selective/descriptive tag for each dish attribute of a phrase."""
    kinds = {term: AttributeKind.SELECTIVE for term in food.selective}
    for term in food.descriptive:
        kinds.setdefault(term, AttributeKind.DESCRIPTIVE)
    return kinds


def has_positive_sentiment(text: str) -> bool:
    """Whether any clause of the text is positive about food or a place."""
    if HOLISTIC_PRAISE_PATTERN.search(text):
        return True
    for start, end in split_clauses(text, text):
        positive, _ = _sentiment(tokenize(text[start:end]))
        if positive:
            return True
    return False
