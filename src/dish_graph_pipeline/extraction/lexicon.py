"""Vocabularies for rule-based classification of community food content.

These lists are illustrative, not closed enums: they seed the heuristics
in the admission filter, the classifier, the decomposer and the menu-item
classifier. Scope of context-dependent attributes is decided by
``classifier.infer_attribute_scope`` from usage, never by lookup alone.

It covers:
- Food nouns (single and multi-word) and known culinary parent categories
- Dish-only, restaurant-only and context-dependent attribute terms
- Sentiment, holistic praise and negative-recommendation language
- Admission patterns (requests, promotions, hearsay, closures, affirmations)
- Plural → singular normalization and unambiguous typo corrections
"""

import re

# =============================================================================
# FOOD VOCABULARY
# =============================================================================
# Head nouns and components that can stand alone as a food entity.

FOOD_NOUNS: frozenset[str] = frozenset(
    {
        # Sandwiches, burgers and handhelds
        "burger",
        "sandwich",
        "sub",
        "hoagie",
        "wrap",
        "cheesesteak",
        "reuben",
        "melt",
        "slider",
        "taco",
        "burrito",
        "quesadilla",
        "enchilada",
        "tamale",
        "torta",
        "gyro",
        "shawarma",
        "falafel",
        "kebab",
        "empanada",
        "arepa",
        "bao",
        "bagel",
        # Pizza, pasta, bread
        "pizza",
        "slice",
        "calzone",
        "pasta",
        "lasagna",
        "gnocchi",
        "spaghetti",
        "ravioli",
        "carbonara",
        "bread",
        "naan",
        "pita",
        "biscuit",
        "croissant",
        "pastry",
        "donut",
        "doughnut",
        "kolache",
        "waffle",
        "pancake",
        "crepe",
        # Proteins
        "chicken",
        "pork",
        "beef",
        "brisket",
        "rib",
        "steak",
        "sausage",
        "pastrami",
        "carnitas",
        "barbacoa",
        "birria",
        "lamb",
        "duck",
        "turkey",
        "bacon",
        "ham",
        "meatball",
        "wing",
        "nugget",
        "fish",
        "salmon",
        "tuna",
        "shrimp",
        "oyster",
        "crab",
        "lobster",
        "seafood",
        "tofu",
        "egg",
        # Asian dishes
        "ramen",
        "pho",
        "udon",
        "soba",
        "noodle",
        "dumpling",
        "sushi",
        "sashimi",
        "nigiri",
        "roll",
        "curry",
        "bibimbap",
        "kimchi",
        "katsu",
        "tonkatsu",
        "biryani",
        "samosa",
        "poke",
        # Sides, bowls and plates
        "soup",
        "salad",
        "bowl",
        "platter",
        "plate",
        "rice",
        "fries",
        "chips",
        "queso",
        "guacamole",
        "salsa",
        "hummus",
        "nacho",
        "side",
        "cheese",
        "omelette",
        "grits",
        "bbq",
        "barbecue",
        # Sweets and drinks
        "dessert",
        "cake",
        "pie",
        "cookie",
        "brownie",
        "cheesecake",
        "gelato",
        "sorbet",
        "churro",
        "coffee",
        "latte",
        "espresso",
        "tea",
        "beer",
        "cocktail",
        "margarita",
        "milkshake",
        "shake",
        "smoothie",
        # Meals
        "breakfast",
        "brunch",
        "food",
        "cuisine",
        "dish",
        "meal",
    }
)

# Multi-word food units kept atomic when tokenizing.
COMPOUND_FOODS: frozenset[str] = frozenset(
    {
        "pad thai",
        "pad see ew",
        "banh mi",
        "dim sum",
        "hot dog",
        "ice cream",
        "fried rice",
        "fried chicken",
        "mac and cheese",
        "tikka masala",
        "french toast",
        "hash brown",
        "al pastor",
        "carne asada",
        "xiao long bao",
        "hot pot",
        "egg roll",
        "spring roll",
        "corned beef",
        "tres leches",
        "chile relleno",
        "breakfast taco",
        "lobster roll",
        "tom yum",
    }
)

# Heads that name a generic class of food rather than a dish.
GENERIC_FOOD_HEADS: frozenset[str] = frozenset(
    {"food", "cuisine", "dish", "meal", "fare", "stuff", "option", "eats", "menu"}
)

# Bare nouns that name a broad category rather than an orderable item.
CATEGORY_NOUNS: frozenset[str] = frozenset(
    {
        "bbq",
        "barbecue",
        "seafood",
        "dessert",
        "sushi",
        "breakfast",
        "brunch",
        "pastry",
        "noodle",
        "dim sum",
        "taco",
        "pizza",
        "burger",
        "sandwich",
        "curry",
        "soup",
        "coffee",
        "beer",
        "cocktail",
    }
)

# Known culinary parent categories not always present in the text.
CULINARY_PARENTS: dict[str, tuple[str, ...]] = {
    "brisket": ("bbq", "beef"),
    "rib": ("bbq",),
    "pastrami": ("beef",),
    "corned beef": ("beef",),
    "carnitas": ("pork",),
    "al pastor": ("pork",),
    "carne asada": ("beef",),
    "barbacoa": ("beef",),
    "birria": ("beef",),
    "pad thai": ("noodle", "thai food"),
    "pad see ew": ("noodle", "thai food"),
    "ramen": ("noodle soup", "noodle"),
    "pho": ("noodle soup", "noodle"),
    "udon": ("noodle",),
    "soba": ("noodle",),
    "banh mi": ("sandwich",),
    "cheesesteak": ("sandwich",),
    "reuben": ("sandwich",),
    "hoagie": ("sandwich",),
    "sub": ("sandwich",),
    "nigiri": ("sushi",),
    "sashimi": ("sushi",),
    "xiao long bao": ("dumpling",),
    "croissant": ("pastry",),
    "kolache": ("pastry",),
    "donut": ("pastry",),
    "gelato": ("dessert", "ice cream"),
    "ice cream": ("dessert",),
    "cheesecake": ("dessert", "cake"),
    "cake": ("dessert",),
    "brownie": ("dessert",),
    "churro": ("dessert",),
    "tres leches": ("dessert", "cake"),
    "fried chicken": ("chicken",),
    "wing": ("chicken",),
    "nugget": ("chicken",),
    "tonkatsu": ("pork",),
    "lobster roll": ("sandwich", "seafood"),
    "shrimp": ("seafood",),
    "oyster": ("seafood",),
    "crab": ("seafood",),
    "lobster": ("seafood",),
    "latte": ("coffee",),
    "espresso": ("coffee",),
    "margarita": ("cocktail",),
}

# =============================================================================
# ATTRIBUTE VOCABULARY
# =============================================================================

# Attributes that only ever describe a dish.
DISH_ATTRIBUTE_TERMS: frozenset[str] = frozenset(
    {
        "spicy",
        "mild",
        "crispy",
        "crunchy",
        "tender",
        "juicy",
        "flaky",
        "house-made",
        "homemade",
        "handmade",
        "hand-pulled",
        "fresh",
        "smoked",
        "grilled",
        "roasted",
        "braised",
        "charred",
        "wood-fired",
        "thin-crust",
        "deep-dish",
        "cheesy",
        "saucy",
        "creamy",
        "buttery",
        "savory",
        "sweet",
        "big",
        "huge",
        "giant",
        "massive",
        "loaded",
        "smash",
        "smashed",
        "double",
        "street-style",
    }
)

# Attributes that only ever describe a restaurant.
RESTAURANT_ATTRIBUTE_TERMS: frozenset[str] = frozenset(
    {
        "patio",
        "rooftop",
        "romantic",
        "cozy",
        "casual",
        "upscale",
        "family-friendly",
        "kid-friendly",
        "dog-friendly",
        "cash-only",
        "byob",
        "late-night",
        "dive",
        "quiet",
        "lively",
        "affordable",
        "cheap",
        "friendly",
        "fast",
    }
)

# Attributes whose scope depends on what they modify.
CONTEXT_DEPENDENT_TERMS: frozenset[str] = frozenset(
    {
        "italian",
        "thai",
        "mexican",
        "chinese",
        "japanese",
        "korean",
        "vietnamese",
        "indian",
        "french",
        "greek",
        "mediterranean",
        "southern",
        "cajun",
        "tex-mex",
        "authentic",
        "vegan",
        "vegetarian",
        "gluten-free",
        "dairy-free",
        "halal",
        "kosher",
        "organic",
    }
)

ATTRIBUTE_TERMS: frozenset[str] = (
    DISH_ATTRIBUTE_TERMS | RESTAURANT_ATTRIBUTE_TERMS | CONTEXT_DEPENDENT_TERMS
)

# Nouns that refer to the establishment rather than its food.
RESTAURANT_NOUNS: frozenset[str] = frozenset(
    {
        "restaurant",
        "place",
        "spot",
        "joint",
        "shop",
        "truck",
        "bar",
        "cafe",
        "diner",
        "bistro",
        "eatery",
        "location",
        "service",
        "staff",
        "vibe",
        "atmosphere",
        "ambiance",
        "decor",
    }
)

INTENSIFIERS: frozenset[str] = frozenset(
    {"so", "very", "really", "super", "incredibly", "insanely", "extremely", "pretty", "too"}
)

NEGATORS: frozenset[str] = frozenset(
    {"not", "never", "no", "isn't", "wasn't", "aren't", "weren't", "don't", "didn't", "nothing"}
)

# =============================================================================
# SENTIMENT VOCABULARY
# =============================================================================

POSITIVE_TERMS: frozenset[str] = frozenset(
    {
        "amazing",
        "great",
        "best",
        "love",
        "loved",
        "loves",
        "delicious",
        "incredible",
        "fantastic",
        "excellent",
        "awesome",
        "good",
        "solid",
        "favorite",
        "fav",
        "fire",
        "legit",
        "phenomenal",
        "outstanding",
        "perfect",
        "tasty",
        "yummy",
        "bomb",
        "recommend",
        "must-try",
        "worth",
        "underrated",
        "unreal",
        "superb",
        "stellar",
        "killer",
        "goat",
    }
)

NEGATIVE_TERMS: frozenset[str] = frozenset(
    {
        "suck",
        "sucks",
        "sucked",
        "bad",
        "worst",
        "avoid",
        "terrible",
        "awful",
        "mediocre",
        "overrated",
        "disappointing",
        "disappointed",
        "bland",
        "meh",
        "gross",
        "dry",
        "soggy",
        "overpriced",
        "rude",
        "slow",
        "long",
        "wait",
    }
)

# Explicit language that turns a listed restaurant into a non-recommendation.
NEGATIVE_RECOMMENDATION_PATTERN = re.compile(
    r"\b(avoid|worst|bad|don'?t go|do not go|stay away|never go|skip (it|this|that))\b",
    re.IGNORECASE,
)

HOLISTIC_PRAISE_PATTERN = re.compile(
    r"\b(love (this|that|the) (place|spot)|can'?t go wrong|everything (is|was|i'?ve had) "
    r"(good|great|amazing|delicious)|never disappoints?|my go-?to|(favorite|fav|best) "
    r"(place|spot|restaurant)|highly recommend|a must|worth (the|a) (trip|visit|wait))\b",
    re.IGNORECASE,
)

# =============================================================================
# ADMISSION PATTERNS
# =============================================================================

RECOMMENDATION_REQUEST_PATTERN = re.compile(
    r"(\bwhere (should|can|do|to)\b|\brecommend(ation)?s?\b.*\?|\bsuggestions?\b|"
    r"\bbest\b.+\?|\blooking for\b|\bany (good|recs)\b|\bwhat'?s good\b|"
    r"\bwhere('?s| is) (the|a) (best|good)\b)",
    re.IGNORECASE,
)

PROMOTIONAL_PATTERN = re.compile(
    r"(\buse (my |our )?code\b|\bpromo\b|\bdiscount code\b|\d+% off\b|\bfollow us\b|"
    r"\bcheck out our\b|\bgrand opening\b|\bdm us\b|\bour new menu\b|\bsponsored\b|"
    r"\bgiveaway\b|\blink in bio\b|\bwe('re| are) (now )?open\b)",
    re.IGNORECASE,
)

HEARSAY_PATTERN = re.compile(
    r"(\bi('ve)? hear(d)?\b|\bheard (that|it'?s)\b|\bapparently\b|\bsupposedly\b|"
    r"\bmy (friend|buddy|coworker|wife|husband|partner) (says|said|told)\b|"
    r"\bpeople (say|said)\b|\breportedly\b|\bsomeone told me\b|\bhaven'?t (been|tried)\b)",
    re.IGNORECASE,
)

NOT_CURRENT_PATTERN = re.compile(
    r"(\bclosed (down|permanently)\b|\bpermanently closed\b|\bused to (be|have)\b|"
    r"\bno longer\b|\bshut down\b|\bout of business\b|\bback in the day\b|\brip\b)",
    re.IGNORECASE,
)

SHORT_AFFIRMATION_PATTERN = re.compile(
    r"^\s*(\+1|this|agreed|agree|same|seconded|second(ed)? this|100%|exactly|"
    r"so much this|came here to say this|yes|yep|facts)\s*[.!]*\s*$",
    re.IGNORECASE,
)

NON_FOOD_TOPIC_TERMS: frozenset[str] = frozenset(
    {"parking", "traffic", "rent", "lease", "weather", "landlord", "permit", "zoning"}
)

# =============================================================================
# MENU-ITEM CUE PHRASES
# =============================================================================

MENU_ITEM_CUES = re.compile(
    r"\b(try (their|the)|known for( their| the)?|ordered( the| their)?|order the|get the|"
    r"got the|had the|go for the|signature)\b",
    re.IGNORECASE,
)

CATEGORY_CUES = re.compile(
    r"\b(type of|types of|kind of|kinds of|all kinds of|specializes? in|specialize in|"
    r"variety of|selection of|lots of)\b",
    re.IGNORECASE,
)

ORDER_VERBS = re.compile(r"\b(ordered|order|got|get|had|ate|tried)\b", re.IGNORECASE)

# =============================================================================
# WORD NORMALIZATION
# =============================================================================

STOPWORDS: frozenset[str] = frozenset(
    {
        "the",
        "a",
        "an",
        "their",
        "my",
        "our",
        "your",
        "his",
        "her",
        "its",
        "this",
        "that",
        "these",
        "those",
        "is",
        "are",
        "was",
        "were",
        "be",
        "been",
        "and",
        "or",
        "but",
        "of",
        "in",
        "at",
        "on",
        "for",
        "with",
        "to",
        "from",
        "it",
        "i",
        "we",
        "you",
        "they",
        "he",
        "she",
        "me",
        "us",
        "them",
        "get",
        "got",
        "had",
        "have",
        "has",
        "ordered",
        "order",
        "try",
        "tried",
        "eat",
        "ate",
        "like",
        "liked",
        "some",
        "any",
        "all",
        "if",
        "just",
        "also",
        "there",
        "here",
        "what",
        "where",
        "which",
        "who",
        "should",
        "would",
        "could",
        "can",
        "will",
        "do",
        "does",
        "did",
        "go",
        "went",
        "by",
        "as",
        "than",
        "then",
    }
)

LEADING_ARTICLES: tuple[str, ...] = ("the ", "a ", "an ")

IRREGULAR_PLURALS: dict[str, str] = {
    "fries": "fries",
    "chips": "chips",
    "grits": "grits",
    "carnitas": "carnitas",
    "hummus": "hummus",
    "tres leches": "tres leches",
    "nachos": "nacho",
    "tacos": "taco",
    "burritos": "burrito",
    "tamales": "tamale",
    "empanadas": "empanada",
    "tomatoes": "tomato",
    "potatoes": "potato",
    "pastries": "pastry",
    "knives": "knife",
    "loaves": "loaf",
    "leaves": "leaf",
    "cookies": "cookie",
    "brownies": "brownie",
    "smoothies": "smoothie",
    "pies": "pie",
    "ribs": "rib",
    "wings": "wing",
    "sandwiches": "sandwich",
    "dishes": "dish",
    "quesadillas": "quesadilla",
}

# Unambiguous misspellings seen in community text.
TYPO_CORRECTIONS: dict[str, str] = {
    "sandwhich": "sandwich",
    "sandwhiches": "sandwiches",
    "brisquet": "brisket",
    "expresso": "espresso",
    "burritto": "burrito",
    "quesedilla": "quesadilla",
    "jalepeno": "jalapeno",
    "chipolte": "chipotle",
    "tirimisu": "tiramisu",
    "cappucino": "cappuccino",
    "pho's": "pho",
    "bbq's": "bbq",
}


def singularize(word: str) -> str:
    """Reduce a (possibly multi-word) food term to singular form.

    Only the final word is inflected; modifiers stay as written.

    Args:
        word: Lowercase term.

    Returns:
        Singular form.

    Example:
        >>> singularize("tacos")
        'taco'
        >>> singularize("chicken sandwiches")
        'chicken sandwich'
    """
    if not word:
        return word
    if word in IRREGULAR_PLURALS:
        return IRREGULAR_PLURALS[word]
    head, _, last = word.rpartition(" ")
    if head:
        return f"{head} {singularize(last)}"
    if last in IRREGULAR_PLURALS:
        return IRREGULAR_PLURALS[last]
    if len(last) <= 3 or last.endswith(("ss", "us", "is")):
        return last
    if last.endswith("ies"):
        return last[:-3] + "y"
    if last.endswith(("ches", "shes", "xes", "sses")):
        return last[:-2]
    if last.endswith("s"):
        return last[:-1]
    return last


def is_plural(word: str) -> bool:
    """Whether the final word of a term is a plural form."""
    last = word.rpartition(" ")[2]
    if last in IRREGULAR_PLURALS:
        return IRREGULAR_PLURALS[last] != last
    return singularize(last) != last


# Verbs, adverbs and quantifiers that never belong inside a food phrase.
FILLER_WORDS: frozenset[str] = frozenset(
    {
        "grab",
        "grabbed",
        "serve",
        "serves",
        "served",
        "make",
        "makes",
        "made",
        "need",
        "want",
        "wanted",
        "come",
        "came",
        "check",
        "visit",
        "visited",
        "having",
        "getting",
        "eating",
        "ordering",
        "trying",
        "specialize",
        "specializes",
        "say",
        "said",
        "think",
        "thought",
        "know",
        "known",
        "only",
        "even",
        "still",
        "always",
        "definitely",
        "probably",
        "maybe",
        "literally",
        "honestly",
        "out",
        "up",
        "down",
        "about",
        "over",
        "around",
        "near",
        "area",
        "town",
        "city",
        "neighborhood",
        "one",
        "two",
        "three",
        "lot",
        "lots",
        "much",
        "many",
        "more",
        "most",
        "every",
        "everything",
        "something",
        "anything",
        "time",
        "times",
        "today",
        "yesterday",
        "week",
        "weekend",
        "night",
        "line",
        "ever",
        "now",
        "when",
        "how",
        "why",
        "because",
        "since",
        "while",
        "though",
        "although",
        "kind",
        "type",
        "variety",
        "selection",
        "all",
        "other",
        "else",
        "sure",
        "place",
    }
)
