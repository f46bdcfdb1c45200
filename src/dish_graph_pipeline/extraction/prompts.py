"""Extraction prompts for restaurant and dish mentions.

The system prompt carries the scope rules the LLM must apply; the user
prompt carries one content unit, its parent context and any hints the
admission filter produced.
"""

import json

from dish_graph_pipeline.models import ContentUnit

# =============================================================================
# SCOPE RULES
# =============================================================================

EXTRACTION_SYSTEM_PROMPT = """
## TASK: Extract restaurant and dish mentions from community food discussion

You read one Reddit post or comment and return structured mentions of
restaurants and the foods people recommend there.

## ADMISSION RULES

- Only extract first-hand positive experiences, or replies listing places
  in answer to a recommendation request.
- Never extract from: promotional content, requests for recommendations,
  secondhand hearsay ("I heard...", "my friend says..."), places that have
  closed, or content about non-food topics.
- Every mention needs a restaurant AND (a food, a restaurant attribute, or
  clear holistic praise of the restaurant).
- Neutral or negative caveats ("but the wait is long", "sides suck") are
  ignored: never extract them as attributes and never skip because of them.

## RECOMMENDATION REPLIES

- Request names no dish ("Where should I eat?"): one restaurant-only mention
  per restaurant named, general_praise = true, food_name = null, unless the
  reply says "avoid", "worst", "bad" or "don't go" about it.
- Request names a dish ("Best burger in EV?"):
  - If the reply ties a food to a restaurant, emit one mention per
    restaurant-food pair with normal menu-item inference.
  - Otherwise emit ONE mention with the requested dish as food_name,
    is_menu_item = false, and general_praise = true only if the reply also
    praises the restaurant as a whole.

## ENTITY RULES

### 1. Names
- All names lowercase; strip leading "the", "a", "an".
- food_name is the full dish phrase, singular, WITHOUT attribute words.

### 2. Categories
- food_categories starts with food_name, then each shorter phrase obtained
  by dropping leading modifiers, then standalone food nouns, then known
  parents (e.g. "carnitas" implies "pork").
- Example: "nashville hot chicken sandwich" →
  ["nashville hot chicken sandwich", "hot chicken sandwich",
   "chicken sandwich", "sandwich", "chicken"]
- Attribute words NEVER appear in food_categories.

### 3. Attributes
- Dish attributes describe the food ("spicy", "house-made", "vegan").
  - selective: narrows the dish ("vegan sandwiches")
  - descriptive: describes this instance ("this sandwich is so big")
- Restaurant attributes describe the place ("patio", "cozy", "byob").
- Cuisine/diet words depend on what they modify: "italian sandwich" is a
  dish attribute, "italian restaurant" is a restaurant attribute.

### 4. Menu items
- is_menu_item = true for a specific orderable dish ("I ordered the pad
  thai", "try their carnitas taco").
- is_menu_item = false for broad categories ("they specialize in thai
  food", "all kinds of tacos").

### 5. General praise
- general_praise = true when the restaurant itself is praised as a whole
  ("Franklin BBQ is amazing"). Emit it on the food mention; do not emit a
  separate restaurant-only mention for the same restaurant.

## OUTPUT FORMAT

Return a JSON object:
{"mentions": [{"restaurant_name": str, "food_name": str | null,
  "food_categories": [str], "is_menu_item": bool,
  "food_attributes_selective": [str], "food_attributes_descriptive": [str],
  "restaurant_attributes": [str], "general_praise": bool,
  "source_id": str}]}

Return {"mentions": []} when nothing qualifies.
"""

EXTRACTION_USER_PROMPT = """
## SOURCE
source_id: {source_id}
source_type: {source_type}
subreddit: r/{subreddit}

## PARENT CONTEXT (context only, never extract from it)
{parent_context}

## RECOMMENDATION REQUEST
{request}

## KNOWN RESTAURANTS
{known_restaurants}

## CONTENT
{text}
"""

AFFIRMATION_NOTE = (
    "The content is a short affirmation of its parent. Copy the parent's "
    "mentions, using this unit's source_id."
)


def build_extraction_prompt(
    unit: ContentUnit,
    request_text: str | None = None,
    request_dish: str | None = None,
    known_restaurants: list[str] | None = None,
    affirmation: bool = False,
) -> list[dict[str, str]]:
    """Build chat messages for one content unit.

    Args:
        unit: Content unit to extract from.
        request_text: Parent recommendation request, if the unit replies to one.
        request_dish: Dish the request names, if any.
        known_restaurants: Restaurant names to prefer when matching spans.
        affirmation: Whether the unit is a short affirmation of its parent.

    Returns:
        Messages for the chat completion API.
    """
    if request_text:
        request = f"{request_text}\nRequested dish: {request_dish or 'none'}"
    else:
        request = "none"

    user_prompt = EXTRACTION_USER_PROMPT.format(
        source_id=unit.source_id,
        source_type=unit.source_type.value,
        subreddit=unit.subreddit,
        parent_context=unit.parent_context_text or "none",
        request=request,
        known_restaurants=json.dumps(known_restaurants or []),
        text=unit.text,
    )
    if affirmation:
        user_prompt = f"{user_prompt}\n{AFFIRMATION_NOTE}\n"

    return [
        {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT.strip()},
        {"role": "user", "content": user_prompt.strip()},
    ]
