"""Mention records exchanged between extraction, normalization and resolution.

``MentionRecord`` is both the schema the LLM must return and the output of
the rule-based extractor, so either extractor can feed the normalizer.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AttributeKind(str, Enum):
    """How a dish attribute is used in the text."""

    SELECTIVE = "selective"
    """Filters or categorizes (e.g. "vegan sandwiches")."""

    DESCRIPTIVE = "descriptive"
    """Characterizes a specific instance (e.g. "this sandwich is so big")."""


class Sentiment(str, Enum):
    """Sentiment indicator carried onto stored mentions."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class MentionRecord(BaseModel):
    """A structured restaurant/food mention ready for resolution.

    Field names match the JSON schema requested from the LLM.

    Attributes:
        restaurant_name: Restaurant the mention is about.
        food_name: Primary food term, or None for restaurant-only mentions.
        food_categories: Decomposed category hierarchy, primary term first.
        is_menu_item: Whether the food is a specific orderable item.
        food_attributes_selective: Dish attributes used to filter/categorize.
        food_attributes_descriptive: Dish attributes describing an instance.
        restaurant_attributes: Restaurant-scoped attributes.
        general_praise: Holistic positive sentiment about the restaurant.
        source_id: External id of the content unit the mention came from.
    """

    model_config = ConfigDict(extra="ignore")

    restaurant_name: str = Field(min_length=1, max_length=200)
    food_name: str | None = Field(default=None, max_length=200)
    food_categories: list[str] = Field(default_factory=list)
    is_menu_item: bool = False
    food_attributes_selective: list[str] = Field(default_factory=list)
    food_attributes_descriptive: list[str] = Field(default_factory=list)
    restaurant_attributes: list[str] = Field(default_factory=list)
    general_praise: bool = False
    source_id: str = Field(min_length=1)

    @field_validator(
        "food_categories",
        "food_attributes_selective",
        "food_attributes_descriptive",
        "restaurant_attributes",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        """Accept ``null`` for list fields, which models often emit."""
        return [] if value is None else value

    @field_validator("food_name", mode="before")
    @classmethod
    def _blank_food_as_none(cls, value: object) -> object:
        """Treat an empty food string as a restaurant-only mention."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def dish_attributes(self) -> list[str]:
        """All dish-scoped attributes, selective first."""
        return [*self.food_attributes_selective, *self.food_attributes_descriptive]

    @property
    def is_restaurant_only(self) -> bool:
        """Whether the mention carries no food."""
        return self.food_name is None


class ExtractionResponse(BaseModel):
    """Top-level structure expected from the LLM."""

    mentions: list[MentionRecord] = Field(default_factory=list)
