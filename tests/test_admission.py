"""Tests for content admission.

Covers the skip reasons, recommendation-request detection, short
affirmations and the restaurant linkage check.
"""

from __future__ import annotations

import pytest

from dish_graph_pipeline.extraction.admission import (
    AdmissionFilter,
    SkipReason,
    detect_request,
    has_negative_recommendation,
    is_short_affirmation,
)
from dish_graph_pipeline.models import MentionRecord, SourceType


@pytest.fixture
def admission() -> AdmissionFilter:
    return AdmissionFilter()


class TestSkipReasons:
    """Tests for units that must not produce mentions."""

    def test_disabled_post_body(self, admission, make_unit) -> None:
        unit = make_unit(
            "Franklin BBQ is amazing",
            source_type=SourceType.POST,
            extract_from_post=False,
        )

        decision = admission.screen(unit)

        assert decision.admitted is False
        assert decision.reason is SkipReason.EXTRACTION_DISABLED

    def test_enabled_post_body_admitted(self, admission, make_unit) -> None:
        unit = make_unit("Franklin BBQ is amazing", source_type=SourceType.POST)

        assert admission.screen(unit).admitted is True

    def test_empty_text(self, admission, make_unit) -> None:
        assert admission.screen(make_unit("   ")).reason is SkipReason.EMPTY

    @pytest.mark.parametrize(
        ("text", "reason"),
        [
            ("Use my code TACO10 for 20% off", SkipReason.PROMOTIONAL),
            ("Where should I get tacos?", SkipReason.RECOMMENDATION_REQUEST),
            ("I heard Franklin BBQ has great brisket", SkipReason.HEARSAY),
            ("Franklin BBQ used to be amazing", SkipReason.NOT_CURRENT),
            ("Parking downtown is a nightmare", SkipReason.NON_FOOD),
            ("Went to Franklin BBQ yesterday", SkipReason.NO_POSITIVE_SENTIMENT),
        ],
    )
    def test_skip_reason(self, admission, make_unit, text, reason) -> None:
        decision = admission.screen(make_unit(text))

        assert decision.admitted is False
        assert decision.reason is reason

    def test_positive_comment_admitted(self, admission, make_unit, franklin_text) -> None:
        decision = admission.screen(make_unit(franklin_text))

        assert decision.admitted is True
        assert decision.request is None
        assert decision.is_affirmation is False


class TestRecommendationReplies:
    """Tests for replies to recommendation requests."""

    def test_request_with_dish(self) -> None:
        request = detect_request("Best burger in EV?")

        assert request is not None
        assert request.dish == "burger"

    def test_request_without_dish(self) -> None:
        request = detect_request("Where should I eat?")

        assert request is not None
        assert request.dish is None

    def test_not_a_request(self) -> None:
        assert detect_request("Franklin BBQ is amazing") is None
        assert detect_request(None) is None

    def test_reply_admitted_without_sentiment(self, admission, make_unit) -> None:
        """A bare list reply to a request is a recommendation in itself."""
        unit = make_unit("Yafa Deli", parent_context_text="Where should I eat?")

        decision = admission.screen(unit)

        assert decision.admitted is True
        assert decision.request is not None
        assert decision.request.dish is None

    def test_negative_recommendation_language(self) -> None:
        assert has_negative_recommendation("avoid this place")
        assert has_negative_recommendation("don't go there")
        assert not has_negative_recommendation("sides suck")

    @pytest.mark.parametrize("text", ["not bad at all", "honestly not the worst", "never bad"])
    def test_negated_cue_is_not_negative(self, text) -> None:
        assert not has_negative_recommendation(text)

    def test_later_unnegated_cue_counts(self) -> None:
        assert has_negative_recommendation("not bad, but avoid the fries")


class TestShortAffirmations:
    """Tests for "+1" style replies."""

    @pytest.mark.parametrize("text", ["+1", "This!", "this", "Agreed.", "same", "100%"])
    def test_affirmations(self, text) -> None:
        assert is_short_affirmation(text)

    def test_longer_text_is_not_affirmation(self) -> None:
        assert not is_short_affirmation("this place is great")

    def test_affirmation_without_parent(self, admission, make_unit) -> None:
        decision = admission.screen(make_unit("+1"))

        assert decision.admitted is False
        assert decision.reason is SkipReason.NOTHING_TO_INHERIT

    def test_affirmation_inherits_parent_mentions(self, admission, make_unit) -> None:
        parent = MentionRecord(
            restaurant_name="franklin bbq", food_name="brisket", source_id="c1"
        )

        decision = admission.screen(make_unit("+1", source_id="c2"), [parent])

        assert decision.admitted is True
        assert decision.is_affirmation is True
        assert decision.inherited_entities == [parent]

    def test_affirmation_with_parent_text(self, admission, make_unit) -> None:
        unit = make_unit("same", parent_context_text="Franklin BBQ is amazing")

        decision = admission.screen(unit)

        assert decision.admitted is True
        assert decision.is_affirmation is True

    def test_affirmation_of_empty_parent(self, admission, make_unit) -> None:
        unit = make_unit("+1", parent_context_text="Franklin BBQ is amazing")

        decision = admission.screen(unit, [])

        assert decision.admitted is False
        assert decision.reason is SkipReason.NOTHING_TO_INHERIT

    @pytest.mark.parametrize(
        "parent_text",
        [
            "My friend said Franklin BBQ brisket is amazing",
            "Use promo code BBQ10 at Franklin BBQ",
            "Where should I eat?",
        ],
    )
    def test_affirmation_of_rejected_parent_text(self, admission, make_unit, parent_text) -> None:
        decision = admission.screen(make_unit("same", parent_context_text=parent_text))

        assert decision.admitted is False
        assert decision.reason is SkipReason.NOTHING_TO_INHERIT


class TestLinkage:
    """Tests for the restaurant linkage check."""

    def test_restaurant_with_food(self) -> None:
        record = MentionRecord(restaurant_name="x", food_name="taco", source_id="c1")
        assert AdmissionFilter.has_linkage(record)

    def test_restaurant_with_praise(self) -> None:
        record = MentionRecord(restaurant_name="x", general_praise=True, source_id="c1")
        assert AdmissionFilter.has_linkage(record)

    def test_restaurant_with_attribute(self) -> None:
        record = MentionRecord(restaurant_name="x", restaurant_attributes=["patio"], source_id="c1")
        assert AdmissionFilter.has_linkage(record)

    def test_bare_restaurant(self) -> None:
        record = MentionRecord(restaurant_name="x", source_id="c1")
        assert not AdmissionFilter.has_linkage(record)

    def test_blank_restaurant(self) -> None:
        record = MentionRecord(restaurant_name="  ", food_name="taco", source_id="c1")
        assert not AdmissionFilter.has_linkage(record)
