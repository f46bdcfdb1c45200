"""End-to-end tests for batch processing.

Runs content units through admission, rule-based extraction,
normalization, resolution and upsert against the in-memory store, plus
the failure paths: dead letters, store retries, atomicity and
cooperative cancellation.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from dish_graph_pipeline.exceptions import (
    PipelineCancelledError,
    PipelineError,
    SchemaViolationError,
)
from dish_graph_pipeline.extraction.admission import SkipReason
from dish_graph_pipeline.extraction.extractor import OpenAIExtractor
from dish_graph_pipeline.graph.upsert import UpsertEngine
from dish_graph_pipeline.models import EntityType, MentionRecord, SourceType
from dish_graph_pipeline.pipeline import BatchProcessor, BatchReport, CancellationToken
from tests.conftest import FlakyStore, StubExtractor

KNOWN = ["Franklin BBQ", "Luigi's", "Roma Deli"]


@pytest.fixture
def processor(memory_store) -> BatchProcessor:
    return BatchProcessor(memory_store, known_restaurants=KNOWN)


def _completion(content: str) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


class CancellingUpsert(UpsertEngine):
    """Requests cancellation once the first mention is applied."""

    def __init__(self, token: CancellationToken) -> None:
        super().__init__()
        self.token = token

    async def apply(self, tx, resolved, unit):
        result = await super().apply(tx, resolved, unit)
        self.token.cancel()
        return result


class ExplodingUpsert(UpsertEngine):
    """Fails after writing, inside the item's transaction."""

    async def apply(self, tx, resolved, unit):
        await super().apply(tx, resolved, unit)
        raise PipelineError("disk full")


class TestCanonicalExamples:
    """Worked examples of the extraction rules."""

    @pytest.mark.asyncio
    async def test_praise_and_dish_in_one_mention(
        self, processor, memory_store, make_unit, franklin_text
    ) -> None:
        report = await processor.process_batch([make_unit(franklin_text)])

        assert report.counts() == {
            "admitted": 1,
            "skipped": 0,
            "resolved_existing": 0,
            "created_new": 4,
            "failed": 0,
        }
        restaurant = memory_store.entity_named("franklin bbq", EntityType.RESTAURANT)
        brisket = memory_store.entity_named("brisket", EntityType.FOOD)
        assert restaurant is not None
        assert brisket is not None
        assert restaurant.general_praise_upvotes == 10

        [connection] = memory_store.connections()
        assert connection.restaurant_id == restaurant.entity_id
        assert connection.food_id == brisket.entity_id
        assert connection.is_menu_item is True
        assert connection.mention_count == 1
        assert len(memory_store.mentions()) == 1

    @pytest.mark.asyncio
    async def test_list_reply_to_open_request(self, processor, memory_store, make_unit) -> None:
        unit = make_unit("Yafa Deli\nCrispy Burger", parent_context_text="Where should I eat?")

        report = await processor.process_batch([unit])

        assert report.mentions_written == 2
        assert memory_store.connections() == []
        mentions = memory_store.mentions()
        assert [m.connection_id for m in mentions] == [None, None]
        names = {e.name for e in memory_store.entities(EntityType.RESTAURANT)}
        assert names == {"yafa deli", "crispy burger"}
        for restaurant in memory_store.entities(EntityType.RESTAURANT):
            assert restaurant.general_praise_upvotes == 10

    @pytest.mark.asyncio
    async def test_reply_to_dish_request_ignores_caveat(
        self, processor, memory_store, make_unit
    ) -> None:
        unit = make_unit("Crispy Burger — sides suck", parent_context_text="Best burger in EV?")

        report = await processor.process_batch([unit])

        assert report.mentions_written == 1
        restaurant = memory_store.entity_named("crispy burger", EntityType.RESTAURANT)
        burger = memory_store.entity_named("burger", EntityType.FOOD)
        assert restaurant is not None
        assert burger is not None
        assert restaurant.general_praise_upvotes == 0
        [connection] = memory_store.connections()
        assert connection.food_id == burger.entity_id
        assert connection.is_menu_item is False
        assert memory_store.entities(EntityType.DISH_ATTRIBUTE) == []
        assert memory_store.entities(EntityType.RESTAURANT_ATTRIBUTE) == []

    @pytest.mark.asyncio
    async def test_attribute_scope_separation(self, processor, memory_store, make_unit) -> None:
        units = [
            make_unit("Luigi's is an amazing italian restaurant", source_id="c1"),
            make_unit("Roma Deli has a great italian sandwich", source_id="c2"),
        ]

        await processor.process_batch(units)

        dish = memory_store.entity_named("italian", EntityType.DISH_ATTRIBUTE)
        place = memory_store.entity_named("italian", EntityType.RESTAURANT_ATTRIBUTE)
        assert dish is not None
        assert place is not None
        assert dish.entity_id != place.entity_id

        luigis = memory_store.entity_named("luigi's", EntityType.RESTAURANT)
        assert luigis.restaurant_attribute_ids == [place.entity_id]
        [connection] = memory_store.connections()
        assert connection.dish_attribute_ids == [dish.entity_id]


class TestIdempotence:
    """Reprocessing the same source never double-counts."""

    @pytest.mark.asyncio
    async def test_reprocessing_same_unit(
        self, processor, memory_store, make_unit, franklin_text
    ) -> None:
        unit = make_unit(franklin_text)
        await processor.process_batch([unit])

        report = await processor.process_batch([unit])

        assert report.mentions_written == 0
        assert report.duplicate_mentions == 1
        assert report.created_new == 0
        assert report.resolved_existing == 4
        [connection] = memory_store.connections()
        assert connection.mention_count == 1
        assert len(memory_store.mentions()) == 1
        restaurant = memory_store.entity_named("franklin bbq", EntityType.RESTAURANT)
        assert restaurant.general_praise_upvotes == 10

    @pytest.mark.asyncio
    async def test_concurrent_workers_create_each_entity_once(
        self, memory_store, make_unit, franklin_text
    ) -> None:
        first = BatchProcessor(memory_store, known_restaurants=KNOWN)
        second = BatchProcessor(memory_store, known_restaurants=KNOWN)

        reports = await asyncio.gather(
            first.process_batch([make_unit(franklin_text, source_id="c1")]),
            second.process_batch([make_unit(franklin_text, source_id="c2")]),
        )

        assert sum(r.created_new for r in reports) == 4
        assert sum(r.committed for r in reports) == 2
        assert len(memory_store.entities(EntityType.RESTAURANT)) == 1
        assert len(memory_store.entities()) == 4
        [connection] = memory_store.connections()
        assert connection.mention_count == 2

    @pytest.mark.asyncio
    async def test_identical_names_in_one_batch(
        self, processor, memory_store, make_unit, franklin_text
    ) -> None:
        units = [make_unit(franklin_text, source_id=f"c{i}") for i in range(3)]

        report = await processor.process_batch(units)

        assert report.created_new == 4
        assert report.resolved_existing == 8
        assert len(memory_store.entities()) == 4
        [connection] = memory_store.connections()
        assert connection.mention_count == 3


class TestAdmissionInBatch:
    """Skips and post-body rules inside a batch."""

    @pytest.mark.asyncio
    async def test_disabled_post_body_never_emits(self, memory_store, make_unit, franklin_text) -> None:
        stub = StubExtractor(
            records=[MentionRecord(restaurant_name="franklin bbq", food_name="brisket", source_id="x")]
        )
        processor = BatchProcessor(memory_store, extractor=stub)
        post = make_unit(
            franklin_text,
            source_id="p1",
            source_type=SourceType.POST,
            extract_from_post=False,
        )
        comment = make_unit(franklin_text, source_id="c1", parent_source_id="p1")

        report = await processor.process_batch([post, comment])

        assert stub.calls == ["c1"]
        assert report.skip_reasons == {SkipReason.EXTRACTION_DISABLED.value: 1}
        assert [m.source_type for m in memory_store.mentions()] == ["comment"]

    @pytest.mark.asyncio
    async def test_skip_reasons_counted(self, processor, make_unit, franklin_text) -> None:
        units = [
            make_unit(franklin_text, source_id="c1"),
            make_unit("Parking downtown is a nightmare", source_id="c2"),
            make_unit("   ", source_id="c3"),
            make_unit("the brisket is great", source_id="c4"),
        ]

        report = await processor.process_batch(units)

        assert report.admitted == 1
        assert report.skipped == 3
        assert report.skip_reasons == {"non_food": 1, "empty": 1, "no_linkage": 1}

    @pytest.mark.asyncio
    async def test_affirmation_inherits_parent_in_batch(
        self, processor, memory_store, make_unit, franklin_text
    ) -> None:
        units = [
            make_unit(franklin_text, source_id="c1"),
            make_unit("+1", source_id="c2", parent_source_id="c1"),
        ]

        report = await processor.process_batch(units)

        assert report.admitted == 2
        [connection] = memory_store.connections()
        assert connection.mention_count == 2
        assert {m.source_id for m in memory_store.mentions()} == {"c1", "c2"}

    @pytest.mark.asyncio
    async def test_affirmation_inherits_earlier_batch(
        self, processor, memory_store, make_unit
    ) -> None:
        parent = MentionRecord(restaurant_name="franklin bbq", food_name="brisket", source_id="p0")
        unit = make_unit("This!", source_id="c9", parent_source_id="p0")

        report = await processor.process_batch([unit], parent_mentions={"p0": [parent]})

        assert report.admitted == 1
        [mention] = memory_store.mentions()
        assert mention.source_id == "c9"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("parent_text", "parent_reason"),
        [
            ("My friend said Franklin BBQ brisket is amazing", "hearsay"),
            ("Use promo code BBQ10 at Franklin BBQ, the brisket is amazing", "promotional"),
        ],
    )
    async def test_affirmation_of_skipped_parent_in_batch(
        self, processor, memory_store, make_unit, parent_text, parent_reason
    ) -> None:
        units = [
            make_unit(parent_text, source_id="c1"),
            make_unit("+1", source_id="c2", parent_source_id="c1", parent_context_text=parent_text),
        ]

        report = await processor.process_batch(units)

        assert report.skip_reasons == {parent_reason: 1, "nothing_to_inherit": 1}
        assert report.mentions_written == 0
        assert report.created_new == 0
        assert memory_store.mentions() == []

    @pytest.mark.asyncio
    async def test_affirmation_of_empty_earlier_parent(
        self, processor, memory_store, make_unit
    ) -> None:
        unit = make_unit(
            "same",
            source_id="c9",
            parent_source_id="p0",
            parent_context_text="Franklin BBQ is amazing",
        )

        report = await processor.process_batch([unit], parent_mentions={"p0": []})

        assert report.skip_reasons == {"nothing_to_inherit": 1}
        assert memory_store.mentions() == []

    @pytest.mark.asyncio
    async def test_affirmation_of_rejected_parent_text(
        self, processor, memory_store, make_unit
    ) -> None:
        unit = make_unit(
            "+1",
            source_id="c9",
            parent_source_id="p0",
            parent_context_text="I heard Franklin BBQ has great brisket",
        )

        report = await processor.process_batch([unit])

        assert report.skip_reasons == {"nothing_to_inherit": 1}
        assert memory_store.mentions() == []


class TestFailureHandling:
    """Dead letters, store retries and atomicity."""

    @pytest.mark.asyncio
    async def test_schema_violation_is_dead_lettered(
        self, memory_store, make_unit, franklin_text
    ) -> None:
        stub = StubExtractor(error=SchemaViolationError("c1", "invalid JSON", raw_response="{oops"))
        processor = BatchProcessor(memory_store, extractor=stub)

        report = await processor.process_batch([make_unit(franklin_text)])

        assert report.failed == 1
        assert report.failed_sources == [("comment", "c1")]
        [record] = memory_store.dead_letters
        assert report.dead_letters == [record]
        assert record.stage == "extraction"
        assert record.payload == {"text": franklin_text, "raw_response": "{oops"}
        assert memory_store.mentions() == []

    @pytest.mark.asyncio
    async def test_llm_retries_exhausted(self, memory_store, make_unit, franklin_text) -> None:
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=_completion("not json"))
        processor = BatchProcessor(memory_store, extractor=OpenAIExtractor(client=client))

        report = await processor.process_batch([make_unit(franklin_text)])

        assert client.chat.completions.create.await_count == 3
        assert report.failed == 1
        [record] = memory_store.dead_letters
        assert "invalid JSON" in record.error
        assert record.payload["raw_response"] == "not json"

    @pytest.mark.asyncio
    async def test_transient_store_failure_recovers(self, make_unit, franklin_text) -> None:
        store = FlakyStore(failures=1)
        processor = BatchProcessor(store, known_restaurants=KNOWN)

        report = await processor.process_batch([make_unit(franklin_text)])

        assert report.committed == 1
        assert report.failed == 0
        assert store.attempts == 3
        assert len(store.mentions()) == 1

    @pytest.mark.asyncio
    async def test_planning_failure_fails_pending_units(self, make_unit, franklin_text) -> None:
        store = FlakyStore(failures=10)
        processor = BatchProcessor(store, known_restaurants=KNOWN)

        report = await processor.process_batch([make_unit(franklin_text)])

        assert report.failed == 1
        assert report.committed == 0
        assert store.attempts == 3

    @pytest.mark.asyncio
    async def test_exhausted_write_fails_only_that_unit(self, make_unit, franklin_text) -> None:
        store = FlakyStore(failures=3, healthy=1)
        processor = BatchProcessor(store, known_restaurants=KNOWN)
        units = [
            make_unit(franklin_text, source_id="c1"),
            make_unit(franklin_text, source_id="c2"),
        ]

        report = await processor.process_batch(units)

        assert report.failed == 1
        assert report.failed_sources == [("comment", "c1")]
        assert report.committed == 1
        assert [m.source_id for m in store.mentions()] == ["c2"]
        assert store.attempts == 5

    @pytest.mark.asyncio
    async def test_failed_item_leaves_no_partial_writes(
        self, memory_store, make_unit, franklin_text
    ) -> None:
        processor = BatchProcessor(memory_store, known_restaurants=KNOWN, upsert=ExplodingUpsert())

        report = await processor.process_batch([make_unit(franklin_text)])

        assert report.failed == 1
        assert report.committed == 0
        assert memory_store.entities() == []
        assert memory_store.connections() == []
        assert memory_store.mentions() == []


class TestCancellation:
    """Cooperative cancellation between units."""

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, processor, memory_store, make_unit, franklin_text) -> None:
        token = CancellationToken()
        token.cancel()

        with pytest.raises(PipelineCancelledError) as exc_info:
            await processor.process_batch([make_unit(franklin_text)], token)

        assert exc_info.value.processed == 0
        assert exc_info.value.report.cancelled is True
        assert memory_store.mentions() == []

    @pytest.mark.asyncio
    async def test_committed_units_stay_committed(self, memory_store, make_unit, franklin_text) -> None:
        token = CancellationToken()
        processor = BatchProcessor(
            memory_store, known_restaurants=KNOWN, upsert=CancellingUpsert(token)
        )
        units = [
            make_unit(franklin_text, source_id="c1"),
            make_unit(franklin_text, source_id="c2"),
        ]

        with pytest.raises(PipelineCancelledError) as exc_info:
            await processor.process_batch(units, token)

        assert exc_info.value.processed == 1
        assert [m.source_id for m in memory_store.mentions()] == ["c1"]


class TestBatchReport:
    """Tests for BatchReport bookkeeping."""

    def test_merge(self) -> None:
        report = BatchReport(admitted=1, created_new=2)
        report.skip(SkipReason.EMPTY)
        other = BatchReport(failed=1, failed_sources=[("comment", "c9")], cancelled=True)
        other.skip(SkipReason.EMPTY)

        report.merge(other)

        assert report.counts() == {
            "admitted": 1,
            "skipped": 2,
            "resolved_existing": 0,
            "created_new": 2,
            "failed": 1,
        }
        assert report.skip_reasons == {"empty": 2}
        assert report.failed_sources == [("comment", "c9")]
        assert report.cancelled is True

    def test_to_dict_is_json_serializable(self) -> None:
        report = BatchReport(committed=3, mentions_written=4)
        report.failed_sources.append(("post", "p1"))

        data = json.loads(json.dumps(report.to_dict()))

        assert data["committed"] == 3
        assert data["failed_sources"] == [["post", "p1"]]
        assert data["skip_reasons"] == {}
