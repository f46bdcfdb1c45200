#!/usr/bin/env python3
"""Quick-run script for the dish graph pipeline.

Runs a JSON Lines file of content units through the rule-based
extractor into an in-memory store and prints what was built:
1. Admission screening
2. Rule-based extraction and normalization
3. Entity resolution (exact, alias, fuzzy, create)
4. Connection and mention upserts

Usage:
    python run.py comments.jsonl

    # Or with UV:
    uv run python run.py comments.jsonl

    # With a gazetteer of known restaurants:
    KNOWN_RESTAURANTS=austin.txt python run.py comments.jsonl
"""

import asyncio
import os
from pathlib import Path

# Add src to path for development
import sys

sys.path.insert(0, str(Path(__file__).parent / "src"))

from dish_graph_pipeline import BatchProcessor, EntityType, InMemoryGraphStore
from dish_graph_pipeline.cli import read_content_units, read_known_restaurants


async def main():
    """Run the pipeline with default settings."""
    if len(sys.argv) < 2:
        print("Usage: python run.py <content_units.jsonl>")
        raise SystemExit(2)

    units = read_content_units(Path(sys.argv[1]))
    gazetteer = os.getenv("KNOWN_RESTAURANTS")
    known = read_known_restaurants(Path(gazetteer) if gazetteer else None)

    store = InMemoryGraphStore()
    processor = BatchProcessor(store, known_restaurants=known)
    report = await processor.process_batch(units)

    print(f"\n{'=' * 60}")
    print("PIPELINE SUMMARY")
    print(f"{'=' * 60}")
    for name, value in report.counts().items():
        print(f"{name.replace('_', ' ').title()}: {value}")
    print(f"Restaurants: {len(store.entities(EntityType.RESTAURANT))}")
    print(f"Foods: {len(store.entities(EntityType.FOOD))}")
    print(f"Connections: {len(store.connections())}")
    print(f"Mentions: {len(store.mentions())}")

    names = {entity.entity_id: entity.name for entity in store.entities()}
    for connection in sorted(store.connections(), key=lambda c: -c.quality_score):
        attributes = ", ".join(names[i] for i in connection.dish_attribute_ids)
        label = f"{names[connection.food_id]} ({attributes})" if attributes else names[connection.food_id]
        print(
            f"  {names[connection.restaurant_id]} -> {label}: "
            f"{connection.mention_count} mentions, score {connection.quality_score}"
        )


if __name__ == "__main__":
    asyncio.run(main())
