"""Test suite for dish-graph-pipeline.

This package contains tests for all modules:
- test_models: Pydantic data models
- test_admission: Content admission and linkage checks
- test_classifier: Restaurant, food and attribute classification
- test_decomposer / test_menu_item: Food term heuristics
- test_postprocessing: Mention normalization
- test_resolver / test_upsert: Entity resolution and graph writes
- test_pipeline: Batch orchestration end to end
- test_extraction / test_retry: LLM extraction and retry policy
- test_neo4j_store / test_constraints: Neo4j persistence with mocks
"""
