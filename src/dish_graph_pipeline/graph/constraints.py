"""Neo4j schema setup for the dish graph.

Creates the uniqueness constraints that keep entities, connections,
mentions and praise credits single, plus indexes for the store's lookups.
The composite ``(name, type)`` constraint on ``Entity`` is what finally
rejects a duplicate entity when two writers race to create it.

Every statement uses ``IF NOT EXISTS``, so running setup twice is safe.
"""

from collections.abc import Iterator
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from neo4j import AsyncDriver

logger = structlog.get_logger(__name__)


# Uniqueness constraints: (label, properties unique together)
UNIQUENESS_CONSTRAINTS: list[tuple[str, tuple[str, ...]]] = [
    ("Entity", ("entity_id",)),
    ("Entity", ("name", "type")),
    ("Connection", ("connection_id",)),
    ("Connection", ("key",)),
    ("Mention", ("mention_id",)),
    ("Mention", ("target_id", "source_type", "source_id")),
    ("PraiseCredit", ("restaurant_id", "source_type", "source_id")),
]

# Lookup indexes: (label, property)
INDEXES: list[tuple[str, str]] = [
    ("Entity", "type"),
    ("Mention", "connection_id"),
    ("DeadLetter", "source_id"),
]


def constraint_name(label: str, properties: tuple[str, ...]) -> str:
    """Stable constraint name, e.g. ``unique_entity_name_type``."""
    return f"unique_{label.lower()}_{'_'.join(properties)}"


def index_name(label: str, prop: str) -> str:
    """Stable index name, e.g. ``idx_entity_type``."""
    return f"idx_{label.lower()}_{prop}"


def _constraint_cypher(label: str, properties: tuple[str, ...]) -> str:
    fields = ", ".join(f"n.{prop}" for prop in properties)
    target = fields if len(properties) == 1 else f"({fields})"
    return (
        f"CREATE CONSTRAINT {constraint_name(label, properties)} IF NOT EXISTS "
        f"FOR (n:{label}) REQUIRE {target} IS UNIQUE"
    )


def _index_cypher(label: str, prop: str) -> str:
    return f"CREATE INDEX {index_name(label, prop)} IF NOT EXISTS FOR (n:{label}) ON (n.{prop})"


def _schema_statements() -> Iterator[tuple[str, str, str]]:
    """Yield ``(stats key, description, cypher)`` for every schema object."""
    for label, properties in UNIQUENESS_CONSTRAINTS:
        yield "uniqueness_constraints", f"{label}.{'+'.join(properties)}", _constraint_cypher(
            label, properties
        )
    for label, prop in INDEXES:
        yield "indexes", f"{label}.{prop}", _index_cypher(label, prop)


class ConstraintManager:
    """Creates and checks the dish graph's constraints and indexes.

    Example:
        >>> manager = ConstraintManager(driver)
        >>> await manager.create_all()
        >>> status = await manager.verify_all()
    """

    def __init__(self, driver: "AsyncDriver", database: str = "neo4j") -> None:
        self.driver = driver
        self.database = database

    async def create_all(self) -> dict:
        """Create every constraint and index.

        Objects that already exist are neither counted nor reported as
        errors; any other failure is collected and setup continues.

        Returns:
            Counts per object kind and a list of error strings.
        """
        stats: dict = {"uniqueness_constraints": 0, "indexes": 0, "errors": []}

        async with self.driver.session(database=self.database) as session:
            for kind, description, cypher in _schema_statements():
                try:
                    await session.run(cypher)
                except Exception as e:
                    if "already exists" not in str(e).lower():
                        stats["errors"].append(f"{description}: {e}")
                    continue
                stats[kind] += 1

        logger.info(
            "Schema setup complete",
            uniqueness=stats["uniqueness_constraints"],
            indexes=stats["indexes"],
            errors=len(stats["errors"]),
        )
        return stats

    async def _names(self, statement: str) -> set[str]:
        async with self.driver.session(database=self.database) as session:
            result = await session.run(statement)
            return {record["name"] async for record in result}

    async def verify_all(self) -> dict:
        """List existing schema objects and the ones still missing."""
        constraints = await self._names("SHOW CONSTRAINTS")
        indexes = await self._names("SHOW INDEXES")

        return {
            "constraints": sorted(constraints),
            "indexes": sorted(indexes),
            "missing_constraints": [
                f"{label}.{'+'.join(properties)}"
                for label, properties in UNIQUENESS_CONSTRAINTS
                if constraint_name(label, properties) not in constraints
            ],
            "missing_indexes": [
                f"{label}.{prop}" for label, prop in INDEXES if index_name(label, prop) not in indexes
            ],
        }


async def create_all_constraints(driver: "AsyncDriver", database: str = "neo4j") -> dict:
    """Create all constraints and indexes with a throwaway manager."""
    return await ConstraintManager(driver, database).create_all()
