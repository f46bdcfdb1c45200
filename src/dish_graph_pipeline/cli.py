"""Command-line interface for the dish graph pipeline.

This CLI provides two commands:

1. `dish-graph process`: Run content units from a JSON Lines file through
   the pipeline
   - Admission, extraction (rule-based or OpenAI), normalization
   - Entity resolution against the store and connection upserts
   - Prints the batch report; Ctrl-C stops at the next unit boundary

2. `dish-graph init-db`: Create the Neo4j constraints and indexes
"""

import argparse
import asyncio
from collections.abc import Iterator
import json
from pathlib import Path
import signal

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .config import PipelineConfig
from .exceptions import Neo4jConfigError, PipelineCancelledError
from .extraction import OpenAIExtractor, RuleBasedExtractor
from .graph import ConstraintManager, GraphStore, InMemoryGraphStore, Neo4jGraphStore
from .models import ContentUnit
from .pipeline import BatchProcessor, BatchReport, CancellationToken

console = Console()

DEFAULT_BATCH_SIZE = 50


def _create_process_parser(subparsers: argparse._SubParsersAction) -> None:
    """Create the process subcommand parser.

    Args:
        subparsers: Subparsers action to add the command to.
    """
    process_parser = subparsers.add_parser(
        "process",
        help="Extract and resolve mentions from a JSON Lines file of content units",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Run content units through the pipeline:

  1. Screen each unit (skips are counted, not errors)
  2. Extract restaurant/food mentions
  3. Normalize names and decompose compound food terms
  4. Resolve entities (exact, alias, fuzzy, create)
  5. Upsert connections and mentions, one transaction per unit
        """,
    )

    process_parser.add_argument(
        "input",
        type=Path,
        help="JSON Lines file, one content unit per line",
    )

    process_parser.add_argument(
        "--llm",
        action="store_true",
        help="Use the OpenAI extractor instead of the rule-based one (needs OPENAI_API_KEY)",
    )

    process_parser.add_argument(
        "--neo4j",
        action="store_true",
        help="Persist to Neo4j instead of an in-memory store (needs NEO4J_* variables)",
    )

    process_parser.add_argument(
        "--known-restaurants",
        type=Path,
        default=None,
        help="Text file of known restaurant names, one per line",
    )

    process_parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help=f"Content units per batch (default: {DEFAULT_BATCH_SIZE})",
    )

    process_parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Write the batch report as JSON to this path",
    )


def _create_init_db_parser(subparsers: argparse._SubParsersAction) -> None:
    """Create the init-db subcommand parser.

    Args:
        subparsers: Subparsers action to add the command to.
    """
    subparsers.add_parser(
        "init-db",
        help="Create Neo4j constraints and indexes",
    )


def read_content_units(path: Path) -> list[ContentUnit]:
    """Load content units from a JSON Lines file, skipping blank lines."""
    units = []
    with path.open(encoding="utf-8") as f:
        for line in f:
            if line.strip():
                units.append(ContentUnit.model_validate_json(line))
    return units


def read_known_restaurants(path: Path | None) -> list[str]:
    """Load restaurant names, one per line."""
    if path is None:
        return []
    return [line.strip() for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def _batches(units: list[ContentUnit], size: int) -> Iterator[list[ContentUnit]]:
    for start in range(0, len(units), max(1, size)):
        yield units[start : start + size]


def render_report(report: BatchReport) -> Table:
    """Build a rich table of the report's counts."""
    table = Table(title="Batch report")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")

    for name, value in report.counts().items():
        table.add_row(name.replace("_", " "), str(value))
    table.add_row("mentions written", str(report.mentions_written))
    table.add_row("duplicate mentions", str(report.duplicate_mentions))
    for reason, count in sorted(report.skip_reasons.items()):
        table.add_row(f"  skipped: {reason}", str(count))
    return table


def _build_store(args: argparse.Namespace, config: PipelineConfig) -> GraphStore:
    if args.neo4j:
        return Neo4jGraphStore.from_config(config)
    return InMemoryGraphStore()


async def _run_process_command(args: argparse.Namespace) -> BatchReport:
    """Run the process command.

    Args:
        args: Parsed command-line arguments.

    Returns:
        The combined report of all batches.
    """
    config = PipelineConfig.from_env()
    units = read_content_units(args.input)
    known = read_known_restaurants(args.known_restaurants)

    console.print("[bold cyan]Dish Graph Pipeline[/]")
    console.print(f"Input: {args.input} ({len(units)} units)")
    console.print(f"Extractor: {'OpenAI ' + config.llm_model if args.llm else 'rule-based'}")
    console.print(f"Store: {'Neo4j ' + config.neo4j_uri if args.neo4j else 'in-memory'}")
    console.print()

    if args.llm:
        if not config.openai_api_key:
            console.print("[red]Error: OPENAI_API_KEY environment variable required[/]")
            raise SystemExit(1)
        extractor = OpenAIExtractor(
            api_key=config.openai_api_key,
            model=config.llm_model,
            timeout=config.llm_timeout,
            known_restaurants=known,
        )
    else:
        extractor = RuleBasedExtractor(known_restaurants=known)

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except NotImplementedError:
        # Windows event loops have no signal handlers
        pass

    total = BatchReport()
    async with _build_store(args, config) as store:
        if isinstance(store, Neo4jGraphStore):
            await store.initialize()
        processor = BatchProcessor(store, extractor=extractor, config=config, known_restaurants=known)
        for batch in _batches(units, args.batch_size):
            try:
                total.merge(await processor.process_batch(batch, token))
            except PipelineCancelledError as e:
                if isinstance(e.report, BatchReport):
                    total.merge(e.report)
                console.print(f"\n[yellow]Cancelled after {total.committed} committed units[/]")
                break
    return total


async def _run_init_db_command() -> None:
    """Create constraints and indexes, then verify them."""
    config = PipelineConfig.from_env()
    async with Neo4jGraphStore.from_config(config) as store:
        manager = ConstraintManager(store.driver, store.database)
        stats = await manager.create_all()
        status = await manager.verify_all()

    console.print(f"Constraints: {stats['uniqueness_constraints']}, indexes: {stats['indexes']}")
    for error in stats["errors"]:
        console.print(f"[red]  {error}[/]")
    missing = status["missing_constraints"] + status["missing_indexes"]
    if missing:
        console.print(f"[yellow]Missing: {', '.join(missing)}[/]")
    else:
        console.print("[green]All constraints and indexes present[/]")


def main() -> None:
    """Run the dish graph CLI."""
    # Load .env file for API keys
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="dish-graph",
        description="Extract restaurant and dish mentions into a knowledge graph",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  process    Run content units from a JSON Lines file through the pipeline
  init-db    Create Neo4j constraints and indexes

Examples:
  dish-graph process comments.jsonl
  dish-graph process comments.jsonl --known-restaurants austin.txt
  dish-graph process comments.jsonl --llm --neo4j --report report.json

Environment variables:
  OPENAI_API_KEY     - For --llm extraction
  NEO4J_URI          - Database URI (e.g., bolt://localhost:7687)
  NEO4J_USERNAME     - Database username (default: neo4j)
  NEO4J_PASSWORD     - Database password
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    _create_process_parser(subparsers)
    _create_init_db_parser(subparsers)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        raise SystemExit(2)

    try:
        if args.command == "process":
            report = asyncio.run(_run_process_command(args))
            console.print(render_report(report))
            if report.failed_sources:
                console.print("[red]Failed sources:[/]")
                for source_type, source_id in report.failed_sources:
                    console.print(f"  {source_type} {source_id}")
            if args.report:
                args.report.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
                console.print(f"[green]Report saved to: {args.report}[/]")
        elif args.command == "init-db":
            asyncio.run(_run_init_db_command())
    except Neo4jConfigError:
        console.print("\n[red]Error: Neo4j configuration missing[/]")
        console.print("Set: [cyan]NEO4J_URI, NEO4J_USERNAME, NEO4J_PASSWORD[/]")
        raise SystemExit(1) from None
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/]")
        raise SystemExit(1) from None
    except Exception as e:
        console.print(f"\n[red]Error: {e}[/]")
        raise SystemExit(1) from None


if __name__ == "__main__":
    main()
