"""memlife - Command-line entry point.

Usage:
    python main.py consolidate --store memories.json --character npc-1 [--no-llm]
    python main.py candidates --store memories.json [--threshold 0.5]
    python main.py strength --store memories.json [--preset conservative]
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

# Load environment variables from .env file
load_dotenv()

sys.path.insert(0, str(Path(__file__).parent / "src"))

from memlife.memory import MemoryLifecycleEngine, EngineConfig
from memlife.memory.operators import StrengthConfig
from memlife.memory.storage import JsonFileMemoryStore


console = Console()


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose or os.getenv("DEBUG") else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )
    # litellm is chatty at INFO
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


async def run_consolidate(args) -> int:
    store = JsonFileMemoryStore(args.store)

    if args.no_llm:
        config = EngineConfig.from_env()
        config.model = None
        engine = MemoryLifecycleEngine(store, config)
    else:
        engine = MemoryLifecycleEngine.from_env(store)

    result = await engine.consolidate(args.character)

    table = Table(title=f"Consolidation: {args.character}")
    table.add_column("Memory", style="cyan", no_wrap=True)
    table.add_column("Content")
    table.add_column("Decision", style="bold")
    table.add_column("Confidence", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Reasoning", style="dim")

    colors = {"consolidated": "green", "deferred": "yellow", "rejected": "red"}
    for detail in result.details:
        color = colors.get(detail.decision.value, "white")
        table.add_row(
            detail.memory_id[:8],
            detail.content_preview,
            f"[{color}]{detail.decision.value}[/{color}]",
            f"{detail.confidence:.2f}",
            f"{detail.score:.2f}" if detail.score is not None else "-",
            detail.reasoning,
        )

    console.print(table)
    threshold = f"{result.threshold:.2f}" if result.threshold is not None else "-"
    console.print(Panel.fit(
        f"Evaluated: {result.total_evaluated}\n"
        f"[green]Consolidated: {result.consolidated}[/green]\n"
        f"[yellow]Deferred: {result.deferred}[/yellow]\n"
        f"[red]Rejected: {result.rejected}[/red]\n"
        f"Threshold: {threshold}",
        title="Summary",
    ))
    return 0


async def run_candidates(args) -> int:
    engine = MemoryLifecycleEngine(JsonFileMemoryStore(args.store))
    pairs = await engine.reconstruction.find_candidates(args.threshold)

    if not pairs:
        console.print(f"[dim]No pairs with similarity >= {args.threshold}[/dim]")
        return 0

    table = Table(title="Merge candidates")
    table.add_column("Similarity", justify="right", style="bold")
    table.add_column("Memory 1")
    table.add_column("Memory 2")
    for pair in pairs:
        table.add_row(f"{pair.similarity:.3f}", pair.memory1.summarize(), pair.memory2.summarize())

    console.print(table)
    return 0


async def run_strength(args) -> int:
    config = EngineConfig(strength_config=StrengthConfig.preset(args.preset))
    engine = MemoryLifecycleEngine(JsonFileMemoryStore(args.store), config)

    memories = await engine.store.get_all()
    table = Table(title=f"Memory strength ({args.preset})")
    table.add_column("Memory", style="cyan", no_wrap=True)
    table.add_column("Content")
    table.add_column("Strength", justify="right")
    table.add_column("Half-life (days)", justify="right")
    table.add_column("Class")

    styles = {"strong": "green", "normal": "white", "weak": "red"}
    for memory in sorted(memories, key=engine.strength.calculate_strength, reverse=True):
        label = engine.strength.classify(memory)
        table.add_row(
            memory.id[:8],
            memory.summarize(),
            f"{engine.strength.calculate_strength(memory):.3f}",
            f"{engine.strength.half_life_days(memory):.1f}",
            f"[{styles[label]}]{label}[/{styles[label]}]",
        )

    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Adaptive memory lifecycle engine")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    consolidate = subparsers.add_parser("consolidate", help="Run a consolidation pass for one character")
    consolidate.add_argument("--store", required=True, help="Path to the JSON memory store")
    consolidate.add_argument("--character", required=True, help="Character id")
    consolidate.add_argument("--no-llm", action="store_true", help="Use the rule fallback instead of an LLM scorer")
    consolidate.set_defaults(handler=run_consolidate)

    candidates = subparsers.add_parser("candidates", help="List memory pairs similar enough to merge")
    candidates.add_argument("--store", required=True, help="Path to the JSON memory store")
    candidates.add_argument("--threshold", type=float, default=0.5, help="Minimum similarity (default: 0.5)")
    candidates.set_defaults(handler=run_candidates)

    strength = subparsers.add_parser("strength", help="Show current strength of every memory")
    strength.add_argument("--store", required=True, help="Path to the JSON memory store")
    strength.add_argument(
        "--preset",
        choices=["default", "conservative", "aggressive"],
        default="default",
        help="Strength parameter preset (default: default)",
    )
    strength.set_defaults(handler=run_strength)

    return parser


def main() -> int:
    args = build_parser().parse_args()
    setup_logging(args.verbose)

    try:
        return asyncio.run(args.handler(args))
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted.[/dim]")
        return 130
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if os.getenv("DEBUG"):
            console.print_exception()
        return 1


if __name__ == "__main__":
    sys.exit(main())
