"""
CLI interface for neuroevolve.
Provides commands for managing configuration, ranking objective vectors and
inspecting recorded generation statistics.
"""

import argparse
import csv
import math
import sys
from pathlib import Path
from typing import List, Optional

from evolution.interfaces import Chromosome, ObjectiveDirection
from evolution.nsga2 import fast_non_dominated_sort, get_top, sort_by_crowded_comparison
from evolve_core.config import Config, get_config
from monitoring.metrics import GenerationMetricsCollector
from neuroevolve.errors import InvalidConfigError, handle_cli_error
from neuroevolve.logging_config import configure_logging

DEFAULT_STATE_DIR = Path(".neuroevolve")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="neuroevolve",
        description="Multi-objective neuroevolution selection core",
    )
    parser.add_argument("--version", action="version", version="%(prog)s 0.1.0")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Init command
    init_parser = subparsers.add_parser(
        "init", help="Write a default configuration to the state directory"
    )
    init_parser.add_argument(
        "--state-dir",
        type=Path,
        default=DEFAULT_STATE_DIR,
        help="State directory path",
    )

    # Config command
    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument(
        "--show", action="store_true", help="Show current configuration"
    )
    config_parser.add_argument(
        "--state-dir",
        type=Path,
        default=DEFAULT_STATE_DIR,
        help="State directory path",
    )

    # Validate command
    validate_parser = subparsers.add_parser(
        "validate", help="Validate a JSON or .properties configuration file"
    )
    validate_parser.add_argument("file", type=Path, help="Configuration file")

    # Rank command
    rank_parser = subparsers.add_parser(
        "rank", help="Sort objective vectors from a CSV file into Pareto fronts"
    )
    rank_parser.add_argument("file", type=Path, help="CSV file, one row per individual")
    rank_parser.add_argument(
        "--top", type=int, default=None, help="Print the best N individuals"
    )
    rank_parser.add_argument(
        "--directions",
        default=None,
        help="Comma-separated maximize/minimize per objective (default: maximize)",
    )

    # History command
    history_parser = subparsers.add_parser(
        "history", help="Show exported generation statistics"
    )
    history_parser.add_argument(
        "--limit", "-n", type=int, default=10, help="Number of entries to show"
    )
    history_parser.add_argument(
        "--state-dir",
        type=Path,
        default=DEFAULT_STATE_DIR,
        help="State directory path",
    )

    return parser


def cmd_init(args: argparse.Namespace) -> int:
    """Write a default configuration."""
    state_dir = args.state_dir
    config_file = state_dir / "config.json"

    if config_file.exists():
        print(f"Already initialized at {state_dir}")
        return 0

    config = Config(state_dir=str(state_dir))
    config.save(config_file)

    print(f"Initialized neuroevolve at {state_dir}")
    return 0


@handle_cli_error
def cmd_config(args: argparse.Namespace) -> int:
    """Show configuration."""
    config = get_config(state_dir=args.state_dir)

    print("Current Configuration")
    print("-" * 40)
    for section, values in config.to_dict().items():
        if isinstance(values, dict):
            for key, value in values.items():
                print(f"{section}.{key}: {value}")
        else:
            print(f"{section}: {values}")

    return 0


@handle_cli_error
def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a configuration file."""
    if not args.file.exists():
        print(f"File not found: {args.file}")
        return 1

    config = Config.load(args.file)
    print(f"{args.file} is valid")
    print(f"Novelty mode: {config.novelty.mode}")
    return 0


def _read_objectives(path: Path) -> List[Chromosome]:
    individuals: List[Chromosome] = []
    with open(path, newline="") as f:
        for line_number, row in enumerate(csv.reader(f), start=1):
            cells = [cell.strip() for cell in row if cell.strip()]
            if not cells:
                continue
            try:
                values = [float(cell) for cell in cells]
            except ValueError:
                if not individuals:
                    continue  # header
                raise ValueError(f"line {line_number}: non-numeric value in {cells}")
            individuals.append(Chromosome(fitness_values=values, id=len(individuals)))
    return individuals


@handle_cli_error
def cmd_rank(args: argparse.Namespace) -> int:
    """Print Pareto fronts and crowding distances for objective vectors."""
    if not args.file.exists():
        print(f"File not found: {args.file}")
        return 1

    directions = None
    if args.directions:
        try:
            directions = [ObjectiveDirection(d.strip().lower()) for d in args.directions.split(",")]
        except ValueError as e:
            raise InvalidConfigError([f"--directions: {e}"])

    try:
        individuals = _read_objectives(args.file)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    if not individuals:
        print("No individuals found.")
        return 0

    counts = {c.objective_count for c in individuals}
    if len(counts) != 1:
        raise InvalidConfigError([f"rows have differing objective counts: {sorted(counts)}"])
    if directions is not None and len(directions) != counts.pop():
        raise InvalidConfigError(["--directions must give one entry per objective"])

    fronts = fast_non_dominated_sort(individuals, directions)
    for front in fronts:
        sort_by_crowded_comparison(front)

    for rank, front in enumerate(fronts):
        print(f"Front {rank} ({len(front)} individuals)")
        for c in front:
            crowding = "inf" if math.isinf(c.crowding_distance) else f"{c.crowding_distance:.4f}"
            values = ", ".join(f"{v:g}" for v in c.fitness_values)
            print(f"  {c.id:<6} [{values}]  crowding={crowding}")

    if args.top is not None:
        top = get_top(fronts, args.top)
        print(f"Top {len(top)}: {' '.join(str(c.id) for c in top)}")

    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """Show exported generation statistics."""
    history_file = args.state_dir / "history.json"

    if not history_file.exists():
        print("No evolution history found.")
        return 0

    entries = GenerationMetricsCollector.load_history(history_file)[-args.limit :]

    if not entries:
        print("No history entries.")
        return 0

    print(
        f"{'Generation':<12} {'Best Perf':<12} {'Species':<9} "
        f"{'Fronts':<8} {'Archive':<9} {'Timestamp'}"
    )
    print("-" * 72)

    for s in entries:
        print(
            f"{s.generation:<12} {s.best_performance:<12.4f} {s.species_count:<9} "
            f"{s.front_count:<8} {s.archive_size:<9} {s.timestamp.isoformat()}"
        )

    return 0


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(level=args.log_level, use_colors=sys.stderr.isatty())

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "init": cmd_init,
        "config": cmd_config,
        "validate": cmd_validate,
        "rank": cmd_rank,
        "history": cmd_history,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
