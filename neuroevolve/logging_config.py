"""
Structured logging configuration for neuroevolve.

Every package logs through the standard ``logging`` module under its own
module name. ``configure_logging`` attaches one shared set of handlers to the
package loggers: a console handler (human readable or JSON lines) and an
optional JSON-lines file handler. Evolution context such as the generation
number or species id travels on log records as ``extra`` attributes.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

PACKAGE_LOGGERS = ("neuroevolve", "evolution", "evolve_core", "monitoring")

# Record attribute, console label and console rendering
CONTEXT_FIELDS: List[Tuple[str, str, Callable[[Any], str]]] = [
    ("generation", "gen", str),
    ("species_id", "species", str),
    ("chromosome_id", "chrom", str),
    ("fitness", "fitness", lambda v: f"{v:.4f}"),
    ("archive_size", "archive", str),
    ("duration_ms", "took", lambda v: f"{v:.0f}ms"),
]
EVENT_FIELD = "event_type"


def _context_of(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        name: getattr(record, name)
        for name, _, _ in CONTEXT_FIELDS
        if hasattr(record, name)
    }


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_context_of(record))
        if hasattr(record, EVENT_FIELD):
            entry[EVENT_FIELD] = getattr(record, EVENT_FIELD)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Compact console output with the record context in brackets."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")
        level = record.levelname[:4]
        if self.use_colors:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"

        context = ", ".join(
            f"{label}={render(getattr(record, name))}"
            for name, label, render in CONTEXT_FIELDS
            if hasattr(record, name)
        )
        line = f"{clock} {level} {record.name}: {record.getMessage()}"
        if context:
            line += f" [{context}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class EvolutionLogger:
    """Logger wrapper carrying generation context and run-level event helpers."""

    def __init__(self, name: str = "neuroevolve"):
        self.logger = logging.getLogger(name)
        self._context: Dict[str, Any] = {}

    def set_context(self, **kwargs) -> None:
        """Attach fields to every following record until cleared."""
        self._context.update(kwargs)

    def clear_context(self) -> None:
        self._context.clear()

    def log(self, level: int, msg: str, **fields) -> None:
        self.logger.log(level, msg, extra={**self._context, **fields})

    def debug(self, msg: str, **fields) -> None:
        self.log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields) -> None:
        self.log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields) -> None:
        self.log(logging.WARNING, msg, **fields)

    def error(self, msg: str, **fields) -> None:
        self.log(logging.ERROR, msg, **fields)

    def generation_start(self, generation: int, population_size: int) -> None:
        self.info(
            f"Starting generation {generation} with {population_size} chromosomes",
            event_type="generation_start",
            generation=generation,
        )

    def generation_complete(
        self, generation: int, best_performance: float, duration_ms: float
    ) -> None:
        self.info(
            f"Generation {generation} complete, best performance {best_performance:.4f}",
            event_type="generation_complete",
            generation=generation,
            fitness=best_performance,
            duration_ms=duration_ms,
        )

    def species_skipped(self, species_id: int, stagnant_generations: int) -> None:
        self.debug(
            f"None selected (stagnant generations: {stagnant_generations})",
            event_type="species_skipped",
            species_id=species_id,
        )

    def archive_updated(self, archive_size: int, threshold: float) -> None:
        self.info(
            f"Novelty archive size is now {archive_size} "
            f"(archive threshold is {threshold:.4f})",
            event_type="archive_updated",
            archive_size=archive_size,
        )

    def evolution_complete(
        self, generations: int, best_performance: float, total_duration_ms: float
    ) -> None:
        self.info(
            f"Evolution complete after {generations} generations",
            event_type="evolution_complete",
            fitness=best_performance,
            duration_ms=total_duration_ms,
        )


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Path] = None,
    use_colors: bool = True,
) -> None:
    """Install handlers on every package logger.

    Calling this again replaces the previous handlers. The file handler, when
    a log_file is given, always writes JSON lines.
    """
    numeric_level = _resolve_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(
        StructuredFormatter() if json_output else HumanFormatter(use_colors=use_colors)
    )
    handlers: List[logging.Handler] = [console]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        handlers.append(file_handler)

    for name in PACKAGE_LOGGERS:
        package_logger = logging.getLogger(name)
        package_logger.setLevel(numeric_level)
        package_logger.handlers.clear()
        for handler in handlers:
            package_logger.addHandler(handler)


def get_logger(name: str) -> EvolutionLogger:
    return EvolutionLogger(name)
