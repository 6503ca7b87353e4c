"""
Generation statistics collection for neuroevolve.
Records one snapshot per generation and exports the history as JSON or CSV.
"""

import csv
import json
import logging
import math
import statistics
from collections import deque
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Set, Union

logger = logging.getLogger(__name__)


@dataclass
class GenerationStats:
    """Snapshot of one generation."""

    generation: int
    population_size: int
    species_count: int = 0
    front_count: int = 0
    first_front_size: int = 0
    selected_count: int = 0
    elite_count: int = 0
    best_performance: float = math.nan
    mean_performance: float = math.nan
    best_fitness: float = math.nan
    mean_fitness: float = math.nan
    archive_size: int = 0
    archive_threshold: float = math.nan
    evaluation_failures: int = 0
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationStats":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if isinstance(values.get("timestamp"), str):
            values["timestamp"] = datetime.fromisoformat(values["timestamp"])
        return cls(**values)


def _finite(values: Sequence[float]) -> List[float]:
    return [v for v in values if not math.isnan(v)]


class GenerationMetricsCollector:
    """
    Collects per-generation statistics for an evolution run.

    Features:
    - Bounded in-memory history
    - Summary statistics across the run
    - JSON and CSV export
    - Streaming subscribers notified on every record
    """

    def __init__(self, max_generations: int = 10000):
        self.max_generations = max_generations
        self.history: Deque[GenerationStats] = deque(maxlen=max_generations)
        self._subscribers: Set[Callable[[GenerationStats], None]] = set()

    def record(self, stats: GenerationStats) -> None:
        """Store a generation snapshot and notify subscribers."""
        self.history.append(stats)
        self._notify_subscribers(stats)
        logger.debug(
            f"Recorded generation {stats.generation}: best performance "
            f"{stats.best_performance:.4f}, {stats.species_count} species",
            extra={"generation": stats.generation},
        )

    def get_history(self, limit: Optional[int] = None) -> List[GenerationStats]:
        """Most recent generations, oldest first."""
        items = list(self.history)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def latest(self) -> Optional[GenerationStats]:
        return self.history[-1] if self.history else None

    def get_stats(self) -> Dict[str, Any]:
        """Summary statistics across the recorded run."""
        if not self.history:
            return {"generations": 0}

        best = _finite([s.best_performance for s in self.history])
        latest = self.history[-1]
        return {
            "generations": len(self.history),
            "first_generation": self.history[0].generation,
            "last_generation": latest.generation,
            "best_performance": max(best) if best else math.nan,
            "mean_best_performance": statistics.mean(best) if best else math.nan,
            "final_species_count": latest.species_count,
            "final_archive_size": latest.archive_size,
            "total_evaluation_failures": sum(s.evaluation_failures for s in self.history),
            "total_duration_ms": sum(s.duration_ms for s in self.history),
        }

    def clear(self) -> None:
        self.history.clear()

    def export_to_json(self, path: Union[str, Path]) -> Dict[str, Any]:
        """Export the summary and every recorded generation to JSON."""
        export_data = {
            "export_timestamp": datetime.now().isoformat(),
            "summary": self.get_stats(),
            "generations": [s.to_dict() for s in self.history],
        }
        with open(path, "w") as f:
            json.dump(export_data, f, indent=2, default=str)

        logger.info(f"Exported {len(self.history)} generations to JSON: {path}")
        return export_data

    def export_to_csv(self, path: Union[str, Path]) -> None:
        """Export one CSV row per recorded generation."""
        fieldnames = [f.name for f in fields(GenerationStats)]
        with open(path, "w", newline="") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
            writer.writeheader()
            for s in self.history:
                writer.writerow(s.to_dict())

        logger.info(f"Exported {len(self.history)} generations to CSV: {path}")

    @staticmethod
    def load_history(path: Union[str, Path]) -> List[GenerationStats]:
        """Read generations back from a JSON export."""
        with open(path) as f:
            data = json.load(f)
        return [GenerationStats.from_dict(g) for g in data.get("generations", [])]

    def subscribe(self, callback: Callable[[GenerationStats], None]) -> None:
        """Subscribe to every recorded generation."""
        self._subscribers.add(callback)
        logger.debug(f"Added subscriber, total: {len(self._subscribers)}")

    def unsubscribe(self, callback: Callable[[GenerationStats], None]) -> None:
        self._subscribers.discard(callback)

    def _notify_subscribers(self, stats: GenerationStats) -> None:
        for callback in self._subscribers:
            try:
                callback(stats)
            except Exception as e:
                logger.error(f"Error notifying subscriber: {e}")
