"""
Flat key=value properties support.

Run descriptions written for the original tooling use dotted keys such as
``popul.size`` or ``fitness.function.novelty.k``. They are mapped onto the
nested configuration layout understood by ``Config.from_dict``.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Tuple

from neuroevolve.errors import InvalidConfigError

logger = logging.getLogger(__name__)


def _to_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "1"):
        return True
    if lowered in ("false", "no", "0"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _to_float_list(value: str) -> List[float]:
    return [float(v) for v in value.split(",") if v.strip()]


def _to_direction_list(value: str) -> List[str]:
    return [v.strip().lower() for v in value.split(",") if v.strip()]


PROPERTY_KEYS: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "popul.size": ("evolution", "population_size", int),
    "num.generations": ("evolution", "max_generations", int),
    "random.seed": ("evolution", "random_seed", int),
    "selector.survival.rate": ("selection", "survival_rate", float),
    "survival.rate": ("selection", "survival_rate", float),
    "selector.elitism.proportion": ("selection", "elitism_proportion", float),
    "selector.elitism.min.to.select": ("selection", "elitism_min_to_select", int),
    "selector.elitism.min.specie.size": ("selection", "elitism_min_species_size", int),
    "selector.max.stagnant.generations": ("selection", "max_stagnant_generations", int),
    "selector.min.generations": ("selection", "min_age", int),
    "selector.objective.directions": ("selection", "objective_directions", _to_direction_list),
    "fitness.function.novelty.k": ("novelty", "k", int),
    "fitness.function.novelty.threshold": ("novelty", "archive_threshold", float),
    "fitness.function.novelty.threshold.min": ("novelty", "archive_threshold_min", float),
    "fitness.function.novelty.add.probability": ("novelty", "add_probability", float),
    "fitness.max_threads": ("evaluation", "max_threads", int),
    "fitness.function.multi.weighting": ("evaluation", "objective_weights", _to_float_list),
    "fitness.function.performance.force.fitness": (
        "evaluation",
        "force_performance_fitness",
        _to_bool,
    ),
    "performance.target": ("evaluation", "target_performance", float),
    "performance.target.type": ("evaluation", "target_performance_type", str.lower),
    "performance.target.average": (
        "evaluation",
        "target_performance_average_count",
        int,
    ),
    "log.level": ("logging", "level", str.upper),
}


def _logical_lines(text: str) -> Iterator[Tuple[int, str]]:
    """Join lines ending in an odd number of backslashes with the next line."""
    pending = ""
    start = 0
    for line_number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip() if pending else raw.lstrip()
        if not pending:
            start = line_number
            if line[:1] in ("#", "!"):
                yield start, line
                continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending += line[:-1]
            continue
        yield start, pending + line
        pending = ""
    if pending:
        yield start, pending


def parse_properties(text: str) -> Dict[str, str]:
    """Parse properties text.

    '#' and '!' start comment lines, the first '=' or ':' separates key
    from value, and a trailing backslash continues a line. Escape sequences
    such as \\uXXXX or escaped separators inside keys are not supported; values
    are taken literally.
    """
    props: Dict[str, str] = {}
    for line_number, logical in _logical_lines(text):
        line = logical.strip()
        if not line or line[0] in "#!":
            continue
        positions = [p for p in (line.find("="), line.find(":")) if p >= 0]
        if not positions:
            logger.debug(f"Skipping properties line {line_number} without a separator")
            continue
        sep = min(positions)
        key = line[:sep].strip()
        value = line[sep + 1 :].strip()
        if key:
            props[key] = value
    return props


def load_properties(path: Path) -> Dict[str, str]:
    """Read and parse a properties file."""
    with open(path) as f:
        return parse_properties(f.read())


def properties_to_dict(props: Mapping[str, str]) -> Dict[str, Any]:
    """Convert flat properties into the nested configuration layout.

    Unknown keys are ignored. Values that cannot be converted are collected
    and reported together.

    Raises:
        InvalidConfigError: if any known key has an unparseable value
    """
    data: Dict[str, Any] = {}
    errors: List[str] = []

    for key, raw in props.items():
        mapping = PROPERTY_KEYS.get(key)
        if mapping is None:
            logger.debug(f"Ignoring unknown property {key}")
            continue
        section, name, converter = mapping
        try:
            value = converter(raw)
        except ValueError as e:
            errors.append(f"{key}: invalid value {raw!r} ({e})")
            continue
        data.setdefault(section, {})[name] = value

    if errors:
        raise InvalidConfigError(errors)
    return data
