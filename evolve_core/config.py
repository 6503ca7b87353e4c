"""
Centralized configuration management for neuroevolve.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from evolve_core.properties import load_properties, properties_to_dict
from evolve_core.schemas import validate_config_dict
from neuroevolve.logging_config import configure_logging

logger = logging.getLogger(__name__)


@dataclass
class EvolutionSettings:
    """Run-level settings."""

    population_size: int = 100
    max_generations: int = 100
    random_seed: Optional[int] = None


@dataclass
class SelectionSettings:
    """Multi-objective selector settings."""

    survival_rate: float = 0.2
    elitism_proportion: float = 0.1
    elitism_min_to_select: int = 1
    elitism_min_species_size: int = 0
    max_stagnant_generations: int = 15
    min_age: int = 10
    objective_directions: Optional[List[str]] = None  # "maximize" / "minimize"


@dataclass
class NoveltySettings:
    """Novelty archive settings.

    Threshold mode and probabilistic mode are mutually exclusive: set either
    the archive_threshold* fields or add_probability, never both.
    """

    k: int = 30
    archive_threshold: Optional[float] = None
    archive_threshold_min: Optional[float] = None
    add_probability: Optional[float] = None

    @property
    def mode(self) -> str:
        return "probabilistic" if self.add_probability is not None else "threshold"


@dataclass
class EvaluationSettings:
    """Bulk fitness evaluation settings."""

    max_threads: Optional[int] = None  # defaults to CPU count
    objective_weights: Optional[List[float]] = None
    force_performance_fitness: bool = False
    target_performance: float = 1.0
    target_performance_type: str = "higher"
    target_performance_average_count: int = 1


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    json_output: bool = False
    use_colors: bool = True
    log_file: Optional[str] = None

    def apply(self) -> None:
        """Install these settings on the package loggers."""
        configure_logging(
            level=self.level,
            json_output=self.json_output,
            log_file=Path(self.log_file) if self.log_file else None,
            use_colors=self.use_colors,
        )


@dataclass
class Config:
    """Main configuration container."""

    evolution: EvolutionSettings = field(default_factory=EvolutionSettings)
    selection: SelectionSettings = field(default_factory=SelectionSettings)
    novelty: NoveltySettings = field(default_factory=NoveltySettings)
    evaluation: EvaluationSettings = field(default_factory=EvaluationSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    state_dir: str = ".neuroevolve"

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    def validate(self) -> None:
        """Raise InvalidConfigError if any setting is out of range or inconsistent."""
        validate_config_dict(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create a validated config from a dictionary."""
        validated = validate_config_dict(data).model_dump()
        return cls(
            evolution=EvolutionSettings(**validated["evolution"]),
            selection=SelectionSettings(**validated["selection"]),
            novelty=NoveltySettings(**validated["novelty"]),
            evaluation=EvaluationSettings(**validated["evaluation"]),
            logging=LoggingSettings(**validated["logging"]),
            state_dir=validated["state_dir"],
        )

    @classmethod
    def from_properties(cls, props: Mapping[str, str]) -> "Config":
        """Create a validated config from flat key/value properties."""
        return cls.from_dict(properties_to_dict(props))

    def save(self, path: Optional[Path] = None) -> None:
        """Save config to file."""
        if path is None:
            path = Path(self.state_dir) / "config.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load config from a JSON or .properties file."""
        if path.suffix == ".properties":
            return cls.from_properties(load_properties(path))
        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes")


ENV_OVERRIDES: Dict[str, tuple] = {
    "NEUROEVOLVE_POPULATION_SIZE": ("evolution", "population_size", int),
    "NEUROEVOLVE_MAX_GENERATIONS": ("evolution", "max_generations", int),
    "NEUROEVOLVE_RANDOM_SEED": ("evolution", "random_seed", int),
    "NEUROEVOLVE_SURVIVAL_RATE": ("selection", "survival_rate", float),
    "NEUROEVOLVE_NOVELTY_K": ("novelty", "k", int),
    "NEUROEVOLVE_MAX_THREADS": ("evaluation", "max_threads", int),
    "NEUROEVOLVE_TARGET_PERFORMANCE": ("evaluation", "target_performance", float),
    "NEUROEVOLVE_LOG_LEVEL": ("logging", "level", str.upper),
    "NEUROEVOLVE_LOG_JSON": ("logging", "json_output", _env_bool),
    "NEUROEVOLVE_STATE_DIR": (None, "state_dir", str),
}


def _candidate_paths(
    config_path: Optional[Path], state_dir: Optional[Path]
) -> List[Path]:
    candidates = []
    if config_path:
        candidates.append(config_path)
    env_path = os.environ.get("NEUROEVOLVE_CONFIG")
    if env_path:
        candidates.append(Path(env_path))
    if state_dir:
        candidates.append(state_dir / "config.json")
    candidates += [Path(".neuroevolve") / "config.json", Path("neuroevolve.json")]
    return candidates


def get_config(
    config_path: Optional[Path] = None,
    state_dir: Optional[Path] = None,
) -> Config:
    """Resolve the effective configuration.

    The first existing file wins: config_path, $NEUROEVOLVE_CONFIG,
    state_dir/config.json, .neuroevolve/config.json, neuroevolve.json.
    Defaults are used when none exists. NEUROEVOLVE_* environment variables
    are applied on top and the result is validated.

    Raises:
        InvalidConfigError: if the file or the overrides are invalid
    """
    config = next(
        (Config.load(p) for p in _candidate_paths(config_path, state_dir) if p.exists()),
        None,
    )
    if config is None:
        config = Config()
    _apply_env_overrides(config)
    config.validate()
    return config


def _apply_env_overrides(config: Config) -> None:
    for env_var, (section, key, converter) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_var)
        if raw is None:
            continue
        try:
            value = converter(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid value for {env_var}: {raw!r}")
            continue
        target = getattr(config, section) if section else config
        setattr(target, key, value)
        logger.debug(f"{env_var} overrides {section or 'config'}.{key}")
