"""
Pydantic schemas for configuration validation.
Every configuration path (dict, JSON file, properties file) is checked here
before settings reach the selector, the novelty archive or the evaluator.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from neuroevolve.errors import InvalidConfigError

Direction = Literal["maximize", "minimize"]


class EvolutionSchema(BaseModel):
    """Run-level settings."""

    model_config = ConfigDict(extra="forbid")

    population_size: int = Field(default=100, ge=1, description="Chromosomes per generation")
    max_generations: int = Field(default=100, ge=1, description="Generation limit")
    random_seed: Optional[int] = Field(
        default=None, description="Seed for the selection random generator"
    )


class SelectionSchema(BaseModel):
    """Multi-objective selector settings."""

    model_config = ConfigDict(extra="forbid")

    survival_rate: float = Field(default=0.2, ge=0.0, le=1.0)
    elitism_proportion: float = Field(default=0.1, ge=0.0, le=1.0)
    elitism_min_to_select: int = Field(default=1, ge=0)
    elitism_min_species_size: int = Field(default=0, ge=0)
    max_stagnant_generations: int = Field(default=15, ge=0)
    min_age: int = Field(default=10, ge=0)
    objective_directions: Optional[List[Direction]] = Field(
        default=None, description="Per-objective direction, all maximize if omitted"
    )


class NoveltySchema(BaseModel):
    """Novelty archive settings; threshold and probabilistic modes are exclusive."""

    model_config = ConfigDict(extra="forbid")

    k: int = Field(default=30, ge=1, description="Nearest neighbours averaged for novelty")
    archive_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    archive_threshold_min: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    add_probability: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_modes(self) -> "NoveltySchema":
        threshold_keys = [
            name
            for name in ("archive_threshold", "archive_threshold_min")
            if getattr(self, name) is not None
        ]
        if self.add_probability is not None and threshold_keys:
            raise ValueError(
                "novelty add_probability cannot be combined with "
                f"{', '.join(threshold_keys)}; threshold and probabilistic "
                "admission are mutually exclusive"
            )
        if (
            self.archive_threshold is not None
            and self.archive_threshold_min is not None
            and self.archive_threshold_min > self.archive_threshold
        ):
            raise ValueError(
                "novelty archive_threshold_min must not exceed archive_threshold"
            )
        return self


class EvaluationSchema(BaseModel):
    """Bulk fitness evaluation settings."""

    model_config = ConfigDict(extra="forbid")

    max_threads: Optional[int] = Field(default=None, ge=1)
    objective_weights: Optional[List[float]] = None
    force_performance_fitness: bool = False
    target_performance: float = Field(default=1.0, ge=0.0, le=1.0)
    target_performance_type: Literal["higher", "lower"] = "higher"
    target_performance_average_count: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def check_weights(self) -> "EvaluationSchema":
        if self.objective_weights is not None:
            if any(w < 0 for w in self.objective_weights):
                raise ValueError("objective_weights must be non-negative")
            if sum(self.objective_weights) <= 0:
                raise ValueError("objective_weights must not all be zero")
        return self


class LoggingSchema(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_output: bool = False
    use_colors: bool = True
    log_file: Optional[str] = None


class ConfigSchema(BaseModel):
    """Complete configuration."""

    model_config = ConfigDict(extra="forbid")

    evolution: EvolutionSchema = Field(default_factory=EvolutionSchema)
    selection: SelectionSchema = Field(default_factory=SelectionSchema)
    novelty: NoveltySchema = Field(default_factory=NoveltySchema)
    evaluation: EvaluationSchema = Field(default_factory=EvaluationSchema)
    logging: LoggingSchema = Field(default_factory=LoggingSchema)
    state_dir: str = ".neuroevolve"

    @model_validator(mode="after")
    def check_objective_lengths(self) -> "ConfigSchema":
        directions = self.selection.objective_directions
        weights = self.evaluation.objective_weights
        if directions is not None and weights is not None and len(directions) != len(weights):
            raise ValueError(
                f"selection.objective_directions has {len(directions)} entries but "
                f"evaluation.objective_weights has {len(weights)}"
            )
        return self


def _format_error(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def validate_config_dict(data: Dict[str, Any]) -> ConfigSchema:
    """Validate a nested configuration dictionary.

    Raises:
        InvalidConfigError: carrying one message per problem found
    """
    try:
        return ConfigSchema.model_validate(data)
    except ValidationError as e:
        raise InvalidConfigError([_format_error(err) for err in e.errors()]) from e


def validate_novelty_settings(settings: Any) -> NoveltySchema:
    """Validate novelty settings given as a dataclass or a mapping."""
    data = settings if isinstance(settings, dict) else vars(settings)
    try:
        return NoveltySchema.model_validate(dict(data))
    except ValidationError as e:
        raise InvalidConfigError(
            [f"novelty.{_format_error(err)}" if err.get("loc") else _format_error(err)
             for err in e.errors()]
        ) from e
