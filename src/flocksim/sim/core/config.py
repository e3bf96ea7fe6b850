from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, List, Mapping, Sequence

import yaml

from .errors import ConfigError


class BoundaryPolicy(str, Enum):
    WRAP = "wrap"
    BOUNCE = "bounce"


class SpatialIndexKind(str, Enum):
    GRID = "grid"
    BRUTE_FORCE = "brute_force"


@dataclass
class WorldBounds:
    min_x: float = 0.0
    min_y: float = 0.0
    max_x: float = 800.0
    max_y: float = 500.0

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def contains(self, x: float, y: float, half_open: bool = False) -> bool:
        if half_open:
            return self.min_x <= x < self.max_x and self.min_y <= y < self.max_y
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    @staticmethod
    def coerce(value: "WorldBounds | Sequence[float] | Mapping[str, float]") -> "WorldBounds":
        if isinstance(value, WorldBounds):
            return value
        if isinstance(value, Mapping):
            return WorldBounds(**{k: float(v) for k, v in value.items()})
        if isinstance(value, (tuple, list)) and len(value) == 4:
            min_x, min_y, max_x, max_y = (float(v) for v in value)
            return WorldBounds(min_x, min_y, max_x, max_y)
        raise ConfigError(f"world bounds must be (min_x, min_y, max_x, max_y), got {value!r}")


@dataclass
class RuleWeights:
    separation: float = 1.5
    alignment: float = 1.0
    cohesion: float = 1.0

    @staticmethod
    def coerce(value: "RuleWeights | Mapping[str, float]") -> "RuleWeights":
        if isinstance(value, RuleWeights):
            return value
        if isinstance(value, Mapping):
            return RuleWeights(**{k: float(v) for k, v in value.items()})
        raise ConfigError(f"weights must map separation/alignment/cohesion, got {value!r}")


def _check_positive(name: str, value: float, errors: List[str]) -> bool:
    if value > 0.0 and math.isfinite(value):
        return True
    errors.append(f"{name} must be positive and finite, got {value}")
    return False


@dataclass
class FlockConfig:
    population_size: int = 120
    world: WorldBounds = field(default_factory=WorldBounds)
    weights: RuleWeights = field(default_factory=RuleWeights)
    perception_radius: float = 50.0
    separation_radius: float = 20.0
    max_speed: float = 8.0
    max_force: float = 0.5
    boundary_policy: BoundaryPolicy = BoundaryPolicy.WRAP
    dt: float = 1.0
    spatial_index: SpatialIndexKind = SpatialIndexKind.GRID
    # None means one cell per perception radius.
    cell_size: float | None = None
    steering_workers: int = 1
    seed: int = 42

    def collect_errors(self) -> List[str]:
        errors: List[str] = []
        if self.population_size < 1:
            errors.append(f"population_size must be at least 1, got {self.population_size}")
        world = self.world
        bounds = (world.min_x, world.min_y, world.max_x, world.max_y)
        if not all(math.isfinite(value) for value in bounds):
            errors.append(f"world bounds must be finite, got {bounds}")
        elif not (world.max_x > world.min_x and world.max_y > world.min_y):
            errors.append(
                f"world bounds are empty: x [{world.min_x}, {world.max_x}), y [{world.min_y}, {world.max_y})"
            )
        _check_positive("perception_radius", self.perception_radius, errors)
        if _check_positive("separation_radius", self.separation_radius, errors):
            if self.separation_radius > self.perception_radius:
                errors.append(
                    "separation_radius must not exceed perception_radius "
                    f"({self.separation_radius} > {self.perception_radius})"
                )
        _check_positive("max_speed", self.max_speed, errors)
        if not (self.max_force >= 0.0 and math.isfinite(self.max_force)):
            errors.append(f"max_force must be finite and not negative, got {self.max_force}")
        _check_positive("dt", self.dt, errors)
        for name in ("separation", "alignment", "cohesion"):
            value = getattr(self.weights, name)
            if not math.isfinite(value):
                errors.append(f"{name} weight must be finite, got {value}")
        if self.cell_size is not None:
            _check_positive("cell_size", self.cell_size, errors)
        if self.steering_workers < 1:
            errors.append(f"steering_workers must be at least 1, got {self.steering_workers}")
        try:
            BoundaryPolicy(self.boundary_policy)
        except ValueError:
            errors.append(f"unknown boundary_policy {self.boundary_policy!r}")
        try:
            SpatialIndexKind(self.spatial_index)
        except ValueError:
            errors.append(f"unknown spatial_index {self.spatial_index!r}")
        return errors

    def validate(self) -> None:
        errors = self.collect_errors()
        if errors:
            raise ConfigError(errors)

    @staticmethod
    def from_yaml(path: Path) -> "FlockConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


def load_config(raw: Mapping[str, Any]) -> FlockConfig:
    known = {f.name for f in fields(FlockConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError([f"unknown config key {key!r}" for key in unknown])

    values = dict(raw)
    try:
        if "world" in values:
            values["world"] = WorldBounds.coerce(values["world"])
        if "weights" in values:
            values["weights"] = RuleWeights.coerce(values["weights"])
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc
    for key, enum_type in (("boundary_policy", BoundaryPolicy), ("spatial_index", SpatialIndexKind)):
        if key in values:
            try:
                values[key] = enum_type(values[key])
            except ValueError as exc:
                raise ConfigError(f"unknown {key} {values[key]!r}") from exc
    return FlockConfig(**values)
