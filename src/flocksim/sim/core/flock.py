from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from enum import Enum
from time import perf_counter
from typing import Any, List, Mapping, Sequence, Tuple

from pygame.math import Vector2

from .config import BoundaryPolicy, FlockConfig, RuleWeights, SpatialIndexKind, WorldBounds
from .errors import ConfigError
from .rng import DeterministicRng
from .spatial_grid import build_spatial_index
from ..systems import boundary, metrics as metrics_system, steering
from ..types.metrics import TickMetrics
from ..types.snapshot import BoidState, Snapshot
from ..utils.math2d import clamp_length, clamp_length_xy_f, clamp_value, scale

logger = logging.getLogger(__name__)

# Share of the world width the randomly seeded cluster spreads over, per side.
_SEED_SPREAD_FRACTION = 0.1


class TickPhase(str, Enum):
    IDLE = "Idle"
    INDEXING = "Indexing"
    STEERING = "Steering"
    INTEGRATING = "Integrating"
    BOUNDARY_APPLIED = "BoundaryApplied"


def _as_vector(value: Any, label: str) -> Vector2:
    if isinstance(value, Vector2):
        return Vector2(value)
    try:
        x, y = value
        return Vector2(float(x), float(y))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be an (x, y) pair, got {value!r}") from exc


class Flock:
    """Fixed-size population of boids advanced one tick at a time.

    Positions and velocities live in parallel lists indexed by slot. Steering
    reads the current buffers and writes candidate velocities into a second
    buffer; the two velocity buffers are swapped once every agent has been
    steered, so no agent ever sees a partially updated neighbour.
    """

    def __init__(self, config: FlockConfig):
        config.validate()
        self._config = replace(
            config,
            boundary_policy=BoundaryPolicy(config.boundary_policy),
            spatial_index=SpatialIndexKind(config.spatial_index),
        )
        cell_size = max(self._config.cell_size or 0.0, self._config.perception_radius)
        self._index = build_spatial_index(self._config.spatial_index, cell_size)
        self._apply_boundary = boundary.resolve(self._config.boundary_policy)
        self._positions: List[Vector2] = []
        self._velocities: List[Vector2] = []
        self._next_velocities: List[Vector2] = []
        self._neighbor_scratch: List[int] = []
        self._seed_source: Tuple[List[Vector2], List[Vector2]] | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._tick = 0
        self._phase = TickPhase.IDLE
        self._metrics: TickMetrics | None = None
        logger.info(
            "configured flock: population=%d index=%s boundary=%s workers=%d",
            self._config.population_size,
            self._config.spatial_index.value,
            self._config.boundary_policy.value,
            self._config.steering_workers,
        )

    @property
    def config(self) -> FlockConfig:
        return self._config

    @property
    def population_size(self) -> int:
        return self._config.population_size

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def phase(self) -> TickPhase:
        return self._phase

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    @property
    def seeded(self) -> bool:
        return self._seed_source is not None

    def seed(self, positions: Sequence[Any], velocities: Sequence[Any]) -> None:
        size = self._config.population_size
        errors: List[str] = []
        if len(positions) != size:
            errors.append(f"expected {size} positions, got {len(positions)}")
        if len(velocities) != size:
            errors.append(f"expected {size} velocities, got {len(velocities)}")
        if errors:
            raise ConfigError(errors)

        new_positions = [_as_vector(value, f"position[{i}]") for i, value in enumerate(positions)]
        new_velocities = [_as_vector(value, f"velocity[{i}]") for i, value in enumerate(velocities)]
        world = self._config.world
        half_open = self._config.boundary_policy is BoundaryPolicy.WRAP
        outside = [
            i for i, pos in enumerate(new_positions) if not world.contains(pos.x, pos.y, half_open=half_open)
        ]
        if outside:
            raise ConfigError([f"position[{i}] {tuple(new_positions[i])} lies outside the world" for i in outside])

        max_speed = self._config.max_speed
        clamped = 0
        for velocity in new_velocities:
            if velocity.length_squared() > max_speed * max_speed:
                velocity.update(clamp_length(velocity, max_speed))
                clamped += 1
        if clamped:
            logger.debug("clamped %d seeded velocities to max_speed=%s", clamped, max_speed)

        self._install(new_positions, new_velocities)
        logger.info("seeded flock with %d boids", size)

    def seed_random(self, rng_seed: int | None = None) -> None:
        config = self._config
        rng = DeterministicRng(config.seed if rng_seed is None else rng_seed)
        world = config.world
        mid_x = world.min_x + world.width / 2.0
        mid_y = world.min_y + world.height / 2.0
        spread = world.width * _SEED_SPREAD_FRACTION
        max_speed = config.max_speed

        positions: List[Vector2] = []
        velocities: List[Vector2] = []
        for _ in range(config.population_size):
            x = clamp_value(mid_x + rng.next_range(-spread, spread), world.min_x, world.max_x)
            y = clamp_value(mid_y + rng.next_range(-spread, spread), world.min_y, world.max_y)
            vx, vy = clamp_length_xy_f(
                rng.next_range(-max_speed, max_speed),
                rng.next_range(-max_speed, max_speed),
                max_speed,
            )
            positions.append(Vector2(x, y))
            velocities.append(Vector2(vx, vy))

        self._install(positions, velocities)
        logger.info("seeded flock randomly with %d boids (seed=%d)", config.population_size, rng.seed)

    def reset(self) -> None:
        if self._seed_source is None:
            raise RuntimeError("flock has not been seeded")
        positions, velocities = self._seed_source
        self._install(positions, velocities)
        logger.info("reset flock to its seeded state")

    def advance(self) -> None:
        if self._seed_source is None:
            raise RuntimeError("seed() or seed_random() must be called before advance()")
        start = perf_counter()
        config = self._config

        self._phase = TickPhase.INDEXING
        self._index.rebuild(self._positions)

        self._phase = TickPhase.STEERING
        neighbor_checks = self._steer_all()

        self._phase = TickPhase.INTEGRATING
        self._velocities, self._next_velocities = self._next_velocities, self._velocities
        dt = config.dt
        for position, velocity in zip(self._positions, self._velocities):
            position += scale(velocity, dt)

        self._phase = TickPhase.BOUNDARY_APPLIED
        apply_boundary = self._apply_boundary
        world = config.world
        for position, velocity in zip(self._positions, self._velocities):
            apply_boundary(position, velocity, world)

        self._tick += 1
        duration_ms = (perf_counter() - start) * 1000.0
        self._metrics = metrics_system.create_metrics(
            self._tick,
            self._velocities,
            neighbor_checks,
            self._index.occupied_cells(),
            duration_ms,
        )
        self._phase = TickPhase.IDLE
        logger.debug("tick %d: neighbor_checks=%d %.3fms", self._tick, neighbor_checks, duration_ms)

    def snapshot(self) -> Snapshot:
        return tuple(
            BoidState((position.x, position.y), (velocity.x, velocity.y))
            for position, velocity in zip(self._positions, self._velocities)
        )

    def neighbors_of(self, index: int) -> List[int]:
        """Neighbours of one boid within the perception radius, for inspection."""

        self._index.rebuild(self._positions)
        return list(self._index.query(self._positions[index], self._config.perception_radius, exclude=index))

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "Flock":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _install(self, positions: List[Vector2], velocities: List[Vector2]) -> None:
        self._seed_source = ([Vector2(p) for p in positions], [Vector2(v) for v in velocities])
        self._positions = [Vector2(p) for p in positions]
        self._velocities = [Vector2(v) for v in velocities]
        self._next_velocities = [Vector2() for _ in velocities]
        self._index.clear()
        self._tick = 0
        self._metrics = None
        self._phase = TickPhase.IDLE

    def _steer_all(self) -> int:
        size = len(self._positions)
        workers = self._config.steering_workers
        if workers <= 1 or size < workers:
            return self._steer_range(0, size, self._neighbor_scratch)

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="SteeringWorker")
        chunk = -(-size // workers)
        futures = [
            self._executor.submit(self._steer_range, start, min(start + chunk, size), [])
            for start in range(0, size, chunk)
        ]
        return sum(future.result() for future in futures)

    def _steer_range(self, start: int, stop: int, scratch: List[int]) -> int:
        config = self._config
        positions = self._positions
        velocities = self._velocities
        candidates = self._next_velocities
        index = self._index
        radius = config.perception_radius
        weights = config.weights
        neighbor_checks = 0

        for i in range(start, stop):
            position = positions[i]
            velocity = velocities[i]
            neighbors = index.query(position, radius, exclude=i, out=scratch)
            neighbor_checks += len(neighbors)
            _, candidate = steering.steer(
                position,
                velocity,
                [positions[j] for j in neighbors],
                [velocities[j] for j in neighbors],
                weights,
                config.separation_radius,
                config.max_force,
                config.max_speed,
            )
            candidates[i].update(candidate.x, candidate.y)
        return neighbor_checks


def configure(
    population_size: int,
    world_bounds: WorldBounds | Sequence[float] | Mapping[str, float],
    weights: RuleWeights | Mapping[str, float],
    perception_radius: float,
    max_speed: float,
    max_force: float,
    boundary_policy: BoundaryPolicy | str = BoundaryPolicy.WRAP,
    dt: float = 1.0,
    **extra: Any,
) -> Flock:
    """Validate parameters and build an unseeded `Flock`.

    `extra` accepts the remaining `FlockConfig` fields (separation_radius,
    spatial_index, cell_size, steering_workers, seed).
    """

    if "separation_radius" not in extra:
        extra["separation_radius"] = min(perception_radius, FlockConfig.separation_radius)
    try:
        config = FlockConfig(
            population_size=population_size,
            world=WorldBounds.coerce(world_bounds),
            weights=RuleWeights.coerce(weights),
            perception_radius=perception_radius,
            max_speed=max_speed,
            max_force=max_force,
            boundary_policy=boundary_policy,
            dt=dt,
            **extra,
        )
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc
    return Flock(config)
