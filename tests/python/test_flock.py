from __future__ import annotations

import math
import random
from dataclasses import replace

import pytest
from pygame.math import Vector2
from pytest import approx

from flocksim.sim.core.config import BoundaryPolicy, FlockConfig, RuleWeights, SpatialIndexKind, WorldBounds
from flocksim.sim.core.errors import ConfigError
from flocksim.sim.core.flock import Flock, TickPhase, configure


def _random_state(count: int, bounds: WorldBounds, max_speed: float, seed: int):
    rng = random.Random(seed)
    positions = [
        (rng.uniform(bounds.min_x, bounds.max_x), rng.uniform(bounds.min_y, bounds.max_y)) for _ in range(count)
    ]
    velocities = []
    for _ in range(count):
        angle = rng.uniform(0.0, 2.0 * math.pi)
        speed = rng.uniform(0.0, max_speed)
        velocities.append((math.cos(angle) * speed, math.sin(angle) * speed))
    return positions, velocities


def _rule_only_flock(population: int, weights: RuleWeights, **overrides) -> Flock:
    values = dict(
        population_size=population,
        world_bounds=(-100.0, -100.0, 100.0, 100.0),
        weights=weights,
        perception_radius=20.0,
        separation_radius=5.0,
        max_speed=100.0,
        max_force=100.0,
        dt=1.0,
    )
    values.update(overrides)
    return configure(**values)


def test_configure_rejects_invalid_parameters():
    with pytest.raises(ConfigError) as excinfo:
        configure(
            population_size=0,
            world_bounds=(0, 0, 10, 10),
            weights={"separation": 1, "alignment": 1, "cohesion": 1},
            perception_radius=-5.0,
            max_speed=-1.0,
            max_force=1.0,
        )
    errors = excinfo.value.errors
    assert any("population_size" in message for message in errors)
    assert any("perception_radius" in message for message in errors)
    assert any("max_speed" in message for message in errors)


def test_configure_rejects_unknown_options():
    with pytest.raises(ConfigError):
        configure(
            population_size=3,
            world_bounds=(0, 0, 10, 10),
            weights=RuleWeights(),
            perception_radius=5.0,
            max_speed=1.0,
            max_force=1.0,
            predator_weight=2.0,
        )


def test_advance_requires_seeding(small_config):
    flock = Flock(small_config)
    assert flock.snapshot() == ()
    with pytest.raises(RuntimeError):
        flock.advance()


def test_seed_validates_population_and_bounds(small_config):
    flock = Flock(replace(small_config, population_size=2))
    with pytest.raises(ConfigError):
        flock.seed([(1.0, 1.0)], [(0.0, 0.0)])
    with pytest.raises(ConfigError) as excinfo:
        flock.seed([(1.0, 1.0), (500.0, 1.0)], [(0.0, 0.0), (0.0, 0.0)])
    assert excinfo.value.errors == ["position[1] (500.0, 1.0) lies outside the world"]
    with pytest.raises(ConfigError):
        flock.seed([(1.0, 1.0), (2.0, "y")], [(0.0, 0.0), (0.0, 0.0)])
    assert not flock.seeded


def test_wrap_seed_rejects_positions_on_the_far_edge(small_config):
    flock = Flock(replace(small_config, population_size=1))
    with pytest.raises(ConfigError):
        flock.seed([(200.0, 10.0)], [(0.0, 0.0)])
    with pytest.raises(ConfigError):
        flock.seed([(10.0, 150.0)], [(0.0, 0.0)])
    flock.seed([(0.0, 0.0)], [(0.0, 0.0)])
    assert flock.seeded

    bounce = Flock(replace(small_config, population_size=1, boundary_policy=BoundaryPolicy.BOUNCE))
    bounce.seed([(200.0, 150.0)], [(0.0, 0.0)])
    assert bounce.snapshot()[0].position == (200.0, 150.0)


def test_configure_rejects_infinite_extents():
    common = dict(
        population_size=3,
        weights=RuleWeights(),
        max_speed=1.0,
        max_force=1.0,
    )
    with pytest.raises(ConfigError):
        configure(world_bounds=(0, 0, 10, 10), perception_radius=float("inf"), separation_radius=5.0, **common)
    with pytest.raises(ConfigError):
        configure(world_bounds=(0, 0, float("inf"), 100), perception_radius=5.0, **common)


def test_seed_clamps_fast_velocities(small_config):
    flock = Flock(replace(small_config, population_size=1, max_speed=5.0))
    flock.seed([Vector2(10.0, 10.0)], [Vector2(30.0, 40.0)])
    (state,) = flock.snapshot()
    assert state.velocity == approx((3.0, 4.0))


def test_seed_random_clusters_around_world_centre(small_config):
    flock = Flock(small_config)
    flock.seed_random(5)
    world = small_config.world
    spread = world.width * 0.1
    for state in flock.snapshot():
        assert abs(state.position[0] - 100.0) <= spread
        assert abs(state.position[1] - 75.0) <= spread
        assert math.hypot(*state.velocity) <= small_config.max_speed + 1e-9


def test_seed_random_is_deterministic(small_config):
    flock_a = Flock(small_config)
    flock_b = Flock(small_config)
    flock_a.seed_random(7)
    flock_b.seed_random(7)
    for _ in range(10):
        flock_a.advance()
        flock_b.advance()
    assert flock_a.snapshot() == flock_b.snapshot()


def test_snapshot_is_idempotent(small_config):
    flock = Flock(small_config)
    flock.seed_random()
    flock.advance()
    first = flock.snapshot()
    second = flock.snapshot()
    assert first == second
    assert first is not second
    assert len(first) == small_config.population_size


def test_isolated_agent_moves_by_velocity_only():
    flock = _rule_only_flock(2, RuleWeights(1.0, 1.0, 1.0), dt=0.5)
    flock.seed([(-80.0, -80.0), (80.0, 80.0)], [(1.0, 2.0), (-1.0, 0.0)])
    flock.advance()
    first, second = flock.snapshot()
    assert first.position == approx((-79.5, -79.0))
    assert first.velocity == approx((1.0, 2.0))
    assert second.position == approx((79.5, 80.0))
    assert second.velocity == approx((-1.0, 0.0))
    assert flock.metrics.neighbor_checks == 0


@pytest.mark.parametrize("gap", [1.0, 2.0])
def test_two_agents_separate_inversely_to_distance(gap):
    flock = _rule_only_flock(2, RuleWeights(separation=1.0, alignment=0.0, cohesion=0.0))
    flock.seed([(0.0, 0.0), (gap, 0.0)], [(0.0, 0.0), (0.0, 0.0)])
    flock.advance()
    left, right = flock.snapshot()
    assert left.velocity == approx((-1.0 / gap, 0.0))
    assert right.velocity == approx((1.0 / gap, 0.0))


def test_three_agents_cohere_toward_centroid():
    flock = _rule_only_flock(3, RuleWeights(separation=0.0, alignment=0.0, cohesion=1.0))
    positions = [(0.0, 0.0), (10.0, 0.0), (5.0, 8.66)]
    flock.seed(positions, [(0.0, 0.0)] * 3)
    flock.advance()
    centroid = (5.0, 2.8867)

    states = flock.snapshot()
    a, b, c = (state.velocity for state in states)
    assert a[0] > 0 and a[1] > 0
    assert b[0] < 0 and b[1] > 0
    assert c[0] == approx(0.0, abs=1e-9) and c[1] < 0
    for (px, py), (vx, vy) in zip(positions, (a, b, c)):
        to_centroid = Vector2(centroid[0] - px, centroid[1] - py)
        heading = Vector2(vx, vy)
        assert heading.dot(to_centroid) > 0
        assert heading.normalize().cross(to_centroid.normalize()) == approx(0.0, abs=1e-3)


def test_storage_order_does_not_change_results(small_config):
    positions, velocities = _random_state(60, small_config.world, small_config.max_speed, seed=3)
    order = list(range(60))
    random.Random(99).shuffle(order)

    flock_a = Flock(small_config)
    flock_a.seed(positions, velocities)
    flock_b = Flock(small_config)
    flock_b.seed([positions[i] for i in order], [velocities[i] for i in order])
    for _ in range(3):
        flock_a.advance()
        flock_b.advance()

    states_a = flock_a.snapshot()
    states_b = flock_b.snapshot()
    for slot, source_slot in enumerate(order):
        assert states_b[slot].position == approx(states_a[source_slot].position, abs=1e-9)
        assert states_b[slot].velocity == approx(states_a[source_slot].velocity, abs=1e-9)


def test_speed_bound_holds_every_tick(small_config):
    flock = Flock(replace(small_config, max_force=5.0, weights=RuleWeights(4.0, 2.0, 3.0)))
    flock.seed_random()
    for _ in range(50):
        flock.advance()
        for state in flock.snapshot():
            assert math.hypot(*state.velocity) <= small_config.max_speed + 1e-9


@pytest.mark.parametrize("policy", [BoundaryPolicy.WRAP, BoundaryPolicy.BOUNCE])
def test_positions_stay_inside_world(policy):
    config = FlockConfig(
        population_size=50,
        world=WorldBounds(-20.0, 0.0, 20.0, 30.0),
        perception_radius=6.0,
        separation_radius=2.0,
        max_speed=3.0,
        max_force=0.5,
        boundary_policy=policy,
    )
    flock = Flock(config)
    positions, velocities = _random_state(50, config.world, config.max_speed, seed=8)
    flock.seed(positions, velocities)
    for _ in range(100):
        flock.advance()
        for state in flock.snapshot():
            x, y = state.position
            if policy is BoundaryPolicy.WRAP:
                assert -20.0 <= x < 20.0 and 0.0 <= y < 30.0
            else:
                assert -20.0 <= x <= 20.0 and 0.0 <= y <= 30.0


def test_neighbors_match_bruteforce(small_config):
    for count in (10, 80, 200):
        flock = Flock(replace(small_config, population_size=count))
        positions, velocities = _random_state(count, small_config.world, 1.0, seed=count)
        flock.seed(positions, velocities)
        radius_sq = small_config.perception_radius ** 2
        for i, (x, y) in enumerate(positions):
            expected = [
                j for j, (ox, oy) in enumerate(positions) if j != i and (ox - x) ** 2 + (oy - y) ** 2 <= radius_sq
            ]
            assert flock.neighbors_of(i) == expected


def test_grid_and_brute_force_flocks_agree(small_config):
    grid_flock = Flock(small_config)
    brute_flock = Flock(replace(small_config, spatial_index=SpatialIndexKind.BRUTE_FORCE))
    grid_flock.seed_random()
    brute_flock.seed_random()
    for _ in range(20):
        grid_flock.advance()
        brute_flock.advance()
    assert grid_flock.snapshot() == brute_flock.snapshot()


def test_parallel_steering_matches_serial(small_config):
    serial = Flock(small_config)
    with Flock(replace(small_config, steering_workers=4)) as parallel:
        serial.seed_random()
        parallel.seed_random()
        for _ in range(10):
            serial.advance()
            parallel.advance()
        assert parallel.snapshot() == serial.snapshot()
        assert parallel.metrics.neighbor_checks == serial.metrics.neighbor_checks


def test_independent_flocks_do_not_share_state(small_config):
    flock_a = Flock(small_config)
    flock_b = Flock(small_config)
    flock_a.seed_random(1)
    flock_b.seed_random(1)
    flock_a.advance()
    assert flock_b.tick == 0
    assert flock_a.snapshot() != flock_b.snapshot()


def test_reset_restores_seeded_state(small_config):
    flock = Flock(small_config)
    flock.seed_random()
    initial = flock.snapshot()
    for _ in range(5):
        flock.advance()
    assert flock.tick == 5
    flock.reset()
    assert flock.tick == 0
    assert flock.metrics is None
    assert flock.snapshot() == initial


def test_metrics_and_phase_after_tick(small_config):
    flock = Flock(small_config)
    flock.seed_random()
    assert flock.phase is TickPhase.IDLE
    flock.advance()
    metrics = flock.metrics
    assert flock.phase is TickPhase.IDLE
    assert metrics.tick == 1
    assert metrics.population == small_config.population_size
    assert 0.0 <= metrics.polarization <= 1.0 + 1e-9
    assert metrics.average_speed <= small_config.max_speed + 1e-9
    assert metrics.tick_duration_ms >= 0.0
