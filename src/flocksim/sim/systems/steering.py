from __future__ import annotations

from typing import Sequence, Tuple

from pygame.math import Vector2

from ..core.config import RuleWeights
from ..utils.math2d import clamp_length_xy_f, distance_sq_xy


def separation(
    position: Vector2,
    neighbor_positions: Sequence[Vector2],
    separation_radius: float,
) -> Vector2:
    """Push away from neighbours inside `separation_radius`.

    Each contributing neighbour adds a unit vector pointing away from it scaled
    by 1/distance, so the result is averaged over the neighbours that actually
    repel. Coincident neighbours have no defined direction and are skipped.
    """

    radius_sq = separation_radius * separation_radius
    pos_x = position.x
    pos_y = position.y
    sum_x = 0.0
    sum_y = 0.0
    count = 0
    for other in neighbor_positions:
        away_x = pos_x - other.x
        away_y = pos_y - other.y
        dist_sq = distance_sq_xy(other.x, other.y, pos_x, pos_y)
        if dist_sq <= 0.0 or dist_sq > radius_sq:
            continue
        # unit(away) / d == away / d^2
        sum_x += away_x / dist_sq
        sum_y += away_y / dist_sq
        count += 1
    if count == 0:
        return Vector2()
    return Vector2(sum_x / count, sum_y / count)


def alignment(velocity: Vector2, neighbor_velocities: Sequence[Vector2]) -> Vector2:
    """Correction from own velocity toward the neighbours' mean velocity."""

    count = len(neighbor_velocities)
    if count == 0:
        return Vector2()
    sum_x = 0.0
    sum_y = 0.0
    for other in neighbor_velocities:
        sum_x += other.x
        sum_y += other.y
    return Vector2(sum_x / count - velocity.x, sum_y / count - velocity.y)


def cohesion(position: Vector2, neighbor_positions: Sequence[Vector2]) -> Vector2:
    """Vector from own position to the neighbours' centroid."""

    count = len(neighbor_positions)
    if count == 0:
        return Vector2()
    sum_x = 0.0
    sum_y = 0.0
    for other in neighbor_positions:
        sum_x += other.x
        sum_y += other.y
    return Vector2(sum_x / count - position.x, sum_y / count - position.y)


def blend(
    weights: RuleWeights,
    max_force: float,
    separation_vec: Vector2,
    alignment_vec: Vector2,
    cohesion_vec: Vector2,
) -> Vector2:
    sep_x, sep_y = clamp_length_xy_f(separation_vec.x, separation_vec.y, max_force)
    ali_x, ali_y = clamp_length_xy_f(alignment_vec.x, alignment_vec.y, max_force)
    coh_x, coh_y = clamp_length_xy_f(cohesion_vec.x, cohesion_vec.y, max_force)
    return Vector2(
        weights.separation * sep_x + weights.alignment * ali_x + weights.cohesion * coh_x,
        weights.separation * sep_y + weights.alignment * ali_y + weights.cohesion * coh_y,
    )


def steer(
    position: Vector2,
    velocity: Vector2,
    neighbor_positions: Sequence[Vector2],
    neighbor_velocities: Sequence[Vector2],
    weights: RuleWeights,
    separation_radius: float,
    max_force: float,
    max_speed: float,
) -> Tuple[Vector2, Vector2]:
    """Return (acceleration, candidate velocity) for one agent."""

    if not neighbor_positions:
        acceleration = Vector2()
    else:
        acceleration = blend(
            weights,
            max_force,
            separation(position, neighbor_positions, separation_radius),
            alignment(velocity, neighbor_velocities),
            cohesion(position, neighbor_positions),
        )
    vx, vy = clamp_length_xy_f(velocity.x + acceleration.x, velocity.y + acceleration.y, max_speed)
    return acceleration, Vector2(vx, vy)
