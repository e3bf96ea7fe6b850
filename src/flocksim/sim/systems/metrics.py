from __future__ import annotations

import math
from typing import Sequence

from pygame.math import Vector2

from ..types.metrics import TickMetrics
from ..utils.math2d import magnitude, safe_normalize


def polarization(velocities: Sequence[Vector2]) -> float:
    """Order parameter |sum(v_i / |v_i|)| / N; stationary agents add nothing."""

    if not velocities:
        return 0.0
    sum_x = 0.0
    sum_y = 0.0
    for velocity in velocities:
        heading = safe_normalize(velocity)
        sum_x += heading.x
        sum_y += heading.y
    return math.hypot(sum_x, sum_y) / len(velocities)


def average_speed(velocities: Sequence[Vector2]) -> float:
    if not velocities:
        return 0.0
    return sum(magnitude(v) for v in velocities) / len(velocities)


def create_metrics(
    tick: int,
    velocities: Sequence[Vector2],
    neighbor_checks: int,
    occupied_cells: int,
    duration_ms: float,
) -> TickMetrics:
    return TickMetrics(
        tick=tick,
        population=len(velocities),
        neighbor_checks=neighbor_checks,
        average_speed=average_speed(velocities),
        polarization=polarization(velocities),
        occupied_cells=occupied_cells,
        tick_duration_ms=duration_ms,
    )
