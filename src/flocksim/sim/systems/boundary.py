from __future__ import annotations

from typing import Callable, Dict

from pygame.math import Vector2

from ..core.config import BoundaryPolicy, WorldBounds


def _wrap_axis(value: float, low: float, high: float) -> float:
    span = high - low
    wrapped = low + (value - low) % span
    # float modulo can round up to exactly `span` for tiny negative offsets
    if wrapped >= high:
        wrapped = low
    return wrapped


def wrap(position: Vector2, velocity: Vector2, bounds: WorldBounds) -> None:
    if not bounds.min_x <= position.x < bounds.max_x:
        position.x = _wrap_axis(position.x, bounds.min_x, bounds.max_x)
    if not bounds.min_y <= position.y < bounds.max_y:
        position.y = _wrap_axis(position.y, bounds.min_y, bounds.max_y)


def bounce(position: Vector2, velocity: Vector2, bounds: WorldBounds) -> None:
    if position.x < bounds.min_x:
        position.x = bounds.min_x
        velocity.x = abs(velocity.x)
    elif position.x > bounds.max_x:
        position.x = bounds.max_x
        velocity.x = -abs(velocity.x)
    if position.y < bounds.min_y:
        position.y = bounds.min_y
        velocity.y = abs(velocity.y)
    elif position.y > bounds.max_y:
        position.y = bounds.max_y
        velocity.y = -abs(velocity.y)


_POLICIES: Dict[BoundaryPolicy, Callable[[Vector2, Vector2, WorldBounds], None]] = {
    BoundaryPolicy.WRAP: wrap,
    BoundaryPolicy.BOUNCE: bounce,
}


def resolve(policy: BoundaryPolicy | str) -> Callable[[Vector2, Vector2, WorldBounds], None]:
    return _POLICIES[BoundaryPolicy(policy)]


def apply_boundary(policy: BoundaryPolicy | str, position: Vector2, velocity: Vector2, bounds: WorldBounds) -> None:
    """Bring one agent back inside `bounds`, updating both vectors in place."""

    resolve(policy)(position, velocity, bounds)
