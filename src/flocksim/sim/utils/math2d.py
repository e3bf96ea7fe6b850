from __future__ import annotations

import math

from pygame.math import Vector2

_NORMALIZE_EPSILON_SQ = 1e-10


def magnitude(vector: Vector2) -> float:
    return vector.length()


def distance(a: Vector2, b: Vector2) -> float:
    return math.sqrt(distance_sq_xy(a.x, a.y, b.x, b.y))


def distance_sq_xy(ax: float, ay: float, bx: float, by: float) -> float:
    dx = bx - ax
    dy = by - ay
    return dx * dx + dy * dy


def scale(vector: Vector2, factor: float) -> Vector2:
    return Vector2(vector.x * factor, vector.y * factor)


def safe_normalize(vector: Vector2) -> Vector2:
    return safe_normalize_xy(vector.x, vector.y)


def safe_normalize_xy(x: float, y: float) -> Vector2:
    magnitude_sq = x * x + y * y
    if magnitude_sq < _NORMALIZE_EPSILON_SQ:
        return Vector2()
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector2(x * inv, y * inv)


def clamp_length(vector: Vector2, max_length: float) -> Vector2:
    x, y = clamp_length_xy_f(vector.x, vector.y, max_length)
    return Vector2(x, y)


def clamp_length_xy_f(x: float, y: float, max_length: float) -> tuple[float, float]:
    if max_length <= 0.0:
        return 0.0, 0.0
    magnitude_sq = x * x + y * y
    max_sq = max_length * max_length
    if magnitude_sq <= max_sq:
        return x, y
    if magnitude_sq <= 1e-18:
        return 0.0, 0.0
    inv = max_length / math.sqrt(magnitude_sq)
    return x * inv, y * inv


def clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))
