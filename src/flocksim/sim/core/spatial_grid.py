from __future__ import annotations

import math
from typing import Dict, List, Sequence, Tuple

from pygame.math import Vector2

from .config import SpatialIndexKind
from .errors import ConfigError
from ..utils.math2d import distance_sq_xy


class SpatialGrid:
    """Uniform bucket grid over slot indices.

    Buckets hold indices into the position list passed to `rebuild`, never the
    positions themselves, so the grid stays valid if the caller relocates its
    agent storage between ticks. Bucket lists are cleared and reused rather
    than reallocated every tick.
    """

    def __init__(self, cell_size: float) -> None:
        if not (cell_size > 0 and math.isfinite(cell_size)):
            raise ConfigError(f"cell_size must be positive and finite, got {cell_size}")
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List[int]] = {}
        self._active_keys: List[Tuple[int, int]] = []
        self._offset_cache: Dict[float, List[Tuple[int, int]]] = {}
        self._positions: Sequence[Vector2] = ()

    def build_neighbor_cell_offsets(self, radius: float) -> List[Tuple[int, int]]:
        cell_range = int(math.ceil(radius / self._cell_size))
        return [(dx, dy) for dx in range(-cell_range, cell_range + 1) for dy in range(-cell_range, cell_range + 1)]

    def clear(self) -> None:
        for key in self._active_keys:
            bucket = self._cells.get(key)
            if bucket:
                bucket.clear()
        self._active_keys.clear()
        self._positions = ()

    def rebuild(self, positions: Sequence[Vector2]) -> None:
        self.clear()
        self._positions = positions
        for index, position in enumerate(positions):
            self.insert(index, position)

    def insert(self, index: int, position: Vector2) -> None:
        key = self._cell_key(position)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
            self._active_keys.append(key)
        elif not bucket:
            # Bucket exists but was cleared at the start of this tick; mark it active again.
            self._active_keys.append(key)
        bucket.append(index)

    def query(
        self,
        position: Vector2,
        radius: float,
        exclude: int | None = None,
        out: List[int] | None = None,
    ) -> List[int]:
        """Indices within `radius` of `position` (inclusive), ascending."""

        cell_offsets = self._offset_cache.get(radius)
        if cell_offsets is None:
            cell_offsets = self.build_neighbor_cell_offsets(radius)
            self._offset_cache[radius] = cell_offsets
        return self.query_precomputed(
            position,
            cell_offsets,
            radius * radius,
            exclude=exclude,
            out=out,
        )

    def query_precomputed(
        self,
        position: Vector2,
        cell_offsets: List[Tuple[int, int]],
        radius_sq: float,
        exclude: int | None = None,
        out: List[int] | None = None,
    ) -> List[int]:
        if out is None:
            out = []
        else:
            out.clear()
        base_x, base_y = self._cell_key(position)
        pos_x = position.x
        pos_y = position.y
        cells = self._cells
        positions = self._positions
        append = out.append

        for dx, dy in cell_offsets:
            bucket = cells.get((base_x + dx, base_y + dy))
            if not bucket:
                continue
            for index in bucket:
                if index == exclude:
                    continue
                other = positions[index]
                if distance_sq_xy(pos_x, pos_y, other.x, other.y) <= radius_sq:
                    append(index)
        out.sort()
        return out

    def occupied_cells(self) -> int:
        return len(self._active_keys)

    def _cell_key(self, position: Vector2) -> Tuple[int, int]:
        return (int(position.x // self._cell_size), int(position.y // self._cell_size))


class BruteForceIndex:
    """O(N) scan per query. Fallback for small populations."""

    def __init__(self) -> None:
        self._positions: Sequence[Vector2] = ()

    def clear(self) -> None:
        self._positions = ()

    def rebuild(self, positions: Sequence[Vector2]) -> None:
        self._positions = positions

    def query(
        self,
        position: Vector2,
        radius: float,
        exclude: int | None = None,
        out: List[int] | None = None,
    ) -> List[int]:
        if out is None:
            out = []
        else:
            out.clear()
        radius_sq = radius * radius
        pos_x = position.x
        pos_y = position.y
        for index, other in enumerate(self._positions):
            if index == exclude:
                continue
            if distance_sq_xy(pos_x, pos_y, other.x, other.y) <= radius_sq:
                out.append(index)
        return out

    def occupied_cells(self) -> int:
        return 1 if self._positions else 0


def build_spatial_index(kind: SpatialIndexKind | str, cell_size: float) -> SpatialGrid | BruteForceIndex:
    try:
        kind = SpatialIndexKind(kind)
    except ValueError as exc:
        raise ConfigError(f"unknown spatial_index {kind!r}") from exc
    if kind is SpatialIndexKind.BRUTE_FORCE:
        return BruteForceIndex()
    return SpatialGrid(cell_size)
