from __future__ import annotations

from typing import NamedTuple, Tuple


class BoidState(NamedTuple):
    position: Tuple[float, float]
    velocity: Tuple[float, float]


Snapshot = Tuple[BoidState, ...]
