from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    neighbor_checks: int
    average_speed: float
    polarization: float
    occupied_cells: int
    tick_duration_ms: float = 0.0
