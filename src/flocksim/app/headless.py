from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from dataclasses import replace
from pathlib import Path
from typing import Optional

from ..sim.core.config import FlockConfig
from ..sim.core.errors import ConfigError
from ..sim.core.flock import Flock
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)


_BASIC_HEADER = [
    "tick",
    "population",
    "neighbor_checks",
    "avg_speed",
    "polarization",
    "tick_ms",
]

_DETAILED_HEADER = [
    "tick",
    "population",
    "neighbor_checks",
    "avg_speed",
    "polarization",
    "tick_ms",
    "neighbor_checks_per_agent",
    "tick_ms_per_agent",
    "max_speed",
    "speed_ratio",
    "occupied_cells",
    "avg_agents_per_cell",
    "centroid_x",
    "centroid_y",
    "population_density",
]


def _format_basic_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        metrics.neighbor_checks,
        f"{metrics.average_speed:.4f}",
        f"{metrics.polarization:.4f}",
        f"{tick_ms:.3f}",
    ]


def _format_detailed_row(flock: Flock, metrics: TickMetrics, tick_ms: float) -> list[object]:
    config = flock.config
    population = metrics.population
    states = flock.snapshot()
    if population <= 0:
        neighbor_checks_per_agent = 0.0
        tick_ms_per_agent = 0.0
        max_speed = 0.0
        avg_agents_per_cell = 0.0
        centroid_x = 0.0
        centroid_y = 0.0
    else:
        neighbor_checks_per_agent = metrics.neighbor_checks / population
        tick_ms_per_agent = tick_ms / population
        max_speed = max(math.hypot(*state.velocity) for state in states)
        avg_agents_per_cell = population / metrics.occupied_cells if metrics.occupied_cells else 0.0
        centroid_x = sum(state.position[0] for state in states) / population
        centroid_y = sum(state.position[1] for state in states) / population

    world_area = config.world.width * config.world.height
    population_density = population / world_area if world_area > 0 else 0.0

    return _format_basic_row(metrics, tick_ms) + [
        f"{neighbor_checks_per_agent:.4f}",
        f"{tick_ms_per_agent:.4f}",
        f"{max_speed:.4f}",
        f"{max_speed / config.max_speed:.4f}",
        metrics.occupied_cells,
        f"{avg_agents_per_cell:.4f}",
        f"{centroid_x:.4f}",
        f"{centroid_y:.4f}",
        f"{population_density:.6f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    summary_window: int = 500,
    config: Optional[FlockConfig] = None,
) -> Flock:
    config = config or FlockConfig()
    if seed is not None:
        config = replace(config, seed=seed)

    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")

    flock = Flock(config)
    flock.seed_random()

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)

    tick_ms_series: list[float] = []
    neighbor_checks_series: list[float] = []
    polarization_series: list[float] = []

    try:
        for _ in range(steps):
            flock.advance()
            metrics = flock.metrics
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
            tick_ms_series.append(tick_ms)
            neighbor_checks_series.append(float(metrics.neighbor_checks))
            polarization_series.append(metrics.polarization)
            if writer:
                if log_mode == "detailed":
                    writer.writerow(_format_detailed_row(flock, metrics, tick_ms))
                else:
                    writer.writerow(_format_basic_row(metrics, tick_ms))
    finally:
        if csv_file:
            csv_file.close()
        flock.close()

    logger.info("ran %d ticks (seed=%d)", steps, config.seed)

    if summary_path:
        window = max(1, int(summary_window))
        tail_slice = slice(max(0, len(tick_ms_series) - window), len(tick_ms_series))
        summary = {
            "steps": steps,
            "seed": config.seed,
            "population": config.population_size,
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "boundary_policy": flock.config.boundary_policy.value,
            "spatial_index": flock.config.spatial_index.value,
            "tick_ms": _summary_stats(tick_ms_series),
            "neighbor_checks": _summary_stats(neighbor_checks_series),
            "polarization": _summary_stats(polarization_series),
            "tail_window": {
                "window": window,
                "tick_ms": _summary_stats(tick_ms_series[tail_slice]),
                "neighbor_checks": _summary_stats(neighbor_checks_series[tail_slice]),
                "polarization": _summary_stats(polarization_series[tail_slice]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return flock


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Headless flocking simulation")
    parser.add_argument("--steps", type=int, default=1000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML file with flock parameters")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=500,
        help="Tail window size (ticks) for summary stats.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="WARNING", help="Python logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = FlockConfig.from_yaml(args.config) if args.config else FlockConfig()
        run_headless(
            args.steps,
            args.seed,
            args.log,
            deterministic_log=args.deterministic_log,
            log_format=args.log_format,
            summary_path=args.summary,
            summary_window=args.summary_window,
            config=config,
        )
    except ConfigError as exc:
        parser.error(str(exc))


if __name__ == "__main__":
    main()
