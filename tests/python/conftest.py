import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
src_root = ROOT / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from flocksim.sim.core.config import FlockConfig, RuleWeights, WorldBounds  # noqa: E402


@pytest.fixture
def small_config() -> FlockConfig:
    return FlockConfig(
        population_size=40,
        world=WorldBounds(0.0, 0.0, 200.0, 150.0),
        weights=RuleWeights(separation=1.5, alignment=1.0, cohesion=1.0),
        perception_radius=25.0,
        separation_radius=10.0,
        max_speed=4.0,
        max_force=0.3,
        seed=11,
    )
