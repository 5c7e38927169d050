import random
import sys
from pathlib import Path

# Ensure package import for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from Fabric.node import NodeCategory, NodeDescriptor
from Fabric.task import Task


@pytest.fixture
def rng() -> random.Random:
    return random.Random(7)


@pytest.fixture
def fabric():
    """One node per tier; tiers come from names and categories."""
    return [
        NodeDescriptor(0, 100.0, 0.0, name="Sensor_0", category=NodeCategory.EDGE_DEVICE),
        NodeDescriptor(1, 4000.0, 0.2, name="UAV_0", category=NodeCategory.EDGE_DEVICE),
        NodeDescriptor(2, 16000.0, 0.4, name="BaseStation_0", category=NodeCategory.EDGE_DATACENTER),
        NodeDescriptor(3, 6000.0, 0.1, name="LEO_Satellite_0", category=NodeCategory.CLOUD),
        NodeDescriptor(4, 160000.0, 0.3, name="Cloud_0", category=NodeCategory.CLOUD),
    ]


@pytest.fixture
def make_task():
    counter = {"n": 0}

    def _make(demand: float = 1000.0, max_latency: float = 2.0, arrival_time: float = 0.0) -> Task:
        counter["n"] += 1
        return Task(
            task_id=f"task-{counter['n']}",
            tier_affinity_hint=0,
            compute_demand=demand,
            max_latency=max_latency,
            arrival_time=arrival_time,
        )

    return _make
