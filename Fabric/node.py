from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Tier(Enum):
    SENSOR = "sensor"
    AERIAL = "aerial"  # UAV / drone mobile edge
    GROUND_STATION = "ground_station"
    RELAY = "relay"  # LEO satellite
    CLOUD = "cloud"


class NodeCategory(Enum):
    """Coarse node category reported by the host simulator."""

    EDGE_DEVICE = "edge_device"
    EDGE_DATACENTER = "edge_datacenter"
    CLOUD = "cloud"


EDGE_TIERS = frozenset({Tier.AERIAL, Tier.GROUND_STATION, Tier.RELAY})


@dataclass
class NodeDescriptor:
    """Snapshot of a candidate compute node, refreshed by the host per decision.

    Attributes
    ----------
    node_id: int
        Host-side node index.
    total_capacity: float
        Processing capacity in work units per second.
    current_utilization: float
        CPU utilization in [0, 1].
    name: str
        Free-form node name; only used for tier inference when `tier` is None.
    tier: Optional[Tier]
        Explicit tier tag, preferred over any name heuristic.
    category: NodeCategory
        Coarse category used as the last classification fallback.
    """

    node_id: int
    total_capacity: float
    current_utilization: float = 0.0
    name: str = ""
    tier: Optional[Tier] = None
    category: NodeCategory = NodeCategory.CLOUD

    def utilization(self) -> float:
        return min(1.0, max(0.0, float(self.current_utilization)))
