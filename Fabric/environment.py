from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, Optional
import random

from algos.profiles import EnvironmentConfig


@dataclass
class NodeState:
    """Live uncertainty state tracked for one node.

    Attributes
    ----------
    available: bool
        Online flag; flips with a small probability every step.
    energy_level: float
        Remaining energy in percent, 0-100.
    reliability: float
        Probability that the node works for a given feasibility check.
    recent_load: float
        Utilization reported for the node at the latest decision that offered it.
    """

    available: bool = True
    energy_level: float = 100.0
    reliability: float = 1.0
    recent_load: float = 0.0


class EnvironmentModel:
    """Time-varying environment seen by the scheduler.

    Holds one shared network-congestion level (crossed by cloud traffic) and a
    NodeState per tracked node. `advance()` drifts the state once per decision;
    `is_available()` is the scheduler's own feasibility filter.
    """

    def __init__(self, config: EnvironmentConfig, rng: random.Random) -> None:
        self.config = config
        self.rng = rng
        self.network_congestion = 0.0
        self.congestion_override: Optional[float] = None
        self.congestion_history: Deque[float] = deque(maxlen=max(1, config.congestion_history))
        self.nodes: Dict[int, NodeState] = {}
        for node_id in range(config.tracked_nodes):
            self.track(node_id)

    @property
    def congestion(self) -> float:
        if self.congestion_override is not None:
            return min(1.0, max(0.0, float(self.congestion_override)))
        return self.network_congestion

    def track(self, node_id: int) -> NodeState:
        """Return the state for `node_id`, creating it with a random reliability if unseen."""
        state = self.nodes.get(node_id)
        if state is None:
            lo, hi = self.config.reliability_range
            state = NodeState(reliability=self.rng.uniform(lo, hi))
            self.nodes[node_id] = state
        return state

    def state(self, node_id: int) -> NodeState:
        return self.track(node_id)

    def tracked_ids(self) -> Iterable[int]:
        return self.nodes.keys()

    def advance(self) -> None:
        cfg = self.config
        drift = self.rng.gauss(0.0, cfg.congestion_sigma)
        self.network_congestion = min(1.0, max(0.0, self.network_congestion + drift))
        self.congestion_history.append(self.congestion)

        for state in self.nodes.values():
            if self.rng.random() < cfg.availability_flip_probability:
                state.available = not state.available
            consumed = self.rng.random() * cfg.energy_depletion_rate
            state.energy_level = max(0.0, state.energy_level - consumed)

    def is_available(self, node_id: int) -> bool:
        """Feasibility check; reliability is sampled on every call."""
        state = self.track(node_id)
        if not state.available:
            return False
        if state.energy_level < self.config.low_energy_threshold:
            return False
        if state.recent_load > self.config.overload_threshold:
            return False
        if self.rng.random() > state.reliability:
            return False
        return True

    def record_load(self, node_id: int, load: float) -> None:
        self.track(node_id).recent_load = min(1.0, max(0.0, float(load)))
