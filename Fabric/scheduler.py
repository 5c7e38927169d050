from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Sequence, Union

from .classifier import classify, is_edge
from .node import NodeDescriptor, Tier
from .task import Outcome, Task


class NoPlacement:
    """Explicit "no feasible node" result of a placement decision.

    Falsy and never equal to a node id, so a host cannot mistake it for
    node 0 or -1.
    """

    _instance: Optional["NoPlacement"] = None

    def __new__(cls) -> "NoPlacement":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_PLACEMENT"


NO_PLACEMENT = NoPlacement()

Placement = Union[int, NoPlacement]


class Scheduler(Protocol):
    """Protocol for plugging placement algorithms into a host simulator.

    The host calls `decide` once per task arrival with the candidates that
    passed its own feasibility check, and `on_completion` once per finished
    task with the realized outcome.
    """

    def decide(self, task: Task, candidates: Sequence[NodeDescriptor]) -> Placement:
        ...

    def on_completion(self, task: Task, outcome: Outcome) -> Optional[float]:
        ...


@dataclass
class GreedyEdgeFirstScheduler:
    """Baseline scheduler: least-utilized edge node; else least-utilized cloud node."""

    tier_usage: Dict[Tier, int] = field(default_factory=dict)

    def decide(self, task: Task, candidates: Sequence[NodeDescriptor]) -> Placement:
        best: Optional[NodeDescriptor] = None
        best_key = None
        for node in candidates:
            tier = classify(node)
            if tier is Tier.SENSOR:
                continue
            # Prefer edge tiers, then lower utilization; first seen wins ties
            key = (0 if is_edge(tier) else 1, node.utilization())
            if best_key is None or key < best_key:
                best, best_key = node, key
        if best is None:
            return NO_PLACEMENT
        tier = classify(best)
        self.tier_usage[tier] = self.tier_usage.get(tier, 0) + 1
        return best.node_id

    def on_completion(self, task: Task, outcome: Outcome) -> Optional[float]:
        return None
