from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Task:
    """Represents a computation task arriving at the offloading scheduler.

    Attributes
    ----------
    task_id: str
        Unique identifier for the task.
    tier_affinity_hint: int
        Application/category id of the task, as assigned by the task generator.
    compute_demand: float
        Work units required to execute the task (e.g. MI).
    max_latency: float
        Maximum tolerated end-to-end latency in seconds.
    arrival_time: float
        Absolute arrival timestamp (same time base as the host clock).
    """

    task_id: str
    tier_affinity_hint: int
    compute_demand: float
    max_latency: float
    arrival_time: float = 0.0

    def estimated_compute_time(self, capacity_per_s: float) -> float:
        """Return estimated compute time in seconds for a given node capacity.

        Parameters
        ----------
        capacity_per_s: float
            Sustained node throughput in work units per second.
        """
        if capacity_per_s <= 0:
            raise ValueError("capacity_per_s must be positive")
        return self.compute_demand / float(capacity_per_s)

    def deadline(self) -> float:
        return self.arrival_time + self.max_latency


@dataclass(frozen=True)
class Outcome:
    """Realized result of an executed task, delivered with the completion callback.

    Attributes
    ----------
    success: bool
        Whether the host reports the task as successfully executed.
    latency: float
        Measured end-to-end latency (network + waiting + execution) in seconds.
    energy: float
        Measured energy spent at the executing node.
    node_utilization: Optional[float]
        CPU utilization (0-1) of the executing node when the result returned.
    """

    success: bool
    latency: float
    energy: float = 0.0
    node_utilization: Optional[float] = None
