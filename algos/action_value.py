from __future__ import annotations

from dataclasses import dataclass

from Fabric.classifier import classify, is_cloud, is_edge
from Fabric.environment import EnvironmentModel
from Fabric.node import NodeDescriptor, Tier
from Fabric.task import Task

from .profiles import ScoringConfig


@dataclass
class ActionValueEstimator:
    """Raw desirability of placing a task on a node.

    score = tier bonus - load + energy + reliability - congestion (cloud only)
            + task/node compatibility

    Deterministic for fixed inputs; all randomness lives in the selector.
    Sensors score `sensor_sentinel` since they only generate tasks.
    """

    config: ScoringConfig

    def score(self, task: Task, node: NodeDescriptor, env: EnvironmentModel) -> float:
        cfg = self.config
        tier = classify(node)
        if tier is Tier.SENSOR:
            return cfg.sensor_sentinel

        state = env.state(node.node_id)
        value = cfg.tier_bonus.get(tier, 0.0)
        value -= self.load(node, env) * cfg.load_weight
        value += state.energy_level * cfg.energy_weight
        value += state.reliability * cfg.reliability_weight
        if is_cloud(tier):
            value -= env.congestion * cfg.congestion_weight
        value += self.compatibility(task, node, tier)
        return value

    def load(self, node: NodeDescriptor, env: EnvironmentModel) -> float:
        if self.config.load_signal == "recent":
            return env.state(node.node_id).recent_load
        return node.utilization()

    def compatibility(self, task: Task, node: NodeDescriptor, tier: Tier) -> float:
        cfg = self.config
        value = 0.0

        capacity = float(node.total_capacity)
        demand = float(task.compute_demand)
        if capacity <= 0.0:
            # Degenerate node: nothing can run on it
            value -= cfg.capacity_penalty
        elif demand <= 0.0 or capacity / demand >= cfg.capacity_headroom:
            value += cfg.capacity_bonus
        elif capacity < demand:
            value -= cfg.capacity_penalty

        if task.max_latency < cfg.low_latency_limit and is_edge(tier):
            value += cfg.low_latency_edge_bonus
        elif task.max_latency > cfg.tolerant_latency_limit and is_cloud(tier):
            value += cfg.tolerant_cloud_bonus
        return value
