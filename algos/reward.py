from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence
import math
import random

from Fabric.node import Tier
from Fabric.task import Outcome, Task

from .profiles import RewardBand, RewardConfig


@dataclass(frozen=True)
class RewardContext:
    """Scheduler state the reward terms read at completion time."""

    temperature: float
    initial_temperature: float
    congestion: float
    cluster_load: Optional[float]
    decisions: int
    tier: Optional[Tier]


def draw_band(band: RewardBand, rng: random.Random) -> float:
    if band.sigma <= 0.0:
        return band.value
    if band.value < 0.0:
        return band.value - abs(rng.gauss(0.0, band.sigma))
    return band.value + rng.gauss(0.0, band.sigma)


def pick_band(bands: Sequence[RewardBand], x: float) -> Optional[RewardBand]:
    for band in bands:
        if band.upper is None or x <= band.upper:
            return band
    return None


class RewardEvaluator:
    """Composite noisy reward for a completed placement.

    r = artificial failure (overrides everything) or
        base success/failure
        + latency band (actual / expected)
        + utilization band of the executing node
        + system load term
        + N(0, T/T0 * noise)
        + tier adjustment
        + periodic drift

    clipped to `config.clamp`. The reward only drives running statistics and,
    through the trailing success rate, the temperature schedule.
    """

    def __init__(self, config: RewardConfig, rng: random.Random) -> None:
        self.config = config
        self.rng = rng
        self.artificial_failures = 0

    def clamp(self, reward: float) -> float:
        lo, hi = self.config.clamp
        if math.isnan(reward):
            return lo
        return max(lo, min(hi, reward))

    def evaluate(self, task: Task, outcome: Outcome, ctx: RewardContext) -> float:
        cfg = self.config
        rng = self.rng

        if rng.random() < cfg.artificial_failure_rate:
            self.artificial_failures += 1
            return self.clamp(cfg.artificial_failure_mean + rng.gauss(0.0, cfg.artificial_failure_sigma))

        if not outcome.success:
            return self.clamp(-(cfg.failure_base + rng.gauss(0.0, cfg.failure_sigma)))

        reward = cfg.success_base + rng.gauss(0.0, cfg.success_sigma)
        reward += self._latency_term(task, outcome, ctx)

        if outcome.node_utilization is not None:
            utilization = outcome.node_utilization + rng.gauss(0.0, cfg.utilization_sigma)
            band = pick_band(cfg.utilization_bands, utilization)
            if band is not None:
                reward += draw_band(band, rng)

        if cfg.system_load_bands and ctx.cluster_load is not None:
            load = ctx.cluster_load + rng.gauss(0.0, cfg.system_load_sigma)
            band = pick_band(cfg.system_load_bands, load)
            if band is not None:
                reward += draw_band(band, rng)
        reward -= ctx.congestion * cfg.congestion_penalty

        ratio = ctx.temperature / ctx.initial_temperature if ctx.initial_temperature > 0 else 0.0
        reward += rng.gauss(0.0, ratio * cfg.temperature_noise)

        if ctx.tier is not None and ctx.tier in cfg.tier_adjustment:
            reward += draw_band(cfg.tier_adjustment[ctx.tier], rng)

        if ctx.decisions > cfg.drift_after:
            reward += math.sin(ctx.decisions * cfg.drift_frequency) * cfg.drift_amplitude

        return self.clamp(reward)

    def _latency_term(self, task: Task, outcome: Outcome, ctx: RewardContext) -> float:
        cfg = self.config
        if task.max_latency <= 0:
            return draw_band(cfg.latency_default, self.rng)
        ratio = outcome.latency / task.max_latency
        ratio += ctx.congestion * cfg.latency_congestion_shift
        jitter = cfg.latency_jitter + cfg.latency_temperature_jitter * ctx.temperature
        if jitter > 0.0:
            ratio += self.rng.gauss(0.0, jitter)
        band = pick_band(cfg.latency_bands, ratio)
        return draw_band(band, self.rng) if band is not None else 0.0

    def is_success(self, task: Task, outcome: Outcome, reward: float) -> bool:
        cfg = self.config
        if not outcome.success or reward <= cfg.success_reward_floor:
            return False
        if cfg.latency_slack is not None and task.max_latency > 0:
            return outcome.latency <= task.max_latency * cfg.latency_slack
        return True
