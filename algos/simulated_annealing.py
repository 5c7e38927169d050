from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
import logging
import math
import random

from Fabric.classifier import is_edge
from Fabric.node import Tier

from .profiles import ExplorationConfig, TemperatureSchedule


logger = logging.getLogger(__name__)


def metropolis_accept(delta: float, temperature: float, min_temperature: float, rng: random.Random) -> bool:
    """Metropolis rule for a move that changes the objective by `delta` (higher is better).

    Improvements are always accepted; a worse move is accepted with
    probability exp(delta / T), with T floored at `min_temperature`.
    """
    if delta > 0.0:
        return True
    t = max(temperature, min_temperature)
    return rng.random() < math.exp(delta / t)


@dataclass
class Selection:
    index: int
    value: float
    explored: bool


class AnnealedSelector:
    """Annealed epsilon-greedy selection over scored candidates.

    For every decision each raw score is perturbed with N(0, T * k) noise and
    the perturbation is kept or dropped by the Metropolis rule, per candidate.
    With probability epsilon a tier-biased exploratory pick is made instead of
    taking the best perturbed value.

    Parameters
    - config: exploration section of the active profile
    - min_temperature: floor used in the acceptance test
    - rng: injected random source
    """

    def __init__(self, config: ExplorationConfig, min_temperature: float, rng: random.Random) -> None:
        self.config = config
        self.min_temperature = float(min_temperature)
        self.rng = rng
        # Acceptance statistics since construction
        self.total_moves = 0
        self.accepted_worse = 0

    def perturb(self, score: float, temperature: float) -> float:
        sigma = max(0.0, temperature) * self.config.perturbation_scale
        candidate = score + self.rng.gauss(0.0, sigma) if sigma > 0.0 else score
        self.total_moves += 1
        delta = candidate - score
        if metropolis_accept(delta, temperature, self.min_temperature, self.rng):
            if delta < 0.0:
                self.accepted_worse += 1
            return candidate
        return score

    def epsilon(
        self,
        decisions: int,
        temperature: float,
        initial_temperature: float,
        trailing_success: float,
    ) -> float:
        cfg = self.config
        if cfg.epsilon_policy == "temperature":
            ratio = temperature / initial_temperature if initial_temperature > 0 else 0.0
            eps = min(cfg.max_epsilon, cfg.base_epsilon + ratio)
        else:
            eps = cfg.base_epsilon * math.exp(-decisions / max(1.0, cfg.epsilon_decay_decisions))
        if cfg.poor_success_threshold is not None and trailing_success < cfg.poor_success_threshold:
            eps *= cfg.poor_success_multiplier
        return min(1.0, max(0.0, eps))

    def select(
        self,
        scores: Sequence[float],
        tiers: Sequence[Tier],
        temperature: float,
        *,
        decisions: int,
        initial_temperature: float,
        trailing_success: float,
        tier_usage: Mapping[Tier, int],
    ) -> Optional[Selection]:
        """Pick one candidate index, or None when nothing is eligible.

        Sensor-tier candidates are never eligible.
        """
        eligible = [i for i, tier in enumerate(tiers) if tier is not Tier.SENSOR]
        if not eligible:
            return None

        values: Dict[int, float] = {i: self.perturb(float(scores[i]), temperature) for i in eligible}

        eps = self.epsilon(decisions, temperature, initial_temperature, trailing_success)
        if self.rng.random() < eps:
            index = self._explore(eligible, tiers, tier_usage)
            return Selection(index=index, value=values[index], explored=True)

        best = eligible[0]
        for i in eligible[1:]:
            if values[i] > values[best]:
                best = i
        return Selection(index=best, value=values[best], explored=False)

    def _explore(self, eligible: List[int], tiers: Sequence[Tier], tier_usage: Mapping[Tier, int]) -> int:
        if self.config.explore_policy == "least_used_tier":
            return self._least_used_tier(eligible, tiers, tier_usage)
        edge = [i for i in eligible if is_edge(tiers[i])]
        rest = [i for i in eligible if not is_edge(tiers[i])]
        if edge and self.rng.random() < self.config.edge_bias:
            return self.rng.choice(edge)
        if rest:
            return self.rng.choice(rest)
        return self.rng.choice(eligible)

    def _least_used_tier(self, eligible: List[int], tiers: Sequence[Tier], tier_usage: Mapping[Tier, int]) -> int:
        seen: List[Tuple[Tier, int]] = []
        for i in eligible:
            if all(t is not tiers[i] for t, _ in seen):
                seen.append((tiers[i], int(tier_usage.get(tiers[i], 0))))
        # min() keeps the first-seen tier on ties
        target, _ = min(seen, key=lambda item: item[1])
        group = [i for i in eligible if tiers[i] is target]
        return self.rng.choice(group)


class TemperatureController:
    """Owns the temperature state machine: decay, reheat, cooldown and spikes.

    Temperature always stays within [minimum, initial]. Reheats are capped at
    initial * reheat_cap and spikes at initial * spike_cap; neither ever
    lowers the current temperature.

    A poor-success checkpoint is therefore a no-op while the temperature is
    still at or above the reheat cap. Under the realistic schedule (initial
    5.0, decay 0.998, cap 0.3) the cap is 1.5, which the temperature first
    crosses after about 600 decisions; only later checkpoints can reheat.
    """

    def __init__(self, schedule: TemperatureSchedule, rng: random.Random) -> None:
        self.schedule = schedule
        self.rng = rng
        self._temperature = float(schedule.initial)
        self.reheats = 0
        self.cooldowns = 0
        self.spikes = 0

    @property
    def temperature(self) -> float:
        return self._temperature

    @property
    def initial(self) -> float:
        return float(self.schedule.initial)

    @property
    def minimum(self) -> float:
        return float(self.schedule.minimum)

    def _set(self, value: float) -> None:
        self._temperature = min(self.initial, max(self.minimum, float(value)))

    def decay(self) -> float:
        self._set(self._temperature * self.schedule.decay)
        return self._temperature

    def checkpoint(self, completed: int, trailing_success: float) -> Optional[str]:
        """Run the performance checkpoint every `reheat_interval` completions.

        Returns "reheat", "cooldown" or None.
        """
        s = self.schedule
        if completed <= 0 or completed % s.reheat_interval != 0:
            return None
        if trailing_success < s.reheat_threshold:
            raised = min(self.initial * s.reheat_cap, self._temperature + s.reheat_boost)
            if raised > self._temperature:
                old = self._temperature
                self._set(raised)
                self.reheats += 1
                logger.info("Temperature reheated %.4f -> %.4f (trailing success %.1f%%)",
                            old, self._temperature, trailing_success * 100)
                return "reheat"
            return None
        if (s.cooldown_threshold is not None and trailing_success > s.cooldown_threshold
                and self._temperature > self.minimum * 2):
            self._set(self._temperature * s.cooldown_factor)
            self.cooldowns += 1
            return "cooldown"
        return None

    def maybe_spike(self, decisions: int) -> bool:
        s = self.schedule
        if decisions <= 0 or decisions % s.spike_interval != 0:
            return False
        if self.rng.random() >= s.spike_probability:
            return False
        spiked = min(self.initial * s.spike_cap, self._temperature * s.spike_factor)
        if spiked <= self._temperature:
            return False
        old = self._temperature
        self._set(spiked)
        self.spikes += 1
        logger.info("Temperature spike for exploration %.4f -> %.4f", old, self._temperature)
        return True
