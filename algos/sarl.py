"""Adaptive simulated-annealing offloading scheduler (SARL).

One scheduler class serves both the optimistic and the realistic variant;
the difference lives entirely in the ProfileConfig it is built with.
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence
import logging
import random
import threading

import numpy as np

from Fabric.classifier import classify
from Fabric.environment import EnvironmentModel
from Fabric.logging import DecisionLifecycleLogger
from Fabric.node import NodeDescriptor, Tier
from Fabric.scheduler import NO_PLACEMENT, Placement
from Fabric.task import Outcome, Task

from .action_value import ActionValueEstimator
from .decision_cache import DecisionRecord, DecisionStore
from .profiles import ProfileConfig
from .reward import RewardContext, RewardEvaluator
from .simulated_annealing import AnnealedSelector, TemperatureController


logger = logging.getLogger(__name__)

RECENT_HISTORY = 200


def should_report_progress(decisions: int) -> bool:
    """Progress cadence: dense early feedback, sparser as the run grows."""
    if decisions <= 100:
        return decisions % 10 == 0
    if decisions <= 1000:
        return decisions % 50 == 0
    if decisions <= 10000:
        return decisions % 200 == 0
    return decisions % 500 == 0


@dataclass
class RunningStatistics:
    total_decisions: int = 0
    total_completed: int = 0
    total_successful: int = 0
    total_failed: int = 0
    cumulative_reward: float = 0.0
    tier_usage: Counter = field(default_factory=Counter)
    no_placements: int = 0
    unknown_completions: int = 0
    expired_decisions: int = 0
    window: int = 100
    recent_outcomes: Deque[bool] = field(default_factory=deque, repr=False)
    recent_latencies: Deque[float] = field(default_factory=lambda: deque(maxlen=RECENT_HISTORY), repr=False)
    recent_energy: Deque[float] = field(default_factory=lambda: deque(maxlen=RECENT_HISTORY), repr=False)

    def __post_init__(self) -> None:
        self.recent_outcomes = deque(self.recent_outcomes, maxlen=max(1, self.window))

    def record_completion(self, success: bool, reward: float, latency: float, energy: float) -> None:
        self.total_completed += 1
        if success:
            self.total_successful += 1
        else:
            self.total_failed += 1
        self.cumulative_reward += reward
        self.recent_outcomes.append(bool(success))
        self.recent_latencies.append(float(latency))
        self.recent_energy.append(float(energy))

    def trailing_success_rate(self, window: int, min_completions: int = 10) -> float:
        """Success rate over the last `window` completions; 1.0 until enough data."""
        if self.total_completed < min_completions or not self.recent_outcomes:
            return 1.0
        recent = list(self.recent_outcomes)[-window:]
        return float(np.mean(recent))

    @property
    def average_reward(self) -> float:
        return self.cumulative_reward / self.total_completed if self.total_completed else 0.0

    @property
    def success_rate(self) -> float:
        return self.total_successful / self.total_completed if self.total_completed else 0.0

    @property
    def average_latency(self) -> float:
        return float(np.mean(self.recent_latencies)) if self.recent_latencies else 0.0

    @property
    def average_energy(self) -> float:
        return float(np.mean(self.recent_energy)) if self.recent_energy else 0.0


@dataclass
class SchedulerState:
    """Everything a scheduler instance mutates; nothing is module-global."""

    environment: EnvironmentModel
    temperature: TemperatureController
    statistics: RunningStatistics
    pending: DecisionStore
    cluster_load: Optional[float] = None
    last_decision: Optional[DecisionRecord] = None


@dataclass(frozen=True)
class SchedulerSnapshot:
    decisions: int
    completed: int
    successful: int
    failed: int
    no_placements: int
    unknown_completions: int
    expired_decisions: int
    average_reward: float
    success_rate: float
    trailing_success_rate: float
    temperature: float
    congestion: float
    tier_usage: Dict[str, int]
    pending: int
    reheats: int
    cooldowns: int
    spikes: int
    average_latency: float
    average_energy: float
    average_congestion: float = 0.0
    oldest_pending_age: int = 0


class SARLScheduler:
    """Places tasks on compute nodes with annealed epsilon-greedy selection.

    Entry points are `decide` (one call per task arrival) and `on_completion`
    (one call per returned result). Both are serialized on an internal lock.

    Parameters
    - profile: constants of the variant; optimistic when omitted
    - rng: random source shared by every stochastic component
    - seed: used to build `rng` when none is given
    - lifecycle: optional per-task event log
    """

    def __init__(
        self,
        profile: Optional[ProfileConfig] = None,
        *,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        lifecycle: Optional[DecisionLifecycleLogger] = None,
    ) -> None:
        self.profile = profile if profile is not None else ProfileConfig.optimistic()
        self.rng = rng if rng is not None else random.Random(seed)
        self.lifecycle = lifecycle
        p = self.profile
        self.state = SchedulerState(
            environment=EnvironmentModel(p.environment, self.rng),
            temperature=TemperatureController(p.temperature, self.rng),
            statistics=RunningStatistics(window=max(p.exploration.success_window, p.temperature.reheat_interval)),
            pending=DecisionStore(p.decisions.max_pending, p.decisions.max_age_decisions),
        )
        self.estimator = ActionValueEstimator(p.scoring)
        self.selector = AnnealedSelector(p.exploration, p.temperature.minimum, self.rng)
        self.rewards = RewardEvaluator(p.reward, self.rng)
        self._lock = threading.RLock()
        logger.info("SARL scheduler initialized (profile=%s, temperature=%.4f)",
                    p.name, self.state.temperature.temperature)

    # --- convenience accessors ---
    @property
    def environment(self) -> EnvironmentModel:
        return self.state.environment

    @property
    def statistics(self) -> RunningStatistics:
        return self.state.statistics

    @property
    def temperature(self) -> float:
        return self.state.temperature.temperature

    @property
    def last_decision(self) -> Optional[DecisionRecord]:
        return self.state.last_decision

    def trailing_success_rate(self, window: Optional[int] = None) -> float:
        ex = self.profile.exploration
        return self.state.statistics.trailing_success_rate(
            window or ex.success_window, ex.min_completions_for_rate
        )

    # --- entry points ---
    def decide(self, task: Task, candidates: Sequence[NodeDescriptor]) -> Placement:
        with self._lock:
            return self._decide(task, list(candidates))

    def on_completion(self, task: Task, outcome: Outcome) -> Optional[float]:
        with self._lock:
            return self._on_completion(task, outcome)

    def _decide(self, task: Task, candidates: List[NodeDescriptor]) -> Placement:
        st = self.state
        stats = st.statistics
        env = st.environment
        stats.total_decisions += 1
        step = stats.total_decisions
        st.last_decision = None

        env.advance()
        if should_report_progress(step):
            self._report_progress()

        if candidates:
            st.cluster_load = float(np.mean([n.utilization() for n in candidates]))
        for n in candidates:
            env.record_load(n.node_id, n.utilization())

        feasible = [n for n in candidates if env.is_available(n.node_id)]
        tiers = [classify(n) for n in feasible]
        scores = [self.estimator.score(task, n, env) for n in feasible]
        temperature = st.temperature.temperature

        selection = None
        if feasible:
            selection = self.selector.select(
                scores,
                tiers,
                temperature,
                decisions=step,
                initial_temperature=st.temperature.initial,
                trailing_success=self.trailing_success_rate(),
                tier_usage=stats.tier_usage,
            )

        if selection is None:
            stats.no_placements += 1
            logger.debug("No feasible node for task %s (%d candidates, %d passed availability)",
                         task.task_id, len(candidates), len(feasible))
            if self.lifecycle is not None:
                self.lifecycle.no_placement(task.task_id, step, len(candidates))
            self._advance_temperature(step)
            return NO_PLACEMENT

        node = feasible[selection.index]
        tier = tiers[selection.index]
        stats.tier_usage[tier] += 1

        record = DecisionRecord(
            task_id=task.task_id,
            node_id=node.node_id,
            tier=tier,
            score=scores[selection.index],
            value=selection.value,
            temperature=temperature,
            decided_at=step,
            explored=selection.explored,
        )
        for evicted in st.pending.put(record):
            if evicted.task_id == task.task_id:
                continue
            stats.expired_decisions += 1
            logger.warning("Dropping pending decision for task %s (decided at %d, no completion)",
                           evicted.task_id, evicted.decided_at)
            if self.lifecycle is not None:
                self.lifecycle.expire(evicted.task_id, step)
        st.last_decision = record
        if self.lifecycle is not None:
            self.lifecycle.decide(task.task_id, step, node.node_id, tier.value, temperature, selection.explored)

        self._advance_temperature(step)
        return node.node_id

    def _advance_temperature(self, step: int) -> None:
        self.state.temperature.decay()
        self.state.temperature.maybe_spike(step)

    def _on_completion(self, task: Task, outcome: Outcome) -> Optional[float]:
        st = self.state
        stats = st.statistics
        record = st.pending.pop(task.task_id)
        if record is None:
            stats.unknown_completions += 1
            logger.warning("Ignoring completion for task %s: no pending decision", task.task_id)
            if self.lifecycle is not None:
                self.lifecycle.unknown(task.task_id, stats.total_decisions)
            return None

        ctx = RewardContext(
            temperature=st.temperature.temperature,
            initial_temperature=st.temperature.initial,
            congestion=st.environment.congestion,
            cluster_load=st.cluster_load,
            decisions=stats.total_decisions,
            tier=record.tier,
        )
        reward = self.rewards.evaluate(task, outcome, ctx)
        success = self.rewards.is_success(task, outcome, reward)
        stats.record_completion(success, reward, outcome.latency, outcome.energy)

        if self.lifecycle is not None:
            if success:
                self.lifecycle.complete(task.task_id, stats.total_decisions, reward)
            else:
                self.lifecycle.fail(task.task_id, stats.total_decisions, reward,
                                    reason=None if outcome.success else "host reported failure")
        if not success:
            logger.debug("Task %s counted as failed on node %d (reward %.2f)", task.task_id, record.node_id, reward)

        sched = self.profile.temperature
        trailing = stats.trailing_success_rate(sched.reheat_interval, self.profile.exploration.min_completions_for_rate)
        st.temperature.checkpoint(stats.total_completed, trailing)

        if stats.total_completed % 100 == 0:
            logger.info(
                "Results: success %.1f%% (%d ok / %d failed), avg reward %.2f, congestion %.2f, temperature %.4f",
                stats.success_rate * 100, stats.total_successful, stats.total_failed,
                stats.average_reward, st.environment.congestion, st.temperature.temperature,
            )
        return reward

    # --- telemetry ---
    def _report_progress(self) -> None:
        stats = self.state.statistics
        logger.info(
            "SARL progress: %d decisions, %d/%d tasks (%.1f%%), avg reward %.2f, temperature %.4f, "
            "congestion %.2f, oldest pending %d",
            stats.total_decisions, stats.total_successful, stats.total_completed,
            stats.success_rate * 100, stats.average_reward,
            self.state.temperature.temperature, self.state.environment.congestion,
            self._oldest_pending_age(),
        )

    def _oldest_pending_age(self) -> int:
        """Decisions elapsed since the oldest still-unanswered placement."""
        oldest = self.state.pending.oldest()
        if oldest is None:
            return 0
        return self.state.statistics.total_decisions - oldest[1].decided_at

    def snapshot(self) -> SchedulerSnapshot:
        with self._lock:
            st = self.state
            stats = st.statistics
            return SchedulerSnapshot(
                decisions=stats.total_decisions,
                completed=stats.total_completed,
                successful=stats.total_successful,
                failed=stats.total_failed,
                no_placements=stats.no_placements,
                unknown_completions=stats.unknown_completions,
                expired_decisions=stats.expired_decisions,
                average_reward=stats.average_reward,
                success_rate=stats.success_rate,
                trailing_success_rate=self.trailing_success_rate(),
                temperature=st.temperature.temperature,
                congestion=st.environment.congestion,
                tier_usage={tier.value: int(stats.tier_usage.get(tier, 0)) for tier in Tier
                            if stats.tier_usage.get(tier, 0)},
                pending=len(st.pending),
                reheats=st.temperature.reheats,
                cooldowns=st.temperature.cooldowns,
                spikes=st.temperature.spikes,
                average_latency=stats.average_latency,
                average_energy=stats.average_energy,
                average_congestion=float(np.mean(st.environment.congestion_history))
                if st.environment.congestion_history else 0.0,
                oldest_pending_age=self._oldest_pending_age(),
            )
