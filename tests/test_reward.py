import math
import random

import numpy as np
import pytest

from Fabric.node import Tier
from Fabric.task import Outcome
from algos.profiles import ProfileConfig, RewardBand, RewardConfig
from algos.reward import RewardContext, RewardEvaluator, draw_band, pick_band


def _ctx(temperature=5.0, congestion=0.3, decisions=2000, tier=Tier.AERIAL):
    return RewardContext(
        temperature=temperature,
        initial_temperature=10.0,
        congestion=congestion,
        cluster_load=0.5,
        decisions=decisions,
        tier=tier,
    )


@pytest.mark.parametrize("profile", [ProfileConfig.optimistic(), ProfileConfig.realistic()])
def test_rewards_stay_within_clamp(profile, make_task):
    rng = random.Random(11)
    evaluator = RewardEvaluator(profile.reward, rng)
    lo, hi = profile.reward.clamp
    for _ in range(2000):
        outcome = Outcome(
            success=rng.random() < 0.8,
            latency=rng.uniform(0.0, 5.0),
            energy=1.0,
            node_utilization=rng.random(),
        )
        tier = rng.choice(list(Tier))
        r = evaluator.evaluate(make_task(max_latency=1.0), outcome, _ctx(congestion=rng.random(), tier=tier))
        assert lo <= r <= hi


def test_forced_artificial_failures(make_task):
    cfg = RewardConfig(artificial_failure_rate=1.0)
    evaluator = RewardEvaluator(cfg, random.Random(5))
    rewards = [evaluator.evaluate(make_task(), Outcome(True, 0.1, 1.0, 0.5), _ctx()) for _ in range(2000)]
    assert evaluator.artificial_failures == 2000
    assert np.mean(rewards) == pytest.approx(cfg.artificial_failure_mean, abs=2.0)
    assert max(rewards) <= 0.0


def test_failed_outcome_is_penalized_and_not_a_success(make_task):
    cfg = RewardConfig(artificial_failure_rate=0.0)
    evaluator = RewardEvaluator(cfg, random.Random(5))
    task = make_task()
    outcome = Outcome(False, 0.1, 1.0, 0.5)
    rewards = [evaluator.evaluate(task, outcome, _ctx()) for _ in range(500)]
    assert np.mean(rewards) < -20.0
    assert not evaluator.is_success(task, outcome, 100.0)


def test_fast_successes_beat_late_ones(make_task):
    cfg = RewardConfig(artificial_failure_rate=0.0)
    evaluator = RewardEvaluator(cfg, random.Random(9))
    task = make_task(max_latency=1.0)
    fast = [evaluator.evaluate(task, Outcome(True, 0.1, 1.0, 0.5), _ctx(temperature=0.0)) for _ in range(500)]
    late = [evaluator.evaluate(task, Outcome(True, 3.0, 1.0, 0.5), _ctx(temperature=0.0)) for _ in range(500)]
    assert np.mean(fast) > np.mean(late) + 20.0


def test_success_requires_latency_within_slack(make_task):
    cfg = ProfileConfig.realistic().reward
    evaluator = RewardEvaluator(cfg, random.Random(1))
    task = make_task(max_latency=1.0)
    assert evaluator.is_success(task, Outcome(True, 1.4), 10.0)
    assert not evaluator.is_success(task, Outcome(True, 1.6), 10.0)
    assert not evaluator.is_success(task, Outcome(True, 0.2), cfg.success_reward_floor)


def test_optimistic_success_needs_positive_reward(make_task):
    evaluator = RewardEvaluator(RewardConfig(), random.Random(1))
    task = make_task(max_latency=1.0)
    assert evaluator.is_success(task, Outcome(True, 5.0), 0.5)
    assert not evaluator.is_success(task, Outcome(True, 0.1), 0.0)


def test_nan_clamps_to_lower_bound():
    evaluator = RewardEvaluator(RewardConfig(), random.Random(1))
    assert evaluator.clamp(math.nan) == RewardConfig().clamp[0]
    assert evaluator.clamp(1e9) == RewardConfig().clamp[1]


def test_bands():
    bands = [RewardBand(0.5, 1.0), RewardBand(1.0, 2.0), RewardBand(None, 3.0)]
    assert pick_band(bands, 0.5).value == 1.0
    assert pick_band(bands, 0.7).value == 2.0
    assert pick_band(bands, 99.0).value == 3.0
    assert pick_band(bands[:2], 99.0) is None

    rng = random.Random(2)
    penalty = RewardBand(None, -5.0, 10.0)
    assert all(draw_band(penalty, rng) <= -5.0 for _ in range(500))
    assert draw_band(RewardBand(None, 4.0, 0.0), rng) == 4.0
