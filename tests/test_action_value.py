import math

import pytest

from Fabric.classifier import classify
from Fabric.environment import EnvironmentModel
from Fabric.node import NodeCategory, NodeDescriptor
from algos.action_value import ActionValueEstimator
from algos.profiles import EnvironmentConfig, ScoringConfig


@pytest.fixture
def env(rng):
    return EnvironmentModel(EnvironmentConfig(reliability_range=(0.9, 0.9)), rng)


def test_sensor_scores_sentinel(env, fabric, make_task):
    est = ActionValueEstimator(ScoringConfig())
    assert est.score(make_task(), fabric[0], env) == ScoringConfig().sensor_sentinel


def test_zero_capacity_node_scores_finite_and_lower(env, make_task):
    est = ActionValueEstimator(ScoringConfig())
    task = make_task(demand=1000.0)
    empty = NodeDescriptor(1, 0.0, name="UAV_empty")
    ample = NodeDescriptor(2, 4000.0, name="UAV_ample")
    s_empty = est.score(task, empty, env)
    assert math.isfinite(s_empty)
    assert s_empty < est.score(task, ample, env)


def test_edge_tiers_outrank_cloud(env, fabric, make_task):
    est = ActionValueEstimator(ScoringConfig())
    task = make_task()
    scores = [est.score(task, n, env) for n in fabric]
    assert max(scores[1:4]) > scores[4]
    assert scores[4] >= 0.0


def test_congestion_penalizes_cloud_only(env, fabric, make_task):
    cfg = ScoringConfig()
    est = ActionValueEstimator(cfg)
    task = make_task()
    env.congestion_override = 0.0
    calm = [est.score(task, n, env) for n in fabric]
    env.congestion_override = 1.0
    busy = [est.score(task, n, env) for n in fabric]
    assert busy[4] == pytest.approx(calm[4] - cfg.congestion_weight)
    assert busy[1:4] == calm[1:4]


def test_recent_load_signal(env, make_task):
    est = ActionValueEstimator(ScoringConfig(load_signal="recent"))
    node = NodeDescriptor(1, 4000.0, current_utilization=0.9, name="UAV_1")
    task = make_task()
    before = est.score(task, node, env)
    env.record_load(1, 0.5)
    assert est.score(task, node, env) == pytest.approx(before - 50.0)


def test_latency_compatibility_bonuses(make_task):
    cfg = ScoringConfig()
    est = ActionValueEstimator(cfg)
    uav = NodeDescriptor(1, 10.0, name="UAV_1")
    cloud = NodeDescriptor(2, 10.0, name="Cloud_0", category=NodeCategory.CLOUD)
    urgent = make_task(demand=0.0, max_latency=0.5)
    tolerant = make_task(demand=0.0, max_latency=30.0)
    assert est.compatibility(urgent, uav, classify(uav)) == cfg.capacity_bonus + cfg.low_latency_edge_bonus
    assert est.compatibility(tolerant, cloud, classify(cloud)) == cfg.capacity_bonus + cfg.tolerant_cloud_bonus
    assert est.compatibility(urgent, cloud, classify(cloud)) == cfg.capacity_bonus