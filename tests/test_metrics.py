import csv
import json
import random

from Fabric import NO_PLACEMENT, DecisionLifecycleLogger, Outcome
from algos.sarl import SARLScheduler
from analysis.Metrics import PROGRESS_COLUMNS, MetricsLogger


def test_summary_ratios():
    metrics = MetricsLogger()
    metrics.log_decision(step=1, time_s=0.0, task_id="a", node_id=1, tier="aerial", temperature=5.0)
    metrics.log_decision(step=2, time_s=0.0, task_id="b", node_id=4, tier="cloud", temperature=4.0, explored=True)
    metrics.log_decision(step=3, time_s=1.0, task_id="c", node_id=None, tier=None, temperature=3.0)
    metrics.log_completion(task_id="a", time_s=0.5, node_id=1, tier="aerial", success=True,
                           reward=30.0, latency_s=0.5, energy_j=2.0)
    metrics.log_completion(task_id="b", time_s=1.5, node_id=4, tier="cloud", success=False,
                           reward=-10.0, latency_s=1.5, energy_j=3.0)
    s = metrics.summary()
    assert s["total_decisions"] == 3.0
    assert s["no_placements"] == 1.0
    assert s["placement_ratio"] == 2.0 / 3.0
    assert s["host_success_rate"] == 0.5
    assert s["avg_reward"] == 10.0
    assert s["avg_latency_s"] == 0.5
    assert s["exploration_ratio"] == 0.5
    assert s["edge_ratio"] == 0.5 and s["cloud_ratio"] == 0.5
    assert s["total_energy_j"] == 5.0


def test_progress_csv_and_json(tmp_path, fabric, make_task):
    scheduler = SARLScheduler(seed=21)
    rng = random.Random(21)
    metrics = MetricsLogger()
    for step in range(1, 101):
        task = make_task()
        if scheduler.decide(task, fabric) is not NO_PLACEMENT:
            scheduler.on_completion(task, Outcome(rng.random() < 0.9, 0.4, 1.0, 0.5))
        if step % 25 == 0:
            metrics.log_progress(time_s=float(step), snapshot=scheduler.snapshot(),
                                 accepted_worse=scheduler.selector.accepted_worse,
                                 total_moves=scheduler.selector.total_moves)

    csv_path = metrics.to_csv(str(tmp_path / "out" / "progress.csv"))
    with open(csv_path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0] == PROGRESS_COLUMNS
    assert len(rows) == 5
    assert float(rows[-1][0]) == 100.0

    json_path = metrics.to_json(str(tmp_path / "summary.json"))
    with open(json_path, encoding="utf-8") as f:
        obj = json.load(f)
    assert [p["decisions"] for p in obj["progress"]] == [25, 50, 75, 100]
    assert all(p["oldest_pending_age"] == 0 for p in obj["progress"])


def test_lifecycle_logger_history_and_cap():
    log = DecisionLifecycleLogger(max_tasks=2)
    log.decide("a", 1, 3, "aerial", 2.0, False)
    log.complete("a", 2, 25.0)
    log.no_placement("b", 3, 0)
    log.unknown("c", 4)
    assert log.history("a") == []
    assert log.history("b") == ["no_placement"]
    assert log.history("c") == ["unknown_completion"]
    obj = json.loads(log.to_json())
    assert obj["b"][0] == {"step": 3, "event": "no_placement", "candidates": 0}
