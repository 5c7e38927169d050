from __future__ import annotations

from typing import Callable, Iterable, List
import math
import random

from .task import Task


TaskFactory = Callable[[float, int], Task]


def constant_rate_task_generator(factory: TaskFactory, tasks_per_tick: int) -> Callable[[float], List[Task]]:
    """Create a simple generator that produces N tasks per tick using factory(time, i)."""
    def _gen(now: float) -> List[Task]:
        return [factory(now, i) for i in range(tasks_per_tick)]

    return _gen


def poisson_task_generator(factory: TaskFactory, lambda_per_s: float,
                           rng: random.Random) -> Callable[[float], Iterable[Task]]:
    """Poisson process per second using 1s buckets.

    Returns a generator that, when called with current time `now`, produces
    N ~ Poisson(lambda_per_s) tasks for the bucket [now, now+1).
    """
    def _gen(now: float) -> List[Task]:
        n = _poisson(lambda_per_s, rng)
        return [factory(now, i) for i in range(n)]

    return _gen


def _poisson(lmbda: float, rng: random.Random) -> int:
    # Knuth's algorithm
    L = math.exp(-lmbda)
    k = 0
    p = 1.0
    while p > L:
        k += 1
        p *= rng.random()
    return max(0, k - 1)


def make_task_factory(applications: List[dict], rng: random.Random, prefix: str = "t") -> TaskFactory:
    """Task factory drawing an application profile uniformly per task.

    Each application is a mapping with `demand` (work units), `max_latency`
    (seconds) and optionally `demand_jitter` (relative, uniform).
    """
    if not applications:
        raise ValueError("applications must be non-empty")

    def _factory(now: float, i: int) -> Task:
        app_id = rng.randrange(len(applications))
        app = applications[app_id]
        jitter = float(app.get("demand_jitter", 0.0))
        demand = float(app["demand"]) * (1.0 + rng.uniform(-jitter, jitter))
        return Task(
            task_id=f"{prefix}_{now:.3f}_{i}",
            tier_affinity_hint=app_id,
            compute_demand=max(0.0, demand),
            max_latency=float(app["max_latency"]),
            arrival_time=now,
        )

    return _factory


def energy_per_cycle_from_power(power_watts: float, cycles_per_second: float) -> float:
    """Compute energy per work unit (J) from average power and throughput.

    energy_per_unit = power / f
    """
    if cycles_per_second <= 0:
        raise ValueError("cycles_per_second must be positive")
    return power_watts / float(cycles_per_second)
