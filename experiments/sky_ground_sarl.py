from __future__ import annotations

import argparse
import json
import logging
import os
import random
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import simpy
import yaml

# Ensure project root is importable when running as a script
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.append(PROJECT_ROOT)

# Use non-interactive backend for headless PDF generation
import matplotlib
matplotlib.use("Agg")

from Fabric import (
    DecisionLifecycleLogger,
    GreedyEdgeFirstScheduler,
    NodeCategory,
    NodeDescriptor,
    NoPlacement,
    Outcome,
    Task,
    Tier,
    classify,
    is_cloud,
)
from Fabric.utils import (
    constant_rate_task_generator,
    energy_per_cycle_from_power,
    make_task_factory,
    poisson_task_generator,
)

from algos.profiles import ProfileConfig, builtin_profile, load_profile
from algos.sarl import SARLScheduler

from analysis.Metrics import MetricsLogger
from analysis.plots import (
    plot_latency_cdf,
    plot_reward,
    plot_reward_hist,
    plot_success_rate,
    plot_temperature,
    plot_tier_usage,
)

from matplotlib.backends.backend_pdf import PdfPages
import matplotlib.pyplot as plt


logger = logging.getLogger(__name__)

DEFAULT_SCENARIO = os.path.join(PROJECT_ROOT, "data", "sky_ground.yaml")
DEFAULT_PROFILES = os.path.join(PROJECT_ROOT, "data", "profiles.yaml")

# (scenario key, name prefix, host category, node settings key); tiers are left to the classifier
FABRIC_LAYOUT = (
    ("sensors", "Sensor", NodeCategory.EDGE_DEVICE, "sensor"),
    ("uavs", "UAV", NodeCategory.EDGE_DEVICE, "aerial"),
    ("base_stations", "BaseStation", NodeCategory.EDGE_DATACENTER, "ground_station"),
    ("leo_satellites", "LEO_Satellite", NodeCategory.CLOUD, "relay"),
    ("clouds", "Cloud", NodeCategory.CLOUD, "cloud"),
)


def load_yaml(path: str) -> Dict:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@dataclass
class ComputeNode:
    """Host-side compute node: a SimPy resource with one slot per core."""

    node_id: int
    name: str
    category: NodeCategory
    capacity_per_core: float
    cores: int
    power_w: float
    failure_prob: float
    network_delay_s: float
    resource: simpy.Resource
    busy_time_s: float = 0.0
    completed: int = 0
    energy_j: float = field(default=0.0, repr=False)

    @property
    def energy_per_unit(self) -> float:
        return energy_per_cycle_from_power(self.power_w, self.capacity_per_core)

    def utilization(self) -> float:
        return self.resource.count / float(self.resource.capacity)

    def queue_length(self) -> int:
        return len(self.resource.queue)

    def descriptor(self) -> NodeDescriptor:
        return NodeDescriptor(
            node_id=self.node_id,
            total_capacity=self.capacity_per_core * self.cores,
            current_utilization=self.utilization(),
            name=self.name,
            category=self.category,
        )


def build_fabric(env: simpy.Environment, scenario: Dict) -> List[ComputeNode]:
    counts = scenario.get("fabric", {})
    node_cfgs = scenario.get("nodes", {})
    nodes: List[ComputeNode] = []
    for key, prefix, category, cfg_key in FABRIC_LAYOUT:
        node_cfg = node_cfgs[cfg_key]
        cores = max(1, int(node_cfg.get("cores", 1)))
        for i in range(int(counts.get(key, 0))):
            nodes.append(ComputeNode(
                node_id=len(nodes),
                name=f"{prefix}_{i}",
                category=category,
                capacity_per_core=float(node_cfg["capacity"]),
                cores=cores,
                power_w=float(node_cfg.get("power_w", 1.0)),
                failure_prob=float(node_cfg.get("failure_prob", 0.0)),
                network_delay_s=float(node_cfg.get("network_delay_s", 0.0)),
                resource=simpy.Resource(env, capacity=cores),
            ))
    return nodes


def resolve_profile(profile: str, profiles_path: Optional[str]) -> ProfileConfig:
    if profiles_path:
        return load_profile(profiles_path, profile)
    return builtin_profile(profile)


def expected_decisions(scenario: Dict, sim_time_s: float, sensor_count: int) -> float:
    arrivals = scenario.get("arrivals", {})
    if arrivals.get("process", "poisson") == "constant":
        per_tick = float(arrivals.get("tasks_per_tick", 1))
    else:
        per_tick = float(arrivals.get("lambda_per_s", 0.5))
    return per_tick * sensor_count * max(0.0, sim_time_s)


def scale_environment(cfg: ProfileConfig, scenario: Dict, decisions: float, node_count: int) -> ProfileConfig:
    """Fit the scheduler's node-energy model to the length of the run.

    Energy drains on every tracked node at each decision and never recharges,
    so the depletion rate is capped such that the expected drain over
    `decisions` stays within `environment.energy_budget_pct`. Only the
    fabric's own node ids are tracked.
    """
    env_cfg = scenario.get("environment", {})
    overrides = {"tracked_nodes": node_count}
    budget = env_cfg.get("energy_budget_pct")
    if budget is not None and decisions > 0:
        # Uniform(0, rate) drains rate / 2 per decision on average
        ceiling = 2.0 * float(budget) / decisions
        overrides["energy_depletion_rate"] = min(cfg.environment.energy_depletion_rate, ceiling)
    return cfg.with_overrides(environment=overrides)


def run_sky_ground(
    sim_time_s: float = 300.0,
    profile: str = "optimistic",
    profiles_path: Optional[str] = None,
    scenario_path: str = DEFAULT_SCENARIO,
    scheduler_name: str = "sarl",
    seed: Optional[int] = 42,
    sensors: Optional[int] = None,
    uavs: Optional[int] = None,
    base_stations: Optional[int] = None,
    leo_satellites: Optional[int] = None,
    clouds: Optional[int] = None,
    lambda_per_s: Optional[float] = None,
    progress_interval_s: float = 10.0,
    pdf_path: Optional[str] = None,
    csv_path: Optional[str] = None,
    json_path: Optional[str] = None,
    lifecycle_path: Optional[str] = None,
) -> MetricsLogger:
    """Run the sky-ground offloading scenario and return the collected metrics.

    Sensors generate task arrivals every second (Poisson or a constant
    count per tick, see `arrivals.process`); each arrival is
    placed by the chosen scheduler among the nodes passing the host's queue
    check, executed on a SimPy resource, and reported back via
    `on_completion`. Report files are written only for the paths given.
    """
    scenario = load_yaml(scenario_path)
    fabric = scenario.setdefault("fabric", {})
    for key, value in (("sensors", sensors), ("uavs", uavs), ("base_stations", base_stations),
                       ("leo_satellites", leo_satellites), ("clouds", clouds)):
        if value is not None:
            fabric[key] = int(value)
    arrivals = scenario.setdefault("arrivals", {})
    if lambda_per_s is not None:
        arrivals["lambda_per_s"] = float(lambda_per_s)
    network = scenario.get("network", {})

    # Separate random streams for the scheduler and the host
    sched_rng = random.Random(seed)
    host_rng = random.Random(None if seed is None else seed + 1)

    env = simpy.Environment()
    nodes = build_fabric(env, scenario)
    sensor_nodes = [n for n in nodes if classify(n.descriptor()) is Tier.SENSOR]
    if not sensor_nodes:
        raise ValueError("scenario needs at least one sensor to generate tasks")
    max_queue = int(network.get("max_queue", 20))
    backbone = {"congestion": 0.0}

    lifecycle = DecisionLifecycleLogger(max_tasks=10000) if lifecycle_path else None
    if scheduler_name == "sarl":
        profile_cfg = scale_environment(
            resolve_profile(profile, profiles_path),
            scenario,
            expected_decisions(scenario, sim_time_s, len(sensor_nodes)),
            len(nodes),
        )
        scheduler = SARLScheduler(profile_cfg, rng=sched_rng, lifecycle=lifecycle)
    elif scheduler_name == "greedy":
        scheduler = GreedyEdgeFirstScheduler()
    else:
        raise ValueError(f"unknown scheduler {scheduler_name!r}; expected 'sarl' or 'greedy'")

    generators = []
    for s in sensor_nodes:
        factory = make_task_factory(scenario["applications"], host_rng, prefix=f"s{s.node_id}")
        if arrivals.get("process", "poisson") == "constant":
            generators.append(constant_rate_task_generator(factory, int(arrivals.get("tasks_per_tick", 1))))
        else:
            generators.append(poisson_task_generator(factory, float(arrivals.get("lambda_per_s", 0.5)), host_rng))

    metrics = MetricsLogger()

    def candidates() -> List[NodeDescriptor]:
        return [n.descriptor() for n in nodes if n.queue_length() < max_queue]

    def execute(task: Task, node: ComputeNode, tier: Tier):
        delay = node.network_delay_s
        if is_cloud(tier) or tier is Tier.RELAY:
            delay *= 1.0 + float(network.get("backbone_factor", 2.0)) * backbone["congestion"]
        yield env.timeout(delay)
        with node.resource.request() as req:
            yield req
            service = task.estimated_compute_time(node.capacity_per_core)
            yield env.timeout(service)
            node.busy_time_s += service
        latency = float(env.now) - task.arrival_time
        failed = host_rng.random() < node.failure_prob
        energy = task.compute_demand * node.energy_per_unit
        node.energy_j += energy
        node.completed += 1
        outcome = Outcome(
            success=(not failed) and float(env.now) <= task.deadline(),
            latency=latency,
            energy=energy,
            node_utilization=node.utilization(),
        )
        reward = scheduler.on_completion(task, outcome)
        metrics.log_completion(
            task_id=task.task_id,
            time_s=float(env.now),
            node_id=node.node_id,
            tier=tier.value,
            success=outcome.success,
            reward=reward,
            latency_s=latency,
            energy_j=energy,
        )

    def arrivals_process():
        step = 0
        while True:
            now = float(env.now)
            for gen in generators:
                for task in gen(now):
                    step += 1
                    placement = scheduler.decide(task, candidates())
                    temperature = scheduler.temperature if isinstance(scheduler, SARLScheduler) else 0.0
                    if isinstance(placement, NoPlacement):
                        metrics.log_decision(step=step, time_s=now, task_id=task.task_id, node_id=None,
                                             tier=None, temperature=temperature)
                        continue
                    node = nodes[placement]
                    tier = classify(node.descriptor())
                    explored = False
                    if isinstance(scheduler, SARLScheduler) and scheduler.last_decision is not None:
                        explored = scheduler.last_decision.explored
                    metrics.log_decision(step=step, time_s=now, task_id=task.task_id, node_id=node.node_id,
                                         tier=tier.value, temperature=temperature, explored=explored)
                    env.process(execute(task, node, tier))
            yield env.timeout(1.0)

    def backbone_process():
        sigma = float(network.get("backbone_sigma", 0.05))
        while True:
            level = backbone["congestion"] + host_rng.gauss(0.0, sigma)
            backbone["congestion"] = min(1.0, max(0.0, level))
            yield env.timeout(1.0)

    def progress_process():
        while True:
            yield env.timeout(progress_interval_s)
            metrics.log_progress(
                time_s=float(env.now),
                snapshot=scheduler.snapshot(),
                accepted_worse=scheduler.selector.accepted_worse,
                total_moves=scheduler.selector.total_moves,
            )

    env.process(arrivals_process())
    env.process(backbone_process())
    if isinstance(scheduler, SARLScheduler):
        env.process(progress_process())
    env.run(until=sim_time_s)

    logger.info("Simulation finished at t=%.1fs with %d decisions", float(env.now), len(metrics.decisions))

    # --- Reporting ---
    if csv_path:
        metrics.to_csv(csv_path)
    if json_path:
        metrics.to_json(json_path)
    if lifecycle is not None:
        parent = os.path.dirname(lifecycle_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(lifecycle_path, "w", encoding="utf-8") as f:
            f.write(lifecycle.to_json())
    if pdf_path:
        title = f"Sky-ground offloading - {scheduler_name}"
        if isinstance(scheduler, SARLScheduler):
            title += f" ({scheduler.profile.name} profile)"
        write_report(pdf_path, metrics, title, sim_time_s, nodes)
    return metrics


def write_report(pdf_path: str, metrics: MetricsLogger, title: str, sim_time_s: float,
                 nodes: List[ComputeNode]) -> str:
    parent = os.path.dirname(pdf_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with PdfPages(pdf_path) as pdf:
        # Summary page
        fig = plt.figure(figsize=(8.27, 11.69))  # A4 portrait in inches
        fig.clf()
        text = [title, f"Sim time: {sim_time_s}s", "", "Summary:"]
        for k, v in metrics.summary().items():
            text.append(f"- {k}: {v:.4f}" if isinstance(v, float) else f"- {k}: {v}")
        text.extend(["", "Busiest nodes:"])
        for n in sorted(nodes, key=lambda n: n.busy_time_s, reverse=True)[:8]:
            text.append(f"- {n.name}: {n.completed} tasks, busy {n.busy_time_s:.1f}s, {n.energy_j:.1f} J")
        plt.axis('off')
        plt.text(0.05, 0.95, "\n".join(text), va='top', fontsize=10)
        pdf.savefig(fig)
        plt.close(fig)

        if metrics.progress:
            decisions = [p.decisions for p in metrics.progress]
            plot_temperature(decisions, [p.temperature for p in metrics.progress],
                             [p.congestion for p in metrics.progress])
            pdf.savefig(plt.gcf())
            plt.close()

            plot_success_rate(decisions, [p.success_rate for p in metrics.progress])
            pdf.savefig(plt.gcf())
            plt.close()

            plot_reward(decisions, [p.avg_reward for p in metrics.progress])
            pdf.savefig(plt.gcf())
            plt.close()

        rewards = [c.reward for c in metrics.completions if c.reward is not None]
        if rewards:
            plot_reward_hist(rewards)
            pdf.savefig(plt.gcf())
            plt.close()

        plot_latency_cdf([c.latency_s for c in metrics.completions])
        pdf.savefig(plt.gcf())
        plt.close()

        plot_tier_usage(metrics.tier_counts)
        pdf.savefig(plt.gcf())
        plt.close()

    return pdf_path


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Sky-ground task offloading with the SARL scheduler")
    p.add_argument("--scheduler", dest="scheduler_name", choices=("sarl", "greedy"), default="sarl")
    p.add_argument("--profile", default="optimistic", help="profile name (builtin or from --profiles)")
    p.add_argument("--profiles", dest="profiles_path", default=None, help=f"profiles YAML, e.g. {DEFAULT_PROFILES}")
    p.add_argument("--scenario", dest="scenario_path", default=DEFAULT_SCENARIO)
    p.add_argument("--sim-time", dest="sim_time_s", type=float, default=300.0)
    p.add_argument("--seed", type=int, default=42)
    p.add_argument("--sensors", type=int, default=None)
    p.add_argument("--uavs", type=int, default=None)
    p.add_argument("--base-stations", dest="base_stations", type=int, default=None)
    p.add_argument("--leo", dest="leo_satellites", type=int, default=None)
    p.add_argument("--clouds", type=int, default=None)
    p.add_argument("--lambda", dest="lambda_per_s", type=float, default=None, help="arrivals per sensor per second")
    p.add_argument("--pdf", dest="pdf_path", default=os.path.join("data", "Result_sky_ground.pdf"))
    p.add_argument("--csv", dest="csv_path", default=None)
    p.add_argument("--json", dest="json_path", default=None)
    p.add_argument("--lifecycle", dest="lifecycle_path", default=None)
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = vars(build_arg_parser().parse_args(argv))
    verbose = args.pop("verbose")
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    metrics = run_sky_ground(**args)
    print(json.dumps(metrics.summary(), indent=2))
    if args["pdf_path"]:
        print(f"Saved report to: {args['pdf_path']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
