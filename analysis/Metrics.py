from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional
import csv
import json
import os


@dataclass
class DecisionEventRecord:
    step: int
    time_s: float
    task_id: str
    node_id: Optional[int]
    tier: Optional[str]
    temperature: float
    explored: bool = False


@dataclass
class CompletionRecord:
    task_id: str
    time_s: float
    node_id: Optional[int]
    tier: Optional[str]
    success: bool
    reward: Optional[float]
    latency_s: float
    energy_j: float


@dataclass
class ProgressRecord:
    time_s: float
    decisions: int
    temperature: float
    success_rate: float
    avg_latency_s: float
    congestion: float
    failed: int
    avg_reward: float
    accepted_worse: Optional[int] = None
    total_moves: Optional[int] = None
    avg_congestion: float = 0.0
    oldest_pending_age: int = 0


PROGRESS_COLUMNS = ["Time", "Temperature", "Success_Rate", "Avg_Latency", "Network_Congestion", "Failed_Tasks", "Reward"]


@dataclass
class MetricsLogger:
    decisions: List[DecisionEventRecord] = field(default_factory=list)
    completions: List[CompletionRecord] = field(default_factory=list)
    progress: List[ProgressRecord] = field(default_factory=list)

    total_energy_j: float = 0.0
    total_no_placements: int = 0
    tier_counts: Dict[str, int] = field(default_factory=dict)

    def log_decision(
        self,
        *,
        step: int,
        time_s: float,
        task_id: str,
        node_id: Optional[int],
        tier: Optional[str],
        temperature: float,
        explored: bool = False,
    ) -> None:
        self.decisions.append(
            DecisionEventRecord(
                step=step,
                time_s=time_s,
                task_id=task_id,
                node_id=node_id,
                tier=tier,
                temperature=temperature,
                explored=explored,
            )
        )
        if node_id is None:
            self.total_no_placements += 1
        elif tier is not None:
            self.tier_counts[tier] = self.tier_counts.get(tier, 0) + 1

    def log_completion(
        self,
        *,
        task_id: str,
        time_s: float,
        node_id: Optional[int],
        tier: Optional[str],
        success: bool,
        reward: Optional[float],
        latency_s: float,
        energy_j: float,
    ) -> None:
        self.completions.append(
            CompletionRecord(
                task_id=task_id,
                time_s=time_s,
                node_id=node_id,
                tier=tier,
                success=success,
                reward=reward,
                latency_s=latency_s,
                energy_j=energy_j,
            )
        )
        self.total_energy_j += max(0.0, energy_j)

    def log_progress(self, *, time_s: float, snapshot, accepted_worse: Optional[int] = None,
                     total_moves: Optional[int] = None) -> None:
        """Record a scheduler snapshot (see algos.sarl.SchedulerSnapshot)."""
        self.progress.append(
            ProgressRecord(
                time_s=time_s,
                decisions=snapshot.decisions,
                temperature=snapshot.temperature,
                success_rate=snapshot.success_rate,
                avg_latency_s=snapshot.average_latency,
                congestion=snapshot.congestion,
                failed=snapshot.failed,
                avg_reward=snapshot.average_reward,
                accepted_worse=accepted_worse,
                total_moves=total_moves,
                avg_congestion=snapshot.average_congestion,
                oldest_pending_age=snapshot.oldest_pending_age,
            )
        )

    # --- Aggregates ---
    def summary(self) -> Dict[str, float]:
        total_decisions = len(self.decisions)
        placed = total_decisions - self.total_no_placements
        completed = len(self.completions)
        host_success = sum(1 for c in self.completions if c.success)
        rewards = [c.reward for c in self.completions if c.reward is not None]
        latencies = [c.latency_s for c in self.completions if c.success]
        explored = sum(1 for d in self.decisions if d.explored)
        edge = sum(v for k, v in self.tier_counts.items() if k in ("aerial", "ground_station", "relay"))
        cloud = self.tier_counts.get("cloud", 0)
        return {
            "total_decisions": float(total_decisions),
            "placement_ratio": (placed / float(total_decisions)) if total_decisions else 0.0,
            "no_placements": float(self.total_no_placements),
            "completed": float(completed),
            "host_success_rate": (host_success / float(completed)) if completed else 0.0,
            "avg_reward": (sum(rewards) / float(len(rewards))) if rewards else 0.0,
            "avg_latency_s": (sum(latencies) / float(len(latencies))) if latencies else 0.0,
            "exploration_ratio": (explored / float(placed)) if placed else 0.0,
            "edge_ratio": (edge / float(placed)) if placed else 0.0,
            "cloud_ratio": (cloud / float(placed)) if placed else 0.0,
            "total_energy_j": self.total_energy_j,
            "final_temperature": self.progress[-1].temperature if self.progress else 0.0,
            "avg_congestion": self.progress[-1].avg_congestion if self.progress else 0.0,
            "max_pending_age": float(max((p.oldest_pending_age for p in self.progress), default=0)),
        }

    def to_csv(self, path: str) -> str:
        """Write the progress trace, one row per snapshot (see PROGRESS_COLUMNS)."""
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(PROGRESS_COLUMNS)
            for p in self.progress:
                writer.writerow([
                    f"{p.time_s:.3f}",
                    f"{p.temperature:.4f}",
                    f"{p.success_rate * 100:.2f}",
                    f"{p.avg_latency_s:.4f}",
                    f"{p.congestion:.3f}",
                    p.failed,
                    f"{p.avg_reward:.2f}",
                ])
        return path

    def to_json(self, path: str) -> str:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        obj = {
            "summary": self.summary(),
            "tier_counts": dict(self.tier_counts),
            "progress": [asdict(p) for p in self.progress],
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(obj, f, indent=2)
        return path
