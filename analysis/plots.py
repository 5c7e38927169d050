from __future__ import annotations

from typing import Dict, List, Optional
import matplotlib.pyplot as plt
import numpy as np


def plot_temperature(decisions: List[int], temperatures: List[float], congestion: Optional[List[float]] = None) -> None:
    plt.figure()
    plt.plot(decisions, temperatures, label="Temperature")
    if congestion is not None:
        ax2 = plt.twinx()
        ax2.plot(decisions, congestion, color="orange", alpha=0.6, label="Network Congestion")
        ax2.set_ylabel("Congestion")
        ax2.set_ylim(0.0, 1.0)
    plt.xlabel("Decisions")
    plt.ylabel("Temperature")
    plt.title("Annealing Temperature")
    plt.grid(True)
    plt.legend()


def plot_success_rate(decisions: List[int], success_rate: List[float]) -> None:
    plt.figure()
    plt.plot(decisions, [100.0 * s for s in success_rate], label="Success Rate (%)")
    plt.xlabel("Decisions")
    plt.ylabel("Percent")
    plt.ylim(0.0, 100.0)
    plt.title("Cumulative Success Rate")
    plt.grid(True)
    plt.legend()


def plot_reward(decisions: List[int], avg_reward: List[float]) -> None:
    plt.figure()
    plt.plot(decisions, avg_reward, label="Average Reward")
    plt.xlabel("Decisions")
    plt.ylabel("Reward")
    plt.title("Average Reward over Time")
    plt.grid(True)
    plt.legend()


def plot_reward_hist(rewards: List[float]) -> None:
    plt.figure()
    if len(rewards) == 0:
        rewards = [0.0]
    plt.hist(rewards, bins=min(50, max(10, int(np.sqrt(len(rewards))))), edgecolor='black', alpha=0.7)
    plt.xlabel("Reward")
    plt.ylabel("Count")
    plt.title("Reward Distribution")
    plt.grid(True)


def plot_latency_cdf(latencies: List[float]) -> None:
    plt.figure()
    if len(latencies) == 0:
        latencies = [0.0]
    data = np.sort(np.array(latencies))
    y = np.arange(1, len(data) + 1) / float(len(data))
    plt.step(data, y, where='post')
    plt.xlabel("Latency (s)")
    plt.ylabel("CDF")
    plt.title("Latency CDF")
    plt.grid(True)


def plot_tier_usage(tier_counts: Dict[str, int]) -> None:
    plt.figure()
    total = sum(tier_counts.values())
    names = list(tier_counts.keys())
    shares = [100.0 * tier_counts[n] / total if total else 0.0 for n in names]
    plt.bar(names, shares, edgecolor='black', alpha=0.7)
    plt.xlabel("Tier")
    plt.ylabel("Share of placements (%)")
    plt.title("Computing Node Usage by Tier")
    plt.grid(True, axis='y')
