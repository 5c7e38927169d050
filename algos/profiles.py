"""Scheduler profiles.

A profile bundles every constant that differs between the optimistic and the
realistic SARL variants. The structural logic is shared; only these numbers
change. Profiles can be built in code or loaded from YAML.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields, is_dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

import yaml

from Fabric.node import Tier


class ProfileError(ValueError):
    """Raised for invalid or unknown profile configuration."""


@dataclass(frozen=True)
class RewardBand:
    """One bucket of a banded reward term.

    Applies to values up to and including `upper` (None = unbounded). Positive
    `value` draws value + N(0, sigma); negative `value` draws
    value - |N(0, sigma)| so penalties never flip sign.
    """

    upper: Optional[float]
    value: float
    sigma: float = 0.0


@dataclass
class TemperatureSchedule:
    initial: float = 10.0
    decay: float = 0.95
    minimum: float = 0.001
    reheat_interval: int = 50  # completed tasks
    reheat_threshold: float = 0.85
    reheat_boost: float = 2.0
    reheat_cap: float = 0.5  # fraction of `initial`
    cooldown_threshold: Optional[float] = None
    cooldown_factor: float = 0.8
    spike_interval: int = 500  # decisions
    spike_probability: float = 0.3
    spike_factor: float = 2.0
    spike_cap: float = 0.3  # fraction of `initial`

    def validate(self) -> None:
        if self.minimum <= 0.0:
            raise ProfileError("temperature.minimum must be positive")
        if self.initial < self.minimum:
            raise ProfileError("temperature.initial must be >= temperature.minimum")
        if not (0.0 < self.decay < 1.0):
            raise ProfileError("temperature.decay must be in (0, 1)")
        if self.reheat_interval <= 0 or self.spike_interval <= 0:
            raise ProfileError("reheat_interval and spike_interval must be positive")
        if not (0.0 <= self.spike_probability <= 1.0):
            raise ProfileError("temperature.spike_probability must be in [0, 1]")
        if not (0.0 < self.cooldown_factor <= 1.0):
            raise ProfileError("temperature.cooldown_factor must be in (0, 1]")


EPSILON_POLICIES = ("decay", "temperature")
EXPLORE_POLICIES = ("edge_biased", "least_used_tier")


@dataclass
class ExplorationConfig:
    perturbation_scale: float = 0.1  # k in N(0, T * k)
    epsilon_policy: str = "decay"
    base_epsilon: float = 0.1
    epsilon_decay_decisions: float = 1000.0
    max_epsilon: float = 0.3
    poor_success_threshold: Optional[float] = None
    poor_success_multiplier: float = 1.5
    success_window: int = 50
    min_completions_for_rate: int = 10
    explore_policy: str = "edge_biased"
    edge_bias: float = 0.9

    def validate(self) -> None:
        if self.epsilon_policy not in EPSILON_POLICIES:
            raise ProfileError(f"unknown epsilon_policy {self.epsilon_policy!r}")
        if self.explore_policy not in EXPLORE_POLICIES:
            raise ProfileError(f"unknown explore_policy {self.explore_policy!r}")
        if self.perturbation_scale < 0.0:
            raise ProfileError("exploration.perturbation_scale must be non-negative")
        if self.success_window <= 0:
            raise ProfileError("exploration.success_window must be positive")
        if not (0.0 <= self.edge_bias <= 1.0):
            raise ProfileError("exploration.edge_bias must be in [0, 1]")


@dataclass
class EnvironmentConfig:
    congestion_sigma: float = 0.1
    availability_flip_probability: float = 0.001
    energy_depletion_rate: float = 0.1
    low_energy_threshold: float = 5.0
    overload_threshold: float = 0.8
    reliability_range: Tuple[float, float] = (0.6, 0.95)
    tracked_nodes: int = 100
    congestion_history: int = 1000

    def validate(self) -> None:
        lo, hi = self.reliability_range
        if not (0.0 <= lo <= hi <= 1.0):
            raise ProfileError("environment.reliability_range must satisfy 0 <= lo <= hi <= 1")
        if self.tracked_nodes < 0:
            raise ProfileError("environment.tracked_nodes must be non-negative")


@dataclass
class ScoringConfig:
    tier_bonus: Dict[Tier, float] = field(default_factory=lambda: {
        Tier.AERIAL: 1000.0,
        Tier.GROUND_STATION: 800.0,
        Tier.RELAY: 600.0,
        Tier.CLOUD: 0.0,
    })
    sensor_sentinel: float = -10000.0
    load_signal: str = "snapshot"  # "snapshot" | "recent"
    load_weight: float = 100.0
    energy_weight: float = 2.0
    reliability_weight: float = 50.0
    congestion_weight: float = 100.0
    capacity_headroom: float = 1.5
    capacity_bonus: float = 20.0
    capacity_penalty: float = 30.0
    low_latency_limit: float = 1.0
    low_latency_edge_bonus: float = 30.0
    tolerant_latency_limit: float = 10.0
    tolerant_cloud_bonus: float = 20.0

    def validate(self) -> None:
        if self.load_signal not in ("snapshot", "recent"):
            raise ProfileError(f"unknown load_signal {self.load_signal!r}")
        if Tier.SENSOR in self.tier_bonus:
            raise ProfileError("sensors are excluded through sensor_sentinel, not tier_bonus")
        if self.tier_bonus and self.sensor_sentinel >= min(self.tier_bonus.values()):
            raise ProfileError("sensor_sentinel must sit below every tier bonus")


@dataclass
class RewardConfig:
    artificial_failure_rate: float = 0.02
    artificial_failure_mean: float = -50.0
    artificial_failure_sigma: float = 10.0
    success_base: float = 40.0
    success_sigma: float = 5.0
    failure_base: float = 30.0
    failure_sigma: float = 8.0
    latency_bands: List[RewardBand] = field(default_factory=lambda: [
        RewardBand(0.5, 30.0, 3.0),
        RewardBand(0.8, 20.0, 4.0),
        RewardBand(1.0, 10.0, 3.0),
        RewardBand(None, -10.0, 5.0),
    ])
    latency_default: RewardBand = field(default_factory=lambda: RewardBand(None, 15.0, 2.0))
    latency_temperature_jitter: float = 0.1  # sigma = jitter * T
    latency_congestion_shift: float = 0.0
    latency_jitter: float = 0.0
    utilization_sigma: float = 0.05
    utilization_bands: List[RewardBand] = field(default_factory=lambda: [
        RewardBand(0.3, -5.0, 3.0),
        RewardBand(0.7, 20.0, 2.0),
        RewardBand(0.9, 10.0, 2.0),
        RewardBand(None, -15.0, 4.0),
    ])
    system_load_sigma: float = 0.1
    system_load_bands: List[RewardBand] = field(default_factory=lambda: [
        RewardBand(0.6, 10.0, 2.0),
        RewardBand(0.9, 0.0, 0.0),
        RewardBand(None, -10.0, 3.0),
    ])
    congestion_penalty: float = 0.0
    temperature_noise: float = 15.0
    tier_adjustment: Dict[Tier, RewardBand] = field(default_factory=lambda: {
        Tier.AERIAL: RewardBand(None, 5.0, 2.0),
        Tier.GROUND_STATION: RewardBand(None, 3.0, 1.0),
        Tier.RELAY: RewardBand(None, 2.0, 1.5),
        Tier.CLOUD: RewardBand(None, -5.0, 2.0),
    })
    drift_after: int = 1000
    drift_amplitude: float = 3.0
    drift_frequency: float = 0.001
    clamp: Tuple[float, float] = (-80.0, 120.0)
    success_reward_floor: float = 0.0
    latency_slack: Optional[float] = None

    def validate(self) -> None:
        if not (0.0 <= self.artificial_failure_rate <= 1.0):
            raise ProfileError("reward.artificial_failure_rate must be in [0, 1]")
        lo, hi = self.clamp
        if lo >= hi:
            raise ProfileError("reward.clamp must be (low, high) with low < high")
        for name in ("latency_bands", "utilization_bands", "system_load_bands"):
            bands = getattr(self, name)
            if bands and bands[-1].upper is not None:
                raise ProfileError(f"reward.{name} must end with an unbounded band")


@dataclass
class DecisionStoreConfig:
    max_pending: int = 10000
    max_age_decisions: Optional[int] = 50000

    def validate(self) -> None:
        if self.max_pending <= 0:
            raise ProfileError("decisions.max_pending must be positive")
        if self.max_age_decisions is not None and self.max_age_decisions <= 0:
            raise ProfileError("decisions.max_age_decisions must be positive or null")


@dataclass
class ProfileConfig:
    name: str = "optimistic"
    temperature: TemperatureSchedule = field(default_factory=TemperatureSchedule)
    exploration: ExplorationConfig = field(default_factory=ExplorationConfig)
    environment: EnvironmentConfig = field(default_factory=EnvironmentConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    reward: RewardConfig = field(default_factory=RewardConfig)
    decisions: DecisionStoreConfig = field(default_factory=DecisionStoreConfig)

    def __post_init__(self) -> None:
        for section in (self.temperature, self.exploration, self.environment,
                        self.scoring, self.reward, self.decisions):
            section.validate()

    @classmethod
    def optimistic(cls) -> "ProfileConfig":
        return cls(name="optimistic")

    @classmethod
    def realistic(cls) -> "ProfileConfig":
        return cls(
            name="realistic",
            temperature=TemperatureSchedule(
                initial=5.0,
                decay=0.998,
                minimum=0.1,
                reheat_interval=100,
                reheat_threshold=0.6,
                reheat_boost=1.0,
                reheat_cap=0.3,
                cooldown_threshold=0.9,
                cooldown_factor=0.8,
                spike_interval=1000,
                spike_probability=0.4,
                spike_factor=1.8,
                spike_cap=0.2,
            ),
            exploration=ExplorationConfig(
                perturbation_scale=0.5,
                epsilon_policy="temperature",
                base_epsilon=0.1,
                max_epsilon=0.3,
                poor_success_threshold=0.7,
                poor_success_multiplier=1.5,
                explore_policy="least_used_tier",
            ),
            scoring=ScoringConfig(
                tier_bonus={
                    Tier.AERIAL: 300.0,
                    Tier.GROUND_STATION: 250.0,
                    Tier.RELAY: 200.0,
                    Tier.CLOUD: 100.0,
                },
                sensor_sentinel=-1000.0,
                load_signal="recent",
            ),
            reward=RewardConfig(
                artificial_failure_rate=0.15,
                artificial_failure_mean=-100.0,
                artificial_failure_sigma=20.0,
                success_base=20.0,
                success_sigma=10.0,
                failure_base=50.0,
                failure_sigma=15.0,
                latency_bands=[
                    RewardBand(0.5, 15.0, 5.0),
                    RewardBand(0.8, 8.0, 4.0),
                    RewardBand(1.2, 2.0, 3.0),
                    RewardBand(None, -20.0, 8.0),
                ],
                latency_default=RewardBand(None, 0.0, 0.0),
                latency_temperature_jitter=0.0,
                latency_congestion_shift=0.5,
                latency_jitter=0.3,
                utilization_sigma=0.1,
                utilization_bands=[
                    RewardBand(0.2, -8.0),
                    RewardBand(0.8, 10.0),
                    RewardBand(None, -15.0),
                ],
                system_load_bands=[],
                congestion_penalty=20.0,
                temperature_noise=25.0,
                tier_adjustment={
                    Tier.AERIAL: RewardBand(None, 2.0, 1.0),
                    Tier.GROUND_STATION: RewardBand(None, 1.5, 1.0),
                    Tier.RELAY: RewardBand(None, 1.0, 1.0),
                    Tier.CLOUD: RewardBand(None, -2.0, 1.0),
                },
                drift_after=0,
                drift_amplitude=8.0,
                drift_frequency=0.01,
                clamp=(-150.0, 100.0),
                success_reward_floor=-50.0,
                latency_slack=1.5,
            ),
        )

    @property
    def max_temperature(self) -> float:
        return self.temperature.initial

    def with_overrides(self, **sections: Dict[str, Any]) -> "ProfileConfig":
        """Return a copy with selected section fields replaced.

        e.g. ``profile.with_overrides(reward={"artificial_failure_rate": 1.0})``
        """
        updated = {}
        for section_name, values in sections.items():
            if section_name == "name":
                updated["name"] = values
                continue
            section = getattr(self, section_name, None)
            if not is_dataclass(section):
                raise ProfileError(f"unknown profile section {section_name!r}")
            updated[section_name] = _apply(section, values)
        return replace(copy.deepcopy(self), **updated)


BUILTIN_PROFILES = {
    "optimistic": ProfileConfig.optimistic,
    "realistic": ProfileConfig.realistic,
}


def builtin_profile(name: str) -> ProfileConfig:
    try:
        return BUILTIN_PROFILES[name]()
    except KeyError:
        raise ProfileError(f"unknown profile {name!r}; expected one of {sorted(BUILTIN_PROFILES)}") from None


# --- YAML helpers ---

def _as_tier_map(raw: Dict[str, Any], convert) -> Dict[Tier, Any]:
    out: Dict[Tier, Any] = {}
    for key, value in (raw or {}).items():
        try:
            tier = key if isinstance(key, Tier) else Tier(str(key).lower())
        except ValueError:
            raise ProfileError(f"unknown tier {key!r}") from None
        out[tier] = convert(value)
    return out


def _as_band(value: Any) -> RewardBand:
    if isinstance(value, RewardBand):
        return value
    if isinstance(value, dict):
        return RewardBand(value.get("upper"), float(value["value"]), float(value.get("sigma", 0.0)))
    if isinstance(value, (list, tuple)) and len(value) in (2, 3):
        return RewardBand(*value)
    raise ProfileError(f"cannot parse reward band from {value!r}")


def _convert(key: str, value: Any) -> Any:
    if key == "tier_bonus":
        return _as_tier_map(value, float)
    if key == "tier_adjustment":
        return _as_tier_map(value, _as_band)
    if key.endswith("_bands"):
        return [_as_band(v) for v in (value or [])]
    if key == "latency_default":
        return _as_band(value)
    if key in ("clamp", "reliability_range"):
        return tuple(float(v) for v in value)
    return value


def _apply(section: Any, values: Dict[str, Any]) -> Any:
    if not isinstance(values, dict):
        raise ProfileError(f"section values must be a mapping, got {type(values).__name__}")
    known = {f.name for f in fields(section)}
    unknown = set(values) - known
    if unknown:
        raise ProfileError(f"unknown keys for {type(section).__name__}: {sorted(unknown)}")
    converted = {k: _convert(k, v) for k, v in values.items()}
    return replace(section, **converted)


def profile_from_dict(name: str, cfg: Dict[str, Any]) -> ProfileConfig:
    """Build a profile from a mapping; `base` names the builtin it extends."""
    cfg = dict(cfg or {})
    cfg.pop("name", None)
    base = builtin_profile(cfg.pop("base", name if name in BUILTIN_PROFILES else "optimistic"))
    return base.with_overrides(name=name, **cfg)


def load_yaml(path: str) -> Dict:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_profiles(path: str) -> Dict[str, ProfileConfig]:
    raw = load_yaml(path)
    profiles = raw.get("profiles", raw)
    if not isinstance(profiles, dict):
        raise ProfileError(f"{path}: expected a mapping of profiles")
    return {name: profile_from_dict(name, cfg) for name, cfg in profiles.items()}


def load_profile(path: str, name: str) -> ProfileConfig:
    profiles = load_profiles(path)
    if name not in profiles:
        raise ProfileError(f"{path}: no profile named {name!r}")
    return profiles[name]


def profile_to_dict(profile: ProfileConfig) -> Dict[str, Any]:
    """Plain-data view of a profile, suitable for yaml.safe_dump."""

    def _plain(obj: Any) -> Any:
        if isinstance(obj, Tier):
            return obj.value
        if isinstance(obj, RewardBand):
            return {"upper": obj.upper, "value": obj.value, "sigma": obj.sigma}
        if isinstance(obj, dict):
            return {_plain(k): _plain(v) for k, v in obj.items()}
        if isinstance(obj, (list, tuple)):
            return [_plain(v) for v in obj]
        return obj

    out: Dict[str, Any] = {"name": profile.name}
    for section in ("temperature", "exploration", "environment", "scoring", "reward", "decisions"):
        sec = getattr(profile, section)
        out[section] = {f.name: _plain(getattr(sec, f.name)) for f in fields(sec)}
    return out
