from pathlib import Path

import pytest
import yaml

from Fabric.node import Tier
from algos.profiles import (
    ProfileConfig,
    ProfileError,
    builtin_profile,
    load_profile,
    load_profiles,
    profile_to_dict,
)

PROFILES_YAML = Path(__file__).resolve().parents[1] / "data" / "profiles.yaml"


def test_builtin_profiles_differ_where_expected():
    opt = ProfileConfig.optimistic()
    real = ProfileConfig.realistic()
    assert opt.max_temperature == 10.0 and real.max_temperature == 5.0
    assert opt.scoring.tier_bonus[Tier.AERIAL] == 1000.0
    assert real.scoring.tier_bonus[Tier.CLOUD] == 100.0
    assert opt.temperature.cooldown_threshold is None
    assert real.exploration.explore_policy == "least_used_tier"


def test_cloud_bonus_is_non_negative():
    for profile in (ProfileConfig.optimistic(), ProfileConfig.realistic()):
        assert profile.scoring.tier_bonus[Tier.CLOUD] >= 0.0
        assert profile.scoring.sensor_sentinel < min(profile.scoring.tier_bonus.values())


def test_shipped_profiles_match_builtins():
    profiles = load_profiles(str(PROFILES_YAML))
    assert profile_to_dict(profiles["optimistic"]) == profile_to_dict(ProfileConfig.optimistic())
    assert profile_to_dict(profiles["realistic"]) == profile_to_dict(ProfileConfig.realistic())


def test_profile_extends_its_base():
    stressed = load_profile(str(PROFILES_YAML), "realistic_stressed")
    assert stressed.name == "realistic_stressed"
    assert stressed.temperature.initial == 5.0
    assert stressed.environment.reliability_range == (0.5, 0.9)
    assert stressed.reward.artificial_failure_rate == 0.25


def test_yaml_round_trip(tmp_path):
    custom = ProfileConfig.realistic().with_overrides(
        name="custom",
        reward={"artificial_failure_rate": 0.5},
        scoring={"tier_bonus": {"aerial": 50.0, "cloud": 10.0}},
    )
    path = tmp_path / "profiles.yaml"
    path.write_text(yaml.safe_dump({"profiles": {"custom": profile_to_dict(custom)}}), encoding="utf-8")
    loaded = load_profile(str(path), "custom")
    assert profile_to_dict(loaded) == profile_to_dict(custom)
    assert loaded.scoring.tier_bonus == {Tier.AERIAL: 50.0, Tier.CLOUD: 10.0}


def test_with_overrides_leaves_base_untouched():
    base = ProfileConfig.optimistic()
    changed = base.with_overrides(temperature={"initial": 20.0})
    assert changed.temperature.initial == 20.0
    assert base.temperature.initial == 10.0


@pytest.mark.parametrize("overrides", [
    {"bogus": {}},
    {"reward": {"no_such_key": 1}},
    {"reward": {"latency_bands": [{"upper": 1.0, "value": 5.0}]}},
    {"reward": {"clamp": [10.0, -10.0]}},
    {"scoring": {"tier_bonus": {"sensor": 1.0}}},
    {"scoring": {"tier_bonus": {"orbit": 1.0}}},
    {"scoring": {"sensor_sentinel": 5.0}},
    {"temperature": {"decay": 1.5}},
    {"temperature": {"initial": 0.0001}},
    {"exploration": {"epsilon_policy": "greedy"}},
    {"decisions": {"max_pending": 0}},
])
def test_invalid_overrides_raise(overrides):
    with pytest.raises(ProfileError):
        ProfileConfig.optimistic().with_overrides(**overrides)


def test_unknown_profile_names(tmp_path):
    with pytest.raises(ProfileError):
        builtin_profile("pessimistic")
    with pytest.raises(ProfileError):
        load_profile(str(PROFILES_YAML), "pessimistic")
    path = tmp_path / "bad.yaml"
    path.write_text("profiles: [1, 2]\n", encoding="utf-8")
    with pytest.raises(ProfileError):
        load_profiles(str(path))
