from __future__ import annotations

from typing import Sequence, Tuple

from .node import EDGE_TIERS, NodeCategory, NodeDescriptor, Tier


# Checked in order; first token contained in the lower-cased name wins.
NAME_TOKENS: Sequence[Tuple[str, Tier]] = (
    ("uav", Tier.AERIAL),
    ("drone", Tier.AERIAL),
    ("satellite", Tier.RELAY),
    ("leo", Tier.RELAY),
    ("base", Tier.GROUND_STATION),
    ("station", Tier.GROUND_STATION),
)

CATEGORY_FALLBACK = {
    NodeCategory.EDGE_DEVICE: Tier.SENSOR,
    NodeCategory.EDGE_DATACENTER: Tier.GROUND_STATION,
}


def classify(node: NodeDescriptor) -> Tier:
    """Map a node descriptor to its tier.

    Resolution order: explicit `tier` tag, then case-insensitive name tokens,
    then the coarse category (edge device -> Sensor, edge datacenter ->
    GroundStation, anything else -> Cloud). Never fails.
    """
    if node.tier is not None:
        return node.tier
    name = (node.name or "").lower()
    for token, tier in NAME_TOKENS:
        if token in name:
            return tier
    return CATEGORY_FALLBACK.get(node.category, Tier.CLOUD)


def is_edge(tier: Tier) -> bool:
    return tier in EDGE_TIERS


def is_cloud(tier: Tier) -> bool:
    return tier is Tier.CLOUD
