"""
TrustGraph Health Package
=========================

Organisation Health Score aggregation and snapshot caching.

This package provides:
    - aggregator: Base blend and penalty terms
    - snapshot_cache: Redis mirror of published snapshots

Author: TrustGraph Team
Version: 1.0.0
"""

from trustgraph.health.aggregator import HealthInputs, HealthWeights, compute_health
from trustgraph.health.snapshot_cache import HealthSnapshotCache

__all__ = [
    "HealthInputs",
    "HealthSnapshotCache",
    "HealthWeights",
    "compute_health",
]
