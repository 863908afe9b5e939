"""
TrustGraph Core Package
=======================

Trust scoring and organisational health engine.

This package contains:
    - scoring/: Answer scoring, dimension/overall aggregation, risk flags
    - drift: Drift detection and stability classification
    - scheduling/: Reassessment policies and expiry/escalation sweeps
    - health/: Organisation health aggregation and snapshot cache
    - store/: Persistence contract with SQL and in-memory backends
    - service: Orchestration of the engine over the store
    - api/: FastAPI REST API layer

Author: TrustGraph Team
Version: 1.0.0
"""

__version__ = "1.0.0"
