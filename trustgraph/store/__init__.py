"""
TrustGraph Store Package
========================

Persistence contract and its backends.

This package provides:
    - base: Abstract TrustGraphStore
    - memory: asyncio-locked in-memory backend
    - sql: PostgreSQL backend (imported on demand, needs asyncpg)

Author: TrustGraph Team
Version: 1.0.0
"""

from trustgraph.store.base import (
    CompletionOutcome,
    RunCompletion,
    TrustGraphStore,
    history_fingerprint,
)
from trustgraph.store.memory import InMemoryTrustGraphStore

__all__ = [
    "CompletionOutcome",
    "InMemoryTrustGraphStore",
    "RunCompletion",
    "TrustGraphStore",
    "history_fingerprint",
]
