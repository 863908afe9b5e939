"""
TrustGraph Database Layer
=========================

PostgreSQL database layer using SQLAlchemy 2.0 async.

This module provides:
    - Engine and session factory construction
    - Base model class and the ORM tables
    - Connection lifecycle helpers

Author: TrustGraph Team
Version: 1.0.0
"""

from trustgraph.db.base import Base
from trustgraph.db.session import (
    close_db,
    create_engine,
    create_session_factory,
    init_db,
    session_scope,
)

__all__ = [
    "Base",
    "close_db",
    "create_engine",
    "create_session_factory",
    "init_db",
    "session_scope",
]
