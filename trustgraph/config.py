"""
TrustGraph Configuration Module
===============================

Centralized configuration management using Pydantic Settings.

Loads configuration from:
    1. Environment variables
    2. .env file (if present)
    3. Default values

Drift, stability and health-penalty constants are open configuration:
the defaults below are the documented starting values and every one of
them can be overridden per deployment.

Usage:
    from trustgraph.config import settings

    print(settings.postgres_async_dsn)
    print(settings.drift_materiality_threshold)

Author: TrustGraph Team
Version: 1.0.0
"""

from functools import lru_cache
from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Naming convention: UPPER_SNAKE_CASE in env, lower_snake_case in code.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Application Settings
    # =========================================================================

    app_name: str = Field(default="TrustGraph", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # =========================================================================
    # API Server
    # =========================================================================

    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")
    cors_allowed_origins: str = Field(
        default="",
        description="Comma-separated CORS origins (empty = all)"
    )

    # =========================================================================
    # Storage
    # =========================================================================

    store_backend: str = Field(
        default="sql",
        description="Store backend: 'sql' (PostgreSQL) or 'memory'"
    )
    store_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Upper bound on any single store call"
    )
    store_memory_fallback: bool = Field(
        default=False,
        description="Serve from the in-memory store when PostgreSQL is unreachable"
    )
    health_cache_enabled: bool = Field(
        default=True,
        description="Mirror health snapshots into Redis"
    )

    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_db: str = Field(default="trustgraph", description="PostgreSQL database")
    postgres_user: str = Field(default="trustgraph", description="PostgreSQL user")
    postgres_password: str = Field(
        default="trustgraph_change_me",
        description="PostgreSQL password"
    )

    @property
    def postgres_dsn(self) -> str:
        """Get PostgreSQL connection string."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def postgres_async_dsn(self) -> str:
        """Get async PostgreSQL connection string for asyncpg."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # =========================================================================
    # Redis (health snapshot read cache)
    # =========================================================================

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for the health snapshot cache"
    )
    health_cache_ttl_seconds: int = Field(
        default=900,
        ge=1,
        description="TTL of cached health snapshots"
    )

    # =========================================================================
    # Drift & Stability
    # =========================================================================

    drift_audit_threshold: float = Field(
        default=0.0,
        ge=0.0,
        description="Deltas with magnitude above this are recorded as drift events"
    )
    drift_materiality_threshold: float = Field(
        default=10.0,
        ge=0.0,
        description="drift_flag is set when |delta| >= this"
    )
    stability_min_runs: int = Field(
        default=3,
        ge=2,
        description="Completed runs required before a target can be stable"
    )
    stability_tolerance: float = Field(
        default=25.0,
        ge=0.0,
        description="Population variance of recent scores must be below this"
    )

    # =========================================================================
    # Escalation
    # =========================================================================

    escalation_score_threshold: float = Field(
        default=50.0,
        description="Completed runs scoring below this raise an escalation"
    )
    significant_drift_threshold: float = Field(
        default=15.0,
        description="Drift magnitude above this raises an escalation"
    )
    action_escalation_min_severity: str = Field(
        default="critical",
        description="Minimum action severity escalated by the overdue sweep"
    )
    default_reassessment_frequency_days: int = Field(
        default=90,
        ge=1,
        description="Frequency used when a first completion creates a policy"
    )
    completion_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts at completing a run when its target history changes underneath"
    )

    # =========================================================================
    # Health Aggregation
    # =========================================================================

    health_org_weight: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Blend weight of org_base when both bases exist"
    )
    health_recent_org_runs: int = Field(
        default=5,
        ge=1,
        description="Number of recent org survey runs averaged into org_base"
    )
    health_drift_window_days: int = Field(
        default=90,
        ge=1,
        description="Look-back window for drift penalty"
    )
    provisional_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Multiplier applied to provisional run scores in base_health (to be confirmed)"
    )
    health_sys_softmax_lambda: float = Field(
        default=2.0,
        ge=0.0,
        description="Sharpness of the autonomy x criticality softmax over system runs (0 = plain mean)"
    )
    health_sys_autonomy_weight: float = Field(default=1.0, ge=0.0, description="Autonomy term in the softmax")
    health_sys_criticality_weight: float = Field(default=1.0, ge=0.0, description="Criticality term in the softmax")
    health_default_risk_level: int = Field(
        default=3,
        ge=1,
        le=5,
        description="Autonomy/criticality assumed for system runs that carry none"
    )

    penalty_rel_max: float = Field(default=35.0, ge=0.0, description="Cap of p_rel (points)")
    penalty_act_max: float = Field(default=30.0, ge=0.0, description="Cap of p_act (points)")
    penalty_drift_max: float = Field(default=20.0, ge=0.0, description="Cap of p_drift (points)")
    penalty_exp_max: float = Field(default=25.0, ge=0.0, description="Cap of p_exp (points)")

    action_open_weight: float = Field(default=0.05, ge=0.0)
    action_overdue_weight: float = Field(default=0.15, ge=0.0)
    action_critical_overdue_weight: float = Field(default=0.35, ge=0.0)
    drift_penalty_scale: float = Field(
        default=25.0,
        gt=0.0,
        description="Summed drift magnitude giving a 63% saturated drift penalty"
    )
    escalation_severity_weights: Dict[str, float] = Field(
        default_factory=lambda: {
            "low": 0.1,
            "medium": 0.25,
            "high": 0.5,
            "critical": 1.0,
        },
        description="Weight of each open escalation in p_rel"
    )

    health_snapshot_max_age_seconds: int = Field(
        default=3600,
        ge=1,
        description="Snapshots older than this are served marked stale"
    )
    health_queue_interval_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="How often the API process drains the health recompute queue (0 disables)"
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list."""
        if not self.cors_allowed_origins:
            return ["*"]
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are loaded only once.

    Returns:
        Settings instance
    """
    return Settings()


# Convenience alias
settings = get_settings()
