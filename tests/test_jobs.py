"""
Tests for the scheduled jobs entry point.

Author: TrustGraph Team
Version: 1.0.0
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from trustgraph.config import Settings
from trustgraph.jobs import create_parser, main, run


MEMORY = Settings(store_backend="memory", health_cache_enabled=False)


class TestParser:

    def test_sweep_defaults(self):
        args = create_parser().parse_args(["sweep"])
        assert args.command == "sweep"
        assert args.actor == "system"
        assert args.organisation is None

    def test_recompute_flags(self):
        args = create_parser().parse_args(["recompute-health", "--all", "--limit", "5"])
        assert args.full is True
        assert args.limit == 5

    def test_command_required(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args([])


class TestRun:

    async def test_sweep_on_empty_store(self):
        result = await run(create_parser().parse_args(["sweep", "--reason", "nightly"]), MEMORY)
        assert result["expiry"]["expired_count"] == 0
        assert result["actions"]["escalation_count"] == 0
        assert result["health"]["recomputed_count"] == 0

    async def test_recompute_all_on_empty_store(self):
        result = await run(create_parser().parse_args(["recompute-health", "--all"]), MEMORY)
        assert result == {"recomputed_count": 0, "recomputed": {}}

    async def test_refuses_memory_fallback(self):
        cfg = Settings(store_backend="sql", store_memory_fallback=True, health_cache_enabled=False)
        store = MagicMock()
        store.initialize = AsyncMock(side_effect=OSError("connection refused"))
        with patch("trustgraph.db.session.create_engine"), \
                patch("trustgraph.store.sql.SQLTrustGraphStore", return_value=store):
            with pytest.raises(RuntimeError):
                await run(create_parser().parse_args(["sweep"]), cfg)


class TestMain:

    def test_exit_status(self, capsys):
        with patch("trustgraph.jobs.setup_logging"), \
                patch("trustgraph.jobs.run", AsyncMock(return_value={"recomputed_count": 0})):
            assert main(["recompute-health"]) == 0
        assert '"recomputed_count": 0' in capsys.readouterr().out

    def test_failure_exit_status(self):
        with patch("trustgraph.jobs.setup_logging"), \
                patch("trustgraph.jobs.run", AsyncMock(side_effect=RuntimeError("Store unavailable"))):
            assert main(["sweep"]) == 1
