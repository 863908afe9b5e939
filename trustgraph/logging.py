"""
Structured Logging
==================

structlog setup for the TrustGraph engine.

Each line carries the request correlation id and, while an engine
operation runs, the organisation and run it concerns. The service opens
an ``operation_scope`` around its work, so the scoring, drift and
scheduling modules (which log through the standard library) are tagged
without threading ids through their signatures.

Usage:
    with operation_scope(organisation_id="org-1", run_id=run.id):
        logger.info("run_completed", overall_score=72)

Author: TrustGraph Team
Version: 1.0.0
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

import structlog

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_organisation_id: ContextVar[Optional[str]] = ContextVar("organisation_id", default=None)
_run_id: ContextVar[Optional[str]] = ContextVar("run_id", default=None)


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set correlation ID for current context. Returns the ID."""
    cid = correlation_id or str(uuid.uuid4())[:12]
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str:
    return _correlation_id.get()


@contextmanager
def operation_scope(
    organisation_id: Optional[str] = None,
    run_id: Optional[str] = None,
) -> Iterator[None]:
    """
    Tag every log line emitted inside the block.

    Scopes nest: an inner scope that only names a run keeps the
    organisation of the outer one.
    """
    tokens = []
    if organisation_id:
        tokens.append((_organisation_id, _organisation_id.set(organisation_id)))
    if run_id:
        tokens.append((_run_id, _run_id.set(run_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def current_scope() -> Dict[str, str]:
    """The organisation and run the current operation concerns, if any."""
    scope = {}
    organisation_id = _organisation_id.get()
    if organisation_id:
        scope["organisation_id"] = organisation_id
    run_id = _run_id.get()
    if run_id:
        scope["run_id"] = run_id
    return scope


def _add_correlation_id(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    cid = _correlation_id.get()
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def _add_operation_scope(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    """Fill organisation_id / run_id unless the call passed them explicitly."""
    for key, value in current_scope().items():
        event_dict.setdefault(key, value)
    return event_dict


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Route structlog and standard-library records through one renderer.

    Args:
        level: Logging level name
        json_output: JSON lines when True, coloured console output otherwise
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_correlation_id,
        _add_operation_scope,
        structlog.processors.format_exc_info,
    ]
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # SQL echo and per-request access lines are covered by request_completed
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)


class RequestLoggingMiddleware:
    """
    ASGI middleware: assigns a correlation id (taken from
    ``X-Correlation-ID`` when the caller sends one), echoes it on the
    response and logs one ``request_completed`` line per request.
    """

    def __init__(self, app: Any):
        self.app = app
        self.logger = get_logger("trustgraph.api.requests")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        cid = set_correlation_id(headers.get(b"x-correlation-id", b"").decode("latin-1") or None)
        start = datetime.now(timezone.utc)
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                message["headers"] = list(message.get("headers", [])) + [(b"x-correlation-id", cid.encode())]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            self.logger.info(
                "request_completed",
                method=scope.get("method", ""),
                path=scope.get("path", ""),
                status=status_code,
                duration_ms=round((datetime.now(timezone.utc) - start).total_seconds() * 1000, 2),
            )
