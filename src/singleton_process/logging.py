"""structlog setup for the CLI and ``lock_or_exit()``.

Every event carries who is speaking: ``pid`` (this process) and ``run_id``
are bound by ``configure_logging()``; ``slot`` (the singleton name) is bound
by ``bind_slot()`` once a command knows which name it works on.  Events
about another process use ``holder_pid`` so they never shadow ``pid``.

    {"slot": "worker", "holder_pid": 4242, "event": "already running",
     "pid": 5150, "run_id": "a3f7b29c", "level": "error", "timestamp": "…"}

The acquire/release/query protocol emits nothing itself.
"""

import logging as _stdlib
import os
import sys
import uuid

import structlog

from singleton_process.config import Settings, get_settings


def configure_logging(settings: Settings | None = None) -> str:
    """Install the processor chain and bind this process's identity.

    Safe to call repeatedly: the chain is replaced and a new run_id bound.

    Returns:
        run_id — 8 hex characters, distinguishing invocations that reuse a PID.
    """
    if settings is None:
        settings = get_settings()

    threshold = getattr(_stdlib, settings.logging.level, _stdlib.INFO)
    if settings.logging.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        # stderr only: stdout carries status lines and PIDs for scripts.
        # Uncached, since CliRunner swaps sys.stderr per invocation.
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    run_id = uuid.uuid4().hex[:8]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(pid=os.getpid(), run_id=run_id)
    return run_id


def bind_slot(name: str) -> None:
    """Tag every later event in this context with the singleton name."""
    structlog.contextvars.bind_contextvars(slot=name)


def get_logger(name: str = "singleton_process") -> structlog.BoundLogger:
    return structlog.get_logger(name)
