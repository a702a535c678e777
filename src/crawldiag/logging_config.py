# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge for crawl diagnostics.

Leaf module: no crawldiag imports. Safe to call early in crawler startup.
Modules log through ``logging.getLogger(__name__)``; anything bound with
:func:`request_scope` (request id, url) is merged into every line emitted
while the scope is active, including lines from stdlib loggers.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

# Chatty third-party loggers kept at WARNING unless the root level is DEBUG
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "playwright")


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def configure(*, json_output: bool = False, level: str = "INFO", stream=None) -> None:
    """Install the structlog formatter on the root logger.

    Args:
        json_output: JSON lines for log shipping, console rendering otherwise.
        level: Root logger level; unknown names fall back to INFO.
        stream: Output stream (default stderr).
    """
    shared = _shared_processors()
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=shared,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(root_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if root_level <= logging.DEBUG else logging.WARNING)


@contextmanager
def request_scope(request_id: str | None = None, **extra: object) -> Iterator[None]:
    """Bind a request correlation id (plus extra fields) to log lines in scope.

    A missing request id binds nothing for that key.
    """
    fields = {k: v for k, v in extra.items() if v is not None}
    if request_id:
        fields["request_id"] = request_id
    with structlog.contextvars.bound_contextvars(**fields):
        yield
