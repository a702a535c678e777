# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Failure records, classification logging and end-of-run summaries.

Every payload attached to a failure record goes through the sanitizer
before the record is handed to the persistence layer.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from tabulate import tabulate

from . import Classification
from .errors import SanitizationError
from .logging_config import request_scope
from .sanitizer import SanitizeOptions, sanitize
from .timeline import Timeline

logger = logging.getLogger(__name__)

RECORD_TYPE = "error"
_UNKNOWN = "unknown"


def build_failure_record(
    url: str,
    classification: Classification | None,
    *,
    message: str = "",
    timeline: Timeline | None = None,
    debug: Mapping | None = None,
    html: str | bytes | None = None,
    headers: Mapping | None = None,
    har: Mapping | None = None,
    sanitize_options: SanitizeOptions | None = None,
) -> dict:
    """Assemble a persistable failure record with sanitized attachments.

    An attachment that cannot be sanitized is dropped (and noted in
    ``debug.dropped_attachments``) rather than stored raw.
    """
    record: dict = {
        "type": RECORD_TYPE,
        "message": message,
        "url": url,
        "timestamp": datetime.now(UTC).isoformat(),
        "classification": classification.to_dict() if classification is not None else None,
    }
    if timeline is not None:
        record["timeline"] = timeline.report()

    debug_out = dict(debug or {})
    attachments = {k: v for k, v in (("html", html), ("headers", headers), ("har", har)) if v is not None}
    dropped: list[str] = []
    for key, value in attachments.items():
        try:
            cleaned = sanitize({key: value}, sanitize_options)
        except SanitizationError as exc:
            logger.warning("Dropping %s attachment for %s: %s", key, url, exc)
            dropped.append(key)
            continue
        debug_out[key] = cleaned[key] if cleaned is not None else None
    if dropped:
        debug_out["dropped_attachments"] = dropped
    record["debug"] = debug_out
    return record


def log_classification(classification: Classification, request_id: str | None = None) -> bool:
    """Log a classification if its ``should_log`` flag allows. Returns whether it logged."""
    if not classification.should_log:
        return False
    level = logging.WARNING if classification.is_root_cause else logging.INFO
    with request_scope(request_id):
        logger.log(
            level,
            "Failure classified as %s (%s confidence)",
            classification.type,
            classification.confidence,
        )
        logger.info("Suggested action: %s", classification.suggested_action)
        if classification.backoff_hint is not None:
            logger.info("Backoff hint: %.0fms", classification.backoff_hint.suggested_delay_ms)
    return True


# ---------------------------------------------------------------------------
# Run summary
# ---------------------------------------------------------------------------


def aggregate(records: Iterable[Mapping], key: str) -> dict[str, int]:
    """Count records by a classification field (``type``, ``confidence``, ...)."""
    counts: Counter[str] = Counter()
    for record in records:
        classification = record.get("classification") or {}
        counts[str(classification.get(key) or _UNKNOWN)] += 1
    return dict(counts)


@dataclass(frozen=True)
class RunSummary:
    total: int
    by_type: dict[str, int] = field(default_factory=dict)
    by_confidence: dict[str, int] = field(default_factory=dict)
    by_action: dict[str, int] = field(default_factory=dict)
    root_causes: int = 0


def summarize(records: Iterable[Mapping]) -> RunSummary:
    items = list(records)
    return RunSummary(
        total=len(items),
        by_type=aggregate(items, "type"),
        by_confidence=aggregate(items, "confidence"),
        by_action=aggregate(items, "suggested_action"),
        root_causes=sum(1 for r in items if (r.get("classification") or {}).get("is_root_cause")),
    )


def render_summary(summary: RunSummary) -> str:
    """Plain-text tables for the end-of-run console report."""
    if summary.total == 0:
        return "No failures recorded."
    sections = [f"Failures: {summary.total} ({summary.root_causes} root cause)"]
    for title, counts in (
        ("Type", summary.by_type),
        ("Confidence", summary.by_confidence),
        ("Suggested action", summary.by_action),
    ):
        rows = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        sections.append(tabulate(rows, headers=[title, "Count"], tablefmt="simple"))
    return "\n\n".join(sections)
