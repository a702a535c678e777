# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Payload sanitization before diagnostics are logged or persisted.

Failure records carry raw request material (headers, partial HTML, HAR
captures). This module strips what must not leave the process:

1. redact_headers(): credentials and session headers replaced by a marker
2. truncate_html(): oversized HTML cut to a fixed length plus a marker
3. truncate_har(): HAR reduced to the last few small, non-media entries

``sanitize()`` applies all three to a payload dict and returns a copy.
The HAR reduction is lossy and one-directional.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .errors import ConfigError, SanitizationError

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
TRUNCATION_MARKER = "... [TRUNCATED]"

DEFAULT_REDACT_HEADERS: tuple[str, ...] = ("authorization", "cookie", "x-api-key", "x-auth-token")
DEFAULT_MAX_HTML_LENGTH = 1000
DEFAULT_HAR_MAX_ENTRIES = 10
DEFAULT_HAR_MAX_BODY_SIZE = 10_000

_MEDIA_TYPES: tuple[str, ...] = ("image", "video")


@dataclass(frozen=True, slots=True)
class SanitizeOptions:
    """Immutable sanitizer limits."""

    redact_headers: tuple[str, ...] = DEFAULT_REDACT_HEADERS
    max_html_length: int = DEFAULT_MAX_HTML_LENGTH
    har_max_entries: int = DEFAULT_HAR_MAX_ENTRIES
    har_max_body_size: int = DEFAULT_HAR_MAX_BODY_SIZE  # bytes, exclusive

    def __post_init__(self) -> None:
        if self.max_html_length <= 0:
            raise ConfigError(f"max_html_length must be > 0, got {self.max_html_length}")
        if self.har_max_entries <= 0:
            raise ConfigError(f"har_max_entries must be > 0, got {self.har_max_entries}")
        if self.har_max_body_size <= 0:
            raise ConfigError(f"har_max_body_size must be > 0, got {self.har_max_body_size}")
        object.__setattr__(self, "redact_headers", tuple(h.lower() for h in self.redact_headers))


def redact_headers(headers: Mapping[str, object], deny: Iterable[str] = DEFAULT_REDACT_HEADERS) -> dict:
    """Replace values of deny-listed headers (case-insensitive keys); keep the rest."""
    if not isinstance(headers, Mapping):
        raise SanitizationError(f"headers must be a mapping, got {type(headers).__name__}")
    deny_lower = {d.lower() for d in deny}
    return {key: (REDACTED if str(key).lower() in deny_lower else value) for key, value in headers.items()}


def truncate_html(html: str, max_len: int = DEFAULT_MAX_HTML_LENGTH) -> str:
    """Cut *html* to *max_len* chars and append the marker.

    Idempotent: an already-truncated string (ends with the marker, within
    ``max_len + len(marker)``) is returned as is.
    """
    if len(html) <= max_len:
        return html
    if html.endswith(TRUNCATION_MARKER) and len(html) <= max_len + len(TRUNCATION_MARKER):
        return html
    return html[:max_len] + TRUNCATION_MARKER


def _entry_body_size(entry: Mapping) -> int:
    response = entry.get("response") or {}
    size = response.get("bodySize")
    if size is None:
        size = (response.get("content") or {}).get("size", 0)
    try:
        return int(size)
    except (TypeError, ValueError):
        return 0


def _entry_mime_type(entry: Mapping) -> str:
    response = entry.get("response") or {}
    return str((response.get("content") or {}).get("mimeType") or "").lower()


def _well_formed(entry: object) -> bool:
    if not isinstance(entry, Mapping):
        return False
    response = entry.get("response") or {}
    return isinstance(response, Mapping) and isinstance(response.get("content") or {}, Mapping)


def _keep_entry(entry: object, max_body_size: int) -> bool:
    # Malformed entries are dropped, never inspected
    if not _well_formed(entry):
        return False
    if _entry_body_size(entry) >= max_body_size:
        return False
    mime = _entry_mime_type(entry)
    return not any(m in mime for m in _MEDIA_TYPES)


def truncate_har(
    har: Mapping,
    max_entries: int = DEFAULT_HAR_MAX_ENTRIES,
    max_body_size: int = DEFAULT_HAR_MAX_BODY_SIZE,
) -> dict:
    """Keep the last *max_entries* entries, then drop large or media ones.

    Accepts both a bare ``{"entries": [...]}`` capture and a standard
    ``{"log": {"entries": [...]}}`` HAR document.
    """
    if not isinstance(har, Mapping):
        raise SanitizationError(f"har must be a mapping, got {type(har).__name__}")

    if isinstance(har.get("log"), Mapping):
        return {**har, "log": truncate_har(har["log"], max_entries, max_body_size)}

    entries = har.get("entries")
    if not isinstance(entries, list):
        return dict(har)

    tail = entries[-max_entries:]
    kept = [e for e in tail if _keep_entry(e, max_body_size)]
    if len(kept) != len(entries):
        logger.debug("HAR reduced from %d to %d entries", len(entries), len(kept))
    return {**har, "entries": kept}


def sanitize(payload: Mapping | None, options: SanitizeOptions | None = None) -> dict | None:
    """Return a sanitized shallow copy of *payload*.

    Recognized keys: ``headers``, ``html`` (text or UTF-8 bytes), ``har``.
    Other keys pass through.
    Raises SanitizationError when a recognized key has an unusable shape.
    """
    if payload is None:
        return None
    if not isinstance(payload, Mapping):
        raise SanitizationError(f"payload must be a mapping, got {type(payload).__name__}")

    opts = options or SanitizeOptions()
    sanitized = dict(payload)

    if sanitized.get("headers") is not None:
        sanitized["headers"] = redact_headers(sanitized["headers"], opts.redact_headers)

    html = sanitized.get("html")
    if isinstance(html, (bytes, bytearray)):
        html = sanitized["html"] = bytes(html).decode("utf-8", errors="replace")
    elif html is not None and not isinstance(html, str):
        raise SanitizationError(f"html must be text, got {type(html).__name__}")
    if html:
        sanitized["html"] = truncate_html(html, opts.max_html_length)

    if sanitized.get("har") is not None:
        sanitized["har"] = truncate_har(sanitized["har"], opts.har_max_entries, opts.har_max_body_size)

    return sanitized
