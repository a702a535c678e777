# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Sub-resource criticality heuristics.

A failed fetch for an image, font, stylesheet, analytics beacon, consent
banner, ad, social widget or CDN asset does not stop content extraction.
Those failures are noise: they are filtered out before network errors
count toward classification.

Pure string matching, no network access.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from . import NetworkError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Category table (lower-case substrings)
# ---------------------------------------------------------------------------

NON_CRITICAL_PATTERNS: dict[str, tuple[str, ...]] = {
    "images": (".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".ico", ".avif", ".bmp"),
    "fonts": (".woff", ".woff2", ".ttf", ".otf", ".eot", "fonts.googleapis", "fonts.gstatic", "typekit"),
    "analytics": (
        "analytics",
        "googletagmanager",
        "tagmanager",
        "google-analytics",
        "segment.io",
        "mixpanel",
        "hotjar",
        "newrelic",
        "nr-data",
    ),
    "tracking": ("tracking", "pixel", "beacon", "/collect?", "clarity.ms", "bat.bing"),
    "consent": ("consent", "cookielaw", "onetrust", "cookiebot", "trustarc", "privacy"),
    "ads": ("doubleclick", "googlesyndication", "adservice", "adsystem", "/ads/", "criteo", "taboola"),
    "social": ("facebook.net", "connect.facebook", "platform.twitter", "linkedin.com/px", "pinterest", "tiktok"),
    "cdn": ("cloudfront.net", "akamaihd.net", "fastly.net", "cdn.jsdelivr", "cdnjs."),
}

_NON_CRITICAL_CONTENT_PREFIXES: dict[str, str] = {"image/": "images", "font/": "fonts"}
_NON_CRITICAL_CONTENT_EXACT: dict[str, str] = {"text/css": "stylesheet"}

# Hosts/paths whose ERR_ABORTED is expected (tag managers cancel in-flight beacons)
_THIRD_PARTY_ABORT_MARKERS: tuple[str, ...] = ("analytics", "tagmanager", "consent", "privacy")
_ABORTED = "net::err_aborted"


def _normalize_content_type(content_type: str | None) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def non_critical_category(url: str | None, content_type: str | None = "") -> str | None:
    """Return the matching non-critical category, or None for critical resources."""
    url_lower = (url or "").lower()
    if url_lower:
        for category, patterns in NON_CRITICAL_PATTERNS.items():
            if any(p in url_lower for p in patterns):
                return category

    ctype = _normalize_content_type(content_type)
    for prefix, category in _NON_CRITICAL_CONTENT_PREFIXES.items():
        if ctype.startswith(prefix):
            return category
    return _NON_CRITICAL_CONTENT_EXACT.get(ctype)


def is_non_critical(url: str | None, content_type: str | None = "") -> bool:
    """True if a failure fetching this resource is ignorable noise."""
    return non_critical_category(url, content_type) is not None


def filter_critical(network_errors: Iterable[NetworkError] | None) -> tuple[NetworkError, ...]:
    """Keep only failures against critical resources, preserving order."""
    if not network_errors:
        return ()
    kept: list[NetworkError] = []
    dropped = 0
    for err in network_errors:
        if is_non_critical(err.url):
            dropped += 1
            continue
        kept.append(err)
    if dropped:
        logger.debug("Filtered %d non-critical network failure(s), %d remain", dropped, len(kept))
    return tuple(kept)


def is_third_party_abort(error: NetworkError) -> bool:
    """True for an aborted analytics/tag-manager/consent request (expected)."""
    if error.failure_reason.lower() != _ABORTED:
        return False
    url_lower = error.url.lower()
    return any(marker in url_lower for marker in _THIRD_PARTY_ABORT_MARKERS)
