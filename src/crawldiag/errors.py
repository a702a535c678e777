# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""crawldiag exception hierarchy.

All crawldiag-specific errors inherit from CrawlDiagError. The public
classification and detection entry points never let these escape; they
are raised at the point of fault and caught where a signal degrades to
"absent".
"""

from __future__ import annotations


class CrawlDiagError(Exception):
    """Base exception for all crawldiag errors."""


class SignalInspectionError(CrawlDiagError):
    """A single signal could not be read from the bundle."""

    def __init__(self, message: str, *, signal: str = "") -> None:
        super().__init__(message)
        self.signal = signal


class ChallengeProbeError(CrawlDiagError):
    """One early-challenge probe failed against the live page."""

    def __init__(self, message: str, *, probe: str = "") -> None:
        super().__init__(message)
        self.probe = probe


class SanitizationError(CrawlDiagError):
    """Diagnostic payload could not be sanitized (should not reach users)."""


class ConfigError(CrawlDiagError, ValueError):
    """Invalid diagnostics configuration value."""
