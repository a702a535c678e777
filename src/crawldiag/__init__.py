# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""crawldiag: failure classification and diagnostics for crawled page loads.

Turns noisy observations of one page-load attempt into a normalized result:
- type: failure taxonomy (blocked, rate_limited, challenge_page, ...)
- confidence + suggested remediation + optional backoff hint
- root cause vs. symptom, and whether the result is worth logging
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class FailureType(StrEnum):
    BLOCKED = "blocked"
    RATE_LIMITED = "rate_limited"
    SLOW_LOAD = "slow_load"
    NETWORK_ERROR = "network_error"
    CHALLENGE_PAGE = "challenge_page"
    UNKNOWN_TIMEOUT = "unknown_timeout"
    VALIDATION_ERROR = "validation_error"
    EXTRACTION_ERROR = "extraction_error"


class Confidence(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SuggestedAction(StrEnum):
    USE_RESIDENTIAL_PROXY = "use_residential_proxy"
    EXPONENTIAL_BACKOFF = "exponential_backoff"
    ROTATE_PROXY = "rotate_proxy"
    RETRY_WITH_DELAY = "retry_with_delay"
    INCREASE_TIMEOUT = "increase_timeout"
    ENABLE_DEBUG_MODE = "enable_debug_mode"


@dataclass(frozen=True, slots=True)
class ConsoleError:
    """A console message of type ``error`` emitted by the page."""

    message: str
    source_url: str = ""


@dataclass(frozen=True, slots=True)
class NetworkError:
    """A failed sub-resource request."""

    url: str
    failure_reason: str = ""  # e.g. net::ERR_ABORTED
    method: str = "GET"


@dataclass(frozen=True, slots=True)
class PageError:
    """An uncaught exception thrown inside the page."""

    message: str
    stack_summary: str = ""


@dataclass(frozen=True, slots=True)
class SignalBundle:
    """Everything observed about one page-load attempt.

    Immutable once built; list inputs are frozen into tuples.
    """

    status_code: int | None = None
    response_body: str | None = None
    console_errors: tuple[ConsoleError, ...] = ()
    network_errors: tuple[NetworkError, ...] = ()
    page_errors: tuple[PageError, ...] = ()
    navigation_timed_out: bool = False
    error_message: str | None = None
    request_url: str = ""
    content_type: str = ""
    request_id: str | None = None

    def __post_init__(self) -> None:
        for name in ("console_errors", "network_errors", "page_errors"):
            value = getattr(self, name)
            if value is None:
                object.__setattr__(self, name, ())
            elif not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))


@dataclass(frozen=True, slots=True)
class BackoffHint:
    """Jittered retry delay recommendation for rate-limited requests."""

    base_delay_ms: int
    max_delay_ms: int
    jitter_factor: float
    suggested_delay_ms: float

    def to_dict(self) -> dict:
        return {
            "base_delay_ms": self.base_delay_ms,
            "max_delay_ms": self.max_delay_ms,
            "jitter_factor": self.jitter_factor,
            "suggested_delay_ms": self.suggested_delay_ms,
        }


@dataclass(frozen=True, slots=True)
class DerivedSignals:
    """Boolean flags the classifier decided on (echoed for audit)."""

    status_code: int | None = None
    has_challenge_page: bool = False
    has_blocking_status: bool = False
    has_network_failures: bool = False
    has_console_errors: bool = False
    has_page_errors: bool = False
    is_timeout: bool = False

    def to_dict(self) -> dict:
        return {
            "status_code": self.status_code,
            "has_challenge_page": self.has_challenge_page,
            "has_blocking_status": self.has_blocking_status,
            "has_network_failures": self.has_network_failures,
            "has_console_errors": self.has_console_errors,
            "has_page_errors": self.has_page_errors,
            "is_timeout": self.is_timeout,
        }


@dataclass(frozen=True, slots=True)
class Classification:
    """Normalized outcome of classifying one page-load failure."""

    type: FailureType
    confidence: Confidence
    suggested_action: SuggestedAction
    is_root_cause: bool
    should_log: bool
    signals: DerivedSignals = field(default_factory=DerivedSignals)
    backoff_hint: BackoffHint | None = None

    def to_dict(self) -> dict:
        result: dict = {
            "type": str(self.type),
            "confidence": str(self.confidence),
            "suggested_action": str(self.suggested_action),
            "is_root_cause": self.is_root_cause,
            "should_log": self.should_log,
            "signals": self.signals.to_dict(),
        }
        if self.backoff_hint is not None:
            result["backoff_hint"] = self.backoff_hint.to_dict()
        return result


__all__ = [
    "BackoffHint",
    "Classification",
    "Confidence",
    "ConsoleError",
    "DerivedSignals",
    "FailureType",
    "NetworkError",
    "PageError",
    "SignalBundle",
    "SuggestedAction",
]
