# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Priority-cascade failure classifier: multi-signal, first match wins.

Signals are derived once per call (each by its own guarded helper), then
an ordered list of rules is evaluated; the first rule whose predicate
matches builds the result. Rules are not scored or combined: a challenge
page outranks a 429, which outranks a 403, and so on.

Order:
  1. challenge_page          body contains an anti-bot indicator
  2. rate_limited            HTTP 429
  3. blocked                 HTTP 403 / 451
  4. network_error           a critical sub-resource failed
  5. slow_load               navigation timed out, no challenge
  6. timeout_with_challenge  shadowed by rule 1, kept for ordering
  -  fallback                unknown_timeout, low confidence, not logged

``classify`` is total: it never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from . import (
    BackoffHint,
    Classification,
    Confidence,
    DerivedSignals,
    FailureType,
    SignalBundle,
    SuggestedAction,
)
from .backoff import BASE_DELAY_MS, JITTER_RANGE, MAX_DELAY_MS, RandomSource, compute_backoff
from .debounce import SuggestionDebouncer
from .errors import SignalInspectionError
from .resources import filter_critical

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------

CHALLENGE_INDICATORS: dict[str, tuple[str, ...]] = {
    "CLOUDFLARE": ("checking your browser", "cloudflare", "cf-ray"),
    "AKAMAI": ("akamai", "challenge", "akamai-gtm"),
    "CAPTCHA": ("captcha", "recaptcha", "hcaptcha"),
    "BOT_DETECTION": ("bot", "automation", "suspicious", "security check"),
}

BLOCKING_STATUS_CODES: dict[int, str] = {
    403: "forbidden",
    429: "rate_limited",
    451: "unavailable_for_legal_reasons",
    503: "service_unavailable",
}

_TIMEOUT_MARKER = "timeout"

# ---------------------------------------------------------------------------
# Signal helpers: each may raise; derive_signals degrades faults to False
# ---------------------------------------------------------------------------


def _as_text(value: object, signal: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    raise SignalInspectionError(f"expected text, got {type(value).__name__}", signal=signal)


def _status_code(bundle: SignalBundle) -> int | None:
    raw = bundle.status_code
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise SignalInspectionError(f"unusable status code {raw!r}", signal="status_code") from None


def challenge_vendor(body: str | bytes | None) -> str | None:
    """Return the first indicator category found in *body* (case-insensitive)."""
    body_lower = _as_text(body, "response_body").lower()
    if not body_lower:
        return None
    for vendor, indicators in CHALLENGE_INDICATORS.items():
        if any(indicator in body_lower for indicator in indicators):
            return vendor
    return None


def _has_challenge(bundle: SignalBundle) -> bool:
    return challenge_vendor(bundle.response_body) is not None


def _has_blocking_status(bundle: SignalBundle) -> bool:
    return _status_code(bundle) in BLOCKING_STATUS_CODES


def _has_network_failures(bundle: SignalBundle) -> bool:
    return bool(filter_critical(bundle.network_errors))


def _is_timeout(bundle: SignalBundle) -> bool:
    if bundle.navigation_timed_out:
        return True
    return _TIMEOUT_MARKER in _as_text(bundle.error_message, "error_message").lower()


def _guarded(name: str, check: Callable[[SignalBundle], object], bundle: SignalBundle, default=False):
    try:
        return check(bundle)
    except Exception:
        logger.debug("Signal %s unreadable, treating as absent", name, exc_info=True)
        return default


def derive_signals(bundle: SignalBundle) -> DerivedSignals:
    """Compute the boolean signal flags for *bundle*. Never raises."""
    return DerivedSignals(
        status_code=_guarded("status_code", _status_code, bundle, default=None),
        has_challenge_page=_guarded("challenge_page", _has_challenge, bundle),
        has_blocking_status=_guarded("blocking_status", _has_blocking_status, bundle),
        has_network_failures=_guarded("network_failures", _has_network_failures, bundle),
        has_console_errors=_guarded("console_errors", lambda b: bool(b.console_errors), bundle),
        has_page_errors=_guarded("page_errors", lambda b: bool(b.page_errors), bundle),
        is_timeout=_guarded("timeout", _is_timeout, bundle),
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Rule:
    """One step of the cascade: a predicate over derived signals plus its outcome."""

    name: str
    predicate: Callable[[DerivedSignals], bool]
    type: FailureType
    confidence: Confidence
    action: SuggestedAction
    is_root_cause: bool = False
    wants_backoff: bool = False

    def build(self, signals: DerivedSignals, *, should_log: bool, backoff: BackoffHint | None = None) -> Classification:
        return Classification(
            type=self.type,
            confidence=self.confidence,
            suggested_action=self.action,
            is_root_cause=self.is_root_cause,
            should_log=should_log,
            signals=signals,
            backoff_hint=backoff,
        )


RULES: tuple[Rule, ...] = (
    Rule(
        "challenge_page",
        lambda s: s.has_challenge_page,
        FailureType.CHALLENGE_PAGE,
        Confidence.HIGH,
        SuggestedAction.USE_RESIDENTIAL_PROXY,
        is_root_cause=True,
    ),
    Rule(
        "rate_limited",
        lambda s: s.status_code == 429,
        FailureType.RATE_LIMITED,
        Confidence.HIGH,
        SuggestedAction.EXPONENTIAL_BACKOFF,
        is_root_cause=True,
        wants_backoff=True,
    ),
    Rule(
        "blocked",
        lambda s: s.status_code in (403, 451),
        FailureType.BLOCKED,
        Confidence.HIGH,
        SuggestedAction.ROTATE_PROXY,
        is_root_cause=True,
    ),
    Rule(
        "network_error",
        lambda s: s.has_network_failures,
        FailureType.NETWORK_ERROR,
        Confidence.MEDIUM,
        SuggestedAction.RETRY_WITH_DELAY,
    ),
    Rule(
        "slow_load",
        lambda s: s.is_timeout and not s.has_challenge_page,
        FailureType.SLOW_LOAD,
        Confidence.MEDIUM,
        SuggestedAction.INCREASE_TIMEOUT,
    ),
    # Unreachable while challenge_page leads the cascade
    Rule(
        "timeout_with_challenge",
        lambda s: s.is_timeout and s.has_challenge_page,
        FailureType.UNKNOWN_TIMEOUT,
        Confidence.LOW,
        SuggestedAction.ENABLE_DEBUG_MODE,
    ),
)


def fallback(signals: DerivedSignals | None = None) -> Classification:
    """No-information result: nothing matched or classification faulted."""
    return Classification(
        type=FailureType.UNKNOWN_TIMEOUT,
        confidence=Confidence.LOW,
        suggested_action=SuggestedAction.ENABLE_DEBUG_MODE,
        is_root_cause=False,
        should_log=False,
        signals=signals if signals is not None else DerivedSignals(),
    )


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


class ErrorClassifier:
    """Evaluate the rule cascade and attach debounce/backoff side information.

    The debouncer is a per-run context object; pass the same instance to
    every classification of a crawl run. Without one every matched result
    is logged.
    """

    def __init__(
        self,
        *,
        debouncer: SuggestionDebouncer | None = None,
        rng: RandomSource | None = None,
        rules: Sequence[Rule] = RULES,
        backoff_base_ms: int = BASE_DELAY_MS,
        backoff_max_ms: int = MAX_DELAY_MS,
        jitter_range: tuple[float, float] = JITTER_RANGE,
    ) -> None:
        self._debouncer = debouncer
        self._rng = rng
        self._rules = tuple(rules)
        self._backoff_base_ms = backoff_base_ms
        self._backoff_max_ms = backoff_max_ms
        self._jitter_range = jitter_range

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def match(self, signals: DerivedSignals) -> Rule | None:
        """First rule whose predicate holds; a faulting predicate counts as no match."""
        for rule in self._rules:
            try:
                if rule.predicate(signals):
                    return rule
            except Exception:
                logger.debug("Rule %s predicate failed, skipping", rule.name, exc_info=True)
        return None

    def classify(self, bundle: SignalBundle) -> Classification:
        """Classify one page-load failure. Never raises."""
        try:
            signals = derive_signals(bundle)
        except Exception:
            logger.warning("Signal derivation failed, using fallback", exc_info=True)
            return fallback()

        rule = self.match(signals)
        if rule is None:
            return fallback(signals)

        try:
            backoff = self._backoff() if rule.wants_backoff else None
            result = rule.build(
                signals,
                should_log=self._should_log(getattr(bundle, "request_id", None), rule.action),
                backoff=backoff,
            )
        except Exception:
            logger.warning("Rule %s failed to build a result, using fallback", rule.name, exc_info=True)
            return fallback(signals)

        logger.debug(
            "Classified as %s (%s) via %s",
            result.type,
            result.confidence,
            rule.name,
        )
        return result

    # -- Internal --

    def _backoff(self) -> BackoffHint:
        return compute_backoff(
            self._rng,
            base_delay_ms=self._backoff_base_ms,
            max_delay_ms=self._backoff_max_ms,
            jitter_range=self._jitter_range,
        )

    def _should_log(self, request_id: str | None, action: SuggestedAction) -> bool:
        if not request_id or self._debouncer is None:
            return True
        try:
            return self._debouncer.should_emit(request_id, action)
        except Exception:
            logger.debug("Debouncer failed for %s, logging anyway", request_id, exc_info=True)
            return True


def classify(
    bundle: SignalBundle,
    *,
    debouncer: SuggestionDebouncer | None = None,
    rng: RandomSource | None = None,
) -> Classification:
    """One-shot classification with default rules."""
    return ErrorClassifier(debouncer=debouncer, rng=rng).classify(bundle)
