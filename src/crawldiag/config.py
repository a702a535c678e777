# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Diagnostics configuration for one crawl run.

Defaults match the built-in constants; ``from_env()`` overlays
``CRAWLDIAG_*`` environment variables. The factories wire a debouncer,
classifier and sanitizer options that share one run's settings.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from . import SuggestedAction
from .backoff import BASE_DELAY_MS, JITTER_RANGE, MAX_DELAY_MS, RandomSource
from .classifier import ErrorClassifier
from .debounce import COOLDOWN_OVERRIDES_MS, DEFAULT_COOLDOWN_MS, DEFAULT_MAX_ENTRIES, DEFAULT_TTL_MS, SuggestionDebouncer
from .errors import ConfigError
from .logging_config import configure as configure_logging
from .sanitizer import DEFAULT_MAX_HTML_LENGTH, DEFAULT_REDACT_HEADERS, SanitizeOptions

_ENV_PREFIX = "CRAWLDIAG_"
_TRUTHY = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class DiagnosticsConfig:
    """Immutable diagnostics settings."""

    cooldown_ms: float = DEFAULT_COOLDOWN_MS
    cooldown_overrides: Mapping[str, float] = field(default_factory=lambda: dict(COOLDOWN_OVERRIDES_MS))
    debounce_ttl_ms: float = DEFAULT_TTL_MS
    debounce_max_entries: int = DEFAULT_MAX_ENTRIES
    backoff_base_ms: int = BASE_DELAY_MS
    backoff_max_ms: int = MAX_DELAY_MS
    jitter_range: tuple[float, float] = JITTER_RANGE
    max_html_length: int = DEFAULT_MAX_HTML_LENGTH
    redact_headers: tuple[str, ...] = DEFAULT_REDACT_HEADERS
    log_json: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.cooldown_ms < 0:
            raise ConfigError(f"cooldown_ms must be >= 0, got {self.cooldown_ms}")
        for action, value in self.cooldown_overrides.items():
            if value < 0:
                raise ConfigError(f"cooldown override for {action} must be >= 0, got {value}")
        longest = max([self.cooldown_ms, *self.cooldown_overrides.values()])
        if self.debounce_ttl_ms < longest:
            raise ConfigError(f"debounce_ttl_ms must be >= {longest}, got {self.debounce_ttl_ms}")
        if self.debounce_max_entries <= 0:
            raise ConfigError(f"debounce_max_entries must be > 0, got {self.debounce_max_entries}")
        if self.backoff_base_ms <= 0:
            raise ConfigError(f"backoff_base_ms must be > 0, got {self.backoff_base_ms}")
        if self.backoff_max_ms < self.backoff_base_ms:
            raise ConfigError(f"backoff_max_ms must be >= backoff_base_ms, got {self.backoff_max_ms}")
        lo, hi = self.jitter_range
        if lo <= 0 or lo > hi:
            raise ConfigError(f"invalid jitter_range {self.jitter_range!r}")
        if self.max_html_length <= 0:
            raise ConfigError(f"max_html_length must be > 0, got {self.max_html_length}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DiagnosticsConfig:
        """Build a config from ``CRAWLDIAG_*`` variables (unset/blank -> default)."""
        env = os.environ if environ is None else environ
        kwargs: dict = {}

        def _get(name: str) -> str:
            return env.get(_ENV_PREFIX + name, "").strip()

        def _number(name: str, convert):
            raw = _get(name)
            if not raw:
                return None
            try:
                return convert(raw)
            except ValueError:
                raise ConfigError(f"{_ENV_PREFIX}{name} must be a number, got {raw!r}") from None

        for name, attr, convert in (
            ("COOLDOWN_MS", "cooldown_ms", float),
            ("DEBOUNCE_TTL_MS", "debounce_ttl_ms", float),
            ("DEBOUNCE_MAX_ENTRIES", "debounce_max_entries", int),
            ("BACKOFF_BASE_MS", "backoff_base_ms", int),
            ("BACKOFF_MAX_MS", "backoff_max_ms", int),
            ("MAX_HTML_LENGTH", "max_html_length", int),
        ):
            value = _number(name, convert)
            if value is not None:
                kwargs[attr] = value

        retry_cooldown = _number("RETRY_COOLDOWN_MS", float)
        if retry_cooldown is not None:
            kwargs["cooldown_overrides"] = {**COOLDOWN_OVERRIDES_MS, SuggestedAction.RETRY_WITH_DELAY: retry_cooldown}

        if _get("LOG_JSON"):
            kwargs["log_json"] = _get("LOG_JSON").lower() in _TRUTHY
        if _get("LOG_LEVEL"):
            kwargs["log_level"] = _get("LOG_LEVEL").upper()

        return cls(**kwargs)

    # -- Factories --

    def build_debouncer(self) -> SuggestionDebouncer:
        return SuggestionDebouncer(
            default_cooldown_ms=self.cooldown_ms,
            cooldown_overrides=self.cooldown_overrides,
            ttl_ms=self.debounce_ttl_ms,
            max_entries=self.debounce_max_entries,
        )

    def build_classifier(self, *, rng: RandomSource | None = None) -> ErrorClassifier:
        """Classifier with a fresh per-run debouncer."""
        return ErrorClassifier(
            debouncer=self.build_debouncer(),
            rng=rng,
            backoff_base_ms=self.backoff_base_ms,
            backoff_max_ms=self.backoff_max_ms,
            jitter_range=self.jitter_range,
        )

    def sanitize_options(self) -> SanitizeOptions:
        return SanitizeOptions(redact_headers=self.redact_headers, max_html_length=self.max_html_length)

    def configure_logging(self) -> None:
        configure_logging(json_output=self.log_json, level=self.log_level)
