# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Suggestion debouncer: suppress repeated identical log emissions.

One instance is owned by a crawl run and handed to the classifier. It only
affects the ``should_log`` flag of a classification, never its type.

Design choices:

- **Composite key**: ``(request_id, suggestion)`` tuple, so ids that
  contain ``:`` cannot collide.
- **Window from last emission**: a suppressed call does not extend the
  window.
- **Lock**: a single ``threading.Lock`` guards check-then-write; the
  critical section never awaits, so it is safe from threads and from
  event-loop tasks alike.
- **Bounded**: entries idle longer than ``ttl_ms`` are evicted lazily on
  write, and the oldest entries go once ``max_entries`` is exceeded.
- **Clock**: ``time.monotonic()`` (seconds), injectable for tests.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping

from . import SuggestedAction

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MS = 5000.0

# retry_with_delay is the noisiest suggestion; widen its window
COOLDOWN_OVERRIDES_MS: dict[str, float] = {
    SuggestedAction.RETRY_WITH_DELAY: 10000.0,
}

DEFAULT_TTL_MS = 300_000.0
DEFAULT_MAX_ENTRIES = 10_000


class SuggestionDebouncer:
    """Concurrency-safe ``(request_id, suggestion) -> last emission`` map.

    Usage::

        debouncer = SuggestionDebouncer()
        if debouncer.should_emit("req-1", "rotate_proxy"):
            logger.warning(...)
    """

    def __init__(
        self,
        *,
        default_cooldown_ms: float = DEFAULT_COOLDOWN_MS,
        cooldown_overrides: Mapping[str, float] | None = None,
        ttl_ms: float = DEFAULT_TTL_MS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if default_cooldown_ms < 0:
            raise ValueError(f"default_cooldown_ms must be >= 0, got {default_cooldown_ms}")
        if max_entries <= 0:
            raise ValueError(f"max_entries must be > 0, got {max_entries}")
        self._default_cooldown_ms = float(default_cooldown_ms)
        overrides = COOLDOWN_OVERRIDES_MS if cooldown_overrides is None else cooldown_overrides
        self._overrides: dict[str, float] = {str(k): float(v) for k, v in overrides.items()}
        longest = max([self._default_cooldown_ms, *self._overrides.values()])
        if ttl_ms < longest:
            raise ValueError(f"ttl_ms must be >= the longest cooldown ({longest}), got {ttl_ms}")
        self._ttl_ms = float(ttl_ms)
        self._max_entries = max_entries
        self._clock = clock
        # Insertion order == emission order (entries are moved to the end on update)
        self._last_emitted: OrderedDict[tuple[str, str], float] = OrderedDict()
        self._lock = threading.Lock()

    # -- Public API --

    def cooldown_for(self, suggestion: str) -> float:
        """Cooldown window (ms) for *suggestion*."""
        return self._overrides.get(str(suggestion), self._default_cooldown_ms)

    def should_emit(self, request_id: str, suggestion: str, cooldown_ms: float | None = None) -> bool:
        """True (and record now) if *suggestion* was not emitted for *request_id* within the window."""
        window_ms = self.cooldown_for(suggestion) if cooldown_ms is None else float(cooldown_ms)
        key = (str(request_id), str(suggestion))

        with self._lock:
            now = self._clock()
            last = self._last_emitted.get(key)
            if last is not None and (now - last) * 1000.0 < window_ms:
                return False
            self._last_emitted[key] = now
            self._last_emitted.move_to_end(key)
            self._evict_locked(now)
            return True

    def prune(self, now: float | None = None) -> int:
        """Evict entries idle longer than the TTL. Returns the number removed."""
        with self._lock:
            return self._evict_locked(self._clock() if now is None else now)

    def clear(self) -> None:
        with self._lock:
            self._last_emitted.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_emitted)

    # -- Internal --

    def _evict_locked(self, now: float) -> int:
        removed = 0
        ttl_s = self._ttl_ms / 1000.0
        # Oldest first; stop at the first entry still inside the TTL
        while self._last_emitted:
            key, emitted_at = next(iter(self._last_emitted.items()))
            if now - emitted_at <= ttl_s and len(self._last_emitted) <= self._max_entries:
                break
            del self._last_emitted[key]
            removed += 1
        if removed:
            logger.debug("Evicted %d debounce entr(ies), %d remain", removed, len(self._last_emitted))
        return removed
