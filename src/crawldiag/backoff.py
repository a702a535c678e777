# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Jittered backoff recommendation for rate-limited requests."""

from __future__ import annotations

import random
from typing import Protocol

from . import BackoffHint

BASE_DELAY_MS = 5000  # 5 seconds
MAX_DELAY_MS = 300_000  # 5 minutes
JITTER_RANGE: tuple[float, float] = (0.85, 1.15)


class RandomSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


def compute_backoff(
    rng: RandomSource | None = None,
    *,
    base_delay_ms: int = BASE_DELAY_MS,
    max_delay_ms: int = MAX_DELAY_MS,
    jitter_range: tuple[float, float] = JITTER_RANGE,
) -> BackoffHint:
    """Draw a fresh jittered delay. Never cached: concurrent 429s spread out.

    Args:
        rng: Random source with ``uniform`` (e.g. ``random.Random(seed)``);
            the module-level generator when omitted.
    """
    lo, hi = jitter_range
    if base_delay_ms <= 0:
        raise ValueError(f"base_delay_ms must be > 0, got {base_delay_ms}")
    if max_delay_ms < base_delay_ms:
        raise ValueError(f"max_delay_ms must be >= base_delay_ms, got {max_delay_ms}")
    if lo <= 0 or lo > hi:
        raise ValueError(f"invalid jitter_range {jitter_range!r}")

    source = rng if rng is not None else random
    jitter = source.uniform(lo, hi)
    return BackoffHint(
        base_delay_ms=base_delay_ms,
        max_delay_ms=max_delay_ms,
        jitter_factor=jitter,
        suggested_delay_ms=min(base_delay_ms * jitter, max_delay_ms),
    )
