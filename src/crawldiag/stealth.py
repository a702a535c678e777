# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-request browser fingerprint variation (viewport, UA, timing jitter).

The random source is a parameter so a seeded ``random.Random`` reproduces
a run exactly. The chosen profile is echoed into failure records.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

VIEWPORTS: tuple[dict[str, int], ...] = (
    {"width": 1920, "height": 1080},
    {"width": 1366, "height": 768},
    {"width": 1440, "height": 900},
    {"width": 1536, "height": 864},
)

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

TIMING_JITTER_MS: tuple[float, float] = (1000.0, 3000.0)

_UA_SUMMARY_LEN = 50


@dataclass(frozen=True, slots=True)
class StealthConfig:
    viewport: dict[str, int]
    user_agent: str
    timing_jitter_ms: float

    def summary(self) -> dict:
        """Short form for failure records (UA truncated)."""
        ua = self.user_agent
        if len(ua) > _UA_SUMMARY_LEN:
            ua = ua[:_UA_SUMMARY_LEN] + "..."
        return {"viewport": dict(self.viewport), "user_agent": ua, "timing_jitter_ms": round(self.timing_jitter_ms)}


def generate_stealth_config(rng: random.Random | None = None) -> StealthConfig:
    """Pick a viewport, user agent and post-navigation jitter."""
    source = rng if rng is not None else random.Random()
    lo, hi = TIMING_JITTER_MS
    return StealthConfig(
        viewport=dict(source.choice(VIEWPORTS)),
        user_agent=source.choice(USER_AGENTS),
        timing_jitter_ms=lo + source.random() * (hi - lo),
    )
