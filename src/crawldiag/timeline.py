# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-request lifecycle timeline for failure diagnostics.

Created when a request starts handling so it survives navigation failures
and can still report how far the request got. Marks are latched at call
time: a stage's elapsed value is whatever it was when ``mark`` ran, so
call it at the intended point, not retroactively.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StageMark:
    stage: str
    timestamp_ms: int  # wall clock, epoch ms
    elapsed_ms: float  # monotonic, since Timeline creation

    def to_dict(self) -> dict:
        return {"stage": self.stage, "timestamp_ms": self.timestamp_ms, "elapsed_ms": self.elapsed_ms}


class Timeline:
    """Record monotonic elapsed-time marks for named request stages."""

    __slots__ = ("_clock", "_wall_clock", "_start_ns", "_started_at_ms", "_marks")

    def __init__(
        self,
        *,
        clock: Callable[[], int] = time.monotonic_ns,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self._wall_clock = wall_clock
        self._start_ns: int = clock()
        self._started_at_ms: int = int(wall_clock() * 1000)
        self._marks: list[StageMark] = []

    @property
    def started_at_ms(self) -> int:
        return self._started_at_ms

    def _elapsed_ms(self) -> float:
        return round((self._clock() - self._start_ns) / 1e6, 1)

    def mark(self, stage: str) -> StageMark:
        """Record *stage* now. Repeated names each get a fresh reading."""
        record = StageMark(
            stage=stage,
            timestamp_ms=int(self._wall_clock() * 1000),
            elapsed_ms=self._elapsed_ms(),
        )
        self._marks.append(record)
        return record

    def get_elapsed(self) -> float:
        """Milliseconds since creation, at call time."""
        return self._elapsed_ms()

    @property
    def marks(self) -> tuple[StageMark, ...]:
        return tuple(self._marks)

    def last_mark(self, stage: str) -> StageMark | None:
        """Most recent mark recorded for *stage*, if any."""
        for record in reversed(self._marks):
            if record.stage == stage:
                return record
        return None

    def report(self) -> dict:
        """Structured timeline for a failure record."""
        return {
            "started_at_ms": self._started_at_ms,
            "total_elapsed_ms": self._elapsed_ms(),
            "stages": [{"stage": m.stage, "elapsed_ms": m.elapsed_ms} for m in self._marks],
        }
