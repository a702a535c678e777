# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Early anti-bot challenge detection right after navigation.

Runs before the full asset load so a crawl can fail fast on a challenge
interstitial instead of waiting for selectors that will never appear.
Independent of the post-hoc classifier.

Three probes run concurrently against the live page:
  title    page title contains a challenge phrase
  content  page HTML contains a challenge phrase or a challenge/captcha element
  url      current URL points at a challenge/captcha/security endpoint

A probe that faults counts as "no signal", never as "no challenge" proof,
and never aborts its siblings. If every probe faults the result is
``detection_failed`` with ``has_challenge=False``: a possibly-valid page is
not blocked on missing evidence.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

import lxml.html
from lxml import etree

from . import Confidence
from .errors import ChallengeProbeError

logger = logging.getLogger(__name__)

TITLE_PHRASES: tuple[str, ...] = (
    "checking your browser",
    "security check",
    "cloudflare",
    "just a moment",
    "attention required",
)

BODY_PHRASES: tuple[str, ...] = (
    "checking your browser",
    "security check",
    "verify you are human",
    "cf-browser-verification",
    "challenge-platform",
)

URL_MARKERS: tuple[str, ...] = ("challenge", "captcha", "security")

ELEMENT_MARKERS: tuple[str, ...] = ("challenge", "captcha")

DETECTION_FAILED = "detection_failed"
NO_CHALLENGE = "none"


class PageProbe(Protocol):
    """Subset of ``playwright.async_api.Page`` the probes need."""

    @property
    def url(self) -> str: ...

    async def title(self) -> str: ...

    async def content(self) -> str: ...


@dataclass(frozen=True, slots=True)
class ChallengeDetection:
    has_challenge: bool
    confidence: Confidence
    type: str  # firing probe ("title" | "content" | "url"), "none" or "detection_failed"

    def to_dict(self) -> dict:
        return {"has_challenge": self.has_challenge, "confidence": str(self.confidence), "type": self.type}


# ---------------------------------------------------------------------------
# Pure matchers
# ---------------------------------------------------------------------------


def title_has_challenge(title: str) -> bool:
    title_lower = (title or "").lower()
    return any(p in title_lower for p in TITLE_PHRASES)


def url_has_challenge(url: str) -> bool:
    url_lower = (url or "").lower()
    return any(m in url_lower for m in URL_MARKERS)


def html_has_challenge(html: str) -> bool:
    """Phrase match on the HTML, then an id/class scan of its elements."""
    if not html or not html.strip():
        return False
    html_lower = html.lower()
    if any(p in html_lower for p in BODY_PHRASES):
        return True
    try:
        tree = lxml.html.document_fromstring(html)
    except (etree.ParserError, ValueError) as exc:
        raise ChallengeProbeError(f"unparseable page content: {exc}", probe="content") from exc
    for el in tree.xpath("//*[@id or @class]"):
        attrs = f"{el.get('id', '')} {el.get('class', '')}".lower()
        if any(m in attrs for m in ELEMENT_MARKERS):
            return True
    return False


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class EarlyChallengeDetector:
    """Concurrent best-effort challenge probes.

    Args:
        probe_timeout_s: Optional per-probe bound; a probe exceeding it
            counts as failed. The caller's outer timeout still applies.
    """

    def __init__(self, *, probe_timeout_s: float | None = None) -> None:
        if probe_timeout_s is not None and probe_timeout_s <= 0:
            raise ValueError(f"probe_timeout_s must be > 0, got {probe_timeout_s}")
        self._probe_timeout_s = probe_timeout_s

    async def detect(self, page: PageProbe) -> ChallengeDetection:
        probes: dict[str, Callable[[], Awaitable[bool]]] = {
            "title": lambda: self._probe_title(page),
            "content": lambda: self._probe_content(page),
            "url": lambda: self._probe_url(page),
        }
        outcomes = await asyncio.gather(*(self._run(name, probe) for name, probe in probes.items()))
        results = dict(zip(probes, outcomes, strict=True))

        fired = [name for name, outcome in results.items() if outcome is True]
        if fired:
            logger.info("Early challenge detected by %s probe(s)", ",".join(fired))
            return ChallengeDetection(has_challenge=True, confidence=Confidence.HIGH, type=fired[0])
        if all(outcome is None for outcome in results.values()):
            logger.warning("All early challenge probes failed")
            return ChallengeDetection(has_challenge=False, confidence=Confidence.LOW, type=DETECTION_FAILED)
        return ChallengeDetection(has_challenge=False, confidence=Confidence.LOW, type=NO_CHALLENGE)

    # -- Internal --

    async def _run(self, name: str, probe: Callable[[], Awaitable[bool]]) -> bool | None:
        """Run one probe; None means the probe itself failed."""
        try:
            if self._probe_timeout_s is None:
                return bool(await probe())
            return bool(await asyncio.wait_for(probe(), timeout=self._probe_timeout_s))
        except Exception:
            logger.debug("Challenge probe %s failed", name, exc_info=True)
            return None

    @staticmethod
    async def _probe_title(page: PageProbe) -> bool:
        return title_has_challenge(await page.title())

    @staticmethod
    async def _probe_content(page: PageProbe) -> bool:
        return html_has_challenge(await page.content())

    @staticmethod
    async def _probe_url(page: PageProbe) -> bool:
        return url_has_challenge(page.url)


async def detect_early_challenge(page: PageProbe, *, probe_timeout_s: float | None = None) -> ChallengeDetection:
    """Convenience wrapper around :class:`EarlyChallengeDetector`."""
    return await EarlyChallengeDetector(probe_timeout_s=probe_timeout_s).detect(page)
