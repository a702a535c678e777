# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for early challenge detection.

Pure matcher tests plus async detector tests against AsyncMock pages.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from crawldiag import Confidence
from crawldiag.challenge import (
    DETECTION_FAILED,
    NO_CHALLENGE,
    ChallengeDetection,
    EarlyChallengeDetector,
    detect_early_challenge,
    html_has_challenge,
    title_has_challenge,
    url_has_challenge,
)
from crawldiag.errors import ChallengeProbeError

_NORMAL_HTML = "<html><head><title>Hotels</title></head><body><div id='results'>Hotel list</div></body></html>"


def _page(
    *,
    title: str = "Our Hotels",
    content: str = _NORMAL_HTML,
    url: str = "https://www.example.com/hotels",
) -> MagicMock:
    page = MagicMock()
    page.title = AsyncMock(return_value=title)
    page.content = AsyncMock(return_value=content)
    page.url = url
    return page


def _raise_no_url(_page):
    raise RuntimeError("no url")


# =========================================================================
# Pure matchers
# =========================================================================


class TestMatchers:
    @pytest.mark.parametrize(
        "title",
        ["Just a moment...", "Checking your browser", "Security Check", "Attention Required! | Cloudflare"],
    )
    def test_challenge_titles(self, title):
        assert title_has_challenge(title) is True

    def test_normal_title(self):
        assert title_has_challenge("Marriott Hotels & Resorts") is False
        assert title_has_challenge("") is False

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com/cdn-cgi/challenge-platform/h/b",
            "https://example.com/captcha?return=/",
            "https://example.com/security/verify",
        ],
    )
    def test_challenge_urls(self, url):
        assert url_has_challenge(url) is True

    def test_normal_url(self):
        assert url_has_challenge("https://example.com/hotels") is False

    def test_body_phrase(self):
        assert html_has_challenge("<p>Please verify you are human</p>") is True

    def test_element_class(self):
        assert html_has_challenge('<div class="g-recaptcha" data-sitekey="x"></div>') is True

    def test_element_id(self):
        assert html_has_challenge('<form id="challenge-form"></form>') is True

    def test_normal_html(self):
        assert html_has_challenge(_NORMAL_HTML) is False

    def test_empty_html(self):
        assert html_has_challenge("") is False
        assert html_has_challenge("   ") is False

    def test_unparseable_html_raises_probe_error(self):
        with pytest.raises(ChallengeProbeError):
            html_has_challenge('<?xml version="1.0" encoding="utf-8"?><html><body>x</body></html>')


# =========================================================================
# Detector
# =========================================================================


class TestDetector:
    @pytest.mark.asyncio
    async def test_no_challenge(self):
        result = await detect_early_challenge(_page())
        assert result == ChallengeDetection(has_challenge=False, confidence=Confidence.LOW, type=NO_CHALLENGE)

    @pytest.mark.asyncio
    async def test_title_probe(self):
        result = await detect_early_challenge(_page(title="Just a moment..."))
        assert result.has_challenge is True
        assert result.confidence == Confidence.HIGH
        assert result.type == "title"

    @pytest.mark.asyncio
    async def test_content_probe(self):
        html = '<html><body><div id="cf-challenge-running"></div></body></html>'
        result = await detect_early_challenge(_page(content=html))
        assert result.has_challenge is True
        assert result.type == "content"

    @pytest.mark.asyncio
    async def test_url_probe(self):
        result = await detect_early_challenge(_page(url="https://example.com/captcha/verify"))
        assert result.has_challenge is True
        assert result.type == "url"

    @pytest.mark.asyncio
    async def test_failed_probe_does_not_abort_siblings(self):
        page = _page(url="https://example.com/challenge")
        page.title = AsyncMock(side_effect=PlaywrightError("Target closed"))
        page.content = AsyncMock(side_effect=RuntimeError("boom"))
        result = await detect_early_challenge(page)
        assert result.has_challenge is True
        assert result.type == "url"

    @pytest.mark.asyncio
    async def test_partial_failure_without_signal(self):
        page = _page()
        page.title = AsyncMock(side_effect=PlaywrightError("Execution context was destroyed"))
        result = await detect_early_challenge(page)
        assert result.has_challenge is False
        assert result.type == NO_CHALLENGE

    @pytest.mark.asyncio
    async def test_all_probes_failed(self):
        page = MagicMock()
        page.title = AsyncMock(side_effect=PlaywrightError("closed"))
        page.content = AsyncMock(side_effect=PlaywrightError("closed"))
        type(page).url = property(_raise_no_url)
        result = await detect_early_challenge(page)
        assert result == ChallengeDetection(has_challenge=False, confidence=Confidence.LOW, type=DETECTION_FAILED)

    @pytest.mark.asyncio
    async def test_probe_timeout_counts_as_failed(self):
        async def _slow_title():
            await asyncio.sleep(1)
            return "Just a moment..."

        page = _page()
        page.title = _slow_title
        result = await EarlyChallengeDetector(probe_timeout_s=0.01).detect(page)
        assert result.has_challenge is False
        assert result.type == NO_CHALLENGE

    @pytest.mark.asyncio
    async def test_probes_run_concurrently(self):
        started: list[str] = []
        gate = asyncio.Event()

        async def _title():
            started.append("title")
            await gate.wait()
            return "ok"

        async def _content():
            started.append("content")
            gate.set()
            return _NORMAL_HTML

        page = _page()
        page.title = _title
        page.content = _content
        result = await asyncio.wait_for(detect_early_challenge(page), timeout=1)
        assert set(started) == {"title", "content"}
        assert result.has_challenge is False

    def test_invalid_timeout(self):
        with pytest.raises(ValueError, match="probe_timeout_s"):
            EarlyChallengeDetector(probe_timeout_s=0)

    def test_to_dict(self):
        d = ChallengeDetection(has_challenge=True, confidence=Confidence.HIGH, type="title").to_dict()
        assert d == {"has_challenge": True, "confidence": "high", "type": "title"}
