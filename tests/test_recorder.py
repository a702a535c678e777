# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for SignalRecorder: direct feeds and Playwright event wiring."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from crawldiag import ConsoleError, FailureType, NetworkError, PageError, SignalBundle
from crawldiag.classifier import classify
from crawldiag.recorder import SignalRecorder, summarize_stack

URL = "https://www.example.com/hotels"


class TestSummarizeStack:
    def test_first_three_lines(self):
        assert summarize_stack("a\nb\nc\nd\ne") == "a\nb\nc"

    def test_empty(self):
        assert summarize_stack(None) == ""
        assert summarize_stack("") == ""


class TestDirectFeeds:
    def test_empty_bundle(self):
        bundle = SignalRecorder(URL, "req-1").bundle()
        assert isinstance(bundle, SignalBundle)
        assert bundle.request_url == URL
        assert bundle.request_id == "req-1"
        assert bundle.status_code is None
        assert bundle.console_errors == ()
        assert bundle.navigation_timed_out is False

    def test_response_latest_wins(self):
        rec = SignalRecorder(URL)
        rec.on_response(301, "", "text/html")
        rec.on_response(200, "<html>ok</html>")
        bundle = rec.bundle()
        assert bundle.status_code == 200
        assert bundle.response_body == "<html>ok</html>"
        assert bundle.content_type == "text/html"

    def test_body_capped(self):
        rec = SignalRecorder(URL)
        rec.on_response(200, "x" * 60_000)
        assert len(rec.bundle().response_body) == 50_000

    def test_body_cap_configurable(self):
        rec = SignalRecorder(URL, max_body_chars=10)
        rec.on_response(200, "<html>" + "y" * 100)
        assert rec.bundle().response_body == "<html>yyyy"

    def test_body_cap_must_be_positive(self):
        with pytest.raises(ValueError, match="max_body_chars"):
            SignalRecorder(URL, max_body_chars=0)

    def test_only_console_errors_recorded(self):
        rec = SignalRecorder(URL)
        rec.on_console("log", "hello")
        rec.on_console("warning", "careful")
        rec.on_console("error", "boom", "https://example.com/app.js")
        rec.on_console("error", "no source")
        assert rec.bundle().console_errors == (
            ConsoleError(message="boom", source_url="https://example.com/app.js"),
            ConsoleError(message="no source", source_url="unknown"),
        )

    def test_page_error_stack_summarized(self, caplog):
        rec = SignalRecorder(URL)
        with caplog.at_level(logging.WARNING, logger="crawldiag.recorder"):
            rec.on_page_error("TypeError: x is undefined", "l1\nl2\nl3\nl4")
        assert rec.bundle().page_errors == (PageError(message="TypeError: x is undefined", stack_summary="l1\nl2\nl3"),)
        assert "Page error" in caplog.text

    def test_request_failed(self):
        rec = SignalRecorder(URL)
        rec.on_request_failed("https://example.com/api", None, "POST")
        assert rec.bundle().network_errors == (
            NetworkError(url="https://example.com/api", failure_reason="unknown", method="POST"),
        )

    def test_third_party_abort_logged_at_info(self, caplog):
        rec = SignalRecorder(URL)
        with caplog.at_level(logging.INFO, logger="crawldiag.recorder"):
            rec.on_request_failed("https://www.google-analytics.com/collect", "net::ERR_ABORTED")
            rec.on_request_failed("https://example.com/api", "net::ERR_CONNECTION_RESET")
        levels = {r.getMessage().split(":")[0]: r.levelno for r in caplog.records}
        assert levels["Third-party request aborted (expected)"] == logging.INFO
        assert levels["Request failed"] == logging.WARNING

    def test_mark_timeout_and_error_message(self):
        rec = SignalRecorder(URL)
        rec.mark_timeout()
        bundle = rec.bundle("Navigation timeout of 30000 ms exceeded")
        assert bundle.navigation_timed_out is True
        assert bundle.error_message == "Navigation timeout of 30000 ms exceeded"

    def test_counts(self):
        rec = SignalRecorder(URL)
        rec.on_console("error", "a")
        rec.on_request_failed("https://example.com/x", "net::ERR_FAILED")
        rec.on_request_failed("https://example.com/y", "net::ERR_FAILED")
        assert rec.counts() == {"console_errors": 1, "network_errors": 2, "page_errors": 0}


class TestPlaywrightWiring:
    def _handlers(self, page: MagicMock) -> dict:
        return {c.args[0]: c.args[1] for c in page.on.call_args_list}

    def test_attach_and_detach(self):
        page = MagicMock()
        rec = SignalRecorder(URL)
        rec.attach(page)
        handlers = self._handlers(page)
        assert set(handlers) == {"console", "pageerror", "requestfailed"}
        rec.detach(page)
        removed = {c.args[0] for c in page.remove_listener.call_args_list}
        assert removed == {"console", "pageerror", "requestfailed"}

    def test_events_feed_recorder(self):
        page = MagicMock()
        rec = SignalRecorder(URL)
        rec.attach(page)
        handlers = self._handlers(page)

        msg = MagicMock()
        msg.type = "error"
        msg.text = "Uncaught ReferenceError"
        msg.location = {"url": "https://example.com/main.js", "lineNumber": 1}
        handlers["console"](msg)

        err = MagicMock()
        err.message = "boom"
        err.stack = "Error: boom\n    at f\n    at g\n    at h"
        handlers["pageerror"](err)

        request = MagicMock()
        request.url = "https://example.com/api/rooms"
        request.failure = "net::ERR_CONNECTION_REFUSED"
        request.method = "GET"
        handlers["requestfailed"](request)

        bundle = rec.bundle()
        assert bundle.console_errors[0].source_url == "https://example.com/main.js"
        assert bundle.page_errors[0].stack_summary == "Error: boom\n    at f\n    at g"
        assert bundle.network_errors[0].failure_reason == "net::ERR_CONNECTION_REFUSED"

    def test_plain_exception_page_error(self):
        page = MagicMock()
        rec = SignalRecorder(URL)
        rec.attach(page)
        self._handlers(page)["pageerror"](ValueError("plain"))
        assert rec.bundle().page_errors[0].message == "plain"

    @pytest.mark.asyncio
    async def test_record_response(self):
        response = MagicMock()
        response.status = 403
        response.headers = {"content-type": "text/html; charset=utf-8"}
        response.text = AsyncMock(return_value="<html>Access denied</html>")
        rec = SignalRecorder(URL)
        await rec.record_response(response)
        bundle = rec.bundle()
        assert bundle.status_code == 403
        assert bundle.response_body == "<html>Access denied</html>"
        assert bundle.content_type == "text/html; charset=utf-8"

    @pytest.mark.asyncio
    async def test_record_response_body_failure(self):
        response = MagicMock()
        response.status = 200
        response.headers = {}
        response.url = URL
        response.text = AsyncMock(side_effect=RuntimeError("body unavailable"))
        rec = SignalRecorder(URL)
        await rec.record_response(response)
        assert rec.bundle().status_code == 200
        assert rec.bundle().response_body is None

    @pytest.mark.asyncio
    async def test_record_none_response(self):
        rec = SignalRecorder(URL)
        await rec.record_response(None)
        assert rec.bundle().status_code is None


class TestRecorderToClassifier:
    def test_blocked(self):
        rec = SignalRecorder(URL, "req-1")
        rec.on_response(403, "<html>Forbidden</html>")
        assert classify(rec.bundle()).type == FailureType.BLOCKED

    def test_noise_only_timeout_is_slow_load(self):
        rec = SignalRecorder(URL, "req-2")
        rec.on_request_failed("https://www.googletagmanager.com/gtm.js", "net::ERR_ABORTED")
        rec.on_request_failed("https://example.com/hero.jpg", "net::ERR_FAILED")
        rec.mark_timeout()
        assert classify(rec.bundle("Timeout 30000ms exceeded")).type == FailureType.SLOW_LOAD
