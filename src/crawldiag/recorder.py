# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-page-load signal accumulation from browser events.

A ``SignalRecorder`` lives for one page load. Feed it either directly
(``on_*`` methods) or by attaching it to a Playwright page, then call
``bundle()`` at failure time to get an immutable SignalBundle.

Network failures are recorded unfiltered; the classifier drops the
non-critical ones. The response body is capped at ``max_body_chars``
(50000 by default), which is all the indicator matching needs. Expected
third-party aborts log at INFO so they do not drown genuine failures.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import ConsoleError, NetworkError, PageError, SignalBundle
from .resources import is_third_party_abort

if TYPE_CHECKING:
    from playwright.async_api import ConsoleMessage, Page, Request, Response

logger = logging.getLogger(__name__)

_STACK_LINES = 3
DEFAULT_MAX_BODY_CHARS = 50_000  # enough for indicator matching


def summarize_stack(stack: str | None, lines: int = _STACK_LINES) -> str:
    """First *lines* lines of a stack trace."""
    if not stack:
        return ""
    return "\n".join(stack.splitlines()[:lines])


class SignalRecorder:
    """Collects status, body, console/page/network errors for one request."""

    def __init__(
        self,
        request_url: str,
        request_id: str | None = None,
        *,
        max_body_chars: int = DEFAULT_MAX_BODY_CHARS,
    ) -> None:
        if max_body_chars <= 0:
            raise ValueError(f"max_body_chars must be > 0, got {max_body_chars}")
        self.request_url = request_url
        self.request_id = request_id
        self.max_body_chars = max_body_chars
        self.status_code: int | None = None
        self.response_body: str | None = None
        self.content_type: str = ""
        self.navigation_timed_out = False
        self._console: list[ConsoleError] = []
        self._network: list[NetworkError] = []
        self._page: list[PageError] = []

    # -- Direct feeds --

    def on_response(self, status: int | None, body: str | None = None, content_type: str = "") -> None:
        """Record the main document response (latest wins, e.g. after redirects)."""
        self.status_code = status
        if body is not None:
            self.response_body = body[: self.max_body_chars]
        if content_type:
            self.content_type = content_type

    def on_console(self, msg_type: str, text: str, source_url: str = "") -> None:
        if msg_type != "error":
            return
        self._console.append(ConsoleError(message=text, source_url=source_url or "unknown"))
        logger.debug("Console error: %s", text)

    def on_page_error(self, message: str, stack: str | None = None) -> None:
        self._page.append(PageError(message=message, stack_summary=summarize_stack(stack)))
        logger.warning("Page error: %s", message)

    def on_request_failed(self, url: str, failure: str | None, method: str = "GET") -> None:
        error = NetworkError(url=url, failure_reason=failure or "unknown", method=method)
        self._network.append(error)
        if is_third_party_abort(error):
            logger.info("Third-party request aborted (expected): %s", url)
        else:
            logger.warning("Request failed: %s - %s", url, error.failure_reason)

    def mark_timeout(self) -> None:
        self.navigation_timed_out = True

    # -- Playwright wiring --

    def attach(self, page: Page) -> None:
        """Subscribe to a Playwright page's console/pageerror/requestfailed events."""
        page.on("console", self._handle_console)
        page.on("pageerror", self._handle_page_error)
        page.on("requestfailed", self._handle_request_failed)

    def detach(self, page: Page) -> None:
        page.remove_listener("console", self._handle_console)
        page.remove_listener("pageerror", self._handle_page_error)
        page.remove_listener("requestfailed", self._handle_request_failed)

    async def record_response(self, response: Response | None) -> None:
        """Record status, content type and body text of the main response.

        Body capture is best-effort; a failed read leaves the body absent.
        """
        if response is None:
            return
        headers = response.headers or {}
        body: str | None = None
        try:
            body = await response.text()
        except Exception:
            logger.debug("Response body capture failed for %s", response.url, exc_info=True)
        self.on_response(response.status, body, headers.get("content-type", ""))

    def _handle_console(self, msg: ConsoleMessage) -> None:
        location = msg.location or {}
        self.on_console(msg.type, msg.text, location.get("url", ""))

    def _handle_page_error(self, error: Exception) -> None:
        self.on_page_error(getattr(error, "message", str(error)), getattr(error, "stack", None))

    def _handle_request_failed(self, request: Request) -> None:
        self.on_request_failed(request.url, request.failure, request.method)

    # -- Output --

    def bundle(self, error_message: str | None = None) -> SignalBundle:
        """Snapshot everything recorded so far."""
        return SignalBundle(
            status_code=self.status_code,
            response_body=self.response_body,
            console_errors=tuple(self._console),
            network_errors=tuple(self._network),
            page_errors=tuple(self._page),
            navigation_timed_out=self.navigation_timed_out,
            error_message=error_message,
            request_url=self.request_url,
            content_type=self.content_type,
            request_id=self.request_id,
        )

    def counts(self) -> dict[str, int]:
        return {
            "console_errors": len(self._console),
            "network_errors": len(self._network),
            "page_errors": len(self._page),
        }
