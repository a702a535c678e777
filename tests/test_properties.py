# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Property tests: priority invariant, totality, backoff bounds."""

from __future__ import annotations

import random

import pytest

pytest.importorskip("hypothesis")

from hypothesis import given, settings  # noqa: E402
from hypothesis import strategies as st  # noqa: E402

from crawldiag import Confidence, FailureType, NetworkError, SignalBundle  # noqa: E402
from crawldiag.backoff import compute_backoff  # noqa: E402
from crawldiag.classifier import CHALLENGE_INDICATORS, classify  # noqa: E402

_ALL_INDICATORS = [i for group in CHALLENGE_INDICATORS.values() for i in group]

_status = st.one_of(st.none(), st.integers(min_value=100, max_value=599))
_network = st.lists(
    st.builds(NetworkError, url=st.text(max_size=40), failure_reason=st.text(max_size=20)),
    max_size=4,
)


@given(
    indicator=st.sampled_from(_ALL_INDICATORS),
    prefix=st.text(max_size=30),
    suffix=st.text(max_size=30),
    status=_status,
    timed_out=st.booleans(),
    network=_network,
)
@settings(max_examples=200)
def test_challenge_text_always_wins(indicator, prefix, suffix, status, timed_out, network):
    bundle = SignalBundle(
        status_code=status,
        response_body=prefix + indicator.swapcase() + suffix,
        navigation_timed_out=timed_out,
        network_errors=tuple(network),
    )
    result = classify(bundle)
    assert result.type == FailureType.CHALLENGE_PAGE
    assert result.confidence == Confidence.HIGH


@given(
    status=_status,
    body=st.one_of(st.none(), st.text(max_size=80), st.binary(max_size=40)),
    timed_out=st.booleans(),
    message=st.one_of(st.none(), st.text(max_size=40)),
    network=_network,
)
@settings(max_examples=200)
def test_classify_is_total(status, body, timed_out, message, network):
    result = classify(
        SignalBundle(
            status_code=status,
            response_body=body,
            navigation_timed_out=timed_out,
            error_message=message,
            network_errors=tuple(network),
        )
    )
    assert result.type in FailureType
    assert result.confidence in Confidence


@given(seed=st.integers())
def test_backoff_within_bounds(seed):
    hint = compute_backoff(random.Random(seed))
    assert hint.base_delay_ms * 0.85 <= hint.suggested_delay_ms <= hint.max_delay_ms
    assert 0.85 <= hint.jitter_factor <= 1.15
