"""
Tests for the rate-limit governor and the retry decorator.
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from connectors.exceptions import APIException, RateLimitCritical
from connectors.utils import RateLimitGovernor, RateLimitState, retry_with_backoff

NOW = datetime(2025, 11, 1, 12, tzinfo=timezone.utc)


def _governor(*quotas):
    return RateLimitGovernor(Mock(side_effect=list(quotas)), clock=lambda: NOW)


class TestRateLimitGovernor:
    def test_first_check_below_high_water_is_critical(self):
        with pytest.raises(RateLimitCritical) as exc_info:
            _governor(3999).check()
        assert exc_info.value.remaining == 3999
        assert exc_info.value.required == 4000

    def test_first_check_at_high_water_passes(self):
        state = _governor(4000).check()
        assert state == RateLimitState(remaining=4000, checked_at=NOW, exhausted=False)

    def test_later_checks_are_not_critical(self):
        governor = _governor(5000, 3500)
        first = governor.check()
        second = governor.check(first)
        assert second.remaining == 3500
        assert not second.exhausted

    @pytest.mark.parametrize("remaining, exhausted", [(3001, False), (3000, True), (10, True)])
    def test_low_water_mark(self, remaining, exhausted):
        governor = _governor(5000, remaining)
        state = governor.check(governor.check())
        assert state.exhausted is exhausted

    def test_state_is_immutable(self):
        state = _governor(5000).check()
        with pytest.raises(AttributeError):
            state.remaining = 1

    def test_failed_query_keeps_previous_state(self):
        quota = Mock(side_effect=[5000, RuntimeError("network down")])
        governor = RateLimitGovernor(quota, clock=lambda: NOW)
        first = governor.check()
        assert governor.check(first) is first

    def test_failed_first_query_is_not_exhausted(self):
        governor = RateLimitGovernor(Mock(side_effect=RuntimeError("down")), clock=lambda: NOW)
        state = governor.check()
        assert state.remaining is None
        assert not state.exhausted

    def test_invalid_marks(self):
        with pytest.raises(ValueError):
            RateLimitGovernor(Mock(), high_water=100, low_water=200)


class TestRetryWithBackoff:
    def test_retries_then_succeeds(self):
        sleeps = []
        calls = Mock(side_effect=[APIException("boom"), APIException("boom"), "ok"])

        @retry_with_backoff(max_retries=3, initial_delay=1.0, exceptions=(APIException,), sleep=sleeps.append)
        def flaky():
            return calls()

        assert flaky() == "ok"
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_retries(self):
        sleeps = []

        @retry_with_backoff(max_retries=2, exceptions=(APIException,), sleep=sleeps.append)
        def always_fails():
            raise APIException("boom")

        with pytest.raises(APIException):
            always_fails()
        assert len(sleeps) == 2

    def test_other_exceptions_propagate_immediately(self):
        sleeps = []

        @retry_with_backoff(exceptions=(APIException,), sleep=sleeps.append)
        def broken():
            raise KeyError("nope")

        with pytest.raises(KeyError):
            broken()
        assert sleeps == []
