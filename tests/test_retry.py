"""Tests for retry with exponential backoff."""

from unittest.mock import Mock

import pytest

from typing_stats.sync.retry import RetryConfig, RetryExhausted, retry_with_backoff


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_exponential_delay_without_jitter(self):
        config = RetryConfig(base_delay=1.0, exponential_base=2.0, jitter=False)

        assert config.delay_for(0) == 1.0
        assert config.delay_for(1) == 2.0
        assert config.delay_for(3) == 8.0

    def test_delay_is_capped(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)

        assert config.delay_for(10) == 5.0

    def test_jitter_stays_within_a_quarter(self):
        config = RetryConfig(base_delay=4.0, jitter=True)

        for _ in range(50):
            assert 3.0 <= config.delay_for(0) <= 5.0


class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    def test_returns_first_success(self):
        func = Mock(return_value="ok")
        sleep = Mock()

        assert retry_with_backoff(func, sleep=sleep) == "ok"
        func.assert_called_once()
        sleep.assert_not_called()

    def test_retries_then_succeeds(self):
        func = Mock(side_effect=[ConnectionError("a"), ConnectionError("b"), "ok"])
        sleep = Mock()
        config = RetryConfig(max_retries=3, base_delay=1.0, jitter=False)

        result = retry_with_backoff(
            func, config, retryable_exceptions=(ConnectionError,), sleep=sleep
        )

        assert result == "ok"
        assert func.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_exhausted(self):
        error = ConnectionError("down")
        func = Mock(side_effect=error)
        config = RetryConfig(max_retries=2, jitter=False)

        with pytest.raises(RetryExhausted) as exc_info:
            retry_with_backoff(func, config, sleep=Mock())

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is error
        assert func.call_count == 3

    def test_non_retryable_propagates(self):
        func = Mock(side_effect=KeyError("boom"))

        with pytest.raises(KeyError):
            retry_with_backoff(func, retryable_exceptions=(ConnectionError,), sleep=Mock())
        func.assert_called_once()

    def test_zero_retries(self):
        func = Mock(side_effect=ConnectionError())

        with pytest.raises(RetryExhausted):
            retry_with_backoff(func, RetryConfig(max_retries=0), sleep=Mock())
        func.assert_called_once()
