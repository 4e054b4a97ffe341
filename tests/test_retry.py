"""Tests for retry helpers."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from localvm.core.exceptions import MachineOperationError, RetriableError
from localvm.utils.retry import RetryContext, compute_delay, retry_with_backoff


class TestComputeDelay:
    def test_exponential_and_capped(self) -> None:
        assert compute_delay(1, 1.0, 30.0, jitter=False) == 1.0
        assert compute_delay(3, 1.0, 30.0, jitter=False) == 4.0
        assert compute_delay(10, 1.0, 30.0, jitter=False) == 30.0


class TestRetryWithBackoff:
    """Tests for the retry_with_backoff decorator."""

    @patch("localvm.utils.retry.time.sleep")
    def test_retries_listed_exceptions(self, mock_sleep: MagicMock) -> None:
        calls = []

        @retry_with_backoff(max_attempts=3, exceptions=(RetriableError,))
        def flaky() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise RetriableError(OSError("not yet"))
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3
        assert mock_sleep.call_count == 2

    @patch("localvm.utils.retry.time.sleep")
    def test_other_exceptions_propagate(self, mock_sleep: MagicMock) -> None:
        """Test exceptions outside the list fail on the first attempt."""

        @retry_with_backoff(max_attempts=3, exceptions=(RetriableError,))
        def fatal() -> None:
            raise MachineOperationError("localvm", "create", "boom")

        with pytest.raises(MachineOperationError):
            fatal()
        mock_sleep.assert_not_called()

    @patch("localvm.utils.retry.time.sleep")
    def test_gives_up(self, mock_sleep: MagicMock) -> None:
        on_retry = MagicMock()

        @retry_with_backoff(max_attempts=2, exceptions=(RetriableError,), on_retry=on_retry)
        def always() -> None:
            raise RetriableError(OSError("down"))

        with pytest.raises(RetriableError, match="Temporary error: down"):
            always()
        on_retry.assert_called_once()


class TestRetryContext:
    """Tests for RetryContext."""

    @patch("localvm.utils.retry.time.sleep")
    def test_raises_after_last_attempt(self, mock_sleep: MagicMock) -> None:
        with pytest.raises(TimeoutError), RetryContext(max_attempts=3, jitter=False) as retry:
            while retry.should_continue():
                retry.record_failure(TimeoutError("still running"))

        assert mock_sleep.call_count == 2
        assert retry.attempts_remaining == 0
