"""
Tests unitarios para el driver de reintentos (run_with_retry).
"""
from __future__ import annotations

import threading
from typing import List

import pytest

from subgraph_mirror.shared.utils.retry import BatchWriteResult, RetryPolicy, run_with_retry


def _failing_then_ok(failures: int):
    calls: List[int] = []

    def operation() -> BatchWriteResult:
        calls.append(1)
        if len(calls) <= failures:
            return BatchWriteResult.failure(RuntimeError(f"fallo {len(calls)}"))
        return BatchWriteResult.success(4)

    return operation, calls


class TestRetryPolicy:
    def test_delays_grow_geometrically(self) -> None:
        """Verifica delay = initial * 2**(n-1)."""
        policy = RetryPolicy(max_retries=4, initial_delay_s=0.5)

        assert [policy.delay_for(n) for n in range(1, 5)] == [0.5, 1.0, 2.0, 4.0]

    def test_negative_values_are_rejected(self) -> None:
        """Verifica la validación de parámetros."""
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)
        with pytest.raises(ValueError):
            RetryPolicy(initial_delay_s=-0.1)


class TestRunWithRetry:
    def test_success_on_first_attempt_does_not_sleep(self) -> None:
        """Verifica que un éxito inmediato no espera."""
        sleeps: List[float] = []
        operation, calls = _failing_then_ok(0)

        outcome = run_with_retry(operation, RetryPolicy(), sleep=sleeps.append)

        assert outcome.ok
        assert outcome.attempts == 1
        assert outcome.retries == 0
        assert sleeps == []

    def test_sleeps_between_attempts_with_backoff(self) -> None:
        """Verifica las esperas entre intentos fallidos."""
        sleeps: List[float] = []
        operation, calls = _failing_then_ok(3)

        outcome = run_with_retry(operation, RetryPolicy(max_retries=3, initial_delay_s=1.0), sleep=sleeps.append)

        assert outcome.ok
        assert len(calls) == 4
        assert sleeps == [1.0, 2.0, 4.0]
        assert outcome.result.rows == 4

    def test_gives_up_after_max_retries(self) -> None:
        """Verifica 1 intento inicial + max_retries reintentos."""
        sleeps: List[float] = []
        operation, calls = _failing_then_ok(100)

        outcome = run_with_retry(operation, RetryPolicy(max_retries=2, initial_delay_s=1.0), sleep=sleeps.append)

        assert not outcome.ok
        assert not outcome.cancelled
        assert len(calls) == 3
        assert sleeps == [1.0, 2.0]
        assert "fallo 3" in str(outcome.result.error)

    def test_zero_retries_means_single_attempt(self) -> None:
        """Verifica que max_retries=0 hace un solo intento."""
        operation, calls = _failing_then_ok(1)

        outcome = run_with_retry(operation, RetryPolicy(max_retries=0), sleep=lambda _: None)

        assert not outcome.ok
        assert len(calls) == 1

    def test_cancel_event_checked_before_each_attempt(self) -> None:
        """Verifica que un evento ya activado evita cualquier intento."""
        cancel = threading.Event()
        cancel.set()
        operation, calls = _failing_then_ok(0)

        outcome = run_with_retry(operation, RetryPolicy(), cancel_event=cancel)

        assert outcome.cancelled
        assert outcome.attempts == 0
        assert outcome.result is None
        assert calls == []

    def test_wait_uses_cancel_event(self) -> None:
        """Verifica que con cancel_event la espera es event.wait y no sleep."""
        cancel = threading.Event()
        sleeps: List[float] = []
        operation, calls = _failing_then_ok(1)

        outcome = run_with_retry(
            operation,
            RetryPolicy(max_retries=1, initial_delay_s=0),
            cancel_event=cancel,
            sleep=sleeps.append,
        )

        assert outcome.ok
        assert len(calls) == 2
        assert sleeps == []
