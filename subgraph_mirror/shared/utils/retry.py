"""
Driver de reintentos con backoff geométrico.

La operación reintentada no lanza excepciones para señalar fallos: retorna
un BatchWriteResult explícito (ok / error). El driver es un loop simple
sobre la cantidad de intentos y el delay.

Estrategia:
- 1 intento inicial + hasta `max_retries` reintentos.
- delay del reintento n = initial_delay_s * 2**(n-1).
- Entre intentos se espera sobre un threading.Event de cancelación: si se
  activa, el driver corta sin consumir más reintentos.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger


@dataclass(frozen=True)
class BatchWriteResult:
    """Resultado de escribir un batch en el sink."""

    ok: bool
    rows: int = 0
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, rows: int) -> "BatchWriteResult":
        return cls(ok=True, rows=rows)

    @classmethod
    def failure(cls, error: BaseException) -> "BatchWriteResult":
        return cls(ok=False, error=error)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay_s: float = 1.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries no puede ser negativo")
        if self.initial_delay_s < 0:
            raise ValueError("initial_delay_s no puede ser negativo")

    def delay_for(self, retry_number: int) -> float:
        """Delay antes del reintento `retry_number` (1-based)."""
        return self.initial_delay_s * (2 ** (retry_number - 1))


@dataclass(frozen=True)
class RetryOutcome:
    """
    Resultado final del driver.

    - result: último BatchWriteResult observado (None si se canceló antes del primer intento)
    - attempts: cantidad de veces que se invocó la operación
    - cancelled: True si se cortó por la señal de cancelación
    """

    result: Optional[BatchWriteResult]
    attempts: int
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return bool(self.result and self.result.ok)

    @property
    def retries(self) -> int:
        return max(self.attempts - 1, 0)


def run_with_retry(
    operation: Callable[[], BatchWriteResult],
    policy: RetryPolicy,
    *,
    cancel_event: Optional[threading.Event] = None,
    label: str = "operación",
    sleep: Callable[[float], None] = time.sleep,
) -> RetryOutcome:
    """
    Ejecuta `operation` hasta que retorne ok o se agoten los reintentos.

    Solo duerme el thread que llama; el resto del pipeline sigue corriendo.
    """
    attempts = 0
    result: Optional[BatchWriteResult] = None

    while True:
        if cancel_event is not None and cancel_event.is_set():
            logger.warning(f"{label}: cancelado antes del intento {attempts + 1}")
            return RetryOutcome(result=result, attempts=attempts, cancelled=True)

        result = operation()
        attempts += 1

        if result.ok:
            if attempts > 1:
                logger.info(f"{label}: completado en el intento {attempts}")
            return RetryOutcome(result=result, attempts=attempts)

        if attempts > policy.max_retries:
            return RetryOutcome(result=result, attempts=attempts)

        delay = policy.delay_for(attempts)
        logger.warning(
            f"{label}: intento {attempts} falló ({result.error}). "
            f"Reintentando en {delay:.2f}s ({attempts}/{policy.max_retries})"
        )

        if cancel_event is not None:
            # wait() retorna True si el evento se activó durante la espera
            if cancel_event.wait(delay):
                logger.warning(f"{label}: cancelado durante el backoff")
                return RetryOutcome(result=result, attempts=attempts, cancelled=True)
        else:
            sleep(delay)
