"""
Ejecutor de trabajo bloqueante de sincronización en threads separados.

psycopg y requests son sincronos; para correr varias entidades en paralelo
desde asyncio se usa un ThreadPoolExecutor dedicado y un semaforo que
limita cuantas entidades se procesan a la vez.

Uso:
    executor = SyncExecutor(max_workers=4)
    rows = await executor.run(use_cases.sync_entity, handle, "Builder")
    executor.shutdown()
"""
from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Optional, TypeVar

from loguru import logger


T = TypeVar("T")

DEFAULT_SYNC_MAX_WORKERS = 4


class SyncExecutor:
    def __init__(self, max_workers: int = DEFAULT_SYNC_MAX_WORKERS) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers debe ser mayor que 0")
        self._max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="sync-")
        # Se crea lazy: asyncio.Semaphore debe crearse con un event loop activo
        self._semaphore: Optional[asyncio.Semaphore] = None

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._max_workers)
            logger.debug(f"Semaforo de sync creado (max_concurrent: {self._max_workers})")
        return self._semaphore

    async def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Ejecuta `func` en un thread del pool dedicado.

        Raises:
            Cualquier excepcion que la funcion original lance
        """
        if kwargs:
            func = partial(func, **kwargs)

        loop = asyncio.get_running_loop()
        async with self._get_semaphore():
            try:
                return await loop.run_in_executor(self._executor, func, *args)
            except Exception as e:
                logger.error(f"Error en operacion de sync (thread): {type(e).__name__}: {e}")
                raise

    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        """
        Cierra el pool. Con wait=False no bloquea el event loop; los threads en
        curso terminan por su cuenta.
        """
        logger.debug("Cerrando ThreadPoolExecutor de sync...")
        self._executor.shutdown(wait=wait, cancel_futures=cancel_futures)
