"""
Motor de UPSERT: normaliza, particiona en batches y escribe con reintentos.

Flujo por llamada:
1. Resolver la entidad en el esquema compilado (SchemaError si no existe)
2. Normalizar records -> filas en orden de columnas almacenadas
3. Partir en batches de `batch_size`
4. Escribir cada batch en orden con run_with_retry

Los batches ya confirmados no se revierten si un batch posterior falla: el
UPSERT es idempotente y reintentar la generación converge al mismo estado.
"""
from __future__ import annotations

import threading
from typing import Any, Mapping, Optional, Protocol, Sequence

from loguru import logger

from subgraph_mirror.application.services.record_normalizer import RecordNormalizer
from subgraph_mirror.domain.entities import DatabaseSchema, TableDefinition
from subgraph_mirror.shared.exceptions import SchemaError, SyncCancelledError, WriteError
from subgraph_mirror.shared.utils.batching import batch_count, chunk
from subgraph_mirror.shared.utils.retry import BatchWriteResult, RetryPolicy, run_with_retry


class BatchSink(Protocol):
    def write_batch(
        self,
        namespace: str,
        table: TableDefinition,
        rows: Sequence[Sequence[Any]],
    ) -> BatchWriteResult:
        ...


class UpsertEngine:
    def __init__(
        self,
        sink: BatchSink,
        schema: DatabaseSchema,
        *,
        batch_size: int = 1000,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size debe ser mayor que 0")
        self._sink = sink
        self._schema = schema
        self._batch_size = batch_size
        self._retry_policy = retry_policy or RetryPolicy()
        self._cancel_event = cancel_event

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def upsert(
        self,
        namespace: str,
        entity_name: str,
        records: Sequence[Mapping[str, Any]],
        generation_id: Optional[int] = None,
    ) -> int:
        """
        Escribe `records` en la tabla de `entity_name` dentro de `namespace`.

        Returns:
            Cantidad de filas escritas

        Raises:
            SchemaError: la entidad no existe en el esquema o un valor no se
                puede convertir al tipo de su columna
            WriteError: un batch agotó sus reintentos
            SyncCancelledError: se activó la cancelación entre intentos
        """
        table = self._schema.get(entity_name)
        if not records:
            return 0

        try:
            rows = RecordNormalizer(table).to_rows(records)
        except ValueError as e:
            raise SchemaError(
                f'Record inválido para "{entity_name}" (generación {generation_id}): {e}',
                entity=entity_name,
                generation=generation_id,
            ) from e

        total_batches = batch_count(len(rows), self._batch_size)
        written = 0

        for batch_index, batch in enumerate(chunk(rows, self._batch_size)):
            label = f"upsert {namespace}.{entity_name} batch {batch_index + 1}/{total_batches}"
            outcome = run_with_retry(
                lambda batch=batch: self._sink.write_batch(namespace, table, batch),
                self._retry_policy,
                cancel_event=self._cancel_event,
                label=label,
            )

            if outcome.cancelled:
                raise SyncCancelledError(
                    entity=entity_name,
                    generation=generation_id,
                    attempts=outcome.attempts,
                )

            if not outcome.ok:
                last_error = outcome.result.error if outcome.result else None
                logger.error(f"{label}: sin reintentos disponibles ({last_error})")
                raise WriteError(
                    entity=entity_name,
                    batch_index=batch_index,
                    retries=self._retry_policy.max_retries,
                    last_error=last_error,
                    generation=generation_id,
                )

            written += outcome.result.rows if outcome.result else 0

        logger.info(f"Upsert {namespace}.{entity_name}: {written} filas en {total_batches} batches")
        return written
