"""
Repositorio de escritura (UPSERT) sobre las tablas del mirror.

Cada llamada a write_batch es una transacción: o se confirma el batch
completo o no se confirma nada. Los fallos de Postgres no se propagan como
excepción; se retornan como BatchWriteResult.failure para que el driver de
reintentos decida.
"""

from __future__ import annotations

from typing import Any, Sequence

import psycopg
from loguru import logger

from subgraph_mirror.domain.entities import TableDefinition
from subgraph_mirror.infrastructure.database.connection import PostgresDatabase
from subgraph_mirror.infrastructure.database.schema_compiler import quote_ident
from subgraph_mirror.shared.utils.retry import BatchWriteResult


def build_upsert_sql(namespace: str, table: TableDefinition) -> str:
    """
    INSERT ... ON CONFLICT (pk) DO UPDATE SET col = EXCLUDED.col.

    Si todas las columnas forman parte del PK no hay nada que actualizar
    y se usa DO NOTHING.
    """
    columns = [col.name for col in table.stored_columns]
    quoted_cols = ", ".join(quote_ident(c) for c in columns)
    placeholders = ", ".join(["%s"] * len(columns))
    conflict = ", ".join(quote_ident(k) for k in table.primary_key)

    # SET para UPDATE: no actualizamos PK.
    update_cols = [c for c in columns if c not in table.primary_key]
    if update_cols:
        set_sql = ", ".join(f"{quote_ident(c)} = EXCLUDED.{quote_ident(c)}" for c in update_cols)
        action = f"DO UPDATE SET {set_sql}"
    else:
        action = "DO NOTHING"

    return (
        f"INSERT INTO {quote_ident(namespace)}.{quote_ident(table.name)} ({quoted_cols}) "
        f"VALUES ({placeholders}) "
        f"ON CONFLICT ({conflict}) {action}"
    )


class PostgresUpsertRepository:
    def __init__(self, db: PostgresDatabase) -> None:
        self._db = db

    def write_batch(
        self,
        namespace: str,
        table: TableDefinition,
        rows: Sequence[Sequence[Any]],
    ) -> BatchWriteResult:
        """
        Escribe un batch de filas ya normalizadas (tuplas en el orden de
        `table.stored_columns`).

        Las filas se envían en orden de origen: si un PK se repite dentro del
        batch, gana la última ocurrencia.
        """
        if not rows:
            return BatchWriteResult.success(0)

        sql = build_upsert_sql(namespace, table)
        try:
            with self._db.connect() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.executemany(sql, rows)
        except psycopg.Error as e:
            logger.debug(f"Batch de {len(rows)} filas en {namespace}.{table.name} falló: {e}")
            return BatchWriteResult.failure(e)

        return BatchWriteResult.success(len(rows))
