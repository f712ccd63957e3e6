"""
Gestión de namespaces (schemas Postgres) para el mirror del subgraph.

- provision: crea el schema de la generación en construcción
- apply: ejecuta el DDL compilado dentro de ese schema
- activate: promueve el schema nuevo al nombre "actual" y retira el anterior

Protocolo de activación:
1. (transacción, serializada con pg_try_advisory_xact_lock)
   - DROP del schema retirado que haya quedado de una activación previa
   - RENAME actual -> old_<actual>   (si el actual existe)
   - RENAME nuevo  -> actual
   - UPSERT del puntero (tabla de control subgraph_generation)
2. (transacción aparte) DROP old_<actual> CASCADE

El límite de atomicidad es el paso 1: los dos renames y el puntero se
confirman juntos o no se confirma nada. Un fallo en el paso 2 deja el
nombre actual apuntando al schema nuevo; el schema retirado se limpia en la
próxima activación.
"""

from __future__ import annotations

from typing import Optional, Sequence

import psycopg
from loguru import logger

from subgraph_mirror.domain.entities import (
    ActivationResult,
    ActiveGeneration,
    retired_namespace_name,
)
from subgraph_mirror.infrastructure.database.connection import PostgresDatabase
from subgraph_mirror.infrastructure.database.schema_compiler import quote_ident
from subgraph_mirror.shared.exceptions import ActivationError


CONTROL_TABLE = "subgraph_generation"
DEFAULT_ACTIVATION_LOCK_KEY = 740_311


class SchemaManager:
    def __init__(
        self,
        db: PostgresDatabase,
        *,
        control_schema: str = "public",
        lock_key: int = DEFAULT_ACTIVATION_LOCK_KEY,
    ) -> None:
        self._db = db
        self._control_schema = control_schema
        self._lock_key = lock_key

    @property
    def _control_table(self) -> str:
        return f"{quote_ident(self._control_schema)}.{quote_ident(CONTROL_TABLE)}"

    def provision(self, namespace: str) -> None:
        """Crea el schema si no existe (idempotente)."""
        with self._db.connect() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(f"CREATE SCHEMA IF NOT EXISTS {quote_ident(namespace)}")
        logger.info(f"Namespace provisionado: {namespace}")

    def apply(self, namespace: str, statements: Sequence[str]) -> None:
        """
        Ejecuta el DDL dentro del namespace en una sola transacción.
        """
        with self._db.connect() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(f"SET LOCAL search_path TO {quote_ident(namespace)}")
                    for statement in statements:
                        cur.execute(statement)
        logger.info(f"DDL aplicado en {namespace}: {len(statements)} sentencias")

    def discard(self, namespace: str) -> None:
        """Elimina un namespace en construcción que no se va a promover."""
        with self._db.connect() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(f"DROP SCHEMA IF EXISTS {quote_ident(namespace)} CASCADE")
        logger.info(f"Namespace descartado: {namespace}")

    def _ensure_control_table(self, cur: psycopg.Cursor) -> None:
        cur.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self._control_table} (
                target_schema   TEXT        NOT NULL PRIMARY KEY,
                generation_id   BIGINT      NOT NULL,
                source_block    BIGINT      NULL,
                promoted_at     TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """
        )

    def _schema_exists(self, cur: psycopg.Cursor, namespace: str) -> bool:
        cur.execute(
            "SELECT EXISTS (SELECT 1 FROM pg_namespace WHERE nspname = %s) AS present",
            (namespace,),
        )
        row = cur.fetchone()
        return bool(row and row.get("present"))

    def _try_activation_lock(self, cur: psycopg.Cursor) -> bool:
        """
        Evita dos activaciones simultáneas sobre el mismo puntero.
        El lock se libera solo al terminar la transacción.
        """
        cur.execute("SELECT pg_try_advisory_xact_lock(%s) AS locked", (self._lock_key,))
        row = cur.fetchone()
        return bool(row and row.get("locked"))

    def activate(
        self,
        new_namespace: str,
        current_namespace: str,
        *,
        generation_id: int,
        source_block: Optional[int] = None,
    ) -> ActivationResult:
        """
        Promueve `new_namespace` al nombre `current_namespace`.

        Raises:
            ActivationError: si la transacción de renames falla o el lock está tomado.
                En ese caso no se confirmó nada y el namespace activo no cambió.
        """
        retired = retired_namespace_name(current_namespace)

        try:
            with self._db.connect() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        if not self._try_activation_lock(cur):
                            raise ActivationError(
                                "Otra activación está en curso (advisory lock ocupado)",
                                namespace=new_namespace,
                                generation=generation_id,
                            )
                        if not self._schema_exists(cur, new_namespace):
                            raise ActivationError(
                                f"El namespace {new_namespace} no existe",
                                namespace=new_namespace,
                                generation=generation_id,
                            )

                        self._ensure_control_table(cur)
                        cur.execute(f"DROP SCHEMA IF EXISTS {quote_ident(retired)} CASCADE")

                        if self._schema_exists(cur, current_namespace):
                            cur.execute(
                                f"ALTER SCHEMA {quote_ident(current_namespace)} RENAME TO {quote_ident(retired)}"
                            )
                        else:
                            logger.info(f"Primera activación de {current_namespace}: no hay namespace previo")

                        cur.execute(
                            f"ALTER SCHEMA {quote_ident(new_namespace)} RENAME TO {quote_ident(current_namespace)}"
                        )
                        cur.execute(
                            f"""
                            INSERT INTO {self._control_table} (target_schema, generation_id, source_block, promoted_at)
                            VALUES (%s, %s, %s, now())
                            ON CONFLICT (target_schema) DO UPDATE SET
                                generation_id = EXCLUDED.generation_id,
                                source_block = EXCLUDED.source_block,
                                promoted_at = EXCLUDED.promoted_at
                            """,
                            (current_namespace, generation_id, source_block),
                        )
        except psycopg.Error as e:
            logger.error(f"Activación de {new_namespace} revertida: {e}")
            raise ActivationError(
                f"Falló la activación de {new_namespace} -> {current_namespace}: {e}",
                namespace=new_namespace,
                generation=generation_id,
            ) from e

        logger.success(
            f"Namespace {new_namespace} promovido a {current_namespace} (generación {generation_id})"
        )

        try:
            with self._db.connect() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(f"DROP SCHEMA IF EXISTS {quote_ident(retired)} CASCADE")
        except psycopg.Error as e:
            logger.error(
                f"No se pudo eliminar el namespace retirado {retired}: {e}. "
                f"Se reintentará en la próxima activación."
            )
            return ActivationResult(
                target=current_namespace,
                generation_id=generation_id,
                retired_dropped=False,
                cleanup_error=str(e),
            )

        return ActivationResult(target=current_namespace, generation_id=generation_id, retired_dropped=True)

    def active_generation(self, target: str) -> Optional[ActiveGeneration]:
        """Lee el puntero del namespace activo (None si nunca se promovió)."""
        with self._db.connect() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    self._ensure_control_table(cur)
                    cur.execute(
                        f"""
                        SELECT target_schema, generation_id, source_block, promoted_at
                        FROM {self._control_table}
                        WHERE target_schema = %s
                        """,
                        (target,),
                    )
                    row = cur.fetchone()

        if not row:
            return None
        return ActiveGeneration(
            target=row["target_schema"],
            generation_id=row["generation_id"],
            source_block=row["source_block"],
            promoted_at=row["promoted_at"],
        )
