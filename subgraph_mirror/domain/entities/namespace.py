"""
Namespaces (schemas Postgres) y generaciones de sincronización.

Una generación es un ciclo completo construir-y-promover: se crea un schema
nuevo, se llena, y se renombra atómicamente al nombre "actual". El puntero
al namespace activo vive en la tabla de control de Postgres, nunca en memoria.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from subgraph_mirror.domain.entities.schema import DatabaseSchema


def next_generation_id() -> int:
    """Id de generación monotónico basado en el reloj (milisegundos)."""
    return int(time.time() * 1000)


def building_namespace_name(target: str, generation_id: int) -> str:
    return f"{target}_g{generation_id}"


def retired_namespace_name(target: str) -> str:
    return f"old_{target}"


@dataclass(frozen=True)
class NamespaceHandle:
    """
    Referencia a un namespace en construcción.

    - namespace: nombre del schema donde se escriben las filas de esta generación
    - target: nombre del schema activo que esta generación va a reemplazar
    - generation_id: identificador de la generación
    - source_block: bloque del subgraph observado al iniciar la generación
    - schema: esquema compilado con el que se creó el namespace
    """

    namespace: str
    target: str
    generation_id: int
    source_block: Optional[int] = None
    schema: Optional[DatabaseSchema] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ActiveGeneration:
    """Fila del puntero al namespace activo."""

    target: str
    generation_id: int
    source_block: Optional[int]
    promoted_at: datetime


@dataclass(frozen=True)
class ActivationResult:
    """
    Resultado de promover un namespace.

    La promoción (renames + puntero) ya está confirmada cuando se retorna.
    retired_dropped=False indica que el schema retirado quedó pendiente de
    limpieza; la próxima activación lo elimina antes de renombrar.
    """

    target: str
    generation_id: int
    retired_dropped: bool
    cleanup_error: Optional[str] = None
