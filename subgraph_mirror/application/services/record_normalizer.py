"""
Normalización de records del subgraph contra una tabla compilada.

El subgraph devuelve objetos con la forma de la query: las relaciones vienen
como {"id": ...} y pueden aparecer campos que la tabla no guarda. Antes de
escribir, cada record se reduce a una tupla en el orden de las columnas
almacenadas.
"""
from __future__ import annotations

from typing import Any, List, Mapping, Sequence, Tuple

from subgraph_mirror.domain.entities import ColumnKind, CompiledColumn, TableDefinition


class RecordNormalizer:
    """
    Convierte records crudos a filas listas para el UPSERT.

    Reglas por clase de columna:
    - RELATION: un objeto se reemplaza por su "id"; None o un id plano pasan tal cual
    - SCALAR / ARRAY de tipo Bytes: strings hex "0x..." se convierten a bytes (BYTEA)
    - DERIVED y campos desconocidos: se descartan
    - columnas ausentes en el record: None
    """

    def __init__(self, table: TableDefinition) -> None:
        self._table = table
        self._columns: Tuple[CompiledColumn, ...] = table.stored_columns

    def to_row(self, record: Mapping[str, Any]) -> Tuple[Any, ...]:
        return tuple(_normalize_value(col, record.get(col.name)) for col in self._columns)

    def to_rows(self, records: Sequence[Mapping[str, Any]]) -> List[Tuple[Any, ...]]:
        return [self.to_row(record) for record in records]


def _normalize_value(column: CompiledColumn, value: Any) -> Any:
    if value is None:
        return None

    if column.kind is ColumnKind.RELATION:
        if isinstance(value, Mapping):
            value = value.get("id")
        return _coerce_scalar(column.scalar_type, value)

    if column.kind is ColumnKind.ARRAY and isinstance(value, list):
        return [_coerce_scalar(column.scalar_type, item) for item in value]

    return _coerce_scalar(column.scalar_type, value)


def _coerce_scalar(scalar_type: str | None, value: Any) -> Any:
    if scalar_type == "Bytes" and isinstance(value, str):
        return hex_to_bytes(value)
    return value


def hex_to_bytes(value: str) -> bytes:
    """
    "0xdeadbeef" -> b"\\xde\\xad\\xbe\\xef".

    El subgraph serializa Bytes como hex con prefijo 0x; un largo impar se
    completa con un cero a la izquierda.
    """
    digits = value[2:] if value[:2].lower() == "0x" else value
    if len(digits) % 2:
        digits = "0" + digits
    return bytes.fromhex(digits)
