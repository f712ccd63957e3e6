"""
Construcción de queries GraphQL para el subgraph.

Cada entidad se lee con una list query:

    blockChangeLogs(first: 1000, orderBy: id, orderDirection: asc, where: { id_gt: "0x..." }) {
      id
      builder { id }
    }

Varias list queries independientes se combinan en un único documento con
alias `<plural>_<índice>`, de modo que un solo POST trae los resultados de
todas y la respuesta se puede demultiplexar por posición.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from subgraph_mirror.domain.entities import ColumnKind, DatabaseSchema, TableDefinition


@dataclass(frozen=True)
class RemoteQueryRequest:
    """Query de una entidad, lista para componerse en un batch."""

    entity_name: str
    query: str


def to_camel_case(name: str) -> str:
    return name[:1].lower() + name[1:]


def pluralize_entity_name(name: str) -> str:
    """
    Nombre del campo de lista en el subgraph.

    BlockChangeLog -> blockChangeLogs, Entity -> entities
    """
    if name.endswith("y"):
        return to_camel_case(name[:-1]) + "ies"
    return to_camel_case(name) + "s"


def batch_alias(entity_name: str, index: int) -> str:
    return f"{pluralize_entity_name(entity_name)}_{index}"


def build_field_selection(table: TableDefinition) -> str:
    """
    Selección de campos: las relaciones solo piden `{ id }`.
    Las relaciones inversas (DERIVED) no se seleccionan porque no se guardan.
    """
    fields: List[str] = []
    for col in table.columns:
        if col.kind is ColumnKind.DERIVED:
            continue
        if col.kind is ColumnKind.RELATION:
            fields.append(f"{col.name} {{ id }}")
        else:
            fields.append(col.name)
    return "\n      ".join(fields)


def format_query_value(value: Any) -> str:
    """Serializa un valor como literal de argumento GraphQL."""
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Mapping):
        entries = ", ".join(f"{k}: {format_query_value(v)}" for k, v in value.items())
        return f"{{ {entries} }}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(format_query_value(v) for v in value) + "]"
    return str(value)


def build_query_arguments(
    *,
    first: Optional[int] = None,
    order_by: Optional[str] = "id",
    order_direction: str = "asc",
    filters: Optional[Mapping[str, Any]] = None,
) -> List[str]:
    args: List[str] = []
    if first is not None:
        args.append(f"first: {first}")
    if order_by:
        args.append(f"orderBy: {order_by}")
        args.append(f"orderDirection: {order_direction}")
    if filters:
        where = ", ".join(f"{key}: {format_query_value(value)}" for key, value in filters.items())
        args.append(f"where: {{ {where} }}")
    return args


def build_window_filters(
    last_id: Optional[str] = None,
    block_number: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Filtros de la ventana de paginación.

    - id_gt: cursor, último id de la página anterior (se omite en la primera página)
    - _change_block: solo entidades modificadas desde `block_number`
    """
    filters: Dict[str, Any] = {}
    if last_id is not None:
        filters["id_gt"] = last_id
    if block_number is not None:
        filters["_change_block"] = {"number_gte": block_number}
    return filters


def create_entity_query(
    schema: DatabaseSchema,
    entity_name: str,
    *,
    first: Optional[int] = None,
    last_id: Optional[str] = None,
    block_number: Optional[int] = None,
) -> RemoteQueryRequest:
    """
    Query de lista para una entidad del esquema.

    Raises:
        SchemaError: la entidad no existe en el esquema
    """
    table = schema.get(entity_name)
    fields = build_field_selection(table)
    args = build_query_arguments(first=first, filters=build_window_filters(last_id, block_number))
    args_sql = f"({', '.join(args)})" if args else ""
    query = f"{pluralize_entity_name(entity_name)}{args_sql} {{\n      {fields}\n    }}"
    return RemoteQueryRequest(entity_name=entity_name, query=query)


def build_batch_query(requests: Sequence[RemoteQueryRequest]) -> str:
    """
    Combina N queries en un único documento `query BatchQuery { ... }`.

    El alias de cada sub-query es `<plural>_<índice>`, con el índice igual a
    la posición en `requests`.
    """
    if not requests:
        raise ValueError("No se puede construir un batch query sin requests")

    parts = [f"{batch_alias(req.entity_name, index)}: {req.query}" for index, req in enumerate(requests)]
    body = "\n    ".join(parts)
    return f"query BatchQuery {{\n    {body}\n  }}"


BLOCK_META_QUERY = """query BlockMeta {
    _meta {
      block { number hash timestamp }
      deployment
      hasIndexingErrors
    }
  }"""
