"""
Compilador de esquema: EntityModel -> lista ordenada de sentencias DDL.

Función pura y determinística: el mismo modelo produce exactamente la misma
lista de sentencias. Si el modelo no es resoluble se lanza SchemaError y no
se emite ninguna sentencia.

Orden de salida:
1. DROP TABLE IF EXISTS de todas las tablas (CASCADE)
2. CREATE TABLE por entidad, en orden de declaración
3. ALTER TABLE ... ADD CONSTRAINT por cada relación inversa (references)

Las tablas se emiten sin calificar: el caller las aplica con el
search_path apuntando al namespace en construcción.
"""

from __future__ import annotations

import hashlib
from typing import Dict, List

from subgraph_mirror.domain.entities import (
    Column,
    ColumnKind,
    CompiledColumn,
    DatabaseSchema,
    Entity,
    EntityModel,
    TableDefinition,
)
from subgraph_mirror.shared.exceptions import SchemaError


COLUMN_TYPE_MAP: Dict[str, str] = {
    "Boolean": "BOOLEAN",
    "BigInt": "TEXT",
    "BigDecimal": "NUMERIC",
    "Bytes": "BYTEA",
    "String": "TEXT",
    "ID": "TEXT",
    "Int": "INTEGER",
    "Int8": "BIGINT",
    "Timestamp": "BIGINT",
}


def quote_ident(name: str) -> str:
    """Identificador Postgres entre comillas dobles (escapa comillas internas)."""
    return '"' + name.replace('"', '""') + '"'


def _referenced_id_column(model: EntityModel, entity: Entity, column: Column) -> Column:
    referenced = model.get(column.base_type)
    if referenced is None:
        raise SchemaError(
            f"Entidad referenciada {column.base_type} no existe en el esquema "
            f"({entity.name}.{column.name})",
            entity=entity.name,
        )
    if len(referenced.primary_key) != 1:
        raise SchemaError(
            f"La entidad referenciada {referenced.name} debe tener un PK de una sola columna "
            f"({entity.name}.{column.name})",
            entity=entity.name,
        )
    id_column = referenced.column(referenced.primary_key[0])
    if id_column is None or id_column.is_array or id_column.base_type not in COLUMN_TYPE_MAP:
        raise SchemaError(
            f"Tipo de columna id inválido en la entidad referenciada {referenced.name}",
            entity=entity.name,
        )
    return id_column


def _compile_column(model: EntityModel, entity: Entity, column: Column) -> CompiledColumn:
    base = column.base_type

    if column.references is not None:
        referenced = model.get(base)
        if referenced is None:
            raise SchemaError(
                f"Entidad referenciada {base} no existe en el esquema ({entity.name}.{column.name})",
                entity=entity.name,
            )
        if not column.references:
            raise SchemaError(
                f"La relación {entity.name}.{column.name} declara references vacío",
                entity=entity.name,
            )
        for ref in column.references:
            if referenced.column(ref) is None:
                raise SchemaError(
                    f"La columna {ref} no existe en {referenced.name} "
                    f"(references de {entity.name}.{column.name})",
                    entity=entity.name,
                )
        if len(entity.primary_key) != 1:
            raise SchemaError(
                f"{entity.name} necesita un PK de una sola columna para la relación {column.name}",
                entity=entity.name,
            )
        return CompiledColumn(
            name=column.name,
            kind=ColumnKind.DERIVED,
            sql_type=None,
            scalar_type=None,
            target_entity=base,
            references=tuple(column.references),
        )

    if model.has(base):
        if column.is_array:
            raise SchemaError(
                f"Array de entidades sin references no soportado: {entity.name}.{column.name}",
                entity=entity.name,
            )
        id_column = _referenced_id_column(model, entity, column)
        return CompiledColumn(
            name=column.name,
            kind=ColumnKind.RELATION,
            sql_type=COLUMN_TYPE_MAP[id_column.base_type],
            scalar_type=id_column.base_type,
            target_entity=base,
        )

    if base not in COLUMN_TYPE_MAP:
        raise SchemaError(
            f"Tipo de columna inválido {column.type} para la columna {entity.name}.{column.name}",
            entity=entity.name,
        )

    if column.is_array:
        return CompiledColumn(
            name=column.name,
            kind=ColumnKind.ARRAY,
            sql_type=f"{COLUMN_TYPE_MAP[base]}[]",
            scalar_type=base,
        )

    return CompiledColumn(
        name=column.name,
        kind=ColumnKind.SCALAR,
        sql_type=COLUMN_TYPE_MAP[base],
        scalar_type=base,
    )


def _compile_table(model: EntityModel, entity: Entity) -> TableDefinition:
    if not entity.primary_key:
        raise SchemaError(f"La entidad {entity.name} no declara primary key", entity=entity.name)

    columns = tuple(_compile_column(model, entity, col) for col in entity.columns)
    stored = {col.name for col in columns if col.stored}
    for key in entity.primary_key:
        if key not in stored:
            raise SchemaError(
                f"El primary key {key} no es una columna almacenada de {entity.name}",
                entity=entity.name,
            )

    return TableDefinition(entity=entity, columns=columns, primary_key=tuple(entity.primary_key))


def build_database_schema(model: EntityModel) -> DatabaseSchema:
    """Resuelve todas las entidades del modelo. Lanza SchemaError si alguna falla."""
    if not model.entities:
        raise SchemaError("El modelo no declara entidades")
    tables = {entity.name: _compile_table(model, entity) for entity in model.entities}
    return DatabaseSchema(model=model, tables=tables)


def _drop_tables(schema: DatabaseSchema) -> str:
    names = ", ".join(quote_ident(name) for name in schema.tables)
    return f"DROP TABLE IF EXISTS {names} CASCADE"


def _create_table(table: TableDefinition) -> str:
    definitions = [
        f"{quote_ident(col.name)} {col.sql_type} NOT NULL"
        for col in table.stored_columns
    ]
    pk = ", ".join(quote_ident(key) for key in table.primary_key)
    definitions.append(f"PRIMARY KEY ({pk})")
    return f"CREATE TABLE IF NOT EXISTS {quote_ident(table.name)} ({', '.join(definitions)})"


# Postgres trunca en silencio los identificadores de más de 63 bytes
MAX_IDENTIFIER_BYTES = 63


def foreign_key_name(referenced: str, owner: str, column: str) -> str:
    """
    fk_<referenced>_<owner>_<column>. Si excede MAX_IDENTIFIER_BYTES se
    recorta y se agrega un hash corto del nombre completo.
    """
    name = f"fk_{referenced}_{owner}_{column}"
    encoded = name.encode("utf-8")
    if len(encoded) <= MAX_IDENTIFIER_BYTES:
        return name

    digest = hashlib.sha1(encoded).hexdigest()[:10]
    prefix = encoded[: MAX_IDENTIFIER_BYTES - len(digest) - 1].decode("utf-8", errors="ignore")
    return f"{prefix}_{digest}"


def _foreign_keys(schema: DatabaseSchema) -> List[str]:
    statements: List[str] = []
    for table in schema.tables.values():
        owner_pk = quote_ident(table.primary_key[0])
        for col in table.columns:
            if col.kind is not ColumnKind.DERIVED:
                continue
            referenced = col.target_entity or ""
            fk_columns = ", ".join(quote_ident(ref) for ref in col.references)
            constraint = quote_ident(foreign_key_name(referenced, table.name, col.name))
            statements.append(
                f"ALTER TABLE {quote_ident(referenced)} ADD CONSTRAINT {constraint} "
                f"FOREIGN KEY ({fk_columns}) REFERENCES {quote_ident(table.name)} ({owner_pk})"
            )
    return statements


def compile_schema(model: EntityModel) -> List[str]:
    """
    Genera el DDL completo del modelo.

    Returns:
        Lista ordenada de sentencias (drop, create, foreign keys)

    Raises:
        SchemaError: referencia no resoluble, tipo inválido o PK ausente
    """
    schema = build_database_schema(model)
    return [
        _drop_tables(schema),
        *(_create_table(table) for table in schema.tables.values()),
        *_foreign_keys(schema),
    ]
