"""
Entidades del dominio de sincronización.
"""
from .entity_model import SCALAR_TYPES, Column, ColumnKind, Entity, EntityModel, SubgraphSource
from .namespace import (
    ActivationResult,
    ActiveGeneration,
    NamespaceHandle,
    building_namespace_name,
    next_generation_id,
    retired_namespace_name,
)
from .schema import ChildLink, CompiledColumn, DatabaseSchema, TableDefinition

__all__ = [
    "SCALAR_TYPES",
    "ActivationResult",
    "ActiveGeneration",
    "ChildLink",
    "Column",
    "ColumnKind",
    "CompiledColumn",
    "DatabaseSchema",
    "Entity",
    "EntityModel",
    "NamespaceHandle",
    "SubgraphSource",
    "TableDefinition",
    "building_namespace_name",
    "next_generation_id",
    "retired_namespace_name",
]
