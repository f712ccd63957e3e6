"""
Esquema compilado: definición de tabla por entidad, con cada columna ya
resuelta a su clase (ColumnKind) y tipo SQL.

También expone el orden FK-safe de entidades (padres antes que hijos),
útil para escribir o borrar en un orden que respete las relaciones.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from subgraph_mirror.domain.entities.entity_model import ColumnKind, Entity, EntityModel
from subgraph_mirror.shared.exceptions import SchemaError


@dataclass(frozen=True)
class CompiledColumn:
    """
    Columna resuelta.

    - sql_type: tipo Postgres (None para columnas DERIVED, que no se guardan)
    - scalar_type: tipo escalar del subgraph que define cómo se normaliza el valor
    - target_entity: entidad referenciada (RELATION / DERIVED)
    """

    name: str
    kind: ColumnKind
    sql_type: Optional[str]
    scalar_type: Optional[str]
    target_entity: Optional[str] = None
    references: tuple[str, ...] = ()

    @property
    def stored(self) -> bool:
        return self.kind is not ColumnKind.DERIVED


@dataclass(frozen=True)
class TableDefinition:
    entity: Entity
    columns: tuple[CompiledColumn, ...]
    primary_key: tuple[str, ...]

    @property
    def name(self) -> str:
        return self.entity.name

    @property
    def stored_columns(self) -> tuple[CompiledColumn, ...]:
        return tuple(col for col in self.columns if col.stored)

    def column(self, name: str) -> Optional[CompiledColumn]:
        for col in self.columns:
            if col.name == name:
                return col
        return None


@dataclass(frozen=True)
class ChildLink:
    """
    Arista padre -> hijo. `enforced` indica que hay una FK real en Postgres
    (relación inversa con references); las relaciones inline no generan FK.
    """

    child_entity: str
    fk_column: str
    enforced: bool = False


@dataclass
class DatabaseSchema:
    """
    Mapeo entidad -> tabla compilada, en orden de declaración.
    """

    model: EntityModel
    tables: Dict[str, TableDefinition]
    _children: Dict[str, List[ChildLink]] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        # Adyacencia padre -> hijos, precalculada una sola vez.
        # RELATION: la tabla dueña guarda el id del padre en la columna.
        # DERIVED: la tabla referenciada es la hija; sus columnas `references`
        # tienen FK hacia la tabla dueña.
        children: Dict[str, List[ChildLink]] = {}
        for table in self.tables.values():
            for col in table.columns:
                if col.target_entity is None or col.target_entity not in self.tables:
                    continue
                if col.kind is ColumnKind.RELATION:
                    children.setdefault(col.target_entity, []).append(
                        ChildLink(child_entity=table.name, fk_column=col.name)
                    )
                elif col.kind is ColumnKind.DERIVED:
                    for ref in col.references:
                        children.setdefault(table.name, []).append(
                            ChildLink(child_entity=col.target_entity, fk_column=ref, enforced=True)
                        )
        self._children = children

    def has(self, entity_name: str) -> bool:
        return entity_name in self.tables

    def get(self, entity_name: str) -> TableDefinition:
        table = self.tables.get(entity_name)
        if table is None:
            raise SchemaError(f'Entidad "{entity_name}" no existe en el esquema', entity=entity_name)
        return table

    def entity_order(self) -> List[str]:
        """Orden de creación (declaración)."""
        return list(self.tables.keys())

    def direct_children(self, entity_name: str) -> List[ChildLink]:
        return list(self._children.get(entity_name, []))

    def upsert_levels(self, only: Optional[Sequence[str]] = None) -> List[List[str]]:
        """
        Niveles topológicos: cada entidad queda en un nivel posterior al de
        las tablas a las que apuntan sus FKs. Las entidades de un mismo nivel
        no dependen entre sí y se pueden escribir en paralelo.

        Solo cuentan las FKs reales (`enforced`); las relaciones inline pueden
        formar ciclos sin afectar el orden de escritura.
        """
        names = [n for n in self.tables if only is None or n in only]
        allowed = set(names)

        parents: Dict[str, set[str]] = {name: set() for name in names}
        for parent in names:
            for link in self._children.get(parent, []):
                if link.enforced and link.child_entity in allowed and link.child_entity != parent:
                    parents[link.child_entity].add(parent)

        levels: List[List[str]] = []
        placed: set[str] = set()
        while len(placed) < len(names):
            level = [n for n in names if n not in placed and parents[n] <= placed]
            if not level:
                missing = [n for n in names if n not in placed]
                raise SchemaError(f"Ciclo de FKs en el esquema entre: {', '.join(missing)}")
            levels.append(level)
            placed.update(level)

        return levels

    def upsert_order(self, only: Optional[Sequence[str]] = None) -> List[str]:
        """Orden FK-safe: padres antes que hijos, declaración como desempate."""
        return [name for level in self.upsert_levels(only) for name in level]

    def delete_order(self, only: Optional[Sequence[str]] = None) -> List[str]:
        return list(reversed(self.upsert_order(only)))
