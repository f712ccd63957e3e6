"""
Modelo declarativo de entidades del subgraph.

Cada Entity se mapea 1:1 a una tabla Postgres. El modelo se define una sola
vez (archivo de declaración) y es inmutable; el compilador de esquema lo
consume como entrada de solo lectura.

Tipos de columna soportados:
- escalares del subgraph (ver SCALAR_TYPES)
- arrays de escalares: lista de un elemento, p.ej. ["String"]
- referencia a otra entidad: el nombre de una Entity declarada
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


SCALAR_TYPES = (
    "Boolean",
    "BigInt",
    "BigDecimal",
    "Bytes",
    "String",
    "ID",
    "Int",
    "Int8",
    "Timestamp",
)


class ColumnKind(Enum):
    """
    Clase de columna resuelta contra el modelo.
    """
    SCALAR = "scalar"       # valor primitivo
    ARRAY = "array"         # array de primitivos
    RELATION = "relation"   # referencia a otra entidad, se guarda su id
    DERIVED = "derived"     # relación inversa, solo genera FK en la tabla referenciada


class Column(BaseModel):
    """
    Columna de una entidad.

    - type: tag de tipo (escalar, [escalar] o nombre de entidad)
    - references: columnas FK que esta relación implica en la tabla de la
      entidad referenciada. Una columna con `references` no se guarda inline.
    """

    name: str
    type: Union[str, List[str]]
    references: Optional[List[str]] = None

    class Config:
        frozen = True

    @field_validator("type")
    @classmethod
    def _single_element_array(cls, value: Union[str, List[str]]) -> Union[str, List[str]]:
        if isinstance(value, list) and len(value) != 1:
            raise ValueError("Un tipo array debe declarar exactamente un tipo base, p.ej. [String]")
        return value

    @property
    def is_array(self) -> bool:
        return isinstance(self.type, list)

    @property
    def base_type(self) -> str:
        return self.type[0] if isinstance(self.type, list) else self.type


class Entity(BaseModel):
    """Entidad del subgraph (una tabla)."""

    name: str
    columns: List[Column]
    primary_key: List[str] = Field(default_factory=list)
    source: str = "default"
    strategy: Literal["paginate", "single", "skip"] = "paginate"

    class Config:
        frozen = True

    def column(self, name: str) -> Optional[Column]:
        for col in self.columns:
            if col.name == name:
                return col
        return None


class SubgraphSource(BaseModel):
    """
    Endpoint remoto desde el cual se leen entidades.

    max_rows_per_request: tamaño de página; una página más corta indica fin de datos.
    """

    url: str
    id: str
    max_rows_per_request: int = Field(default=1000, gt=0)

    class Config:
        frozen = True


class EntityModel(BaseModel):
    """Conjunto completo de entidades y fuentes declaradas."""

    entities: List[Entity]
    sources: Dict[str, SubgraphSource] = Field(default_factory=dict)

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _unique_entity_names(self) -> "EntityModel":
        seen: set[str] = set()
        for entity in self.entities:
            if entity.name in seen:
                raise ValueError(f"Entidad duplicada en el modelo: {entity.name}")
            seen.add(entity.name)
        return self

    @property
    def names(self) -> List[str]:
        return [entity.name for entity in self.entities]

    def has(self, name: str) -> bool:
        return any(entity.name == name for entity in self.entities)

    def get(self, name: str) -> Optional[Entity]:
        for entity in self.entities:
            if entity.name == name:
                return entity
        return None
