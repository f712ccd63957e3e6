"""
Paginación por cursor sobre el subgraph.

Las entidades se agrupan por fuente; para cada fuente, en cada ronda se
arma un batch con la siguiente página de todas las entidades que aún no
terminaron y se envía en un solo POST.

Estrategias por entidad:
- paginate: páginas de `max_rows_per_request` avanzando `id_gt` al último id;
  termina cuando una página llega incompleta
- single: una sola fila, un solo request
- skip: nunca se consulta
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from subgraph_mirror.domain.entities import DatabaseSchema
from subgraph_mirror.infrastructure.external.subgraph.query_builder import (
    RemoteQueryRequest,
    create_entity_query,
)
from subgraph_mirror.infrastructure.external.subgraph.subgraph_client import Record, SubgraphClient
from subgraph_mirror.shared.exceptions import SyncConfigError


@dataclass
class EntityCursor:
    entity_name: str
    strategy: str
    last_id: Optional[str] = None
    complete: bool = False
    total: int = 0


class SubgraphPaginator:
    def __init__(self, schema: DatabaseSchema, clients: Mapping[str, SubgraphClient]) -> None:
        self._schema = schema
        self._clients = dict(clients)

    def _group_by_source(self, entity_names: Sequence[str]) -> Dict[str, List[str]]:
        groups: Dict[str, List[str]] = {}
        for name in entity_names:
            entity = self._schema.get(name).entity
            if entity.source not in self._clients:
                raise SyncConfigError(
                    f'La entidad "{name}" usa la fuente "{entity.source}" que no está configurada',
                    details={"entity": name, "source": entity.source},
                )
            groups.setdefault(entity.source, []).append(name)
        return groups

    def _next_request(
        self,
        cursor: EntityCursor,
        client: SubgraphClient,
        block_number: Optional[int],
    ) -> Optional[RemoteQueryRequest]:
        if cursor.complete or cursor.strategy == "skip":
            return None
        first = 1 if cursor.strategy == "single" else client.max_rows_per_request
        return create_entity_query(
            self._schema,
            cursor.entity_name,
            first=first,
            last_id=cursor.last_id,
            block_number=block_number,
        )

    @staticmethod
    def _advance(cursor: EntityCursor, rows: List[Record], page_size: int) -> None:
        cursor.total += len(rows)
        if rows:
            cursor.last_id = rows[-1].get("id")

        if cursor.strategy == "single":
            cursor.complete = True
        elif len(rows) < page_size:
            cursor.complete = True
        elif cursor.last_id is None:
            # Sin id no hay forma de avanzar la ventana
            logger.warning(f"{cursor.entity_name}: la última fila no trae id, se corta la paginación")
            cursor.complete = True

    def iter_pages(
        self,
        entity_names: Sequence[str],
        block_number: Optional[int] = None,
    ) -> Iterator[Tuple[str, List[Record]]]:
        """
        Genera (entidad, filas) por cada página no vacía, en orden de llegada.

        Raises:
            SchemaError: entidad inexistente en el esquema
            SyncConfigError: la fuente de la entidad no tiene cliente configurado
            TransportError / RemoteQueryError: fallo leyendo el subgraph
        """
        for source, names in self._group_by_source(entity_names).items():
            client = self._clients[source]
            cursors = [
                EntityCursor(entity_name=name, strategy=self._schema.get(name).entity.strategy)
                for name in names
            ]

            round_number = 0
            while True:
                pending: List[Tuple[EntityCursor, RemoteQueryRequest]] = []
                for cursor in cursors:
                    request = self._next_request(cursor, client, block_number)
                    if request is not None:
                        pending.append((cursor, request))
                if not pending:
                    break

                round_number += 1
                results = client.execute([request for _, request in pending])

                for index, (cursor, _) in enumerate(pending):
                    rows = results.get(index, [])
                    self._advance(cursor, rows, client.max_rows_per_request)
                    logger.debug(
                        f"{cursor.entity_name}: {len(rows)} filas (total {cursor.total}, "
                        f"último id {cursor.last_id}, completo={cursor.complete})"
                    )
                    if rows:
                        yield cursor.entity_name, rows

            logger.info(
                f"Fuente {source}: {len(names)} entidades leídas en {round_number} rondas "
                f"({', '.join(f'{c.entity_name}={c.total}' for c in cursors)})"
            )

    def collect(
        self,
        entity_names: Sequence[str],
        block_number: Optional[int] = None,
    ) -> Dict[str, List[Record]]:
        """Acumula todas las páginas por entidad (entidades sin filas quedan con [])."""
        data: Dict[str, List[Record]] = {name: [] for name in entity_names}
        for entity_name, rows in self.iter_pages(entity_names, block_number):
            data[entity_name].extend(rows)
        return data
