"""
Casos de uso de sincronización subgraph -> Postgres.

Una generación completa:
1. compile_and_provision: DDL compilado + schema nuevo `<target>_g<gen>`
2. sync_entity (por entidad, en paralelo acotado): páginas del subgraph -> UPSERT
3. promote: rename atómico del schema nuevo al nombre activo

Todas las operaciones reciben el NamespaceHandle explícitamente; ninguna
lee el namespace activo de un estado global.
"""
from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from loguru import logger

from subgraph_mirror.application.services.upsert_engine import BatchSink, UpsertEngine
from subgraph_mirror.core.config import Settings
from subgraph_mirror.domain.entities import (
    ActivationResult,
    DatabaseSchema,
    EntityModel,
    NamespaceHandle,
    building_namespace_name,
    next_generation_id,
)
from subgraph_mirror.infrastructure.database.connection import PostgresDatabase
from subgraph_mirror.infrastructure.database.schema_compiler import build_database_schema, compile_schema
from subgraph_mirror.infrastructure.database.schema_manager import SchemaManager
from subgraph_mirror.infrastructure.database.upsert_repository import PostgresUpsertRepository
from subgraph_mirror.infrastructure.external.subgraph import SubgraphClient, SubgraphPaginator
from subgraph_mirror.infrastructure.workers.sync_executor import DEFAULT_SYNC_MAX_WORKERS, SyncExecutor
from subgraph_mirror.shared.exceptions import (
    RemoteQueryError,
    SchemaError,
    SyncConfigError,
    TransportError,
)
from subgraph_mirror.shared.utils.retry import RetryPolicy


@dataclass
class GenerationReport:
    """Resumen de una generación (filas por entidad, fallos y resultado de la promoción)."""

    handle: NamespaceHandle
    rows_by_entity: Dict[str, int] = field(default_factory=dict)
    failures: Dict[str, Exception] = field(default_factory=dict)
    activation: Optional[ActivationResult] = None

    @property
    def promoted(self) -> bool:
        return self.activation is not None

    @property
    def total_rows(self) -> int:
        return sum(self.rows_by_entity.values())


class SubgraphSyncUseCases:
    """
    Orquesta compilación, escritura y promoción de generaciones.
    """

    def __init__(
        self,
        *,
        schema_manager: SchemaManager,
        sink: BatchSink,
        clients: Mapping[str, SubgraphClient],
        target_schema: str,
        batch_size: int = 1000,
        retry_policy: Optional[RetryPolicy] = None,
        max_workers: int = DEFAULT_SYNC_MAX_WORKERS,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.schema_manager = schema_manager
        self.sink = sink
        self.clients = dict(clients)
        self.target_schema = target_schema
        self.batch_size = batch_size
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_workers = max_workers
        self.cancel_event = cancel_event or threading.Event()

    def _schema_of(self, handle: NamespaceHandle) -> DatabaseSchema:
        if handle.schema is None:
            raise SchemaError(
                f"El namespace {handle.namespace} no tiene esquema compilado asociado",
                generation=handle.generation_id,
            )
        return handle.schema

    def _engine(self, schema: DatabaseSchema) -> UpsertEngine:
        return UpsertEngine(
            self.sink,
            schema,
            batch_size=self.batch_size,
            retry_policy=self.retry_policy,
            cancel_event=self.cancel_event,
        )

    def _discard_after_error(self, namespace: str) -> None:
        """Descarta un namespace en construcción mientras se propaga otro error."""
        try:
            self.schema_manager.discard(namespace)
        except Exception as e:
            logger.error(f"No se pudo descartar el namespace {namespace}: {e}")

    def compile_and_provision(
        self,
        model: EntityModel,
        source_block: Optional[int] = None,
    ) -> NamespaceHandle:
        """
        Compila el modelo y crea el namespace de una generación nueva.

        Si el modelo no compila no se crea nada (SchemaError).
        """
        statements = compile_schema(model)
        schema = build_database_schema(model)

        generation_id = next_generation_id()
        namespace = building_namespace_name(self.target_schema, generation_id)

        self.schema_manager.provision(namespace)
        try:
            self.schema_manager.apply(namespace, statements)
        except Exception:
            self._discard_after_error(namespace)
            raise

        logger.info(f"Generación {generation_id}: namespace {namespace} listo ({len(schema.tables)} tablas)")
        return NamespaceHandle(
            namespace=namespace,
            target=self.target_schema,
            generation_id=generation_id,
            source_block=source_block,
            schema=schema,
        )

    def active_handle(self, model: EntityModel) -> NamespaceHandle:
        """
        Handle sobre el namespace activo, para pasadas incrementales.

        Raises:
            SyncConfigError: todavía no se promovió ninguna generación
        """
        active = self.schema_manager.active_generation(self.target_schema)
        if active is None:
            raise SyncConfigError(
                f"No hay generación activa para {self.target_schema}; ejecuta una sincronización completa primero"
            )
        return NamespaceHandle(
            namespace=active.target,
            target=active.target,
            generation_id=active.generation_id,
            source_block=active.source_block,
            schema=build_database_schema(model),
        )

    def sync_entity(self, handle: NamespaceHandle, entity_name: str) -> int:
        """
        Lee todas las páginas de una entidad y las escribe en el namespace del handle.

        Cada página se escribe apenas llega, en orden de origen.
        """
        schema = self._schema_of(handle)
        table = schema.get(entity_name)
        if table.entity.strategy == "skip":
            logger.info(f"{entity_name}: estrategia skip, no se sincroniza")
            return 0

        paginator = SubgraphPaginator(schema, self.clients)
        engine = self._engine(schema)

        written = 0
        try:
            for name, rows in paginator.iter_pages([entity_name]):
                written += engine.upsert(handle.namespace, name, rows, handle.generation_id)
        except (TransportError, RemoteQueryError) as e:
            e.details.update({"entity": entity_name, "generation": handle.generation_id})
            logger.error(f"{entity_name} (generación {handle.generation_id}): fallo leyendo el subgraph: {e.message}")
            raise

        logger.success(f"{entity_name}: {written} filas escritas en {handle.namespace}")
        return written

    def sync_entities(
        self,
        handle: NamespaceHandle,
        entity_names: Sequence[str],
        block_number: Optional[int] = None,
    ) -> Dict[str, int]:
        """
        Pasada multi-entidad: recolecta todas las páginas (batcheando entidades
        de la misma fuente en cada request) y luego escribe padres antes que hijos.

        Con `block_number` solo se leen las entidades modificadas desde ese bloque.
        """
        schema = self._schema_of(handle)
        names = [name for name in entity_names if schema.get(name).entity.strategy != "skip"]

        data = SubgraphPaginator(schema, self.clients).collect(names, block_number)
        engine = self._engine(schema)

        written: Dict[str, int] = {}
        for name in schema.upsert_order(names):
            written[name] = engine.upsert(handle.namespace, name, data.get(name, []), handle.generation_id)

        logger.info(f"Pasada incremental en {handle.namespace}: {sum(written.values())} filas")
        return written

    def promote(self, handle: NamespaceHandle) -> ActivationResult:
        """Promueve el namespace del handle al nombre activo."""
        return self.schema_manager.activate(
            handle.namespace,
            handle.target,
            generation_id=handle.generation_id,
            source_block=handle.source_block,
        )

    def observe_source_block(self, model: EntityModel) -> Optional[int]:
        """
        Bloque más bajo indexado entre las fuentes usadas por el modelo.
        Es el bloque hasta el cual la generación es consistente.
        """
        used = {entity.source for entity in model.entities if entity.strategy != "skip"}
        blocks: List[int] = []
        for source in sorted(used):
            client = self.clients.get(source)
            if client is None:
                continue
            meta = client.fetch_block_meta()
            if meta.has_indexing_errors:
                logger.warning(f"Fuente {source}: el subgraph reporta errores de indexación")
            blocks.append(meta.number)
        return min(blocks) if blocks else None

    async def run_generation(
        self,
        model: EntityModel,
        entity_names: Optional[Sequence[str]] = None,
    ) -> GenerationReport:
        """
        Ejecuta una generación completa y la promueve si todas las entidades
        terminaron sin error. Si alguna falla, el namespace en construcción se
        descarta y el activo no cambia.

        Las entidades se escriben por niveles de FK: dentro de un nivel en
        paralelo (hasta max_workers), y un nivel empieza cuando terminó el anterior.

        Si la tarea se cancela se activa `cancel_event`: los loops de reintento
        en curso cortan en la próxima espera y el namespace se descarta.
        """
        names = list(entity_names) if entity_names is not None else [
            entity.name for entity in model.entities if entity.strategy != "skip"
        ]
        unknown = [name for name in names if not model.has(name)]
        if unknown:
            raise SchemaError(f"Entidades inexistentes en el modelo: {', '.join(unknown)}")

        # Un ciclo de FKs se detecta antes de crear el namespace
        levels = build_database_schema(model).upsert_levels(names)

        executor = SyncExecutor(self.max_workers)
        building: Optional[str] = None
        try:
            source_block = await executor.run(self.observe_source_block, model)
            handle = await executor.run(self.compile_and_provision, model, source_block)
            building = handle.namespace
            report = GenerationReport(handle=handle)

            logger.info(
                f"Generación {handle.generation_id}: sincronizando {len(names)} entidades en "
                f"{len(levels)} niveles (max_workers={self.max_workers}, bloque={source_block})"
            )

            for level in levels:
                results = await asyncio.gather(
                    *(executor.run(self.sync_entity, handle, name) for name in level),
                    return_exceptions=True,
                )
                for name, result in zip(level, results):
                    if isinstance(result, Exception):
                        logger.error(f"{name}: sincronización fallida: {result}")
                        report.failures[name] = result
                    elif isinstance(result, BaseException):
                        raise result
                    else:
                        report.rows_by_entity[name] = result

                if report.failures:
                    # Los niveles siguientes dependen de este por FK
                    break

            if report.failures:
                logger.error(
                    f"Generación {handle.generation_id} no se promueve: "
                    f"{len(report.failures)} entidades fallaron ({', '.join(report.failures)})"
                )
                building = None
                await executor.run(self.schema_manager.discard, handle.namespace)
                return report

            report.activation = await executor.run(self.promote, handle)
            building = None
            logger.success(
                f"Generación {handle.generation_id} activa en {handle.target}: {report.total_rows} filas"
            )
            return report
        except asyncio.CancelledError:
            self.cancel_event.set()
            logger.warning("Generación cancelada: se abortan los reintentos en curso")
            if building is not None:
                await asyncio.to_thread(self._discard_after_error, building)
            raise
        except Exception:
            if building is not None:
                await asyncio.to_thread(self._discard_after_error, building)
            raise
        finally:
            executor.shutdown(wait=False, cancel_futures=True)


def build_from_settings(settings: Settings, model: EntityModel) -> SubgraphSyncUseCases:
    """
    Construye los casos de uso desde Settings (DATABASE_URL, SUBGRAPH_*, DB_*).
    Se crea un SubgraphClient por cada fuente declarada en el modelo.
    """
    if not model.sources:
        raise SyncConfigError("La declaración de entidades no define ninguna fuente (sources)")

    db = PostgresDatabase(settings.effective_database_url)
    clients = {
        name: SubgraphClient(
            source,
            api_key=settings.SUBGRAPH_API_KEY or None,
            timeout_s=settings.SUBGRAPH_TIMEOUT_S,
        )
        for name, source in model.sources.items()
    }
    return SubgraphSyncUseCases(
        schema_manager=SchemaManager(
            db,
            control_schema=settings.CONTROL_SCHEMA,
            lock_key=settings.ACTIVATION_LOCK_KEY,
        ),
        sink=PostgresUpsertRepository(db),
        clients=clients,
        target_schema=settings.TARGET_SCHEMA,
        batch_size=settings.DB_BATCH_SIZE,
        retry_policy=RetryPolicy(
            max_retries=settings.DB_MAX_RETRIES,
            initial_delay_s=settings.DB_INITIAL_RETRY_DELAY_S,
        ),
        max_workers=settings.SYNC_MAX_WORKERS,
    )
