"""
Excepciones del motor de sincronización subgraph -> Postgres.

Taxonomía:
- SchemaError: modelo de entidades inválido o entidad desconocida. Fatal.
- TransportError / RemoteQueryError: fallos leyendo el subgraph remoto.
- WriteError: un batch agotó sus reintentos contra Postgres.
- ActivationError: la promoción del namespace no se pudo aplicar.
- SyncCancelledError: se pidió cancelar entre reintentos.
- SyncConfigError: configuración o archivo de declaración inválidos.
"""
from typing import Any, Optional

from subgraph_mirror.shared.exceptions.base import AppException


def _context(entity: Optional[str], generation: Optional[int]) -> dict[str, Any]:
    details: dict[str, Any] = {}
    if entity is not None:
        details["entity"] = entity
    if generation is not None:
        details["generation"] = generation
    return details


class SyncConfigError(AppException):
    """Error de configuración del pipeline."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message=message, error_code="SYNC_CONFIG_ERROR", details=details)


class SchemaError(AppException):
    """Modelo de entidades no resoluble o entidad inexistente en el esquema."""

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        generation: Optional[int] = None,
    ):
        super().__init__(
            message=message,
            error_code="SCHEMA_ERROR",
            details=_context(entity, generation),
        )
        self.entity = entity
        self.generation = generation


class TransportError(AppException):
    """El subgraph respondió con un status HTTP no exitoso o no respondió."""

    def __init__(self, message: str, status: Optional[int] = None, endpoint: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="TRANSPORT_ERROR",
            details={"status": status, "endpoint": endpoint},
        )
        self.status = status


class RemoteQueryError(AppException):
    """El subgraph respondió con errores de GraphQL."""

    def __init__(self, errors: list[Any], query: Optional[str] = None):
        super().__init__(
            message=f"GraphQL errors: {errors}",
            error_code="REMOTE_QUERY_ERROR",
            details={"errors": errors, "query": query},
        )
        self.errors = errors


class WriteError(AppException):
    """Un batch de UPSERT falló tras agotar los reintentos."""

    def __init__(
        self,
        entity: str,
        batch_index: int,
        retries: int,
        last_error: Optional[BaseException] = None,
        generation: Optional[int] = None,
    ):
        details = _context(entity, generation)
        details.update({"batch_index": batch_index, "retries": retries})
        super().__init__(
            message=(
                f'Upsert de "{entity}" (generación {generation}, batch {batch_index}) '
                f"falló tras {retries} reintentos. Último error: {last_error}"
            ),
            error_code="WRITE_ERROR",
            details=details,
        )
        self.entity = entity
        self.batch_index = batch_index
        self.retries = retries
        self.generation = generation


class ActivationError(AppException):
    """La transacción de promoción del namespace falló; el namespace activo no cambió."""

    def __init__(self, message: str, namespace: str, generation: Optional[int] = None):
        details = _context(None, generation)
        details["namespace"] = namespace
        super().__init__(message=message, error_code="ACTIVATION_ERROR", details=details)
        self.namespace = namespace
        self.generation = generation


class SyncCancelledError(AppException):
    """Se observó la señal de cancelación entre intentos."""

    def __init__(
        self,
        entity: Optional[str] = None,
        generation: Optional[int] = None,
        attempts: int = 0,
    ):
        details = _context(entity, generation)
        details["attempts"] = attempts
        super().__init__(
            message=f'Sync de "{entity}" cancelado tras {attempts} intentos',
            error_code="SYNC_CANCELLED",
            details=details,
        )
        self.attempts = attempts
