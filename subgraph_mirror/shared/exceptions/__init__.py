"""
Excepciones del sincronizador.
"""
from .base import AppException
from .sync import (
    ActivationError,
    RemoteQueryError,
    SchemaError,
    SyncCancelledError,
    SyncConfigError,
    TransportError,
    WriteError,
)

__all__ = [
    "AppException",
    "ActivationError",
    "RemoteQueryError",
    "SchemaError",
    "SyncCancelledError",
    "SyncConfigError",
    "TransportError",
    "WriteError",
]
