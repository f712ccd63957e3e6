"""
Servicios de aplicacion.

Lógica reutilizable entre casos de uso: declaración de entidades,
normalización de records y escritura por batches.
"""
from subgraph_mirror.application.services.entity_declarations import load_entity_model, parse_entity_model
from subgraph_mirror.application.services.record_normalizer import RecordNormalizer
from subgraph_mirror.application.services.upsert_engine import BatchSink, UpsertEngine

__all__ = [
    "BatchSink",
    "RecordNormalizer",
    "UpsertEngine",
    "load_entity_model",
    "parse_entity_model",
]
