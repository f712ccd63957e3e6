"""
Casos de uso de sincronización.
"""
from .sync_use_cases import GenerationReport, SubgraphSyncUseCases, build_from_settings

__all__ = ["GenerationReport", "SubgraphSyncUseCases", "build_from_settings"]
