"""
Carga del archivo de declaración de entidades (YAML).

Formato:

    sources:
      collective-rewards:
        url: https://gateway.thegraph.com/api
        id: 8aj2f...
        max_rows_per_request: 1000
    entities:
      - name: Builder
        source: collective-rewards
        primary_key: [id]
        strategy: paginate
        columns:
          - {name: id, type: Bytes}
          - {name: backers, type: [Bytes]}
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import yaml
from loguru import logger
from pydantic import ValidationError

from subgraph_mirror.domain.entities import EntityModel
from subgraph_mirror.shared.exceptions import SyncConfigError


def parse_entity_model(raw: Mapping[str, Any]) -> EntityModel:
    """
    Valida la declaración ya parseada y retorna el EntityModel.

    Raises:
        SyncConfigError: estructura inválida, entidades duplicadas o fuente desconocida
    """
    if not isinstance(raw, Mapping):
        raise SyncConfigError("La declaración de entidades debe ser un mapping con 'entities'")

    try:
        model = EntityModel.model_validate(dict(raw))
    except ValidationError as e:
        raise SyncConfigError(
            f"Declaración de entidades inválida: {e.error_count()} errores",
            details={"errors": e.errors(include_url=False)},
        ) from e

    if model.sources:
        for entity in model.entities:
            if entity.source not in model.sources:
                raise SyncConfigError(
                    f'La entidad "{entity.name}" declara la fuente "{entity.source}" que no existe',
                    details={"entity": entity.name, "source": entity.source},
                )

    return model


def load_entity_model(path: str | Path) -> EntityModel:
    """Lee y valida el archivo YAML de declaración de entidades."""
    resolved = Path(path)
    try:
        raw = yaml.safe_load(resolved.read_text(encoding="utf-8"))
    except OSError as e:
        raise SyncConfigError(f"No se pudo leer {resolved}: {e}") from e
    except yaml.YAMLError as e:
        raise SyncConfigError(f"YAML inválido en {resolved}: {e}") from e

    model = parse_entity_model(raw or {})
    logger.info(f"Declaración cargada desde {resolved}: {len(model.entities)} entidades, {len(model.sources)} fuentes")
    return model
